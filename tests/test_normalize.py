from hero_backend.utils import (
    contains_term,
    contains_word,
    normalize_text,
    pad_text,
    safe_json_loads,
)


def test_normalize_is_case_and_diacritic_insensitive():
    assert normalize_text("Icaraí") == normalize_text("ICARAI") == "icarai"
    assert normalize_text("Região Oceânica") == "regiao oceanica"


def test_normalize_collapses_whitespace_and_nbsp():
    assert normalize_text("  São\u00a0Francisco \t\n  2  quartos ") == "sao francisco 2 quartos"


def test_normalize_is_total_and_idempotent():
    samples = ["", "Icaraí", "İSTANBUL", "Ação  e\u00a0reação", "tem studio em icarai?", "ÁÉÍÓÚ çÇ ñ"]
    assert normalize_text(None) == ""
    for sample in samples:
        once = normalize_text(sample)
        assert normalize_text(once) == once


def test_normalize_keeps_punctuation():
    assert normalize_text("Studio, ou 2q?") == "studio, ou 2q?"


def test_contains_word_requires_boundaries():
    padded = pad_text("adoro musica classica")
    assert not contains_word(padded, "ica")
    assert contains_word(padded, "musica")
    assert contains_word(pad_text("icarai?"), "icarai")
    assert contains_word("icarai", "icarai")
    assert not contains_word(padded, "")


def test_contains_term_relaxes_short_terms():
    assert contains_term(pad_text("tem algo no ipe?"), "ipe")
    assert contains_term(pad_text("receita"), "ita")
    assert not contains_term(pad_text("icaraizinho"), "icarai")


def test_safe_json_loads_extracts_fenced_block():
    assert safe_json_loads('```json\n{"text": "oi"}\n```') == {"text": "oi"}
    assert safe_json_loads("sem json aqui") is None
    assert safe_json_loads("{quebrado") is None
