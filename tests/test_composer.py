import json

from conftest import make_listing

from hero_backend.catalog import Catalog
from hero_backend.composer import (
    FALLBACK_FOLLOWUPS,
    NONE_REPLY,
    build_system_instruction,
    compose_fallback,
    compose_reply,
    humanize_list,
    humanize_types,
    parse_generated_reply,
)
from hero_backend.intent import extract_signals
from hero_backend.resolver import ResolutionResult, resolve_candidates


def test_humanize_list_joins_last_item_with_e():
    assert humanize_list([]) == ""
    assert humanize_list(["a"]) == "a"
    assert humanize_list(["a", "b"]) == "a e b"
    assert humanize_list(["a", "b", "c"]) == "a, b e c"


def test_humanize_types_uses_canonical_order():
    assert humanize_types({"3q", "studio", "2q"}) == "studio, 2 quartos e 3 quartos"
    assert humanize_types({"1q"}) == "1 quarto"


def test_listing_reply_renders_fields_and_default_delivery(catalog, tables):
    result = resolve_candidates(extract_signals("piratininga", catalog, tables), catalog)
    payload = compose_reply(result, catalog)
    assert "1. Vila Lagoa, Piratininga" in payload.text
    assert "Tipologias: 3 quartos e 4 quartos" in payload.text
    assert "Entrega: a confirmar" in payload.text
    assert payload.text.rstrip().endswith("😊")
    assert 0 < len(payload.followups) <= 3


def test_listing_reply_is_capped():
    listings = tuple(make_listing(f"Predio {index}", "Icaraí", {"2q"}) for index in range(1, 11))
    catalog = Catalog(listings=listings)
    payload = compose_reply(ResolutionResult(listings=listings, reason="neighborhood"), catalog)
    assert "8. Predio 8" in payload.text
    assert "9. Predio 9" not in payload.text


def test_missing_type_in_neighborhood_is_explained(catalog, tables):
    result = resolve_candidates(extract_signals("tem studio em icarai?", catalog, tables), catalog)
    payload = compose_reply(result, catalog)
    assert payload.text.startswith("Não encontrei opções de studio em Icaraí")
    assert "Marem" in payload.text
    assert "Horizonte" in payload.text


def test_type_reply_names_examples(catalog, tables):
    result = resolve_candidates(extract_signals("procuro studio", catalog, tables), catalog)
    payload = compose_reply(result, catalog)
    assert "Pulse em Santa Rosa e Loft Centro em Centro" in payload.text
    assert "bairro" in payload.text
    assert payload.followups == FALLBACK_FOLLOWUPS["type"]


def test_type_reply_without_listings():
    payload = compose_fallback(ResolutionResult(reason="type", property_types=frozenset({"4q"})))
    assert "não encontrei opções de 4 quartos" in payload.text


def test_neighborhood_type_fallback_offers_matched_neighborhood(catalog):
    result = ResolutionResult(
        reason="neighborhood+type",
        neighborhoods=frozenset({"icarai"}),
        property_types=frozenset({"studio"}),
    )
    payload = compose_fallback(result, catalog)
    assert "studio em Icaraí" in payload.text
    assert 2 <= len(payload.followups) <= 3


def test_none_and_unknown_reason_fallbacks():
    assert compose_reply(ResolutionResult(reason="none")).text == NONE_REPLY
    payload = compose_reply(ResolutionResult(reason="session"))
    assert payload.text == NONE_REPLY
    assert payload.followups == FALLBACK_FOLLOWUPS["none"]


def test_system_instruction_carries_candidates(catalog, tables):
    result = resolve_candidates(extract_signals("tem studio em icarai?", catalog, tables), catalog)
    template = "dados:\n<<LISTINGS_JSON>>\nfaltando: <<MISSING_TYPES>>"
    rendered = build_system_instruction(template, result)
    data = json.loads(rendered.split("dados:\n", 1)[1].split("\nfaltando:", 1)[0])
    assert [item["nome"] for item in data] == ["Marem", "Horizonte"]
    assert rendered.endswith("faltando: studio")


def test_parse_generated_reply_accepts_expected_shapes():
    parsed = parse_generated_reply({"text": " Olá! ", "followups": ["a", " ", "b", "c", "d"]})
    assert parsed.text == "Olá!"
    assert parsed.followups == ["a", "b", "c"]
    parsed = parse_generated_reply('```json\n{"resposta": "Temos o Marem."}\n```')
    assert parsed.text == "Temos o Marem."
    assert parsed.followups == []
    assert parse_generated_reply('{"text": "ok", "followups": null}').followups == []


def test_parse_generated_reply_rejects_invalid_output():
    assert parse_generated_reply("Claro! Temos ótimas opções.") is None
    assert parse_generated_reply("") is None
    assert parse_generated_reply(None) is None
    assert parse_generated_reply('{"text": "   "}') is None
    assert parse_generated_reply('{"text": ["a"]}') is None
    assert parse_generated_reply('{"followups": ["a"]}') is None
    assert parse_generated_reply('["text"]') is None
