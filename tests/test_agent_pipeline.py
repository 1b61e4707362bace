from conftest import COMPANY, PROMPTS_DIR, SIGNATURE, FakeClock, FakeGemini, make_listing

from hero_backend.agent_pipeline import DraftAssistant
from hero_backend.catalog import Catalog
from hero_backend.composer import EMPTY_MESSAGE_REPLY, NONE_REPLY
from hero_backend.intent import MatchTables
from hero_backend.session_cache import SessionCache

SENDER = "5521999990000"


def _assistant(catalog, tables, gemini=None, cache=None, mode="closing"):
    return DraftAssistant(
        catalog=catalog,
        tables=tables,
        prompts_dir=PROMPTS_DIR,
        signature_mode=mode,
        signature_text=SIGNATURE,
        company_name=COMPANY,
        gemini=gemini,
        session_cache=cache,
        generation_timeout_sec=5,
    )


def test_deterministic_reply_explains_missing_type(catalog, tables):
    context = _assistant(catalog, tables).handle_message("tem studio em icarai?")
    assert context.reason == "neighborhood"
    assert context.origin == "deterministic"
    assert context.payload.text.startswith("Não encontrei opções de studio em Icaraí")
    assert "Marem" in context.payload.text
    assert "Horizonte" in context.payload.text
    assert "CRECI" not in context.payload.text


def test_generated_reply_is_accepted_and_sanitized(catalog, tables):
    gemini = FakeGemini(
        result={"text": "O Marem é ótimo! Ligue (21) 99999-1234.", "followups": ["Quero visitar"]}
    )
    context = _assistant(catalog, tables, gemini=gemini).handle_message("me fala do marem")
    assert context.reason == "name"
    assert context.origin == "generated"
    assert context.payload.text.startswith("O Marem é ótimo!")
    assert "99999" not in context.payload.text
    assert context.payload.followups == ["Quero visitar"]
    call = gemini.calls[0]
    assert "Marem" in call["system_instruction"]
    assert "<<LISTINGS_JSON>>" not in call["system_instruction"]
    assert call["timeout"] == 5
    assert call["contents"][0]["parts"][0]["text"] == "me fala do marem"


def test_generation_error_falls_back_to_deterministic(catalog, tables):
    gemini = FakeGemini(error=TimeoutError("deadline"))
    context = _assistant(catalog, tables, gemini=gemini).handle_message("me fala do marem")
    assert len(gemini.calls) == 1
    assert context.origin == "deterministic"
    assert "1. Marem, Icaraí" in context.payload.text


def test_plain_text_generation_is_rejected(catalog, tables):
    gemini = FakeGemini(result="Claro! O Marem tem 2 e 3 quartos.")
    context = _assistant(catalog, tables, gemini=gemini).handle_message("me fala do marem")
    assert context.origin == "deterministic"
    assert "1. Marem, Icaraí" in context.payload.text


def test_missing_type_is_forwarded_to_generation(catalog, tables):
    gemini = FakeGemini(result={"text": "Em Icaraí não temos studio, mas temos o Marem.", "followups": []})
    _assistant(catalog, tables, gemini=gemini).handle_message("tem studio em icarai?")
    assert "Tipologias pedidas e não encontradas no bairro: studio" in gemini.calls[0]["system_instruction"]


def test_type_only_and_empty_results_skip_generation(catalog, tables):
    gemini = FakeGemini(result={"text": "nunca usado", "followups": []})
    assistant = _assistant(catalog, tables, gemini=gemini)
    type_context = assistant.handle_message("procuro studio")
    none_context = assistant.handle_message("qual o horário de vocês?")
    assert gemini.calls == []
    assert type_context.reason == "type"
    assert "Pulse em Santa Rosa" in type_context.payload.text
    assert none_context.reason == "none"
    assert none_context.payload.text == NONE_REPLY


def test_empty_message_short_circuits(catalog, tables):
    gemini = FakeGemini(result={"text": "nunca usado", "followups": []})
    context = _assistant(catalog, tables, gemini=gemini).handle_message("   ", sender_id=SENDER)
    assert context.reason == "empty_message"
    assert context.payload.text == EMPTY_MESSAGE_REPLY
    assert gemini.calls == []


def test_short_followup_reuses_cached_candidates(catalog, tables):
    assistant = _assistant(catalog, tables, cache=SessionCache(60, clock=FakeClock()))
    first = assistant.handle_message("o que tem em piratininga", sender_id=SENDER)
    assert first.reason == "neighborhood"
    followup = assistant.handle_message("tenho interesse", sender_id=SENDER)
    assert followup.reason == "session"
    assert followup.used_cache
    assert [listing.name for listing in followup.result.listings] == ["Vila Lagoa"]
    assert "Vila Lagoa" in followup.payload.text


def test_cached_candidates_expire(catalog, tables):
    clock = FakeClock()
    assistant = _assistant(catalog, tables, cache=SessionCache(60, clock=clock))
    assistant.handle_message("o que tem em piratininga", sender_id=SENDER)
    clock.advance(61)
    context = assistant.handle_message("tenho interesse", sender_id=SENDER)
    assert context.reason == "none"
    assert not context.used_cache


def test_cache_is_scoped_to_sender(catalog, tables):
    assistant = _assistant(catalog, tables, cache=SessionCache(60, clock=FakeClock()))
    assistant.handle_message("o que tem em piratininga", sender_id=SENDER)
    assert assistant.handle_message("tenho interesse").reason == "none"
    assert assistant.handle_message("tenho interesse", sender_id="5521888880000").reason == "none"


def test_unmatched_message_does_not_clear_cache(catalog, tables):
    assistant = _assistant(catalog, tables, cache=SessionCache(60, clock=FakeClock()))
    assistant.handle_message("o que tem em piratininga", sender_id=SENDER)
    assistant.handle_message("qual o horário de vocês?", sender_id=SENDER)
    assert assistant.handle_message("me manda o book", sender_id=SENDER).reason == "session"


def test_closing_message_is_signed(catalog, tables):
    context = _assistant(catalog, tables).handle_message("obrigado, vou pensar")
    assert context.payload.text.endswith(SIGNATURE)
    assert context.payload.text.count("CRECI") == 1


def test_never_mode_does_not_sign(catalog, tables):
    context = _assistant(catalog, tables, mode="never").handle_message("obrigado, vou pensar")
    assert "CRECI" not in context.payload.text


def test_rewrite_uses_generated_text(catalog, tables):
    gemini = FakeGemini(result={"text": "Olá! O Marem fica em Icaraí. Posso te enviar o book?", "followups": []})
    payload = _assistant(catalog, tables, gemini=gemini).rewrite_message("marem fica em icarai quer o book")
    assert payload.text == "Olá! O Marem fica em Icaraí. Posso te enviar o book?"
    assert "marem fica em icarai quer o book" in gemini.calls[0]["contents"][0]["parts"][0]["text"]


def test_rewrite_keeps_original_on_failure(catalog, tables):
    original = "marem fica em icarai"
    assert _assistant(catalog, tables).rewrite_message(original).text == original
    failing = FakeGemini(error=RuntimeError("quota"))
    assert _assistant(catalog, tables, gemini=failing).rewrite_message(original).text == original
    prose = FakeGemini(result="Aqui está a mensagem reescrita.")
    assert _assistant(catalog, tables, gemini=prose).rewrite_message(original).text == original


def test_rewrite_strips_contact_data(catalog, tables):
    gemini = FakeGemini(result={"text": "Olá! Fale comigo: (21) 97777-1234", "followups": []})
    payload = _assistant(catalog, tables, gemini=gemini).rewrite_message("fala comigo")
    assert "97777" not in payload.text


def test_followup_with_its_own_signal_does_not_reuse_cache():
    catalog = Catalog(
        listings=(
            make_listing("Marem", "Icaraí", {"2q"}),
            make_listing("Vila Lagoa", "Piratininga", {"3q"}),
        )
    )
    assistant = _assistant(catalog, MatchTables.default(), cache=SessionCache(60, clock=FakeClock()))
    assistant.handle_message("o que tem em piratininga", sender_id=SENDER)
    context = assistant.handle_message("tenho interesse em lote", sender_id=SENDER)
    assert context.reason == "type"
    assert not context.used_cache
    assert context.result.listings == ()
    assert "não encontrei opções de lote" in context.payload.text


def test_steps_are_recorded_in_thinking_logs(catalog, tables):
    context = _assistant(catalog, tables).handle_message("o que tem em piratininga")
    events = [entry["event"] for entry in context.thinking_logs]
    assert events == ["Intent Detection", "Candidate Resolution", "Composition", "Sanitization"]
