"""Draft assistant pipeline orchestration.

Role:
    Runs the end-to-end flow for one customer message: signal extraction,
    cascade resolution, optional session-cache reuse, optional Gemini polishing,
    deterministic composition and reply sanitization. It owns the DraftContext
    contract passed between steps.

Step contracts:
    Intent Detection:
        Reads user_message; sets signals, or finishes early for a blank message.
    Candidate Resolution:
        Runs the cascade; stores non-empty candidates in the session cache.
    Session Fallback:
        Reuses cached candidates only for short follow-ups with an empty resolution.
    Generation:
        Asks Gemini for a {text, followups} reply grounded on the candidates; any
        failure leaves payload unset.
    Composition:
        Builds the deterministic reply or fallback when no trusted payload exists.
    Sanitization:
        Always runs; strips contact fragments and applies the signature policy.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .adk_runtime import AdkAgent, AdkStep
from .catalog import Catalog
from .composer import (
    EMPTY_MESSAGE_REPLY,
    MAX_LISTINGS,
    ResponsePayload,
    build_system_instruction,
    compose_reply,
    parse_generated_reply,
)
from .gemini_client import GeminiClient, user_content
from .intent import MatchSignals, MatchTables, extract_signals
from .prompt_loader import load_prompt
from .resolver import REASON_SESSION, REASON_TYPE, ResolutionResult, resolve_candidates
from .sanitizer import sanitize_reply
from .session_cache import SessionCache, is_short_followup
from .utils import mask_contact_value

logger = logging.getLogger("hero.agent")

REASON_EMPTY_MESSAGE = "empty_message"
ORIGIN_GENERATED = "generated"
ORIGIN_DETERMINISTIC = "deterministic"

DRAFT_PROMPT = "draft_system.txt"
REWRITE_PROMPT = "rewrite_message.txt"


@dataclass
class DraftContext:
    """Mutable context passed through each pipeline step."""
    sender_id: Optional[str]
    user_message: str
    signals: MatchSignals = field(default_factory=MatchSignals)
    result: ResolutionResult = field(default_factory=ResolutionResult)
    payload: Optional[ResponsePayload] = None
    reason: str = ""
    origin: str = ORIGIN_DETERMINISTIC
    used_cache: bool = False
    finished: bool = False
    thinking_logs: List[Dict[str, str]] = field(default_factory=list)

    def log(self, event: str, detail: str, status: str = "success") -> None:
        self.thinking_logs.append({"event": event, "detail": detail, "status": status})

    @property
    def log_sender(self) -> str:
        return mask_contact_value(self.sender_id) if self.sender_id else "-"


class DraftAssistant:
    def __init__(
        self,
        catalog: Catalog,
        tables: MatchTables,
        prompts_dir: Path,
        signature_mode: str,
        signature_text: str,
        company_name: str = "",
        gemini: Optional[GeminiClient] = None,
        session_cache: Optional[SessionCache] = None,
        max_listings: int = MAX_LISTINGS,
        generation_timeout_sec: Optional[float] = None,
    ) -> None:
        """Purpose: Wire the read-only catalog, lookup tables and collaborators.
        Inputs/Outputs: Inputs are the catalog, tables, prompt directory, signature
            policy, optional Gemini client and session cache; no return value.
        Side Effects / State: Builds the AdkAgent step list.
        Dependencies: Uses AdkAgent/AdkStep and the step methods below.
        Failure Modes: None at init; gemini=None disables generation.
        If Removed: The HTTP layer has no engine to call.
        Testing Notes: Construct with a fake gemini and a fixed-clock cache.
        """
        self._catalog = catalog
        self._tables = tables
        self._prompts_dir = prompts_dir
        self._signature_mode = signature_mode
        self._signature_text = signature_text
        self._company_name = company_name
        self._gemini = gemini
        self._session_cache = session_cache
        self._max_listings = max_listings
        self._generation_timeout = generation_timeout_sec
        self._agent = AdkAgent(
            steps=[
                AdkStep("intent_detection", self._step_intent_detection),
                AdkStep("candidate_resolution", self._step_candidate_resolution, skip_if=_is_finished),
                AdkStep("session_fallback", self._step_session_fallback, skip_if=self._skip_session_fallback),
                AdkStep("generation", self._step_generation, skip_if=self._skip_generation),
                AdkStep("composition", self._step_composition, skip_if=_has_payload),
                AdkStep("sanitization", self._step_sanitization, always_run=True),
            ]
        )

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    @property
    def generation_enabled(self) -> bool:
        return self._gemini is not None

    def handle_message(self, user_message: str, sender_id: Optional[str] = None) -> DraftContext:
        """Purpose: Run the full pipeline for one customer message.
        Inputs/Outputs: Inputs are the raw message and optional sender id; output
            is the populated DraftContext (payload, reason, origin).
        Side Effects / State: May write the session cache; logs the outcome.
        Dependencies: Uses AdkAgent.run.
        Failure Modes: Generation failures are absorbed; other exceptions propagate.
        If Removed: /whatsapp/draft cannot answer.
        Testing Notes: Check reason/origin for each cascade branch.
        """
        context = DraftContext(sender_id=sender_id, user_message=user_message or "")
        executed = self._agent.run(context)
        logger.info(
            "sender=%s reason=%s origin=%s count=%d cache=%s steps=%s",
            context.log_sender,
            context.reason,
            context.origin,
            len(context.result.listings),
            context.used_cache,
            ",".join(executed),
        )
        return context

    def rewrite_message(self, message: str) -> ResponsePayload:
        """Purpose: Polish an agent's own draft for tone without changing content.
        Inputs/Outputs: Input is the draft text; output is a ResponsePayload.
        Side Effects / State: One Gemini call when generation is enabled.
        Dependencies: Uses the rewrite prompt, parse_generated_reply and sanitize_reply.
        Failure Modes: Without Gemini, or on any failure, the original text is kept.
        If Removed: /whatsapp/rewrite has no engine.
        Testing Notes: Fake gemini returning JSON, prose, and raising.
        """
        text = (message or "").strip()
        if text and self._gemini is not None:
            prompt = load_prompt(self._prompts_dir / REWRITE_PROMPT).replace("<<MESSAGE>>", text)
            try:
                raw = self._gemini.generate_content(user_content(prompt), timeout=self._generation_timeout)
            except Exception as exc:
                logger.warning("rewrite generation failed error=%s", type(exc).__name__)
                raw = ""
            parsed = parse_generated_reply(raw)
            if parsed is not None:
                text = parsed.text
            else:
                logger.info("rewrite kept original text")
        cleaned = sanitize_reply(text, "", self._signature_mode, self._signature_text, self._company_name)
        return ResponsePayload(text=cleaned, followups=[])

    def _step_intent_detection(self, context: DraftContext) -> None:
        # Blank messages get a friendly prompt and skip everything but sanitization.
        if not context.user_message.strip():
            context.payload = ResponsePayload(text=EMPTY_MESSAGE_REPLY, followups=[])
            context.reason = REASON_EMPTY_MESSAGE
            context.finished = True
            context.log("Intent Detection", "empty message")
            return
        context.signals = extract_signals(context.user_message, self._catalog, self._tables)
        context.log(
            "Intent Detection",
            "types={} neighborhoods={} names={}".format(
                sorted(context.signals.property_types),
                sorted(context.signals.neighborhoods),
                [listing.name for listing in context.signals.name_matches],
            ),
        )

    def _step_candidate_resolution(self, context: DraftContext) -> None:
        context.result = resolve_candidates(context.signals, self._catalog)
        context.reason = context.result.reason
        if self._session_cache is not None and not context.result.is_empty:
            self._session_cache.set(context.sender_id, context.result.listings)
        context.log("Candidate Resolution", f"reason={context.reason} count={len(context.result.listings)}")

    def _skip_session_fallback(self, context: DraftContext) -> bool:
        return (
            context.finished
            or self._session_cache is None
            or not context.result.is_empty
            or not context.sender_id
            # Only signal-free follow-ups may borrow the sender's last candidates.
            or context.signals.has_signal
        )

    def _step_session_fallback(self, context: DraftContext) -> None:
        """Purpose: Reuse the sender's last candidates for a short follow-up.
        Inputs/Outputs: Input is DraftContext; may replace result with a "session" one.
        Side Effects / State: Reads (and lazily expires) the session cache.
        Dependencies: Uses is_short_followup and SessionCache.get.
        Failure Modes: None; a miss leaves the empty resolution untouched.
        If Removed: "tenho interesse" after a listing reply gets the generic fallback.
        Testing Notes: Cached hit, expired entry, and a long message.
        """
        if not is_short_followup(context.user_message):
            return
        cached = self._session_cache.get(context.sender_id)
        if not cached:
            return
        context.result = ResolutionResult(listings=tuple(cached), reason=REASON_SESSION)
        context.reason = REASON_SESSION
        context.used_cache = True
        context.log("Session Fallback", f"reused={len(cached)}")

    def _skip_generation(self, context: DraftContext) -> bool:
        return (
            context.finished
            or self._gemini is None
            or context.result.is_empty
            or context.result.reason == REASON_TYPE
        )

    def _step_generation(self, context: DraftContext) -> None:
        """Purpose: Ask Gemini for a grounded reply and keep it only if valid.
        Inputs/Outputs: Input is DraftContext; sets payload/origin on success.
        Side Effects / State: One bounded network call.
        Dependencies: Uses build_system_instruction and parse_generated_reply.
        Failure Modes: Exceptions, timeouts and malformed output leave payload
            unset so composition supplies the deterministic reply.
        If Removed: Replies are always templated.
        Testing Notes: Fake clients that raise, return prose, and return JSON.
        """
        template = load_prompt(self._prompts_dir / DRAFT_PROMPT)
        system_instruction = build_system_instruction(template, context.result, self._max_listings)
        try:
            raw = self._gemini.generate_content(
                user_content(context.user_message),
                system_instruction=system_instruction,
                timeout=self._generation_timeout,
            )
        except Exception as exc:
            logger.warning("sender=%s generation failed error=%s", context.log_sender, type(exc).__name__)
            context.log("Generation", type(exc).__name__, status="error")
            return
        parsed = parse_generated_reply(raw)
        if parsed is None:
            logger.warning("sender=%s generation output rejected chars=%d", context.log_sender, len(raw or ""))
            context.log("Generation", "invalid output", status="error")
            return
        context.payload = parsed
        context.origin = ORIGIN_GENERATED
        context.log("Generation", "accepted")

    def _step_composition(self, context: DraftContext) -> None:
        context.payload = compose_reply(context.result, self._catalog, max_listings=self._max_listings)
        context.origin = ORIGIN_DETERMINISTIC
        context.log("Composition", f"reason={context.reason}")

    def _step_sanitization(self, context: DraftContext) -> None:
        payload = context.payload or ResponsePayload(text="")
        payload.text = sanitize_reply(
            payload.text,
            context.user_message,
            self._signature_mode,
            self._signature_text,
            self._company_name,
        )
        context.payload = payload
        context.log("Sanitization", f"mode={self._signature_mode}")


def _is_finished(context: DraftContext) -> bool:
    return context.finished


def _has_payload(context: DraftContext) -> bool:
    return context.payload is not None
