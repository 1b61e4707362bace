from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI

from .agent_pipeline import DraftAssistant
from .catalog import CatalogLoader
from .config import Settings, load_settings
from .gemini_client import GeminiClient
from .intent import MatchTables
from .models import DraftRequest, DraftResponse, HealthResponse, RewriteRequest, RewriteResponse
from .session_cache import SessionCache

BASE_DIR = Path(__file__).resolve().parent
SERVICE_NAME = "hero.ia-backend"

ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH, override=True)

log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
log_level = getattr(logging, log_level_name, logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

logging.getLogger("hero").setLevel(log_level)
logger = logging.getLogger("hero.app")


def build_assistant(settings: Settings, gemini: Optional[GeminiClient] = None) -> DraftAssistant:
    """Purpose: Load the catalog and assemble the draft assistant for a process.
    Inputs/Outputs: Inputs are Settings and an optional pre-built Gemini client;
        output is a DraftAssistant.
    Side Effects / State: Reads the catalog file once; configures Gemini when a
        key is present and no client was given.
    Dependencies: Uses CatalogLoader, MatchTables, SessionCache, GeminiClient.
    Failure Modes: CatalogLoadError propagates; the service must not start.
    If Removed: create_app has nothing to serve.
    Testing Notes: Point CATALOG_PATH at a temp file; pass a fake gemini.
    """
    catalog = CatalogLoader(settings.catalog_path).load()
    if gemini is None and settings.generation_enabled:
        gemini = GeminiClient(settings)
    if gemini is None:
        logger.info("generation disabled, replies are deterministic")
    return DraftAssistant(
        catalog=catalog,
        tables=MatchTables.default(),
        prompts_dir=settings.prompts_dir,
        signature_mode=settings.signature_mode,
        signature_text=settings.signature_text,
        company_name=settings.company_name,
        gemini=gemini,
        session_cache=SessionCache(settings.session_ttl_sec),
        max_listings=settings.max_listings,
        generation_timeout_sec=settings.generation_timeout_sec,
    )


def create_app(settings: Optional[Settings] = None, gemini: Optional[GeminiClient] = None) -> FastAPI:
    """Purpose: Build the FastAPI application around one DraftAssistant.
    Inputs/Outputs: Inputs are optional Settings and Gemini client; output is the app.
    Side Effects / State: Loads the catalog at construction time.
    Dependencies: Uses build_assistant and the pydantic request/response models.
    Failure Modes: Catalog load failure raises before any route is served.
    If Removed: The service has no HTTP surface.
    Testing Notes: Use TestClient(create_app(settings, gemini=fake)).
    """
    settings = settings or load_settings()
    assistant = build_assistant(settings, gemini)
    application = FastAPI(title="HERO.IA Draft Assistant")
    application.state.assistant = assistant

    @application.post("/whatsapp/draft", response_model=DraftResponse)
    def draft(request: DraftRequest) -> DraftResponse:
        """Resolve candidates for a customer message and return the draft reply."""
        context = assistant.handle_message(request.message, sender_id=request.sender_id)
        payload = context.payload
        return DraftResponse(
            text=payload.text,
            followups=payload.followups,
            reason=context.reason,
            origin=context.origin,
            sender_id=request.sender_id,
            thinking_logs=context.thinking_logs,
        )

    @application.post("/whatsapp/rewrite", response_model=RewriteResponse)
    def rewrite(request: RewriteRequest) -> RewriteResponse:
        """Polish an agent's message for tone; the original is kept on any failure."""
        return RewriteResponse(text=assistant.rewrite_message(request.message).text)

    @application.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(
            status="ok",
            service=SERVICE_NAME,
            listings=len(assistant.catalog),
            generation=assistant.generation_enabled,
        )

    return application


app = create_app()
