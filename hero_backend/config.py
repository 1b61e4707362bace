from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent

SIGNATURE_MODES = ("always", "never", "closing")
DEFAULT_COMPANY_NAME = "Hero Imóveis"
DEFAULT_SIGNATURE = "Equipe Hero Imóveis\nCorretor de Imóveis | CRECI-RJ 000000"


@dataclass(frozen=True)
class Settings:
    """Configuration container for the catalog, generation, and reply policy."""
    gemini_api_key: str
    gemini_model: str
    catalog_path: Path
    prompts_dir: Path
    signature_mode: str
    signature_text: str
    company_name: str
    session_ttl_sec: int
    generation_timeout_sec: float
    max_listings: int

    @property
    def generation_enabled(self) -> bool:
        return bool(self.gemini_api_key)


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and filesystem paths.
    Dependencies: Uses os.getenv and BASE_DIR for default paths.
    Failure Modes: Invalid numeric env values or an unknown SIGNATURE_MODE raise
        ValueError.
    If Removed: App cannot locate the catalog or configure Gemini and fails at startup.
    Testing Notes: Verify defaults and overrides via monkeypatch.setenv.
    """
    # Resolve catalog and prompt paths, then build Settings.
    catalog_path = os.getenv("CATALOG_PATH")
    if catalog_path:
        catalog_file = Path(catalog_path)
    else:
        catalog_file = (BASE_DIR / "data" / "empreendimentos.json").resolve()

    prompts_dir = (BASE_DIR / "prompts").resolve()

    signature_mode = os.getenv("SIGNATURE_MODE", "closing").strip().lower()
    if signature_mode not in SIGNATURE_MODES:
        raise ValueError(f"SIGNATURE_MODE must be one of {', '.join(SIGNATURE_MODES)}")

    signature_text = os.getenv("SIGNATURE_TEXT") or DEFAULT_SIGNATURE

    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        catalog_path=catalog_file,
        prompts_dir=prompts_dir,
        signature_mode=signature_mode,
        signature_text=signature_text.replace("\\n", "\n"),
        company_name=os.getenv("COMPANY_NAME", DEFAULT_COMPANY_NAME),
        session_ttl_sec=int(os.getenv("SESSION_TTL_SEC", "900")),
        generation_timeout_sec=float(os.getenv("GENERATION_TIMEOUT_SEC", "12")),
        max_listings=int(os.getenv("MAX_LISTINGS", "8")),
    )
