from __future__ import annotations

from functools import lru_cache
from pathlib import Path


@lru_cache(maxsize=16)
def load_prompt(prompt_path: Path) -> str:
    """Purpose: Load a prompt template as UTF-8 text and strip BOM if present.
    Inputs/Outputs: Input is a Path to the prompt file; output is the decoded string.
    Side Effects / State: Cached per path; templates are read once per process.
    Dependencies: Uses Path.read_text/read_bytes; used by the draft and rewrite steps.
    Failure Modes: Missing files raise FileNotFoundError at startup; undecodable
        bytes are dropped by a tolerant decode.
    If Removed: Generation has no system instruction to render.
    Testing Notes: Validate BOM stripping on a temp file.
    """
    try:
        return prompt_path.read_text(encoding="utf-8").lstrip("\ufeff")
    except UnicodeDecodeError:
        raw = prompt_path.read_bytes()
        return raw.decode("utf-8", errors="ignore").lstrip("\ufeff")
