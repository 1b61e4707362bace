from __future__ import annotations

import logging
from typing import Dict, List, Optional

import google.generativeai as genai
from google.generativeai import types as genai_types

from .config import Settings

logger = logging.getLogger("hero.gemini")

DEFAULT_SAFETY_SETTINGS = [
    {
        "category": genai_types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        "threshold": genai_types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
    },
    {
        "category": genai_types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        "threshold": genai_types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
    },
    {
        "category": genai_types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
        "threshold": genai_types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
    },
    {
        "category": genai_types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
        "threshold": genai_types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
    },
]


class GeminiClient:
    """Thin wrapper around the Gemini SDK used to polish draft replies."""

    def __init__(self, settings: Settings) -> None:
        """Purpose: Configure the Gemini SDK with the API key and default model.
        Inputs/Outputs: Input is Settings; no return value.
        Side Effects / State: Configures the SDK global API key.
        Dependencies: Uses google.generativeai and Settings from config.
        Failure Modes: Raises ValueError if the API key or model name is missing.
        If Removed: The pipeline runs deterministic-only, which is still valid.
        Testing Notes: Tests replace the client with a fake exposing generate_content.
        """
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY is required")
        genai.configure(api_key=settings.gemini_api_key)
        self._default_model = _normalize_model_name(settings.gemini_model)
        if not self._default_model:
            raise ValueError("Gemini model name is required")
        self._timeout = settings.generation_timeout_sec

    def generate_content(
        self,
        contents: list,
        model: Optional[str] = None,
        system_instruction: Optional[str] = None,
        temperature: float = 0.2,
        max_output_tokens: int = 2048,
        json_output: bool = True,
        timeout: Optional[float] = None,
    ) -> str:
        """Purpose: Generate a response from role-tagged contents.
        Inputs/Outputs: Inputs are contents, optional model/system instruction and
            limits; returns the raw response text (possibly empty).
        Side Effects / State: Network call bounded by the request timeout.
        Dependencies: Uses genai.GenerativeModel.generate_content.
        Failure Modes: SDK errors, timeouts and blocked responses raise; the
            pipeline treats any of them as "no result".
        If Removed: Draft polishing and message rewriting stop working.
        Testing Notes: Patch GenerativeModel and assert request_options carries the timeout.
        """
        model_name = _normalize_model_name(model) if model else self._default_model
        generation_config: Dict[str, object] = {
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
        }
        if json_output:
            generation_config["response_mime_type"] = "application/json"
        # System instructions are bound at model construction in the SDK.
        instance = genai.GenerativeModel(model_name, system_instruction=system_instruction or None)
        response = instance.generate_content(
            contents,
            generation_config=generation_config,
            safety_settings=DEFAULT_SAFETY_SETTINGS,
            request_options={"timeout": timeout if timeout is not None else self._timeout},
        )
        text: Optional[str] = getattr(response, "text", None)
        logger.debug("model=%s chars=%d", model_name, len(text or ""))
        return (text or "").strip()


def user_content(text: str) -> List[dict]:
    """Wrap a single user message in the SDK's role-tagged contents shape."""
    return [{"role": "user", "parts": [{"text": text}]}]


def _normalize_model_name(name: Optional[str]) -> str:
    # Strip "models/" prefix and whitespace.
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned
