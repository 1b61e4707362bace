import json
import re
import unicodedata
from typing import Any, Dict, Optional

WHITESPACE_RE = re.compile(r"\s+")
SHORT_TERM_LEN = 4


def normalize_text(text: Optional[str]) -> str:
    """Purpose: Canonicalize free-form text for every downstream comparison.
    Inputs/Outputs: Input is a raw string; output is lowercase text with diacritics
        removed and whitespace collapsed. Punctuation is preserved.
    Side Effects / State: None; pure function.
    Dependencies: Uses unicodedata and regex; called by intent extraction, catalog
        loading, and the sanitizer.
    Failure Modes: Returns an empty string when input is falsy.
    If Removed: "Icaraí" and "ICARAI" stop comparing equal and matching collapses.
    Testing Notes: Check idempotence and NBSP handling.
    """
    # Lowercase before NFD: some uppercase letters lower into a base + combining mark.
    if not text:
        return ""
    spaced = str(text).replace("\u00a0", " ").lower()
    decomposed = unicodedata.normalize("NFD", spaced)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return WHITESPACE_RE.sub(" ", stripped).strip()


def pad_text(normalized: str) -> str:
    """Wrap normalized text in spaces so edge words have a boundary on both sides."""
    return f" {normalized} "


def _is_word_char(ch: str) -> bool:
    return ch.isalnum()


def contains_word(haystack: str, term: str) -> bool:
    """Purpose: Whole-word containment check independent of regex locale rules.
    Inputs/Outputs: Inputs are normalized haystack and term; output is True when
        term occurs with a non-alphanumeric character (or edge) on both sides.
    Side Effects / State: None; pure function.
    Dependencies: Used through contains_term by neighborhood and name extraction.
    Failure Modes: Empty term never matches.
    If Removed: "ica" would match inside unrelated words such as "musica".
    Testing Notes: Check terms at both string edges and next to punctuation.
    """
    if not term:
        return False
    start = haystack.find(term)
    while start != -1:
        end = start + len(term)
        before_ok = start == 0 or not _is_word_char(haystack[start - 1])
        after_ok = end == len(haystack) or not _is_word_char(haystack[end])
        if before_ok and after_ok:
            return True
        start = haystack.find(term, start + 1)
    return False


def contains_term(haystack: str, term: str) -> bool:
    """Whole-word match, relaxed to substring for terms shorter than SHORT_TERM_LEN.

    Boundary checks on two or three letter terms lose too many real mentions,
    so short terms accept any occurrence.
    """
    if not term:
        return False
    if len(term) < SHORT_TERM_LEN:
        return term in haystack
    return contains_word(haystack, term)


def mask_contact_value(value: object) -> str:
    """Mask contact-like values so sender ids never land in logs verbatim."""
    if value is None:
        return ""
    digits = re.findall(r"\d", str(value))
    if len(digits) < 4:
        return "***"
    return "***" + "".join(digits[-3:])


def extract_json_block(text: str) -> Optional[str]:
    """Purpose: Extract the first JSON object block from an arbitrary string.
    Inputs/Outputs: Input is a raw string; output is JSON substring or None.
    Side Effects / State: None; pure function.
    Dependencies: None beyond built-ins; used by safe_json_loads.
    Failure Modes: Returns None if braces are missing or inverted.
    If Removed: Model outputs wrapped in code fences cannot be parsed.
    Testing Notes: Provide strings with extra text before/after JSON.
    """
    # Locate the outermost JSON braces to extract a parseable block.
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def safe_json_loads(text: str) -> Optional[Dict[str, Any]]:
    """Parse a JSON object out of model output; None when absent or malformed."""
    block = extract_json_block(text)
    if not block:
        return None
    try:
        data = json.loads(block)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    return data
