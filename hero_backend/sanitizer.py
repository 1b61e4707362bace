"""Post-processing of reply text: signature stripping and controlled closing.

Both passes run on every reply regardless of origin and are idempotent, so
sanitizing an already sanitized reply returns it unchanged.
"""

from __future__ import annotations

import re
from typing import List, Optional, Pattern

from .config import SIGNATURE_MODES
from .utils import normalize_text

TITLE_RE = re.compile(r"\bcorretor(?:a)?\s+de\s+im[oó]veis\b", re.IGNORECASE)
CRECI_RE = re.compile(r"\bcreci(?:[\s\-/]*[a-z]{2})?[\s:\-/nº°.]*\d[\d.\-/]*[a-z]?\b", re.IGNORECASE)
PHONE_RE = re.compile(r"(?:\+?55[\s\-]?)?\(?\b\d{2}\)?[\s\-]?9?\s?\d{4}[\s\-]?\d{4}\b")
EMAIL_RE = re.compile(r"\b[\w.+\-]+@[\w\-]+(?:\.[\w\-]+)+\b")
URL_RE = re.compile(r"\b(?:https?://|www\.)\S+", re.IGNORECASE)

CLOSING_USER_RE = re.compile(
    r"\b(obrigad[oa]s?|obg|valeu|agradec\w*|vou pensar|vou analisar|vou ver|depois (?:te )?(?:falo|retorno)|"
    r"boa noite|boa tarde|bom dia|tchau|ate mais|ate logo|abracos?)\b"
)
CLOSING_REPLY_RE = re.compile(
    r"\b(fico a disposicao|estou a disposicao|a disposicao|qualquer duvida|conte comigo|"
    r"posso ajudar em algo mais|se precisar|e so me chamar|fique a vontade|estou por aqui)\b"
)

# Lines left holding only separators once fragments are removed.
RESIDUE_LINE_RE = re.compile(r"^[\s|•·,;:\-–—]*$")
INLINE_SEPARATOR_RE = re.compile(r"(?:\s*[|•·]\s*){2,}")


def signature_fragment_patterns(company_name: Optional[str] = None) -> List[Pattern[str]]:
    """Contact/signature fragments a reply must never carry on its own."""
    patterns = [TITLE_RE, CRECI_RE, EMAIL_RE, URL_RE, PHONE_RE]
    if company_name and company_name.strip():
        patterns.insert(1, re.compile(re.escape(company_name.strip()), re.IGNORECASE))
    return patterns


def has_signature_fragment(text: str, company_name: Optional[str] = None) -> bool:
    return any(pattern.search(text or "") for pattern in signature_fragment_patterns(company_name))


def _tidy(text: str) -> str:
    # Drop residue lines, collapse blank runs and trailing spaces.
    lines = []
    for line in text.splitlines():
        line = INLINE_SEPARATOR_RE.sub(" ", line)
        line = re.sub(r"[ \t]{2,}", " ", line).rstrip()
        if RESIDUE_LINE_RE.match(line) and line.strip():
            continue
        lines.append(line)
    tidy = "\n".join(lines)
    tidy = re.sub(r"\n{3,}", "\n\n", tidy)
    return tidy.strip()


def strip_signature(text: str, signature: str = "", company_name: Optional[str] = None) -> str:
    """Purpose: Remove echoed signature blocks and contact fragments from a reply.
    Inputs/Outputs: Inputs are the reply text, the canonical signature and the
        company name; output is the cleaned text.
    Side Effects / State: None; idempotent.
    Dependencies: Uses the fragment patterns (title, company, CRECI, phone,
        e-mail, URL) and _tidy.
    Failure Modes: None; aggressive phone shapes may also remove long numbers.
    If Removed: Generated replies could carry invented phones or registry ids.
    Testing Notes: Strip twice and compare; check the canonical block vanishes.
    """
    if not text:
        return ""
    cleaned = text
    if signature and signature.strip():
        cleaned = cleaned.replace(signature.strip(), "")
    for pattern in signature_fragment_patterns(company_name):
        cleaned = pattern.sub("", cleaned)
    return _tidy(cleaned)


def is_closing_message(user_text: str) -> bool:
    return bool(CLOSING_USER_RE.search(normalize_text(user_text)))


def is_closing_reply(reply_text: str) -> bool:
    return bool(CLOSING_REPLY_RE.search(normalize_text(reply_text)))


def should_append_signature(
    mode: str,
    user_text: str,
    reply_text: str,
    company_name: Optional[str] = None,
) -> bool:
    """Purpose: Decide whether the canonical signature closes this reply.
    Inputs/Outputs: Inputs are the mode (always/never/closing), the customer's
        message and the stripped reply; output is True to append.
    Side Effects / State: None.
    Dependencies: Uses CLOSING_USER_RE, CLOSING_REPLY_RE and has_signature_fragment.
    Failure Modes: Unknown modes behave like "never".
    If Removed: Every draft would either always or never be signed.
    Testing Notes: "obrigado, vou pensar" in closing mode returns True.
    """
    if mode not in SIGNATURE_MODES or mode == "never":
        return False
    if has_signature_fragment(reply_text, company_name):
        return False
    if mode == "always":
        return True
    return is_closing_message(user_text) or is_closing_reply(reply_text)


def append_signature(text: str, signature: str) -> str:
    if not signature or not signature.strip():
        return text
    if not text:
        return signature.strip()
    return f"{text.rstrip()}\n\n{signature.strip()}"


def sanitize_reply(
    reply_text: str,
    user_text: str,
    mode: str,
    signature: str,
    company_name: Optional[str] = None,
) -> str:
    """Strip echoed contact data, then sign the reply when the mode calls for it."""
    stripped = strip_signature(reply_text, signature, company_name)
    if should_append_signature(mode, user_text, stripped, company_name):
        return append_signature(stripped, signature)
    return stripped
