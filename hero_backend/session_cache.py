from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

from .catalog import Listing
from .utils import normalize_text

FOLLOWUP_MAX_TOKENS = 8
FOLLOWUP_RE = re.compile(
    r"\b(interess\w*|investi\w*|book|folder|material|apresentacao|tabela|planta\w*|"
    r"valor\w*|preco\w*|condic\w*|agend\w*|visita\w*|ligar|ligacao|liga|call|"
    r"mais (?:info\w*|detalhes)|detalhes)\b"
)


@dataclass
class CacheEntry:
    """Last non-empty candidate set resolved for one sender."""
    sender_id: str
    listings: Tuple[Listing, ...]
    expires_at: float


class SessionCache:
    """In-memory TTL store of candidate listings keyed by sender."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time) -> None:
        """Purpose: Initialize an empty store with a fixed time-to-live.
        Inputs/Outputs: Inputs are the TTL in seconds and an optional clock; no return.
        Side Effects / State: Creates the sender -> CacheEntry map.
        Dependencies: Uses time.time unless a clock is injected.
        Failure Modes: None at init.
        If Removed: Short follow-ups like "tenho interesse" lose their context.
        Testing Notes: Inject a fake clock to step past expiry.
        """
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, sender_id: Optional[str]) -> Optional[Tuple[Listing, ...]]:
        """Purpose: Return the cached listings for a sender when still fresh.
        Inputs/Outputs: Input is sender_id; output is the listings or None.
        Side Effects / State: Evicts the entry when it has expired (lazy expiry).
        Dependencies: Uses the injected clock.
        Failure Modes: None; unknown or blank senders return None.
        If Removed: Cached candidates can never be reused.
        Testing Notes: Read right before and right after expires_at.
        """
        if not sender_id:
            return None
        entry = self._entries.get(sender_id)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            self._entries.pop(sender_id, None)
            return None
        return entry.listings

    def set(self, sender_id: Optional[str], listings: Sequence[Listing]) -> None:
        """Store listings for a sender; empty listings never touch the store.

        Every write also drops entries that have already expired, so senders
        who never come back do not keep their candidates around.
        """
        if not sender_id or not listings:
            return
        now = self._clock()
        self.purge_expired(now)
        self._entries[sender_id] = CacheEntry(
            sender_id=sender_id,
            listings=tuple(listings),
            expires_at=now + self._ttl,
        )

    def purge_expired(self, now: Optional[float] = None) -> int:
        """Remove expired entries and return how many were dropped."""
        current = self._clock() if now is None else now
        expired = [key for key, entry in self._entries.items() if current > entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, sender_id: object) -> bool:
        return sender_id in self._entries


def is_short_followup(message: str) -> bool:
    """Purpose: Detect short, signal-free follow-ups that may reuse cached candidates.
    Inputs/Outputs: Input is the raw message; output is True for messages such as
        "tenho interesse", "pra investimento", "me manda o book", "podemos agendar?".
    Side Effects / State: None.
    Dependencies: Uses normalize_text, FOLLOWUP_RE and FOLLOWUP_MAX_TOKENS.
    Failure Modes: Keyword-only heuristic; long messages never qualify.
    If Removed: Every follow-up without a name or neighborhood hits the generic fallback.
    Testing Notes: Check the token ceiling and a message without intent words.
    """
    normalized = normalize_text(message)
    if not normalized:
        return False
    tokens = re.findall(r"[a-z0-9]+", normalized)
    if not tokens or len(tokens) > FOLLOWUP_MAX_TOKENS:
        return False
    return bool(FOLLOWUP_RE.search(normalized))
