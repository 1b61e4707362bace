from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class DraftRequest(BaseModel):
    """Request payload for the draft reply API."""
    message: str
    sender_id: Optional[str] = Field(default=None)


class DraftResponse(BaseModel):
    """Response payload returned by the draft reply API."""
    text: str
    followups: List[str] = Field(default_factory=list)
    reason: str
    origin: str
    sender_id: Optional[str] = None
    thinking_logs: List[Dict[str, str]] = Field(default_factory=list)


class RewriteRequest(BaseModel):
    """An agent's own message to be polished for tone."""
    message: str


class RewriteResponse(BaseModel):
    text: str


class HealthResponse(BaseModel):
    status: str
    service: str
    listings: int
    generation: bool
