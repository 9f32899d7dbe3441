"""
Change events announced whenever a queue's visible state changes.
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum

from .queue import QueueToken, PositionEntry, TokenStatus


class EventType(str, Enum):
    TOKEN_CREATED = "token_created"
    TOKEN_STATUS_CHANGED = "token_status_changed"
    POSITIONS_CHANGED = "positions_changed"


class QueueEvent(BaseModel):
    """Event carrying the subject token and the scope's recomputed order."""
    sequence: int = 0
    type: EventType
    provider_id: str
    queue_date: str
    token: QueueToken
    previous_status: Optional[TokenStatus] = None
    ordering: List[PositionEntry] = []
    moved_token_ids: List[str] = []
    occurred_at: datetime = Field(default_factory=datetime.now)
