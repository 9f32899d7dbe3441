"""Pydantic models for MediQueue."""

from .queue import (
    TokenStatus,
    QueueAction,
    QueueScope,
    QueueToken,
    WaitEstimate,
    PositionEntry,
    AllocateRequest,
    AllocationResult,
    StatusUpdateRequest,
    WaitingEntry,
    QueueSnapshot
)
from .events import EventType, QueueEvent

__all__ = [
    # Queue
    "TokenStatus", "QueueAction", "QueueScope", "QueueToken", "WaitEstimate",
    "PositionEntry", "AllocateRequest", "AllocationResult", "StatusUpdateRequest",
    "WaitingEntry", "QueueSnapshot",
    # Events
    "EventType", "QueueEvent"
]
