"""
Queue token models for same-day consultation queues.
"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from enum import Enum


class TokenStatus(str, Enum):
    """Token status states."""
    WAITING = "waiting"
    SERVING = "serving"
    COMPLETED = "completed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (TokenStatus.COMPLETED, TokenStatus.SKIPPED)


class QueueAction(str, Enum):
    """Operational console verbs and the status each one moves a token to."""
    CALL = "call"
    COMPLETE = "complete"
    SKIP = "skip"
    NO_SHOW = "no-show"

    @property
    def target_status(self) -> TokenStatus:
        return {
            QueueAction.CALL: TokenStatus.SERVING,
            QueueAction.COMPLETE: TokenStatus.COMPLETED,
            QueueAction.SKIP: TokenStatus.SKIPPED,
            QueueAction.NO_SHOW: TokenStatus.SKIPPED,
        }[self]


class QueueScope(BaseModel):
    """One independent queue: a provider on a queue day."""
    model_config = ConfigDict(frozen=True)

    provider_id: str
    queue_date: str

    def __str__(self) -> str:
        return f"{self.provider_id}@{self.queue_date}"


class QueueToken(BaseModel):
    """A patient's place in one provider's queue for one day."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id")
    token_number: int = Field(..., gt=0)
    provider_id: str
    appointment_id: str
    queue_date: str = Field(..., description="Logical queue day, YYYY-MM-DD")
    is_emergency: bool = False
    status: TokenStatus = TokenStatus.WAITING
    position: Optional[int] = Field(default=None, description="1-based rank among waiting tokens")
    check_in_time: datetime
    called_time: Optional[datetime] = None
    completed_time: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    estimated_wait_minutes: Optional[int] = None

    @property
    def scope(self) -> QueueScope:
        return QueueScope(provider_id=self.provider_id, queue_date=self.queue_date)


class WaitEstimate(BaseModel):
    """Advisory wait estimate; degraded when inputs were missing."""
    minutes: int
    degraded: bool = False


class PositionEntry(BaseModel):
    """One line of a scope's waiting order."""
    token_id: str
    token_number: int
    position: int
    is_emergency: bool = False


class AllocateRequest(BaseModel):
    """Request a token for a confirmed appointment."""
    provider_id: str
    appointment_id: str
    queue_date: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    is_emergency: bool = False
    slot_time: Optional[str] = Field(default=None, description="Appointment slot, HH:MM")


class AllocationResult(BaseModel):
    """Booking response."""
    token: QueueToken
    token_number: int
    position: int
    estimated_wait_minutes: int
    estimate_degraded: bool = False


class StatusUpdateRequest(BaseModel):
    """Move a token to a new status."""
    status: TokenStatus


class WaitingEntry(PositionEntry):
    estimated_wait_minutes: int


class QueueSnapshot(BaseModel):
    """Point-in-time view of one scope for live displays."""
    provider_id: str
    queue_date: str
    serving: Optional[QueueToken] = None
    waiting: List[WaitingEntry] = []
    total_waiting: int = 0
    emergency_waiting: int = 0
    completed_count: int = 0
    skipped_count: int = 0
    average_wait_minutes: Optional[float] = None
    next_token_number: Optional[int] = None
    estimate_degraded: bool = False
