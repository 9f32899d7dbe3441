"""
Queue and token management service.
"""

import logging
from typing import Optional

from ..config import get_settings
from ..errors import NotFoundError
from ..models.queue import (
    AllocationResult,
    QueueScope,
    QueueSnapshot,
    QueueToken,
    TokenStatus,
    WaitEstimate,
    WaitingEntry
)
from .allocator import TokenAllocator
from .backends import InMemoryTokenBackend, MongoTokenBackend
from .clock import Clock, parse_slot_hour
from .estimator import estimate_or_default
from .ordering import reorder, tokens_ahead
from .providers import MongoProviderDirectory, ProviderDirectory
from .publisher import ChangePublisher
from .status_machine import StatusMachine
from .token_store import TokenStore

logger = logging.getLogger(__name__)


class QueueService:
    """Booking, operational transitions and live views over the token queues."""

    def __init__(
        self,
        store: Optional[TokenStore] = None,
        publisher: Optional[ChangePublisher] = None,
        providers: Optional[ProviderDirectory] = None,
        clock: Optional[Clock] = None
    ):
        settings = get_settings()
        self.store = store or TokenStore()
        self.publisher = publisher or ChangePublisher()
        self.providers = providers or ProviderDirectory(settings.PROVIDER_CONSULT_MINUTES)
        self.clock = clock or Clock()
        self.allocator = TokenAllocator(self.store, self.publisher, self.clock)
        self.status_machine = StatusMachine(self.store, self.publisher, self.clock)

    @classmethod
    def from_settings(cls) -> "QueueService":
        """Build the service with the storage backend named in settings."""
        settings = get_settings()
        logger.info("Using %s token store", settings.STORE_BACKEND)
        if settings.STORE_BACKEND == "mongo":
            return cls(
                store=TokenStore(MongoTokenBackend()),
                providers=MongoProviderDirectory(settings.PROVIDER_CONSULT_MINUTES)
            )
        if settings.STORE_BACKEND != "memory":
            raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND}")
        return cls(store=TokenStore(InMemoryTokenBackend()))

    async def allocate(
        self,
        provider_id: str,
        appointment_id: str,
        queue_date: Optional[str] = None,
        is_emergency: bool = False,
        slot_time: Optional[str] = None
    ) -> AllocationResult:
        """Issue a token for a confirmed appointment and price its wait."""
        avg_minutes = await self.providers.get_avg_consult_minutes(provider_id)
        hour = parse_slot_hour(slot_time)

        token, wait = await self.allocator.allocate(
            provider_id=provider_id,
            queue_date=queue_date or self.clock.queue_day(),
            appointment_id=appointment_id,
            is_emergency=is_emergency,
            avg_consult_minutes=avg_minutes,
            hour_of_day=hour
        )

        return AllocationResult(
            token=token,
            token_number=token.token_number,
            position=token.position,
            estimated_wait_minutes=wait.minutes,
            estimate_degraded=wait.degraded
        )

    async def transition(self, token_id: str, target: TokenStatus) -> QueueToken:
        return await self.status_machine.transition(token_id, target)

    async def call_next(self, provider_id: str, queue_date: str) -> QueueToken:
        """Call the next patient in line."""
        scope = QueueScope(provider_id=provider_id, queue_date=queue_date)
        return await self.status_machine.call_next(scope)

    async def get_token(self, token_id: str) -> QueueToken:
        return await self.store.get(token_id)

    async def get_token_by_appointment(self, appointment_id: str) -> QueueToken:
        token = await self.store.find_by_appointment(appointment_id)
        if token is None:
            raise NotFoundError("Token for appointment", appointment_id)
        return token

    async def live_estimate(self, token_id: str) -> WaitEstimate:
        """Current wait estimate for a waiting token (zero once it has been called)."""
        token = await self.store.get(token_id)
        tokens = await self.store.snapshot(token.scope)
        current = next((t for t in tokens if t.id == token_id), None)
        if current is None or current.status != TokenStatus.WAITING:
            return WaitEstimate(minutes=0)

        avg_minutes = await self.providers.get_avg_consult_minutes(current.provider_id)
        return estimate_or_default(
            tokens_ahead(tokens, current),
            avg_minutes,
            current.is_emergency,
            self.clock.hour_of_day()
        )

    async def current_snapshot(self, provider_id: str, queue_date: str) -> QueueSnapshot:
        """Serving token, ranked waiting line and day counters for live displays."""
        scope = QueueScope(provider_id=provider_id, queue_date=queue_date)
        tokens = await self.store.snapshot(scope)
        by_id = {t.id: t for t in tokens}

        avg_minutes = await self.providers.get_avg_consult_minutes(provider_id)
        hour = self.clock.hour_of_day()

        waiting = []
        degraded = False
        for token_id, position in reorder(tokens):
            token = by_id[token_id]
            wait = estimate_or_default(
                tokens_ahead(tokens, token), avg_minutes, token.is_emergency, hour
            )
            degraded = degraded or wait.degraded
            waiting.append(WaitingEntry(
                token_id=token_id,
                token_number=token.token_number,
                position=position,
                is_emergency=token.is_emergency,
                estimated_wait_minutes=wait.minutes
            ))

        serving = next((t for t in tokens if t.status == TokenStatus.SERVING), None)

        # Average time from check-in to being called, over today's called tokens
        wait_times = [
            (t.called_time - t.check_in_time).total_seconds() / 60
            for t in tokens
            if t.called_time and t.check_in_time
        ]
        avg_wait = sum(wait_times) / len(wait_times) if wait_times else None

        return QueueSnapshot(
            provider_id=provider_id,
            queue_date=queue_date,
            serving=serving,
            waiting=waiting,
            total_waiting=len(waiting),
            emergency_waiting=sum(1 for entry in waiting if entry.is_emergency),
            completed_count=sum(1 for t in tokens if t.status == TokenStatus.COMPLETED),
            skipped_count=sum(1 for t in tokens if t.status == TokenStatus.SKIPPED),
            average_wait_minutes=avg_wait,
            next_token_number=waiting[0].token_number if waiting else None,
            estimate_degraded=degraded
        )
