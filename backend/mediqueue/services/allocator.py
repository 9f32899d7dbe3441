"""
Token allocation: the only way tokens come into existence.
"""

import logging
from typing import Optional, Tuple

from ..errors import DuplicateTokenError
from ..models.events import EventType
from ..models.queue import QueueScope, QueueToken, TokenStatus, WaitEstimate
from .backends import new_token_id
from .clock import Clock
from .estimator import estimate_or_default
from .publisher import ChangePublisher
from .token_store import CommitResult, TokenStore

logger = logging.getLogger(__name__)


class TokenAllocator:
    """Issues sequential tokens per (provider, queue day)."""

    def __init__(self, store: TokenStore, publisher: ChangePublisher, clock: Clock):
        self.store = store
        self.publisher = publisher
        self.clock = clock

    async def allocate(
        self,
        provider_id: str,
        queue_date: str,
        appointment_id: str,
        is_emergency: bool,
        avg_consult_minutes: Optional[float] = None,
        hour_of_day: Optional[int] = None
    ) -> Tuple[QueueToken, WaitEstimate]:
        """
        Create a waiting token numbered max+1 for the scope.

        The estimate counts every token already waiting in the scope.
        Raises DuplicateTokenError if the appointment already has a token.
        """
        scope = QueueScope(provider_id=provider_id, queue_date=queue_date)

        async def operation() -> Tuple[CommitResult, WaitEstimate]:
            if await self.store.find_by_appointment(appointment_id) is not None:
                raise DuplicateTokenError(appointment_id)

            existing = await self.store.list_scope(scope)
            now = self.clock.now()
            wait = estimate_or_default(
                sum(1 for t in existing if t.status == TokenStatus.WAITING),
                avg_consult_minutes,
                is_emergency,
                hour_of_day if hour_of_day is not None else self.clock.hour_of_day()
            )
            token = QueueToken(
                id=new_token_id(),
                token_number=await self.store.max_token_number(scope) + 1,
                provider_id=provider_id,
                appointment_id=appointment_id,
                queue_date=queue_date,
                is_emergency=is_emergency,
                status=TokenStatus.WAITING,
                check_in_time=now,
                updated_at=now,
                estimated_wait_minutes=wait.minutes
            )

            result = await self.store.insert(token)
            self.publisher.announce(
                EventType.TOKEN_CREATED, result.token, result.scope_tokens, result.moved_token_ids
            )
            return result, wait

        result, wait = await self.store.exclusive(scope, operation)
        logger.info(
            "Issued token #%d for appointment %s in %s (position %d%s)",
            result.token.token_number, appointment_id, scope, result.token.position,
            ", emergency" if is_emergency else ""
        )
        return result.token, wait
