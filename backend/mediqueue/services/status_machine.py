"""
Token status transitions.

    waiting -> serving -> completed
    waiting -> skipped

Completed and skipped are terminal. Only one token per scope may be serving.
"""

import logging
from datetime import datetime
from typing import Dict, FrozenSet, Iterable

from ..errors import IllegalTransitionError, NotFoundError, ProviderBusyError
from ..models.events import EventType
from ..models.queue import QueueScope, QueueToken, TokenStatus
from .clock import Clock
from .ordering import reorder
from .publisher import ChangePublisher
from .token_store import TokenStore

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[TokenStatus, FrozenSet[TokenStatus]] = {
    TokenStatus.WAITING: frozenset({TokenStatus.SERVING, TokenStatus.SKIPPED}),
    TokenStatus.SERVING: frozenset({TokenStatus.COMPLETED}),
    TokenStatus.COMPLETED: frozenset(),
    TokenStatus.SKIPPED: frozenset(),
}


def can_transition(current: TokenStatus, target: TokenStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def validate(token: QueueToken, target: TokenStatus, scope_tokens: Iterable[QueueToken]) -> None:
    """Raise if `token` may not move to `target` given the rest of its scope."""
    if not can_transition(token.status, target):
        raise IllegalTransitionError(token.id, token.status.value, target.value)

    if target == TokenStatus.SERVING:
        for other in scope_tokens:
            if other.id != token.id and other.status == TokenStatus.SERVING:
                raise ProviderBusyError(token.provider_id, token.queue_date, other.id)


def apply(token: QueueToken, target: TokenStatus, at: datetime) -> QueueToken:
    """
    Return a copy of `token` moved to `target` with its timestamps stamped.

    Call `validate` first; `apply` only performs the side effects. Timestamps
    already set are never overwritten.
    """
    update = {"status": target, "updated_at": at}
    if target == TokenStatus.SERVING and token.called_time is None:
        update["called_time"] = at
    if target == TokenStatus.COMPLETED and token.completed_time is None:
        update["completed_time"] = at
    return token.model_copy(update=update)


class StatusMachine:
    """Applies validated transitions through the token store."""

    def __init__(self, store: TokenStore, publisher: ChangePublisher, clock: Clock):
        self.store = store
        self.publisher = publisher
        self.clock = clock

    async def transition(self, token_id: str, target: TokenStatus) -> QueueToken:
        token = await self.store.get(token_id)

        async def operation() -> QueueToken:
            # Re-read under the lock; the unlocked read only located the scope.
            current = await self.store.get(token_id)
            return await self._transition_locked(current, target)

        return await self.store.exclusive(token.scope, operation)

    async def call_next(self, scope: QueueScope) -> QueueToken:
        """Serve the first-ranked waiting token of the scope."""

        async def operation() -> QueueToken:
            tokens = await self.store.list_scope(scope)
            ordering = reorder(tokens)
            if not ordering:
                raise NotFoundError("Waiting token", str(scope))
            first_id = ordering[0][0]
            first = next(t for t in tokens if t.id == first_id)
            return await self._transition_locked(first, TokenStatus.SERVING, tokens)

        return await self.store.exclusive(scope, operation)

    async def _transition_locked(
        self,
        token: QueueToken,
        target: TokenStatus,
        scope_tokens=None
    ) -> QueueToken:
        if scope_tokens is None:
            scope_tokens = await self.store.list_scope(token.scope)
        validate(token, target, scope_tokens)

        previous = token.status
        result = await self.store.update(apply(token, target, self.clock.now()))
        self.publisher.announce(
            EventType.TOKEN_STATUS_CHANGED, result.token, result.scope_tokens,
            result.moved_token_ids, previous_status=previous
        )

        logger.info(
            "Token #%d in %s: %s -> %s",
            result.token.token_number, token.scope, previous.value, target.value
        )
        return result.token
