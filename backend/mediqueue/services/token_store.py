"""
Token store: the single source of truth for token state and positions.

All writes happen under a per-scope lock, one lock per (provider, queue day).
Different scopes proceed in parallel; operations on the same scope are
strictly serialized in lock-acquisition order.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Tuple, TypeVar

from ..errors import NotFoundError
from ..models.queue import QueueScope, QueueToken
from .backends import TokenBackend, InMemoryTokenBackend
from .ordering import reorder, apply_positions

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _log_abandoned(task: asyncio.Task, scope: QueueScope) -> None:
    # Marks the outcome as retrieved when the caller went away mid-operation.
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Locked operation on %s raised %r", scope, task.exception())


@dataclass
class CommitResult:
    """Outcome of one committed mutation."""
    token: QueueToken
    ordering: List[Tuple[str, int]]
    scope_tokens: List[QueueToken]
    moved_token_ids: List[str] = field(default_factory=list)


class TokenStore:
    """Owns every token mutation; readers go through `get`/`snapshot`."""

    def __init__(self, backend: Optional[TokenBackend] = None):
        self.backend = backend or InMemoryTokenBackend()
        self._locks: Dict[QueueScope, asyncio.Lock] = {}

    def _lock_for(self, scope: QueueScope) -> asyncio.Lock:
        lock = self._locks.get(scope)
        if lock is None:
            lock = self._locks[scope] = asyncio.Lock()
        return lock

    async def exclusive(self, scope: QueueScope, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run `operation` while holding the scope's lock.

        Cancelling the caller while it waits for the lock abandons the request
        with no effect. Once the lock is held the operation is shielded and
        always runs to completion; the lock is released when it finishes.
        """
        lock = self._lock_for(scope)
        await lock.acquire()
        task = asyncio.ensure_future(self._run_locked(lock, operation))
        task.add_done_callback(lambda t: _log_abandoned(t, scope))
        return await asyncio.shield(task)

    @staticmethod
    async def _run_locked(lock: asyncio.Lock, operation):
        try:
            return await operation()
        finally:
            lock.release()

    def _require_lock(self, scope: QueueScope) -> None:
        lock = self._locks.get(scope)
        if lock is None or not lock.locked():
            raise RuntimeError(f"Token store mutated without holding the lock for {scope}")

    # Reads

    async def get(self, token_id: str) -> QueueToken:
        token = await self.backend.get(token_id)
        if token is None:
            raise NotFoundError("Token", token_id)
        return token

    async def find_by_appointment(self, appointment_id: str) -> Optional[QueueToken]:
        return await self.backend.find_by_appointment(appointment_id)

    async def list_scope(self, scope: QueueScope) -> List[QueueToken]:
        return await self.backend.list_scope(scope)

    async def max_token_number(self, scope: QueueScope) -> int:
        tokens = await self.backend.list_scope(scope)
        return max((t.token_number for t in tokens), default=0)

    async def snapshot(self, scope: QueueScope) -> List[QueueToken]:
        """Point-in-time read of a scope; never waits on the scope lock."""
        return await self.backend.list_scope(scope)

    # Writes (scope lock must be held)

    async def insert(self, token: QueueToken) -> CommitResult:
        """Store a new token and reposition its scope."""
        self._require_lock(token.scope)
        existing = await self.backend.list_scope(token.scope)
        return await self._commit(token, existing + [token], created=token)

    async def update(self, token: QueueToken) -> CommitResult:
        self._require_lock(token.scope)
        existing = await self.backend.list_scope(token.scope)
        tokens = [token if t.id == token.id else t for t in existing]
        return await self._commit(token, tokens, created=None)

    async def _commit(
        self,
        subject: QueueToken,
        tokens: List[QueueToken],
        created: Optional[QueueToken]
    ) -> CommitResult:
        ordering = reorder(tokens)
        repositioned = {t.id: t for t in apply_positions(tokens, ordering)}

        subject = repositioned.pop(subject.id, subject)
        moved = list(repositioned)
        merged = [repositioned.get(t.id, subject if t.id == subject.id else t) for t in tokens]

        if created is not None:
            await self.backend.commit(subject, list(repositioned.values()))
        else:
            await self.backend.commit(None, [subject] + list(repositioned.values()))

        return CommitResult(
            token=subject,
            ordering=ordering,
            scope_tokens=merged,
            moved_token_ids=moved
        )
