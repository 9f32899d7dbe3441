"""
Token storage backends.

A backend only stores and loads token records; ordering, locking and
validation live in the token store above it. `commit` applies a whole change
set in one call so a failed mutation is never half visible.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from bson import ObjectId
from pymongo import InsertOne, ReplaceOne
from pymongo.errors import BulkWriteError, DuplicateKeyError

from ..database import Database
from ..errors import ConcurrentUpdateError, DuplicateTokenError
from ..models.queue import QueueScope, QueueToken

logger = logging.getLogger(__name__)

DUPLICATE_KEY_CODE = 11000


def new_token_id() -> str:
    return str(ObjectId())


class TokenBackend(ABC):

    @abstractmethod
    async def get(self, token_id: str) -> Optional[QueueToken]:
        ...

    @abstractmethod
    async def find_by_appointment(self, appointment_id: str) -> Optional[QueueToken]:
        ...

    @abstractmethod
    async def list_scope(self, scope: QueueScope) -> List[QueueToken]:
        ...

    @abstractmethod
    async def commit(self, created: Optional[QueueToken], updated: List[QueueToken]) -> None:
        """Insert `created` (if any) and replace every token in `updated`."""


class InMemoryTokenBackend(TokenBackend):
    """Process-local storage; records are copied in and out."""

    def __init__(self):
        self._tokens: Dict[str, QueueToken] = {}
        self._by_appointment: Dict[str, str] = {}
        self._by_scope: Dict[QueueScope, List[str]] = {}

    async def get(self, token_id: str) -> Optional[QueueToken]:
        token = self._tokens.get(token_id)
        return token.model_copy() if token else None

    async def find_by_appointment(self, appointment_id: str) -> Optional[QueueToken]:
        token_id = self._by_appointment.get(appointment_id)
        return await self.get(token_id) if token_id else None

    async def list_scope(self, scope: QueueScope) -> List[QueueToken]:
        return [self._tokens[i].model_copy() for i in self._by_scope.get(scope, [])]

    async def commit(self, created: Optional[QueueToken], updated: List[QueueToken]) -> None:
        if created is not None and created.appointment_id in self._by_appointment:
            raise DuplicateTokenError(created.appointment_id)
        for token in updated:
            if token.id not in self._tokens:
                raise KeyError(token.id)

        # Validation done; from here on nothing can fail half way.
        if created is not None:
            self._tokens[created.id] = created.model_copy()
            self._by_appointment[created.appointment_id] = created.id
            self._by_scope.setdefault(created.scope, []).append(created.id)
        for token in updated:
            self._tokens[token.id] = token.model_copy()


class MongoTokenBackend(TokenBackend):
    """Tokens persisted in the `queue_tokens` collection; nothing is ever deleted."""

    collection_name = "queue_tokens"

    @property
    def _collection(self):
        return Database.get_collection(self.collection_name)

    @staticmethod
    def _to_token(doc: dict) -> QueueToken:
        doc["_id"] = str(doc["_id"])
        return QueueToken(**doc)

    async def get(self, token_id: str) -> Optional[QueueToken]:
        doc = await self._collection.find_one({"_id": token_id})
        return self._to_token(doc) if doc else None

    async def find_by_appointment(self, appointment_id: str) -> Optional[QueueToken]:
        doc = await self._collection.find_one({"appointment_id": appointment_id})
        return self._to_token(doc) if doc else None

    async def list_scope(self, scope: QueueScope) -> List[QueueToken]:
        cursor = self._collection.find({
            "provider_id": scope.provider_id,
            "queue_date": scope.queue_date
        }).sort("token_number", 1)

        result = []
        async for doc in cursor:
            result.append(self._to_token(doc))
        return result

    async def commit(self, created: Optional[QueueToken], updated: List[QueueToken]) -> None:
        operations = []
        if created is not None:
            operations.append(InsertOne(created.model_dump(by_alias=True)))
        for token in updated:
            operations.append(ReplaceOne({"_id": token.id}, token.model_dump(by_alias=True)))
        if not operations:
            return

        try:
            await self._collection.bulk_write(operations, ordered=True)
        except (BulkWriteError, DuplicateKeyError) as e:
            if created is None or not self._is_duplicate_key(e):
                raise
            key_pattern = self._key_pattern(e)
            logger.warning("Duplicate key %s committing token for appointment %s",
                           key_pattern, created.appointment_id)
            if "appointment_id" in key_pattern:
                raise DuplicateTokenError(created.appointment_id)
            raise ConcurrentUpdateError(created.provider_id, created.queue_date)

    @staticmethod
    def _is_duplicate_key(e: Exception) -> bool:
        if isinstance(e, DuplicateKeyError):
            return True
        return any(err.get("code") == DUPLICATE_KEY_CODE for err in e.details.get("writeErrors", []))

    @staticmethod
    def _key_pattern(e: Exception) -> dict:
        details = e.details or {}
        if isinstance(e, BulkWriteError):
            errors = details.get("writeErrors") or [{}]
            details = errors[0]
        return details.get("keyPattern") or {}
