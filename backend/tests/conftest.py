"""
Shared pytest fixtures for MediQueue tests.

Async code is driven with `asyncio.run`; each test runs its whole scenario in
one event loop so per-scope locks never cross loops.
"""

import asyncio
from datetime import datetime, timezone
from typing import List

import pytest

from mediqueue.models.events import QueueEvent
from mediqueue.models.queue import QueueToken, TokenStatus
from mediqueue.services.clock import FixedClock
from mediqueue.services.providers import ProviderDirectory
from mediqueue.services.publisher import CallbackSubscriber
from mediqueue.services.queue_service import QueueService

PROVIDER = "dr-1"
DAY = "2026-10-19"


def run(coro):
    return asyncio.run(coro)


def make_token(number: int, emergency: bool = False, status: TokenStatus = TokenStatus.WAITING,
               position=None, provider_id: str = PROVIDER, queue_date: str = DAY) -> QueueToken:
    return QueueToken(
        id=f"tok-{number}",
        token_number=number,
        provider_id=provider_id,
        appointment_id=f"appt-{number}",
        queue_date=queue_date,
        is_emergency=emergency,
        status=status,
        position=position,
        check_in_time=datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)
    )


@pytest.fixture
def clock() -> FixedClock:
    """Frozen at 09:00 UTC, outside the peak and lull buckets."""
    return FixedClock(datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc), tz_name="UTC")


@pytest.fixture
def providers() -> ProviderDirectory:
    return ProviderDirectory({PROVIDER: 15})


@pytest.fixture
def service(clock, providers) -> QueueService:
    return QueueService(providers=providers, clock=clock)


@pytest.fixture
def events(service) -> List[QueueEvent]:
    """Every event the service publishes, in order."""
    received: List[QueueEvent] = []
    service.publisher.subscribe(CallbackSubscriber(received.append))
    return received
