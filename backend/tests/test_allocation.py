"""Tests for token allocation and booking-time estimates."""

import asyncio
import math

import pytest

from mediqueue.errors import DuplicateTokenError
from mediqueue.models.events import EventType
from mediqueue.models.queue import TokenStatus
from mediqueue.services.backends import InMemoryTokenBackend
from mediqueue.services.queue_service import QueueService
from mediqueue.services.token_store import TokenStore

from conftest import DAY, PROVIDER, run


class YieldingBackend(InMemoryTokenBackend):
    """Suspends on every call so concurrent operations interleave."""

    async def list_scope(self, scope):
        await asyncio.sleep(0)
        return await super().list_scope(scope)

    async def commit(self, created, updated):
        await asyncio.sleep(0)
        await super().commit(created, updated)


class TestAllocate:

    def test_first_token_is_number_one_at_position_one(self, service):
        result = run(service.allocate(PROVIDER, "appt-1", queue_date=DAY))

        assert result.token_number == 1
        assert result.position == 1
        assert result.token.status == TokenStatus.WAITING
        assert result.token.check_in_time is not None
        assert result.token.called_time is None
        assert result.token.completed_time is None

    def test_numbers_increase_per_scope(self, service):
        async def scenario():
            numbers = []
            for i in range(1, 6):
                result = await service.allocate(PROVIDER, f"appt-{i}", queue_date=DAY)
                numbers.append(result.token_number)
            return numbers

        assert run(scenario()) == [1, 2, 3, 4, 5]

    def test_scopes_number_independently(self, service):
        async def scenario():
            a = await service.allocate(PROVIDER, "appt-1", queue_date=DAY)
            b = await service.allocate("dr-2", "appt-2", queue_date=DAY)
            c = await service.allocate(PROVIDER, "appt-3", queue_date="2026-10-20")
            return a.token_number, b.token_number, c.token_number

        assert run(scenario()) == (1, 1, 1)

    def test_queue_date_defaults_to_clock_day(self, service):
        result = run(service.allocate(PROVIDER, "appt-1"))

        assert result.token.queue_date == "2026-10-19"

    def test_duplicate_appointment_is_rejected(self, service, events):
        async def scenario():
            await service.allocate(PROVIDER, "appt-1", queue_date=DAY)
            with pytest.raises(DuplicateTokenError):
                await service.allocate(PROVIDER, "appt-1", queue_date=DAY)
            return await service.current_snapshot(PROVIDER, DAY)

        snapshot = run(scenario())

        assert snapshot.total_waiting == 1
        assert len(events) == 1

    def test_duplicate_across_scopes_is_rejected(self, service):
        async def scenario():
            await service.allocate(PROVIDER, "appt-1", queue_date=DAY)
            with pytest.raises(DuplicateTokenError):
                await service.allocate("dr-2", "appt-1", queue_date=DAY)

        run(scenario())

    def test_emergency_takes_first_position(self, service):
        async def scenario():
            await service.allocate(PROVIDER, "appt-1", queue_date=DAY)
            await service.allocate(PROVIDER, "appt-2", queue_date=DAY)
            emergency = await service.allocate(PROVIDER, "appt-3", queue_date=DAY, is_emergency=True)
            first = await service.get_token_by_appointment("appt-1")
            second = await service.get_token_by_appointment("appt-2")
            return emergency, first, second

        emergency, first, second = run(scenario())

        assert (emergency.token_number, emergency.position) == (3, 1)
        assert first.position == 2
        assert second.position == 3

    def test_concurrent_allocations_never_share_a_number(self, clock, providers):
        async def scenario():
            service = QueueService(store=TokenStore(YieldingBackend()), providers=providers, clock=clock)
            results = await asyncio.gather(*[
                service.allocate(PROVIDER, f"appt-{i}", queue_date=DAY, is_emergency=i % 5 == 0)
                for i in range(40)
            ])
            snapshot = await service.current_snapshot(PROVIDER, DAY)
            return results, snapshot

        results, snapshot = run(scenario())

        assert sorted(r.token_number for r in results) == list(range(1, 41))
        assert [e.position for e in snapshot.waiting] == list(range(1, 41))


class TestBookingEstimate:

    def test_estimates_follow_position(self, service):
        async def scenario():
            return [
                await service.allocate(PROVIDER, f"appt-{i}", queue_date=DAY)
                for i in range(3)
            ]

        results = run(scenario())

        assert [r.estimated_wait_minutes for r in results] == [15, 15, 30]
        assert not any(r.estimate_degraded for r in results)
        assert results[2].token.estimated_wait_minutes == 30

    def test_emergency_is_discounted(self, service):
        async def scenario():
            await service.allocate(PROVIDER, "appt-1", queue_date=DAY)
            return await service.allocate(PROVIDER, "appt-2", queue_date=DAY, is_emergency=True)

        assert run(scenario()).estimated_wait_minutes == 5

    def test_emergency_counts_everyone_already_waiting(self, service):
        async def scenario():
            for i in range(1, 5):
                await service.allocate(PROVIDER, f"appt-{i}", queue_date=DAY, slot_time="11:00")
            return await service.allocate(
                PROVIDER, "appt-5", queue_date=DAY, is_emergency=True, slot_time="11:00"
            )

        result = run(scenario())

        # four ahead, emergency discount, peak hour
        assert result.position == 1
        assert result.estimated_wait_minutes == 22
        assert result.token.estimated_wait_minutes == 22

    def test_booking_ignores_tokens_no_longer_waiting(self, service):
        async def scenario():
            first = await service.allocate(PROVIDER, "appt-1", queue_date=DAY)
            await service.allocate(PROVIDER, "appt-2", queue_date=DAY)
            await service.transition(first.token.id, TokenStatus.SERVING)
            return await service.allocate(PROVIDER, "appt-3", queue_date=DAY)

        assert run(scenario()).estimated_wait_minutes == 15

    def test_slot_hour_prices_the_estimate(self, service):
        async def scenario():
            await service.allocate(PROVIDER, "appt-1", queue_date=DAY)
            await service.allocate(PROVIDER, "appt-2", queue_date=DAY)
            return await service.allocate(PROVIDER, "appt-3", queue_date=DAY, slot_time="11:30")

        assert run(scenario()).estimated_wait_minutes == 36

    def test_unknown_provider_degrades_but_books(self, service):
        result = run(service.allocate("dr-unknown", "appt-1", queue_date=DAY))

        assert result.token_number == 1
        assert result.estimated_wait_minutes == 15
        assert result.estimate_degraded is True

    def test_infinite_consult_time_degrades_but_books(self, service, providers):
        providers.set_avg_consult_minutes(PROVIDER, math.inf)

        result = run(service.allocate(PROVIDER, "appt-1", queue_date=DAY))

        assert result.token_number == 1
        assert result.estimated_wait_minutes == 15
        assert result.estimate_degraded is True


class TestAllocationEvents:

    def test_token_created_event_carries_ordering(self, service, events):
        async def scenario():
            await service.allocate(PROVIDER, "appt-1", queue_date=DAY)
            await service.allocate(PROVIDER, "appt-2", queue_date=DAY, is_emergency=True)

        run(scenario())

        assert [e.type for e in events] == [
            EventType.TOKEN_CREATED,
            EventType.TOKEN_CREATED,
            EventType.POSITIONS_CHANGED,
        ]
        created = events[1]
        assert created.token.token_number == 2
        assert [(p.token_number, p.position) for p in created.ordering] == [(2, 1), (1, 2)]
        assert created.moved_token_ids == [events[0].token.id]
        assert [e.sequence for e in events] == sorted(e.sequence for e in events)
