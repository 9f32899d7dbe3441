"""Tests for the queue ordering policy."""

import random

from mediqueue.models.queue import TokenStatus
from mediqueue.services.ordering import apply_positions, ordering_entries, reorder, tokens_ahead

from conftest import make_token


class TestReorder:

    def test_emergency_jumps_ahead_of_earlier_tokens(self):
        tokens = [make_token(1), make_token(2), make_token(3, emergency=True)]

        assert reorder(tokens) == [("tok-3", 1), ("tok-1", 2), ("tok-2", 3)]

    def test_emergencies_keep_arrival_order_among_themselves(self):
        tokens = [make_token(1, emergency=True), make_token(2), make_token(3, emergency=True)]

        assert [tid for tid, _ in reorder(tokens)] == ["tok-1", "tok-3", "tok-2"]

    def test_non_waiting_tokens_have_no_position(self):
        tokens = [
            make_token(1, status=TokenStatus.COMPLETED),
            make_token(2, status=TokenStatus.SERVING),
            make_token(3),
            make_token(4, status=TokenStatus.SKIPPED),
            make_token(5),
        ]

        assert reorder(tokens) == [("tok-3", 1), ("tok-5", 2)]

    def test_empty_scope(self):
        assert reorder([]) == []

    def test_positions_are_dense_and_emergencies_first(self):
        rng = random.Random(7)
        statuses = list(TokenStatus)
        tokens = [
            make_token(n, emergency=rng.random() < 0.3, status=rng.choice(statuses))
            for n in range(1, 60)
        ]
        rng.shuffle(tokens)
        by_id = {t.id: t for t in tokens}

        ordering = reorder(tokens)
        waiting = [t for t in tokens if t.status == TokenStatus.WAITING]

        assert sorted(p for _, p in ordering) == list(range(1, len(waiting) + 1))
        flags = [by_id[tid].is_emergency for tid, _ in ordering]
        assert flags == sorted(flags, reverse=True)

    def test_idempotent_and_input_order_independent(self):
        tokens = [make_token(n, emergency=n % 4 == 0) for n in range(1, 12)]
        shuffled = list(reversed(tokens))

        assert reorder(tokens) == reorder(tokens)
        assert reorder(tokens) == reorder(shuffled)


class TestApplyPositions:

    def test_only_changed_tokens_are_returned(self):
        tokens = [
            make_token(1, position=1),
            make_token(2, position=2),
            make_token(3, emergency=True),
        ]

        changed = apply_positions(tokens, reorder(tokens))

        assert {t.id: t.position for t in changed} == {"tok-3": 1, "tok-1": 2, "tok-2": 3}

    def test_second_pass_is_a_no_op(self):
        tokens = [make_token(1), make_token(2, emergency=True)]
        first = apply_positions(tokens, reorder(tokens))

        assert apply_positions(first, reorder(first)) == []

    def test_only_position_is_touched(self):
        token = make_token(1, status=TokenStatus.SERVING, position=1)

        [changed] = apply_positions([token], reorder([token]))

        assert changed.position is None
        assert changed.model_dump(exclude={"position"}) == token.model_dump(exclude={"position"})


class TestOrderingEntries:

    def test_entries_carry_display_fields(self):
        tokens = [make_token(1), make_token(2, emergency=True)]

        entries = ordering_entries(tokens)

        assert [(e.token_number, e.position, e.is_emergency) for e in entries] == [
            (2, 1, True),
            (1, 2, False),
        ]


class TestTokensAhead:

    def test_counts_earlier_arrivals_for_an_emergency(self):
        tokens = [make_token(1), make_token(2), make_token(3), make_token(4),
                  make_token(5, emergency=True)]

        assert tokens_ahead(tokens, tokens[4]) == 4

    def test_later_emergency_is_not_counted(self):
        tokens = [make_token(1), make_token(2), make_token(3, emergency=True)]

        assert tokens_ahead(tokens, tokens[1]) == 1

    def test_only_waiting_tokens_count(self):
        tokens = [
            make_token(1, status=TokenStatus.SERVING),
            make_token(2, status=TokenStatus.COMPLETED),
            make_token(3),
            make_token(4),
        ]

        assert tokens_ahead(tokens, tokens[3]) == 1
