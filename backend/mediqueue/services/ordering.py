"""
Queue ordering policy.

Emergencies rank ahead of everyone else; within a tier, earlier tokens
(lower token numbers) rank first. Only waiting tokens hold a position.
"""

from typing import Dict, Iterable, List, Tuple

from ..models.queue import QueueToken, TokenStatus, PositionEntry


def _rank_key(token: QueueToken) -> Tuple[int, int]:
    return (0 if token.is_emergency else 1, token.token_number)


def reorder(tokens: Iterable[QueueToken]) -> List[Tuple[str, int]]:
    """Return (token_id, position) pairs for the waiting tokens of one scope."""
    waiting = sorted(
        (t for t in tokens if t.status == TokenStatus.WAITING),
        key=_rank_key
    )
    return [(token.id, index) for index, token in enumerate(waiting, start=1)]


def tokens_ahead(tokens: Iterable[QueueToken], subject: QueueToken) -> int:
    """
    Waiting tokens that arrived before `subject` (lower token number).

    This is the wait-time base. Emergency re-ranking is left out because the
    estimator's emergency factor already prices the jump.
    """
    return sum(
        1 for t in tokens
        if t.status == TokenStatus.WAITING
        and t.id != subject.id
        and t.token_number < subject.token_number
    )


def ordering_entries(tokens: Iterable[QueueToken]) -> List[PositionEntry]:
    """The waiting order as display entries."""
    by_id = {t.id: t for t in tokens}
    return [
        PositionEntry(
            token_id=token_id,
            token_number=by_id[token_id].token_number,
            position=position,
            is_emergency=by_id[token_id].is_emergency
        )
        for token_id, position in reorder(by_id.values())
    ]


def apply_positions(
    tokens: Iterable[QueueToken],
    ordering: List[Tuple[str, int]]
) -> List[QueueToken]:
    """
    Copies of the tokens whose stored position disagrees with `ordering`.

    Only `position` is touched; tokens absent from the ordering (non-waiting)
    get None.
    """
    positions: Dict[str, int] = dict(ordering)
    changed = []
    for token in tokens:
        position = positions.get(token.id)
        if token.position != position:
            changed.append(token.model_copy(update={"position": position}))
    return changed
