from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


def points_for_rank(rank: int, votes_per_player: int) -> int:
    """
    Linear curve: a ballot of N votes awards N points to rank 1 down to 1 point
    for rank N.
    """
    if rank < 1 or rank > votes_per_player:
        raise ValueError(f"rank must be between 1 and {votes_per_player}")
    return votes_per_player + 1 - rank


@dataclass
class ScoredResponse:
    response_id: UUID
    submitted_at: datetime
    total_points: int = 0
    first_place_votes: int = 0
    final_rank: int | None = None


def rank_responses(
    responses: list[tuple[UUID, datetime]],
    votes: list[tuple[UUID, int, int]],
) -> list[ScoredResponse]:
    """
    Compute total_points and final_rank.

    responses: (response_id, submitted_at)
    votes: (response_id, rank, points)

    Ranking is standard competition ranking on total_points: equal totals share
    a rank and the next rank skips (1, 1, 3). Within a shared rank the result
    is ordered by first-place votes, then earlier submission; those never
    split the rank. Unvoted responses score 0 and land on the lowest rank.
    """
    scored = {rid: ScoredResponse(response_id=rid, submitted_at=at) for rid, at in responses}
    for rid, rank, points in votes:
        row = scored.get(rid)
        if row is None:
            continue
        row.total_points += int(points)
        if rank == 1:
            row.first_place_votes += 1

    ordered = sorted(
        scored.values(),
        key=lambda r: (-r.total_points, -r.first_place_votes, r.submitted_at, str(r.response_id)),
    )
    prev_points = None
    for position, row in enumerate(ordered, start=1):
        if row.total_points != prev_points:
            current_rank = position
            prev_points = row.total_points
        row.final_rank = current_rank
    return ordered
