"""
itinerary.engine.winners — Community winner tally
==================================================

Pure selection step of the winner resolver.  Persistence (loading rows,
flipping ``selected_by_community``) lives in
:mod:`itinerary.services.winner_service`.

Rules:
  * Only projects that are not manual winners are eligible.
  * Upvotes for anything outside the eligible set are ignored.
  * Highest upvote count wins.
  * Equal counts → the **earliest** submission wins (first come).
  * Equal counts and equal timestamps → the lowest project id, so the
    result never depends on row order.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime

from itinerary.engine.lifecycle import as_utc


@dataclass(frozen=True, slots=True)
class Candidate:
    project_id: int
    submitted_at: datetime
    count: int


def tally(eligible: Iterable[int], upvoted_projects: Iterable[int]) -> Counter[int]:
    """Count upvotes per project, keeping only *eligible* project ids."""
    allowed = set(eligible)
    return Counter(p for p in upvoted_projects if p in allowed)


def pick_winner(
    submitted_at: Mapping[int, datetime],
    upvoted_projects: Iterable[int],
) -> Candidate | None:
    """Choose the community winner.

    Parameters
    ----------
    submitted_at:
        Eligible project id → submission time.
    upvoted_projects:
        One project id per upvote cast in the jam (any project).

    Returns
    -------
    Candidate | None
        ``None`` when no eligible project received an upvote.
    """
    counts = tally(submitted_at.keys(), upvoted_projects)
    if not counts:
        return None

    candidates = [
        Candidate(pid, as_utc(submitted_at[pid]), n) for pid, n in counts.items()
    ]
    return min(candidates, key=lambda c: (-c.count, c.submitted_at, c.project_id))
