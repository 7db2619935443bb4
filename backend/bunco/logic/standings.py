"""Leaderboard ordering and end-of-match summary."""

from collections.abc import Iterable
from dataclasses import dataclass

from bunco.logic.models import Player, Winner

_PODIUM_SIZE = 3


def rank_players(players: Iterable[Player]) -> list[Player]:
    """Order by rounds won, then buncos, then total points, all descending."""
    return sorted(players, key=lambda p: (-p.rounds_won, -p.bunco_count, -p.total_points))


def pick_winner(players: Iterable[Player], target_rounds: int) -> Winner | None:
    """Return the tournament winner, or None if nobody has reached ``target_rounds``.

    Among players at or above the target, the highest total points wins; the
    first such player in iteration order keeps a tie.
    """
    candidates = [p for p in players if p.rounds_won >= target_rounds]
    if not candidates:
        return None
    best = max(candidates, key=lambda p: p.total_points)
    return Winner(id=best.id, name=best.name, rounds_won=best.rounds_won, total_points=best.total_points)


@dataclass(frozen=True)
class MatchSummary:
    ranking: list[Player]
    most_buncos: list[Player]
    most_points: list[Player]


def summarize_match(players: Iterable[Player]) -> MatchSummary:
    roster = list(players)
    return MatchSummary(
        ranking=rank_players(roster),
        most_buncos=sorted(roster, key=lambda p: -p.bunco_count)[:_PODIUM_SIZE],
        most_points=sorted(roster, key=lambda p: -p.total_points)[:_PODIUM_SIZE],
    )
