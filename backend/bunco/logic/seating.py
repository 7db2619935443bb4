"""
Round-end results and partner-rotation seating.

After every round each table splits into two teams by seat parity. At the head
table the winners stay and the losers move down; at every other table the
losers stay and the winners move up. Movers always go to table ``(id + 1) % N``,
so the head-table losers land on table 1 and the winners of the last table
climb to the head table.

Stayers take seats 0 and 1 (one per team), movers fill seats 2 and 3 of their
destination. A seating is rejected if any pair of prior-round teammates ends up
on the same team again; rejected seatings are reshuffled a bounded number of
times and the least-bad attempt is kept.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from bunco.logic.enums import SeatingViolation
from bunco.logic.settings import HEAD_TABLE_ID, TABLE_SIZE

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from bunco.logic.models import Player

T = TypeVar("T")

# table id -> seat -> player id
Seating = dict[int, dict[int, str]]

_STAYER_SEATS = (0, 1)
_MOVER_SEATS = (2, 3)


@dataclass(frozen=True)
class TeamResult:
    """Per-table round outcome. Ties go to team 0."""

    table_id: int
    teams: tuple[tuple[str, ...], tuple[str, ...]]  # player ids by team (seat parity)
    scores: tuple[int, int]

    @property
    def winning_team(self) -> int:
        return 0 if self.scores[0] >= self.scores[1] else 1

    @property
    def winners(self) -> tuple[str, ...]:
        return self.teams[self.winning_team]

    @property
    def losers(self) -> tuple[str, ...]:
        return self.teams[1 - self.winning_team]


@dataclass(frozen=True)
class SeatingIssue:
    """One reason a seating failed validation."""

    violation: SeatingViolation
    table_id: int
    detail: str


@dataclass(frozen=True)
class MovementPlan:
    """Who keeps their table and where everyone else goes."""

    stayers: dict[int, tuple[str, ...]]  # table id -> player ids staying
    destinations: dict[str, int]  # mover id -> destination table id

    @property
    def movers(self) -> list[str]:
        return list(self.destinations)


@dataclass(frozen=True)
class RetryOutcome(Generic[T]):
    """Best attempt from a bounded retry, plus whatever it still violates."""

    value: T
    issues: list[SeatingIssue] = field(default_factory=list)
    attempts: int = 1

    @property
    def satisfied(self) -> bool:
        return not self.issues


def compute_team_results(players: Iterable[Player], table_ids: Iterable[int]) -> list[TeamResult]:
    """Sum each table's round points by seat parity, using each player's recorded table and seat."""
    by_table: dict[int, list[Player]] = {table_id: [] for table_id in table_ids}
    for player in players:
        if player.table is not None and player.table in by_table:
            by_table[player.table].append(player)

    results = []
    for table_id in sorted(by_table):
        seated = sorted(by_table[table_id], key=lambda p: p.seat if p.seat is not None else 0)
        team0 = tuple(p.id for p in seated if p.team == 0)
        team1 = tuple(p.id for p in seated if p.team == 1)
        scores = (
            sum(p.points_this_round for p in seated if p.team == 0),
            sum(p.points_this_round for p in seated if p.team == 1),
        )
        results.append(TeamResult(table_id=table_id, teams=(team0, team1), scores=scores))
    return results


def plan_movement(results: Iterable[TeamResult], num_tables: int) -> MovementPlan:
    """Decide stayers and mover destinations for every table."""
    stayers: dict[int, tuple[str, ...]] = {}
    destinations: dict[str, int] = {}
    for result in results:
        if result.table_id == HEAD_TABLE_ID:
            staying, moving = result.winners, result.losers
        else:
            staying, moving = result.losers, result.winners
        stayers[result.table_id] = staying
        destination = (result.table_id + 1) % num_tables
        for player_id in moving:
            destinations[player_id] = destination
    return MovementPlan(stayers=stayers, destinations=destinations)


def build_seating(plan: MovementPlan, num_tables: int, rng: random.Random) -> Seating:
    """Draw one seating from the plan with fresh shuffles."""
    seating: Seating = {table_id: {} for table_id in range(num_tables)}

    for table_id, staying in plan.stayers.items():
        shuffled = list(staying)
        rng.shuffle(shuffled)
        for seat, player_id in zip(_STAYER_SEATS, shuffled, strict=False):
            seating[table_id][seat] = player_id

    movers = plan.movers
    rng.shuffle(movers)
    for player_id in movers:
        table = seating[plan.destinations[player_id]]
        free_seat = next((seat for seat in _MOVER_SEATS if seat not in table), None)
        if free_seat is not None:
            table[free_seat] = player_id

    return seating


def prior_teammates(results: Iterable[TeamResult]) -> dict[str, set[str]]:
    """Map each player to the ids they partnered with in the round just played."""
    teammates: dict[str, set[str]] = {}
    for result in results:
        for team in result.teams:
            for player_id in team:
                teammates.setdefault(player_id, set()).update(pid for pid in team if pid != player_id)
    return teammates


def validate_seating(seating: Seating, previous: Mapping[str, set[str]]) -> list[SeatingIssue]:
    """Check table sizes, seat layout, duplicates and repeat partnerships."""
    issues: list[SeatingIssue] = []
    seen: dict[str, int] = {}

    for table_id in sorted(seating):
        seats = seating[table_id]
        if len(seats) != TABLE_SIZE:
            issues.append(
                SeatingIssue(
                    SeatingViolation.WRONG_PLAYER_COUNT,
                    table_id,
                    f"{len(seats)} players instead of {TABLE_SIZE}",
                )
            )
        if sorted(seats) != list(range(len(seats))):
            issues.append(SeatingIssue(SeatingViolation.INVALID_SEATS, table_id, f"seats {sorted(seats)}"))

        for player_id in seats.values():
            if player_id in seen:
                issues.append(
                    SeatingIssue(
                        SeatingViolation.DUPLICATE_PLAYER,
                        table_id,
                        f"{player_id} already seated at table {seen[player_id]}",
                    )
                )
            seen[player_id] = table_id

        for team in (0, 1):
            members = [pid for seat, pid in sorted(seats.items()) if seat % 2 == team]
            for i, player_id in enumerate(members):
                for other in members[i + 1 :]:
                    if other in previous.get(player_id, ()):
                        issues.append(
                            SeatingIssue(
                                SeatingViolation.REPEAT_TEAMMATE,
                                table_id,
                                f"{player_id} and {other} are teammates again",
                            )
                        )
    return issues


def retry_until_valid(
    attempt: Callable[[], T],
    validate: Callable[[T], list[SeatingIssue]],
    max_attempts: int,
) -> RetryOutcome[T]:
    """Run ``attempt`` until ``validate`` finds nothing or the budget runs out.

    Never raises on exhaustion: returns the attempt with the fewest issues so the
    caller can proceed and report the leftovers.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    value = attempt()
    best = RetryOutcome(value=value, issues=validate(value), attempts=1)
    number = 1
    while best.issues and number < max_attempts:
        number += 1
        value = attempt()
        issues = validate(value)
        if len(issues) < len(best.issues):
            best = RetryOutcome(value=value, issues=issues, attempts=number)
    return RetryOutcome(value=best.value, issues=best.issues, attempts=number)


def reseat(
    results: list[TeamResult],
    num_tables: int,
    rng: random.Random,
    max_attempts: int,
) -> RetryOutcome[Seating]:
    """Plan movement and draw a seating that avoids repeat teammates where possible."""
    plan = plan_movement(results, num_tables)
    previous = prior_teammates(results)
    return retry_until_valid(
        lambda: build_seating(plan, num_tables, rng),
        lambda seating: validate_seating(seating, previous),
        max_attempts,
    )
