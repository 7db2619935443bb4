"""
Move every table from a finished round to the next one.

The host (or an auto-advancing client) calls ``transition_to_next_round`` once
the game signals ``next_round_ready``. The "transition in progress" flag on the
game document is advisory: bot loops and rolls honour it, but nothing in the
store enforces it, so the orchestrator re-checks the game before doing any work
and treats a cleared ready signal as a stale trigger.

Individual document writes may fail without failing the transition. A player
left on an old seat is recoverable; a match stuck in "transition in progress"
is not, so the flag is always cleared on the way out.
"""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from bunco.logic.scoring import next_round_number
from bunco.logic.seating import compute_team_results, reseat
from bunco.logic.settings import HEAD_TABLE_ID, MatchSettings

if TYPE_CHECKING:
    from collections.abc import Callable

    from bunco.logic.models import Player, Table, Winner
    from bunco.logic.seating import Seating, SeatingIssue, TeamResult
    from bunco.session.repository import MatchRepository
    from bunco.session.round_monitor import RoundEndMonitor

logger = structlog.get_logger()


@dataclass
class TransitionResult:
    """What one completed round transition did."""

    round: int  # the round now being played at the head table
    team_results: list[TeamResult]
    seating: Seating
    seating_issues: list[SeatingIssue]
    seating_attempts: int
    failed_writes: list[str] = field(default_factory=list)  # store paths left untouched
    winner: Winner | None = None


class RoundTransitionOrchestrator:
    """Score the finished round, rotate partners and reset every table."""

    def __init__(
        self,
        repository: MatchRepository,
        monitor: RoundEndMonitor,
        settings: MatchSettings | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._repository = repository
        self._monitor = monitor
        self._settings = settings or MatchSettings()
        self._rng = rng or random.Random()  # noqa: S311
        self._clock = clock
        self._lock = asyncio.Lock()

    async def transition_to_next_round(self) -> TransitionResult | None:
        """Run one transition. Returns None when there is nothing to do.

        A second call while one is running, or any call while ``next_round_ready``
        is false, is a no-op.
        """
        if self._lock.locked():
            logger.debug("round transition already running here", game_code=self._repository.code)
            return None

        async with self._lock:
            game = await self._repository.get_game()
            if game is None or not game.next_round_ready or game.round_transition_in_progress or game.game_over:
                logger.debug("stale round transition trigger ignored", game_code=self._repository.code)
                return None

            await self._repository.update_game(round_transition_in_progress=True)
            completed = False
            try:
                result = await self._transition()
                completed = True
            finally:
                if completed:
                    await self._repository.update_game(next_round_ready=False, round_transition_in_progress=False)
                else:
                    await self._repository.update_game(round_transition_in_progress=False)

            result.winner = await self._monitor.check_win_condition()
            return result

    async def _transition(self) -> TransitionResult:
        code = self._repository.code
        players = await self._repository.list_players()
        tables = await self._repository.list_tables()

        results = compute_team_results(players, [table.id for table in tables])
        outcome = reseat(results, len(tables), self._rng, self._settings.seating_max_attempts)
        if not outcome.satisfied:
            logger.warning(
                "seating constraints unsatisfied, using best attempt",
                game_code=code,
                attempts=outcome.attempts,
                issues=[f"table {issue.table_id}: {issue.violation} ({issue.detail})" for issue in outcome.issues],
            )

        failed: list[str] = []
        winners = {player_id for result in results for player_id in result.winners}
        # seats are compacted in seat order; table and player documents share the index
        lineups = {table_id: [seats[seat] for seat in sorted(seats)] for table_id, seats in outcome.value.items()}
        placements = {
            player_id: (table_id, seat) for table_id, lineup in lineups.items() for seat, player_id in enumerate(lineup)
        }
        for player in players:
            if not await self._write_player(player, player.id in winners, placements.get(player.id)):
                failed.append(f"players/{player.id}")

        turn_start = self._clock()
        for table in tables:
            if not await self._write_table(table, lineups.get(table.id, []), turn_start):
                failed.append(f"tables/{table.id}")

        head = next((table for table in tables if table.id == HEAD_TABLE_ID), None)
        new_round = next_round_number(head.round) if head is not None else 1
        logger.info(
            "round transition complete",
            game_code=code,
            round=new_round,
            head_table_scores=results[0].scores if results else None,
            seating_attempts=outcome.attempts,
            failed_writes=len(failed),
        )
        return TransitionResult(
            round=new_round,
            team_results=results,
            seating={table_id: dict(enumerate(lineup)) for table_id, lineup in lineups.items()},
            seating_issues=outcome.issues,
            seating_attempts=outcome.attempts,
            failed_writes=failed,
        )

    async def _write_player(self, player: Player, won: bool, placement: tuple[int, int] | None) -> bool:
        """Bank the round's points, credit a win and move the player to their new seat."""
        fields = {
            "rounds_won": player.rounds_won + 1 if won else player.rounds_won,
            "total_points": player.total_points + player.points_this_round,
            "points_this_round": 0,
        }
        if placement is not None:
            fields["table"], fields["seat"] = placement
        try:
            await self._repository.update_player(player.id, **fields)
        except Exception:
            logger.exception("failed to update player for next round", game_code=self._repository.code, player_id=player.id)
            return False
        return True

    async def _write_table(self, table: Table, player_ids: list[str], turn_start: float) -> bool:
        try:
            await self._repository.update_table(
                table.id,
                player_ids=player_ids,
                current_turn=0,
                dice=(1, 1, 1),
                round=next_round_number(table.round),
                is_rolling=False,
                last_roll_result=None,
                round_over=False,
                turn_start=turn_start,
            )
        except Exception:
            logger.exception("failed to reset table for next round", game_code=self._repository.code, table_id=table.id)
            return False
        return True
