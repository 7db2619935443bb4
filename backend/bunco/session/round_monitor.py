"""
Round-end and tournament-win detection.

Both checks may run concurrently from every client, after every roll and on a
polling interval. Neither holds a lock: each re-reads the store, bails out if
the outcome has already been recorded, and otherwise writes an outcome that is
the same no matter which client writes it.
"""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from bunco.logic.settings import HEAD_TABLE_ID, MatchSettings
from bunco.logic.standings import pick_winner

if TYPE_CHECKING:
    from bunco.logic.models import Winner
    from bunco.session.repository import MatchRepository

logger = structlog.get_logger()


class RoundEndMonitor:
    """Watch the head table for a round-ending team score and the roster for a tournament winner."""

    def __init__(self, repository: MatchRepository, settings: MatchSettings | None = None) -> None:
        self._repository = repository
        self._settings = settings or MatchSettings()

    async def head_table_scores(self) -> tuple[int, int]:
        """Sum this round's points at the head table by team (seat parity)."""
        team_scores = [0, 0]
        for player in await self._repository.list_players():
            if player.table == HEAD_TABLE_ID and player.team is not None:
                team_scores[player.team] += player.points_this_round
        return team_scores[0], team_scores[1]

    async def check_head_table(self) -> bool:
        """End the round everywhere if a head-table team reached the threshold.

        Returns True only for the call that flipped the round over; repeated or
        concurrent calls after that are no-ops.
        """
        code = self._repository.code
        head_table = await self._repository.get_table(HEAD_TABLE_ID)
        if head_table is None or head_table.round_over:
            logger.debug("head table already over, skipping round check", game_code=code)
            return False

        game = await self._repository.get_game()
        if game is None or game.next_round_ready or game.game_over:
            logger.debug("next round already signalled, skipping round check", game_code=code)
            return False

        team_scores = await self.head_table_scores()
        if max(team_scores) < self._settings.win_threshold:
            return False

        for table in await self._repository.list_tables():
            await self._repository.update_table(table.id, round_over=True)
        await self._repository.update_game(next_round_ready=True)
        logger.info("round over", game_code=code, head_table_scores=team_scores, round=head_table.round)
        return True

    async def check_win_condition(self) -> Winner | None:
        """Record the tournament winner once someone has won enough rounds.

        Never overwrites a recorded winner. Returns the winner recorded by this
        call, or None.
        """
        code = self._repository.code
        game = await self._repository.get_game()
        if game is None or game.game_over:
            return None

        winner = pick_winner(await self._repository.list_players(), game.target_rounds)
        if winner is None:
            return None

        # Another client may have decided the match while we were reading players.
        latest = await self._repository.get_game()
        if latest is None or latest.game_over:
            return None

        await self._repository.update_game(game_over=True, winner=winner, finished_at=datetime.now(UTC))
        logger.info(
            "tournament won",
            game_code=code,
            winner_id=winner.id,
            winner_name=winner.name,
            rounds_won=winner.rounds_won,
            target_rounds=game.target_rounds,
            total_points=winner.total_points,
        )
        return winner

    async def run(self, poll_seconds: float, win_check_seconds: float) -> None:
        """Poll both checks forever until cancelled or the match is over."""
        next_win_check = 0.0
        while True:
            try:
                await self.check_head_table()
                now = time.monotonic()
                if now >= next_win_check:
                    next_win_check = now + win_check_seconds
                    await self.check_win_condition()
                game = await self._repository.get_game()
                if game is not None and game.game_over:
                    return
            except Exception:
                logger.exception("round monitor poll failed", game_code=self._repository.code)
            await asyncio.sleep(poll_seconds)
