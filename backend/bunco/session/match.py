"""Open a match: deal the lobby onto tables and write the opening documents."""

from __future__ import annotations

import random
import time
from typing import TYPE_CHECKING

import structlog

from bunco.logic.exceptions import MatchSetupError
from bunco.logic.matchmaker import fill_tables
from bunco.logic.models import Game, Table
from bunco.logic.settings import MatchSettings

if TYPE_CHECKING:
    from collections.abc import Callable

    from bunco.logic.models import Player
    from bunco.session.repository import MatchRepository

logger = structlog.get_logger()


class MatchService:
    """Start a match from the players already registered under a tournament code."""

    def __init__(
        self,
        repository: MatchRepository,
        settings: MatchSettings | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._repository = repository
        self._settings = settings or MatchSettings()
        self._rng = rng or random.Random()  # noqa: S311
        self._clock = clock

    async def start_match(self, target_rounds: int | None = None) -> list[Table]:
        """
        Pad the lobby with bots, seat everyone and mark the game started.

        Raises MatchSetupError if nobody has joined or the match is already running.
        """
        code = self._repository.code
        game = await self._repository.get_game()
        if game is not None and game.started:
            raise MatchSetupError(f"match {code} has already started")

        registered = await self._repository.list_players()
        if not registered:
            raise MatchSetupError(f"match {code} has no players")

        seated = fill_tables(registered, self._rng, self._settings)
        now = self._clock()
        tables: list[Table] = []
        for table_id, group in enumerate(seated):
            for player in group:
                await self._repository.put_player(player)
            table = Table(id=table_id, player_ids=[p.id for p in group], turn_start=now)
            await self._repository.put_table(table)
            tables.append(table)

        await self._repository.put_game(
            Game(started=True, target_rounds=target_rounds or self._settings.target_rounds),
        )
        logger.info(
            "match started",
            game_code=code,
            humans=len(registered),
            bots=sum(len(group) for group in seated) - len(registered),
            tables=len(tables),
        )
        return tables

    async def register(self, player: Player) -> None:
        """Add a player to the lobby before the match starts."""
        game = await self._repository.get_game()
        if game is not None and game.started:
            raise MatchSetupError(f"match {self._repository.code} has already started")
        await self._repository.put_player(player)
