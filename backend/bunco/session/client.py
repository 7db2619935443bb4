"""
One connected client's view of a running match.

There is no central scheduler. Every client subscribes to the game and table
documents, drives the bots it sees, runs the round and win checks as a polling
safety net, and forwards its own player's actions to the turn engine. Running
several clients against the same match is the normal case; every component
they share tolerates duplicate and stale triggers.
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import TYPE_CHECKING, Any, Self

import structlog

from bunco.logic.settings import MatchSettings
from bunco.logic.timer import TimingConfig
from bunco.session.round_monitor import RoundEndMonitor
from bunco.session.round_transition import RoundTransitionOrchestrator
from bunco.session.turn_engine import TurnEngine
from shared.logging import bind_match_context

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from types import TracebackType

    from bunco.logic.models import Game
    from bunco.logic.scoring import DiceRoller
    from bunco.session.repository import MatchRepository
    from bunco.session.round_transition import TransitionResult
    from bunco.session.settings import EngineSettings
    from bunco.session.turn_engine import RollOutcome

logger = structlog.get_logger()


class MatchClient:
    def __init__(  # noqa: PLR0913
        self,
        repository: MatchRepository,
        player_id: str,
        *,
        settings: MatchSettings | None = None,
        timing: TimingConfig | None = None,
        dice_roller: DiceRoller | None = None,
        rng: random.Random | None = None,
        drive_bots: bool = True,
        auto_advance_rounds: bool = False,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._repository = repository
        self._player_id = player_id
        self._timing = timing or TimingConfig()
        self._drive_bots = drive_bots
        self._auto_advance_rounds = auto_advance_rounds
        rules = settings or MatchSettings()

        self.monitor = RoundEndMonitor(repository, rules)
        self.engine = TurnEngine(
            repository,
            self.monitor,
            settings=rules,
            timing=self._timing,
            dice_roller=dice_roller,
            clock=clock,
        )
        self.transitions = RoundTransitionOrchestrator(repository, self.monitor, rules, rng, clock)

        self._is_host = False
        self._tasks: list[asyncio.Task[None]] = []
        self._game_over = asyncio.Event()

    @classmethod
    def from_settings(
        cls,
        repository: MatchRepository,
        player_id: str,
        settings: EngineSettings,
        **kwargs: Any,
    ) -> MatchClient:
        """Build a client configured from environment settings."""
        return cls(
            repository,
            player_id,
            settings=MatchSettings.from_settings(settings),
            timing=TimingConfig.from_settings(settings),
            drive_bots=settings.drive_bots,
            auto_advance_rounds=settings.auto_advance_rounds,
            **kwargs,
        )

    @property
    def player_id(self) -> str:
        return self._player_id

    @property
    def is_host(self) -> bool:
        return self._is_host

    async def start(self) -> None:
        """Subscribe to the match and start the background monitors."""
        bind_match_context(self._repository.code, client_id=self._player_id)
        player = await self._repository.get_player(self._player_id)
        self._is_host = player is not None and player.is_host

        self._spawn(self._watch_game())
        for table in await self._repository.list_tables():
            self._spawn(self._watch_table(table.id))
        self._spawn(self.monitor.run(self._timing.monitor_poll_seconds, self._timing.win_check_seconds))
        if self._drive_bots:
            self._spawn(self._resync_tables())
        logger.info("match client started", is_host=self._is_host, drive_bots=self._drive_bots)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        self._tasks.append(asyncio.create_task(coro))

    async def _watch_game(self) -> None:
        async for game in self._repository.watch_game():
            if game is None:
                continue
            if game.game_over:
                self._game_over.set()
                return
            if game.next_round_ready and self._is_host and self._auto_advance_rounds:
                try:
                    await self.transitions.transition_to_next_round()
                except Exception:
                    logger.exception("automatic round transition failed")

    async def _watch_table(self, table_id: int) -> None:
        async for table in self._repository.watch_table(table_id):
            if table is None or not self._drive_bots:
                continue
            try:
                await self.engine.on_table_changed(table)
            except Exception:
                logger.exception("failed to react to table change", table_id=table_id)

    async def _resync_tables(self) -> None:
        """Re-offer every table to the engine on the poll interval.

        Picks up bot turns whose loop ended on a failed write; no new snapshot
        arrives for those.
        """
        while not self._game_over.is_set():
            await asyncio.sleep(self._timing.monitor_poll_seconds)
            try:
                for table in await self._repository.list_tables():
                    await self.engine.on_table_changed(table)
            except Exception:
                logger.exception("table resync failed")

    # --- player actions ---

    async def roll(self, table_id: int) -> RollOutcome | None:
        return await self.engine.roll(table_id, self._player_id)

    async def end_turn(self, table_id: int) -> bool:
        return await self.engine.end_turn(table_id, self._player_id)

    def can_end_turn(self, table_id: int) -> bool:
        return self.engine.can_end_turn(table_id, self._player_id)

    async def rigged_roll(self, table_id: int) -> RollOutcome | None:
        return await self.engine.rigged_roll(table_id, self._player_id)

    async def start_next_round(self) -> TransitionResult | None:
        """Host only: move everyone to the next round once it is ready."""
        if not self._is_host:
            logger.debug("next round requested by non-host, ignoring")
            return None
        return await self.transitions.transition_to_next_round()

    async def wait_for_game_over(self) -> Game | None:
        await self._game_over.wait()
        return await self._repository.get_game()

    async def stop(self) -> None:
        """Cancel every subscription, monitor, timer and bot loop this client started."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        await self.engine.shutdown()
        logger.info("match client stopped")

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()
