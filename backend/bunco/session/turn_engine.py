"""
Per-table turn engine: rolls, turn advancement and autonomous bot turns.

A table's turn moves Idle -> Rolling -> Resolved and then either back to Idle
for the next player or, when the Round-End Monitor closes the round, to
RoundOver. The engine never ends a round itself.

Many clients may run an engine against the same match. Nothing here is a lock:
every action re-reads the table and game documents right before acting and
silently does nothing if the state has moved on. Within one engine, a table
never has two rolls in flight and never runs two bot loops for the same turn.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from bunco.logic.enums import TableTimerType, TurnPhase
from bunco.logic.models import RollResult
from bunco.logic.scoring import RandomDiceRoller, rigged_dice, round_target, score
from bunco.logic.settings import MatchSettings
from bunco.logic.timer import TimingConfig
from bunco.session.timer_manager import TimerManager

if TYPE_CHECKING:
    from collections.abc import Callable

    from bunco.logic.models import Game, Table
    from bunco.logic.scoring import Dice, DiceRoller, RollScore
    from bunco.session.repository import MatchRepository
    from bunco.session.round_monitor import RoundEndMonitor

logger = structlog.get_logger()

# (table id, turn index, player id)
TurnKey = tuple[int, int, str]


@dataclass(frozen=True)
class RollOutcome:
    """What a single roll did."""

    table_id: int
    player_id: str
    dice: Dice
    score: RollScore
    round_ended: bool = False


class TurnEngine:
    """Execute rolls and drive turn order for every table of one match."""

    def __init__(
        self,
        repository: MatchRepository,
        monitor: RoundEndMonitor,
        *,
        settings: MatchSettings | None = None,
        timing: TimingConfig | None = None,
        dice_roller: DiceRoller | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._repository = repository
        self._monitor = monitor
        self._settings = settings or MatchSettings()
        self._timing = timing or TimingConfig()
        self._dice = dice_roller or RandomDiceRoller()
        self._clock = clock
        self._timers = TimerManager(on_timeout=self._handle_timeout)
        self._rolls_in_flight: set[int] = set()
        self._timer_turns: dict[int, tuple[int, str]] = {}  # table_id -> turn a pending timer belongs to
        self._endable: dict[int, tuple[int, str]] = {}  # table_id -> turn whose player may end it
        self._bot_loops: dict[TurnKey, asyncio.Task[None]] = {}
        self._driven: dict[int, tuple[int, int, str]] = {}  # table_id -> (round, turn, bot id) already driven

    # --- human actions ---

    async def roll(self, table_id: int, player_id: str) -> RollOutcome | None:
        """Roll for the current-turn player. Returns None when the roll is not allowed right now or failed."""
        table, game = await self._load(table_id)
        if table is None or not self._may_roll(table, game, player_id):
            logger.debug("roll rejected", table_id=table_id, player_id=player_id)
            return None
        return await self._human_roll(table, player_id)

    async def rigged_roll(self, table_id: int, player_id: str) -> RollOutcome | None:
        """Host-only test roll that always scores exactly two points, then passes the dice."""
        table, game = await self._load(table_id)
        if table is None or not self._may_roll(table, game, player_id):
            return None
        player = await self._repository.get_player(player_id)
        if player is None or not player.is_host:
            logger.debug("rigged roll rejected for non-host", table_id=table_id, player_id=player_id)
            return None
        return await self._human_roll(table, player_id, dice=rigged_dice(round_target(table.round)), pass_dice=True)

    async def end_turn(self, table_id: int, player_id: str) -> bool:
        """End the current player's turn once it has become endable. Returns True if the turn advanced."""
        table = await self._repository.get_table(table_id)
        if table is None or table.current_player_id != player_id:
            return False
        if self._endable.get(table_id) != (table.current_turn, player_id):
            logger.debug("end turn not enabled yet", table_id=table_id, player_id=player_id)
            return False
        return await self._advance_turn(table_id, table.current_turn, player_id)

    def can_end_turn(self, table_id: int, player_id: str) -> bool:
        endable = self._endable.get(table_id)
        return endable is not None and endable[1] == player_id

    async def _human_roll(
        self,
        table: Table,
        player_id: str,
        *,
        dice: Dice | None = None,
        pass_dice: bool = False,
    ) -> RollOutcome | None:
        turn = (table.current_turn, player_id)
        self._rolls_in_flight.add(table.id)
        try:
            # acting first cancels any pending auto end-turn
            self._clear_turn_state(table.id)
            await self._begin_roll(table.id)
            await asyncio.sleep(self._timing.roll_delay_seconds)
            outcome = await self._resolve_roll(table, player_id, dice)
        except Exception:
            logger.exception("roll failed", table_id=table.id, player_id=player_id)
            if not await self._release_table(table.id):
                # still flagged as rolling: only passing the dice rewrites the flag
                self._arm(table.id, TableTimerType.AUTO_ADVANCE, self._timing.zero_score_advance_seconds, turn)
            return None
        finally:
            self._rolls_in_flight.discard(table.id)

        if pass_dice or outcome.score.ends_turn:
            self._arm(table.id, TableTimerType.AUTO_ADVANCE, self._timing.zero_score_advance_seconds, turn)
        else:
            self._arm(table.id, TableTimerType.ENABLE_END_TURN, self._timing.end_turn_enable_seconds, turn)
        return outcome

    # --- bot turns ---

    async def on_table_changed(self, table: Table) -> asyncio.Task[None] | None:
        """React to a table snapshot: start a bot loop if a bot holds a turn nobody has driven yet.

        Safe to call with the same table repeatedly; the match client also
        re-offers every table on its poll interval so a failed bot turn is
        retried even when no new snapshot arrives.
        """
        driven = self._driven.get(table.id)
        if driven is not None and driven[:2] != (table.round, table.current_turn):
            self._driven.pop(table.id, None)

        bot_id = table.current_player_id
        if bot_id is None or table.round_over:
            return None
        key = (table.id, table.current_turn, bot_id)
        if self._loop_running(key) or self._driven.get(table.id) == (table.round, table.current_turn, bot_id):
            return None

        player = await self._repository.get_player(bot_id)
        if player is None or not player.is_bot:
            return None
        game = await self._repository.get_game()
        if game is None or not game.accepting_rolls:
            return None

        # another snapshot may have started the loop while we were reading
        if self._loop_running(key) or table.id in self._driven:
            return None
        self._driven[table.id] = (table.round, table.current_turn, bot_id)
        task = asyncio.create_task(self.run_bot_turn(table.id, table.current_turn, bot_id))
        self._bot_loops[key] = task
        task.add_done_callback(lambda done: self._forget_loop(key, done))
        logger.debug("bot turn scheduled", table_id=table.id, turn=table.current_turn, player_id=bot_id)
        return task

    async def run_bot_turn(self, table_id: int, turn_index: int, bot_id: str) -> None:
        """Roll for a bot until it scores nothing, then pass the dice.

        Aborts as soon as the turn moves on, the round ends, or a round
        transition starts; the rolling flag is cleared if the turn is still the
        bot's. A failed store write clears the flag too and leaves the turn to
        be driven again.
        """
        log = logger.bind(table_id=table_id, player_id=bot_id, turn=turn_index)
        try:
            while True:
                table, game = await self._load(table_id)
                if table is None or not self._bot_holds_turn(table, game, turn_index, bot_id):
                    await self._abort_bot_turn(table, turn_index, bot_id)
                    log.info("bot turn aborted")
                    return

                await self._begin_roll(table_id)
                await asyncio.sleep(self._timing.bot_roll_delay_seconds)

                table, game = await self._load(table_id)
                if table is None or not self._bot_holds_turn(table, game, turn_index, bot_id):
                    await self._abort_bot_turn(table, turn_index, bot_id)
                    log.info("bot turn ended during roll delay")
                    return

                outcome = await self._resolve_roll(table, bot_id, None)
                if not outcome.score.is_triple_ones:
                    await asyncio.sleep(self._timing.bot_display_seconds)
                if outcome.score.ends_turn:
                    break

            await asyncio.sleep(self._timing.bot_end_turn_seconds)
            await self._repository.update_table(table_id, is_rolling=False)
            await self._advance_turn(table_id, turn_index, bot_id)
        except Exception:
            log.exception("bot turn failed")
            self._driven.pop(table_id, None)
            await self._release_table(table_id)

    async def _abort_bot_turn(self, table: Table | None, turn_index: int, bot_id: str) -> None:
        # once the turn has moved on the flag belongs to whoever holds it now
        if table is not None and table.current_turn == turn_index and table.current_player_id == bot_id:
            await self._repository.update_table(table.id, is_rolling=False)

    def _loop_running(self, key: TurnKey) -> bool:
        task = self._bot_loops.get(key)
        return task is not None and not task.done()

    def _forget_loop(self, key: TurnKey, task: asyncio.Task[None]) -> None:
        if self._bot_loops.get(key) is task:
            del self._bot_loops[key]

    # --- shared roll mechanics ---

    async def _begin_roll(self, table_id: int) -> None:
        await self._repository.update_table(table_id, is_rolling=True, last_roll_result=None)

    async def _resolve_roll(self, table: Table, player_id: str, dice: Dice | None) -> RollOutcome:
        """Draw (or use) dice, publish the result, credit the roller and check for round end."""
        dice = dice or self._dice.roll()
        result = score(dice, round_target(table.round), self._settings)
        now = self._clock()

        await self._repository.update_table(
            table.id,
            dice=dice,
            is_rolling=False,
            turn_start=now,
            last_roll_result=RollResult(
                points=result.points,
                is_bunco=result.is_bunco,
                is_triple_ones=result.is_triple_ones,
                timestamp=now,
            ),
        )

        if result.is_triple_ones:
            for teammate_id in table.team_of(player_id):
                await self._repository.update_player(teammate_id, points_this_round=0)
        else:
            if result.points:
                await self._repository.add_round_points(player_id, result.points)
            if result.is_bunco:
                await self._repository.add_bunco(player_id)

        logger.info(
            "rolled",
            table_id=table.id,
            player_id=player_id,
            dice=list(dice),
            target=round_target(table.round),
            points=result.points,
            bunco=result.is_bunco,
            triple_ones=result.is_triple_ones,
        )
        round_ended = await self._monitor.check_head_table()
        return RollOutcome(table_id=table.id, player_id=player_id, dice=dice, score=result, round_ended=round_ended)

    async def _advance_turn(self, table_id: int, expected_turn: int, expected_player: str) -> bool:
        """Pass the dice to the next seat, unless the turn already moved on."""
        table = await self._repository.get_table(table_id)
        if table is None or table.current_turn != expected_turn or table.current_player_id != expected_player:
            logger.debug("stale turn advance ignored", table_id=table_id, expected_turn=expected_turn)
            return False

        self._clear_turn_state(table_id)
        next_turn = (table.current_turn + 1) % len(table.player_ids)
        await self._repository.update_table(
            table_id,
            current_turn=next_turn,
            turn_start=self._clock(),
            last_roll_result=None,
            is_rolling=False,
        )
        logger.debug("turn advanced", table_id=table_id, from_turn=expected_turn, to_turn=next_turn)
        return True

    # --- timers ---

    def _arm(self, table_id: int, timer_type: TableTimerType, seconds: float, turn: tuple[int, str]) -> None:
        self._timer_turns[table_id] = turn
        self._timers.start(table_id, timer_type, seconds)

    def _clear_turn_state(self, table_id: int) -> None:
        self._timers.cancel(table_id)
        self._timer_turns.pop(table_id, None)
        self._endable.pop(table_id, None)

    async def _handle_timeout(self, table_id: int, timer_type: TableTimerType) -> None:
        turn = self._timer_turns.get(table_id)
        if turn is None:
            return
        if timer_type == TableTimerType.ENABLE_END_TURN:
            self._endable[table_id] = turn
            self._arm(table_id, TableTimerType.AUTO_END_TURN, self._timing.auto_end_turn_seconds, turn)
            return
        if timer_type == TableTimerType.AUTO_END_TURN:
            logger.info("auto-ending idle turn", table_id=table_id, player_id=turn[1])
        await self._advance_turn(table_id, *turn)

    # --- helpers ---

    async def _load(self, table_id: int) -> tuple[Table | None, Game | None]:
        return await self._repository.get_table(table_id), await self._repository.get_game()

    def _may_roll(self, table: Table, game: Game | None, player_id: str) -> bool:
        return (
            game is not None
            and table.current_player_id == player_id
            and table.id not in self._rolls_in_flight
            and table.phase in (TurnPhase.IDLE, TurnPhase.RESOLVED)
            and game.accepting_rolls
        )

    @staticmethod
    def _bot_holds_turn(table: Table, game: Game | None, turn_index: int, bot_id: str) -> bool:
        return (
            game is not None
            and table.current_turn == turn_index
            and table.current_player_id == bot_id
            and not table.round_over
            and game.accepting_rolls
        )

    async def _release_table(self, table_id: int) -> bool:
        """Best-effort clear of the rolling flag after a failed roll. Returns False if the write failed too."""
        try:
            await self._repository.update_table(table_id, is_rolling=False)
        except Exception:
            logger.exception("failed to clear rolling flag", table_id=table_id)
            return False
        return True

    async def shutdown(self) -> None:
        """Cancel pending timers and running bot loops."""
        self._timers.cancel_all()
        tasks = list(self._bot_loops.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
