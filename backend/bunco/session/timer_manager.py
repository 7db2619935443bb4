"""Manage per-table turn continuations for one match."""

from collections.abc import Awaitable, Callable

import structlog

from bunco.logic.enums import TableTimerType
from bunco.logic.timer import ActionTimer

logger = structlog.get_logger()

# Callback type: (table_id, timer_type) -> Awaitable[None]
TimerCallback = Callable[[int, TableTimerType], Awaitable[None]]


class TimerManager:
    """Own the single pending continuation of every table.

    This class only schedules and cancels. What a timer does when it fires is
    decided by the callback owner (TurnEngine), which must re-check the table
    state since the turn may have moved on in the meantime.
    """

    def __init__(self, on_timeout: TimerCallback) -> None:
        self._timers: dict[int, ActionTimer] = {}
        self._on_timeout = on_timeout

    def _timer(self, table_id: int) -> ActionTimer:
        timer = self._timers.get(table_id)
        if timer is None:
            timer = self._timers[table_id] = ActionTimer()
        return timer

    def start(self, table_id: int, timer_type: TableTimerType, seconds: float) -> None:
        """Schedule a continuation for a table, replacing whatever was pending there."""

        async def fire() -> None:
            await self._on_timeout(table_id, timer_type)

        self._timer(table_id).start(seconds, fire)
        logger.debug("table timer started", table_id=table_id, timer_type=timer_type, seconds=seconds)

    def cancel(self, table_id: int) -> None:
        """Cancel a table's pending continuation."""
        timer = self._timers.get(table_id)
        if timer is not None:
            timer.cancel()

    def cancel_all(self) -> None:
        """Cancel every pending continuation."""
        for table_id in list(self._timers):
            self.cancel(table_id)
