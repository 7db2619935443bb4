"""
Presentation delays and scheduled turn continuations.

Every pause in a Bunco turn is a fixed delay: the dice "roll" for a moment
before the result lands, a zero-point roll passes the dice shortly after, and
a human who scored gets a bounded window to end their turn before it is ended
for them. ``ActionTimer`` runs one such continuation as an asyncio task.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel, Field

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from bunco.session.settings import EngineSettings


class TimingConfig(BaseModel):
    """Delays (seconds) for the turn engine and the background monitors."""

    roll_delay_seconds: float = Field(default=2.0, ge=0)
    zero_score_advance_seconds: float = Field(default=1.0, ge=0)
    end_turn_enable_seconds: float = Field(default=1.0, ge=0)
    auto_end_turn_seconds: float = Field(default=4.0, ge=0)
    bot_roll_delay_seconds: float = Field(default=3.0, ge=0)
    bot_display_seconds: float = Field(default=1.0, ge=0)
    bot_end_turn_seconds: float = Field(default=2.0, ge=0)
    monitor_poll_seconds: float = Field(default=5.0, gt=0)
    win_check_seconds: float = Field(default=5.0, gt=0)

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> TimingConfig:
        """Build TimingConfig from EngineSettings."""
        return cls(
            roll_delay_seconds=settings.roll_delay_seconds,
            zero_score_advance_seconds=settings.zero_score_advance_seconds,
            end_turn_enable_seconds=settings.end_turn_enable_seconds,
            auto_end_turn_seconds=settings.auto_end_turn_seconds,
            bot_roll_delay_seconds=settings.bot_roll_delay_seconds,
            bot_display_seconds=settings.bot_display_seconds,
            bot_end_turn_seconds=settings.bot_end_turn_seconds,
            monitor_poll_seconds=settings.monitor_poll_seconds,
            win_check_seconds=settings.win_check_seconds,
        )

    @classmethod
    def instant(cls) -> TimingConfig:
        """Zero presentation delays, for simulations and tests."""
        return cls(
            roll_delay_seconds=0,
            zero_score_advance_seconds=0,
            end_turn_enable_seconds=0,
            auto_end_turn_seconds=0,
            bot_roll_delay_seconds=0,
            bot_display_seconds=0,
            bot_end_turn_seconds=0,
            monitor_poll_seconds=0.01,
            win_check_seconds=0.01,
        )


class ActionTimer:
    """
    Run at most one pending continuation.

    Starting a new timer cancels the previous one, so a table only ever has
    its latest scheduled action pending.
    """

    def __init__(self) -> None:
        self._active_task: asyncio.Task[None] | None = None

    @property
    def pending(self) -> bool:
        return self._active_task is not None and not self._active_task.done()

    def start(self, seconds: float, on_timeout: Callable[[], Awaitable[None]]) -> None:
        """Schedule ``on_timeout`` after ``seconds``, replacing any pending continuation."""
        self.cancel()
        self._active_task = asyncio.create_task(self._run_timer(seconds, on_timeout))

    def cancel(self) -> None:
        """Cancel the pending continuation, if any."""
        if self._active_task is not None and not self._active_task.done():
            if self._active_task is not asyncio.current_task():
                self._active_task.cancel()
        self._active_task = None

    async def _run_timer(self, seconds: float, on_timeout: Callable[[], Awaitable[None]]) -> None:
        try:
            await asyncio.sleep(seconds)
            await on_timeout()
        except asyncio.CancelledError:
            pass
        except Exception:
            logger.exception("timer callback failed")
