from __future__ import annotations

import asyncio
from collections import deque
from typing import TYPE_CHECKING, Any

import pytest

from bunco.logic.models import Game, Player, Table
from bunco.logic.settings import TABLE_SIZE
from bunco.logic.timer import TimingConfig
from bunco.session.repository import MatchRepository
from shared.store import InMemoryDocumentStore

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from bunco.logic.scoring import Dice

GAME_CODE = "TEST"
# three different faces, none of them 1: scores nothing in round 1
MISS: Dice = (2, 3, 4)


# ============================================================================
# Builders
# ============================================================================


def seat_id(table_id: int, seat: int) -> str:
    """Id of the player a seeded match puts at ``table_id``/``seat``."""
    return f"t{table_id}s{seat}"


def create_player(
    player_id: str = "p1",
    *,
    name: str | None = None,
    table: int | None = None,
    seat: int | None = None,
    is_bot: bool = False,
    is_host: bool = False,
    points_this_round: int = 0,
    total_points: int = 0,
    bunco_count: int = 0,
    rounds_won: int = 0,
) -> Player:
    """Create a Player with sensible defaults for testing."""
    return Player(
        id=player_id,
        name=name or player_id.upper(),
        table=table,
        seat=seat,
        is_bot=is_bot,
        is_host=is_host,
        points_this_round=points_this_round,
        total_points=total_points,
        bunco_count=bunco_count,
        rounds_won=rounds_won,
    )


def create_table(table_id: int = 0, player_ids: list[str] | None = None, **fields: Any) -> Table:
    ids = player_ids if player_ids is not None else [seat_id(table_id, seat) for seat in range(TABLE_SIZE)]
    return Table(id=table_id, player_ids=ids, **fields)


async def seed_match(
    repository: MatchRepository,
    num_tables: int = 2,
    *,
    bots: Iterable[str] = (),
    host: str | None = None,
    players: dict[str, dict[str, Any]] | None = None,
    game: dict[str, Any] | None = None,
    round_number: int = 1,
) -> list[Table]:
    """
    Write a started match with ``num_tables`` full tables.

    Player ``seat_id(t, s)`` sits at table ``t`` seat ``s``. ``players`` maps
    player ids to extra Player fields; ``game`` holds extra Game fields.
    """
    bot_ids = set(bots)
    overrides = players or {}
    tables = []
    for table_id in range(num_tables):
        for seat in range(TABLE_SIZE):
            player_id = seat_id(table_id, seat)
            fields: dict[str, Any] = {
                "table": table_id,
                "seat": seat,
                "is_bot": player_id in bot_ids,
                "is_host": player_id == host,
            }
            fields.update(overrides.get(player_id, {}))
            await repository.put_player(create_player(player_id, **fields))
        table = create_table(table_id, round=round_number)
        await repository.put_table(table)
        tables.append(table)
    await repository.put_game(Game(started=True, **(game or {})))
    return tables


class ScriptedDice:
    """DiceRoller that plays back fixed rolls, then keeps returning ``default``."""

    def __init__(self, *rolls: Dice, default: Dice = MISS) -> None:
        self._rolls = deque(rolls)
        self._default = default
        self.calls = 0

    def roll(self) -> Dice:
        self.calls += 1
        return self._rolls.popleft() if self._rolls else self._default


def fail_table_writes(
    monkeypatch: pytest.MonkeyPatch,
    repository: MatchRepository,
    when: Callable[[dict[str, Any]], bool],
    times: int | None = 1,
) -> None:
    """Make ``repository.update_table`` raise for matching writes, ``times`` times or forever if None."""
    update_table = repository.update_table
    remaining = times

    async def flaky(table_id: int, **fields: Any) -> None:
        nonlocal remaining
        if when(fields) and (remaining is None or remaining > 0):
            if remaining is not None:
                remaining -= 1
            raise RuntimeError("write rejected")
        await update_table(table_id, **fields)

    monkeypatch.setattr(repository, "update_table", flaky)


async def wait_until(predicate: Callable[[], Awaitable[bool]], timeout: float = 2.0) -> None:
    """Poll an async predicate until it holds, failing the test on timeout."""

    async def _poll() -> None:
        while not await predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def repository(store: InMemoryDocumentStore) -> MatchRepository:
    return MatchRepository(store, GAME_CODE)


@pytest.fixture
def instant_timing() -> TimingConfig:
    return TimingConfig.instant()
