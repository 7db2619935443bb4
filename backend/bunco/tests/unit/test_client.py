import asyncio
import logging
import random

import pytest

from bunco.session.client import MatchClient
from bunco.session.repository import game_path, table_path
from bunco.session.settings import EngineSettings
from bunco.tests.conftest import GAME_CODE, MISS, ScriptedDice, fail_table_writes, seed_match, wait_until


@pytest.fixture
async def make_client(repository, instant_timing):
    clients = []

    def _make(player_id, **kwargs):
        kwargs.setdefault("timing", instant_timing)
        kwargs.setdefault("dice_roller", ScriptedDice())
        client = MatchClient(repository, player_id, rng=random.Random(1), clock=lambda: 10.0, **kwargs)
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.stop()


class TestHostActions:
    async def test_non_host_cannot_start_next_round(self, repository, make_client):
        await seed_match(repository, host="t0s0", game={"next_round_ready": True})
        client = make_client("t1s1")
        await client.start()

        result = await client.start_next_round()

        assert client.is_host is False
        assert result is None
        assert (await repository.get_game()).next_round_ready

    async def test_host_starts_next_round(self, repository, make_client):
        await seed_match(repository, host="t0s0", game={"next_round_ready": True})
        client = make_client("t0s0")
        await client.start()

        result = await client.start_next_round()

        assert client.is_host
        assert result is not None
        assert result.round == 2
        assert not (await repository.get_game()).next_round_ready

    async def test_host_auto_advances_when_round_ready(self, repository, make_client):
        await seed_match(repository, host="t0s0")
        client = make_client("t0s0", auto_advance_rounds=True)

        async with client:
            await repository.update_game(next_round_ready=True)
            await wait_until(lambda: _table_round_is(repository, 0, 2))

        assert not (await repository.get_game()).next_round_ready

    async def test_guest_never_auto_advances(self, repository, make_client):
        await seed_match(repository, host="t0s0", game={"next_round_ready": True})
        client = make_client("t1s1", auto_advance_rounds=True)

        async with client:
            await asyncio.sleep(0.05)

        assert (await repository.get_table(0)).round == 1
        assert (await repository.get_game()).next_round_ready


class TestPlayerActions:
    async def test_roll_uses_own_player_id(self, repository, make_client):
        await seed_match(repository)
        client = make_client("t0s0", dice_roller=ScriptedDice((2, 2, 5)), drive_bots=False)

        outcome = await client.roll(0)

        assert outcome is not None
        assert outcome.player_id == "t0s0"
        assert outcome.dice == (2, 2, 5)
        assert (await repository.get_player("t0s0")).points_this_round == 0

    async def test_roll_out_of_turn_is_ignored(self, repository, make_client):
        await seed_match(repository)
        client = make_client("t0s1", drive_bots=False)

        assert await client.roll(0) is None

    async def test_rigged_roll_only_for_host(self, repository, make_client):
        await seed_match(repository, host="t1s0")
        guest = make_client("t0s0", drive_bots=False)
        host = make_client("t1s0", drive_bots=False)

        assert await guest.rigged_roll(0) is None
        outcome = await host.rigged_roll(1)

        assert outcome is not None
        assert outcome.score.points == 2

    async def test_end_turn_before_enabled_is_refused(self, repository, make_client):
        await seed_match(repository)
        client = make_client("t0s0", drive_bots=False)

        assert await client.end_turn(0) is False

    async def test_end_turn_once_endable(self, repository, make_client, instant_timing):
        await seed_match(repository)
        timing = instant_timing.model_copy(update={"auto_end_turn_seconds": 10})
        client = make_client("t0s0", timing=timing, dice_roller=ScriptedDice((1, 1, 2)), drive_bots=False)

        assert client.can_end_turn(0) is False
        await client.roll(0)
        await wait_until(lambda: _async(client.can_end_turn(0)))

        assert await client.end_turn(0) is True
        assert client.can_end_turn(0) is False
        assert await _turn_is(repository, 0, 1)


class TestBackgroundWork:
    async def test_drives_bots_seen_on_table_watch(self, repository, make_client):
        await seed_match(repository, bots=["t0s0"])
        dice = ScriptedDice(default=MISS)
        client = make_client("t1s0", dice_roller=dice)

        async with client:
            await wait_until(lambda: _turn_is(repository, 0, 1))

        assert dice.calls == 1

    async def test_bot_driving_can_be_disabled(self, repository, make_client):
        await seed_match(repository, bots=["t0s0"])
        dice = ScriptedDice()
        client = make_client("t1s0", dice_roller=dice, drive_bots=False)

        async with client:
            await asyncio.sleep(0.05)

        assert dice.calls == 0
        assert (await repository.get_table(0)).current_turn == 0

    async def test_wait_for_game_over_returns_decided_game(self, repository, make_client):
        await seed_match(repository, players={"t0s2": {"rounds_won": 6, "total_points": 40}})
        client = make_client("t0s0")

        async with client:
            game = await asyncio.wait_for(client.wait_for_game_over(), timeout=2)

        assert game.game_over
        assert game.winner.id == "t0s2"

    async def test_stop_ends_subscriptions(self, repository, store, make_client):
        await seed_match(repository, bots=["t0s1"])
        dice = ScriptedDice()
        client = make_client("t0s0", dice_roller=dice)

        async with client:
            await asyncio.sleep(0.01)
            assert store.subscriber_count(table_path(GAME_CODE, 0)) == 1
        await repository.update_table(0, current_turn=1)
        await asyncio.sleep(0.05)

        assert dice.calls == 0
        assert (await repository.get_table(0)).current_turn == 1
        assert store.subscriber_count(table_path(GAME_CODE, 0)) == 0
        assert store.subscriber_count(game_path(GAME_CODE)) == 0


    async def test_resync_retries_bot_turn_after_failed_writes(self, repository, make_client, monkeypatch, caplog):
        await seed_match(repository, bots=["t0s0"])
        dice = ScriptedDice()
        # the dice write and the flag release both fail, so no snapshot follows the failure
        fail_table_writes(monkeypatch, repository, lambda fields: "dice" in fields or fields == {"is_rolling": False}, 2)
        client = make_client("t1s0", dice_roller=dice)

        with caplog.at_level(logging.ERROR):
            async with client:
                await wait_until(lambda: _turn_is(repository, 0, 1))

        assert "bot turn failed" in caplog.text
        assert dice.calls == 2
        assert (await repository.get_table(0)).is_rolling is False


class TestFromSettings:
    def test_applies_environment_settings(self, repository):
        settings = EngineSettings(drive_bots=False, auto_advance_rounds=True, roll_delay_seconds=0.5)

        client = MatchClient.from_settings(repository, "t0s0", settings, rng=random.Random(0))

        assert client.player_id == "t0s0"
        assert client._drive_bots is False
        assert client._auto_advance_rounds is True
        assert client._timing.roll_delay_seconds == 0.5


async def _turn_is(repository, table_id, turn):
    table = await repository.get_table(table_id)
    return table.current_turn == turn


async def _table_round_is(repository, table_id, round_number):
    table = await repository.get_table(table_id)
    return table.round == round_number


async def _async(value):
    return value
