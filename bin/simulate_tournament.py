"""Run a complete Bunco tournament in process and print the results.

Every seat not taken by a named human is filled with a bot. Humans are played
by clients that keep rolling whenever it is their turn. All presentation
delays are zero, so a full tournament finishes in seconds.

Usage:
    uv run python bin/simulate_tournament.py
    uv run python bin/simulate_tournament.py --humans Alice Bob Carol --seed 7
    uv run python bin/simulate_tournament.py --target-rounds 2 --log-level DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
import sys
import time
from pathlib import Path

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from bunco.logic.models import Player
from bunco.logic.scoring import RandomDiceRoller
from bunco.logic.settings import MatchSettings
from bunco.logic.standings import summarize_match
from bunco.logic.timer import TimingConfig
from bunco.session.client import MatchClient
from bunco.session.match import MatchService
from bunco.session.repository import MatchRepository
from bunco.session.settings import EngineSettings
from shared.logging import rotate_log_file, setup_logging
from shared.store import InMemoryDocumentStore

GAME_CODE = "SIMULATION"
HUMAN_POLL_SECONDS = 0.01
# a simulated human stops pressing their luck after this many scoring rolls
SCORING_ROLLS_PER_TURN = 3


async def play_human(client: MatchClient, repository: MatchRepository) -> None:
    """Roll for a human whenever it is their turn, until the match ends.

    After a few scoring rolls the human ends their turn as soon as the engine
    allows it instead of rolling on.
    """
    streak = 0
    while True:
        game = await repository.get_game()
        if game is None or game.game_over:
            return
        player = await repository.get_player(client.player_id)
        if player is not None and player.table is not None:
            if streak >= SCORING_ROLLS_PER_TURN and client.can_end_turn(player.table):
                await client.end_turn(player.table)
                streak = 0
                continue
            outcome = await client.roll(player.table)
            if outcome is None or outcome.score.ends_turn:
                streak = 0
            else:
                streak += 1
                if streak < SCORING_ROLLS_PER_TURN:
                    continue
        await asyncio.sleep(HUMAN_POLL_SECONDS)


async def simulate(humans: list[str], target_rounds: int, seed: int | None, timeout: float) -> int:
    rng = random.Random(seed)  # noqa: S311
    store = InMemoryDocumentStore()
    repository = MatchRepository(store, GAME_CODE)
    rules = MatchSettings.from_settings(EngineSettings(target_rounds=target_rounds))
    # window for a human to roll again before their turn is auto-ended
    timing = TimingConfig.instant().model_copy(update={"auto_end_turn_seconds": 0.05})

    service = MatchService(repository, rules, rng=rng)
    for index, name in enumerate(humans):
        await service.register(Player(id=f"human-{index + 1}", name=name, is_host=index == 0))
    tables = await service.start_match(target_rounds)
    print(f"Tournament {GAME_CODE}: {len(tables) * rules.table_size} players at {len(tables)} tables")
    print(f"  Humans: {', '.join(humans)}")
    print(f"  Rounds to win: {target_rounds}")
    print()

    clients = [
        MatchClient(
            repository,
            f"human-{index + 1}",
            settings=rules,
            timing=timing,
            rng=random.Random(rng.random()),  # noqa: S311
            dice_roller=RandomDiceRoller(random.Random(rng.random())),  # noqa: S311
            drive_bots=index == 0,
            auto_advance_rounds=index == 0,
        )
        for index in range(len(humans))
    ]
    for client in clients:
        await client.start()
    players = [asyncio.create_task(play_human(client, repository)) for client in clients]

    start = time.perf_counter()
    try:
        game = await asyncio.wait_for(clients[0].wait_for_game_over(), timeout=timeout)
    except TimeoutError:
        print(f"Tournament did not finish within {timeout:.0f}s", file=sys.stderr)
        return 1
    finally:
        for task in players:
            task.cancel()
        await asyncio.gather(*players, return_exceptions=True)
        for client in clients:
            await client.stop()
    elapsed = time.perf_counter() - start

    _print_results(game.winner.name if game and game.winner else None, await repository.list_players(), elapsed)
    return 0


def _print_results(winner: str | None, players: list[Player], elapsed: float) -> None:
    summary = summarize_match(players)

    print("=" * 60)
    print(f"WINNER: {winner or '(none)'}")
    print("=" * 60)
    print(f"Finished in {elapsed:.2f}s")
    print()
    print(f"{'#':>3}  {'player':<16}  {'rounds':>6}  {'buncos':>6}  {'points':>6}")
    for rank, player in enumerate(summary.ranking, start=1):
        print(f"{rank:>3}  {player.name:<16}  {player.rounds_won:>6}  {player.bunco_count:>6}  {player.total_points:>6}")
    print()
    print("Most buncos: " + ", ".join(f"{p.name} ({p.bunco_count})" for p in summary.most_buncos))
    print("Most points: " + ", ".join(f"{p.name} ({p.total_points})" for p in summary.most_points))


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate a Bunco tournament with bots")
    parser.add_argument(
        "--humans",
        nargs="+",
        default=["Host"],
        metavar="NAME",
        help="names of human players; the first one hosts (default: Host)",
    )
    parser.add_argument(
        "--target-rounds",
        type=int,
        default=6,
        help="rounds a player must win to take the tournament (default: 6)",
    )
    parser.add_argument("--seed", type=int, default=None, help="seed for seating and dice")
    parser.add_argument(
        "--timeout",
        type=float,
        default=300.0,
        help="give up after this many seconds (default: 300)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="log level (default: WARNING)",
    )
    parser.add_argument("--log-dir", type=Path, default=None, help="also write logs to a file in this directory")
    args = parser.parse_args()

    if args.target_rounds < 1:
        print("Target rounds must be at least 1", file=sys.stderr)
        sys.exit(1)
    if len(set(args.humans)) != len(args.humans):
        print("Human names must be unique", file=sys.stderr)
        sys.exit(1)

    setup_logging(level=getattr(logging, args.log_level))
    if args.log_dir is not None:
        rotate_log_file(args.log_dir, name=GAME_CODE.lower())

    sys.exit(asyncio.run(simulate(args.humans, args.target_rounds, args.seed, args.timeout)))


if __name__ == "__main__":
    main()
