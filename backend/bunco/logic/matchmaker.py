"""
Matchmaker for opening-round table assignment and bot filling.

Pads the lobby with bots to a full set of tables, shuffles everyone and deals
them out four to a table.
"""

import math
import random

from bunco.logic.models import Player
from bunco.logic.settings import MatchSettings

_DEFAULT_SETTINGS = MatchSettings()


def players_needed(num_players: int, settings: MatchSettings | None = None) -> int:
    """Total seats to fill: a multiple of the table size, never below the minimum."""
    rules = settings or _DEFAULT_SETTINGS
    return max(rules.min_players, math.ceil(num_players / rules.table_size) * rules.table_size)


def make_bots(existing_ids: set[str], count: int) -> list[Player]:
    """Create ``count`` bots named 'Bot N' whose ids do not collide with ``existing_ids``."""
    bots: list[Player] = []
    number = 0
    while len(bots) < count:
        number += 1
        bot_id = f"bot-{number}"
        if bot_id in existing_ids:
            continue
        bots.append(Player(id=bot_id, name=f"Bot {len(bots) + 1}", is_bot=True))
    return bots


def fill_tables(
    players: list[Player],
    rng: random.Random | None = None,
    settings: MatchSettings | None = None,
) -> list[list[Player]]:
    """
    Deal players onto tables for the first round.

    Adds bots as needed, shuffles, and returns one list per table in seat
    order with ``table`` and ``seat`` set and all counters zeroed.
    """
    rules = settings or _DEFAULT_SETTINGS
    if not players:
        raise ValueError("Expected at least one player")
    ids = [p.id for p in players]
    if len(ids) != len(set(ids)):
        raise ValueError("Player ids must be unique")

    roster = list(players) + make_bots(set(ids), players_needed(len(players), rules) - len(players))
    (rng or random.Random()).shuffle(roster)  # noqa: S311

    tables: list[list[Player]] = []
    for start in range(0, len(roster), rules.table_size):
        table_id = len(tables)
        tables.append(
            [
                player.model_copy(
                    update={
                        "table": table_id,
                        "seat": seat,
                        "points_this_round": 0,
                        "total_points": 0,
                        "bunco_count": 0,
                        "rounds_won": 0,
                    },
                )
                for seat, player in enumerate(roster[start : start + rules.table_size])
            ],
        )
    return tables
