"""
Scoring rules for a single Bunco roll.

Three dice are rolled against the round's target face. A roll matching the
target on all three dice is a bunco; three ones off-target wipe the roller's
team for the round; any other triple is worth a flat bonus; otherwise each die
showing the target scores one point.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Protocol

from bunco.logic.settings import NUM_FACES, MatchSettings

Dice = tuple[int, int, int]

_DEFAULT_SETTINGS = MatchSettings()


@dataclass(frozen=True)
class RollScore:
    """Outcome of scoring one roll."""

    points: int
    is_bunco: bool = False
    is_triple_ones: bool = False  # caller zeroes the roller's team instead of crediting points

    @property
    def ends_turn(self) -> bool:
        """A roll that scores nothing (including the triple-ones penalty) passes the dice."""
        return self.points == 0


def round_target(round_number: int) -> int:
    """Map a round number onto the die face that scores, cycling 1-6."""
    return ((round_number - 1) % NUM_FACES) + 1


def next_round_number(round_number: int) -> int:
    """Return the round that follows ``round_number``, wrapping 6 back to 1."""
    return round_number % NUM_FACES + 1


def score(dice: Dice, target: int, settings: MatchSettings | None = None) -> RollScore:
    """Score three dice against the round target."""
    rules = settings or _DEFAULT_SETTINGS
    first = dice[0]
    if all(die == first for die in dice):
        if first == target:
            return RollScore(points=rules.bunco_points, is_bunco=True)
        if first == 1:
            return RollScore(points=0, is_triple_ones=True)
        return RollScore(points=rules.triple_points)
    return RollScore(points=sum(1 for die in dice if die == target))


def rigged_dice(target: int) -> Dice:
    """Dice that score exactly two points against ``target`` (host test roll)."""
    return (target, target, target % NUM_FACES + 1)


class DiceRoller(Protocol):
    """Source of dice for the turn engine."""

    def roll(self) -> Dice: ...


class RandomDiceRoller:
    """Three independent uniform draws in 1..6."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()  # noqa: S311

    def roll(self) -> Dice:
        return (
            self._rng.randint(1, NUM_FACES),
            self._rng.randint(1, NUM_FACES),
            self._rng.randint(1, NUM_FACES),
        )
