"""Centralized match settings for Bunco - all configurable gameplay rules."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from bunco.session.settings import EngineSettings

NUM_FACES = 6
TABLE_SIZE = 4
HEAD_TABLE_ID = 0


class MatchSettings(BaseModel):
    """
    Configuration for Bunco scoring, round end and seating rules.

    All fields default to the standard party rules.
    """

    model_config = ConfigDict(frozen=True)

    # --- Tables ---
    table_size: int = TABLE_SIZE
    min_players: int = Field(default=8, ge=TABLE_SIZE)

    # --- Scoring ---
    bunco_points: int = 21
    triple_points: int = 15
    win_threshold: int = Field(default=21, ge=1)  # head-table team total that ends the round

    # --- Tournament ---
    target_rounds: int = Field(default=6, ge=1)  # rounds won needed to take the tournament

    # --- Seating ---
    seating_max_attempts: int = Field(default=10, ge=1)

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> MatchSettings:
        """Build MatchSettings from EngineSettings."""
        return cls(
            target_rounds=settings.target_rounds,
            seating_max_attempts=settings.seating_max_attempts,
            win_threshold=settings.win_threshold,
        )
