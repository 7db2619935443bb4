"""
Document schemas for the shared match state.

Field names are snake_case in Python and camelCase in the store, matching the
documents every client reads. Models are validated when a document is read and
dumped with ``to_document`` when written.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from bunco.logic.enums import TurnPhase
from bunco.logic.settings import NUM_FACES, TABLE_SIZE

UNASSIGNED = -1


class _Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        """Serialize to the camelCase field layout used in the store."""
        return self.model_dump(by_alias=True, mode="json")


class RollResult(_Document):
    """Result of the last roll at a table, shown to every client until the turn ends."""

    points: int = Field(ge=0)
    is_bunco: bool = False
    is_triple_ones: bool = False
    timestamp: float


class Winner(_Document):
    """Tournament winner record written once the match is decided."""

    id: str
    name: str
    rounds_won: int
    total_points: int


class Player(_Document):
    """
    A participant in the match, human or bot.

    ``table`` and ``seat`` are both None before the match starts and both set afterwards.
    """

    id: str
    name: str
    is_bot: bool = False
    is_host: bool = False
    table: int | None = None
    seat: int | None = None
    points_this_round: int = Field(default=0, ge=0)
    total_points: int = Field(default=0, ge=0)
    bunco_count: int = Field(default=0, ge=0)
    rounds_won: int = Field(default=0, ge=0)

    @field_validator("table", "seat", mode="before")
    @classmethod
    def _unassigned_to_none(cls, value: Any) -> Any:
        return None if value == UNASSIGNED else value

    @model_validator(mode="after")
    def _check_placement(self) -> Player:
        if (self.table is None) != (self.seat is None):
            raise ValueError("table and seat must be assigned together")
        if self.table is not None and self.table < 0:
            raise ValueError(f"table must be >= 0, got {self.table}")
        if self.seat is not None and not 0 <= self.seat < TABLE_SIZE:
            raise ValueError(f"seat must be 0-{TABLE_SIZE - 1}, got {self.seat}")
        return self

    @property
    def team(self) -> int | None:
        """Team index by seat parity (seats 0/2 vs 1/3)."""
        return self.seat % 2 if self.seat is not None else None

    def to_document(self) -> dict[str, Any]:
        document = super().to_document()
        if self.table is None:
            document["table"] = UNASSIGNED
            document["seat"] = UNASSIGNED
        return document


class Table(_Document):
    """
    Live state of one table. Table 0 is the head table.
    """

    id: int = Field(ge=0)
    player_ids: list[str] = Field(default_factory=list)
    current_turn: int = 0
    dice: tuple[int, int, int] = (1, 1, 1)
    round: int = Field(default=1, ge=1)
    is_rolling: bool = False
    last_roll_result: RollResult | None = None
    round_over: bool = False
    turn_start: float | None = None

    @field_validator("dice")
    @classmethod
    def _check_dice(cls, value: tuple[int, int, int]) -> tuple[int, int, int]:
        if any(not 1 <= die <= NUM_FACES for die in value):
            raise ValueError(f"dice must be 1-{NUM_FACES}, got {value}")
        return value

    @model_validator(mode="after")
    def _check_turn(self) -> Table:
        if self.player_ids and not 0 <= self.current_turn < len(self.player_ids):
            raise ValueError(f"current_turn {self.current_turn} out of range for {len(self.player_ids)} players")
        return self

    @property
    def current_player_id(self) -> str | None:
        return self.player_ids[self.current_turn] if self.player_ids else None

    @property
    def phase(self) -> TurnPhase:
        if self.round_over:
            return TurnPhase.ROUND_OVER
        if self.is_rolling:
            return TurnPhase.ROLLING
        if self.last_roll_result is not None:
            return TurnPhase.RESOLVED
        return TurnPhase.IDLE

    def team_of(self, player_id: str) -> list[str]:
        """Return the ids sharing ``player_id``'s seat parity at this table, including the player."""
        index = self.player_ids.index(player_id)
        return [pid for i, pid in enumerate(self.player_ids) if i % 2 == index % 2]


class Game(_Document):
    """Match-wide flags. Terminal once ``game_over`` is set."""

    started: bool = False
    game_over: bool = False
    target_rounds: int = Field(default=6, ge=1)
    next_round_ready: bool = False
    round_transition_in_progress: bool = False
    winner: Winner | None = None
    finished_at: datetime | None = None

    @property
    def accepting_rolls(self) -> bool:
        """False while a round is closing, a transition runs, or the match is decided."""
        return not (self.next_round_ready or self.round_transition_in_progress or self.game_over)
