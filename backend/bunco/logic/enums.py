"""
String enum definitions for Bunco match concepts.
"""

from enum import Enum


class TurnPhase(str, Enum):
    """Phase of a table's live turn, derived from the table document."""

    IDLE = "idle"
    ROLLING = "rolling"
    RESOLVED = "resolved"
    ROUND_OVER = "round_over"


class TableTimerType(str, Enum):
    """Scheduled continuations the turn engine arms per table."""

    AUTO_ADVANCE = "auto_advance"  # zero-point roll: move to the next player
    ENABLE_END_TURN = "enable_end_turn"  # scoring roll: End Turn becomes available
    AUTO_END_TURN = "auto_end_turn"  # human did not end their turn in time


class SeatingViolation(str, Enum):
    """Reasons a proposed seating fails validation."""

    WRONG_PLAYER_COUNT = "wrong_player_count"
    INVALID_SEATS = "invalid_seats"
    DUPLICATE_PLAYER = "duplicate_player"
    REPEAT_TEAMMATE = "repeat_teammate"
