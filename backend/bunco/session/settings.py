"""Match engine configuration via environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings


class EngineSettings(BaseSettings):
    model_config = {"env_prefix": "BUNCO_"}

    log_dir: str | None = Field(default=None, min_length=1)

    # Rules
    target_rounds: int = Field(default=6, ge=1)
    seating_max_attempts: int = Field(default=10, ge=1)
    win_threshold: int = Field(default=21, ge=1)

    # Presentation delays (seconds)
    roll_delay_seconds: float = Field(default=2.0, ge=0)
    zero_score_advance_seconds: float = Field(default=1.0, ge=0)
    end_turn_enable_seconds: float = Field(default=1.0, ge=0)
    auto_end_turn_seconds: float = Field(default=4.0, ge=0)
    bot_roll_delay_seconds: float = Field(default=3.0, ge=0)
    bot_display_seconds: float = Field(default=1.0, ge=0)
    bot_end_turn_seconds: float = Field(default=2.0, ge=0)

    # Safety-net polling (seconds)
    monitor_poll_seconds: float = Field(default=5.0, gt=0)
    win_check_seconds: float = Field(default=5.0, gt=0)

    # Client behaviour
    drive_bots: bool = True
    auto_advance_rounds: bool = False
