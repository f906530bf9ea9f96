from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path
from typing import Optional

# Get the project root directory (parent of spaced_review folder)
PROJECT_ROOT = Path(__file__).parent.parent

class Settings(BaseSettings):
    """Scheduler configuration loaded from environment variables"""
    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_prefix="SPACED_REVIEW_",
        extra="ignore",
    )

    database_url: str = f"sqlite:///{PROJECT_ROOT / 'spaced_review.db'}"
    log_level: str = "INFO"

    # SM-2 constants
    initial_ease_factor: float = 2.5
    min_ease_factor: float = 1.3
    max_ease_factor: Optional[float] = 3.0  # None = no ceiling
    lapse_ease_penalty: Optional[float] = 0.2  # None = SM-2 quality formula
    first_interval_days: float = 1.0
    second_interval_days: float = 6.0
    lapse_interval_days: float = 1.0
    max_interval_days: float = 36500.0

    # Mastery thresholds
    mastery_repetitions: int = 8
    mastery_interval_days: float = 60.0

    # Review flow
    default_batch_size: int = 20
    conflict_retries: int = 3
    forecast_days: int = 7

settings = Settings()
