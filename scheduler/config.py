"""Scheduler configuration loaded from environment variables.

Every field can be overridden with a ``CLERKSHIP_`` prefixed variable, e.g.
``CLERKSHIP_MAX_RETRIES_PER_STUDENT=5``.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class SchedulerConfig(BaseSettings):
    """Engine defaults.

    These only apply where the data itself is silent: a matching capacity
    rule or a stored global default always wins.
    """

    # Capacity fallbacks (no capacity rule, no stored global default)
    default_max_students_per_day: int = Field(
        default=2,
        description="Students a preceptor may take on one day",
    )
    default_max_students_per_year: int = Field(
        default=50,
        description="Distinct students a preceptor may take in one calendar year",
    )

    # Teams
    default_team_size_min: int = Field(default=1, description="Smallest auto-formed team")
    default_team_size_max: Optional[int] = Field(default=None, description="Largest auto-formed team")

    # Engine
    max_retries_per_student: int = Field(
        default=3,
        description="Extra passes over unfinished requirements after the first pass",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = {
        "env_prefix": "CLERKSHIP_",
        "case_sensitive": False,
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


# Singleton pattern
_config: Optional[SchedulerConfig] = None


def get_config() -> SchedulerConfig:
    """Get the scheduler configuration singleton.

    Returns:
        SchedulerConfig: Scheduler configuration instance
    """
    global _config
    if _config is None:
        _config = SchedulerConfig()
    return _config
