"""
Runtime settings for jobmatch, read from environment variables.

Call load_env() first if a .env file should be honoured.
"""

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional


def _int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    api_key: Optional[str] = None
    model: str = "gemini-2.0-flash"
    db_path: Path = Path("data/jobmatch.db")
    score_timeout: float = 15.0
    analysis_timeout: float = 45.0
    max_retries: int = 2
    backoff_base: float = 1.0
    cache_ttl: timedelta = timedelta(hours=1)
    batch_chunk_size: int = 5
    write_chunk_size: int = 10
    max_fan_out: int = 10
    max_in_flight: int = 8
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            env: Mapping to read from (default: os.environ)

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        env = os.environ if env is None else env
        return cls(
            api_key=env.get("GEMINI_API_KEY") or None,
            model=env.get("JOBMATCH_MODEL", cls.model),
            db_path=Path(env.get("JOBMATCH_DB", str(cls.db_path))),
            score_timeout=_float(env, "JOBMATCH_SCORE_TIMEOUT", cls.score_timeout),
            analysis_timeout=_float(env, "JOBMATCH_ANALYSIS_TIMEOUT", cls.analysis_timeout),
            max_retries=_int(env, "JOBMATCH_MAX_RETRIES", cls.max_retries),
            backoff_base=_float(env, "JOBMATCH_BACKOFF_BASE", cls.backoff_base),
            cache_ttl=timedelta(seconds=_int(env, "JOBMATCH_CACHE_TTL", 3600, minimum=1)),
            batch_chunk_size=_int(env, "JOBMATCH_BATCH_CHUNK", cls.batch_chunk_size, minimum=1),
            write_chunk_size=_int(env, "JOBMATCH_WRITE_CHUNK", cls.write_chunk_size, minimum=1),
            max_fan_out=_int(env, "JOBMATCH_FAN_OUT", cls.max_fan_out, minimum=1),
            max_in_flight=_int(env, "JOBMATCH_MAX_IN_FLIGHT", cls.max_in_flight, minimum=1),
            log_level=env.get("JOBMATCH_LOG_LEVEL", cls.log_level).upper(),
        )
