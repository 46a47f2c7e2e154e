import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import Optional

class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: Optional[str] = None
    TEST_DATABASE_URL: Optional[str] = None

    # Trial credits
    TRIAL_INITIAL_CREDITS: int = 5
    TRIAL_MAX_PURCHASES: int = 2
    TRIAL_PACK_CREDITS: int = 5

    # Calling policy
    PAST_DUE_ALLOWS_CALLS: bool = True  # grace period: past_due stays callable, flagged for billing

    # Snapshot fan-out (latency only; results are identical either way)
    ENTITLEMENTS_PARALLEL_FANOUT: bool = False
    ENTITLEMENTS_FANOUT_WORKERS: int = 4

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )
settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("callgate")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    required_keys = [
        "DATABASE_URL",
    ]

    problems = [f"missing {key}" for key in required_keys if not getattr(cfg, key, None)]
    if cfg.TRIAL_INITIAL_CREDITS < 0:
        problems.append("TRIAL_INITIAL_CREDITS must be >= 0")
    if cfg.TRIAL_MAX_PURCHASES < 0:
        problems.append("TRIAL_MAX_PURCHASES must be >= 0")
    if cfg.TRIAL_PACK_CREDITS <= 0:
        problems.append("TRIAL_PACK_CREDITS must be > 0")
    if cfg.ENTITLEMENTS_FANOUT_WORKERS < 1:
        problems.append("ENTITLEMENTS_FANOUT_WORKERS must be >= 1")
    if cfg.LOG_LEVEL.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        problems.append(f"LOG_LEVEL {cfg.LOG_LEVEL!r} is not a logging level")

    if problems:
        message = f"Invalid configuration: {', '.join(problems)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
