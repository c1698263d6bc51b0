import os
from dataclasses import dataclass

from .compliance import SUPPORTED_WINDOWS
from .models import DEFAULT_DAILY_COST, DEFAULT_TIMEZONE
from .patterns import PATTERN_WINDOW_DAYS


@dataclass(frozen=True)
class Config:
    default_timezone: str = DEFAULT_TIMEZONE
    default_daily_cost: float = DEFAULT_DAILY_COST
    compliance_window_days: int = 30
    pattern_window_days: int = PATTERN_WINDOW_DAYS
    log_format: str = "json"
    database_url: str | None = None

    @classmethod
    def from_env(cls) -> "Config":
        compliance_window = int(os.environ.get("RECOVERY_COMPLIANCE_WINDOW_DAYS", "30"))
        if compliance_window not in SUPPORTED_WINDOWS:
            raise RuntimeError(
                f"RECOVERY_COMPLIANCE_WINDOW_DAYS must be one of {SUPPORTED_WINDOWS}"
            )
        pattern_window = int(os.environ.get("RECOVERY_PATTERN_WINDOW_DAYS", str(PATTERN_WINDOW_DAYS)))
        if pattern_window < 1:
            raise RuntimeError("RECOVERY_PATTERN_WINDOW_DAYS must be positive")

        return cls(
            default_timezone=os.environ.get("RECOVERY_DEFAULT_TIMEZONE", DEFAULT_TIMEZONE),
            default_daily_cost=float(
                os.environ.get("RECOVERY_DEFAULT_DAILY_COST", str(DEFAULT_DAILY_COST))
            ),
            compliance_window_days=compliance_window,
            pattern_window_days=pattern_window,
            log_format=os.environ.get("RECOVERY_LOG_FORMAT", "json"),
            database_url=os.environ.get("DATABASE_URL") or None,
        )

    def require_database_url(self) -> str:
        if not self.database_url:
            raise RuntimeError("DATABASE_URL must be set")
        return self.database_url
