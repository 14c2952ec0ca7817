import os
from dataclasses import dataclass


def _positive_int(raw: str, default: int) -> int:
    try:
        return max(1, int(raw))
    except ValueError:
        return default


@dataclass(frozen=True)
class Config:
    database_url: str
    listen_database_url: str
    poll_interval_seconds: float = 5.0
    batch_size: int = 10
    max_retries: int = 3
    health_port: int = 8081
    log_format: str = "json"
    sweep_interval_hours: int = 24
    active_user_window_hours: int = 24

    @classmethod
    def from_env(cls) -> "Config":
        database_url = os.environ.get("DATABASE_URL")
        if not database_url:
            raise RuntimeError("DATABASE_URL must be set")

        return cls(
            database_url=database_url,
            listen_database_url=os.environ.get("AURA_WORKER_LISTEN_DATABASE_URL") or database_url,
            poll_interval_seconds=float(os.environ.get("AURA_POLL_INTERVAL", "5.0")),
            batch_size=int(os.environ.get("AURA_BATCH_SIZE", "10")),
            max_retries=int(os.environ.get("AURA_MAX_RETRIES", "3")),
            health_port=int(os.environ.get("AURA_HEALTH_PORT", "8081")),
            log_format=os.environ.get("AURA_LOG_FORMAT", "json"),
            sweep_interval_hours=_positive_int(
                os.environ.get("AURA_SWEEP_INTERVAL_HOURS", "24"), 24
            ),
            active_user_window_hours=_positive_int(
                os.environ.get("AURA_ACTIVE_USER_WINDOW_HOURS", "24"), 24
            ),
        )
