"""Runtime configuration — read once from the environment at process start."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


def _default_data_dir() -> Path:
    return Path.home() / ".unified-inbox"


def _env_int(name: str, default: int) -> int:
    """Parse an integer env var. Falls back to `default` on parse error."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning("Invalid %s %r; defaulting to %d", name, raw, default)
        return default


@dataclass
class Settings:
    """Everything the composition root needs to wire up the inbox."""

    client_id: str = ""
    client_secret: str = ""
    data_dir: Path = field(default_factory=_default_data_dir)
    refresh_skew_seconds: int = 60
    # 0 means unbounded fan-out for that phase
    account_concurrency: int = 0
    message_concurrency: int = 10
    http_timeout: int = 30
    redirect_port: int = 8089
    log_level: str = "INFO"

    @property
    def db_path(self) -> Path:
        return self.data_dir / "accounts.db"

    @classmethod
    def from_env(cls) -> Settings:
        """Build Settings from environment variables."""
        data_dir = os.environ.get("UNIFIED_INBOX_DATA_DIR", "")
        return cls(
            client_id=os.environ.get("GOOGLE_OAUTH_CLIENT_ID", ""),
            client_secret=os.environ.get("GOOGLE_OAUTH_CLIENT_SECRET", ""),
            data_dir=Path(data_dir).expanduser() if data_dir else _default_data_dir(),
            refresh_skew_seconds=_env_int("UNIFIED_INBOX_REFRESH_SKEW_SECONDS", 60),
            account_concurrency=_env_int("UNIFIED_INBOX_ACCOUNT_CONCURRENCY", 0),
            message_concurrency=_env_int("UNIFIED_INBOX_MESSAGE_CONCURRENCY", 10),
            http_timeout=_env_int("UNIFIED_INBOX_HTTP_TIMEOUT", 30),
            redirect_port=_env_int("OAUTH_REDIRECT_PORT", 8089),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )
