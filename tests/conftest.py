"""Shared pytest fixtures."""

from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

import pytest

from unified_inbox.gmail.types import AccountCredential, UnifiedMessage
from unified_inbox.storage.accounts import AccountStore

# 2026-01-01T00:00:00Z, the fixed "now" for clock-dependent tests
_NOW_MS = 1_767_225_600_000


@pytest.fixture
def now_ms() -> int:
    return _NOW_MS


@pytest.fixture
def make_credential() -> Callable[..., AccountCredential]:
    """Factory for credentials whose token is valid for another hour by default."""

    def _make(
        account_id: str = "alice@example.com",
        token_expiry: int = _NOW_MS + 3_600_000,
        access_token: str = "access-old",
        refresh_token: str = "refresh-1",
    ) -> AccountCredential:
        return AccountCredential(
            account_id=account_id,
            access_token=access_token,
            refresh_token=refresh_token,
            token_expiry=token_expiry,
        )

    return _make


@pytest.fixture
def make_message() -> Callable[..., UnifiedMessage]:
    """Factory for messages dated ``ts`` seconds after the fixed "now"."""

    def _make(
        id: str,
        account: str = "alice@example.com",
        ts: int = 0,
        subject: str = "Test subject",
        sender: str = "Bob <bob@example.com>",
    ) -> UnifiedMessage:
        return UnifiedMessage(
            id=id,
            account=account,
            thread_id=f"thread_{id}",
            subject=subject,
            sender=sender,
            to=[account],
            date=datetime.fromtimestamp(_NOW_MS / 1000 + ts, tz=timezone.utc),
            snippet="snippet...",
            labels=frozenset({"INBOX"}),
            reply_message_id=f"<{id}@mail.example.com>",
        )

    return _make


@pytest.fixture
def store(tmp_path: Path) -> AccountStore:
    s = AccountStore(tmp_path / "accounts.db")
    yield s
    s.close()
