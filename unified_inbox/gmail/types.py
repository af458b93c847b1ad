"""Data types shared across the Gmail, auth, compose and inbox modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


@dataclass
class AccountCredential:
    """OAuth tokens for one Gmail account, keyed by its email address.

    Mutable on purpose: CredentialManager rewrites ``access_token`` and
    ``token_expiry`` in place after a refresh so the caller sees the new token.
    ``refresh_token`` is never touched by a refresh.
    """

    account_id: str
    access_token: str
    refresh_token: str
    token_expiry: int  # epoch millis


@dataclass(frozen=True)
class UnifiedMessage:
    """Message metadata from one account, as returned by a Gmail metadata fetch.

    ``id`` is only unique within its account — use ``key`` when mixing accounts.
    """

    id: str
    account: str
    thread_id: str
    subject: str
    sender: str
    to: list[str] = field(default_factory=list)
    date: datetime = _EPOCH
    snippet: str = ""
    labels: frozenset[str] = frozenset()
    is_unread: bool = False
    reply_message_id: str | None = None  # RFC 2822 Message-ID header

    @property
    def key(self) -> tuple[str, str]:
        return (self.account, self.id)

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready form used by the tool payloads."""
        data: dict[str, Any] = {
            "id": self.id,
            "account": self.account,
            "threadId": self.thread_id,
            "subject": self.subject,
            "from": self.sender,
            "to": list(self.to),
            "date": self.date.isoformat(),
            "snippet": self.snippet,
            "labels": sorted(self.labels),
            "isUnread": self.is_unread,
        }
        if self.reply_message_id:
            data["replyMessageId"] = self.reply_message_id
        return data


@dataclass(frozen=True)
class MessagePage:
    """One page of resolved messages plus the cursor for the next page."""

    messages: list[UnifiedMessage]
    next_page_token: str | None = None


@dataclass(frozen=True)
class FullMessage:
    """Decoded body content of one message."""

    body: str
    html: str | None = None


@dataclass(frozen=True)
class Label:
    id: str
    name: str


@dataclass(frozen=True)
class ArchiveResult:
    success_count: int
    failed_count: int


@dataclass(frozen=True)
class AccountSummary:
    account: str
    unread_count: int = 0
    total_count: int = 0
    recent_subjects: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "email": self.account,
            "unreadCount": self.unread_count,
            "totalMessages": self.total_count,
            "recentSubjects": list(self.recent_subjects),
        }


@dataclass(frozen=True)
class UnifiedSummary:
    total_unread: int
    accounts: list[AccountSummary] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalUnread": self.total_unread,
            "accounts": [a.to_dict() for a in self.accounts],
        }


@dataclass(frozen=True)
class AccountStatus:
    """Result of a connection check for one account."""

    account: str
    unread_count: int
    is_connected: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "email": self.account,
            "unreadCount": self.unread_count,
            "isConnected": self.is_connected,
        }


# ── Composition ────────────────────────────────────────────────────────────────


class EmailFormat(str, Enum):
    PLAIN = "plain"
    HTML = "html"
    MARKDOWN = "markdown"


@dataclass(frozen=True)
class Attachment:
    """A file to attach. ``content`` is the file's bytes, base64-encoded."""

    filename: str
    content: str
    mime_type: str = "application/octet-stream"


@dataclass(frozen=True)
class ComposeRequest:
    to: list[str]
    subject: str
    body: str
    format: EmailFormat = EmailFormat.PLAIN
    cc: list[str] = field(default_factory=list)
    bcc: list[str] = field(default_factory=list)
    in_reply_to: str | None = None
    attachments: list[Attachment] = field(default_factory=list)


@dataclass(frozen=True)
class ComposedEmail:
    """A wire-ready MIME document.

    ``raw`` is the base64url form the Gmail send endpoint expects.
    ``boundaries`` lists the multipart boundary tokens, outermost first.
    """

    document: str
    raw: str
    boundaries: tuple[str, ...] = ()
