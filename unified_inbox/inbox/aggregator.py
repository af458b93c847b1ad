"""Scatter-gather across every connected account — one ranked stream, one search."""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from unified_inbox.errors import AccountNotFoundError
from unified_inbox.fanout import Err, Ok, gather_results
from unified_inbox.gmail.client import GmailClient
from unified_inbox.gmail.types import (
    AccountCredential,
    AccountStatus,
    ArchiveResult,
    FullMessage,
    UnifiedMessage,
)

if TYPE_CHECKING:
    from unified_inbox.auth.tokens import CredentialManager
    from unified_inbox.storage.accounts import CredentialRepository

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 50
DEFAULT_SEARCH_RESULTS = 20

#: Per-account query run by a fan-out: (client, per_account_limit) -> messages
_AccountQuery = Callable[[GmailClient, int], Awaitable[list[UnifiedMessage]]]


class Aggregator:
    """Presents all stored accounts as one inbox.

    Multi-account reads query every target account concurrently and merge by
    date.  An account that fails for any reason is logged and contributes
    nothing; the others are still returned.  A message repeated by one
    account appears once (see ``UnifiedMessage.key``).

    Each account is asked for ``ceil(max_results / n)`` messages, so the merged
    total can fall short of ``max_results`` when some accounts return fewer
    messages than their share.  It never exceeds ``max_results``.
    """

    def __init__(
        self,
        repository: CredentialRepository,
        credentials: CredentialManager,
        account_concurrency: int = 0,
    ) -> None:
        self._repository = repository
        self._credentials = credentials
        self._account_concurrency = account_concurrency

    # ── Multi-account ──────────────────────────────────────────────────────────

    async def get_messages(
        self,
        max_results: int = DEFAULT_MAX_RESULTS,
        accounts: list[str] | None = None,
        label_ids: list[str] | None = None,
    ) -> list[UnifiedMessage]:
        """Newest-first messages across the target accounts, at most max_results."""

        async def _query(client: GmailClient, limit: int) -> list[UnifiedMessage]:
            page = await client.list_messages(max_results=limit, label_ids=label_ids)
            return page.messages

        return await self._scatter_gather(_query, max_results, accounts, "list messages")

    async def search(
        self,
        query: str,
        max_results: int = DEFAULT_SEARCH_RESULTS,
        accounts: list[str] | None = None,
    ) -> list[UnifiedMessage]:
        """Run a Gmail search in every target account and merge newest-first."""

        async def _query(client: GmailClient, limit: int) -> list[UnifiedMessage]:
            return await client.search_messages(query, max_results=limit)

        return await self._scatter_gather(_query, max_results, accounts, "search")

    async def account_statuses(self) -> list[AccountStatus]:
        """Check every account by fetching its unread count.

        An account whose token can't be refreshed, or whose Gmail call fails,
        is reported as disconnected rather than raising.
        """
        targets = self._repository.get_all()

        async def _check(credential: AccountCredential) -> int:
            client = await self._credentials.client_for(credential)
            return await client.get_unread_count()

        results = await gather_results(targets, _check, self._account_concurrency)
        statuses: list[AccountStatus] = []
        for credential, result in zip(targets, results):
            if isinstance(result, Ok):
                statuses.append(AccountStatus(credential.account_id, result.value, True))
            else:
                logger.warning("Failed to verify %s: %s", credential.account_id, result.error)
                statuses.append(AccountStatus(credential.account_id, 0, False))
        return statuses

    # ── Single-account passthroughs ────────────────────────────────────────────

    async def client_for_account(self, account: str) -> GmailClient:
        """Return a ready client for a stored account.

        Raises:
            AccountNotFoundError: if no credential is stored for ``account``.
        """
        credential = self._repository.get(account)
        if credential is None:
            raise AccountNotFoundError(account)
        return await self._credentials.client_for(credential)

    async def get_message(self, message_id: str, account: str) -> UnifiedMessage | None:
        client = await self.client_for_account(account)
        return await client.get_message(message_id)

    async def get_full_message(self, message_id: str, account: str) -> FullMessage | None:
        client = await self.client_for_account(account)
        return await client.get_full_message(message_id)

    async def archive_message(self, message_id: str, account: str) -> None:
        client = await self.client_for_account(account)
        await client.archive_message(message_id)

    async def archive_messages(self, message_ids: list[str], account: str) -> ArchiveResult:
        client = await self.client_for_account(account)
        return await client.archive_messages(message_ids)

    # ── Internal ───────────────────────────────────────────────────────────────

    def _resolve_targets(self, accounts: list[str] | None) -> list[AccountCredential]:
        """All stored accounts, or only those named in ``accounts`` when it's non-empty."""
        stored = self._repository.get_all()
        if not accounts:
            return stored
        wanted = set(accounts)
        return [c for c in stored if c.account_id in wanted]

    async def _scatter_gather(
        self,
        query: _AccountQuery,
        max_results: int,
        accounts: list[str] | None,
        operation: str,
    ) -> list[UnifiedMessage]:
        targets = self._resolve_targets(accounts)
        if not targets or max_results <= 0:
            return []

        per_account = math.ceil(max_results / len(targets))

        async def _branch(credential: AccountCredential) -> list[UnifiedMessage]:
            client = await self._credentials.client_for(credential)
            return await query(client, per_account)

        results = await gather_results(targets, _branch, self._account_concurrency)

        merged: list[UnifiedMessage] = []
        seen: set[tuple[str, str]] = set()
        for credential, result in zip(targets, results):
            if isinstance(result, Err):
                logger.warning(
                    "Failed to %s for %s: %s", operation, credential.account_id, result.error
                )
                continue
            # a listing that shifts between pages can repeat a message
            for message in result.value:
                if message.key not in seen:
                    seen.add(message.key)
                    merged.append(message)

        # sorted() is stable, so equal dates keep account order
        merged = sorted(merged, key=lambda m: m.date, reverse=True)
        logger.debug(
            "%s: merged %d message(s) from %d account(s)", operation, len(merged), len(targets)
        )
        return merged[:max_results]
