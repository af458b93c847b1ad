"""Per-account inbox statistics, fanned out the same way as the Aggregator."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from unified_inbox.fanout import Ok, gather_results
from unified_inbox.gmail.client import INBOX_LABEL
from unified_inbox.gmail.types import AccountCredential, AccountSummary, UnifiedSummary

if TYPE_CHECKING:
    from unified_inbox.auth.tokens import CredentialManager
    from unified_inbox.storage.accounts import CredentialRepository

logger = logging.getLogger(__name__)

RECENT_SUBJECT_COUNT = 5


class SummaryEngine:
    """Builds the unread/total/recent-subjects overview for every account."""

    def __init__(
        self,
        repository: CredentialRepository,
        credentials: CredentialManager,
        account_concurrency: int = 0,
    ) -> None:
        self._repository = repository
        self._credentials = credentials
        self._account_concurrency = account_concurrency

    async def get_summary(self) -> UnifiedSummary:
        """Summarise every account. A failed account shows zeros, never an error."""
        targets = self._repository.get_all()
        if not targets:
            return UnifiedSummary(total_unread=0, accounts=[])

        results = await gather_results(targets, self._summarise, self._account_concurrency)

        summaries: list[AccountSummary] = []
        for credential, result in zip(targets, results):
            if isinstance(result, Ok):
                summaries.append(result.value)
            else:
                logger.warning(
                    "Failed to get summary for %s: %s", credential.account_id, result.error
                )
                summaries.append(AccountSummary(account=credential.account_id))

        return UnifiedSummary(
            total_unread=sum(s.unread_count for s in summaries),
            accounts=summaries,
        )

    async def _summarise(self, credential: AccountCredential) -> AccountSummary:
        client = await self._credentials.client_for(credential)
        # all three settle before the first failure is raised
        results = await asyncio.gather(
            client.get_unread_count(),
            client.get_total_count(),
            client.list_messages(max_results=RECENT_SUBJECT_COUNT, label_ids=[INBOX_LABEL]),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        unread, total, page = results
        recent = sorted(page.messages, key=lambda m: m.date, reverse=True)
        return AccountSummary(
            account=credential.account_id,
            unread_count=unread,
            total_count=total,
            recent_subjects=[m.subject for m in recent[:RECENT_SUBJECT_COUNT]],
        )
