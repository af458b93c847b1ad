"""Token freshness — turns a stored credential into a ready-to-use GmailClient."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from unified_inbox.gmail.client import GmailClient
from unified_inbox.gmail.types import AccountCredential

if TYPE_CHECKING:
    from unified_inbox.auth.oauth import OAuthManager
    from unified_inbox.storage.accounts import CredentialRepository

logger = logging.getLogger(__name__)

DEFAULT_SKEW_SECONDS = 60

#: Builds a client for a credential whose access token is known to be fresh.
ClientFactory = Callable[[AccountCredential], GmailClient]


def _now_ms() -> int:
    return int(time.time() * 1000)


class CredentialManager:
    """Sole owner of the decision to refresh an account's access token.

    ``client_for()`` refreshes when the token expires within the skew window,
    persists the new token, updates the caller's credential in place, and only
    then builds the client.  Check → refresh → persist runs under a
    per-account lock, and the stored record is re-read inside the lock so a
    caller that lost the race adopts the winner's token instead of refreshing
    again.

    No clients are cached: every call builds a fresh one.
    """

    def __init__(
        self,
        oauth: OAuthManager,
        repository: CredentialRepository,
        client_factory: ClientFactory,
        skew_seconds: int = DEFAULT_SKEW_SECONDS,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._oauth = oauth
        self._repository = repository
        self._client_factory = client_factory
        self._skew_ms = skew_seconds * 1000
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    async def client_for(self, credential: AccountCredential) -> GmailClient:
        """Return a client for the account, refreshing its token first if needed.

        Raises:
            AuthError: if the refresh token was rejected.  The stored credential
                is kept; the account stays connected-but-unusable until the
                user re-authenticates.
        """
        if self._needs_refresh(credential):
            async with self._lock_for(credential.account_id):
                await self._refresh_locked(credential)
        return self._client_factory(credential)

    # ── Internal ───────────────────────────────────────────────────────────────

    def _needs_refresh(self, credential: AccountCredential) -> bool:
        return credential.token_expiry <= self._clock() + self._skew_ms

    def _lock_for(self, account_id: str) -> asyncio.Lock:
        lock = self._locks.get(account_id)
        if lock is None:
            lock = self._locks[account_id] = asyncio.Lock()
        return lock

    async def _refresh_locked(self, credential: AccountCredential) -> None:
        stored = self._repository.get(credential.account_id)
        if stored is not None and not self._needs_refresh(stored):
            # Another call refreshed while we waited for the lock
            logger.debug("Adopting token refreshed concurrently for %s", credential.account_id)
            credential.access_token = stored.access_token
            credential.token_expiry = stored.token_expiry
            return

        logger.info("Access token for %s expires soon; refreshing", credential.account_id)
        access_token, token_expiry = await self._oauth.refresh(credential)
        self._repository.update_tokens(credential.account_id, access_token, token_expiry)
        credential.access_token = access_token
        credential.token_expiry = token_expiry
