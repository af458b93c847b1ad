"""Google OAuth2 — app credentials, the one-time consent flow, and token refresh."""

from __future__ import annotations

import logging
import time
from datetime import timezone

import anyio
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from unified_inbox.errors import AuthError
from unified_inbox.gmail.types import AccountCredential

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/gmail.labels",
    "https://www.googleapis.com/auth/userinfo.email",
    "openid",
]

_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
_TOKEN_URI = "https://oauth2.googleapis.com/token"

# Used when Google omits an expiry in a token response
_DEFAULT_TOKEN_LIFETIME_MS = 3_600_000
_CONSENT_TIMEOUT_SECONDS = 300


def _now_ms() -> int:
    return int(time.time() * 1000)


class OAuthManager:
    """Holds the OAuth client id/secret and talks to Google's token endpoint.

    Construction fails with AuthError when the app credentials are missing —
    the process cannot do anything useful without them.
    """

    def __init__(self, client_id: str, client_secret: str, redirect_port: int = 8089) -> None:
        if not client_id or not client_secret:
            raise AuthError(
                "GOOGLE_OAUTH_CLIENT_ID and GOOGLE_OAUTH_CLIENT_SECRET must be set"
            )
        self._client_id = client_id
        self._client_secret = client_secret
        self._redirect_port = redirect_port

    async def refresh(self, credential: AccountCredential) -> tuple[str, int]:
        """Exchange the stored refresh token for a new access token.

        Returns ``(access_token, token_expiry_ms)``.  Raises AuthError carrying
        the account id if Google rejects the refresh token (revoked/expired).
        """
        return await anyio.to_thread.run_sync(self._refresh_sync, credential)

    async def run_consent_flow(self) -> AccountCredential:
        """Open the browser consent page and wait for the redirect.

        Returns a new credential for whichever account the user signed in with.
        """
        return await anyio.to_thread.run_sync(self._consent_sync)

    # ── Internal ───────────────────────────────────────────────────────────────

    def _refresh_sync(self, credential: AccountCredential) -> tuple[str, int]:
        creds = Credentials(
            token=None,
            refresh_token=credential.refresh_token,
            token_uri=_TOKEN_URI,
            client_id=self._client_id,
            client_secret=self._client_secret,
            scopes=SCOPES,
        )
        try:
            creds.refresh(Request())
        except RefreshError as exc:
            raise AuthError(
                f"Token refresh failed for {credential.account_id}: {exc}",
                account_id=credential.account_id,
            ) from exc
        logger.info("Refreshed access token for %s", credential.account_id)
        return str(creds.token), _expiry_ms(creds)

    def _consent_sync(self) -> AccountCredential:
        flow = InstalledAppFlow.from_client_config(
            {
                "installed": {
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                    "auth_uri": _AUTH_URI,
                    "token_uri": _TOKEN_URI,
                    "redirect_uris": [f"http://localhost:{self._redirect_port}/"],
                }
            },
            SCOPES,
        )
        # prompt=consent forces Google to issue a refresh token every time
        creds = flow.run_local_server(
            port=self._redirect_port,
            access_type="offline",
            prompt="consent",
            timeout_seconds=_CONSENT_TIMEOUT_SECONDS,
            success_message="Authentication successful — you can close this window.",
        )
        if not creds.refresh_token:
            raise AuthError("Google did not return a refresh token")

        userinfo = build("oauth2", "v2", credentials=creds, cache_discovery=False)
        email = userinfo.userinfo().get().execute().get("email")
        if not email:
            raise AuthError("Could not retrieve email address from Google")

        logger.info("Consent granted for %s", email)
        return AccountCredential(
            account_id=str(email),
            access_token=str(creds.token),
            refresh_token=str(creds.refresh_token),
            token_expiry=_expiry_ms(creds),
        )


def _expiry_ms(creds: Credentials) -> int:
    """google-auth reports expiry as a naive UTC datetime; convert to epoch millis."""
    if creds.expiry is None:
        return _now_ms() + _DEFAULT_TOKEN_LIFETIME_MS
    return int(creds.expiry.replace(tzinfo=timezone.utc).timestamp() * 1000)
