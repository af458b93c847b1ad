"""Gmail client — wraps one account's Gmail REST API behind a typed async API."""

import base64
import logging
from datetime import datetime, timezone
from typing import Any

import anyio
import httplib2
from google.oauth2.credentials import Credentials
from google_auth_httplib2 import AuthorizedHttp
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import HttpRequest

from unified_inbox.errors import GmailError
from unified_inbox.fanout import Err, gather_results, ok_values
from unified_inbox.gmail.types import (
    AccountCredential,
    ArchiveResult,
    ComposedEmail,
    FullMessage,
    Label,
    MessagePage,
    UnifiedMessage,
)

logger = logging.getLogger(__name__)

# Gmail system label IDs (not user-created; used verbatim)
INBOX_LABEL = "INBOX"
UNREAD_LABEL = "UNREAD"

_METADATA_HEADERS = ["From", "To", "Subject", "Date", "Message-ID"]
_NO_SUBJECT = "(No subject)"

# Gmail's user id alias for "the authenticated account"
_ME = "me"


class GmailClient:
    """Async wrapper around one account's Gmail API service.

    Every method is scoped to a single mailbox.  Blocking discovery-client
    requests run in worker threads so that many accounts and many messages can
    be fetched at once.  Construct with `build_gmail_client()` for a live
    account; tests pass a mocked service directly.
    """

    def __init__(self, service: Any, account: str, message_concurrency: int = 0) -> None:
        self._service = service
        self._account = account
        self._message_concurrency = message_concurrency

    @property
    def account(self) -> str:
        return self._account

    # ── Messages ───────────────────────────────────────────────────────────────

    async def list_messages(
        self,
        max_results: int = 20,
        page_token: str | None = None,
        label_ids: list[str] | None = None,
        query: str | None = None,
    ) -> MessagePage:
        """Return one page of messages with metadata resolved.

        Makes one list call for the page's IDs, then one metadata fetch per ID,
        all concurrently.  A message whose fetch fails is dropped from the page.
        """
        params: dict[str, Any] = {"userId": _ME, "maxResults": max_results}
        if page_token:
            params["pageToken"] = page_token
        if label_ids:
            params["labelIds"] = label_ids
        if query:
            params["q"] = query

        raw = await self._execute(self._service.users().messages().list(**params))
        ids = [str(m["id"]) for m in raw.get("messages") or [] if m.get("id")]
        next_token = raw.get("nextPageToken") or None
        if not ids:
            return MessagePage(messages=[], next_page_token=next_token)

        results = await gather_results(ids, self._fetch_metadata, self._message_concurrency)
        for msg_id, result in zip(ids, results):
            if isinstance(result, Err):
                logger.warning(
                    "Dropping message %s from %s page: %s", msg_id, self._account, result.error
                )
        return MessagePage(messages=ok_values(results), next_page_token=next_token)

    async def get_message(self, message_id: str) -> UnifiedMessage | None:
        """Return message metadata, or None if Gmail doesn't know the ID."""
        try:
            return await self._fetch_metadata(message_id)
        except GmailError as exc:
            if exc.status == 404:
                return None
            raise

    async def get_full_message(self, message_id: str) -> FullMessage | None:
        """Return the decoded plain/HTML body, or None if the ID is unknown."""
        try:
            raw = await self._execute(
                self._service.users().messages().get(
                    userId=_ME, id=message_id, format="full"
                )
            )
        except GmailError as exc:
            if exc.status == 404:
                return None
            raise
        return self._extract_bodies(raw.get("payload") or {})

    async def search_messages(self, query: str, max_results: int = 20) -> list[UnifiedMessage]:
        """Return messages matching a Gmail search query (e.g. ``from:bob is:unread``)."""
        page = await self.list_messages(max_results=max_results, query=query)
        return page.messages

    # ── Counters & labels ──────────────────────────────────────────────────────

    async def get_unread_count(self) -> int:
        inbox = await self._get_inbox_label()
        return int(inbox.get("messagesUnread") or 0)

    async def get_total_count(self) -> int:
        inbox = await self._get_inbox_label()
        return int(inbox.get("messagesTotal") or 0)

    async def get_labels(self) -> list[Label]:
        raw = await self._execute(self._service.users().labels().list(userId=_ME))
        return [
            Label(id=str(lbl["id"]), name=str(lbl["name"]))
            for lbl in raw.get("labels") or []
            if "id" in lbl and "name" in lbl
        ]

    # ── Mutations ──────────────────────────────────────────────────────────────

    async def send(self, email: ComposedEmail, thread_id: str | None = None) -> str:
        """Submit a composed message and return Gmail's ID for the sent copy."""
        body: dict[str, Any] = {"raw": email.raw}
        if thread_id:
            body["threadId"] = thread_id
        raw = await self._execute(
            self._service.users().messages().send(userId=_ME, body=body)
        )
        sent_id = str(raw.get("id", ""))
        logger.info("Sent message %s from %s", sent_id, self._account)
        return sent_id

    async def archive_message(self, message_id: str) -> None:
        """Remove the INBOX label. The message itself is kept."""
        await self._execute(
            self._service.users().messages().modify(
                userId=_ME, id=message_id, body={"removeLabelIds": [INBOX_LABEL]}
            )
        )
        logger.debug("Archived message %s in %s", message_id, self._account)

    async def archive_messages(self, message_ids: list[str]) -> ArchiveResult:
        """Archive every ID concurrently; one failure never stops the rest."""
        results = await gather_results(
            message_ids, self.archive_message, self._message_concurrency
        )
        failed = 0
        for msg_id, result in zip(message_ids, results):
            if isinstance(result, Err):
                failed += 1
                logger.warning(
                    "Failed to archive message %s in %s: %s", msg_id, self._account, result.error
                )
        return ArchiveResult(success_count=len(message_ids) - failed, failed_count=failed)

    # ── Internal helpers ───────────────────────────────────────────────────────

    async def _fetch_metadata(self, message_id: str) -> UnifiedMessage:
        raw = await self._execute(
            self._service.users().messages().get(
                userId=_ME,
                id=message_id,
                format="metadata",
                metadataHeaders=_METADATA_HEADERS,
            )
        )
        return self._parse_metadata(raw, self._account)

    async def _get_inbox_label(self) -> dict[str, Any]:
        return await self._execute(
            self._service.users().labels().get(userId=_ME, id=INBOX_LABEL)
        )

    async def _execute(self, request: Any) -> dict[str, Any]:
        """Run a prepared API request off the event loop and return its JSON body.

        Raises GmailError (carrying the HTTP status) if Gmail rejects it.
        """
        try:
            result = await anyio.to_thread.run_sync(request.execute)
        except HttpError as exc:
            status = getattr(exc.resp, "status", None)
            raise GmailError(
                f"Gmail request failed for {self._account} (HTTP {status}): {exc}",
                status=int(status) if status is not None else None,
            ) from exc
        return result or {}

    @staticmethod
    def _parse_metadata(data: dict[str, Any], account: str) -> UnifiedMessage:
        """Map a ``format=metadata`` message resource to a UnifiedMessage."""
        headers = (data.get("payload") or {}).get("headers") or []

        def _header(name: str) -> str:
            for h in headers:
                if str(h.get("name", "")).lower() == name.lower():
                    return str(h.get("value", ""))
            return ""

        to_raw = _header("To")
        labels = frozenset(str(lbl) for lbl in data.get("labelIds") or [])
        internal_ms = int(data.get("internalDate") or 0)

        return UnifiedMessage(
            id=str(data.get("id", "")),
            account=account,
            thread_id=str(data.get("threadId", "")),
            subject=_header("Subject") or _NO_SUBJECT,
            sender=_header("From"),
            to=[addr.strip() for addr in to_raw.split(",") if addr.strip()],
            date=datetime.fromtimestamp(internal_ms / 1000, tz=timezone.utc),
            snippet=str(data.get("snippet", "")),
            labels=labels,
            is_unread=UNREAD_LABEL in labels,
            reply_message_id=_header("Message-ID") or None,
        )

    @staticmethod
    def _extract_bodies(payload: dict[str, Any]) -> FullMessage:
        """Walk the MIME part tree (any depth) and collect text/plain and text/html.

        Parts are visited in document order; all matching parts are concatenated.
        """
        plain: list[str] = []
        html: list[str] = []
        stack = [payload]
        while stack:
            part = stack.pop()
            data = (part.get("body") or {}).get("data")
            mime_type = part.get("mimeType")
            if data and mime_type == "text/plain":
                plain.append(_decode_base64url(data))
            elif data and mime_type == "text/html":
                html.append(_decode_base64url(data))
            # reversed so the first child is popped first
            stack.extend(reversed(part.get("parts") or []))

        if not plain and not html and not payload.get("parts"):
            data = (payload.get("body") or {}).get("data")
            if data:
                plain.append(_decode_base64url(data))

        text = "".join(plain)
        markup = "".join(html)
        return FullMessage(body=text or markup, html=markup or None)


def _decode_base64url(data: str) -> str:
    """Decode Gmail's base64url body data, tolerating missing padding."""
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded).decode("utf-8", errors="replace")


def build_gmail_client(
    credential: AccountCredential,
    message_concurrency: int = 0,
    http_timeout: int = 30,
) -> GmailClient:
    """Return a GmailClient authenticated with the credential's current access token.

    The google-auth Credentials object carries only the access token, so the
    discovery client can never refresh on its own; CredentialManager owns that.
    Each request gets its own httplib2.Http because Http objects are not
    thread-safe and requests run in worker threads.
    """
    creds = Credentials(token=credential.access_token)

    def _request_builder(_http: Any, *args: Any, **kwargs: Any) -> HttpRequest:
        return HttpRequest(AuthorizedHttp(creds, http=httplib2.Http(timeout=http_timeout)), *args, **kwargs)

    service = build(
        "gmail",
        "v1",
        http=AuthorizedHttp(creds, http=httplib2.Http(timeout=http_timeout)),
        requestBuilder=_request_builder,
        cache_discovery=False,
    )
    return GmailClient(service, credential.account_id, message_concurrency=message_concurrency)
