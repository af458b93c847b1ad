"""Tool implementations — every protocol operation, returning JSON-ready payloads.

Request-level failures (unknown account, Gmail errors, bad input) come back as
``{"success": False, "error": ...}`` instead of raising.  ``list_accounts``
reports per-account failures as ``isConnected: false``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from unified_inbox.compose.mime import compose, reply_address, reply_subject
from unified_inbox.gmail.types import Attachment, ComposeRequest, EmailFormat

if TYPE_CHECKING:
    from unified_inbox.auth.oauth import OAuthManager
    from unified_inbox.inbox.aggregator import Aggregator
    from unified_inbox.inbox.summary import SummaryEngine
    from unified_inbox.storage.accounts import CredentialRepository

logger = logging.getLogger(__name__)

_Payload = dict[str, Any]


def _error(exc: Exception | str) -> _Payload:
    return {"success": False, "error": str(exc)}


def _parse_format(value: str | None) -> EmailFormat:
    try:
        return EmailFormat((value or EmailFormat.PLAIN.value).lower())
    except ValueError:
        raise ValueError(
            f"Unsupported format {value!r}; expected one of: plain, html, markdown"
        ) from None


def _parse_attachments(raw: list[dict[str, Any]] | None) -> list[Attachment]:
    attachments: list[Attachment] = []
    for item in raw or []:
        if not item.get("filename") or not item.get("content"):
            raise ValueError("Each attachment needs a filename and base64 content")
        attachments.append(Attachment(
            filename=str(item["filename"]),
            content=str(item["content"]),
            mime_type=str(item.get("mimeType") or "application/octet-stream"),
        ))
    return attachments


class InboxService:
    """The operations exposed to MCP clients and the CLI.

    Usage::

        service = InboxService(aggregator, summary_engine, oauth, store)
        payload = await service.get_messages(max_results=20)
    """

    def __init__(
        self,
        aggregator: Aggregator,
        summary_engine: SummaryEngine,
        oauth: OAuthManager,
        repository: CredentialRepository,
    ) -> None:
        self._aggregator = aggregator
        self._summary = summary_engine
        self._oauth = oauth
        self._repository = repository

    # ── Accounts ───────────────────────────────────────────────────────────────

    async def add_account(self) -> _Payload:
        """Run the browser consent flow and store the resulting credential."""
        try:
            credential = await self._oauth.run_consent_flow()
            self._repository.put(credential)
        except Exception as exc:  # noqa: BLE001
            logger.error("add_account failed: %s", exc)
            return _error(exc)
        return {"success": True, "email": credential.account_id}

    async def list_accounts(self) -> list[_Payload]:
        statuses = await self._aggregator.account_statuses()
        return [s.to_dict() for s in statuses]

    def remove_account(self, email: str) -> _Payload:
        if self._repository.delete(email):
            return {"success": True, "message": f"Account {email} removed successfully"}
        return {"success": False, "message": f"Account {email} not found"}

    # ── Reading ────────────────────────────────────────────────────────────────

    async def get_messages(
        self,
        max_results: int = 50,
        accounts: list[str] | None = None,
        label_ids: list[str] | None = None,
    ) -> _Payload:
        try:
            messages = await self._aggregator.get_messages(
                max_results=max_results, accounts=accounts, label_ids=label_ids
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("get_messages failed: %s", exc, exc_info=True)
            return _error(exc)
        return {"messages": [m.to_dict() for m in messages], "count": len(messages)}

    async def search(
        self,
        query: str,
        max_results: int = 20,
        accounts: list[str] | None = None,
    ) -> _Payload:
        try:
            messages = await self._aggregator.search(
                query, max_results=max_results, accounts=accounts
            )
        except Exception as exc:  # noqa: BLE001
            logger.error("search failed: %s", exc, exc_info=True)
            return _error(exc)
        return {
            "messages": [m.to_dict() for m in messages],
            "count": len(messages),
            "query": query,
        }

    async def get_message(self, message_id: str, account: str, full: bool = False) -> _Payload:
        try:
            message = await self._aggregator.get_message(message_id, account)
            if message is None:
                return _error("Message not found")
            payload: _Payload = {"message": message.to_dict()}
            if full:
                content = await self._aggregator.get_full_message(message_id, account)
                if content is not None:
                    payload["body"] = content.body
                    if content.html is not None:
                        payload["html"] = content.html
        except Exception as exc:  # noqa: BLE001
            logger.error("get_message %s/%s failed: %s", account, message_id, exc)
            return _error(exc)
        return payload

    async def summary(self) -> _Payload:
        try:
            result = await self._summary.get_summary()
        except Exception as exc:  # noqa: BLE001
            logger.error("summary failed: %s", exc, exc_info=True)
            return _error(exc)
        return result.to_dict()

    # ── Archiving ──────────────────────────────────────────────────────────────

    async def archive_message(self, message_id: str, account: str) -> _Payload:
        try:
            await self._aggregator.archive_message(message_id, account)
        except Exception as exc:  # noqa: BLE001
            logger.error("archive_message %s/%s failed: %s", account, message_id, exc)
            return _error(exc)
        return {"success": True}

    async def archive_messages(self, message_ids: list[str], account: str) -> _Payload:
        try:
            result = await self._aggregator.archive_messages(message_ids, account)
        except Exception as exc:  # noqa: BLE001
            logger.error("archive_messages in %s failed: %s", account, exc)
            return {
                "success": False,
                "archived": 0,
                "failed": len(message_ids),
                "error": str(exc),
            }
        return {
            "success": result.failed_count == 0,
            "archived": result.success_count,
            "failed": result.failed_count,
        }

    # ── Sending ────────────────────────────────────────────────────────────────

    async def send(
        self,
        account: str,
        to: list[str],
        subject: str,
        body: str,
        cc: list[str] | None = None,
        bcc: list[str] | None = None,
        format: str | None = None,
        attachments: list[dict[str, Any]] | None = None,
    ) -> _Payload:
        """Compose and send a new message from ``account``.

        A send that times out may still have been delivered; it is not retried.
        """
        try:
            request = ComposeRequest(
                to=list(to),
                subject=subject,
                body=body,
                format=_parse_format(format),
                cc=list(cc or []),
                bcc=list(bcc or []),
                attachments=_parse_attachments(attachments),
            )
            client = await self._aggregator.client_for_account(account)
            message_id = await client.send(compose(request))
        except Exception as exc:  # noqa: BLE001
            logger.error("send from %s failed: %s", account, exc)
            return _error(exc)
        return {"success": True, "messageId": message_id}

    async def reply(
        self,
        message_id: str,
        account: str,
        body: str,
        format: str | None = None,
        attachments: list[dict[str, Any]] | None = None,
    ) -> _Payload:
        """Reply to the sender of ``message_id`` in the same thread."""
        try:
            original = await self._aggregator.get_message(message_id, account)
            if original is None:
                return _error("Original message not found")

            request = ComposeRequest(
                to=[reply_address(original.sender)],
                subject=reply_subject(original.subject),
                body=body,
                format=_parse_format(format),
                in_reply_to=original.reply_message_id,
                attachments=_parse_attachments(attachments),
            )
            client = await self._aggregator.client_for_account(account)
            sent_id = await client.send(compose(request), thread_id=original.thread_id)
        except Exception as exc:  # noqa: BLE001
            logger.error("reply to %s/%s failed: %s", account, message_id, exc)
            return _error(exc)
        return {"success": True, "messageId": sent_id}
