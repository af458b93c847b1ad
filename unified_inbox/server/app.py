"""MCP server entry point — wires the components together and registers the tools."""

from __future__ import annotations

import logging
import sys
from functools import partial
from typing import Any

from dotenv import load_dotenv
from mcp.server.fastmcp import FastMCP

from unified_inbox.auth.oauth import OAuthManager
from unified_inbox.auth.tokens import CredentialManager
from unified_inbox.config import Settings
from unified_inbox.errors import AuthError
from unified_inbox.gmail.client import build_gmail_client
from unified_inbox.inbox.aggregator import Aggregator
from unified_inbox.inbox.summary import SummaryEngine
from unified_inbox.server.tools import InboxService
from unified_inbox.storage.accounts import AccountStore

logger = logging.getLogger(__name__)

SERVER_NAME = "unified-inbox"

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s — %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def build_service(settings: Settings) -> tuple[InboxService, AccountStore]:
    """Construct every component once and inject the shared store and manager.

    Returns the service and the store (the caller closes the store on exit).

    Raises:
        AuthError: if the OAuth client id/secret are not configured.
    """
    oauth = OAuthManager(settings.client_id, settings.client_secret, settings.redirect_port)
    store = AccountStore(settings.db_path)
    credentials = CredentialManager(
        oauth,
        store,
        client_factory=partial(
            build_gmail_client,
            message_concurrency=settings.message_concurrency,
            http_timeout=settings.http_timeout,
        ),
        skew_seconds=settings.refresh_skew_seconds,
    )
    aggregator = Aggregator(store, credentials, settings.account_concurrency)
    summary = SummaryEngine(store, credentials, settings.account_concurrency)
    return InboxService(aggregator, summary, oauth, store), store


def create_server(service: InboxService) -> FastMCP:
    """Register every tool on a new FastMCP server bound to ``service``.

    Parameter names are camelCase because they are the wire names clients send.
    """
    mcp = FastMCP(SERVER_NAME)

    # ── Account management ─────────────────────────────────────────────────────

    @mcp.tool()
    async def add_account() -> dict[str, Any]:
        """Add a Gmail account to the unified inbox. Opens a browser window for OAuth consent."""
        return await service.add_account()

    @mcp.tool()
    async def list_accounts() -> list[dict[str, Any]]:
        """List connected Gmail accounts with their unread counts and connection status."""
        return await service.list_accounts()

    @mcp.tool()
    def remove_account(email: str) -> dict[str, Any]:
        """Remove a Gmail account from the unified inbox.

        Args:
            email: The email address of the account to remove
        """
        return service.remove_account(email)

    # ── Unified reads ──────────────────────────────────────────────────────────

    @mcp.tool()
    async def get_messages(
        maxResults: int = 50,  # noqa: N803
        accounts: list[str] | None = None,
        labelIds: list[str] | None = None,  # noqa: N803
    ) -> dict[str, Any]:
        """Get a unified stream of messages from all connected accounts, newest first.

        Args:
            maxResults: Maximum number of messages to return (default: 50)
            accounts: Only these account email addresses; all accounts if empty
            labelIds: Filter by Gmail label IDs (e.g. INBOX, UNREAD)
        """
        return await service.get_messages(
            max_results=maxResults, accounts=accounts, label_ids=labelIds
        )

    @mcp.tool()
    async def search(
        query: str,
        maxResults: int = 20,  # noqa: N803
        accounts: list[str] | None = None,
    ) -> dict[str, Any]:
        """Search messages across all connected accounts using Gmail search syntax.

        Args:
            query: Gmail query, e.g. "from:john@example.com", "subject:invoice", "is:unread"
            maxResults: Maximum number of messages to return (default: 20)
            accounts: Only these account email addresses; all accounts if empty
        """
        return await service.search(query, max_results=maxResults, accounts=accounts)

    @mcp.tool()
    async def get_message(
        messageId: str,  # noqa: N803
        account: str,
        full: bool = False,
    ) -> dict[str, Any]:
        """Get one message, optionally with its full body.

        Args:
            messageId: The Gmail message ID
            account: The account the message belongs to
            full: Include the decoded plain-text and HTML body (default: false)
        """
        return await service.get_message(messageId, account, full=full)

    @mcp.tool()
    async def summary() -> dict[str, Any]:
        """Summarise all accounts: unread counts, totals, and recent subjects."""
        return await service.summary()

    # ── Archiving ──────────────────────────────────────────────────────────────

    @mcp.tool()
    async def archive_message(messageId: str, account: str) -> dict[str, Any]:  # noqa: N803
        """Archive one message (removes it from the inbox; the message is kept).

        Args:
            messageId: The Gmail message ID to archive
            account: The account the message belongs to
        """
        return await service.archive_message(messageId, account)

    @mcp.tool()
    async def archive_messages(messageIds: list[str], account: str) -> dict[str, Any]:  # noqa: N803
        """Archive several messages from one account at once.

        Args:
            messageIds: Gmail message IDs to archive
            account: The account the messages belong to
        """
        return await service.archive_messages(messageIds, account)

    # ── Sending ────────────────────────────────────────────────────────────────

    @mcp.tool()
    async def send(
        account: str,
        to: list[str],
        subject: str,
        body: str,
        cc: list[str] | None = None,
        bcc: list[str] | None = None,
        format: str = "plain",
        attachments: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Send an email from a specific account.

        Args:
            account: The account to send from
            to: Recipient email addresses
            subject: Email subject
            body: Email body, interpreted according to ``format``
            cc: CC recipients
            bcc: BCC recipients
            format: "plain" (default), "html", or "markdown"
            attachments: Files as {filename, content (base64), mimeType}
        """
        return await service.send(
            account, to, subject, body,
            cc=cc, bcc=bcc, format=format, attachments=attachments,
        )

    @mcp.tool()
    async def reply(
        messageId: str,  # noqa: N803
        account: str,
        body: str,
        format: str = "plain",
        attachments: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Reply to the sender of a message, keeping it in the same thread.

        Args:
            messageId: The Gmail message ID to reply to
            account: The account that received the original message
            body: Reply body, interpreted according to ``format``
            format: "plain" (default), "html", or "markdown"
            attachments: Files as {filename, content (base64), mimeType}
        """
        return await service.reply(
            messageId, account, body, format=format, attachments=attachments
        )

    return mcp


# ── Entry point ────────────────────────────────────────────────────────────────


def main() -> None:
    """Run the MCP server on stdio.  Called by the `unified-inbox-mcp` script."""
    load_dotenv()
    settings = Settings.from_env()

    # stdout carries the MCP protocol, so logs must go to stderr
    logging.basicConfig(
        level=settings.log_level,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
        stream=sys.stderr,
    )

    try:
        service, store = build_service(settings)
    except AuthError as exc:
        logger.error("Cannot start: %s", exc)
        raise SystemExit(1) from exc

    logger.info("Unified inbox MCP server starting (data dir: %s)", settings.data_dir)
    try:
        create_server(service).run()
    finally:
        store.close()
        logger.info("Server stopped")
