"""CLI command implementations — all commands delegate to InboxService."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

if TYPE_CHECKING:
    from unified_inbox.server.tools import InboxService

logger = logging.getLogger(__name__)
console = Console(width=200)


@click.command()
@click.pass_obj
def accounts(service: InboxService) -> None:
    """List connected accounts and check each one's connection."""
    statuses = asyncio.run(service.list_accounts())

    if not statuses:
        console.print(
            "[yellow]No accounts connected. "
            "Run `unified-inbox add-account` to get started.[/yellow]"
        )
        return

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Account", max_width=40)
    table.add_column("Unread", justify="right", width=8)
    table.add_column("Status", width=14)

    for status in statuses:
        state = "[green]connected[/green]" if status["isConnected"] else "[red]disconnected[/red]"
        table.add_row(status["email"], str(status["unreadCount"]), state)

    console.print(table)


@click.command(name="add-account")
@click.pass_obj
def add_account(service: InboxService) -> None:
    """Connect a Gmail account through the browser consent flow."""
    console.print("Opening browser for Google sign-in...")
    result = asyncio.run(service.add_account())
    if result.get("success"):
        console.print(f"[green]Added {result['email']}.[/green]")
    else:
        console.print(f"[red]Could not add account: {result.get('error')}[/red]")


@click.command(name="remove-account")
@click.argument("email")
@click.pass_obj
def remove_account(service: InboxService, email: str) -> None:
    """Forget an account and its stored tokens."""
    result = service.remove_account(email)
    style = "green" if result["success"] else "yellow"
    console.print(f"[{style}]{result['message']}[/{style}]")


@click.command()
@click.option("--limit", default=20, show_default=True, help="Number of messages.")
@click.option(
    "--account", "account_filter", multiple=True,
    help="Only this account (repeatable). Defaults to all.",
)
@click.option("--query", default=None, help="Gmail search query instead of the latest messages.")
@click.pass_obj
def inbox(
    service: InboxService,
    limit: int,
    account_filter: tuple[str, ...],
    query: str | None,
) -> None:
    """Show the merged, newest-first message stream."""
    selected = list(account_filter) or None
    if query:
        payload = asyncio.run(service.search(query, max_results=limit, accounts=selected))
    else:
        payload = asyncio.run(service.get_messages(max_results=limit, accounts=selected))

    if "error" in payload:
        console.print(f"[red]{payload['error']}[/red]")
        return
    if not payload["messages"]:
        console.print("[yellow]No messages.[/yellow]")
        return

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("#", style="dim", width=3)
    table.add_column("Date", width=16)
    table.add_column("Account", max_width=28)
    table.add_column("From", max_width=30)
    table.add_column("Subject", max_width=50)

    for i, msg in enumerate(payload["messages"], start=1):
        subject = f"[bold]{msg['subject']}[/bold]" if msg["isUnread"] else msg["subject"]
        table.add_row(
            str(i),
            msg["date"][:16].replace("T", " "),
            msg["account"],
            msg["from"],
            subject,
        )

    console.print(table)


@click.command()
@click.pass_obj
def summary(service: InboxService) -> None:
    """Unread counts and recent subjects for every account."""
    payload = asyncio.run(service.summary())
    if "error" in payload:
        console.print(f"[red]{payload['error']}[/red]")
        return
    if not payload["accounts"]:
        console.print("[yellow]No accounts connected.[/yellow]")
        return

    console.print(f"\nTotal unread: [bold]{payload['totalUnread']}[/bold]\n")
    for acct in payload["accounts"]:
        lines = [f"Unread: {acct['unreadCount']}   Total: {acct['totalMessages']}"]
        lines.extend(f"  • {subject}" for subject in acct["recentSubjects"])
        console.print(Panel("\n".join(lines), title=f"[bold]{acct['email']}[/bold]", border_style="blue"))


@click.command()
@click.pass_obj
def serve(service: InboxService) -> None:
    """Run the MCP server on stdio."""
    from unified_inbox.server.app import create_server

    create_server(service).run()
