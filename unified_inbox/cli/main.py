"""CLI entry point for the unified inbox."""

import logging

import click
from dotenv import load_dotenv

from unified_inbox.config import Settings
from unified_inbox.errors import AuthError
from unified_inbox.server.app import LOG_FORMAT, build_service

logger = logging.getLogger(__name__)


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Unified Gmail inbox — manage accounts, read the merged stream, run the MCP server."""
    load_dotenv()
    logging.basicConfig(
        level=logging.WARNING,  # keep CLI output clean; errors still surface
        format=LOG_FORMAT,
    )
    settings = Settings.from_env()
    try:
        service, store = build_service(settings)
    except AuthError as exc:
        raise click.ClickException(str(exc)) from exc
    ctx.obj = service
    ctx.call_on_close(store.close)


# Import and register commands after cli is defined to avoid circular imports.
from unified_inbox.cli.commands import (  # noqa: E402
    accounts,
    add_account,
    inbox,
    remove_account,
    serve,
    summary,
)

cli.add_command(accounts)
cli.add_command(add_account)
cli.add_command(remove_account)
cli.add_command(inbox)
cli.add_command(summary)
cli.add_command(serve)
