"""SQLite credential store — one row of OAuth tokens per connected account."""

import logging
import sqlite3
from pathlib import Path
from typing import Protocol, runtime_checkable

from unified_inbox.gmail.types import AccountCredential
from unified_inbox.storage.models import ALL_TABLES

logger = logging.getLogger(__name__)


# ── Repository interface ───────────────────────────────────────────────────────


@runtime_checkable
class CredentialRepository(Protocol):
    """Keyed persistence for account credentials.

    Implementations must serialise concurrent writes themselves.
    """

    def get(self, account_id: str) -> AccountCredential | None: ...

    def get_all(self) -> list[AccountCredential]: ...

    def put(self, credential: AccountCredential) -> None: ...

    def update_tokens(self, account_id: str, access_token: str, token_expiry: int) -> None: ...

    def delete(self, account_id: str) -> bool: ...


# ── SQLite implementation ──────────────────────────────────────────────────────


class AccountStore:
    """Wraps SQLite for the accounts table.

    Designed for single-threaded use from an async event loop — all calls are
    synchronous/blocking but only touch a handful of rows.

    Usage::

        store = AccountStore(Path("~/.unified-inbox/accounts.db").expanduser())
        store.put(credential)
        accounts = store.get_all()
    """

    def __init__(self, db_path: str | Path) -> None:
        self._path = Path(db_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._path))
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    def close(self) -> None:
        """Close the underlying database connection."""
        self._conn.close()

    # ── Read API ────────────────────────────────────────────────────────────────

    def get(self, account_id: str) -> AccountCredential | None:
        """Return the credential for account_id, or None if not connected."""
        row = self._conn.execute(
            "SELECT email, access_token, refresh_token, token_expiry "
            "FROM accounts WHERE email = ?",
            (account_id,),
        ).fetchone()
        return _to_credential(row) if row else None

    def get_all(self) -> list[AccountCredential]:
        """Return every stored credential, ordered by email."""
        rows = self._conn.execute(
            "SELECT email, access_token, refresh_token, token_expiry "
            "FROM accounts ORDER BY email",
        ).fetchall()
        return [_to_credential(r) for r in rows]

    # ── Write API ───────────────────────────────────────────────────────────────

    def put(self, credential: AccountCredential) -> None:
        """Insert or fully replace the record for credential.account_id."""
        with self._conn:
            self._conn.execute(
                """
                INSERT OR REPLACE INTO accounts
                    (email, access_token, refresh_token, token_expiry)
                VALUES (?, ?, ?, ?)
                """,
                (
                    credential.account_id,
                    credential.access_token,
                    credential.refresh_token,
                    credential.token_expiry,
                ),
            )
        logger.info("Stored credential for %s", credential.account_id)

    def update_tokens(self, account_id: str, access_token: str, token_expiry: int) -> None:
        """Replace the access token and expiry. The refresh token is left alone."""
        with self._conn:
            self._conn.execute(
                "UPDATE accounts SET access_token = ?, token_expiry = ? WHERE email = ?",
                (access_token, token_expiry, account_id),
            )
        logger.debug("Updated tokens for %s (expiry=%d)", account_id, token_expiry)

    def delete(self, account_id: str) -> bool:
        """Remove the account. Returns False if it was not stored."""
        with self._conn:
            cursor = self._conn.execute(
                "DELETE FROM accounts WHERE email = ?", (account_id,)
            )
        removed = cursor.rowcount > 0
        if removed:
            logger.info("Removed credential for %s", account_id)
        return removed

    # ── Private ─────────────────────────────────────────────────────────────────

    def _create_tables(self) -> None:
        with self._conn:
            for ddl in ALL_TABLES:
                self._conn.execute(ddl)


def _to_credential(row: sqlite3.Row) -> AccountCredential:
    return AccountCredential(
        account_id=row["email"],
        access_token=row["access_token"],
        refresh_token=row["refresh_token"],
        token_expiry=int(row["token_expiry"]),
    )
