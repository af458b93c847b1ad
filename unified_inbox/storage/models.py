"""SQLite table schema for the credential store."""


# ── DDL ────────────────────────────────────────────────────────────────────────

_CREATE_ACCOUNTS = """
CREATE TABLE IF NOT EXISTS accounts (
    email          TEXT PRIMARY KEY,
    access_token   TEXT NOT NULL,
    refresh_token  TEXT NOT NULL,
    token_expiry   INTEGER NOT NULL
)
"""

#: All DDL statements in creation order.
ALL_TABLES: list[str] = [
    _CREATE_ACCOUNTS,
]
