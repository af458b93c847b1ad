"""Exception taxonomy shared by every layer of the unified inbox."""


class InboxError(Exception):
    """Base class for all unified-inbox errors."""


class AuthError(InboxError):
    """Raised when OAuth app credentials are missing or an account's refresh token is rejected.

    ``account_id`` is None for the startup case (missing client id/secret).
    """

    def __init__(self, message: str, account_id: str | None = None) -> None:
        super().__init__(message)
        self.account_id = account_id


class AccountNotFoundError(InboxError):
    """Raised when an operation names an account that has no stored credential."""

    def __init__(self, account_id: str) -> None:
        super().__init__(f"Account not found: {account_id}")
        self.account_id = account_id


class GmailError(InboxError):
    """Raised when a Gmail API call fails."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
