class LedgerError(Exception):
    """Base class for errors surfaced by the ledger."""

    code = "SERVER_ERROR"


class UsernameRequiredError(LedgerError):
    """Raised when a username is missing or blank after trimming."""

    code = "USERNAME_REQUIRED"


class InvalidAmountError(LedgerError):
    """Raised when a charge/payout amount resolves to an unusable value."""

    code = "INVALID_AMOUNT"


class StorageError(LedgerError):
    """Raised when the backing store cannot be read or written."""

    code = "SERVER_ERROR"
