"""Ledger domain specific exceptions."""


class LedgerError(Exception):
    """Base class for ledger domain errors."""


class InvalidAmountError(LedgerError, ValueError):
    """Raised when an amount is not positive or exceeds the supported precision."""


class CurrencyMismatchError(LedgerError, ValueError):
    """Raised when an amount or counterparty uses a different currency than the account."""


class SelfTransferError(LedgerError, ValueError):
    """Raised when an account is asked to transfer funds to itself."""


class DuplicateAccountError(LedgerError, ValueError):
    """Raised when registering an account whose user ID is already taken."""


class AccountNotFoundError(LedgerError, KeyError):
    """Raised when the requested account cannot be found."""

    def __str__(self) -> str:
        # KeyError repr()s its argument; keep the plain message
        return str(self.args[0]) if self.args else ""
