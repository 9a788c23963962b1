"""
Transaction Record Module

Immutable records of the events that change an account balance. An account's
history is the ordered sequence of these records; balances can always be
re-derived from it.
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional
import uuid

from .currency import Money


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


class TransactionKind(Enum):
    """Categories of ledger events"""
    ACCOUNT_OPENED = "Account Opened"
    DEPOSIT = "Deposit"
    WITHDRAW = "Withdraw"
    TRANSFER_OUT = "Transfer Out"
    TRANSFER_IN = "Transfer In"

    @property
    def is_credit(self) -> bool:
        """Check if this kind adds to the balance"""
        return self in (TransactionKind.ACCOUNT_OPENED, TransactionKind.DEPOSIT, TransactionKind.TRANSFER_IN)

    @property
    def is_debit(self) -> bool:
        """Check if this kind subtracts from the balance"""
        return not self.is_credit


@dataclass(frozen=True)
class Transaction:
    """
    One ledger event on one account

    Frozen: once created a record is never changed. Amount validation is the
    account's responsibility, so construction never rejects an amount.
    """
    kind: TransactionKind
    amount: Money
    detail: str
    recorded_at: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def record(
        cls,
        kind: TransactionKind,
        amount: Money,
        detail: str,
        clock: Optional[Clock] = None
    ) -> 'Transaction':
        """Create a record stamped with the given clock (UTC now by default)"""
        return cls(kind=kind, amount=amount, detail=detail, recorded_at=(clock or utc_now)())

    @property
    def signed_amount(self) -> Money:
        """Amount as it affects the balance: credits positive, debits negative"""
        return self.amount if self.kind.is_credit else -self.amount

    @property
    def is_credit(self) -> bool:
        return self.kind.is_credit

    @property
    def is_debit(self) -> bool:
        return self.kind.is_debit
