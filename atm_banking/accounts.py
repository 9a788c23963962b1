"""
Account Module

An account owns its balance and its transaction history. Every mutation
updates both under the account's lock, so the balance always equals the
sum of the signed amounts in the history.
"""

from contextlib import contextmanager
from dataclasses import replace
from decimal import Decimal
from typing import Iterator, List, Optional, Tuple, Union
import hmac
import threading

from .currency import Money, Currency
from .events import (
    DomainEvent, EventDispatcher, EventPublisherMixin, create_transaction_event
)
from .exceptions import CurrencyMismatchError, InvalidAmountError, SelfTransferError
from .logging_config import get_logger, log_action
from .transactions import Clock, Transaction, TransactionKind, utc_now


logger = get_logger(__name__)

AmountLike = Union[Money, Decimal, int]


@contextmanager
def _locked_pair(first: 'Account', second: 'Account') -> Iterator[None]:
    """Hold both accounts' locks, always acquired in ascending user_id order"""
    low, high = sorted((first, second), key=lambda account: account.user_id)
    with low._lock:
        with high._lock:
            yield


class Account(EventPublisherMixin):
    """
    Bank account reachable by user ID and PIN

    Args:
        user_id: Unique, immutable identifier
        pin: Shared secret checked by exact match
        opening_balance: Initial funds; recorded as an "Account Opened" transaction
        clock: Source of transaction timestamps (UTC now by default)
        event_dispatcher: Optional dispatcher for domain events
    """

    def __init__(
        self,
        user_id: str,
        pin: str,
        opening_balance: Money,
        clock: Optional[Clock] = None,
        event_dispatcher: Optional[EventDispatcher] = None
    ):
        if not isinstance(user_id, str) or not user_id.strip():
            raise ValueError("user_id must be a non-empty string")
        if not isinstance(pin, str) or not pin:
            raise ValueError("pin must be a non-empty string")
        if not isinstance(opening_balance, Money):
            raise TypeError("opening_balance must be Money")
        if opening_balance.is_negative():
            raise InvalidAmountError(
                f"Opening balance cannot be negative: {opening_balance.to_string()}"
            )

        self._user_id = user_id
        self._pin = pin
        self._currency = opening_balance.currency
        self._clock = clock or utc_now
        self._lock = threading.RLock()
        self._event_dispatcher = event_dispatcher

        self._balance = opening_balance
        self._history: List[Transaction] = []
        opened = self._new_record(TransactionKind.ACCOUNT_OPENED, opening_balance, "Initial balance")
        self._history.append(opened)

        log_action(
            logger, "info", "Account opened",
            user_id=user_id, action="account_opened", resource="account",
            correlation_id=opened.id,
            extra={"opening_balance": str(opening_balance.amount), "currency": self._currency.code}
        )
        self.dispatch_event(create_transaction_event(
            DomainEvent.ACCOUNT_OPENED, user_id, opened, opening_balance
        ))

    def __repr__(self) -> str:
        return f"Account(user_id={self._user_id!r}, balance={self.balance.to_string()!r})"

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def currency(self) -> Currency:
        return self._currency

    @property
    def balance(self) -> Money:
        """Current balance"""
        with self._lock:
            return self._balance

    @property
    def opening_balance(self) -> Money:
        """Amount the account was opened with"""
        return self._history[0].amount

    @property
    def history(self) -> Tuple[Transaction, ...]:
        """Snapshot of the transaction history, oldest first"""
        with self._lock:
            return tuple(self._history)

    def check_pin(self, candidate: str) -> bool:
        """Exact, case-sensitive PIN comparison"""
        if not isinstance(candidate, str):
            return False
        return hmac.compare_digest(self._pin.encode("utf-8"), candidate.encode("utf-8"))

    def deposit(self, amount: AmountLike) -> Transaction:
        """
        Credit the account

        Raises:
            InvalidAmountError: If amount is not positive or the new balance
                exceeds the supported precision
            CurrencyMismatchError: If amount is in another currency
        """
        amount = self._validate_amount(amount)

        with self._lock:
            record = self._new_record(TransactionKind.DEPOSIT, amount, "Self deposit")
            self._balance = self._balance + amount
            self._history.append(record)
            balance = self._balance

        log_action(
            logger, "info", f"Deposit posted: {amount.to_string()}",
            user_id=self._user_id, action="deposit", resource="account",
            correlation_id=record.id, extra={"balance": str(balance.amount)}
        )
        self.dispatch_event(create_transaction_event(
            DomainEvent.DEPOSIT_POSTED, self._user_id, record, balance
        ))
        return record

    def withdraw(self, amount: AmountLike) -> bool:
        """
        Debit the account if funds allow

        Returns:
            True if posted, False on insufficient funds (nothing changes)

        Raises:
            InvalidAmountError: If amount is not positive
            CurrencyMismatchError: If amount is in another currency
        """
        amount = self._validate_amount(amount)

        with self._lock:
            if amount > self._balance:
                balance = self._balance
                record = None
            else:
                record = self._new_record(TransactionKind.WITHDRAW, amount, "Cash withdrawal")
                self._balance = self._balance - amount
                self._history.append(record)
                balance = self._balance

        if record is None:
            self._declined(DomainEvent.WITHDRAWAL_DECLINED, "withdraw", amount, balance)
            return False

        log_action(
            logger, "info", f"Withdrawal posted: {amount.to_string()}",
            user_id=self._user_id, action="withdraw", resource="account",
            correlation_id=record.id, extra={"balance": str(balance.amount)}
        )
        self.dispatch_event(create_transaction_event(
            DomainEvent.WITHDRAWAL_POSTED, self._user_id, record, balance
        ))
        return True

    def transfer_to(self, other: 'Account', amount: AmountLike) -> bool:
        """
        Move funds to another account as one all-or-nothing step

        Both locks are held while both new balances and both records are
        prepared, then all four pieces of state are written together.

        Returns:
            True if posted, False on insufficient funds (neither account changes)

        Raises:
            InvalidAmountError: If amount is not positive or the target balance
                would exceed the supported precision
            SelfTransferError: If other is this account
            CurrencyMismatchError: If the accounts or amount use different currencies
        """
        if not isinstance(other, Account):
            raise TypeError("Transfer target must be an Account")
        if other is self or other.user_id == self._user_id:
            raise SelfTransferError(f"Account {self._user_id} cannot transfer to itself")
        if other.currency != self._currency:
            raise CurrencyMismatchError(
                f"Cannot transfer {self._currency.code} to a {other.currency.code} account"
            )
        amount = self._validate_amount(amount)

        with _locked_pair(self, other):
            if amount > self._balance:
                source_balance = self._balance
                out_record = None
            else:
                out_record = self._new_record(
                    TransactionKind.TRANSFER_OUT, amount, f"To user {other.user_id}"
                )
                in_record = other._new_record(
                    TransactionKind.TRANSFER_IN, amount, f"From user {self._user_id}"
                )
                source_balance = self._balance - amount
                target_balance = other._balance + amount

                self._balance = source_balance
                self._history.append(out_record)
                other._balance = target_balance
                other._history.append(in_record)

        if out_record is None:
            self._declined(
                DomainEvent.TRANSFER_DECLINED, "transfer", amount, source_balance,
                counterparty=other.user_id
            )
            return False

        log_action(
            logger, "info", f"Transfer posted: {amount.to_string()} to {other.user_id}",
            user_id=self._user_id, action="transfer", resource="account",
            correlation_id=out_record.id,
            extra={
                "to_user_id": other.user_id,
                "balance": str(source_balance.amount),
                "counterparty_transaction_id": in_record.id
            }
        )
        self.dispatch_event(create_transaction_event(
            DomainEvent.TRANSFER_POSTED, self._user_id, out_record, source_balance
        ))
        other.dispatch_event(create_transaction_event(
            DomainEvent.TRANSFER_POSTED, other.user_id, in_record, target_balance
        ))
        return True

    def printable_history(self) -> Tuple[Transaction, ...]:
        """Full history in chronological order, for presentation code"""
        return self.history

    def derived_balance(self) -> Money:
        """Balance recomputed from the history alone"""
        with self._lock:
            total = Money.zero(self._currency)
            for record in self._history:
                total = total + record.signed_amount
            return total

    def is_consistent(self) -> bool:
        """Check that the stored balance matches the history"""
        with self._lock:
            return self.derived_balance() == self._balance

    def _validate_amount(self, amount: AmountLike) -> Money:
        if isinstance(amount, bool) or not isinstance(amount, (Money, Decimal, int)):
            raise TypeError(f"Amount must be Money or Decimal, got {type(amount).__name__}")
        if not isinstance(amount, Money):
            amount = Decimal(amount)
            if not amount.is_finite():
                raise InvalidAmountError(f"Amount must be a finite number: {amount}")
            amount = Money(amount, self._currency)
        if amount.currency != self._currency:
            raise CurrencyMismatchError(
                f"Amount in {amount.currency.code} does not match account currency {self._currency.code}"
            )
        if not amount.is_positive():
            raise InvalidAmountError(f"Amount must be positive: {amount.to_string()}")
        return amount

    def _new_record(self, kind: TransactionKind, amount: Money, detail: str) -> Transaction:
        """Build a record whose timestamp never precedes the previous one"""
        record = Transaction.record(kind, amount, detail, clock=self._clock)
        if self._history and record.recorded_at < self._history[-1].recorded_at:
            record = replace(record, recorded_at=self._history[-1].recorded_at)
        return record

    def _declined(
        self,
        event_type: DomainEvent,
        action: str,
        amount: Money,
        balance: Money,
        counterparty: Optional[str] = None
    ) -> None:
        data = {
            "amount": str(amount.amount),
            "currency": amount.currency.code,
            "balance": str(balance.amount),
            "reason": "insufficient_funds"
        }
        if counterparty:
            data["to_user_id"] = counterparty

        log_action(
            logger, "warning", f"{action.capitalize()} declined: insufficient funds",
            user_id=self._user_id, action=action, resource="account", extra=data
        )
        self.publish_event(event_type, "account", self._user_id, data)
