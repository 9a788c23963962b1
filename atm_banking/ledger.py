"""
Ledger Registry Module

The Bank owns every Account for the lifetime of the process and resolves
user IDs to accounts. It holds no balance logic of its own: balances and
histories belong to the accounts, and transfers are delegated to them.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Union
import threading

from .accounts import Account, AmountLike
from .currency import Money, Currency
from .events import DomainEvent, EventDispatcher, EventPublisherMixin
from .exceptions import AccountNotFoundError, CurrencyMismatchError, DuplicateAccountError
from .logging_config import get_logger, log_action
from .transactions import Clock


logger = get_logger(__name__)


class Bank(EventPublisherMixin):
    """
    Registry mapping user IDs to accounts

    At most one account exists per user ID and no account is ever removed.
    Registering a user ID twice raises DuplicateAccountError.
    """

    def __init__(
        self,
        currency: Currency = Currency.USD,
        event_dispatcher: Optional[EventDispatcher] = None,
        clock: Optional[Clock] = None
    ):
        self.currency = currency
        self._event_dispatcher = event_dispatcher
        self._clock = clock
        self._accounts: Dict[str, Account] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._accounts)

    def __contains__(self, user_id: object) -> bool:
        with self._lock:
            return user_id in self._accounts

    def register(self, account: Account) -> Account:
        """
        Add an account under its user ID

        Accounts without a dispatcher inherit the bank's.

        Raises:
            DuplicateAccountError: If the user ID is already registered
            CurrencyMismatchError: If the account is not in the bank currency
        """
        if account.currency != self.currency:
            raise CurrencyMismatchError(
                f"Account {account.user_id} uses {account.currency.code}, bank uses {self.currency.code}"
            )

        with self._lock:
            if account.user_id in self._accounts:
                raise DuplicateAccountError(f"Account {account.user_id} is already registered")
            self._accounts[account.user_id] = account

        if account.event_dispatcher is None:
            account.set_event_dispatcher(self._event_dispatcher)

        log_action(
            logger, "info", "Account registered",
            user_id=account.user_id, action="register", resource="bank"
        )
        self.publish_event(
            DomainEvent.ACCOUNT_REGISTERED, "account", account.user_id,
            {"balance": str(account.balance.amount), "currency": account.currency.code}
        )
        return account

    def open_account(
        self,
        user_id: str,
        pin: str,
        opening_balance: Union[Money, Decimal, int] = Decimal("0")
    ) -> Account:
        """Create an account in the bank currency and register it"""
        if user_id in self:
            raise DuplicateAccountError(f"Account {user_id} is already registered")
        if not isinstance(opening_balance, Money):
            opening_balance = Money(Decimal(opening_balance), self.currency)
        if opening_balance.currency != self.currency:
            raise CurrencyMismatchError(
                f"Account {user_id} uses {opening_balance.currency.code}, bank uses {self.currency.code}"
            )

        account = Account(
            user_id=user_id,
            pin=pin,
            opening_balance=opening_balance,
            clock=self._clock,
            event_dispatcher=self._event_dispatcher
        )
        return self.register(account)

    def find(self, user_id: str) -> Optional[Account]:
        """Get account by user ID, or None if not registered"""
        with self._lock:
            return self._accounts.get(user_id)

    def get_account(self, user_id: str) -> Account:
        """Get account by user ID, raising AccountNotFoundError on a miss"""
        account = self.find(user_id)
        if account is None:
            raise AccountNotFoundError(f"Account {user_id} not found")
        return account

    def authenticate(self, user_id: str, pin: str) -> Optional[Account]:
        """
        Resolve an account by user ID and PIN

        Unknown user IDs and wrong PINs both yield None.
        """
        account = self.find(user_id)
        if account is not None and account.check_pin(pin):
            log_action(logger, "info", "Login succeeded", user_id=user_id, action="login", resource="bank")
            self.publish_event(DomainEvent.LOGIN_SUCCEEDED, "account", user_id, {})
            return account

        log_action(logger, "warning", "Login failed", user_id=user_id, action="login", resource="bank")
        self.publish_event(DomainEvent.LOGIN_FAILED, "account", user_id, {})
        return None

    def transfer(self, from_user_id: str, to_user_id: str, amount: AmountLike) -> bool:
        """
        Transfer between two registered accounts

        Returns:
            True if posted, False on insufficient funds

        Raises:
            AccountNotFoundError: If either user ID is not registered
        """
        source = self.get_account(from_user_id)
        target = self.get_account(to_user_id)
        return source.transfer_to(target, amount)

    def user_ids(self) -> List[str]:
        """Registered user IDs in sorted order"""
        with self._lock:
            return sorted(self._accounts)

    def accounts(self) -> List[Account]:
        """Registered accounts ordered by user ID"""
        with self._lock:
            return [self._accounts[user_id] for user_id in sorted(self._accounts)]

    def total_balance(self) -> Money:
        """Sum of all balances; transfers leave it unchanged"""
        total = Money.zero(self.currency)
        for account in self.accounts():
            total = total + account.balance
        return total

    def verify_integrity(self) -> List[str]:
        """User IDs whose balance disagrees with their transaction history"""
        broken = [account.user_id for account in self.accounts() if not account.is_consistent()]
        if broken:
            log_action(
                logger, "error", "Balance/history mismatch detected",
                action="verify_integrity", resource="bank", extra={"user_ids": broken}
            )
        return broken


def seed_accounts(bank: Bank, seeds: Iterable) -> List[Account]:
    """
    Open one account per seed (objects with user_id, pin, opening_balance)

    Returns:
        The accounts created, in the order given
    """
    return [
        bank.open_account(seed.user_id, seed.pin, seed.opening_balance)
        for seed in seeds
    ]
