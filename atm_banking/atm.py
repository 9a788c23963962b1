"""
ATM Console Session

Line-based interactive front end over the ledger: login with a bounded
number of attempts, then a numbered menu for history, withdraw, deposit,
transfer and quit. All console I/O, amount parsing and formatting live
here; the accounts only ever see validated Money amounts.
"""

from datetime import tzinfo
from typing import Callable, Dict, Optional, TextIO
import sys

from .accounts import Account
from .config import AtmConfig, get_config
from .currency import Money, currency_from_code, decimal_from_string
from .events import DomainEvent, EventDispatcher, EventPublisherMixin
from .exceptions import InvalidAmountError
from .ledger import Bank, seed_accounts
from .logging_config import get_logger, log_action, setup_logging


logger = get_logger(__name__)

HISTORY_RULE = "-" * 80


class ATMSession(EventPublisherMixin):
    """
    One interactive session against a Bank

    Args:
        bank: Registry used to resolve user IDs
        stdin: Input stream (defaults to sys.stdin)
        stdout: Output stream (defaults to sys.stdout)
        max_login_attempts: Failed logins allowed before the session exits
        time_format: strftime format for history timestamps
        display_timezone: Zone for history timestamps (None = local time)
    """

    def __init__(
        self,
        bank: Bank,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
        max_login_attempts: int = 3,
        time_format: str = "%Y-%m-%d %H:%M",
        display_timezone: Optional[tzinfo] = None
    ):
        if max_login_attempts < 1:
            raise ValueError("max_login_attempts must be at least 1")

        self.bank = bank
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        self.max_login_attempts = max_login_attempts
        self.time_format = time_format
        self.display_timezone = display_timezone
        self.current_account: Optional[Account] = None
        self.set_event_dispatcher(bank.event_dispatcher)

        self._commands: Dict[str, Callable[[], None]] = {
            "1": self.print_transaction_history,
            "2": self.withdraw,
            "3": self.deposit,
            "4": self.transfer,
        }

    def run(self) -> int:
        """Run the session until the user quits; returns a process exit status"""
        self._write("==== Welcome to the ATM ====")

        account = self.login()
        if account is None:
            self._write("Too many failed attempts. Exiting.")
            return 1

        self.current_account = account
        while True:
            self._show_menu()
            choice = self._prompt("Choose an option: ")
            if choice is None or choice == "5":
                self.logout()
                return 0

            command = self._commands.get(choice)
            if command is None:
                self._write("Invalid choice. Try again.")
                continue
            command()

    def login(self) -> Optional[Account]:
        """Prompt for credentials until success, lockout or end of input"""
        attempts = 0
        while attempts < self.max_login_attempts:
            user_id = self._prompt("Enter User ID: ")
            pin = self._prompt("Enter PIN: ") if user_id is not None else None
            if user_id is None or pin is None:
                return None

            account = self.bank.authenticate(user_id, pin)
            if account is not None:
                self._write(f"Login successful. Welcome, User {user_id}!")
                return account

            attempts += 1
            self._write(f"Invalid credentials. Attempts left: {self.max_login_attempts - attempts}")

        log_action(
            logger, "warning", "Session locked after failed logins",
            action="session_locked", resource="session",
            extra={"attempts": attempts}
        )
        self.publish_event(DomainEvent.SESSION_LOCKED, "session", "atm", {"attempts": attempts})
        return None

    def logout(self) -> None:
        self._write("Thank you. Logging out.")
        if self.current_account is not None:
            self.publish_event(DomainEvent.SESSION_ENDED, "session", self.current_account.user_id, {})
        self.current_account = None

    def print_transaction_history(self) -> None:
        account = self._require_account()
        self._write("")
        self._write("--- Transaction History ---")

        history = account.printable_history()
        if not history:
            self._write("No transactions found.")
            return

        self._write(f"{'Date & Time':<20} {'Type':<14} {'Amount':>12}  {'Details':<30}")
        self._write(HISTORY_RULE)
        for record in history:
            recorded_at = record.recorded_at.astimezone(self.display_timezone)
            self._write(
                f"{recorded_at.strftime(self.time_format):<20} "
                f"{record.kind.value:<14} "
                f"{self._format_amount(record.amount):>12}  "
                f"{record.detail:<30}".rstrip()
            )
        self._write(f"Current balance: {self._format_amount(account.balance)}")

    def withdraw(self) -> None:
        account = self._require_account()
        amount = self._read_amount("Enter amount to withdraw: ")
        if amount is None:
            return

        if account.withdraw(amount):
            self._write(
                f"Withdrawn {self._format_amount(amount)}. "
                f"New balance: {self._format_amount(account.balance)}"
            )
        else:
            self._write("Insufficient balance.")

    def deposit(self) -> None:
        account = self._require_account()
        amount = self._read_amount("Enter amount to deposit: ")
        if amount is None:
            return

        try:
            account.deposit(amount)
        except InvalidAmountError:
            self._write("Invalid amount.")
            return
        self._write(
            f"Deposited {self._format_amount(amount)}. "
            f"New balance: {self._format_amount(account.balance)}"
        )

    def transfer(self) -> None:
        account = self._require_account()
        recipient_id = self._prompt("Enter recipient User ID: ")
        if recipient_id is None:
            return

        recipient = self.bank.find(recipient_id)
        if recipient is None:
            self._write("Recipient account not found.")
            return
        if recipient is account:
            self._write("Cannot transfer to your own account.")
            return

        amount = self._read_amount("Enter amount to transfer: ")
        if amount is None:
            return

        try:
            posted = account.transfer_to(recipient, amount)
        except InvalidAmountError:
            self._write("Invalid amount.")
            return

        if posted:
            self._write(
                f"Transferred {self._format_amount(amount)} to {recipient_id}. "
                f"New balance: {self._format_amount(account.balance)}"
            )
        else:
            self._write("Transfer failed (insufficient funds).")

    def _show_menu(self) -> None:
        self._write("")
        self._write("--- ATM Menu ---")
        self._write("1. Transaction History")
        self._write("2. Withdraw")
        self._write("3. Deposit")
        self._write("4. Transfer")
        self._write("5. Quit")

    def _read_amount(self, prompt: str) -> Optional[Money]:
        """Parse a positive amount in the current account's currency"""
        raw = self._prompt(prompt)
        if raw is None:
            return None

        currency = self._require_account().currency
        try:
            amount = Money(decimal_from_string(raw), currency)
        except ValueError:
            self._write("Invalid amount.")
            return None

        if not amount.is_positive():
            self._write("Amount must be positive.")
            return None
        return amount

    def _require_account(self) -> Account:
        if self.current_account is None:
            raise RuntimeError("No account is logged in")
        return self.current_account

    def _format_amount(self, money: Money) -> str:
        return f"{money.amount:.{money.currency.precision}f}"

    def _prompt(self, text: str) -> Optional[str]:
        """Write a prompt and read one line; None at end of input"""
        self.stdout.write(text)
        self.stdout.flush()
        line = self.stdin.readline()
        if not line:
            self.stdout.write("\n")
            return None
        return line.strip()

    def _write(self, text: str) -> None:
        self.stdout.write(text + "\n")


def build_bank(config: AtmConfig, event_dispatcher: Optional[EventDispatcher] = None) -> Bank:
    """Create the bank described by the configuration, seeding demo accounts if enabled"""
    bank = Bank(
        currency=currency_from_code(config.currency),
        event_dispatcher=event_dispatcher
    )
    if config.seed_demo_accounts:
        seed_accounts(bank, config.demo_accounts)
    return bank


def run_console(
    config: Optional[AtmConfig] = None,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None
) -> int:
    """Configure logging, build the bank and run one console session"""
    config = config or get_config()
    setup_logging(
        level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file
    )

    bank = build_bank(config, EventDispatcher())
    session = ATMSession(
        bank,
        stdin=stdin,
        stdout=stdout,
        max_login_attempts=config.max_login_attempts,
        time_format=config.history_time_format
    )
    return session.run()
