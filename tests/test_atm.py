"""
Test suite for the ATM console session

Drives the session with scripted input streams and checks both the
console output and the resulting ledger state.
"""

import io
import logging
import pytest
from decimal import Decimal
from datetime import datetime, timezone
from unittest.mock import Mock

from atm_banking.atm import ATMSession, build_bank, run_console
from atm_banking.config import AtmConfig, DemoAccount
from atm_banking.currency import Money, Currency
from atm_banking.events import DomainEvent, EventDispatcher
from atm_banking.ledger import Bank


FIXED_TIME = datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc)


def usd(value: str) -> Money:
    return Money(Decimal(value), Currency.USD)


def script(*lines: str) -> io.StringIO:
    return io.StringIO("".join(line + "\n" for line in lines))


class TestATMSession:
    """Test login and menu commands"""

    def setup_method(self):
        self.dispatcher = EventDispatcher()
        self.events = Mock()
        self.dispatcher.subscribe_all(self.events)
        self.bank = Bank(event_dispatcher=self.dispatcher, clock=lambda: FIXED_TIME)
        self.alice = self.bank.open_account("1001", "1234", Decimal('5000.00'))
        self.bob = self.bank.open_account("1002", "4321", Decimal('3500.00'))

    def run_session(self, *lines: str, attempts: int = 3):
        stdout = io.StringIO()
        session = ATMSession(
            self.bank,
            stdin=script(*lines),
            stdout=stdout,
            max_login_attempts=attempts,
            display_timezone=timezone.utc
        )
        status = session.run()
        return status, stdout.getvalue(), session

    def _event_types(self):
        return [call[0][0].event_type for call in self.events.call_args_list]

    def test_login_and_quit(self):
        status, output, session = self.run_session("1001", "1234", "5")

        assert status == 0
        assert "==== Welcome to the ATM ====" in output
        assert "Login successful. Welcome, User 1001!" in output
        assert "Thank you. Logging out." in output
        assert session.current_account is None
        assert DomainEvent.SESSION_ENDED in self._event_types()

    def test_lockout_after_three_failures(self):
        status, output, _ = self.run_session("1001", "0000", "9999", "1234", "1001", "1235")

        assert status == 1
        assert "Attempts left: 2" in output
        assert "Attempts left: 1" in output
        assert "Attempts left: 0" in output
        assert "Too many failed attempts. Exiting." in output
        assert self._event_types()[-1] == DomainEvent.SESSION_LOCKED

    def test_configurable_attempts(self):
        status, output, _ = self.run_session("1001", "0000", attempts=1)
        assert status == 1
        assert "Attempts left: 0" in output

    def test_success_on_last_attempt(self):
        status, output, _ = self.run_session("1001", "0", "1001", "1", "1001", "1234", "5")
        assert status == 0
        assert "Login successful" in output

    def test_end_of_input_during_login(self):
        status, output, _ = self.run_session("1001")
        assert status == 1

    def test_deposit(self):
        status, output, _ = self.run_session("1001", "1234", "3", "200", "5")

        assert "Deposited 200.00. New balance: 5200.00" in output
        assert self.alice.balance == usd('5200.00')
        assert len(self.alice.history) == 2

    def test_withdraw_and_insufficient_funds(self):
        _, output, _ = self.run_session("1001", "1234", "2", "6000", "2", "1000.50", "5")

        assert "Insufficient balance." in output
        assert "Withdrawn 1000.50. New balance: 3999.50" in output
        assert self.alice.balance == usd('3999.50')

    def test_invalid_amounts(self):
        _, output, _ = self.run_session("1001", "1234", "3", "abc", "2", "-5", "3", "0", "5")

        assert output.count("Invalid amount.") == 1
        assert output.count("Amount must be positive.") == 2
        assert self.alice.balance == usd('5000.00')
        assert len(self.alice.history) == 1

    @pytest.mark.parametrize("raw", ["1e3", "1e30", "12abc34", "123456789012345678901234567890"])
    def test_malformed_or_oversized_amount_rejected(self, raw):
        """Test that amount input is never reinterpreted as another number"""
        status, output, _ = self.run_session("1001", "1234", "3", raw, "5")

        assert status == 0
        assert "Invalid amount." in output
        assert "Deposited" not in output
        assert self.alice.balance == usd('5000.00')
        assert len(self.alice.history) == 1

    def test_deposit_overflowing_balance(self):
        rich = self.bank.open_account("1009", "0000", Decimal('9' * 26))

        status, output, _ = self.run_session("1009", "0000", "3", "1", "5")

        assert status == 0
        assert "Invalid amount." in output
        assert rich.balance == usd('9' * 26)

    def test_transfer(self):
        _, output, _ = self.run_session("1001", "1234", "4", "1002", "1000", "5")

        assert "Transferred 1000.00 to 1002. New balance: 4000.00" in output
        assert self.alice.balance == usd('4000.00')
        assert self.bob.balance == usd('4500.00')

    def test_transfer_failures(self):
        _, output, _ = self.run_session(
            "1001", "1234",
            "4", "9999",
            "4", "1001",
            "4", "1002", "99999",
            "5"
        )

        assert "Recipient account not found." in output
        assert "Cannot transfer to your own account." in output
        assert "Transfer failed (insufficient funds)." in output
        assert self.alice.balance == usd('5000.00')
        assert self.bob.balance == usd('3500.00')

    def test_transaction_history(self):
        _, output, _ = self.run_session("1001", "1234", "3", "200", "4", "1002", "1000", "1", "5")

        assert "--- Transaction History ---" in output
        assert "Date & Time" in output
        assert "2024-03-15 09:30" in output
        assert "Account Opened" in output
        assert "Transfer Out" in output
        assert "To user 1002" in output
        assert "Current balance: 4200.00" in output

    def test_empty_history_message(self):
        session = ATMSession(self.bank, stdin=script(), stdout=io.StringIO())
        session.current_account = Mock(printable_history=Mock(return_value=()))

        session.print_transaction_history()

        assert "No transactions found." in session.stdout.getvalue()

    def test_invalid_menu_choice(self):
        _, output, _ = self.run_session("1001", "1234", "7", "5")
        assert "Invalid choice. Try again." in output

    def test_end_of_input_in_menu_logs_out(self):
        status, output, _ = self.run_session("1001", "1234")
        assert status == 0
        assert "Thank you. Logging out." in output

    def test_commands_require_login(self):
        session = ATMSession(self.bank, stdin=script(), stdout=io.StringIO())
        with pytest.raises(RuntimeError):
            session.deposit()

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            ATMSession(self.bank, max_login_attempts=0)


class TestConsoleWiring:
    """Test bank construction and the console entry point"""

    def test_build_bank_seeds_demo_accounts(self):
        bank = build_bank(AtmConfig())

        assert bank.user_ids() == ["1001", "1002", "1003"]
        assert bank.get_account("1003").balance == usd('1000.00')

    def test_build_bank_without_seed(self):
        bank = build_bank(AtmConfig(seed_demo_accounts=False, currency="EUR"))
        assert len(bank) == 0
        assert bank.currency == Currency.EUR

    def test_run_console(self, tmp_path):
        cfg = AtmConfig(
            demo_accounts=[DemoAccount(user_id="7", pin="77", opening_balance=Decimal('10'))],
            log_level="INFO",
            log_file=str(tmp_path / "atm.log")
        )
        stdout = io.StringIO()

        try:
            status = run_console(cfg, stdin=script("7", "77", "2", "4", "5"), stdout=stdout)
        finally:
            root_logger = logging.getLogger("atm_banking")
            for handler in root_logger.handlers[:]:
                root_logger.removeHandler(handler)
                handler.close()
            root_logger.propagate = True
            root_logger.setLevel(logging.NOTSET)

        assert status == 0
        assert "Withdrawn 4.00. New balance: 6.00" in stdout.getvalue()
        assert '"action": "withdraw"' in (tmp_path / "atm.log").read_text()
