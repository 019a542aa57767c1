"""The bank: a sorted set of accounts, ATM bookkeeping and status history."""

from __future__ import annotations

import bisect
import random
import re
import sys
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import IO, Deque, Iterator, List, Optional, Tuple

from atmbank.account import (
    Account,
    AccountExistsError,
    AccountNotFoundError,
    InsufficientFundsError,
    ReadWriteLock,
    TargetAccountNotFoundError,
    TransactionLog,
    WrongPasswordError,
)

HISTORY_SIZE = 120
PERSISTENT_ATTEMPTS = 2

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


@dataclass
class Command:
    """An ATM operation line together with its VIP and PERSISTENT markers."""

    line: str
    command: str
    vip_priority: int = -1
    is_persistent: bool = False


def _leading_int(text: str) -> int:
    match = _LEADING_INT.match(text)
    if match is None:
        raise ValueError(f"no integer at the start of {text!r}")
    return int(match.group(1))


def parse_command(line: str) -> Command:
    """Split the VIP priority and the PERSISTENT flag off an operation line."""
    command = line
    vip_priority = -1
    is_persistent = False

    marker = command.find("VIP=")
    if marker != -1:
        vip_priority = _leading_int(command[marker + 4:])
        command = command[:marker]

    marker = command.find("PERSISTENT")
    if marker != -1:
        is_persistent = True
        if marker > 0:
            command = command[: marker - 1]

    return Command(line, command, vip_priority, is_persistent)


class Bank:
    """Accounts kept in id order behind a bank-wide readers-writer lock.

    Each transaction that reports a missing account or a failure of its own
    waits ``delay`` seconds, as the accounts' own operations do.
    """

    def __init__(
        self,
        log: Optional[TransactionLog] = None,
        delay: float = 1.0,
        history_size: int = HISTORY_SIZE,
        output: Optional[IO[str]] = None,
    ) -> None:
        self.log = log if log is not None else TransactionLog()
        self.delay = delay
        self.output = output
        self._accounts: List[Account] = []
        self._lock = ReadWriteLock()
        self._bank_balance = 0
        self._balance_lock = threading.Lock()
        self._atm_files: List[str] = []
        self._atm_closed: List[bool] = []
        self._atm_lock = threading.Lock()
        self._statuses: Deque[List[Account]] = deque(maxlen=history_size)
        self._status_lock = threading.Lock()

    # -- helpers -----------------------------------------------------------

    def _pause(self) -> None:
        if self.delay > 0:
            time.sleep(self.delay)

    def _out(self) -> IO[str]:
        return self.output if self.output is not None else sys.stdout

    def _missing(self, account_id: int, atm_id: int) -> None:
        self._pause()
        self.log.write(
            f"Error {atm_id}: Your transaction failed - account id {account_id} does not exist"
        )

    def _require(self, account_id: int, atm_id: int) -> Account:
        account = self.find_account(account_id)
        if account is None:
            self._missing(account_id, atm_id)
            raise AccountNotFoundError(account_id)
        return account

    # -- views -------------------------------------------------------------

    @property
    def bank_balance(self) -> int:
        """Money the bank has gained from commissions."""
        with self._balance_lock:
            return self._bank_balance

    @property
    def accounts(self) -> Tuple[Account, ...]:
        """The accounts in id order."""
        with self._lock.read_locked():
            return tuple(self._accounts)

    @property
    def atm_files(self) -> Tuple[str, ...]:
        with self._atm_lock:
            return tuple(self._atm_files)

    @property
    def closed_atms(self) -> Tuple[bool, ...]:
        """One flag per registered ATM, true once it was closed."""
        with self._atm_lock:
            return tuple(self._atm_closed)

    def __iter__(self) -> Iterator[Account]:
        return iter(self.accounts)

    def __len__(self) -> int:
        return len(self.accounts)

    def find_account(self, account_id: int) -> Optional[Account]:
        """Return the account with this id, or None."""
        return next((a for a in self._accounts if a.account_id == account_id), None)

    # -- transactions ------------------------------------------------------

    def create_account(self, account_id: int, password: str, initial_amount: int, atm_id: int) -> Account:
        """Open a new account and return it."""
        with self._lock.write_locked():
            if self.find_account(account_id) is not None:
                self._pause()
                self.log.write(
                    f"Error {atm_id}: Your transaction failed - account with the same id exists"
                )
                raise AccountExistsError(account_id)
            account = Account(account_id, password, initial_amount, self.log, self.delay)
            bisect.insort(self._accounts, account)
            self._pause()
            self.log.write(
                f"{atm_id}: New account id is {account_id} with password {password} "
                f"and initial balance {initial_amount}"
            )
            return account

    def delete_account(self, account_id: int, password: str, atm_id: int) -> int:
        """Close an account and return the balance it held."""
        with self._lock.write_locked():
            account = self._require(account_id, atm_id)
            try:
                balance = account.peek_balance(password)
            except WrongPasswordError:
                self.log.write(
                    f"Error {atm_id}: Your transaction failed - password for account id "
                    f"{account_id} is incorrect"
                )
                raise
            self._accounts.remove(account)
            self.log.write(f"{atm_id}: Account {account_id} is now closed. Balance was {balance}")
            return balance

    def deposit(self, account_id: int, password: str, amount: int, atm_id: int) -> int:
        with self._lock.read_locked():
            return self._require(account_id, atm_id).deposit(amount, password, atm_id)

    def withdraw(self, account_id: int, password: str, amount: int, atm_id: int) -> int:
        with self._lock.read_locked():
            return self._require(account_id, atm_id).withdraw(amount, password, atm_id)

    def get_balance(self, account_id: int, password: str, atm_id: int) -> int:
        with self._lock.read_locked():
            return self._require(account_id, atm_id).get_balance(password, atm_id)

    def transfer(
        self,
        account_id: int,
        password: str,
        target_account_id: int,
        amount: int,
        atm_id: int,
    ) -> Tuple[int, int]:
        """Move ``amount`` between accounts; return both new balances.

        When the source holds too little, the target is still credited and
        InsufficientFundsError is raised.
        """
        with self._lock.read_locked():
            source = self._require(account_id, atm_id)
            target = self.find_account(target_account_id)
            if target is None:
                self._missing(target_account_id, atm_id)
                raise TargetAccountNotFoundError(target_account_id)
            if not source.check_password(password):
                self._pause()
                self.log.write(
                    f"Error {atm_id}: Your transaction failed - password for account id "
                    f"{account_id} is incorrect"
                )
                raise WrongPasswordError(account_id)

            ordered = sorted({id(a): a for a in (source, target)}.values())
            for account in ordered:
                account.lock.acquire_write()
            try:
                self._pause()
                failure: Optional[InsufficientFundsError] = None
                try:
                    new_balance = source.withdraw_unlocked(amount)
                except InsufficientFundsError as exc:
                    failure = exc
                    new_balance = source.balance
                new_target_balance = target.deposit_unlocked(amount)
                if failure is not None:
                    self.log.write(
                        f"Error {atm_id}: Your transaction failed - account id {account_id} "
                        f"balance is lower than {amount}"
                    )
                    raise failure
                self.log.write(
                    f"{atm_id}: Transfer {amount} from account {account_id} to account "
                    f"{target_account_id} new account balance is {new_balance} "
                    f"new target account balance is {new_target_balance}"
                )
                return new_balance, new_target_balance
            finally:
                for account in ordered:
                    account.lock.release_write()

    def commission(self, percentage: Optional[int] = None) -> int:
        """Charge every account; the percentage is drawn from 1 to 5 when not given.

        Returns the total the bank gained.
        """
        if percentage is None:
            percentage = random.randint(1, 5)
        total = 0
        with self._lock.read_locked():
            for account in self._accounts:
                total += account.charge_commission(percentage)
        with self._balance_lock:
            self._bank_balance += total
        return total

    def status_report(self) -> str:
        with self._lock.read_locked():
            lines = "".join(a.status_line() + "\n" for a in self._accounts)
        return "Current Bank Status\n" + lines

    def print_status(self, stream: Optional[IO[str]] = None) -> None:
        """Clear the terminal and print the status report."""
        out = stream if stream is not None else self._out()
        report = self.status_report()
        out.write("\033[2J\033[1;1H" + report)
        out.flush()

    # -- ATMs --------------------------------------------------------------

    def add_atm(self, file_name: str) -> int:
        """Register an ATM's operation file, open; return its 1-based id."""
        with self._atm_lock:
            self._atm_files.append(file_name)
            self._atm_closed.append(False)
            return len(self._atm_files)

    def close_atm(self, source_atm_id: int, target_atm_id: int) -> bool:
        """Mark an ATM closed; False if it does not exist or is closed already."""
        self._pause()
        with self._atm_lock:
            if target_atm_id < 1 or target_atm_id > len(self._atm_files):
                self.log.write(
                    f"Error {source_atm_id}: Your transaction failed \u2013 ATM ID "
                    f"{target_atm_id} does not exist"
                )
                return False
            if self._atm_closed[target_atm_id - 1]:
                self.log.write(
                    f"Error {source_atm_id}: Your close operation failed \u2013 ATM ID "
                    f"{target_atm_id} is already in a closed state"
                )
                return False
            self._atm_closed[target_atm_id - 1] = True
        self.log.write(f"Bank: ATM {source_atm_id} closed {target_atm_id} successfully")
        return True

    # -- history -----------------------------------------------------------

    def save_status(self) -> None:
        """Record a copy of every account; only the newest entries are kept."""
        with self._lock.read_locked():
            copies = [a.snapshot() for a in self._accounts]
        with self._status_lock:
            self._statuses.append(copies)

    def rollback(self, atm_id: int, iterations: int) -> bool:
        """Restore the accounts saved ``iterations`` saves ago.

        Returns False, changing nothing, when that far back is not recorded.
        """
        self._pause()
        with self._status_lock:
            if iterations < 1 or iterations > len(self._statuses):
                return False
            saved = self._statuses[-iterations]
            restored = [a.snapshot() for a in saved]
        with self._lock.write_locked():
            self._accounts = restored
        self.log.write(
            f"{atm_id}: Rollback to {iterations} bank iterations ago was completed successfully"
        )
        return True

    # -- command dispatch --------------------------------------------------

    def _process_regular(self, command: Command) -> None:
        print(f"Processing regular command: {command.command}", file=self._out())

    def _process_vip(self, command: Command) -> None:
        print(f"VIP command processing for {command.command}", file=self._out())
        self._process_regular(command)

    def _process_persistent(self, command: Command) -> None:
        for _ in range(PERSISTENT_ATTEMPTS):
            self._process_regular(command)

    def process_command(self, command: Command) -> None:
        """Dispatch a parsed command by its PERSISTENT flag and VIP priority."""
        if command.is_persistent:
            self._process_persistent(command)
        elif command.vip_priority != -1:
            self._process_vip(command)
        else:
            self._process_regular(command)

    def process_operation(self, operation_line: str) -> bool:
        """Dispatch a raw operation line by the markers it mentions."""
        command = Command(operation_line, operation_line)
        if "PERSISTENT" in operation_line:
            self._process_persistent(command)
        elif "VIP" in operation_line:
            self._process_vip(command)
        else:
            self._process_regular(command)
        return True