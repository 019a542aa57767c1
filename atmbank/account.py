"""Bank accounts, their locks, the shared transaction log and the bank's errors."""

from __future__ import annotations

import math
import os
import threading
import time
from contextlib import contextmanager
from typing import IO, Iterator, Optional, Union


class BankError(Exception):
    """Base class for every failed bank transaction."""


class AccountExistsError(BankError):
    """An account with the requested id already exists."""

    def __init__(self, account_id: int) -> None:
        super().__init__(f"account with id {account_id} already exists")
        self.account_id = account_id


class AccountNotFoundError(BankError):
    """The account the transaction names does not exist."""

    def __init__(self, account_id: int) -> None:
        super().__init__(f"account id {account_id} does not exist")
        self.account_id = account_id


class TargetAccountNotFoundError(AccountNotFoundError):
    """The target account of a transfer does not exist."""


class WrongPasswordError(BankError):
    """The password given does not match the account's."""

    def __init__(self, account_id: int) -> None:
        super().__init__(f"password for account id {account_id} is incorrect")
        self.account_id = account_id


class InsufficientFundsError(BankError):
    """The account holds less money than was asked for."""

    def __init__(self, account_id: int, amount: int, balance: int) -> None:
        super().__init__(f"account id {account_id} balance is lower than {amount}")
        self.account_id = account_id
        self.amount = amount
        self.balance = balance


class TransactionLog:
    """A thread-safe, line-oriented log.

    ``target`` may be a path, which is opened for writing and owned by the
    log, or an already open text stream. With no target, lines are dropped.
    """

    def __init__(self, target: Union[str, "os.PathLike[str]", IO[str], None] = None) -> None:
        self._lock = threading.Lock()
        self._owns_stream = False
        self._stream: Optional[IO[str]]
        if target is None:
            self._stream = None
        elif isinstance(target, (str, os.PathLike)):
            self._stream = open(target, "w", encoding="utf-8")
            self._owns_stream = True
        else:
            self._stream = target

    @property
    def is_open(self) -> bool:
        return self._stream is not None

    def write(self, line: str) -> None:
        """Append one line; ignored once the log is closed."""
        with self._lock:
            if self._stream is not None:
                self._stream.write(line + "\n")
                self._stream.flush()

    def close(self) -> None:
        """Stop logging, closing the file if the log opened it."""
        with self._lock:
            if self._stream is not None and self._owns_stream:
                self._stream.close()
            self._stream = None

    def __enter__(self) -> "TransactionLog":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ReadWriteLock:
    """Readers-preference lock: many readers at once, or a single writer."""

    def __init__(self) -> None:
        self._readers_guard = threading.Lock()
        # A plain Lock, since the last reader out may not be the first one in.
        self._write_lock = threading.Lock()
        self._readers = 0

    def _acquire_read(self) -> None:
        with self._readers_guard:
            self._readers += 1
            if self._readers == 1:
                self._write_lock.acquire()

    def _release_read(self) -> None:
        with self._readers_guard:
            self._readers -= 1
            if self._readers == 0:
                self._write_lock.release()

    def acquire_write(self) -> None:
        self._write_lock.acquire()

    def release_write(self) -> None:
        self._write_lock.release()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self._acquire_read()
        try:
            yield
        finally:
            self._release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


class Account:
    """A bank account guarded by its own readers-writer lock.

    Every locked operation waits ``delay`` seconds while holding the lock,
    as a real teller transaction would take time.
    """

    def __init__(
        self,
        account_id: int,
        password: str,
        balance: int,
        log: Optional[TransactionLog] = None,
        delay: float = 1.0,
    ) -> None:
        self.account_id = account_id
        self.password = password
        self._balance = balance
        self.log = log if log is not None else TransactionLog()
        self.delay = delay
        self.lock = ReadWriteLock()

    def __repr__(self) -> str:
        return f"Account(account_id={self.account_id}, balance={self._balance})"

    def __lt__(self, other: "Account") -> bool:
        return self.account_id < other.account_id

    @property
    def balance(self) -> int:
        return self._balance

    def _pause(self) -> None:
        if self.delay > 0:
            time.sleep(self.delay)

    def _log_wrong_password(self, atm_id: int) -> None:
        self.log.write(
            f"Error {atm_id}: Your transaction failed - password for account id "
            f"{self.account_id} is incorrect"
        )

    def check_password(self, password: str) -> bool:
        return self.password == password

    def get_balance(self, password: str, atm_id: int) -> int:
        """Return the balance, logging the inquiry."""
        with self.lock.read_locked():
            self._pause()
            if not self.check_password(password):
                self._log_wrong_password(atm_id)
                raise WrongPasswordError(self.account_id)
            self.log.write(f"{atm_id}: Account {self.account_id} balance is {self._balance}")
            return self._balance

    def peek_balance(self, password: str) -> int:
        """Return the balance without logging anything."""
        with self.lock.read_locked():
            self._pause()
            if not self.check_password(password):
                raise WrongPasswordError(self.account_id)
            return self._balance

    def deposit(self, amount: int, password: str, atm_id: int) -> int:
        """Add ``amount`` and return the new balance."""
        with self.lock.write_locked():
            self._pause()
            if not self.check_password(password):
                self._log_wrong_password(atm_id)
                raise WrongPasswordError(self.account_id)
            self._balance += amount
            self.log.write(
                f"{atm_id}: Account {self.account_id} new balance is {self._balance} "
                f"after {amount} $ was deposited"
            )
            return self._balance

    def deposit_unlocked(self, amount: int) -> int:
        """Add ``amount`` without locking; the caller holds the write lock."""
        self._balance += amount
        return self._balance

    def withdraw(self, amount: int, password: str, atm_id: int) -> int:
        """Take ``amount`` out and return the new balance."""
        with self.lock.write_locked():
            self._pause()
            if not self.check_password(password):
                self._log_wrong_password(atm_id)
                raise WrongPasswordError(self.account_id)
            if self._balance < amount:
                self.log.write(
                    f"Error {atm_id}: Your transaction failed - account id "
                    f"{self.account_id} balance is lower than {amount}"
                )
                raise InsufficientFundsError(self.account_id, amount, self._balance)
            self._balance -= amount
            self.log.write(
                f"{atm_id}: Account {self.account_id} new balance is {self._balance} "
                f"after {amount} $ was withdrew"
            )
            return self._balance

    def withdraw_unlocked(self, amount: int) -> int:
        """Take ``amount`` out without locking; the caller holds the write lock."""
        if self._balance < amount:
            raise InsufficientFundsError(self.account_id, amount, self._balance)
        self._balance -= amount
        return self._balance

    def charge_commission(self, percentage: int) -> int:
        """Charge ``percentage`` percent of the balance and return the amount taken."""
        with self.lock.write_locked():
            charged = _round_half_away(float(self._balance) * (float(percentage) / 100))
            self._balance -= charged
            self.log.write(
                f"Bank: commissions of {percentage} % were charged, the bank gained "
                f"{charged} $ from account {self.account_id}"
            )
            return charged

    def status_line(self) -> str:
        with self.lock.read_locked():
            return (
                f"Account {self.account_id}: Balance - {self._balance} $, "
                f"Account Password - {self.password}"
            )

    def snapshot(self) -> "Account":
        """Return an independent copy with the same id, password and balance."""
        with self.lock.read_locked():
            return Account(self.account_id, self.password, self._balance, self.log, self.delay)