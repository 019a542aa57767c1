"""Command-line driver: ATM worker threads feeding the bank from operation files."""

from __future__ import annotations

import heapq
import itertools
import re
import sys
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from atmbank.account import BankError, TransactionLog
from atmbank.bank import Bank

MAX_RETRIES = 2
RETRY_DELAY = 1.0
LOG_FILE = "log.txt"

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

# Number of words (the operation letter included) each operation needs.
_ARITY = {"O": 4, "D": 4, "W": 4, "B": 3, "Q": 3, "T": 5, "C": 2, "R": 2}


def _to_int(text: str) -> int:
    """Read the integer at the start of ``text``, ignoring what follows it."""
    match = _LEADING_INT.match(text)
    if match is None:
        raise ValueError(f"expected a number, got {text!r}")
    return int(match.group(1))


def tokenize(line: str) -> List[str]:
    """Split an operation line on single spaces.

    Runs of spaces yield empty words. A line that is empty or ends in a
    separator yields no words at all, meaning it is skipped.
    """
    words = re.split(r"[ \n]", line)
    if not words[-1]:
        return []
    return words


@dataclass(frozen=True)
class VipCommand:
    """A queued operation line and its VIP level."""

    vip_level: int
    command: str


class VipQueue:
    """Thread-safe queue handing out the highest VIP level first.

    Commands with equal levels come out in the order they went in.
    """

    def __init__(self) -> None:
        self._heap: List[Tuple[int, int, VipCommand]] = []
        self._counter = itertools.count()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._heap)

    def push(self, command: str, vip_level: int) -> None:
        entry = VipCommand(vip_level, command)
        with self._lock:
            heapq.heappush(self._heap, (-vip_level, next(self._counter), entry))

    def pop(self) -> Optional[VipCommand]:
        """Remove and return the most urgent command, or None when empty."""
        with self._lock:
            if not self._heap:
                return None
            return heapq.heappop(self._heap)[2]


def execute_operation(bank: Bank, words: Sequence[str], atm_id: int) -> Any:
    """Run one tokenized ATM operation against ``bank`` and return its result.

    Operations are chosen by the first letter of the first word; an unknown
    letter does nothing and returns None. Failed transactions raise the
    bank's errors; missing or malformed operands raise ValueError.
    """
    op = words[0][:1] if words else ""
    needed = _ARITY.get(op)
    if needed is None:
        return None
    if len(words) < needed:
        raise ValueError(f"operation {words[0]!r} needs {needed - 1} operands")

    if op == "O":
        return bank.create_account(_to_int(words[1]), words[2], _to_int(words[3]), atm_id)
    if op == "D":
        return bank.deposit(_to_int(words[1]), words[2], _to_int(words[3]), atm_id)
    if op == "W":
        return bank.withdraw(_to_int(words[1]), words[2], _to_int(words[3]), atm_id)
    if op == "B":
        return bank.get_balance(_to_int(words[1]), words[2], atm_id)
    if op == "Q":
        return bank.delete_account(_to_int(words[1]), words[2], atm_id)
    if op == "T":
        return bank.transfer(
            _to_int(words[1]), words[2], _to_int(words[3]), _to_int(words[4]), atm_id
        )
    if op == "C":
        return bank.close_atm(atm_id, _to_int(words[1]))
    return bank.rollback(atm_id, _to_int(words[1]))


def _sleep(seconds: float) -> None:
    if seconds > 0:
        time.sleep(seconds)


class Simulation:
    """One bank served by an ATM thread per operation file.

    Alongside the ATMs run a commission thread, a status printer and a
    number of VIP workers that drain the VIP queue.
    """

    def __init__(
        self,
        atm_files: Iterable[str],
        vip_threads: int = 0,
        log: Optional[TransactionLog] = None,
        output: Any = None,
        delay: float = 1.0,
        operation_delay: float = 0.1,
        status_interval: float = 0.5,
        commission_interval: float = 3.0,
        vip_poll_interval: float = 0.1,
        shutdown_grace: float = 0.5,
        retry_delay: float = RETRY_DELAY,
    ) -> None:
        if vip_threads < 0:
            raise ValueError("the number of VIP threads cannot be negative")
        self.log = log if log is not None else TransactionLog()
        self.output = output
        self.bank = Bank(self.log, delay, output=output)
        self.atm_files = list(atm_files)
        for file_name in self.atm_files:
            self.bank.add_atm(file_name)
        self.vip_threads = vip_threads
        self.vip_queue = VipQueue()
        self.operation_delay = operation_delay
        self.status_interval = status_interval
        self.commission_interval = commission_interval
        self.vip_poll_interval = vip_poll_interval
        self.shutdown_grace = shutdown_grace
        self.retry_delay = retry_delay
        self._stop = threading.Event()
        self._completed = 0
        self._completed_lock = threading.Lock()

    @property
    def completed_atms(self) -> int:
        """How many ATMs have finished their operation files."""
        with self._completed_lock:
            return self._completed

    def _run_persistent(self, line: str) -> None:
        success = False
        retries = 0
        while not success and retries < MAX_RETRIES:
            success = self.bank.process_operation(line)
            if not success:
                retries += 1
                _sleep(self.retry_delay)
        if not success:
            self.log.write(f"Persistent command failed after {retries} retries: {line}")

    def run_atm(self, atm_id: int) -> None:
        """Play the operation file of ATM ``atm_id`` (1-based) against the bank."""
        path = self.atm_files[atm_id - 1]
        try:
            with open(path, encoding="utf-8") as atm_file:
                for raw in atm_file:
                    line = raw.rstrip("\n")
                    _sleep(self.operation_delay)
                    words = tokenize(line)
                    if not words:
                        continue

                    vip_level: Optional[int] = None
                    persistent = False
                    for word in words:
                        marker = word.find("VIP=")
                        if marker != -1:
                            vip_level = _to_int(word[marker + 4:])
                        elif word == "PERSISTENT":
                            persistent = True

                    if vip_level is not None:
                        self.vip_queue.push(line, vip_level)
                        continue
                    if persistent:
                        self._run_persistent(line)
                        continue

                    try:
                        execute_operation(self.bank, words, atm_id)
                    except BankError:
                        pass  # already written to the log by the bank

                    if self.bank.closed_atms[atm_id - 1]:
                        break
        finally:
            with self._completed_lock:
                self._completed += 1

    def _status_worker(self) -> None:
        while not self._stop.is_set():
            _sleep(self.status_interval)
            self.bank.print_status()

    def _commission_worker(self) -> None:
        while not self._stop.is_set():
            _sleep(self.commission_interval)
            self.bank.commission()

    def _vip_worker(self) -> None:
        while not self._stop.is_set():
            if self.vip_queue.pop() is None:
                _sleep(self.vip_poll_interval)

    def run(self) -> None:
        """Run every ATM to the end of its file, then stop the other threads.

        The first exception raised in any thread is raised again here.
        """
        self._stop.clear()
        errors: List[BaseException] = []

        def spawn(target: Callable[..., None], *args: Any) -> threading.Thread:
            def body() -> None:
                try:
                    target(*args)
                except BaseException as exc:  # noqa: BLE001 - handed back to the caller
                    errors.append(exc)

            thread = threading.Thread(target=body, daemon=True)
            thread.start()
            return thread

        vip_workers = [spawn(self._vip_worker) for _ in range(self.vip_threads)]
        atms = [spawn(self.run_atm, atm_id) for atm_id in range(1, len(self.atm_files) + 1)]
        background = [spawn(self._commission_worker), spawn(self._status_worker)]

        for thread in atms:
            thread.join()
        self._stop.set()
        _sleep(self.shutdown_grace)
        for thread in background + vip_workers:
            thread.join()

        if errors:
            raise errors[0]


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the bank: ``<vip threads> <atm file>...``; the log goes to log.txt."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print("Bank error: illegal arguments", file=sys.stderr)
        return 1
    try:
        vip_threads = _to_int(args[0])
    except ValueError:
        print("Bank error: illegal arguments", file=sys.stderr)
        return 1
    if vip_threads < 0:
        print("Bank error: illegal arguments", file=sys.stderr)
        return 1

    atm_files = args[1:]
    for file_name in atm_files:
        try:
            with open(file_name, encoding="utf-8"):
                pass
        except OSError:
            print("Bank error: illegal arguments", file=sys.stderr)
            return 1

    try:
        log = TransactionLog(LOG_FILE)
    except OSError:
        print("Bank error: unable to open log file", file=sys.stderr)
        return 1

    with log:
        try:
            Simulation(atm_files, vip_threads, log).run()
        except OSError:
            print("Bank error: failed to open ATM file", file=sys.stderr)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())