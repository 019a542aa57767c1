# atmbank

This package simulates a bank with threads. Each ATM is a thread that reads
operations from its own file and runs them against one shared bank. Other
threads run in the background:

- every 3 seconds a commission thread charges each account between 1 and 5
  percent, with the percentage chosen at random each round;
- a status thread clears the terminal about twice a second and prints the
  accounts.

Each transaction is recorded in `log.txt` in the current directory, whether it
succeeds or fails.

## Installing

```
pip install .
```

## Running

```
atmbank NUM_VIP_THREADS ATM_FILE [ATM_FILE ...]
```

`python -m atmbank.cli` takes the same arguments.

- `NUM_VIP_THREADS` sets how many worker threads take commands from the VIP
  queue.
- Each `ATM_FILE` starts one ATM. ATMs are numbered from 1, in the order of
  their files on the command line.

The program prints `Bank error: illegal arguments` and exits with status 1 in
these cases:

- no arguments are given;
- the first argument is not a non-negative integer;
- an ATM file cannot be opened.

It prints `Bank error: unable to open log file` if it cannot create `log.txt`.

While the simulation runs, the screen shows `Current Bank Status` followed by
one line for each account, in the form
`Account <id>: Balance - <balance> $, Account Password - <password>`.
The program exits with status 0 once every ATM has reached the end of its file.

## ATM file format

Each line holds one operation. Words are separated by single spaces.

| Line                                       | Operation                           |
|--------------------------------------------|-------------------------------------|
| `O <account> <password> <amount>`          | open an account                     |
| `D <account> <password> <amount>`          | deposit                             |
| `W <account> <password> <amount>`          | withdraw                            |
| `B <account> <password>`                   | balance inquiry                     |
| `Q <account> <password>`                   | close the account                   |
| `T <account> <password> <target> <amount>` | transfer to another account         |
| `C <atm>`                                  | close another ATM                   |
| `R <iterations>`                           | roll the bank back to a saved state |

Only the first letter of the first word selects the operation. A line whose
letter matches none of these does nothing. Empty lines are skipped. A line
that ends in a space is also skipped.

An ATM that another ATM has closed stops after the operation it is running.

Example:

```
O 1 password 100
D 1 password 50
W 1 password 30
O 2 password 0
T 1 password 2 20
B 2 password
```

## Log

Lines in `log.txt` look like these:

```
1: New account id is 1 with password password and initial balance 100
1: Account 1 new balance is 150 after 50 $ was deposited
Error 2: Your transaction failed - account id 7 does not exist
Bank: commissions of 3 % were charged, the bank gained 4 $ from account 1
Bank: ATM 1 closed 2 successfully
```

## What it does not do

- **VIP commands are not carried out.** A line containing `VIP=<level>` is put
  into the VIP queue, where higher levels come out first. The VIP worker
  threads take commands off the queue and then discard them, so these commands
  never change any account.
- **PERSISTENT commands are not carried out.** A line containing the word
  `PERSISTENT` goes to `Bank.process_operation`. That method prints
  `Processing regular command: ...` twice to standard output and counts the
  command as succeeded. The operation itself is never applied to the bank.
- **Rollback has no history to use while the program runs.** The bank keeps
  saved states only when `Bank.save_status` is called, and the simulation
  never calls it. An `R` line therefore changes nothing.
- Account data is not stored anywhere. Everything is lost when the program
  exits.

## Using it as a library

`atmbank.account` provides:

- `Account`, which has `get_balance`, `peek_balance`, `deposit`, `withdraw`,
  `deposit_unlocked`, `withdraw_unlocked`, `charge_commission`,
  `status_line` and `snapshot`;
- `ReadWriteLock`, which allows many readers at once or a single writer;
- `TransactionLog`, a thread-safe log that writes to a path, to an open
  stream, or to nowhere;
- the exceptions `BankError`, `AccountExistsError`, `AccountNotFoundError`,
  `TargetAccountNotFoundError`, `WrongPasswordError` and
  `InsufficientFundsError`.

`atmbank.bank` provides:

- `Bank`, which has `create_account`, `delete_account`, `deposit`, `withdraw`,
  `get_balance`, `transfer`, `commission`, `status_report`, `print_status`,
  `find_account`, `add_atm`, `close_atm`, `save_status`, `rollback`,
  `process_command` and `process_operation`;
- `Command` and `parse_command`, which split the `VIP=` priority and the
  `PERSISTENT` flag off a line.

`atmbank.cli` provides `tokenize`, `VipQueue`, `execute_operation`,
`Simulation` and `main`.

A failed transaction raises the matching `BankError` subclass instead of
returning a status code. `Bank` and `Simulation` take a `delay` argument, the
number of seconds each transaction holds its lock; it defaults to 1. Set it to
0 for fast runs.

```python
from atmbank.account import TransactionLog
from atmbank.bank import Bank

password = "password"
bank = Bank(TransactionLog(), delay=0)
bank.create_account(1, password, 100, atm_id=1)
bank.deposit(1, password, 50, atm_id=1)   # returns 150
```

## Tests

```
pip install .[test]
pytest
```