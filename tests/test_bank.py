import io

import pytest

from atmbank.account import (
    AccountExistsError,
    AccountNotFoundError,
    InsufficientFundsError,
    TargetAccountNotFoundError,
    TransactionLog,
    WrongPasswordError,
)
from atmbank.bank import Bank, Command, parse_command

PASSWORD = "password"
OTHER = "secret"


@pytest.fixture
def log_stream():
    return io.StringIO()


@pytest.fixture
def bank(log_stream):
    return Bank(log=TransactionLog(log_stream), delay=0, output=io.StringIO())


def log_lines(stream):
    return stream.getvalue().splitlines()


def test_create_account_and_balance(bank):
    bank.create_account(5, PASSWORD, 100, 1)
    assert bank.get_balance(5, PASSWORD, 1) == 100


def test_create_account_logs(bank, log_stream):
    bank.create_account(5, PASSWORD, 100, 1)
    assert bank.find_account(5).balance == 100
    assert log_lines(log_stream) == [
        "1: New account id is 5 with password password and initial balance 100"
    ]


def test_duplicate_account(bank, log_stream):
    bank.create_account(5, PASSWORD, 100, 1)
    with pytest.raises(AccountExistsError):
        bank.create_account(5, OTHER, 7, 2)
    assert log_lines(log_stream)[-1] == (
        "Error 2: Your transaction failed - account with the same id exists"
    )
    assert bank.get_balance(5, PASSWORD, 1) == 100


def test_accounts_kept_in_id_order(bank):
    for account_id in (3, 1, 2):
        bank.create_account(account_id, PASSWORD, 10, 1)
    assert [a.account_id for a in bank.accounts] == [1, 2, 3]
    assert len(bank) == 3


def test_delete_account(bank, log_stream):
    bank.create_account(4, PASSWORD, 70, 1)
    assert bank.delete_account(4, PASSWORD, 2) == 70
    assert bank.find_account(4) is None
    assert log_lines(log_stream)[-1] == "2: Account 4 is now closed. Balance was 70"


def test_delete_wrong_password_keeps_account(bank, log_stream):
    bank.create_account(4, PASSWORD, 70, 1)
    with pytest.raises(WrongPasswordError):
        bank.delete_account(4, OTHER, 2)
    assert bank.find_account(4).balance == 70
    assert "password for account id 4 is incorrect" in log_lines(log_stream)[-1]


def test_delete_missing(bank, log_stream):
    with pytest.raises(AccountNotFoundError):
        bank.delete_account(9, PASSWORD, 3)
    assert log_lines(log_stream) == [
        "Error 3: Your transaction failed - account id 9 does not exist"
    ]


@pytest.mark.parametrize("operation", ["deposit", "withdraw"])
def test_money_operations_on_missing_account(bank, log_stream, operation):
    with pytest.raises(AccountNotFoundError) as info:
        getattr(bank, operation)(9, PASSWORD, 5, 1)
    assert info.value.account_id == 9
    assert len(bank) == 0
    assert log_lines(log_stream) == [
        "Error 1: Your transaction failed - account id 9 does not exist"
    ]


def test_get_balance_missing(bank):
    with pytest.raises(AccountNotFoundError):
        bank.get_balance(9, PASSWORD, 1)


def test_deposit_then_withdraw_round_trip(bank):
    bank.create_account(1, PASSWORD, 100, 1)
    after_deposit = bank.deposit(1, PASSWORD, 40, 1)
    assert after_deposit == 100 + 40
    assert bank.withdraw(1, PASSWORD, 40, 1) == 100


def test_withdraw_insufficient(bank):
    bank.create_account(1, PASSWORD, 10, 1)
    with pytest.raises(InsufficientFundsError):
        bank.withdraw(1, PASSWORD, 11, 1)
    assert bank.get_balance(1, PASSWORD, 1) == 10


def test_deposit_wrong_password(bank):
    bank.create_account(1, PASSWORD, 10, 1)
    with pytest.raises(WrongPasswordError):
        bank.deposit(1, OTHER, 5, 1)
    assert bank.find_account(1).balance == 10


def test_transfer_preserves_total(bank, log_stream):
    bank.create_account(1, PASSWORD, 100, 1)
    bank.create_account(2, OTHER, 50, 1)
    new_balance, new_target = bank.transfer(1, PASSWORD, 2, 30, 4)
    assert new_balance + new_target == 150
    assert new_balance == bank.find_account(1).balance
    assert new_target == bank.find_account(2).balance
    assert log_lines(log_stream)[-1].startswith("4: Transfer 30 from account 1 to account 2")


def test_transfer_lock_order_reversed(bank):
    bank.create_account(1, PASSWORD, 100, 1)
    bank.create_account(2, OTHER, 50, 1)
    new_balance, new_target = bank.transfer(2, OTHER, 1, 50, 1)
    assert new_balance == 0
    assert new_target == bank.find_account(1).balance


def test_transfer_missing_source(bank):
    bank.create_account(2, OTHER, 50, 1)
    with pytest.raises(AccountNotFoundError) as info:
        bank.transfer(1, PASSWORD, 2, 5, 1)
    assert not isinstance(info.value, TargetAccountNotFoundError)


def test_transfer_missing_target(bank, log_stream):
    bank.create_account(1, PASSWORD, 100, 1)
    with pytest.raises(TargetAccountNotFoundError):
        bank.transfer(1, PASSWORD, 8, 5, 1)
    assert "account id 8 does not exist" in log_lines(log_stream)[-1]


def test_transfer_wrong_password(bank):
    bank.create_account(1, PASSWORD, 100, 1)
    bank.create_account(2, OTHER, 50, 1)
    with pytest.raises(WrongPasswordError):
        bank.transfer(1, OTHER, 2, 5, 1)
    assert bank.find_account(1).balance == 100
    assert bank.find_account(2).balance == 50


def test_transfer_insufficient_leaves_source(bank, log_stream):
    bank.create_account(1, PASSWORD, 10, 1)
    bank.create_account(2, OTHER, 50, 1)
    with pytest.raises(InsufficientFundsError):
        bank.transfer(1, PASSWORD, 2, 20, 1)
    assert bank.find_account(1).balance == 10
    assert "account id 1 balance is lower than 20" in log_lines(log_stream)[-1]


def test_commission_total_matches_bank_balance(bank):
    bank.create_account(1, PASSWORD, 1000, 1)
    bank.create_account(2, OTHER, 300, 1)
    before = sum(a.balance for a in bank.accounts)
    gained = bank.commission(2)
    after = sum(a.balance for a in bank.accounts)
    assert before - after == gained
    assert bank.bank_balance == gained


def test_commission_random_percentage_in_range(bank):
    bank.create_account(1, PASSWORD, 10000, 1)
    gained = bank.commission()
    assert 100 <= gained <= 500


def test_status_report(bank):
    bank.create_account(1, PASSWORD, 100, 1)
    report = bank.status_report()
    assert report.splitlines() == [
        "Current Bank Status",
        "Account 1: Balance - 100 $, Account Password - password",
    ]


def test_print_status_clears_screen(bank):
    bank.create_account(1, PASSWORD, 100, 1)
    out = io.StringIO()
    bank.print_status(out)
    assert out.getvalue() == "\033[2J\033[1;1H" + bank.status_report()


def test_close_atm(bank, log_stream):
    assert bank.add_atm("atm1.txt") == 1
    assert bank.add_atm("atm2.txt") == 2
    assert bank.close_atm(1, 2) is True
    assert bank.closed_atms == (False, True)
    assert log_lines(log_stream)[-1] == "Bank: ATM 1 closed 2 successfully"


def test_close_atm_twice(bank, log_stream):
    bank.add_atm("atm1.txt")
    bank.close_atm(1, 1)
    assert bank.close_atm(1, 1) is False
    assert log_lines(log_stream)[-1].endswith("ATM ID 1 is already in a closed state")


def test_close_unknown_atm(bank, log_stream):
    bank.add_atm("atm1.txt")
    assert bank.close_atm(1, 5) is False
    assert log_lines(log_stream)[-1].endswith("ATM ID 5 does not exist")
    assert bank.closed_atms == (False,)


def test_rollback_restores_balances(bank, log_stream):
    bank.create_account(1, PASSWORD, 100, 1)
    bank.save_status()
    bank.deposit(1, PASSWORD, 25, 1)
    assert bank.rollback(2, 1) is True
    assert bank.get_balance(1, PASSWORD, 1) == 100
    assert "2: Rollback to 1 bank iterations ago was completed successfully" in log_lines(log_stream)


def test_rollback_restores_deleted_account(bank):
    bank.create_account(1, PASSWORD, 100, 1)
    bank.save_status()
    bank.delete_account(1, PASSWORD, 1)
    assert bank.rollback(1, 1)
    assert bank.find_account(1).balance == 100


def test_rollback_history_independent_of_later_changes(bank):
    bank.create_account(1, PASSWORD, 100, 1)
    bank.save_status()
    bank.rollback(1, 1)
    bank.deposit(1, PASSWORD, 5, 1)
    bank.rollback(1, 1)
    assert bank.find_account(1).balance == 100


def test_rollback_too_far(bank):
    bank.create_account(1, PASSWORD, 100, 1)
    bank.save_status()
    bank.deposit(1, PASSWORD, 5, 1)
    assert bank.rollback(1, 2) is False
    assert bank.rollback(1, 0) is False
    assert bank.find_account(1).balance == 105


def test_history_is_bounded(log_stream):
    bank = Bank(log=TransactionLog(log_stream), delay=0, history_size=2)
    bank.create_account(1, PASSWORD, 100, 1)
    for _ in range(3):
        bank.save_status()
    assert bank.rollback(1, 3) is False
    assert bank.rollback(1, 2) is True


def test_parse_command_vip():
    command = parse_command("D 1 password 10 VIP=5")
    assert command.vip_priority == 5
    assert command.command == "D 1 password 10 "
    assert command.is_persistent is False


def test_parse_command_persistent():
    command = parse_command("W 1 password 5 PERSISTENT")
    assert command.is_persistent is True
    assert command.command == "W 1 password 5"
    assert command.vip_priority == -1


def test_parse_command_plain():
    command = parse_command("B 1 password")
    assert command == Command("B 1 password", "B 1 password", -1, False)


def test_parse_command_bad_priority():
    with pytest.raises(ValueError):
        parse_command("D 1 password 10 VIP=high")


def test_process_command_regular(bank):
    bank.process_command(parse_command("B 1 password"))
    assert bank.output.getvalue() == "Processing regular command: B 1 password\n"


def test_process_command_persistent_runs_twice(bank):
    bank.process_command(parse_command("B 1 password PERSISTENT"))
    assert bank.output.getvalue().splitlines() == [
        "Processing regular command: B 1 password",
        "Processing regular command: B 1 password",
    ]


def test_process_command_vip(bank):
    bank.process_command(parse_command("B 1 password VIP=3"))
    lines = bank.output.getvalue().splitlines()
    assert lines[0].startswith("VIP command processing for B 1 password")
    assert lines[1].startswith("Processing regular command: B 1 password")


def test_process_operation(bank):
    assert bank.process_operation("D 1 password 5 PERSISTENT") is True
    assert len(bank.output.getvalue().splitlines()) == 2