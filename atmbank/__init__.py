"""A threaded bank simulation: accounts, the bank, and the ATM command-line driver."""

__version__ = "0.1.0"
__all__ = ["account", "bank", "cli"]