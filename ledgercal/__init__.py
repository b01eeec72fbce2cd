"""Calendar ledger: recurring transactions, running balances, transfers."""

__version__ = "0.1.0"
