"""Pytest configuration and fixtures."""

import copy
from pathlib import Path
from typing import Callable

import pytest

from ledgercal.database.db_manager import DatabaseManager
from ledgercal.models.account import Account
from ledgercal.models.transaction import TransactionTemplate
from ledgercal.services.transaction_store import LedgerStore


class FakeTimer:
    """Stand-in for threading.Timer that only fires when told to."""

    def __init__(self, delay: float, fn: Callable[[], None]) -> None:
        self.delay = delay
        self.fn = fn
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.started and not self.cancelled:
            self.fn()


class MemoryGateway:
    """In-memory gateway that records every save."""

    def __init__(self, accounts: list[Account] | None = None, active_id: str | None = None) -> None:
        self.accounts = accounts or []
        self.active_id = active_id
        self.histories: dict[str, dict[str, list[str]]] = {}
        self.save_calls = 0
        self.fail_saves = False

    def load_accounts(self) -> list[Account]:
        return copy.deepcopy(self.accounts)

    def save_accounts(self, accounts: list[Account], active_account_id: str | None = None) -> None:
        if self.fail_saves:
            raise ConnectionError("database unavailable")
        self.save_calls += 1
        self.accounts = copy.deepcopy(accounts)
        if active_account_id is not None:
            self.active_id = active_account_id

    def load_active_account_id(self) -> str | None:
        return self.active_id

    def load_entry_histories(self, account_id: str) -> dict[str, list[str]]:
        return copy.deepcopy(self.histories.get(account_id, {"payees": [], "descriptions": []}))

    def save_entry_histories(self, account_id: str, payees: list[str], descriptions: list[str]) -> None:
        self.histories[account_id] = {"payees": list(payees), "descriptions": list(descriptions)}

    def account(self, account_id: str) -> Account:
        return next(a for a in self.accounts if a.id == account_id)


@pytest.fixture
def make_template() -> Callable[..., TransactionTemplate]:
    """Factory for templates with sensible defaults."""
    counter = {"n": 0}

    def factory(date: str = "2024-01-01", amount: float = -10.0, **kwargs) -> TransactionTemplate:
        counter["n"] += 1
        kwargs.setdefault("id", f"t{counter['n']}")
        kwargs.setdefault("description", f"Item {counter['n']}")
        return TransactionTemplate(date=date, amount=amount, **kwargs)

    return factory


@pytest.fixture
def timers() -> list[FakeTimer]:
    """Every FakeTimer created by the timer_factory fixture."""
    return []


@pytest.fixture
def timer_factory(timers: list[FakeTimer]) -> Callable[[float, Callable], FakeTimer]:
    def factory(delay: float, fn: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay, fn)
        timers.append(timer)
        return timer

    return factory


@pytest.fixture
def gateway() -> MemoryGateway:
    """Gateway holding two empty accounts; 'checking' is active."""
    return MemoryGateway(
        accounts=[Account(id="checking", name="Checking"), Account(id="savings", name="Savings")],
        active_id="checking",
    )


@pytest.fixture
def store(gateway: MemoryGateway, timer_factory) -> LedgerStore:
    return LedgerStore(gateway, timer_factory=timer_factory).load()


@pytest.fixture
def db(tmp_path: Path):
    """Initialized database in a temporary directory."""
    manager = DatabaseManager(str(tmp_path / "ledger.db"))
    manager.initialize()
    yield manager
    manager.close()
