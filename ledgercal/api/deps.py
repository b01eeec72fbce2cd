"""Shared request dependencies: a database per request and a store loaded from it."""
from typing import Generator

from fastapi import Depends, Request

from ledgercal.database.db_manager import DatabaseManager
from ledgercal.services.gateway import SqliteGateway
from ledgercal.services.report_service import ReportService
from ledgercal.services.transaction_store import LedgerStore


def get_db(request: Request) -> Generator[DatabaseManager, None, None]:
    """
    FastAPI dependency that yields a database manager and ensures it is closed.

    Typical usage in routes:
        db: DatabaseManager = Depends(get_db)
    """
    db = DatabaseManager(request.app.state.db_path)
    try:
        yield db
    finally:
        db.close()


def get_gateway(db: DatabaseManager = Depends(get_db)) -> SqliteGateway:
    return SqliteGateway(db)


def get_store(gateway: SqliteGateway = Depends(get_gateway)) -> LedgerStore:
    """Store for one request. Nothing is saved on a timer; routes call commit()."""
    store = LedgerStore(gateway, persist_delay=None).load()
    if store.dirty:
        # load() seeded an account or fixed a stale active id
        commit(store)
    return store


def get_reports(store: LedgerStore = Depends(get_store)) -> ReportService:
    return ReportService(store)


def commit(store: LedgerStore) -> None:
    """Persist a request's mutations before responding."""
    if not store.flush():
        raise RuntimeError("Could not save changes.")
