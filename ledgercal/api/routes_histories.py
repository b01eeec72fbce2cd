"""
Routes for payee/description autocomplete histories.
"""
from fastapi import APIRouter, Depends, Query

from ledgercal.api.deps import get_gateway, get_store
from ledgercal.api.schemas import EntryHistoriesIn, EntryIn
from ledgercal.services.entry_history import normalize_history, suggestions
from ledgercal.services.gateway import SqliteGateway
from ledgercal.services.transaction_store import LedgerStore

router = APIRouter(prefix="/api/entry-histories/{account_id}")


@router.get("")
def get_histories(account_id: str, gateway: SqliteGateway = Depends(get_gateway)):
    return gateway.load_entry_histories(account_id)


@router.post("")
def save_histories(account_id: str, body: EntryHistoriesIn,
                   gateway: SqliteGateway = Depends(get_gateway)):
    payees = normalize_history(body.payees)
    descriptions = normalize_history(body.descriptions)
    gateway.save_entry_histories(account_id, payees, descriptions)
    return {"payees": payees, "descriptions": descriptions}


@router.post("/entries")
def record_entry(account_id: str, body: EntryIn, store: LedgerStore = Depends(get_store)):
    return store.record_entry(account_id, body.payee, body.description)


@router.get("/suggestions")
def get_suggestions(
    account_id: str,
    field: str = Query("description", pattern="^(payee|description)$"),
    q: str = Query(""),
    gateway: SqliteGateway = Depends(get_gateway),
):
    histories = gateway.load_entry_histories(account_id)
    return suggestions(histories[f"{field}s"], q)
