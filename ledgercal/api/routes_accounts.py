"""
Routes for accounts, whole-state replacement and the active account.
"""
import logging

from fastapi import APIRouter, Depends, Query, Request

from ledgercal.api.deps import commit, get_gateway, get_store
from ledgercal.api.schemas import AccountIn, AccountNameIn, ActiveAccountIn, TransactionsIn
from ledgercal.models.account import Account
from ledgercal.models.transaction import TransactionTemplate
from ledgercal.services.gateway import SqliteGateway
from ledgercal.services.recurrence import expand_to_horizon
from ledgercal.services.transaction_store import LedgerStore
from ledgercal.utils.date_helpers import today

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.get("/accounts")
def list_accounts(
    request: Request,
    expand: bool = Query(False),
    gateway: SqliteGateway = Depends(get_gateway),
):
    accounts = gateway.load_accounts()
    if not expand:
        return [a.to_dict() for a in accounts]
    months = request.app.state.expansion_months
    return [
        {
            "id": a.id,
            "name": a.name,
            "transactions": [
                i.to_dict() for i in expand_to_horizon(a.transactions, today(), months)
            ],
        }
        for a in accounts
    ]


@router.post("/accounts")
def replace_accounts(body: list[AccountIn], gateway: SqliteGateway = Depends(get_gateway)):
    if not body:
        raise ValueError("Cannot delete the last account.")
    accounts = [Account.from_dict(a.model_dump()) for a in body]
    for account in accounts:
        account.sort()
    # an active id that names a dropped account moves to the first one
    gateway.save_accounts(accounts)
    logger.info("Replaced all accounts (%d)", len(accounts))
    return {"success": True}


@router.post("/transactions")
def replace_transactions(body: TransactionsIn, gateway: SqliteGateway = Depends(get_gateway)):
    templates = sorted(
        (TransactionTemplate.from_dict(t) for t in body.transactions),
        key=lambda t: (t.date, t.description, t.amount),
    )
    try:
        gateway.save_account_transactions(body.account_id, templates)
    except KeyError:
        raise LookupError(f"Account {body.account_id} not found.") from None
    return {"success": True}


@router.get("/active-account")
def get_active_account(gateway: SqliteGateway = Depends(get_gateway)):
    return {"activeAccountId": gateway.load_active_account_id()}


@router.post("/active-account")
def set_active_account(body: ActiveAccountIn, store: LedgerStore = Depends(get_store)):
    store.switch_account(body.active_account_id)
    commit(store)
    return {"activeAccountId": store.active_account_id}


@router.post("/accounts/new", status_code=201)
def create_account(body: AccountNameIn, store: LedgerStore = Depends(get_store)):
    account = store.create_account(body.name)
    commit(store)
    return account.to_dict()


@router.patch("/accounts/{account_id}")
def rename_account(account_id: str, body: AccountNameIn, store: LedgerStore = Depends(get_store)):
    account = store.rename_account(account_id, body.name)
    commit(store)
    return {"id": account.id, "name": account.name}


@router.delete("/accounts/{account_id}")
def delete_account(account_id: str, store: LedgerStore = Depends(get_store)):
    store.delete_account(account_id)
    commit(store)
    return {"success": True, "activeAccountId": store.active_account_id}
