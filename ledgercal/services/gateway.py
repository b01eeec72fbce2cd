"""Where account state is loaded from and saved to.

SqliteGateway talks to the local database through the DAOs; HttpGateway
talks to a running server over the REST contract. Both store templates
verbatim; expansion happens in the caller.
"""
import logging
from typing import Any, Protocol

import requests

from ledgercal.database.account_dao import AccountDAO
from ledgercal.database.db_manager import DatabaseManager
from ledgercal.database.entry_history_dao import EntryHistoryDAO
from ledgercal.database.transaction_dao import TransactionDAO
from ledgercal.models.account import Account
from ledgercal.utils.constants import ACTIVE_ACCOUNT_SETTING

logger = logging.getLogger(__name__)


class Gateway(Protocol):
    def load_accounts(self) -> list[Account]: ...
    def save_accounts(self, accounts: list[Account],
                      active_account_id: str | None = None) -> None: ...
    def load_active_account_id(self) -> str | None: ...
    def load_entry_histories(self, account_id: str) -> dict[str, list[str]]: ...
    def save_entry_histories(self, account_id: str, payees: list[str],
                             descriptions: list[str]) -> None: ...


class SqliteGateway:
    def __init__(self, db: DatabaseManager):
        self._db = db
        self._account_dao = AccountDAO(db)
        self._tx_dao = TransactionDAO(db)
        self._history_dao = EntryHistoryDAO(db)

    def load_accounts(self) -> list[Account]:
        accounts = self._account_dao.get_all()
        for account in accounts:
            account.transactions = self._tx_dao.get_by_account(account.id)
        return accounts

    def save_accounts(self, accounts: list[Account],
                      active_account_id: str | None = None) -> None:
        """Replace every account, template and the active id in one database transaction.

        Without an explicit active id the stored one is kept while it still
        names a saved account; otherwise the first account becomes active.
        Histories of removed accounts are deleted with them.
        """
        ids = [a.id for a in accounts]
        with self._db.transaction():
            self._account_dao.delete_except(ids)
            self._history_dao.delete_except(ids)
            for position, account in enumerate(accounts):
                self._account_dao.upsert(account.id, account.name, position)
                self._tx_dao.replace_for_account(account.id, account.transactions)
            if active_account_id is None:
                active_account_id = self.load_active_account_id()
            if ids and active_account_id not in ids:
                active_account_id = ids[0]
            self._db.set_setting(ACTIVE_ACCOUNT_SETTING, active_account_id or "")
        logger.debug("Saved %d account(s), active %s", len(accounts), active_account_id)

    def save_account_transactions(self, account_id: str, transactions) -> None:
        if not self._account_dao.exists(account_id):
            raise KeyError(account_id)
        with self._db.transaction():
            self._tx_dao.replace_for_account(account_id, transactions)

    def load_active_account_id(self) -> str | None:
        return self._db.get_setting(ACTIVE_ACCOUNT_SETTING) or None

    def load_entry_histories(self, account_id: str) -> dict[str, list[str]]:
        return self._history_dao.get(account_id)

    def save_entry_histories(self, account_id: str, payees: list[str],
                             descriptions: list[str]) -> None:
        self._history_dao.save(account_id, payees, descriptions)


class HttpGateway:
    """Client for a running ledgercal server."""

    def __init__(self, base_url: str, timeout: float = 10.0,
                 session: requests.Session | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    def _request(
        self,
        method: str,
        endpoint: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Make an API request."""
        url = f"{self.base_url}/api/{endpoint}"
        response = self._session.request(
            method, url, json=json, params=params, timeout=self.timeout
        )
        response.raise_for_status()
        return response.json()

    def load_accounts(self) -> list[Account]:
        return [Account.from_dict(a) for a in self._request("GET", "accounts")]

    def load_expanded_accounts(self) -> list[dict]:
        """Accounts with recurring templates expanded by the server."""
        return self._request("GET", "accounts", params={"expand": "true"})

    def save_accounts(self, accounts: list[Account],
                      active_account_id: str | None = None) -> None:
        """The server keeps the active id valid; an explicit one is posted after the accounts."""
        self._request("POST", "accounts", json=[a.to_dict() for a in accounts])
        if active_account_id is not None:
            self._request("POST", "active-account", json={"activeAccountId": active_account_id})

    def save_account_transactions(self, account_id: str, transactions) -> None:
        self._request("POST", "transactions", json={
            "accountId": account_id,
            "transactions": [t.to_dict() for t in transactions],
        })

    def load_active_account_id(self) -> str | None:
        return self._request("GET", "active-account").get("activeAccountId")

    def load_entry_histories(self, account_id: str) -> dict[str, list[str]]:
        data = self._request("GET", f"entry-histories/{account_id}")
        return {
            "payees": data.get("payees", []),
            "descriptions": data.get("descriptions", []),
        }

    def save_entry_histories(self, account_id: str, payees: list[str],
                             descriptions: list[str]) -> None:
        self._request("POST", f"entry-histories/{account_id}", json={
            "payees": list(payees),
            "descriptions": list(descriptions),
        })
