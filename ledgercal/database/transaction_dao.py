import json
from ledgercal.database.db_manager import DatabaseManager
from ledgercal.models.transaction import TransactionTemplate

_COLUMNS = (
    "id, account_id, date, payee, description, notes, amount, recurrence, "
    "recurrence_end_date, excluded_dates, linked_transaction_id, linked_account_id"
)


class TransactionDAO:
    def __init__(self, db: DatabaseManager):
        self._db = db

    def _row_to_model(self, row) -> TransactionTemplate:
        return TransactionTemplate(
            id=row["id"],
            date=row["date"],
            description=row["description"],
            amount=row["amount"],
            payee=row["payee"] or "",
            notes=row["notes"] or "",
            recurrence=row["recurrence"],
            recurrence_end_date=row["recurrence_end_date"],
            excluded_dates=json.loads(row["excluded_dates"] or "[]"),
            linked_transaction_id=row["linked_transaction_id"],
            linked_account_id=row["linked_account_id"],
        )

    def get_by_account(self, account_id: str) -> list[TransactionTemplate]:
        conn = self._db.get_connection()
        rows = conn.execute(
            f"SELECT {_COLUMNS} FROM transactions WHERE account_id = ? "
            "ORDER BY date ASC, description ASC, amount ASC",
            (account_id,),
        ).fetchall()
        return [self._row_to_model(r) for r in rows]

    def replace_for_account(self, account_id: str, templates: list[TransactionTemplate]):
        """Delete every template of the account and insert the given ones."""
        conn = self._db.get_connection()
        conn.execute("DELETE FROM transactions WHERE account_id = ?", (account_id,))
        conn.executemany(
            f"INSERT INTO transactions({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [self._to_params(account_id, t) for t in templates],
        )
        self._db.commit()

    @staticmethod
    def _to_params(account_id: str, t: TransactionTemplate) -> tuple:
        return (
            t.id,
            account_id,
            t.date,
            t.payee,
            t.description,
            t.notes,
            t.amount,
            t.recurrence,
            t.recurrence_end_date,
            json.dumps(sorted(t.excluded_dates)),
            t.linked_transaction_id,
            t.linked_account_id,
        )
