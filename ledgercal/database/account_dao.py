from typing import Optional
from ledgercal.database.db_manager import DatabaseManager
from ledgercal.models.account import Account


class AccountDAO:
    def __init__(self, db: DatabaseManager):
        self._db = db

    def _row_to_model(self, row) -> Account:
        return Account(id=row["id"], name=row["name"])

    def get_all(self) -> list[Account]:
        """Accounts in display order, without their transactions."""
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT * FROM accounts ORDER BY position, created_at, name"
        ).fetchall()
        return [self._row_to_model(r) for r in rows]

    def get_by_id(self, account_id: str) -> Optional[Account]:
        conn = self._db.get_connection()
        row = conn.execute(
            "SELECT * FROM accounts WHERE id = ?", (account_id,)
        ).fetchone()
        return self._row_to_model(row) if row else None

    def exists(self, account_id: str) -> bool:
        return self.get_by_id(account_id) is not None

    def upsert(self, account_id: str, name: str, position: int = 0):
        conn = self._db.get_connection()
        conn.execute(
            """INSERT INTO accounts(id, name, position) VALUES (?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET name = excluded.name,
                                             position = excluded.position""",
            (account_id, name, position),
        )
        self._db.commit()

    def delete_except(self, keep_ids: list[str]):
        """Delete every account not in keep_ids (their transactions cascade)."""
        conn = self._db.get_connection()
        if keep_ids:
            placeholders = ",".join("?" * len(keep_ids))
            conn.execute(
                f"DELETE FROM accounts WHERE id NOT IN ({placeholders})", keep_ids
            )
        else:
            conn.execute("DELETE FROM accounts")
        self._db.commit()
