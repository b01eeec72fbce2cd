import json
from ledgercal.database.db_manager import DatabaseManager

KINDS = ("payee", "description")


class EntryHistoryDAO:
    def __init__(self, db: DatabaseManager):
        self._db = db

    def get(self, account_id: str) -> dict[str, list[str]]:
        """Return {'payees': [...], 'descriptions': [...]} for an account."""
        conn = self._db.get_connection()
        rows = conn.execute(
            "SELECT kind, entries FROM entry_histories WHERE account_id = ?",
            (account_id,),
        ).fetchall()
        found = {r["kind"]: json.loads(r["entries"] or "[]") for r in rows}
        return {
            "payees": found.get("payee", []),
            "descriptions": found.get("description", []),
        }

    def save(self, account_id: str, payees: list[str], descriptions: list[str]):
        conn = self._db.get_connection()
        for kind, entries in (("payee", payees), ("description", descriptions)):
            conn.execute(
                """INSERT INTO entry_histories(account_id, kind, entries) VALUES (?, ?, ?)
                   ON CONFLICT(account_id, kind) DO UPDATE SET entries = excluded.entries""",
                (account_id, kind, json.dumps(list(entries))),
            )
        self._db.commit()

    def delete_except(self, keep_ids: list[str]):
        """Drop the histories of every account not in keep_ids."""
        conn = self._db.get_connection()
        if keep_ids:
            placeholders = ",".join("?" * len(keep_ids))
            conn.execute(
                f"DELETE FROM entry_histories WHERE account_id NOT IN ({placeholders})", keep_ids
            )
        else:
            conn.execute("DELETE FROM entry_histories")
        self._db.commit()
