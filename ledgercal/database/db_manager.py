import logging
import os
import sqlite3
import uuid
from contextlib import contextmanager

from ledgercal.utils.constants import ACTIVE_ACCOUNT_SETTING, DB_FILE, DEFAULT_ACCOUNT_NAME

logger = logging.getLogger(__name__)


class DatabaseManager:
    def __init__(self, db_path: str | None = None):
        self.db_path = db_path or DB_FILE
        self._conn: sqlite3.Connection | None = None
        self._tx_depth = 0

    def get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            if self.db_path != ":memory:":
                self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def initialize(self):
        """Create schema and seed defaults."""
        conn = self.get_connection()
        self._create_schema(conn)
        self._migrate_schema(conn)
        self._seed_defaults(conn)
        conn.commit()

    def _migrate_schema(self, conn: sqlite3.Connection):
        """Idempotent ALTER TABLE for columns added after initial release."""
        cols = {row[1] for row in conn.execute("PRAGMA table_info(transactions)").fetchall()}
        if "recurrence_end_date" not in cols:
            conn.execute("ALTER TABLE transactions ADD COLUMN recurrence_end_date TEXT")
            logger.info("Migrated transactions: added recurrence_end_date")
        if "excluded_dates" not in cols:
            conn.execute(
                "ALTER TABLE transactions ADD COLUMN excluded_dates TEXT NOT NULL DEFAULT '[]'"
            )
            logger.info("Migrated transactions: added excluded_dates")

    def _create_schema(self, conn: sqlite3.Connection):
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS accounts (
                id         TEXT PRIMARY KEY,
                name       TEXT NOT NULL,
                position   INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL DEFAULT (datetime('now'))
            );

            CREATE TABLE IF NOT EXISTS transactions (
                id                    TEXT PRIMARY KEY,
                account_id            TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
                date                  TEXT NOT NULL,
                payee                 TEXT NOT NULL DEFAULT '',
                description           TEXT NOT NULL,
                notes                 TEXT NOT NULL DEFAULT '',
                amount                REAL NOT NULL,
                recurrence            TEXT NOT NULL DEFAULT 'one-time',
                recurrence_end_date   TEXT,
                excluded_dates        TEXT NOT NULL DEFAULT '[]',
                linked_transaction_id TEXT,
                linked_account_id     TEXT,
                created_at            TEXT NOT NULL DEFAULT (datetime('now'))
            );

            CREATE INDEX IF NOT EXISTS idx_transactions_account_id ON transactions(account_id);
            CREATE INDEX IF NOT EXISTS idx_transactions_date       ON transactions(date);

            CREATE TABLE IF NOT EXISTS app_settings (
                key   TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS entry_histories (
                account_id TEXT NOT NULL,
                kind       TEXT NOT NULL CHECK(kind IN ('payee','description')),
                entries    TEXT NOT NULL DEFAULT '[]',
                PRIMARY KEY (account_id, kind)
            );
        """)

    def _seed_defaults(self, conn: sqlite3.Connection):
        row = conn.execute("SELECT COUNT(*) AS cnt FROM accounts").fetchone()
        if row["cnt"] == 0:
            account_id = uuid.uuid4().hex
            conn.execute(
                "INSERT INTO accounts(id, name, position) VALUES (?, ?, 0)",
                (account_id, DEFAULT_ACCOUNT_NAME),
            )
            conn.execute(
                "INSERT OR REPLACE INTO app_settings(key, value) VALUES (?, ?)",
                (ACTIVE_ACCOUNT_SETTING, account_id),
            )
            logger.info("Seeded default account %r", DEFAULT_ACCOUNT_NAME)

    def commit(self):
        """Commit unless an enclosing transaction() block owns the commit."""
        if self._tx_depth == 0:
            self.get_connection().commit()

    @contextmanager
    def transaction(self):
        """Group several writes; commit on success, roll back on any exception."""
        conn = self.get_connection()
        self._tx_depth += 1
        try:
            yield conn
        except BaseException:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                conn.rollback()
            raise
        else:
            self._tx_depth -= 1
            if self._tx_depth == 0:
                conn.commit()

    def get_setting(self, key: str, default: str = "") -> str:
        conn = self.get_connection()
        row = conn.execute(
            "SELECT value FROM app_settings WHERE key = ?", (key,)
        ).fetchone()
        return row["value"] if row else default

    def set_setting(self, key: str, value: str):
        conn = self.get_connection()
        conn.execute(
            "INSERT OR REPLACE INTO app_settings(key, value) VALUES (?, ?)",
            (key, value),
        )
        self.commit()

    @staticmethod
    def open(db_folder: str | None = None) -> "DatabaseManager":
        """Startup factory: opens (creating if needed) the ledger database.

        db_folder: if provided, the DB file is stored in that directory instead of CWD.
        """
        if db_folder:
            os.makedirs(db_folder, exist_ok=True)
            path = os.path.join(db_folder, DB_FILE)
        else:
            path = DB_FILE
        db = DatabaseManager(path)
        db.initialize()
        logger.info("Opened database %s", path)
        return db

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None
