"""SQLite backend for the authoritative holdings table."""

import sqlite3
from pathlib import Path

from ..config import Config
from ..errors import RemoteUnavailableError

SCHEMA_VERSION = 1

SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Holdings table, one row per holding, tombstoned rather than deleted
CREATE TABLE IF NOT EXISTS holdings (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    metal TEXT NOT NULL,
    type TEXT,
    weight REAL NOT NULL,
    weight_unit TEXT,
    quantity INTEGER NOT NULL,
    purchase_price REAL NOT NULL,
    purchase_date TEXT NOT NULL,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    deleted_at TEXT
);

-- Indexes for common queries
CREATE INDEX IF NOT EXISTS idx_holdings_user_id ON holdings(user_id);
CREATE INDEX IF NOT EXISTS idx_holdings_user_active ON holdings(user_id, deleted_at);
"""

COLUMNS = (
    "id",
    "user_id",
    "metal",
    "type",
    "weight",
    "weight_unit",
    "quantity",
    "purchase_price",
    "purchase_date",
    "notes",
    "created_at",
    "updated_at",
)

UPDATABLE_COLUMNS = frozenset(COLUMNS[2:]) | {"deleted_at"}


class HoldingsDatabase:
    """SQLite database manager for remote holdings rows.

    Every sqlite failure surfaces as RemoteUnavailableError so the sync
    coordinator can treat this backend like any other remote service.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    @classmethod
    def from_config(cls, config: Config) -> "HoldingsDatabase":
        return cls(config.remote_db_path)

    def connect(self) -> None:
        """Open database connection and ensure schema exists."""
        try:
            self._conn = sqlite3.connect(self.db_path)
            self._conn.row_factory = sqlite3.Row
            self._migrate()
        except sqlite3.Error as e:
            self._conn = None
            raise RemoteUnavailableError(f"Cannot open holdings database {self.db_path}: {e}") from e

    def _migrate(self) -> None:
        """Run schema migrations."""
        cursor = self._conn.cursor()

        cursor.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
        )
        if not cursor.fetchone():
            # Fresh database - create all tables
            cursor.executescript(SCHEMA)
            cursor.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            self._conn.commit()
            return

        cursor.execute("SELECT MAX(version) FROM schema_version")
        current_version = cursor.fetchone()[0] or 0

        if current_version < SCHEMA_VERSION:
            cursor.executescript(SCHEMA)
            cursor.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,)
            )
            self._conn.commit()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self.connect()
        return self._conn

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "HoldingsDatabase":
        self.connect()
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # Row operations

    def select_active(self, user_id: str) -> list[dict]:
        """Rows for a user that are not tombstoned, newest first."""
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                """
                SELECT * FROM holdings
                WHERE user_id = ? AND deleted_at IS NULL
                ORDER BY created_at DESC
                """,
                (user_id,),
            )
            return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise RemoteUnavailableError(f"Failed to fetch holdings: {e}") from e

    def insert_rows(self, rows: list[dict]) -> None:
        """Insert rows in one transaction."""
        if not rows:
            return
        placeholders = ", ".join("?" for _ in COLUMNS)
        try:
            with self.conn:
                self.conn.executemany(
                    f"INSERT INTO holdings ({', '.join(COLUMNS)}) VALUES ({placeholders})",
                    [tuple(row.get(col) for col in COLUMNS) for row in rows],
                )
        except sqlite3.Error as e:
            raise RemoteUnavailableError(f"Failed to insert holdings: {e}") from e

    def update_row(self, holding_id: str, user_id: str, changes: dict) -> dict | None:
        """
        Apply changes to a live row owned by ``user_id``.

        Returns:
            The updated row, or None if no live row matched
        """
        unknown = set(changes) - UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update columns: {', '.join(sorted(unknown))}")

        assignments = ", ".join(f"{col} = ?" for col in changes)
        try:
            with self.conn:
                cursor = self.conn.execute(
                    f"""
                    UPDATE holdings SET {assignments}
                    WHERE id = ? AND user_id = ? AND deleted_at IS NULL
                    """,
                    (*changes.values(), holding_id, user_id),
                )
                if cursor.rowcount == 0:
                    return None
                row = self.conn.execute(
                    "SELECT * FROM holdings WHERE id = ?", (holding_id,)
                ).fetchone()
            return dict(row)
        except sqlite3.Error as e:
            raise RemoteUnavailableError(f"Failed to update holding {holding_id}: {e}") from e
