import contextlib
import sqlite3
from datetime import datetime
from typing import Protocol

from .errors import HistoryStoreError
from .models import SleepQuickAction


class HistoryStore(Protocol):
    def save(self, action: SleepQuickAction) -> None: ...

    def load_all(self) -> list[SleepQuickAction]: ...


class SqliteHistoryStore:
    """SQLite-backed log of dispatched quick actions.

    Dedupe key: id (a retried save of the same record is ignored)
    Oldest-first order: (timestamp, rowid)
    Rows are never updated; deletion is left to an external retention job.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        try:
            # check_same_thread=False: the ticker thread saves, the caller's thread loads at start
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS quick_actions (
                    id TEXT PRIMARY KEY,
                    timestamp TEXT NOT NULL,
                    action_type TEXT NOT NULL,
                    action_details TEXT NOT NULL,
                    reason TEXT NOT NULL
                )
                """
            )
            self._conn.execute("CREATE INDEX IF NOT EXISTS idx_quick_actions_order ON quick_actions(timestamp)")
            self._conn.commit()
        except sqlite3.Error as exc:
            raise HistoryStoreError(f"cannot open history store at {db_path}: {exc}") from exc

    def close(self) -> None:
        with contextlib.suppress(Exception):
            self._conn.close()

    def save(self, action: SleepQuickAction) -> None:
        try:
            self._conn.execute(
                """
                INSERT OR IGNORE INTO quick_actions(id, timestamp, action_type, action_details, reason)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    action.id,
                    action.timestamp.isoformat(),
                    action.action_type,
                    action.action_details,
                    action.reason,
                ),
            )
            self._conn.commit()
        except sqlite3.Error as exc:
            raise HistoryStoreError(f"failed to save quick action {action.id}: {exc}") from exc

    def load_all(self) -> list[SleepQuickAction]:
        try:
            cur = self._conn.cursor()
            cur.execute(
                "SELECT id, timestamp, action_type, action_details, reason FROM quick_actions "
                "ORDER BY timestamp ASC, rowid ASC"
            )
            rows = cur.fetchall()
        except sqlite3.Error as exc:
            raise HistoryStoreError(f"failed to load quick actions: {exc}") from exc

        result: list[SleepQuickAction] = []
        for row in rows:
            result.append(
                SleepQuickAction(
                    id=str(row[0]),
                    timestamp=datetime.fromisoformat(str(row[1])),
                    action_type=str(row[2]),
                    action_details=str(row[3]),
                    reason=str(row[4]),
                )
            )
        return result

    def count(self) -> int:
        cur = self._conn.cursor()
        cur.execute("SELECT COUNT(1) FROM quick_actions")
        row = cur.fetchone()
        return int(row[0]) if row else 0
