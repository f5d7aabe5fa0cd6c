"""SQLite implementation of the execution store."""

from __future__ import annotations

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, List, Optional

from ..constants import DEFAULT_LIST_LIMIT, DEFAULT_STORE_CAPACITY
from ..contracts import ExecutionStats, WorkflowExecution
from .inmemory import build_stats
from .repository import ExecutionStore

logger = logging.getLogger(__name__)


class SQLiteExecutionStore(ExecutionStore):
    """Persist finished executions using SQLite.

    Per-status counters live in their own table and are updated in the same
    transaction as the insert or eviction that changes them.
    """

    def __init__(
        self, db_path: str | Path = ":memory:", capacity: int = DEFAULT_STORE_CAPACITY
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.db_path = str(db_path)
        self.capacity = capacity
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS executions (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    workflow_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    duration_ms REAL NOT NULL,
                    data TEXT NOT NULL
                )
                """
            )
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_executions_workflow "
                "ON executions (workflow_id, seq)"
            )
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS execution_stats (
                    status TEXT PRIMARY KEY,
                    tally INTEGER NOT NULL,
                    duration_sum REAL NOT NULL
                )
                """
            )

    # ------------------------------------------------------------------
    # Helper methods
    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.execute(query, params)
            return cur.fetchall()

    def _bump(self, status: str, delta: int, duration: float) -> None:
        self._conn.execute(
            """
            INSERT INTO execution_stats (status, tally, duration_sum)
            VALUES (?, ?, ?)
            ON CONFLICT(status) DO UPDATE SET
                tally = tally + excluded.tally,
                duration_sum = duration_sum + excluded.duration_sum
            """,
            (status, delta, duration),
        )
        self._conn.execute("DELETE FROM execution_stats WHERE tally <= 0")

    # ------------------------------------------------------------------
    # Store API
    def record(self, execution: WorkflowExecution) -> None:
        if not execution.is_terminal:
            raise ValueError(
                f"Execution {execution.id} is {execution.status.value}; "
                "only finished executions can be recorded"
            )
        duration = execution.duration_ms or 0.0
        with self._lock, self._conn:
            try:
                self._conn.execute(
                    "INSERT INTO executions (id, workflow_id, status, duration_ms, data) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        execution.id,
                        execution.workflow_id,
                        execution.status.value,
                        duration,
                        execution.to_json(),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError(f"Execution {execution.id} already recorded") from exc
            self._bump(execution.status.value, 1, duration)

            overflow = self._conn.execute(
                "SELECT seq, id, status, duration_ms FROM executions "
                "ORDER BY seq DESC LIMIT -1 OFFSET ?",
                (self.capacity,),
            ).fetchall()
            for row in overflow:
                self._conn.execute("DELETE FROM executions WHERE seq = ?", (row["seq"],))
                self._bump(row["status"], -1, -row["duration_ms"])
                logger.debug(f"Evicted execution {row['id']}")

    def get(self, execution_id: str) -> Optional[WorkflowExecution]:
        rows = self._fetchall("SELECT data FROM executions WHERE id = ?", execution_id)
        return WorkflowExecution.from_json(rows[0]["data"]) if rows else None

    def list_recent(self, limit: int = DEFAULT_LIST_LIMIT) -> List[WorkflowExecution]:
        rows = self._fetchall(
            "SELECT data FROM executions ORDER BY seq DESC LIMIT ?", max(limit, 0)
        )
        return [WorkflowExecution.from_json(r["data"]) for r in rows]

    def list_by_workflow(
        self, workflow_id: str, limit: int = DEFAULT_LIST_LIMIT
    ) -> List[WorkflowExecution]:
        rows = self._fetchall(
            "SELECT data FROM executions WHERE workflow_id = ? ORDER BY seq DESC LIMIT ?",
            workflow_id,
            max(limit, 0),
        )
        return [WorkflowExecution.from_json(r["data"]) for r in rows]

    def stats(self) -> ExecutionStats:
        rows = self._fetchall("SELECT status, tally, duration_sum FROM execution_stats")
        by_status = {r["status"]: r["tally"] for r in rows}
        total = sum(by_status.values())
        duration_sum = sum(r["duration_sum"] for r in rows)
        return build_stats(by_status, total, duration_sum)

    def clear(self) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM executions")
            self._conn.execute("DELETE FROM execution_stats")

    def close(self) -> None:
        self._conn.close()
