"""SQLite implementation of the execution repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from ..contracts import NodeStatus, RunStatus, WorkflowGraph
from ..errors import BlockflowError
from .models import LogEntry, NodeExecutionRecord, RunRecord, utcnow
from .repository import ExecutionRepository


def _ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _dumps(value: Any) -> str | None:
    return json.dumps(value, default=str) if value is not None else None


def _loads(value: str | None) -> Any:
    return json.loads(value) if value is not None else None


class SQLiteExecutionRepository(ExecutionRepository):
    """Persist execution state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_runs (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                user_id TEXT,
                auth_context TEXT,
                status TEXT NOT NULL,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                updated_at TEXT NOT NULL,
                result TEXT,
                error TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS node_executions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id TEXT NOT NULL,
                node_id TEXT NOT NULL,
                status TEXT NOT NULL,
                started_at TEXT,
                completed_at TEXT,
                output TEXT,
                error TEXT,
                UNIQUE (run_id, node_id)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS execution_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                run_id TEXT NOT NULL,
                node_id TEXT NOT NULL,
                level TEXT NOT NULL,
                message TEXT NOT NULL,
                data TEXT,
                created_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                graph TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    @staticmethod
    def _run_from_row(row: sqlite3.Row) -> RunRecord:
        return RunRecord(
            id=row["id"],
            workflow_id=row["workflow_id"],
            user_id=row["user_id"],
            authorization=_loads(row["auth_context"]),
            status=RunStatus(row["status"]),
            started_at=_ts(row["started_at"]),
            completed_at=_ts(row["completed_at"]),
            updated_at=_ts(row["updated_at"]),
            result=_loads(row["result"]),
            error=row["error"],
        )

    # ------------------------------------------------------------------
    # Runs
    async def create_run(
        self,
        run_id: str,
        workflow_id: str,
        user_id: str | None = None,
        authorization: dict[str, Any] | None = None,
    ) -> RunRecord:
        now = utcnow().isoformat()
        await asyncio.to_thread(
            self._execute,
            """
            INSERT OR IGNORE INTO workflow_runs
                (id, workflow_id, user_id, auth_context, status, started_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            run_id,
            workflow_id,
            user_id,
            _dumps(authorization),
            RunStatus.PENDING.value,
            now,
            now,
        )
        run = await self.get_run(run_id)
        if run is None:
            raise BlockflowError(f"Run {run_id} could not be created")
        return run

    async def get_run(self, run_id: str) -> RunRecord | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM workflow_runs WHERE id = ?", run_id
        )
        return self._run_from_row(row) if row else None

    async def get_run_status(self, run_id: str) -> RunStatus | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT status FROM workflow_runs WHERE id = ?", run_id
        )
        return RunStatus(row["status"]) if row else None

    async def update_run_status(
        self,
        run_id: str,
        status: RunStatus,
        result: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        status = RunStatus(status)
        now = utcnow().isoformat()
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE workflow_runs
            SET status = ?,
                updated_at = ?,
                result = COALESCE(?, result),
                error = COALESCE(?, error),
                completed_at = CASE WHEN ? THEN ? ELSE completed_at END
            WHERE id = ?
            """,
            status.value,
            now,
            _dumps(result),
            error,
            1 if status.is_terminal else 0,
            now,
            run_id,
        )

    async def list_runs(self) -> list[RunRecord]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT * FROM workflow_runs ORDER BY started_at"
        )
        return [self._run_from_row(row) for row in rows]

    # ------------------------------------------------------------------
    # Node executions
    async def upsert_node_execution(
        self,
        run_id: str,
        node_id: str,
        status: NodeStatus,
        output: Any = None,
        error: str | None = None,
    ) -> None:
        status = NodeStatus(status)
        now = utcnow().isoformat()
        if status == NodeStatus.RUNNING:
            query = """
                INSERT INTO node_executions (run_id, node_id, status, started_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (run_id, node_id) DO UPDATE SET
                    status = excluded.status,
                    started_at = excluded.started_at,
                    completed_at = NULL,
                    output = NULL,
                    error = NULL
            """
            params = (run_id, node_id, status.value, now)
        elif status == NodeStatus.PENDING:
            query = """
                INSERT INTO node_executions (run_id, node_id, status)
                VALUES (?, ?, ?)
                ON CONFLICT (run_id, node_id) DO UPDATE SET status = excluded.status
            """
            params = (run_id, node_id, status.value)
        else:
            query = """
                INSERT INTO node_executions
                    (run_id, node_id, status, started_at, completed_at, output, error)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (run_id, node_id) DO UPDATE SET
                    status = excluded.status,
                    completed_at = excluded.completed_at,
                    output = excluded.output,
                    error = excluded.error
            """
            params = (run_id, node_id, status.value, now, now, _dumps(output), error)
        await asyncio.to_thread(self._execute, query, *params)

    async def get_node_executions(self, run_id: str) -> list[NodeExecutionRecord]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM node_executions WHERE run_id = ? ORDER BY id",
            run_id,
        )
        return [
            NodeExecutionRecord(
                run_id=r["run_id"],
                node_id=r["node_id"],
                status=NodeStatus(r["status"]),
                started_at=_ts(r["started_at"]),
                completed_at=_ts(r["completed_at"]),
                output=_loads(r["output"]),
                error=r["error"],
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Logs
    async def append_log(
        self,
        run_id: str,
        node_id: str,
        level: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO execution_logs (run_id, node_id, level, message, data, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            run_id,
            node_id,
            level,
            message,
            _dumps(data),
            utcnow().isoformat(),
        )

    async def get_logs(self, run_id: str) -> list[LogEntry]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM execution_logs WHERE run_id = ? ORDER BY id",
            run_id,
        )
        return [
            LogEntry(
                id=r["id"],
                run_id=r["run_id"],
                node_id=r["node_id"],
                level=r["level"],
                message=r["message"],
                data=_loads(r["data"]),
                created_at=_ts(r["created_at"]),
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Workflow graphs
    async def save_workflow(self, workflow_id: str, graph: WorkflowGraph) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO workflows (id, graph, updated_at) VALUES (?, ?, ?)
            ON CONFLICT (id) DO UPDATE SET
                graph = excluded.graph,
                updated_at = excluded.updated_at
            """,
            workflow_id,
            graph.model_dump_json(),
            utcnow().isoformat(),
        )

    async def get_workflow(self, workflow_id: str) -> WorkflowGraph | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT graph FROM workflows WHERE id = ?", workflow_id
        )
        return WorkflowGraph.model_validate_json(row["graph"]) if row else None
