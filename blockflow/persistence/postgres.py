"""PostgreSQL implementation of the execution repository."""

from __future__ import annotations

import json
from typing import Any

import asyncpg

from ..contracts import NodeStatus, RunStatus, WorkflowGraph
from ..errors import BlockflowError
from .models import LogEntry, NodeExecutionRecord, RunRecord, utcnow
from .repository import ExecutionRepository


def _dumps(value: Any) -> str | None:
    return json.dumps(value, default=str) if value is not None else None


def _loads(value: Any) -> Any:
    # asyncpg hands JSONB back as text unless a codec is registered
    if isinstance(value, str):
        return json.loads(value)
    return value


class PostgresExecutionRepository(ExecutionRepository):
    """Persist execution state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_runs (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                user_id TEXT,
                auth_context JSONB,
                status TEXT NOT NULL,
                started_at TIMESTAMPTZ NOT NULL,
                completed_at TIMESTAMPTZ,
                updated_at TIMESTAMPTZ NOT NULL,
                result JSONB,
                error TEXT
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS node_executions (
                id SERIAL PRIMARY KEY,
                run_id TEXT NOT NULL,
                node_id TEXT NOT NULL,
                status TEXT NOT NULL,
                started_at TIMESTAMPTZ,
                completed_at TIMESTAMPTZ,
                output JSONB,
                error TEXT,
                UNIQUE (run_id, node_id)
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS execution_logs (
                id SERIAL PRIMARY KEY,
                run_id TEXT NOT NULL,
                node_id TEXT NOT NULL,
                level TEXT NOT NULL,
                message TEXT NOT NULL,
                data JSONB,
                created_at TIMESTAMPTZ NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                graph JSONB NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL
            )
            """
        )

    async def _execute(self, query: str, *params: Any) -> None:
        conn = await self._connect()
        try:
            await conn.execute(query, *params)
        finally:
            await conn.close()

    async def _fetchrow(self, query: str, *params: Any) -> asyncpg.Record | None:
        conn = await self._connect()
        try:
            return await conn.fetchrow(query, *params)
        finally:
            await conn.close()

    async def _fetch(self, query: str, *params: Any) -> list[asyncpg.Record]:
        conn = await self._connect()
        try:
            return await conn.fetch(query, *params)
        finally:
            await conn.close()

    @staticmethod
    def _run_from_row(row: asyncpg.Record) -> RunRecord:
        return RunRecord(
            id=row["id"],
            workflow_id=row["workflow_id"],
            user_id=row["user_id"],
            authorization=_loads(row["auth_context"]),
            status=RunStatus(row["status"]),
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            updated_at=row["updated_at"],
            result=_loads(row["result"]),
            error=row["error"],
        )

    # ------------------------------------------------------------------
    async def create_run(
        self,
        run_id: str,
        workflow_id: str,
        user_id: str | None = None,
        authorization: dict[str, Any] | None = None,
    ) -> RunRecord:
        now = utcnow()
        await self._execute(
            """
            INSERT INTO workflow_runs
                (id, workflow_id, user_id, auth_context, status, started_at, updated_at)
            VALUES ($1, $2, $3, $4::jsonb, $5, $6, $6)
            ON CONFLICT (id) DO NOTHING
            """,
            run_id,
            workflow_id,
            user_id,
            _dumps(authorization),
            RunStatus.PENDING.value,
            now,
        )
        run = await self.get_run(run_id)
        if run is None:
            raise BlockflowError(f"Run {run_id} could not be created")
        return run

    async def get_run(self, run_id: str) -> RunRecord | None:
        row = await self._fetchrow("SELECT * FROM workflow_runs WHERE id = $1", run_id)
        return self._run_from_row(row) if row else None

    async def get_run_status(self, run_id: str) -> RunStatus | None:
        row = await self._fetchrow(
            "SELECT status FROM workflow_runs WHERE id = $1", run_id
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
        await self._execute(
            """
            UPDATE workflow_runs
            SET status = $1,
                updated_at = $2,
                result = COALESCE($3::jsonb, result),
                error = COALESCE($4, error),
                completed_at = CASE WHEN $5 THEN $2 ELSE completed_at END
            WHERE id = $6
            """,
            status.value,
            utcnow(),
            _dumps(result),
            error,
            status.is_terminal,
            run_id,
        )

    async def list_runs(self) -> list[RunRecord]:
        rows = await self._fetch("SELECT * FROM workflow_runs ORDER BY started_at")
        return [self._run_from_row(r) for r in rows]

    # ------------------------------------------------------------------
    async def upsert_node_execution(
        self,
        run_id: str,
        node_id: str,
        status: NodeStatus,
        output: Any = None,
        error: str | None = None,
    ) -> None:
        status = NodeStatus(status)
        now = utcnow()
        if status == NodeStatus.RUNNING:
            await self._execute(
                """
                INSERT INTO node_executions (run_id, node_id, status, started_at)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (run_id, node_id) DO UPDATE SET
                    status = EXCLUDED.status,
                    started_at = EXCLUDED.started_at,
                    completed_at = NULL,
                    output = NULL,
                    error = NULL
                """,
                run_id,
                node_id,
                status.value,
                now,
            )
        elif status == NodeStatus.PENDING:
            await self._execute(
                """
                INSERT INTO node_executions (run_id, node_id, status)
                VALUES ($1, $2, $3)
                ON CONFLICT (run_id, node_id) DO UPDATE SET status = EXCLUDED.status
                """,
                run_id,
                node_id,
                status.value,
            )
        else:
            await self._execute(
                """
                INSERT INTO node_executions
                    (run_id, node_id, status, started_at, completed_at, output, error)
                VALUES ($1, $2, $3, $4, $4, $5::jsonb, $6)
                ON CONFLICT (run_id, node_id) DO UPDATE SET
                    status = EXCLUDED.status,
                    completed_at = EXCLUDED.completed_at,
                    output = EXCLUDED.output,
                    error = EXCLUDED.error
                """,
                run_id,
                node_id,
                status.value,
                now,
                _dumps(output),
                error,
            )

    async def get_node_executions(self, run_id: str) -> list[NodeExecutionRecord]:
        rows = await self._fetch(
            "SELECT * FROM node_executions WHERE run_id = $1 ORDER BY id", run_id
        )
        return [
            NodeExecutionRecord(
                run_id=r["run_id"],
                node_id=r["node_id"],
                status=NodeStatus(r["status"]),
                started_at=r["started_at"],
                completed_at=r["completed_at"],
                output=_loads(r["output"]),
                error=r["error"],
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    async def append_log(
        self,
        run_id: str,
        node_id: str,
        level: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        await self._execute(
            """
            INSERT INTO execution_logs (run_id, node_id, level, message, data, created_at)
            VALUES ($1, $2, $3, $4, $5::jsonb, $6)
            """,
            run_id,
            node_id,
            level,
            message,
            _dumps(data),
            utcnow(),
        )

    async def get_logs(self, run_id: str) -> list[LogEntry]:
        rows = await self._fetch(
            "SELECT * FROM execution_logs WHERE run_id = $1 ORDER BY id", run_id
        )
        return [
            LogEntry(
                id=r["id"],
                run_id=r["run_id"],
                node_id=r["node_id"],
                level=r["level"],
                message=r["message"],
                data=_loads(r["data"]),
                created_at=r["created_at"],
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow_id: str, graph: WorkflowGraph) -> None:
        await self._execute(
            """
            INSERT INTO workflows (id, graph, updated_at) VALUES ($1, $2::jsonb, $3)
            ON CONFLICT (id) DO UPDATE SET graph = EXCLUDED.graph, updated_at = EXCLUDED.updated_at
            """,
            workflow_id,
            graph.model_dump_json(),
            utcnow(),
        )

    async def get_workflow(self, workflow_id: str) -> WorkflowGraph | None:
        row = await self._fetchrow(
            "SELECT graph FROM workflows WHERE id = $1", workflow_id
        )
        if not row:
            return None
        return WorkflowGraph.model_validate(_loads(row["graph"]))
