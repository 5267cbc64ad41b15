"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Any

from ..exceptions import ConflictError, NotFoundError
from ..models import WorkflowDefinition, WorkflowExecution, WorkflowStatus
from .repository import WorkflowRepository


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow state using SQLite.

    Records are stored as JSON documents next to the columns queried
    directly (name, workflow id, status, start time).
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS workflow_definitions (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    data TEXT NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS workflow_executions (
                    id TEXT PRIMARY KEY,
                    workflow_id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    start_time TEXT,
                    data TEXT NOT NULL
                )
                """
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS ix_executions_workflow ON workflow_executions (workflow_id, status)"
            )
            self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            try:
                cur.execute(query, params)
            except sqlite3.IntegrityError:
                self._conn.rollback()
                raise
            self._conn.commit()
            return cur.rowcount

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

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Definitions
    async def create_definition(self, definition: WorkflowDefinition) -> None:
        try:
            await asyncio.to_thread(
                self._execute,
                "INSERT INTO workflow_definitions (id, name, data) VALUES (?, ?, ?)",
                definition.id,
                definition.name,
                definition.model_dump_json(),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError(
                f"Workflow with ID {definition.id} already exists"
            ) from e

    async def update_definition(self, definition: WorkflowDefinition) -> None:
        updated = await asyncio.to_thread(
            self._execute,
            "UPDATE workflow_definitions SET name = ?, data = ? WHERE id = ?",
            definition.name,
            definition.model_dump_json(),
            definition.id,
        )
        if not updated:
            raise NotFoundError(f"Workflow with ID {definition.id} not found")

    async def delete_definition(self, workflow_id: str) -> None:
        await asyncio.to_thread(
            self._execute,
            "DELETE FROM workflow_definitions WHERE id = ?",
            workflow_id,
        )

    async def get_definition(self, workflow_id: str) -> WorkflowDefinition | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT data FROM workflow_definitions WHERE id = ?",
            workflow_id,
        )
        if not row:
            return None
        return WorkflowDefinition.model_validate_json(row["data"])

    async def list_definitions(self) -> list[WorkflowDefinition]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT data FROM workflow_definitions ORDER BY name",
        )
        return [WorkflowDefinition.model_validate_json(r["data"]) for r in rows]

    # ------------------------------------------------------------------
    # Executions
    async def insert_execution(self, execution: WorkflowExecution) -> None:
        try:
            await asyncio.to_thread(
                self._execute,
                "INSERT INTO workflow_executions (id, workflow_id, status, start_time, data) VALUES (?, ?, ?, ?, ?)",
                execution.id,
                execution.workflow_id,
                execution.status.value,
                execution.start_time.isoformat() if execution.start_time else None,
                execution.model_dump_json(),
            )
        except sqlite3.IntegrityError as e:
            raise ConflictError(
                f"Execution with ID {execution.id} already exists"
            ) from e

    async def update_execution(self, execution: WorkflowExecution) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO workflow_executions (id, workflow_id, status, start_time, data)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                status = excluded.status,
                start_time = excluded.start_time,
                data = excluded.data
            """,
            execution.id,
            execution.workflow_id,
            execution.status.value,
            execution.start_time.isoformat() if execution.start_time else None,
            execution.model_dump_json(),
        )

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT data FROM workflow_executions WHERE id = ?",
            execution_id,
        )
        if not row:
            return None
        return WorkflowExecution.model_validate_json(row["data"])

    async def list_executions(self, workflow_id: str) -> list[WorkflowExecution]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT data FROM workflow_executions WHERE workflow_id = ? ORDER BY start_time DESC",
            workflow_id,
        )
        return [WorkflowExecution.model_validate_json(r["data"]) for r in rows]

    async def count_running_executions(self, workflow_id: str) -> int:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT COUNT(*) AS running FROM workflow_executions WHERE workflow_id = ? AND status = ?",
            workflow_id,
            WorkflowStatus.RUNNING.value,
        )
        return int(row["running"]) if row else 0
