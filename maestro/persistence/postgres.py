"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import asyncpg

from ..exceptions import ConflictError, NotFoundError
from ..models import WorkflowDefinition, WorkflowExecution, WorkflowStatus
from .repository import WorkflowRepository


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflow state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            try:
                await self._ensure_schema(conn)
            except Exception:
                await conn.close()
                raise
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_definitions (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                data JSONB NOT NULL
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                status TEXT NOT NULL,
                start_time TIMESTAMPTZ,
                data JSONB NOT NULL
            )
            """
        )

    # ------------------------------------------------------------------
    async def create_definition(self, definition: WorkflowDefinition) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO workflow_definitions (id, name, data) VALUES ($1, $2, $3)",
                definition.id,
                definition.name,
                definition.model_dump_json(),
            )
        except asyncpg.UniqueViolationError as e:
            raise ConflictError(
                f"Workflow with ID {definition.id} already exists"
            ) from e
        finally:
            await conn.close()

    async def update_definition(self, definition: WorkflowDefinition) -> None:
        conn = await self._connect()
        try:
            status = await conn.execute(
                "UPDATE workflow_definitions SET name = $1, data = $2 WHERE id = $3",
                definition.name,
                definition.model_dump_json(),
                definition.id,
            )
        finally:
            await conn.close()
        if status.endswith(" 0"):
            raise NotFoundError(f"Workflow with ID {definition.id} not found")

    async def delete_definition(self, workflow_id: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "DELETE FROM workflow_definitions WHERE id = $1", workflow_id
            )
        finally:
            await conn.close()

    async def get_definition(self, workflow_id: str) -> WorkflowDefinition | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT data::text AS data FROM workflow_definitions WHERE id = $1",
                workflow_id,
            )
        finally:
            await conn.close()
        if not row:
            return None
        return WorkflowDefinition.model_validate_json(row["data"])

    async def list_definitions(self) -> list[WorkflowDefinition]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT data::text AS data FROM workflow_definitions ORDER BY name"
            )
        finally:
            await conn.close()
        return [WorkflowDefinition.model_validate_json(r["data"]) for r in rows]

    # ------------------------------------------------------------------
    async def insert_execution(self, execution: WorkflowExecution) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO workflow_executions (id, workflow_id, status, start_time, data) VALUES ($1, $2, $3, $4, $5)",
                execution.id,
                execution.workflow_id,
                execution.status.value,
                execution.start_time,
                execution.model_dump_json(),
            )
        except asyncpg.UniqueViolationError as e:
            raise ConflictError(
                f"Execution with ID {execution.id} already exists"
            ) from e
        finally:
            await conn.close()

    async def update_execution(self, execution: WorkflowExecution) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO workflow_executions (id, workflow_id, status, start_time, data)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (id) DO UPDATE SET
                    status = EXCLUDED.status,
                    start_time = EXCLUDED.start_time,
                    data = EXCLUDED.data
                """,
                execution.id,
                execution.workflow_id,
                execution.status.value,
                execution.start_time,
                execution.model_dump_json(),
            )
        finally:
            await conn.close()

    async def get_execution(self, execution_id: str) -> WorkflowExecution | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT data::text AS data FROM workflow_executions WHERE id = $1",
                execution_id,
            )
        finally:
            await conn.close()
        if not row:
            return None
        return WorkflowExecution.model_validate_json(row["data"])

    async def list_executions(self, workflow_id: str) -> list[WorkflowExecution]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT data::text AS data FROM workflow_executions WHERE workflow_id = $1 ORDER BY start_time DESC",
                workflow_id,
            )
        finally:
            await conn.close()
        return [WorkflowExecution.model_validate_json(r["data"]) for r in rows]

    async def count_running_executions(self, workflow_id: str) -> int:
        conn = await self._connect()
        try:
            count = await conn.fetchval(
                "SELECT COUNT(*) FROM workflow_executions WHERE workflow_id = $1 AND status = $2",
                workflow_id,
                WorkflowStatus.RUNNING.value,
            )
        finally:
            await conn.close()
        return int(count or 0)
