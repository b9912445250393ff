"""
Execution Store

Persistence for workflows, definition versions, executions and node
executions. The engine talks to the database only through this class.

Every method opens its own short session (see database.get_db), so the
store can be shared between the engine, the approval service and Celery
tasks.
"""

import base64
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from pydantic import BaseModel
from sqlalchemy import func, update
from sqlalchemy.orm import sessionmaker

from ..database import get_db
from ..models import NodeExecution, Workflow, WorkflowDefinitionRecord, WorkflowExecution, utcnow
from .exceptions import NotFoundError
from .nodes import ExecutionStatus, NodeStatus, WorkflowNode

logger = logging.getLogger(__name__)


def make_json_serializable(obj: Any) -> Any:
    """
    Recursively convert values that JSON columns cannot store.

    - datetime / date -> ISO 8601 string
    - Decimal -> float, UUID -> str
    - bytes -> base64 string
    - sets / tuples -> lists
    - Pydantic models -> dicts
    """
    if isinstance(obj, dict):
        return {str(k): make_json_serializable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [make_json_serializable(item) for item in obj]
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, bytes):
        return base64.b64encode(obj).decode("ascii")
    if isinstance(obj, BaseModel):
        return make_json_serializable(obj.model_dump(mode="json"))
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    return str(obj)


class ExecutionStore:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _db(self):
        return get_db(self.session_factory)

    # ========================================================================
    # WORKFLOWS & DEFINITIONS
    # ========================================================================

    def create_workflow(
        self,
        name: str,
        content: str,
        format: str = "json",
        description: Optional[str] = None,
        team_id: Optional[str] = None,
        trigger: str = "manual",
        published: bool = False,
    ) -> Workflow:
        with self._db() as db:
            workflow = Workflow(
                name=name,
                description=description,
                team_id=team_id,
                trigger=trigger,
                is_published=published,
            )
            db.add(workflow)
            db.flush()

            record = WorkflowDefinitionRecord(workflow_id=workflow.id, version=1, content=content, format=format)
            db.add(record)
            db.flush()

            workflow.definition_id = record.id
            db.commit()
            logger.info(f"Created workflow {workflow.id} '{name}'")
            return workflow

    def save_definition(self, workflow_id: str, content: str, format: str = "json") -> WorkflowDefinitionRecord:
        """Store a new definition version and make it the workflow's current one."""
        with self._db() as db:
            workflow = db.get(Workflow, workflow_id)
            if workflow is None:
                raise NotFoundError(f"Workflow not found: {workflow_id}", workflow_id)

            latest = db.query(func.max(WorkflowDefinitionRecord.version)).filter(
                WorkflowDefinitionRecord.workflow_id == workflow_id
            ).scalar() or 0

            record = WorkflowDefinitionRecord(
                workflow_id=workflow_id, version=latest + 1, content=content, format=format
            )
            db.add(record)
            db.flush()

            workflow.definition_id = record.id
            db.commit()
            return record

    def set_published(self, workflow_id: str, published: bool = True) -> None:
        with self._db() as db:
            workflow = db.get(Workflow, workflow_id)
            if workflow is None:
                raise NotFoundError(f"Workflow not found: {workflow_id}", workflow_id)
            workflow.is_published = published
            db.commit()

    def get_workflow(self, workflow_id: str) -> Workflow:
        with self._db() as db:
            workflow = db.get(Workflow, workflow_id)
        if workflow is None:
            raise NotFoundError(f"Workflow not found: {workflow_id}", workflow_id)
        return workflow

    def get_definition(self, definition_id: Optional[str]) -> WorkflowDefinitionRecord:
        record = None
        if definition_id:
            with self._db() as db:
                record = db.get(WorkflowDefinitionRecord, definition_id)
        if record is None:
            raise NotFoundError(f"Workflow definition not found: {definition_id}", definition_id)
        return record

    # ========================================================================
    # EXECUTIONS
    # ========================================================================

    def create_execution(
        self,
        workflow_id: str,
        definition_id: str,
        triggered_by: str,
        context: Dict[str, Any],
        status: str = ExecutionStatus.RUNNING,
    ) -> WorkflowExecution:
        now = utcnow()
        with self._db() as db:
            execution = WorkflowExecution(
                workflow_id=workflow_id,
                definition_id=definition_id,
                status=status,
                triggered_by=triggered_by,
                context=make_json_serializable(context),
                triggered_at=now,
                started_at=now if status == ExecutionStatus.RUNNING else None,
            )
            db.add(execution)
            db.commit()
            return execution

    def get_execution(self, execution_id: str) -> WorkflowExecution:
        with self._db() as db:
            execution = db.get(WorkflowExecution, execution_id)
        if execution is None:
            raise NotFoundError(f"Execution not found: {execution_id}", execution_id)
        return execution

    def get_execution_status(self, execution_id: str) -> str:
        with self._db() as db:
            status = db.query(WorkflowExecution.status).filter(WorkflowExecution.id == execution_id).scalar()
        if status is None:
            raise NotFoundError(f"Execution not found: {execution_id}", execution_id)
        return status

    def transition(
        self,
        execution_id: str,
        to_status: str,
        from_statuses: Iterable[str],
        error: Optional[str] = None,
        output: Any = None,
    ) -> bool:
        """
        Compare-and-set the execution status.

        Only updates when the current status is one of ``from_statuses``,
        so a run that was cancelled (or failed by a rejection) is never
        overwritten by the node loop. Returns whether the row changed.
        """
        values: Dict[str, Any] = {"status": to_status}
        if to_status in ExecutionStatus.TERMINAL:
            values["completed_at"] = utcnow()
        if to_status == ExecutionStatus.RUNNING:
            values["completed_at"] = None
        if error is not None:
            values["error"] = error
        if output is not None:
            values["output"] = make_json_serializable(output)

        with self._db() as db:
            result = db.execute(
                update(WorkflowExecution)
                .where(WorkflowExecution.id == execution_id)
                .where(WorkflowExecution.status.in_(list(from_statuses)))
                .values(**values)
            )
            db.commit()
            changed = result.rowcount > 0

        if changed:
            logger.info(f"Execution {execution_id} -> {to_status}")
        return changed

    def list_executions(self, workflow_id: str, limit: int = 20, offset: int = 0) -> List[Tuple[WorkflowExecution, int]]:
        """Executions newest first, each with its node execution count."""
        with self._db() as db:
            node_counts = (
                db.query(NodeExecution.execution_id, func.count(NodeExecution.id).label("node_count"))
                .group_by(NodeExecution.execution_id)
                .subquery()
            )
            rows = (
                db.query(WorkflowExecution, func.coalesce(node_counts.c.node_count, 0))
                .outerjoin(node_counts, node_counts.c.execution_id == WorkflowExecution.id)
                .filter(WorkflowExecution.workflow_id == workflow_id)
                .order_by(WorkflowExecution.triggered_at.desc())
                .limit(limit)
                .offset(offset)
                .all()
            )
        return [(execution, count) for execution, count in rows]

    # ========================================================================
    # NODE EXECUTIONS
    # ========================================================================

    def start_node(self, execution_id: str, node: WorkflowNode, sequence: int, input: Any) -> str:
        with self._db() as db:
            row = NodeExecution(
                execution_id=execution_id,
                node_id=node.id,
                node_type=node.type,
                node_name=node.label,
                sequence=sequence,
                status=NodeStatus.RUNNING,
                input=make_json_serializable(input),
                started_at=utcnow(),
            )
            db.add(row)
            db.commit()
            return row.id

    def finish_node(
        self,
        node_execution_id: str,
        status: str,
        output: Any = None,
        error: Optional[str] = None,
        duration: Optional[int] = None,
    ) -> None:
        with self._db() as db:
            row = db.get(NodeExecution, node_execution_id)
            if row is None:
                raise NotFoundError(f"Node execution not found: {node_execution_id}", node_execution_id)
            row.status = status
            row.output = make_json_serializable(output)
            row.error = error
            row.duration = duration
            row.completed_at = utcnow()
            db.commit()

    def fail_running_nodes(self, execution_id: str, node_id: str, error: str) -> int:
        """Mark any still-running row of a node as failed (after an unexpected exception)."""
        with self._db() as db:
            result = db.execute(
                update(NodeExecution)
                .where(NodeExecution.execution_id == execution_id)
                .where(NodeExecution.node_id == node_id)
                .where(NodeExecution.status == NodeStatus.RUNNING)
                .values(status=NodeStatus.FAILED, error=error, completed_at=utcnow())
            )
            db.commit()
            return result.rowcount

    def record_node(
        self,
        execution_id: str,
        node: WorkflowNode,
        sequence: int,
        status: str,
        output: Any = None,
    ) -> str:
        """Write a node row that starts and finishes at once (trigger, skipped)."""
        now = utcnow()
        with self._db() as db:
            row = NodeExecution(
                execution_id=execution_id,
                node_id=node.id,
                node_type=node.type,
                node_name=node.label,
                sequence=sequence,
                status=status,
                input=make_json_serializable(node.data),
                output=make_json_serializable(output),
                started_at=now,
                completed_at=now,
                duration=0,
            )
            db.add(row)
            db.commit()
            return row.id

    def list_node_executions(self, execution_id: str, status: Optional[str] = None) -> List[NodeExecution]:
        with self._db() as db:
            query = db.query(NodeExecution).filter(NodeExecution.execution_id == execution_id)
            if status is not None:
                query = query.filter(NodeExecution.status == status)
            return query.order_by(NodeExecution.started_at, NodeExecution.sequence).all()
