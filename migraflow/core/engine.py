"""
Workflow Engine for migraflow

The WorkflowEngine is responsible for:
1. Loading the published definition of a workflow and parsing it
2. Creating the execution record and handing the node loop to a dispatcher
3. Running nodes one by one in topological order, persisting each one
4. Propagating node outputs to later nodes through the context
5. Stopping on the first failure, pausing at approval gates
6. Resuming paused executions, cancelling running ones
7. Answering status / history queries and running previews

Example:
    engine = build_engine()

    started = await engine.execute(workflow_id, {"currentUser": {"id": "u1"}})
    # {"execution_id": "...", "status": "running"}

    engine.get_status(started["execution_id"])
"""

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
from sqlalchemy.orm import sessionmaker

from ..config import Settings, get_settings
from ..database import get_engine, get_session_factory
from ..models import NodeExecution, WorkflowDefinitionRecord, WorkflowExecution
from .approvals import ApprovalService
from .context import CurrentUser, ExecutionContext, TriggerContext
from .dispatch import AsyncioDispatcher, CeleryDispatcher
from .exceptions import NodeExecutionError, NotPublishedError, UnknownExecutorError
from .executors.base import NodeExecutionResult, ValidationResult
from .executors.registry import ExecutorRegistry, build_default_registry
from .integrations.database import DatabaseConnectionService, MigrationService
from .integrations.email import EmailTransport, SmtpEmailTransport
from .integrations.shell import ShellRunner
from .integrations.teams import TeamDirectory
from .logging_config import clear_execution_id, set_execution_id
from .nodes import ExecutionStatus, ExecutorCategory, NodeStatus, WorkflowDefinition, WorkflowNode
from .parser import WorkflowParser
from .scheduler import BranchTracker, get_execution_order
from .store import ExecutionStore
from .variables import resolve_object

logger = logging.getLogger(__name__)

TRIGGER_OUTPUT = {"triggered": True}


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


class WorkflowEngine:
    """
    Orchestrates workflow executions.

    Args:
        store: persistence for workflows, executions and node executions
        registry: executor per category
        dispatcher: where the node loop runs (AsyncioDispatcher by default)
        parser: definition parser
    """

    TEST_NODE_LIMIT = 3

    def __init__(
        self,
        store: ExecutionStore,
        registry: ExecutorRegistry,
        dispatcher=None,
        parser: Optional[WorkflowParser] = None,
    ):
        self.store = store
        self.registry = registry
        self.dispatcher = dispatcher or AsyncioDispatcher()
        self.parser = parser or WorkflowParser()
        self.approvals: Optional[ApprovalService] = None

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    async def execute(
        self,
        workflow_id: str,
        context: Optional[Dict[str, Any]] = None,
        triggered_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Start an execution of the workflow's current definition.

        Returns as soon as the execution row exists; nodes run in the
        background.

        Raises:
            NotFoundError: unknown workflow or missing definition
            NotPublishedError: workflow not published
            ParseError / ValidationError: definition is invalid (no execution row is created)
        """
        workflow = self.store.get_workflow(workflow_id)
        if not workflow.is_published:
            raise NotPublishedError(workflow_id)

        record, definition = self._load_definition(workflow.definition_id)

        trigger = TriggerContext.model_validate(context or {})
        current_user = trigger.current_user or CurrentUser(id=triggered_by or "system")
        initial = ExecutionContext(
            workflow_id=workflow_id,
            execution_id="",
            current_user=current_user,
            variables={**definition.default_variables(), **trigger.variables},
            connection_id=trigger.connection_id,
            team_id=trigger.team_id or workflow.team_id,
        )

        execution = self.store.create_execution(
            workflow_id=workflow_id,
            definition_id=record.id,
            triggered_by=triggered_by or current_user.id,
            context=initial.to_persisted(),
        )
        logger.info(
            f"Execution {execution.id} started for workflow {workflow_id} (definition v{record.version})",
            extra={"workflow_id": workflow_id, "execution_id": execution.id},
        )

        self.dispatcher.dispatch(self, execution.id)
        return {"execution_id": execution.id, "status": ExecutionStatus.RUNNING}

    async def resume(self, execution_id: str) -> Dict[str, Any]:
        """
        Continue a paused execution after the last successful node.

        Only paused executions can be resumed; anything else is reported
        back with ``success: False`` and the current status.
        """
        execution = self.store.get_execution(execution_id)
        if execution.status != ExecutionStatus.PAUSED:
            return {
                "success": False,
                "status": execution.status,
                "message": f"Execution is {execution.status}, only paused executions can be resumed",
            }

        if not self.store.transition(execution_id, ExecutionStatus.RUNNING, [ExecutionStatus.PAUSED]):
            return {"success": False, "status": self.store.get_execution_status(execution_id)}

        logger.info(f"Resuming execution {execution_id}")
        self.dispatcher.dispatch(self, execution_id)
        return {"success": True, "status": ExecutionStatus.RUNNING}

    async def cancel(self, execution_id: str) -> Dict[str, Any]:
        """
        Cancel a running execution. The node loop notices before starting
        its next node; a node already in flight finishes first.
        """
        self.store.get_execution(execution_id)
        cancelled = self.store.transition(execution_id, ExecutionStatus.CANCELLED, [ExecutionStatus.RUNNING])
        return {"success": cancelled, "status": self.store.get_execution_status(execution_id)}

    def fail_execution(self, execution_id: str, message: str) -> bool:
        """Fail a running or paused execution from outside the node loop (rejection, expiry)."""
        return self.store.transition(
            execution_id,
            ExecutionStatus.FAILED,
            [ExecutionStatus.RUNNING, ExecutionStatus.PAUSED],
            error=message,
        )

    def get_status(self, execution_id: str) -> Dict[str, Any]:
        execution = self.store.get_execution(execution_id)
        workflow = self.store.get_workflow(execution.workflow_id)
        nodes = self.store.list_node_executions(execution_id)

        return {
            **self._execution_summary(execution),
            "workflow_name": workflow.name,
            "context": execution.context,
            "output": execution.output,
            "nodes": [self._node_summary(row) for row in nodes],
        }

    def get_history(self, workflow_id: str, limit: int = 20, offset: int = 0) -> List[Dict[str, Any]]:
        self.store.get_workflow(workflow_id)
        return [
            {**self._execution_summary(execution), "node_count": node_count}
            for execution, node_count in self.store.list_executions(workflow_id, limit=limit, offset=offset)
        ]

    async def test(
        self,
        workflow_id: str,
        test_data: Optional[Dict[str, Any]] = None,
        user: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Preview the first few nodes of a workflow against ad hoc data.

        Nothing is persisted and the workflow does not need to be published.
        """
        workflow = self.store.get_workflow(workflow_id)
        _, definition = self._load_definition(workflow.definition_id)
        order = get_execution_order(definition.nodes, definition.edges)

        data = TriggerContext.model_validate(test_data or {})
        current_user = CurrentUser.model_validate(user) if user else (data.current_user or CurrentUser(id="test"))
        context = ExecutionContext(
            workflow_id=workflow_id,
            execution_id=f"test-{uuid.uuid4()}",
            current_user=current_user,
            variables={**definition.default_variables(), **data.variables},
            connection_id=data.connection_id,
            team_id=data.team_id or workflow.team_id,
            dry_run=True,
        )
        branches = BranchTracker(definition.edges)

        results = []
        for node in order[:self.TEST_NODE_LIMIT]:
            entry = {"node_id": node.id, "node_name": node.label, "node_type": node.type}

            if not branches.should_run(node.id):
                results.append({**entry, "success": True, "skipped": True, "output": None, "error": None, "duration": 0})
                continue

            if node.category == ExecutorCategory.TRIGGER:
                result = NodeExecutionResult(success=True, output=dict(TRIGGER_OUTPUT))
            else:
                try:
                    result = await self._dispatch(self._resolve(node, context), context)
                except Exception as e:
                    logger.exception(f"Preview of node {node.id} raised")
                    result = NodeExecutionResult(success=False, error=str(e) or e.__class__.__name__)

            if result.success:
                context.record_output(node.id, result.output)
                branches.mark_executed(node.id, self._branch_outcome(node, result.output))

            results.append({
                **entry,
                "success": result.success,
                "skipped": False,
                "output": result.output,
                "error": result.error,
                "duration": result.duration,
            })

        return {
            "workflow_id": workflow_id,
            "test_results": results,
            "total_nodes": len(order),
            "tested_nodes": len(results),
        }

    def validate_definition(self, definition: WorkflowDefinition) -> ValidationResult:
        """Run every node's executor validation (deep, per-category checks)."""
        errors: List[str] = []
        for node in definition.nodes:
            if node.category == ExecutorCategory.TRIGGER:
                continue
            try:
                executor, dispatched = self.registry.route(node)
            except UnknownExecutorError as e:
                errors.append(f"Node {node.id}: {e.message}")
                continue
            errors.extend(f"Node {node.id}: {message}" for message in executor.validate(dispatched).errors)
        return ValidationResult.from_errors(errors)

    # ========================================================================
    # NODE LOOP
    # ========================================================================

    async def run_execution(self, execution_id: str) -> None:
        """
        Drive an execution from its persisted state to a final (or paused)
        status. Used for fresh runs and resumed runs alike.

        Never raises: anything unexpected marks the execution failed.
        """
        set_execution_id(execution_id)
        try:
            await self._run(execution_id)
        except Exception as e:
            logger.exception(f"Execution {execution_id} crashed")
            self.store.transition(
                execution_id,
                ExecutionStatus.FAILED,
                [ExecutionStatus.RUNNING],
                error=str(e) or e.__class__.__name__,
            )
        finally:
            clear_execution_id()

    async def _run(self, execution_id: str) -> None:
        execution = self.store.get_execution(execution_id)
        if execution.status != ExecutionStatus.RUNNING:
            logger.info(f"Execution {execution_id} is {execution.status}, nothing to run")
            return

        record = self.store.get_definition(execution.definition_id)
        definition = self.parser.parse(record.content, record.format)
        order = get_execution_order(definition.nodes, definition.edges)

        context = ExecutionContext.from_persisted(execution.workflow_id, execution_id, execution.context)
        branches = BranchTracker(definition.edges)
        start_index = self._rehydrate(order, self.store.list_node_executions(execution_id), context, branches)

        if start_index:
            logger.info(f"Execution {execution_id} continuing at node {start_index + 1} of {len(order)}")

        await self._run_nodes(execution_id, order, start_index, context, branches)

    async def _run_nodes(
        self,
        execution_id: str,
        order: List[WorkflowNode],
        start_index: int,
        context: ExecutionContext,
        branches: BranchTracker,
    ) -> None:
        for index in range(start_index, len(order)):
            node = order[index]

            status = self.store.get_execution_status(execution_id)
            if status != ExecutionStatus.RUNNING:
                logger.info(f"Execution {execution_id} is {status}, stopping before node {node.id}")
                return

            if not branches.should_run(node.id):
                logger.info(f"Skipping node {node.id}: not on a taken branch")
                self.store.record_node(execution_id, node, index, NodeStatus.SKIPPED)
                continue

            if node.category == ExecutorCategory.TRIGGER:
                self.store.record_node(execution_id, node, index, NodeStatus.SUCCESS, TRIGGER_OUTPUT)
                context.record_output(node.id, dict(TRIGGER_OUTPUT))
                branches.mark_executed(node.id)
                continue

            resolved = self._resolve(node, context)
            node_execution_id = self.store.start_node(execution_id, node, index, resolved.data)

            try:
                result = await self._dispatch(resolved, context)
            except Exception as e:
                message = str(e) or e.__class__.__name__
                logger.exception(f"Node {node.id} raised an unexpected error")
                self.store.fail_running_nodes(execution_id, node.id, message)
                self._fail(execution_id, node.id, message)
                return

            self.store.finish_node(
                node_execution_id,
                NodeStatus.SUCCESS if result.success else NodeStatus.FAILED,
                output=result.output,
                error=result.error,
                duration=result.duration,
            )

            if not result.success:
                self._fail(execution_id, node.id, result.error or "Unknown error")
                return

            context.record_output(node.id, result.output)
            branches.mark_executed(node.id, self._branch_outcome(node, result.output))

            if result.paused:
                if not self.store.transition(execution_id, ExecutionStatus.PAUSED, [ExecutionStatus.RUNNING]):
                    logger.info(f"Execution {execution_id} left running before node {node.id} could pause it")
                    return
                logger.info(f"Execution {execution_id} paused at node {node.id}")
                if result.on_paused is not None:
                    self._after_pause(execution_id, node.id, result.on_paused)
                return

        if self.store.transition(
            execution_id,
            ExecutionStatus.SUCCESS,
            [ExecutionStatus.RUNNING],
            output=context.previous_outputs,
        ):
            logger.info(f"Execution {execution_id} completed ({len(order)} nodes)")

    def _resolve(self, node: WorkflowNode, context: ExecutionContext) -> WorkflowNode:
        return node.model_copy(update={"data": resolve_object(node.data, context.template_context())})

    async def _dispatch(self, node: WorkflowNode, context: ExecutionContext) -> NodeExecutionResult:
        try:
            executor, dispatched = self.registry.route(node)
        except UnknownExecutorError as e:
            return NodeExecutionResult(success=False, error=e.message)
        return await executor.execute(dispatched, context, dict(context.previous_outputs))

    def _fail(self, execution_id: str, node_id: str, cause: str) -> None:
        error = NodeExecutionError(node_id, cause)
        logger.info(f"Execution {execution_id} failed: {error.message}")
        self.store.transition(execution_id, ExecutionStatus.FAILED, [ExecutionStatus.RUNNING], error=error.message)

    def _after_pause(self, execution_id: str, node_id: str, hook: Callable[[], Any]) -> None:
        try:
            hook()
        except Exception as e:
            logger.exception(f"Node {node_id} could not finish pausing execution {execution_id}")
            error = NodeExecutionError(node_id, str(e) or e.__class__.__name__)
            self.store.transition(execution_id, ExecutionStatus.FAILED, [ExecutionStatus.PAUSED], error=error.message)

    def _rehydrate(
        self,
        order: List[WorkflowNode],
        rows: List[NodeExecution],
        context: ExecutionContext,
        branches: BranchTracker,
    ) -> int:
        """
        Rebuild outputs, set_variable effects and branch state from
        persisted node rows. Returns the index after the last successful node.
        """
        successes = [row for row in rows if row.status == NodeStatus.SUCCESS]
        if not successes:
            return 0

        positions = {node.id: index for index, node in enumerate(order)}
        resume_index = positions[successes[-1].node_id] + 1
        outputs = {row.node_id: row.output for row in successes}

        for node in order[:resume_index]:
            if node.id not in outputs:
                continue
            output = outputs[node.id]
            context.record_output(node.id, output)
            branches.mark_executed(node.id, self._branch_outcome(node, output))

            action = node.route.action or node.data.get("action")
            if node.category == ExecutorCategory.ACTION and action == "set_variable" and isinstance(output, dict):
                context.set_variable(output["variableName"], output.get("value"))

        return resume_index

    @staticmethod
    def _branch_outcome(node: WorkflowNode, output: Any) -> Optional[bool]:
        if node.category == ExecutorCategory.CONDITION and isinstance(output, dict):
            return bool(output.get("result"))
        return None

    def _load_definition(self, definition_id: Optional[str]) -> Tuple[WorkflowDefinitionRecord, WorkflowDefinition]:
        record = self.store.get_definition(definition_id)
        return record, self.parser.parse(record.content, record.format)

    @staticmethod
    def _execution_summary(execution: WorkflowExecution) -> Dict[str, Any]:
        return {
            "id": execution.id,
            "workflow_id": execution.workflow_id,
            "definition_id": execution.definition_id,
            "status": execution.status,
            "triggered_by": execution.triggered_by,
            "triggered_at": _iso(execution.triggered_at),
            "started_at": _iso(execution.started_at),
            "completed_at": _iso(execution.completed_at),
            "error": execution.error,
        }

    @staticmethod
    def _node_summary(row: NodeExecution) -> Dict[str, Any]:
        return {
            "id": row.id,
            "node_id": row.node_id,
            "node_name": row.node_name,
            "node_type": row.node_type,
            "status": row.status,
            "input": row.input,
            "output": row.output,
            "error": row.error,
            "started_at": _iso(row.started_at),
            "completed_at": _iso(row.completed_at),
            "duration": row.duration,
        }


def build_engine(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    dispatcher=None,
    connections: Optional[DatabaseConnectionService] = None,
    migrations: Optional[MigrationService] = None,
    shell_runner: Optional[ShellRunner] = None,
    email: Optional[EmailTransport] = None,
    teams: Optional[TeamDirectory] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> WorkflowEngine:
    """
    Wire an engine with the default executors, approval service and a
    dispatcher chosen from settings (MIGRAFLOW_DISPATCH).
    """
    settings = settings or get_settings()
    session_factory = session_factory or get_session_factory(get_engine(settings.database_url))

    if email is None and settings.smtp_host:
        email = SmtpEmailTransport(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            sender=settings.smtp_sender,
            use_tls=settings.smtp_use_tls,
        )

    approvals = ApprovalService(session_factory)
    registry = build_default_registry(
        connections=connections,
        migrations=migrations,
        shell_runner=shell_runner,
        email=email,
        teams=teams,
        approvals=approvals,
        http_transport=http_transport,
        http_timeout_ms=settings.http_timeout_ms,
        pagerduty_events_url=settings.pagerduty_events_url,
    )

    if dispatcher is None:
        dispatcher = CeleryDispatcher() if settings.dispatch_mode == "celery" else AsyncioDispatcher()

    engine = WorkflowEngine(ExecutionStore(session_factory), registry, dispatcher)
    approvals.engine = engine
    engine.approvals = approvals
    return engine
