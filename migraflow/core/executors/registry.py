"""
Executor Registry

Explicit mapping from executor category to executor instance. The engine
is handed a registry instead of looking executors up in a global table, so
tests and alternative deployments can wire their own.
"""

import logging
from typing import Dict, Optional, Tuple

import httpx

from ..exceptions import UnknownExecutorError
from ..integrations.database import DatabaseConnectionService, MigrationService
from ..integrations.email import EmailTransport
from ..integrations.shell import ShellRunner
from ..integrations.teams import TeamDirectory
from ..nodes import NODE_TYPE_ROUTES, ExecutorCategory, WorkflowNode
from .action import DEFAULT_HTTP_TIMEOUT_MS, ActionExecutor
from .approval import ApprovalExecutor
from .base import NodeExecutor
from .condition import ConditionExecutor
from .delay import DelayExecutor
from .notification import DEFAULT_PAGERDUTY_EVENTS_URL, NotificationExecutor

logger = logging.getLogger(__name__)


class ExecutorRegistry:
    def __init__(self, executors: Optional[Dict[str, NodeExecutor]] = None):
        self._executors: Dict[str, NodeExecutor] = dict(executors or {})

    def register(self, category: str, executor: NodeExecutor) -> None:
        self._executors[category] = executor

    def get(self, category: str) -> NodeExecutor:
        executor = self._executors.get(category)
        if executor is None:
            raise UnknownExecutorError(f"No executor registered for category: {category}")
        return executor

    def route(self, node: WorkflowNode) -> Tuple[NodeExecutor, WorkflowNode]:
        """
        Pick the executor for a node.

        For editor specializations (``dryRun``, ``httpRequest``, ...) the
        returned node is a copy with ``data.action`` set from the routing
        table; the node passed in is left untouched.

        Raises:
            UnknownExecutorError: no routing entry or no registered executor
        """
        route = NODE_TYPE_ROUTES.get(node.type)
        if route is None:
            raise UnknownExecutorError(f"No executor found for node type: {node.type}")

        executor = self.get(route.category)
        if route.action is None:
            return executor, node

        dispatched = node.model_copy(update={"data": {**node.data, "action": route.action}})
        return executor, dispatched


def build_default_registry(
    connections: Optional[DatabaseConnectionService] = None,
    migrations: Optional[MigrationService] = None,
    shell_runner: Optional[ShellRunner] = None,
    email: Optional[EmailTransport] = None,
    teams: Optional[TeamDirectory] = None,
    approvals=None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
    http_timeout_ms: int = DEFAULT_HTTP_TIMEOUT_MS,
    pagerduty_events_url: str = DEFAULT_PAGERDUTY_EVENTS_URL,
) -> ExecutorRegistry:
    """Registry with one executor per category, wired to the given collaborators."""
    return ExecutorRegistry({
        ExecutorCategory.ACTION: ActionExecutor(
            connections=connections,
            migrations=migrations,
            shell_runner=shell_runner,
            http_transport=http_transport,
            default_timeout_ms=http_timeout_ms,
        ),
        ExecutorCategory.CONDITION: ConditionExecutor(),
        ExecutorCategory.APPROVAL: ApprovalExecutor(approvals),
        ExecutorCategory.NOTIFICATION: NotificationExecutor(
            email=email,
            teams=teams,
            http_transport=http_transport,
            pagerduty_events_url=pagerduty_events_url,
        ),
        ExecutorCategory.DELAY: DelayExecutor(),
    })
