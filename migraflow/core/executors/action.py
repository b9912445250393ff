"""
Action Executor

Runs ``action`` nodes (and the editor specializations routed to them).
The ``action`` field selects the operation:

- discover_migrations / dry_run / execute_migrations / rollback /
  database_migration: delegated to the MigrationService
- database_query: delegated to the DatabaseConnectionService
- http_request / custom_api_call: httpx request with a timeout (ms)
- shell_command: delegated to the ShellRunner
- set_variable: writes into the execution's variables
- transform_data: closed set of transforms plus safe dotted property access
"""

import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from ..context import ExecutionContext
from ..exceptions import ActionError, CollaboratorNotConfiguredError, DatabaseError
from ..integrations.database import ConnectionInfo, DatabaseConnectionService, MigrationService
from ..integrations.shell import ShellRunner
from ..nodes import ACTION_TYPES, ActionData, NodeData, WorkflowNode
from ..variables import MISSING, lookup_path
from .base import NodeExecutor

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT_MS = 30000

PROPERTY_ACCESS_PATTERN = re.compile(r"^[a-zA-Z_$][a-zA-Z0-9_$]*(\.[a-zA-Z_$][a-zA-Z0-9_$]*)*$")


def _length(value: Any) -> Any:
    if isinstance(value, (str, list, tuple, dict)):
        return len(value)
    return value


TRANSFORMS: Dict[str, Callable[[Any], Any]] = {
    "uppercase": lambda value: value.upper() if isinstance(value, str) else value,
    "lowercase": lambda value: value.lower() if isinstance(value, str) else value,
    "json_parse": lambda value: json.loads(value) if isinstance(value, str) else value,
    "json_stringify": lambda value: json.dumps(value, default=str),
    "length": _length,
    "keys": lambda value: list(value.keys()) if isinstance(value, dict) else [],
    "values": lambda value: list(value.values()) if isinstance(value, dict) else [],
}


def apply_transform(value: Any, transform_function: str) -> Any:
    """
    Apply a named transform, or a dotted property path such as
    ``result.rows`` to ``value``.

    Raises:
        ActionError: anything outside the whitelist or the property-path
            grammar, or a transform that fails on its input
    """
    name = transform_function.strip()

    try:
        if name in TRANSFORMS:
            return TRANSFORMS[name](value)
        if PROPERTY_ACCESS_PATTERN.match(name):
            found = lookup_path(value, name.split("."))
            return None if found is MISSING else found
    except (TypeError, ValueError) as e:
        raise ActionError(f"Data transformation failed: {e}", "transform_data") from e

    raise ActionError(
        f"Data transformation failed: Unsupported transform function: {transform_function}. "
        "Use predefined functions or safe property access.",
        "transform_data",
    )


class ActionExecutor(NodeExecutor):
    """
    Executor for action nodes.

    Args:
        connections: resolves connection ids and runs queries
        migrations: migration operations
        shell_runner: runs shell_command actions
        http_transport: optional httpx transport (tests pass httpx.MockTransport)
        default_timeout_ms: HTTP timeout when the node does not set one
    """

    def __init__(
        self,
        connections: Optional[DatabaseConnectionService] = None,
        migrations: Optional[MigrationService] = None,
        shell_runner: Optional[ShellRunner] = None,
        http_transport: Optional[httpx.AsyncBaseTransport] = None,
        default_timeout_ms: int = DEFAULT_HTTP_TIMEOUT_MS,
    ):
        self.connections = connections
        self.migrations = migrations
        self.shell_runner = shell_runner
        self.http_transport = http_transport
        self.default_timeout_ms = default_timeout_ms

        self._handlers: Dict[str, Callable[[ActionData, ExecutionContext], Awaitable[Any]]] = {
            "discover_migrations": self._discover_migrations,
            "dry_run": self._dry_run,
            "execute_migrations": self._execute_migrations,
            "rollback": self._rollback,
            "database_query": self._database_query,
            "database_migration": self._database_migration,
            "http_request": self._http_request,
            "custom_api_call": self._http_request,
            "shell_command": self._shell_command,
            "set_variable": self._set_variable,
            "transform_data": self._transform_data,
        }

    async def _run(self, node: WorkflowNode, context: ExecutionContext, previous_outputs: Dict[str, Any]) -> Any:
        data: ActionData = self.load_data(node)

        handler = self._handlers.get(data.action)
        if handler is None:
            raise ActionError(f"Unknown action type: {data.action}", data.action)

        logger.info(f"Running action '{data.action}' for node {node.id}")
        return await handler(data, context)

    def _check(self, raw: Dict[str, Any], data: Optional[NodeData]) -> List[str]:
        errors: List[str] = []
        action = raw.get("action")

        if not action:
            return ["Action type is required"]
        if action not in ACTION_TYPES:
            return [f"Unknown action type: {action}"]

        if action == "discover_migrations" and not raw.get("connectionId"):
            errors.append("Connection ID is required for discover_migrations")
        elif action in ("dry_run", "execute_migrations"):
            if not raw.get("connectionId"):
                errors.append("Connection ID is required")
            if not raw.get("migrations"):
                errors.append("Migrations are required")
        elif action == "rollback" and not raw.get("connectionId"):
            errors.append("Connection ID is required for rollback")
        elif action in ("http_request", "custom_api_call") and not raw.get("url"):
            errors.append("URL is required for API call")
        elif action == "database_query":
            if not raw.get("connectionId"):
                errors.append("Connection ID is required for database query")
            if not raw.get("query"):
                errors.append("Query is required for database query")
        elif action == "database_migration":
            if not raw.get("connectionId"):
                errors.append("Connection ID is required for database migration")
            if not raw.get("migrationId"):
                errors.append("Migration ID is required for database migration")
        elif action == "shell_command" and not raw.get("command"):
            errors.append("Command is required for shell command")
        elif action == "set_variable" and not raw.get("variableName"):
            errors.append("Variable name is required for set_variable")
        elif action == "transform_data":
            if raw.get("input") is None:
                errors.append("Input is required for transform_data")
            if not raw.get("transformFunction"):
                errors.append("Transform function is required for transform_data")

        return errors

    # ========================================================================
    # DATABASE / MIGRATIONS
    # ========================================================================

    async def _connection(self, data: ActionData, context: ExecutionContext) -> ConnectionInfo:
        connection_id = data.connection_id or context.connection_id
        if not connection_id:
            raise ActionError("Database connection ID is required", data.action)
        if self.connections is None:
            raise CollaboratorNotConfiguredError("Database connection service")

        connection = await self.connections.get_connection(connection_id)
        if connection is None:
            raise ActionError(f"Database connection not found: {connection_id}", data.action)
        return connection

    def _migration_service(self) -> MigrationService:
        if self.migrations is None:
            raise CollaboratorNotConfiguredError("Migration service")
        return self.migrations

    async def _discover_migrations(self, data: ActionData, context: ExecutionContext) -> Dict[str, Any]:
        connection = await self._connection(data, context)
        migrations = await self._migration_service().discover(connection, context.team_id)
        return {"migrations": migrations, "connectionId": connection.id}

    async def _dry_run(self, data: ActionData, context: ExecutionContext) -> Dict[str, Any]:
        connection = await self._connection(data, context)
        result = await self._migration_service().dry_run(connection, data.migrations)
        return {"dryRunResult": result, "connectionId": connection.id, "migrations": data.migrations}

    async def _execute_migrations(self, data: ActionData, context: ExecutionContext) -> Dict[str, Any]:
        connection = await self._connection(data, context)
        result = await self._migration_service().execute(connection, data.migrations)
        return {"executionResult": result, "connectionId": connection.id, "migrations": data.migrations}

    async def _rollback(self, data: ActionData, context: ExecutionContext) -> Dict[str, Any]:
        connection = await self._connection(data, context)
        reason = f"Workflow rollback: {context.workflow_id}"
        result = await self._migration_service().rollback(connection, data.migrations, reason)
        return {"rollbackResult": result, "connectionId": connection.id, "migrations": data.migrations}

    async def _database_migration(self, data: ActionData, context: ExecutionContext) -> Dict[str, Any]:
        connection = await self._connection(data, context)
        if not data.migration_id:
            raise ActionError("Migration ID is required for database migration", data.action)
        result = await self._migration_service().run_migration(connection, data.migration_id)
        return {"migrationResult": result, "connectionId": connection.id, "migrationId": data.migration_id}

    async def _database_query(self, data: ActionData, context: ExecutionContext) -> Dict[str, Any]:
        connection = await self._connection(data, context)
        if not data.query:
            raise ActionError("Query is required for database query", data.action)

        parameters = data.parameters if isinstance(data.parameters, dict) else None
        try:
            result = await self.connections.execute_query(connection, data.query, parameters)
        except DatabaseError as e:
            raise ActionError(e.message, data.action) from e

        return {"queryResult": result, "connectionId": connection.id, "query": data.query}

    # ========================================================================
    # HTTP
    # ========================================================================

    async def _http_request(self, data: ActionData, context: ExecutionContext) -> Dict[str, Any]:
        if not data.url:
            raise ActionError("URL is required for API call", data.action)

        timeout_ms = data.timeout or self.default_timeout_ms
        headers = {"Content-Type": "application/json", **data.headers}

        request_kwargs: Dict[str, Any] = {"headers": headers}
        if data.body is not None:
            if isinstance(data.body, (str, bytes)):
                request_kwargs["content"] = data.body
            else:
                request_kwargs["json"] = data.body

        try:
            async with httpx.AsyncClient(timeout=timeout_ms / 1000, transport=self.http_transport) as client:
                response = await client.request(data.method, data.url, **request_kwargs)
        except httpx.TimeoutException as e:
            raise ActionError(f"HTTP request timed out after {timeout_ms}ms", data.action) from e
        except httpx.HTTPError as e:
            raise ActionError(f"HTTP request failed: {e}", data.action) from e

        try:
            body: Any = response.json()
        except ValueError:
            body = response.text

        return {
            "status": response.status_code,
            "statusText": response.reason_phrase,
            "data": body,
            "url": data.url,
            "method": data.method,
            "headers": dict(response.headers),
        }

    # ========================================================================
    # SHELL
    # ========================================================================

    async def _shell_command(self, data: ActionData, context: ExecutionContext) -> Dict[str, Any]:
        if not data.command:
            raise ActionError("Command is required for shell command", data.action)
        if self.shell_runner is None:
            raise CollaboratorNotConfiguredError("Shell runner")

        # No timeout unless the node asks for one
        timeout = data.timeout / 1000 if data.timeout else None
        try:
            result = await self.shell_runner.run(data.command, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ActionError(f"Shell command timed out after {data.timeout}ms", data.action) from e
        except OSError as e:
            raise ActionError(f"Shell command failed: {e}", data.action) from e

        command_result = {
            "stdout": result.stdout,
            "stderr": result.stderr,
            "exitCode": result.exit_code,
            "duration": result.duration_ms,
        }
        if result.exit_code != 0:
            raise ActionError(
                f"Shell command exited with code {result.exit_code}: {result.stderr.strip()}",
                data.action,
            )
        return {"commandResult": command_result, "command": data.command}

    # ========================================================================
    # VARIABLES / TRANSFORMS
    # ========================================================================

    async def _set_variable(self, data: ActionData, context: ExecutionContext) -> Dict[str, Any]:
        if not data.variable_name:
            raise ActionError("Variable name is required for set_variable", data.action)

        context.set_variable(data.variable_name, data.value)
        return {"variableName": data.variable_name, "value": data.value, "set": True}

    async def _transform_data(self, data: ActionData, context: ExecutionContext) -> Dict[str, Any]:
        if not data.transform_function:
            raise ActionError("Transform function is required for transform_data", data.action)

        output = apply_transform(data.input, data.transform_function)
        return {
            "input": data.input,
            "output": output,
            "transformFunction": data.transform_function,
        }
