"""
Pytest fixtures for migraflow tests

This module provides shared fixtures for all tests:
- In-memory SQLite session factory and execution store
- Fake collaborators (connections, migrations, email, shell, HTTP)
- A fully wired WorkflowEngine
- Sample workflow definitions and a helper to store them
"""

import json
from typing import Any, Dict, List, Optional

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from migraflow.config import Settings
from migraflow.core.context import CurrentUser, ExecutionContext
from migraflow.core.dispatch import AsyncioDispatcher
from migraflow.core.engine import build_engine
from migraflow.core.integrations import (
    ConnectionInfo,
    DatabaseConnectionService,
    EmailResult,
    EmailTransport,
    MigrationService,
    ShellResult,
    ShellRunner,
    StaticTeamDirectory,
)
from migraflow.core.store import ExecutionStore
from migraflow.database import get_session_factory
from migraflow.models import Base


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest.fixture(scope="function")
def session_factory():
    """
    In-memory SQLite database shared by every session of a test.
    Each test gets a fresh database that's torn down after the test.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield get_session_factory(engine)

    engine.dispose()


@pytest.fixture
def store(session_factory):
    return ExecutionStore(session_factory)


# ============================================================================
# FAKE COLLABORATORS
# ============================================================================

class FakeConnections(DatabaseConnectionService):
    def __init__(self, connections: Optional[Dict[str, str]] = None):
        self.connections = connections or {"db-1": "postgresql://app@db/app"}
        self.queries: List[Dict[str, Any]] = []

    async def get_connection(self, connection_id: str) -> Optional[ConnectionInfo]:
        url = self.connections.get(connection_id)
        return ConnectionInfo(id=connection_id, url=url) if url else None

    async def test_connection(self, connection_id: str) -> Dict[str, Any]:
        return {"success": connection_id in self.connections}

    async def execute_query(self, connection, query, parameters=None):
        self.queries.append({"connection": connection.id, "query": query, "parameters": parameters})
        return {"rows": [{"id": 1}, {"id": 2}], "rowCount": 2}


class FakeMigrations(MigrationService):
    def __init__(self):
        self.calls: List[tuple] = []

    async def discover(self, connection, team_id):
        self.calls.append(("discover", connection.id, team_id))
        return [{"id": "001_init", "status": "pending"}]

    async def dry_run(self, connection, migrations):
        self.calls.append(("dry_run", connection.id, migrations))
        return {"success": True, "statements": 3}

    async def execute(self, connection, migrations):
        self.calls.append(("execute", connection.id, migrations))
        return {"success": True, "applied": 1}

    async def rollback(self, connection, migrations, reason):
        self.calls.append(("rollback", connection.id, migrations, reason))
        return {"success": True, "rolledBack": 1}

    async def run_migration(self, connection, migration_id):
        self.calls.append(("run_migration", connection.id, migration_id))
        return {"success": True, "migrationId": migration_id}


class FakeEmail(EmailTransport):
    def __init__(self, failing: tuple = ()):
        self.failing = set(failing)
        self.sent: List[Dict[str, str]] = []

    async def send_email(self, to: str, subject: str, body: str) -> EmailResult:
        if to in self.failing:
            return EmailResult(success=False, error="mailbox unavailable")
        self.sent.append({"to": to, "subject": subject, "body": body})
        return EmailResult(success=True, message_id=f"<{len(self.sent)}@test>")


class FakeShell(ShellRunner):
    def __init__(self, exit_code: int = 0, stdout: str = "ok\n", stderr: str = ""):
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.commands: List[tuple] = []

    async def run(self, command: str, timeout: Optional[float] = None) -> ShellResult:
        self.commands.append((command, timeout))
        return ShellResult(stdout=self.stdout, stderr=self.stderr, exit_code=self.exit_code, duration_ms=5)


class RecordingDispatcher:
    """Records dispatched executions without running them."""

    def __init__(self):
        self.dispatched: List[str] = []

    def dispatch(self, engine, execution_id: str) -> None:
        self.dispatched.append(execution_id)


@pytest.fixture
def connections():
    return FakeConnections()


@pytest.fixture
def migrations():
    return FakeMigrations()


@pytest.fixture
def email():
    return FakeEmail()


@pytest.fixture
def shell():
    return FakeShell()


@pytest.fixture
def teams():
    return StaticTeamDirectory({"team-1": ["ops@example.com", "dba@example.com"]})


@pytest.fixture
def http_requests():
    """Requests seen by the mock HTTP transport."""
    return []


@pytest.fixture
def http_transport(http_requests):
    def handler(request: httpx.Request) -> httpx.Response:
        http_requests.append(request)
        return httpx.Response(200, json={"ok": True})

    return httpx.MockTransport(handler)


# ============================================================================
# ENGINE FIXTURES
# ============================================================================

@pytest.fixture
def dispatcher():
    return AsyncioDispatcher()


@pytest.fixture
def engine(session_factory, dispatcher, connections, migrations, shell, email, teams, http_transport):
    return build_engine(
        settings=Settings(),
        session_factory=session_factory,
        dispatcher=dispatcher,
        connections=connections,
        migrations=migrations,
        shell_runner=shell,
        email=email,
        teams=teams,
        http_transport=http_transport,
    )


@pytest.fixture
def create_workflow(store):
    """Store a definition (dict or text) and return the workflow id."""

    def _create(definition, published: bool = True, format: str = "json", team_id: Optional[str] = None) -> str:
        content = json.dumps(definition) if isinstance(definition, dict) else definition
        name = definition.get("name", "Workflow") if isinstance(definition, dict) else "Workflow"
        workflow = store.create_workflow(name, content, format=format, team_id=team_id, published=published)
        return workflow.id

    return _create


@pytest.fixture
def execution_context():
    return ExecutionContext(
        workflow_id="wf-1",
        execution_id="ex-1",
        current_user=CurrentUser(id="alice", email="alice@example.com"),
        variables={"env": "staging"},
        connection_id="db-1",
        team_id="team-1",
    )


# ============================================================================
# SAMPLE WORKFLOWS
# ============================================================================

def trigger_node(node_id: str = "start") -> Dict[str, Any]:
    return {"id": node_id, "type": "trigger", "label": "Start"}


def chain(nodes: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Edges linking ``nodes`` one after the other."""
    return [{"source": a["id"], "target": b["id"]} for a, b in zip(nodes, nodes[1:])]


@pytest.fixture
def migration_workflow():
    """Trigger -> dry run -> execute migrations -> notify."""
    nodes = [
        trigger_node(),
        {"id": "dry", "type": "dryRun", "label": "Dry run", "data": {"connectionId": "db-1", "migrations": "all"}},
        {"id": "apply", "type": "executeMigrations", "label": "Apply", "data": {"connectionId": "db-1", "migrations": "all"}},
        {
            "id": "notify",
            "type": "notification",
            "label": "Notify",
            "data": {"provider": "email", "recipients": ["ops@example.com"], "subject": "Migrations applied"},
        },
    ]
    return {
        "name": "Deploy migrations",
        "trigger": "manual",
        "nodes": nodes,
        "edges": chain(nodes),
    }


@pytest.fixture
def branching_workflow():
    """Condition on the ``env`` variable with a node on each branch."""
    return {
        "name": "Branching",
        "trigger": "manual",
        "variables": [{"name": "env", "type": "string", "defaultValue": "staging"}],
        "nodes": [
            trigger_node(),
            {"id": "check", "type": "condition", "label": "Is prod?", "data": {"condition": 'env === "prod"'}},
            {"id": "prod_step", "type": "setVariable", "label": "Prod", "data": {"variableName": "target", "value": "prod"}},
            {"id": "staging_step", "type": "setVariable", "label": "Staging", "data": {"variableName": "target", "value": "staging"}},
        ],
        "edges": [
            {"source": "start", "target": "check"},
            {"source": "check", "target": "prod_step", "label": "true"},
            {"source": "check", "target": "staging_step", "label": "false"},
        ],
    }
