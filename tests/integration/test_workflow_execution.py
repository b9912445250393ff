"""
Integration Tests for Workflow Execution

These tests drive complete workflows through the engine, the executors and
the database:
- Migration pipeline gated by an approval, approved and resumed
- Failure path notifying the on-call channel through a condition branch
- Definitions stored as YAML
"""

import json

import pytest

from migraflow.core.nodes import ExecutionStatus, NodeStatus


MIGRATION_PIPELINE = {
    "name": "Production migration",
    "trigger": "manual",
    "variables": [
        {"name": "migrations", "type": "string", "defaultValue": "all"},
        {"name": "opsWebhook", "type": "string", "defaultValue": "https://hooks.example.com/ops"},
    ],
    "nodes": [
        {"id": "start", "type": "trigger", "label": "Start"},
        {"id": "discover", "type": "discoverMigrations", "label": "Discover"},
        {"id": "dry", "type": "dryRun", "label": "Dry run", "data": {"migrations": "{{variables.migrations}}"}},
        {"id": "dry_ok", "type": "condition", "label": "Dry run ok?", "data": {"condition": "dry.dryRunResult.success === true"}},
        {
            "id": "gate",
            "type": "approval",
            "label": "DBA approval",
            "data": {"approvers": ["dba-1", "dba-2"], "requireAll": False, "message": "{{currentUser.email}} wants to migrate"},
        },
        {"id": "apply", "type": "executeMigrations", "label": "Apply", "data": {"migrations": "{{variables.migrations}}"}},
        {
            "id": "announce",
            "type": "notification",
            "label": "Announce",
            "data": {
                "provider": "webhook",
                "url": "{{variables.opsWebhook}}",
                "body": {"text": "Applied {{previousOutputs.apply.executionResult.applied}} migration(s)"},
            },
        },
        {
            "id": "page",
            "type": "notification",
            "label": "Page on-call",
            "data": {"provider": "pagerduty", "recipient": "oncall-key", "message": "Dry run failed"},
        },
    ],
    "edges": [
        {"source": "start", "target": "discover"},
        {"source": "discover", "target": "dry"},
        {"source": "dry", "target": "dry_ok"},
        {"source": "dry_ok", "target": "gate", "label": "true"},
        {"source": "gate", "target": "apply"},
        {"source": "apply", "target": "announce"},
        {"source": "dry_ok", "target": "page", "label": "false"},
    ],
}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_approved_migration_pipeline(engine, create_workflow, migrations, http_requests):
    """
    Flow: Start -> Discover -> Dry run -> ok? -> Approval (pause) -> approve
          -> Apply -> Announce; the paging branch is skipped.
    """
    workflow_id = create_workflow(MIGRATION_PIPELINE, team_id="team-1")
    context = {"currentUser": {"id": "dev-1", "email": "dev@example.com"}, "connectionId": "db-1"}

    started = await engine.execute(workflow_id, context)
    await engine.dispatcher.join()
    execution_id = started["execution_id"]

    # Paused at the gate
    status = engine.get_status(execution_id)
    assert status["status"] == ExecutionStatus.PAUSED
    assert [node["node_id"] for node in status["nodes"]] == ["start", "discover", "dry", "dry_ok", "gate"]
    gate = status["nodes"][-1]
    assert gate["output"]["status"] == "PENDING"
    assert gate["input"]["message"] == "dev@example.com wants to migrate"
    assert migrations.calls[0] == ("discover", "db-1", "team-1")

    [approval] = engine.approvals.get_pending_approvals("dba-2")
    response = await engine.approvals.approve(approval.id, "dba-2", comment="go")
    await engine.dispatcher.join()
    assert response["status"] == "APPROVED"

    # Resumed after the gate, on the same definition and context
    status = engine.get_status(execution_id)
    assert status["status"] == ExecutionStatus.SUCCESS
    nodes = {node["node_id"]: node for node in status["nodes"]}
    assert list(nodes) == ["start", "discover", "dry", "dry_ok", "gate", "apply", "announce", "page"]
    assert nodes["page"]["status"] == NodeStatus.SKIPPED
    assert nodes["apply"]["status"] == NodeStatus.SUCCESS
    assert [call[0] for call in migrations.calls] == ["discover", "dry_run", "execute"]
    assert migrations.calls[2] == ("execute", "db-1", "all")

    [announcement] = http_requests
    assert str(announcement.url) == "https://hooks.example.com/ops"
    assert json.loads(announcement.content) == {"text": "Applied 1 migration(s)"}


@pytest.mark.integration
@pytest.mark.asyncio
async def test_failed_dry_run_pages_on_call(engine, create_workflow, migrations, http_requests):
    async def failing_dry_run(connection, selection):
        migrations.calls.append(("dry_run", connection.id, selection))
        return {"success": False, "errors": ["column exists"]}

    migrations.dry_run = failing_dry_run
    workflow_id = create_workflow(MIGRATION_PIPELINE)

    started = await engine.execute(workflow_id, {"connectionId": "db-1"})
    await engine.dispatcher.join()

    status = engine.get_status(started["execution_id"])
    nodes = {node["node_id"]: node for node in status["nodes"]}
    assert status["status"] == ExecutionStatus.SUCCESS
    assert nodes["gate"]["status"] == NodeStatus.SKIPPED
    assert nodes["apply"]["status"] == NodeStatus.SKIPPED
    assert nodes["announce"]["status"] == NodeStatus.SKIPPED
    assert nodes["page"]["status"] == NodeStatus.SUCCESS
    assert engine.approvals.get_pending_approvals("dba-1") == []

    [page] = http_requests
    assert json.loads(page.content)["routing_key"] == "oncall-key"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_yaml_definition(engine, create_workflow, shell):
    content = """
name: Nightly vacuum
trigger: scheduled
nodes:
  - id: start
    type: trigger
    label: Start
  - id: vacuum
    type: shellCommand
    label: Vacuum
    data:
      command: psql -c 'VACUUM ANALYZE'
edges:
  - source: start
    target: vacuum
"""
    workflow_id = create_workflow(content, format="yaml")

    started = await engine.execute(workflow_id, triggered_by="scheduler")
    await engine.dispatcher.join()

    execution = engine.store.get_execution(started["execution_id"])
    assert execution.status == ExecutionStatus.SUCCESS
    assert execution.triggered_by == "scheduler"
    assert shell.commands == [("psql -c 'VACUUM ANALYZE'", None)]
