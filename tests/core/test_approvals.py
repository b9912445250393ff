"""
Unit Tests for ApprovalService

Tests cover:
- Unanimous and "any" thresholds
- Responder checks (approver list, duplicates, closed requests)
- Rejection and expiry failing the execution
- Pending approvals per user
"""

from datetime import timedelta

import pytest
from sqlalchemy import update

from migraflow.core.exceptions import NotFoundError
from migraflow.core.nodes import ExecutionStatus
from migraflow.database import get_db
from migraflow.models import WorkflowApproval, utcnow


def _gate_workflow(require_all=True):
    return {
        "name": "Gated deploy",
        "trigger": "manual",
        "nodes": [
            {"id": "start", "type": "trigger", "label": "Start"},
            {
                "id": "gate",
                "type": "approval",
                "label": "DBA sign-off",
                "data": {"approvers": ["bob", "carol"], "requireAll": require_all, "message": "Apply?"},
            },
            {"id": "apply", "type": "executeMigrations", "label": "Apply", "data": {"connectionId": "db-1", "migrations": "all"}},
        ],
        "edges": [{"source": "start", "target": "gate"}, {"source": "gate", "target": "apply"}],
    }


@pytest.fixture
def paused_execution(engine, create_workflow):
    """Start a gated workflow and run it up to the approval gate."""

    async def _start(require_all=True):
        workflow_id = create_workflow(_gate_workflow(require_all))
        started = await engine.execute(workflow_id, {"currentUser": {"id": "alice"}})
        await engine.dispatcher.join()

        execution_id = started["execution_id"]
        assert engine.store.get_execution_status(execution_id) == ExecutionStatus.PAUSED

        [approval] = engine.approvals.get_pending_approvals("bob")
        return execution_id, approval.id

    return _start


# ============================================================================
# REQUEST TESTS
# ============================================================================

@pytest.mark.unit
@pytest.mark.asyncio
async def test_request_created_at_gate(engine, paused_execution, session_factory):
    execution_id, approval_id = await paused_execution()

    with get_db(session_factory) as db:
        approval = db.get(WorkflowApproval, approval_id)

        assert approval.execution_id == execution_id
        assert approval.node_id == "gate"
        assert approval.approvers == ["bob", "carol"]
        assert approval.required_approvals == 2
        assert approval.status == "PENDING"
        assert approval.context["currentUser"]["id"] == "alice"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_request_written_after_pause(engine, create_workflow, migrations):
    statuses = []
    create_request = engine.approvals.create_request

    def recording_create_request(**kwargs):
        statuses.append(engine.store.get_execution_status(kwargs["execution_id"]))
        return create_request(**kwargs)

    engine.approvals.create_request = recording_create_request
    started = await engine.execute(create_workflow(_gate_workflow(require_all=False)))
    await engine.dispatcher.join()
    execution_id = started["execution_id"]

    # An approver answering as soon as the request exists finds the run paused
    assert statuses == [ExecutionStatus.PAUSED]
    [gate] = [node for node in engine.get_status(execution_id)["nodes"] if node["node_id"] == "gate"]
    [approval] = engine.approvals.get_pending_approvals("carol")
    assert approval.id == gate["output"]["approvalId"]

    response = await engine.approvals.approve(approval.id, "carol")
    await engine.dispatcher.join()

    assert response["message"] == "Approval granted, workflow resumed"
    assert engine.store.get_execution_status(execution_id) == ExecutionStatus.SUCCESS
    assert [call[0] for call in migrations.calls] == ["execute"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_approval_of_finished_execution_is_not_reported_as_resumed(engine, paused_execution):
    execution_id, approval_id = await paused_execution(require_all=False)
    engine.fail_execution(execution_id, "Node gate failed: stopped by operator")

    response = await engine.approvals.approve(approval_id, "bob")

    assert response == {
        "success": True,
        "status": "APPROVED",
        "message": "Approval granted, execution is failed and was not resumed",
    }
    assert engine.store.get_execution_status(execution_id) == ExecutionStatus.FAILED


# ============================================================================
# RESPONSE TESTS
# ============================================================================

@pytest.mark.unit
@pytest.mark.asyncio
async def test_unanimous_needs_everyone(engine, paused_execution, migrations):
    execution_id, approval_id = await paused_execution()

    first = await engine.approvals.approve(approval_id, "bob")
    assert first == {"success": True, "status": "PENDING", "message": "Approval recorded (1 received)"}
    assert engine.store.get_execution_status(execution_id) == ExecutionStatus.PAUSED

    second = await engine.approvals.approve(approval_id, "carol", comment="LGTM")
    await engine.dispatcher.join()

    assert second["status"] == "APPROVED"
    assert engine.store.get_execution_status(execution_id) == ExecutionStatus.SUCCESS
    assert [call[0] for call in migrations.calls] == ["execute"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_any_mode_needs_one(engine, paused_execution):
    execution_id, approval_id = await paused_execution(require_all=False)

    result = await engine.approvals.approve(approval_id, "carol")
    await engine.dispatcher.join()

    assert result["status"] == "APPROVED"
    assert engine.store.get_execution_status(execution_id) == ExecutionStatus.SUCCESS


@pytest.mark.unit
@pytest.mark.asyncio
async def test_rejection_fails_execution(engine, paused_execution):
    execution_id, approval_id = await paused_execution()

    result = await engine.approvals.reject(approval_id, "bob", comment="not during business hours")

    assert result["status"] == "REJECTED"
    execution = engine.store.get_execution(execution_id)
    assert execution.status == ExecutionStatus.FAILED
    assert execution.error == "Node gate failed: Approval rejected by bob: not during business hours"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_responder_checks(engine, paused_execution):
    _, approval_id = await paused_execution()

    outsider = await engine.approvals.approve(approval_id, "mallory")
    assert outsider == {"success": False, "message": "User is not an approver for this request"}

    await engine.approvals.approve(approval_id, "bob")
    again = await engine.approvals.approve(approval_id, "bob")
    assert again == {"success": False, "message": "User has already responded to this request"}

    await engine.approvals.reject(approval_id, "carol")
    closed = await engine.approvals.approve(approval_id, "carol")
    assert closed["success"] is False
    assert "already REJECTED" in closed["message"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unknown_request(engine):
    with pytest.raises(NotFoundError, match="Approval request not found: nope"):
        await engine.approvals.approve("nope", "bob")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_pending_approvals_exclude_responded(engine, paused_execution):
    _, approval_id = await paused_execution()

    await engine.approvals.approve(approval_id, "bob")

    assert engine.approvals.get_pending_approvals("bob") == []
    assert [approval.id for approval in engine.approvals.get_pending_approvals("carol")] == [approval_id]
    assert engine.approvals.get_pending_approvals("mallory") == []


# ============================================================================
# EXPIRY TESTS
# ============================================================================

@pytest.mark.unit
@pytest.mark.asyncio
async def test_expire_overdue(engine, paused_execution, session_factory):
    execution_id, approval_id = await paused_execution()

    with get_db(session_factory) as db:
        db.execute(
            update(WorkflowApproval)
            .where(WorkflowApproval.id == approval_id)
            .values(expires_at=utcnow() - timedelta(seconds=1))
        )
        db.commit()

    late = await engine.approvals.approve(approval_id, "bob")
    assert late == {"success": False, "message": "Approval request has expired"}

    assert engine.approvals.expire_overdue() == [approval_id]
    assert engine.approvals.expire_overdue() == []

    execution = engine.store.get_execution(execution_id)
    assert execution.status == ExecutionStatus.FAILED
    assert execution.error == "Node gate failed: Approval request timed out"
