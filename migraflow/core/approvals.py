"""
Approval Service

Owns the approval requests created by approval nodes:
- create_request(): called once a run is paused at an approval gate
- approve() / reject(): record an approver's decision
- expire_overdue(): fail runs whose approval window has passed

Unanimous requests need every approver; "any" requests need one. Once the
threshold is met the paused execution is resumed through the engine. A
single rejection fails the execution.
"""

import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from ..database import get_db
from ..models import ApprovalResponse, WorkflowApproval, new_id, utcnow
from .exceptions import NotFoundError
from .nodes import ApprovalData, WorkflowNode
from .store import make_json_serializable

if TYPE_CHECKING:
    from .engine import WorkflowEngine

logger = logging.getLogger(__name__)


class ApprovalStatus:
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class ApprovalService:
    """
    Example:
        >>> service = ApprovalService(session_factory)
        >>> service.engine = engine      # done by build_engine()
        >>> await service.approve(approval_id, "alice", comment="LGTM")
    """

    def __init__(self, session_factory: sessionmaker, engine: Optional["WorkflowEngine"] = None):
        self.session_factory = session_factory
        self.engine = engine

    def create_request(
        self,
        workflow_id: str,
        execution_id: str,
        node: WorkflowNode,
        data: ApprovalData,
        context_snapshot: Dict[str, Any],
        approval_id: Optional[str] = None,
    ) -> str:
        """
        Record a pending request. Called only once the execution is paused,
        so a response can always resume it.
        """
        now = utcnow()
        with get_db(self.session_factory) as db:
            approval = WorkflowApproval(
                id=approval_id or new_id(),
                workflow_id=workflow_id,
                execution_id=execution_id,
                node_id=node.id,
                node_name=node.label,
                approvers=list(data.approvers),
                approval_type="unanimous" if data.require_all else "any",
                required_approvals=len(data.approvers) if data.require_all else 1,
                timeout_seconds=data.timeout,
                expires_at=now + timedelta(seconds=data.timeout),
                message=data.message,
                context=make_json_serializable(context_snapshot),
                status=ApprovalStatus.PENDING,
                created_at=now,
            )
            db.add(approval)
            db.commit()
            logger.info(f"Approval request {approval.id} created for execution {execution_id} node {node.id}")
            return approval.id

    async def approve(self, approval_id: str, user_id: str, comment: Optional[str] = None) -> Dict[str, Any]:
        return await self._respond(approval_id, user_id, ApprovalStatus.APPROVED, comment)

    async def reject(self, approval_id: str, user_id: str, comment: Optional[str] = None) -> Dict[str, Any]:
        return await self._respond(approval_id, user_id, ApprovalStatus.REJECTED, comment)

    async def _respond(self, approval_id: str, user_id: str, decision: str, comment: Optional[str]) -> Dict[str, Any]:
        with get_db(self.session_factory) as db:
            approval = db.get(WorkflowApproval, approval_id)
            if approval is None:
                raise NotFoundError(f"Approval request not found: {approval_id}", approval_id)

            if approval.status != ApprovalStatus.PENDING:
                return {"success": False, "message": f"Approval request is already {approval.status}"}
            if user_id not in (approval.approvers or []):
                return {"success": False, "message": "User is not an approver for this request"}
            if any(response.user_id == user_id for response in approval.responses):
                return {"success": False, "message": "User has already responded to this request"}
            if approval.expires_at <= utcnow():
                return {"success": False, "message": "Approval request has expired"}

            approval.responses.append(ApprovalResponse(user_id=user_id, decision=decision, comment=comment))
            db.flush()

            approvals = sum(1 for response in approval.responses if response.decision == ApprovalStatus.APPROVED)

            outcome = None
            if decision == ApprovalStatus.REJECTED:
                outcome = ApprovalStatus.REJECTED
            elif approvals >= approval.required_approvals:
                outcome = ApprovalStatus.APPROVED

            if outcome:
                approval.status = outcome
                approval.completed_at = utcnow()
            db.commit()

            execution_id = approval.execution_id
            node_id = approval.node_id

        if outcome == ApprovalStatus.APPROVED:
            logger.info(f"Approval {approval_id} granted, resuming execution {execution_id}")
            resumed = await self._require_engine().resume(execution_id)
            if not resumed["success"]:
                logger.warning(f"Approval {approval_id} granted but execution {execution_id} was not resumed")
                return {
                    "success": True,
                    "status": outcome,
                    "message": f"Approval granted, execution is {resumed['status']} and was not resumed",
                }
            return {"success": True, "status": outcome, "message": "Approval granted, workflow resumed"}

        if outcome == ApprovalStatus.REJECTED:
            logger.info(f"Approval {approval_id} rejected by {user_id}")
            reason = f"Approval rejected by {user_id}" + (f": {comment}" if comment else "")
            self._require_engine().fail_execution(execution_id, f"Node {node_id} failed: {reason}")
            return {"success": True, "status": outcome, "message": "Approval rejected, workflow failed"}

        return {
            "success": True,
            "status": ApprovalStatus.PENDING,
            "message": f"Approval recorded ({approvals} received)",
        }

    def get_pending_approvals(self, user_id: str) -> List[WorkflowApproval]:
        """Pending, unexpired requests where ``user_id`` is an approver and has not responded."""
        now = utcnow()
        with get_db(self.session_factory) as db:
            pending = (
                db.query(WorkflowApproval)
                .filter(WorkflowApproval.status == ApprovalStatus.PENDING)
                .filter(WorkflowApproval.expires_at > now)
                .order_by(WorkflowApproval.created_at)
                .all()
            )
            return [
                approval for approval in pending
                if user_id in (approval.approvers or [])
                and not any(response.user_id == user_id for response in approval.responses)
            ]

    def expire_overdue(self) -> List[str]:
        """Mark overdue requests EXPIRED and fail their executions. Returns the expired ids."""
        now = utcnow()
        with get_db(self.session_factory) as db:
            overdue = (
                db.query(WorkflowApproval)
                .filter(WorkflowApproval.status == ApprovalStatus.PENDING)
                .filter(WorkflowApproval.expires_at <= now)
                .all()
            )
            expired = [(approval.id, approval.execution_id, approval.node_id) for approval in overdue]
            for approval in overdue:
                approval.status = ApprovalStatus.EXPIRED
                approval.completed_at = now
            db.commit()

        for approval_id, execution_id, node_id in expired:
            logger.info(f"Approval {approval_id} expired")
            self._require_engine().fail_execution(
                execution_id, f"Node {node_id} failed: Approval request timed out"
            )
        return [approval_id for approval_id, _, _ in expired]

    def _require_engine(self) -> "WorkflowEngine":
        if self.engine is None:
            raise RuntimeError("ApprovalService is not bound to a WorkflowEngine")
        return self.engine
