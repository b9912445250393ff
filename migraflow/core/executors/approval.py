"""
Approval Executor

Puts a human gate in a workflow. Executing an approval node pauses the
execution; the approval request is recorded once the pause is persisted,
and the ApprovalService resumes or fails the run when approvers respond.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ...models import new_id
from ..context import ExecutionContext
from ..exceptions import CollaboratorNotConfiguredError
from ..nodes import ApprovalData, NodeData, WorkflowNode
from .base import NodeExecutor, Suspend

if TYPE_CHECKING:
    from ..approvals import ApprovalService

logger = logging.getLogger(__name__)


class ApprovalExecutor(NodeExecutor):
    def __init__(self, approvals: Optional["ApprovalService"] = None):
        self.approvals = approvals

    async def _run(self, node: WorkflowNode, context: ExecutionContext, previous_outputs: Dict[str, Any]) -> Any:
        data: ApprovalData = self.load_data(node)
        required = len(data.approvers) if data.require_all else 1

        summary = {
            "approvers": data.approvers,
            "approvalType": "unanimous" if data.require_all else "any",
            "requiredApprovals": required,
            "message": data.message,
        }

        if data.skip_if_creator and context.current_user.id in data.approvers:
            logger.info(f"Approval node {node.id} auto-approved for creator {context.current_user.id}")
            return {**summary, "status": "AUTO_APPROVED", "approvedBy": context.current_user.id}

        if context.dry_run:
            return {**summary, "status": "PREVIEW"}

        if self.approvals is None:
            raise CollaboratorNotConfiguredError("Approval service")

        approvals = self.approvals
        approval_id = new_id()
        snapshot = {
            "currentUser": context.current_user.model_dump(exclude_none=True),
            "variables": dict(context.variables),
        }

        def create_request() -> None:
            approvals.create_request(
                workflow_id=context.workflow_id,
                execution_id=context.execution_id,
                node=node,
                data=data,
                context_snapshot=snapshot,
                approval_id=approval_id,
            )

        logger.info(f"Approval node {node.id} waiting on {required} of {len(data.approvers)} approvers")
        return Suspend({**summary, "status": "PENDING", "approvalId": approval_id}, on_paused=create_request)

    def _check(self, raw: Dict[str, Any], data: Optional[NodeData]) -> List[str]:
        errors: List[str] = []

        approvers = raw.get("approvers")
        if not approvers:
            errors.append("At least one approver is required")

        return errors
