"""
Approval Models
Approval requests raised by approval nodes and the responses to them
"""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from . import Base, new_id, utcnow


class WorkflowApproval(Base):
    __tablename__ = "workflow_approvals"

    id = Column(String(36), primary_key=True, default=new_id)
    workflow_id = Column(String(36), ForeignKey("workflows.id"), nullable=False, index=True)
    execution_id = Column(String(36), ForeignKey("workflow_executions.id"), nullable=False, index=True)
    node_id = Column(String(255), nullable=False)
    node_name = Column(String(255), nullable=True)

    # List of user ids allowed to respond
    approvers = Column(JSON, nullable=False)

    # unanimous or any
    approval_type = Column(String(20), nullable=False, default="unanimous")
    required_approvals = Column(Integer, nullable=False, default=1)

    timeout_seconds = Column(Integer, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)

    message = Column(Text, nullable=True)
    context = Column(JSON, nullable=True)

    # PENDING, APPROVED, REJECTED, EXPIRED
    status = Column(String(20), nullable=False, default="PENDING", index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    responses = relationship(
        "ApprovalResponse",
        back_populates="approval",
        cascade="all, delete-orphan",
        order_by="ApprovalResponse.created_at",
    )

    def __repr__(self):
        return f"<WorkflowApproval(id={self.id}, execution_id={self.execution_id}, status='{self.status}')>"


class ApprovalResponse(Base):
    __tablename__ = "approval_responses"
    __table_args__ = (UniqueConstraint("approval_id", "user_id", name="uq_approval_response_user"),)

    id = Column(String(36), primary_key=True, default=new_id)
    approval_id = Column(String(36), ForeignKey("workflow_approvals.id"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False)

    # APPROVED or REJECTED
    decision = Column(String(20), nullable=False)
    comment = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    approval = relationship("WorkflowApproval", back_populates="responses")

    def __repr__(self):
        return f"<ApprovalResponse(approval_id={self.approval_id}, user_id='{self.user_id}', decision='{self.decision}')>"
