"""
Execution Model
Database model for workflow execution records
"""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from . import Base, new_id, utcnow


class WorkflowExecution(Base):
    """
    WorkflowExecution Model

    One run of a workflow. Written only by the engine; never deleted.
    """
    __tablename__ = "workflow_executions"

    id = Column(String(36), primary_key=True, default=new_id)
    workflow_id = Column(String(36), ForeignKey("workflows.id"), nullable=False, index=True)

    # Definition version the run started with (resume uses the same one)
    definition_id = Column(String(36), ForeignKey("workflow_definitions.id"), nullable=False)

    # pending, running, paused, success, failed, cancelled
    status = Column(String(20), nullable=False, default="pending", index=True)

    triggered_by = Column(String(255), nullable=False, default="system")

    # Initial context: {"currentUser": {...}, "variables": {...}, "connectionId": ..., "teamId": ...}
    context = Column(JSON, nullable=True)

    triggered_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    error = Column(Text, nullable=True)

    # Final previousOutputs map on success
    output = Column(JSON, nullable=True)

    node_executions = relationship(
        "NodeExecution",
        back_populates="execution",
        cascade="all, delete-orphan",
        order_by="NodeExecution.sequence",
    )

    def __repr__(self):
        return f"<WorkflowExecution(id={self.id}, workflow_id={self.workflow_id}, status='{self.status}')>"
