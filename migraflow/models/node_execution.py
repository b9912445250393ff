"""
Node Execution Model
Per-node audit trail of a workflow execution
"""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from . import Base, new_id, utcnow


class NodeExecution(Base):
    """
    NodeExecution Model

    Created right before a node is dispatched and updated exactly once
    when it finishes. Trigger and skipped nodes get a row too.
    """
    __tablename__ = "node_executions"

    id = Column(String(36), primary_key=True, default=new_id)
    execution_id = Column(String(36), ForeignKey("workflow_executions.id"), nullable=False, index=True)

    node_id = Column(String(255), nullable=False, index=True)
    node_type = Column(String(50), nullable=False)
    node_name = Column(String(255), nullable=True)

    # Position of the node in the execution order
    sequence = Column(Integer, nullable=False, default=0)

    # pending, running, success, failed, skipped
    status = Column(String(20), nullable=False, default="pending")

    # Node data after template resolution
    input = Column(JSON, nullable=True)
    output = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)

    started_at = Column(DateTime, default=utcnow, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    duration = Column(Integer, nullable=True)  # milliseconds

    execution = relationship("WorkflowExecution", back_populates="node_executions")

    def __repr__(self):
        return f"<NodeExecution(execution_id={self.execution_id}, node_id='{self.node_id}', status='{self.status}')>"
