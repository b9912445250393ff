"""
Workflow Models
Database models for workflows and their versioned definitions
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint

from . import Base, new_id, utcnow


class Workflow(Base):
    """
    Workflow Model

    The mutable header of a workflow. ``definition_id`` points at the
    current WorkflowDefinitionRecord; editing a workflow adds a new record
    and moves the pointer, so past executions keep the definition they ran.
    """
    __tablename__ = "workflows"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    team_id = Column(String(36), nullable=True, index=True)

    # manual, scheduled, webhook, event
    trigger = Column(String(20), nullable=False, default="manual")

    is_published = Column(Boolean, nullable=False, default=False)

    # Plain column (no FK) to avoid a circular constraint with workflow_definitions
    definition_id = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Workflow(id={self.id}, name='{self.name}', published={self.is_published})>"


class WorkflowDefinitionRecord(Base):
    """Immutable definition text, one row per saved version."""
    __tablename__ = "workflow_definitions"
    __table_args__ = (UniqueConstraint("workflow_id", "version", name="uq_workflow_definition_version"),)

    id = Column(String(36), primary_key=True, default=new_id)
    workflow_id = Column(String(36), ForeignKey("workflows.id"), nullable=False, index=True)
    version = Column(Integer, nullable=False)

    content = Column(Text, nullable=False)
    # json or yaml
    format = Column(String(10), nullable=False, default="json")

    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<WorkflowDefinitionRecord(workflow_id={self.workflow_id}, version={self.version})>"
