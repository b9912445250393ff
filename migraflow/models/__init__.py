"""
Models module - SQLAlchemy database models
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Import models after Base is defined to avoid circular imports
from .workflow import Workflow, WorkflowDefinitionRecord  # noqa: E402
from .execution import WorkflowExecution  # noqa: E402
from .node_execution import NodeExecution  # noqa: E402
from .approval import ApprovalResponse, WorkflowApproval  # noqa: E402

__all__ = [
    "Base",
    "new_id",
    "Workflow",
    "WorkflowDefinitionRecord",
    "WorkflowExecution",
    "NodeExecution",
    "WorkflowApproval",
    "ApprovalResponse",
]
