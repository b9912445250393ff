"""
Custom Exceptions for migraflow

This module defines the exception types raised by the workflow engine.

Exception Hierarchy:
- MigraflowException (base)
  - WorkflowError
    - ParseError (don't retry)
    - ValidationError (don't retry)
    - CycleError (don't retry)
    - NotFoundError (don't retry)
    - NotPublishedError (don't retry)
    - NodeExecutionError (retry)
  - ExecutorError
    - UnknownExecutorError (don't retry)
    - CollaboratorNotConfiguredError (don't retry)
    - ActionError (retry)
    - NotificationError (retry)
  - DatabaseError (retry)

Executors convert ExecutorError subclasses into failed node results.
Anything else escaping an executor is treated as unexpected by the engine.

``retry_allowed`` is informational: it tells a caller whether starting a new
execution could succeed without changing the definition. Nothing in the
engine or the workers retries automatically.
"""

from typing import List, Optional


class MigraflowException(Exception):
    """Base exception for all migraflow errors"""

    def __init__(self, message: str, retry_allowed: bool = True):
        super().__init__(message)
        self.message = message
        self.retry_allowed = retry_allowed


# ============================================================================
# WORKFLOW ERRORS
# ============================================================================

class WorkflowError(MigraflowException):
    """Base class for workflow-related errors"""
    pass


class ParseError(WorkflowError):
    """
    Definition text is not well-formed JSON/YAML.
    Should NOT be retried - fix the definition.
    """

    def __init__(self, message: str, format: Optional[str] = None):
        super().__init__(message, retry_allowed=False)
        self.format = format


class ValidationError(WorkflowError):
    """
    Definition is well-formed but violates the schema or a structural rule
    (dangling edge, missing trigger, duplicate id, cycle).

    Carries every problem found, not only the first one.
    """

    def __init__(self, errors: List[str], message: Optional[str] = None):
        self.errors = list(errors)
        super().__init__(
            message or "Workflow validation failed: " + "; ".join(self.errors),
            retry_allowed=False
        )


class CycleError(WorkflowError):
    """Topological sort could not consume every node."""

    def __init__(self, message: str = "Workflow contains cycles or unreachable nodes"):
        super().__init__(message, retry_allowed=False)


class NotFoundError(WorkflowError):
    """Workflow, definition or execution does not exist."""

    def __init__(self, message: str, resource_id: Optional[str] = None):
        super().__init__(message, retry_allowed=False)
        self.resource_id = resource_id


class NotPublishedError(WorkflowError):
    """Workflow exists but has not been published."""

    def __init__(self, workflow_id: str):
        super().__init__(f"Workflow {workflow_id} is not published", retry_allowed=False)
        self.workflow_id = workflow_id


class NodeExecutionError(WorkflowError):
    """
    A node failed during a run. The message is what gets written to the
    execution's error column.
    """

    def __init__(self, node_id: str, cause: str):
        super().__init__(f"Node {node_id} failed: {cause}", retry_allowed=True)
        self.node_id = node_id
        self.cause = cause


# ============================================================================
# EXECUTOR ERRORS
# ============================================================================

class ExecutorError(MigraflowException):
    """Base class for executor-related errors"""
    pass


class UnknownExecutorError(ExecutorError):
    """
    No executor registered for a node's category, or the node type has no
    routing entry. Surfaced as a failed node.
    """

    def __init__(self, message: str):
        super().__init__(message, retry_allowed=False)


class CollaboratorNotConfiguredError(ExecutorError):
    """An executor needs a collaborator (email transport, shell runner, ...) that was not wired."""

    def __init__(self, collaborator: str):
        super().__init__(f"{collaborator} not configured", retry_allowed=False)
        self.collaborator = collaborator


class ActionError(ExecutorError):
    """An action node could not complete (bad input, transport failure, non-zero exit)."""

    def __init__(self, message: str, action: Optional[str] = None):
        super().__init__(message, retry_allowed=True)
        self.action = action


class NotificationError(ExecutorError):
    """A notification provider rejected or failed to deliver a message."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message, retry_allowed=True)
        self.provider = provider


# ============================================================================
# DATABASE ERRORS
# ============================================================================

class DatabaseError(MigraflowException):
    """
    Database connection or query error.
    Should be retried (transient failures).
    """

    def __init__(self, message: str):
        super().__init__(message, retry_allowed=True)
