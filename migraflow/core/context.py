"""
Execution Context

Per-run state shared between nodes: who triggered the run, workflow
variables, and the outputs of every node executed so far.

The part of the context that is known when a run starts (user, variables,
connection, team) is persisted on the execution row, so a paused run can
be rebuilt in another process and resumed.
"""

import copy
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .variables import TemplateContext, create_context


class CurrentUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    email: Optional[str] = None
    name: Optional[str] = None


class ExecutionContext:
    """
    Mutable context for one workflow execution.

    Example:
        >>> context = ExecutionContext("wf-1", "ex-1", CurrentUser(id="u1"))
        >>> context.set_variable("env", "staging")
        >>> context.record_output("dry", {"ok": True})
        >>> context.template_context().previous_outputs["dry"]
        {"ok": True}
    """

    def __init__(
        self,
        workflow_id: str,
        execution_id: str,
        current_user: CurrentUser,
        variables: Optional[Dict[str, Any]] = None,
        previous_outputs: Optional[Dict[str, Any]] = None,
        connection_id: Optional[str] = None,
        team_id: Optional[str] = None,
        dry_run: bool = False,
    ):
        self.workflow_id = workflow_id
        self.execution_id = execution_id
        self.current_user = current_user
        self.variables: Dict[str, Any] = dict(variables or {})
        self.previous_outputs: Dict[str, Any] = dict(previous_outputs or {})
        self.connection_id = connection_id
        self.team_id = team_id
        # Preview runs must not create approval requests or other side records
        self.dry_run = dry_run

    def set_variable(self, name: str, value: Any) -> None:
        self.variables[name] = value

    def record_output(self, node_id: str, output: Any) -> None:
        self.previous_outputs[node_id] = output

    def template_context(self) -> TemplateContext:
        return create_context(
            current_user=self.current_user.model_dump(exclude_none=True),
            variables=self.variables,
            previous_outputs=self.previous_outputs,
            extra={
                "connectionId": self.connection_id,
                "teamId": self.team_id,
                "workflowId": self.workflow_id,
                "executionId": self.execution_id,
            },
        )

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of the current state (for logging/debugging)."""
        return copy.deepcopy({
            "workflowId": self.workflow_id,
            "executionId": self.execution_id,
            "currentUser": self.current_user.model_dump(exclude_none=True),
            "variables": self.variables,
            "previousOutputs": self.previous_outputs,
        })

    def to_persisted(self) -> Dict[str, Any]:
        """Initial context as stored on the execution row."""
        return {
            "currentUser": self.current_user.model_dump(exclude_none=True),
            "variables": copy.deepcopy(self.variables),
            "connectionId": self.connection_id,
            "teamId": self.team_id,
        }

    @classmethod
    def from_persisted(
        cls,
        workflow_id: str,
        execution_id: str,
        payload: Optional[Dict[str, Any]],
        previous_outputs: Optional[Dict[str, Any]] = None,
    ) -> "ExecutionContext":
        payload = payload or {}
        return cls(
            workflow_id=workflow_id,
            execution_id=execution_id,
            current_user=CurrentUser.model_validate(payload.get("currentUser") or {"id": "system"}),
            variables=payload.get("variables"),
            previous_outputs=previous_outputs,
            connection_id=payload.get("connectionId"),
            team_id=payload.get("teamId"),
        )


class TriggerContext(BaseModel):
    """What a caller may pass to WorkflowEngine.execute()."""

    model_config = ConfigDict(populate_by_name=True)

    current_user: Optional[CurrentUser] = Field(None, alias="currentUser")
    variables: Dict[str, Any] = Field(default_factory=dict)
    connection_id: Optional[str] = Field(None, alias="connectionId")
    team_id: Optional[str] = Field(None, alias="teamId")
