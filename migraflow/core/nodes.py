"""
Workflow Definition Model

This module defines the typed shape of a workflow definition:
- WorkflowDefinition: name, trigger, declared variables, nodes and edges
- WorkflowNode / WorkflowEdge: graph elements
- Per-category node data schemas (ActionData, ConditionData, ...)
- NODE_TYPE_ROUTES: the single table mapping every accepted node type to
  the executor category that runs it and, for editor specializations,
  the action discriminator it implies

Definitions are immutable (frozen) Pydantic models. Node ``data`` stays an
open mapping at parse time because it may contain ``{{ }}`` templates that
only resolve during execution; executors validate it against the typed
schema of their category.
"""

from typing import Any, Dict, List, Literal, NamedTuple, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# NODE TYPE ROUTING
# ============================================================================

class ExecutorCategory:
    TRIGGER = "trigger"
    ACTION = "action"
    CONDITION = "condition"
    APPROVAL = "approval"
    NOTIFICATION = "notification"
    DELAY = "delay"


class NodeRoute(NamedTuple):
    category: str
    action: Optional[str] = None


NodeType = Literal[
    "trigger",
    "action",
    "condition",
    "approval",
    "notification",
    "delay",
    "discoverMigrations",
    "dryRun",
    "executeMigrations",
    "rollback",
    "databaseQuery",
    "httpRequest",
    "shellCommand",
    "transformData",
    "setVariable",
]

NODE_TYPE_ROUTES: Dict[str, NodeRoute] = {
    "trigger": NodeRoute(ExecutorCategory.TRIGGER),
    "action": NodeRoute(ExecutorCategory.ACTION),
    "condition": NodeRoute(ExecutorCategory.CONDITION),
    "approval": NodeRoute(ExecutorCategory.APPROVAL),
    "notification": NodeRoute(ExecutorCategory.NOTIFICATION),
    "delay": NodeRoute(ExecutorCategory.DELAY),
    # Editor specializations, all run by the action executor
    "discoverMigrations": NodeRoute(ExecutorCategory.ACTION, "discover_migrations"),
    "dryRun": NodeRoute(ExecutorCategory.ACTION, "dry_run"),
    "executeMigrations": NodeRoute(ExecutorCategory.ACTION, "execute_migrations"),
    "rollback": NodeRoute(ExecutorCategory.ACTION, "rollback"),
    "databaseQuery": NodeRoute(ExecutorCategory.ACTION, "database_query"),
    "httpRequest": NodeRoute(ExecutorCategory.ACTION, "http_request"),
    "shellCommand": NodeRoute(ExecutorCategory.ACTION, "shell_command"),
    "transformData": NodeRoute(ExecutorCategory.ACTION, "transform_data"),
    "setVariable": NodeRoute(ExecutorCategory.ACTION, "set_variable"),
}

ACTION_TYPES = (
    "discover_migrations",
    "dry_run",
    "execute_migrations",
    "rollback",
    "database_query",
    "database_migration",
    "http_request",
    "custom_api_call",
    "shell_command",
    "set_variable",
    "transform_data",
)


# ============================================================================
# STATUSES
# ============================================================================

class ExecutionStatus:
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    TERMINAL = (SUCCESS, FAILED, CANCELLED)


class NodeStatus:
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


# ============================================================================
# NODE DATA SCHEMAS
# ============================================================================

class NodeData(BaseModel):
    """Base for per-category node data. Unknown editor keys are kept."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class TriggerData(NodeData):
    description: Optional[str] = None


class ActionData(NodeData):
    action: str = Field(..., min_length=1)
    connection_id: Optional[str] = Field(None, alias="connectionId")
    migrations: Optional[Union[str, List[Any]]] = None
    url: Optional[str] = None
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "GET"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Any] = None
    query: Optional[str] = None
    parameters: Optional[Union[Dict[str, Any], List[Any]]] = None
    timeout: Optional[int] = Field(None, ge=1, description="Timeout in milliseconds")
    migration_id: Optional[str] = Field(None, alias="migrationId")
    command: Optional[str] = None
    variable_name: Optional[str] = Field(None, alias="variableName")
    value: Optional[Any] = None
    input: Optional[Any] = None
    transform_function: Optional[str] = Field(None, alias="transformFunction")

    @field_validator("method", mode="before")
    @classmethod
    def upper_method(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class ConditionData(NodeData):
    condition: Union[bool, str]


MIN_APPROVAL_TIMEOUT_SECONDS = 60
MAX_APPROVAL_TIMEOUT_SECONDS = 86400


class ApprovalData(NodeData):
    approvers: List[str] = Field(..., min_length=1)
    timeout: int = Field(
        3600,
        ge=MIN_APPROVAL_TIMEOUT_SECONDS,
        le=MAX_APPROVAL_TIMEOUT_SECONDS,
        description="Seconds to wait before the request expires",
    )
    skip_if_creator: bool = Field(False, alias="skipIfCreator")
    require_all: bool = Field(True, alias="requireAll")
    message: Optional[str] = None


class NotificationData(NodeData):
    provider: Literal["email", "slack", "webhook", "pagerduty", "team_notification"]
    webhook: Optional[str] = None
    template: Optional[str] = None
    message: Optional[str] = None
    recipient: Optional[str] = None
    recipients: List[str] = Field(default_factory=list)
    subject: Optional[str] = None
    channel: Optional[str] = None
    url: Optional[str] = None
    method: str = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[Any] = None
    team_id: Optional[str] = Field(None, alias="teamId")
    severity: str = "error"


class DelayData(NodeData):
    duration: float = Field(..., ge=1, description="Seconds to wait")


NODE_DATA_SCHEMAS = {
    ExecutorCategory.TRIGGER: TriggerData,
    ExecutorCategory.ACTION: ActionData,
    ExecutorCategory.CONDITION: ConditionData,
    ExecutorCategory.APPROVAL: ApprovalData,
    ExecutorCategory.NOTIFICATION: NotificationData,
    ExecutorCategory.DELAY: DelayData,
}


# ============================================================================
# GRAPH ELEMENTS
# ============================================================================

class WorkflowNode(BaseModel):
    """
    A vertex of the workflow graph.

    ``type`` is one of the keys of NODE_TYPE_ROUTES. Editor-only keys such
    as ``position`` are kept so definitions round-trip unchanged.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str = Field(..., min_length=1, description="Unique node identifier")
    type: NodeType
    label: str = Field(..., description="Human-readable label")
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def validate_id_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Node ID cannot be empty")
        return v

    @property
    def route(self) -> NodeRoute:
        return NODE_TYPE_ROUTES[self.type]

    @property
    def category(self) -> str:
        return self.route.category


class WorkflowEdge(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    label: Optional[str] = None
    source_handle: Optional[str] = Field(None, alias="sourceHandle")

    @property
    def branch(self) -> Optional[bool]:
        """True/False when this edge is a condition branch, None otherwise."""
        tag = self.label if self.label is not None else self.source_handle
        if tag is None:
            return None
        tag = tag.strip().lower()
        if tag == "true":
            return True
        if tag == "false":
            return False
        return None


class WorkflowVariable(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(..., min_length=1)
    type: Literal["string", "number", "boolean", "object", "secret"]
    default_value: Optional[Any] = Field(None, alias="defaultValue")
    description: Optional[str] = None
    is_secret: bool = Field(False, alias="isSecret")

    def coerced_default(self) -> Any:
        """Default value converted to the declared type (defaults are often stored as strings)."""
        value = self.default_value
        if value is None or not isinstance(value, str):
            return value
        if self.type == "number":
            try:
                number = float(value)
            except ValueError:
                return value
            return int(number) if number.is_integer() else number
        if self.type == "boolean":
            return value.strip().lower() == "true"
        return value


class WorkflowDefinition(BaseModel):
    """
    Complete workflow definition.

    Example:
        {
            "name": "Deploy migrations",
            "trigger": "manual",
            "nodes": [
                {"id": "start", "type": "trigger", "label": "Start"},
                {"id": "dry", "type": "dryRun", "label": "Dry run", "data": {"migrations": "all"}}
            ],
            "edges": [{"source": "start", "target": "dry"}]
        }
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: str = "1.0"
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    trigger: Literal["manual", "scheduled", "webhook", "event"]
    variables: List[WorkflowVariable] = Field(default_factory=list)
    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def default_variables(self) -> Dict[str, Any]:
        return {
            variable.name: variable.coerced_default()
            for variable in self.variables
            if variable.default_value is not None
        }
