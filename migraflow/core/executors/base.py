"""
Node Executor interface.

Every executor exposes:
- execute(node, context, previous_outputs) -> NodeExecutionResult
- validate(node) -> ValidationResult

execute() never raises for handled failures: subclasses implement
``_run`` and raise ExecutorError subclasses, which are turned into
``success=False`` results here. Anything else propagates to the engine.
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..context import ExecutionContext
from ..exceptions import ExecutorError
from ..nodes import NODE_DATA_SCHEMAS, NodeData, WorkflowNode

logger = logging.getLogger(__name__)


@dataclass
class NodeExecutionResult:
    success: bool
    output: Any = None
    error: Optional[str] = None
    duration: int = 0  # milliseconds
    # Set when the node asks the engine to stop here and wait (approval gate)
    paused: bool = False
    # Called by the engine once the execution is marked paused
    on_paused: Optional[Callable[[], Any]] = None


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: List[str]) -> "ValidationResult":
        return cls(valid=not errors, errors=errors)


@dataclass
class Suspend:
    """
    Returned from ``_run`` to finish the node successfully and pause the run.

    ``on_paused`` runs only after the pause is persisted, so anything that
    may wake the execution (an approval request) cannot see it running.
    """

    output: Any
    on_paused: Optional[Callable[[], Any]] = None


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _is_template(value: Any) -> bool:
    return isinstance(value, str) and "{{" in value


class NodeExecutor(ABC):
    """
    Abstract base for all node executors.

    Subclasses implement ``_run``; most also extend ``_check`` with rules
    the category schema (NODE_DATA_SCHEMAS) cannot express.
    """

    async def execute(
        self,
        node: WorkflowNode,
        context: ExecutionContext,
        previous_outputs: Dict[str, Any],
    ) -> NodeExecutionResult:
        start = time.monotonic()
        try:
            output = await self._run(node, context, previous_outputs)
        except ExecutorError as e:
            logger.info(f"Node {node.id} ({node.type}) failed: {e.message}")
            return NodeExecutionResult(success=False, error=e.message, duration=_elapsed_ms(start))

        if isinstance(output, Suspend):
            return NodeExecutionResult(
                success=True,
                output=output.output,
                duration=_elapsed_ms(start),
                paused=True,
                on_paused=output.on_paused,
            )
        return NodeExecutionResult(success=True, output=output, duration=_elapsed_ms(start))

    @abstractmethod
    async def _run(
        self,
        node: WorkflowNode,
        context: ExecutionContext,
        previous_outputs: Dict[str, Any],
    ) -> Any:
        """Do the work and return the node output, or raise ExecutorError."""

    def validate(self, node: WorkflowNode) -> ValidationResult:
        """
        Validate node data against the category schema plus ``_check``.

        Fields still holding ``{{ }}`` templates are not judged, since their
        final value is only known at execution time.
        """
        errors: List[str] = []
        data = self.parse_data(node, errors)
        errors.extend(self._check(node.data, data))
        return ValidationResult.from_errors(errors)

    def parse_data(self, node: WorkflowNode, errors: Optional[List[str]] = None) -> Optional[NodeData]:
        try:
            return NODE_DATA_SCHEMAS.get(node.category, NodeData).model_validate(node.data)
        except PydanticValidationError as e:
            if errors is not None:
                for item in e.errors():
                    key = item["loc"][0] if item["loc"] else None
                    if key is not None and _is_template(node.data.get(key)):
                        continue
                    path = ".".join(str(part) for part in item["loc"])
                    errors.append(f"{path}: {item['msg']}" if path else item["msg"])
            return None

    def _check(self, raw: Dict[str, Any], data: Optional[NodeData]) -> List[str]:
        return []

    def load_data(self, node: WorkflowNode) -> NodeData:
        """Typed node data for execution; invalid data is a node failure."""
        errors: List[str] = []
        data = self.parse_data(node, errors)
        if data is None:
            raise ExecutorError(f"Invalid {node.category} node configuration: " + "; ".join(errors))
        return data
