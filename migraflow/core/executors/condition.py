"""
Condition Executor

Evaluates a restricted boolean expression. Supported forms:

    previousOutputs.check.rowCount > 0
    status === "ready"
    variables.enabled
    true

Nothing is ever passed to eval(); the left side is a dotted path looked up
in the evaluation namespace and the right side is a JSON literal (or a bare
word treated as a string).
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..context import ExecutionContext
from ..exceptions import ExecutorError
from ..nodes import ConditionData, NodeData, WorkflowNode
from ..variables import MISSING, lookup_path
from .base import NodeExecutor

COMPARISON_PATTERN = re.compile(
    r"^\s*([a-zA-Z_$][\w$]*(?:\.[\w$-]+)*)\s*(===|!==|==|!=|>=|<=|>|<)\s*(.+?)\s*$"
)
PATH_PATTERN = re.compile(r"^\s*(!?)\s*([a-zA-Z_$][\w$]*(?:\.[\w$-]+)*)\s*$")


def _parse_literal(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        pass
    if len(text) >= 2 and text[0] == text[-1] == "'":
        return text[1:-1]
    return text


def _strict_equal(left: Any, right: Any) -> bool:
    # Booleans never equal numbers; ints and floats compare by value
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    return type(left) is type(right) and left == right


def _compare(left: Any, operator: str, right: Any) -> bool:
    if operator == "===":
        return _strict_equal(left, right)
    if operator == "!==":
        return not _strict_equal(left, right)
    if operator == "==":
        return left == right
    if operator == "!=":
        return left != right

    try:
        if operator == ">":
            return left > right
        if operator == "<":
            return left < right
        if operator == ">=":
            return left >= right
        if operator == "<=":
            return left <= right
    except TypeError:
        # Ordering between incompatible types (None > 3, "a" < 2) is false
        return False

    raise ExecutorError(f"Unsupported operator: {operator}")


class ConditionExecutor(NodeExecutor):
    async def _run(self, node: WorkflowNode, context: ExecutionContext, previous_outputs: Dict[str, Any]) -> Dict[str, Any]:
        data: ConditionData = self.load_data(node)
        result = self.evaluate(data.condition, self._namespace(context, previous_outputs))

        return {
            "condition": data.condition,
            "result": result,
            "evaluatedAt": datetime.now(timezone.utc).isoformat(),
        }

    def _check(self, raw: Dict[str, Any], data: Optional[NodeData]) -> List[str]:
        condition = raw.get("condition")
        if condition is None or (isinstance(condition, str) and not condition.strip()):
            return ["Condition expression is required"]
        return []

    def evaluate(self, condition: Any, namespace: Dict[str, Any]) -> bool:
        if isinstance(condition, bool):
            return condition
        if not isinstance(condition, str):
            raise ExecutorError(f"Invalid condition format: {condition!r}")

        text = condition.strip()
        if text.lower() in ("true", "false"):
            return text.lower() == "true"

        comparison = COMPARISON_PATTERN.match(text)
        if comparison:
            path, operator, literal = comparison.groups()
            left = lookup_path(namespace, path.split("."))
            left = None if left is MISSING else left
            return _compare(left, operator, _parse_literal(literal))

        bare = PATH_PATTERN.match(text)
        if bare:
            negate, path = bare.groups()
            value = lookup_path(namespace, path.split("."))
            truthy = value is not MISSING and bool(value)
            return not truthy if negate else truthy

        raise ExecutorError(
            f"Unsupported condition format: {condition}. Use simple property comparisons."
        )

    def _namespace(self, context: ExecutionContext, previous_outputs: Dict[str, Any]) -> Dict[str, Any]:
        # Bare names resolve to variables first, then to node outputs by id
        return {
            **previous_outputs,
            **context.variables,
            "variables": context.variables,
            "previousOutputs": previous_outputs,
            "currentUser": context.current_user.model_dump(exclude_none=True),
        }
