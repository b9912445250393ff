"""
Workflow Definition Parser

Turns JSON or YAML text into a validated WorkflowDefinition and back.

Validation happens in two passes:
1. Schema (Pydantic): field types, enums, required keys
2. Structure: duplicate ids, dangling edges, trigger presence, cycles,
   required per-node fields

All structural problems are collected and reported together in a single
ValidationError.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Set, Tuple

import yaml
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ParseError, ValidationError
from .nodes import ExecutorCategory, WorkflowDefinition, WorkflowEdge, WorkflowNode
from .variables import extract_variables

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("json", "yaml")


def _format_pydantic_errors(error: PydanticValidationError) -> List[str]:
    messages = []
    for item in error.errors():
        path = ".".join(str(part) for part in item["loc"])
        messages.append(f"{path}: {item['msg']}" if path else item["msg"])
    return messages


class WorkflowParser:
    """
    Parser/validator for workflow definitions.

    Example:
        >>> parser = WorkflowParser()
        >>> definition = parser.parse(text, "yaml")
        >>> parser.stringify(definition, "json")
    """

    def parse(self, content: str, format: str = "json") -> WorkflowDefinition:
        """
        Parse and validate a definition.

        Raises:
            ParseError: content is not well-formed for the given format
            ValidationError: schema or structural rules violated
        """
        data = self._decode(content, format)

        if not isinstance(data, dict):
            raise ParseError(f"Workflow definition must be a mapping, got {type(data).__name__}", format)

        definition = self._build(data)

        errors = self.validate_structure(definition)
        if errors:
            logger.info(f"Workflow '{definition.name}' failed structural validation: {errors}")
            raise ValidationError(errors)

        return definition

    def stringify(self, definition: WorkflowDefinition, format: str = "json") -> str:
        """Serialize a definition so that parse(stringify(d)) == d."""
        data = definition.model_dump(mode="json", by_alias=True, exclude_unset=True)

        if format == "json":
            return json.dumps(data, indent=2)
        if format == "yaml":
            return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)

        raise ParseError(f"Unsupported format: {format}", format)

    def validate(self, data: Dict[str, Any]) -> Tuple[bool, List[str]]:
        """
        Validate an already-decoded definition mapping.

        Returns (valid, errors) instead of raising, for editors that want
        to show every problem at once.
        """
        try:
            definition = self._build(data)
        except ValidationError as e:
            return False, e.errors

        errors = self.validate_structure(definition)
        return not errors, errors

    def validate_structure(self, definition: WorkflowDefinition) -> List[str]:
        errors: List[str] = []

        node_ids: Set[str] = set()
        for node in definition.nodes:
            if node.id in node_ids:
                errors.append(f"Duplicate node ID: {node.id}")
            node_ids.add(node.id)

        for edge in definition.edges:
            if edge.source not in node_ids:
                errors.append(f"Edge references non-existent source node: {edge.source}")
            if edge.target not in node_ids:
                errors.append(f"Edge references non-existent target node: {edge.target}")

        if not any(node.category == ExecutorCategory.TRIGGER for node in definition.nodes):
            errors.append("Workflow must have at least one trigger node")

        cycle = self.find_cycle(definition.nodes, definition.edges)
        if cycle:
            errors.append(f"Workflow contains a cycle: {' -> '.join(cycle)}")

        for node in definition.nodes:
            if node.type == "action" and not node.data.get("action"):
                errors.append(f"Action node {node.id} missing action type")

        return errors

    def find_cycle(self, nodes: List[WorkflowNode], edges: List[WorkflowEdge]) -> Optional[List[str]]:
        """
        Depth-first search with a recursion stack.

        Returns the node ids forming the first cycle found, closed on the
        starting node (e.g. ["a", "b", "a"]), or None when the graph is acyclic.
        """
        adjacency: Dict[str, List[str]] = {node.id: [] for node in nodes}
        for edge in edges:
            adjacency.setdefault(edge.source, []).append(edge.target)

        visited: Set[str] = set()
        stack: List[str] = []
        on_stack: Set[str] = set()

        def visit(node_id: str) -> Optional[List[str]]:
            visited.add(node_id)
            stack.append(node_id)
            on_stack.add(node_id)

            for neighbor in adjacency.get(node_id, []):
                if neighbor in on_stack:
                    return stack[stack.index(neighbor):] + [neighbor]
                if neighbor not in visited:
                    found = visit(neighbor)
                    if found:
                        return found

            stack.pop()
            on_stack.discard(node_id)
            return None

        for node in nodes:
            if node.id not in visited:
                found = visit(node.id)
                if found:
                    return found
        return None

    def extract_template_variables(self, definition: WorkflowDefinition) -> List[str]:
        """Root names referenced by templates anywhere in node data, in first-seen order."""
        seen: List[str] = []

        def walk(value: Any) -> None:
            if isinstance(value, str):
                for name in extract_variables(value):
                    if name not in seen:
                        seen.append(name)
            elif isinstance(value, dict):
                for item in value.values():
                    walk(item)
            elif isinstance(value, (list, tuple)):
                for item in value:
                    walk(item)

        for node in definition.nodes:
            walk(node.data)
        return seen

    def _decode(self, content: str, format: str) -> Any:
        if format not in SUPPORTED_FORMATS:
            raise ParseError(f"Unsupported format: {format}", format)

        try:
            if format == "json":
                return json.loads(content)
            return yaml.safe_load(content)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ParseError(f"Failed to parse workflow {format.upper()}: {e}", format) from e

    def _build(self, data: Dict[str, Any]) -> WorkflowDefinition:
        try:
            return WorkflowDefinition.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(_format_pydantic_errors(e)) from e
