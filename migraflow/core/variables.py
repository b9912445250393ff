"""
Variable / Template Resolver

Resolves ``{{ path.to.value }}`` expressions inside node data against an
execution-scoped TemplateContext.

Namespace roots:
- currentUser:      the user who triggered the execution
- variables:        workflow variables (declared defaults, caller values, set_variable)
- previousOutputs:  outputs of already-executed nodes, by node id
- any key of ``extra`` (connectionId, teamId, workflowId, executionId)
- anything else falls back to a variable of that name: ``{{env}}`` == ``{{variables.env}}``

Rules:
- A string that is exactly one template resolves to the native value
  ("{{variables.count}}" -> 5, not "5")
- Templates embedded in a larger string are interpolated as text
- Unresolvable paths give None (or "" when interpolated); nothing raises

Everything here is pure: no I/O, no mutation of inputs.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

TEMPLATE_PATTERN = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")
FULL_TEMPLATE_PATTERN = re.compile(r"^\{\{\s*([^{}]+?)\s*\}\}$")

RESERVED_ROOTS = ("currentUser", "variables", "previousOutputs")


class _Missing:
    """Sentinel for a path that does not resolve."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


@dataclass
class TemplateContext:
    current_user: Dict[str, Any] = field(default_factory=dict)
    variables: Dict[str, Any] = field(default_factory=dict)
    previous_outputs: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    def namespace(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "currentUser": self.current_user,
            "variables": self.variables,
            "previousOutputs": self.previous_outputs,
        }


def create_context(
    current_user: Optional[Dict[str, Any]] = None,
    variables: Optional[Dict[str, Any]] = None,
    previous_outputs: Optional[Dict[str, Any]] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> TemplateContext:
    return TemplateContext(
        current_user=dict(current_user or {}),
        variables=dict(variables or {}),
        previous_outputs=dict(previous_outputs or {}),
        extra=dict(extra or {}),
    )


def _step(value: Any, key: str) -> Any:
    if isinstance(value, dict):
        return value.get(key, MISSING)
    if isinstance(value, (list, tuple)):
        if key.lstrip("-").isdigit():
            index = int(key)
            if -len(value) <= index < len(value):
                return value[index]
        return MISSING
    if value is None or value is MISSING or key.startswith("_"):
        return MISSING
    return getattr(value, key, MISSING)


def lookup_path(value: Any, path: Iterable[str]) -> Any:
    """
    Walk ``path`` through mappings, sequences (numeric keys) and public
    attributes. Returns MISSING as soon as a step does not resolve.
    """
    current = value
    for key in path:
        current = _step(current, key)
        if current is MISSING:
            return MISSING
    return current


def evaluate_expression(expression: str, context: TemplateContext) -> Any:
    """Resolve a dotted path such as ``previousOutputs.check.result``; MISSING if absent."""
    parts = [part.strip() for part in expression.strip().split(".")]
    if not parts or not parts[0]:
        return MISSING

    namespace = context.namespace()
    root, rest = parts[0], parts[1:]

    if root in namespace:
        return lookup_path(namespace[root], rest)
    if root in context.variables:
        return lookup_path(context.variables[root], rest)
    return MISSING


def _to_text(value: Any) -> str:
    if value is None or value is MISSING:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def resolve(template: str, context: TemplateContext) -> Any:
    """Resolve all templates in a single string."""
    if "{{" not in template:
        return template

    full = FULL_TEMPLATE_PATTERN.match(template)
    if full:
        value = evaluate_expression(full.group(1), context)
        return None if value is MISSING else value

    return TEMPLATE_PATTERN.sub(
        lambda match: _to_text(evaluate_expression(match.group(1), context)),
        template,
    )


def resolve_object(value: Any, context: TemplateContext) -> Any:
    """
    Recursively resolve templates inside dicts, lists and tuples.

    Values without templates come back equal to the input; the input itself
    is never mutated.
    """
    if isinstance(value, str):
        return resolve(value, context)
    if isinstance(value, dict):
        return {key: resolve_object(item, context) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_object(item, context) for item in value]
    if isinstance(value, tuple):
        return tuple(resolve_object(item, context) for item in value)
    return value


def extract_variables(template: str) -> List[str]:
    """
    Root names referenced by a template string. ``variables.x`` reports ``x``
    so that it can be checked against declared variable names.
    """
    names: List[str] = []
    for match in TEMPLATE_PATTERN.finditer(template):
        parts = match.group(1).strip().split(".")
        if parts[0] == "variables" and len(parts) > 1:
            name = parts[1]
        else:
            name = parts[0]
        if name not in names:
            names.append(name)
    return names


def validate_variables(
    referenced: Iterable[str],
    defined: Iterable[str],
    extra_roots: Iterable[str] = (),
) -> Tuple[bool, List[str]]:
    """
    Check that every referenced root is either a namespace root or a
    defined variable. Returns (valid, missing_names).
    """
    known = set(defined) | set(RESERVED_ROOTS) | set(extra_roots)
    missing = [name for name in referenced if name not in known]
    return not missing, missing
