"""
Unit Tests for WorkflowParser

Tests cover:
- JSON and YAML parsing
- Serialization back to text (parse(stringify(d)) == d)
- Structural validation (duplicates, dangling edges, trigger, cycles)
- Template variable extraction
"""

import json

import pytest

from migraflow.core.exceptions import ParseError, ValidationError
from migraflow.core.parser import WorkflowParser


@pytest.fixture
def parser():
    return WorkflowParser()


def _definition(nodes, edges=None, **extra):
    return {"name": "Test", "trigger": "manual", "nodes": nodes, "edges": edges or [], **extra}


START = {"id": "start", "type": "trigger", "label": "Start"}


# ============================================================================
# PARSING TESTS
# ============================================================================

@pytest.mark.unit
def test_parse_json(parser, migration_workflow):
    definition = parser.parse(json.dumps(migration_workflow), "json")

    assert definition.name == "Deploy migrations"
    assert [node.id for node in definition.nodes] == ["start", "dry", "apply", "notify"]
    assert definition.get_node("dry").category == "action"
    assert definition.get_node("dry").route.action == "dry_run"


@pytest.mark.unit
def test_parse_yaml(parser):
    content = """
name: Yaml workflow
trigger: manual
nodes:
  - id: start
    type: trigger
    label: Start
  - id: wait
    type: delay
    label: Wait
    data:
      duration: 5
edges:
  - source: start
    target: wait
"""
    definition = parser.parse(content, "yaml")

    assert definition.name == "Yaml workflow"
    assert definition.get_node("wait").data == {"duration": 5}


@pytest.mark.unit
def test_parse_malformed_json(parser):
    with pytest.raises(ParseError, match="Failed to parse workflow JSON") as exc_info:
        parser.parse("{not json", "json")

    assert exc_info.value.format == "json"
    assert exc_info.value.retry_allowed is False


@pytest.mark.unit
def test_parse_unsupported_format(parser):
    with pytest.raises(ParseError, match="Unsupported format: xml"):
        parser.parse("<workflow/>", "xml")


@pytest.mark.unit
def test_parse_non_mapping(parser):
    with pytest.raises(ParseError, match="must be a mapping"):
        parser.parse("[1, 2]", "json")


@pytest.mark.unit
def test_parse_unknown_node_type(parser):
    data = _definition([START, {"id": "x", "type": "teleport", "label": "X"}])

    with pytest.raises(ValidationError) as exc_info:
        parser.parse(json.dumps(data))

    assert any(error.startswith("nodes.1.type") for error in exc_info.value.errors)


# ============================================================================
# ROUND TRIP TESTS
# ============================================================================

@pytest.mark.unit
@pytest.mark.parametrize("format", ["json", "yaml"])
def test_stringify_round_trip(parser, branching_workflow, format):
    definition = parser.parse(json.dumps(branching_workflow))

    text = parser.stringify(definition, format)

    assert parser.parse(text, format) == definition


@pytest.mark.unit
def test_stringify_keeps_editor_fields(parser):
    node = {**START, "position": {"x": 10, "y": 20}}
    definition = parser.parse(json.dumps(_definition([node])))

    data = json.loads(parser.stringify(definition))

    assert data["nodes"][0]["position"] == {"x": 10, "y": 20}


# ============================================================================
# STRUCTURAL VALIDATION TESTS
# ============================================================================

@pytest.mark.unit
def test_missing_trigger(parser):
    data = _definition([{"id": "wait", "type": "delay", "label": "Wait", "data": {"duration": 1}}])

    with pytest.raises(ValidationError) as exc_info:
        parser.parse(json.dumps(data))

    assert "Workflow must have at least one trigger node" in exc_info.value.errors


@pytest.mark.unit
def test_dangling_edges(parser):
    data = _definition([START], [{"source": "start", "target": "ghost"}, {"source": "phantom", "target": "start"}])

    valid, errors = parser.validate(data)

    assert valid is False
    assert "Edge references non-existent target node: ghost" in errors
    assert "Edge references non-existent source node: phantom" in errors


@pytest.mark.unit
def test_duplicate_node_ids(parser):
    valid, errors = parser.validate(_definition([START, dict(START)]))

    assert valid is False
    assert "Duplicate node ID: start" in errors


@pytest.mark.unit
def test_cycle_reported_with_path(parser):
    nodes = [
        START,
        {"id": "a", "type": "delay", "label": "A", "data": {"duration": 1}},
        {"id": "b", "type": "delay", "label": "B", "data": {"duration": 1}},
    ]
    edges = [
        {"source": "start", "target": "a"},
        {"source": "a", "target": "b"},
        {"source": "b", "target": "a"},
    ]

    with pytest.raises(ValidationError) as exc_info:
        parser.parse(json.dumps(_definition(nodes, edges)))

    assert "Workflow contains a cycle: a -> b -> a" in exc_info.value.errors
    assert "Workflow validation failed" in exc_info.value.message


@pytest.mark.unit
def test_action_without_action_type(parser):
    nodes = [START, {"id": "act", "type": "action", "label": "Act", "data": {}}]

    valid, errors = parser.validate(_definition(nodes, [{"source": "start", "target": "act"}]))

    assert valid is False
    assert "Action node act missing action type" in errors


@pytest.mark.unit
def test_specialized_action_does_not_need_action_type(parser):
    nodes = [START, {"id": "q", "type": "databaseQuery", "label": "Query", "data": {"query": "SELECT 1"}}]

    valid, errors = parser.validate(_definition(nodes, [{"source": "start", "target": "q"}]))

    assert valid is True
    assert errors == []


@pytest.mark.unit
def test_all_structural_errors_reported_together(parser):
    data = _definition(
        [{"id": "a", "type": "delay", "label": "A", "data": {"duration": 1}}] * 2,
        [{"source": "a", "target": "nowhere"}],
    )

    valid, errors = parser.validate(data)

    assert valid is False
    assert len(errors) >= 3


# ============================================================================
# TEMPLATE VARIABLE TESTS
# ============================================================================

@pytest.mark.unit
def test_extract_template_variables(parser):
    nodes = [
        START,
        {
            "id": "call",
            "type": "httpRequest",
            "label": "Call",
            "data": {
                "url": "{{variables.baseUrl}}/deploy/{{ env }}",
                "headers": {"X-User": "{{currentUser.id}}"},
                "body": ["{{previousOutputs.start.triggered}}"],
            },
        },
    ]
    definition = parser.parse(json.dumps(_definition(nodes, [{"source": "start", "target": "call"}])))

    assert parser.extract_template_variables(definition) == ["baseUrl", "env", "currentUser", "previousOutputs"]
