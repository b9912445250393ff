"""
Unit Tests for logging configuration

Tests cover:
- JSON formatter fields
- Execution id tagging through the context variable
"""

import json
import logging

import pytest

from migraflow.core.logging_config import (
    JSONFormatter,
    StandardFormatter,
    clear_execution_id,
    get_execution_id,
    set_execution_id,
)


def _record(message="hello", **extra):
    record = logging.LogRecord("migraflow.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def reset_execution_id():
    yield
    clear_execution_id()


@pytest.mark.unit
def test_json_formatter_basic_fields():
    data = json.loads(JSONFormatter().format(_record()))

    assert data["level"] == "INFO"
    assert data["logger"] == "migraflow.test"
    assert data["message"] == "hello"
    assert data["timestamp"].endswith("Z")
    assert "execution_id" not in data


@pytest.mark.unit
def test_json_formatter_includes_execution_id_and_extra():
    set_execution_id("ex-42")

    data = json.loads(JSONFormatter().format(_record(workflow_id="wf-1")))

    assert data["execution_id"] == "ex-42"
    assert data["context"] == {"workflow_id": "wf-1"}


@pytest.mark.unit
def test_standard_formatter_suffix():
    set_execution_id("ex-7")

    line = StandardFormatter().format(_record("node done"))

    assert "INFO" in line
    assert line.endswith("node done (execution_id=ex-7)")


@pytest.mark.unit
def test_execution_id_lifecycle():
    set_execution_id("ex-1")
    assert get_execution_id() == "ex-1"

    clear_execution_id()
    assert get_execution_id() is None
