import json

import pytest
from pydantic import BaseModel, Field

from shop_agent.agent.registry import ToolRegistry, ToolSpec


class EchoInput(BaseModel):
    value: int = Field(ge=1)


def _echo_spec() -> ToolSpec:
    def _handler(data: EchoInput) -> dict:
        return {"value": data.value}

    return ToolSpec(
        name="echo",
        description="echo positive int",
        args_schema=EchoInput,
        handler=_handler,
    )


def test_invalid_arguments_return_structured_error() -> None:
    registry = ToolRegistry()
    registry.register(_echo_spec())

    assert registry.execute("echo", {"value": 3}) == {"value": 3}

    result = registry.execute("echo", {"value": 0})
    assert result["error"] == "Invalid tool arguments"
    assert result["details"][0]["field"] == "value"
    assert result["arguments"] == {"value": 0}


def test_unknown_tool_returns_structured_error() -> None:
    registry = ToolRegistry()
    registry.register(_echo_spec())

    result = registry.execute("teleport", {})

    assert result["error"] == "Unknown tool: teleport"
    assert result["available"] == ["echo"]


def test_duplicate_tool_registration_rejected() -> None:
    registry = ToolRegistry()
    spec = _echo_spec()

    registry.register(spec)
    with pytest.raises(ValueError):
        registry.register(spec)


def test_langchain_export_keeps_schema_and_serializes_output() -> None:
    registry = ToolRegistry()
    registry.register(_echo_spec())

    (tool,) = registry.as_langchain_tools()

    assert tool.name == "echo"
    assert tool.args_schema is EchoInput
    assert json.loads(tool.invoke({"value": 2})) == {"value": 2}


def test_tool_observer_captures_latency_and_payload() -> None:
    registry = ToolRegistry()
    registry.register(_echo_spec())

    observed = []
    registry.set_observer(observed.append)
    registry.execute("echo", {"value": 7})
    registry.set_observer(None)
    registry.execute("echo", {"value": 8})

    assert len(observed) == 1
    assert observed[0].name == "echo"
    assert observed[0].input_payload == {"value": 7}
    assert json.loads(observed[0].output_preview) == {"value": 7}
    assert observed[0].latency_ms >= 0.0
