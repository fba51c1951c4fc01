import pytest
from pydantic import BaseModel, Field, ValidationError

from study_tutor.agent.registry import ToolOutput, ToolRegistry, ToolSpec
from study_tutor.agent.tools import SELECT_AGENT_TOOL, search_documents_spec


class EchoInput(BaseModel):
    value: int = Field(ge=1)


async def _echo(data: EchoInput) -> ToolOutput:
    return ToolOutput(response={"value": data.value})


def _echo_spec() -> ToolSpec:
    return ToolSpec(
        name="echo",
        description="echo positive int",
        args_schema=EchoInput,
        handler=_echo,
    )


@pytest.mark.asyncio
async def test_tool_registry_validation() -> None:
    registry = ToolRegistry()
    registry.register(_echo_spec())

    output = await registry.execute("echo", {"value": 3})
    assert output.response == {"value": 3}

    with pytest.raises(ValidationError):
        await registry.execute("echo", {"value": 0})

    with pytest.raises(KeyError):
        await registry.execute("missing", {})


def test_duplicate_tool_registration_rejected() -> None:
    registry = ToolRegistry()
    registry.register(_echo_spec())

    with pytest.raises(ValueError):
        registry.register(_echo_spec())


@pytest.mark.asyncio
async def test_tool_observer_captures_latency_and_payload() -> None:
    registry = ToolRegistry()
    registry.register(_echo_spec())

    observed = []
    registry.set_observer(observed.append)
    await registry.execute("echo", {"value": 7})
    registry.set_observer(None)
    await registry.execute("echo", {"value": 8})

    assert len(observed) == 1
    assert observed[0].name == "echo"
    assert observed[0].input_payload == {"value": 7}
    assert observed[0].output_preview == '{"value": 7}'
    assert observed[0].latency_ms >= 0.0


def test_declaration_only_tools_are_not_executable() -> None:
    registry = ToolRegistry()
    registry.register(SELECT_AGENT_TOOL)
    registry.register(_echo_spec())

    assert registry.has("echo") is True
    assert registry.has("select_agent") is False
    assert registry.has("search_documents") is False


def test_openai_tool_declaration_shape() -> None:
    declaration = search_documents_spec().as_openai_tool()

    assert declaration["type"] == "function"
    function = declaration["function"]
    assert function["name"] == "search_documents"
    assert function["parameters"]["required"] == ["query"]
    assert function["parameters"]["properties"]["detail_level"]["enum"] == [
        "basic",
        "moderate",
        "comprehensive",
    ]
    assert "title" not in function["parameters"]


def test_select_agent_declaration_requires_agent_type() -> None:
    parameters = SELECT_AGENT_TOOL.parameters()

    assert parameters["required"] == ["agent_type"]
    assert set(parameters["properties"]) == {
        "agent_type",
        "reasoning",
        "detected_language",
        "likely_needs_documents",
    }
