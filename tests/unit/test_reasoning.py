import asyncio

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from study_tutor.agent.tools import SELECT_AGENT_TOOL, search_documents_spec
from study_tutor.errors import ReasoningServiceError
from study_tutor.llm.reasoning import (
    GenerationRequest,
    LangChainReasoningService,
    ToolMode,
    to_langchain_messages,
)
from study_tutor.types import (
    ConversationTurn,
    Evaluation,
    MediaPart,
    TextPart,
    ToolCallPart,
    ToolResponsePart,
)


class FakeChatModel:
    """Stands in for a LangChain chat model and records how it was driven."""

    def __init__(self, reply=None, structured=None, delay: float = 0.0) -> None:
        self.reply = reply
        self.structured = structured
        self.delay = delay
        self.tool_choice = "unbound"
        self.bound_tools: list[dict] = []
        self.schema = None
        self.received = None

    def bind_tools(self, tools, tool_choice=None):
        self.bound_tools = tools
        self.tool_choice = tool_choice
        return self

    def with_structured_output(self, schema):
        self.schema = schema
        return _Structured(self)

    async def ainvoke(self, messages):
        self.received = messages
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.reply, Exception):
            raise self.reply
        return self.reply


class _Structured:
    def __init__(self, model: FakeChatModel) -> None:
        self.model = model

    async def ainvoke(self, messages):
        self.model.received = messages
        return self.model.structured


def _service(model: FakeChatModel, timeout_seconds: float = 5.0) -> tuple[LangChainReasoningService, list]:
    created = []

    def factory(name: str, temperature: float, max_tokens: int) -> FakeChatModel:
        created.append((name, temperature, max_tokens))
        return model

    return LangChainReasoningService(factory, timeout_seconds=timeout_seconds), created


def _request(**overrides) -> GenerationRequest:
    values = {
        "model": "gpt-test",
        "system_instruction": "Be helpful.",
        "contents": [ConversationTurn(role="user", parts=[TextPart("define osmosis")])],
    }
    values.update(overrides)
    return GenerationRequest(**values)


def test_turns_convert_to_langchain_messages() -> None:
    turns = [
        ConversationTurn(
            role="user",
            parts=[TextPart("What is this?"), MediaPart(mime_type="image/png", data="aW1n")],
        ),
        ConversationTurn(
            role="model",
            parts=[ToolCallPart(name="search_documents", args={"query": "cell"}, call_id="c1")],
        ),
        ConversationTurn(
            role="tool",
            parts=[ToolResponsePart(name="search_documents", response={"snippets": []}, call_id="c1")],
        ),
        ConversationTurn(role="model", parts=[TextPart("A cell diagram.")]),
    ]

    user, call, tool, answer = to_langchain_messages(turns)

    assert isinstance(user, HumanMessage)
    assert user.content[1] == {
        "type": "image_url",
        "image_url": {"url": "data:image/png;base64,aW1n"},
    }
    assert isinstance(call, AIMessage)
    assert call.tool_calls[0]["name"] == "search_documents"
    assert call.tool_calls[0]["id"] == "c1"
    assert isinstance(tool, ToolMessage)
    assert tool.tool_call_id == "c1"
    assert tool.content == '{"snippets": []}'
    assert answer.content == "A cell diagram."


@pytest.mark.asyncio
async def test_forced_mode_names_the_single_allowed_tool() -> None:
    reply = AIMessage(
        content="",
        tool_calls=[{"name": "select_agent", "args": {"agent_type": "general"}, "id": "r1"}],
    )
    model = FakeChatModel(reply=reply)
    service, created = _service(model)

    response = await service.generate(
        _request(
            tools=[SELECT_AGENT_TOOL],
            tool_mode=ToolMode.FORCED,
            allowed_tools=["select_agent"],
            temperature=0.1,
            max_output_tokens=1024,
        )
    )

    assert created == [("gpt-test", 0.1, 1024)]
    assert model.tool_choice == "select_agent"
    assert model.bound_tools[0]["function"]["name"] == "select_agent"
    assert isinstance(model.received[0], SystemMessage)
    (call,) = response.tool_invocations
    assert call.name == "select_agent"
    assert call.args == {"agent_type": "general"}
    assert call.call_id == "r1"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("mode", "expected"),
    [(ToolMode.AUTO, None), (ToolMode.ENCOURAGED, "auto"), (ToolMode.NONE, "unbound")],
)
async def test_tool_choice_per_mode(mode, expected) -> None:
    model = FakeChatModel(reply=AIMessage(content="Answer"))
    service, _ = _service(model)

    response = await service.generate(_request(tools=[search_documents_spec()], tool_mode=mode))

    assert model.tool_choice == expected
    assert response.text == "Answer"
    assert response.tool_invocations == []


@pytest.mark.asyncio
async def test_structured_output_is_returned_as_json_text() -> None:
    verdict = Evaluation(quality="high", relevance_type="relevant", needs_more_context=False)
    model = FakeChatModel(structured=verdict)
    service, _ = _service(model)

    response = await service.generate(_request(response_schema=Evaluation, tool_mode=ToolMode.NONE))

    assert model.schema is Evaluation
    assert Evaluation.model_validate_json(response.text) == verdict


@pytest.mark.asyncio
async def test_slow_model_raises_reasoning_error() -> None:
    service, _ = _service(FakeChatModel(reply=AIMessage(content="late"), delay=0.5), timeout_seconds=0.01)

    with pytest.raises(ReasoningServiceError, match="did not respond"):
        await service.generate(_request())


@pytest.mark.asyncio
async def test_provider_errors_are_wrapped() -> None:
    service, _ = _service(FakeChatModel(reply=RuntimeError("401 invalid api key")))

    with pytest.raises(ReasoningServiceError, match="invalid api key"):
        await service.generate(_request())


@pytest.mark.asyncio
async def test_missing_tool_call_ids_are_generated() -> None:
    reply = AIMessage(
        content="",
        tool_calls=[{"name": "search_documents", "args": {"query": "x"}, "id": None}],
    )
    service, _ = _service(FakeChatModel(reply=reply))

    response = await service.generate(_request(tools=[search_documents_spec()]))

    assert response.tool_invocations[0].call_id.startswith("call_")
