"""Reasoning-service contract and its LangChain chat-model implementation."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from pydantic import BaseModel

from study_tutor.agent.registry import ToolSpec
from study_tutor.errors import ReasoningServiceError
from study_tutor.types import (
    ConversationTurn,
    MediaPart,
    TextPart,
    ToolCallPart,
    ToolInvocation,
    ToolResponsePart,
)

logger = logging.getLogger(__name__)


class ToolMode(str, Enum):
    """How strongly the model is steered toward calling a declared tool."""

    NONE = "none"
    AUTO = "auto"
    ENCOURAGED = "encouraged"
    FORCED = "forced"


@dataclass(slots=True)
class GenerationRequest:
    model: str
    system_instruction: str
    contents: list[ConversationTurn]
    temperature: float = 0.2
    max_output_tokens: int = 2048
    tools: list[ToolSpec] = field(default_factory=list)
    tool_mode: ToolMode = ToolMode.AUTO
    allowed_tools: list[str] = field(default_factory=list)
    response_schema: type[BaseModel] | None = None


@dataclass(slots=True)
class GenerationResponse:
    text: str = ""
    tool_invocations: list[ToolInvocation] = field(default_factory=list)


class ReasoningService(Protocol):
    """Minimal reasoning-service contract used by router, agents and evaluator."""

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Run one model call."""


ChatModelFactory = Callable[[str, float, int], BaseChatModel]


def openai_chat_model_factory(
    *,
    api_key: str,
    base_url: str | None = None,
    timeout_seconds: float = 60.0,
) -> ChatModelFactory:
    """Return a factory building `ChatOpenAI` instances per model/temperature."""

    from langchain_openai import ChatOpenAI

    def _factory(model: str, temperature: float, max_tokens: int) -> BaseChatModel:
        return ChatOpenAI(
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
            max_retries=1,
        )

    return _factory


class LangChainReasoningService:
    """Reasoning service backed by LangChain chat models.

    Every call runs under `asyncio.wait_for` so a stalled provider cannot hang
    the request; cancellation of the surrounding task aborts the call.
    """

    def __init__(self, model_factory: ChatModelFactory, *, timeout_seconds: float = 60.0) -> None:
        self._model_factory = model_factory
        self._timeout_seconds = timeout_seconds

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        model = self._model_factory(
            request.model, request.temperature, request.max_output_tokens
        )
        messages = [
            SystemMessage(content=request.system_instruction),
            *to_langchain_messages(request.contents),
        ]

        try:
            if request.response_schema is not None:
                structured = model.with_structured_output(request.response_schema)
                result = await asyncio.wait_for(
                    structured.ainvoke(messages), timeout=self._timeout_seconds
                )
                return GenerationResponse(text=_structured_to_text(result))

            runnable: Any = model
            if request.tools and request.tool_mode is not ToolMode.NONE:
                runnable = model.bind_tools(
                    [spec.as_openai_tool() for spec in request.tools],
                    tool_choice=_tool_choice(request.tool_mode, request.allowed_tools),
                )
            message = await asyncio.wait_for(
                runnable.ainvoke(messages), timeout=self._timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            raise ReasoningServiceError(
                f"Model {request.model} did not respond within {self._timeout_seconds:.0f}s"
            ) from exc
        except ReasoningServiceError:
            raise
        except Exception as exc:
            raise ReasoningServiceError(f"Model {request.model} call failed: {exc}") from exc

        return GenerationResponse(
            text=message_text(message),
            tool_invocations=_tool_invocations(message),
        )


def to_langchain_messages(turns: list[ConversationTurn]) -> list[BaseMessage]:
    """Convert conversation turns into LangChain chat messages."""

    messages: list[BaseMessage] = []
    for turn in turns:
        if turn.role == "user":
            messages.append(HumanMessage(content=_user_content(turn)))
        elif turn.role == "model":
            tool_calls = [
                {"name": part.name, "args": part.args, "id": part.call_id}
                for part in turn.parts
                if isinstance(part, ToolCallPart)
            ]
            text = "\n".join(
                part.text if isinstance(part, TextPart) else f"[attachment: {part.mime_type}]"
                for part in turn.parts
                if isinstance(part, (TextPart, MediaPart))
            )
            messages.append(AIMessage(content=text, tool_calls=tool_calls))
        else:
            for part in turn.parts:
                if isinstance(part, ToolResponsePart):
                    messages.append(
                        ToolMessage(
                            content=json.dumps(part.response, ensure_ascii=False),
                            tool_call_id=part.call_id,
                            name=part.name,
                        )
                    )
    return messages


def message_text(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                if item.get("type", "text") == "text" and "text" in item:
                    parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return "".join(parts).strip()
    return str(content or "").strip()


def _user_content(turn: ConversationTurn) -> str | list[dict[str, Any]]:
    if all(isinstance(part, TextPart) for part in turn.parts):
        return "\n".join(part.text for part in turn.parts if isinstance(part, TextPart))

    blocks: list[dict[str, Any]] = []
    for part in turn.parts:
        if isinstance(part, TextPart):
            blocks.append({"type": "text", "text": part.text})
        elif isinstance(part, MediaPart):
            blocks.append(
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{part.mime_type};base64,{part.data}"},
                }
            )
    return blocks


def _tool_choice(mode: ToolMode, allowed: list[str]) -> str | None:
    if mode is ToolMode.FORCED:
        return allowed[0] if len(allowed) == 1 else "required"
    if mode is ToolMode.ENCOURAGED:
        return "auto"
    return None


def _tool_invocations(message: Any) -> list[ToolInvocation]:
    invocations: list[ToolInvocation] = []
    for call in getattr(message, "tool_calls", None) or []:
        args = call.get("args") or {}
        invocations.append(
            ToolInvocation(
                name=str(call.get("name", "")),
                args=args if isinstance(args, dict) else {"raw": str(args)},
                call_id=str(call.get("id") or f"call_{uuid.uuid4().hex[:12]}"),
            )
        )
    return invocations


def _structured_to_text(result: Any) -> str:
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    if isinstance(result, dict):
        return json.dumps(result, ensure_ascii=False)
    return message_text(result)
