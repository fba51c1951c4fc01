"""Bounded tool-calling turn loop shared by the answering and explanation agents.

The loop is an explicit state struct advanced by two pure step functions,
`apply_model_response` and `apply_tool_result`; `run_turn_loop` drives them
against the reasoning service and the per-request tool registry until a final
text is produced or the turn ceiling is reached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum

from pydantic import ValidationError

from study_tutor.agent.registry import ToolOutput, ToolRegistry
from study_tutor.llm.reasoning import GenerationRequest, GenerationResponse, ReasoningService
from study_tutor.types import (
    ConversationTurn,
    DocumentSource,
    TextPart,
    ToolCallPart,
    ToolInvocation,
    ToolResponsePart,
)

logger = logging.getLogger(__name__)


class LoopPhase(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOL = "executing_tool"
    DONE = "done"


@dataclass(slots=True)
class TurnLoopState:
    conversation: list[ConversationTurn]
    turns_used: int = 0
    phase: LoopPhase = LoopPhase.AWAITING_MODEL
    pending_call: ToolInvocation | None = None
    final_text: str | None = None
    used_documents: bool = False
    document_sources: list[DocumentSource] = field(default_factory=list)


@dataclass(slots=True)
class TurnLoopResult:
    text: str
    turns_used: int
    used_documents: bool
    document_sources: list[DocumentSource]
    exhausted: bool
    conversation: list[ConversationTurn]


def apply_model_response(state: TurnLoopState, response: GenerationResponse) -> TurnLoopState:
    """Consume one model response: queue its first tool call, or finish with its text."""

    if state.phase is not LoopPhase.AWAITING_MODEL:
        raise ValueError(f"Cannot apply a model response in phase {state.phase.value}")

    if response.tool_invocations:
        call = response.tool_invocations[0]
        if len(response.tool_invocations) > 1:
            logger.info(
                "Model requested %d tool calls, executing only %s",
                len(response.tool_invocations),
                call.name,
            )
        turn = ConversationTurn(
            role="model",
            parts=[ToolCallPart(name=call.name, args=dict(call.args), call_id=call.call_id)],
        )
        return replace(
            state,
            conversation=[*state.conversation, turn],
            turns_used=state.turns_used + 1,
            phase=LoopPhase.EXECUTING_TOOL,
            pending_call=call,
        )

    return replace(
        state,
        turns_used=state.turns_used + 1,
        phase=LoopPhase.DONE,
        final_text=response.text,
    )


def apply_tool_result(state: TurnLoopState, output: ToolOutput) -> TurnLoopState:
    """Append the tool response turn and fold in any search provenance."""

    call = state.pending_call
    if state.phase is not LoopPhase.EXECUTING_TOOL or call is None:
        raise ValueError("No pending tool call to resolve")

    turn = ConversationTurn(
        role="tool",
        parts=[ToolResponsePart(name=call.name, response=output.response, call_id=call.call_id)],
    )
    used_documents = state.used_documents
    sources = list(state.document_sources)
    if output.search is not None:
        used_documents = used_documents or output.search.used_documents
        sources.extend(output.search.document_sources)

    return replace(
        state,
        conversation=[*state.conversation, turn],
        phase=LoopPhase.AWAITING_MODEL,
        pending_call=None,
        used_documents=used_documents,
        document_sources=sources,
    )


async def dispatch_tool(registry: ToolRegistry, call: ToolInvocation) -> ToolOutput:
    """Execute a tool call, answering unknown tools and bad arguments with an error payload."""

    if not registry.has(call.name):
        logger.warning("Model requested unsupported tool %s", call.name)
        return ToolOutput(response={"error": f"Function {call.name} not implemented."})
    try:
        return await registry.execute(call.name, call.args)
    except ValidationError as exc:
        problems = "; ".join(str(error["msg"]) for error in exc.errors())
        logger.warning("Invalid arguments for %s: %s", call.name, problems)
        return ToolOutput(response={"error": f"Invalid arguments for {call.name}: {problems}"})


async def run_turn_loop(
    reasoning: ReasoningService,
    template: GenerationRequest,
    registry: ToolRegistry,
    *,
    ceiling: int,
    fallback_text: str,
) -> TurnLoopResult:
    """Alternate model calls and tool executions for at most `ceiling` model turns."""

    state = TurnLoopState(conversation=list(template.contents))
    while state.phase is not LoopPhase.DONE and state.turns_used < ceiling:
        response = await reasoning.generate(replace(template, contents=list(state.conversation)))
        state = apply_model_response(state, response)
        if state.phase is LoopPhase.EXECUTING_TOOL and state.pending_call is not None:
            logger.info(
                "Turn %d: model requested %s(%s)",
                state.turns_used,
                state.pending_call.name,
                state.pending_call.args,
            )
            output = await dispatch_tool(registry, state.pending_call)
            state = apply_tool_result(state, output)

    text = (state.final_text or "").strip()
    exhausted = not text
    if exhausted:
        logger.warning(
            "Turn loop ended after %d/%d turns without final text, using fallback",
            state.turns_used,
            ceiling,
        )
        text = fallback_text

    conversation = state.conversation
    if not exhausted:
        conversation = [*conversation, ConversationTurn(role="model", parts=[TextPart(text)])]

    return TurnLoopResult(
        text=text,
        turns_used=state.turns_used,
        used_documents=state.used_documents,
        document_sources=state.document_sources,
        exhausted=exhausted,
        conversation=conversation,
    )
