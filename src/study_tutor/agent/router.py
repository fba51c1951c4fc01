"""Single-shot router selecting the specialized agent for a request."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from study_tutor.agent.prompts import ROUTER_INSTRUCTION
from study_tutor.agent.tools import SELECT_AGENT, SELECT_AGENT_TOOL, SelectAgentInput
from study_tutor.llm.reasoning import (
    GenerationRequest,
    GenerationResponse,
    ReasoningService,
    ToolMode,
)
from study_tutor.types import ConversationTurn, RouterDecision

logger = logging.getLogger(__name__)


class AgentRouter:
    """Classifies a conversation with one forced `select_agent` call.

    Any unusable output (no call, another tool, invalid arguments) falls back
    to the general agent; only transport errors propagate.
    """

    def __init__(
        self,
        reasoning: ReasoningService,
        *,
        model: str,
        temperature: float = 0.1,
        max_output_tokens: int = 1024,
    ) -> None:
        self.reasoning = reasoning
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    async def route(
        self,
        history: list[ConversationTurn],
        user_turn: ConversationTurn,
    ) -> RouterDecision:
        request = GenerationRequest(
            model=self.model,
            system_instruction=ROUTER_INSTRUCTION,
            contents=[*history, user_turn],
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
            tools=[SELECT_AGENT_TOOL],
            tool_mode=ToolMode.FORCED,
            allowed_tools=[SELECT_AGENT],
        )
        response = await self.reasoning.generate(request)
        decision = parse_router_response(response)
        logger.info(
            "Router selected %s (language=%s, needs_documents=%s): %s",
            decision.agent_type,
            decision.detected_language,
            decision.likely_needs_documents,
            decision.reasoning,
        )
        return decision


def parse_router_response(response: GenerationResponse) -> RouterDecision:
    """Turn a router response into a decision, defaulting to the general agent."""

    if not response.tool_invocations:
        logger.warning("Router did not make a function call, defaulting to general agent")
        return RouterDecision()

    call = response.tool_invocations[0]
    if call.name != SELECT_AGENT:
        logger.warning("Router called %s instead of %s, defaulting to general agent", call.name, SELECT_AGENT)
        return RouterDecision()

    try:
        args = SelectAgentInput.model_validate(call.args)
    except ValidationError as exc:
        logger.warning("Router returned invalid select_agent arguments (%s), defaulting to general agent", exc)
        return RouterDecision()

    language = (args.detected_language or "").strip() or None
    return RouterDecision(
        agent_type=args.agent_type,
        reasoning=args.reasoning or "No reasoning provided",
        detected_language=language,
        likely_needs_documents=bool(args.likely_needs_documents),
    )
