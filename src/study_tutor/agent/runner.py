"""Runs the specialized agent chosen by the router."""

from __future__ import annotations

import logging

from study_tutor.agent.policies import AgentPolicy, build_policies
from study_tutor.agent.prompts import SEARCH_FIRST_DIRECTIVE, language_directive
from study_tutor.agent.tools import build_agent_tools
from study_tutor.agent.turn_loop import run_turn_loop
from study_tutor.config import AgentConfig
from study_tutor.llm.reasoning import GenerationRequest, ReasoningService, ToolMode
from study_tutor.obs.progress import ProgressSink
from study_tutor.retrieval.escalation import DocumentSearchPipeline
from study_tutor.types import AgentResult, ConversationTurn, RouterDecision, ToolTrace

logger = logging.getLogger(__name__)


def shape_instruction(policy: AgentPolicy, decision: RouterDecision) -> tuple[str, ToolMode]:
    """Apply the language and search-first directives to a policy's instruction."""

    instruction = policy.system_instruction
    tool_mode = ToolMode.AUTO if policy.tools_enabled else ToolMode.NONE

    directive = language_directive(decision.detected_language)
    if directive:
        instruction = f"{instruction}\n\n{directive}"

    if policy.search_first_when_flagged and decision.likely_needs_documents:
        instruction = f"{instruction}\n\n{SEARCH_FIRST_DIRECTIVE}"
        tool_mode = ToolMode.ENCOURAGED

    return instruction, tool_mode


class AgentRunner:
    """Executes one agent policy for a routed request."""

    def __init__(
        self,
        reasoning: ReasoningService,
        pipeline: DocumentSearchPipeline,
        *,
        policies: dict[str, AgentPolicy] | None = None,
        config: AgentConfig | None = None,
    ) -> None:
        self.reasoning = reasoning
        self.pipeline = pipeline
        self.config = config or AgentConfig()
        self.policies = policies or build_policies(config=self.config)

    def policy_for(self, agent_type: str) -> AgentPolicy:
        return self.policies.get(agent_type) or self.policies["general"]

    async def run(
        self,
        decision: RouterDecision,
        history: list[ConversationTurn],
        user_turn: ConversationTurn,
        *,
        user_id: str,
        progress: ProgressSink | None = None,
    ) -> AgentResult:
        policy = self.policy_for(decision.agent_type)
        instruction, tool_mode = shape_instruction(policy, decision)
        if language_directive(decision.detected_language):
            logger.info("Instructing %s agent to respond in %s", policy.agent_type, decision.detected_language)
        if tool_mode is ToolMode.ENCOURAGED:
            logger.info("Router flagged documents as needed, enforcing search for %s agent", policy.agent_type)

        conversation = [*history, user_turn]
        if not policy.tools_enabled:
            return await self._run_single(policy, decision, instruction, conversation)

        registry = build_agent_tools(self.pipeline, user_id=user_id, progress=progress)
        traces: list[ToolTrace] = []
        registry.set_observer(traces.append)
        template = GenerationRequest(
            model=policy.model,
            system_instruction=instruction,
            contents=conversation,
            temperature=policy.temperature,
            max_output_tokens=policy.max_output_tokens,
            tools=registry.specs(),
            tool_mode=tool_mode,
        )
        try:
            result = await run_turn_loop(
                self.reasoning,
                template,
                registry,
                ceiling=policy.turn_ceiling,
                fallback_text=self.config.fallback_text,
            )
        finally:
            registry.set_observer(None)

        return AgentResult(
            response_text=result.text,
            used_documents=result.used_documents,
            document_sources=result.document_sources,
            agent_type=policy.agent_type,
            detected_language=decision.detected_language,
            agent_reasoning=decision.reasoning,
            turns_used=result.turns_used,
            tool_traces=traces,
        )

    async def _run_single(
        self,
        policy: AgentPolicy,
        decision: RouterDecision,
        instruction: str,
        conversation: list[ConversationTurn],
    ) -> AgentResult:
        response = await self.reasoning.generate(
            GenerationRequest(
                model=policy.model,
                system_instruction=instruction,
                contents=conversation,
                temperature=policy.temperature,
                max_output_tokens=policy.max_output_tokens,
                tool_mode=ToolMode.NONE,
            )
        )
        if response.tool_invocations:
            logger.info("%s agent returned tool calls, ignoring them", policy.agent_type)

        text = response.text.strip()
        if not text:
            logger.warning("%s agent returned an empty response", policy.agent_type)
            text = self.config.empty_response_text

        return AgentResult(
            response_text=text,
            used_documents=False,
            document_sources=[],
            agent_type=policy.agent_type,
            detected_language=decision.detected_language,
            agent_reasoning=decision.reasoning,
            turns_used=1,
        )
