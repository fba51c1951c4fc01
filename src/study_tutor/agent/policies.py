"""Agent policy records selected by the router."""

from __future__ import annotations

from dataclasses import dataclass

from study_tutor.agent.prompts import (
    ANSWERING_INSTRUCTION,
    EXPLANATION_INSTRUCTION,
    GENERAL_INSTRUCTION,
)
from study_tutor.config import AgentConfig, ModelConfig
from study_tutor.types import AgentType


@dataclass(frozen=True, slots=True)
class AgentPolicy:
    """Everything that distinguishes one specialized agent from another."""

    agent_type: AgentType
    system_instruction: str
    model: str
    temperature: float
    max_output_tokens: int
    tools_enabled: bool
    turn_ceiling: int
    search_first_when_flagged: bool = False


def build_policies(
    models: ModelConfig | None = None,
    config: AgentConfig | None = None,
) -> dict[str, AgentPolicy]:
    models = models or ModelConfig()
    config = config or AgentConfig()
    return {
        "question_answering": AgentPolicy(
            agent_type="question_answering",
            system_instruction=ANSWERING_INSTRUCTION,
            model=models.standard_model,
            temperature=0.3,
            max_output_tokens=2048,
            tools_enabled=True,
            turn_ceiling=config.answering_turn_ceiling,
        ),
        "explanation": AgentPolicy(
            agent_type="explanation",
            system_instruction=EXPLANATION_INSTRUCTION,
            model=models.strong_model,
            temperature=0.7,
            max_output_tokens=4096,
            tools_enabled=True,
            turn_ceiling=config.explanation_turn_ceiling,
            search_first_when_flagged=True,
        ),
        "general": AgentPolicy(
            agent_type="general",
            system_instruction=GENERAL_INSTRUCTION,
            model=models.light_model,
            temperature=0.5,
            max_output_tokens=2048,
            tools_enabled=False,
            turn_ceiling=1,
        ),
    }
