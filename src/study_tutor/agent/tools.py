"""Tool declarations offered to the reasoning service."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from pydantic import BaseModel, Field

from study_tutor.agent.registry import ToolOutput, ToolRegistry, ToolSpec
from study_tutor.obs.progress import ProgressSink, emit_status
from study_tutor.retrieval.escalation import DocumentSearchPipeline
from study_tutor.types import AgentType, DetailLevel

SEARCH_DOCUMENTS = "search_documents"
SELECT_AGENT = "select_agent"


class SearchDocumentsInput(BaseModel):
    query: str = Field(
        min_length=1,
        description="The search query to find relevant information in course materials",
    )
    detail_level: DetailLevel = Field(
        default="moderate",
        description="The level of detail desired in the search results",
    )


class SelectAgentInput(BaseModel):
    agent_type: AgentType = Field(
        description="The type of agent that should handle this request"
    )
    reasoning: str = Field(
        default="",
        description="Explanation for why this agent was selected",
    )
    detected_language: str | None = Field(
        default=None,
        description=(
            "The language of the conversation in English (e.g. 'english', 'italian'); "
            "omit when uncertain"
        ),
    )
    likely_needs_documents: bool | None = Field(
        default=False,
        description="Whether the question likely requires searching course materials",
    )


SELECT_AGENT_TOOL = ToolSpec(
    name=SELECT_AGENT,
    description="Select the appropriate specialized agent based on the user request",
    args_schema=SelectAgentInput,
    tags=["routing"],
)


def search_documents_spec(
    handler: Callable[[SearchDocumentsInput], Awaitable[ToolOutput]] | None = None,
) -> ToolSpec:
    return ToolSpec(
        name=SEARCH_DOCUMENTS,
        description=(
            "Search for information in the student's course materials to answer "
            "their question or enhance explanations"
        ),
        args_schema=SearchDocumentsInput,
        handler=handler,
        tags=["retrieval", "rag"],
    )


def build_agent_tools(
    pipeline: DocumentSearchPipeline,
    *,
    user_id: str,
    progress: ProgressSink | None = None,
) -> ToolRegistry:
    """Build the per-request tool registry bound to one caller."""

    async def _search(input_data: SearchDocumentsInput) -> ToolOutput:
        emit_status(
            progress,
            "searching_documents",
            f'Searching for: "{input_data.query}"...',
        )
        outcome = await pipeline.search(input_data.query, user_id, input_data.detail_level)
        result = (
            "found relevant documents" if outcome.used_documents else "no relevant documents found"
        )
        emit_status(progress, "search_complete", f"Search finished: {result}.")
        return ToolOutput(response=outcome.tool_response(), search=outcome)

    registry = ToolRegistry()
    registry.register(search_documents_spec(_search))
    return registry
