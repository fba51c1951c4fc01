"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union

from pydantic import BaseModel, Field

Role = Literal["user", "model", "tool"]
AgentType = Literal["question_answering", "explanation", "general"]
DetailLevel = Literal["basic", "moderate", "comprehensive"]
SearchStage = Literal["snippets", "pages", "exhausted"]
SearchMethod = Literal["snippets", "top_pages", "none"]


@dataclass(slots=True)
class TextPart:
    text: str


@dataclass(slots=True)
class MediaPart:
    mime_type: str
    data: str


@dataclass(slots=True)
class ToolCallPart:
    name: str
    args: dict[str, Any]
    call_id: str


@dataclass(slots=True)
class ToolResponsePart:
    name: str
    response: dict[str, Any]
    call_id: str


Part = Union[TextPart, MediaPart, ToolCallPart, ToolResponsePart]


@dataclass(slots=True)
class ConversationTurn:
    """One role-tagged message sent to the reasoning service."""

    role: Role
    parts: list[Part]

    def __post_init__(self) -> None:
        if not self.parts:
            raise ValueError(f"ConversationTurn(role={self.role!r}) requires at least one part")

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))


@dataclass(slots=True)
class ToolInvocation:
    """A tool call requested by the reasoning service."""

    name: str
    args: dict[str, Any]
    call_id: str


@dataclass(slots=True)
class Passage:
    """A retrieved unit of text with its document provenance."""

    text: str
    document_title: str
    document_id: str | None
    page_number: int | None
    relevance_score: float


class Evaluation(BaseModel):
    """Verdict on whether retrieved passages are good enough to answer a query."""

    quality: Literal["high", "medium", "low"] = Field(
        description="The quality rating of the search results"
    )
    relevance_type: Literal["relevant", "partially_relevant", "completely_irrelevant"] = Field(
        description="The type of relevance of the results to the query"
    )
    needs_more_context: bool = Field(
        description="Whether more context is needed to provide a complete answer"
    )
    reasoning: str = Field(
        default="",
        description="Explanation for the quality assessment and context decision",
    )


@dataclass(slots=True)
class SearchAttempt:
    """One escalation step of a document search."""

    stage: SearchStage
    query: str
    collection_id: str
    results: list[Passage] = field(default_factory=list)
    evaluation: Evaluation | None = None


@dataclass(slots=True)
class DocumentSource:
    title: str
    doc_id: str | None
    page: int | None
    used_top_pages: bool


@dataclass(slots=True)
class RouterDecision:
    agent_type: AgentType = "general"
    reasoning: str = "Default agent selection"
    detected_language: str | None = None
    likely_needs_documents: bool = False


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float


@dataclass(slots=True)
class AgentResult:
    """Final output of one chat request."""

    response_text: str
    used_documents: bool
    document_sources: list[DocumentSource]
    agent_type: AgentType
    detected_language: str | None
    agent_reasoning: str = ""
    turns_used: int = 0
    tool_traces: list[ToolTrace] = field(default_factory=list)
