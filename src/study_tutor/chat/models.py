"""Wire models for chat requests and caller-facing results."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from study_tutor.types import AgentResult


class CamelModel(BaseModel):
    """Accepts camelCase or snake_case input and serializes camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MediaAttachment(CamelModel):
    type: str = "image"
    data: str = ""
    mime_type: str | None = None


class HistoryEntry(CamelModel):
    sender: str
    content: str | None = None
    media_content: list[MediaAttachment] = Field(default_factory=list)


class ChatRequest(CamelModel):
    prompt: str | None = None
    history: list[HistoryEntry] = Field(default_factory=list)
    media_content: list[MediaAttachment] = Field(default_factory=list)


class SourcePayload(CamelModel):
    title: str
    doc_id: str | None = None
    page: int | None = None
    used_top_pages: bool = False


class ChatData(CamelModel):
    response: str
    used_documents: bool
    document_sources: list[SourcePayload] = Field(default_factory=list)
    agent_type: str
    detected_language: str | None = None
    agent_reasoning: str = ""

    @classmethod
    def from_result(cls, result: AgentResult) -> "ChatData":
        return cls(
            response=result.response_text,
            used_documents=result.used_documents,
            document_sources=[
                SourcePayload(
                    title=source.title,
                    doc_id=source.doc_id,
                    page=source.page,
                    used_top_pages=source.used_top_pages,
                )
                for source in result.document_sources
            ],
            agent_type=result.agent_type,
            detected_language=result.detected_language,
            agent_reasoning=result.agent_reasoning,
        )


class ChatResponse(CamelModel):
    success: bool
    data: ChatData | None = None
    error: str | None = None
    trace_id: str | None = None
