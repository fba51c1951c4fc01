"""Shared pytest fixtures and scripted fakes for study tutor tests.

Provides:
- ``ScriptedReasoningService``: replays queued responses per call kind
  (router, agent, evaluator) and records every request
- ``RecordingIndex``: semantic index returning canned hits and counting calls
- helpers building router, tool-call and evaluator responses
"""

from __future__ import annotations

from typing import Any

import pytest

from study_tutor.agent.tools import SELECT_AGENT
from study_tutor.errors import CollectionNotFoundError
from study_tutor.llm.reasoning import GenerationRequest, GenerationResponse
from study_tutor.retrieval.collections import MappingCollectionResolver
from study_tutor.retrieval.escalation import DocumentSearchPipeline
from study_tutor.retrieval.evaluator import QualityEvaluator
from study_tutor.retrieval.index import IndexHit
from study_tutor.types import Evaluation, ToolInvocation

Scripted = GenerationResponse | Exception


class ScriptedReasoningService:
    """Reasoning service fake with one response queue per call kind."""

    def __init__(
        self,
        *,
        router: list[Scripted] | None = None,
        agent: list[Scripted] | None = None,
        evaluator: list[Scripted] | None = None,
        agent_default: GenerationResponse | None = None,
    ) -> None:
        self.queues: dict[str, list[Scripted]] = {
            "router": list(router or []),
            "agent": list(agent or []),
            "evaluator": list(evaluator or []),
        }
        self.agent_default = agent_default
        self.requests: list[GenerationRequest] = []

    @staticmethod
    def kind_of(request: GenerationRequest) -> str:
        if request.response_schema is not None:
            return "evaluator"
        if SELECT_AGENT in request.allowed_tools:
            return "router"
        return "agent"

    def requests_of(self, kind: str) -> list[GenerationRequest]:
        return [request for request in self.requests if self.kind_of(request) == kind]

    async def generate(self, request: GenerationRequest) -> GenerationResponse:
        self.requests.append(request)
        kind = self.kind_of(request)
        queue = self.queues[kind]
        if not queue:
            if kind == "agent" and self.agent_default is not None:
                return self.agent_default
            raise AssertionError(f"No scripted {kind} response left")
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class RecordingIndex:
    """Semantic index fake returning canned hits."""

    def __init__(
        self,
        *,
        snippets: list[IndexHit] | None = None,
        pages: list[IndexHit] | None = None,
        missing: bool = False,
        error: Exception | None = None,
    ) -> None:
        self.snippets = list(snippets or [])
        self.pages = list(pages or [])
        self.missing = missing
        self.error = error
        self.snippet_calls: list[tuple[str, str, int]] = []
        self.page_calls: list[tuple[str, str, int]] = []

    async def top_snippets(self, collection: str, query: str, k: int) -> list[IndexHit]:
        self.snippet_calls.append((collection, query, k))
        return self._answer(collection, self.snippets)

    async def top_pages(self, collection: str, query: str, k: int) -> list[IndexHit]:
        self.page_calls.append((collection, query, k))
        return self._answer(collection, self.pages)

    def _answer(self, collection: str, hits: list[IndexHit]) -> list[IndexHit]:
        if self.missing:
            raise CollectionNotFoundError(collection)
        if self.error is not None:
            raise self.error
        return list(hits)


def router_reply(agent_type: str, **args: Any) -> GenerationResponse:
    return GenerationResponse(
        tool_invocations=[
            ToolInvocation(
                name=SELECT_AGENT,
                args={"agent_type": agent_type, **args},
                call_id="route-1",
            )
        ]
    )


def tool_call(name: str, args: dict[str, Any], call_id: str = "call-1") -> GenerationResponse:
    return GenerationResponse(tool_invocations=[ToolInvocation(name=name, args=args, call_id=call_id)])


def search_call(query: str, call_id: str = "call-1", **args: Any) -> GenerationResponse:
    return tool_call("search_documents", {"query": query, **args}, call_id=call_id)


def verdict(
    quality: str,
    relevance_type: str = "relevant",
    needs_more_context: bool = False,
) -> GenerationResponse:
    return GenerationResponse(
        text=Evaluation(
            quality=quality,
            relevance_type=relevance_type,
            needs_more_context=needs_more_context,
            reasoning="scripted",
        ).model_dump_json()
    )


def text_reply(text: str) -> GenerationResponse:
    return GenerationResponse(text=text)


def make_pipeline(
    reasoning: ScriptedReasoningService,
    index: RecordingIndex,
) -> DocumentSearchPipeline:
    return DocumentSearchPipeline(
        index,
        QualityEvaluator(reasoning, model="evaluator-test"),
        MappingCollectionResolver(),
    )


@pytest.fixture
def osmosis_snippets() -> list[IndexHit]:
    """Three high-relevance snippets from one biology handout."""
    return [
        IndexHit(
            content="Osmosis is the diffusion of water across a semipermeable membrane.",
            path="bio-101/cell_transport.pdf",
            score=0.92,
            page_span=[2, 2],
        ),
        IndexHit(
            content="Water moves from low solute concentration to high solute concentration.",
            path="bio-101/cell_transport.pdf",
            score=0.88,
            page_span=[2, 3],
        ),
        IndexHit(
            content="Osmotic pressure is the pressure needed to stop osmosis.",
            path="bio-101/cell_transport.pdf",
            score=0.81,
            page_span=[4, 4],
        ),
    ]


@pytest.fixture
def thermo_pages() -> list[IndexHit]:
    """Full pages from a thermodynamics chapter."""
    return [
        IndexHit(
            content="Chapter 4. Starting from the first law, dU = dQ - dW ...",
            path="phys-202/thermodynamics.pdf",
            score=0.77,
            page_index=41,
        ),
        IndexHit(
            content="Substituting dW = p dV into the first law yields ...",
            path="phys-202/thermodynamics.pdf",
            score=0.71,
            page_index=42,
        ),
    ]
