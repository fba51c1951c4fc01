"""Progressive document search: snippets, then full pages, then give up."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from study_tutor.config import RetrievalConfig
from study_tutor.errors import CollectionNotFoundError
from study_tutor.retrieval.collections import CollectionResolver
from study_tutor.retrieval.evaluator import QualityEvaluator
from study_tutor.retrieval.index import SemanticIndex, page_to_passage, snippet_to_passage
from study_tutor.types import (
    DocumentSource,
    Evaluation,
    Passage,
    SearchAttempt,
    SearchMethod,
)

logger = logging.getLogger(__name__)

NO_COLLECTION_MESSAGE = (
    "No document collection found – it seems you have not uploaded any study material yet."
)
NO_RESULTS_MESSAGE = "No relevant information found in your course materials."


@dataclass(slots=True)
class SearchOutcome:
    """Result of one `search_documents` invocation."""

    used_documents: bool = False
    used_top_pages: bool = False
    document_sources: list[DocumentSource] = field(default_factory=list)
    search_method: SearchMethod = "none"
    passages: list[Passage] = field(default_factory=list)
    message: str = NO_RESULTS_MESSAGE
    attempts: list[SearchAttempt] = field(default_factory=list)
    collection_found: bool = True

    def tool_response(self) -> dict[str, Any]:
        """Render the payload handed back to the model as the tool response."""

        if not self.used_documents or not self.passages:
            return {"snippets": [], "message": self.message, "search_method": "none"}

        snippets = [
            {
                "snippet_id": index,
                "document_title": passage.document_title,
                "document_id": passage.document_id,
                "page_number": passage.page_number,
                "text": passage.text,
                "relevance_score": passage.relevance_score,
                "search_method": self.search_method,
            }
            for index, passage in enumerate(self.passages, start=1)
        ]
        unit = "pages" if self.used_top_pages else "passages"
        return {
            "snippets": snippets,
            "message": f"Found {len(snippets)} relevant {unit} in your course materials.",
            "search_method": self.search_method,
        }


def accepts_snippets(evaluation: Evaluation) -> bool:
    return evaluation.quality == "high" or (
        evaluation.quality == "medium" and not evaluation.needs_more_context
    )


def accepts_pages(evaluation: Evaluation) -> bool:
    return evaluation.quality in ("high", "medium")


def _sources(passages: list[Passage], *, used_top_pages: bool) -> list[DocumentSource]:
    return [
        DocumentSource(
            title=passage.document_title,
            doc_id=passage.document_id,
            page=passage.page_number,
            used_top_pages=used_top_pages,
        )
        for passage in passages
    ]


class DocumentSearchPipeline:
    """Escalates from cheap snippet search to full-page search under an LLM judge.

    At most one index query is issued per stage:

    1. snippets: accepted on a `high` verdict, or `medium` without a need
       for more context;
    2. pages: attempted whenever stage 1 did not accept (including a
       `completely_irrelevant` snippet verdict), accepted on `high`/`medium`;
    3. exhausted: nothing accepted, a normal "no relevant information" result.

    A missing collection stops the search immediately. Index transport errors
    propagate to the caller.
    """

    def __init__(
        self,
        index: SemanticIndex,
        evaluator: QualityEvaluator,
        resolver: CollectionResolver,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.index = index
        self.evaluator = evaluator
        self.resolver = resolver
        self.config = config or RetrievalConfig()

    async def search(
        self,
        query: str,
        user_id: str,
        detail_level: str | None = None,
    ) -> SearchOutcome:
        logger.info("Starting document search for query: %r", query)
        collection = await self._resolve_collection(user_id)
        attempts: list[SearchAttempt] = []

        # Stage 1: snippets
        snippet_attempt = SearchAttempt(stage="snippets", query=query, collection_id=collection)
        attempts.append(snippet_attempt)
        try:
            hits = await self.index.top_snippets(collection, query, self.config.snippets_count)
        except CollectionNotFoundError:
            logger.info("User %s has no document collection yet, skipping search", user_id)
            return SearchOutcome(
                message=NO_COLLECTION_MESSAGE, attempts=attempts, collection_found=False
            )

        snippet_attempt.results = [snippet_to_passage(hit) for hit in hits]
        if snippet_attempt.results:
            evaluation = await self.evaluator.evaluate(query, snippet_attempt.results)
            snippet_attempt.evaluation = evaluation
            if accepts_snippets(evaluation):
                logger.info("Accepted %d snippets for %r", len(snippet_attempt.results), query)
                return SearchOutcome(
                    used_documents=True,
                    used_top_pages=False,
                    document_sources=_sources(snippet_attempt.results, used_top_pages=False),
                    search_method="snippets",
                    passages=snippet_attempt.results,
                    attempts=attempts,
                )
            if evaluation.relevance_type == "completely_irrelevant":
                logger.info("Snippets completely irrelevant, still trying full pages")
            else:
                logger.info("Snippets insufficient (%s), escalating to full pages", evaluation.quality)
        else:
            logger.info("No snippets returned, escalating to full pages")

        # Stage 2: pages
        pages_count = self.config.pages_for(detail_level)
        page_attempt = SearchAttempt(stage="pages", query=query, collection_id=collection)
        attempts.append(page_attempt)
        try:
            hits = await self.index.top_pages(collection, query, pages_count)
        except CollectionNotFoundError:
            logger.info("User %s has no document collection yet, skipping page search", user_id)
            return SearchOutcome(
                message=NO_COLLECTION_MESSAGE, attempts=attempts, collection_found=False
            )

        page_attempt.results = [page_to_passage(hit) for hit in hits]
        if page_attempt.results:
            evaluation = await self.evaluator.evaluate(query, page_attempt.results)
            page_attempt.evaluation = evaluation
            logger.info("Page evaluation reasoning: %s", evaluation.reasoning)
            if accepts_pages(evaluation):
                logger.info("Accepted %d pages for %r", len(page_attempt.results), query)
                return SearchOutcome(
                    used_documents=True,
                    used_top_pages=True,
                    document_sources=_sources(page_attempt.results, used_top_pages=True),
                    search_method="top_pages",
                    passages=page_attempt.results,
                    attempts=attempts,
                )

        # Stage 3: exhausted
        logger.info("No relevant documents found for %r", query)
        attempts.append(SearchAttempt(stage="exhausted", query=query, collection_id=collection))
        return SearchOutcome(message=NO_RESULTS_MESSAGE, attempts=attempts)

    async def _resolve_collection(self, user_id: str) -> str:
        try:
            return await self.resolver.resolve(user_id)
        except Exception:
            logger.exception("Collection lookup failed for %s, defaulting to the user id", user_id)
            return user_id
