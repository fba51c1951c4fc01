"""In-memory semantic index used for local runs and tests."""

from __future__ import annotations

import re
from dataclasses import dataclass
from hashlib import blake2b
from math import sqrt

from study_tutor.errors import CollectionNotFoundError
from study_tutor.retrieval.index import IndexHit

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")
_PUNCTUATION = ".,;:!?()[]\"'"


def hashed_vector(text: str, dimension: int = 256) -> list[float]:
    """Unit-length hashed bag-of-words vector; no model call involved."""

    vector = [0.0] * dimension
    for token in text.lower().split():
        token = token.strip(_PUNCTUATION)
        if not token:
            continue
        digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
        vector[int.from_bytes(digest[:4], "little") % dimension] += 1.0

    norm = sqrt(sum(value * value for value in vector))
    return [value / norm for value in vector] if norm else vector


def _dot(a: list[float], b: list[float]) -> float:
    return sum(x * y for x, y in zip(a, b, strict=True))


@dataclass(slots=True)
class _StoredText:
    path: str
    page_index: int
    text: str
    vector: list[float]


class InMemorySemanticIndex:
    """Deterministic index keeping pages and sentence-window snippets per collection.

    It honours the same contract as the hosted index, including the distinct
    "collection not found" condition for users who never uploaded anything.
    Vectors are unit length, so the dot product is the cosine similarity.
    """

    def __init__(self, dimension: int = 256, snippet_sentences: int = 2) -> None:
        self._dimension = dimension
        self._snippet_sentences = snippet_sentences
        self._pages: dict[str, list[_StoredText]] = {}
        self._snippets: dict[str, list[_StoredText]] = {}

    def add_document(self, collection: str, doc_id: str, filename: str, pages: list[str]) -> None:
        """Index a document given as one string per page."""

        path = f"{doc_id}/{filename}"
        page_store = self._pages.setdefault(collection, [])
        snippet_store = self._snippets.setdefault(collection, [])
        for page_index, text in enumerate(pages):
            page_store.append(self._stored(path, page_index, text))
            snippet_store.extend(
                self._stored(path, page_index, window) for window in self._windows(text)
            )

    async def top_snippets(self, collection: str, query: str, k: int) -> list[IndexHit]:
        ranked = self._rank(self._snippets, collection, query, k)
        return [
            IndexHit(
                content=item.text,
                path=item.path,
                score=score,
                page_span=[item.page_index, item.page_index],
            )
            for item, score in ranked
        ]

    async def top_pages(self, collection: str, query: str, k: int) -> list[IndexHit]:
        ranked = self._rank(self._pages, collection, query, k)
        return [
            IndexHit(content=item.text, path=item.path, score=score, page_index=item.page_index)
            for item, score in ranked
        ]

    def _stored(self, path: str, page_index: int, text: str) -> _StoredText:
        return _StoredText(
            path=path,
            page_index=page_index,
            text=text,
            vector=hashed_vector(text, self._dimension),
        )

    def _rank(
        self,
        store: dict[str, list[_StoredText]],
        collection: str,
        query: str,
        k: int,
    ) -> list[tuple[_StoredText, float]]:
        if collection not in store:
            raise CollectionNotFoundError(collection)
        query_vector = hashed_vector(query, self._dimension)
        scored = [(item, _dot(query_vector, item.vector)) for item in store[collection]]
        scored = [(item, score) for item, score in scored if score > 0.0]
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored[:k]

    def _windows(self, text: str) -> list[str]:
        sentences = [s.strip() for s in _SENTENCE_SPLIT.split(text) if s.strip()]
        if not sentences:
            return []
        size = self._snippet_sentences
        return [" ".join(sentences[i : i + size]) for i in range(0, len(sentences), size)]
