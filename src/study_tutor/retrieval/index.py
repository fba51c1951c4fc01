"""Semantic index contract and the ZeroEntropy HTTP adapter."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from study_tutor.errors import CollectionNotFoundError, IndexUnavailableError
from study_tutor.types import Passage

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class IndexHit:
    """A raw index result before provenance decoding."""

    content: str
    path: str
    score: float
    page_span: list[int] | None = None
    page_index: int | None = None


class SemanticIndex(Protocol):
    """Read-only semantic search over a caller's document collection.

    Implementations raise `CollectionNotFoundError` when the collection does
    not exist and `IndexUnavailableError` for every other failure.
    """

    async def top_snippets(self, collection: str, query: str, k: int) -> list[IndexHit]:
        """Return the top-k short passages."""

    async def top_pages(self, collection: str, query: str, k: int) -> list[IndexHit]:
        """Return the top-k full pages."""


def document_title_from_path(path: str | None) -> tuple[str, str | None]:
    """Decode `<docId>/<filename>` index paths into (title, document id)."""

    if not path:
        return "Unknown Document", None
    parts = path.split("/")
    if len(parts) > 1:
        return parts[-1], parts[-2]
    return parts[0], None


def snippet_to_passage(hit: IndexHit) -> Passage:
    title, doc_id = document_title_from_path(hit.path)
    page = hit.page_span[0] + 1 if hit.page_span else None
    return Passage(
        text=hit.content,
        document_title=title,
        document_id=doc_id,
        page_number=page,
        relevance_score=hit.score,
    )


def page_to_passage(hit: IndexHit) -> Passage:
    title, doc_id = document_title_from_path(hit.path)
    page = hit.page_index + 1 if hit.page_index is not None else None
    return Passage(
        text=hit.content,
        document_title=title,
        document_id=doc_id,
        page_number=page,
        relevance_score=hit.score,
    )


class ZeroEntropyIndex:
    """Async client for the ZeroEntropy query API.

    The underlying `httpx.AsyncClient` is created by `start()` (or lazily on
    first use) and should be closed with `close()` at shutdown.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.zeroentropy.dev/v1",
        timeout_seconds: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    async def start(self) -> None:
        if self._http is not None:
            return
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers={"Authorization": f"Bearer {self._api_key}"},
            transport=self._transport,
        )
        logger.info("ZeroEntropyIndex started, base_url=%s", self._base_url)

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def top_snippets(self, collection: str, query: str, k: int) -> list[IndexHit]:
        payload = {
            "collection_name": collection,
            "query": query,
            "k": k,
            "precise_responses": False,
        }
        data = await self._post("/queries/top-snippets", payload, collection)
        return [
            IndexHit(
                content=str(item.get("content") or ""),
                path=str(item.get("path") or ""),
                score=float(item.get("score") or 0.0),
                page_span=item.get("page_span") or None,
            )
            for item in data.get("results", [])
        ]

    async def top_pages(self, collection: str, query: str, k: int) -> list[IndexHit]:
        payload = {
            "collection_name": collection,
            "query": query,
            "k": k,
            "include_content": True,
        }
        data = await self._post("/queries/top-pages", payload, collection)
        return [
            IndexHit(
                content=str(item.get("content") or ""),
                path=str(item.get("path") or ""),
                score=float(item.get("score") or 0.0),
                page_index=item.get("page_index"),
            )
            for item in data.get("results", [])
        ]

    async def _post(self, endpoint: str, payload: dict[str, Any], collection: str) -> dict[str, Any]:
        if self._http is None:
            await self.start()
        assert self._http is not None

        try:
            resp = await self._http.post(endpoint, json=payload)
        except httpx.HTTPError as exc:
            raise IndexUnavailableError(f"ZeroEntropy request to {endpoint} failed: {exc}") from exc

        if resp.status_code >= 400:
            detail = resp.text
            if resp.status_code == 404 and "collection" in detail.lower():
                logger.info(
                    "Collection %s not found, the user has probably not uploaded any documents yet",
                    collection,
                )
                raise CollectionNotFoundError(collection)
            raise IndexUnavailableError(
                f"ZeroEntropy {endpoint} returned {resp.status_code}: {detail[:200]}",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise IndexUnavailableError(f"ZeroEntropy {endpoint} returned invalid JSON") from exc

        logger.info("ZeroEntropy %s responded with %d results", endpoint, len(data.get("results", [])))
        return data
