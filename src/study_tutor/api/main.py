"""FastAPI entrypoint for chat, trace and metrics endpoints."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import StreamingResponse

from study_tutor.agent.policies import build_policies
from study_tutor.agent.router import AgentRouter
from study_tutor.agent.runner import AgentRunner
from study_tutor.chat.models import ChatRequest, ChatResponse
from study_tutor.chat.service import TutorChatService, validate_request
from study_tutor.config import AgentConfig, ModelConfig, RetrievalConfig, TutorSettings
from study_tutor.errors import InvalidChatRequestError
from study_tutor.llm.reasoning import LangChainReasoningService, openai_chat_model_factory
from study_tutor.obs.progress import StatusEvent
from study_tutor.obs.tracing import TraceStore
from study_tutor.retrieval.collections import MappingCollectionResolver
from study_tutor.retrieval.escalation import DocumentSearchPipeline
from study_tutor.retrieval.evaluator import QualityEvaluator
from study_tutor.retrieval.index import SemanticIndex, ZeroEntropyIndex
from study_tutor.retrieval.memory_index import InMemorySemanticIndex

logger = logging.getLogger(__name__)

DISCONNECT_POLL_SECONDS = 0.5


def build_index(settings: TutorSettings) -> SemanticIndex:
    if settings.index_backend == "memory":
        logger.warning("Using the empty in-memory index, document search will find no collections")
        return InMemorySemanticIndex()
    return ZeroEntropyIndex(
        api_key=settings.zeroentropy_api_key,
        base_url=settings.zeroentropy_base_url,
        timeout_seconds=settings.request_timeout_seconds,
    )


def build_service(
    settings: TutorSettings,
    *,
    index: SemanticIndex,
    trace_store: TraceStore,
    models: ModelConfig | None = None,
) -> TutorChatService:
    """Wire the reasoning service, retrieval pipeline and agents from settings."""

    models = models or ModelConfig()
    agent_config = AgentConfig()
    reasoning = LangChainReasoningService(
        openai_chat_model_factory(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout_seconds=settings.request_timeout_seconds,
        ),
        timeout_seconds=settings.request_timeout_seconds,
    )
    pipeline = DocumentSearchPipeline(
        index,
        QualityEvaluator(reasoning, model=models.evaluator_model),
        MappingCollectionResolver(settings.collection_overrides),
        RetrievalConfig(),
    )
    return TutorChatService(
        AgentRouter(reasoning, model=models.router_model),
        AgentRunner(
            reasoning,
            pipeline,
            policies=build_policies(models, agent_config),
            config=agent_config,
        ),
        trace_store=trace_store,
    )


def _dump(response: ChatResponse) -> dict[str, Any]:
    return response.model_dump(by_alias=True)


async def respond_until_disconnect(
    request: Request,
    service: TutorChatService,
    body: ChatRequest,
    *,
    user_id: str,
    poll_seconds: float = DISCONNECT_POLL_SECONDS,
) -> ChatResponse | None:
    """Answer a request, cancelling the work if the client goes away first.

    Returns None when the client disconnected before the answer was ready.
    """

    task = asyncio.create_task(service.respond(body, user_id=user_id))
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_seconds)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info("Client disconnected, cancelling chat request for %s", user_id)
                return None
    finally:
        if not task.done():
            task.cancel()


def create_app(
    service: TutorChatService | None = None,
    trace_store: TraceStore | None = None,
) -> FastAPI:
    """Build the API; without a service one is assembled from settings at startup."""

    traces = trace_store
    if traces is None and service is not None:
        traces = service.trace_store
    if traces is None:
        traces = TraceStore()
    index_backend = "injected" if service is not None else None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if service is not None:
            app.state.service = service
            yield
            return

        settings = TutorSettings()
        logging.basicConfig(
            level=settings.log_level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        settings.require_credentials()
        index = build_index(settings)
        if isinstance(index, ZeroEntropyIndex):
            await index.start()
        app.state.index_backend = settings.index_backend
        app.state.service = build_service(settings, index=index, trace_store=traces)
        logger.info("Study tutor ready (index backend: %s)", settings.index_backend)
        try:
            yield
        finally:
            if isinstance(index, ZeroEntropyIndex):
                await index.close()

    app = FastAPI(title="Study Tutor", version="0.1.0", lifespan=lifespan)
    app.state.index_backend = index_backend

    def _require_user(user_id: str | None) -> str:
        if not user_id:
            raise HTTPException(status_code=401, detail="Authentication required")
        return user_id

    @app.get("/health")
    def health(request: Request) -> dict[str, Any]:
        return {
            "status": "ok",
            "index_backend": request.app.state.index_backend,
            "trace_count": len(traces),
        }

    @app.post("/chat")
    async def chat(
        body: ChatRequest,
        request: Request,
        x_user_id: str | None = Header(default=None),
    ) -> dict[str, Any]:
        user_id = _require_user(x_user_id)
        chat_service: TutorChatService = request.app.state.service
        try:
            response = await respond_until_disconnect(
                request, chat_service, body, user_id=user_id
            )
        except InvalidChatRequestError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if response is None:
            raise HTTPException(status_code=499, detail="Client disconnected")
        return _dump(response)

    @app.post("/chat/stream")
    async def chat_stream(
        body: ChatRequest,
        request: Request,
        x_user_id: str | None = Header(default=None),
    ) -> StreamingResponse:
        user_id = _require_user(x_user_id)
        chat_service: TutorChatService = request.app.state.service
        try:
            validate_request(body)
        except InvalidChatRequestError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        queue: asyncio.Queue[StatusEvent] = asyncio.Queue()

        async def events() -> AsyncIterator[str]:
            task = asyncio.create_task(
                chat_service.respond(body, user_id=user_id, progress=queue.put_nowait)
            )
            getter: asyncio.Future[StatusEvent] | None = None
            try:
                while True:
                    getter = asyncio.ensure_future(queue.get())
                    done, _ = await asyncio.wait(
                        {getter, task}, return_when=asyncio.FIRST_COMPLETED
                    )
                    if getter in done:
                        yield json.dumps(getter.result().model_dump()) + "\n"
                        continue
                    getter.cancel()
                    break
                while not queue.empty():
                    yield json.dumps(queue.get_nowait().model_dump()) + "\n"
                result = {"type": "result", "payload": _dump(task.result())}
                yield json.dumps(result) + "\n"
            finally:
                if getter is not None and not getter.done():
                    getter.cancel()
                if not task.done():
                    logger.info("Client disconnected, cancelling chat request for %s", user_id)
                    task.cancel()

        return StreamingResponse(events(), media_type="application/x-ndjson")

    @app.get("/traces")
    def list_traces(limit: int = 20) -> dict[str, Any]:
        return {"items": [asdict(record) for record in traces.list_recent(limit=limit)]}

    @app.get("/traces/{trace_id}")
    def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = traces.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return traces.summary()

    return app
