"""Chat orchestration: format, route, run the selected agent."""

from __future__ import annotations

import logging

from study_tutor.agent.router import AgentRouter
from study_tutor.agent.runner import AgentRunner
from study_tutor.chat.formatter import build_user_turn, format_history
from study_tutor.chat.models import ChatData, ChatRequest, ChatResponse
from study_tutor.errors import InvalidChatRequestError, TutorError
from study_tutor.obs.progress import ProgressSink, emit_status
from study_tutor.obs.tracing import Timer, TraceStore
from study_tutor.types import AgentResult

logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_TYPES = ("image/png", "image/jpeg", "image/webp", "image/heic")

_PROCESSING_MESSAGES = {
    "question_answering": "Processing your question...",
    "explanation": "Preparing explanation...",
    "general": "Generating response...",
}


def validate_request(request: ChatRequest) -> None:
    """Reject requests with nothing to answer or with unsupported image types."""

    has_prompt = bool(request.prompt and request.prompt.strip())
    has_image = any(media.type == "image" and media.data for media in request.media_content)
    if not has_prompt and not has_image:
        raise InvalidChatRequestError(
            "Missing required field: a prompt or media content with image data is required."
        )

    for media in request.media_content:
        if (
            media.type == "image"
            and media.mime_type
            and media.mime_type.lower() not in SUPPORTED_IMAGE_TYPES
        ):
            raise InvalidChatRequestError(
                f"Unsupported image type: {media.mime_type}. Please use PNG, JPEG, WEBP, or HEIC."
            )


class TutorChatService:
    """Answers one chat request end to end.

    Invalid requests raise `InvalidChatRequestError`. Any other `TutorError`
    raised while answering is logged and returned as a failed `ChatResponse`;
    it never reaches the caller as an exception.
    """

    def __init__(
        self,
        router: AgentRouter,
        runner: AgentRunner,
        *,
        trace_store: TraceStore | None = None,
    ) -> None:
        self.router = router
        self.runner = runner
        self.trace_store = trace_store

    async def respond(
        self,
        request: ChatRequest,
        *,
        user_id: str,
        progress: ProgressSink | None = None,
    ) -> ChatResponse:
        if not user_id:
            raise InvalidChatRequestError("Authentication required")
        validate_request(request)

        logger.info("Processing chat request for user %s", user_id)
        if request.media_content:
            logger.info("Request includes %d media items", len(request.media_content))

        question = request.prompt or ""
        result: AgentResult | None = None
        error: str | None = None
        with Timer() as timer:
            try:
                result = await self._answer(request, user_id=user_id, progress=progress)
            except TutorError as exc:
                logger.exception("Error generating chat response for user %s", user_id)
                error = f"Failed to generate response: {exc}"

        if result is None:
            trace_id = None
            if self.trace_store is not None:
                trace_id = self.trace_store.record_failure(
                    user_id=user_id,
                    question=question,
                    error=error or "",
                    latency_ms=timer.elapsed_ms,
                ).trace_id
            return ChatResponse(success=False, error=error, trace_id=trace_id)

        trace_id = None
        if self.trace_store is not None:
            trace_id = self.trace_store.record_result(
                user_id=user_id,
                question=question,
                result=result,
                latency_ms=timer.elapsed_ms,
            ).trace_id
        return ChatResponse(success=True, data=ChatData.from_result(result), trace_id=trace_id)

    async def _answer(
        self,
        request: ChatRequest,
        *,
        user_id: str,
        progress: ProgressSink | None,
    ) -> AgentResult:
        emit_status(progress, "routing", "Routing request...")

        history = format_history(request.history)
        decision = await self.router.route(
            history, build_user_turn(request.prompt, request.media_content)
        )
        emit_status(
            progress,
            "router_selected",
            f"Selected {decision.agent_type} agent.",
            agentType=decision.agent_type,
            reasoning=decision.reasoning,
            detectedLanguage=decision.detected_language,
            likelyNeedsDocuments=decision.likely_needs_documents,
        )

        emit_status(progress, "agent_processing", _PROCESSING_MESSAGES[decision.agent_type])
        user_turn = build_user_turn(
            request.prompt, request.media_content, language=decision.detected_language
        )
        return await self.runner.run(
            decision,
            history,
            user_turn,
            user_id=user_id,
            progress=progress,
        )
