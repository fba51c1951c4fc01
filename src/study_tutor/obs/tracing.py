"""Request tracing and aggregate chat metrics."""

from __future__ import annotations

import re
import time
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone

from study_tutor.types import AgentResult, ToolTrace

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)


@dataclass(slots=True)
class TraceRecord:
    trace_id: str
    timestamp_utc: str
    user_id: str
    question: str
    answer: str
    agent_type: str
    detected_language: str | None
    used_documents: bool
    source_count: int
    turns_used: int
    tool_traces: list[ToolTrace]
    input_tokens: int
    output_tokens: int
    latency_ms: float
    success: bool = True
    error: str | None = None


class TraceStore:
    """In-memory trace storage for API-level observability.

    Bounded to the most recent `capacity` records.
    """

    def __init__(self, capacity: int = 1000) -> None:
        self._records: dict[str, TraceRecord] = {}
        self._capacity = capacity

    def record_result(
        self,
        *,
        user_id: str,
        question: str,
        result: AgentResult,
        latency_ms: float,
    ) -> TraceRecord:
        return self._store(
            TraceRecord(
                trace_id=str(uuid.uuid4()),
                timestamp_utc=datetime.now(timezone.utc).isoformat(),
                user_id=user_id,
                question=question,
                answer=result.response_text,
                agent_type=result.agent_type,
                detected_language=result.detected_language,
                used_documents=result.used_documents,
                source_count=len(result.document_sources),
                turns_used=result.turns_used,
                tool_traces=list(result.tool_traces),
                input_tokens=estimate_token_count(question),
                output_tokens=estimate_token_count(result.response_text),
                latency_ms=latency_ms,
            )
        )

    def record_failure(
        self,
        *,
        user_id: str,
        question: str,
        error: str,
        latency_ms: float,
    ) -> TraceRecord:
        return self._store(
            TraceRecord(
                trace_id=str(uuid.uuid4()),
                timestamp_utc=datetime.now(timezone.utc).isoformat(),
                user_id=user_id,
                question=question,
                answer="",
                agent_type="none",
                detected_language=None,
                used_documents=False,
                source_count=0,
                turns_used=0,
                tool_traces=[],
                input_tokens=estimate_token_count(question),
                output_tokens=0,
                latency_ms=latency_ms,
                success=False,
                error=error,
            )
        )

    def get(self, trace_id: str) -> TraceRecord:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[TraceRecord]:
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, object]:
        """Aggregate core metrics for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "failed_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "document_usage_rate": 0.0,
                "avg_turns_used": 0.0,
                "requests_by_agent": {},
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        succeeded = [record for record in records if record.success]
        with_documents = sum(1 for record in succeeded if record.used_documents)

        return {
            "total_requests": total,
            "failed_requests": total - len(succeeded),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "document_usage_rate": with_documents / len(succeeded) if succeeded else 0.0,
            "avg_turns_used": (
                sum(record.turns_used for record in succeeded) / len(succeeded) if succeeded else 0.0
            ),
            "requests_by_agent": dict(Counter(record.agent_type for record in succeeded)),
        }

    def __len__(self) -> int:
        return len(self._records)

    def _store(self, record: TraceRecord) -> TraceRecord:
        self._records[record.trace_id] = record
        while len(self._records) > self._capacity:
            oldest = next(iter(self._records))
            del self._records[oldest]
        return record


class Timer:
    """Simple context timer used by the chat service."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
