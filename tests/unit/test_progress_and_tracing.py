import pytest

from study_tutor.obs.progress import StatusEvent, emit_status
from study_tutor.obs.tracing import TraceStore, estimate_token_count
from study_tutor.types import AgentResult, DocumentSource


def _result(agent_type: str = "question_answering", used_documents: bool = True) -> AgentResult:
    return AgentResult(
        response_text="Osmosis is diffusion of water.",
        used_documents=used_documents,
        document_sources=[DocumentSource("a.pdf", "d1", 3, False)] if used_documents else [],
        agent_type=agent_type,
        detected_language="english",
        turns_used=2,
    )


def test_emit_status_builds_status_events() -> None:
    events: list[StatusEvent] = []

    emit_status(events.append, "router_selected", "Selected explanation agent.", agentType="explanation")

    (event,) = events
    assert event.type == "status_update"
    assert event.payload == {
        "step": "router_selected",
        "message": "Selected explanation agent.",
        "agentType": "explanation",
    }


def test_failing_sink_never_raises() -> None:
    def sink(event: StatusEvent) -> None:
        raise RuntimeError("client went away")

    emit_status(sink, "routing", "Routing request...")
    emit_status(None, "routing", "Routing request...")


def test_trace_store_records_and_summarizes() -> None:
    store = TraceStore()
    ok = store.record_result(user_id="u1", question="define osmosis", result=_result(), latency_ms=40.0)
    store.record_result(
        user_id="u1", question="thanks", result=_result("general", False), latency_ms=20.0
    )
    store.record_failure(user_id="u2", question="why?", error="boom", latency_ms=90.0)

    assert store.get(ok.trace_id).source_count == 1
    assert ok.input_tokens == 2
    summary = store.summary()
    assert summary["total_requests"] == 3
    assert summary["failed_requests"] == 1
    assert summary["avg_latency_ms"] == pytest.approx(50.0)
    assert summary["document_usage_rate"] == pytest.approx(0.5)
    assert summary["avg_turns_used"] == pytest.approx(2.0)
    assert summary["requests_by_agent"] == {"question_answering": 1, "general": 1}


def test_trace_store_evicts_oldest_and_reports_unknown_ids() -> None:
    store = TraceStore(capacity=2)
    first = store.record_failure(user_id="u", question="a", error="x", latency_ms=1.0)
    store.record_failure(user_id="u", question="b", error="x", latency_ms=1.0)
    store.record_failure(user_id="u", question="c", error="x", latency_ms=1.0)

    assert len(store) == 2
    assert [record.question for record in store.list_recent()] == ["b", "c"]
    with pytest.raises(KeyError):
        store.get(first.trace_id)


def test_empty_summary() -> None:
    assert TraceStore().summary()["total_requests"] == 0


def test_estimate_token_count() -> None:
    assert estimate_token_count("What is osmosis?") == 4
