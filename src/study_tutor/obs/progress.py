"""Best-effort incremental status events."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class StatusEvent(BaseModel):
    type: Literal["status_update"] = "status_update"
    payload: dict[str, Any] = Field(default_factory=dict)


ProgressSink = Callable[[StatusEvent], None]


def emit_status(sink: ProgressSink | None, step: str, message: str, **extra: Any) -> None:
    """Deliver a status event; delivery failures are logged and never raised."""

    if sink is None:
        return
    event = StatusEvent(payload={"step": step, "message": message, **extra})
    try:
        sink(event)
    except Exception:
        logger.warning("Progress sink rejected %s event", step, exc_info=True)
