"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from time import perf_counter
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from study_tutor.types import ToolTrace

if TYPE_CHECKING:
    from study_tutor.retrieval.escalation import SearchOutcome


@dataclass(slots=True)
class ToolOutput:
    """Payload returned to the model plus the search outcome that produced it."""

    response: dict[str, Any]
    search: SearchOutcome | None = None


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation.

    A spec without a handler is a pure declaration: the reasoning service sees
    its schema, but it cannot be executed locally (the router's `select_agent`).
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[BaseModel], Awaitable[ToolOutput]] | None = None
    tags: list[str] = Field(default_factory=list)

    def parameters(self) -> dict[str, Any]:
        schema = self.args_schema.model_json_schema()
        schema.pop("title", None)
        return schema

    def as_openai_tool(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters(),
            },
        }

    async def invoke(self, payload: dict[str, Any]) -> ToolOutput:
        if self.handler is None:
            raise KeyError(f"Tool has no handler: {self.name}")
        data = self.args_schema.model_validate(payload)
        return await self.handler(data)


class ToolRegistry:
    """Stores tool specs and dispatches validated invocations."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}
        self._observer: Callable[[ToolTrace], None] | None = None

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def set_observer(self, observer: Callable[[ToolTrace], None] | None) -> None:
        """Set an optional callback invoked after each tool execution."""
        self._observer = observer

    def has(self, name: str) -> bool:
        spec = self._tools.get(name)
        return spec is not None and spec.handler is not None

    async def execute(self, name: str, payload: dict[str, Any]) -> ToolOutput:
        spec = self._tools.get(name)
        if spec is None:
            raise KeyError(f"Unknown tool: {name}")
        return await self._execute_spec(spec, payload)

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    async def _execute_spec(self, spec: ToolSpec, payload: dict[str, Any]) -> ToolOutput:
        start = perf_counter()
        output = await spec.invoke(payload)
        latency_ms = (perf_counter() - start) * 1000.0

        if self._observer is not None:
            self._observer(
                ToolTrace(
                    name=spec.name,
                    input_payload=payload,
                    output_preview=json.dumps(output.response, ensure_ascii=False)[:320],
                    latency_ms=latency_ms,
                )
            )
        return output
