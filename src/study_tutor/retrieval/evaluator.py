"""LLM-judged quality evaluation of retrieved passages."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict

from pydantic import ValidationError

from study_tutor.llm.reasoning import GenerationRequest, ReasoningService, ToolMode
from study_tutor.types import ConversationTurn, Evaluation, Passage, TextPart

logger = logging.getLogger(__name__)

EVALUATOR_INSTRUCTION = """
You are a search quality evaluator. Decide whether the retrieved passages are
enough to answer the student's query, or whether fetching the full pages would
produce a materially better answer.

Return a JSON object with the fields `quality`, `relevance_type`,
`needs_more_context` and `reasoning`.

1. `relevance_type`
   - "relevant": the passages directly address the core subject of the query.
   - "partially_relevant": only some passages match, or only one aspect of a
     multi-part query is covered.
   - "completely_irrelevant": none of the passages address the main subject.

2. `quality`
   - "high": the passages are directly sufficient to answer, clear, little noise.
   - "medium": relevant but brief, shallow, or only a partial answer.
   - "low": largely unusable, superficial, or off-topic.

3. `needs_more_context` (this field decides whether the search escalates)
   - true when the passages are too short or fragmented for a full answer, even
     at "medium" quality, or when the query asks for depth they lack (for
     example "explain how X works" or "compare A and B"). In short: true
     whenever reading the full pages would significantly improve the answer.
   - false when the passages, as they are, answer the specific query.

4. `reasoning`
   - A short justification, especially for `needs_more_context`, referring to
     the query and the passages.
""".strip()

CONSERVATIVE_EVALUATION = Evaluation(
    quality="low",
    relevance_type="completely_irrelevant",
    needs_more_context=True,
    reasoning="Error occurred during evaluation",
)


class QualityEvaluator:
    """Judges passages with a single low-temperature, schema-constrained call."""

    def __init__(
        self,
        reasoning: ReasoningService,
        *,
        model: str,
        temperature: float = 0.1,
        max_output_tokens: int = 512,
    ) -> None:
        self.reasoning = reasoning
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    async def evaluate(self, query: str, passages: list[Passage]) -> Evaluation:
        """Return a verdict, falling back to the most conservative one on any failure."""

        prompt = (
            f'Student query: "{query}"\n\n'
            "Retrieved passages:\n"
            f"{json.dumps([asdict(p) for p in passages], ensure_ascii=False, indent=2)}"
        )
        request = GenerationRequest(
            model=self.model,
            system_instruction=EVALUATOR_INSTRUCTION,
            contents=[ConversationTurn(role="user", parts=[TextPart(prompt)])],
            temperature=self.temperature,
            max_output_tokens=self.max_output_tokens,
            tool_mode=ToolMode.NONE,
            response_schema=Evaluation,
        )
        try:
            response = await self.reasoning.generate(request)
            evaluation = Evaluation.model_validate_json(response.text)
        except (ValidationError, ValueError) as exc:
            logger.error("Search quality evaluation returned malformed output: %s", exc)
            return CONSERVATIVE_EVALUATION.model_copy()
        except Exception:
            logger.exception("Search quality evaluation failed")
            return CONSERVATIVE_EVALUATION.model_copy()

        logger.info(
            "Evaluation: quality=%s relevance=%s needs_more_context=%s",
            evaluation.quality,
            evaluation.relevance_type,
            evaluation.needs_more_context,
        )
        return evaluation
