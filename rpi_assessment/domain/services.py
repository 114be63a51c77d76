from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from ..infrastructure.exceptions import IncompleteDataError, InvalidAnswerError
from .models import (
    AssessmentResult,
    QuestionBank,
    QuestionItem,
    RecommendationBlock,
    ScaleMeta,
)

RECOMMENDATION_THRESHOLD = 4.0
QUALIFYING_ITEMS = 2
FALLBACK_ITEMS = 1


def round2(value: float) -> float:
    """Round half-up to two decimals."""
    return float(Decimal(repr(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def clamp_answer(value: object, scale: ScaleMeta, question_id: str | None = None) -> int:
    """Return ``value`` as an int if it is a whole number on the scale, else raise."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidAnswerError(value, scale.min, scale.max, question_id)
    if isinstance(value, float) and not value.is_integer():
        raise InvalidAnswerError(value, scale.min, scale.max, question_id)
    if not scale.contains(int(value)):
        raise InvalidAnswerError(value, scale.min, scale.max, question_id)
    return int(value)


def item_contribution(item: QuestionItem, answer: int, scale: ScaleMeta) -> int:
    """Map a raw answer onto the dimension axis; reverse items mirror around the midpoint."""
    if item.direction == "reverse":
        return scale.midpoint_sum - answer
    return answer


def item_weight(item: QuestionItem) -> float:
    return 1.0 if item.weight is None else float(item.weight)


@dataclass
class ScoringOutcome:
    result: AssessmentResult | None
    missing: list[str] = field(default_factory=list)
    invalid: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.result is not None

    @property
    def error(self) -> IncompleteDataError | None:
        if self.result is not None:
            return None
        return IncompleteDataError(self.missing, self.invalid)


class ScoringService:
    """Turns an answer set into dimension scores, an overall score and recommendations.

    Pure computation: no I/O, and nothing is cached between calls, so a result
    always reflects the answers passed in.
    """

    def __init__(
        self,
        logger: logging.Logger | None = None,
        threshold: float = RECOMMENDATION_THRESHOLD,
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.threshold = threshold

    def evaluate(
        self,
        answers: Mapping[str, object],
        bank: QuestionBank,
        items: Iterable[QuestionItem] | None = None,
    ) -> ScoringOutcome:
        """
        Score ``answers`` against ``bank``.

        - ``items`` is the active question set (defaults to the whole bank).
        - Every non-check item needs an on-scale answer, otherwise the outcome
          carries no result and lists the offending question ids.
        """
        active = list(items) if items is not None else list(bank.items)
        scale = bank.scale

        missing: list[str] = []
        invalid: list[str] = []
        accepted: dict[str, int] = {}
        for item in active:
            if not item.is_scored:
                continue
            if item.id not in answers or answers[item.id] is None:
                missing.append(item.id)
                continue
            try:
                accepted[item.id] = clamp_answer(answers[item.id], scale, item.id)
            except InvalidAnswerError:
                invalid.append(item.id)

        if missing or invalid:
            self.logger.warning(
                "Assessment not complete. Missing answers for questions: %s; out of range: %s",
                missing,
                invalid,
            )
            return ScoringOutcome(result=None, missing=missing, invalid=invalid)

        sums: dict[str, float] = {d.id: 0.0 for d in bank.dimensions}
        weights: dict[str, float] = {d.id: 0.0 for d in bank.dimensions}
        for item in active:
            if item.id not in accepted:
                continue
            w = item_weight(item)
            sums[item.dimension] = sums.get(item.dimension, 0.0) + (
                item_contribution(item, accepted[item.id], scale) * w
            )
            weights[item.dimension] = weights.get(item.dimension, 0.0) + w

        normalized: dict[str, float] = {}
        weighted_total = 0.0
        weight_total = 0.0
        for dim in bank.dimensions:
            answered_weight = weights.get(dim.id, 0.0)
            if answered_weight > 0:
                normalized[dim.id] = round2(sums[dim.id] / answered_weight)
                weighted_total += normalized[dim.id] * dim.default_weight
                weight_total += dim.default_weight
            else:
                normalized[dim.id] = 0.0

        overall = round2(weighted_total / weight_total) if weight_total > 0 else 0.0

        result = AssessmentResult(
            dimensions=normalized,
            overall=overall,
            recommendations=self.rank_recommendations(normalized, bank),
        )
        self.logger.debug(
            "Computed assessment result: %d dimensions, overall %.2f",
            len(normalized),
            overall,
        )
        return ScoringOutcome(result=result)

    def compute_result(
        self,
        answers: Mapping[str, object],
        bank: QuestionBank,
        items: Iterable[QuestionItem] | None = None,
    ) -> AssessmentResult | None:
        return self.evaluate(answers, bank, items).result

    def rank_recommendations(
        self, scores: Mapping[str, float], bank: QuestionBank
    ) -> list[RecommendationBlock]:
        """
        Build recommendation blocks, highest-scoring dimension first.

        - Each dimension at or above the threshold gets its first two catalog entries.
        - If no dimension qualifies, the single top dimension gets its first entry.
        """
        # sorted() is stable, so ties keep bank order
        ranked = sorted(scores.items(), key=lambda kv: kv[1], reverse=True)
        blocks: list[RecommendationBlock] = []

        for dim_id, score in ranked:
            dim = bank.dimension(dim_id)
            if dim is None:
                continue
            if score >= self.threshold:
                catalog = bank.recommendations.get(dim_id, ())
                blocks.append(
                    RecommendationBlock(dim_id, dim.name, score, list(catalog[:QUALIFYING_ITEMS]))
                )

        if not blocks and ranked:
            dim_id, score = ranked[0]
            dim = bank.dimension(dim_id)
            if dim is not None:
                catalog = bank.recommendations.get(dim_id, ())
                blocks.append(
                    RecommendationBlock(dim_id, dim.name, score, list(catalog[:FALLBACK_ITEMS]))
                )

        return blocks


def compute_result(
    answers: Mapping[str, object], bank: QuestionBank
) -> AssessmentResult | None:
    """Module-level shortcut for ``ScoringService().compute_result``."""
    return ScoringService().compute_result(answers, bank)
