from __future__ import annotations

import math
import random
from datetime import datetime, timezone

from ..infrastructure.exceptions import ValidationError
from ..infrastructure.logging import get_logger
from .models import MODES, AssessmentResult, QuestionBank, QuestionItem
from .services import ScoringOutcome, ScoringService, clamp_answer

logger = get_logger(__name__)


class AssessmentSession:
    """One user's pass through the question bank.

    ``start_assessment`` shuffles the questions once; the order then stays
    fixed until the next start. Results are recomputed on every call.
    """

    def __init__(
        self,
        bank: QuestionBank,
        rng: random.Random | None = None,
        scoring: ScoringService | None = None,
    ):
        self.bank = bank
        self.rng = rng or random.Random()
        self.scoring = scoring or ScoringService()
        self.answers: dict[str, int] = {}
        self.mode: str = "self"
        self.current_index = 0
        self.started_at: datetime | None = None
        self.finished_at: datetime | None = None
        self._order: list[QuestionItem] = []

    @property
    def questions(self) -> list[QuestionItem]:
        return list(self._order) if self._order else list(self.bank.items)

    def start_assessment(self, mode: str) -> None:
        if mode not in MODES:
            raise ValidationError("mode", f"must be one of {', '.join(MODES)}", mode)
        self.mode = mode
        self.answers = {}
        self.current_index = 0
        self.started_at = datetime.now(timezone.utc)
        self.finished_at = None
        order = list(self.bank.items)
        self.rng.shuffle(order)
        self._order = order
        logger.info("Assessment started in %s mode with %d questions", mode, len(order))

    def finish_assessment(self) -> None:
        self.finished_at = datetime.now(timezone.utc)

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def set_answer(self, question_id: str, value: object) -> None:
        if self.bank.item(question_id) is None:
            raise ValidationError("question_id", "unknown question", question_id)
        self.answers[question_id] = clamp_answer(value, self.bank.scale, question_id)

    @property
    def current_question(self) -> QuestionItem | None:
        questions = self.questions
        if not questions:
            return None
        if 0 <= self.current_index < len(questions):
            return questions[self.current_index]
        return questions[0]

    @property
    def current_text(self) -> str:
        question = self.current_question
        return question.text_for(self.mode) if question else ""

    def next_question(self) -> None:
        if self.current_index < len(self.questions) - 1:
            self.current_index += 1

    def prev_question(self) -> None:
        if self.current_index > 0:
            self.current_index -= 1

    @property
    def progress(self) -> int:
        total = len(self.questions)
        if total == 0:
            return 0
        return math.floor(100 * self.current_index / total + 0.5)

    @property
    def missing_question_ids(self) -> list[str]:
        return [q.id for q in self.questions if q.is_scored and q.id not in self.answers]

    @property
    def is_complete(self) -> bool:
        return bool(self.questions) and not self.missing_question_ids

    def evaluate(self) -> ScoringOutcome:
        return self.scoring.evaluate(self.answers, self.bank, self.questions)

    def results(self) -> AssessmentResult | None:
        return self.evaluate().result
