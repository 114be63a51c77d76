from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Literal

Direction = Literal["positive", "reverse", "check"]
LicenseType = Literal["self", "partner", "all"]

MODES: tuple[str, ...] = ("self", "partner")


@dataclass(slots=True, frozen=True)
class Dimension:
    id: str
    name: str
    default_weight: float = 1.0


@dataclass(slots=True, frozen=True)
class ScaleMeta:
    min: int = 1
    max: int = 7
    type: str = "likert"
    anchors: dict[str, str] = field(default_factory=dict)

    @property
    def midpoint_sum(self) -> int:
        return self.min + self.max

    def contains(self, value: int) -> bool:
        return self.min <= value <= self.max


@dataclass(slots=True, frozen=True)
class QuestionItem:
    id: str
    dimension: str
    direction: Direction
    text: dict[str, str]
    weight: float | None = 1.0
    sub_dimension: str | None = None
    expected_value: int | None = None  # attention checks only

    @property
    def is_scored(self) -> bool:
        return self.direction != "check"

    def text_for(self, mode: str) -> str:
        return self.text.get(mode) or self.text.get("self", "")


@dataclass(slots=True, frozen=True)
class Recommendation:
    id: str
    title: str
    detail: str = ""
    action_steps: tuple[str, ...] = ()
    caution: str = ""


@dataclass(slots=True, frozen=True)
class QuestionBank:
    bank_id: str
    title: str
    version: str
    scale: ScaleMeta
    dimensions: tuple[Dimension, ...]
    items: tuple[QuestionItem, ...]
    recommendations: dict[str, tuple[Recommendation, ...]] = field(default_factory=dict)
    locale: str = "en"
    time_window: str = ""

    def dimension(self, dimension_id: str) -> Dimension | None:
        for d in self.dimensions:
            if d.id == dimension_id:
                return d
        return None

    def item(self, question_id: str) -> QuestionItem | None:
        for q in self.items:
            if q.id == question_id:
                return q
        return None

    def scored_items(self) -> list[QuestionItem]:
        return [q for q in self.items if q.is_scored]


@dataclass(slots=True)
class RecommendationBlock:
    dimension_id: str
    dimension: str  # display name
    score: float
    items: list[Recommendation]


@dataclass(slots=True)
class AssessmentResult:
    dimensions: dict[str, float]
    overall: float
    recommendations: list[RecommendationBlock]


@dataclass(slots=True)
class BoundDevice:
    device_id: str
    bound_at: datetime


class KeyState(str, Enum):
    UNACTIVATED = "unactivated"
    EXPIRED = "expired"
    ACTIVE_BOUND = "active_bound"
    ACTIVE_OPEN = "active_open"
    ACTIVE_FULL = "active_full"


@dataclass(slots=True)
class LicenseKey:
    key: str
    valid_days: int
    max_devices: int
    created_at: datetime
    type: LicenseType = "all"
    used_devices: list[BoundDevice] = field(default_factory=list)
    activated_at: datetime | None = None
    expiry_date: datetime | None = None

    @property
    def is_activated(self) -> bool:
        return self.activated_at is not None

    def is_expired(self, now: datetime) -> bool:
        return self.expiry_date is not None and self.expiry_date < now

    def is_bound(self, device_id: str) -> bool:
        return any(d.device_id == device_id for d in self.used_devices)

    def is_full(self) -> bool:
        return len(self.used_devices) >= self.max_devices

    def state_for(self, device_id: str | None, now: datetime) -> KeyState:
        """Classify the key for a verification attempt by ``device_id``.

        Expiry wins over any device-binding state. Without a device id the key
        reports ACTIVE_FULL when its quota is used up and ACTIVE_OPEN otherwise.
        """
        if not self.is_activated:
            return KeyState.UNACTIVATED
        if self.is_expired(now):
            return KeyState.EXPIRED
        if device_id is not None and self.is_bound(device_id):
            return KeyState.ACTIVE_BOUND
        if self.is_full():
            return KeyState.ACTIVE_FULL
        return KeyState.ACTIVE_OPEN


@dataclass(slots=True, frozen=True)
class VerificationResult:
    success: bool
    message: str
    state: KeyState | None = None
