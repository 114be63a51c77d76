from __future__ import annotations

import os

# Quiet logging before the application modules configure it on import.
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, timedelta, timezone

import pytest

from rpi_assessment.domain.models import (
    Dimension,
    QuestionBank,
    QuestionItem,
    Recommendation,
    ScaleMeta,
)
from rpi_assessment.infrastructure.config import reset_settings
from rpi_assessment.infrastructure.kv import MemoryKeyValueStore
from rpi_assessment.infrastructure.store import BlobLicenseStore

T0 = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that tests can move forward."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_item(qid, dimension, direction="positive", weight=1.0, text=None):
    return QuestionItem(
        id=qid,
        dimension=dimension,
        direction=direction,
        text=text or {"self": f"self {qid}", "partner": f"partner {qid}"},
        weight=weight,
    )


def make_recs(prefix: str, n: int = 3) -> tuple[Recommendation, ...]:
    return tuple(
        Recommendation(id=f"{prefix}_r{i}", title=f"{prefix} tip {i}", action_steps=("step",))
        for i in range(1, n + 1)
    )


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def two_dim_bank() -> QuestionBank:
    return QuestionBank(
        bank_id="test",
        title="Test bank",
        version="1",
        scale=ScaleMeta(min=1, max=7),
        dimensions=(Dimension("a", "Alpha", 1.0), Dimension("b", "Beta", 1.0)),
        items=(
            make_item("q1", "a"),
            make_item("q2", "b", direction="reverse"),
            make_item("q3", "a", direction="check", weight=0),
        ),
        recommendations={"a": make_recs("a"), "b": make_recs("b")},
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def kv() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def store(kv: MemoryKeyValueStore) -> BlobLicenseStore:
    return BlobLicenseStore(kv)
