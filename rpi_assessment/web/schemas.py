from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class StoreWriteResponse(BaseModel):
    success: bool
    error: Optional[str] = None


class ExportWriteResponse(BaseModel):
    success: bool
    path: Optional[str] = None
    error: Optional[str] = None


class BatchRequest(BaseModel):
    count: int
    valid_days: Optional[int] = Field(default=None, alias="validDays")
    max_devices: Optional[int] = Field(default=None, alias="maxDevices")
    type: str = "all"

    model_config = {"populate_by_name": True}


class LicenseView(BaseModel):
    key: str
    validDays: int
    maxDevices: int
    usedDevices: list[dict[str, Any]] = Field(default_factory=list)
    createdAt: str
    activatedAt: Optional[str] = None
    expiryDate: Optional[str] = None
    type: Literal["self", "partner", "all"] = "all"
    status: str


class BatchResponse(BaseModel):
    success: bool
    keys: list[LicenseView] = Field(default_factory=list)
    error: Optional[str] = None
    errors: list[dict[str, Any]] = Field(default_factory=list)


class VerificationResponse(BaseModel):
    success: bool
    message: str
    state: Optional[str] = None


class DeleteResponse(BaseModel):
    success: bool
    removed: bool
    pool_size: int


class ScoreRequest(BaseModel):
    answers: dict[str, Any] = Field(default_factory=dict)


class RecommendationItem(BaseModel):
    id: str
    title: str
    detail: str = ""
    action_steps: list[str] = Field(default_factory=list)
    caution: str = ""


class RecommendationBlockView(BaseModel):
    dimension_id: str
    dimension: str
    score: float
    items: list[RecommendationItem]


class AssessmentResultView(BaseModel):
    dimensions: dict[str, float]
    overall: float
    recommendations: list[RecommendationBlockView]


class ScoreResponse(BaseModel):
    complete: bool
    result: Optional[AssessmentResultView] = None
    missing: list[str] = Field(default_factory=list)
    invalid: list[str] = Field(default_factory=list)
    message: Optional[str] = None


class DimensionView(BaseModel):
    id: str
    name: str
    default_weight: float


class QuestionView(BaseModel):
    id: str
    dimension: str
    direction: str
    text: str


class BankResponse(BaseModel):
    bank_id: str
    title: str
    version: str
    mode: Literal["self", "partner"]
    scale: dict[str, Any]
    dimensions: list[DimensionView]
    items: list[QuestionView]
