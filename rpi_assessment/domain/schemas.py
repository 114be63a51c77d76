"""
Pydantic schemas for validating the question bank, license records and inputs.

The license schemas mirror the JSON wire format shared with the key store
(camelCase field names, ISO-8601 timestamps, unset optionals omitted).
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from .models import (
    BoundDevice,
    Dimension,
    LicenseKey,
    QuestionBank,
    QuestionItem,
    Recommendation,
    ScaleMeta,
)


class BaseValidationSchema(BaseModel):
    """Base schema for user-supplied input."""

    model_config = {"str_strip_whitespace": True, "validate_assignment": True}

    @field_validator("*", mode="before")
    def strip_control_characters(cls, v):
        """Remove null bytes and control characters from string inputs."""
        if isinstance(v, str):
            return re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]", "", v.strip())
        return v


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------- Question bank ----------


class ScaleSchema(BaseModel):
    type: str = "likert"
    min: int = 1
    max: int = 7
    anchors: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min >= self.max:
            raise ValueError("scale min must be lower than max")
        return self


class DimensionSchema(BaseModel):
    id: str = Field(..., min_length=1)
    name: str
    default_weight: float = Field(1.0, ge=0)


class BankMetaSchema(BaseModel):
    bank_id: str = "default"
    title: str = ""
    version: str = "1.0"
    locale: str = "en"
    scale: ScaleSchema = Field(default_factory=ScaleSchema)
    dimensions: list[DimensionSchema] = Field(default_factory=list)
    time_window: str = ""

    @field_validator("dimensions")
    def unique_dimensions(cls, v):
        ids = [d.id for d in v]
        if len(ids) != len(set(ids)):
            raise ValueError("dimension ids must be unique")
        return v


class QuestionSchema(BaseModel):
    id: str = Field(..., min_length=1)
    dimension: str
    sub_dimension: str | None = None
    direction: Literal["positive", "reverse", "check"] = "positive"
    weight: float | None = Field(1.0, ge=0)
    text: dict[str, str]
    expected_value: int | None = None

    @field_validator("text", mode="before")
    def text_per_mode(cls, v):
        if isinstance(v, str):
            return {"self": v, "partner": v}
        return v


class RecommendationSchema(BaseModel):
    id: str
    title: str
    detail: str = ""
    action_steps: list[str] = Field(default_factory=list)
    caution: str = ""


class QuestionBankSchema(BaseModel):
    meta: BankMetaSchema = Field(default_factory=BankMetaSchema)
    items: list[QuestionSchema] = Field(default_factory=list)
    recommendations: dict[str, list[RecommendationSchema]] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_references(self):
        """Every question must point at a declared dimension and ids must be unique."""
        known = {d.id for d in self.meta.dimensions}
        unknown = sorted({q.dimension for q in self.items if q.dimension not in known})
        if unknown:
            raise ValueError(f"questions reference unknown dimensions: {', '.join(unknown)}")
        ids = [q.id for q in self.items]
        if len(ids) != len(set(ids)):
            raise ValueError("question ids must be unique")
        return self

    def to_domain(self) -> QuestionBank:
        meta = self.meta
        return QuestionBank(
            bank_id=meta.bank_id,
            title=meta.title,
            version=meta.version,
            locale=meta.locale,
            time_window=meta.time_window,
            scale=ScaleMeta(
                min=meta.scale.min,
                max=meta.scale.max,
                type=meta.scale.type,
                anchors=dict(meta.scale.anchors),
            ),
            dimensions=tuple(
                Dimension(id=d.id, name=d.name, default_weight=d.default_weight)
                for d in meta.dimensions
            ),
            items=tuple(
                QuestionItem(
                    id=q.id,
                    dimension=q.dimension,
                    direction=q.direction,
                    text=dict(q.text),
                    weight=q.weight,
                    sub_dimension=q.sub_dimension,
                    expected_value=q.expected_value,
                )
                for q in self.items
            ),
            recommendations={
                dim_id: tuple(
                    Recommendation(
                        id=r.id,
                        title=r.title,
                        detail=r.detail,
                        action_steps=tuple(r.action_steps),
                        caution=r.caution,
                    )
                    for r in recs
                )
                for dim_id, recs in self.recommendations.items()
            },
        )


# ---------- License records (wire format) ----------

# Activation adds validDays to a timestamp; larger values overflow datetime.
MAX_VALID_DAYS = 36500


class BoundDeviceRecord(BaseModel):
    device_id: str = Field(..., alias="deviceId", min_length=1)
    bound_at: datetime = Field(..., alias="boundAt")

    model_config = {"populate_by_name": True}

    @field_validator("bound_at")
    def bound_at_utc(cls, v):
        return _as_utc(v)


class LicenseKeyRecord(BaseModel):
    key: str = Field(..., min_length=1)
    valid_days: int = Field(..., alias="validDays", ge=0, le=MAX_VALID_DAYS)
    max_devices: int = Field(..., alias="maxDevices", ge=0)
    used_devices: list[BoundDeviceRecord] = Field(default_factory=list, alias="usedDevices")
    created_at: datetime = Field(..., alias="createdAt")
    activated_at: datetime | None = Field(None, alias="activatedAt")
    expiry_date: datetime | None = Field(None, alias="expiryDate")
    type: Literal["self", "partner", "all"] = "all"

    model_config = {"populate_by_name": True}

    @field_validator("created_at", "activated_at", "expiry_date")
    def timestamps_utc(cls, v):
        return _as_utc(v)

    @classmethod
    def from_domain(cls, key: LicenseKey) -> LicenseKeyRecord:
        return cls(
            key=key.key,
            valid_days=key.valid_days,
            max_devices=key.max_devices,
            used_devices=[
                BoundDeviceRecord(device_id=d.device_id, bound_at=d.bound_at)
                for d in key.used_devices
            ],
            created_at=key.created_at,
            activated_at=key.activated_at,
            expiry_date=key.expiry_date,
            type=key.type,
        )

    def to_domain(self) -> LicenseKey:
        return LicenseKey(
            key=self.key,
            valid_days=self.valid_days,
            max_devices=self.max_devices,
            created_at=self.created_at,
            type=self.type,
            used_devices=[BoundDevice(d.device_id, d.bound_at) for d in self.used_devices],
            activated_at=self.activated_at,
            expiry_date=self.expiry_date,
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def parse_license_pool(payload: Any) -> list[LicenseKey]:
    """Parse a JSON-decoded pool into domain keys, dropping duplicate keys after the first."""
    if not isinstance(payload, list):
        raise ValueError("license pool must be a JSON array")
    seen: set[str] = set()
    pool: list[LicenseKey] = []
    for raw in payload:
        record = LicenseKeyRecord.model_validate(raw)
        if record.key in seen:
            continue
        seen.add(record.key)
        pool.append(record.to_domain())
    return pool


def dump_license_pool(pool: list[LicenseKey]) -> list[dict[str, Any]]:
    return [LicenseKeyRecord.from_domain(k).to_wire() for k in pool]


# ---------- Inputs ----------


class BatchGenerationInput(BaseValidationSchema):
    """Validation schema for admin batch key generation."""

    count: int = Field(..., ge=0, le=10000)
    valid_days: int = Field(..., ge=1, le=MAX_VALID_DAYS)
    max_devices: int = Field(..., ge=1, le=1000)
    type: Literal["self", "partner", "all"] = "all"


class VerificationInput(BaseValidationSchema):
    key: str = Field(..., min_length=1, max_length=128)
    device_id: str = Field(..., alias="deviceId", min_length=1, max_length=128)

    model_config = {"str_strip_whitespace": True, "populate_by_name": True}


class ExportInput(BaseModel):
    """Export blob upload. ``content`` is stored byte for byte, so only the name is cleaned."""

    filename: str = Field(..., min_length=1, max_length=255)
    content: str

    @field_validator("filename")
    def no_empty_basename(cls, v):
        v = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", v).strip()
        if not v.replace("/", "").replace("\\", "").strip("."):
            raise ValueError("filename must name a file")
        return v


class ValidationErrorDetail(BaseModel):
    field: str
    message: str
    value: Any = None


class ValidationResponse(BaseModel):
    success: bool
    errors: list[ValidationErrorDetail] = []
    data: dict[str, Any] | None = None


def validate_input(schema_class: type[BaseModel], data: dict[str, Any]) -> ValidationResponse:
    """
    Centralized validation function that returns structured validation results.

    Example:
        >>> result = validate_input(BatchGenerationInput, {"count": 5, "valid_days": 30,
        ...                                                "max_devices": 2})
        >>> result.success
        True
    """
    try:
        validated = schema_class(**data)
        return ValidationResponse(success=True, data=validated.model_dump())
    except Exception as e:
        errors = []
        if hasattr(e, "errors"):  # Pydantic validation errors
            for error in e.errors():
                errors.append(
                    ValidationErrorDetail(
                        field=".".join(str(x) for x in error["loc"]),
                        message=error["msg"],
                        value=error.get("input"),
                    )
                )
        else:
            errors.append(ValidationErrorDetail(field="general", message=str(e)))

        return ValidationResponse(success=False, errors=errors)
