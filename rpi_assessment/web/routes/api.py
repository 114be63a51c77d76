from __future__ import annotations

import json
import logging
from typing import Literal

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse, Response

from rpi_assessment.application import api as app_api
from rpi_assessment.domain.licensing import LicenseManager
from rpi_assessment.domain.models import QuestionBank
from rpi_assessment.domain.schemas import ExportInput, VerificationInput
from rpi_assessment.infrastructure.config import get_settings
from rpi_assessment.infrastructure.exceptions import (
    AssessmentAppError,
    PersistenceError,
    ValidationError,
)
from rpi_assessment.infrastructure.store import LicenseStore
from rpi_assessment.web.dependencies import (
    get_license_manager,
    get_license_store,
    get_question_bank,
)
from rpi_assessment.web.schemas import (
    BankResponse,
    BatchRequest,
    BatchResponse,
    DeleteResponse,
    DimensionView,
    ExportWriteResponse,
    LicenseView,
    QuestionView,
    ScoreRequest,
    ScoreResponse,
    StoreWriteResponse,
    VerificationResponse,
)

router = APIRouter(prefix="/api")
logger = logging.getLogger(__name__)


def _store_failure(exc: AssessmentAppError) -> JSONResponse:
    code = (
        status.HTTP_400_BAD_REQUEST
        if isinstance(exc, ValidationError)
        else status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    return JSONResponse(status_code=code, content={"success": False, "error": exc.message})


@router.get("/health")
async def healthcheck() -> dict[str, object]:
    return {"status": "ok", **get_settings().get_environment_info()}


# ---------- Key-value store endpoints ----------


@router.get("/keys")
def read_keys(store: LicenseStore = Depends(get_license_store)):
    try:
        return store.load()
    except AssessmentAppError as exc:
        logger.exception("Failed to read license pool")
        return _store_failure(exc)


@router.api_route(
    "/keys",
    methods=["POST", "PUT"],
    response_model=StoreWriteResponse,
    response_model_exclude_none=True,
)
async def write_keys(request: Request, store: LicenseStore = Depends(get_license_store)):
    body = await request.body()
    try:
        records = json.loads(body or b"[]")
    except json.JSONDecodeError as exc:
        return _store_failure(ValidationError("keys", f"Invalid JSON: {exc.msg}"))
    if not isinstance(records, list):
        return _store_failure(ValidationError("keys", "pool must be a JSON array"))
    try:
        return store.save(records)
    except PersistenceError as exc:
        logger.exception("Failed to write license pool")
        return _store_failure(exc)


@router.get("/config")
def read_config(store: LicenseStore = Depends(get_license_store)):
    try:
        return store.load_config()
    except AssessmentAppError as exc:
        logger.exception("Failed to read config")
        return _store_failure(exc)


@router.api_route(
    "/config",
    methods=["POST", "PUT"],
    response_model=StoreWriteResponse,
    response_model_exclude_none=True,
)
async def write_config(request: Request, store: LicenseStore = Depends(get_license_store)):
    body = (await request.body()).decode("utf-8")
    try:
        result = store.save_config(body)
    except PersistenceError as exc:
        logger.exception("Failed to write config")
        return _store_failure(exc)
    if not result.get("success"):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=result)
    return result


@router.api_route(
    "/export",
    methods=["POST", "PUT"],
    response_model=ExportWriteResponse,
    response_model_exclude_none=True,
)
def write_export(payload: ExportInput, store: LicenseStore = Depends(get_license_store)):
    try:
        return store.write_export(payload.filename, payload.content)
    except AssessmentAppError as exc:
        logger.exception("Failed to write export %s", payload.filename)
        return _store_failure(exc)


# ---------- License administration ----------


@router.get("/licenses", response_model=list[LicenseView])
def list_licenses(manager: LicenseManager = Depends(get_license_manager)) -> list[LicenseView]:
    return [LicenseView(**record) for record in app_api.list_licenses(manager)]


@router.post("/licenses/batch", response_model=BatchResponse)
def generate_licenses(
    payload: BatchRequest,
    manager: LicenseManager = Depends(get_license_manager),
):
    result = app_api.generate_keys(manager, payload.model_dump())
    if not result["success"]:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=result)
    return BatchResponse(**result)


@router.post("/licenses/verify", response_model=VerificationResponse)
def verify_license(
    payload: VerificationInput,
    manager: LicenseManager = Depends(get_license_manager),
) -> VerificationResponse:
    return VerificationResponse(**app_api.verify_key(manager, payload.key, payload.device_id))


@router.get("/licenses/export")
def export_licenses(manager: LicenseManager = Depends(get_license_manager)) -> Response:
    export = app_api.export_keys(manager)
    return Response(
        content=export.content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


@router.delete("/licenses/{key}", response_model=DeleteResponse)
def delete_license(
    key: str,
    manager: LicenseManager = Depends(get_license_manager),
) -> DeleteResponse:
    return DeleteResponse(**app_api.delete_key(manager, key))


# ---------- Assessment ----------


@router.get("/assessment/bank", response_model=BankResponse)
def get_bank(
    mode: Literal["self", "partner"] = "self",
    bank: QuestionBank = Depends(get_question_bank),
) -> BankResponse:
    return BankResponse(
        bank_id=bank.bank_id,
        title=bank.title,
        version=bank.version,
        mode=mode,
        scale={"min": bank.scale.min, "max": bank.scale.max, "anchors": bank.scale.anchors},
        dimensions=[
            DimensionView(id=d.id, name=d.name, default_weight=d.default_weight)
            for d in bank.dimensions
        ],
        items=[
            QuestionView(
                id=q.id, dimension=q.dimension, direction=q.direction, text=q.text_for(mode)
            )
            for q in bank.items
        ],
    )


@router.post("/assessment/score", response_model=ScoreResponse)
def score_assessment(
    payload: ScoreRequest = Body(...),
    bank: QuestionBank = Depends(get_question_bank),
) -> ScoreResponse:
    try:
        return ScoreResponse(**app_api.score_answers(bank, payload.answers))
    except AssessmentAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=exc.user_message
        ) from exc
