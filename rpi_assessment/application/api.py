"""
Application API layer with error handling and validation.

High-level functions used by the HTTP routes (and any other front end). They
turn domain exceptions into structured results so no failure escapes as a
crash, and they own the verification toggle check, which stays outside the
license state machine.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict
from typing import Any

from ..domain.licensing import ExportResult, LicenseManager
from ..domain.models import (
    AssessmentResult,
    KeyState,
    LicenseKey,
    QuestionBank,
    VerificationResult,
)
from ..domain.schemas import LicenseKeyRecord
from ..domain.services import ScoringService
from ..infrastructure.exceptions import (
    AssessmentAppError,
    LicenseKeyNotFoundError,
    MultipleValidationError,
    ValidationError,
    create_user_friendly_error_message,
    log_error_details,
)
from ..infrastructure.logging import get_logger
from ..utils.exports import key_status

logger = get_logger(__name__)

MSG_VERIFICATION_DISABLED = "verification disabled"


def check_access(manager: LicenseManager, key: str | None = None) -> VerificationResult:
    """
    Gate entry to the assessment.

    When verification is switched off the manager is not consulted at all.
    Otherwise ``key`` (or the session's current key) is verified for this device.
    """
    if not manager.verification_enabled:
        return VerificationResult(True, MSG_VERIFICATION_DISABLED, None)
    candidate = key or manager.current_key
    if not candidate:
        return VerificationResult(False, LicenseKeyNotFoundError("").user_message, None)
    return manager.verify(candidate)


def result_to_dict(result: AssessmentResult) -> dict[str, Any]:
    return {
        "dimensions": dict(result.dimensions),
        "overall": result.overall,
        "recommendations": [
            {
                "dimension_id": block.dimension_id,
                "dimension": block.dimension,
                "score": block.score,
                "items": [
                    {**asdict(item), "action_steps": list(item.action_steps)}
                    for item in block.items
                ],
            }
            for block in result.recommendations
        ],
    }


def score_answers(
    bank: QuestionBank,
    answers: Mapping[str, object],
    scoring: ScoringService | None = None,
) -> dict[str, Any]:
    """Score a full answer set. Incomplete sets come back with ``result`` None."""
    outcome = (scoring or ScoringService(logger=logger)).evaluate(answers, bank)
    payload: dict[str, Any] = {
        "complete": outcome.is_complete,
        "result": result_to_dict(outcome.result) if outcome.result else None,
        "missing": outcome.missing,
        "invalid": outcome.invalid,
    }
    if outcome.error is not None:
        payload["message"] = outcome.error.user_message
    return payload


def license_to_dict(key: LicenseKey, manager: LicenseManager) -> dict[str, Any]:
    data = LicenseKeyRecord.from_domain(key).to_wire()
    data["status"] = key_status(key, manager.clock())
    return data


def list_licenses(manager: LicenseManager) -> list[dict[str, Any]]:
    return [license_to_dict(k, manager) for k in manager.keys]


def _error_payload(error: AssessmentAppError, context: dict[str, Any]) -> dict[str, Any]:
    logger.warning("Rejected %s: %s", context.get("operation"), error.message)
    details = log_error_details(error, context)
    errors: list[dict[str, Any]]
    if isinstance(error, MultipleValidationError):
        errors = details["error_details"]["errors"]
    elif isinstance(error, ValidationError):
        errors = [{"field": error.field, "message": error.message, "value": error.value}]
    else:
        errors = []
    return {
        "success": False,
        "error": create_user_friendly_error_message(error),
        "errors": errors,
    }


def generate_keys(manager: LicenseManager, params: Mapping[str, Any]) -> dict[str, Any]:
    try:
        keys = manager.generate_batch(
            params.get("count", 0),
            params.get("valid_days"),
            params.get("max_devices"),
            params.get("type", "all"),
        )
    except (ValidationError, MultipleValidationError) as e:
        return _error_payload(e, {"operation": "generate_keys", "params": dict(params)})
    return {"success": True, "keys": [license_to_dict(k, manager) for k in keys]}


def verify_key(manager: LicenseManager, key: str, device_id: str | None = None) -> dict[str, Any]:
    outcome = manager.verify(key, device_id)
    state = outcome.state.value if isinstance(outcome.state, KeyState) else None
    return {"success": outcome.success, "message": outcome.message, "state": state}


def delete_key(manager: LicenseManager, key: str) -> dict[str, Any]:
    removed = manager.delete_key(key)
    return {"success": True, "removed": removed, "pool_size": len(manager.keys)}


def export_keys(manager: LicenseManager) -> ExportResult:
    return manager.export_csv()
