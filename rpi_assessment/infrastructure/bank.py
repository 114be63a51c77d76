from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..domain.models import QuestionBank
from ..domain.schemas import QuestionBankSchema
from .config import get_settings
from .exceptions import ConfigurationError, MultipleValidationError, ValidationError
from .logging import get_logger

logger = get_logger(__name__)


def parse_question_bank(data: dict[str, Any]) -> QuestionBank:
    """Validate a decoded bank document and convert it to the domain model."""
    try:
        schema = QuestionBankSchema.model_validate(data)
    except PydanticValidationError as e:
        errors = [
            ValidationError(".".join(str(x) for x in err["loc"]) or "bank", err["msg"])
            for err in e.errors()
        ]
        raise MultipleValidationError(errors) from e
    return schema.to_domain()


def load_question_bank(path: str | Path | None = None) -> QuestionBank:
    bank_path = Path(path or get_settings().app.bank_path)
    try:
        data = json.loads(bank_path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(f"Question bank not found: {bank_path}", "bank_path") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Question bank is not valid JSON: {bank_path} ({e.msg})", "bank_path"
        ) from e

    bank = parse_question_bank(data)
    logger.info(
        "Loaded question bank %s v%s: %d dimensions, %d questions",
        bank.bank_id,
        bank.version,
        len(bank.dimensions),
        len(bank.items),
    )
    return bank


@lru_cache(maxsize=1)
def get_default_bank() -> QuestionBank:
    return load_question_bank()
