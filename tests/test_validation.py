import json

import pytest

from rpi_assessment.domain.models import ScaleMeta
from rpi_assessment.domain.schemas import (
    BatchGenerationInput,
    ExportInput,
    LicenseKeyRecord,
    QuestionBankSchema,
    VerificationInput,
    dump_license_pool,
    parse_license_pool,
    validate_input,
)
from rpi_assessment.domain.services import clamp_answer
from rpi_assessment.infrastructure.bank import load_question_bank, parse_question_bank
from rpi_assessment.infrastructure.exceptions import (
    ConfigurationError,
    InvalidAnswerError,
    MultipleValidationError,
)

SCALE = ScaleMeta(min=1, max=7)


def test_clamp_answer_valid():
    assert clamp_answer(1, SCALE) == 1
    assert clamp_answer(7, SCALE) == 7
    assert clamp_answer(4.0, SCALE) == 4


def test_clamp_answer_out_of_range():
    with pytest.raises(InvalidAnswerError):
        clamp_answer(0, SCALE)
    with pytest.raises(InvalidAnswerError):
        clamp_answer(8, SCALE, "q1")
    with pytest.raises(InvalidAnswerError):
        clamp_answer(None, SCALE)
    with pytest.raises(InvalidAnswerError):
        clamp_answer(False, SCALE)


def test_invalid_answer_error_carries_question():
    with pytest.raises(InvalidAnswerError) as exc_info:
        clamp_answer(9, SCALE, "com_01")
    assert exc_info.value.question_id == "com_01"
    assert "between 1 and 7" in exc_info.value.user_message


def test_batch_input_validation():
    ok = validate_input(BatchGenerationInput, {"count": 5, "valid_days": 30, "max_devices": 2})
    assert ok.success is True
    assert ok.data == {"count": 5, "valid_days": 30, "max_devices": 2, "type": "all"}

    bad = validate_input(
        BatchGenerationInput, {"count": 5, "valid_days": 30, "max_devices": 2, "type": "team"}
    )
    assert bad.success is False
    assert bad.errors[0].field == "type"


def test_verification_input_sanitization():
    data = VerificationInput(key="  ABCD\x00EFGH  ", deviceId="DEV-1")

    assert data.key == "ABCDEFGH"
    assert data.device_id == "DEV-1"


def test_export_input_keeps_content():
    data = ExportInput(filename=" RPI-keys-1.csv\n", content="a,b\n1,2\n")

    assert data.filename == "RPI-keys-1.csv"
    assert data.content == "a,b\n1,2\n"
    with pytest.raises(ValueError):
        ExportInput(filename="../", content="")


def test_license_record_wire_format_omits_unset_fields():
    record = LicenseKeyRecord.model_validate(
        {
            "key": "ABCDEFGHJKLM",
            "validDays": 30,
            "maxDevices": 2,
            "usedDevices": [],
            "createdAt": "2024-03-01T09:30:00",
            "type": "partner",
        }
    )

    wire = record.to_wire()

    assert wire["createdAt"] == "2024-03-01T09:30:00Z"
    assert "activatedAt" not in wire
    assert "expiryDate" not in wire
    assert wire["type"] == "partner"


def test_license_pool_round_trip_is_stable():
    raw = [
        {
            "key": "ABCDEFGHJKLM",
            "validDays": 30,
            "maxDevices": 1,
            "usedDevices": [{"deviceId": "DEV-X", "boundAt": "2024-03-02T10:00:00+02:00"}],
            "createdAt": "2024-03-01T09:30:00Z",
            "activatedAt": "2024-03-02T08:00:00Z",
            "expiryDate": "2024-04-01T08:00:00Z",
            "type": "all",
        }
    ]

    pool = parse_license_pool(raw)
    dumped = dump_license_pool(pool)

    assert pool[0].used_devices[0].bound_at.utcoffset().total_seconds() == 0
    assert dumped[0]["usedDevices"][0]["boundAt"] == "2024-03-02T08:00:00Z"
    assert parse_license_pool(json.loads(json.dumps(dumped))) == pool


def test_license_pool_must_be_a_list():
    with pytest.raises(ValueError):
        parse_license_pool({"key": "A"})


def _bank_doc(**overrides):
    doc = {
        "meta": {
            "bank_id": "t",
            "dimensions": [{"id": "a", "name": "A"}],
            "scale": {"min": 1, "max": 5},
        },
        "items": [{"id": "q1", "dimension": "a", "text": "Same text for both"}],
    }
    doc.update(overrides)
    return doc


def test_bank_schema_accepts_plain_text_items():
    bank = QuestionBankSchema.model_validate(_bank_doc()).to_domain()

    assert bank.items[0].text_for("partner") == "Same text for both"
    assert bank.scale.max == 5


def test_bank_rejects_unknown_dimension():
    doc = _bank_doc(items=[{"id": "q1", "dimension": "zzz", "text": "x"}])

    with pytest.raises(MultipleValidationError) as exc_info:
        parse_question_bank(doc)
    assert "zzz" in exc_info.value.message


def test_bank_rejects_duplicate_question_ids():
    item = {"id": "q1", "dimension": "a", "text": "x"}

    with pytest.raises(MultipleValidationError):
        parse_question_bank(_bank_doc(items=[item, item]))


def test_bank_rejects_inverted_scale():
    doc = _bank_doc()
    doc["meta"]["scale"] = {"min": 5, "max": 1}

    with pytest.raises(MultipleValidationError):
        parse_question_bank(doc)


def test_load_question_bank_errors(tmp_path):
    with pytest.raises(ConfigurationError):
        load_question_bank(tmp_path / "missing.json")

    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_question_bank(broken)


def test_load_bundled_question_bank():
    bank = load_question_bank()

    assert bank.bank_id == "rpi-core"
    assert bank.scale.min == 1 and bank.scale.max == 7
    assert {q.dimension for q in bank.items} <= {d.id for d in bank.dimensions}
    assert any(q.direction == "reverse" for q in bank.items)
    assert any(not q.is_scored for q in bank.items)
    for dim in bank.dimensions:
        assert len(bank.recommendations[dim.id]) >= 2
