import csv
import io
from datetime import timedelta

from conftest import T0
from rpi_assessment.domain.models import BoundDevice, LicenseKey
from rpi_assessment.utils.exports import (
    EXPORT_COLUMNS,
    UTF8_BOM,
    export_filename,
    key_status,
    keys_to_frame,
    make_keys_csv,
)


def _key(name, **kwargs):
    return LicenseKey(key=name, valid_days=30, max_devices=1, created_at=T0, **kwargs)


def _activated(name, days_ago=0, devices=("DEV-A",)):
    activated = T0 - timedelta(days=days_ago)
    return _key(
        name,
        activated_at=activated,
        expiry_date=activated + timedelta(days=30),
        used_devices=[BoundDevice(d, activated) for d in devices],
    )


def test_key_status():
    assert key_status(_key("A"), T0) == "inactive"
    assert key_status(_activated("B", devices=()), T0) == "active"
    assert key_status(_activated("C"), T0) == "full"
    assert key_status(_activated("D", days_ago=31), T0) == "expired"


def test_frame_has_one_row_per_key():
    frame = keys_to_frame([_key("A"), _activated("B")], T0)

    assert list(frame.columns) == EXPORT_COLUMNS
    assert frame["Key"].tolist() == ["A", "B"]
    assert frame["ActivatedAt"].tolist() == ["-", "2024-03-01 09:30:00"]
    assert frame["UsedDevices"].tolist() == [0, 1]


def test_csv_has_bom_and_parses_back():
    content = make_keys_csv([_key("A"), _activated("B")], T0)

    assert content.startswith(UTF8_BOM)
    rows = list(csv.DictReader(io.StringIO(content[len(UTF8_BOM):])))
    assert [r["Key"] for r in rows] == ["A", "B"]
    assert rows[1]["Status"] == "full"


def test_empty_export_still_has_header():
    content = make_keys_csv([], T0)

    assert content == UTF8_BOM + ",".join(EXPORT_COLUMNS) + "\n"


def test_export_filename_uses_epoch_millis():
    assert export_filename("RPI-keys", T0) == "RPI-keys-1709285400000.csv"
