from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

import pandas as pd

from ..domain.models import LicenseKey

EXPORT_COLUMNS = [
    "Key",
    "Type",
    "CreatedAt",
    "ActivatedAt",
    "ExpiryDate",
    "ValidDays",
    "MaxDevices",
    "UsedDevices",
    "Status",
]

# Excel only detects UTF-8 CSVs with a byte order mark.
UTF8_BOM = "\ufeff"


def key_status(key: LicenseKey, now: datetime) -> str:
    if key.expiry_date is None:
        return "inactive"
    if key.is_expired(now):
        return "expired"
    if key.is_full():
        return "full"
    return "active"


def _fmt(val: datetime | None) -> str:
    if val is None:
        return "-"
    return val.strftime("%Y-%m-%d %H:%M:%S")


def keys_to_frame(keys: Iterable[LicenseKey], now: datetime) -> pd.DataFrame:
    rows = [
        {
            "Key": k.key,
            "Type": k.type,
            "CreatedAt": _fmt(k.created_at),
            "ActivatedAt": _fmt(k.activated_at),
            "ExpiryDate": _fmt(k.expiry_date),
            "ValidDays": k.valid_days,
            "MaxDevices": k.max_devices,
            "UsedDevices": len(k.used_devices),
            "Status": key_status(k, now),
        }
        for k in keys
    ]
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def make_keys_csv(keys: Iterable[LicenseKey], now: datetime) -> str:
    """Render the pool as a BOM-prefixed CSV snapshot."""
    frame = keys_to_frame(keys, now)
    return UTF8_BOM + frame.to_csv(index=False, lineterminator="\n")


def export_filename(prefix: str, now: datetime) -> str:
    return f"{prefix}-{int(now.timestamp() * 1000)}.csv"
