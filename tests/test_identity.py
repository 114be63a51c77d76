import random
import re

from rpi_assessment.infrastructure.config import LicenseConfig
from rpi_assessment.infrastructure.identity import (
    DEVICE_ID_BLOB,
    generate_device_id,
    get_or_create_device_id,
)
from rpi_assessment.infrastructure.kv import FileKeyValueStore, MemoryKeyValueStore


def test_device_id_format():
    device_id = generate_device_id(LicenseConfig(), random.Random(1))

    assert re.fullmatch(r"DEV-[A-Z0-9]{8}", device_id)


def test_device_id_respects_config():
    config = LicenseConfig(device_id_prefix="PC-", device_id_length=12)

    assert re.fullmatch(r"PC-[A-Z0-9]{12}", generate_device_id(config))


def test_device_id_is_created_once():
    local = MemoryKeyValueStore()

    first = get_or_create_device_id(local)
    second = get_or_create_device_id(local)

    assert first == second
    assert local.get(DEVICE_ID_BLOB) == first


def test_device_id_survives_restart(tmp_path):
    first = get_or_create_device_id(FileKeyValueStore(tmp_path))

    assert get_or_create_device_id(FileKeyValueStore(tmp_path)) == first


def test_blank_stored_device_id_is_replaced():
    local = MemoryKeyValueStore({DEVICE_ID_BLOB: "   "})

    device_id = get_or_create_device_id(local)

    assert device_id.startswith("DEV-")
    assert local.get(DEVICE_ID_BLOB) == device_id
