from __future__ import annotations

import random
import string

from .config import LicenseConfig, get_settings
from .kv import KeyValueStore
from .logging import get_logger

logger = get_logger(__name__)

DEVICE_ID_BLOB = "device_id"
SESSION_KEY_BLOB = "session_key"
POOL_MIRROR_BLOB = "license_pool.json"

DEVICE_ID_ALPHABET = string.ascii_uppercase + string.digits


def generate_device_id(
    config: LicenseConfig | None = None, rng: random.Random | None = None
) -> str:
    config = config or get_settings().license
    rng = rng or random.SystemRandom()
    token = "".join(rng.choice(DEVICE_ID_ALPHABET) for _ in range(config.device_id_length))
    return f"{config.device_id_prefix}{token}"


def get_or_create_device_id(
    local: KeyValueStore,
    config: LicenseConfig | None = None,
    rng: random.Random | None = None,
) -> str:
    """Return this installation's device id, creating and persisting it on first use."""
    existing = local.get(DEVICE_ID_BLOB)
    if existing and existing.strip():
        return existing.strip()
    device_id = generate_device_id(config, rng)
    local.put(DEVICE_ID_BLOB, device_id)
    logger.info("Generated new device id %s", device_id)
    return device_id
