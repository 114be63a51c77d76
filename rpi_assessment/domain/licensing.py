"""
License key lifecycle: batch generation, verification/activation, device
binding, lazy expiry and deletion.

The in-memory pool owned by a ``LicenseManager`` is authoritative for the
session. Every mutation is written to the injected ``LicenseStore`` on a
best-effort basis; store failures are logged and never reach the caller.
Concurrent managers writing to the same store race, and the last write wins.
"""

from __future__ import annotations

import json
import random
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from ..infrastructure.config import AdminConfig, Settings, get_settings
from ..infrastructure.exceptions import (
    AssessmentAppError,
    DeviceLimitError,
    LicenseExpiredError,
    LicenseKeyNotFoundError,
    MultipleValidationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
)
from ..infrastructure.identity import (
    POOL_MIRROR_BLOB,
    SESSION_KEY_BLOB,
    generate_device_id,
    get_or_create_device_id,
)
from ..infrastructure.kv import KeyValueStore, MemoryKeyValueStore
from ..infrastructure.logging import LogContext, get_logger, log_operation
from ..infrastructure.store import LicenseStore
from ..utils.exports import export_filename, make_keys_csv
from .models import BoundDevice, KeyState, LicenseKey, VerificationResult
from .schemas import BatchGenerationInput, dump_license_pool, parse_license_pool, validate_input

logger = get_logger(__name__)

MSG_ACTIVATED = "activated"
MSG_VERIFIED = "verified"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ExportResult:
    filename: str
    content: str
    path: str | None
    synced: bool


class LicenseManager:
    def __init__(
        self,
        store: LicenseStore,
        local: KeyValueStore | None = None,
        device_id: str | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
        rng: random.Random | None = None,
        autoload: bool = True,
    ):
        self.settings = settings or get_settings()
        self.config = self.settings.license
        self.store = store
        self.local = local if local is not None else MemoryKeyValueStore()
        self.clock = clock or utcnow
        self.rng = rng or random.SystemRandom()
        self.device_id = device_id or self._load_device_id()
        self.verification_enabled = self.settings.app.enable_verification
        self.pool: list[LicenseKey] = self._read_mirror()
        self.current_key: str | None = self._read_local(SESSION_KEY_BLOB)
        if autoload:
            self.refresh_config()
            self.load()

    # ---------- Local mirror ----------

    def _load_device_id(self) -> str:
        try:
            return get_or_create_device_id(self.local, self.config, self.rng)
        except AssessmentAppError as e:
            device_id = generate_device_id(self.config, self.rng)
            logger.warning("Device id store unavailable, using %s for this session: %s",
                           device_id, e)
            return device_id

    def _read_local(self, name: str) -> str | None:
        try:
            return self.local.get(name) or None
        except AssessmentAppError as e:
            logger.warning("Could not read local %s: %s", name, e)
            return None

    def _write_local(self, name: str, content: str | None) -> None:
        try:
            if content is None:
                self.local.delete(name)
            else:
                self.local.put(name, content)
        except AssessmentAppError as e:
            logger.warning("Could not write local %s: %s", name, e)

    def _read_mirror(self) -> list[LicenseKey]:
        text = self._read_local(POOL_MIRROR_BLOB)
        if not text:
            return []
        try:
            return parse_license_pool(json.loads(text))
        except ValueError as e:
            logger.warning("Ignoring unreadable local pool mirror: %s", e)
            return []

    # ---------- Store sync ----------

    def load(self) -> bool:
        """Replace the pool with the store's copy. On failure keep the current pool."""
        try:
            pool = parse_license_pool(self.store.load())
        except (AssessmentAppError, ValueError) as e:
            logger.error("Failed to load keys from store, keeping %d local keys: %s",
                         len(self.pool), e)
            return False
        self.pool = pool
        self._write_local(POOL_MIRROR_BLOB, json.dumps(dump_license_pool(pool)))
        logger.info("Loaded %d license keys from store", len(pool))
        return True

    def _persist(self) -> bool:
        records = dump_license_pool(self.pool)
        self._write_local(POOL_MIRROR_BLOB, json.dumps(records))
        try:
            result = self.store.save(records)
        except AssessmentAppError as e:
            logger.warning("Store sync failed, using local pool only: %s", e)
            return False
        return bool(result.get("success", False))

    def refresh_config(self) -> bool:
        try:
            config = self.store.load_config()
        except (AssessmentAppError, ValueError) as e:
            logger.error("Failed to load verification config: %s", e)
            return False
        flag = config.get("enableVerification")
        if isinstance(flag, bool):
            self.verification_enabled = flag
        return True

    def update_verification_config(self, enable: bool) -> bool:
        try:
            result = self.store.save_config({"enableVerification": bool(enable)})
        except AssessmentAppError as e:
            logger.error("Failed to update verification config: %s", e)
            return False
        if result.get("success"):
            self.verification_enabled = bool(enable)
            return True
        return False

    # ---------- Queries ----------

    @property
    def keys(self) -> list[LicenseKey]:
        return list(self.pool)

    def find(self, key: str) -> LicenseKey | None:
        for record in self.pool:
            if record.key == key:
                return record
        return None

    def state_of(self, key: str, device_id: str | None = None) -> KeyState | None:
        record = self.find(key)
        if record is None:
            return None
        return record.state_for(device_id, self.clock())

    # ---------- Generation ----------

    def _free_key_space(self) -> int:
        """Keys of the configured shape not yet in the pool. Other shapes never collide."""
        alphabet = set(self.config.key_alphabet)
        length = self.config.key_length
        same_shape = sum(
            1 for k in self.pool if len(k.key) == length and set(k.key) <= alphabet
        )
        return len(alphabet) ** length - same_shape

    def _draw_key(self) -> str:
        alphabet = self.config.key_alphabet
        return "".join(self.rng.choice(alphabet) for _ in range(self.config.key_length))

    @log_operation("generate_batch")
    def generate_batch(
        self,
        count: int,
        valid_days: int | None = None,
        max_devices: int | None = None,
        type: str = "all",
    ) -> list[LicenseKey]:
        if valid_days is None:
            valid_days = self.config.default_valid_days
        if max_devices is None:
            max_devices = self.config.default_max_devices
        validation = validate_input(
            BatchGenerationInput,
            {"count": count, "valid_days": valid_days, "max_devices": max_devices, "type": type},
        )
        if not validation.success or validation.data is None:
            errors = [ValidationError(e.field, e.message, e.value) for e in validation.errors]
            if len(errors) == 1:
                raise errors[0]
            raise MultipleValidationError(errors)
        params = validation.data

        if params["count"] > self._free_key_space():
            raise ValidationError("count", "exceeds the remaining key space", params["count"])

        taken = {k.key for k in self.pool}
        now = self.clock()
        new_keys: list[LicenseKey] = []
        collisions = 0
        while len(new_keys) < params["count"]:
            candidate = self._draw_key()
            if candidate in taken:
                collisions += 1
                continue
            taken.add(candidate)
            new_keys.append(
                LicenseKey(
                    key=candidate,
                    valid_days=params["valid_days"],
                    max_devices=params["max_devices"],
                    created_at=now,
                    type=params["type"],
                )
            )

        self.pool.extend(new_keys)
        self._persist()
        logger.info(
            "Generated %d keys (%d collisions redrawn); pool size %d",
            len(new_keys),
            collisions,
            len(self.pool),
        )
        return new_keys

    # ---------- Verification ----------

    def _check_admissible(
        self, input_key: str, record: LicenseKey | None, state: KeyState | None
    ) -> None:
        if record is None:
            raise LicenseKeyNotFoundError(input_key)
        if state is KeyState.EXPIRED:
            raise LicenseExpiredError(record.key, record.expiry_date)
        if state is KeyState.ACTIVE_FULL:
            raise DeviceLimitError(record.key, record.max_devices)

    def _set_current_key(self, key: str | None) -> None:
        self.current_key = key
        self._write_local(SESSION_KEY_BLOB, key)

    def verify(self, input_key: str, device_id: str | None = None) -> VerificationResult:
        """
        Run one verification attempt for ``input_key`` from ``device_id``.

        - Unknown key, expired key and a full device quota fail without mutation.
        - The first verification activates the key and binds the device.
        - A new device on an active key with spare quota gets bound.
        """
        device = device_id or self.device_id
        now = self.clock()
        record = self.find(input_key)
        state = record.state_for(device, now) if record is not None else None

        with LogContext(license_key=input_key, device_id=device):
            try:
                self._check_admissible(input_key, record, state)
            except (NotFoundError, StateConflictError) as e:
                logger.info("Verification rejected: %s", e.message)
                return VerificationResult(False, e.user_message, state)

            if state is KeyState.UNACTIVATED:
                record.activated_at = now
                record.expiry_date = now + timedelta(days=record.valid_days)
                record.used_devices.append(BoundDevice(device, now))
                self._persist()
                self._set_current_key(record.key)
                logger.info("Activated key, expires %s", record.expiry_date.isoformat())
                return VerificationResult(True, MSG_ACTIVATED, state)

            if state is KeyState.ACTIVE_OPEN:
                record.used_devices.append(BoundDevice(device, now))
                self._persist()
                logger.info(
                    "Bound device %d of %d", len(record.used_devices), record.max_devices
                )

            self._set_current_key(record.key)
            return VerificationResult(True, MSG_VERIFIED, state)

    def logout(self) -> None:
        self._set_current_key(None)

    # ---------- Admin ----------

    @log_operation("delete_key")
    def delete_key(self, key: str) -> bool:
        """Remove ``key`` from the pool. Absent keys are a no-op."""
        remaining = [k for k in self.pool if k.key != key]
        if len(remaining) == len(self.pool):
            return False
        self.pool = remaining
        self._persist()
        return True

    def export_csv(self, keys: Iterable[LicenseKey] | None = None) -> ExportResult:
        """Render a CSV snapshot and push a copy to the store's export area."""
        now = self.clock()
        selected = list(keys) if keys is not None else self.keys
        content = make_keys_csv(selected, now)
        filename = export_filename(self.config.export_prefix, now)
        path: str | None = None
        synced = False
        try:
            result: dict[str, Any] = self.store.write_export(filename, content)
            path = result.get("path")
            synced = bool(result.get("success"))
        except AssessmentAppError as e:
            logger.error("Failed to sync export to store: %s", e)
        return ExportResult(filename=filename, content=content, path=path, synced=synced)


class AdminSession:
    """Flag for the admin panel. Plain credential comparison, no real authentication."""

    def __init__(self, config: AdminConfig | None = None):
        self.config = config or get_settings().admin
        self.authenticated = False

    def login(self, username: str, password: str) -> bool:
        if username == self.config.username and password == self.config.password:
            self.authenticated = True
            logger.info("Admin logged in")
            return True
        logger.info("Admin login rejected")
        return False

    def logout(self) -> None:
        self.authenticated = False
