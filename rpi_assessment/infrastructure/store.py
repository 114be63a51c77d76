"""
Persistent store interface for the license pool, verification config and exports.

``LicenseStore`` is what the lifecycle manager talks to. ``BlobLicenseStore``
keeps everything in a key-value backend (files, SQLite, memory); ``HttpLicenseStore``
talks to the same interface exposed over HTTP by ``rpi_assessment.web``.
Failures to reach the backend raise ``PersistenceError``; malformed payloads
raise ``ValidationError``.
"""

from __future__ import annotations

import json
from typing import Any

import httpx

from .config import Settings, get_settings
from .exceptions import PersistenceError, ValidationError, handle_store_error
from .kv import (
    FileKeyValueStore,
    KeyValueStore,
    MemoryKeyValueStore,
    SqlKeyValueStore,
    safe_blob_name,
)
from .logging import get_logger

logger = get_logger(__name__)

KEYS_BLOB = "keys.json"
CONFIG_BLOB = "config.json"
DEFAULT_CONFIG: dict[str, Any] = {"enableVerification": True}


class LicenseStore:
    def load(self) -> list[dict[str, Any]]:
        """Return the stored pool as JSON-decoded records, ``[]`` if absent."""
        raise NotImplementedError

    def save(self, records: list[dict[str, Any]]) -> dict[str, Any]:
        """Overwrite the whole pool. Returns ``{"success": bool}``."""
        raise NotImplementedError

    def load_config(self) -> dict[str, Any]:
        raise NotImplementedError

    def save_config(self, body: str | dict[str, Any]) -> dict[str, Any]:
        """Overwrite the config after checking it is JSON. Returns ``{"success", "error"?}``."""
        raise NotImplementedError

    def write_export(self, filename: str, content: str) -> dict[str, Any]:
        """Write a named blob (CSV snapshots). Returns ``{"success", "path"}``."""
        raise NotImplementedError


def _decode_config(text: str, default: dict[str, Any]) -> dict[str, Any]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError("config", f"stored config is not valid JSON: {e.msg}") from e
    if not isinstance(data, dict):
        raise ValidationError("config", "stored config must be a JSON object", data)
    return {**default, **data}


class BlobLicenseStore(LicenseStore):
    def __init__(self, kv: KeyValueStore, default_verification: bool = True):
        self.kv = kv
        self.default_config = {"enableVerification": default_verification}

    def load(self) -> list[dict[str, Any]]:
        text = self.kv.get(KEYS_BLOB)
        if text is None or not text.strip():
            return []
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError("keys", f"stored pool is not valid JSON: {e.msg}") from e
        if not isinstance(data, list):
            raise ValidationError("keys", "stored pool must be a JSON array")
        return data

    def save(self, records: list[dict[str, Any]]) -> dict[str, Any]:
        self.kv.put(KEYS_BLOB, json.dumps(records, ensure_ascii=False))
        return {"success": True}

    def load_config(self) -> dict[str, Any]:
        text = self.kv.get(CONFIG_BLOB)
        if text is None:
            return dict(self.default_config)
        return _decode_config(text, self.default_config)

    def save_config(self, body: str | dict[str, Any]) -> dict[str, Any]:
        if isinstance(body, str):
            try:
                json.loads(body)
            except json.JSONDecodeError as e:
                return {"success": False, "error": f"Invalid JSON: {e.msg}"}
            text = body
        else:
            text = json.dumps(body, ensure_ascii=False)
        self.kv.put(CONFIG_BLOB, text)
        return {"success": True}

    def write_export(self, filename: str, content: str) -> dict[str, Any]:
        try:
            name = safe_blob_name(filename)
        except ValueError as e:
            raise ValidationError("filename", str(e), filename) from e
        path = self.kv.put(name, content)
        return {"success": True, "path": path}


class HttpLicenseStore(LicenseStore):
    """Client for the HTTP key-value server (``GET/POST /api/keys`` and friends)."""

    def __init__(
        self,
        base_url: str = "",
        client: httpx.Client | None = None,
        timeout: float = 5.0,
    ):
        self.client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise handle_store_error(e, f"{method} {path}") from e
        if response.status_code >= 500:
            raise PersistenceError(
                f"server answered {response.status_code}",
                operation=f"{method} {path}",
                details={"status_code": response.status_code, "body": response.text[:200]},
            )
        return response

    def _json(self, response: httpx.Response, path: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise ValidationError(path, "response is not valid JSON") from e

    def _json_object(self, response: httpx.Response, path: str) -> dict[str, Any]:
        data = self._json(response, path)
        if not isinstance(data, dict):
            raise ValidationError(path, "server reply must be a JSON object", data)
        return data

    def load(self) -> list[dict[str, Any]]:
        response = self._request("GET", "/api/keys")
        if response.status_code == 404:
            return []
        data = self._json(response, "keys")
        if not isinstance(data, list):
            raise ValidationError("keys", "server pool must be a JSON array")
        return data

    def save(self, records: list[dict[str, Any]]) -> dict[str, Any]:
        response = self._request("POST", "/api/keys", json=records)
        if response.status_code >= 400:
            raise PersistenceError(
                f"server rejected pool ({response.status_code})", operation="POST /api/keys"
            )
        return self._json_object(response, "keys")

    def load_config(self) -> dict[str, Any]:
        response = self._request("GET", "/api/config")
        if response.status_code == 404:
            return dict(DEFAULT_CONFIG)
        data = self._json(response, "config")
        if not isinstance(data, dict):
            raise ValidationError("config", "server config must be a JSON object", data)
        return {**DEFAULT_CONFIG, **data}

    def save_config(self, body: str | dict[str, Any]) -> dict[str, Any]:
        content = body if isinstance(body, str) else json.dumps(body)
        response = self._request(
            "POST", "/api/config", content=content, headers={"Content-Type": "application/json"}
        )
        return self._json_object(response, "config")

    def write_export(self, filename: str, content: str) -> dict[str, Any]:
        response = self._request(
            "POST", "/api/export", json={"filename": filename, "content": content}
        )
        if response.status_code >= 400:
            raise PersistenceError(
                f"server rejected export ({response.status_code})", operation="POST /api/export"
            )
        return self._json_object(response, "export")


def create_key_value_store(settings: Settings | None = None) -> KeyValueStore:
    """Build the blob backend named by ``STORE_BACKEND`` (``http`` is not a blob backend)."""
    settings = settings or get_settings()
    backend = settings.store.backend
    if backend == "memory":
        return MemoryKeyValueStore()
    if backend == "sqlite":
        from .db import create_database_engine, create_session_factory, initialise_database

        engine = create_database_engine(settings.database)
        initialise_database(engine)
        return SqlKeyValueStore(create_session_factory(engine))
    return FileKeyValueStore(settings.store.data_dir)


def create_license_store(settings: Settings | None = None) -> LicenseStore:
    settings = settings or get_settings()
    if settings.store.backend == "http":
        logger.info("Using HTTP license store at %s", settings.store.remote_url)
        return HttpLicenseStore(
            base_url=settings.store.remote_url or "", timeout=settings.store.timeout_seconds
        )
    logger.info("Using %s license store", settings.store.backend)
    return BlobLicenseStore(
        create_key_value_store(settings),
        default_verification=settings.app.enable_verification,
    )
