from __future__ import annotations

from pathlib import Path

import pytest

from rpi_assessment.infrastructure.config import Settings, StoreConfig
from scripts import run_server


def _settings(store: StoreConfig) -> Settings:
    settings = Settings()
    settings._store = store
    return settings


def test_ensure_data_dir_creates_file_store_directory(tmp_path: Path) -> None:
    data_dir = tmp_path / "store" / "data"
    settings = _settings(StoreConfig(backend="file", data_dir=str(data_dir)))

    created = run_server.ensure_data_dir(settings)

    assert created == data_dir
    assert data_dir.is_dir()


def test_ensure_data_dir_skips_other_backends(tmp_path: Path) -> None:
    settings = _settings(StoreConfig(backend="memory", data_dir=str(tmp_path / "unused")))

    assert run_server.ensure_data_dir(settings) is None
    assert not (tmp_path / "unused").exists()


def test_main_runs_uvicorn_with_app_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    settings = _settings(StoreConfig(backend="memory"))
    monkeypatch.setattr(run_server, "get_settings", lambda: settings)
    logging_calls: list[dict] = []
    monkeypatch.setattr(run_server, "setup_logging", lambda **kw: logging_calls.append(kw))

    calls: list[tuple[str, dict]] = []

    def fake_run(app: str, **kwargs) -> None:
        calls.append((app, kwargs))

    monkeypatch.setattr(run_server.uvicorn, "run", fake_run)

    run_server.main()

    assert calls, "uvicorn was not started"
    assert calls[0][0] == "rpi_assessment.web.main:app"
    assert calls[0][1]["port"] == 8000
    assert logging_calls[0]["level"] == settings.logging.level
