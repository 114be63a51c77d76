from __future__ import annotations

from pathlib import Path

import uvicorn

from rpi_assessment.infrastructure.config import Settings, get_settings
from rpi_assessment.infrastructure.logging import setup_logging

APP_PATH = "rpi_assessment.web.main:app"


def ensure_data_dir(settings: Settings | None = None) -> Path | None:
    settings = settings or get_settings()
    if settings.store.backend != "file":
        return None

    data_dir = Path(settings.store.data_dir)
    if not data_dir.exists():
        print(f"[run-server] Creating data directory {data_dir}")
        data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def main() -> None:
    settings = get_settings()
    setup_logging(
        level=settings.logging.level,
        log_file=settings.logging.file_path,
        structured=settings.logging.structured,
        enable_console=settings.logging.console_enabled,
    )
    try:
        ensure_data_dir(settings)
    except OSError as exc:  # pragma: no cover - developer helper
        print(f"[run-server] Warning: {exc}")

    uvicorn.run(
        APP_PATH,
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development(),
    )


if __name__ == "__main__":
    main()
