from __future__ import annotations

from fastapi import Depends, Request

from rpi_assessment.domain.licensing import LicenseManager
from rpi_assessment.domain.models import QuestionBank
from rpi_assessment.infrastructure.bank import get_default_bank
from rpi_assessment.infrastructure.config import get_settings
from rpi_assessment.infrastructure.kv import MemoryKeyValueStore
from rpi_assessment.infrastructure.store import (
    BlobLicenseStore,
    LicenseStore,
    create_key_value_store,
)

SERVER_DEVICE_ID = "DEV-SERVER"


def get_license_store(request: Request) -> LicenseStore:
    store = getattr(request.app.state, "license_store", None)
    if store is None:
        settings = get_settings()
        # The server is the end of the line: it always keeps blobs itself,
        # even when clients are configured for the http backend.
        store = BlobLicenseStore(
            create_key_value_store(settings),
            default_verification=settings.app.enable_verification,
        )
        request.app.state.license_store = store
    return store


def get_question_bank(request: Request) -> QuestionBank:
    bank = getattr(request.app.state, "question_bank", None)
    if bank is None:
        bank = get_default_bank()
        request.app.state.question_bank = bank
    return bank


def get_license_manager(store: LicenseStore = Depends(get_license_store)) -> LicenseManager:
    # Fresh per request: the store is the shared copy, the pool is reloaded each time.
    return LicenseManager(store, local=MemoryKeyValueStore(), device_id=SERVER_DEVICE_ID)
