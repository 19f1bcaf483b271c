from __future__ import annotations

from functools import lru_cache

from ..services import LedgerService, LedgerStore
from .config import get_settings


@lru_cache(maxsize=1)
def get_ledger_service() -> LedgerService:
    settings = get_settings()
    store = LedgerStore(settings.data_path)
    return LedgerService(
        store,
        starting_balance=settings.starting_balance,
        legacy_json_path=settings.legacy_json_path,
    )
