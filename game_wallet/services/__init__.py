from .ledger import ChargeResult, LedgerService
from .store import LedgerStore

__all__ = ["ChargeResult", "LedgerService", "LedgerStore"]
