from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from ..core.errors import InvalidAmountError, UsernameRequiredError
from ..models import Account, HistoryEntry, LedgerState, UserSummary
from .store import LedgerStore


logger = logging.getLogger(__name__)

DEFAULT_STARTING_BALANCE = 1000
UNKNOWN_GAME = "unknown-game"
INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
# SQLite INTEGER range
MAX_BALANCE = 2**63 - 1


@dataclass(frozen=True)
class ChargeResult:
    ok: bool
    balance: int
    error: Optional[str] = None


def to_whole_units(value: Any) -> Optional[int]:
    """Floor ``value`` to a non-negative integer, or ``None`` if it is not a finite number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return max(0, math.floor(value))


class LedgerService:
    """Owns every account and serialises all reads and writes behind one lock.

    Each mutation builds the updated account, persists a candidate state that
    contains it and only then publishes the candidate, so the in-memory view
    never runs ahead of what the store has accepted.
    """

    def __init__(
        self,
        store: LedgerStore,
        starting_balance: int = DEFAULT_STARTING_BALANCE,
        legacy_json_path: Optional[Path] = None,
    ) -> None:
        self.store = store
        self.starting_balance = starting_balance
        self.legacy_json_path = legacy_json_path
        self._lock = threading.RLock()
        self._accounts: Optional[LedgerState] = None

    # ------------------------------------------------------------------
    # Helper utilities
    # ------------------------------------------------------------------
    def _require_username(self, username: Optional[str]) -> str:
        name = (username or "").strip()
        if not name:
            raise UsernameRequiredError("Username is required")
        return name

    def _check_ceiling(self, balance: int) -> None:
        if balance > MAX_BALANCE:
            raise InvalidAmountError("Resulting balance exceeds the storable range")

    def _state(self) -> LedgerState:
        if self._accounts is None:
            self.load()
        return self._accounts

    def _commit(self, account: Account) -> Account:
        candidate = dict(self._state())
        candidate[account.username] = account
        self.store.save(candidate)
        self._accounts = candidate
        return account

    def _get_or_create(self, name: str) -> Account:
        account = self._state().get(name)
        if account is not None:
            return account

        account = Account(
            username=name,
            balance=self.starting_balance,
            history=(HistoryEntry.now("system", 0, "auto-create profile"),),
        )
        self._commit(account)
        logger.info(
            "account.created",
            extra={"username": name, "balance": account.balance},
        )
        return account

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def load(self) -> None:
        with self._lock:
            state = self.store.load()
            if self.store.created and self.legacy_json_path is not None:
                state = self.store.import_legacy_json(self.legacy_json_path)
                if state:
                    self.store.save(state)
            self._accounts = state

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def get_or_create_account(self, username: Optional[str]) -> Account:
        name = self._require_username(username)
        with self._lock:
            return self._get_or_create(name)

    def get_account(self, username: Optional[str]) -> Optional[Account]:
        name = self._require_username(username)
        with self._lock:
            return self._state().get(name)

    def save_profile(self, username: Optional[str], balance: Any = None) -> Account:
        name = self._require_username(username)
        with self._lock:
            account = self._get_or_create(name)
            new_balance = to_whole_units(balance)
            if new_balance is None:
                new_balance = account.balance
            self._check_ceiling(new_balance)
            account = self._commit(
                account.apply(new_balance, HistoryEntry.now("manual-save", 0, "session save"))
            )
        logger.info(
            "account.saved",
            extra={"username": name, "balance": account.balance},
        )
        return account

    def charge(
        self,
        username: Optional[str],
        game: Optional[str],
        amount: Any,
        desc: Optional[str] = None,
    ) -> ChargeResult:
        name = self._require_username(username)
        wager = to_whole_units(amount) or 0
        if wager <= 0:
            raise InvalidAmountError("Charge amount must be a positive number")

        with self._lock:
            account = self._get_or_create(name)
            if account.balance < wager:
                logger.info(
                    "account.charge.rejected",
                    extra={"username": name, "amount": wager, "balance": account.balance},
                )
                return ChargeResult(ok=False, balance=account.balance, error=INSUFFICIENT_FUNDS)

            entry = HistoryEntry.now(game or UNKNOWN_GAME, -wager, desc or "charge")
            account = self._commit(account.apply(account.balance - wager, entry))

        logger.info(
            "account.charge",
            extra={"username": name, "amount": wager, "balance": account.balance},
        )
        return ChargeResult(ok=True, balance=account.balance)

    def payout(
        self,
        username: Optional[str],
        game: Optional[str],
        amount: Any,
        desc: Optional[str] = None,
    ) -> Account:
        name = self._require_username(username)
        payout = to_whole_units(amount)
        if payout is None:
            payout = 0
        elif amount < 0:
            raise InvalidAmountError("Payout amount cannot be negative")

        with self._lock:
            account = self._get_or_create(name)
            self._check_ceiling(account.balance + payout)
            entry = HistoryEntry.now(game or UNKNOWN_GAME, payout, desc or "payout")
            account = self._commit(account.apply(account.balance + payout, entry))

        logger.info(
            "account.payout",
            extra={"username": name, "amount": payout, "balance": account.balance},
        )
        return account

    def admin_set_balance(
        self,
        username: Optional[str],
        balance: Any = None,
        note: Optional[str] = None,
    ) -> Account:
        name = self._require_username(username)
        new_balance = to_whole_units(balance) or 0
        self._check_ceiling(new_balance)

        with self._lock:
            account = self._get_or_create(name)
            delta = new_balance - account.balance
            entry = HistoryEntry.now("admin-adjust", delta, note or "admin set balance")
            account = self._commit(account.apply(new_balance, entry))

        logger.info(
            "account.admin_set_balance",
            extra={"username": name, "delta": delta, "balance": account.balance},
        )
        return account

    def admin_delete_user(self, username: Optional[str]) -> bool:
        """Remove an account and its history. Returns ``False`` if it did not exist."""
        name = self._require_username(username)
        with self._lock:
            state = self._state()
            if name not in state:
                return False
            candidate = {key: value for key, value in state.items() if key != name}
            self.store.save(candidate)
            self._accounts = candidate

        logger.info("account.deleted", extra={"username": name})
        return True

    def list_users(self) -> list[UserSummary]:
        with self._lock:
            return [
                UserSummary(username=name, balance=account.balance)
                for name, account in self._state().items()
            ]

    def get_user_detail(self, username: Optional[str]) -> Optional[Account]:
        account = self.get_account(username)
        if account is None:
            logger.info("account.detail.missing", extra={"username": username.strip()})
        return account
