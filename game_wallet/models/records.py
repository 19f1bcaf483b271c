from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Dict, Tuple


@dataclass(frozen=True)
class HistoryEntry:
    ts: datetime
    game: str
    delta: int
    desc: str

    @classmethod
    def now(cls, game: str, delta: int, desc: str) -> "HistoryEntry":
        return cls(ts=datetime.now(UTC), game=game, delta=delta, desc=desc)


@dataclass(frozen=True)
class Account:
    username: str
    balance: int
    history: Tuple[HistoryEntry, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.balance < 0:
            raise ValueError(f"Balance for {self.username!r} cannot be negative")

    def apply(self, balance: int, entry: HistoryEntry) -> "Account":
        """Return a copy with the new balance and ``entry`` appended."""
        return replace(self, balance=balance, history=(*self.history, entry))


LedgerState = Dict[str, Account]
