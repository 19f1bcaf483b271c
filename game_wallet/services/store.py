"""Durable store backing the ledger.

The whole ledger state lives in one SQLite file. ``save`` applies each new
state in a single transaction so a reader never observes a half-written
state, and ``load`` falls back to an empty state when the file cannot be
understood.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Mapping, Optional

from sqlalchemy import inspect
from sqlalchemy.exc import DatabaseError, OperationalError, SQLAlchemyError
from sqlmodel import Session, SQLModel, select

from ..core.db import create_engine_for_path
from ..core.errors import StorageError
from ..models import Account, HistoryEntry, HistoryRecordModel, LedgerState, PlayerModel


logger = logging.getLogger(__name__)


class InvalidStateError(ValueError):
    """Raised internally when persisted rows do not form a valid state."""


class SchemaMismatchError(InvalidStateError):
    """Raised internally when existing tables lack the expected columns."""


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without tzinfo.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _build_account(username: Any, balance: Any, entries: list[HistoryEntry]) -> Account:
    if not isinstance(username, str) or not username:
        raise InvalidStateError("Account key must be a non-empty string")
    if isinstance(balance, bool) or not isinstance(balance, int) or balance < 0:
        raise InvalidStateError(f"Account {username!r} has an invalid balance")
    return Account(username=username, balance=balance, history=tuple(entries))


def _entry_from_mapping(raw: Any) -> HistoryEntry:
    if not isinstance(raw, dict):
        raise InvalidStateError("History entry must be an object")
    try:
        ts = datetime.fromisoformat(str(raw["ts"]).replace("Z", "+00:00"))
        game = raw["game"]
        delta = raw["delta"]
        desc = raw["desc"]
    except (KeyError, ValueError) as exc:
        raise InvalidStateError("History entry is missing fields") from exc
    if not isinstance(game, str) or not isinstance(desc, str):
        raise InvalidStateError("History entry labels must be strings")
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise InvalidStateError("History entry delta must be an integer")
    return HistoryEntry(ts=_as_utc(ts), game=game, delta=delta, desc=desc)


def parse_legacy_document(document: Any) -> LedgerState:
    """Build a ledger state from a ``{"players": {...}}`` JSON document."""
    if not isinstance(document, dict) or not isinstance(document.get("players"), dict):
        raise InvalidStateError("Document has no player mapping")

    state: LedgerState = {}
    for username, info in document["players"].items():
        if not isinstance(info, dict):
            raise InvalidStateError(f"Account {username!r} is not an object")
        history = info.get("history", [])
        if not isinstance(history, list):
            raise InvalidStateError(f"History of {username!r} is not a list")
        entries = [_entry_from_mapping(raw) for raw in history]
        state[username] = _build_account(username, info.get("balance"), entries)
    return state


class LedgerStore:
    """Loads and persists the full ledger state in a SQLite file.

    ``save`` takes the complete state but only touches rows of accounts that
    changed since the last successful load/save; the first save after an
    unknown on-disk state rewrites everything.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.created = False
        self._engine = None
        self._schema_ready = False
        self._persisted: Optional[dict[str, Account]] = None

    # ------------------------------------------------------------------
    # Engine management
    # ------------------------------------------------------------------
    def _ensure_directory(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _get_engine(self):
        if self._engine is None:
            self._ensure_directory()
            self._engine = create_engine_for_path(self.path)
        return self._engine

    def _create_schema(self) -> None:
        SQLModel.metadata.create_all(
            self._get_engine(),
            tables=[PlayerModel.__table__, HistoryRecordModel.__table__],
        )
        self._schema_ready = True

    def _check_schema(self) -> None:
        inspector = inspect(self._get_engine())
        existing = set(inspector.get_table_names())
        for table in (PlayerModel.__table__, HistoryRecordModel.__table__):
            if table.name not in existing:
                continue
            columns = {column["name"] for column in inspector.get_columns(table.name)}
            missing = set(table.columns.keys()) - columns
            if missing:
                raise SchemaMismatchError(
                    f"Table {table.name!r} is missing columns {sorted(missing)}"
                )

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._schema_ready = False
            self._persisted = None

    def _quarantine(self) -> None:
        self.dispose()
        target = self.path.with_name(self.path.name + ".corrupt")
        self.path.replace(target)
        logger.warning(
            "store.quarantined",
            extra={"path": str(self.path), "moved_to": str(target)},
        )

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------
    def _read_state(self) -> LedgerState:
        with Session(self._get_engine()) as session:
            players = session.exec(select(PlayerModel)).all()
            records = session.exec(
                select(HistoryRecordModel).order_by(
                    HistoryRecordModel.username, HistoryRecordModel.position
                )
            ).all()

        grouped: dict[str, list[HistoryRecordModel]] = {}
        for record in records:
            grouped.setdefault(record.username, []).append(record)

        state: LedgerState = {}
        for player in players:
            rows = grouped.pop(player.username, [])
            if [row.position for row in rows] != list(range(len(rows))):
                raise InvalidStateError(f"History of {player.username!r} has gaps")
            entries = [
                HistoryEntry(
                    ts=_as_utc(row.ts),
                    game=row.game,
                    delta=row.delta,
                    desc=row.description,
                )
                for row in rows
            ]
            state[player.username] = _build_account(player.username, player.balance, entries)

        if grouped:
            raise InvalidStateError("History rows reference unknown players")
        return state

    def _delete_rows(self, session: Session, username: Optional[str] = None) -> None:
        records = select(HistoryRecordModel)
        players = select(PlayerModel)
        if username is not None:
            records = records.where(HistoryRecordModel.username == username)
            players = players.where(PlayerModel.username == username)
        for record in session.exec(records).all():
            session.delete(record)
        for player in session.exec(players).all():
            session.delete(player)
        session.flush()

    def _insert_entries(
        self, session: Session, username: str, account: Account, start: int = 0
    ) -> None:
        for position in range(start, len(account.history)):
            entry = account.history[position]
            session.add(
                HistoryRecordModel(
                    username=username,
                    position=position,
                    ts=entry.ts,
                    game=entry.game,
                    delta=entry.delta,
                    description=entry.desc,
                )
            )

    def _write_account(
        self,
        session: Session,
        username: str,
        account: Account,
        previous: Optional[Account],
    ) -> None:
        if previous is not None:
            known = len(previous.history)
            player = session.get(PlayerModel, username)
            if player is not None and account.history[:known] == previous.history:
                player.balance = account.balance
                session.add(player)
                self._insert_entries(session, username, account, start=known)
                return
            self._delete_rows(session, username)

        session.add(PlayerModel(username=username, balance=account.balance))
        session.flush()
        self._insert_entries(session, username, account)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def load(self) -> LedgerState:
        """Return the persisted state, initialising or recovering the file as needed.

        ``created`` is set when this call had to create the backing file.
        """
        self._ensure_directory()
        self.created = False
        if not self.path.exists():
            state: LedgerState = {}
            self.save(state)
            self.created = True
            logger.info("store.initialised", extra={"path": str(self.path)})
            return state

        try:
            self._check_schema()
            self._create_schema()
            state = self._read_state()
        except SchemaMismatchError:
            logger.warning(
                "store.schema_mismatch",
                extra={"path": str(self.path)},
                exc_info=True,
            )
            self._quarantine()
            self._create_schema()
            self._persisted = {}
            return {}
        except OperationalError as exc:
            raise StorageError(f"Unable to open ledger state at {self.path}") from exc
        except DatabaseError:
            logger.warning(
                "store.unreadable",
                extra={"path": str(self.path)},
                exc_info=True,
            )
            self._quarantine()
            self._create_schema()
            self._persisted = {}
            return {}
        except (InvalidStateError, ValueError, TypeError):
            logger.warning(
                "store.invalid_state",
                extra={"path": str(self.path)},
                exc_info=True,
            )
            self._persisted = None
            return {}
        except (SQLAlchemyError, OSError) as exc:
            raise StorageError(f"Unable to read ledger state from {self.path}") from exc

        self._persisted = dict(state)
        logger.info(
            "store.loaded",
            extra={"path": str(self.path), "accounts": len(state)},
        )
        return state

    def save(self, state: Mapping[str, Account]) -> None:
        """Make the persisted state equal ``state``, in one transaction."""
        try:
            if not self._schema_ready:
                self._create_schema()
            with Session(self._get_engine()) as session:
                if self._persisted is None:
                    self._delete_rows(session)
                    previous: Mapping[str, Account] = {}
                else:
                    previous = self._persisted

                for username in previous.keys() - state.keys():
                    self._delete_rows(session, username)

                for username, account in state.items():
                    before = previous.get(username)
                    if before is account:
                        continue
                    self._write_account(session, username, account, before)
                session.commit()
        except (SQLAlchemyError, OSError, OverflowError) as exc:
            self._persisted = None
            raise StorageError(f"Unable to persist ledger state to {self.path}") from exc

        self._persisted = dict(state)

    def import_legacy_json(self, path: Path) -> LedgerState:
        """Read a ``balances.json`` document; unreadable content yields an empty state."""
        try:
            document = json.loads(Path(path).read_text(encoding="utf-8"))
            state = parse_legacy_document(document)
        except (OSError, ValueError):
            logger.warning(
                "store.legacy_unreadable",
                extra={"path": str(path)},
                exc_info=True,
            )
            return {}

        logger.info(
            "store.legacy_imported",
            extra={"path": str(path), "accounts": len(state)},
        )
        return state
