from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy.engine import Engine
from sqlmodel import create_engine

from ..models import db as _db_models  # noqa: F401 - ensure models register with metadata


def create_engine_for_path(path: Path) -> Engine:
    connect_args: dict[str, Any] = {"check_same_thread": False}
    return create_engine(f"sqlite:///{path}", echo=False, connect_args=connect_args)
