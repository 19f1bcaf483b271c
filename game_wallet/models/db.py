from __future__ import annotations
from datetime import datetime, UTC
from typing import Optional
from sqlmodel import Field, SQLModel

class Player(SQLModel, table=True):
    username: str = Field(primary_key=True)
    balance: int = Field(default=0, ge=0)

class HistoryRecord(SQLModel, table=True):
    __tablename__ = "history_entry"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(foreign_key="player.username", index=True)
    position: int = Field(ge=0)
    ts: datetime = Field(default_factory=lambda: datetime.now(UTC))
    game: str
    delta: int
    description: str
