from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator


def _label(value: Any) -> Any:
    # Clients may send numeric game ids or notes; store them as text.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class ProfileSaveRequest(BaseModel):
    username: Optional[str] = None
    balance: Any = Field(default=None, description="Balance to store; ignored unless numeric")


class GameMovementRequest(BaseModel):
    username: Optional[str] = None
    game: Optional[str] = Field(default=None, description="Label of the game posting the movement")
    amount: Any = Field(default=None, description="Amount in whole coins")
    desc: Optional[str] = None

    @field_validator("game", "desc", mode="before")
    @classmethod
    def coerce_labels(cls, value: Any) -> Any:
        return _label(value)


class AdminSetBalanceRequest(BaseModel):
    username: Optional[str] = None
    balance: Any = None
    note: Optional[str] = None

    @field_validator("note", mode="before")
    @classmethod
    def coerce_note(cls, value: Any) -> Any:
        return _label(value)


class AdminDeleteRequest(BaseModel):
    username: Optional[str] = None


class OkResponse(BaseModel):
    ok: Literal[True] = True


class BalanceResponse(BaseModel):
    ok: bool = True
    balance: int = Field(..., ge=0, description="Balance in whole coins")
    error: Optional[str] = None


class ProfileResponse(BaseModel):
    ok: Literal[True] = True
    username: str
    balance: int = Field(..., ge=0)


class HistoryEntryResponse(BaseModel):
    ts: datetime
    game: str
    delta: int
    desc: str


class UserSummary(BaseModel):
    username: str
    balance: int


class UserListResponse(BaseModel):
    ok: Literal[True] = True
    users: list[UserSummary]


class UserDetailResponse(BaseModel):
    ok: Literal[True] = True
    username: str
    balance: int
    history: list[HistoryEntryResponse]


class ErrorResponse(BaseModel):
    ok: Literal[False] = False
    error: str
