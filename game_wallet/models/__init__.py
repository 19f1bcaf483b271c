from .db import HistoryRecord as HistoryRecordModel
from .db import Player as PlayerModel
from .records import Account, HistoryEntry, LedgerState
from .schemas import (
    AdminDeleteRequest,
    AdminSetBalanceRequest,
    BalanceResponse,
    ErrorResponse,
    GameMovementRequest,
    HistoryEntryResponse,
    OkResponse,
    ProfileResponse,
    ProfileSaveRequest,
    UserDetailResponse,
    UserListResponse,
    UserSummary,
)

__all__ = [
    "Account",
    "HistoryEntry",
    "LedgerState",
    "AdminDeleteRequest",
    "AdminSetBalanceRequest",
    "BalanceResponse",
    "ErrorResponse",
    "GameMovementRequest",
    "HistoryEntryResponse",
    "OkResponse",
    "ProfileResponse",
    "ProfileSaveRequest",
    "UserDetailResponse",
    "UserListResponse",
    "UserSummary",
    "PlayerModel",
    "HistoryRecordModel",
]
