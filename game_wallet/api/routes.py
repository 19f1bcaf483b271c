from typing import Optional, Union

from fastapi import APIRouter, Depends

from ..core.dependencies import get_ledger_service
from ..models import (
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
)
from ..services import LedgerService


router = APIRouter(prefix="/api", tags=["players"])

@router.get("/profile", response_model=ProfileResponse)
def get_profile(
    username: Optional[str] = None,
    service: LedgerService = Depends(get_ledger_service),
) -> ProfileResponse:
    account = service.get_or_create_account(username)
    return ProfileResponse(username=account.username, balance=account.balance)

@router.post("/profile/save", response_model=OkResponse)
def save_profile(
    payload: ProfileSaveRequest,
    service: LedgerService = Depends(get_ledger_service),
) -> OkResponse:
    service.save_profile(payload.username, payload.balance)
    return OkResponse()

@router.post("/game/charge", response_model=BalanceResponse, response_model_exclude_none=True)
def charge(
    payload: GameMovementRequest,
    service: LedgerService = Depends(get_ledger_service),
) -> BalanceResponse:
    result = service.charge(payload.username, payload.game, payload.amount, payload.desc)
    return BalanceResponse(ok=result.ok, balance=result.balance, error=result.error)

@router.post("/game/payout", response_model=BalanceResponse, response_model_exclude_none=True)
def payout(
    payload: GameMovementRequest,
    service: LedgerService = Depends(get_ledger_service),
) -> BalanceResponse:
    account = service.payout(payload.username, payload.game, payload.amount, payload.desc)
    return BalanceResponse(balance=account.balance)

admin_router = APIRouter(prefix="/api/admin", tags=["admin"])

@admin_router.get("/users", response_model=UserListResponse)
def list_users(service: LedgerService = Depends(get_ledger_service)) -> UserListResponse:
    return UserListResponse(users=service.list_users())

@admin_router.get(
    "/user-detail",
    response_model=Union[UserDetailResponse, ErrorResponse],
)
def get_user_detail(
    username: Optional[str] = None,
    service: LedgerService = Depends(get_ledger_service),
) -> Union[UserDetailResponse, ErrorResponse]:
    account = service.get_user_detail(username)
    if account is None:
        return ErrorResponse(error="NO_SUCH_USER")
    return UserDetailResponse(
        username=account.username,
        balance=account.balance,
        history=[
            HistoryEntryResponse(ts=entry.ts, game=entry.game, delta=entry.delta, desc=entry.desc)
            for entry in account.history
        ],
    )

@admin_router.post("/set-balance", response_model=BalanceResponse, response_model_exclude_none=True)
def set_balance(
    payload: AdminSetBalanceRequest,
    service: LedgerService = Depends(get_ledger_service),
) -> BalanceResponse:
    account = service.admin_set_balance(payload.username, payload.balance, payload.note)
    return BalanceResponse(balance=account.balance)

@admin_router.post("/delete-user", response_model=OkResponse)
def delete_user(
    payload: AdminDeleteRequest,
    service: LedgerService = Depends(get_ledger_service),
) -> OkResponse:
    service.admin_delete_user(payload.username)
    return OkResponse()

__all__ = ["router", "admin_router"]
