from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from kas.auth.dependencies import get_current_user
from kas.auth.rbac import require_admin
from kas.auth.schemas import CurrentUser
from kas.core.enums import TransactionStatus, TransactionType
from kas.core.exceptions import ServiceError, to_http_exception
from kas.db.session import get_db

from .schemas import (
    AdminTransactionCreate,
    ExpenseCreate,
    TransactionActionResponse,
    TransactionCreate,
    TransactionResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/transactions", tags=["transactions"])
admin_router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_transaction(
    payload: TransactionCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TransactionResponse:
    """Submit an income/expense request; it waits for admin approval."""
    try:
        return await service.submit_transaction(db, current_user, payload)
    except ServiceError as e:
        raise to_http_exception(e)


@router.get("", response_model=List[TransactionResponse])
async def list_transactions(
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    type_filter: Optional[TransactionType] = Query(None, alias="type"),
    mine: bool = False,
    limit: Optional[int] = Query(None, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> List[TransactionResponse]:
    """Transaction history of the class, newest first. `mine=true` restricts to the caller's own."""
    return await service.list_transactions(
        db,
        status_filter=status_filter.value if status_filter else None,
        type_filter=type_filter.value if type_filter else None,
        user_id=current_user.id if mine else None,
        limit=limit,
    )


@admin_router.get("/transactions", response_model=List[TransactionResponse])
async def admin_list_transactions(
    status_filter: Optional[TransactionStatus] = Query(None, alias="status"),
    user_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> List[TransactionResponse]:
    return await service.list_transactions(
        db,
        status_filter=status_filter.value if status_filter else None,
        user_id=user_id,
    )


@admin_router.post(
    "/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def admin_create_transaction(
    payload: AdminTransactionCreate,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> TransactionResponse:
    try:
        return await service.create_transaction_admin(db, admin, payload)
    except ServiceError as e:
        raise to_http_exception(e)


@admin_router.post(
    "/transactions/{transaction_id}/approve",
    response_model=TransactionActionResponse,
)
async def approve_transaction(
    transaction_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> TransactionActionResponse:
    """Approve a pending transaction. 409 if someone already approved or rejected it."""
    try:
        txn = await service.approve_transaction(db, transaction_id, admin)
    except ServiceError as e:
        raise to_http_exception(e)
    return TransactionActionResponse(message="Transaction approved successfully", transaction=txn)


@admin_router.post(
    "/transactions/{transaction_id}/reject",
    response_model=TransactionActionResponse,
)
async def reject_transaction(
    transaction_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> TransactionActionResponse:
    """Reject a pending transaction. 409 if someone already approved or rejected it."""
    try:
        txn = await service.reject_transaction(db, transaction_id, admin)
    except ServiceError as e:
        raise to_http_exception(e)
    return TransactionActionResponse(message="Transaction rejected successfully", transaction=txn)


@admin_router.post(
    "/expenses",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_expense(
    payload: ExpenseCreate,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> TransactionResponse:
    try:
        return await service.record_expense(db, admin, payload)
    except ServiceError as e:
        raise to_http_exception(e)


@admin_router.get("/expenses", response_model=List[TransactionResponse])
async def list_expenses(
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> List[TransactionResponse]:
    return await service.list_transactions(
        db,
        status_filter=TransactionStatus.APPROVED.value,
        type_filter=TransactionType.EXPENSE.value,
    )
