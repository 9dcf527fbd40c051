"""Transaction submission, listing and the pending -> approved/rejected state machine."""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import status
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kas.auth.models import User
from kas.auth.schemas import CurrentUser
from kas.core.clock import utcnow
from kas.core.exceptions import ConflictError, NotFoundError, ServiceError
from kas.core.models import Transaction
from kas.core.models.transaction import (
    TRANSACTION_STATUS_APPROVED,
    TRANSACTION_STATUS_PENDING,
    TRANSACTION_STATUS_REJECTED,
    TRANSACTION_TYPE_EXPENSE,
)

from .schemas import AdminTransactionCreate, ExpenseCreate, TransactionCreate, TransactionResponse

logger = logging.getLogger(__name__)


def _to_response(t: Transaction) -> TransactionResponse:
    return TransactionResponse.model_validate(t)


async def _save(db: AsyncSession, txn: Transaction, action: str) -> TransactionResponse:
    db.add(txn)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise ServiceError(f"Failed to {action}", status.HTTP_500_INTERNAL_SERVER_ERROR) from e
    # Reload with the owner eagerly joined
    txn = await db.get(Transaction, txn.id, populate_existing=True)
    return _to_response(txn)


async def submit_transaction(
    db: AsyncSession,
    current_user: CurrentUser,
    payload: TransactionCreate,
) -> TransactionResponse:
    txn = Transaction(
        user_id=current_user.id,
        amount=payload.amount,
        description=payload.description.strip(),
        type=payload.type.value,
        status=TRANSACTION_STATUS_PENDING,
    )
    result = await _save(db, txn, "add transaction")
    logger.info("Transaction %s submitted by %s (%s %d)", result.id, current_user.username, payload.type.value, payload.amount)
    return result


async def create_transaction_admin(
    db: AsyncSession,
    admin: CurrentUser,
    payload: AdminTransactionCreate,
) -> TransactionResponse:
    """Record a transaction for any user with an explicit status."""
    owner = await db.get(User, payload.user_id)
    if not owner:
        raise NotFoundError("User not found")
    now = utcnow()
    txn = Transaction(
        user_id=owner.id,
        amount=payload.amount,
        description=payload.description.strip(),
        type=payload.type.value,
        status=payload.status.value,
    )
    if payload.status.value == TRANSACTION_STATUS_APPROVED:
        txn.approved_by, txn.approved_at = admin.id, now
    elif payload.status.value == TRANSACTION_STATUS_REJECTED:
        txn.rejected_by, txn.rejected_at = admin.id, now
    return await _save(db, txn, "add transaction")


async def record_expense(
    db: AsyncSession,
    admin: CurrentUser,
    payload: ExpenseCreate,
) -> TransactionResponse:
    """Admin expenses are stored as already-approved expense transactions."""
    txn = Transaction(
        user_id=admin.id,
        amount=payload.amount,
        description=payload.description.strip(),
        type=TRANSACTION_TYPE_EXPENSE,
        status=TRANSACTION_STATUS_APPROVED,
        approved_by=admin.id,
        approved_at=utcnow(),
    )
    return await _save(db, txn, "add expense")


async def list_transactions(
    db: AsyncSession,
    *,
    status_filter: Optional[str] = None,
    type_filter: Optional[str] = None,
    user_id: Optional[UUID] = None,
    limit: Optional[int] = None,
) -> List[TransactionResponse]:
    q = select(Transaction)
    if status_filter:
        q = q.where(Transaction.status == status_filter)
    if type_filter:
        q = q.where(Transaction.type == type_filter)
    if user_id:
        q = q.where(Transaction.user_id == user_id)
    q = q.order_by(Transaction.created_at.desc())
    if limit:
        q = q.limit(limit)
    result = await db.execute(q)
    return [_to_response(t) for t in result.scalars().all()]


async def _transition(
    db: AsyncSession,
    transaction_id: UUID,
    actor: CurrentUser,
    target_status: str,
) -> TransactionResponse:
    now = utcnow()
    values = {"status": target_status}
    if target_status == TRANSACTION_STATUS_APPROVED:
        values.update(approved_by=actor.id, approved_at=now)
    else:
        values.update(rejected_by=actor.id, rejected_at=now)

    # Conditional update: only a still-pending row can change, so concurrent
    # approve/reject calls cannot both succeed.
    stmt = (
        update(Transaction)
        .where(
            Transaction.id == transaction_id,
            Transaction.status == TRANSACTION_STATUS_PENDING,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    try:
        result = await db.execute(stmt)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("Failed to set transaction %s to %s", transaction_id, target_status)
        raise ServiceError("Failed to update transaction", status.HTTP_500_INTERNAL_SERVER_ERROR) from e

    if result.rowcount == 0:
        existing = await db.get(Transaction, transaction_id, populate_existing=True)
        if not existing:
            raise NotFoundError("Transaction not found")
        logger.info(
            "Transaction %s already %s; %s by %s refused",
            transaction_id, existing.status, target_status, actor.username,
        )
        raise ConflictError("Transaction already processed")

    txn = await db.get(Transaction, transaction_id, populate_existing=True)
    logger.info("Transaction %s %s by %s", transaction_id, target_status, actor.username)
    return _to_response(txn)


async def approve_transaction(
    db: AsyncSession,
    transaction_id: UUID,
    actor: CurrentUser,
) -> TransactionResponse:
    return await _transition(db, transaction_id, actor, TRANSACTION_STATUS_APPROVED)


async def reject_transaction(
    db: AsyncSession,
    transaction_id: UUID,
    actor: CurrentUser,
) -> TransactionResponse:
    return await _transition(db, transaction_id, actor, TRANSACTION_STATUS_REJECTED)
