"""Balances and monthly figures. Only approved transactions count."""

from collections import defaultdict
from typing import Dict, List, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from kas.api.v1.weekly_payments.service import compute_unpaid_amount
from kas.auth.schemas import CurrentUser
from kas.core.clock import as_utc
from kas.core.models import Transaction
from kas.core.models.transaction import (
    TRANSACTION_STATUS_APPROVED,
    TRANSACTION_TYPE_EXPENSE,
    TRANSACTION_TYPE_INCOME,
)

from .schemas import MonthlyStatistic, StatisticsResponse, SummaryResponse


async def _approved_total(db: AsyncSession, txn_type: str) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.type == txn_type,
            Transaction.status == TRANSACTION_STATUS_APPROVED,
        )
    )
    return int(result.scalar_one())


async def get_summary(db: AsyncSession) -> SummaryResponse:
    income = await _approved_total(db, TRANSACTION_TYPE_INCOME)
    expense = await _approved_total(db, TRANSACTION_TYPE_EXPENSE)
    return SummaryResponse(total_kas=income, total_expense=expense, balance=income - expense)


async def get_monthly_statistics(db: AsyncSession) -> List[MonthlyStatistic]:
    rows = (
        await db.execute(
            select(Transaction.created_at, Transaction.type, Transaction.amount).where(
                Transaction.status == TRANSACTION_STATUS_APPROVED
            )
        )
    ).all()
    buckets: Dict[Tuple[int, int], Dict[str, int]] = defaultdict(lambda: {"income": 0, "expense": 0})
    for created_at, txn_type, amount in rows:
        created_at = as_utc(created_at)
        buckets[(created_at.year, created_at.month)][txn_type] += amount
    return [
        MonthlyStatistic(year=year, month=month, income=b["income"], expense=b["expense"])
        for (year, month), b in sorted(buckets.items())
    ]


async def get_statistics(db: AsyncSession, current_user: CurrentUser) -> StatisticsResponse:
    summary = await get_summary(db)
    unpaid = None
    if not current_user.is_admin:
        unpaid = await compute_unpaid_amount(db, current_user.id)
    return StatisticsResponse(
        total_income=summary.total_kas,
        total_expense=summary.total_expense,
        balance=summary.balance,
        monthly=await get_monthly_statistics(db),
        unpaid_amount=unpaid,
    )
