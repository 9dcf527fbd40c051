"""
Weekly dues ledger.

Every student owes one weekly unit per week. The weeks of a month are the
Monday-to-Sunday weeks whose Monday falls in that month, numbered from 1.
Payments settle the oldest unpaid weeks first.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional, Tuple
from uuid import UUID

from fastapi import status
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kas.auth.models import User
from kas.auth.schemas import CurrentUser
from kas.core.clock import utcnow
from kas.core.config import settings
from kas.core.enums import Role
from kas.core.exceptions import ConflictError, NotFoundError, ServiceError, ValidationError
from kas.core.models import Transaction, WeeklyPayment
from kas.core.models.transaction import TRANSACTION_STATUS_APPROVED, TRANSACTION_TYPE_INCOME
from kas.core.models.weekly_payment import PAYMENT_STATUS_PAID, PAYMENT_STATUS_UNPAID

from .schemas import UnpaidAmountResponse, WeeklyPaymentResponse

logger = logging.getLogger(__name__)


@dataclass
class PaymentResult:
    weeks_paid: int
    amount_applied: int
    remainder: int


def weeks_of_month(year: int, month: int) -> List[Tuple[int, date, date]]:
    """(week_number, start, end) for each Monday that falls in the month."""
    first = date(year, month, 1)
    monday = first + timedelta(days=(7 - first.weekday()) % 7)
    weeks: List[Tuple[int, date, date]] = []
    week_number = 1
    while monday.month == month:
        weeks.append((week_number, monday, monday + timedelta(days=6)))
        monday += timedelta(days=7)
        week_number += 1
    return weeks


async def generate_entries(db: AsyncSession, year: int, month: int) -> int:
    """Create missing unpaid rows for every student for the month. Returns rows inserted."""
    weeks = weeks_of_month(year, month)
    students = (
        await db.execute(select(User.id).where(User.role == Role.USER.value))
    ).scalars().all()
    existing = {
        (row[0], row[1])
        for row in (
            await db.execute(
                select(WeeklyPayment.student_id, WeeklyPayment.week_number).where(
                    WeeklyPayment.year == year,
                    WeeklyPayment.month == month,
                )
            )
        ).all()
    }

    created = 0
    for student_id in students:
        for week_number, start, end in weeks:
            if (student_id, week_number) in existing:
                continue
            db.add(
                WeeklyPayment(
                    student_id=student_id,
                    year=year,
                    month=month,
                    week_number=week_number,
                    start_date=start,
                    end_date=end,
                    payment_status=PAYMENT_STATUS_UNPAID,
                )
            )
            created += 1
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Weekly payments for this month were generated concurrently; retry") from e
    except SQLAlchemyError as e:
        await db.rollback()
        raise ServiceError("Failed to generate weekly payments", status.HTTP_500_INTERNAL_SERVER_ERROR) from e
    logger.info("Generated %d weekly payment entries for %02d/%d", created, month, year)
    return created


async def _count_unpaid(db: AsyncSession, student_id: UUID) -> int:
    result = await db.execute(
        select(func.count(WeeklyPayment.id)).where(
            WeeklyPayment.student_id == student_id,
            WeeklyPayment.payment_status == PAYMENT_STATUS_UNPAID,
        )
    )
    return int(result.scalar_one() or 0)


async def compute_unpaid_amount(db: AsyncSession, student_id: UUID) -> int:
    return await _count_unpaid(db, student_id) * settings.weekly_unit


async def get_unpaid(db: AsyncSession, student_id: UUID) -> UnpaidAmountResponse:
    weeks = await _count_unpaid(db, student_id)
    return UnpaidAmountResponse(
        student_id=student_id,
        unpaid_weeks=weeks,
        unpaid_amount=weeks * settings.weekly_unit,
    )


def validate_amount(amount: int) -> None:
    unit = settings.weekly_unit
    if amount <= 0:
        raise ValidationError("Amount must be positive")
    if amount % unit != 0:
        raise ValidationError(f"Amount must be a multiple of {unit}")


async def process_payment(
    db: AsyncSession,
    student_id: UUID,
    amount: int,
    actor: Optional[CurrentUser] = None,
) -> PaymentResult:
    """Mark the oldest unpaid weeks paid, as many as `amount` buys."""
    validate_amount(amount)
    student = await db.get(User, student_id)
    if not student or student.role != Role.USER.value:
        raise NotFoundError("Student not found")

    unit = settings.weekly_unit
    affordable = amount // unit
    weeks_paid = 0
    now = utcnow()
    try:
        # A concurrent payment can settle some of the weeks picked here first;
        # pick again until the amount is used up or nothing is left unpaid.
        while weeks_paid < affordable:
            oldest_unpaid = (
                await db.execute(
                    select(WeeklyPayment.id)
                    .where(
                        WeeklyPayment.student_id == student_id,
                        WeeklyPayment.payment_status == PAYMENT_STATUS_UNPAID,
                    )
                    .order_by(WeeklyPayment.year, WeeklyPayment.month, WeeklyPayment.week_number)
                    .limit(affordable - weeks_paid)
                )
            ).scalars().all()
            if not oldest_unpaid:
                break
            result = await db.execute(
                update(WeeklyPayment)
                .where(
                    WeeklyPayment.id.in_(oldest_unpaid),
                    WeeklyPayment.payment_status == PAYMENT_STATUS_UNPAID,
                )
                .values(payment_status=PAYMENT_STATUS_PAID, paid_at=now)
                .execution_options(synchronize_session=False)
            )
            weeks_paid += result.rowcount or 0
        if weeks_paid:
            is_admin = actor is not None and actor.is_admin
            db.add(
                Transaction(
                    user_id=student_id,
                    amount=weeks_paid * unit,
                    description=f"Weekly kas payment for {weeks_paid} week(s)",
                    type=TRANSACTION_TYPE_INCOME,
                    status=TRANSACTION_STATUS_APPROVED,
                    approved_by=actor.id if is_admin else None,
                    approved_at=now,
                )
            )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("Weekly payment for %s failed", student_id)
        raise ServiceError("Failed to process payment", status.HTTP_500_INTERNAL_SERVER_ERROR) from e

    applied = weeks_paid * unit
    logger.info(
        "Weekly payment for %s: tendered %d, %d week(s) paid, remainder %d",
        student.username, amount, weeks_paid, amount - applied,
    )
    return PaymentResult(weeks_paid=weeks_paid, amount_applied=applied, remainder=amount - applied)


async def list_payments(
    db: AsyncSession,
    *,
    student_id: Optional[UUID] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
    status_filter: Optional[str] = None,
) -> List[WeeklyPaymentResponse]:
    q = select(WeeklyPayment)
    if student_id:
        q = q.where(WeeklyPayment.student_id == student_id)
    if year:
        q = q.where(WeeklyPayment.year == year)
    if month:
        q = q.where(WeeklyPayment.month == month)
    if status_filter:
        q = q.where(WeeklyPayment.payment_status == status_filter)
    q = q.order_by(
        WeeklyPayment.year.desc(),
        WeeklyPayment.month.desc(),
        WeeklyPayment.week_number,
    )
    result = await db.execute(q)
    return [WeeklyPaymentResponse.model_validate(p) for p in result.scalars().all()]
