from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from kas.auth.dependencies import ensure_self_or_admin, get_current_user
from kas.auth.rbac import require_admin
from kas.auth.schemas import CurrentUser
from kas.core.enums import WeeklyPaymentStatus
from kas.core.exceptions import ServiceError, to_http_exception
from kas.db.session import get_db

from .schemas import (
    GenerateRequest,
    GenerateResponse,
    ProcessPaymentRequest,
    ProcessPaymentResponse,
    UnpaidAmountResponse,
    WeeklyPaymentListResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/weekly-payments", tags=["weekly-payments"])


@router.get("", response_model=WeeklyPaymentListResponse)
async def list_weekly_payments(
    student_id: Optional[UUID] = Query(None, alias="studentId"),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    status_filter: Optional[WeeklyPaymentStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> WeeklyPaymentListResponse:
    """Weekly dues rows. Students only ever see their own."""
    if student_id:
        ensure_self_or_admin(current_user, student_id)
    elif not current_user.is_admin:
        student_id = current_user.id

    payments = await service.list_payments(
        db,
        student_id=student_id,
        year=year,
        month=month,
        status_filter=status_filter.value if status_filter else None,
    )
    unpaid_amount = await service.compute_unpaid_amount(db, student_id) if student_id else None
    return WeeklyPaymentListResponse(payments=payments, unpaid_amount=unpaid_amount)


@router.get("/unpaid/{student_id}", response_model=UnpaidAmountResponse)
async def get_unpaid_amount(
    student_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> UnpaidAmountResponse:
    ensure_self_or_admin(current_user, student_id)
    return await service.get_unpaid(db, student_id)


@router.post("/generate", response_model=GenerateResponse)
async def generate_weekly_payments(
    payload: GenerateRequest,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> GenerateResponse:
    try:
        created = await service.generate_entries(db, payload.year, payload.month)
    except ServiceError as e:
        raise to_http_exception(e)
    return GenerateResponse(
        message=f"Generated {created} weekly payment entries for {payload.month}/{payload.year}",
        entries_generated=created,
    )


@router.post("/process", response_model=ProcessPaymentResponse)
async def process_weekly_payment(
    payload: ProcessPaymentRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> ProcessPaymentResponse:
    """Pay weekly dues. Admins may pay for any student, students only for themselves."""
    try:
        service.validate_amount(payload.amount)
    except ServiceError as e:
        raise to_http_exception(e)
    ensure_self_or_admin(current_user, payload.student_id)
    try:
        result = await service.process_payment(db, payload.student_id, payload.amount, actor=current_user)
    except ServiceError as e:
        raise to_http_exception(e)
    return ProcessPaymentResponse(
        message=f"Successfully paid for {result.weeks_paid} weeks",
        weeks_paid=result.weeks_paid,
        amount_applied=result.amount_applied,
        remainder=result.remainder,
    )
