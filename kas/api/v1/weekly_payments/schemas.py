from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from kas.api.v1.transactions.schemas import TransactionOwner
from kas.core.enums import WeeklyPaymentStatus


class GenerateRequest(BaseModel):
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)


class GenerateResponse(BaseModel):
    success: bool = True
    message: str
    entries_generated: int


class ProcessPaymentRequest(BaseModel):
    student_id: UUID = Field(..., alias="studentId")
    amount: int = Field(..., description="Must be a positive multiple of the weekly unit")

    model_config = {"populate_by_name": True}


class ProcessPaymentResponse(BaseModel):
    success: bool = True
    message: str
    weeks_paid: int
    amount_applied: int
    # Tendered amount that did not buy a week; reported, never banked
    remainder: int


class WeeklyPaymentResponse(BaseModel):
    id: UUID
    student_id: UUID
    year: int
    month: int
    week_number: int
    start_date: date
    end_date: date
    payment_status: WeeklyPaymentStatus
    paid_at: Optional[datetime] = None
    student: Optional[TransactionOwner] = None

    class Config:
        from_attributes = True


class WeeklyPaymentListResponse(BaseModel):
    success: bool = True
    payments: List[WeeklyPaymentResponse]
    unpaid_amount: Optional[int] = None


class UnpaidAmountResponse(BaseModel):
    student_id: UUID
    unpaid_weeks: int
    unpaid_amount: int
