from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from kas.core.enums import TransactionStatus, TransactionType


class TransactionCreate(BaseModel):
    """A student's income/expense request. Always starts as pending."""

    amount: int = Field(..., gt=0, description="Whole Rupiah")
    description: str = Field(..., min_length=1, max_length=2000)
    type: TransactionType = TransactionType.INCOME


class AdminTransactionCreate(TransactionCreate):
    user_id: UUID = Field(..., alias="userId")
    status: TransactionStatus = TransactionStatus.PENDING

    model_config = {"populate_by_name": True}


class ExpenseCreate(BaseModel):
    amount: int = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=2000)


class TransactionOwner(BaseModel):
    id: UUID
    username: str
    full_name: str
    kelas: Optional[str] = None
    nis: Optional[str] = None

    class Config:
        from_attributes = True


class TransactionResponse(BaseModel):
    id: UUID
    user_id: UUID
    amount: int
    description: str
    type: TransactionType
    status: TransactionStatus
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[UUID] = None
    rejected_at: Optional[datetime] = None
    created_at: datetime
    user: Optional[TransactionOwner] = None

    class Config:
        from_attributes = True


class TransactionActionResponse(BaseModel):
    success: bool = True
    message: str
    transaction: TransactionResponse
