from typing import List, Optional

from pydantic import BaseModel


class SummaryResponse(BaseModel):
    success: bool = True
    total_kas: int
    total_expense: int
    balance: int


class MonthlyStatistic(BaseModel):
    year: int
    month: int
    income: int
    expense: int


class StatisticsResponse(BaseModel):
    success: bool = True
    total_income: int
    total_expense: int
    balance: int
    monthly: List[MonthlyStatistic]
    unpaid_amount: Optional[int] = None
