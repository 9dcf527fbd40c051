from kas.core.models.transaction import Transaction
from kas.core.models.weekly_payment import WeeklyPayment

__all__ = [
    "Transaction",
    "WeeklyPayment",
]
