from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    USER = "user"


class TransactionType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WeeklyPaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class LoginSurface(str, Enum):
    """Which login form a credential was submitted through."""

    STUDENT = "student"
    ADMIN = "admin"
