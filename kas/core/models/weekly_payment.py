"""Weekly dues ledger: one row per student per week, generated month by month."""

import uuid

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from kas.core.clock import utcnow
from kas.db.session import Base


PAYMENT_STATUS_UNPAID = "unpaid"
PAYMENT_STATUS_PAID = "paid"


class WeeklyPayment(Base):
    __tablename__ = "weekly_payments"
    __table_args__ = (
        UniqueConstraint("student_id", "year", "month", "week_number", name="uq_weekly_payment_student_week"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    student_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    week_number = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    payment_status = Column(String(20), nullable=False, default=PAYMENT_STATUS_UNPAID)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    student = relationship("User", foreign_keys=[student_id], lazy="joined")
