import asyncio
from datetime import date
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kas.api.v1.weekly_payments.service import (
    generate_entries,
    process_payment,
    validate_amount,
    weeks_of_month,
)
from kas.auth.models import User
from kas.core.exceptions import NotFoundError, ValidationError
from kas.core.models import Transaction, WeeklyPayment


async def _seed_weeks(db: AsyncSession, student: User, statuses) -> None:
    """Insert January 2024 weeks for a student with the given statuses, oldest first."""
    for week_number, start, end in weeks_of_month(2024, 1)[: len(statuses)]:
        db.add(
            WeeklyPayment(
                student_id=student.id,
                year=2024,
                month=1,
                week_number=week_number,
                start_date=start,
                end_date=end,
                payment_status=statuses[week_number - 1],
            )
        )
    await db.commit()


async def _statuses(db: AsyncSession, student: User):
    result = await db.execute(
        select(WeeklyPayment.week_number, WeeklyPayment.payment_status)
        .where(WeeklyPayment.student_id == student.id)
        .order_by(WeeklyPayment.year, WeeklyPayment.month, WeeklyPayment.week_number)
    )
    return [status for _, status in result.all()]


def test_weeks_of_month_starting_on_monday() -> None:
    weeks = weeks_of_month(2024, 1)
    assert [w[0] for w in weeks] == [1, 2, 3, 4, 5]
    assert weeks[0][1:] == (date(2024, 1, 1), date(2024, 1, 7))
    # Last week spills into the next month
    assert weeks[-1][1:] == (date(2024, 1, 29), date(2024, 2, 4))


def test_weeks_of_month_skips_leading_partial_week() -> None:
    # 1 October 2024 is a Tuesday
    weeks = weeks_of_month(2024, 10)
    assert [w[1] for w in weeks] == [date(2024, 10, 7), date(2024, 10, 14), date(2024, 10, 21), date(2024, 10, 28)]
    assert all(end.weekday() == 6 for _, _, end in weeks)


def test_weeks_of_month_four_week_february() -> None:
    assert len(weeks_of_month(2021, 2)) == 4


def test_validate_amount() -> None:
    validate_amount(5000)
    validate_amount(25000)
    with pytest.raises(ValidationError, match="multiple of 5000"):
        validate_amount(12000)
    with pytest.raises(ValidationError, match="positive"):
        validate_amount(0)
    with pytest.raises(ValidationError, match="positive"):
        validate_amount(-5000)


@pytest.mark.asyncio
async def test_generate_is_idempotent(
    db_session: AsyncSession, admin_user: User, student_user: User, other_student: User
) -> None:
    assert await generate_entries(db_session, 2024, 1) == 10
    assert await generate_entries(db_session, 2024, 1) == 0

    rows = (await db_session.execute(select(WeeklyPayment))).scalars().all()
    assert {r.student_id for r in rows} == {student_user.id, other_student.id}
    assert all(r.payment_status == "unpaid" for r in rows)


@pytest.mark.asyncio
async def test_generate_endpoint_admin_only(
    client: AsyncClient, admin_headers, student_headers, student_user: User
) -> None:
    forbidden = await client.post("/api/v1/weekly-payments/generate", headers=student_headers, json={"year": 2024, "month": 1})
    assert forbidden.status_code == 403

    response = await client.post("/api/v1/weekly-payments/generate", headers=admin_headers, json={"year": 2024, "month": 1})
    assert response.status_code == 200
    assert response.json()["entries_generated"] == 5

    again = await client.post("/api/v1/weekly-payments/generate", headers=admin_headers, json={"year": 2024, "month": 1})
    assert again.json()["entries_generated"] == 0


@pytest.mark.asyncio
async def test_payment_pays_oldest_unpaid_and_reports_remainder(
    client: AsyncClient, admin_headers, student_user: User, db_session: AsyncSession
) -> None:
    await _seed_weeks(db_session, student_user, ["unpaid", "unpaid", "paid"])

    response = await client.post(
        "/api/v1/weekly-payments/process",
        headers=admin_headers,
        json={"studentId": str(student_user.id), "amount": 15000},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["weeks_paid"] == 2
    assert data["amount_applied"] == 10000
    assert data["remainder"] == 5000

    assert await _statuses(db_session, student_user) == ["paid", "paid", "paid"]

    unpaid = await client.get(f"/api/v1/weekly-payments/unpaid/{student_user.id}", headers=admin_headers)
    assert unpaid.json()["unpaid_amount"] == 0

    # The applied amount, not the tendered one, is booked as approved income
    txns = (await db_session.execute(select(Transaction))).scalars().all()
    assert [(t.amount, t.type, t.status) for t in txns] == [(10000, "income", "approved")]


@pytest.mark.asyncio
async def test_payment_settles_in_week_order(db_session: AsyncSession, student_user: User) -> None:
    await _seed_weeks(db_session, student_user, ["paid", "unpaid", "unpaid", "unpaid", "unpaid"])

    result = await process_payment(db_session, student_user.id, 10000)
    assert (result.weeks_paid, result.remainder) == (2, 0)
    assert await _statuses(db_session, student_user) == ["paid", "paid", "paid", "unpaid", "unpaid"]


@pytest.mark.asyncio
async def test_concurrent_payments_both_settle_weeks(
    session_factory, db_session: AsyncSession, student_user: User
) -> None:
    """Two payments racing for the same oldest weeks still pay two weeks each."""
    await _seed_weeks(db_session, student_user, ["unpaid"] * 5)

    async def pay():
        async with session_factory() as db:
            return await process_payment(db, student_user.id, 10000)

    first, second = await asyncio.gather(pay(), pay())
    assert (first.weeks_paid, second.weeks_paid) == (2, 2)
    assert first.remainder == second.remainder == 0
    assert await _statuses(db_session, student_user) == ["paid", "paid", "paid", "paid", "unpaid"]
    txns = (await db_session.execute(select(Transaction))).scalars().all()
    assert sorted(t.amount for t in txns) == [10000, 10000]


@pytest.mark.asyncio
async def test_payment_with_nothing_owed_books_nothing(db_session: AsyncSession, student_user: User) -> None:
    result = await process_payment(db_session, student_user.id, 5000)
    assert (result.weeks_paid, result.amount_applied, result.remainder) == (0, 0, 5000)
    assert (await db_session.execute(select(Transaction))).scalars().all() == []


@pytest.mark.asyncio
async def test_payment_for_unknown_student(db_session: AsyncSession, admin_user: User) -> None:
    with pytest.raises(NotFoundError):
        await process_payment(db_session, uuid4(), 5000)
    # Admin accounts have no weekly dues
    with pytest.raises(NotFoundError):
        await process_payment(db_session, admin_user.id, 5000)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "amount, detail",
    [(12000, "Amount must be a multiple of 5000"), (0, "Amount must be positive")],
)
async def test_invalid_amount_rejected(
    client: AsyncClient, student_user: User, student_headers, amount: int, detail: str
) -> None:
    response = await client.post(
        "/api/v1/weekly-payments/process",
        headers=student_headers,
        json={"studentId": str(student_user.id), "amount": amount},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == detail


@pytest.mark.asyncio
async def test_student_cannot_pay_for_another(
    client: AsyncClient, student_headers, other_student: User, db_session: AsyncSession
) -> None:
    await _seed_weeks(db_session, other_student, ["unpaid"])
    response = await client.post(
        "/api/v1/weekly-payments/process",
        headers=student_headers,
        json={"studentId": str(other_student.id), "amount": 5000},
    )
    assert response.status_code == 403
    assert await _statuses(db_session, other_student) == ["unpaid"]


@pytest.mark.asyncio
async def test_student_pays_own_dues(
    client: AsyncClient, student_user: User, student_headers, db_session: AsyncSession
) -> None:
    await _seed_weeks(db_session, student_user, ["unpaid", "unpaid"])
    response = await client.post(
        "/api/v1/weekly-payments/process",
        headers=student_headers,
        json={"studentId": str(student_user.id), "amount": 5000},
    )
    assert response.status_code == 200
    assert response.json()["weeks_paid"] == 1


@pytest.mark.asyncio
async def test_student_listing_is_scoped_to_self(
    client: AsyncClient,
    admin_headers,
    student_user: User,
    other_student: User,
    student_headers,
    db_session: AsyncSession,
) -> None:
    await _seed_weeks(db_session, student_user, ["unpaid", "paid"])
    await _seed_weeks(db_session, other_student, ["unpaid", "unpaid", "unpaid"])

    own = await client.get("/api/v1/weekly-payments", headers=student_headers)
    assert own.status_code == 200
    assert {p["student_id"] for p in own.json()["payments"]} == {str(student_user.id)}

    other = await client.get(
        "/api/v1/weekly-payments", params={"studentId": str(other_student.id)}, headers=student_headers
    )
    assert other.status_code == 403

    as_admin = await client.get(
        "/api/v1/weekly-payments", params={"studentId": str(other_student.id)}, headers=admin_headers
    )
    assert len(as_admin.json()["payments"]) == 3
    assert as_admin.json()["unpaid_amount"] == 15000

    everyone = await client.get("/api/v1/weekly-payments", headers=admin_headers)
    assert len(everyone.json()["payments"]) == 5


@pytest.mark.asyncio
async def test_unpaid_amount_visible_to_self_only(
    client: AsyncClient, student_user: User, other_student: User, student_headers, db_session: AsyncSession
) -> None:
    await _seed_weeks(db_session, student_user, ["unpaid", "unpaid", "paid", "unpaid"])

    response = await client.get(f"/api/v1/weekly-payments/unpaid/{student_user.id}", headers=student_headers)
    assert response.status_code == 200
    assert response.json()["unpaid_weeks"] == 3
    assert response.json()["unpaid_amount"] == 15000

    forbidden = await client.get(f"/api/v1/weekly-payments/unpaid/{other_student.id}", headers=student_headers)
    assert forbidden.status_code == 403
