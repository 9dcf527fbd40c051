from uuid import UUID, uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kas.api.v1.transactions import service
from kas.auth.models import User
from kas.auth.schemas import CurrentUser
from kas.core.exceptions import ConflictError, NotFoundError
from kas.core.models import Transaction


async def _submit(client: AsyncClient, headers, amount: int = 10000, type_: str = "income") -> dict:
    response = await client.post(
        "/api/v1/transactions",
        headers=headers,
        json={"amount": amount, "description": "Iuran kas minggu ini", "type": type_},
    )
    assert response.status_code == 201, response.text
    return response.json()


async def _status_of(db: AsyncSession, transaction_id: str) -> str:
    result = await db.execute(select(Transaction.status).where(Transaction.id == UUID(transaction_id)))
    return result.scalar_one()


def _principal(user: User) -> CurrentUser:
    return CurrentUser(
        id=user.id,
        username=user.username,
        full_name=user.full_name,
        role=user.role,
        kelas=user.kelas,
        nis=user.nis,
    )


@pytest.mark.asyncio
async def test_submit_creates_pending(client: AsyncClient, student_user: User, student_headers) -> None:
    data = await _submit(client, student_headers)
    assert data["status"] == "pending"
    assert data["amount"] == 10000
    assert UUID(data["user_id"]) == student_user.id
    assert data["user"]["full_name"] == "Siti Aminah"
    assert data["approved_by"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5000])
async def test_submit_rejects_non_positive_amount(client: AsyncClient, student_headers, amount: int) -> None:
    response = await client.post(
        "/api/v1/transactions",
        headers=student_headers,
        json={"amount": amount, "description": "x", "type": "income"},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_submit_requires_authentication(client: AsyncClient) -> None:
    response = await client.post(
        "/api/v1/transactions",
        json={"amount": 5000, "description": "x", "type": "income"},
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_approve_then_reject_conflicts(
    client: AsyncClient, admin_user: User, admin_headers, student_headers, db_session: AsyncSession
) -> None:
    txn = await _submit(client, student_headers)

    approved = await client.post(f"/api/v1/admin/transactions/{txn['id']}/approve", headers=admin_headers)
    assert approved.status_code == 200
    body = approved.json()
    assert body["success"] is True
    assert body["transaction"]["status"] == "approved"
    assert UUID(body["transaction"]["approved_by"]) == admin_user.id
    assert body["transaction"]["approved_at"] is not None

    rejected = await client.post(f"/api/v1/admin/transactions/{txn['id']}/reject", headers=admin_headers)
    assert rejected.status_code == 409
    assert rejected.json()["detail"] == "Transaction already processed"
    assert await _status_of(db_session, txn["id"]) == "approved"

    again = await client.post(f"/api/v1/admin/transactions/{txn['id']}/approve", headers=admin_headers)
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_reject_records_rejector(
    client: AsyncClient, admin_user: User, admin_headers, student_headers
) -> None:
    txn = await _submit(client, student_headers)
    response = await client.post(f"/api/v1/admin/transactions/{txn['id']}/reject", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()["transaction"]
    assert data["status"] == "rejected"
    assert UUID(data["rejected_by"]) == admin_user.id
    assert data["approved_by"] is None


@pytest.mark.asyncio
async def test_student_cannot_approve(
    client: AsyncClient, student_headers, db_session: AsyncSession
) -> None:
    txn = await _submit(client, student_headers)
    response = await client.post(f"/api/v1/admin/transactions/{txn['id']}/approve", headers=student_headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "Unauthorized: Admin access required"
    assert await _status_of(db_session, txn["id"]) == "pending"


@pytest.mark.asyncio
async def test_approve_unknown_transaction(client: AsyncClient, admin_headers) -> None:
    response = await client.post(f"/api/v1/admin/transactions/{uuid4()}/approve", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "Transaction not found"


@pytest.mark.asyncio
async def test_stale_reader_cannot_override_decision(
    session_factory, admin_user: User, student_user: User
) -> None:
    """Two admins load the same pending row; only the first decision sticks."""
    admin = _principal(admin_user)
    async with session_factory() as db:
        txn = Transaction(user_id=student_user.id, amount=5000, description="Iuran", type="income", status="pending")
        db.add(txn)
        await db.commit()
        txn_id = txn.id

    async with session_factory() as first, session_factory() as second:
        seen_by_second = await second.get(Transaction, txn_id)
        assert seen_by_second.status == "pending"

        await service.approve_transaction(first, txn_id, admin)
        with pytest.raises(ConflictError):
            await service.reject_transaction(second, txn_id, admin)

    async with session_factory() as db:
        assert (await db.get(Transaction, txn_id)).status == "approved"


@pytest.mark.asyncio
async def test_service_reports_missing_transaction(db_session: AsyncSession, admin_user: User) -> None:
    with pytest.raises(NotFoundError):
        await service.reject_transaction(db_session, uuid4(), _principal(admin_user))


@pytest.mark.asyncio
async def test_listing_filters(
    client: AsyncClient, admin_headers, student_headers, other_student: User, login_as
) -> None:
    other_headers = await login_as("siswa2", "siswa-secret")
    mine = await _submit(client, student_headers, amount=5000)
    await _submit(client, other_headers, amount=15000)

    everything = await client.get("/api/v1/transactions", headers=student_headers)
    assert everything.status_code == 200
    assert len(everything.json()) == 2

    own = await client.get("/api/v1/transactions", params={"mine": "true"}, headers=student_headers)
    assert [t["id"] for t in own.json()] == [mine["id"]]

    await client.post(f"/api/v1/admin/transactions/{mine['id']}/approve", headers=admin_headers)
    pending = await client.get("/api/v1/admin/transactions", params={"status": "pending"}, headers=admin_headers)
    assert [t["amount"] for t in pending.json()] == [15000]

    assert (await client.get("/api/v1/admin/transactions", headers=student_headers)).status_code == 403


@pytest.mark.asyncio
async def test_admin_creates_transaction_for_student(
    client: AsyncClient, admin_user: User, admin_headers, student_user: User
) -> None:
    response = await client.post(
        "/api/v1/admin/transactions",
        headers=admin_headers,
        json={
            "userId": str(student_user.id),
            "amount": 20000,
            "description": "Setoran tunai",
            "type": "income",
            "status": "approved",
        },
    )
    assert response.status_code == 201
    data = response.json()
    assert UUID(data["user_id"]) == student_user.id
    assert data["status"] == "approved"
    assert UUID(data["approved_by"]) == admin_user.id

    missing = await client.post(
        "/api/v1/admin/transactions",
        headers=admin_headers,
        json={"userId": str(uuid4()), "amount": 5000, "description": "x"},
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_expenses_are_recorded_approved(client: AsyncClient, admin_headers) -> None:
    response = await client.post(
        "/api/v1/admin/expenses",
        headers=admin_headers,
        json={"amount": 25000, "description": "Beli spidol dan penghapus"},
    )
    assert response.status_code == 201
    assert response.json()["type"] == "expense"
    assert response.json()["status"] == "approved"

    listed = await client.get("/api/v1/admin/expenses", headers=admin_headers)
    assert [e["amount"] for e in listed.json()] == [25000]
