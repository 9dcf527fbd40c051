from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kas.auth.models import User
from kas.auth.schemas import UserInfo
from kas.auth.services import create_user
from kas.core.enums import Role

from .schemas import AdminCreate, UserCreate


async def provision_user(db: AsyncSession, payload: UserCreate) -> UserInfo:
    user = await create_user(
        db,
        username=payload.username,
        password=payload.password,
        full_name=payload.full_name,
        role=payload.role,
        kelas=payload.kelas,
        nis=payload.nis,
    )
    return UserInfo.model_validate(user)


async def provision_admin(db: AsyncSession, payload: AdminCreate) -> UserInfo:
    user = await create_user(
        db,
        username=payload.username,
        password=payload.password,
        full_name=payload.full_name,
        role=Role.ADMIN,
    )
    return UserInfo.model_validate(user)


async def list_users(db: AsyncSession, role: Optional[Role] = None) -> List[UserInfo]:
    q = select(User)
    if role:
        q = q.where(User.role == role.value)
    q = q.order_by(User.role, User.kelas, User.full_name)
    result = await db.execute(q)
    return [UserInfo.model_validate(u) for u in result.scalars().all()]
