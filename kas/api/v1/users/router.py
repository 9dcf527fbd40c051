from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from kas.auth.rbac import require_admin
from kas.auth.schemas import CurrentUser, RegisterResponse, UserInfo
from kas.core.enums import Role
from kas.core.exceptions import ServiceError, to_http_exception
from kas.db.session import get_db

from .schemas import AdminCreate, UserCreate
from . import service

router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


@router.get("/users", response_model=List[UserInfo])
async def list_users(
    role: Optional[Role] = None,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> List[UserInfo]:
    return await service.list_users(db, role)


@router.post(
    "/users",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_user(
    payload: UserCreate,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> RegisterResponse:
    """Provision a student (kelas + nis required) or an admin account."""
    try:
        user = await service.provision_user(db, payload)
    except ServiceError as e:
        raise to_http_exception(e)
    return RegisterResponse(success=True, message="User created successfully", user=user)


@router.post(
    "/admins",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_admin(
    payload: AdminCreate,
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> RegisterResponse:
    try:
        user = await service.provision_admin(db, payload)
    except ServiceError as e:
        raise to_http_exception(e)
    return RegisterResponse(success=True, message="Admin created successfully", user=user)
