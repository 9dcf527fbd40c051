from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from kas.auth.dependencies import get_current_user
from kas.auth.rbac import require_admin
from kas.auth.schemas import CurrentUser
from kas.db.session import get_db

from .schemas import StatisticsResponse, SummaryResponse
from . import service

router = APIRouter(prefix="/api/v1", tags=["statistics"])


@router.get("/statistics", response_model=StatisticsResponse)
async def get_statistics(
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> StatisticsResponse:
    """Class totals and monthly series; students also get their unpaid weekly dues."""
    return await service.get_statistics(db, current_user)


@router.get("/admin/summary", response_model=SummaryResponse)
async def get_summary(
    db: AsyncSession = Depends(get_db),
    admin: CurrentUser = Depends(require_admin),
) -> SummaryResponse:
    return await service.get_summary(db)
