from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from kas.auth.schemas import CurrentUser
from kas.auth.security import decode_access_token
from kas.auth.services import load_current_user
from kas.core.exceptions import AuthenticationError
from kas.db.session import get_db


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login-oauth")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login-oauth", auto_error=False)


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Resolve the authenticated user from the bearer token, re-reading role and profile from the DB."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
        return await load_current_user(db, payload)
    except AuthenticationError:
        raise credentials_exception


async def get_token_claims(token: Optional[str] = Depends(optional_oauth2_scheme)) -> Optional[dict]:
    """Verified claims when a valid bearer token is present, else None. Never raises."""
    if not token:
        return None
    try:
        return decode_access_token(token)
    except AuthenticationError:
        return None


def ensure_self_or_admin(current_user: CurrentUser, student_id: UUID) -> None:
    """Students may only act on their own records."""
    if not current_user.is_admin and current_user.id != student_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized",
        )
