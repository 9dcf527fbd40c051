import logging

from fastapi import Depends, HTTPException, status

from kas.auth.dependencies import get_current_user
from kas.auth.schemas import CurrentUser

logger = logging.getLogger(__name__)


async def require_admin(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Require the admin role as currently stored for the user (not the token claim)."""
    if not current_user.is_admin:
        logger.info("Admin-only action refused for %s", current_user.username)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized: Admin access required",
        )
    return current_user
