"""
Seed script to create the first admin account.

Run once (e.g. after schema_check) with env set:
  INITIAL_ADMIN_USERNAME=admin
  INITIAL_ADMIN_PASSWORD=YourSecurePassword

Idempotent: an existing user with that username is left as is.
"""
import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from kas.auth.services import create_user, get_user_by_username
from kas.core.config import settings
from kas.core.enums import Role
from kas.core.logging import setup_logging
from kas.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)


async def seed_admin(db: AsyncSession) -> bool:
    """Create the initial admin if configured and absent. Returns True when one was created."""
    username = settings.initial_admin_username
    password = settings.initial_admin_password
    if not username or not password:
        logger.warning("INITIAL_ADMIN_USERNAME / INITIAL_ADMIN_PASSWORD not set; skipping admin seed.")
        return False

    existing = await get_user_by_username(db, username)
    if existing:
        logger.info("User %s already exists (role %s).", username, existing.role)
        return False

    await create_user(
        db,
        username=username,
        password=password,
        full_name=settings.initial_admin_full_name,
        role=Role.ADMIN,
    )
    logger.info("Created admin %s.", username)
    return True


async def main() -> None:
    setup_logging(settings.log_level)
    async with AsyncSessionLocal() as session:
        await seed_admin(session)


if __name__ == "__main__":
    asyncio.run(main())
