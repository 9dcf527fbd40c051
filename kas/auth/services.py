import logging
from datetime import timedelta
from typing import Optional, Tuple
from uuid import UUID

from fastapi import status
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from kas.auth.models import Session, User
from kas.auth.schemas import (
    ChangePasswordRequest,
    ChangeUsernameRequest,
    CurrentUser,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
    UserInfo,
)
from kas.auth.security import (
    create_access_token,
    create_session_id,
    hash_password,
    verify_password,
)
from kas.core.clock import utcnow
from kas.core.config import settings
from kas.core.enums import LoginSurface, Role
from kas.core.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ServiceError,
    ValidationError,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid username or password"


async def get_user_by_username(db: AsyncSession, username: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    *,
    username: str,
    password: str,
    full_name: str,
    role: Role,
    kelas: Optional[str] = None,
    nis: Optional[str] = None,
) -> User:
    """Insert a user into the credential store enforcing the per-role profile invariant."""
    username = username.strip()
    if role == Role.USER:
        kelas = (kelas or "").strip() or None
        nis = (nis or "").strip() or None
        if not kelas or not nis:
            raise ValidationError("Kelas and NIS are required for student accounts")
    else:
        if kelas or nis:
            raise ValidationError("Admin accounts cannot have kelas or NIS")
        kelas = nis = None

    if await get_user_by_username(db, username):
        raise ConflictError("Username already exists")
    if nis is not None:
        existing_nis = await db.execute(select(User.id).where(User.nis == nis))
        if existing_nis.scalar_one_or_none():
            raise ConflictError("NIS already exists")

    user = User(
        username=username,
        password_hash=hash_password(password),
        full_name=full_name.strip(),
        role=role.value,
        kelas=kelas,
        nis=nis,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        # Lost a race against a concurrent insert of the same username/NIS
        raise ConflictError("Username or NIS already exists") from e
    except Exception as e:
        await db.rollback()
        raise ServiceError("Failed to create user account", status.HTTP_500_INTERNAL_SERVER_ERROR) from e
    await db.refresh(user)
    logger.info("Created %s account %s", user.role, user.username)
    return user


async def login_user(
    db: AsyncSession,
    payload: LoginRequest,
    surface: LoginSurface = LoginSurface.STUDENT,
) -> Tuple[LoginResponse, Optional[str]]:
    """Check credentials and issue a token. Returns the response and the session id (if any)."""
    # 1. Find user
    user = await get_user_by_username(db, payload.username.strip())
    if not user:
        logger.info("Login failed for %s: unknown user", payload.username)
        raise AuthenticationError(INVALID_CREDENTIALS)

    # 2. Verify password hash
    if not verify_password(payload.password, user.password_hash):
        logger.info("Login failed for %s: bad password", user.username)
        raise AuthenticationError(INVALID_CREDENTIALS)

    # 3. Admin surface only admits admins
    if surface == LoginSurface.ADMIN and user.role != Role.ADMIN.value:
        logger.info("Admin login refused for non-admin %s", user.username)
        raise AuthorizationError("Unauthorized: Not an admin user")

    claims = {
        "sub": str(user.id),
        "id": str(user.id),
        "username": user.username,
        "role": user.role,
    }

    # 4. Standard logins get a session row so they can be revoked on logout
    session_id: Optional[str] = None
    if surface == LoginSurface.ADMIN:
        expires_delta = timedelta(hours=settings.admin_token_expire_hours)
    else:
        days = settings.remember_me_expire_days if payload.remember_me else settings.session_expire_days
        expires_delta = timedelta(days=days)
        session_id = create_session_id()
        db.add(Session(id=session_id, user_id=user.id, expires_at=utcnow() + expires_delta))
        try:
            await db.commit()
        except Exception as e:
            await db.rollback()
            raise ServiceError(
                "Failed to persist authentication state",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            ) from e
        claims["sid"] = session_id

    token = create_access_token(subject=claims, expires_delta=expires_delta)
    expires_at = utcnow() + expires_delta
    logger.info("Login successful for %s (%s surface)", user.username, surface.value)

    return (
        LoginResponse(
            token=token,
            expires_at=expires_at,
            user=UserInfo.model_validate(user),
        ),
        session_id,
    )


async def logout_session(db: AsyncSession, session_id: Optional[str]) -> bool:
    """Delete the session row if one is known. Returns whether a row was removed."""
    if not session_id:
        return False
    result = await db.execute(delete(Session).where(Session.id == session_id))
    await db.commit()
    removed = (result.rowcount or 0) > 0
    if removed:
        logger.info("Session %s removed", session_id[:8])
    return removed


async def purge_expired_sessions(db: AsyncSession) -> int:
    result = await db.execute(delete(Session).where(Session.expires_at < utcnow()))
    await db.commit()
    return result.rowcount or 0


async def register_user(db: AsyncSession, payload: RegisterRequest) -> RegisterResponse:
    if not settings.allow_self_registration:
        raise AuthorizationError("Self-registration is disabled")
    user = await create_user(
        db,
        username=payload.username,
        password=payload.password,
        full_name=payload.full_name,
        role=Role.USER,
        kelas=payload.kelas,
        nis=payload.nis,
    )
    return RegisterResponse(
        success=True,
        message="Registration successful",
        user=UserInfo.model_validate(user),
    )


async def load_current_user(db: AsyncSession, payload: dict) -> CurrentUser:
    """Re-read the principal named by verified token claims."""
    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError as e:
        raise AuthenticationError() from e
    user = await db.get(User, user_id, populate_existing=True)
    if not user:
        raise AuthenticationError()
    if user.role != payload.get("role"):
        # Role changed after issuance; the stored role wins
        logger.info("Token role claim for %s is stale (%s -> %s)", user.username, payload.get("role"), user.role)
    return CurrentUser(
        id=user.id,
        username=user.username,
        full_name=user.full_name,
        role=user.role,
        kelas=user.kelas,
        nis=user.nis,
        session_id=payload.get("sid"),
    )


async def change_username(
    db: AsyncSession, current_user: CurrentUser, payload: ChangeUsernameRequest
) -> UserInfo:
    new_username = payload.new_username.strip()
    user = await db.get(User, current_user.id)
    if not user:
        raise AuthenticationError()
    if new_username == user.username:
        return UserInfo.model_validate(user)
    if await get_user_by_username(db, new_username):
        raise ConflictError("Username already exists")
    user.username = new_username
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Username already exists") from e
    await db.refresh(user)
    return UserInfo.model_validate(user)


async def change_password(
    db: AsyncSession, current_user: CurrentUser, payload: ChangePasswordRequest
) -> None:
    user = await db.get(User, current_user.id)
    if not user:
        raise AuthenticationError()
    if not verify_password(payload.current_password, user.password_hash):
        raise ValidationError("Current password is invalid")
    user.password_hash = hash_password(payload.new_password)
    await db.commit()
    logger.info("Password changed for %s", user.username)

