from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi import status as http_status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from kas.auth.dependencies import get_current_user, get_token_claims
from kas.auth.schemas import (
    AdminLoginRequest,
    ChangePasswordRequest,
    ChangeUsernameRequest,
    CurrentUser,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    UserInfo,
)
from kas.auth.services import (
    change_password,
    change_username,
    login_user,
    logout_session,
    register_user,
)
from kas.core.config import settings
from kas.core.enums import LoginSurface
from kas.core.exceptions import ServiceError, to_http_exception
from kas.db.session import get_db

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def _set_auth_cookies(response: Response, result: LoginResponse, session_id: Optional[str]) -> None:
    # Readable by scripts: the client mirrors the token here as a storage fallback
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=result.token,
        expires=result.expires_at,
        path="/",
        httponly=False,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    if session_id:
        response.set_cookie(
            key=settings.session_cookie_name,
            value=session_id,
            expires=result.expires_at,
            path="/",
            httponly=True,
            secure=settings.cookie_secure,
            samesite="lax",
        )


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=http_status.HTTP_200_OK,
)
async def login(
    payload: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    try:
        result, session_id = await login_user(db, payload, LoginSurface.STUDENT)
    except ServiceError as e:
        raise to_http_exception(e)
    _set_auth_cookies(response, result, session_id)
    return result


@router.post(
    "/admin-login",
    response_model=LoginResponse,
    status_code=http_status.HTTP_200_OK,
)
async def admin_login(
    payload: AdminLoginRequest,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """Login for the admin surface. Valid credentials of a non-admin yield 403, not 401."""
    try:
        result, _ = await login_user(
            db,
            LoginRequest(username=payload.username, password=payload.password),
            LoginSurface.ADMIN,
        )
    except ServiceError as e:
        raise to_http_exception(e)
    return result


@router.post("/login-oauth")
async def login_oauth(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    payload = LoginRequest(
        username=form_data.username.strip(),
        password=form_data.password,
    )
    try:
        result, _ = await login_user(db, payload, LoginSurface.STUDENT)
    except ServiceError as e:
        raise to_http_exception(e)
    return {
        "access_token": result.token,
        "token_type": "bearer",
    }


@router.get("/me", response_model=MeResponse)
async def me(
    response: Response,
    current_user: CurrentUser = Depends(get_current_user),
) -> MeResponse:
    """Who-am-I: role and profile come from the database, never from the token."""
    for key, value in NO_CACHE_HEADERS.items():
        response.headers[key] = value
    return MeResponse(
        user=UserInfo(
            id=current_user.id,
            username=current_user.username,
            full_name=current_user.full_name,
            role=current_user.role,
            kelas=current_user.kelas,
            nis=current_user.nis,
        )
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    claims: Optional[dict] = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    session_id = request.cookies.get(settings.session_cookie_name) or (claims or {}).get("sid")
    try:
        await logout_session(db, session_id)
    except Exception as e:
        raise to_http_exception(ServiceError("Failed to end session")) from e
    response.delete_cookie(settings.session_cookie_name, path="/")
    response.delete_cookie(settings.auth_cookie_name, path="/")
    return MessageResponse(message="Logged out successfully")


@router.post(
    "/register",
    response_model=RegisterResponse,
    status_code=http_status.HTTP_201_CREATED,
)
async def register(
    payload: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> RegisterResponse:
    try:
        return await register_user(db, payload)
    except ServiceError as e:
        raise to_http_exception(e)


@router.put("/me/username", response_model=UserInfo)
async def update_username(
    payload: ChangeUsernameRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> UserInfo:
    try:
        return await change_username(db, current_user, payload)
    except ServiceError as e:
        raise to_http_exception(e)


@router.put("/me/password", response_model=MessageResponse)
async def update_password(
    payload: ChangePasswordRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> MessageResponse:
    try:
        await change_password(db, current_user, payload)
    except ServiceError as e:
        raise to_http_exception(e)
    return MessageResponse(message="Password changed successfully")
