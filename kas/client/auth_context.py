"""
Client-side auth state for a kas API consumer.

    UNKNOWN -> LOADING -> AUTHENTICATED(principal) | ANONYMOUS

The principal always comes from the server's who-am-I endpoint; the token's own
claims are only read (unverified) for UX hints such as `possibly_admin`.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

import httpx
from jose import JWTError, jwt
from pydantic import ValidationError

from kas.auth.schemas import UserInfo
from kas.client.token_store import MultiBackendTokenStore
from kas.core.enums import LoginSurface, Role

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"
DEFAULT_LOADING_TIMEOUT = 5.0


class AuthState(str, Enum):
    UNKNOWN = "unknown"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


@dataclass
class LoginResult:
    success: bool
    message: str
    user: Optional[UserInfo] = None


def decode_unverified(token: Optional[str]) -> Optional[Dict]:
    """Token claims without checking the signature. None for malformed tokens."""
    if not token:
        return None
    try:
        return jwt.get_unverified_claims(token)
    except JWTError:
        return None


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return default
    if isinstance(data, dict):
        detail = data.get("detail") or data.get("message")
        if isinstance(detail, str):
            return detail
    return default


def _json_field(response: httpx.Response, name: str):
    """A top-level field of a JSON object body; None for anything else (HTML from a proxy, lists...)."""
    try:
        data = response.json()
    except ValueError:
        return None
    return data.get(name) if isinstance(data, dict) else None


def _principal_from(response: httpx.Response) -> Optional[UserInfo]:
    user_data = _json_field(response, "user")
    if not user_data:
        return None
    try:
        return UserInfo.model_validate(user_data)
    except ValidationError as e:
        logger.warning("Server returned an invalid user: %s", e.error_count())
        return None


class AuthContext:
    """Holds the current principal and gates protected views on it."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        store: MultiBackendTokenStore,
        *,
        loading_timeout: float = DEFAULT_LOADING_TIMEOUT,
        navigate: Optional[Callable[[str], None]] = None,
        api_prefix: str = "/api/v1",
    ) -> None:
        self.client = client
        self.store = store
        self.loading_timeout = loading_timeout
        self.navigate = navigate
        self.api_prefix = api_prefix.rstrip("/")
        self.state = AuthState.UNKNOWN
        self.user: Optional[UserInfo] = None

    @property
    def loading(self) -> bool:
        return self.state in (AuthState.UNKNOWN, AuthState.LOADING)

    @property
    def is_authenticated(self) -> bool:
        return self.state == AuthState.AUTHENTICATED and self.user is not None

    @property
    def is_admin(self) -> bool:
        return self.is_authenticated and self.user.role == Role.ADMIN

    @property
    def possibly_admin(self) -> bool:
        """Cheap guess from the stored token alone; never use it to authorize anything."""
        claims = decode_unverified(self.store.retrieve())
        if not claims or claims.get("role") != Role.ADMIN.value:
            return False
        exp = claims.get("exp")
        return exp is None or float(exp) > time.time()

    def _url(self, path: str) -> str:
        return f"{self.api_prefix}{path}"

    def auth_headers(self) -> Dict[str, str]:
        token = self.store.retrieve()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Call the API with the stored bearer token attached."""
        headers = {**self.auth_headers(), **kwargs.pop("headers", {})}
        return await self.client.request(method, self._url(path), headers=headers, **kwargs)

    def _set_authenticated(self, user: UserInfo) -> None:
        self.user = user
        self.state = AuthState.AUTHENTICATED

    def _set_anonymous(self) -> None:
        self.user = None
        self.state = AuthState.ANONYMOUS

    async def refresh(self) -> AuthState:
        """Re-validate the stored token with the server. Never stays LOADING past the timeout."""
        self.state = AuthState.LOADING
        try:
            await asyncio.wait_for(self._refresh(), timeout=self.loading_timeout)
        except asyncio.TimeoutError:
            logger.warning("Auth refresh timed out after %.1fs", self.loading_timeout)
            self._set_anonymous()
        finally:
            if self.state == AuthState.LOADING:
                self._set_anonymous()
        return self.state

    async def _refresh(self) -> None:
        token = self.store.retrieve()
        if not token:
            self._set_anonymous()
            return

        try:
            response = await self.client.get(
                self._url("/auth/me"),
                headers={"Authorization": f"Bearer {token}", "Cache-Control": "no-cache"},
            )
        except httpx.HTTPError as e:
            logger.warning("Auth refresh failed: %s", e)
            self._set_anonymous()
            return

        if response.status_code == 401:
            logger.info("Stored token rejected; clearing it")
            self.store.clear()
            self._set_anonymous()
            return
        if not response.is_success:
            logger.error("Auth refresh failed with status %d", response.status_code)
            self._set_anonymous()
            return

        user = _principal_from(response)
        if user is None:
            logger.error("Auth refresh got an unreadable who-am-I response")
            self._set_anonymous()
        else:
            self._set_authenticated(user)

    def _discard_response_cookies(self, response: httpx.Response) -> None:
        for cookie in list(response.cookies.jar):
            try:
                self.client.cookies.jar.clear(cookie.domain, cookie.path, cookie.name)
            except KeyError:
                pass

    async def login(
        self,
        username: str,
        password: str,
        remember_me: bool = False,
        surface: LoginSurface = LoginSurface.STUDENT,
    ) -> LoginResult:
        """Log in through the student or admin form. The account's role must match the form."""
        if surface == LoginSurface.ADMIN:
            path, body = "/auth/admin-login", {"username": username, "password": password}
        else:
            path = "/auth/login"
            body = {"username": username, "password": password, "remember_me": remember_me}

        try:
            response = await self.client.post(self._url(path), json=body, headers={"Cache-Control": "no-cache"})
        except httpx.HTTPError as e:
            logger.error("Login request failed: %s", e)
            return LoginResult(False, "An error occurred during login")

        if not response.is_success:
            return LoginResult(False, _error_message(response, "Login failed"))

        user = _principal_from(response)
        token = _json_field(response, "token")
        if not token or user is None:
            logger.error("Login response without a usable token or user")
            return LoginResult(False, "Login failed")

        expected_role = Role.ADMIN if surface == LoginSurface.ADMIN else Role.USER
        if user.role != expected_role:
            # Server accepted the credentials; this form is for the other role
            self._discard_response_cookies(response)
            logger.info("Login of %s refused on the %s surface", user.username, surface.value)
            if surface == LoginSurface.STUDENT:
                return LoginResult(False, "Admin accounts must sign in through the admin login")
            return LoginResult(False, "Unauthorized: Not an admin user")

        self.store.store(token)
        self._set_authenticated(user)
        return LoginResult(True, _json_field(response, "message") or "Login successful", user)

    async def register(
        self,
        username: str,
        password: str,
        full_name: str,
        kelas: str,
        nis: str,
    ) -> LoginResult:
        body = {"username": username, "password": password, "full_name": full_name, "kelas": kelas, "nis": nis}
        try:
            response = await self.client.post(self._url("/auth/register"), json=body)
        except httpx.HTTPError as e:
            logger.error("Registration request failed: %s", e)
            return LoginResult(False, "An error occurred during registration")
        if not response.is_success:
            return LoginResult(False, _error_message(response, "Registration failed"))
        user = _principal_from(response)
        if user is None:
            logger.error("Registration response without a usable user")
            return LoginResult(False, "Registration failed")
        return LoginResult(True, _json_field(response, "message") or "Registration successful", user)

    async def sign_out(self) -> None:
        """End the server session if possible, then forget the token locally regardless."""
        try:
            await self.client.post(self._url("/auth/logout"), headers=self.auth_headers())
        except httpx.HTTPError as e:
            logger.warning("Logout request failed: %s", e)
        finally:
            self.store.clear()
            self._set_anonymous()
            if self.navigate is not None:
                self.navigate(LOGIN_PATH)
