"""
Client-side token persistence across several storage backends.

The token is written to every backend so it survives restarts even when one
of them is unavailable (read-only disk, cleared session, cookies disabled).
Reads go durable -> session -> cookie and backfill the higher-priority
backends that missed. Nothing in here raises: an unavailable backend is logged
and skipped, and "no token anywhere" simply means an anonymous user.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

import httpx

logger = logging.getLogger(__name__)

TOKEN_KEY = "auth_token"


class TokenBackend:
    """Key-value storage for a single client. Implementations may raise on any call."""

    name = "backend"

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryBackend(TokenBackend):
    """Session-scoped storage; lives as long as the process."""

    name = "session"

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class FileBackend(TokenBackend):
    """Durable storage in a small JSON file."""

    name = "durable"

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not hold a JSON object")
        return data

    def _dump(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Write-then-rename so a crash never leaves a half-written file
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".kas-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._dump(data)


class CookieBackend(TokenBackend):
    """The token mirrored as a (non HTTP-only) cookie in an httpx cookie jar."""

    name = "cookie"

    def __init__(self, cookies: httpx.Cookies, domain: str = "", path: str = "/") -> None:
        self.cookies = cookies
        self.domain = domain
        self.path = path

    def get(self, key: str) -> Optional[str]:
        # The server may have set the same cookie for its own domain; any match will do
        for cookie in self.cookies.jar:
            if cookie.name == key and cookie.value:
                return cookie.value
        return None

    def set(self, key: str, value: str) -> None:
        self.cookies.set(key, value, domain=self.domain, path=self.path)

    def delete(self, key: str) -> None:
        for cookie in list(self.cookies.jar):
            if cookie.name == key:
                self.cookies.jar.clear(cookie.domain, cookie.path, cookie.name)


class MultiBackendTokenStore:
    """Replicates one token across backends listed in priority order."""

    def __init__(
        self,
        durable: Optional[TokenBackend] = None,
        session: Optional[TokenBackend] = None,
        cookie: Optional[TokenBackend] = None,
        key: str = TOKEN_KEY,
    ) -> None:
        self.backends: List[TokenBackend] = [b for b in (durable, session, cookie) if b is not None]
        self.key = key

    def store(self, token: str) -> int:
        """Write the token everywhere possible. Returns how many backends accepted it."""
        written = 0
        for backend in self.backends:
            try:
                backend.set(self.key, token)
                written += 1
            except Exception as e:
                logger.warning("Failed to store token in %s storage: %s", backend.name, e)
        if not written:
            logger.error("Token could not be stored in any backend")
        return written

    def retrieve(self) -> Optional[str]:
        for index, backend in enumerate(self.backends):
            try:
                token = backend.get(self.key)
            except Exception as e:
                logger.warning("Failed to read token from %s storage: %s", backend.name, e)
                continue
            if token:
                self._backfill(self.backends[:index], token)
                return token
        return None

    def _backfill(self, backends: List[TokenBackend], token: str) -> None:
        for backend in backends:
            try:
                backend.set(self.key, token)
                logger.debug("Backfilled token into %s storage", backend.name)
            except Exception as e:
                logger.warning("Failed to backfill token into %s storage: %s", backend.name, e)

    def clear(self) -> None:
        for backend in self.backends:
            try:
                backend.delete(self.key)
            except Exception as e:
                logger.warning("Failed to clear token from %s storage: %s", backend.name, e)
