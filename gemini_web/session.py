"""
Session Manager for gemini.google.com
=====================================

Owns everything a request needs to look like it came from a logged-in
browser:

- the ``__Secure-1PSID`` / ``__Secure-1PSIDTS`` cookie store
- the bootstrap fields scraped from the app page (session id, build
  label, access token)
- the per-client request counter
- the curl_cffi ``AsyncSession`` transport
- the optional background cookie rotation task

Usage:
    manager = SessionManager(secure_1psid="...", secure_1psidts="...")
    await manager.initialize(timeout=30)
    cookies = manager.get_cookies()
    reqid = manager.next_request_id()
"""

import asyncio
import logging
import random
import re
import threading
import urllib.parse
from contextlib import contextmanager
from typing import Any, Iterator

from curl_cffi.requests import AsyncSession
from curl_cffi.requests.exceptions import RequestException, Timeout

from .core.exceptions import (
    ErrorKind,
    GeminiWebError,
    api_error,
    authentication_error,
    client_closed_error,
    timeout_error,
)
from .protocol.constants import (
    COOKIE_DOMAIN,
    GEMINI_HEADERS,
    PSID_COOKIE,
    PSIDTS_COOKIE,
    ROTATE_COOKIES_BODY,
    ROTATE_COOKIES_HEADERS,
    Endpoint,
)

logger = logging.getLogger("gemini_web.session")

SESSION_ID_PATTERN = re.compile(r"\"?sessionId\"?\s*[:=]\s*[\"']?([a-zA-Z0-9_-]+)")
SESSION_ID_FALLBACK_PATTERN = re.compile(r'"FdrFJe"\s*:\s*"([^"]+)"')
BUILD_LABEL_PATTERN = re.compile(r'"cfb2h"\s*:\s*"([^"]+)"')
ACCESS_TOKEN_PATTERN = re.compile(r'"SNlM0e"\s*:\s*"([^"]+)"')

REQUEST_ID_MIN = 10000
REQUEST_ID_MAX = 99999
REQUEST_ID_STEP = 100000


class ReadWriteLock:
    """
    Many readers or one writer.

    Writers are preferred: once a writer is waiting, new readers block
    until it has finished, so a rotation is never starved by traffic.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_lock(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write_lock(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class RequestCounter:
    """``_reqid`` source: random seed, fixed step, never repeats."""

    def __init__(self, seed: int | None = None, step: int = REQUEST_ID_STEP):
        self._value = seed if seed is not None else random.randint(REQUEST_ID_MIN, REQUEST_ID_MAX)
        self.step = step
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        return self._value

    def next(self) -> int:
        with self._lock:
            self._value += self.step
            return self._value


def extract_session_fields(document: str) -> dict[str, str | None]:
    """Scrape session id, build label and access token from the app page."""

    def _first(*patterns: re.Pattern[str]) -> str | None:
        for pattern in patterns:
            match = pattern.search(document)
            if match:
                return match.group(1)
        return None

    return {
        "session_id": _first(SESSION_ID_PATTERN, SESSION_ID_FALLBACK_PATTERN),
        "build_label": _first(BUILD_LABEL_PATTERN),
        "access_token": _first(ACCESS_TOKEN_PATTERN),
    }


class SessionManager:
    """
    Authenticated transport state for one client.

    Attributes:
        proxy: Optional proxy URL
        impersonate: Browser fingerprint curl_cffi impersonates
        timeout: Request timeout in seconds
        session_id: ``sid`` request parameter, if the app page exposed one
        build_label: ``bl`` request parameter
        access_token: ``at`` form field for batchexecute
    """

    def __init__(
        self,
        secure_1psid: str,
        secure_1psidts: str | None = None,
        proxy: str | None = None,
        impersonate: str = "chrome",
        timeout: float = 30.0,
        session: Any = None,
    ):
        if not secure_1psid:
            raise authentication_error(f"{PSID_COOKIE} cookie is required")

        self.proxy = proxy
        self.impersonate = impersonate
        self.timeout = timeout

        self.session_id: str | None = None
        self.build_label: str | None = None
        self.access_token: str | None = None

        self._cookies: dict[str, str] = {PSID_COOKIE: secure_1psid}
        if secure_1psidts:
            self._cookies[PSIDTS_COOKIE] = secure_1psidts
        self._cookie_lock = ReadWriteLock()

        self._counter = RequestCounter()
        self._session: Any = session
        self._owns_session = session is None
        self._refresh_task: asyncio.Task | None = None
        self._closed = False

    # -- cookie store ---------------------------------------------------

    def get_cookies(self) -> dict[str, str]:
        """Snapshot of the cookie store for one outgoing request."""
        with self._cookie_lock.read_lock():
            return dict(self._cookies)

    def cookies_for(self, url: str) -> dict[str, str]:
        """Cookies for a request to ``url``; empty outside the cookie domain."""
        host = urllib.parse.urlsplit(url).hostname or ""
        if host == COOKIE_DOMAIN.lstrip(".") or host.endswith(COOKIE_DOMAIN):
            return self.get_cookies()
        return {}

    def set_cookie(self, name: str, value: str) -> None:
        with self._cookie_lock.write_lock():
            self._cookies[name] = value

    def next_request_id(self) -> int:
        return self._counter.next()

    # -- transport ------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self, operation: str) -> None:
        if self._closed:
            raise client_closed_error(operation)

    async def ensure_session(self) -> Any:
        """Create the curl_cffi session on first use."""
        self._check_open("ensure_session")
        if self._session is None:
            self._session = AsyncSession(
                impersonate=self.impersonate,
                proxy=self.proxy,
                timeout=self.timeout,
            )
            self._owns_session = True
        return self._session

    async def initialize(self, timeout: float | None = None) -> None:
        """
        Bootstrap the session from the app page.

        Missing markers leave the matching field unset; only transport
        failures and non-2xx responses fail, as ``AUTHENTICATION``.
        """
        self._check_open("initialize")
        if timeout is not None:
            self.timeout = timeout
        session = await self.ensure_session()

        try:
            response = await session.get(
                Endpoint.INIT,
                headers=GEMINI_HEADERS,
                cookies=self.cookies_for(Endpoint.INIT),
                timeout=self.timeout,
            )
        except RequestException as e:
            logger.error("Session bootstrap failed: %s", e)
            raise authentication_error(f"Failed to initialize session: {e}", cause=e) from e

        if not 200 <= response.status_code < 300:
            raise authentication_error(
                f"Failed to initialize session: HTTP {response.status_code}. "
                "Cookies may be invalid or expired"
            )

        fields = extract_session_fields(response.text)
        self.session_id = fields["session_id"]
        self.build_label = fields["build_label"]
        self.access_token = fields["access_token"]

        if self.access_token is None:
            logger.debug("App page exposed no access token")
        logger.info(
            "Session initialized (sid=%s, bl=%s)",
            "set" if self.session_id else "unset",
            self.build_label or "unset",
        )

    async def rotate_cookies(self) -> str | None:
        """
        Refresh ``__Secure-1PSIDTS`` and write it back to the store.

        Returns:
            The new cookie value, or ``None`` if the server sent none
        """
        self._check_open("rotate_cookies")
        session = await self.ensure_session()
        try:
            response = await session.post(
                Endpoint.ROTATE_COOKIES,
                headers=ROTATE_COOKIES_HEADERS,
                data=ROTATE_COOKIES_BODY,
                cookies=self.cookies_for(Endpoint.ROTATE_COOKIES),
                timeout=self.timeout,
            )
        except Timeout as e:
            raise timeout_error("RotateCookies", cause=e) from e
        except RequestException as e:
            raise api_error(f"Cookie rotation failed: {e}", cause=e) from e

        if response.status_code == 401:
            raise authentication_error("Cookie rotation rejected: cookies are no longer valid")
        if not 200 <= response.status_code < 300:
            raise api_error("Cookie rotation failed", status_code=response.status_code)

        new_value = response.cookies.get(PSIDTS_COOKIE)
        if new_value:
            self.set_cookie(PSIDTS_COOKIE, new_value)
            logger.debug("Cookies rotated, new %s applied", PSIDTS_COOKIE)
        return new_value

    # -- background refresh --------------------------------------------

    def start_auto_refresh(self, interval: float) -> None:
        self._check_open("start_auto_refresh")
        self.stop_auto_refresh()
        self._refresh_task = asyncio.create_task(self._auto_refresh(interval))

    def stop_auto_refresh(self) -> None:
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None

    @property
    def auto_refreshing(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    async def _auto_refresh(self, interval: float) -> None:
        while True:
            try:
                await self.rotate_cookies()
            except GeminiWebError as e:
                if e.kind in (ErrorKind.AUTHENTICATION, ErrorKind.CLIENT_CLOSED):
                    logger.warning("Cookie refresh stopped: %s", e.message)
                    return
                logger.warning("Cookie refresh failed: %s", e.message)
            except Exception:
                logger.exception("Cookie refresh task crashed")
                return
            await asyncio.sleep(interval)

    async def close(self) -> None:
        """Stop refreshing and close an owned transport. Further use raises ``CLIENT_CLOSED``."""
        self._closed = True
        self.stop_auto_refresh()
        if self._session is not None and self._owns_session:
            try:
                await self._session.close()
            except RequestException as e:
                logger.debug("Error closing session: %s", e)
        self._session = None


__all__ = [
    "ReadWriteLock",
    "RequestCounter",
    "SessionManager",
    "extract_session_fields",
]
