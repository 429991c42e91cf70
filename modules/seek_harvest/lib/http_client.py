# modules/seek_harvest/lib/http_client.py
from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

import requests
from requests.adapters import HTTPAdapter
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

LOG = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)


class TransientNetworkError(RuntimeError):
    """One failed HTTP attempt: transport error, non-2xx status or undecodable body."""

    def __init__(self, message: str, *, url: str, status: int | None = None, attempt: int = 0):
        super().__init__(message)
        self.url = url
        self.status = status
        self.attempt = attempt


def retry_call(
    attempt_fn: Callable[[int], T],
    *,
    max_attempts: int = 4,
    base_delay: float = 0.25,
    sleep: Callable[[float], None] = time.sleep,
    retry_on: tuple[type[BaseException], ...] = (TransientNetworkError,),
) -> T:
    """
    Call `attempt_fn(n)` for n = 0..max_attempts-1 until it returns.

    Waits base_delay, 2*base_delay, 4*base_delay, ... between attempts.
    Errors listed in `retry_on` consume the budget; the last one is re-raised
    unchanged. Anything else propagates immediately.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_delay),
        retry=retry_if_exception_type(retry_on),
        reraise=True,
        sleep=sleep,
        before_sleep=before_sleep_log(LOG, logging.INFO),
    )
    for attempt in retrying:
        with attempt:
            return attempt_fn(attempt.retry_state.attempt_number - 1)
    raise AssertionError("unreachable")


class HttpClient:
    """Shared HTTP client: one session, fixed timeout, bounded retries per call."""

    def __init__(
        self,
        *,
        timeout: float = 20.0,
        max_attempts: int = 4,
        base_delay: float = 0.25,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Any = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.timeout = float(timeout)
        self.max_attempts = int(max_attempts)
        self.base_delay = float(base_delay)
        self._sleep = sleep
        if session is None:
            session = requests.Session()
            # Retries are handled by retry_call, not by urllib3.
            adapter = HTTPAdapter(max_retries=0, pool_connections=4, pool_maxsize=4)
            session.mount("http://", adapter)
            session.mount("https://", adapter)
        self.session = session
        self.session.headers.update({"User-Agent": user_agent})

    def send(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        json_body: Any = None,
    ) -> requests.Response:
        """Issue the request, retrying any failure; raises the final TransientNetworkError."""
        return retry_call(
            lambda n: self._attempt(method, url, headers, params, json_body, n),
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            sleep=self._sleep,
        )

    def send_json(
        self,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | None = None,
        params: Mapping[str, Any] | None = None,
        json_body: Any = None,
    ) -> Any:
        """Like send(), but a body that is not JSON also counts as a failed attempt."""

        def _attempt_json(n: int) -> Any:
            resp = self._attempt(method, url, headers, params, json_body, n)
            try:
                return resp.json()
            except ValueError as e:
                preview = (resp.text or "")[:200].replace("\n", " ")
                raise TransientNetworkError(
                    f"JSON decode failed for {url!r}; body starts: {preview!r}",
                    url=url,
                    status=resp.status_code,
                    attempt=n,
                ) from e

        return retry_call(
            _attempt_json,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            sleep=self._sleep,
        )

    # ---- internals ----
    def _attempt(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None,
        params: Mapping[str, Any] | None,
        json_body: Any,
        n: int,
    ) -> requests.Response:
        try:
            resp = self.session.request(
                method,
                url,
                headers=dict(headers or {}),
                params=params,
                json=json_body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransientNetworkError(f"{method} {url} failed: {e!r}", url=url, attempt=n) from e
        if not 200 <= resp.status_code < 300:
            preview = (resp.text or "")[:200].replace("\n", " ")
            raise TransientNetworkError(
                f"{method} {url} returned HTTP {resp.status_code}; body starts: {preview!r}",
                url=url,
                status=resp.status_code,
                attempt=n,
            )
        return resp

    def close(self) -> None:
        try:
            self.session.close()
        except Exception:
            LOG.debug("HttpClient.close() swallow", exc_info=True)
