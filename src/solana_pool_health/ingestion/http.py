"""HTTP transport used by the source adapters."""

from __future__ import annotations

import time
from typing import Mapping, Optional, Protocol

import requests
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from ..config.settings import DataSourceConfig, get_app_config
from ..monitoring.logger import get_logger

RETRYABLE_STATUS = frozenset({429, 500, 502, 503, 504})


class FetchError(Exception):
    """Base error raised by a :class:`Fetcher`."""


class FetchTimeoutError(FetchError):
    """The request did not complete within its timeout."""


class FetchNetworkError(FetchError):
    """Connection failure or a non-2xx response."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class Fetcher(Protocol):
    """Transport capability consumed by the adapters."""

    def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        timeout: float,
        params: Optional[Mapping[str, object]] = None,
    ) -> bytes: ...


def _is_retryable(exc: BaseException) -> bool:
    if not isinstance(exc, FetchNetworkError):
        return False
    return exc.status_code is None or exc.status_code in RETRYABLE_STATUS


class HttpFetcher:
    """``requests`` based fetcher with optional transport-level retries."""

    def __init__(
        self,
        config: Optional[DataSourceConfig] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._config = config or get_app_config().data_sources
        self._session = session or requests.Session()
        self._headers = {
            "User-Agent": self._config.user_agent,
            "Accept": "application/json",
        }
        self._logger = get_logger(__name__)

    def fetch(
        self,
        url: str,
        *,
        method: str = "GET",
        timeout: float,
        params: Optional[Mapping[str, object]] = None,
    ) -> bytes:
        """Fetch ``url`` within ``timeout`` seconds, retries and backoff included."""

        attempts = self._config.retry_attempts
        deadline = time.monotonic() + timeout
        backoff = wait_exponential(multiplier=0.25, min=0.25, max=2)

        def _wait(retry_state: RetryCallState) -> float:
            return min(backoff(retry_state), max(deadline - time.monotonic(), 0.0))

        retrying = Retrying(
            stop=stop_after_attempt(attempts) | stop_after_delay(timeout),
            wait=_wait,
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        sent = [0]
        try:
            return retrying(self._send, url, method, deadline, params, sent)
        except FetchNetworkError as exc:
            if _is_retryable(exc) and sent[0] < attempts and time.monotonic() >= deadline:
                raise FetchTimeoutError(
                    f"Request to {url} did not succeed within {timeout:.1f}s"
                ) from exc
            raise

    def _send(
        self,
        url: str,
        method: str,
        deadline: float,
        params: Optional[Mapping[str, object]],
        sent: list,
    ) -> bytes:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise FetchTimeoutError(f"Request to {url} ran out of time before it was sent")
        sent[0] += 1
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                headers=self._headers,
                timeout=remaining,
            )
        except requests.Timeout as exc:
            raise FetchTimeoutError(f"Request to {url} timed out after {remaining:.1f}s") from exc
        except requests.RequestException as exc:
            raise FetchNetworkError(f"Request to {url} failed: {exc}") from exc
        if not response.ok:
            self._logger.debug("HTTP %s from %s", response.status_code, url)
            raise FetchNetworkError(
                f"HTTP {response.status_code} from {url}",
                status_code=response.status_code,
            )
        return response.content

    def close(self) -> None:
        self._session.close()


__all__ = [
    "FetchError",
    "FetchNetworkError",
    "FetchTimeoutError",
    "Fetcher",
    "HttpFetcher",
]
