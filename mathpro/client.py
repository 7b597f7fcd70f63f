# FILE: client.py
# LOCATION: mathpro/client.py

"""Authenticated calls to the gateway with jittered exponential backoff.

One ``send`` fetches one credential and makes up to ``max_retries`` attempts.
401/403 end the call at once; any other failure (non-2xx status or transport
error) is retried after ``backoff_delay(attempt)`` seconds.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Optional, Protocol

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    before_sleep_log,
    retry_if_not_exception_type,
    stop_after_attempt,
)

from .errors import AuthenticationFailure, RetriesExhausted, ServerError

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
BASE_DELAY = 0.5  # seconds
JITTER = 0.5  # seconds
BACKOFF_FACTOR = 1.5
DEFAULT_TIMEOUT = 60.0


class CredentialSource(Protocol):
    async def get_id_token(self) -> str:
        ...


def backoff_delay(attempt: int, rand: Callable[[], float] = random.random) -> float:
    """Seconds to wait after 0-indexed ``attempt`` failed.

    Lies in ``[1.5**attempt * 0.5, 1.5**attempt * 0.5 + 0.5)``.
    """
    return (BACKOFF_FACTOR ** attempt) * BASE_DELAY + rand() * JITTER


class AuthenticatedRequestClient:
    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
    ) -> None:
        self._http = http
        self._owns_http = http is None
        self._sleep = sleep
        self._rand = rand

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self) -> "AuthenticatedRequestClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _wait(self, retry_state: RetryCallState) -> float:
        # tenacity counts attempts from 1
        return backoff_delay(retry_state.attempt_number - 1, self._rand)

    async def _post_once(self, endpoint: str, payload: dict, token: str) -> httpx.Response:
        response = await self.http.post(
            endpoint,
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
        )
        if response.status_code in (401, 403):
            raise AuthenticationFailure(response.status_code)
        if not response.is_success:
            raise ServerError(response.status_code, response.text)
        return response

    async def send(
        self,
        endpoint: str,
        payload: dict,
        credential_source: Optional[CredentialSource],
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> httpx.Response:
        """POST ``payload`` to ``endpoint`` and return the first successful response.

        Raises:
            AuthenticationFailure: no usable credential, or the gateway answered 401/403.
            RetriesExhausted: every attempt failed with a retryable error.
        """
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if credential_source is None or not hasattr(credential_source, "get_id_token"):
            raise AuthenticationFailure()

        token = await credential_source.get_id_token()
        if not token:
            raise AuthenticationFailure()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_retries),
            wait=self._wait,
            retry=retry_if_not_exception_type(AuthenticationFailure),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._post_once(endpoint, payload, token)
        except RetryError as exc:
            last_error = exc.last_attempt.exception()
            logger.error("Request to %s failed after %d attempts: %s", endpoint, max_retries, last_error)
            raise RetriesExhausted(max_retries, last_error) from last_error
