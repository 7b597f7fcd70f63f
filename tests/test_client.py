"""Tests for the authenticated request client and its backoff."""

from __future__ import annotations

import httpx
import pytest

from helpers import ENDPOINT, CountingUser
from mathpro.client import AuthenticatedRequestClient, backoff_delay
from mathpro.errors import AuthenticationFailure, RetriesExhausted, ServerError


def _client(handler, delays: list) -> AuthenticatedRequestClient:
    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AuthenticatedRequestClient(http, sleep=fake_sleep, rand=lambda: 0.25)


class Script:
    """Mock transport handler answering with a scripted sequence."""

    def __init__(self, *steps) -> None:
        self.steps = list(steps)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]
        if isinstance(step, Exception):
            raise step
        return httpx.Response(step, json={"solution": "4"} if step == 200 else {"error": "nope"})


class TestBackoffDelay:
    @pytest.mark.parametrize("attempt", range(5))
    def test_bounds(self, attempt: int) -> None:
        lower = 1.5 ** attempt * 0.5
        assert backoff_delay(attempt, lambda: 0.0) == lower
        assert lower <= backoff_delay(attempt, lambda: 0.999999) < lower + 0.5
        for _ in range(50):
            assert lower <= backoff_delay(attempt) < lower + 0.5

    def test_first_delays(self) -> None:
        assert backoff_delay(0, lambda: 0.5) == 0.75
        assert backoff_delay(1, lambda: 0.5) == 1.0


class TestSend:
    async def test_attaches_bearer_token(self) -> None:
        script, delays, user = Script(200), [], CountingUser("tok-1")
        client = _client(script, delays)

        response = await client.send(ENDPOINT, {"action": "solve"}, user)

        assert response.json() == {"solution": "4"}
        assert script.requests[0].headers["Authorization"] == "Bearer tok-1"
        assert script.requests[0].headers["Content-Type"] == "application/json"
        assert delays == []

    async def test_retries_server_error_then_succeeds(self) -> None:
        script, delays = Script(500, 200), []
        client = _client(script, delays)

        response = await client.send(ENDPOINT, {}, CountingUser())

        assert response.status_code == 200
        assert len(script.requests) == 2
        assert delays == [backoff_delay(0, lambda: 0.25)]

    async def test_retries_transport_error(self) -> None:
        script, delays = Script(httpx.ConnectError("dns failure"), 200), []
        client = _client(script, delays)

        response = await client.send(ENDPOINT, {}, CountingUser())

        assert response.status_code == 200
        assert len(script.requests) == 2

    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_failure_is_not_retried(self, status: int) -> None:
        script, delays = Script(status), []
        client = _client(script, delays)

        with pytest.raises(AuthenticationFailure) as excinfo:
            await client.send(ENDPOINT, {}, CountingUser())

        assert excinfo.value.status == status
        assert len(script.requests) == 1
        assert delays == []

    async def test_auth_failure_after_transient_error(self) -> None:
        script, delays = Script(503, 401), []
        client = _client(script, delays)

        with pytest.raises(AuthenticationFailure):
            await client.send(ENDPOINT, {}, CountingUser())
        assert len(script.requests) == 2

    async def test_exhausting_retries(self) -> None:
        script, delays = Script(503), []
        client = _client(script, delays)

        with pytest.raises(RetriesExhausted) as excinfo:
            await client.send(ENDPOINT, {}, CountingUser())

        assert len(script.requests) == 3
        assert delays == [0.5 + 0.125, 0.75 + 0.125]
        assert excinfo.value.attempts == 3
        assert isinstance(excinfo.value.last_error, ServerError)
        assert excinfo.value.last_error.status == 503

    async def test_max_retries_is_configurable(self) -> None:
        script, delays = Script(httpx.ReadTimeout("slow")), []
        client = _client(script, delays)

        with pytest.raises(RetriesExhausted):
            await client.send(ENDPOINT, {}, CountingUser(), max_retries=5)
        assert len(script.requests) == 5
        assert len(delays) == 4

    async def test_token_fetched_once_per_send(self) -> None:
        script, user = Script(500, 500, 200), CountingUser()
        client = _client(script, [])

        await client.send(ENDPOINT, {}, user)

        assert user.calls == 1
        assert len(script.requests) == 3

    async def test_missing_credential_source(self) -> None:
        script = Script(200)
        client = _client(script, [])

        with pytest.raises(AuthenticationFailure):
            await client.send(ENDPOINT, {}, None)
        assert script.requests == []
