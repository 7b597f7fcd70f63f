"""End-to-end tests for the solve / explain flows.

The orchestrator talks to the real gateway app in-process through
``httpx.ASGITransport``; only the generation capability is replaced.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from helpers import ENDPOINT, PNG_BYTES, SECRET, CountingUser, FakeGenerator, make_token, no_sleep
from mathpro.auth import JwtTokenVerifier, TokenAuthenticator
from mathpro.client import AuthenticatedRequestClient
from mathpro.errors import RequestInFlight
from mathpro.invoker import ModelInvoker, SympyGenerator
from mathpro.main import create_app
from mathpro.orchestrator import (
    EMPTY_SOLUTION,
    IMAGE_ONLY_PROBLEM,
    NO_INPUT,
    NO_SOLUTION_YET,
    SIGN_IN_TO_SOLVE,
    UNCLEAR_INPUT,
    UNSUPPORTED_FILE,
    Flow,
    Outcome,
    RequestOrchestrator,
    UploadedFile,
)
from mathpro.prompts import UNCLARITY_MARKER
from mathpro.session import AuthSession

PNG = UploadedFile(data=PNG_BYTES, mime_type="image/png", name="blank.png")


def _orchestrator(generator, user=None) -> RequestOrchestrator:
    app = create_app(TokenAuthenticator(JwtTokenVerifier(SECRET)), ModelInvoker(generator))
    http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app))
    session = AuthSession()
    session.mark_ready(user if user is not None else CountingUser())
    return RequestOrchestrator(
        AuthenticatedRequestClient(http, sleep=no_sleep),
        session,
        ENDPOINT,
        sleep=no_sleep,
    )


class TestSolveFlow:
    async def test_text_problem_is_solved(self) -> None:
        orchestrator = _orchestrator(SympyGenerator())

        result = await orchestrator.solve("2+2", output_language="English")

        assert result.outcome is Outcome.SOLVED
        assert result.text.splitlines()[-1] == "Final answer: 4"
        assert orchestrator.solution == result.text
        assert orchestrator.error is None
        assert orchestrator.progress.value == 100
        assert orchestrator.progress.status == "Complete (100%)."
        assert orchestrator.busy is None

    async def test_blank_image_is_reported_unclear(self) -> None:
        orchestrator = _orchestrator(SympyGenerator())

        result = await orchestrator.solve(file=PNG, output_language="English")

        assert result.outcome is Outcome.UNCLEAR
        assert result.text is None
        assert result.error == UNCLEAR_INPUT
        assert orchestrator.unclear
        assert orchestrator.solution is None
        assert orchestrator.progress.value == 100

    async def test_marker_inside_longer_text_is_unclear(self) -> None:
        orchestrator = _orchestrator(FakeGenerator(text=f"I could not read this. {UNCLARITY_MARKER}"))

        result = await orchestrator.solve("see attached", PNG)

        assert result.outcome is Outcome.UNCLEAR
        assert orchestrator.solution is None
        assert UNCLARITY_MARKER not in (orchestrator.error or "")

    async def test_empty_solution(self) -> None:
        orchestrator = _orchestrator(FakeGenerator(text="   "))

        result = await orchestrator.solve("2+2")

        assert result.outcome is Outcome.FAILED
        assert result.error == EMPTY_SOLUTION

    async def test_requires_signed_in_user(self) -> None:
        generator = FakeGenerator()
        orchestrator = _orchestrator(generator)
        orchestrator.session.sign_out()

        result = await orchestrator.solve("2+2")

        assert result.outcome is Outcome.SIGN_IN_REQUIRED
        assert result.error == SIGN_IN_TO_SOLVE
        assert generator.calls == []

    @pytest.mark.parametrize("text", [None, "", "   "])
    async def test_requires_input(self, text) -> None:
        orchestrator = _orchestrator(FakeGenerator())
        result = await orchestrator.solve(text)
        assert (result.outcome, result.error) == (Outcome.REJECTED, NO_INPUT)
        assert orchestrator.progress.value == 0

    async def test_rejects_unsupported_file(self) -> None:
        orchestrator = _orchestrator(FakeGenerator())
        result = await orchestrator.solve(file=UploadedFile(b"hello", "text/plain"))
        assert (result.outcome, result.error) == (Outcome.REJECTED, UNSUPPORTED_FILE)

    async def test_new_solve_clears_previous_results(self) -> None:
        generator = FakeGenerator()
        orchestrator = _orchestrator(generator)
        await orchestrator.solve("2+2")
        await orchestrator.explain()
        assert orchestrator.explanation

        generator.text = UNCLARITY_MARKER
        await orchestrator.solve(file=PNG)

        assert orchestrator.solution is None
        assert orchestrator.explanation is None


class TestFailures:
    async def test_invalid_token_is_not_retried(self) -> None:
        generator = FakeGenerator()
        orchestrator = _orchestrator(generator, user=CountingUser(make_token(secret="wrong")))

        result = await orchestrator.solve("2+2")

        assert result.outcome is Outcome.FAILED
        assert result.error.startswith("Authentication failed. Status: 401")
        assert generator.calls == []
        assert orchestrator.progress.value == 100

    async def test_upstream_failure_is_retried_then_surfaced(self) -> None:
        generator = FakeGenerator(error=RuntimeError("model overloaded"))
        orchestrator = _orchestrator(generator)

        result = await orchestrator.solve("2+2")

        assert result.outcome is Outcome.FAILED
        assert result.error.startswith("Request failed after multiple retries")
        assert len(generator.calls) == 3
        assert orchestrator.solution is None


class TestExplainFlow:
    async def test_explains_stored_solution(self) -> None:
        orchestrator = _orchestrator(SympyGenerator())
        await orchestrator.solve("2x + 3 = 7")

        result = await orchestrator.explain("English")

        assert result.outcome is Outcome.EXPLAINED
        assert "x = 2" in result.text
        assert orchestrator.explanation == result.text
        assert orchestrator.solution is not None

    async def test_requires_solution(self) -> None:
        orchestrator = _orchestrator(FakeGenerator())
        result = await orchestrator.explain()
        assert (result.outcome, result.error) == (Outcome.REJECTED, NO_SOLUTION_YET)

    async def test_image_only_problem_uses_placeholder_and_auto_detect_maps_to_english(self) -> None:
        generator = FakeGenerator(text="Step 1: read the picture\n\nFinal answer: 7")
        orchestrator = _orchestrator(generator)
        await orchestrator.solve(file=PNG, output_language="Auto-Detect")

        generator.text = "Simple words."
        result = await orchestrator.explain("Auto-Detect")

        assert result.outcome is Outcome.EXPLAINED
        prompt = generator.calls[-1].text
        assert IMAGE_ONLY_PROBLEM in prompt
        assert prompt.endswith("the language: English.")


class TestConcurrency:
    async def test_second_request_while_busy_is_refused(self) -> None:
        release = asyncio.Event()
        started = asyncio.Event()

        class SlowGenerator(FakeGenerator):
            async def generate(self, spec):
                started.set()
                await release.wait()
                return await super().generate(spec)

        orchestrator = _orchestrator(SlowGenerator())
        task = asyncio.create_task(orchestrator.solve("2+2"))
        await started.wait()

        assert orchestrator.busy is Flow.SOLVE
        assert 1 <= orchestrator.progress.value <= 99
        with pytest.raises(RequestInFlight):
            await orchestrator.solve("3+3")
        with pytest.raises(RequestInFlight):
            await orchestrator.explain()

        release.set()
        result = await task

        assert result.outcome is Outcome.SOLVED
        assert orchestrator.progress.value == 100
        assert orchestrator.busy is None
