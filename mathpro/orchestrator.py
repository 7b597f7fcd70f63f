# FILE: orchestrator.py
# LOCATION: mathpro/orchestrator.py

"""
Client-side state machine for the solve and explain flows.

Each flow checks its preconditions, clears the state it owns, sends one
authenticated request while a ``ProgressSimulator`` runs beside it, reads the
answer and finally forces progress to 100%. Results and the last error are
kept on the orchestrator for the presentation layer to read.
"""

import asyncio
import base64
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from .client import DEFAULT_MAX_RETRIES, AuthenticatedRequestClient
from .errors import RequestInFlight
from .progress import (
    EXPLAIN_DURATION,
    SOLVE_DURATION,
    TICK_SECONDS,
    ProgressSimulator,
    ProgressState,
)
from .prompts import UNCLARITY_MARKER
from .schemas import DEFAULT_LANGUAGE, ExplainRequest, SolveRequest
from .session import AuthSession

logger = logging.getLogger(__name__)

AUTO_DETECT = "Auto-Detect"
SETTLE_DELAY = 0.1
IMAGE_ONLY_PROBLEM = "Problem previously submitted via image/document."

SIGN_IN_TO_SOLVE = "Please log in or sign up to solve a problem."
SIGN_IN_TO_EXPLAIN = "Please log in or sign up to get an explanation."
NO_INPUT = "Please enter the problem or upload an image/PDF."
UNSUPPORTED_FILE = "Please upload a valid image file (.jpg, .png, etc.) or a PDF document."
NO_SOLUTION_YET = "Please solve the problem first."
UNCLEAR_INPUT = (
    "The model could not identify a clear mathematical problem in the input. "
    "Please upload a clearer question or type out the problem."
)
EMPTY_SOLUTION = "Could not generate solution. No response was received from the server."
EMPTY_EXPLANATION = "Could not generate an easier explanation."
UNKNOWN_ERROR = "An unknown error occurred."


class Flow(str, Enum):
    SOLVE = "solve"
    EXPLAIN = "explain"


class Outcome(str, Enum):
    SOLVED = "solved"
    EXPLAINED = "explained"
    UNCLEAR = "unclear"
    FAILED = "failed"
    REJECTED = "rejected"
    SIGN_IN_REQUIRED = "sign_in_required"


@dataclass(frozen=True)
class UploadedFile:
    data: bytes
    mime_type: str
    name: str = ""

    @property
    def is_supported(self) -> bool:
        return self.mime_type.startswith("image/") or self.mime_type == "application/pdf"


@dataclass(frozen=True)
class FlowResult:
    outcome: Outcome
    text: Optional[str] = None
    error: Optional[str] = None


def encode_file(file: UploadedFile) -> str:
    return base64.b64encode(file.data).decode("ascii")


class RequestOrchestrator:
    def __init__(
        self,
        client: AuthenticatedRequestClient,
        session: AuthSession,
        endpoint: str,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        solve_duration: float = SOLVE_DURATION,
        explain_duration: float = EXPLAIN_DURATION,
        settle_delay: float = SETTLE_DELAY,
        tick: float = TICK_SECONDS,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
        encode: Callable[[UploadedFile], str] = encode_file,
    ) -> None:
        self.client = client
        self.session = session
        self.endpoint = endpoint
        self.max_retries = max_retries
        self.durations = {Flow.SOLVE: solve_duration, Flow.EXPLAIN: explain_duration}
        self.settle_delay = settle_delay
        self.tick = tick
        self._sleep = sleep
        self._encode = encode

        self.progress = ProgressState()
        self.problem_text: Optional[str] = None
        self.solution: Optional[str] = None
        self.explanation: Optional[str] = None
        self.error: Optional[str] = None
        self.unclear = False

        self._busy: Optional[Flow] = None
        self._in_flight = False

    @property
    def busy(self) -> Optional[Flow]:
        """The flow currently running, if any."""
        return self._busy

    def _reject(self, outcome: Outcome, message: str) -> FlowResult:
        self.error = message
        return FlowResult(outcome, error=message)

    # --- Solve ---

    async def solve(
        self,
        text_problem: Optional[str] = None,
        file: Optional[UploadedFile] = None,
        output_language: str = DEFAULT_LANGUAGE,
    ) -> FlowResult:
        if self._busy is not None:
            raise RequestInFlight(f"{self._busy.value} request already running")

        user = self.session.current_user
        if user is None:
            return self._reject(Outcome.SIGN_IN_REQUIRED, SIGN_IN_TO_SOLVE)
        has_text = bool(text_problem and text_problem.strip())
        if not has_text and file is None:
            return self._reject(Outcome.REJECTED, NO_INPUT)
        if file is not None and not file.is_supported:
            return self._reject(Outcome.REJECTED, UNSUPPORTED_FILE)

        self.error = None
        self.solution = None
        self.explanation = None
        self.unclear = False
        self.problem_text = text_problem if has_text else None

        async def call() -> FlowResult:
            request = SolveRequest(
                text_problem=text_problem if has_text else None,
                base64_image=self._encode(file) if file else None,
                mime_type=file.mime_type if file else None,
                output_language=output_language,
            )
            body = await self._send(request.to_wire(), user)
            text = body.get("solution")

            if isinstance(text, str) and UNCLARITY_MARKER in text:
                self.unclear = True
                return self._reject(Outcome.UNCLEAR, UNCLEAR_INPUT)
            if text:
                self.solution = text
                return FlowResult(Outcome.SOLVED, text=text)
            return self._reject(Outcome.FAILED, EMPTY_SOLUTION)

        return await self._run(Flow.SOLVE, call, "Finalizing solution")

    # --- Explain ---

    async def explain(self, output_language: str = DEFAULT_LANGUAGE) -> FlowResult:
        if self._busy is not None:
            raise RequestInFlight(f"{self._busy.value} request already running")

        user = self.session.current_user
        if user is None:
            return self._reject(Outcome.SIGN_IN_REQUIRED, SIGN_IN_TO_EXPLAIN)
        if not self.solution:
            return self._reject(Outcome.REJECTED, NO_SOLUTION_YET)

        self.error = None
        self.explanation = None
        language = DEFAULT_LANGUAGE if output_language == AUTO_DETECT else output_language

        async def call() -> FlowResult:
            request = ExplainRequest(
                original_problem=self.problem_text or IMAGE_ONLY_PROBLEM,
                original_solution=self.solution,
                output_language=language,
            )
            body = await self._send(request.to_wire(), user)
            text = body.get("explanation")
            if text:
                self.explanation = text
                return FlowResult(Outcome.EXPLAINED, text=text)
            return self._reject(Outcome.FAILED, EMPTY_EXPLANATION)

        return await self._run(Flow.EXPLAIN, call, "Generating simplified explanation")

    # --- Shared machinery ---

    async def _send(self, payload: dict, user) -> dict:
        self._in_flight = True
        try:
            response = await self.client.send(self.endpoint, payload, user, self.max_retries)
        finally:
            self._in_flight = False
        body = response.json()
        return body if isinstance(body, dict) else {}

    async def _run(self, flow: Flow, call: Callable[[], Awaitable[FlowResult]], final_label: str) -> FlowResult:
        self._busy = flow
        self.progress.reset()
        simulator = ProgressSimulator(
            self.progress,
            self.durations[flow],
            lambda: self._in_flight,
            final_label,
            tick=self.tick,
            sleep=self._sleep,
        )
        ticker = asyncio.create_task(simulator.run())
        try:
            result = await call()
        except Exception as exc:
            logger.error("%s request failed: %s", flow.value.capitalize(), exc)
            result = self._reject(Outcome.FAILED, str(exc) or UNKNOWN_ERROR)
        finally:
            self._in_flight = False
            ticker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await ticker
            self.progress.complete()

        # Keep the 100% visible for a moment before the flow reports idle.
        try:
            await self._sleep(self.settle_delay)
        finally:
            self._busy = None
        return result
