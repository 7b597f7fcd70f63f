# FILE: invoker.py
# LOCATION: mathpro/invoker.py

"""
Model boundary for the gateway.

``ModelInvoker`` is the only thing the dispatcher talks to; it wraps a
``Generator`` capability, makes exactly one attempt, trims the text and turns
any failure into ``UpstreamError``. Retrying the whole round trip is the
client's job.

Capabilities:
- GeminiGenerator: Gemini through the google-genai SDK (Vertex AI or API key)
- SympyGenerator: deterministic local solver for development and tests
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Optional, Protocol

from .errors import UpstreamError
from .prompts import (
    EXPLAIN_SYSTEM_INSTRUCTION,
    UNCLARITY_MARKER,
    BinaryPart,
    PromptSpec,
    TextPart,
)
from .solver import render_solution, solve_problem

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
LOCAL_SOLVE_TIMEOUT = 10.0


@dataclass(frozen=True)
class ModelResult:
    text: str


class Generator(Protocol):
    async def generate(self, spec: PromptSpec) -> Optional[str]:
        ...


class ModelInvoker:
    def __init__(self, generator: Generator) -> None:
        self.generator = generator

    async def generate(self, spec: PromptSpec) -> ModelResult:
        try:
            text = await self.generator.generate(spec)
        except Exception as exc:
            raise UpstreamError(str(exc) or type(exc).__name__) from exc
        return ModelResult(text=(text or "").strip())


class GeminiGenerator:
    """Gemini capability.

    Pass ``project`` (and optionally ``location``) for Vertex AI, or
    ``api_key`` for the Gemini Developer API. A ready ``client`` can be
    injected instead, which is what the tests do.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        *,
        project: Optional[str] = None,
        location: str = "us-central1",
        api_key: Optional[str] = None,
        client=None,
    ) -> None:
        if client is None:
            from google import genai

            if api_key:
                client = genai.Client(api_key=api_key)
            else:
                client = genai.Client(vertexai=True, project=project, location=location)
        self.client = client
        self.model = model

    @staticmethod
    def _to_content(spec: PromptSpec):
        from google.genai import types

        parts = []
        for part in spec.parts:
            if isinstance(part, TextPart):
                parts.append(types.Part.from_text(text=part.text))
            elif isinstance(part, BinaryPart):
                parts.append(types.Part.from_bytes(data=part.data, mime_type=part.mime_type))
        return types.Content(role="user", parts=parts)

    async def generate(self, spec: PromptSpec) -> Optional[str]:
        from google.genai import types

        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=[self._to_content(spec)],
            config=types.GenerateContentConfig(
                system_instruction=spec.system_instruction,
                temperature=spec.temperature,
            ),
        )
        return response.text


_PROBLEM_RE = re.compile(r"Problem:\s*(.+)\Z", re.DOTALL)
_SOLUTION_RE = re.compile(r'The detailed solution is: "(.*)"\.\n', re.DOTALL)
_FINAL_ANSWER_RE = re.compile(r"Final answer:\s*(.+)")


class SympyGenerator:
    """Local capability backed by ``mathpro.solver``.

    It cannot read attachments, so a prompt carrying only an image is answered
    with the unclarity marker. Explanations restate the final answer of the
    solution they are given in one short paragraph.
    """

    def __init__(self, timeout: float = LOCAL_SOLVE_TIMEOUT) -> None:
        self.timeout = timeout

    async def generate(self, spec: PromptSpec) -> Optional[str]:
        if spec.system_instruction == EXPLAIN_SYSTEM_INSTRUCTION:
            return self._explain(spec.text)

        match = _PROBLEM_RE.search(spec.text)
        if match is None:
            return UNCLARITY_MARKER

        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(solve_problem, match.group(1).strip()),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise RuntimeError(f"Local solver timed out after {self.timeout:g}s") from None
        if "error" in result:
            raise RuntimeError(result["error"])
        return render_solution(result)

    @staticmethod
    def _explain(prompt: str) -> str:
        solution = _SOLUTION_RE.search(prompt)
        body = solution.group(1) if solution else prompt
        answer = _FINAL_ANSWER_RE.search(body)
        steps = body.count("Step ")
        length = f"{steps} step" + ("" if steps == 1 else "s") if steps else "a few steps"
        final = answer.group(1).strip() if answer else "the result at the end"
        return (
            f"Think of the solution as a short recipe with {length}. "
            "Each step changes the problem into an easier one without changing its meaning, "
            "the same way you would tidy a room one shelf at a time. "
            f"When nothing is left to tidy, what remains is the answer: {final}."
        )
