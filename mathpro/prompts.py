# FILE: prompts.py
# LOCATION: mathpro/prompts.py

"""
Prompt construction for the two gateway actions.

A ``PromptSpec`` bundles everything the generation capability needs for one
request: the role instruction, the ordered user parts (text first, then the
optional attachment) and the sampling temperature.
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Tuple, Union, assert_never

from .errors import InvalidField, MissingField, PromptValidationError
from .schemas import ActionRequest, ExplainRequest, SolveRequest

logger = logging.getLogger(__name__)

# Marker the model returns when an image holds no readable problem.
# The client checks for the same string, so it must not change on one side only.
UNCLARITY_MARKER = "[UNCLEAR_MATH_INPUT]"

SOLVE_TEMPERATURE = 0.2
EXPLAIN_TEMPERATURE = 0.5

SOLVE_SYSTEM_INSTRUCTION = (
    "You are a world-class, professional mathematics tutor. Your task is to "
    "accurately solve the user's math problem and provide a detailed, "
    "step-by-step solution."
)

EXPLAIN_SYSTEM_INSTRUCTION = (
    "You are an expert tutor. Your task is to simplify and re-explain a "
    "previously solved math problem. Use simpler language, analogies, and focus "
    "on the core concept. Do not restate the original steps verbatim and do not "
    "just repeat the steps."
)


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class BinaryPart:
    data: bytes
    mime_type: str


Part = Union[TextPart, BinaryPart]


@dataclass(frozen=True)
class PromptSpec:
    system_instruction: str
    parts: Tuple[Part, ...]
    temperature: float

    @property
    def text(self) -> str:
        """All text parts joined, in order."""
        return "\n\n".join(p.text for p in self.parts if isinstance(p, TextPart))

    @property
    def has_attachment(self) -> bool:
        return any(isinstance(p, BinaryPart) for p in self.parts)


def _decode_attachment(request: SolveRequest) -> BinaryPart:
    if not request.mime_type:
        raise MissingField("mimeType")
    try:
        data = base64.b64decode(request.base64_image, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidField("base64Image", "not valid base64 data")
    if not data:
        raise InvalidField("base64Image", "empty attachment")
    return BinaryPart(data=data, mime_type=request.mime_type)


def _build_solve(request: SolveRequest) -> PromptSpec:
    if not request.has_text and not request.base64_image:
        raise MissingField(
            "textProblem or base64Image",
            "Missing math problem text or image data: provide textProblem or base64Image.",
        )

    language = request.output_language
    if request.has_text:
        user_prompt = (
            "Solve the following math problem step-by-step. Provide the final answer clearly. "
            f"Translate the entire solution and explanation into the following language: {language}."
            f"\n\nProblem: {request.text_problem.strip()}"
        )
    else:
        user_prompt = (
            "Solve the math problem shown in the image step-by-step. Provide the final answer clearly. "
            f"Translate the entire solution and explanation into the following language: {language}. "
            "If the image does not contain a clear mathematical problem, return nothing except "
            f"the exact text: {UNCLARITY_MARKER}"
        )

    parts = [TextPart(user_prompt)]
    if request.base64_image:
        try:
            parts.append(_decode_attachment(request))
        except PromptValidationError as exc:
            # With text present the image is optional; without it the image is the problem.
            if not request.has_text:
                raise
            logger.info("Ignoring unusable attachment on a text problem: %s", exc)

    return PromptSpec(
        system_instruction=SOLVE_SYSTEM_INSTRUCTION,
        parts=tuple(parts),
        temperature=SOLVE_TEMPERATURE,
    )


def _build_explain(request: ExplainRequest) -> PromptSpec:
    if not request.original_solution or not request.original_solution.strip():
        raise MissingField(
            "originalSolution",
            "Missing original solution to explain: originalSolution is required.",
        )

    user_prompt = (
        f'The original problem was: "{request.original_problem or ""}". '
        f'The detailed solution is: "{request.original_solution}".\n\n'
        "Based on the detailed solution, provide a simpler, easier-to-understand explanation "
        "focusing on the main concepts used. Ensure the explanation is fully translated into "
        f"the language: {request.output_language}."
    )
    return PromptSpec(
        system_instruction=EXPLAIN_SYSTEM_INSTRUCTION,
        parts=(TextPart(user_prompt),),
        temperature=EXPLAIN_TEMPERATURE,
    )


class PromptBuilder:
    def build(self, request: ActionRequest) -> PromptSpec:
        """Build the prompt for ``request`` or raise ``PromptValidationError``."""
        if isinstance(request, SolveRequest):
            return _build_solve(request)
        elif isinstance(request, ExplainRequest):
            return _build_explain(request)
        else:
            assert_never(request)
