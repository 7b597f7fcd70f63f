"""Shared test doubles and token helpers."""

from __future__ import annotations

import asyncio
import time

import jwt as pyjwt

from mathpro.prompts import PromptBuilder

SECRET = "super-secret-jwt-token-for-testing-only"
ENDPOINT = "http://testserver/api/math-solver"
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def make_token(
    sub: str = "user-123",
    name: str | None = "Ada Lovelace",
    exp: int | None = None,
    secret: str = SECRET,
    **extra: object,
) -> str:
    """Build a signed JWT with Firebase-shaped claims."""
    payload: dict[str, object] = {
        "sub": sub,
        "email": "ada@example.com",
        "exp": exp or int(time.time()) + 3600,
        **extra,
    }
    if name is not None:
        payload["name"] = name
    return pyjwt.encode(payload, secret, algorithm="HS256")


def bearer(token: str | None = None) -> dict[str, str]:
    return {"Authorization": f"Bearer {token or make_token()}"}


async def no_sleep(_seconds: float) -> None:
    await asyncio.sleep(0)


class FakeGenerator:
    """Generation capability double: records prompts, returns or raises."""

    def __init__(self, text: str | None = "Step 1: 2 + 2 = 4\n\nFinal answer: 4", error: Exception | None = None):
        self.text = text
        self.error = error
        self.calls = []

    async def generate(self, spec):
        self.calls.append(spec)
        if self.error is not None:
            raise self.error
        return self.text


class SpyBuilder(PromptBuilder):
    def __init__(self) -> None:
        self.calls = 0

    def build(self, request):
        self.calls += 1
        return super().build(request)


class CountingUser:
    uid = "user-123"
    display_name = "Ada Lovelace"

    def __init__(self, token: str | None = None) -> None:
        self.token = token or make_token()
        self.calls = 0

    async def get_id_token(self) -> str:
        self.calls += 1
        return self.token
