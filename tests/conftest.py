"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient

from helpers import SECRET, FakeGenerator, SpyBuilder
from mathpro.auth import JwtTokenVerifier, TokenAuthenticator
from mathpro.invoker import ModelInvoker
from mathpro.main import create_app


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def builder() -> SpyBuilder:
    return SpyBuilder()


@pytest.fixture
def authenticator() -> TokenAuthenticator:
    return TokenAuthenticator(JwtTokenVerifier(SECRET))


@pytest.fixture
def app(authenticator, generator, builder):
    return create_app(authenticator, ModelInvoker(generator), builder)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)
