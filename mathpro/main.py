# FILE: main.py
# LOCATION: mathpro/main.py

"""
The MathPRO AI gateway.

A single secured route receives solve / explain requests, verifies the
caller's bearer token, builds the prompt for the requested action, calls the
generation capability once and shapes the JSON answer. Every request is
handled on its own; the only shared objects are the authenticator and the
invoker handed to ``create_app`` at startup.
"""

import logging
from typing import Optional, Union, assert_never

import uvicorn
from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .auth import FirebaseTokenVerifier, Identity, JwtTokenVerifier, TokenAuthenticator
from .config import Settings
from .errors import AuthFailure, InvalidField, PromptValidationError, UpstreamError
from .invoker import GeminiGenerator, ModelInvoker, SympyGenerator
from .logging_setup import configure_logging
from .prompts import PromptBuilder
from .schemas import (
    ErrorResponse,
    ExplainRequest,
    ExplainResponse,
    SolveRequest,
    SolveResponse,
    parse_action_request,
)

logger = logging.getLogger(__name__)

ROUTE = "/api/math-solver"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Authorization, Content-Type",
}

UNAUTHORIZED_MESSAGE = "Unauthorized: Invalid or missing authentication token."
UPSTREAM_MESSAGE = "Internal Server Error during AI processing."
MAX_DETAILS_LENGTH = 200


def _error(status_code: int, error: str, details: Optional[str] = None, headers=None) -> JSONResponse:
    body = ErrorResponse(error=error, details=details).to_wire()
    return JSONResponse(status_code=status_code, content=body, headers=headers)


# --- Dependencies ---

def require_identity(request: Request, authorization: Optional[str] = Header(default=None)) -> Identity:
    """Authenticate before anything else in the request is looked at."""
    authenticator: TokenAuthenticator = request.app.state.authenticator
    return authenticator.authenticate(authorization)


# --- Exception Handlers ---
# The client only ever sees {"error", "details"?}; tracebacks stay in the logs.

async def _auth_failure(request: Request, exc: AuthFailure) -> JSONResponse:
    return _error(401, UNAUTHORIZED_MESSAGE)


async def _validation_failure(request: Request, exc: PromptValidationError) -> JSONResponse:
    logger.info("Rejected request: %s", exc)
    return _error(400, str(exc))


async def _upstream_failure(request: Request, exc: UpstreamError) -> JSONResponse:
    logger.error("Gemini or gateway execution error: %s", exc.details, exc_info=exc.__cause__ or exc)
    return _error(500, UPSTREAM_MESSAGE, details=exc.details[:MAX_DETAILS_LENGTH])


async def _http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


def create_app(
    authenticator: TokenAuthenticator,
    invoker: ModelInvoker,
    builder: Optional[PromptBuilder] = None,
) -> FastAPI:
    """Build the gateway around explicitly constructed collaborators."""
    app = FastAPI(
        title="MathPRO AI Gateway",
        description="Secured gateway that solves and explains math problems with a generative model.",
        version=__version__,
    )
    app.state.authenticator = authenticator
    app.state.invoker = invoker
    app.state.builder = builder or PromptBuilder()

    app.add_exception_handler(AuthFailure, _auth_failure)
    app.add_exception_handler(PromptValidationError, _validation_failure)
    app.add_exception_handler(UpstreamError, _upstream_failure)
    app.add_exception_handler(StarletteHTTPException, _http_exception)

    @app.middleware("http")
    async def add_cors_headers(request: Request, call_next):
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    @app.options(ROUTE, include_in_schema=False)
    async def preflight():
        return Response(status_code=204)

    @app.post(
        ROUTE,
        response_model=Union[SolveResponse, ExplainResponse],
        responses={
            400: {"model": ErrorResponse},
            401: {"model": ErrorResponse},
            405: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
        },
    )
    async def math_solver(request: Request, identity: Identity = Depends(require_identity)):
        """
        Solves a math problem or explains a previous solution, depending on
        the ``action`` field of the body.
        """
        try:
            body = await request.json()
        except ValueError:
            raise InvalidField("body", "malformed JSON")

        action_request = parse_action_request(body)
        logger.info("Dispatching %s for uid=%s", action_request.action.value, identity.uid)

        spec = request.app.state.builder.build(action_request)
        result = await request.app.state.invoker.generate(spec)

        if isinstance(action_request, SolveRequest):
            return SolveResponse(solution=result.text)
        elif isinstance(action_request, ExplainRequest):
            return ExplainResponse(explanation=result.text)
        else:
            assert_never(action_request)

    return app


# --- Wiring from the environment ---

def build_authenticator(settings: Settings) -> TokenAuthenticator:
    if settings.auth_backend == "firebase":
        verifier = FirebaseTokenVerifier.initialize(settings.firebase_project_id)
    else:
        verifier = JwtTokenVerifier(
            settings.jwt_secret,
            algorithms=settings.jwt_algorithms,
            issuer=settings.jwt_issuer,
            audience=settings.jwt_audience,
        )
    return TokenAuthenticator(verifier)


def build_invoker(settings: Settings) -> ModelInvoker:
    if settings.generation_backend == "sympy":
        return ModelInvoker(SympyGenerator())
    return ModelInvoker(GeminiGenerator(
        settings.gemini_model,
        project=settings.gcloud_project,
        location=settings.vertex_region,
        api_key=settings.gemini_api_key,
    ))


def create_app_from_settings(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    problems = settings.validate()
    if problems:
        raise RuntimeError("Invalid gateway configuration: " + "; ".join(problems))
    logger.info(
        "Starting gateway (auth=%s, generation=%s)",
        settings.auth_backend,
        settings.generation_backend,
    )
    return create_app(build_authenticator(settings), build_invoker(settings))


def serve() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    uvicorn.run(
        "mathpro.main:create_app_from_settings",
        factory=True,
        host=settings.gateway_host,
        port=settings.gateway_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    serve()
