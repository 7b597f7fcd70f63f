# FILE: errors.py
# LOCATION: mathpro/errors.py

"""Exception taxonomy shared by the gateway and the client.

The gateway maps these onto HTTP status codes (see ``mathpro.main``); the
client raises its own subset while talking to the gateway.
"""

from typing import Optional


class MathProError(Exception):
    """Root of every error raised by this package."""


# --- Gateway: authentication (401) ---

class AuthFailure(MathProError):
    pass


class MissingToken(AuthFailure):
    def __init__(self):
        super().__init__("Missing bearer token.")


class InvalidToken(AuthFailure):
    def __init__(self):
        # The verifier's reason is logged, never carried to the caller.
        super().__init__("Invalid authentication token.")


# --- Gateway: request validation (400) ---

class PromptValidationError(MathProError):
    """The request does not carry what the chosen action needs."""


class MissingField(PromptValidationError):
    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"Missing required field: {field}.")


class InvalidField(PromptValidationError):
    def __init__(self, field: str, reason: str):
        self.field = field
        super().__init__(f"Invalid field {field}: {reason}.")


class InvalidAction(PromptValidationError):
    def __init__(self, action):
        self.action = action
        super().__init__(f"Invalid action specified: {action}")


# --- Gateway: model invocation (500) ---

class UpstreamError(MathProError):
    """The generation capability failed; ``details`` keeps its message."""

    def __init__(self, details: str):
        self.details = details
        super().__init__(f"Generation failed: {details}")


# --- Client side ---

class RequestError(MathProError):
    pass


class AuthenticationFailure(RequestError):
    def __init__(self, status: Optional[int] = None, message: Optional[str] = None):
        self.status = status
        if message is None:
            message = (
                f"Authentication failed. Status: {status}. Please log in again."
                if status is not None
                else "Authentication failed. User session is invalid."
            )
        super().__init__(message)


class ServerError(RequestError):
    def __init__(self, status: int, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(f"Server Error: {status}. {body}".rstrip())


class RetriesExhausted(RequestError):
    def __init__(self, attempts: int, last_error: Optional[BaseException] = None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            "Request failed after multiple retries. "
            "Please check your network and try again."
        )


class RequestInFlight(MathProError):
    """A solve or explain request is already running on this orchestrator."""
