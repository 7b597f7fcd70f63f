# FILE: auth.py
# LOCATION: mathpro/auth.py

"""Bearer-token verification for the gateway.

``TokenAuthenticator`` only deals with the Authorization header; checking the
signature, expiry and issuer of the token is delegated to a ``TokenVerifier``.
Two verifiers are provided: a PyJWT one for tokens signed with a configured
key, and a Firebase one for ID tokens issued by Firebase Authentication.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence

import jwt as pyjwt

from .errors import InvalidToken, MissingToken

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Identity:
    uid: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    claims: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)


class TokenVerifier(Protocol):
    def verify(self, token: str) -> dict[str, Any]:
        """Return the token's claims or raise if the token is not acceptable."""
        ...


class JwtTokenVerifier:
    """Verify JWTs signed with a shared secret or a public key."""

    def __init__(
        self,
        key: str,
        algorithms: Sequence[str] = ("HS256",),
        issuer: Optional[str] = None,
        audience: Optional[str] = None,
    ) -> None:
        if not key:
            raise ValueError("A signing key is required to verify tokens")
        self.key = key
        self.algorithms = list(algorithms)
        self.issuer = issuer
        self.audience = audience

    def verify(self, token: str) -> dict[str, Any]:
        return pyjwt.decode(
            token,
            self.key,
            algorithms=self.algorithms,
            issuer=self.issuer,
            audience=self.audience,
            options={"require": ["exp", "sub"], "verify_aud": self.audience is not None},
        )


class FirebaseTokenVerifier:
    """Verify Firebase ID tokens with the Admin SDK.

    The Firebase app is initialised once by the caller and handed in, so the
    gateway never touches the SDK's module-level default app.
    """

    def __init__(self, app=None, check_revoked: bool = False) -> None:
        self.app = app
        self.check_revoked = check_revoked

    @classmethod
    def initialize(cls, project_id: Optional[str] = None, name: str = "mathpro") -> "FirebaseTokenVerifier":
        import firebase_admin

        options = {"projectId": project_id} if project_id else None
        try:
            app = firebase_admin.get_app(name)
        except ValueError:
            app = firebase_admin.initialize_app(options=options, name=name)
        return cls(app=app)

    def verify(self, token: str) -> dict[str, Any]:
        from firebase_admin import auth as firebase_auth

        claims = firebase_auth.verify_id_token(token, app=self.app, check_revoked=self.check_revoked)
        # Firebase exposes the subject as ``uid``; keep ``sub`` for the identity mapping.
        claims.setdefault("sub", claims.get("uid"))
        return claims


class TokenAuthenticator:
    def __init__(self, verifier: TokenVerifier) -> None:
        self.verifier = verifier

    def authenticate(self, authorization: Optional[str]) -> Identity:
        """Resolve the Authorization header value into an ``Identity``.

        Raises:
            MissingToken: header absent or not of the form ``Bearer <token>``.
            InvalidToken: the verifier rejected the token.
        """
        if not authorization or not authorization.startswith(BEARER_PREFIX):
            raise MissingToken()

        token = authorization[len(BEARER_PREFIX):].strip()
        if not token:
            raise MissingToken()

        try:
            claims = self.verifier.verify(token)
        except Exception as exc:
            logger.warning("Error verifying ID token: %s: %s", type(exc).__name__, exc)
            raise InvalidToken() from exc

        subject = claims.get("sub")
        if not subject:
            logger.warning("Verified token carries no subject claim")
            raise InvalidToken()

        return Identity(
            uid=str(subject),
            display_name=claims.get("name"),
            email=claims.get("email"),
            claims=claims,
        )
