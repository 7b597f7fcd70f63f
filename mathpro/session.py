# FILE: session.py
# LOCATION: mathpro/session.py

"""
Client-side sign-in state.

``AuthSession`` tracks the signed-in user and notifies subscribers once per
transition. The first transition is ``mark_ready``, fired exactly once even
when nobody is signed in, so a front end can tell "still loading" from
"signed out". The current user doubles as the credential source for
``AuthenticatedRequestClient``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

import httpx

from .errors import AuthenticationFailure

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"
REFRESH_MARGIN_SECONDS = 60


class User(Protocol):
    uid: str
    display_name: Optional[str]

    async def get_id_token(self) -> str:
        ...


Listener = Callable[[Optional[User]], None]


class AuthSession:
    def __init__(self) -> None:
        self._user: Optional[User] = None
        self._ready = False
        self._listeners: List[Listener] = []

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def current_user(self) -> Optional[User]:
        return self._user

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a handle that unsubscribes it.

        A listener added after the session is ready is called once straight
        away with the current user.
        """
        self._listeners.append(listener)
        if self._ready:
            listener(self._user)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._user)

    def mark_ready(self, user: Optional[User] = None) -> None:
        if self._ready:
            return
        self._user = user
        self._ready = True
        self._notify()

    def sign_in(self, user: User) -> None:
        self._user = user
        self._ready = True
        self._notify()

    def sign_out(self) -> None:
        if not self._ready:
            self.mark_ready(None)
            return
        if self._user is None:
            return
        self._user = None
        self._notify()


@dataclass
class StaticTokenUser:
    """A user whose ID token was obtained elsewhere (CLI flag, tests)."""

    uid: str
    token: str
    display_name: Optional[str] = None

    async def get_id_token(self) -> str:
        return self.token


class PasswordUser:
    """A Firebase email/password user; refreshes its ID token near expiry."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        *,
        uid: str,
        id_token: str,
        refresh_token: str,
        expires_in: float,
        display_name: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self.uid = uid
        self.display_name = display_name
        self._id_token = id_token
        self._refresh_token = refresh_token
        self._clock = clock
        self._expires_at = clock() + expires_in

    async def get_id_token(self) -> str:
        if self._clock() >= self._expires_at - REFRESH_MARGIN_SECONDS:
            await self._refresh()
        return self._id_token

    async def _refresh(self) -> None:
        logger.debug("Refreshing ID token for uid=%s", self.uid)
        response = await self._http.post(
            SECURE_TOKEN_URL,
            params={"key": self._api_key},
            data={"grant_type": "refresh_token", "refresh_token": self._refresh_token},
        )
        if not response.is_success:
            raise AuthenticationFailure(response.status_code, "Session expired. Please log in again.")
        data = response.json()
        self._id_token = data["id_token"]
        self._refresh_token = data.get("refresh_token", self._refresh_token)
        self._expires_at = self._clock() + float(data.get("expires_in", 3600))


async def sign_in_with_password(
    http: httpx.AsyncClient,
    api_key: str,
    email: str,
    password: str,
) -> PasswordUser:
    """Exchange email and password for a Firebase ID token."""
    if not api_key:
        raise AuthenticationFailure(message="FIREBASE_API_KEY is not configured.")

    response = await http.post(
        IDENTITY_TOOLKIT_URL,
        params={"key": api_key},
        json={"email": email, "password": password, "returnSecureToken": True},
    )
    if not response.is_success:
        try:
            reason = response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            reason = response.text
        logger.warning("Sign-in failed for %s: %s", email, reason)
        raise AuthenticationFailure(response.status_code, f"Sign-in failed: {reason}")

    data = response.json()
    return PasswordUser(
        http,
        api_key,
        uid=data["localId"],
        id_token=data["idToken"],
        refresh_token=data["refreshToken"],
        expires_in=float(data.get("expiresIn", 3600)),
        display_name=data.get("displayName") or None,
    )
