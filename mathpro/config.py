# FILE: config.py
# LOCATION: mathpro/config.py

"""
Configuration for the MathPRO gateway and client.

Values come from the environment; a ``.env`` file in the working directory is
loaded first so local development needs no exported variables.
"""

import os
from dataclasses import dataclass, field
from typing import List, Literal, Optional

from dotenv import load_dotenv

AuthBackend = Literal["jwt", "firebase"]
GenerationBackend = Literal["gemini", "sympy"]


def _csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    """Typed view over the environment."""

    log_level: str = "INFO"

    # Gateway
    gateway_host: str = "0.0.0.0"
    gateway_port: int = 8000

    # Identity provider
    auth_backend: AuthBackend = "jwt"
    jwt_secret: str = ""
    jwt_algorithms: List[str] = field(default_factory=lambda: ["HS256"])
    jwt_issuer: Optional[str] = None
    jwt_audience: Optional[str] = None
    firebase_project_id: Optional[str] = None
    firebase_api_key: str = ""

    # Generation capability
    generation_backend: GenerationBackend = "gemini"
    gcloud_project: Optional[str] = None
    vertex_region: str = "us-central1"
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"

    # Client
    endpoint: str = "http://localhost:8000/api/math-solver"
    max_retries: int = 3

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        load_dotenv(env_file)
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            gateway_host=os.getenv("GATEWAY_HOST", "0.0.0.0"),
            gateway_port=int(os.getenv("GATEWAY_PORT", "8000")),
            auth_backend=os.getenv("AUTH_BACKEND", "jwt"),  # type: ignore
            jwt_secret=os.getenv("JWT_SECRET", ""),
            jwt_algorithms=_csv(os.getenv("JWT_ALGORITHMS", "HS256")),
            jwt_issuer=os.getenv("JWT_ISSUER") or None,
            jwt_audience=os.getenv("JWT_AUDIENCE") or None,
            firebase_project_id=os.getenv("FIREBASE_PROJECT_ID") or None,
            firebase_api_key=os.getenv("FIREBASE_API_KEY", ""),
            generation_backend=os.getenv("GENERATION_BACKEND", "gemini"),  # type: ignore
            gcloud_project=os.getenv("GCLOUD_PROJECT") or None,
            vertex_region=os.getenv("VERTEX_REGION", "us-central1"),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
            endpoint=os.getenv("MATHPRO_ENDPOINT", "http://localhost:8000/api/math-solver"),
            max_retries=int(os.getenv("MATHPRO_MAX_RETRIES", "3")),
        )

    def validate(self) -> List[str]:
        """Return a list of problems that would stop the gateway from starting."""
        problems = []
        if self.auth_backend == "jwt" and not self.jwt_secret:
            problems.append("JWT_SECRET is required when AUTH_BACKEND=jwt")
        if self.auth_backend not in ("jwt", "firebase"):
            problems.append(f"Unknown AUTH_BACKEND: {self.auth_backend}")
        if self.generation_backend == "gemini" and not (self.gcloud_project or self.gemini_api_key):
            problems.append("GCLOUD_PROJECT or GEMINI_API_KEY is required when GENERATION_BACKEND=gemini")
        if self.generation_backend not in ("gemini", "sympy"):
            problems.append(f"Unknown GENERATION_BACKEND: {self.generation_backend}")
        if self.max_retries < 1:
            problems.append("MATHPRO_MAX_RETRIES must be at least 1")
        return problems
