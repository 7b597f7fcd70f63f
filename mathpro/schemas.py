# FILE: schemas.py
# LOCATION: mathpro/schemas.py

from enum import Enum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidAction, InvalidField, MissingField

# --- Pydantic Models ---
# These models define the structure of the JSON exchanged between the client
# and the gateway. Python attribute names are snake_case; the wire uses the
# camelCase aliases.

DEFAULT_LANGUAGE = "English"


class Action(str, Enum):
    SOLVE = "solve"
    EXPLAIN = "explain"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SolveRequest(_WireModel):
    action: Literal[Action.SOLVE] = Action.SOLVE
    text_problem: Optional[str] = Field(default=None, alias="textProblem")
    base64_image: Optional[str] = Field(default=None, alias="base64Image")
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    output_language: str = Field(default=DEFAULT_LANGUAGE, alias="outputLanguage")

    @property
    def has_text(self) -> bool:
        return bool(self.text_problem and self.text_problem.strip())


class ExplainRequest(_WireModel):
    action: Literal[Action.EXPLAIN] = Action.EXPLAIN
    original_problem: Optional[str] = Field(default=None, alias="originalProblem")
    original_solution: Optional[str] = Field(default=None, alias="originalSolution")
    output_language: str = Field(default=DEFAULT_LANGUAGE, alias="outputLanguage")


ActionRequest = Union[SolveRequest, ExplainRequest]

_REQUEST_MODELS = {
    Action.SOLVE: SolveRequest,
    Action.EXPLAIN: ExplainRequest,
}


class SolveResponse(_WireModel):
    solution: str


class ExplainResponse(_WireModel):
    explanation: str


class ErrorResponse(_WireModel):
    error: str
    details: Optional[str] = None


def parse_action_request(body: Any) -> ActionRequest:
    """Turn a decoded JSON body into the request variant named by ``action``.

    Field presence rules (text or image, original solution) are checked later
    by the prompt builder, so this only rejects a missing or unknown action
    and values of the wrong type.
    """
    if not isinstance(body, dict):
        raise InvalidField("body", "expected a JSON object")

    raw_action = body.get("action")
    if not raw_action:
        raise MissingField("action", "Missing required field: action (solve or explain).")
    try:
        action = Action(raw_action)
    except ValueError:
        raise InvalidAction(raw_action)

    model = _REQUEST_MODELS[action]
    # JSON null means "not given"; the action is fixed by the model itself
    payload = {k: v for k, v in body.items() if v is not None and k != "action"}
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "body"
        raise InvalidField(field, first["msg"])
