"""
User API Backend — Request Validation
======================================

What:  Turns a pipeline Request's body or query string into a pydantic model.
How:   Missing or malformed input raises BadRequestError (400); input that
       parses but breaks the schema raises ValidationError (422) whose details
       list every failing field.
"""

from typing import Any, Dict, List, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from app.exceptions import BadRequestError, ValidationError
from app.middleware.pipeline import Request

ModelT = TypeVar("ModelT", bound=BaseModel)


def _field_errors(exc: PydanticValidationError) -> List[Dict[str, Any]]:
    return [
        {
            "field": ".".join(str(part) for part in error["loc"]) or "body",
            "message": error["msg"],
        }
        for error in exc.errors()
    ]


def parse_model(schema: Type[ModelT], data: Any) -> ModelT:
    try:
        return schema.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(details=_field_errors(exc))


def parse_body(request: Request, schema: Type[ModelT]) -> ModelT:
    """Validate the JSON body of `request` against `schema`."""
    if not request.body or not request.body.strip():
        raise BadRequestError("Request body is required")
    return parse_model(schema, request.json())


def parse_query(request: Request, schema: Type[ModelT]) -> ModelT:
    """Validate query-string parameters against `schema`."""
    return parse_model(schema, dict(request.query_params))
