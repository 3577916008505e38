"""Success-response helpers for business handlers: {"success": true, "data": ...}."""

import json
from typing import Any

from pydantic import BaseModel

from app.middleware.pipeline import Response

JSON_HEADERS = {"Content-Type": "application/json"}


def _dump(data: Any) -> Any:
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    return data


def success(data: Any, status_code: int = 200) -> Response:
    return Response(
        status_code=status_code,
        headers=dict(JSON_HEADERS),
        body=json.dumps({"success": True, "data": _dump(data)}, default=str),
    )


def created(data: Any) -> Response:
    return success(data, status_code=201)


def no_content() -> Response:
    return Response(status_code=204, headers={}, body="")
