"""Shared request helpers for the API routers."""

from typing import Type, TypeVar

from fastapi import HTTPException, Request
from pydantic import BaseModel, ValidationError

Model = TypeVar("Model", bound=BaseModel)


async def read_body(request: Request) -> bytes:
    """Read the request body, refusing anything over the configured limit."""
    limit = request.app.state.config.max_body_bytes

    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        raise HTTPException(status_code=413, detail="request body too large")

    body = b""
    async for chunk in request.stream():
        body += chunk
        if len(body) > limit:
            raise HTTPException(status_code=413, detail="request body too large")
    return body


def parse_body(model: Type[Model], body: bytes) -> Model:
    """Validate a JSON body, mapping failures to 400."""
    try:
        return model.model_validate_json(body)
    except ValidationError as e:
        raise HTTPException(
            status_code=400, detail=f"invalid request body: {e.error_count()} error(s)"
        ) from e


def require_engine(request: Request) -> None:
    """Refuse work the correlation engine can no longer accept."""
    if not request.app.state.engine.is_running:
        raise HTTPException(status_code=503, detail="approval engine not running")
