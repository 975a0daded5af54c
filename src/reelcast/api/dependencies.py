"""Dependency injection providers for FastAPI."""

from functools import lru_cache

from fastapi import Header
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from reelcast.models.errors import ValidationError
from reelcast.services import Services, build_services


@lru_cache
def get_services() -> Services:
    return build_services()


def get_user_id(x_user_id: str | None = Header(default=None)) -> str | None:
    return x_user_id


def resolve_user_id(body: dict, header_user_id: str | None) -> str:
    user_id = body.get("user_id") or header_user_id
    if not user_id:
        raise ValidationError("user_id is required (request body or X-User-Id header)")
    return str(user_id)


def parse_body(schema, data: dict, label: str):
    """Validate ``data`` against a model or TypeAdapter; schema errors become a 400."""
    adapter = schema if isinstance(schema, TypeAdapter) else TypeAdapter(schema)
    try:
        return adapter.validate_python(data)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {label}: {e.error_count()} error(s)",
            details={"errors": e.errors(include_url=False, include_context=False, include_input=False)},
        )
