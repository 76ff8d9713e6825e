from __future__ import annotations

from functools import lru_cache
from typing import Any

from pydantic import TypeAdapter, ValidationError

from restdef.domain.errors import DecodeError


@lru_cache(maxsize=512)
def _cached_adapter(shape: Any) -> TypeAdapter:
    return TypeAdapter(shape)


def _adapter_for(shape: Any) -> TypeAdapter:
    try:
        return _cached_adapter(shape)
    except TypeError:
        # unhashable shape (e.g. Annotated with list metadata)
        return TypeAdapter(shape)


def shape_name(shape: Any) -> str:
    if shape is None:
        return "-"
    return getattr(shape, "__name__", None) or repr(shape)


def _decode_error(shape: Any, exc: ValidationError) -> DecodeError:
    errors = exc.errors(include_url=False, include_context=False)
    parts = []
    for e in errors:
        loc = ".".join(str(p) for p in e.get("loc", ()))
        parts.append(f"{loc}: {e['msg']}" if loc else e["msg"])
    message = f"Invalid value for {shape_name(shape)}: " + "; ".join(parts)
    return DecodeError(shape, message, errors)


def decode(shape: Any, raw: Any, *, strict: bool = False) -> Any:
    """
    Validate an untrusted value against a shape and return the decoded value.
    Raises DecodeError with a readable message on mismatch.
    """
    adapter = _adapter_for(shape)
    try:
        return adapter.validate_python(raw, strict=strict)
    except ValidationError as exc:
        raise _decode_error(shape, exc) from exc


def decode_json(shape: Any, data: bytes | str, *, strict: bool = False) -> Any:
    """
    Like decode(), but validates a JSON document directly.

    Strict mode here follows pydantic's JSON rules: enums, datetimes, UUIDs
    and similar types are accepted in their JSON string form, while "42"
    is still not an int.
    """
    adapter = _adapter_for(shape)
    try:
        return adapter.validate_json(data, strict=strict)
    except ValidationError as exc:
        raise _decode_error(shape, exc) from exc
