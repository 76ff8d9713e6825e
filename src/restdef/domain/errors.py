"""Error hierarchy for API assembly and request decoding.

Assembly errors are raised while a router is being built and must stop the
process before it serves traffic. Decode errors come from the shape decoder
and are turned into ``ClientDecodeError`` (HTTP 400) by the request pipeline.
"""

from __future__ import annotations

from typing import Any, Iterable

from starlette.exceptions import HTTPException


class RestdefError(Exception):
    """Base exception for all restdef errors."""

    code = "RESTDEF_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class AssemblyError(RestdefError):
    code = "ASSEMBLY_ERROR"


class MissingHandlerError(AssemblyError, LookupError):
    code = "MISSING_HANDLER"

    def __init__(self, names: Iterable[str]):
        self.names = tuple(names)
        super().__init__(
            "No handler defined for endpoint(s): " + ", ".join(self.names)
        )

    def __str__(self) -> str:
        # LookupError would otherwise repr() the message like KeyError does
        return self.message


class DuplicateHandlerError(AssemblyError):
    code = "DUPLICATE_HANDLER"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Handler for endpoint '{name}' is already defined")


class UnsupportedMethodError(AssemblyError):
    code = "UNSUPPORTED_METHOD"

    def __init__(self, method: Any, name: str = ""):
        self.method = method
        where = f" (endpoint '{name}')" if name else ""
        super().__init__(f"Unsupported HTTP method {method!r}{where}")


class PathTemplateError(AssemblyError):
    code = "PATH_TEMPLATE_ERROR"


class DecodeError(RestdefError):
    """Raised by the shape decoder when a raw value does not match its shape."""

    code = "DECODE_ERROR"

    def __init__(self, shape: Any, message: str, errors: list[dict] | None = None):
        super().__init__(message)
        self.shape = shape
        self.errors = errors or []


class ClientDecodeError(HTTPException):
    """400 Bad Request raised when the body or query does not match its shape."""

    code = "DECODE_ERROR"

    def __init__(self, message: str, errors: list[dict] | None = None, location: str = ""):
        super().__init__(status_code=400, detail=message)
        self.message = message
        self.errors = errors or []
        self.location = location

    @classmethod
    def from_decode_error(cls, exc: DecodeError, location: str) -> "ClientDecodeError":
        return cls(exc.message, errors=exc.errors, location=location)

    def to_response(self) -> dict:
        details = []
        for e in self.errors:
            loc = [self.location] if self.location else []
            loc.extend(str(part) for part in e.get("loc", ()))
            details.append(
                {
                    "field": ".".join(loc),
                    "message": e.get("msg", ""),
                    "type": e.get("type", ""),
                }
            )
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": details,
            }
        }
