from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any, Literal, Optional

from pydantic_core import to_jsonable_python
from starlette.formparsers import MultiPartException
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response

from restdef.domain.errors import ClientDecodeError

_UNSET: Any = object()

BodyFormat = Literal["json", "form", "text", "bytes"]

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def _media_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


def _multi_dict(items: Iterable[tuple[str, Any]]) -> dict[str, Any]:
    """Collapse repeated keys into lists, keeping single values as-is."""
    out: dict[str, Any] = {}
    for key, value in items:
        if key in out:
            prev = out[key]
            out[key] = prev + [value] if isinstance(prev, list) else [prev, value]
        else:
            out[key] = value
    return out


def _raw_query(request: Request) -> dict[str, Any]:
    return _multi_dict(request.query_params.multi_items())


def _raw_body(data: bytes, media_type: str) -> tuple[Any, Optional[BodyFormat]]:
    if not data:
        return None, None

    if not media_type or media_type == "application/json" or media_type.endswith("+json"):
        try:
            return json.loads(data), "json"
        except ValueError as exc:
            raise ClientDecodeError(f"Malformed JSON body: {exc}", location="body") from exc
    if media_type.startswith("text/"):
        return data.decode("utf-8", errors="replace"), "text"
    return data, "bytes"


async def _form_body(request: Request) -> dict[str, Any]:
    try:
        form = await request.form()
    except MultiPartException as exc:
        raise ClientDecodeError(f"Malformed form body: {exc.message}", location="body") from exc
    return _multi_dict(form.multi_items())


class RequestContext:
    """
    Per-request state handed to endpoint handlers.

    `body` and `query` start as raw wire values and are replaced in place by
    their decoded values before the handler runs. `params` holds the path
    parameters as strings. `raw_body` keeps the bytes as received and
    `body_format` records how they were parsed (None when there was no body).
    """

    def __init__(
        self,
        request: Request,
        params: Optional[dict[str, str]] = None,
        body: Any = None,
        query: Any = None,
        *,
        raw_body: bytes = b"",
        body_format: Optional[BodyFormat] = None,
    ):
        self.request = request
        self.params: dict[str, str] = dict(params or {})
        self.body = body
        self.query = query
        self.raw_body = raw_body
        self.body_format = body_format

        self.status_code = 200
        self.headers: dict[str, str] = {}
        self.response_body: Any = _UNSET
        self.response: Optional[Response] = None

    @classmethod
    async def load(cls, request: Request, params: dict[str, str]) -> "RequestContext":
        data = await request.body()
        media_type = _media_type(request.headers.get("content-type", ""))
        if data and media_type in _FORM_TYPES:
            body, body_format = await _form_body(request), "form"
        else:
            body, body_format = _raw_body(data, media_type)
        return cls(
            request,
            params=params,
            body=body,
            query=_raw_query(request),
            raw_body=data,
            body_format=body_format,
        )

    @property
    def headers_sent(self) -> bool:
        return self.response is not None

    @property
    def has_response_body(self) -> bool:
        return self.response_body is not _UNSET

    def respond(self, response: Response) -> None:
        """Write the response directly, bypassing return-value serialization."""
        self.response = response

    def render(self) -> Optional[Response]:
        if self.response is not None:
            return self.response
        if not self.has_response_body:
            return None

        value = self.response_body
        if isinstance(value, str):
            return PlainTextResponse(value, status_code=self.status_code, headers=self.headers)
        if isinstance(value, (bytes, bytearray)):
            return Response(
                bytes(value),
                status_code=self.status_code,
                headers=self.headers,
                media_type="application/octet-stream",
            )
        return JSONResponse(
            to_jsonable_python(value),
            status_code=self.status_code,
            headers=self.headers,
        )
