from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Pattern

from starlette.exceptions import HTTPException
from starlette.requests import Request
from starlette.routing import compile_path as _compile_regex
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from restdef.domain.errors import ClientDecodeError, PathTemplateError, UnsupportedMethodError
from restdef.domain.models import HTTP_METHODS
from restdef.infrastructure.observability import route_extra
from restdef.routing.adapter import Endpoint
from restdef.routing.context import RequestContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledRoute:
    name: str
    method: str
    path: str
    endpoint: Endpoint = field(repr=False)
    regex: Pattern[str] = field(repr=False, compare=False)
    convertors: dict[str, Any] = field(repr=False, compare=False)

    def matches(self, method: str, path: str) -> Optional[dict[str, str]]:
        if method != self.method and not (method == "HEAD" and self.method == "GET"):
            return None
        m = self.regex.match(path)
        if m is None:
            return None
        return {k: self.convertors[k].convert(v) for k, v in m.groupdict().items()}


async def _not_found(scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] == "http":
        raise HTTPException(status_code=404)
    if scope["type"] == "websocket":
        await send({"type": "websocket.close", "code": 1000})


def _route_path(scope: Scope) -> str:
    path = scope["path"]
    root_path = scope.get("root_path", "")
    if root_path and path.startswith(root_path):
        return path[len(root_path):] or "/"
    return path


def _replay(body: bytes, receive: Receive) -> Receive:
    """Hand an already-consumed request body to the next app."""
    sent = False

    async def replay() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return replay


class Router:
    """
    ASGI routing table for compiled endpoints.

    Requests that match no route, and requests whose handler defers, go to
    `app` (the next middleware). Without one, they end in a 404.
    Errors passed to call_next(error) are re-raised for the surrounding
    error middleware (see restdef.api.error_handlers.create_app).
    """

    def __init__(self, app: Optional[ASGIApp] = None):
        self.app: ASGIApp = app if app is not None else _not_found
        self._routes: list[CompiledRoute] = []

    @property
    def routes(self) -> tuple[CompiledRoute, ...]:
        return tuple(self._routes)

    # ----------------------------
    # Registration
    # ----------------------------

    def add_route(self, method: str, path: str, endpoint: Endpoint, *, name: str = "") -> CompiledRoute:
        method = str(method).upper()
        if method not in HTTP_METHODS:
            raise UnsupportedMethodError(method, name)
        if not path.startswith("/"):
            raise PathTemplateError(f"Routed paths must start with '/': {path!r}")

        try:
            regex, _fmt, convertors = _compile_regex(path)
        except ValueError as exc:
            raise PathTemplateError(str(exc)) from exc

        route = CompiledRoute(
            name=name,
            method=method,
            path=path,
            endpoint=endpoint,
            regex=regex,
            convertors=convertors,
        )
        self._routes.append(route)
        logger.debug(
            "Registered %s %s -> %s", method, path, name or "-",
            extra=route_extra(method, path, name),
        )
        return route

    def get(self, path: str, endpoint: Endpoint, *, name: str = "") -> CompiledRoute:
        return self.add_route("GET", path, endpoint, name=name)

    def post(self, path: str, endpoint: Endpoint, *, name: str = "") -> CompiledRoute:
        return self.add_route("POST", path, endpoint, name=name)

    def put(self, path: str, endpoint: Endpoint, *, name: str = "") -> CompiledRoute:
        return self.add_route("PUT", path, endpoint, name=name)

    def patch(self, path: str, endpoint: Endpoint, *, name: str = "") -> CompiledRoute:
        return self.add_route("PATCH", path, endpoint, name=name)

    def delete(self, path: str, endpoint: Endpoint, *, name: str = "") -> CompiledRoute:
        return self.add_route("DELETE", path, endpoint, name=name)

    # ----------------------------
    # Dispatch
    # ----------------------------

    def match(self, method: str, path: str) -> Optional[tuple[CompiledRoute, dict[str, str]]]:
        method = method.upper()
        for route in self._routes:
            params = route.matches(method, path)
            if params is not None:
                return route, params
        return None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        matched = self.match(scope["method"], _route_path(scope))
        if matched is None:
            await self.app(scope, receive, send)
            return

        route, params = matched
        scope["route"] = route
        request = Request(scope, receive)

        async def call_next(error: Optional[BaseException] = None) -> None:
            if error is not None:
                raise error
            body = await request.body()
            await self.app(scope, _replay(body, receive), send)

        try:
            ctx = await RequestContext.load(request, params)
        except ClientDecodeError as exc:
            await call_next(exc)
            return

        try:
            await route.endpoint(ctx, call_next)

            response = ctx.render()
            if response is not None:
                await response(scope, receive, send)
        finally:
            # releases uploaded form files
            await request.close()
