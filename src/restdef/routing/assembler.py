from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Optional

from starlette.types import ASGIApp

from restdef.config import get_settings
from restdef.domain.errors import (
    AssemblyError,
    DuplicateHandlerError,
    MissingHandlerError,
    UnsupportedMethodError,
)
from restdef.domain.models import ApiDefinition
from restdef.routing.adapter import RouteHandler, adapt_handler
from restdef.routing.path_compiler import compile_path, join_prefix
from restdef.routing.router import Router

logger = logging.getLogger(__name__)

RouterDefinition = Mapping[str, RouteHandler]


def _lookup_handler(handlers: Any, name: str) -> RouteHandler:
    if isinstance(handlers, Mapping):
        if name not in handlers:
            raise MissingHandlerError([name])
        handler = handlers[name]
    else:
        # object whose methods implement the endpoints
        handler = getattr(handlers, name, None)
        if handler is None:
            raise MissingHandlerError([name])

    if not callable(handler):
        raise AssemblyError(f"Handler for endpoint '{name}' is not callable: {handler!r}")
    return handler


def _handler_names(handlers: Any) -> set[str]:
    if isinstance(handlers, Mapping):
        return set(handlers.keys())
    return {n for n in dir(handlers) if not n.startswith("_") and callable(getattr(handlers, n, None))}


def create_router(
    prefix: str,
    api_definition: ApiDefinition,
    handlers: Any,
    *,
    app: Optional[ASGIApp] = None,
    strict: Optional[bool] = None,
) -> Router:
    """
    Compile every endpoint of `api_definition` into a route served by the
    handler of the same name.

    `handlers` is a mapping of endpoint name -> handler, or an object whose
    methods are the handlers. Extra handlers are ignored. A missing handler
    raises MissingHandlerError here, before any request is served.

    Example:
        router = create_router("/api", api, {
            "list_publications": lambda ctx: db.publications(ctx.params["category"]),
            "add_publication": add_publication,
        })
    """
    if strict is None:
        strict = get_settings().strict_body_decoding

    router = Router(app=app)

    for name, definition in api_definition.items():
        handler = _lookup_handler(handlers, name)
        path = compile_path(join_prefix(prefix, definition.path))
        endpoint = adapt_handler(definition, handler, strict=strict)

        method = definition.method
        if method == "GET":
            router.get(path, endpoint, name=name)
        elif method == "POST":
            router.post(path, endpoint, name=name)
        elif method == "PUT":
            router.put(path, endpoint, name=name)
        elif method == "PATCH":
            router.patch(path, endpoint, name=name)
        elif method == "DELETE":
            router.delete(path, endpoint, name=name)
        else:
            raise UnsupportedMethodError(method, name)

    if isinstance(handlers, Mapping):
        extra = set(handlers) - set(api_definition)
        if extra:
            logger.debug("Ignoring handlers with no endpoint: %s", ", ".join(sorted(extra)))

    logger.info("Assembled router with %d route(s), prefix=%r", len(router.routes), prefix or "")
    return router


@dataclass(frozen=True)
class Coverage:
    missing: tuple[str, ...]
    extra: tuple[str, ...]

    @property
    def complete(self) -> bool:
        return not self.missing


def check_coverage(api_definition: ApiDefinition, handlers: Any) -> Coverage:
    """Report endpoints without a handler and handlers without an endpoint."""
    names = _handler_names(handlers)
    missing = tuple(n for n in api_definition if n not in names)
    extra = tuple(sorted(names - set(api_definition))) if isinstance(handlers, Mapping) else ()
    return Coverage(missing=missing, extra=extra)


class RouterBuilder:
    """
    Collects exactly one handler per endpoint, in any order:

        builder.list_publications(list_handler).add_publication(add_handler)

    Names that are not identifiers, or that clash with `remaining` and
    `definition`, go through item access: builder["get-item"](handler).
    """

    def __init__(self, api_definition: ApiDefinition):
        self._api = api_definition
        self._handlers: dict[str, RouteHandler] = {}

    @property
    def remaining(self) -> frozenset[str]:
        return frozenset(n for n in self._api if n not in self._handlers)

    def _setter(self, name: str) -> Callable[[RouteHandler], "RouterBuilder"]:
        def define(handler: RouteHandler) -> "RouterBuilder":
            if name in self._handlers:
                raise DuplicateHandlerError(name)
            if not callable(handler):
                raise AssemblyError(f"Handler for endpoint '{name}' is not callable: {handler!r}")
            self._handlers[name] = handler
            return self

        define.__name__ = name
        return define

    def __getattr__(self, name: str) -> Callable[[RouteHandler], "RouterBuilder"]:
        if name.startswith("_") or name not in self._api:
            raise AttributeError(f"{type(self).__name__!s} has no endpoint {name!r}")
        return self._setter(name)

    def __getitem__(self, name: str) -> Callable[[RouteHandler], "RouterBuilder"]:
        if name not in self._api:
            raise KeyError(name)
        return self._setter(name)

    def definition(self) -> RouterDefinition:
        missing = [n for n in self._api if n not in self._handlers]
        if missing:
            raise MissingHandlerError(missing)
        # declaration order
        return {n: self._handlers[n] for n in self._api}


def build_router(
    prefix: str,
    api_definition: ApiDefinition,
    callback: Callable[[RouterBuilder], RouterBuilder],
    *,
    app: Optional[ASGIApp] = None,
    strict: Optional[bool] = None,
) -> Router:
    """
    Create a router with the builder. Preferred over create_router: a handler
    defined twice fails on the second call, and a missing one fails before
    any route is compiled.

        router = build_router("/prefix", api, lambda b: b
            .list_publications(list_publications)
            .add_publication(add_publication)
            .remove_publication(remove_publication)
        )
    """
    builder = RouterBuilder(api_definition)
    built = callback(builder)
    if not isinstance(built, RouterBuilder):
        raise AssemblyError(
            f"Router builder callback must return the builder, got {type(built).__name__}"
        )
    return create_router(prefix, api_definition, built.definition(), app=app, strict=strict)
