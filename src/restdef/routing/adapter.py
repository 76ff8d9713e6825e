from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

from starlette.responses import Response

from restdef.domain.models import EndpointDefinition
from restdef.routing.context import RequestContext
from restdef.routing.sanitizer import sanitize_request

logger = logging.getLogger(__name__)

RouteHandler = Callable[[RequestContext], Any]


class NextFunction(Protocol):
    def __call__(self, error: Optional[BaseException] = None) -> Awaitable[None]: ...


Endpoint = Callable[[RequestContext, NextFunction], Awaitable[None]]


def adapt_handler(
    definition: EndpointDefinition,
    handler: RouteHandler,
    *,
    strict: bool = False,
) -> Endpoint:
    """
    Wrap a user handler into the request pipeline:

      sanitize -> handler(ctx) -> response body, or defer to call_next()

    A handler returning None defers to the next middleware. Errors from
    decoding or from the handler are passed to call_next(error).
    """

    async def endpoint(ctx: RequestContext, call_next: NextFunction) -> None:
        try:
            sanitize_request(definition, ctx, strict=strict)
            result = handler(ctx)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            await call_next(exc)
            return

        if isinstance(result, Response) and not ctx.headers_sent:
            ctx.respond(result)
            return

        if ctx.headers_sent:
            # Handler wrote the response itself. Any returned value is ignored
            # and call_next() is deliberately not called even when the handler
            # returned something: the next ASGI app would try to send a second
            # response on the same connection.
            return

        if result is not None:
            ctx.response_body = result
            return

        logger.debug("Handler %s returned None, deferring to next app", _handler_name(handler))
        await call_next()

    endpoint.__name__ = f"endpoint_{_handler_name(handler)}"
    return endpoint


def _handler_name(handler: Any) -> str:
    return getattr(handler, "__name__", None) or type(handler).__name__
