"""Error handlers and app wrapper for serving a Router.

Invariants:
    - ClientDecodeError -> 400 with a structured JSON body
    - Other HTTPExceptions use Starlette's default rendering
    - Handler errors reach ServerErrorMiddleware unchanged (500)
"""

import logging
from typing import Any, Callable, Mapping, Optional

from starlette.middleware.errors import ServerErrorMiddleware
from starlette.middleware.exceptions import ExceptionMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp

from restdef.domain.errors import ClientDecodeError
from restdef.infrastructure.observability import route_extra

logger = logging.getLogger(__name__)


async def decode_error_handler(request: Request, exc: ClientDecodeError) -> JSONResponse:
    """Render a request decode failure as a 400 JSON error."""
    route = request.scope.get("route")
    logger.warning(
        f"Decode error on {request.method} {request.url.path}: {exc.message}",
        extra=route_extra(
            request.method,
            request.url.path,
            getattr(route, "name", None),
            error_code=exc.code,
            location=exc.location or None,
            status_code=exc.status_code,
        ),
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


def create_app(
    router: ASGIApp,
    *,
    debug: bool = False,
    exception_handlers: Optional[Mapping[Any, Callable]] = None,
) -> ASGIApp:
    """
    Wrap a Router with the error middleware that turns errors forwarded by
    the request pipeline into responses.
    """
    handlers: dict[Any, Callable] = {ClientDecodeError: decode_error_handler}
    handlers.update(exception_handlers or {})
    app = ExceptionMiddleware(router, handlers=handlers, debug=debug)
    return ServerErrorMiddleware(app, debug=debug)
