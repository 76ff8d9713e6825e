from __future__ import annotations

import logging
from typing import Any

from restdef.domain.errors import ClientDecodeError, DecodeError
from restdef.domain.models import EndpointDefinition
from restdef.routing.context import RequestContext
from restdef.routing.decoding import decode, decode_json

logger = logging.getLogger(__name__)


def _decode_body(shape: Any, ctx: RequestContext, strict: bool) -> Any:
    if ctx.body_format == "json":
        # validate the wire JSON, not the parsed value
        return decode_json(shape, ctx.raw_body, strict=strict)
    if ctx.body_format == "form":
        # form fields are strings, like the query
        return decode(shape, ctx.body)
    return decode(shape, ctx.body, strict=strict)


def sanitize_request(
    definition: EndpointDefinition,
    ctx: RequestContext,
    *,
    strict: bool = False,
) -> None:
    """
    Replace the raw body and query of `ctx` with values decoded against the
    endpoint's shapes. Values without a declared shape become None.

    A declared body shape is always checked: a request without a body is
    decoded as None, which only passes when the shape accepts None.

    Body is handled before query. Path params stay raw strings.
    Raises ClientDecodeError (400) on any mismatch.
    """
    if definition.body is None:
        ctx.body = None
    else:
        try:
            ctx.body = _decode_body(definition.body, ctx, strict)
        except DecodeError as exc:
            logger.debug("Rejected request body: %s", exc.message)
            raise ClientDecodeError.from_decode_error(exc, "body") from exc

    if ctx.query is not None:
        if definition.query is None:
            ctx.query = None
        else:
            # query values are always strings on the wire
            try:
                ctx.query = decode(definition.query, ctx.query)
            except DecodeError as exc:
                logger.debug("Rejected query string: %s", exc.message)
                raise ClientDecodeError.from_decode_error(exc, "query") from exc
