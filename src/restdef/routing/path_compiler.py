from __future__ import annotations

import re

from restdef.domain.models import LiteralSegment, ParamSegment, PathTemplate

_MULTI_SLASH = re.compile(r"/{2,}")


def compile_path(template: PathTemplate) -> str:
    """
    Render a tagged path template in the syntax of the routing engine:
      [LiteralSegment("/items/"), ParamSegment("id")] -> "/items/{id}"

    Literal text and segment order are kept as-is. Raises PathTemplateError
    when two placeholders share a name.
    """
    template.ensure_unique_params()

    out: list[str] = []
    for seg in template.segments:
        if isinstance(seg, ParamSegment):
            out.append("{" + seg.name + "}")
        elif isinstance(seg, LiteralSegment):
            out.append(seg.text)
        else:
            raise TypeError(f"Unknown path segment: {seg!r}")
    return "".join(out)


def _normalize_prefix(prefix: str) -> str:
    p = (prefix or "").strip()
    if not p or p == "/":
        return ""
    if not p.startswith("/"):
        p = "/" + p
    p = _MULTI_SLASH.sub("/", p)
    return p.rstrip("/")


def join_prefix(prefix: str, template: PathTemplate) -> PathTemplate:
    """
    Put the router prefix in front of an endpoint path.

    The prefix is parsed like any path, so it may carry placeholders too.
    "/" under prefix "/api" becomes "/api".
    """
    normalized = _normalize_prefix(prefix)
    if not normalized:
        return template

    head = PathTemplate.parse(normalized)
    if str(template) in ("", "/"):
        return head

    joined = head + template
    joined.ensure_unique_params()
    return joined
