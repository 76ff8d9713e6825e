from __future__ import annotations

import re
from dataclasses import dataclass
from collections.abc import Iterator, Mapping
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, model_validator

from restdef.domain.errors import PathTemplateError

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]

HTTP_METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "PATCH", "DELETE")

# only {name} is a placeholder; ":" and "<>" are literal text
_PLACEHOLDER = re.compile(r"\{([^{}]*)\}")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class LiteralSegment:
    text: str


@dataclass(frozen=True)
class ParamSegment:
    name: str


PathSegment = Union[LiteralSegment, ParamSegment]


@dataclass(frozen=True)
class PathTemplate:
    """A pathname split into literal text and named placeholders."""

    segments: tuple[PathSegment, ...] = ()

    @classmethod
    def parse(cls, path: str) -> "PathTemplate":
        """
        Split a pathname like "/publications/{category}" into tagged segments.
        Anything outside braces, ":" and "<>" included, is literal text.
        """
        segments: list[PathSegment] = []
        pos = 0
        for m in _PLACEHOLDER.finditer(path):
            if m.start() > pos:
                segments.append(LiteralSegment(path[pos:m.start()]))
            name = m.group(1)
            if not _IDENTIFIER.match(name):
                raise PathTemplateError(
                    f"Invalid placeholder name {name!r} in path {path!r}"
                )
            segments.append(ParamSegment(name))
            pos = m.end()
        if pos < len(path):
            segments.append(LiteralSegment(path[pos:]))

        template = cls(tuple(segments))
        template.ensure_unique_params()
        return template

    @property
    def param_names(self) -> tuple[str, ...]:
        return tuple(s.name for s in self.segments if isinstance(s, ParamSegment))

    def ensure_unique_params(self) -> None:
        seen: set[str] = set()
        for name in self.param_names:
            if name in seen:
                raise PathTemplateError(
                    f"Duplicated placeholder '{name}' in path {str(self)!r}"
                )
            seen.add(name)

    def __add__(self, other: "PathTemplate") -> "PathTemplate":
        return PathTemplate(self.segments + other.segments)

    def __str__(self) -> str:
        out = []
        for s in self.segments:
            out.append(s.text if isinstance(s, LiteralSegment) else "{" + s.name + "}")
        return "".join(out)


class EndpointDefinition(BaseModel):
    """
    One declared operation of an API.

    Shapes (params/body/query/response) are any type pydantic can validate.
    The response shape is documentation only; it is not enforced on output.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    method: HttpMethod
    path: PathTemplate
    params: tuple[tuple[str, Any], ...] = ()
    body: Optional[Any] = None
    query: Optional[Any] = None
    response: Optional[Any] = None
    summary: str = ""

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)

        method = data.get("method")
        if isinstance(method, str):
            data["method"] = method.strip().upper()

        path = data.get("path")
        if isinstance(path, str):
            path = PathTemplate.parse(path)
            data["path"] = path
        if not isinstance(path, PathTemplate):
            return data

        declared = data.get("params") or ()
        if isinstance(declared, Mapping):
            declared = tuple(declared.items())
        shapes = {name: shape for name, shape in declared}

        unknown = [n for n in shapes if n not in path.param_names]
        if unknown:
            raise ValueError(
                f"params {unknown} are not placeholders of path '{path}'"
            )

        # path order, str for anything undeclared
        data["params"] = tuple((n, shapes.get(n, str)) for n in path.param_names)
        return data


class ApiDefinition(Mapping[str, EndpointDefinition]):
    """Immutable, ordered mapping of endpoint name -> EndpointDefinition."""

    def __init__(self, endpoints: Mapping[str, EndpointDefinition]):
        checked: dict[str, EndpointDefinition] = {}
        for name, endpoint in endpoints.items():
            if not isinstance(name, str) or not name:
                raise TypeError(f"Endpoint names must be non-empty strings, got {name!r}")
            if not isinstance(endpoint, EndpointDefinition):
                raise TypeError(
                    f"Endpoint '{name}' must be an EndpointDefinition, "
                    f"got {type(endpoint).__name__}"
                )
            checked[name] = endpoint
        self._endpoints = checked

    def __getitem__(self, name: str) -> EndpointDefinition:
        return self._endpoints[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._endpoints)

    def __len__(self) -> int:
        return len(self._endpoints)

    def __repr__(self) -> str:
        return f"ApiDefinition({list(self._endpoints)!r})"


def define_api(**endpoints: EndpointDefinition) -> ApiDefinition:
    return ApiDefinition(endpoints)
