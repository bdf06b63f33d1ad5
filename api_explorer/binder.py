"""Parameter Binder - Places user-entered values into a path template or query string.

A bound name is a PATH parameter when the template contains the literal
"{name}", otherwise it is a QUERY parameter. Classification is by plain
substring containment, so a name is never emitted in both positions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping
from urllib.parse import quote

from api_explorer.models import EndpointDescriptor


# Characters encodeURIComponent leaves alone on top of quote()'s own
# unreserved set (letters, digits, "_.-~").
_QUERY_SAFE_CHARS = "!*'()"


class ParameterLocation(str, Enum):
    """Where a bound value ends up in the request URL."""

    PATH = "path"
    QUERY = "query"


@dataclass(frozen=True)
class BoundPath:
    """Result of binding: substituted path plus encoded query pairs.

    query holds (name, encoded_value) pairs in binding iteration order.
    """

    path: str
    query: list[tuple[str, str]] = field(default_factory=list)

    @property
    def query_string(self) -> str:
        """Query pairs joined as 'a=1&b=2' (no leading '?')."""
        return "&".join(f"{name}={value}" for name, value in self.query)

    def render(self) -> str:
        """Path with '?query' appended when there are query pairs."""
        if self.query:
            return f"{self.path}?{self.query_string}"
        return self.path


def encode_query_value(value: str) -> str:
    """Percent-encode a query value with encodeURIComponent semantics."""
    return quote(value, safe=_QUERY_SAFE_CHARS)


def classify(path_template: str, name: str) -> ParameterLocation:
    """Classify a parameter name against a path template."""
    if f"{{{name}}}" in path_template:
        return ParameterLocation.PATH
    return ParameterLocation.QUERY


def bind_parameters(path_template: str, bindings: Mapping[str, str]) -> BoundPath:
    """Substitute path parameters and collect query parameters.

    Path values are substituted raw into the first matching placeholder, even
    when empty. Placeholders with no binding stay in the path as-is. Query
    values that are empty or whitespace-only are dropped.

    Args:
        path_template: Template such as "/api/Cfdi/{format}/{type}/{id}".
        bindings: Parameter name -> user-entered value.

    Returns:
        BoundPath with the substituted path and encoded query pairs.
    """
    path = path_template
    query: list[tuple[str, str]] = []

    for name, value in bindings.items():
        if classify(path_template, name) is ParameterLocation.PATH:
            path = path.replace(f"{{{name}}}", value, 1)
        elif value.strip():
            query.append((name, encode_query_value(value)))

    return BoundPath(path=path, query=query)


def missing_required(
    descriptor: EndpointDescriptor,
    bindings: Mapping[str, str],
) -> list[str]:
    """Names of required parameters that are unbound or blank.

    For display only: composition and execution never consult this.
    """
    return [
        param.name
        for param in descriptor.parameters
        if param.required and not bindings.get(param.name, "").strip()
    ]
