"""Request Composer - Turns a descriptor plus user input into a RequestSpec.

Pure and synchronous: no I/O happens here, so every rule can be tested
without a network mock. Composition either returns a RequestSpec or raises
a ComposerError, in which case nothing must be sent.
"""

from __future__ import annotations

import json
import math
from typing import Any, Mapping

from api_explorer.binder import BoundPath, bind_parameters
from api_explorer.models import EndpointDescriptor, HttpMethod, RequestSpec


DEFAULT_BASE_URL = "https://apisandbox.facturama.mx"

# Shown until the user enters real credentials.
AUTHORIZATION_PLACEHOLDER = "Basic [Base64(username:password)]"

JSON_CONTENT_TYPE = "application/json"

INVALID_BODY_MESSAGE = "Invalid JSON in request body"

URI_MALFORMED_MESSAGE = "URI malformed"


class ComposerError(Exception):
    """Base class for composition errors."""


class InvalidRequestBody(ComposerError):
    """Raised when a non-GET body is non-empty and not valid JSON."""


class InvalidParameterValue(ComposerError):
    """Raised when a query value cannot be percent-encoded (e.g. a lone surrogate)."""


def default_headers() -> dict[str, str]:
    """Fresh default header set for a new session."""
    return {
        "Authorization": AUTHORIZATION_PLACEHOLDER,
        "Content-Type": JSON_CONTENT_TYPE,
    }


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def _parse_float(text: str) -> float | None:
    value = float(text)
    # Overflowing literals such as 1e400 have no JSON representation
    return value if math.isfinite(value) else None


def _parse_int(text: str) -> int | float | None:
    try:
        return int(text)
    except ValueError:
        # Longer than the interpreter's int digit limit
        return _parse_float(text)


def strict_json_loads(text: str) -> Any:
    """json.loads with JSON.parse number semantics.

    NaN and Infinity literals are rejected. Numbers too large for a finite
    float (or too long for an int) parse as None, which re-serializes as null.
    """
    return json.loads(
        text,
        parse_constant=_reject_constant,
        parse_float=_parse_float,
        parse_int=_parse_int,
    )


def build_url(base_url: str, bound: BoundPath) -> str:
    """Join origin, substituted path and query string."""
    return f"{base_url.rstrip('/')}{bound.render()}"


def compose_url(
    descriptor: EndpointDescriptor,
    bindings: Mapping[str, str],
    base_url: str = DEFAULT_BASE_URL,
) -> str:
    """Preview the URL a request would be sent to. Independent of execution.

    Raises:
        InvalidParameterValue: If a query value is not encodable as UTF-8.
    """
    try:
        bound = bind_parameters(descriptor.path, bindings)
    except UnicodeEncodeError as e:
        raise InvalidParameterValue(URI_MALFORMED_MESSAGE) from e
    return build_url(base_url, bound)


def merge_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Copy caller headers and force Content-Type to application/json.

    Any caller-supplied Content-Type, in any letter case, is replaced.
    """
    merged = {k: v for k, v in headers.items() if k.lower() != "content-type"}
    merged["Content-Type"] = JSON_CONTENT_TYPE
    return merged


def validate_body(method: HttpMethod, body_text: str) -> str | None:
    """Return the body to send, or None.

    GET never carries a body. For other methods, blank text means no body and
    non-blank text must be valid JSON; the original text is sent unchanged.

    Raises:
        InvalidRequestBody: If the text does not parse as JSON.
    """
    if method == HttpMethod.GET or not body_text.strip():
        return None
    try:
        strict_json_loads(body_text)
    except ValueError as e:
        raise InvalidRequestBody(INVALID_BODY_MESSAGE) from e
    return body_text


def compose_request(
    descriptor: EndpointDescriptor,
    bindings: Mapping[str, str],
    headers: Mapping[str, str],
    body_text: str,
    base_url: str = DEFAULT_BASE_URL,
) -> RequestSpec:
    """Assemble a ready-to-send request.

    Args:
        descriptor: The endpoint being called.
        bindings: Parameter name -> user-entered value.
        headers: Caller header set, passed through verbatim apart from Content-Type.
        body_text: Raw body editor contents.
        base_url: Origin to prefix onto the path.

    Returns:
        RequestSpec for exactly one transport call.

    Raises:
        InvalidRequestBody: If a non-GET body is not valid JSON.
        InvalidParameterValue: If a query value cannot be encoded.
    """
    body = validate_body(descriptor.method, body_text)
    return RequestSpec(
        url=compose_url(descriptor, bindings, base_url),
        method=descriptor.method,
        headers=merge_headers(headers),
        body=body,
    )
