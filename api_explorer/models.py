"""Internal data models for api-explorer.

All models use Pydantic v2. Catalog models are frozen: the catalog is loaded
once and never mutated. Bindings and header sets are plain dicts owned by a
single EndpointSession.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# Placeholder tokens in a path template, e.g. "/api/Client/{id}"
PLACEHOLDER_PATTERN = re.compile(r"\{([^{}]+)\}")


# =============================================================================
# Catalog Models
# =============================================================================


class HttpMethod(str, Enum):
    """HTTP methods an endpoint descriptor may declare."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


class ParameterSpec(BaseModel):
    """One declared parameter of an endpoint.

    The required flag is advisory: it is shown to the user but never
    enforced before a request is composed or sent.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(description="Parameter name, e.g. 'id' or 'keyword'")
    type: str = Field(default="string", description="Type hint shown to the user")
    required: bool = Field(default=False, description="Advisory required flag")
    description: str | None = Field(default=None, description="Human-readable description")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v or any(ch in v for ch in "{}"):
            raise ValueError("parameter name must be non-empty and contain no braces")
        return v


class EndpointDescriptor(BaseModel):
    """Immutable definition of one REST operation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    method: HttpMethod = Field(description="HTTP method")
    path: str = Field(description="Path template with {name} placeholders, e.g. /api/Client/{id}")
    description: str = Field(default="", description="What the operation does")
    parameters: tuple[ParameterSpec, ...] = Field(
        default=(), description="Declared parameters, in display order"
    )
    example_body: str | None = Field(
        default=None, description="Example JSON request body used to seed the editor"
    )

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("path template must start with '/'")
        return v

    @model_validator(mode="after")
    def check_unique_parameters(self) -> Self:
        names = [p.name for p in self.parameters]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate parameter names: {', '.join(duplicates)}")
        return self

    def placeholders(self) -> list[str]:
        """Names of the {name} placeholders in the path template, in order."""
        return PLACEHOLDER_PATTERN.findall(self.path)


class CatalogEntry(BaseModel):
    """A titled endpoint as listed in the catalog."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    title: str = Field(description="Display title")
    description: str = Field(default="", description="Display description")
    endpoint: EndpointDescriptor = Field(description="The endpoint definition")

    @property
    def key(self) -> str:
        """Stable lookup key, e.g. 'GET /api/Client/{id}'."""
        return f"{self.endpoint.method.value} {self.endpoint.path}"

    def matches(self, term: str) -> bool:
        """Case-insensitive substring match over title, description and path."""
        needle = term.lower()
        return (
            needle in self.title.lower()
            or needle in self.description.lower()
            or needle in self.endpoint.path.lower()
        )


class CatalogCategory(BaseModel):
    """An ordered group of catalog entries."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(description="Category name")
    description: str = Field(default="", description="Category description")
    endpoints: tuple[CatalogEntry, ...] = Field(default=(), description="Ordered entries")


class Catalog(BaseModel):
    """Top-level catalog file structure. Read-only once loaded."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    catalog_version: str = Field(default="1", description="Schema version")
    name: str = Field(default="", description="Catalog name")
    base_url: str | None = Field(default=None, description="Origin the catalog targets")
    categories: tuple[CatalogCategory, ...] = Field(default=(), description="Ordered categories")

    def entries(self) -> list[CatalogEntry]:
        """All entries, in category order."""
        return [entry for category in self.categories for entry in category.endpoints]

    def find(self, ref: str) -> CatalogEntry | None:
        """Look up an entry by key ('METHOD /path') or by title (case-insensitive).

        Keys are checked first. Method case is ignored in keys.
        """
        wanted = ref.strip()
        method, _, path = wanted.partition(" ")
        for entry in self.entries():
            if path and entry.endpoint.method.value == method.upper() and entry.endpoint.path == path.strip():
                return entry
        lowered = wanted.lower()
        for entry in self.entries():
            if entry.title.lower() == lowered:
                return entry
        return None

    def search(self, term: str) -> list[CatalogCategory]:
        """Filter entries by substring; categories left empty are dropped.

        An empty or whitespace-only term returns every category unchanged.
        """
        if not term.strip():
            return list(self.categories)
        filtered = []
        for category in self.categories:
            matching = tuple(e for e in category.endpoints if e.matches(term))
            if matching:
                filtered.append(category.model_copy(update={"endpoints": matching}))
        return filtered


# =============================================================================
# Request / Response Models
# =============================================================================


class RequestSpec(BaseModel):
    """A fully resolved request, ready to hand to a transport.

    Built fresh for every execution attempt. body is the raw text the user
    entered (already checked to be valid JSON), or None.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    url: str = Field(description="Absolute URL including query string")
    method: HttpMethod = Field(description="HTTP method")
    headers: dict[str, str] = Field(default_factory=dict, description="Request headers")
    body: str | None = Field(default=None, description="Raw JSON body text")

    @model_validator(mode="after")
    def check_get_has_no_body(self) -> Self:
        if self.method == HttpMethod.GET and self.body is not None:
            raise ValueError("GET requests cannot carry a body")
        return self


class TransportResponse(BaseModel):
    """What a transport hands back for a completed HTTP exchange."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    status_code: int = Field(description="HTTP status code")
    status_text: str = Field(default="", description="Reason phrase, e.g. 'OK'")
    body_text: str = Field(default="", description="Response body decoded as text")
    elapsed_ms: float | None = Field(default=None, description="Round-trip time in milliseconds")


class ResponseRecord(BaseModel):
    """Normalized, displayable outcome of one execution attempt.

    status_code and status_text are both present for completed exchanges and
    both absent for failures that happened before or inside the transport,
    in which case body_text carries the error message.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    status_code: int | None = Field(default=None, description="HTTP status code")
    status_text: str | None = Field(default=None, description="Reason phrase")
    body_text: str = Field(default="", description="Raw body or error message")
    is_error: bool = Field(description="Whether the attempt failed or returned a non-2xx status")
    elapsed_ms: float | None = Field(default=None, description="Round-trip time in milliseconds")

    @model_validator(mode="after")
    def check_status_pairing(self) -> Self:
        if (self.status_code is None) != (self.status_text is None):
            raise ValueError("status_code and status_text must be set together")
        return self

    @property
    def has_status(self) -> bool:
        return self.status_code is not None

    @classmethod
    def failure(cls, message: str) -> ResponseRecord:
        """Record for a failure with no HTTP status (validation or transport)."""
        return cls(body_text=message, is_error=True)

    @classmethod
    def from_transport(cls, response: TransportResponse) -> ResponseRecord:
        """Record for a completed exchange. Non-2xx statuses are errors but keep their body."""
        return cls(
            status_code=response.status_code,
            status_text=response.status_text,
            body_text=response.body_text,
            is_error=not 200 <= response.status_code < 300,
            elapsed_ms=response.elapsed_ms,
        )


class Notification(BaseModel):
    """Observational summary handed to a notifier after each execution."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    success: bool = Field(description="True only for a 2xx response")
    status_code: int | None = Field(default=None, description="HTTP status, if any")
    message: str = Field(description="'Status: N' or the error message")


class ExecutionState(str, Enum):
    """Lifecycle of a single executor: idle -> sending -> succeeded/failed -> idle."""

    IDLE = "idle"
    SENDING = "sending"
    SUCCEEDED = "succeeded"  # Exchange completed, whatever the status code
    FAILED = "failed"  # Invalid body or transport failure


# =============================================================================
# Runtime Configuration Models
# =============================================================================


class ExplorerConfig(BaseModel):
    """Top-level runtime configuration file structure."""

    model_config = ConfigDict(extra="forbid")

    base_url: str = Field(
        default="https://apisandbox.facturama.mx", description="Origin requests are sent to"
    )
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers merged over the defaults (supports ${ENV_VAR} substitution)",
    )
    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    catalog: str | None = Field(
        default=None, description="Path to a catalog file, relative to the config file"
    )

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v
