"""Config Loader - Loads runtime configuration and endpoint catalogs.

Handles loading YAML config files with environment variable substitution,
loading catalogs from JSON or YAML (the Facturama sandbox catalog ships as
package data), and cross-checking a catalog for entries that cannot work as
written.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from api_explorer.composer import strict_json_loads
from api_explorer.models import Catalog, ExplorerConfig, HttpMethod


class ConfigError(Exception):
    """Raised when configuration loading fails."""


class CatalogError(ConfigError):
    """Raised when a catalog file cannot be loaded."""


# Bundled catalog location (inside the package)
BUNDLED_CATALOG_PATH = Path(__file__).parent / "data" / "facturama_catalog.json"

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def load_config(config_path: Path) -> ExplorerConfig:
    """Load runtime configuration from YAML with ${ENV_VAR} substitution."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    # An empty file means "all defaults"
    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return ExplorerConfig.model_validate(raw_config)
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def load_catalog(catalog_path: Path | None = None) -> Catalog:
    """Load a catalog. Uses BUNDLED_CATALOG_PATH if None.

    Files ending in .yaml or .yml are parsed as YAML, anything else as JSON.
    """
    path = catalog_path or BUNDLED_CATALOG_PATH

    if not path.exists():
        raise CatalogError(f"Catalog file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                raw_catalog = yaml.safe_load(f)
            else:
                raw_catalog = json.load(f)
    except yaml.YAMLError as e:
        raise CatalogError(f"Invalid YAML in catalog file: {e}") from e
    except json.JSONDecodeError as e:
        raise CatalogError(f"Invalid JSON in catalog file: {e}") from e

    if not isinstance(raw_catalog, dict):
        raise CatalogError("Catalog file must contain a mapping")

    try:
        return Catalog.model_validate(raw_catalog)
    except PydanticValidationError as e:
        raise CatalogError(f"Invalid catalog structure: {e}") from e


def resolve_catalog_path(config_path: Path, catalog_ref: str) -> Path:
    """Resolve catalog_ref relative to config_path's directory. Absolute paths pass through."""
    catalog_path = Path(catalog_ref)
    if catalog_path.is_absolute():
        return catalog_path
    return (config_path.parent / catalog_path).resolve()


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)


# =============================================================================
# Command-line value parsing
# =============================================================================


def parse_key_value(text: str) -> tuple[str, str]:
    """Parse NAME=VALUE. The value may be empty and may contain '='.

    Raises:
        ValueError: If there is no '=' or the name is empty.
    """
    if "=" not in text:
        raise ValueError(f"Invalid format '{text}'. Expected NAME=VALUE (e.g., 'id=abc123')")
    name, value = text.split("=", 1)
    if not name.strip():
        raise ValueError(f"Invalid format '{text}'. Name cannot be empty.")
    return name.strip(), value


def parse_header(text: str) -> tuple[str, str]:
    """Parse 'Name: value'. Surrounding whitespace of the value is stripped.

    Raises:
        ValueError: If there is no ':' or the name is empty.
    """
    if ":" not in text:
        raise ValueError(f"Invalid header '{text}'. Expected 'Name: value'")
    name, value = text.split(":", 1)
    if not name.strip():
        raise ValueError(f"Invalid header '{text}'. Header name cannot be empty.")
    return name.strip(), value.strip()


# =============================================================================
# Catalog cross-validation
# =============================================================================


class ValidationWarning:
    """A non-fatal validation warning."""

    def __init__(self, category: str, message: str) -> None:
        self.category = category
        self.message = message

    def __str__(self) -> str:
        return f"[{self.category}] {self.message}"


class ValidationError:
    """A fatal validation error."""

    def __init__(self, category: str, message: str) -> None:
        self.category = category
        self.message = message

    def __str__(self) -> str:
        return f"[{self.category}] {self.message}"


class ValidationResult:
    """Result of catalog validation checks."""

    def __init__(self) -> None:
        self.warnings: list[ValidationWarning] = []
        self.errors: list[ValidationError] = []

    def add_warning(self, category: str, message: str) -> None:
        self.warnings.append(ValidationWarning(category, message))

    def add_error(self, category: str, message: str) -> None:
        self.errors.append(ValidationError(category, message))

    @property
    def is_valid(self) -> bool:
        """True if no errors (warnings are OK)."""
        return len(self.errors) == 0


def validate_catalog(catalog: Catalog) -> ValidationResult:
    """Check a loaded catalog for entries that cannot behave as written.

    Errors: example bodies that are not valid JSON (every send would be
    rejected before reaching the network).
    Warnings: example bodies on GET (never sent), path placeholders with no
    declared parameter, and duplicate keys or titles (ambiguous lookups).
    """
    result = ValidationResult()
    seen_keys: set[str] = set()
    seen_titles: set[str] = set()

    for entry in catalog.entries():
        endpoint = entry.endpoint
        context = entry.key

        if entry.key in seen_keys:
            result.add_warning("duplicates", f"'{context}' appears more than once")
        seen_keys.add(entry.key)

        title = entry.title.lower()
        if title in seen_titles:
            result.add_warning("duplicates", f"title '{entry.title}' is used by more than one endpoint")
        seen_titles.add(title)

        declared = {p.name for p in endpoint.parameters}
        for placeholder in endpoint.placeholders():
            if placeholder not in declared:
                result.add_warning(
                    "parameters",
                    f"{context}: placeholder '{{{placeholder}}}' has no declared parameter",
                )

        if endpoint.example_body is not None:
            if endpoint.method == HttpMethod.GET:
                result.add_warning(
                    "example_body", f"{context}: GET requests never send the example body"
                )
            elif endpoint.example_body.strip():
                try:
                    strict_json_loads(endpoint.example_body)
                except ValueError as e:
                    result.add_error("example_body", f"{context}: example body is not valid JSON: {e}")

    return result
