"""Tests for api_explorer.config_loader.

Tests cover:
- load_config: YAML parsing, ${ENV_VAR} substitution, structural validation
- load_catalog: bundled catalog, JSON and YAML files, error reporting
- parse_key_value / parse_header
- validate_catalog: warnings and errors
"""

import json
from pathlib import Path

import pytest

from api_explorer.config_loader import (
    BUNDLED_CATALOG_PATH,
    CatalogError,
    ConfigError,
    load_catalog,
    load_config,
    parse_header,
    parse_key_value,
    resolve_catalog_path,
    validate_catalog,
)
from api_explorer.models import Catalog, CatalogCategory, CatalogEntry
from tests.conftest import make_descriptor


def _catalog_with(*entries: CatalogEntry) -> Catalog:
    return Catalog(categories=[CatalogCategory(name="Test", endpoints=entries)])


class TestLoadConfig:
    def test_full_config(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("FACTURAMA_AUTH", "Basic dTpw")
        config_path = tmp_path / "explorer.yaml"
        config_path.write_text(
            "base_url: http://localhost:8000/\n"
            "timeout: 5\n"
            "catalog: catalogs/custom.yaml\n"
            "headers:\n"
            "  Authorization: ${FACTURAMA_AUTH}\n"
            "  X-Env: sandbox\n",
            encoding="utf-8",
        )

        config = load_config(config_path)

        assert config.base_url == "http://localhost:8000"
        assert config.timeout == 5.0
        assert config.catalog == "catalogs/custom.yaml"
        assert config.headers == {"Authorization": "Basic dTpw", "X-Env": "sandbox"}

    def test_empty_file_uses_defaults(self, tmp_path: Path):
        config_path = tmp_path / "empty.yaml"
        config_path.write_text("", encoding="utf-8")
        assert load_config(config_path).timeout == 30.0

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Config file not found"):
            load_config(tmp_path / "nope.yaml")

    def test_invalid_yaml(self, tmp_path: Path):
        config_path = tmp_path / "bad.yaml"
        config_path.write_text("headers: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(config_path)

    def test_not_a_mapping(self, tmp_path: Path):
        config_path = tmp_path / "list.yaml"
        config_path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="must be a YAML mapping"):
            load_config(config_path)

    def test_unknown_key(self, tmp_path: Path):
        config_path = tmp_path / "extra.yaml"
        config_path.write_text("retries: 3\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid config structure"):
            load_config(config_path)

    def test_unset_env_var(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.delenv("API_EXPLORER_MISSING", raising=False)
        config_path = tmp_path / "env.yaml"
        config_path.write_text("headers:\n  Authorization: ${API_EXPLORER_MISSING}\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="'API_EXPLORER_MISSING' is not set"):
            load_config(config_path)


class TestLoadCatalog:
    def test_bundled_default(self):
        catalog = load_catalog()
        assert catalog.name == "Facturama API Sandbox"
        assert BUNDLED_CATALOG_PATH.exists()

    def test_json_file(self, tmp_path: Path):
        path = tmp_path / "catalog.json"
        path.write_text(
            json.dumps(
                {
                    "name": "Mini",
                    "categories": [
                        {
                            "name": "Clientes",
                            "endpoints": [
                                {
                                    "title": "Obtener Cliente",
                                    "endpoint": {"method": "GET", "path": "/api/Client/{id}"},
                                }
                            ],
                        }
                    ],
                }
            ),
            encoding="utf-8",
        )
        catalog = load_catalog(path)
        assert catalog.find("Obtener Cliente").endpoint.path == "/api/Client/{id}"

    def test_yaml_file(self, tmp_path: Path):
        path = tmp_path / "catalog.yml"
        path.write_text(
            "name: Mini\n"
            "categories:\n"
            "  - name: Productos\n"
            "    endpoints:\n"
            "      - title: Crear Producto\n"
            "        endpoint:\n"
            "          method: POST\n"
            "          path: /api/Product\n"
            "          example_body: '{\"Name\": \"x\"}'\n",
            encoding="utf-8",
        )
        entry = load_catalog(path).find("POST /api/Product")
        assert entry.endpoint.example_body == '{"Name": "x"}'

    def test_missing(self, tmp_path: Path):
        with pytest.raises(CatalogError, match="Catalog file not found"):
            load_catalog(tmp_path / "none.json")

    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "bad.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(CatalogError, match="Invalid JSON"):
            load_catalog(path)

    def test_invalid_structure(self, tmp_path: Path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"categories": [{"name": "x", "endpoints": [{"title": "t"}]}]}), encoding="utf-8")
        with pytest.raises(CatalogError, match="Invalid catalog structure"):
            load_catalog(path)

    def test_catalog_error_is_config_error(self):
        assert issubclass(CatalogError, ConfigError)


class TestResolveCatalogPath:
    def test_relative(self, tmp_path: Path):
        config_path = tmp_path / "conf" / "explorer.yaml"
        assert resolve_catalog_path(config_path, "cat.json") == (tmp_path / "conf" / "cat.json").resolve()

    def test_absolute(self, tmp_path: Path):
        absolute = tmp_path / "cat.json"
        assert resolve_catalog_path(Path("x.yaml"), str(absolute)) == absolute


class TestParseKeyValue:
    def test_basic(self):
        assert parse_key_value("id=abc") == ("id", "abc")

    def test_value_may_contain_equals(self):
        assert parse_key_value("keyword=a=b") == ("keyword", "a=b")

    def test_empty_value(self):
        assert parse_key_value("page=") == ("page", "")

    @pytest.mark.parametrize("text", ["noequals", "=value", "  =x"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_key_value(text)


class TestParseHeader:
    def test_basic(self):
        assert parse_header("Authorization: Basic dTpw") == ("Authorization", "Basic dTpw")

    def test_value_may_contain_colon(self):
        assert parse_header("X-Time: 12:30") == ("X-Time", "12:30")

    @pytest.mark.parametrize("text", ["NoColon", ": value"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_header(text)


class TestValidateCatalog:
    def test_bundled_catalog_is_valid(self, bundled_catalog):
        result = validate_catalog(bundled_catalog)
        assert result.is_valid
        assert result.warnings == []

    def test_invalid_example_body_is_error(self):
        catalog = _catalog_with(
            CatalogEntry(title="Crear", endpoint=make_descriptor(method="POST", path="/a", example_body="{bad"))
        )
        result = validate_catalog(catalog)
        assert not result.is_valid
        assert "POST /a: example body is not valid JSON" in str(result.errors[0])

    def test_get_example_body_warns(self):
        catalog = _catalog_with(
            CatalogEntry(title="Leer", endpoint=make_descriptor(method="GET", path="/a", example_body="{}"))
        )
        result = validate_catalog(catalog)
        assert result.is_valid
        assert [w.category for w in result.warnings] == ["example_body"]

    def test_undeclared_placeholder_warns(self):
        catalog = _catalog_with(
            CatalogEntry(title="Leer", endpoint=make_descriptor(path="/a/{id}", parameters=[]))
        )
        result = validate_catalog(catalog)
        assert "placeholder '{id}' has no declared parameter" in str(result.warnings[0])

    def test_duplicates_warn(self):
        catalog = _catalog_with(
            CatalogEntry(title="Leer", endpoint=make_descriptor(path="/a")),
            CatalogEntry(title="leer", endpoint=make_descriptor(path="/a")),
        )
        result = validate_catalog(catalog)
        assert [w.category for w in result.warnings] == ["duplicates", "duplicates"]
