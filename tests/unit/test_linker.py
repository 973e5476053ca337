"""Tests for load-time configuration checks and configuration loading."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import yaml

from formflow.core.errors import ConfigurationError
from formflow.core.ir import FormConfig
from formflow.core.linker import build_symbol_table, link_config
from formflow.core.loader import load_config, load_config_file


def _problems(config: FormConfig, **kwargs: Any) -> list[str]:
    with pytest.raises(ConfigurationError) as exc_info:
        link_config(config, **kwargs)
    return exc_info.value.problems


class TestLinkConfig:
    def test_valid_config_links(self, signup_config: FormConfig) -> None:
        assert link_config(signup_config) == []

    def test_unknown_dependent(self, build_config) -> None:
        config = build_config({"id": "a", "type": "t", "dependentIds": ["ghost"]})
        problems = _problems(config)
        assert problems == ["Component 'a' lists unknown dependent 'ghost'"]

    def test_duplicate_ids(self, build_config) -> None:
        config = build_config({"id": "a", "type": "t"}, {"id": "a", "type": "t"})
        problems = _problems(config)
        assert any("Duplicate element id 'a'" in p for p in problems)

    def test_section_and_component_share_namespace(self, build_config) -> None:
        config = build_config({"id": "main_section", "type": "t"})
        assert any("Duplicate" in p for p in _problems(config))

    def test_unknown_cross_field_target(self, build_config) -> None:
        config = build_config(
            {
                "id": "end",
                "type": "t",
                "validationRules": [
                    {"type": "cross_field", "relatedFieldId": "start", "relation": "gte"}
                ],
            }
        )
        assert any("unknown element 'start'" in p for p in _problems(config))

    def test_malformed_rules(self, build_config) -> None:
        config = build_config(
            {
                "id": "a",
                "type": "t",
                "validationRules": [
                    {"type": "pattern", "pattern": "[unclosed"},
                    {"type": "length", "minLength": 5, "maxLength": 2},
                    {"type": "range", "minValue": 10, "maxValue": 1},
                ],
            }
        )
        problems = _problems(config)
        assert len(problems) == 3

    def test_unregistered_custom_function(self, build_config) -> None:
        config = build_config(
            {
                "id": "a",
                "type": "t",
                "validationRules": [{"type": "custom", "function": "nope"}],
            }
        )
        assert link_config(config) == []
        assert _problems(config, functions=["validate_email"]) == [
            "Component 'a' uses unregistered function 'nope'"
        ]

    def test_journey_references(self, build_config) -> None:
        config = build_config(
            {"id": "a", "type": "t"},
            journeys=[{"id": "j", "pageIds": ["main", "missing"], "defaultPageId": "other"}],
            actions={"go": {"kind": "navigate", "target": "nowhere"}},
        )
        problems = _problems(config)
        assert "Journey 'j' references unknown page 'missing'" in problems
        assert any("default page 'other'" in p for p in problems)
        assert "Action 'go' targets unknown page 'nowhere'" in problems

    def test_configuration_error_lists_problems(self, build_config) -> None:
        config = build_config({"id": "a", "type": "t", "dependentIds": ["x", "y"]})
        with pytest.raises(ConfigurationError) as exc_info:
            link_config(config, source="form.json")
        text = str(exc_info.value)
        assert text.startswith("form.json")
        assert "Configuration has 2 problems" in text
        assert "  - Component 'a' lists unknown dependent 'x'" in text

    def test_broken_expressions_only_warn(self, build_config) -> None:
        config = build_config(
            {"id": "a", "type": "t", "visibilityExpression": "ghost == 1"},
            {"id": "b", "type": "t", "enablementExpression": "a ==="},
        )
        warnings = link_config(config)
        assert len(warnings) == 2
        assert any("unknown element 'ghost'" in w for w in warnings)


class TestSymbolTable:
    def test_locations(self, signup_config: FormConfig) -> None:
        symbols = build_symbol_table(signup_config)
        assert symbols.elements["email"] == "pages.details.personal"
        assert symbols.pages == {"details", "confirm"}
        assert symbols.duplicates == []


class TestLoader:
    def test_load_mapping(self) -> None:
        config = load_config({"id": "f", "pages": []})
        assert config.id == "f"

    def test_schema_errors_become_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            load_config({"pages": [{"sections": []}]}, source="bad.json")
        assert any(p.startswith("pages[0].id") for p in exc_info.value.problems)

    def test_load_json_file(self, config_file: Path) -> None:
        config = load_config_file(config_file)
        assert config.id == "signup"

    def test_load_yaml_file(self, tmp_path: Path, config_file: Path) -> None:
        path = tmp_path / "signup.yaml"
        path.write_text(yaml.safe_dump(json.loads(config_file.read_text())))
        assert load_config_file(path).get_component("email") is not None

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(ConfigurationError, match="Invalid configuration file"):
            load_config_file(path)

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config_file(path)
