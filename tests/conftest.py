"""Shared pytest fixtures for formflow tests."""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from formflow.core.ir import FormConfig
from formflow.core.settings import EngineSettings, FormflowEnv
from formflow.forms import FormEngine, RecordingNavigator


ConfigBuilder = Callable[..., FormConfig]


@pytest.fixture
def settings() -> EngineSettings:
    """Settings independent of the test runner's environment."""
    return EngineSettings(env=FormflowEnv.TEST)


@pytest.fixture
def build_config() -> ConfigBuilder:
    """Build a one-page configuration from component dicts (camelCase keys allowed)."""

    def build(*components: dict[str, Any], **extra: Any) -> FormConfig:
        data: dict[str, Any] = {
            "id": extra.pop("form_id", "test_form"),
            "pages": [
                {
                    "id": "main",
                    "sections": [{"id": "main_section", "components": list(components)}],
                }
            ],
        }
        data.update(extra)
        return FormConfig.model_validate(data)

    return build


@pytest.fixture
def required_config(build_config: ConfigBuilder) -> FormConfig:
    return build_config(
        {"id": "name", "type": "text", "validationRules": [{"type": "required"}]},
    )


@pytest.fixture
def range_config(build_config: ConfigBuilder) -> FormConfig:
    return build_config(
        {
            "id": "score",
            "type": "number",
            "validationRules": [{"type": "range", "minValue": 0, "maxValue": 100}],
        },
    )


@pytest.fixture
def cross_field_config(build_config: ConfigBuilder) -> FormConfig:
    return build_config(
        {"id": "start", "type": "number", "order": 1},
        {
            "id": "end",
            "type": "number",
            "order": 2,
            "validationRules": [
                {"type": "cross_field", "relatedFieldId": "start", "relation": "gte"}
            ],
        },
    )


SIGNUP_CONFIG: dict[str, Any] = {
    "id": "signup",
    "journeys": [
        {
            "id": "onboarding",
            "pageIds": ["details", "confirm"],
            "navigation": {"allowBack": False, "allowForward": True},
        }
    ],
    "pages": [
        {
            "id": "details",
            "journeyId": "onboarding",
            "sections": [
                {
                    "id": "personal",
                    "order": 1,
                    "components": [
                        {
                            "id": "email",
                            "type": "text",
                            "order": 1,
                            "bindingPath": "$.user.email",
                            "validationRules": [{"type": "required"}, {"type": "email"}],
                        },
                        {
                            "id": "age",
                            "type": "number",
                            "order": 2,
                            "bindingPath": "user.age",
                            "validationRules": [
                                {"type": "range", "minValue": 0, "maxValue": 130}
                            ],
                            "dependentIds": ["extras"],
                        },
                        {
                            "id": "has_company",
                            "type": "checkbox",
                            "order": 3,
                            "defaultValue": False,
                            "dependentIds": ["company"],
                        },
                        {
                            "id": "company",
                            "type": "text",
                            "order": 4,
                            "visibilityExpression": "has_company == true",
                            "validationRules": [{"type": "required"}],
                        },
                    ],
                },
                {
                    "id": "extras",
                    "order": 2,
                    "visibilityExpression": "age >= 18",
                    "components": [
                        {
                            "id": "newsletter",
                            "type": "checkbox",
                            "validationRules": [{"type": "required"}],
                        }
                    ],
                },
                {
                    "id": "buttons",
                    "order": 3,
                    "components": [
                        {
                            "id": "continue",
                            "type": "button",
                            "action": {"kind": "submit", "target": "confirm"},
                        },
                        {
                            "id": "back",
                            "type": "button",
                            "order": 1,
                            "action": {"kind": "navigate_back"},
                        },
                    ],
                },
            ],
        },
        {
            "id": "confirm",
            "journeyId": "onboarding",
            "sections": [
                {"id": "summary", "components": [{"id": "done", "type": "label"}]},
            ],
        },
    ],
    "actions": {
        "go_confirm": {"kind": "navigate", "target": "confirm"},
        "clear_email": {"kind": "reset", "target": "email"},
        "help": {"kind": "custom", "name": "open_help"},
    },
}


@pytest.fixture
def signup_config() -> FormConfig:
    return FormConfig.model_validate(SIGNUP_CONFIG)


@pytest.fixture
def navigator() -> RecordingNavigator:
    return RecordingNavigator(start_page_id="details")


@pytest.fixture
def signup_engine(
    signup_config: FormConfig, navigator: RecordingNavigator, settings: EngineSettings
) -> Iterator[FormEngine]:
    engine = FormEngine(signup_config, navigator=navigator, settings=settings)
    yield engine
    engine.close()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """The signup configuration written as JSON."""
    path = tmp_path / "signup.json"
    path.write_text(json.dumps(SIGNUP_CONFIG))
    return path
