"""Tests for action dispatch and journey navigation permissions."""

from __future__ import annotations

from typing import Any

import pytest

from formflow.core.errors import ActionError
from formflow.core.ir import ActionConfig, ActionKind, JourneyConfig
from formflow.forms import ActionOutcome, FormEngine, RecordingNavigator
from formflow.forms.actions import navigation_refusal


class TestNavigationRefusal:
    @pytest.fixture
    def journey(self) -> JourneyConfig:
        return JourneyConfig.model_validate(
            {
                "id": "j",
                "pageIds": ["one", "two", "three"],
                "navigation": {"allowBack": False, "allowForward": True},
            }
        )

    def test_no_journey_allows_everything(self) -> None:
        assert navigation_refusal(ActionKind.NAVIGATE_BACK, None, "one") is None

    def test_back_refused(self, journey) -> None:
        reason = navigation_refusal(ActionKind.NAVIGATE_BACK, journey, "two")
        assert reason == "Journey 'j' does not allow going back"

    def test_forward_allowed(self, journey) -> None:
        assert navigation_refusal(ActionKind.NAVIGATE, journey, "one", "three") is None

    def test_backwards_jump_refused(self, journey) -> None:
        assert navigation_refusal(ActionKind.NAVIGATE, journey, "three", "one") is not None

    def test_forward_refused(self, journey) -> None:
        locked = journey.model_copy(
            update={"navigation": journey.navigation.model_copy(update={"allow_forward": False})}
        )
        reason = navigation_refusal(ActionKind.SUBMIT, locked, "one", "two")
        assert reason == "Journey 'j' does not allow moving forward"

    def test_pages_outside_journey_are_not_checked(self, journey) -> None:
        assert navigation_refusal(ActionKind.NAVIGATE, journey, "three", "elsewhere") is None


class TestRecordingNavigator:
    def test_tracks_history(self) -> None:
        navigator = RecordingNavigator("home")
        navigator.navigate("a")
        navigator.navigate("b")
        navigator.navigate_back()
        assert navigator.current_page_id == "a"
        navigator.navigate_home()
        assert navigator.current_page_id == "home"
        assert navigator.requests == [
            ("navigate", "a"),
            ("navigate", "b"),
            ("navigate_back", None),
            ("navigate_home", None),
        ]


class TestSubmit:
    def test_blocked_by_errors(self, signup_engine, navigator) -> None:
        result = signup_engine.dispatch_action(origin_element_id="continue")
        assert result.outcome == ActionOutcome.BLOCKED
        assert result.blocking_element_ids == ["email"]
        assert result.message == "Form has validation errors"
        assert not result.proceeded
        assert navigator.requests == []
        assert signup_engine.current_page_id == "details"

    def test_hidden_errors_do_not_block(self, signup_engine, navigator) -> None:
        signup_engine.update_value("has_company", True)
        signup_engine.update_value("company", "")
        signup_engine.update_value("has_company", False)
        signup_engine.update_value("email", "ada@example.com")

        result = signup_engine.dispatch_action(origin_element_id="continue")
        assert result.outcome == ActionOutcome.SUBMITTED

    def test_disabled_errors_do_not_block(self, build_config, settings) -> None:
        config = build_config(
            {
                "id": "name",
                "type": "text",
                "enablementExpression": "lock != 'y'",
                "validationRules": [{"type": "required"}],
            },
            {"id": "lock", "type": "text"},
        )
        with FormEngine(config, settings=settings) as engine:
            engine.update_value("name", "")
            engine.update_value("lock", "y")
            result = engine.dispatch_action("submit")
            assert result.outcome == ActionOutcome.SUBMITTED
            assert result.blocking_element_ids == []

            engine.update_value("lock", "n")
            blocked = engine.dispatch_action("submit")
        assert blocked.outcome == ActionOutcome.BLOCKED
        assert blocked.blocking_element_ids == ["name"]

    def test_submits_and_navigates(self, signup_engine, navigator) -> None:
        signup_engine.update_value("email", "ada@example.com")
        result = signup_engine.dispatch_action(origin_element_id="continue")
        assert result.outcome == ActionOutcome.SUBMITTED
        assert result.target == "confirm"
        assert result.proceeded
        assert navigator.requests == [("navigate", "confirm")]
        assert signup_engine.current_page_id == "confirm"

    def test_handler_receives_submit(self, signup_config, settings) -> None:
        received: list[tuple[ActionConfig, Any]] = []
        with FormEngine(
            signup_config,
            settings=settings,
            action_handler=lambda action, origin: received.append((action, origin)),
        ) as engine:
            engine.update_value("email", "ada@example.com")
            result = engine.dispatch_action("submit")
        assert result.outcome == ActionOutcome.SUBMITTED
        assert [(a.kind, origin) for a, origin in received] == [(ActionKind.SUBMIT, None)]


class TestNavigation:
    def test_named_action(self, signup_engine, navigator) -> None:
        result = signup_engine.dispatch_action("go_confirm")
        assert result.outcome == ActionOutcome.NAVIGATED
        assert navigator.requests == [("navigate", "confirm")]
        assert signup_engine.current_page_id == "confirm"

    def test_back_refused_by_journey(self, signup_engine, navigator) -> None:
        signup_engine.dispatch_action("go_confirm")
        result = signup_engine.dispatch_action(origin_element_id="back")
        assert result.outcome == ActionOutcome.REFUSED
        assert "does not allow going back" in (result.message or "")
        assert navigator.requests == [("navigate", "confirm")]
        assert signup_engine.current_page_id == "confirm"

    def test_without_navigator(self, signup_config, settings) -> None:
        with FormEngine(signup_config, settings=settings) as engine:
            result = engine.dispatch_action("go_confirm")
        assert result.outcome == ActionOutcome.UNHANDLED

    def test_navigate_needs_target(self, signup_engine) -> None:
        with pytest.raises(ActionError, match="target"):
            signup_engine.dispatch_action(ActionConfig(kind=ActionKind.NAVIGATE))

    def test_home(self, signup_engine, navigator) -> None:
        signup_engine.dispatch_action("go_confirm")
        result = signup_engine.dispatch_action("navigate_home")
        assert result.outcome == ActionOutcome.NAVIGATED
        assert signup_engine.current_page_id == "details"


class TestOtherActions:
    def test_reset_action(self, signup_engine) -> None:
        signup_engine.update_value("email", "x")
        result = signup_engine.dispatch_action("clear_email")
        assert result.outcome == ActionOutcome.RESET
        assert result.target == "email"
        assert signup_engine.value_of("email") is None
        assert signup_engine.errors_for("email") == ()

    def test_custom_without_handler(self, signup_engine) -> None:
        assert signup_engine.dispatch_action("help").outcome == ActionOutcome.UNHANDLED

    def test_custom_with_handler(self, signup_config, settings) -> None:
        received: list[tuple[str | None, Any]] = []
        with FormEngine(
            signup_config,
            settings=settings,
            action_handler=lambda action, origin: received.append((action.name, origin)),
        ) as engine:
            result = engine.dispatch_action("help", origin_element_id="email")
        assert result.outcome == ActionOutcome.HANDLED
        assert received == [("open_help", "email")]

    def test_unknown_action(self, signup_engine) -> None:
        with pytest.raises(ActionError, match="Unknown action 'fly'"):
            signup_engine.dispatch_action("fly")

    def test_element_without_action(self, signup_engine) -> None:
        with pytest.raises(ActionError, match="declares no action"):
            signup_engine.dispatch_action(origin_element_id="email")
