"""Tests for binding path resolution."""

from __future__ import annotations

import pytest

from formflow.core.expression_lang import ABSENT, UnknownReferenceError
from formflow.core.ir import FormConfig, RequiredError
from formflow.forms.binding import BindingResolver, split_path
from formflow.forms.state import SnapshotDraft


@pytest.fixture
def resolver(signup_config: FormConfig) -> BindingResolver:
    return BindingResolver(signup_config)


@pytest.fixture
def state() -> SnapshotDraft:
    draft = SnapshotDraft(
        values={
            "email": "a@b.co",
            "age": 30,
            "company": {"name": "Acme", "offices": [{"city": "Oslo"}]},
        }
    )
    draft.set_visibility("extras", False)
    draft.set_enabled("email", False)
    draft.touch("email")
    draft.set_errors("age", [RequiredError(element_id="age", message="m")])
    return draft


class TestSplitPath:
    def test_root_prefix(self) -> None:
        assert split_path("$.user.email") == ["user", "email"]
        assert split_path("user.email") == ["user", "email"]


class TestResolve:
    def test_element_value(self, resolver: BindingResolver, state: SnapshotDraft) -> None:
        assert resolver.resolve("email", state) == "a@b.co"
        assert resolver.resolve("$.email", state) == "a@b.co"

    def test_section_qualified(self, resolver: BindingResolver, state: SnapshotDraft) -> None:
        assert resolver.resolve("personal.email", state) == "a@b.co"
        assert resolver.resolve("personal.email.value", state) == "a@b.co"

    def test_nested_value(self, resolver: BindingResolver, state: SnapshotDraft) -> None:
        assert resolver.resolve("company.name", state) == "Acme"
        assert resolver.resolve("company.value.offices.0.city", state) == "Oslo"

    def test_attributes(self, resolver: BindingResolver, state: SnapshotDraft) -> None:
        assert resolver.resolve("email.enabled", state) is False
        assert resolver.resolve("email.touched", state) is True
        assert resolver.resolve("age.valid", state) is False
        assert resolver.resolve("email.valid", state) is True

    def test_visible_includes_section(
        self, resolver: BindingResolver, state: SnapshotDraft
    ) -> None:
        assert resolver.resolve("newsletter.visible", state) is False
        assert resolver.resolve("email.visible", state) is True

    def test_missing_segments_are_absent(
        self, resolver: BindingResolver, state: SnapshotDraft
    ) -> None:
        assert resolver.resolve("company.missing", state) is ABSENT
        assert resolver.resolve("company.offices.3", state) is ABSENT
        assert resolver.resolve("ghost", state) is ABSENT
        assert resolver.resolve("", state) is ABSENT

    def test_known_element_without_value_is_none(
        self, resolver: BindingResolver, state: SnapshotDraft
    ) -> None:
        assert resolver.resolve("newsletter", state) is None


class TestStateContext:
    def test_unknown_root_raises(self, resolver: BindingResolver, state: SnapshotDraft) -> None:
        context = resolver.context(state)
        with pytest.raises(UnknownReferenceError):
            context.resolve_path(["ghost"])

    def test_known_root_resolves(self, resolver: BindingResolver, state: SnapshotDraft) -> None:
        assert resolver.context(state).resolve_path(["age"]) == 30
