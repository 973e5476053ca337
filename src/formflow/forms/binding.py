"""
Binding path resolution.

A binding path addresses a value in the form state::

    email                     value of element "email"
    $.email                   same, with the optional root marker
    personal.first_name       component "first_name" of section "personal"
    address.value.city        key "city" inside the value of "address"
    items.0.price             list index inside a value
    email.visible             derived attribute (visible, enabled, touched, valid)

``resolve`` never raises: a missing segment yields ``ABSENT``. Expression
evaluation uses ``StateContext``, which additionally rejects paths whose
root is not a known element so that typos surface as dependency errors.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from formflow.core.expression_lang import ABSENT, UnknownReferenceError, walk_path
from formflow.core.ir import FormConfig

from .state import ErrorList

ROOT_PREFIX = "$."

ATTRIBUTES = frozenset({"value", "visible", "enabled", "touched", "valid"})


class StateView(Protocol):
    """Read interface shared by FormSnapshot and SnapshotDraft."""

    values: Mapping[str, Any]
    touched: Any

    def is_visible(self, element_id: str) -> bool: ...

    def is_enabled(self, element_id: str) -> bool: ...

    def errors_for(self, element_id: str) -> ErrorList: ...


def split_path(path: str) -> list[str]:
    """``"$.a.b"`` -> ``["a", "b"]``."""
    if path.startswith(ROOT_PREFIX):
        path = path[len(ROOT_PREFIX) :]
    return [segment for segment in path.split(".") if segment]


class BindingResolver:
    """Resolves binding paths against a state view for one configuration."""

    def __init__(self, config: FormConfig) -> None:
        self.config = config
        self._components = config.all_components()
        self._sections = config.all_sections()

    def is_known(self, element_id: str) -> bool:
        return element_id in self._components or element_id in self._sections

    def locate(self, segments: Sequence[str]) -> tuple[str, list[str]] | None:
        """Split a path into (element id, remaining segments), or None if unknown."""
        if not segments:
            return None
        root, rest = segments[0], list(segments[1:])
        section = self._sections.get(root)
        if section is not None and rest and self.config.section_of(rest[0]) is section:
            return rest[0], rest[1:]
        if self.is_known(root):
            return root, rest
        return None

    def is_effectively_visible(self, element_id: str, state: StateView) -> bool:
        """Own visibility AND the containing section's visibility."""
        if not state.is_visible(element_id):
            return False
        section = self.config.section_of(element_id)
        return section is None or state.is_visible(section.id)

    def _attribute(self, element_id: str, name: str, state: StateView) -> Any:
        if name == "visible":
            return self.is_effectively_visible(element_id, state)
        if name == "enabled":
            return state.is_enabled(element_id)
        if name == "touched":
            return element_id in state.touched
        if name == "valid":
            return not state.errors_for(element_id)
        return state.values.get(element_id)

    def resolve_segments(self, segments: Sequence[str], state: StateView) -> Any:
        located = self.locate(segments)
        if located is None:
            return ABSENT
        element_id, rest = located

        if rest and rest[0] in ATTRIBUTES:
            current = self._attribute(element_id, rest[0], state)
            rest = rest[1:]
        else:
            current = state.values.get(element_id)

        if not rest:
            return current
        return walk_path(current, rest)

    def resolve(self, path: str, state: StateView) -> Any:
        """Value at ``path``, or ``ABSENT`` if any segment does not exist."""
        return self.resolve_segments(split_path(path), state)

    def context(self, state: StateView) -> StateContext:
        return StateContext(self, state)


class StateContext:
    """Evaluation context binding a resolver to one state view."""

    def __init__(self, resolver: BindingResolver, state: StateView) -> None:
        self.resolver = resolver
        self.state = state

    def resolve_path(self, path: Sequence[str]) -> Any:
        if self.resolver.locate(path) is None:
            raise UnknownReferenceError(path)
        return self.resolver.resolve_segments(path, self.state)
