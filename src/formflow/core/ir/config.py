"""
Screen configuration types.

A configuration is a tree: journeys reference pages by id, pages hold
ordered sections, sections hold ordered components. Components carry the
rules the form engine interprets (validation, visibility, enablement,
dependency edges).

These models are pure data; they are parsed once and never mutated.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import Field, PrivateAttr

from .base import ConfigModel
from .rules import CrossFieldRule, Rule


class ActionKind(StrEnum):
    """Effects an action can declare."""

    NAVIGATE = "navigate"
    NAVIGATE_BACK = "navigate_back"
    NAVIGATE_HOME = "navigate_home"
    SUBMIT = "submit"
    RESET = "reset"
    CUSTOM = "custom"


class ActionConfig(ConfigModel):
    """
    Action attached to a component or declared by name on the form.

    Attributes:
        kind: Effect of the action
        target: Page id for navigate/submit, element id for reset
        name: Identifier forwarded to the custom action handler
        payload: Opaque data forwarded with the action
    """

    kind: ActionKind
    target: str | None = None
    name: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class ComponentConfig(ConfigModel):
    """
    One configuration-defined element.

    Attributes:
        id: Element identifier, unique across the whole configuration
        type: Widget type understood by the rendering collaborator
        order: Position inside the section (ascending)
        binding_path: Path of the element's value inside seed data
        validation_rules: Rules run when the element is validated
        visibility_expression: Expression deciding visibility (default visible)
        enablement_expression: Expression deciding enablement (default enabled)
        dependent_ids: Elements whose derived state must be recomputed when
            this element's value changes
        default_value: Initial value
        properties: Opaque widget properties (label, placeholder, ...)
        action: Action fired by the widget (buttons)
        debounce_ms: Per-element debounce for debounced edits
    """

    id: str
    type: str
    order: int = 0
    binding_path: str | None = None
    validation_rules: list[Rule] = Field(default_factory=list)
    visibility_expression: str | None = None
    enablement_expression: str | None = None
    dependent_ids: list[str] = Field(default_factory=list)
    default_value: Any = None
    properties: dict[str, Any] = Field(default_factory=dict)
    action: ActionConfig | None = None
    debounce_ms: int | None = Field(default=None, ge=0)
    visible: bool = True
    enabled: bool = True

    @property
    def cross_field_rules(self) -> list[CrossFieldRule]:
        return [r for r in self.validation_rules if isinstance(r, CrossFieldRule)]


class SectionConfig(ConfigModel):
    """
    Ordered group of components on a page.

    A hidden section hides every component it contains.
    """

    id: str
    name: str | None = None
    order: int = 0
    theme: str | None = None
    visible: bool = True
    visibility_expression: str | None = None
    components: list[ComponentConfig] = Field(default_factory=list)

    @property
    def ordered_components(self) -> list[ComponentConfig]:
        return sorted(self.components, key=lambda c: c.order)


class PageConfig(ConfigModel):
    """A screen: ordered sections."""

    id: str
    title: str | None = None
    journey_id: str | None = None
    sections: list[SectionConfig] = Field(default_factory=list)

    @property
    def ordered_sections(self) -> list[SectionConfig]:
        return sorted(self.sections, key=lambda s: s.order)


class NavigationConfig(ConfigModel):
    """Navigation permissions of a journey."""

    allow_back: bool = True
    allow_forward: bool = True
    preserve_state: bool = True


class JourneyConfig(ConfigModel):
    """Ordered sequence of pages."""

    id: str
    name: str | None = None
    page_ids: list[str] = Field(default_factory=list)
    default_page_id: str | None = None
    navigation: NavigationConfig = Field(default_factory=NavigationConfig)

    @property
    def start_page_id(self) -> str | None:
        if self.default_page_id:
            return self.default_page_id
        return self.page_ids[0] if self.page_ids else None


class FormConfig(ConfigModel):
    """
    Root of a loaded configuration.

    The tree is indexed once after validation. When an id is defined twice
    the first definition wins here; the linker reports the duplicate.
    """

    id: str = "form"
    journeys: list[JourneyConfig] = Field(default_factory=list)
    pages: list[PageConfig] = Field(default_factory=list)
    actions: dict[str, ActionConfig] = Field(default_factory=dict)

    _components: dict[str, ComponentConfig] = PrivateAttr(default_factory=dict)
    _sections: dict[str, SectionConfig] = PrivateAttr(default_factory=dict)
    _section_by_component: dict[str, SectionConfig] = PrivateAttr(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        for page in self.pages:
            for section in page.ordered_sections:
                self._sections.setdefault(section.id, section)
                for component in section.ordered_components:
                    self._components.setdefault(component.id, component)
                    self._section_by_component.setdefault(component.id, section)

    def all_components(self) -> dict[str, ComponentConfig]:
        """Components keyed by id, in page/section/component order."""
        return dict(self._components)

    def all_sections(self) -> dict[str, SectionConfig]:
        return dict(self._sections)

    def element_ids(self) -> list[str]:
        """Every id that can carry derived state: sections and components."""
        return list(self._sections) + list(self._components)

    def get_component(self, component_id: str) -> ComponentConfig | None:
        return self._components.get(component_id)

    def get_section(self, section_id: str) -> SectionConfig | None:
        return self._sections.get(section_id)

    def section_of(self, component_id: str) -> SectionConfig | None:
        return self._section_by_component.get(component_id)

    def get_page(self, page_id: str) -> PageConfig | None:
        return next((p for p in self.pages if p.id == page_id), None)

    def get_journey(self, journey_id: str) -> JourneyConfig | None:
        return next((j for j in self.journeys if j.id == journey_id), None)

    def journey_for_page(self, page_id: str) -> JourneyConfig | None:
        page = self.get_page(page_id)
        if page and page.journey_id:
            return self.get_journey(page.journey_id)
        return next((j for j in self.journeys if page_id in j.page_ids), None)
