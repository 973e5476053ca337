"""
Hierarchical renderer boundary.

Walks page -> sections -> components in ascending ``order`` and hands each
visible component to a widget-rendering collaborator. A hidden section skips
its whole subtree. Edits and actions coming back from widgets are forwarded
verbatim to the engine; no validation happens here.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from formflow.core.errors import ActionError
from formflow.core.ir import ActionConfig, ComponentConfig, PageConfig

from .actions import ActionResult
from .engine import FormEngine
from .state import ErrorList, FormSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WidgetProps:
    """Everything a widget needs to draw one component."""

    id: str
    type: str
    value: Any
    enabled: bool
    errors: ErrorList
    properties: dict[str, Any] = field(default_factory=dict)
    section_id: str | None = None
    on_value_change: Callable[[Any], Any] | None = None
    on_action: Callable[[ActionConfig | str | None], ActionResult] | None = None


class WidgetRenderer(Protocol):
    """Widget-rendering collaborator."""

    def render(self, props: WidgetProps) -> Any: ...


class HierarchicalRenderer:
    """
    Renders one page of a form through a widget collaborator.

    Example:
        renderer = HierarchicalRenderer(engine, widgets)
        unbind = renderer.bind("signup")  # re-renders on every snapshot
    """

    def __init__(self, engine: FormEngine, widgets: WidgetRenderer) -> None:
        self.engine = engine
        self.widgets = widgets

    def _page(self, page_id: str | None) -> PageConfig:
        page_id = page_id or self.engine.current_page_id
        page = self.engine.config.get_page(page_id) if page_id else None
        if page is None:
            raise KeyError(f"Unknown page '{page_id}'")
        return page

    def visible_components(
        self, page_id: str | None = None, snapshot: FormSnapshot | None = None
    ) -> list[ComponentConfig]:
        """Components that would be rendered, in render order."""
        snapshot = snapshot or self.engine.snapshot()
        visible: list[ComponentConfig] = []
        for section in self._page(page_id).ordered_sections:
            if not snapshot.is_visible(section.id):
                continue
            visible.extend(c for c in section.ordered_components if snapshot.is_visible(c.id))
        return visible

    def render_page(
        self, page_id: str | None = None, snapshot: FormSnapshot | None = None
    ) -> list[Any]:
        """Render every visible component; returns the widgets' results in order."""
        snapshot = snapshot or self.engine.snapshot()
        page = self._page(page_id)
        rendered = []
        for section in page.ordered_sections:
            if not snapshot.is_visible(section.id):
                continue
            for component in section.ordered_components:
                if not snapshot.is_visible(component.id):
                    continue
                rendered.append(self.widgets.render(self._props(component, section.id, snapshot)))
        logger.debug("Rendered %d component(s) of page '%s'", len(rendered), page.id)
        return rendered

    def _props(
        self, component: ComponentConfig, section_id: str, snapshot: FormSnapshot
    ) -> WidgetProps:
        element_id = component.id

        def on_value_change(value: Any) -> FormSnapshot:
            return self.engine.update_value(element_id, value)

        def on_action(action: ActionConfig | str | None = None) -> ActionResult:
            if action is None and component.action is None:
                raise ActionError(f"Element '{element_id}' declares no action")
            return self.engine.dispatch_action(action, origin_element_id=element_id)

        return WidgetProps(
            id=element_id,
            type=component.type,
            value=snapshot.value_of(element_id),
            enabled=snapshot.is_enabled(element_id),
            errors=snapshot.errors_for(element_id),
            properties=dict(component.properties),
            section_id=section_id,
            on_value_change=on_value_change,
            on_action=on_action,
        )

    def bind(self, page_id: str | None = None) -> Callable[[], None]:
        """Render now and after every published snapshot; returns an unbind callable."""
        self.render_page(page_id)
        return self.engine.subscribe(lambda snapshot: self.render_page(page_id, snapshot))
