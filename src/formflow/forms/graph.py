"""
Dependency graph over configuration elements.

Edges point from an element to the elements whose derived state must be
recomputed when its value changes (reverse dependency edges). They come from
two places:

- ``dependent_ids`` declared on components
- references found in visibility, enablement, conditional-required,
  cross-field and expression rules, and in section visibility expressions

A section also has an edge to each of its components, since hiding a section
hides them.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field

from formflow.core.errors import ConfigurationError, ExpressionError, make_configuration_error
from formflow.core.expression_lang import compile_expr, referenced_elements
from formflow.core.ir import (
    ComponentConfig,
    CrossFieldRule,
    ExpressionRule,
    FormConfig,
    RequiredRule,
)

logger = logging.getLogger(__name__)


def component_expressions(component: ComponentConfig) -> list[str]:
    """Source text of every expression a component evaluates."""
    sources: list[str] = []
    if component.visibility_expression:
        sources.append(component.visibility_expression)
    if component.enablement_expression:
        sources.append(component.enablement_expression)
    for rule in component.validation_rules:
        if isinstance(rule, RequiredRule) and rule.when:
            sources.append(rule.when)
        elif isinstance(rule, CrossFieldRule):
            sources.append(rule.expression_for(component.id))
        elif isinstance(rule, ExpressionRule):
            sources.append(rule.expression)
    return sources


def _references(source: str, known: frozenset[str]) -> set[str]:
    try:
        return referenced_elements(compile_expr(source), known)
    except ExpressionError:
        return set()


@dataclass
class DependencyGraph:
    """
    Reverse dependency edges plus bounded breadth-first closure.

    Attributes:
        elements: Every element id (sections and components)
        edges: Element id -> ids to recompute when it changes
    """

    elements: frozenset[str]
    edges: dict[str, set[str]] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: FormConfig) -> DependencyGraph:
        known = frozenset(config.element_ids())
        graph = cls(elements=known)

        for section in config.all_sections().values():
            for component in section.components:
                graph.add_edge(section.id, component.id)
            if section.visibility_expression:
                for source_id in _references(section.visibility_expression, known):
                    graph.add_edge(source_id, section.id)

        for component in config.all_components().values():
            for dependent_id in component.dependent_ids:
                graph.add_edge(component.id, dependent_id)
            for rule in component.cross_field_rules:
                graph.add_edge(rule.related_field_id, component.id)
            for source in component_expressions(component):
                for source_id in _references(source, known):
                    if source_id != component.id:
                        graph.add_edge(source_id, component.id)

        return graph

    def add_edge(self, source_id: str, dependent_id: str) -> None:
        self.edges.setdefault(source_id, set()).add(dependent_id)

    def dependents(self, element_id: str) -> list[str]:
        return sorted(self.edges.get(element_id, ()))

    def closure(self, element_id: str, bound: int | None = None) -> list[str]:
        """
        Elements affected by a change to ``element_id``, in BFS order.

        Each element is visited at most once, so cycles terminate. The start
        element is included only when a cycle leads back to it.

        Raises:
            ConfigurationError: If more than ``bound`` elements are reached
        """
        limit = bound if bound is not None else len(self.elements)
        order: list[str] = []
        visited: set[str] = set()
        queue = deque(self.dependents(element_id))

        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            order.append(current)
            if len(order) > limit:
                raise make_configuration_error(
                    [f"Dependency closure of '{element_id}' exceeds the bound of {limit}"]
                )
            queue.extend(d for d in self.dependents(current) if d not in visited)

        return order

    def recompute_order(self, element_id: str, bound: int | None = None) -> list[str]:
        """Closure of ``element_id``, each member after the members it reads."""
        return self.ordered(self.closure(element_id, bound))

    def ordered(self, members: list[str]) -> list[str]:
        """
        Sort ``members`` so each comes after every member with an edge to it.

        Only edges between members count. Members of a cycle are released in
        their given order once nothing outside the cycle holds them back.
        """
        member_set = set(members)
        pending: dict[str, int] = dict.fromkeys(members, 0)
        for source_id in members:
            for dependent_id in self.edges.get(source_id, ()):
                if dependent_id in member_set and dependent_id != source_id:
                    pending[dependent_id] += 1

        order: list[str] = []
        ready = deque(m for m in members if pending[m] == 0)
        while len(order) < len(members):
            if not ready:
                # cycle: release the earliest member still waiting
                ready.append(next(m for m in members if m in pending))
            current = ready.popleft()
            if current not in pending:
                continue
            del pending[current]
            order.append(current)
            for dependent_id in self.dependents(current):
                if dependent_id in pending and dependent_id != current:
                    pending[dependent_id] -= 1
                    if pending[dependent_id] == 0:
                        ready.append(dependent_id)
        return order

    def depth(self, element_id: str) -> int:
        """Number of BFS levels below ``element_id``."""
        visited = {element_id}
        frontier = [element_id]
        levels = 0
        while True:
            next_frontier = [
                d for current in frontier for d in self.dependents(current) if d not in visited
            ]
            if not next_frontier:
                return levels
            visited.update(next_frontier)
            frontier = list(dict.fromkeys(next_frontier))
            levels += 1

    def check_bounds(self, max_depth: int | None = None) -> None:
        """
        Reject graphs whose closures are deeper than the safety bound.

        Args:
            max_depth: Maximum BFS depth; defaults to the element count

        Raises:
            ConfigurationError: Listing every element over the bound
        """
        bound = max_depth if max_depth is not None else len(self.elements)
        problems = []
        for element_id in sorted(self.edges):
            depth = self.depth(element_id)
            if depth > bound:
                problems.append(
                    f"Dependency chain from '{element_id}' is {depth} levels deep "
                    f"(bound is {bound})"
                )
        if problems:
            error: ConfigurationError = make_configuration_error(problems)
            logger.error("%s", error)
            raise error
