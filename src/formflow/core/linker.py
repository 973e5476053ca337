"""
Load-time checks for form configurations.

Every problem that would make the engine misbehave at runtime in a way the
user cannot fix is reported here, before an engine is started:

1. Duplicate element, page and journey identifiers
2. Dependency edges pointing at unknown elements
3. Cross-field rules relating to unknown elements
4. Journeys referencing unknown pages
5. Malformed rules (invalid regex, min greater than max, unknown function)

Expressions are parsed too, but a broken expression is NOT fatal: it is
reported at runtime as a DependencyError on the owning element, so here it
is only logged.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Collection
from dataclasses import dataclass, field

from .errors import ConfigurationError, ExpressionError, make_configuration_error
from .expression_lang import compile_expr, referenced_roots
from .ir import (
    ComponentConfig,
    CrossFieldRule,
    CustomRule,
    ExpressionRule,
    FormConfig,
    LengthRule,
    PatternRule,
    RangeRule,
    RequiredRule,
)

logger = logging.getLogger(__name__)


@dataclass
class SymbolTable:
    """Every identifier defined by a configuration, with where it was defined."""

    elements: dict[str, str] = field(default_factory=dict)
    pages: set[str] = field(default_factory=set)
    journeys: set[str] = field(default_factory=set)
    duplicates: list[str] = field(default_factory=list)

    def add_element(self, element_id: str, location: str) -> None:
        if element_id in self.elements:
            self.duplicates.append(
                f"Duplicate element id '{element_id}' defined at "
                f"{self.elements[element_id]} and {location}"
            )
            return
        self.elements[element_id] = location


def build_symbol_table(config: FormConfig) -> SymbolTable:
    """Collect ids, recording duplicates instead of failing on the first one."""
    symbols = SymbolTable()

    for journey in config.journeys:
        if journey.id in symbols.journeys:
            symbols.duplicates.append(f"Duplicate journey id '{journey.id}'")
        symbols.journeys.add(journey.id)

    for page in config.pages:
        if page.id in symbols.pages:
            symbols.duplicates.append(f"Duplicate page id '{page.id}'")
        symbols.pages.add(page.id)
        for section in page.sections:
            symbols.add_element(section.id, f"pages.{page.id}")
            for component in section.components:
                symbols.add_element(component.id, f"pages.{page.id}.{section.id}")

    return symbols


def validate_journeys(config: FormConfig, symbols: SymbolTable) -> list[str]:
    """Journey and page cross-references."""
    problems: list[str] = []

    for journey in config.journeys:
        for page_id in journey.page_ids:
            if page_id not in symbols.pages:
                problems.append(f"Journey '{journey.id}' references unknown page '{page_id}'")
        if journey.default_page_id and journey.default_page_id not in journey.page_ids:
            problems.append(
                f"Journey '{journey.id}' default page '{journey.default_page_id}' "
                f"is not one of its pages"
            )

    for page in config.pages:
        if page.journey_id and page.journey_id not in symbols.journeys:
            problems.append(f"Page '{page.id}' references unknown journey '{page.journey_id}'")

    for name, action in config.actions.items():
        if action.kind in ("navigate", "submit") and action.target:
            if action.target not in symbols.pages:
                problems.append(f"Action '{name}' targets unknown page '{action.target}'")

    return problems


def validate_component(
    component: ComponentConfig,
    symbols: SymbolTable,
    functions: Collection[str] | None = None,
) -> list[str]:
    """
    Check one component's edges and rules.

    Args:
        component: Component to check
        symbols: Symbol table of the whole configuration
        functions: Registered custom function names; None skips the check

    Returns:
        One line per problem found
    """
    problems: list[str] = []
    where = f"Component '{component.id}'"

    for dependent_id in component.dependent_ids:
        if dependent_id not in symbols.elements:
            problems.append(f"{where} lists unknown dependent '{dependent_id}'")

    for rule in component.validation_rules:
        if isinstance(rule, PatternRule):
            try:
                re.compile(rule.pattern)
            except re.error as e:
                problems.append(f"{where} has invalid pattern {rule.pattern!r}: {e}")

        elif isinstance(rule, LengthRule):
            if (
                rule.min_length is not None
                and rule.max_length is not None
                and rule.min_length > rule.max_length
            ):
                problems.append(
                    f"{where} length rule has min {rule.min_length} > max {rule.max_length}"
                )

        elif isinstance(rule, RangeRule):
            if (
                rule.min_value is not None
                and rule.max_value is not None
                and rule.min_value > rule.max_value
            ):
                problems.append(
                    f"{where} range rule has min {rule.min_value} > max {rule.max_value}"
                )

        elif isinstance(rule, CrossFieldRule):
            if rule.related_field_id not in symbols.elements:
                problems.append(
                    f"{where} cross-field rule relates to unknown element "
                    f"'{rule.related_field_id}'"
                )

        elif isinstance(rule, CustomRule):
            if functions is not None and rule.function not in functions:
                problems.append(f"{where} uses unregistered function '{rule.function}'")

    return problems


def _expression_sources(component: ComponentConfig) -> list[tuple[str, str]]:
    sources: list[tuple[str, str]] = []
    if component.visibility_expression:
        sources.append(("visibility", component.visibility_expression))
    if component.enablement_expression:
        sources.append(("enablement", component.enablement_expression))
    for rule in component.validation_rules:
        if isinstance(rule, RequiredRule) and rule.when:
            sources.append(("required", rule.when))
        elif isinstance(rule, CrossFieldRule):
            sources.append(("cross_field", rule.expression_for(component.id)))
        elif isinstance(rule, ExpressionRule):
            sources.append(("expression", rule.expression))
    return sources


def check_expressions(config: FormConfig, symbols: SymbolTable) -> list[str]:
    """
    Parse every expression and report unknown references.

    Returns warnings; they are logged, never raised.
    """
    warnings: list[str] = []
    for component in config.all_components().values():
        for label, source in _expression_sources(component):
            try:
                expr = compile_expr(source)
            except ExpressionError as e:
                warnings.append(f"Component '{component.id}' {label} expression {source!r}: {e}")
                continue
            for root in sorted(referenced_roots(expr) - symbols.elements.keys()):
                warnings.append(
                    f"Component '{component.id}' {label} expression references "
                    f"unknown element '{root}'"
                )
    for section in config.all_sections().values():
        if not section.visibility_expression:
            continue
        try:
            compile_expr(section.visibility_expression)
        except ExpressionError as e:
            warnings.append(f"Section '{section.id}' visibility expression: {e}")
    return warnings


def link_config(
    config: FormConfig,
    functions: Collection[str] | None = None,
    source: str | None = None,
) -> list[str]:
    """
    Run every load-time check on a configuration.

    Args:
        config: Parsed configuration
        functions: Names of registered custom validation functions
        source: Label for error messages (file name)

    Returns:
        Expression warnings (non-fatal)

    Raises:
        ConfigurationError: If any fatal problem was found
    """
    symbols = build_symbol_table(config)

    problems = list(symbols.duplicates)
    problems.extend(validate_journeys(config, symbols))
    for component in config.all_components().values():
        problems.extend(validate_component(component, symbols, functions))

    if problems:
        error: ConfigurationError = make_configuration_error(problems, source=source)
        logger.error("%s", error)
        raise error

    warnings = check_expressions(config, symbols)
    for warning in warnings:
        logger.warning("%s", warning)
    return warnings
