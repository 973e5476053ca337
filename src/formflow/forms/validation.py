"""
Rule evaluation.

Turns a component's rules and the current (draft) state into Validation
Errors. Nothing here raises for bad data or broken expressions: failures in
an expression become a ``DependencyError`` on the owning element and the
evaluation falls back to its safe default.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from formflow.core.errors import ExpressionError
from formflow.core.expression_lang import ABSENT, compile_expr, evaluate, is_empty_value
from formflow.core.ir import (
    BaseValidationError,
    ComponentConfig,
    CrossFieldError,
    CrossFieldRule,
    CustomRule,
    CustomValidationError,
    DependencyError,
    DependencyType,
    EmailRule,
    ExpressionRule,
    LengthError,
    LengthRule,
    PatternError,
    PatternRule,
    PhoneRule,
    RangeError,
    RangeRule,
    RequiredError,
    RequiredRule,
    ValidationRuleError,
    is_derived_error,
)

from .binding import BindingResolver, StateView, split_path
from .functions import FunctionRegistry, UnknownFunctionError

logger = logging.getLogger(__name__)


def is_cross_field_error(error: BaseValidationError) -> bool:
    if isinstance(error, CrossFieldError):
        return True
    return (
        isinstance(error, DependencyError)
        and error.dependency_type == DependencyType.CROSS_FIELD
    )


@dataclass(frozen=True)
class DeferredCheck:
    """A custom rule whose function runs off the update path."""

    element_id: str
    rule: CustomRule
    value: Any
    parameters: tuple[Any, ...]
    inputs: frozenset[str]


@dataclass
class ElementValidation:
    """Result of validating one element."""

    errors: list[BaseValidationError] = field(default_factory=list)
    deferred: list[DeferredCheck] = field(default_factory=list)


class RuleEvaluator:
    """Evaluates expressions and validation rules against a state view."""

    def __init__(self, resolver: BindingResolver, functions: FunctionRegistry) -> None:
        self.resolver = resolver
        self.functions = functions

    # -------------------------------------------------------------------------
    # Expressions
    # -------------------------------------------------------------------------

    def evaluate(self, source: str, state: StateView) -> Any:
        """
        Evaluate expression source against a state view.

        Raises:
            ExpressionError: On parse or evaluation failure
        """
        return evaluate(compile_expr(source), self.resolver.context(state))

    def derive_flag(
        self,
        element_id: str,
        source: str,
        dependency_type: DependencyType,
        state: StateView,
        default: bool = True,
    ) -> tuple[bool, DependencyError | None]:
        """Evaluate a visibility/enablement expression, recovering failures."""
        try:
            return bool(self.evaluate(source, state)), None
        except ExpressionError as e:
            return default, self._dependency_error(element_id, source, dependency_type, e)

    def _dependency_error(
        self,
        element_id: str,
        source: str,
        dependency_type: DependencyType,
        cause: Exception,
    ) -> DependencyError:
        logger.warning(
            "%s expression for '%s' failed: %r: %s", dependency_type, element_id, source, cause
        )
        return DependencyError(
            element_id=element_id,
            message=f"Could not evaluate {dependency_type} rule: {cause}",
            dependency_expression=source,
            dependency_type=dependency_type,
        )

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    def validate(self, component: ComponentConfig, state: StateView) -> ElementValidation:
        """
        Run every rule of ``component`` in declaration order.

        A required failure short-circuits the remaining rules; every other
        rule is skipped while the value is empty. Cross-field errors are
        placed after the others so partial re-runs keep the same order.
        """
        result = ElementValidation()
        value = state.values.get(component.id)
        empty = is_empty_value(value)

        for rule in component.validation_rules:
            if isinstance(rule, RequiredRule):
                if self._is_required(component.id, rule, state, result) and empty:
                    result.errors.append(
                        RequiredError(
                            element_id=component.id,
                            message=rule.message or "This field is required",
                        )
                    )
                    return result
                continue

            if empty or isinstance(rule, CrossFieldRule):
                continue

            if isinstance(rule, CustomRule):
                self._check_custom(component.id, rule, value, state, result)
                continue

            error = self._check_value_rule(component.id, rule, value, state)
            if error is not None:
                result.errors.append(error)

        if not empty:
            result.errors.extend(self.validate_cross_field(component, state))
        return result

    def _is_required(
        self,
        element_id: str,
        rule: RequiredRule,
        state: StateView,
        result: ElementValidation,
    ) -> bool:
        if not rule.when:
            return True
        try:
            return bool(self.evaluate(rule.when, state))
        except ExpressionError as e:
            result.errors.append(
                self._dependency_error(element_id, rule.when, DependencyType.REQUIRED, e)
            )
            return False

    def _check_value_rule(
        self,
        element_id: str,
        rule: Any,
        value: Any,
        state: StateView,
    ) -> BaseValidationError | None:
        if isinstance(rule, (PatternRule, EmailRule, PhoneRule)):
            text = str(value) if isinstance(rule, PatternRule) else str(value).strip()
            if re.fullmatch(rule.pattern, text) is None:
                default = {
                    "email": "Enter a valid email address",
                    "phone": "Enter a valid phone number",
                }.get(rule.type, "Value does not match the required format")
                return PatternError(
                    element_id=element_id,
                    message=rule.message or default,
                    pattern=rule.pattern,
                )
            return None

        if isinstance(rule, LengthRule):
            return check_length(element_id, rule, value)

        if isinstance(rule, RangeRule):
            return check_range(element_id, rule, value)

        if isinstance(rule, ExpressionRule):
            try:
                passed = bool(self.evaluate(rule.expression, state))
            except ExpressionError as e:
                return self._dependency_error(
                    element_id, rule.expression, DependencyType.EXPRESSION, e
                )
            if passed:
                return None
            return ValidationRuleError(
                element_id=element_id,
                message=rule.message or "Value is not valid",
                rule_type=rule.type,
                rule_value=rule.expression,
            )

        return ValidationRuleError(
            element_id=element_id,
            message=f"Unsupported rule type '{rule.type}'",
            rule_type=rule.type,
        )

    def _check_custom(
        self,
        element_id: str,
        rule: CustomRule,
        value: Any,
        state: StateView,
        result: ElementValidation,
    ) -> None:
        parameters = tuple(self._resolve_parameter(p, state) for p in rule.parameters)

        if self.functions.is_deferred(rule.function):
            inputs = {element_id}
            for path in rule.parameters:
                located = self.resolver.locate(split_path(path))
                if located is not None:
                    inputs.add(located[0])
            result.deferred.append(
                DeferredCheck(element_id, rule, value, parameters, frozenset(inputs))
            )
            return

        result.errors.extend(self.run_custom(element_id, rule, value, parameters))

    def _resolve_parameter(self, path: str, state: StateView) -> Any:
        resolved = self.resolver.resolve(path, state)
        return None if resolved is ABSENT else resolved

    def run_custom(
        self,
        element_id: str,
        rule: CustomRule,
        value: Any,
        parameters: tuple[Any, ...],
    ) -> list[BaseValidationError]:
        """Call a custom function; a failing call counts as a failed rule."""
        failed = CustomValidationError(
            element_id=element_id,
            message=rule.message or "Value is not valid",
            function_name=rule.function,
            parameters=list(parameters),
        )
        try:
            outcome = self.functions.execute(rule.function, value, *parameters)
        except UnknownFunctionError as e:
            return [self._dependency_error(element_id, rule.function, DependencyType.CUSTOM, e)]
        except Exception as e:
            logger.exception("Custom function '%s' failed for '%s'", rule.function, element_id)
            dependency = DependencyError(
                element_id=element_id,
                message=f"Custom function '{rule.function}' failed: {e}",
                dependency_expression=rule.function,
                dependency_type=DependencyType.CUSTOM,
            )
            return [failed, dependency]

        if outcome.valid:
            return []
        if outcome.message:
            failed = failed.model_copy(update={"message": outcome.message})
        return [failed]

    def validate_cross_field(
        self, component: ComponentConfig, state: StateView
    ) -> list[BaseValidationError]:
        """Run only the cross-field rules of ``component``."""
        errors: list[BaseValidationError] = []
        if is_empty_value(state.values.get(component.id)):
            return errors

        for rule in component.cross_field_rules:
            related_value = state.values.get(rule.related_field_id)
            if is_empty_value(related_value):
                continue
            source = rule.expression_for(component.id)
            try:
                passed = bool(self.evaluate(source, state))
            except ExpressionError as e:
                errors.append(
                    self._dependency_error(component.id, source, DependencyType.CROSS_FIELD, e)
                )
                continue
            if not passed:
                errors.append(
                    CrossFieldError(
                        element_id=component.id,
                        message=rule.message
                        or f"Value must satisfy {source} (related to {rule.related_field_id})",
                        related_field_id=rule.related_field_id,
                        relation_type=rule.relation.value if rule.relation else "expression",
                        related_value=related_value,
                        expression=source,
                    )
                )
        return errors


def check_length(element_id: str, rule: LengthRule, value: Any) -> LengthError | None:
    if isinstance(value, (str, list, tuple, dict, set)):
        length = len(value)
    else:
        length = len(str(value))
    too_short = rule.min_length is not None and length < rule.min_length
    too_long = rule.max_length is not None and length > rule.max_length
    if not (too_short or too_long):
        return None
    if rule.message:
        message = rule.message
    elif too_short:
        message = f"Must be at least {rule.min_length} characters"
    else:
        message = f"Must be at most {rule.max_length} characters"
    return LengthError(
        element_id=element_id,
        message=message,
        min_length=rule.min_length,
        max_length=rule.max_length,
    )


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def check_range(element_id: str, rule: RangeRule, value: Any) -> RangeError | None:
    number = _as_number(value)
    if number is not None:
        below = rule.min_value is not None and number < rule.min_value
        above = rule.max_value is not None and number > rule.max_value
        if not (below or above):
            return None

    if rule.message:
        message = rule.message
    elif number is None:
        message = "Must be a number"
    elif rule.min_value is not None and rule.max_value is not None:
        message = f"Must be between {rule.min_value:g} and {rule.max_value:g}"
    elif rule.min_value is not None:
        message = f"Must be at least {rule.min_value:g}"
    else:
        message = f"Must be at most {rule.max_value:g}"
    return RangeError(
        element_id=element_id,
        message=message,
        min_value=rule.min_value,
        max_value=rule.max_value,
    )


def merge_rule_errors(
    existing: tuple[BaseValidationError, ...] | list[BaseValidationError],
    rule_errors: list[BaseValidationError],
) -> list[BaseValidationError]:
    """Keep derived (visibility/enablement) errors, replace the rest."""
    return [e for e in existing if is_derived_error(e)] + list(rule_errors)


def merge_cross_field_errors(
    existing: tuple[BaseValidationError, ...] | list[BaseValidationError],
    cross_field_errors: list[BaseValidationError],
) -> list[BaseValidationError]:
    """Replace only the cross-field errors."""
    return [e for e in existing if not is_cross_field_error(e)] + list(cross_field_errors)


def merge_derived_errors(
    existing: tuple[BaseValidationError, ...] | list[BaseValidationError],
    derived_errors: list[BaseValidationError],
) -> list[BaseValidationError]:
    """Replace only the derived errors, which always come first."""
    return list(derived_errors) + [e for e in existing if not is_derived_error(e)]
