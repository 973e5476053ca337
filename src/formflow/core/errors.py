"""
Error types for formflow configuration loading and engine operation.

Data-level validation problems are NOT exceptions: they are the
``ValidationError`` models in :mod:`formflow.core.ir.validation_errors` and
live in the form snapshot. The exceptions here cover the operator-facing
failures: bad configuration, bad expressions, bad calls into the engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from formflow.core.ir.validation_errors import GenericError


class FormflowError(Exception):
    """Base exception for all formflow errors."""

    def __init__(self, message: str, context: Optional["ErrorContext"] = None):
        self.message = message
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with context if available."""
        if self.context:
            return f"{self.context.format()}\n{self.message}"
        return self.message


class ConfigurationError(FormflowError):
    """
    Raised when a configuration cannot be used to start an engine.

    Examples:
    - Dependency edge pointing at a non-existent element
    - Duplicate element identifiers
    - Journey referencing an unknown page
    - Malformed rule (invalid regex, min greater than max, unknown function)
    - Dependency closure deeper than the configured safety bound
    """

    def __init__(
        self,
        message: str,
        problems: list[str] | None = None,
        context: Optional["ErrorContext"] = None,
    ):
        self.problems = list(problems or [])
        super().__init__(message, context)

    def _format_message(self) -> str:
        base = super()._format_message()
        if not self.problems:
            return base
        listing = "\n".join(f"  - {p}" for p in self.problems)
        return f"{base}\n{listing}"


class ExpressionError(FormflowError):
    """Base for expression tokenize/parse/evaluate failures."""

    def __init__(self, message: str, pos: int = 0):
        self.pos = pos
        super().__init__(message)


class UnknownElementError(FormflowError):
    """
    Raised when the engine is asked to act on an element id that the loaded
    configuration does not define.

    The matching ``GenericError`` data object is attached so callers that
    surface errors to the UI can display it directly.
    """

    def __init__(self, element_id: str, error: "GenericError"):
        self.element_id = element_id
        self.error = error
        super().__init__(error.message)


class ActionError(FormflowError):
    """Raised when an action cannot be resolved from configuration."""


@dataclass
class ErrorContext:
    """
    Where in the configuration an error was found.

    Attributes:
        source: File path or other label for the configuration source
        pointer: Dotted location inside the configuration (``pages.home.sections[0]``)
    """

    source: str
    pointer: str | None = None

    def format(self) -> str:
        """
        Format error context as a human-readable string.

        Returns:
            Formatted string like: "signup.json at pages.home"
        """
        if self.pointer:
            return f"{self.source} at {self.pointer}"
        return self.source


def make_configuration_error(
    problems: list[str],
    source: str | None = None,
) -> ConfigurationError:
    """
    Helper to create a ConfigurationError summarising a list of problems.

    Args:
        problems: One line per problem found
        source: Optional label for where the configuration came from

    Returns:
        ConfigurationError with context if a source was given
    """
    count = len(problems)
    noun = "problem" if count == 1 else "problems"
    message = f"Configuration has {count} {noun}"
    context = ErrorContext(source=source) if source else None
    return ConfigurationError(message, problems=problems, context=context)
