"""
Custom validation function registry.

Configurations can only call functions registered here, by name. A function
receives the element's value followed by the resolved rule parameters and
returns either a bool or a ``CustomResult``. Every call is recorded in a
bounded log for auditing.
"""

from __future__ import annotations

import logging
import re
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomResult:
    """Outcome of a custom validation function."""

    valid: bool
    message: str | None = None


CustomFunction = Callable[..., "bool | CustomResult"]


@dataclass(frozen=True)
class FunctionCall:
    """One entry of the call log."""

    name: str
    arguments: tuple[Any, ...]
    valid: bool | None
    error: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class UnknownFunctionError(LookupError):
    """Raised when executing a name that was never registered."""


@dataclass
class _Registration:
    function: CustomFunction
    deferred: bool = False


class FunctionRegistry:
    """
    Whitelist of callable validation functions.

    Example:
        registry = FunctionRegistry()
        registry.register("is_even", lambda value: int(value) % 2 == 0)
        registry.execute("is_even", 4)  # CustomResult(valid=True)
    """

    def __init__(self, log_size: int = 1000, builtins: bool = True) -> None:
        self._functions: dict[str, _Registration] = {}
        self._log: deque[FunctionCall] = deque(maxlen=log_size)
        self._lock = threading.Lock()
        if builtins:
            register_builtins(self)

    def register(self, name: str, function: CustomFunction, deferred: bool = False) -> None:
        """
        Register (or replace) a function.

        Args:
            name: Name used by ``custom`` rules
            function: ``function(value, *parameters) -> bool | CustomResult``
            deferred: Run on the worker pool instead of inside the update
        """
        if name in self._functions:
            logger.info("Replacing custom function '%s'", name)
        self._functions[name] = _Registration(function, deferred)

    def unregister(self, name: str) -> None:
        self._functions.pop(name, None)

    def is_registered(self, name: str) -> bool:
        return name in self._functions

    def is_deferred(self, name: str) -> bool:
        registration = self._functions.get(name)
        return registration is not None and registration.deferred

    def names(self) -> list[str]:
        return sorted(self._functions)

    def execute(self, name: str, value: Any, *parameters: Any) -> CustomResult:
        """
        Call a registered function.

        Raises:
            UnknownFunctionError: If ``name`` is not registered
            Exception: Whatever the function raises, after it is logged
        """
        registration = self._functions.get(name)
        if registration is None:
            raise UnknownFunctionError(f"Custom function '{name}' is not registered")

        arguments = (value, *parameters)
        try:
            outcome = registration.function(*arguments)
        except Exception as e:
            self._record(FunctionCall(name, arguments, None, error=f"{type(e).__name__}: {e}"))
            raise

        result = outcome if isinstance(outcome, CustomResult) else CustomResult(bool(outcome))
        self._record(FunctionCall(name, arguments, result.valid))
        return result

    def _record(self, call: FunctionCall) -> None:
        with self._lock:
            self._log.append(call)

    def call_log(self) -> list[FunctionCall]:
        with self._lock:
            return list(self._log)

    def clear_log(self) -> None:
        with self._lock:
            self._log.clear()


# =============================================================================
# Built-in functions
# =============================================================================

_EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")
_PHONE_RE = re.compile(r"\+?[0-9][0-9\- ().]{6,}[0-9]")


def validate_email(value: Any) -> bool:
    return isinstance(value, str) and _EMAIL_RE.fullmatch(value.strip()) is not None


def validate_phone(value: Any) -> bool:
    return isinstance(value, str) and _PHONE_RE.fullmatch(value.strip()) is not None


def validate_url(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_credit_card(value: Any) -> bool:
    """Luhn checksum over 13-19 digits; spaces and dashes are ignored."""
    digits = re.sub(r"[\s-]", "", str(value))
    if not digits.isdigit() or not 13 <= len(digits) <= 19:
        return False
    total = 0
    for index, char in enumerate(reversed(digits)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


BUILTIN_FUNCTIONS: dict[str, CustomFunction] = {
    "validate_email": validate_email,
    "validate_phone": validate_phone,
    "validate_url": validate_url,
    "validate_credit_card": validate_credit_card,
}


def register_builtins(registry: FunctionRegistry) -> None:
    for name, function in BUILTIN_FUNCTIONS.items():
        registry.register(name, function)
