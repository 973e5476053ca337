"""
Validation error taxonomy.

Every problem the engine reports against an element is one of the nine
variants below. They share ``element_id``, ``message`` and ``timestamp`` and
are distinguished by ``kind`` so a list of them round-trips through JSON as a
discriminated union.

Errors are data, not exceptions: they are stored per element in the form
snapshot and handed to the widget layer for display as-is.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ErrorKind(StrEnum):
    """Discriminator values for the error variants."""

    REQUIRED = "required"
    PATTERN = "pattern"
    LENGTH = "length"
    RANGE = "range"
    CROSS_FIELD = "cross_field"
    CUSTOM = "custom"
    DEPENDENCY = "dependency"
    RULE = "rule"
    GENERIC = "generic"


class DependencyType(StrEnum):
    """Which evaluation a DependencyError came from."""

    VISIBILITY = "visibility"
    ENABLEMENT = "enablement"
    REQUIRED = "required"
    CROSS_FIELD = "cross_field"
    EXPRESSION = "expression"
    CUSTOM = "custom"


# Dependency errors produced while deriving visibility/enablement. These are
# owned by the derived-state pass, not by rule validation.
DERIVED_DEPENDENCY_TYPES = frozenset({DependencyType.VISIBILITY, DependencyType.ENABLEMENT})


def _now() -> datetime:
    return datetime.now(UTC)


class BaseValidationError(BaseModel):
    """Fields common to every error variant.

    Equality ignores ``timestamp``: re-validating the same value yields errors
    equal to the previous ones.
    """

    element_id: str
    message: str
    timestamp: datetime = Field(default_factory=_now)

    model_config = ConfigDict(frozen=True)

    # User-fixable data problems block submission; engine-internal ones do not.
    blocks_submission: ClassVar[bool] = True

    def _identity(self) -> dict[str, Any]:
        return self.model_dump(exclude={"timestamp"})

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._identity() == other._identity()  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.element_id, self.message))


class RequiredError(BaseValidationError):
    """Missing value on a required element."""

    kind: Literal["required"] = "required"


class PatternError(BaseValidationError):
    """Value does not match a regular-expression rule."""

    kind: Literal["pattern"] = "pattern"
    pattern: str


class LengthError(BaseValidationError):
    """String (or collection) length outside the allowed bounds."""

    kind: Literal["length"] = "length"
    min_length: int | None = None
    max_length: int | None = None


class RangeError(BaseValidationError):
    """Numeric value outside the allowed bounds, or not a number."""

    kind: Literal["range"] = "range"
    min_value: float | None = None
    max_value: float | None = None


class CrossFieldError(BaseValidationError):
    """Relational rule between two elements failed."""

    kind: Literal["cross_field"] = "cross_field"
    related_field_id: str
    relation_type: str
    related_value: Any = None
    expression: str


class CustomValidationError(BaseValidationError):
    """A named custom validation function rejected the value."""

    kind: Literal["custom"] = "custom"
    function_name: str
    parameters: list[Any] = Field(default_factory=list)


class DependencyError(BaseValidationError):
    """Evaluating a dependency expression failed (not the user's data)."""

    kind: Literal["dependency"] = "dependency"
    dependency_expression: str
    dependency_type: DependencyType

    blocks_submission: ClassVar[bool] = False

    @property
    def is_derived(self) -> bool:
        return self.dependency_type in DERIVED_DEPENDENCY_TYPES


class ValidationRuleError(BaseValidationError):
    """Generic fallback for rules not covered by a dedicated variant."""

    kind: Literal["rule"] = "rule"
    rule_type: str
    rule_value: Any = None


class GenericError(BaseValidationError):
    """Catch-all for engine-internal conditions."""

    kind: Literal["generic"] = "generic"
    error_type: str
    details: dict[str, Any] = Field(default_factory=dict)

    blocks_submission: ClassVar[bool] = False


ValidationError = Annotated[
    RequiredError
    | PatternError
    | LengthError
    | RangeError
    | CrossFieldError
    | CustomValidationError
    | DependencyError
    | ValidationRuleError
    | GenericError,
    Field(discriminator="kind"),
]

validation_error_list_adapter: TypeAdapter[list[ValidationError]] = TypeAdapter(
    list[ValidationError]
)


def is_derived_error(error: BaseValidationError) -> bool:
    """True for errors owned by the visibility/enablement pass."""
    return isinstance(error, DependencyError) and error.is_derived
