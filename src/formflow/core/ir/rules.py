"""
Validation rule types.

A component declares an ordered list of rules. Each rule variant is selected
by its ``type`` key, e.g.::

    {"type": "range", "minValue": 0, "maxValue": 100}
    {"type": "cross_field", "relatedFieldId": "start", "relation": "gte"}
    {"type": "custom", "function": "validate_credit_card", "parameters": []}
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, ClassVar, Literal

from pydantic import Field, model_validator

from .base import ConfigModel
from .expressions import BinaryOp


class RelationType(StrEnum):
    """Relations usable in a cross-field rule: ``<element> <relation> <related>``."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"

    @property
    def operator(self) -> BinaryOp:
        return _RELATION_OPS[self]


_RELATION_OPS: dict[RelationType, BinaryOp] = {
    RelationType.EQ: BinaryOp.EQ,
    RelationType.NE: BinaryOp.NE,
    RelationType.GT: BinaryOp.GT,
    RelationType.GTE: BinaryOp.GE,
    RelationType.LT: BinaryOp.LT,
    RelationType.LTE: BinaryOp.LE,
}


class RequiredRule(ConfigModel):
    """
    Value must be present.

    Attributes:
        when: Optional expression; the element is only required while it
            evaluates truthy.
    """

    type: Literal["required"] = "required"
    when: str | None = None
    message: str | None = None


class PatternRule(ConfigModel):
    """Value must fully match a regular expression."""

    type: Literal["pattern"] = "pattern"
    pattern: str
    message: str | None = None


class LengthRule(ConfigModel):
    """String length bounds (inclusive)."""

    type: Literal["length"] = "length"
    min_length: int | None = Field(default=None, ge=0)
    max_length: int | None = Field(default=None, ge=0)
    message: str | None = None


class RangeRule(ConfigModel):
    """Numeric bounds (inclusive)."""

    type: Literal["range"] = "range"
    min_value: float | None = None
    max_value: float | None = None
    message: str | None = None


class CrossFieldRule(ConfigModel):
    """
    Relational rule between this element and another.

    Either ``relation`` (``end gte start``) or a free ``expression``
    referencing both elements (``end >= start + 1``) must be given.
    """

    type: Literal["cross_field"] = "cross_field"
    related_field_id: str
    relation: RelationType | None = None
    expression: str | None = None
    message: str | None = None

    @model_validator(mode="after")
    def _relation_or_expression(self) -> CrossFieldRule:
        if self.relation is None and not self.expression:
            raise ValueError("cross_field rule needs 'relation' or 'expression'")
        return self

    def expression_for(self, element_id: str) -> str:
        """Source text of the check, as evaluated for ``element_id``."""
        if self.expression:
            return self.expression
        assert self.relation is not None
        return f"{element_id} {self.relation.operator.value} {self.related_field_id}"


class CustomRule(ConfigModel):
    """
    Call a registered custom validation function.

    The function receives the element's value followed by the resolved
    values of ``parameters`` (binding paths).
    """

    type: Literal["custom"] = "custom"
    function: str
    parameters: list[str] = Field(default_factory=list)
    message: str | None = None


class EmailRule(ConfigModel):
    """Value must look like an e-mail address."""

    type: Literal["email"] = "email"
    message: str | None = None

    pattern: ClassVar[str] = (
        r"[a-zA-Z0-9+._%\-]{1,256}@[a-zA-Z0-9][a-zA-Z0-9\-]{0,64}"
        r"(\.[a-zA-Z0-9][a-zA-Z0-9\-]{0,25})+"
    )


class PhoneRule(ConfigModel):
    """Value must look like a phone number."""

    type: Literal["phone"] = "phone"
    message: str | None = None

    pattern: ClassVar[str] = r"(\+[0-9]+[\- .]*)?(\([0-9]+\)[\- .]*)?([0-9][0-9\- .]+[0-9])"


class ExpressionRule(ConfigModel):
    """Generic rule: the expression must evaluate truthy."""

    type: Literal["expression"] = "expression"
    expression: str
    message: str | None = None


Rule = Annotated[
    RequiredRule
    | PatternRule
    | LengthRule
    | RangeRule
    | CrossFieldRule
    | CustomRule
    | EmailRule
    | PhoneRule
    | ExpressionRule,
    Field(discriminator="type"),
]
