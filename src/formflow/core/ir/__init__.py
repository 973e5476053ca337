"""
formflow configuration and state types.

Types are organized into submodules and re-exported here.
"""

from .config import (
    ActionConfig,
    ActionKind,
    ComponentConfig,
    FormConfig,
    JourneyConfig,
    NavigationConfig,
    PageConfig,
    SectionConfig,
)
from .expressions import (
    BinaryExpr,
    BinaryOp,
    Expr,
    FieldRef,
    FuncCall,
    IfExpr,
    InExpr,
    ListExpr,
    Literal,
    UnaryExpr,
    UnaryOp,
)
from .rules import (
    CrossFieldRule,
    CustomRule,
    EmailRule,
    ExpressionRule,
    LengthRule,
    PatternRule,
    PhoneRule,
    RangeRule,
    RelationType,
    RequiredRule,
    Rule,
)
from .validation_errors import (
    BaseValidationError,
    CrossFieldError,
    CustomValidationError,
    DependencyError,
    DependencyType,
    ErrorKind,
    GenericError,
    LengthError,
    PatternError,
    RangeError,
    RequiredError,
    ValidationError,
    ValidationRuleError,
    is_derived_error,
)

__all__ = [
    # Configuration
    "ActionConfig",
    "ActionKind",
    "ComponentConfig",
    "FormConfig",
    "JourneyConfig",
    "NavigationConfig",
    "PageConfig",
    "SectionConfig",
    # Expressions
    "BinaryExpr",
    "BinaryOp",
    "Expr",
    "FieldRef",
    "FuncCall",
    "IfExpr",
    "InExpr",
    "ListExpr",
    "Literal",
    "UnaryExpr",
    "UnaryOp",
    # Rules
    "CrossFieldRule",
    "CustomRule",
    "EmailRule",
    "ExpressionRule",
    "LengthRule",
    "PatternRule",
    "PhoneRule",
    "RangeRule",
    "RelationType",
    "RequiredRule",
    "Rule",
    # Validation errors
    "BaseValidationError",
    "CrossFieldError",
    "CustomValidationError",
    "DependencyError",
    "DependencyType",
    "ErrorKind",
    "GenericError",
    "LengthError",
    "PatternError",
    "RangeError",
    "RequiredError",
    "ValidationError",
    "ValidationRuleError",
    "is_derived_error",
]
