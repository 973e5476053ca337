"""Core formflow functionality: configuration IR, expression language, linker, loader, settings."""

from . import ir
from .errors import (
    ActionError,
    ConfigurationError,
    ErrorContext,
    ExpressionError,
    FormflowError,
    UnknownElementError,
)
from .linker import link_config
from .loader import load_config, load_config_file
from .settings import EngineSettings, FormflowEnv, get_settings

__all__ = [
    "ir",
    "FormflowError",
    "ConfigurationError",
    "ExpressionError",
    "UnknownElementError",
    "ActionError",
    "ErrorContext",
    "link_config",
    "load_config",
    "load_config_file",
    "EngineSettings",
    "FormflowEnv",
    "get_settings",
]
