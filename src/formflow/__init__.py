"""
formflow - reactive form/state engine for configuration-driven screens.

A configuration describes pages, sections, components and their rules; the
engine owns element values, derives visibility, enablement and validity from
dependency expressions, and dispatches user actions.
"""

from __future__ import annotations

from ._version import get_version
from .core import ir
from .core.errors import ConfigurationError, FormflowError, UnknownElementError
from .core.loader import load_config, load_config_file
from .forms import FormEngine, FormSnapshot, FunctionRegistry, HierarchicalRenderer

__version__ = get_version()

__all__ = [
    "__version__",
    "ir",
    "ConfigurationError",
    "FormflowError",
    "UnknownElementError",
    "load_config",
    "load_config_file",
    "FormEngine",
    "FormSnapshot",
    "FunctionRegistry",
    "HierarchicalRenderer",
]
