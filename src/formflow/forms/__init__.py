"""
Reactive form engine: state store, binding resolution, dependency graph,
rule evaluation, actions and the renderer boundary.
"""

from .actions import ActionOutcome, ActionResult, Navigator, RecordingNavigator
from .binding import BindingResolver
from .engine import ElementStatus, FormEngine
from .functions import CustomResult, FunctionRegistry
from .graph import DependencyGraph
from .renderer import HierarchicalRenderer, WidgetProps, WidgetRenderer
from .state import FormSnapshot, FormStateStore, SnapshotDraft

__all__ = [
    "ActionOutcome",
    "ActionResult",
    "BindingResolver",
    "CustomResult",
    "DependencyGraph",
    "ElementStatus",
    "FormEngine",
    "FormSnapshot",
    "FormStateStore",
    "FunctionRegistry",
    "HierarchicalRenderer",
    "Navigator",
    "RecordingNavigator",
    "SnapshotDraft",
    "WidgetProps",
    "WidgetRenderer",
]
