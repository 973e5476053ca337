"""
Action results and the navigation collaborator.

The engine never manipulates a navigation stack: it decides whether an
action may proceed and hands the request to a ``Navigator``.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import StrEnum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from formflow.core.ir import ActionConfig, ActionKind, JourneyConfig


# =============================================================================
# Outcomes
# =============================================================================


class ActionOutcome(StrEnum):
    """What dispatching an action did."""

    NAVIGATED = "navigated"
    SUBMITTED = "submitted"
    BLOCKED = "blocked"  # submit refused: blocking validation errors
    REFUSED = "refused"  # journey navigation permissions
    RESET = "reset"
    HANDLED = "handled"  # custom action forwarded to the handler
    UNHANDLED = "unhandled"  # no collaborator to forward to


class ActionResult(BaseModel):
    """
    Result of ``FormEngine.dispatch_action``.

    Example:
        ActionResult(outcome=ActionOutcome.BLOCKED, blocking_element_ids=["email"])
    """

    outcome: ActionOutcome
    action: ActionConfig
    origin_element_id: str | None = None
    target: str | None = None
    message: str | None = None
    blocking_element_ids: list[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @property
    def proceeded(self) -> bool:
        return self.outcome in (
            ActionOutcome.NAVIGATED,
            ActionOutcome.SUBMITTED,
            ActionOutcome.RESET,
            ActionOutcome.HANDLED,
        )


# =============================================================================
# Collaborators
# =============================================================================


class Navigator(Protocol):
    """Navigation collaborator."""

    def navigate(self, target: str) -> None: ...

    def navigate_back(self) -> None: ...

    def navigate_home(self) -> None: ...


ActionHandler = Callable[[ActionConfig, str | None], Any]


class RecordingNavigator:
    """Navigator that records requests; tracks the current page for journeys."""

    def __init__(self, start_page_id: str | None = None) -> None:
        self.history: list[str] = [start_page_id] if start_page_id else []
        self.requests: list[tuple[str, str | None]] = []

    @property
    def current_page_id(self) -> str | None:
        return self.history[-1] if self.history else None

    def navigate(self, target: str) -> None:
        self.requests.append(("navigate", target))
        self.history.append(target)

    def navigate_back(self) -> None:
        self.requests.append(("navigate_back", None))
        if len(self.history) > 1:
            self.history.pop()

    def navigate_home(self) -> None:
        self.requests.append(("navigate_home", None))
        del self.history[1:]


# =============================================================================
# Journey permissions
# =============================================================================


def navigation_refusal(
    kind: ActionKind,
    journey: JourneyConfig | None,
    current_page_id: str | None,
    target: str | None = None,
) -> str | None:
    """
    Check a navigation request against the journey's permissions.

    Returns:
        Reason the request is refused, or None if it may proceed
    """
    if journey is None:
        return None
    navigation = journey.navigation

    if kind == ActionKind.NAVIGATE_BACK:
        if not navigation.allow_back:
            return f"Journey '{journey.id}' does not allow going back"
        return None

    if kind not in (ActionKind.NAVIGATE, ActionKind.SUBMIT) or target is None:
        return None
    if current_page_id not in journey.page_ids or target not in journey.page_ids:
        return None

    current_index = journey.page_ids.index(current_page_id)
    target_index = journey.page_ids.index(target)
    if target_index > current_index and not navigation.allow_forward:
        return f"Journey '{journey.id}' does not allow moving forward"
    if target_index < current_index and not navigation.allow_back:
        return f"Journey '{journey.id}' does not allow going back"
    return None
