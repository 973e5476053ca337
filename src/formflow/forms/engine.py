"""
Form engine.

Owns the form state for one configuration instance and runs every change as
a transaction:

1. Copy the current snapshot into a draft
2. Write the value and validate the element that owns it
3. Walk the dependency closure in dependency order, recomputing visibility
   and enablement and re-running cross-field rules that read changed elements
4. Publish the draft as one new snapshot

Transactions are serialized by a re-entrant lock. Readers use
``snapshot()``, which never blocks.

Example:
    engine = FormEngine(config, navigator=my_navigator)
    engine.update_value("email", "someone@example.com")
    result = engine.dispatch_action("submit")
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from collections.abc import Callable, Mapping
from enum import StrEnum
from typing import Any

from formflow.core.errors import ActionError, ExpressionError, UnknownElementError
from formflow.core.expression_lang import ABSENT, compile_expr, referenced_elements, walk_path
from formflow.core.ir import (
    ActionConfig,
    ActionKind,
    BaseValidationError,
    ComponentConfig,
    CustomValidationError,
    DependencyError,
    DependencyType,
    FormConfig,
    GenericError,
    JourneyConfig,
    is_derived_error,
)
from formflow.core.linker import link_config
from formflow.core.settings import EngineSettings, get_settings

from .actions import ActionHandler, ActionOutcome, ActionResult, Navigator, navigation_refusal
from .binding import BindingResolver, StateView, split_path
from .functions import FunctionRegistry
from .graph import DependencyGraph
from .scheduling import Debouncer, DeferredRunner
from .state import FormSnapshot, FormStateStore, SnapshotDraft, SnapshotObserver
from .validation import (
    DeferredCheck,
    RuleEvaluator,
    merge_cross_field_errors,
    merge_derived_errors,
    merge_rule_errors,
)

logger = logging.getLogger(__name__)


class ElementStatus(StrEnum):
    """Per-element lifecycle: pristine -> touched -> valid | invalid."""

    PRISTINE = "pristine"
    TOUCHED = "touched"
    VALID = "valid"
    INVALID = "invalid"


def unknown_element(element_id: str) -> UnknownElementError:
    error = GenericError(
        element_id=element_id,
        message=f"Unknown element '{element_id}'",
        error_type="unknown_element",
        details={"element_id": element_id},
    )
    return UnknownElementError(element_id, error)


class FormEngine:
    """
    Reactive form engine for one configuration instance.

    Args:
        config: Parsed configuration
        navigator: Navigation collaborator for navigate/submit actions
        action_handler: Receives custom (and successful submit) actions
        settings: Engine tunables; read from the environment when omitted
        functions: Custom validation function registry
        journey_id: Journey to start in
        page_id: Page to start on

    Raises:
        ConfigurationError: If the configuration fails load-time checks
    """

    def __init__(
        self,
        config: FormConfig,
        navigator: Navigator | None = None,
        action_handler: ActionHandler | None = None,
        settings: EngineSettings | None = None,
        functions: FunctionRegistry | None = None,
        journey_id: str | None = None,
        page_id: str | None = None,
    ) -> None:
        self.config = config
        self.settings = settings or get_settings()
        self.functions = functions or FunctionRegistry(log_size=self.settings.function_log_size)
        self.navigator = navigator
        self.action_handler = action_handler

        link_config(config, functions=self.functions.names())
        self.graph = DependencyGraph.from_config(config)
        self.graph.check_bounds(self.settings.max_dependency_depth)

        self.resolver = BindingResolver(config)
        self.rules = RuleEvaluator(self.resolver, self.functions)
        self.store = FormStateStore()

        self._lock = threading.RLock()
        self._debouncer = Debouncer()
        self._deferred = DeferredRunner(self.settings.deferred_workers)
        self._pending_checks: Counter[str] = Counter()
        self._written_at: dict[str, int] = {}
        self._initial_values: dict[str, Any] = {
            component_id: component.default_value
            for component_id, component in config.all_components().items()
        }
        self._cross_field_inputs = self._index_cross_field_inputs()

        self._page_history: list[str] = []
        start_page = page_id or self._start_page(journey_id)
        if start_page:
            self._page_history.append(start_page)

        self.store.publish(self._initial_draft())

    # =========================================================================
    # Queries
    # =========================================================================

    def snapshot(self) -> FormSnapshot:
        """Latest published snapshot; never blocks."""
        return self.store.current()

    def has_errors(self) -> bool:
        """True iff any effectively visible element has errors."""
        snapshot = self.store.current()
        return any(
            errors and self.resolver.is_effectively_visible(element_id, snapshot)
            for element_id, errors in snapshot.errors.items()
        )

    def is_visible(self, element_id: str) -> bool:
        return self.resolver.is_effectively_visible(element_id, self.store.current())

    def is_enabled(self, element_id: str) -> bool:
        return self.store.current().is_enabled(element_id)

    def errors_for(self, element_id: str) -> tuple[BaseValidationError, ...]:
        return self.store.current().errors_for(element_id)

    def value_of(self, element_id: str) -> Any:
        return self.store.current().value_of(element_id)

    def element_status(self, element_id: str) -> ElementStatus:
        if not self.resolver.is_known(element_id):
            raise unknown_element(element_id)
        snapshot = self.store.current()
        if any(not is_derived_error(e) for e in snapshot.errors_for(element_id)):
            return ElementStatus.INVALID
        if element_id not in snapshot.touched:
            return ElementStatus.PRISTINE
        if self._pending_checks[element_id]:
            return ElementStatus.TOUCHED
        return ElementStatus.VALID

    @property
    def current_page_id(self) -> str | None:
        return self._page_history[-1] if self._page_history else None

    @property
    def current_journey(self) -> JourneyConfig | None:
        page_id = self.current_page_id
        return self.config.journey_for_page(page_id) if page_id else None

    def subscribe(self, observer: SnapshotObserver) -> Callable[[], None]:
        """Call ``observer`` with every published snapshot; returns an unsubscribe callable."""
        return self.store.subscribe(observer)

    # =========================================================================
    # Value updates
    # =========================================================================

    def update_value(self, element_id: str, value: Any) -> FormSnapshot:
        """
        Write a value and recompute everything that depends on it.

        Raises:
            UnknownElementError: If ``element_id`` is not a component of the
                configuration (carries ``GenericError("unknown_element")``)

        Returns:
            The snapshot after the update (unchanged if the update was a no-op)
        """
        component = self.config.get_component(element_id)
        if component is None:
            raise unknown_element(element_id)

        with self._lock:
            base = self.store.current()
            draft = SnapshotDraft.from_snapshot(base)
            draft.set_value(element_id, value)
            draft.touch(element_id)
            self._mark_dirty(draft, element_id)

            deferred: list[DeferredCheck] = []
            self._derive(element_id, draft)
            self._validate_into(component, draft, deferred)
            closure = self._recompute_closure(element_id, base, draft, deferred)

            logger.debug("Update of '%s' touched %d dependent element(s)", element_id, len(closure))
            return self._commit(draft, base, written={element_id}, deferred=deferred)

    def update_value_debounced(self, element_id: str, value: Any) -> None:
        """Coalesce rapid edits to one element; the last value wins."""
        component = self.config.get_component(element_id)
        if component is None:
            raise unknown_element(element_id)
        delay = (
            component.debounce_ms
            if component.debounce_ms is not None
            else self.settings.default_debounce_ms
        )
        self._debouncer.schedule(element_id, delay, lambda: self.update_value(element_id, value))

    def flush_pending(self) -> None:
        """Apply debounced edits now."""
        self._debouncer.flush()

    def wait_for_pending(self, timeout: float | None = None) -> bool:
        """Block until deferred validation jobs finish; True if none remain."""
        return self._deferred.wait(timeout)

    def validate_all(self) -> dict[str, tuple[BaseValidationError, ...]]:
        """Validate every visible, enabled element and publish the result."""
        with self._lock:
            base = self.store.current()
            draft = SnapshotDraft.from_snapshot(base)
            deferred: list[DeferredCheck] = []
            for component in self.config.all_components().values():
                self._validate_into(component, draft, deferred)
            snapshot = self._commit(draft, base, written=set(), deferred=deferred)
            return dict(snapshot.errors)

    def reset(self, element_id: str | None = None) -> FormSnapshot:
        """Restore defaults for one element, or for the whole form."""
        with self._lock:
            base = self.store.current()
            if element_id is None:
                logger.info("Resetting form '%s'", self.config.id)
                return self._commit(
                    self._initial_draft(), base, written=set(self._initial_values), deferred=[]
                )

            if self.config.get_component(element_id) is None:
                raise unknown_element(element_id)
            draft = SnapshotDraft.from_snapshot(base)
            draft.set_value(element_id, self._initial_values.get(element_id))
            draft.touched.discard(element_id)
            draft.dirty.discard(element_id)
            draft.set_errors(element_id, merge_rule_errors(draft.errors_for(element_id), []))
            self._derive(element_id, draft)
            self._recompute_closure(element_id, base, draft, [])
            return self._commit(draft, base, written={element_id}, deferred=[])

    def initialize_with_data(self, data: Mapping[str, Any]) -> FormSnapshot:
        """
        Seed values from host data.

        A component takes its value from ``data`` at its ``binding_path``,
        or at its id when it has none. Seeded values become the initial
        values: they are neither touched nor dirty.
        """
        with self._lock:
            for component_id, component in self.config.all_components().items():
                if component.binding_path:
                    path = split_path(component.binding_path)
                else:
                    path = [component_id]
                value = walk_path(data, path)
                if value is not ABSENT:
                    self._initial_values[component_id] = value
            base = self.store.current()
            return self._commit(
                self._initial_draft(), base, written=set(self._initial_values), deferred=[]
            )

    # =========================================================================
    # Actions
    # =========================================================================

    def dispatch_action(
        self,
        action: ActionConfig | str | None = None,
        origin_element_id: str | None = None,
    ) -> ActionResult:
        """
        Run an action's declared effect.

        Args:
            action: ActionConfig, the name of a form-level action, an action
                kind (``"submit"``), or None to use the origin component's action
            origin_element_id: Component that triggered the action

        Raises:
            ActionError: If no action can be resolved
        """
        resolved = self._resolve_action(action, origin_element_id)
        with self._lock:
            kind = resolved.kind
            if kind == ActionKind.SUBMIT:
                return self._submit(resolved, origin_element_id)
            if kind == ActionKind.RESET:
                self.reset(resolved.target)
                return ActionResult(
                    outcome=ActionOutcome.RESET,
                    action=resolved,
                    origin_element_id=origin_element_id,
                    target=resolved.target,
                )
            if kind == ActionKind.CUSTOM:
                if self.action_handler is None:
                    return self._unhandled(resolved, origin_element_id, "No action handler")
                self.action_handler(resolved, origin_element_id)
                return ActionResult(
                    outcome=ActionOutcome.HANDLED,
                    action=resolved,
                    origin_element_id=origin_element_id,
                )
            return self._navigate(resolved, origin_element_id)

    def _resolve_action(
        self, action: ActionConfig | str | None, origin_element_id: str | None
    ) -> ActionConfig:
        if isinstance(action, ActionConfig):
            return action
        if action is None:
            component = self.config.get_component(origin_element_id or "")
            if component is None or component.action is None:
                raise ActionError(f"Element '{origin_element_id}' declares no action")
            return component.action
        if action in self.config.actions:
            return self.config.actions[action]
        try:
            return ActionConfig(kind=ActionKind(action))
        except ValueError:
            raise ActionError(f"Unknown action '{action}'") from None

    def _submit(self, action: ActionConfig, origin_element_id: str | None) -> ActionResult:
        base = self.store.current()
        draft = SnapshotDraft.from_snapshot(base)
        deferred: list[DeferredCheck] = []
        for component in self.config.all_components().values():
            self._validate_into(component, draft, deferred)
        snapshot = self._commit(draft, base, written=set(), deferred=deferred)

        blocking = [
            element_id
            for element_id, errors in snapshot.errors.items()
            if self._is_active(element_id, snapshot)
            and any(e.blocks_submission for e in errors)
        ]
        if blocking:
            logger.info("Submit blocked by %d element(s): %s", len(blocking), blocking)
            return ActionResult(
                outcome=ActionOutcome.BLOCKED,
                action=action,
                origin_element_id=origin_element_id,
                target=action.target,
                message="Form has validation errors",
                blocking_element_ids=sorted(blocking),
            )

        if action.target:
            refusal = navigation_refusal(
                action.kind, self.current_journey, self.current_page_id, action.target
            )
            if refusal:
                return self._refused(action, origin_element_id, refusal)
            if self.navigator is not None:
                self.navigator.navigate(action.target)
                self._page_history.append(action.target)
        if self.action_handler is not None:
            self.action_handler(action, origin_element_id)
        return ActionResult(
            outcome=ActionOutcome.SUBMITTED,
            action=action,
            origin_element_id=origin_element_id,
            target=action.target,
        )

    def _navigate(self, action: ActionConfig, origin_element_id: str | None) -> ActionResult:
        target = action.target or ""
        if action.kind == ActionKind.NAVIGATE and not target:
            raise ActionError("navigate action needs a target page")

        refusal = navigation_refusal(
            action.kind, self.current_journey, self.current_page_id, action.target
        )
        if refusal:
            return self._refused(action, origin_element_id, refusal)
        if self.navigator is None:
            return self._unhandled(action, origin_element_id, "No navigator")

        if action.kind == ActionKind.NAVIGATE:
            self.navigator.navigate(target)
            self._page_history.append(target)
        elif action.kind == ActionKind.NAVIGATE_BACK:
            self.navigator.navigate_back()
            if len(self._page_history) > 1:
                self._page_history.pop()
        else:
            self.navigator.navigate_home()
            del self._page_history[1:]

        return ActionResult(
            outcome=ActionOutcome.NAVIGATED,
            action=action,
            origin_element_id=origin_element_id,
            target=action.target,
        )

    def _refused(
        self, action: ActionConfig, origin_element_id: str | None, reason: str
    ) -> ActionResult:
        logger.info("Navigation refused: %s", reason)
        return ActionResult(
            outcome=ActionOutcome.REFUSED,
            action=action,
            origin_element_id=origin_element_id,
            target=action.target,
            message=reason,
        )

    def _unhandled(
        self, action: ActionConfig, origin_element_id: str | None, reason: str
    ) -> ActionResult:
        logger.warning("Action %s not forwarded: %s", action.kind, reason)
        return ActionResult(
            outcome=ActionOutcome.UNHANDLED,
            action=action,
            origin_element_id=origin_element_id,
            target=action.target,
            message=reason,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Drop pending debounced edits and stop the deferred worker pool."""
        self._debouncer.cancel()
        self._deferred.shutdown(wait=True)

    def __enter__(self) -> FormEngine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # =========================================================================
    # Transaction internals
    # =========================================================================

    def _start_page(self, journey_id: str | None) -> str | None:
        journey = self.config.get_journey(journey_id) if journey_id else None
        if journey is None and self.config.journeys:
            journey = self.config.journeys[0]
        if journey is not None and journey.start_page_id:
            return journey.start_page_id
        return self.config.pages[0].id if self.config.pages else None

    def _index_cross_field_inputs(self) -> dict[tuple[str, int], set[str]]:
        known = frozenset(self.config.element_ids())
        inputs: dict[tuple[str, int], set[str]] = {}
        for component_id, component in self.config.all_components().items():
            for index, rule in enumerate(component.cross_field_rules):
                refs = {rule.related_field_id}
                source = rule.expression_for(component_id)
                try:
                    expr = compile_expr(source)
                except ExpressionError:
                    logger.debug("Cross-field expression %r does not parse", source)
                else:
                    refs |= referenced_elements(expr, known)
                inputs[(component_id, index)] = refs
        return inputs

    def _reads_any(self, component: ComponentConfig, element_ids: set[str]) -> bool:
        return any(
            self._cross_field_inputs.get((component.id, index), set()) & element_ids
            for index, _ in enumerate(component.cross_field_rules)
        )

    def _initial_draft(self) -> SnapshotDraft:
        draft = SnapshotDraft(values=dict(self._initial_values))
        for element_id in self.graph.ordered(self.config.element_ids()):
            self._derive(element_id, draft)
        return draft

    def _mark_dirty(self, draft: SnapshotDraft, element_id: str) -> None:
        if draft.values.get(element_id) != self._initial_values.get(element_id):
            draft.dirty.add(element_id)
        else:
            draft.dirty.discard(element_id)

    def _derive(self, element_id: str, draft: SnapshotDraft) -> None:
        """Recompute visibility and enablement of one element."""
        derived: list[BaseValidationError] = []
        section = self.config.get_section(element_id)
        component = self.config.get_component(element_id)
        node = component or section
        if node is None:
            return

        visible = node.visible
        if visible and node.visibility_expression:
            visible, error = self.rules.derive_flag(
                element_id, node.visibility_expression, DependencyType.VISIBILITY, draft
            )
            if error is not None:
                derived.append(error)
        draft.set_visibility(element_id, visible)

        if component is not None:
            enabled = component.enabled
            if enabled and component.enablement_expression:
                enabled, error = self.rules.derive_flag(
                    element_id, component.enablement_expression, DependencyType.ENABLEMENT, draft
                )
                if error is not None:
                    derived.append(error)
            draft.set_enabled(element_id, enabled)

        draft.set_errors(element_id, merge_derived_errors(draft.errors_for(element_id), derived))

    def _validate_into(
        self,
        component: ComponentConfig,
        draft: SnapshotDraft,
        deferred: list[DeferredCheck],
    ) -> None:
        """Replace the rule errors of one element; hidden or disabled elements get none."""
        existing = draft.errors_for(component.id)
        if not self._is_active(component.id, draft):
            draft.set_errors(component.id, merge_rule_errors(existing, []))
            return
        result = self.rules.validate(component, draft)
        draft.set_errors(component.id, merge_rule_errors(existing, result.errors))
        deferred.extend(result.deferred)

    def _recompute_closure(
        self,
        element_id: str,
        base: FormSnapshot,
        draft: SnapshotDraft,
        deferred: list[DeferredCheck],
    ) -> list[str]:
        processed = {element_id}
        closure = self.graph.recompute_order(element_id)
        for dependent_id in closure:
            self._derive(dependent_id, draft)
            component = self.config.get_component(dependent_id)
            if component is not None:
                self._refresh_dependent(component, base, draft, processed, deferred)
            processed.add(dependent_id)
        return closure

    def _is_active(self, element_id: str, state: StateView) -> bool:
        """Visible (section included) and enabled: the elements a user can fix."""
        if not state.is_enabled(element_id):
            return False
        return self.resolver.is_effectively_visible(element_id, state)

    def _refresh_dependent(
        self,
        component: ComponentConfig,
        base: FormSnapshot,
        draft: SnapshotDraft,
        changed: set[str],
        deferred: list[DeferredCheck],
    ) -> None:
        element_id = component.id
        if not self._is_active(element_id, draft):
            draft.set_errors(element_id, merge_rule_errors(draft.errors_for(element_id), []))
        elif not self._is_active(element_id, base) and element_id in draft.touched:
            self._validate_into(component, draft, deferred)
        elif self._reads_any(component, changed):
            errors = self.rules.validate_cross_field(component, draft)
            draft.set_errors(
                element_id, merge_cross_field_errors(draft.errors_for(element_id), errors)
            )

    def _commit(
        self,
        draft: SnapshotDraft,
        base: FormSnapshot,
        written: set[str],
        deferred: list[DeferredCheck],
    ) -> FormSnapshot:
        """Publish the draft unless it equals ``base``; then schedule deferred checks."""
        if draft.differs_from(base):
            snapshot = self.store.publish(draft)
            for element_id in written:
                self._written_at[element_id] = snapshot.version
        else:
            logger.debug("No-op transaction; snapshot %d kept", base.version)
            snapshot = base

        for check in deferred:
            self._pending_checks[check.element_id] += 1
            self._deferred.submit(self._run_deferred, check, snapshot.version)
        return snapshot

    def _run_deferred(self, check: DeferredCheck, version: int) -> None:
        try:
            errors = self.rules.run_custom(
                check.element_id, check.rule, check.value, check.parameters
            )
            self._apply_deferred(check, version, errors)
        finally:
            with self._lock:
                self._pending_checks[check.element_id] -= 1

    def _apply_deferred(
        self, check: DeferredCheck, version: int, errors: list[BaseValidationError]
    ) -> None:
        with self._lock:
            if any(self._written_at.get(i, 0) > version for i in check.inputs):
                logger.debug(
                    "Discarding stale '%s' result for '%s' (computed at %d)",
                    check.rule.function,
                    check.element_id,
                    version,
                )
                return
            base = self.store.current()
            if not self._is_active(check.element_id, base):
                return
            draft = SnapshotDraft.from_snapshot(base)
            kept = [
                e
                for e in draft.errors_for(check.element_id)
                if not _from_function(e, check.rule.function)
            ]
            draft.set_errors(check.element_id, kept + errors)
            self._commit(draft, base, written=set(), deferred=[])


def _from_function(error: BaseValidationError, function_name: str) -> bool:
    if isinstance(error, CustomValidationError):
        return error.function_name == function_name
    return (
        isinstance(error, DependencyError)
        and error.dependency_type == DependencyType.CUSTOM
        and error.dependency_expression == function_name
    )
