"""
Form State Store.

The store owns exactly one immutable, versioned ``FormSnapshot``. Writers
build a ``SnapshotDraft`` from the current snapshot, mutate the draft, and
publish it; the store stamps the next version and swaps the reference in one
step. Readers call ``current()`` without locking and always see a complete
snapshot.

Example:
    store = FormStateStore()
    draft = SnapshotDraft.from_snapshot(store.current())
    draft.set_value("email", "a@b.co")
    snapshot = store.publish(draft)
    assert snapshot.version == 1
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from formflow.core.ir.validation_errors import BaseValidationError

logger = logging.getLogger(__name__)

ErrorList = tuple[BaseValidationError, ...]
SnapshotObserver = Callable[["FormSnapshot"], None]


def _empty() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True)
class FormSnapshot:
    """
    Immutable capture of every element's value and derived state.

    Attributes:
        values: Element id -> current value
        visibility: Element id -> own visibility; a missing key means visible
        enabled: Element id -> enablement; a missing key means enabled
        errors: Element id -> errors; elements without errors have no key
        touched: Elements the user has edited
        dirty: Elements whose value differs from the initial value
        version: Strictly increasing publish counter
    """

    values: Mapping[str, Any] = field(default_factory=_empty)
    visibility: Mapping[str, bool] = field(default_factory=_empty)
    enabled: Mapping[str, bool] = field(default_factory=_empty)
    errors: Mapping[str, ErrorList] = field(default_factory=_empty)
    touched: frozenset[str] = frozenset()
    dirty: frozenset[str] = frozenset()
    version: int = 0

    def is_visible(self, element_id: str) -> bool:
        return self.visibility.get(element_id, True)

    def is_enabled(self, element_id: str) -> bool:
        return self.enabled.get(element_id, True)

    def errors_for(self, element_id: str) -> ErrorList:
        return self.errors.get(element_id, ())

    def value_of(self, element_id: str, default: Any = None) -> Any:
        return self.values.get(element_id, default)

    def is_touched(self, element_id: str) -> bool:
        return element_id in self.touched

    def same_state(self, other: FormSnapshot) -> bool:
        """Equal in everything but version."""
        return (
            self.values == other.values
            and self.visibility == other.visibility
            and self.enabled == other.enabled
            and self.errors == other.errors
            and self.touched == other.touched
            and self.dirty == other.dirty
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view (errors dumped with their ``kind`` tags)."""
        return {
            "version": self.version,
            "values": dict(self.values),
            "visibility": dict(self.visibility),
            "enabled": dict(self.enabled),
            "errors": {
                element_id: [e.model_dump(mode="json") for e in errs]
                for element_id, errs in self.errors.items()
            },
            "touched": sorted(self.touched),
            "dirty": sorted(self.dirty),
        }


@dataclass
class SnapshotDraft:
    """Mutable working copy of a snapshot, private to one transaction."""

    values: dict[str, Any] = field(default_factory=dict)
    visibility: dict[str, bool] = field(default_factory=dict)
    enabled: dict[str, bool] = field(default_factory=dict)
    errors: dict[str, ErrorList] = field(default_factory=dict)
    touched: set[str] = field(default_factory=set)
    dirty: set[str] = field(default_factory=set)

    @classmethod
    def from_snapshot(cls, snapshot: FormSnapshot) -> SnapshotDraft:
        return cls(
            values=dict(snapshot.values),
            visibility=dict(snapshot.visibility),
            enabled=dict(snapshot.enabled),
            errors=dict(snapshot.errors),
            touched=set(snapshot.touched),
            dirty=set(snapshot.dirty),
        )

    def set_value(self, element_id: str, value: Any) -> None:
        self.values[element_id] = value

    def set_visibility(self, element_id: str, visible: bool) -> None:
        self.visibility[element_id] = visible

    def set_enabled(self, element_id: str, enabled: bool) -> None:
        self.enabled[element_id] = enabled

    def set_errors(self, element_id: str, errors: Iterable[BaseValidationError]) -> None:
        """Replace an element's errors wholesale; an empty list clears the key."""
        errs = tuple(errors)
        if errs:
            self.errors[element_id] = errs
        else:
            self.errors.pop(element_id, None)

    def errors_for(self, element_id: str) -> ErrorList:
        return self.errors.get(element_id, ())

    def is_visible(self, element_id: str) -> bool:
        return self.visibility.get(element_id, True)

    def is_enabled(self, element_id: str) -> bool:
        return self.enabled.get(element_id, True)

    def touch(self, element_id: str) -> None:
        self.touched.add(element_id)

    def freeze(self, version: int) -> FormSnapshot:
        return FormSnapshot(
            values=MappingProxyType(dict(self.values)),
            visibility=MappingProxyType(dict(self.visibility)),
            enabled=MappingProxyType(dict(self.enabled)),
            errors=MappingProxyType(dict(self.errors)),
            touched=frozenset(self.touched),
            dirty=frozenset(self.dirty),
            version=version,
        )

    def differs_from(self, snapshot: FormSnapshot) -> bool:
        return not self.freeze(snapshot.version).same_state(snapshot)


class FormStateStore:
    """
    Single owner of the current snapshot.

    ``publish`` is serialized by a lock; ``current`` is a plain attribute read
    and never blocks. Observers are called after the swap, outside the lock;
    an observer that raises is logged and skipped.
    """

    def __init__(self, initial: FormSnapshot | None = None) -> None:
        self._current = initial if initial is not None else FormSnapshot()
        self._lock = threading.Lock()
        self._observers: list[SnapshotObserver] = []

    def current(self) -> FormSnapshot:
        return self._current

    @property
    def version(self) -> int:
        return self._current.version

    def publish(self, next_state: SnapshotDraft | FormSnapshot) -> FormSnapshot:
        """
        Atomically replace the current snapshot.

        The published snapshot's version is always the previous version plus
        one, whatever version ``next_state`` carried.

        Returns:
            The snapshot now current
        """
        with self._lock:
            version = self._current.version + 1
            if isinstance(next_state, SnapshotDraft):
                snapshot = next_state.freeze(version)
            else:
                snapshot = SnapshotDraft.from_snapshot(next_state).freeze(version)
            self._current = snapshot
            observers = list(self._observers)

        logger.debug("Published snapshot version %d", version)
        for observer in observers:
            try:
                observer(snapshot)
            except Exception:
                logger.exception("Snapshot observer %r failed", observer)
        return snapshot

    def subscribe(self, observer: SnapshotObserver) -> Callable[[], None]:
        """Register an observer; returns a callable that unregisters it."""
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    @property
    def observer_count(self) -> int:
        return len(self._observers)
