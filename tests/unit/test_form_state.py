"""Tests for the form state store: snapshots, drafts, publish and observers."""

from __future__ import annotations

import threading

import pytest

from formflow.core.ir import RequiredError
from formflow.forms.state import FormSnapshot, FormStateStore, SnapshotDraft


class TestFormSnapshot:
    def test_defaults(self) -> None:
        snapshot = FormSnapshot()
        assert snapshot.version == 0
        assert snapshot.is_visible("anything")
        assert snapshot.is_enabled("anything")
        assert snapshot.errors_for("anything") == ()
        assert snapshot.value_of("anything") is None

    def test_is_immutable(self) -> None:
        snapshot = SnapshotDraft(values={"a": 1}).freeze(1)
        with pytest.raises(TypeError):
            snapshot.values["a"] = 2  # type: ignore[index]
        with pytest.raises(AttributeError):
            snapshot.version = 5  # type: ignore[misc]

    def test_same_state_ignores_version(self) -> None:
        draft = SnapshotDraft(values={"a": 1})
        assert draft.freeze(1).same_state(draft.freeze(2))

    def test_to_dict(self) -> None:
        draft = SnapshotDraft(values={"a": ""})
        draft.set_errors("a", [RequiredError(element_id="a", message="required")])
        draft.touch("a")
        data = draft.freeze(3).to_dict()
        assert data["version"] == 3
        assert data["touched"] == ["a"]
        assert data["errors"]["a"][0]["kind"] == "required"


class TestSnapshotDraft:
    def test_copy_does_not_alias(self) -> None:
        snapshot = SnapshotDraft(values={"a": 1}).freeze(1)
        draft = SnapshotDraft.from_snapshot(snapshot)
        draft.set_value("a", 2)
        assert snapshot.values["a"] == 1

    def test_empty_error_list_clears_key(self) -> None:
        draft = SnapshotDraft()
        draft.set_errors("a", [RequiredError(element_id="a", message="m")])
        assert "a" in draft.errors
        draft.set_errors("a", [])
        assert "a" not in draft.errors

    def test_differs_from(self) -> None:
        snapshot = SnapshotDraft(values={"a": 1}).freeze(4)
        draft = SnapshotDraft.from_snapshot(snapshot)
        assert not draft.differs_from(snapshot)
        draft.set_visibility("a", False)
        assert draft.differs_from(snapshot)


class TestFormStateStore:
    def test_publish_increments_version(self) -> None:
        store = FormStateStore()
        first = store.publish(SnapshotDraft(values={"a": 1}))
        second = store.publish(SnapshotDraft(values={"a": 2}))
        assert (first.version, second.version) == (1, 2)
        assert store.current() is second

    def test_publish_restamps_snapshot_version(self) -> None:
        store = FormStateStore()
        published = store.publish(FormSnapshot(version=99))
        assert published.version == 1

    def test_observers_receive_snapshots(self) -> None:
        store = FormStateStore()
        seen: list[int] = []
        unsubscribe = store.subscribe(lambda s: seen.append(s.version))
        store.publish(SnapshotDraft())
        unsubscribe()
        store.publish(SnapshotDraft())
        assert seen == [1]
        assert store.observer_count == 0

    def test_failing_observer_is_isolated(self, caplog: pytest.LogCaptureFixture) -> None:
        store = FormStateStore()
        seen: list[int] = []

        def broken(_: FormSnapshot) -> None:
            raise RuntimeError("boom")

        store.subscribe(broken)
        store.subscribe(lambda s: seen.append(s.version))
        snapshot = store.publish(SnapshotDraft())
        assert seen == [1]
        assert store.current() is snapshot
        assert "failed" in caplog.text

    def test_concurrent_publishes_get_distinct_versions(self) -> None:
        store = FormStateStore()
        versions: list[int] = []
        lock = threading.Lock()

        def worker() -> None:
            for _ in range(50):
                snapshot = store.publish(SnapshotDraft())
                with lock:
                    versions.append(snapshot.version)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(versions) == list(range(1, 201))
        assert store.version == 200
