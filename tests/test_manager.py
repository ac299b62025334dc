"""Tests for the release manager state machine."""

import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from pegasus.errors import (
    IncompleteArtifactError,
    NoPriorReleaseError,
    PointerSwapError,
    PruneError,
    UnknownReleaseError,
)
from pegasus.manager import DEFAULT_RETAIN, ReleaseManager
from pegasus.pointer import FilePointer, SymlinkPointer
from pegasus.store import ReleaseStore


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        current = self.now
        self.now += timedelta(seconds=1)
        return current


def make_build(tmp_path: Path, body: str = "hello") -> Path:
    build = tmp_path / "output"
    build.mkdir(exist_ok=True)
    (build / "index.html").write_text(f"<p>{body}</p>", encoding="utf-8")
    return build


def make_manager(tmp_path: Path, pointer_cls=SymlinkPointer) -> ReleaseManager:
    store = ReleaseStore(tmp_path / "releases", clock=FakeClock())
    return ReleaseManager(store, pointer_cls(tmp_path / "current"))


def publish_many(manager: ReleaseManager, tmp_path: Path, count: int) -> list[str]:
    return [manager.publish(make_build(tmp_path, str(i))).id for i in range(count)]


def test_publish_does_not_activate(tmp_path):
    manager = make_manager(tmp_path)
    release = manager.publish(make_build(tmp_path))
    assert release.id == "20240101120000"
    assert manager.current() is None
    assert not (tmp_path / "current").exists()
    assert [r.id for r in manager.list()] == [release.id]


def test_publish_rejects_incomplete_artifact(tmp_path):
    manager = make_manager(tmp_path)
    (tmp_path / "output").mkdir()
    with pytest.raises(IncompleteArtifactError):
        manager.publish(tmp_path / "output")
    assert list(manager.list()) == []


def test_publish_ids_are_distinct_and_ordered(tmp_path):
    store = ReleaseStore(tmp_path / "releases")  # real clock: same-second publishes
    manager = ReleaseManager(store, SymlinkPointer(tmp_path / "current"))
    ids = publish_many(manager, tmp_path, 5)
    assert len(set(ids)) == 5
    assert store.ids() == ids
    assert [r.id for r in manager.list()] == list(reversed(ids))


def test_list_is_restartable_and_fresh(tmp_path):
    manager = make_manager(tmp_path)
    first = manager.publish(make_build(tmp_path)).id
    listing = manager.list()
    assert [r.id for r in listing] == [first]
    second = manager.publish(make_build(tmp_path)).id
    assert [r.id for r in manager.list()] == [second, first]


def test_activate_and_current(tmp_path):
    manager = make_manager(tmp_path)
    a, b = publish_many(manager, tmp_path, 2)
    manager.activate(a)
    assert manager.current().id == a
    manager.activate(b)
    assert manager.current().id == b
    assert (tmp_path / "current" / "index.html").read_text(encoding="utf-8") == "<p>1</p>"


def test_activate_unknown_leaves_pointer(tmp_path):
    manager = make_manager(tmp_path)
    (a,) = publish_many(manager, tmp_path, 1)
    manager.activate(a)
    with pytest.raises(UnknownReleaseError) as excinfo:
        manager.activate("20990101000000")
    assert excinfo.value.release_id == "20990101000000"
    with pytest.raises(UnknownReleaseError):
        manager.activate("../etc")
    assert manager.current().id == a


def test_activate_live_release_is_noop(tmp_path, monkeypatch):
    manager = make_manager(tmp_path)
    (a,) = publish_many(manager, tmp_path, 1)
    manager.activate(a)

    def no_swap(release_id, target):
        raise AssertionError("pointer should not be swapped")

    monkeypatch.setattr(manager.pointer, "swap", no_swap)
    assert manager.activate(a).id == a
    assert manager.current().id == a


def test_activate_swap_failure_propagates(tmp_path, monkeypatch):
    manager = make_manager(tmp_path)
    a, b = publish_many(manager, tmp_path, 2)
    manager.activate(a)

    def failing_replace(src, dst):
        raise OSError("permission denied")

    monkeypatch.setattr("pegasus.pointer.os.replace", failing_replace)
    with pytest.raises(PointerSwapError):
        manager.activate(b)
    monkeypatch.undo()
    assert manager.current().id == a


def test_concurrent_readers_never_see_missing_pointer(tmp_path):
    manager = make_manager(tmp_path)
    a, b = publish_many(manager, tmp_path, 2)
    manager.activate(a)

    seen = set()
    stop = threading.Event()

    def reader():
        while True:
            seen.add(manager.pointer.read())
            index = tmp_path / "current" / "index.html"
            seen.add("content-ok" if index.exists() else "content-missing")
            if stop.is_set():
                break

    thread = threading.Thread(target=reader)
    thread.start()
    try:
        for i in range(200):
            manager.activate(b if i % 2 == 0 else a)
    finally:
        stop.set()
        thread.join()

    assert seen <= {a, b, "content-ok"}
    assert seen & {a, b}


def test_prune_keeps_newest(tmp_path):
    manager = make_manager(tmp_path)
    ids = publish_many(manager, tmp_path, 5)
    manager.activate(ids[-1])

    result = manager.prune(retain=3)
    assert result.deleted == [ids[1], ids[0]]
    assert result.count == 2
    assert result.kept == [ids[4], ids[3], ids[2]]
    assert [r.id for r in manager.list()] == [ids[4], ids[3], ids[2]]


def test_prune_default_retention(tmp_path):
    manager = make_manager(tmp_path)
    ids = publish_many(manager, tmp_path, DEFAULT_RETAIN + 2)
    result = manager.prune()
    assert DEFAULT_RETAIN == 7
    assert result.deleted == [ids[1], ids[0]]


def test_prune_never_deletes_live_release(tmp_path):
    manager = make_manager(tmp_path)
    ids = publish_many(manager, tmp_path, 4)
    manager.activate(ids[0])

    result = manager.prune(retain=1)
    assert result.deleted == [ids[2], ids[1]]
    assert [r.id for r in manager.list()] == [ids[3], ids[0]]
    assert manager.current().id == ids[0]


def test_prune_dry_run(tmp_path):
    manager = make_manager(tmp_path)
    ids = publish_many(manager, tmp_path, 3)
    result = manager.prune(retain=1, dry_run=True)
    assert result.dry_run
    assert result.deleted == [ids[1], ids[0]]
    assert result.kept == [ids[2]]
    assert len(list(manager.list())) == 3


def test_prune_rejects_retain_below_one(tmp_path):
    manager = make_manager(tmp_path)
    publish_many(manager, tmp_path, 2)
    with pytest.raises(ValueError):
        manager.prune(retain=0)
    assert len(list(manager.list())) == 2


def test_prune_collects_failures_and_continues(tmp_path, monkeypatch):
    manager = make_manager(tmp_path)
    ids = publish_many(manager, tmp_path, 4)
    real_delete = manager.store.delete

    def flaky_delete(release_id):
        if release_id == ids[1]:
            raise PermissionError("operation not permitted")
        real_delete(release_id)

    monkeypatch.setattr(manager.store, "delete", flaky_delete)
    with pytest.raises(PruneError) as excinfo:
        manager.prune(retain=1)

    assert list(excinfo.value.failures) == [ids[1]]
    assert isinstance(excinfo.value.failures[ids[1]], PermissionError)
    assert excinfo.value.deleted == [ids[2], ids[0]]
    assert [r.id for r in manager.list()] == [ids[3], ids[1]]


def test_prune_skips_release_activated_mid_prune(tmp_path):
    manager = make_manager(tmp_path)
    ids = publish_many(manager, tmp_path, 4)
    manager.activate(ids[3])
    real_delete = manager.store.delete

    def delete_then_activate(release_id):
        real_delete(release_id)
        # a concurrent operator activates an old release while prune runs
        manager.activate(ids[0])

    manager.store.delete = delete_then_activate
    result = manager.prune(retain=1)

    assert result.deleted == [ids[2], ids[1]]
    assert manager.current().id == ids[0]
    assert ids[0] in manager.store


def test_rollback_walks_backwards(tmp_path):
    manager = make_manager(tmp_path)
    a, b, c = publish_many(manager, tmp_path, 3)
    manager.activate(c)

    assert manager.rollback().id == b
    assert manager.current().id == b
    assert manager.rollback().id == a
    assert manager.current().id == a
    with pytest.raises(NoPriorReleaseError):
        manager.rollback()
    assert manager.current().id == a


def test_rollback_to_explicit_target(tmp_path):
    manager = make_manager(tmp_path)
    a, b, c = publish_many(manager, tmp_path, 3)
    manager.activate(a)
    assert manager.rollback(c).id == c
    with pytest.raises(UnknownReleaseError):
        manager.rollback("20990101000000")
    assert manager.current().id == c
    assert len(list(manager.list())) == 3


def test_rollback_without_live_release(tmp_path):
    manager = make_manager(tmp_path)
    publish_many(manager, tmp_path, 2)
    with pytest.raises(NoPriorReleaseError):
        manager.rollback()


def test_current_with_dangling_pointer(tmp_path):
    manager = make_manager(tmp_path)
    (a,) = publish_many(manager, tmp_path, 1)
    manager.activate(a)
    manager.store.delete(a)
    assert manager.current() is None


def test_end_to_end_scenario(tmp_path):
    manager = make_manager(tmp_path)
    a, b, c = publish_many(manager, tmp_path, 3)
    assert manager.current() is None

    manager.activate(c)
    assert manager.current().id == c

    assert manager.prune(retain=2).deleted == [a]
    assert [r.id for r in manager.list()] == [c, b]

    assert manager.rollback().id == b

    result = manager.prune(retain=2)
    assert result.count == 0
    assert [r.id for r in manager.list()] == [c, b]
    assert manager.current().id == b


def test_file_pointer_backend(tmp_path):
    manager = make_manager(tmp_path, pointer_cls=FilePointer)
    a, b = publish_many(manager, tmp_path, 2)
    manager.activate(b)
    assert manager.rollback().id == a
    assert (tmp_path / "current").read_text(encoding="utf-8").strip() == a
    assert manager.prune(retain=1).deleted == []


def test_activate_replaces_link_to_same_id_outside_store(tmp_path):
    manager = make_manager(tmp_path)
    (release_id,) = publish_many(manager, tmp_path, 1)
    assert release_id == "20240101120000"
    # absolute link left by an earlier deploy into a different directory
    stale = tmp_path / "old" / release_id
    stale.mkdir(parents=True)
    (stale / "index.html").write_text("stale", encoding="utf-8")
    (tmp_path / "current").symlink_to(stale, target_is_directory=True)

    assert manager.pointer.read() == release_id
    assert manager.current() is None

    manager.activate(release_id)
    assert (tmp_path / "current" / "index.html").read_text(encoding="utf-8") == "<p>0</p>"
    assert manager.current().path == manager.store.root / release_id
    assert (stale / "index.html").exists()
