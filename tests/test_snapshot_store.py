from conftest import make_planet, make_update
from snapshot_store import SnapshotStore
from universe_model import parse_snapshot


def snapshot(step):
    return parse_snapshot(make_update([make_planet("alpha")], step=step))


def test_empty_store_has_no_snapshot():
    store = SnapshotStore()
    assert store.current() is None
    assert store.version == 0


def test_replace_is_last_write_wins():
    store = SnapshotStore()
    first, second = snapshot(1), snapshot(2)
    store.replace(first)
    store.replace(second)
    assert store.current() is second
    assert store.version == 2


def test_listeners_run_in_order_and_survive_failures():
    store = SnapshotStore()
    calls = []

    def broken(s):
        raise RuntimeError("listener bug")

    store.subscribe(lambda s: calls.append(("a", s.step)))
    store.subscribe(broken)
    store.subscribe(lambda s: calls.append(("b", s.step)))
    store.replace(snapshot(5))
    assert calls == [("a", 5), ("b", 5)]
    assert store.current().step == 5


def test_unsubscribe_stops_notifications():
    store = SnapshotStore()
    calls = []
    unsubscribe = store.subscribe(lambda s: calls.append(s.step))
    store.replace(snapshot(1))
    unsubscribe()
    unsubscribe()
    store.replace(snapshot(2))
    assert calls == [1]
