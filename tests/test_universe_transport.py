import asyncio
import json

import pytest

from conftest import FakeChannel, make_planet, make_update
from snapshot_store import SnapshotStore
from universe_transport import ConnectionState, TransportManager

URL = "ws://test/ws"


def make_transport(scheduler, opener=None, store=None):
    async def never_opens(url):
        raise OSError("unreachable")

    return TransportManager(
        store or SnapshotStore(),
        URL,
        opener=opener or never_opens,
        scheduler=scheduler,
    )


def update_text(step=1):
    return json.dumps(make_update([make_planet("alpha")], step=step))


def test_initial_state_is_disconnected(scheduler):
    transport = make_transport(scheduler)
    assert transport.state is ConnectionState.DISCONNECTED
    assert transport.last_error is None
    assert transport.store.current() is None


def test_open_starts_heartbeat_every_thirty_seconds(scheduler):
    async def scenario():
        transport = make_transport(scheduler)
        channel = FakeChannel()
        transport.handle_open(channel)
        assert transport.state is ConnectionState.CONNECTED

        scheduler.advance(29.0)
        await asyncio.sleep(0)
        assert channel.sent == []

        scheduler.advance(1.0)
        await asyncio.sleep(0)
        assert channel.sent == ["ping"]

        scheduler.advance(30.0)
        await asyncio.sleep(0)
        assert channel.sent == ["ping", "ping"]

        scheduler.advance(90.0)
        await asyncio.sleep(0)
        assert channel.sent == ["ping"] * 5

    asyncio.run(scenario())


def test_close_cancels_heartbeat(scheduler):
    async def scenario():
        transport = make_transport(scheduler)
        channel = FakeChannel()
        transport.handle_open(channel)
        transport.handle_close(1000, "bye")
        scheduler.advance(120.0)
        await asyncio.sleep(0)
        assert channel.sent == []

    asyncio.run(scenario())


def test_normal_close_schedules_no_reconnect(scheduler):
    transport = make_transport(scheduler)
    transport.handle_open(FakeChannel())
    transport.handle_close(1000, "done")
    assert transport.state is ConnectionState.DISCONNECTED
    assert scheduler.pending() == []


@pytest.mark.parametrize("code", [1001, 1006, 1011, 4000])
def test_abnormal_close_schedules_exactly_one_reconnect(scheduler, code):
    transport = make_transport(scheduler)
    transport.handle_open(FakeChannel())
    scheduler.advance(5.0)
    transport.handle_close(code, "")
    reconnects = scheduler.pending()
    assert len(reconnects) == 1
    assert reconnects[0].when == pytest.approx(scheduler.now + 3.0)


def test_reconnect_happens_at_three_seconds_not_sooner(scheduler):
    async def scenario():
        transport = make_transport(scheduler)
        transport.handle_open(FakeChannel())
        transport.handle_close(1006, "")

        scheduler.advance(2.75)
        assert transport.reconnect_attempts == 0
        assert transport.state is ConnectionState.DISCONNECTED

        scheduler.advance(0.25)
        assert transport.reconnect_attempts == 1
        assert transport.state is ConnectionState.CONNECTING
        await transport.close()

    asyncio.run(scenario())


def test_error_sets_status_without_reconnecting(scheduler):
    transport = make_transport(scheduler)
    transport.handle_open(FakeChannel())
    transport.handle_error("Connection failed")
    assert transport.state is ConnectionState.ERROR
    assert transport.last_error == "Connection failed"
    # only the heartbeat is pending, no reconnect
    assert len(scheduler.pending()) == 1
    assert scheduler.pending()[0].when == pytest.approx(30.0)


def test_open_clears_previous_error(scheduler):
    transport = make_transport(scheduler)
    transport.handle_error("Connection failed")
    transport.handle_open(FakeChannel())
    assert transport.last_error is None
    assert transport.state is ConnectionState.CONNECTED


def test_universe_update_replaces_snapshot(scheduler):
    transport = make_transport(scheduler)
    transport.handle_message(update_text(step=1))
    transport.handle_message(update_text(step=2))
    assert transport.store.current().step == 2
    assert transport.store.version == 2


def test_binary_frames_are_decoded(scheduler):
    transport = make_transport(scheduler)
    transport.handle_message(update_text(step=9).encode("utf-8"))
    assert transport.store.current().step == 9


def test_pong_never_touches_snapshot(scheduler):
    transport = make_transport(scheduler)
    transport.handle_message(update_text(step=4))
    before = transport.store.current()
    transport.handle_message("pong")
    assert transport.store.current() is before
    assert transport.store.version == 1


def test_not_json_is_dropped(scheduler, caplog):
    transport = make_transport(scheduler)
    transport.handle_open(FakeChannel())
    transport.handle_message(update_text(step=3))
    before = transport.store.current()
    transport.handle_message("not-json")
    assert transport.store.current() is before
    assert transport.state is ConnectionState.CONNECTED
    assert "Failed to parse message" in caplog.text


@pytest.mark.parametrize("payload", [
    json.dumps({"type": "chat", "text": "hi"}),
    json.dumps([1, 2, 3]),
    json.dumps({"type": "universe_update", "step": 1}),
])
def test_other_or_malformed_documents_are_ignored(scheduler, payload):
    transport = make_transport(scheduler)
    transport.handle_message(payload)
    assert transport.store.current() is None


def test_send_raw_without_channel_returns_false(scheduler):
    transport = make_transport(scheduler)
    assert transport.send_raw("ping") is False


def test_state_listeners_see_transitions(scheduler):
    transport = make_transport(scheduler)
    seen = []
    transport.on_state_change(lambda state, error: seen.append((state, error)))
    transport.handle_open(FakeChannel())
    transport.handle_error("boom")
    transport.handle_close(1006)
    assert seen == [
        (ConnectionState.CONNECTED, None),
        (ConnectionState.ERROR, "boom"),
        (ConnectionState.DISCONNECTED, "boom"),
    ]


def test_failed_open_reports_error_then_schedules_reconnect(scheduler):
    async def scenario():
        transport = make_transport(scheduler)
        states = []
        transport.on_state_change(lambda state, error: states.append(state))
        transport.connect()
        await asyncio.sleep(0.01)
        assert states == [
            ConnectionState.CONNECTING,
            ConnectionState.ERROR,
            ConnectionState.DISCONNECTED,
        ]
        assert transport.last_error == "Connection failed"
        assert [h.when for h in scheduler.pending()] == [pytest.approx(3.0)]
        await transport.close()
        assert scheduler.pending() == []

    asyncio.run(scenario())


def test_reader_feeds_store_and_reconnects_after_server_drop(scheduler):
    async def scenario():
        channel = FakeChannel([update_text(step=7), "pong"])
        channel.close_code = 1006

        async def opener(url):
            assert url == URL
            return channel

        transport = make_transport(scheduler, opener=opener)
        transport.connect()
        await asyncio.sleep(0.01)
        assert transport.store.current().step == 7
        assert transport.state is ConnectionState.DISCONNECTED
        assert len(scheduler.pending()) == 1
        await transport.close()

    asyncio.run(scenario())


def test_session_close_tears_everything_down(scheduler):
    async def scenario():
        transport = make_transport(scheduler)
        channel = FakeChannel()
        transport.handle_open(channel)
        await transport.close("Component unmounting")

        assert channel.closed_with == (1000, "Component unmounting")
        assert scheduler.pending() == []
        assert transport.state is ConnectionState.DISCONNECTED
        assert transport.send_raw("ping") is False

        # a late close event from the dying channel must not schedule a reconnect
        transport.handle_close(1006, "late")
        assert scheduler.pending() == []

    asyncio.run(scenario())


def test_close_cancels_pending_reconnect(scheduler):
    async def scenario():
        transport = make_transport(scheduler)
        transport.handle_open(FakeChannel())
        transport.handle_close(1006)
        assert len(scheduler.pending()) == 1
        await transport.close()
        assert scheduler.pending() == []
        scheduler.advance(10.0)
        assert transport.reconnect_attempts == 0

    asyncio.run(scenario())


def test_invalid_url_is_an_error_without_reconnect(scheduler):
    async def scenario():
        transport = TransportManager(SnapshotStore(), "not a url", scheduler=scheduler)
        transport.connect()
        await asyncio.sleep(0.01)
        assert transport.state is ConnectionState.ERROR
        assert transport.last_error == "Failed to create connection"
        assert scheduler.pending() == []
        await transport.close()

    asyncio.run(scenario())


class BrokenCloseChannel(FakeChannel):
    async def close(self, code=1000, reason=""):
        self.closed_with = (code, reason)
        raise OSError("broken pipe")


def test_channel_opened_after_close_is_shut_quietly(scheduler):
    async def scenario():
        gate = asyncio.Event()
        channel = BrokenCloseChannel()
        readers = []

        async def opener(url):
            readers.append(asyncio.current_task())
            await gate.wait()
            return channel

        transport = make_transport(scheduler, opener=opener)
        transport.connect()
        await asyncio.sleep(0)
        closing = asyncio.ensure_future(transport.close())
        await asyncio.sleep(0)
        gate.set()
        await closing

        reader = readers[0]
        assert reader.done()
        assert reader.exception() is None
        assert channel.closed_with == (1000, "Session closed")
        assert transport.state is ConnectionState.DISCONNECTED
        assert scheduler.pending() == []

    asyncio.run(scenario())
