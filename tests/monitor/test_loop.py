import asyncio
from datetime import timedelta

import pytest

from exceptions import FetchError, NetworkError
from monitor.alarm import AlarmStatus
from monitor.loop import KeyPressed, MonitorLoop, UiTick


class FakePlayer:
    def __init__(self):
        self.played = []
        self.stops = 0

    def play(self, path):
        self.played.append(path)

    def stop(self):
        self.stops += 1


class ScriptedScreen:
    """Records every frame and runs the next scripted action once its condition holds."""

    def __init__(self, script):
        self.views = []
        self.script = list(script)

    def draw(self, view):
        self.views.append(view)
        if self.script and self.script[0][0](view):
            _, action = self.script.pop(0)
            action()


def _press(keys, key):
    return lambda: keys.put_nowait(key)


def _settled(count):
    return lambda v: v.fetch_count == count and not v.fetch_in_flight


def _build(monitor_config, fetcher, script_factory, **kwargs):
    keys = asyncio.Queue()
    player = FakePlayer()
    screen = ScriptedScreen([])
    kwargs.setdefault("ui_tick", 3600.0)
    monitor = MonitorLoop(monitor_config, fetcher, player, screen, keys, **kwargs)
    screen.script = script_factory(keys, monitor)
    return monitor, player, screen


@pytest.mark.asyncio
async def test_failed_fetch_leaves_history_and_alarm_untouched(monitor_config, make_snapshot):
    results = [make_snapshot(50000.0), NetworkError("HTTP request failed: connection reset")]

    async def fetcher(pair, chain):
        result = results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    monitor, player, screen = _build(
        monitor_config,
        fetcher,
        lambda keys, _: [
            (_settled(1), _press(keys, 'r')),
            (lambda v: v.error_count == 1, _press(keys, 'q')),
        ],
    )

    state = await asyncio.wait_for(monitor.run(), timeout=5)

    assert len(state.history) == 1
    assert state.alarm.status is AlarmStatus.IDLE
    assert isinstance(state.last_error, NetworkError)
    error_frame = next(v for v in screen.views if v.error_count == 1)
    assert error_frame.last_error is state.last_error
    assert error_frame.snapshot is not None
    assert error_frame.snapshot.market_cap == 50000.0
    assert player.played == []


@pytest.mark.asyncio
async def test_success_clears_previous_error(monitor_config, make_snapshot):
    results = [NetworkError("timeout"), make_snapshot(60000.0)]

    async def fetcher(pair, chain):
        result = results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    monitor, _, _ = _build(
        monitor_config,
        fetcher,
        lambda keys, _: [
            (lambda v: v.error_count == 1 and not v.fetch_in_flight, _press(keys, 'r')),
            (_settled(1), _press(keys, 'q')),
        ],
    )

    state = await asyncio.wait_for(monitor.run(), timeout=5)

    assert state.last_error is None
    assert state.error_count == 1
    assert state.fetch_count == 1


@pytest.mark.asyncio
async def test_alarm_fires_once_and_silence_key_stops_it(monitor_config, make_snapshot):
    async def fetcher(pair, chain):
        return make_snapshot(150000.0)

    monitor, player, screen = _build(
        monitor_config,
        fetcher,
        lambda keys, _: [
            (_settled(1), _press(keys, 'r')),
            (_settled(2), _press(keys, 's')),
            (lambda v: v.alarm.status is AlarmStatus.SILENCED, _press(keys, 'q')),
        ],
    )

    state = await asyncio.wait_for(monitor.run(), timeout=5)

    assert player.played == [None]
    assert player.stops >= 1
    assert state.alarm.status is AlarmStatus.SILENCED
    assert any(v.alarm.status is AlarmStatus.TRIGGERED for v in screen.views)
    assert any("Alarm stopped manually" in line for line in state.log)


@pytest.mark.asyncio
async def test_quit_while_fetch_pending_discards_result(monitor_config, make_snapshot):
    gate = asyncio.Event()
    calls = {'started': 0, 'cancelled': False}

    async def fetcher(pair, chain):
        calls['started'] += 1
        try:
            await gate.wait()
        except asyncio.CancelledError:
            calls['cancelled'] = True
            raise
        return make_snapshot(150000.0)

    monitor, player, _ = _build(
        monitor_config,
        fetcher,
        lambda keys, _: [(lambda v: v.fetch_in_flight, _press(keys, 'q'))],
    )

    state = await asyncio.wait_for(monitor.run(), timeout=5)
    gate.set()
    await asyncio.sleep(0)

    assert calls['started'] == 1
    assert calls['cancelled'] is True
    assert state.snapshot is None
    assert len(state.history) == 0
    assert state.fetch_in_flight is False
    assert player.played == []
    assert player.stops == 1


@pytest.mark.asyncio
async def test_refresh_while_fetch_in_flight_is_ignored(monitor_config, make_snapshot):
    gate = asyncio.Event()
    calls = []

    async def fetcher(pair, chain):
        calls.append((pair, chain))
        await gate.wait()
        return make_snapshot(40000.0)

    monitor, _, _ = _build(
        monitor_config,
        fetcher,
        lambda keys, _: [
            (lambda v: v.fetch_in_flight, _press(keys, 'r')),
            (lambda v: any("skipped" in line for line in v.log), gate.set),
            (_settled(1), _press(keys, 'q')),
        ],
    )

    state = await asyncio.wait_for(monitor.run(), timeout=5)

    assert calls == [(monitor_config.pair, monitor_config.chain)]
    assert state.fetch_count == 1


@pytest.mark.asyncio
async def test_request_refresh_starts_new_fetch(monitor_config, make_snapshot):
    calls = []

    async def fetcher(pair, chain):
        calls.append(pair)
        return make_snapshot(40000.0 + 1000.0 * len(calls))

    monitor, _, _ = _build(
        monitor_config,
        fetcher,
        lambda keys, monitor: [
            (_settled(1), monitor.request_refresh),
            (_settled(2), _press(keys, 'Q')),
        ],
    )

    state = await asyncio.wait_for(monitor.run(), timeout=5)

    assert len(calls) == 2
    assert [s.market_cap for s in state.history.snapshot()] == [41000.0, 42000.0]
    assert any("Refresh requested" in line for line in state.log)


@pytest.mark.asyncio
async def test_request_shutdown_stops_loop(monitor_config, make_snapshot):
    async def fetcher(pair, chain):
        return make_snapshot()

    monitor, player, _ = _build(
        monitor_config,
        fetcher,
        lambda keys, monitor: [(_settled(1), monitor.request_shutdown)],
    )

    state = await asyncio.wait_for(monitor.run(), timeout=5)

    assert state.fetch_count == 1
    assert player.stops == 1


@pytest.mark.asyncio
async def test_fetch_timeout_is_reported_as_network_error(monitor_config):
    async def fetcher(pair, chain):
        await asyncio.sleep(60)

    config = monitor_config._replace(fetch_timeout=0.05)
    monitor, _, _ = _build(
        config,
        fetcher,
        lambda keys, _: [(lambda v: v.error_count == 1, _press(keys, 'escape'))],
    )

    state = await asyncio.wait_for(monitor.run(), timeout=5)

    assert isinstance(state.last_error, NetworkError)
    assert "timed out" in str(state.last_error)


@pytest.mark.asyncio
async def test_unexpected_fetch_exception_is_captured(monitor_config):
    async def fetcher(pair, chain):
        raise RuntimeError("boom")

    monitor, _, _ = _build(
        monitor_config,
        fetcher,
        lambda keys, _: [(lambda v: v.error_count == 1, _press(keys, 'q'))],
    )

    state = await asyncio.wait_for(monitor.run(), timeout=5)

    assert isinstance(state.last_error, FetchError)
    assert "boom" in str(state.last_error)


@pytest.mark.asyncio
async def test_dispatch_advances_tick_and_expires_alarm(monitor_config, make_snapshot):
    now = {'t': 1000.0}
    monitor, player, _ = _build(
        monitor_config,
        None,
        lambda keys, _: [],
        clock=lambda: now['t'],
    )
    monitor.alarm.on_sample(150000.0, monitor_config.target_market_cap, now['t'])

    monitor.dispatch(KeyPressed('x'))
    assert monitor.session.tick == 1
    assert monitor.session.alarm.status is AlarmStatus.TRIGGERED

    now['t'] += monitor_config.alarm_duration
    monitor.dispatch(UiTick())

    assert monitor.session.tick == 2
    assert monitor.session.alarm.status is AlarmStatus.SILENCED
    assert player.stops == 1
    assert any("Alarm expired" in line for line in monitor.session.log)


@pytest.mark.asyncio
async def test_wall_clock_step_back_keeps_session_running(monitor_config, make_snapshot):
    first = make_snapshot(41000.0)
    earlier = make_snapshot(42000.0, fetched_at=first.fetched_at - timedelta(seconds=2))
    results = [first, earlier]

    async def fetcher(pair, chain):
        return results.pop(0)

    monitor, _, _ = _build(
        monitor_config,
        fetcher,
        lambda keys, _: [
            (_settled(1), _press(keys, 'r')),
            (_settled(2), _press(keys, 'q')),
        ],
    )

    state = await asyncio.wait_for(monitor.run(), timeout=5)

    samples = state.history.snapshot()
    assert [s.market_cap for s in samples] == [41000.0, 42000.0]
    assert samples[1].timestamp >= samples[0].timestamp
    assert state.snapshot is earlier
    assert state.error_count == 0


@pytest.mark.asyncio
async def test_timer_fetches_repeatedly_on_interval(monitor_config, make_snapshot):
    calls = []

    async def fetcher(pair, chain):
        calls.append(pair)
        return make_snapshot(40000.0)

    config = monitor_config._replace(interval=0.05)
    monitor, _, _ = _build(
        config,
        fetcher,
        lambda keys, _: [(_settled(3), _press(keys, 'q'))],
    )

    state = await asyncio.wait_for(monitor.run(), timeout=5)

    assert len(calls) == 3
    assert state.fetch_count == 3
    assert not any("refresh" in line.lower() for line in state.log)


@pytest.mark.asyncio
async def test_manual_refresh_pushes_back_next_timer_fetch(monitor_config, make_snapshot):
    now = {'t': 0.0}
    mark = {}
    calls = []

    async def fetcher(pair, chain):
        calls.append(now['t'])
        return make_snapshot(40000.0)

    def refresh_at_60(keys):
        def action():
            now['t'] = 60.0
            keys.put_nowait('r')
        return action

    def second_fetch_settled(view):
        if _settled(2)(view):
            mark['tick'] = view.tick
            return True
        return False

    def jump_to(t):
        def action():
            now['t'] = t
        return action

    config = monitor_config._replace(interval=100.0)
    monitor, _, _ = _build(
        config,
        fetcher,
        lambda keys, _: [
            (_settled(1), refresh_at_60(keys)),
            (second_fetch_settled, jump_to(130.0)),
            (lambda v: v.tick >= mark['tick'] + 10, jump_to(161.0)),
            (_settled(3), _press(keys, 'q')),
        ],
        clock=lambda: now['t'],
        ui_tick=0.01,
    )

    await asyncio.wait_for(monitor.run(), timeout=5)

    # No timer fetch at t=130 even though the original deadline was t=100.
    assert calls == [0.0, 60.0, 161.0]
