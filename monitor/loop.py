"""The monitor loop: one dispatcher multiplexing timer, keyboard, refresh and fetch results.

Every source is turned into a discrete event value. ``MonitorLoop.run`` waits on
all of them at once, applies the first one to the session state and redraws.
The network fetch runs in its own task so key presses are handled while it is
pending; its completion comes back to the dispatcher as ``FetchCompleted``.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Protocol, Union

from config import MonitorConfig
from constants import KEY_QUIT, KEY_REFRESH, KEY_SILENCE, UI_TICK_SECONDS
from exceptions import FetchError, NetworkError
from monitor.alarm import AlarmPlayback, AlarmStateMachine, AlarmStatus
from monitor.history import HistoryBuffer
from monitor.models import PairSnapshot
from monitor.session import SessionState, SessionView

logger = logging.getLogger(__name__)

Fetcher = Callable[[str, str], Awaitable[PairSnapshot]]


class Screen(Protocol):
    def draw(self, view: SessionView) -> None: ...


@dataclass(frozen=True)
class TimerElapsed:
    pass


@dataclass(frozen=True)
class UiTick:
    pass


@dataclass(frozen=True)
class RefreshRequested:
    pass


@dataclass(frozen=True)
class ShutdownRequested:
    reason: str = "shutdown requested"


@dataclass(frozen=True)
class KeyPressed:
    key: str


@dataclass(frozen=True)
class FetchCompleted:
    result: Union[PairSnapshot, FetchError]


Event = Union[TimerElapsed, UiTick, RefreshRequested, ShutdownRequested, KeyPressed, FetchCompleted]


class MonitorLoop:
    """Drives one monitoring session until the user quits or shutdown is requested."""

    def __init__(
        self,
        config: MonitorConfig,
        fetcher: Fetcher,
        player: AlarmPlayback,
        screen: Screen,
        keys: "asyncio.Queue[str]",
        *,
        clock: Callable[[], float] = time.monotonic,
        ui_tick: float = UI_TICK_SECONDS,
    ) -> None:
        self.config = config
        self.fetcher = fetcher
        self.player = player
        self.screen = screen
        self.keys = keys
        self.clock = clock
        self.ui_tick = ui_tick
        self.alarm = AlarmStateMachine(
            player,
            alarm_duration=config.alarm_duration,
            alarm_file=config.alarm_file,
            rearm_margin=config.rearm_margin,
        )
        self.session = SessionState(
            target_market_cap=config.target_market_cap,
            started_at=clock(),
            history=HistoryBuffer(config.history_size),
        )
        self._running = False
        self._next_fetch_at = self.session.started_at
        self._fetch_task: Optional[asyncio.Task] = None
        self._key_waiter: Optional[asyncio.Task] = None
        self._refresh = asyncio.Event()
        self._refresh_waiter: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()
        self._stop_waiter: Optional[asyncio.Task] = None

    # public controls ----------------------------------------------------
    def request_refresh(self) -> None:
        """Asks for an immediate fetch; safe to call from any coroutine or signal handler."""
        self._refresh.set()

    def request_shutdown(self) -> None:
        self._stop.set()

    async def run(self) -> SessionState:
        self._running = True
        self.session.add_log(
            f"Monitoring {self.config.pair} on {self.config.chain}, "
            f"target ${self.config.target_market_cap:,.0f}, every {self.config.interval:g}s"
        )
        logger.info(
            "Starting monitor for %s on %s (target %.0f, interval %ss)",
            self.config.pair,
            self.config.chain,
            self.config.target_market_cap,
            self.config.interval,
        )
        try:
            self._start_fetch()
            self._redraw()
            while self._running:
                event = await self._next_event()
                self.dispatch(event)
                self._redraw()
        finally:
            await self._shutdown()
        return self.session

    # event source -------------------------------------------------------
    async def _next_event(self) -> Event:
        if self._key_waiter is None:
            self._key_waiter = asyncio.ensure_future(self.keys.get())
        if self._refresh_waiter is None:
            self._refresh_waiter = asyncio.ensure_future(self._refresh.wait())
        if self._stop_waiter is None:
            self._stop_waiter = asyncio.ensure_future(self._stop.wait())

        waiters = {self._stop_waiter, self._key_waiter, self._refresh_waiter}
        if self._fetch_task is not None:
            waiters.add(self._fetch_task)

        timeout = self.ui_tick
        fetch_due = False
        if self._fetch_task is None:
            until_fetch = self._next_fetch_at - self.clock()
            if until_fetch <= timeout:
                timeout = max(until_fetch, 0.0)
                fetch_due = True

        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)

        if self._stop_waiter in done:
            return ShutdownRequested()
        if self._key_waiter in done:
            key = self._key_waiter.result()
            self._key_waiter = None
            return KeyPressed(key)
        if self._refresh_waiter in done:
            self._refresh.clear()
            self._refresh_waiter = None
            return RefreshRequested()
        if self._fetch_task is not None and self._fetch_task in done:
            result = self._fetch_task.result()
            self._fetch_task = None
            return FetchCompleted(result)
        if fetch_due:
            return TimerElapsed()
        return UiTick()

    # dispatcher ---------------------------------------------------------
    def dispatch(self, event: Event) -> None:
        """Applies one event to the session. The only place session state changes."""
        now = self.clock()
        if isinstance(event, FetchCompleted):
            self._on_fetch_completed(event.result, now)
        elif isinstance(event, KeyPressed):
            self._on_key(event.key, now)
        elif isinstance(event, (TimerElapsed, RefreshRequested)):
            if isinstance(event, RefreshRequested):
                self.session.add_log("Refresh requested")
            self._start_fetch(forced=isinstance(event, RefreshRequested))
        elif isinstance(event, ShutdownRequested):
            logger.info("Shutdown requested: %s", event.reason)
            self._running = False

        if self.alarm.state.is_sounding and not self.alarm.on_tick(now).is_sounding:
            self.session.add_log("Alarm expired")
        self.session.alarm = self.alarm.state
        self.session.advance()

    def _on_fetch_completed(self, result: Union[PairSnapshot, FetchError], now: float) -> None:
        self.session.fetch_in_flight = False
        if isinstance(result, FetchError):
            logger.warning("Fetch failed (%s): %s", result.kind, result)
            self.session.apply_error(result)
            return

        logger.info("Fetched %s: market cap %.0f, price %s", result.token_symbol, result.market_cap, result.price_usd)
        self.session.apply_snapshot(result)
        previous = self.alarm.state.status
        state = self.alarm.on_sample(result.market_cap, self.config.target_market_cap, now)
        if previous is AlarmStatus.IDLE and state.status is AlarmStatus.TRIGGERED:
            self.session.add_log(f"TARGET HIT! Market cap reached ${result.market_cap:,.0f}")
        elif previous is AlarmStatus.SILENCED and state.status is AlarmStatus.IDLE:
            self.session.add_log("Alarm re-armed")

    def _on_key(self, key: str, now: float) -> None:
        key = key.lower()
        logger.debug("Key pressed: %r", key)
        if key in KEY_QUIT:
            self.session.add_log("Quitting")
            self._running = False
        elif key in KEY_REFRESH:
            self.session.add_log("Manual refresh triggered")
            self._start_fetch(forced=True)
        elif key in KEY_SILENCE:
            if self.alarm.state.status is AlarmStatus.TRIGGERED:
                self.alarm.on_user_silence(now)
                self.session.add_log("Alarm stopped manually")

    # fetching -----------------------------------------------------------
    def _start_fetch(self, forced: bool = False) -> None:
        if self._fetch_task is not None:
            if forced:
                logger.info("Refresh ignored, a fetch is already in flight")
                self.session.add_log("Refresh skipped, fetch already in progress")
            return
        self._next_fetch_at = self.clock() + self.config.interval
        self.session.fetch_in_flight = True
        self._fetch_task = asyncio.ensure_future(self._fetch())

    async def _fetch(self) -> Union[PairSnapshot, FetchError]:
        try:
            return await asyncio.wait_for(
                self.fetcher(self.config.pair, self.config.chain),
                timeout=self.config.fetch_timeout,
            )
        except FetchError as exc:
            return exc
        except asyncio.TimeoutError:
            return NetworkError(f"Fetch timed out after {self.config.fetch_timeout:g}s")
        except Exception as exc:
            logger.exception("Unexpected error while fetching %s", self.config.pair)
            return FetchError(f"Unexpected error: {exc}")

    # lifecycle ----------------------------------------------------------
    def _redraw(self) -> None:
        self.screen.draw(self.session.view())

    async def _shutdown(self) -> None:
        self._running = False
        pending = [t for t in (self._fetch_task, self._key_waiter, self._refresh_waiter, self._stop_waiter) if t is not None]
        self._fetch_task = self._key_waiter = self._refresh_waiter = self._stop_waiter = None
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self.session.fetch_in_flight = False
        self.player.stop()
        logger.info(
            "Monitor stopped after %d fetches and %d errors",
            self.session.fetch_count,
            self.session.error_count,
        )
