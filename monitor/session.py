"""Session state owned by the monitor loop and read by the dashboard."""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Deque, Optional, Tuple

from constants import MAX_HISTORY, MAX_LOG
from exceptions import FetchError
from monitor.alarm import IDLE, AlarmState
from monitor.history import HistoryBuffer
from monitor.models import HistorySample, PairSnapshot


def _clock_label(moment: Optional[datetime] = None) -> str:
    moment = moment or datetime.now().astimezone()
    return moment.astimezone().strftime("%H:%M:%S")


@dataclass(frozen=True, slots=True)
class SessionView:
    """Read-only copy of the session handed to the renderer for one frame."""
    snapshot: Optional[PairSnapshot]
    history: Tuple[HistorySample, ...]
    progress: float
    history_low: Optional[float]
    history_high: Optional[float]
    history_change_pct: Optional[float]
    alarm: AlarmState
    last_error: Optional[FetchError]
    tick: int
    started_at: float
    fetch_count: int
    error_count: int
    fetch_in_flight: bool
    log: Tuple[str, ...]


@dataclass
class SessionState:
    """Mutable aggregate of everything the dashboard shows."""
    target_market_cap: float
    started_at: float
    history: HistoryBuffer = field(default_factory=lambda: HistoryBuffer(MAX_HISTORY))
    snapshot: Optional[PairSnapshot] = None
    alarm: AlarmState = IDLE
    last_error: Optional[FetchError] = None
    tick: int = 0
    fetch_count: int = 0
    error_count: int = 0
    fetch_in_flight: bool = False
    log: Deque[str] = field(default_factory=lambda: deque(maxlen=MAX_LOG))

    def apply_snapshot(self, snapshot: PairSnapshot) -> None:
        stamp = snapshot.fetched_at
        latest = self.history.latest()
        if latest is not None and stamp < latest.timestamp:
            # Wall clock stepped back; keep history timestamps non-decreasing.
            stamp = latest.timestamp
        self.history.push(HistorySample(stamp, snapshot.market_cap))
        self.snapshot = snapshot
        self.last_error = None
        self.fetch_count += 1
        self.add_log(
            f"MCap: ${snapshot.market_cap:,.0f} | Price: ${snapshot.price_usd:.8f} | "
            f"1h: {snapshot.price_change_h1:+.2f}%",
            moment=snapshot.fetched_at,
        )

    def apply_error(self, error: FetchError) -> None:
        self.last_error = error
        self.error_count += 1
        self.add_log(f"Error ({error.kind}): {error}")

    def add_log(self, message: str, moment: Optional[datetime] = None) -> None:
        self.log.append(f"[{_clock_label(moment)}] {message}")

    def advance(self) -> None:
        self.tick += 1

    def view(self) -> SessionView:
        return SessionView(
            snapshot=self.snapshot,
            history=tuple(self.history.snapshot()),
            progress=self.history.current_progress(self.target_market_cap),
            history_low=self.history.low(),
            history_high=self.history.high(),
            history_change_pct=self.history.change_pct(),
            alarm=self.alarm,
            last_error=self.last_error,
            tick=self.tick,
            started_at=self.started_at,
            fetch_count=self.fetch_count,
            error_count=self.error_count,
            fetch_in_flight=self.fetch_in_flight,
            log=tuple(self.log),
        )
