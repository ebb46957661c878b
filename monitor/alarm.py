"""Edge-triggered alarm state machine.

The alarm fires once when the market cap first reaches the target. It keeps
sounding until the user silences it or ``alarm_duration`` elapses, and it only
re-arms after the market cap has fallen back below the target by more than
``rearm_margin``. Oscillation around the target therefore yields a single
alarm per crossing episode.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from constants import DEFAULT_REARM_MARGIN

logger = logging.getLogger(__name__)


class AlarmPlayback(Protocol):
    def play(self, path: Optional[str]) -> None: ...

    def stop(self) -> None: ...


class AlarmStatus(enum.Enum):
    IDLE = "idle"
    TRIGGERED = "triggered"
    SILENCED = "silenced"


@dataclass(frozen=True, slots=True)
class AlarmState:
    status: AlarmStatus = AlarmStatus.IDLE
    started_at: Optional[float] = None

    @property
    def is_sounding(self) -> bool:
        return self.status is AlarmStatus.TRIGGERED


IDLE = AlarmState()
SILENCED = AlarmState(AlarmStatus.SILENCED)


class AlarmStateMachine:
    """Owns the alarm state and drives the playback side effects on transitions."""

    def __init__(
        self,
        player: AlarmPlayback,
        alarm_duration: float,
        alarm_file: Optional[str] = None,
        rearm_margin: float = DEFAULT_REARM_MARGIN,
    ) -> None:
        self.player = player
        self.alarm_duration = alarm_duration
        self.alarm_file = alarm_file
        self.rearm_margin = rearm_margin
        self.state = IDLE

    def on_sample(self, market_cap: float, target: float, now: float) -> AlarmState:
        status = self.state.status
        if status is AlarmStatus.IDLE and market_cap >= target:
            logger.info("Target %.0f reached with market cap %.0f; alarm triggered", target, market_cap)
            self.state = AlarmState(AlarmStatus.TRIGGERED, started_at=now)
            self.player.play(self.alarm_file)
        elif status is AlarmStatus.SILENCED and market_cap < self.rearm_level(target):
            logger.info("Market cap %.0f fell below %.0f; alarm re-armed", market_cap, self.rearm_level(target))
            self.state = IDLE
        return self.state

    def on_user_silence(self, now: float) -> AlarmState:
        if self.state.status is AlarmStatus.TRIGGERED:
            logger.info("Alarm silenced by user after %.1fs", now - (self.state.started_at or now))
            self._silence()
        return self.state

    def on_tick(self, now: float) -> AlarmState:
        state = self.state
        if (
            state.status is AlarmStatus.TRIGGERED
            and state.started_at is not None
            and now - state.started_at >= self.alarm_duration
        ):
            logger.info("Alarm expired after %.0fs", self.alarm_duration)
            self._silence()
        return self.state

    def rearm_level(self, target: float) -> float:
        return target * (1.0 - self.rearm_margin)

    def _silence(self) -> None:
        self.state = SILENCED
        self.player.stop()
