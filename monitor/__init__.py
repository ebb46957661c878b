"""Monitoring core: history buffer, alarm state machine and the event loop."""

from .alarm import AlarmState, AlarmStateMachine, AlarmStatus
from .history import HistoryBuffer
from .loop import MonitorLoop
from .models import HistorySample, PairSnapshot
from .session import SessionState

__all__ = [
    "AlarmState",
    "AlarmStateMachine",
    "AlarmStatus",
    "HistoryBuffer",
    "HistorySample",
    "MonitorLoop",
    "PairSnapshot",
    "SessionState",
]
