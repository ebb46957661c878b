"""Bounded market cap history used by the sparkline and progress gauge."""
from __future__ import annotations

from collections import deque
from typing import Deque, List, Optional

from constants import MAX_HISTORY
from monitor.models import HistorySample


class HistoryBuffer:
    """Fixed-capacity FIFO of market cap samples, oldest first."""

    def __init__(self, capacity: int = MAX_HISTORY) -> None:
        if capacity <= 0:
            raise ValueError("History capacity must be positive")
        self._samples: Deque[HistorySample] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._samples.maxlen or 0

    def __len__(self) -> int:
        return len(self._samples)

    def push(self, sample: HistorySample) -> None:
        """Appends ``sample``, evicting the oldest one when the buffer is full."""
        if self._samples and sample.timestamp < self._samples[-1].timestamp:
            raise ValueError(
                f"Sample at {sample.timestamp.isoformat()} is older than the latest "
                f"sample at {self._samples[-1].timestamp.isoformat()}"
            )
        self._samples.append(sample)

    def snapshot(self) -> List[HistorySample]:
        return list(self._samples)

    def values(self) -> List[float]:
        return [sample.market_cap for sample in self._samples]

    def latest(self) -> Optional[HistorySample]:
        return self._samples[-1] if self._samples else None

    def low(self) -> Optional[float]:
        return min(self.values()) if self._samples else None

    def high(self) -> Optional[float]:
        return max(self.values()) if self._samples else None

    def change_pct(self) -> Optional[float]:
        """Percent change from the oldest retained sample to the latest one."""
        if len(self._samples) < 2:
            return None
        first = self._samples[0].market_cap
        if first == 0:
            return None
        return (self._samples[-1].market_cap - first) / first * 100.0

    def current_progress(self, target: float) -> float:
        """Latest market cap as a fraction of ``target``, clamped to [0, 1]."""
        latest = self.latest()
        if latest is None or target <= 0:
            return 0.0
        return max(0.0, min(latest.market_cap / target, 1.0))
