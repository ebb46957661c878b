"""Shared test fixtures for the market cap monitor."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from config import MonitorConfig
from monitor.models import PairSnapshot

T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def monitor_config() -> MonitorConfig:
    """Return a config whose timers never fire on their own during a test."""
    return MonitorConfig(
        pair='7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr',
        chain='solana',
        target_market_cap=100000.0,
        interval=3600.0,
        alarm_file=None,
        alarm_duration=300.0,
        fetch_timeout=5.0,
    )


@pytest.fixture
def make_snapshot():
    """Return a factory building snapshots with increasing fetch times."""
    counter = {'n': 0}

    def _make(market_cap: float = 50000.0, **overrides) -> PairSnapshot:
        counter['n'] += 1
        payload = dict(
            token_name='Moon Token',
            token_symbol='MOON',
            price_usd=Decimal('0.0000512'),
            market_cap=market_cap,
            fdv=market_cap * 1.2,
            volume_h24=25000.0,
            volume_h6=8000.0,
            volume_h1=1500.0,
            liquidity_usd=18000.0,
            buys_h24=420,
            sells_h24=380,
            price_change_h1=2.5,
            price_change_h6=-1.25,
            price_change_h24=12.0,
            fetched_at=T0 + timedelta(minutes=counter['n']),
        )
        payload.update(overrides)
        return PairSnapshot(**payload)

    return _make
