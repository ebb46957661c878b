#!/usr/bin/env python3
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True, slots=True)
class PairSnapshot:
    """Normalized view of one DexScreener pair at the time it was fetched."""
    token_name: str
    token_symbol: str
    price_usd: Decimal
    market_cap: float
    fdv: float
    volume_h24: float
    volume_h6: float
    volume_h1: float
    liquidity_usd: float
    buys_h24: int
    sells_h24: int
    price_change_h1: float
    price_change_h6: float
    price_change_h24: float
    fetched_at: datetime
    chain_id: Optional[str] = None
    dex_id: Optional[str] = None
    pair_address: Optional[str] = None


@dataclass(frozen=True, slots=True)
class HistorySample:
    """A market cap observation used for the sparkline."""
    timestamp: datetime
    market_cap: float
