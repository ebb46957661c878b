#!/usr/bin/env python3
import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

import aiohttp

from constants import DEXSCREENER_API_BASE_URL, DEXSCREENER_REQUEST_TIMEOUT
from exceptions import FetchError, MalformedResponseError, NetworkError, PairNotFoundError
from monitor.models import PairSnapshot

logger = logging.getLogger(__name__)


async def api_get(url: str, session: aiohttp.ClientSession, timeout: float = DEXSCREENER_REQUEST_TIMEOUT) -> Any:
    """Makes a single async GET request and returns the decoded JSON body."""
    try:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as response:
            if response.status == 404:
                raise PairNotFoundError(f"API returned status: {response.status}")
            response.raise_for_status()
            try:
                return await response.json(content_type=None)
            except ValueError as e:
                raise MalformedResponseError(f"JSON parse error: {e}") from e
    except asyncio.TimeoutError as e:
        raise NetworkError(f"HTTP request timed out after {timeout:g}s") from e
    except aiohttp.ClientResponseError as e:
        raise NetworkError(f"API returned status: {e.status}") from e
    except aiohttp.ClientError as e:
        raise NetworkError(f"HTTP request failed: {e}") from e


def _section(payload: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = payload.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedResponseError(f"'{key}' should be an object, got {type(value).__name__}")
    return value


def _number(section: Dict[str, Any], key: str, default: float = 0.0) -> float:
    value = section.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise MalformedResponseError(f"'{key}' should be numeric, got {type(value).__name__}")
    try:
        return float(value)
    except ValueError as e:
        raise MalformedResponseError(f"'{key}' is not a number: {value!r}") from e


def _price(value: Any) -> Decimal:
    if value is None:
        return Decimal(0)
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise MalformedResponseError(f"'priceUsd' is not a decimal: {value!r}") from e


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def parse_pair(pair: Any, fetched_at: datetime) -> PairSnapshot:
    """Converts one DexScreener pair object into a PairSnapshot."""
    if not isinstance(pair, dict):
        raise MalformedResponseError(f"pair should be an object, got {type(pair).__name__}")

    base_token = _section(pair, 'baseToken')
    volume = _section(pair, 'volume')
    price_change = _section(pair, 'priceChange')
    liquidity = _section(pair, 'liquidity')
    txns_h24 = _section(_section(pair, 'txns'), 'h24')

    fdv = _number(pair, 'fdv')
    # Some pairs only report FDV.
    market_cap = _number(pair, 'marketCap', default=fdv)

    return PairSnapshot(
        token_name=str(base_token.get('name') or 'Unknown'),
        token_symbol=str(base_token.get('symbol') or '???'),
        price_usd=_price(pair.get('priceUsd')),
        market_cap=market_cap,
        fdv=fdv,
        volume_h24=_number(volume, 'h24'),
        volume_h6=_number(volume, 'h6'),
        volume_h1=_number(volume, 'h1'),
        liquidity_usd=_number(liquidity, 'usd'),
        buys_h24=int(_number(txns_h24, 'buys')),
        sells_h24=int(_number(txns_h24, 'sells')),
        price_change_h1=_number(price_change, 'h1'),
        price_change_h6=_number(price_change, 'h6'),
        price_change_h24=_number(price_change, 'h24'),
        fetched_at=fetched_at,
        chain_id=_optional_str(pair.get('chainId')),
        dex_id=_optional_str(pair.get('dexId')),
        pair_address=_optional_str(pair.get('pairAddress')),
    )


def _first_pair(data: Any) -> Any:
    if not isinstance(data, dict):
        raise MalformedResponseError(f"response should be an object, got {type(data).__name__}")
    pairs = data.get('pairs')
    if pairs is not None and not isinstance(pairs, list):
        raise MalformedResponseError(f"'pairs' should be a list, got {type(pairs).__name__}")
    if pairs:
        return pairs[0]
    if data.get('pair'):
        return data['pair']
    raise PairNotFoundError("No pair data found in response")


class DexScreenerClient:
    """Fetches normalized pair snapshots from the DexScreener public API."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        request_timeout: float = DEXSCREENER_REQUEST_TIMEOUT,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.session = session
        self.request_timeout = request_timeout
        self._now = now

    async def fetch_pair_snapshot(self, address: str, chain: str) -> PairSnapshot:
        """
        Returns the current snapshot for ``address`` on ``chain``.

        The token endpoint is tried first since it accepts contract addresses;
        the pair endpoint is the fallback and its outcome is final. No retries
        are made here, the monitor loop simply tries again on its next tick.
        """
        token_url = f"{DEXSCREENER_API_BASE_URL}/tokens/{address}"
        try:
            return await self._fetch(token_url)
        except FetchError as e:
            logger.debug("Token endpoint failed for %s (%s), trying pair endpoint", address, e)

        pair_url = f"{DEXSCREENER_API_BASE_URL}/pairs/{chain}/{address}"
        return await self._fetch(pair_url)

    async def _fetch(self, url: str) -> PairSnapshot:
        data = await api_get(url, self.session, timeout=self.request_timeout)
        return parse_pair(_first_pair(data), self._now())

    async def __call__(self, address: str, chain: str) -> PairSnapshot:
        return await self.fetch_pair_snapshot(address, chain)

