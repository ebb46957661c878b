#!/usr/bin/env python3
import os
import argparse
import logging
from pathlib import Path
from typing import NamedTuple, Optional

import constants
from exceptions import StartupError


class MonitorConfig(NamedTuple):
    """Typed configuration object."""
    pair: str
    chain: str
    target_market_cap: float
    interval: float
    alarm_file: Optional[str]
    alarm_duration: float
    fetch_timeout: float = constants.DEFAULT_FETCH_TIMEOUT_SECONDS
    rearm_margin: float = constants.DEFAULT_REARM_MARGIN
    history_size: int = constants.MAX_HISTORY
    log_file: str = constants.DEFAULT_LOG_FILE
    log_level: str = constants.DEFAULT_LOG_LEVEL


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='mooncap',
        description="Monitor a DEX pair's market cap and sound an alarm when it reaches a target.",
        epilog="Example: mooncap --pair 7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr --target 250000 --interval 60"
    )
    parser.add_argument('-p', '--pair', required=True, help='The DEX pair (or token) address to monitor.')
    parser.add_argument('-c', '--chain', default=constants.DEFAULT_CHAIN, help='Blockchain of the pair, e.g. solana, ethereum, bsc (default: solana).')
    parser.add_argument('-t', '--target', type=float, default=constants.DEFAULT_TARGET_MARKET_CAP, help='Target market cap in USD that triggers the alarm (default: 100000).')
    parser.add_argument('-i', '--interval', type=float, default=constants.DEFAULT_INTERVAL_SECONDS, help='Seconds between API checks (default: 180).')
    parser.add_argument('-a', '--alarm', help='Path to an alarm audio file (mp3/wav). Falls back to the terminal bell if not set.')
    parser.add_argument('--alarm-duration', type=float, default=constants.DEFAULT_ALARM_DURATION_SECONDS, help='Seconds the alarm sounds once the target is hit (default: 300).')
    parser.add_argument('--timeout', type=float, default=constants.DEFAULT_FETCH_TIMEOUT_SECONDS, help='Seconds before a fetch is abandoned (default: 15).')
    parser.add_argument('--rearm-margin', type=float, default=constants.DEFAULT_REARM_MARGIN, help='Fraction below target the market cap must fall before the alarm re-arms (default: 0.05).')
    parser.add_argument('--history-size', type=int, default=constants.MAX_HISTORY, help='Number of samples kept for the sparkline (default: 60).')
    parser.add_argument('--log-file', default=os.environ.get(constants.LOG_FILE_ENV_VAR, constants.DEFAULT_LOG_FILE), help='File that receives diagnostic logs (default: mooncap.log).')
    parser.add_argument('--log-level', default=os.environ.get(constants.LOG_LEVEL_ENV_VAR, constants.DEFAULT_LOG_LEVEL), help='Logging level (default: INFO).')
    return parser


def validate_config(config: MonitorConfig) -> MonitorConfig:
    """Checks a configuration and returns a normalised copy, raising StartupError when invalid."""
    pair = config.pair.strip()
    if not pair:
        raise StartupError("--pair must not be empty")
    chain = config.chain.strip().lower()
    if not chain:
        raise StartupError("--chain must not be empty")
    if not config.target_market_cap > 0:
        raise StartupError("--target must be a positive number")
    if not config.interval > 0:
        raise StartupError("--interval must be a positive number of seconds")
    if not config.alarm_duration > 0:
        raise StartupError("--alarm-duration must be a positive number of seconds")
    if not config.fetch_timeout > 0:
        raise StartupError("--timeout must be a positive number of seconds")
    if not 0 <= config.rearm_margin < 1:
        raise StartupError("--rearm-margin must be in the range [0, 1)")
    if config.history_size < 2:
        raise StartupError("--history-size must be at least 2")
    if not isinstance(logging.getLevelName(config.log_level.upper()), int):
        raise StartupError(f"unknown log level: {config.log_level}")
    if config.alarm_file and not Path(config.alarm_file).expanduser().is_file():
        raise StartupError(f"alarm file not found: {config.alarm_file}")

    return config._replace(
        pair=pair,
        chain=chain,
        alarm_file=str(Path(config.alarm_file).expanduser()) if config.alarm_file else None,
        log_level=config.log_level.upper(),
    )


def load_config(argv: Optional[list[str]] = None) -> MonitorConfig:
    """
    Parses command-line arguments and environment defaults into a validated configuration object.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    config = MonitorConfig(
        pair=args.pair,
        chain=args.chain,
        target_market_cap=args.target,
        interval=args.interval,
        alarm_file=args.alarm,
        alarm_duration=args.alarm_duration,
        fetch_timeout=args.timeout,
        rearm_margin=args.rearm_margin,
        history_size=args.history_size,
        log_file=args.log_file,
        log_level=args.log_level,
    )

    try:
        return validate_config(config)
    except StartupError as exc:
        parser.error(str(exc))
