#!/usr/bin/env python3
from typing import Dict

# --- ANSI Color Codes ---
C_GREEN = '\033[92m'
C_RED = '\033[91m'
C_RESET = '\033[0m'

# --- API Configuration ---
DEXSCREENER_API_BASE_URL = 'https://api.dexscreener.com/latest/dex'
DEXSCREENER_REQUEST_TIMEOUT = 10
HTTP_USER_AGENT = 'MoonCap/1.0'

# --- Environment Variable Names ---
LOG_FILE_ENV_VAR = 'MOONCAP_LOG_FILE'
LOG_LEVEL_ENV_VAR = 'LOG_LEVEL'

# --- CLI Defaults ---
DEFAULT_CHAIN = 'solana'
DEFAULT_TARGET_MARKET_CAP = 100000.0
DEFAULT_INTERVAL_SECONDS = 180.0
DEFAULT_ALARM_DURATION_SECONDS = 300.0
DEFAULT_FETCH_TIMEOUT_SECONDS = 15.0
DEFAULT_REARM_MARGIN = 0.05
DEFAULT_LOG_FILE = 'mooncap.log'
DEFAULT_LOG_LEVEL = 'INFO'

# --- Session Limits ---
MAX_HISTORY = 60
MAX_LOG = 100

# --- Loop Timing ---
UI_TICK_SECONDS = 1.0

# --- Alarm Playback ---
BELL_INTERVAL_SECONDS = 2.0
# Tried in order; first one on PATH wins.
AUDIO_PLAYERS: Dict[str, list[str]] = {
    'afplay': [],
    'paplay': [],
    'aplay': ['-q'],
    'ffplay': ['-nodisp', '-autoexit', '-loglevel', 'quiet'],
}

# --- Key Bindings ---
KEY_QUIT = {'q', 'escape'}
KEY_REFRESH = {'r'}
KEY_SILENCE = {'s'}
