"""
Link constants and configuration.
"""

import configparser

# Identity
DEFAULT_CALLSIGN = 'N0CALL-1'
DESTINATION_CALLSIGN = 'HAMRPG-0'   # Broadcast-style group address

# TNC defaults (KISS over TCP)
DEFAULT_TNC_HOST = '127.0.0.1'
DEFAULT_TNC_PORT = 8100
TNC_CONNECT_TIMEOUT = 5.0
DEFAULT_BUFFER_SIZE = 4096

# Client loop
DEFAULT_TICK_RATE = 20      # Simulation ticks per second

# Position broadcasts
POSITION_UPDATE_INTERVAL = 30   # Seconds between local position reports
POSITION_UPDATE_JITTER = 4      # +/- seconds, spreads transmissions on a shared channel

# Timeouts
EVICTION_TIMEOUT = 120.0    # Seconds of silence before a remote player is dropped

# Interpolation
MOVE_DURATION = 2.0         # Seconds to glide to a newly reported position
MOVE_THRESHOLD = 1.0        # Reports closer than this are treated as no movement

# Chat
CHAT_HISTORY_LIMIT = 100
WELCOME_MESSAGE = 'Welcome to Radio RPG!'

# Wire format
SENTINEL = '{'              # APRS "user-defined" data type indicator
SEPARATOR = '|'


def read_game_config(path: str) -> dict:
    """
    Read the [Game] section of an INI file.

    Returns only the keys that are present, so callers can layer the
    result over their own defaults. A missing or unparseable file yields
    an empty dict.
    """
    parser = configparser.ConfigParser()
    try:
        if not parser.read(path):
            return {}
    except configparser.Error as e:
        print(f"[CONFIG] Ignoring unreadable config {path}: {e}")
        return {}
    if not parser.has_section('Game'):
        return {}

    section = parser['Game']
    values = {}
    if 'callsign' in section:
        values['callsign'] = section.get('callsign').strip()
    if 'tnc_host' in section:
        values['tnc_host'] = section.get('tnc_host').strip()
    for key in ('tnc_port', 'position_update_time'):
        if key not in section:
            continue
        try:
            values[key] = section.getint(key)
        except ValueError:
            # Unparseable numbers fall back to the caller's default
            print(f"[CONFIG] Ignoring non-numeric {key}: {section.get(key)!r}")
    return values
