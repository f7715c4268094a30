"""
Node War Log Tools

Parsing of raw node war logs: line classification, guild detection,
kill/death extraction and occupancy timelines.
"""

from .event_extractor import CombatLedger, extract_events
from .guild_detector import GuildMembershipMap, build_membership, detect_guilds, extract_nicks_for_guild
from .line_classifier import CombatLine, LineKind, classify_line, parse_clock, parse_tick
from .timeline import OccupancyResult, compute_occupancy, occupancy_from_events

__all__ = [
    'CombatLedger',
    'CombatLine',
    'GuildMembershipMap',
    'LineKind',
    'OccupancyResult',
    'build_membership',
    'classify_line',
    'compute_occupancy',
    'detect_guilds',
    'extract_events',
    'extract_nicks_for_guild',
    'occupancy_from_events',
    'parse_clock',
    'parse_tick',
]
