"""
Occupancy timeline for a node war log.

Each timestamped line becomes a timed event owned by a guild (combat lines)
or by nobody (everything else). After sorting by time, the gap between two
consecutive events is credited to the guild owning the earlier event.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from nodewar_tools.log.guild_detector import GuildMembershipMap
from nodewar_tools.log.line_classifier import CombatLine, LineKind, classify_line

logger = logging.getLogger(__name__)

TimedEvent = Tuple[int, Optional[str]]


@dataclass(frozen=True)
class OccupancyResult:
    total_window_seconds: int
    occupancy_by_guild: Dict[str, int] = field(default_factory=dict)
    events: List[TimedEvent] = field(default_factory=list)

    def seconds_for(self, guild: str) -> int:
        return self.occupancy_by_guild.get(guild, 0)


def owner_of(line: CombatLine, membership: GuildMembershipMap) -> Optional[str]:
    """
    The guild owning a combat line: the killer's membership guild, or on
    death lines the tagged guild token when the killer is not known.
    """
    if line.kind is LineKind.OTHER:
        return None
    owner = membership.guild_of(line.killer)
    if owner is None and line.kind is LineKind.DEATH and line.guild:
        owner = line.guild
    return owner


def occupancy_from_events(events: Iterable[TimedEvent], guilds: Iterable[str] = ()) -> OccupancyResult:
    """Compute the window length and per-guild occupancy from ``(t, owner)`` pairs."""
    ordered = sorted(events, key=lambda e: e[0])
    occupancy = {guild: 0 for guild in guilds}

    if len(ordered) < 2:
        return OccupancyResult(0, occupancy, ordered)

    total = max(0, ordered[-1][0] - ordered[0][0])
    for (t, owner), (next_t, _) in zip(ordered, ordered[1:]):
        dt = next_t - t
        if dt == 0 or owner is None:
            continue
        occupancy[owner] = occupancy.get(owner, 0) + dt

    return OccupancyResult(total, occupancy, ordered)


def compute_occupancy(log_text: str, membership: GuildMembershipMap) -> OccupancyResult:
    """Build the timed events of a log and compute its occupancy."""
    events = []
    for line in log_text.splitlines():
        parsed = classify_line(line)
        if parsed.time is None:
            continue
        events.append((parsed.time, owner_of(parsed, membership)))

    result = occupancy_from_events(events, membership.guilds)
    logger.info(f"Timeline: {len(events)} timed event(s), window of {result.total_window_seconds}s")
    return result
