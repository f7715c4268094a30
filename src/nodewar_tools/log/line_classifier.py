"""
Line classifier for node war combat logs.

Every log line is classified as a kill line, a death line or anything else.
The classifier is pure: it never looks at guild membership, so each line
pattern can be tested on its own.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

# Guild names: any letters or digits, space, underscore and hyphen, up to end of line
GUILD_NAME = r'[\w \-]+?'

TIME_PREFIX_PATTERN = re.compile(r'^\s*\[(\d{1,2}):(\d{2}):(\d{2})\]')
KILL_LINE_PATTERN = re.compile(
    r'\]\s(?P<killer>.+?) has killed (?P<victim>.+?) from (?P<guild>' + GUILD_NAME + r')\s*$',
    re.IGNORECASE,
)
DEATH_LINE_PATTERN = re.compile(
    r'\]\s(?P<victim>.+?) died to (?P<killer>.+?) from (?P<guild>' + GUILD_NAME + r')\s*$',
    re.IGNORECASE,
)
TICK_PATTERN = re.compile(r'(?:Next war tick|Node Time|PID)\s*:\s*(\d+(?::\d{2}){0,2})', re.IGNORECASE)


class LineKind(str, Enum):
    KILL = "kill"
    DEATH = "death"
    OTHER = "other"


@dataclass(frozen=True)
class CombatLine:
    """
    A classified log line.

    For kill lines ``guild`` is the victim's tagged guild; for death lines
    it is the killer's tagged guild. ``time`` is seconds since midnight from
    the ``[HH:MM:SS]`` prefix, ``tick`` an explicit tick marker on the line.
    """
    kind: LineKind
    killer: str = ""
    victim: str = ""
    guild: str = ""
    time: Optional[int] = None
    tick: Optional[int] = None

    @property
    def is_combat(self) -> bool:
        return self.kind is not LineKind.OTHER


def parse_clock(line: str) -> Optional[int]:
    """Return the leading ``[HH:MM:SS]`` of a line as seconds since midnight."""
    match = TIME_PREFIX_PATTERN.match(line)
    if not match:
        return None
    hours, minutes, seconds = (int(g) for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def parse_tick(line: str) -> Optional[int]:
    """
    Return the value of a ``Next war tick:``, ``Node Time:`` or ``PID:`` marker.

    Plain integers are returned as is; clock values (``M:SS`` or ``H:MM:SS``)
    are converted to seconds.
    """
    match = TICK_PATTERN.search(line)
    if not match:
        return None
    value = 0
    for part in match.group(1).split(':'):
        value = value * 60 + int(part)
    return value


def classify_line(line: str) -> CombatLine:
    """Classify a single log line. The kill pattern is tried before the death pattern."""
    line = line.rstrip('\r\n')
    time = parse_clock(line)
    tick = parse_tick(line)

    match = KILL_LINE_PATTERN.search(line)
    if match:
        return CombatLine(LineKind.KILL, killer=match.group('killer').strip(),
                          victim=match.group('victim').strip(), guild=match.group('guild').strip(),
                          time=time, tick=tick)

    match = DEATH_LINE_PATTERN.search(line)
    if match:
        return CombatLine(LineKind.DEATH, killer=match.group('killer').strip(),
                          victim=match.group('victim').strip(), guild=match.group('guild').strip(),
                          time=time, tick=tick)

    return CombatLine(LineKind.OTHER, time=time, tick=tick)
