"""
Guild detection and membership extraction.

The log is written from the home guild's point of view: every combat line
tags the *other* side with ``from <Guild>``, while the home guild's own
players are never labelled. Home membership is therefore inferred from
"being the unlabelled side" of a combat line, and adversary membership from
the tagged side.
"""

import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

from nodewar_tools.exceptions import ParseAmbiguity
from nodewar_tools.log.line_classifier import GUILD_NAME, LineKind, classify_line

logger = logging.getLogger(__name__)

GUILD_TOKEN_PATTERN = re.compile(r'\bfrom\s+(' + GUILD_NAME + r')\s*$')
HOME_MEMBER_PATTERN = re.compile(r'\] (.+?) (?:has killed|died to) ', re.IGNORECASE)


def detect_guilds(log_text: str, home_guild: str) -> List[str]:
    """
    Collect the distinct guild names tagged with a trailing ``from <Guild>``.

    Names keep their order of first appearance. The home guild is always
    part of the result, appended at the end when the log never names it.
    """
    guilds = []
    seen = set()
    for line in log_text.splitlines():
        match = GUILD_TOKEN_PATTERN.search(line)
        if not match:
            continue
        name = match.group(1).strip()
        if name and name not in seen:
            seen.add(name)
            guilds.append(name)

    if home_guild not in seen:
        guilds.append(home_guild)
    return guilds


def extract_nicks_for_guild(guild: str, log_text: str, home_guild: str) -> List[str]:
    """
    Extract the nicknames belonging to one guild, in order of first appearance.

    Home guild: the first name of every ``has killed`` / ``died to`` line.
    Any other guild: only lines containing ``from <guild>``; the victim of a
    kill line and the killer of a death line, when the line's trailing guild
    token is exactly ``guild``.
    """
    nicks: Dict[str, None] = {}

    if guild == home_guild:
        for line in log_text.splitlines():
            match = HOME_MEMBER_PATTERN.search(line)
            if match:
                nick = match.group(1).strip()
                if nick:
                    nicks.setdefault(nick, None)
        return list(nicks)

    needle = f"from {guild}"
    for line in log_text.splitlines():
        if needle not in line:
            continue
        parsed = classify_line(line)
        if parsed.guild != guild:
            continue
        if parsed.kind is LineKind.KILL and parsed.victim:
            nicks.setdefault(parsed.victim, None)
        elif parsed.kind is LineKind.DEATH and parsed.killer:
            nicks.setdefault(parsed.killer, None)
    return list(nicks)


@dataclass(frozen=True)
class GuildMembershipMap:
    """
    Read-only ``guild -> nicknames`` map for one log.

    ``guild_of`` resolves a nickname by checking the tagged guilds in
    detection order and the home guild last, so an explicit ``from <Guild>``
    tag outranks the inferred home side. Nicknames found in more than one
    set are listed in ``ambiguities``.
    """
    home_guild: str
    guilds: Tuple[str, ...]
    members: Mapping[str, Tuple[str, ...]]
    ambiguities: Tuple[ParseAmbiguity, ...] = ()
    _sets: Mapping[str, FrozenSet[str]] = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, 'members', MappingProxyType(dict(self.members)))
        object.__setattr__(self, '_sets', MappingProxyType(
            {guild: frozenset(nicks) for guild, nicks in self.members.items()}))

    @property
    def lookup_order(self) -> Tuple[str, ...]:
        others = tuple(g for g in self.guilds if g != self.home_guild)
        return others + (self.home_guild,)

    def members_of(self, guild: str) -> Tuple[str, ...]:
        return self.members.get(guild, ())

    def contains(self, guild: str, nick: str) -> bool:
        return nick in self._sets.get(guild, frozenset())

    def guild_of(self, nick: str) -> Optional[str]:
        for guild in self.lookup_order:
            if nick in self._sets.get(guild, frozenset()):
                return guild
        return None

    def guilds_of(self, nick: str) -> List[str]:
        return [g for g in self.lookup_order if nick in self._sets.get(g, frozenset())]

    def all_nicks(self) -> List[str]:
        """Every nickname of every guild, deduplicated, in guild order."""
        nicks: Dict[str, None] = {}
        for guild in self.guilds:
            for nick in self.members_of(guild):
                nicks.setdefault(nick, None)
        return list(nicks)

    def has_guild(self, guild: str) -> bool:
        return guild in self._sets


def build_membership(log_text: str, home_guild: str) -> GuildMembershipMap:
    """Detect the guilds of a log and extract the membership set of each one."""
    guilds = detect_guilds(log_text, home_guild)
    members = {guild: tuple(extract_nicks_for_guild(guild, log_text, home_guild)) for guild in guilds}

    membership = GuildMembershipMap(home_guild=home_guild, guilds=tuple(guilds), members=members)

    ambiguities = []
    for nick in membership.all_nicks():
        owners = membership.guilds_of(nick)
        if len(owners) > 1:
            ambiguity = ParseAmbiguity(nickname=nick, guilds=owners, chosen_guild=owners[0])
            logger.warning(f"Ambiguous guild membership: {ambiguity}")
            ambiguities.append(ambiguity)

    if ambiguities:
        membership = GuildMembershipMap(home_guild=home_guild, guilds=tuple(guilds), members=members,
                                        ambiguities=tuple(ambiguities))

    logger.info(f"Detected {len(guilds)} guild(s): {', '.join(guilds)}")
    for guild in guilds:
        logger.debug(f"{guild}: {len(members[guild])} member(s)")
    return membership
