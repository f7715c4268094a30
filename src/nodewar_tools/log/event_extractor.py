"""
Single-pass kill/death extraction over a classified log.

The extractor reads a finished :class:`GuildMembershipMap` and never
changes it. Each combat line is reduced into a :class:`CombatLedger`.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from nodewar_tools.log.guild_detector import GuildMembershipMap
from nodewar_tools.log.line_classifier import CombatLine, LineKind, classify_line
from nodewar_tools.models import PlayerCombatStat, TimelineEvent, kd_ratio

logger = logging.getLogger(__name__)


@dataclass
class CombatLedger:
    """Per-player counters and per-guild matrices accumulated from one log."""
    rival_guild: str
    stats: Dict[str, Dict[str, PlayerCombatStat]] = field(default_factory=dict)
    kills_by_guild: Dict[str, int] = field(default_factory=dict)
    deaths_by_guild: Dict[str, int] = field(default_factory=dict)
    kills_matrix: Dict[str, Dict[str, int]] = field(default_factory=dict)
    combat_lines: int = 0
    skipped_lines: List[str] = field(default_factory=list)

    @classmethod
    def for_membership(cls, membership: GuildMembershipMap, rival_guild: str) -> "CombatLedger":
        ledger = cls(rival_guild=rival_guild)
        for guild in membership.guilds:
            ledger.stats[guild] = {nick: PlayerCombatStat(nick=nick, guild=guild)
                                   for nick in membership.members_of(guild)}
            ledger.kills_by_guild[guild] = 0
            ledger.deaths_by_guild[guild] = 0
            ledger.kills_matrix[guild] = {other: 0 for other in membership.guilds if other != guild}
        return ledger

    def stat(self, guild: str, nick: str) -> Optional[PlayerCombatStat]:
        return self.stats.get(guild, {}).get(nick)

    def is_rival(self, guild: str) -> bool:
        return guild.lower() == self.rival_guild.lower()

    def kd_ratio_by_guild(self) -> Dict[str, float]:
        return {guild: kd_ratio(self.kills_by_guild.get(guild, 0), self.deaths_by_guild.get(guild, 0))
                for guild in self.kills_by_guild}

    def record(self, killer: str, killer_guild: str, victim: str, victim_guild: str,
               time: Optional[int], tick: Optional[int]) -> None:
        """Apply one resolved kill to both participants, the guild totals and the matrix."""
        self.kills_by_guild[killer_guild] = self.kills_by_guild.get(killer_guild, 0) + 1
        self.deaths_by_guild[victim_guild] = self.deaths_by_guild.get(victim_guild, 0) + 1
        row = self.kills_matrix.setdefault(killer_guild, {})
        row[victim_guild] = row.get(victim_guild, 0) + 1

        killer_stat = self.stat(killer_guild, killer)
        if killer_stat is not None:
            killer_stat.record_kill(
                self.is_rival(victim_guild),
                TimelineEvent(type="kill", opponent_nick=victim, opponent_guild=victim_guild, time=time, tick=tick),
            )

        victim_stat = self.stat(victim_guild, victim)
        if victim_stat is not None:
            victim_stat.record_death(
                self.is_rival(killer_guild),
                TimelineEvent(type="death", opponent_nick=killer, opponent_guild=killer_guild, time=time, tick=tick),
            )


def resolve_participants(line: CombatLine, membership: GuildMembershipMap):
    """
    Return ``(killer_guild, victim_guild)`` for a combat line.

    The tagged guild token is authoritative for the tagged side: the victim
    on kill lines, the killer on death lines. The untagged side is resolved
    through the membership map.
    """
    tagged = line.guild if membership.has_guild(line.guild) else None
    if line.kind is LineKind.KILL:
        return membership.guild_of(line.killer), tagged or membership.guild_of(line.victim)
    return tagged or membership.guild_of(line.killer), membership.guild_of(line.victim)


def extract_events(log_text: str, membership: GuildMembershipMap, rival_guild: str) -> CombatLedger:
    """
    Walk the log once and accumulate kills and deaths.

    Lines that are not combat lines are ignored except for tick markers,
    whose latest value is carried onto following events without their own.
    Combat lines whose killer or victim guild cannot be resolved are
    skipped and kept in ``skipped_lines``.
    """
    ledger = CombatLedger.for_membership(membership, rival_guild)
    last_tick = None

    for line_num, line in enumerate(log_text.splitlines(), 1):
        parsed = classify_line(line)
        if parsed.tick is not None:
            last_tick = parsed.tick
        if not parsed.is_combat:
            continue

        ledger.combat_lines += 1
        killer_guild, victim_guild = resolve_participants(parsed, membership)
        if not killer_guild or not victim_guild:
            logger.debug(f"Unresolved guild on line {line_num}: {line.strip()}")
            ledger.skipped_lines.append(line.strip())
            continue

        tick = parsed.tick if parsed.tick is not None else last_tick
        ledger.record(parsed.killer, killer_guild, parsed.victim, victim_guild, parsed.time, tick)

    logger.info(f"Processed {ledger.combat_lines} combat line(s), skipped {len(ledger.skipped_lines)}")
    return ledger
