"""
Monthly merge of processed logs into per-player records.

Players tagged with a tracked alliance sub-guild are folded as they are.
Players that only show up in the generic home-guild bucket are reclassified
through their family name; players that cannot be placed in a tracked
sub-guild are left out of the month.
"""

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from nodewar_tools.exceptions import NodeWarError
from nodewar_tools.identity.alliance_roster import normalize_family
from nodewar_tools.identity.resolver import DEFAULT_NOT_FOUND_MARKERS
from nodewar_tools.models import Identity, MonthlyRecord, PlayerCombatStat, ProcessedLog

logger = logging.getLogger(__name__)

PLACEHOLDER_FAMILY_PATTERNS = [
    re.compile(r'^Fam[ií]lia\s*\d+$', re.IGNORECASE),
    re.compile(r'^Family\s*\d+$', re.IGNORECASE),
]
UNKNOWN_CLASS = "Desconhecida"


def is_placeholder_family(familia: Optional[str]) -> bool:
    """True for a missing, not-found or generated ("Família3") family name."""
    name = (familia or "").strip()
    if not name:
        return True
    if any(pattern.match(name) for pattern in PLACEHOLDER_FAMILY_PATTERNS):
        return True
    lowered = name.lower()
    return any(marker.lower() in lowered for marker in DEFAULT_NOT_FOUND_MARKERS)


def resolve_nick_families(nicks: Iterable[str], lookup: Callable[[str], Identity],
                          concurrency: int = 6, budget_seconds: float = 12) -> Dict[str, str]:
    """
    Look up the family name of several nicknames within a time budget.

    Lookups run ``concurrency`` at a time. When the budget runs out the
    results gathered so far are returned; lookups still running are left to
    finish in the background and queued ones are cancelled.
    """
    unique = list(dict.fromkeys(n for n in nicks if n))
    if not unique:
        return {}

    started = time.monotonic()
    executor = ThreadPoolExecutor(max_workers=max(1, concurrency))
    futures = {executor.submit(lookup, nick): nick for nick in unique}
    done, pending = wait(futures, timeout=budget_seconds)
    executor.shutdown(wait=False, cancel_futures=True)

    families = {}
    for future in done:
        nick = futures[future]
        try:
            identity = future.result()
        except (NodeWarError, OSError, ValueError) as e:
            logger.warning(f"Family lookup for '{nick}' failed: {e}")
            continue
        if identity.found and not is_placeholder_family(identity.familia):
            families[nick] = identity.familia

    elapsed = time.monotonic() - started
    if pending:
        logger.warning(f"Family lookup budget of {budget_seconds}s exhausted: "
                       f"{len(pending)} of {len(unique)} lookup(s) unfinished")
    logger.info(f"Resolved {len(families)}/{len(unique)} family name(s) in {elapsed:.1f}s")
    return families


@dataclass
class MergeResult:
    month_year: str
    records: Dict[str, MonthlyRecord] = field(default_factory=dict)
    excluded: List[str] = field(default_factory=list)
    logs_folded: int = 0

    @property
    def players(self) -> int:
        return len(self.records)


class MonthlyMergeEngine:
    """Folds the processed logs of one month into monthly player records."""

    def __init__(self, home_guild: str, rival_guild: str, tracked_guilds: Iterable[str]) -> None:
        self.home_guild = home_guild
        self.rival_guild = rival_guild
        self.tracked_guilds = list(tracked_guilds)

    def family_for(self, nick: str, stat: PlayerCombatStat, nick_family_map: Dict[str, str]) -> Optional[str]:
        """The usable family name of a player, or None."""
        if not stat.placeholder_identity and not is_placeholder_family(stat.familia):
            return stat.familia
        family = nick_family_map.get(nick)
        if family and not is_placeholder_family(family):
            return family
        return None

    def target_guild(self, guild: str, nick: str, stat: PlayerCombatStat,
                     family_guild_map: Dict[str, str], nick_family_map: Dict[str, str]) -> Optional[str]:
        """The tracked sub-guild a player's stats for ``guild`` belong to, or None to exclude them."""
        if guild in self.tracked_guilds:
            return guild
        if guild != self.home_guild:
            return None
        family = self.family_for(nick, stat, nick_family_map)
        if not family:
            return None
        return family_guild_map.get(normalize_family(family))

    def nicks_needing_family(self, logs: Iterable[ProcessedLog], family_guild_map: Dict[str, str]) -> List[str]:
        """Home-bucket players whose recorded family cannot place them in a sub-guild."""
        nicks = {}
        for log in logs:
            for nick, stat in log.player_stats_by_guild.get(self.home_guild, {}).items():
                if stat.placeholder_identity or is_placeholder_family(stat.familia):
                    nicks.setdefault(nick, None)
                elif normalize_family(stat.familia) not in family_guild_map:
                    logger.debug(f"Family '{stat.familia}' of {nick} is not in the alliance roster")
        return list(nicks)

    def merge_month(self, month_year: str, logs: Iterable[ProcessedLog],
                    family_guild_map: Dict[str, str],
                    nick_family_map: Optional[Dict[str, str]] = None,
                    existing: Optional[Dict[str, MonthlyRecord]] = None) -> MergeResult:
        """
        Fold logs into monthly records.

        With ``existing`` records the merge is incremental: a log already
        listed in a player's ``logs_processed`` is not folded again for that
        player. Without them every record is rebuilt from scratch. Totals and
        KD ratios are recomputed from the per-class sums at the end, and the
        sub-guild of the most recent log wins.
        """
        nick_family_map = nick_family_map or {}
        result = MergeResult(month_year=month_year)
        records: Dict[str, MonthlyRecord] = dict(existing or {})
        excluded: Dict[str, None] = {}

        ordered = sorted(logs, key=lambda log: log.created_at or "")
        for index, log in enumerate(ordered):
            log_id = log.id or f"unsaved-{index}"
            folded_before = {nick for nick, record in records.items() if log_id in record.logs_processed}
            folded = False

            for guild, players in log.player_stats_by_guild.items():
                for nick, stat in players.items():
                    target = self.target_guild(guild, nick, stat, family_guild_map, nick_family_map)
                    if target is None:
                        if guild == self.home_guild:
                            excluded.setdefault(nick, None)
                        continue
                    if nick in folded_before:
                        continue

                    record = records.get(nick)
                    if record is None:
                        record = MonthlyRecord(month_year=month_year, player_nick=nick,
                                               player_familia="", guilda=target)
                        records[nick] = record

                    record.class_stat(stat.classe or UNKNOWN_CLASS).add(stat, log.created_at)
                    if log_id not in record.logs_processed:
                        record.logs_processed.append(log_id)

                    if not record.last_log_processed_at or (log.created_at or "") >= record.last_log_processed_at:
                        record.guilda = target
                        record.last_log_processed_at = log.created_at or record.last_log_processed_at
                    family = self.family_for(nick, stat, nick_family_map)
                    if family:
                        record.player_familia = family
                    folded = True

            if folded:
                result.logs_folded += 1

        for record in records.values():
            record.recompute_totals()

        result.records = records
        result.excluded = [nick for nick in excluded if nick not in records]
        logger.info(f"Merged {result.logs_folded} log(s) into {len(records)} player record(s) for {month_year}; "
                    f"excluded {len(result.excluded)} player(s)")
        return result
