#!/usr/bin/env python3
"""
Node War Tools - Monthly KDA

Aggregates the processed logs of a calendar month into per-player monthly
records for the tracked alliance sub-guilds.
"""

import argparse
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from nodewar_tools.base import JSONTool, NodeWarTool
from nodewar_tools.exceptions import ExternalSourceUnavailable, NodeWarError
from nodewar_tools.identity.alliance_roster import DEFAULT_TRACKED_GUILDS, AllianceRoster
from nodewar_tools.identity.resolver import IdentityResolver
from nodewar_tools.models import Identity, MonthlyRecord, ProcessedLog
from nodewar_tools.pipeline.log_processor import DEFAULT_HOME_GUILD, DEFAULT_RIVAL_GUILD
from nodewar_tools.pipeline.monthly_merge import MergeResult, MonthlyMergeEngine, resolve_nick_families
from nodewar_tools.storage.json_store import LogStore, MonthlyStore

logger = logging.getLogger(__name__)


class MonthlyKDATool(JSONTool):
    """
    Builds and stores the monthly KDA records of one month.

    Collaborators (stores, alliance roster, identity lookup) are created from
    the configuration unless they are passed in.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 log_store: Optional[LogStore] = None,
                 monthly_store: Optional[MonthlyStore] = None,
                 roster: Optional[AllianceRoster] = None,
                 lookup: Optional[Callable[[str], Identity]] = None) -> None:
        super().__init__(config)
        self.log_store = log_store or LogStore(config)
        self.monthly_store = monthly_store or MonthlyStore(config)
        self.roster = roster
        self._lookup = lookup

        self.engine = MonthlyMergeEngine(
            home_guild=self.get_config('nodewar.home_guild', DEFAULT_HOME_GUILD),
            rival_guild=self.get_config('nodewar.rival_guild', DEFAULT_RIVAL_GUILD),
            tracked_guilds=self.get_config('nodewar.tracked_guilds', DEFAULT_TRACKED_GUILDS),
        )
        self.family_concurrency = self.get_config('monthly.family_concurrency', 6)
        self.family_budget_seconds = self.get_config('monthly.family_budget_seconds', 12)

    def family_guild_map(self):
        """
        Refresh the alliance roster.

        Returns:
            Tuple of (family -> sub-guild map, degraded flag). An unreachable
            roster yields an empty map and ``degraded=True``.
        """
        if self.roster is None:
            self.roster = AllianceRoster(self.config)
        try:
            self.roster.refresh()
        except ExternalSourceUnavailable as e:
            logger.warning(f"Alliance roster unavailable, no reclassification possible: {e}")
            return {}, True
        return self.roster.family_guild_map(), False

    def nick_family_map(self, logs: List[ProcessedLog], family_map: Dict[str, str]) -> Dict[str, str]:
        """Look up the family of home-bucket players whose stored family is unusable."""
        nicks = self.engine.nicks_needing_family(logs, family_map)
        if not nicks:
            return {}
        if self._lookup is None:
            from nodewar_tools.identity.adventure_client import AdventureLookupClient
            self._lookup = AdventureLookupClient(self.config).lookup
        resolver = IdentityResolver.from_config(self._lookup, self.config)
        logger.info(f"Looking up the family of {len(nicks)} player(s)")
        return resolve_nick_families(nicks, resolver.resolve, self.family_concurrency, self.family_budget_seconds)

    def merge(self, month_year: str, logs: List[ProcessedLog], incremental: bool):
        family_map, degraded = self.family_guild_map()
        nick_families = self.nick_family_map(logs, family_map)
        existing = None
        if incremental:
            existing = {record.player_nick: record for record in self.monthly_store.list_month(month_year)}
        return self.engine.merge_month(month_year, logs, family_map, nick_families, existing), degraded

    def summarize(self, month_year: str, include_siege: bool = True) -> List[MonthlyRecord]:
        """Compute the records of a month from scratch without storing anything. Most kills first."""
        logs = self.log_store.get_logs_by_month(month_year, include_siege)
        if not logs:
            return []
        result, _ = self.merge(month_year, logs, incremental=False)
        return sorted(result.records.values(), key=lambda r: (-r.total_kills, r.player_nick.lower()))

    def run(self, month_year: Optional[str] = None, force_reprocess: bool = False,
            clean_inactive: bool = False, include_siege: bool = True) -> Dict[str, Any]:
        """
        Merge a month's logs and store the records.

        Args:
            month_year: Month as "YYYY-MM" (default: the current month)
            force_reprocess: Rebuild every record from scratch instead of
                folding only logs not yet processed
            clean_inactive: With force_reprocess, delete stored records of
                players not found in the month's logs any more
            include_siege: Include siege logs

        Returns:
            Summary dictionary with a ``success`` flag and counts.
        """
        month_year = month_year or datetime.now(timezone.utc).strftime("%Y-%m")
        summary = {
            "success": False,
            "month_year": month_year,
            "total_logs_processed": 0,
            "total_players_processed": 0,
            "records_updated": 0,
            "removed_inactive_players": [],
            "degraded": False,
        }

        try:
            logs = self.log_store.get_logs_by_month(month_year, include_siege)
        except (NodeWarError, ValueError) as e:
            logger.error(f"Could not load logs for {month_year}: {e}")
            summary["error"] = str(e)
            return summary

        if not logs:
            summary["message"] = f"No logs found for {month_year}"
            logger.warning(summary["message"])
            return summary

        result: Optional[MergeResult] = None
        try:
            result, degraded = self.merge(month_year, logs, incremental=not force_reprocess)
            summary["degraded"] = degraded
            summary["total_logs_processed"] = result.logs_folded
            summary["total_players_processed"] = result.players

            summary["records_updated"] = self.monthly_store.upsert_many(list(result.records.values()))
            if force_reprocess and clean_inactive:
                summary["removed_inactive_players"] = self.monthly_store.prune_month(month_year, result.records)
        except NodeWarError as e:
            logger.error(f"Monthly processing of {month_year} failed: {e}")
            summary["error"] = str(e)
            return summary

        summary["success"] = True
        summary["message"] = (f"Processed {result.logs_folded} log(s), {result.players} player(s) "
                              f"for {month_year}")
        logger.info(summary["message"])
        return summary


def main():
    """
    Main entry point for the monthly KDA command line tool.
    """
    parser = argparse.ArgumentParser(
        description="Aggregate a month of processed node war logs into monthly player records.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s --month 2024-05
    %(prog)s --month 2024-05 --force --clean-inactive
    %(prog)s --month 2024-05 --summary --no-siege

Configuration:
    - nodewar.tracked_guilds: Alliance sub-guilds included in the records
    - monthly.family_concurrency / monthly.family_budget_seconds: Family lookups
        """
    )
    parser.add_argument("--month", help="Month to process as YYYY-MM (default: current month)")
    parser.add_argument("--force", action="store_true", help="Rebuild the month from scratch")
    parser.add_argument("--clean-inactive", action="store_true",
                        help="With --force, delete records of players no longer active in the month")
    parser.add_argument("--no-siege", action="store_true", help="Leave siege logs out")
    parser.add_argument("--summary", action="store_true", help="Only compute and log the records, store nothing")

    NodeWarTool.add_standard_arguments(parser)
    args = parser.parse_args()

    try:
        config = MonthlyKDATool.load_config(args.profile)
        tool = MonthlyKDATool(config)

        if args.summary:
            month = args.month or datetime.now(timezone.utc).strftime("%Y-%m")
            records = tool.summarize(month, include_siege=not args.no_siege)
            for rank, record in enumerate(records, 1):
                logger.info(f"{rank:3d}. {record.player_nick} ({record.guilda}) "
                            f"K {record.total_kills} D {record.total_deaths} KD {record.kd_overall:.2f}")
            return 0

        result = tool.run(args.month, force_reprocess=args.force, clean_inactive=args.clean_inactive,
                          include_siege=not args.no_siege)

        if args.console:
            logger.info(f"Monthly KDA completed: {result}")

        return 0 if result["success"] else 1

    except Exception as e:
        logger.error(f"Error: {e}")
        return 1


if __name__ == "__main__":
    exit(main())
