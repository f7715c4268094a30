#!/usr/bin/env python3
"""
Node War Tools - Log Processor

Turns one raw node war log into a ProcessedLog: guild detection, identity
resolution, kill/death extraction, occupancy timeline and per-class rosters.
"""

import argparse
import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional

from nodewar_tools.base import JSONTool, NodeWarTool
from nodewar_tools.exceptions import LookupFailed, NodeWarError
from nodewar_tools.identity.resolver import IdentityResolver, placeholder_identity
from nodewar_tools.log.event_extractor import CombatLedger, extract_events
from nodewar_tools.log.guild_detector import GuildMembershipMap, build_membership
from nodewar_tools.log.timeline import compute_occupancy
from nodewar_tools.models import Identity, ProcessedLog, Territory

logger = logging.getLogger(__name__)

DEFAULT_HOME_GUILD = "Lollipop"
DEFAULT_RIVAL_GUILD = "Chernobyl"


@dataclass(frozen=True)
class LogMetadata:
    """Information about a log that is not in the log text itself."""
    territorio: Optional[Territory] = None
    node: str = ""
    event_date: Optional[str] = None
    arquivo_nome: str = ""
    is_win: Optional[bool] = None
    win_reason: Optional[str] = None
    slow_mode: bool = False


def build_rosters(membership: GuildMembershipMap, identities: Dict[str, Identity]):
    """
    Group players by class, overall and per guild.

    Returns:
        Tuple of (classes, classes_by_guild, total_por_classe, total_geral).
    """
    classes: Dict[str, List[Dict[str, str]]] = {}
    for nick in membership.all_nicks():
        identity = identities.get(nick) or placeholder_identity(nick)
        classes.setdefault(identity.classe, []).append({"nick": nick, "familia": identity.familia})

    classes_by_guild: Dict[str, Dict[str, List[Dict[str, str]]]] = {}
    for guild in membership.guilds:
        roster: Dict[str, List[Dict[str, str]]] = {}
        for nick in membership.members_of(guild):
            identity = identities.get(nick) or placeholder_identity(nick)
            roster.setdefault(identity.classe, []).append({"nick": nick, "familia": identity.familia})
        classes_by_guild[guild] = dict(sorted(roster.items()))

    total_por_classe = sorted(({"classe": c, "count": len(players)} for c, players in classes.items()),
                              key=lambda entry: (-entry["count"], entry["classe"]))
    total_geral = sum(entry["count"] for entry in total_por_classe)
    return dict(sorted(classes.items())), classes_by_guild, total_por_classe, total_geral


class LogProcessor(JSONTool):
    """
    Processes raw node war logs into ProcessedLog records.

    A new IdentityResolver (and therefore a new cache) is created for each
    processed log, so runs never share state.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 lookup: Optional[Callable[[str], Identity]] = None,
                 resolver_factory: Optional[Callable[[bool], IdentityResolver]] = None) -> None:
        """
        Initialize the log processor.

        Args:
            config: Configuration dictionary from Config class
            lookup: Identity lookup callable; defaults to the adventurer search client
            resolver_factory: Builds a resolver for a run given the slow-mode flag
        """
        super().__init__(config)
        self.home_guild = self.get_config('nodewar.home_guild', DEFAULT_HOME_GUILD)
        self.rival_guild = self.get_config('nodewar.rival_guild', DEFAULT_RIVAL_GUILD)
        self._lookup = lookup
        self._resolver_factory = resolver_factory

    def new_resolver(self, slow_mode: bool = False) -> IdentityResolver:
        if self._resolver_factory is not None:
            return self._resolver_factory(slow_mode)
        if self._lookup is None:
            from nodewar_tools.identity.adventure_client import AdventureLookupClient
            self._lookup = AdventureLookupClient(self.config).lookup
        return IdentityResolver.from_config(self._lookup, self.config, slow_mode=slow_mode)

    def resolve_identities(self, nicks: List[str], slow_mode: bool):
        """
        Resolve every nickname, substituting a placeholder identity when a
        lookup keeps failing.

        Returns:
            Tuple of (identities by nickname, unresolved nicknames).
        """
        resolver = self.new_resolver(slow_mode)
        unresolved: List[str] = []

        def fallback(nick: str, error: LookupFailed) -> Identity:
            logger.error(f"Using placeholder identity for '{nick}': {error}")
            unresolved.append(nick)
            return placeholder_identity(nick)

        identities = resolver.resolve_batch(nicks, on_failure=fallback)
        logger.info(f"Resolved {len(identities)} nickname(s) with {resolver.lookup_calls} lookup call(s)")
        return identities, unresolved

    def process(self, log_text: str, metadata: Optional[LogMetadata] = None) -> ProcessedLog:
        """
        Process one log.

        Lookup failures never abort the run; affected players get a
        placeholder identity and the result is flagged ``degraded``.
        """
        metadata = metadata or LogMetadata()

        membership = build_membership(log_text, self.home_guild)
        nicks = membership.all_nicks()
        logger.info(f"Found {len(nicks)} player(s) across {len(membership.guilds)} guild(s)")

        identities, unresolved = self.resolve_identities(nicks, metadata.slow_mode)

        ledger = extract_events(log_text, membership, self.rival_guild)
        self._apply_identities(ledger, identities)

        occupancy = compute_occupancy(log_text, membership)
        classes, classes_by_guild, total_por_classe, total_geral = build_rosters(membership, identities)

        territorio = metadata.territorio.value if isinstance(metadata.territorio, Territory) else metadata.territorio

        return ProcessedLog(
            home_guild=self.home_guild,
            rival_guild=self.rival_guild,
            guilds=list(membership.guilds),
            total_geral=total_geral,
            total_por_classe=total_por_classe,
            classes=classes,
            classes_by_guild=classes_by_guild,
            kills_by_guild=dict(ledger.kills_by_guild),
            deaths_by_guild=dict(ledger.deaths_by_guild),
            kd_ratio_by_guild=ledger.kd_ratio_by_guild(),
            kills_matrix=ledger.kills_matrix,
            player_stats_by_guild=ledger.stats,
            total_node_seconds=occupancy.total_window_seconds,
            occupancy_seconds_by_guild=dict(occupancy.occupancy_by_guild),
            territorio=territorio,
            node=metadata.node,
            event_date=metadata.event_date,
            arquivo_nome=metadata.arquivo_nome,
            is_win=metadata.is_win,
            win_reason=metadata.win_reason,
            degraded=bool(unresolved),
            unresolved_nicks=unresolved,
            ambiguities=[str(a) for a in membership.ambiguities],
        )

    @staticmethod
    def _apply_identities(ledger: CombatLedger, identities: Dict[str, Identity]) -> None:
        for players in ledger.stats.values():
            for nick, stat in players.items():
                identity = identities.get(nick)
                if identity is not None:
                    stat.apply_identity(identity)

    def process_file(self, log_file: str, metadata: Optional[LogMetadata] = None) -> ProcessedLog:
        """Read a log file and process it; the file name is recorded when metadata has none."""
        text = self.read_text(log_file)
        metadata = metadata or LogMetadata()
        if not metadata.arquivo_nome:
            metadata = replace(metadata, arquivo_nome=os.path.basename(log_file))
        logger.info(f"Processing log file: {log_file}")
        return self.process(text, metadata)

    def run(self, log_file: str, metadata: Optional[LogMetadata] = None, store=None,
            output_file: Optional[str] = None) -> Dict[str, Any]:
        """
        Process a log file, write it as JSON and optionally store it.

        The JSON output is written before storing, so a failed store write
        never loses the processed result.

        Returns:
            Summary dictionary with a ``success`` flag.
        """
        processed = self.process_file(log_file, metadata)

        output_file = output_file or self.generate_timestamped_filename("processed_log", "json")
        output_path = self.write_json(processed.to_dict(), output_file)

        result = {
            "success": True,
            "output_file": output_path,
            "log_id": None,
            "guilds": processed.guilds,
            "total_players": processed.total_geral,
            "kills_by_guild": processed.kills_by_guild,
            "total_node_seconds": processed.total_node_seconds,
            "degraded": processed.degraded,
            "unresolved_nicks": processed.unresolved_nicks,
        }

        if store is not None:
            try:
                stored = store.insert(processed)
                result["log_id"] = stored.id
            except NodeWarError as e:
                logger.error(f"Could not store processed log: {e}")
                result["success"] = False
                result["error"] = str(e)

        return result


def main():
    """
    Main entry point for the log processor command line tool.
    """
    parser = argparse.ArgumentParser(
        description="Process a node war log into per-player and per-guild statistics.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s war.log --territory Calpheon --node "Node 1"
    %(prog)s war.log --win --win-reason "held the fort" --slow
    %(prog)s war.log --no-store --output result.json

Configuration:
    - nodewar.home_guild / nodewar.rival_guild: Guild names
    - identity.*: Lookup throttling and retries
    - general.data_dir: Directory of the log store
        """
    )
    parser.add_argument("log_file", help="Path to the raw log file")
    parser.add_argument("--territory", choices=[t.value for t in Territory], help="Territory of the node war")
    parser.add_argument("--node", default="", help="Node name")
    parser.add_argument("--event-date", help="Date of the node war (YYYY-MM-DD)")
    outcome = parser.add_mutually_exclusive_group()
    outcome.add_argument("--win", dest="is_win", action="store_true", default=None, help="Mark the war as won")
    outcome.add_argument("--loss", dest="is_win", action="store_false", help="Mark the war as lost")
    parser.add_argument("--win-reason", help="Reason for the result")
    parser.add_argument("--slow", action="store_true", help="Slow mode: one lookup at a time, more retries")
    parser.add_argument("--output", help="Output JSON file (default: timestamped file in the output directory)")
    parser.add_argument("--no-store", action="store_true", help="Do not add the processed log to the log store")
    parser.add_argument("--chart", action="store_true", help="Also save an occupancy chart")

    NodeWarTool.add_standard_arguments(parser)
    args = parser.parse_args()

    try:
        config = LogProcessor.load_config(args.profile)

        metadata = LogMetadata(
            territorio=Territory(args.territory) if args.territory else None,
            node=args.node,
            event_date=args.event_date,
            is_win=args.is_win,
            win_reason=args.win_reason,
            slow_mode=args.slow,
        )

        store = None
        if not args.no_store:
            from nodewar_tools.storage.json_store import LogStore
            store = LogStore(config)

        processor = LogProcessor(config)
        result = processor.run(args.log_file, metadata, store=store, output_file=args.output)

        if args.chart:
            from nodewar_tools.reports.occupancy_plot import OccupancyPlotter
            processed = ProcessedLog.from_dict(processor.read_json(result["output_file"]))
            result["chart_file"] = OccupancyPlotter(config).run(processed)

        if args.console:
            logger.info(f"Log processing completed: {result}")

        return 0 if result["success"] else 1

    except Exception as e:
        logger.error(f"Error: {e}")
        return 1


if __name__ == "__main__":
    exit(main())
