#!/usr/bin/env python3
"""
Node War Tools - Leaderboard Export

Exports the monthly records of a month as an Excel or CSV leaderboard, and
the class roster of a single processed log as CSV plus a text summary.
"""

import argparse
import logging
import math
import os
from typing import Any, Dict, List, Optional

import openpyxl
import pandas as pd

from nodewar_tools.base import JSONTool, NodeWarTool
from nodewar_tools.models import MonthlyRecord, ProcessedLog

logger = logging.getLogger(__name__)

LEADERBOARD_COLUMNS = [
    "Rank", "Player", "Family", "Guild", "Kills", "Deaths", "KD",
    "Kills vs Rival", "Deaths vs Rival", "KD vs Rival",
    "Kills vs Others", "Deaths vs Others", "KD vs Others",
    "Classes", "Logs",
]
KD_COLUMNS = ["KD", "KD vs Rival", "KD vs Others"]
ROSTER_HEADERS = ["Classe", "Player", "Familia"]


def _kd_cell(value: float):
    """Spreadsheets have no infinity; an undefeated player is shown as "inf"."""
    if math.isinf(value):
        return "inf"
    return round(value, 2)


def records_to_dataframe(records: List[MonthlyRecord]) -> pd.DataFrame:
    """One row per player, most kills first."""
    ordered = sorted(records, key=lambda r: (-r.total_kills, r.player_nick.lower()))
    rows = []
    for rank, record in enumerate(ordered, 1):
        rows.append({
            "Rank": rank,
            "Player": record.player_nick,
            "Family": record.player_familia,
            "Guild": record.guilda,
            "Kills": record.total_kills,
            "Deaths": record.total_deaths,
            "KD": _kd_cell(record.kd_overall),
            "Kills vs Rival": record.total_kills_vs_rival,
            "Deaths vs Rival": record.total_deaths_vs_rival,
            "KD vs Rival": _kd_cell(record.kd_vs_rival),
            "Kills vs Others": record.total_kills_vs_others,
            "Deaths vs Others": record.total_deaths_vs_others,
            "KD vs Others": _kd_cell(record.kd_vs_others),
            "Classes": ", ".join(c.classe for c in sorted(record.classes_played, key=lambda c: -c.kills)),
            "Logs": len(record.logs_processed),
        })
    return pd.DataFrame(rows, columns=LEADERBOARD_COLUMNS)


def roster_rows(log: ProcessedLog, guild: Optional[str] = None) -> List[Dict[str, str]]:
    """``Classe,Player,Familia`` rows of a log, for one guild or for everyone."""
    classes = log.classes_by_guild.get(guild, {}) if guild else log.classes
    rows = []
    for classe in sorted(classes):
        for player in sorted(classes[classe], key=lambda p: p.get("nick", "").lower()):
            rows.append({"Classe": classe, "Player": player.get("nick", ""), "Familia": player.get("familia", "")})
    return rows


def roster_summary(log: ProcessedLog, guild: Optional[str] = None) -> str:
    """Text summary: players per class and the grand total."""
    classes = log.classes_by_guild.get(guild, {}) if guild else log.classes
    title = guild or "All guilds"
    lines = [f"Class summary - {title}"]
    total = 0
    for classe, players in sorted(classes.items(), key=lambda item: (-len(item[1]), item[0])):
        lines.append(f"{classe}: {len(players)}")
        total += len(players)
    lines.append(f"Total: {total}")
    return "\n".join(lines)


class LeaderboardExporter(JSONTool):
    """Writes leaderboards and rosters to the output directory."""

    def export_excel(self, records: List[MonthlyRecord], output_file: str) -> str:
        """Write the leaderboard as an Excel sheet with sized columns."""
        df = records_to_dataframe(records)
        excel_path = self._in_output_dir(output_file)
        os.makedirs(os.path.dirname(excel_path), exist_ok=True)

        with pd.ExcelWriter(excel_path, engine='openpyxl') as writer:
            df.to_excel(writer, index=False, sheet_name='Leaderboard')
            worksheet = writer.sheets['Leaderboard']

            for idx, column in enumerate(df.columns, 1):
                letter = openpyxl.utils.get_column_letter(idx)
                width = max([len(str(column))] + [len(str(v)) for v in df[column].tolist()])
                worksheet.column_dimensions[letter].width = min(width + 2, 60)
                if column in KD_COLUMNS:
                    for cell in worksheet[letter][1:]:  # Skip header row
                        if isinstance(cell.value, (int, float)):
                            cell.number_format = '0.00'

        logger.info(f"Leaderboard exported to {excel_path}")
        return excel_path

    def export_csv(self, records: List[MonthlyRecord], output_file: str) -> str:
        df = records_to_dataframe(records)
        return self.write_csv(df.to_dict('records'), output_file, headers=LEADERBOARD_COLUMNS)

    def export_roster(self, log: ProcessedLog, output_file: str, guild: Optional[str] = None) -> str:
        """Write the class roster of a log as CSV and its summary as a sibling text file."""
        csv_path = self.write_csv(roster_rows(log, guild), output_file, headers=ROSTER_HEADERS)
        summary_path = os.path.splitext(csv_path)[0] + "_summary.txt"
        with open(summary_path, "w", encoding="utf-8") as f:
            f.write(roster_summary(log, guild) + "\n")
        logger.info(f"Roster summary written to {summary_path}")
        return csv_path

    def run(self, records: List[MonthlyRecord], output_file: Optional[str] = None,
            to_excel: bool = True) -> str:
        if not output_file:
            output_file = self.generate_timestamped_filename("leaderboard", "xlsx" if to_excel else "csv")
        if to_excel:
            return self.export_excel(records, output_file)
        return self.export_csv(records, output_file)


def main():
    """
    Main entry point for the leaderboard export command line tool.
    """
    parser = argparse.ArgumentParser(
        description="Export a monthly leaderboard or the class roster of a processed log.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s --month 2024-05
    %(prog)s --month 2024-05 --csv --output may.csv
    %(prog)s --log-id 3f2a... --guild Lollipop
        """
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--month", help="Month of the leaderboard as YYYY-MM")
    source.add_argument("--log-id", help="Stored log whose class roster is exported")
    parser.add_argument("--guild", help="With --log-id, only this guild's roster")
    parser.add_argument("--csv", action="store_true", help="Write CSV instead of Excel")
    parser.add_argument("--output", help="Output file (default: timestamped file in the output directory)")

    NodeWarTool.add_standard_arguments(parser)
    args = parser.parse_args()

    try:
        config = LeaderboardExporter.load_config(args.profile)
        exporter = LeaderboardExporter(config)

        from nodewar_tools.storage.json_store import LogStore, MonthlyStore

        if args.log_id:
            log = LogStore(config).get(args.log_id)
            if log is None:
                logger.error(f"Log {args.log_id} not found")
                return 1
            output = args.output or exporter.generate_timestamped_filename("roster", "csv")
            path = exporter.export_roster(log, output, args.guild)
            if args.console:
                logger.info("\n" + roster_summary(log, args.guild))
        else:
            records = MonthlyStore(config).list_month(args.month)
            if not records:
                logger.warning(f"No monthly records for {args.month}")
            path = exporter.run(records, args.output, to_excel=not args.csv)

        logger.info(f"Export written to {path}")
        return 0

    except Exception as e:
        logger.error(f"Error: {e}")
        return 1


if __name__ == "__main__":
    exit(main())
