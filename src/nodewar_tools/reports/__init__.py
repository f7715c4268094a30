"""
Reports: monthly leaderboards, class rosters and occupancy charts.
"""

from .leaderboard import LeaderboardExporter, records_to_dataframe, roster_rows, roster_summary
from .occupancy_plot import OccupancyPlotter

__all__ = [
    'LeaderboardExporter',
    'OccupancyPlotter',
    'records_to_dataframe',
    'roster_rows',
    'roster_summary',
]
