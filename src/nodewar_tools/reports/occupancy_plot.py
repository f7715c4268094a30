"""
Occupancy Chart

Plots how long each guild held the node during one processed log.
"""

import logging
import os
from typing import Any, Dict, Optional

import matplotlib.pyplot as plt

from nodewar_tools.base import FileBasedTool
from nodewar_tools.models import ProcessedLog

logger = logging.getLogger(__name__)


def format_duration(seconds: int) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}:{secs:02d}"


class OccupancyPlotter(FileBasedTool):
    """Bar chart of occupied seconds per guild, home and rival guild highlighted."""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the occupancy plotter.

        Args:
            config: Configuration dictionary from Config class
        """
        super().__init__(config)
        self.initialize_directories()
        self.output_dpi = int(self.get_config('reports.output_dpi', 150))

    def bar_color(self, guild: str, log: ProcessedLog) -> str:
        if guild == log.home_guild:
            return 'tab:green'
        if guild.lower() == log.rival_guild.lower():
            return 'tab:red'
        return 'tab:gray'

    def run(self, log: ProcessedLog, output_path: Optional[str] = None) -> str:
        """
        Save the occupancy chart of a log as PNG.

        Returns:
            Path of the saved image.
        """
        guilds = list(log.guilds) or list(log.occupancy_seconds_by_guild)
        seconds = [log.occupancy_seconds(g) for g in guilds]

        plt.figure(figsize=(max(6, len(guilds) * 1.2), 5))
        bars = plt.bar(guilds, seconds, color=[self.bar_color(g, log) for g in guilds], edgecolor='black', linewidth=0.5)
        for bar, value in zip(bars, seconds):
            plt.annotate(format_duration(value), xy=(bar.get_x() + bar.get_width() / 2, bar.get_height()),
                         ha='center', va='bottom', fontsize=8)

        title = f"Node occupancy - {log.node or log.arquivo_nome or 'node war'}"
        plt.title(f"{title} (window {format_duration(log.total_node_seconds)})", fontsize=12, fontweight='bold')
        plt.ylabel("Seconds held")
        plt.xticks(rotation=30, ha='right')
        plt.tight_layout()

        if output_path is None:
            output_filename = self.generate_timestamped_filename("occupancy", "png", prefix=log.id or "")
            output_path = os.path.join(self.output_dir, output_filename)
        else:
            output_path = self._in_output_dir(output_path)

        self.ensure_dir(os.path.dirname(output_path))

        plt.savefig(output_path, dpi=self.output_dpi, bbox_inches='tight', facecolor='white')
        plt.close()

        logger.info(f"Occupancy chart saved to: {output_path}")
        return output_path
