"""
Alliance roster snapshot.

Reads the public guild profile page of every tracked alliance sub-guild and
keeps a point-in-time ``family -> sub-guild`` snapshot, used by the monthly
merge to reclassify home-guild players.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import requests
from bs4 import BeautifulSoup

from nodewar_tools.base import NodeWarTool
from nodewar_tools.exceptions import ExternalSourceUnavailable
from nodewar_tools.identity.adventure_client import ADVENTURE_BASE_URL, AdventureLookupClient

logger = logging.getLogger(__name__)

DEFAULT_TRACKED_GUILDS = ["Manifest", "Allyance", "Grand_Order"]
MASTER_MARKER = "Mestre"


def normalize_family(name: str) -> str:
    return (name or "").strip().lower()


@dataclass(frozen=True)
class AllianceMember:
    familia: str
    guilda: str
    is_master: bool = False


class AllianceRoster(NodeWarTool):
    """Snapshot of the members of the tracked alliance sub-guilds."""

    def __init__(self, config: Optional[Dict[str, Any]] = None,
                 client: Optional[AdventureLookupClient] = None,
                 sleep: Callable[[float], None] = time.sleep) -> None:
        super().__init__(config)
        self.client = client or AdventureLookupClient(config)
        self._sleep = sleep
        self.tracked_guilds = list(self.get_config('nodewar.tracked_guilds', DEFAULT_TRACKED_GUILDS))
        self.guild_url = self.get_config('alliance.guild_url', f"{ADVENTURE_BASE_URL}/Guild/GuildProfile")
        self.region = self.get_config('alliance.region', 'SA')
        self.request_delay = self.get_config('alliance.request_delay', 1)
        self.members: List[AllianceMember] = []
        self.last_update: Optional[datetime] = None

    @staticmethod
    def parse_members(html: str, guild: str) -> List[AllianceMember]:
        """
        Extract member family names from a guild profile page.

        Tries the member name cells first, then the same cells inside the
        adventure list table, then the first link of every table row.
        """
        soup = BeautifulSoup(html, "lxml")
        members = []

        def add(name: str, context: str):
            name = (name or "").strip()
            if name:
                members.append(AllianceMember(familia=name, guilda=guild, is_master=MASTER_MARKER in (context or "")))

        for cell in soup.select(".guild_name"):
            link = cell.find("a")
            add(link.get_text() if link else "", cell.get_text())

        if not members:
            for cell in soup.select(".adventure_list_table .guild_name"):
                link = cell.find("a")
                add(link.get_text() if link else "", cell.get_text())

        if not members:
            for row in soup.select("table tbody tr"):
                link = row.find("a")
                if link:
                    add(link.get_text(), row.get_text())

        return members

    def fetch_guild(self, guild: str) -> List[AllianceMember]:
        """Fetch the members of one sub-guild; a failed request yields no members."""
        params = {"guildName": guild, "region": self.region}
        try:
            html = self.client.fetch_page(self.guild_url, params=params)
        except requests.RequestException as e:
            logger.error(f"Could not fetch members of {guild}: {e}")
            return []
        members = self.parse_members(html, guild)
        logger.info(f"{guild}: {len(members)} member(s)")
        return members

    def refresh(self) -> List[AllianceMember]:
        """
        Re-read every tracked sub-guild.

        A refresh that finds nobody keeps the previous snapshot.

        Raises:
            ExternalSourceUnavailable: Nothing could be read and there is no
                previous snapshot to fall back to.
        """
        fresh = []
        for index, guild in enumerate(self.tracked_guilds):
            fresh.extend(self.fetch_guild(guild))
            if index < len(self.tracked_guilds) - 1 and self.request_delay:
                self._sleep(self.request_delay)

        if not fresh:
            if self.members:
                logger.warning("Alliance refresh returned 0 members. Keeping previous snapshot.")
                return self.members
            raise ExternalSourceUnavailable("Alliance roster returned no members")

        self.members = fresh
        self.last_update = datetime.now(timezone.utc)
        logger.info(f"Alliance roster updated: {len(fresh)} member(s)")
        return self.members

    def family_guild_map(self) -> Dict[str, str]:
        """Normalized family name -> tracked sub-guild. The first listing of a family wins."""
        mapping = {}
        tracked = set(self.tracked_guilds)
        for member in self.members:
            key = normalize_family(member.familia)
            if key and member.guilda in tracked:
                mapping.setdefault(key, member.guilda)
        return mapping

    def run(self) -> Dict[str, Any]:
        """Refresh the roster and return the member count per sub-guild."""
        self.refresh()
        counts = {guild: 0 for guild in self.tracked_guilds}
        for member in self.members:
            counts[member.guilda] = counts.get(member.guilda, 0) + 1
        return {
            "total": len(self.members),
            "by_guild": counts,
            "last_update": self.last_update.isoformat() if self.last_update else None,
        }
