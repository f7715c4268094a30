"""
Adventurer Search Client

This module provides a client for the public adventurer search pages, used
to resolve a character nickname to its class and family name and to read
guild member lists.
"""

import logging
from typing import Any, Dict, Optional

import requests
from bs4 import BeautifulSoup

from nodewar_tools.base import NodeWarTool
from nodewar_tools.models import Identity

logger = logging.getLogger(__name__)

ADVENTURE_BASE_URL = "https://www.sa.playblackdesert.com/pt-BR/Adventure"
DEFAULT_USER_AGENT = ("Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
                      "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36")

CLASS_SELECTOR = ".character_class .name"
FAMILY_SELECTOR = 'a[href*="Profile?profileTarget"]'
FAMILY_FALLBACK_SELECTOR = "article ul li > div:first-child > a"


class AdventureLookupClient(NodeWarTool):
    """Client for the adventurer search pages."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, session: Optional[requests.Session] = None) -> None:
        """
        Initialize the adventurer search client.

        Args:
            config: Optional configuration dictionary.
            session: Optional requests session (a new one is created by default).
        """
        super().__init__(config)
        self.session = session or requests.Session()
        self._setup_client()

    def _setup_client(self) -> None:
        """Set up the client with configuration values."""
        self.base_url = self.get_config('identity.base_url', ADVENTURE_BASE_URL).rstrip('/')
        self.timeout = self.get_config('identity.timeout', 10)
        self.headers = {
            "User-Agent": self.get_config('identity.user_agent', DEFAULT_USER_AGENT),
            "Accept-Language": "pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7",
        }
        logger.debug(f"Adventure base URL: {self.base_url}")

    def fetch_page(self, url: str, params: Optional[Dict[str, Any]] = None) -> str:
        """
        Fetch an HTML page.

        Raises:
            requests.RequestException: If the request fails.
        """
        try:
            response = self.session.get(url, params=params, headers=self.headers, timeout=self.timeout)
            response.raise_for_status()
            return response.text
        except requests.RequestException as e:
            logger.error(f"Request to {url} failed: {e}")
            raise

    def lookup(self, nickname: str) -> Identity:
        """
        Look up a character by nickname.

        Missing fields come back as empty strings; deciding whether that
        means "not found" is left to the resolver.

        Raises:
            requests.RequestException: If the search page cannot be fetched.
        """
        params = {"checkSearchText": "True", "searchType": "1", "searchKeyword": nickname}
        html = self.fetch_page(self.base_url, params=params)
        classe, familia = self.parse_search_page(html)
        logger.debug(f"Lookup '{nickname}': class='{classe}' family='{familia}'")
        return Identity(classe=classe, familia=familia)

    @staticmethod
    def parse_search_page(html: str):
        """Extract ``(class, family)`` from a search result page."""
        soup = BeautifulSoup(html, "lxml")

        class_el = soup.select_one(CLASS_SELECTOR)
        classe = class_el.get_text(strip=True) if class_el else ""

        family_el = soup.select_one(FAMILY_SELECTOR) or soup.select_one(FAMILY_FALLBACK_SELECTOR)
        familia = family_el.get_text(strip=True) if family_el else ""

        return classe, familia

    def run(self, nickname: Optional[str] = None) -> Dict[str, Any]:
        """
        Look up a single nickname and return it as a dictionary.

        Returns:
            Dictionary with the nickname, class and family.
        """
        if not nickname:
            logger.warning("No nickname given to look up")
            return {}
        identity = self.lookup(nickname)
        return {"nickname": nickname, **identity.to_dict()}
