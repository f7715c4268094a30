"""
Error taxonomy for the node war log engine.

Per-line and per-nickname problems are contained where they happen and kept
as data (ParseAmbiguity records, not-found identities, placeholder
identities). Only collaborator failures are raised to the caller.
"""

from dataclasses import dataclass, field
from typing import List, Optional


class NodeWarError(Exception):
    """Base class for all node war engine errors."""


@dataclass(frozen=True)
class ParseAmbiguity:
    """A nickname that was found in the membership set of more than one guild."""
    nickname: str
    guilds: List[str] = field(default_factory=list)
    chosen_guild: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.nickname} appears in {', '.join(self.guilds)} (using {self.chosen_guild})"


class LookupFailed(NodeWarError):
    """The identity lookup kept failing after every retry."""

    def __init__(self, nickname: str, attempts: int, last_error: Optional[BaseException] = None):
        self.nickname = nickname
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Lookup for '{nickname}' failed after {attempts} attempt(s): {last_error}")


class LookupNotFound(NodeWarError):
    """The external source has no character with this nickname."""

    def __init__(self, nickname: str):
        self.nickname = nickname
        super().__init__(f"No character found for '{nickname}'")


class ExternalSourceUnavailable(NodeWarError):
    """An external collaborator (alliance roster, datastore) cannot be reached."""


class PersistenceConflict(NodeWarError):
    """The datastore rejected a write."""
