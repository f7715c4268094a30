"""
Identity resolution for node war players: the cached, retrying resolver,
the adventurer search client and the alliance roster snapshot.
"""

from .adventure_client import AdventureLookupClient
from .alliance_roster import AllianceMember, AllianceRoster, normalize_family
from .resolver import IdentityResolver, placeholder_identity, sanitize_nickname

__all__ = [
    'AdventureLookupClient',
    'AllianceMember',
    'AllianceRoster',
    'IdentityResolver',
    'normalize_family',
    'placeholder_identity',
    'sanitize_nickname',
]
