"""
Node War Tools - Python package for guild node war statistics

This package turns raw node war combat logs into per-player and per-guild
kill/death statistics, resolves character identities through the public
adventurer search, and aggregates processed logs into monthly leaderboards.

The package uses a flat structure with dependencies on the config module
for configuration management.
"""

__version__ = '1.0.0'
