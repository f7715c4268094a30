# Configuration package initialization
"""
Node War Tools - Configuration System

This package provides a lightweight configuration system for the node war tools.

Quick Usage:
    # Import the pre-configured instance
    from config import config

    rival = config.get('nodewar.rival_guild', 'Chernobyl')

    # Or create a custom instance
    from config import Config
    custom_config = Config(profile='season_2')
"""

from config.config import Config, config

__all__ = ['Config', 'config']
