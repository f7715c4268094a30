"""
Node War Processing Pipeline

Single-log processing and monthly aggregation.
"""

from .log_processor import LogMetadata, LogProcessor
from .monthly_kda import MonthlyKDATool
from .monthly_merge import MergeResult, MonthlyMergeEngine, is_placeholder_family, resolve_nick_families

__all__ = [
    'LogMetadata',
    'LogProcessor',
    'MergeResult',
    'MonthlyKDATool',
    'MonthlyMergeEngine',
    'is_placeholder_family',
    'resolve_nick_families',
]
