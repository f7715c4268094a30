"""
Persistence for processed logs and monthly records.
"""

from .json_store import LogStore, MonthlyStore, month_bounds

__all__ = ['LogStore', 'MonthlyStore', 'month_bounds']
