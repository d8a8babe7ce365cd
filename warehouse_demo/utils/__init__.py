"""
Utilities package for the warehouse features demo.

Exports shared helpers for logging and timing. Keep this package lightweight
and free of domain-specific logic.
"""

from warehouse_demo.utils.logging import configure_logging, get_logger
from warehouse_demo.utils.profiler import ProfileStats, profile_block

__all__ = [
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
]
