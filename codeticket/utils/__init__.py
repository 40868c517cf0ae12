"""
Utilities package for the codeticket import job.

Exports shared helpers for logging, profiling and time-keeping.
Keep this package lightweight and free of domain-specific logic.
"""

from codeticket.utils.clock import utc_now
from codeticket.utils.logging import configure_logging, get_logger
from codeticket.utils.profiler import ProfileStats, profile_block

__all__ = [
    "configure_logging",
    "get_logger",
    "ProfileStats",
    "profile_block",
    "utc_now",
]
