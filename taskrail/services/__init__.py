"""Services module for taskrail.

This module exports the execution log sinks.
"""

from taskrail.services.log_sinks import DatabaseLogSink, SupabaseLogSink, build_secondary_log

__all__ = [
    "DatabaseLogSink",
    "SupabaseLogSink",
    "build_secondary_log",
]
