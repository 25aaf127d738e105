"""
Reporting Module
"""
from .aggregator import ReportingAggregator
from .errors import (
    InvalidArgumentError,
    NotFoundError,
    ReportingError,
    UnknownBucketError,
    UpstreamUnavailableError,
)
from .schemas import Money, Snapshot
from .store import SnapshotStore

__all__ = [
    "ReportingAggregator",
    "SnapshotStore",
    "Money",
    "Snapshot",
    "ReportingError",
    "NotFoundError",
    "InvalidArgumentError",
    "UpstreamUnavailableError",
    "UnknownBucketError",
]
