"""
TGPH Agent - Telemetry Package

Host metric collection and the optional external sensor feed.
"""

from .collector import Sample, SystemCollector
from .sensor import SensorBatch, SensorFeed, SensorFeedError, parse_readings

__all__ = [
    "Sample",
    "SensorBatch",
    "SensorFeed",
    "SensorFeedError",
    "SystemCollector",
    "parse_readings",
]
