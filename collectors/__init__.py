from .base import BaseCollector, MetricDesc, MetricSink
from .legacy_collector import LegacyScpCollector
from .scp_collector import ScpCollector

__all__ = [
    "BaseCollector",
    "MetricDesc",
    "MetricSink",
    "ScpCollector",
    "LegacyScpCollector",
]
