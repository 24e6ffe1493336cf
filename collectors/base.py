"""Base collector ABC and shared metric types."""

from __future__ import annotations

import logging
from abc import abstractmethod
from dataclasses import dataclass
from typing import Iterator

from prometheus_client.core import GaugeMetricFamily
from prometheus_client.registry import Collector

logger = logging.getLogger(__name__)

PREFIX = "scp_"


@dataclass(frozen=True)
class MetricDesc:
    """Static descriptor of one gauge: name, help text and label names."""

    name: str
    help: str
    labels: tuple[str, ...] = ()

    @property
    def full_name(self) -> str:
        return PREFIX + self.name

    def family(self) -> GaugeMetricFamily:
        return GaugeMetricFamily(self.full_name, self.help, labels=list(self.labels))


class MetricSink:
    """Gauge families being filled during one scrape.

    A label set added twice to the same metric is kept once; the first value
    wins. Only families that received samples are exposed.
    """

    def __init__(self, descs: dict[str, MetricDesc]) -> None:
        self._descs = descs
        self._families = {key: desc.family() for key, desc in descs.items()}
        self._seen: dict[str, set[tuple[str, ...]]] = {key: set() for key in descs}

    def add(self, key: str, value: float, *labels: str) -> bool:
        desc = self._descs[key]
        if len(labels) != len(desc.labels):
            raise ValueError(f"{desc.full_name} expects labels {desc.labels}, got {labels}")
        if labels in self._seen[key]:
            logger.debug("Dropping duplicate sample %s%s", desc.full_name, labels)
            return False
        self._seen[key].add(labels)
        self._families[key].add_metric(list(labels), float(value))
        return True

    def add_flag(self, key: str, flag: bool | None, *labels: str) -> bool:
        """Add a 0/1 gauge, treating a missing flag as 0."""
        return self.add(key, 1 if flag else 0, *labels)

    def families(self) -> Iterator[GaugeMetricFamily]:
        for family in self._families.values():
            if family.samples:
                yield family


class BaseCollector(Collector):
    """Abstract base for the SCP collectors.

    Subclasses declare their gauges in ``METRICS`` and fill a
    :class:`MetricSink` in :meth:`scrape`. ``describe`` never touches the
    network, so registering a collector is free.
    """

    METRICS: dict[str, MetricDesc] = {}

    def describe(self) -> list[GaugeMetricFamily]:
        return [desc.family() for desc in self.METRICS.values()]

    def collect(self) -> list[GaugeMetricFamily]:
        sink = MetricSink(self.METRICS)
        self.scrape(sink)
        return list(sink.families())

    def close(self) -> None:
        """Release API client resources. Called once on shutdown."""

    @abstractmethod
    def scrape(self, sink: MetricSink) -> None:
        """Query the API and fill ``sink``. Must not raise on API failures; log and degrade."""
        ...
