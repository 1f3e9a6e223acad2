"""
Retention Metrics

Counters and timings emitted by the retention engine: nudges sent and
skipped, escalations, goal completions, batch outcomes and LLM latency.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class MetricsSink(ABC):
    """Destination for retention metrics"""

    @abstractmethod
    def increment(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        pass

    @abstractmethod
    def observe(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        pass


class NullMetricsSink(MetricsSink):
    """Discards everything"""

    def increment(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        pass

    def observe(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        pass


class LoggingMetricsSink(MetricsSink):
    """Keeps running totals in memory and logs each data point at debug level."""

    def __init__(self, max_observations: int = 1000):
        self.counters: Dict[str, int] = defaultdict(int)
        self.observations: Dict[str, List[float]] = defaultdict(list)
        self.max_observations = max_observations
        self.start_time = datetime.now()

    @staticmethod
    def _key(name: str, tags: Optional[Dict[str, str]]) -> str:
        if not tags:
            return name
        rendered = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
        return f"{name}[{rendered}]"

    def increment(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        key = self._key(name, tags)
        self.counters[key] += value
        logger.debug(f"📊 {key} += {value}")

    def observe(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        key = self._key(name, tags)
        values = self.observations[key]
        values.append(value)

        # Keep only the most recent observations
        if len(values) > self.max_observations:
            values.pop(0)
        logger.debug(f"📊 {key} = {value:.3f}")

    def get_metrics(self) -> Dict:
        """Snapshot of counters and observation averages"""
        return {
            "counters": dict(self.counters),
            "averages": {
                key: sum(values) / len(values)
                for key, values in self.observations.items()
                if values
            },
            "uptime_seconds": (datetime.now() - self.start_time).total_seconds(),
        }
