#!/usr/bin/env python3
"""
Metric sources feeding utilization samples to the alarm evaluators
"""

import logging
import math
import threading
from collections import defaultdict, deque
from typing import Deque, Dict, Iterable, List, Optional, Tuple

import requests
from prometheus_client import Counter

from ..models.metrics import SignalKind, UtilizationSample

logger = logging.getLogger(__name__)

# (start, end) in clock seconds, end exclusive
Window = Tuple[float, float]

METRIC_FETCH_FAILURES = Counter(
    'fleet_autoscaler_metric_fetch_failures_total',
    'Metric fetches that failed or timed out',
    ['signal']
)


class MetricSource:
    """Base class for utilization sample providers"""

    def fetch(self, signal_kind: SignalKind, fleet_id: str, window: Window) -> List[UtilizationSample]:
        """
        Fetch the samples of one signal that fall in `window`

        Returns:
            Possibly empty list of samples; never raises for transport errors
        """
        raise NotImplementedError("Subclasses must implement fetch() method")


class InMemoryMetricSource(MetricSource):
    """
    Samples pushed by the caller (tests, simulations, the /samples endpoint)

    Only the samples needed by the longest evaluation window are retained.
    """

    def __init__(self, retention: float = 20.0):
        self.retention = retention
        self._samples: Dict[Tuple[SignalKind, str], Deque[UtilizationSample]] = defaultdict(deque)
        self._lock = threading.Lock()

    def record(self, sample: UtilizationSample) -> None:
        with self._lock:
            series = self._samples[(sample.signal_kind, sample.fleet_id)]
            series.append(sample)
            if len(series) > 1 and series[-2].timestamp > sample.timestamp:
                # Keep the series ordered for pruning
                ordered = sorted(series, key=lambda s: s.timestamp)
                series.clear()
                series.extend(ordered)

    def record_many(self, samples: Iterable[UtilizationSample]) -> None:
        for sample in samples:
            self.record(sample)

    def add(self, signal_kind: SignalKind, fleet_id: str, value: float, timestamp: float) -> UtilizationSample:
        sample = UtilizationSample(signal_kind=signal_kind, fleet_id=fleet_id, value=value, timestamp=timestamp)
        self.record(sample)
        return sample

    def prune(self, now: float) -> int:
        """Drop samples older than the retention horizon; returns how many"""
        cutoff = now - self.retention
        dropped = 0
        with self._lock:
            for series in self._samples.values():
                while series and series[0].timestamp < cutoff:
                    series.popleft()
                    dropped += 1
        return dropped

    def sample_count(self) -> int:
        with self._lock:
            return sum(len(series) for series in self._samples.values())

    def fetch(self, signal_kind: SignalKind, fleet_id: str, window: Window) -> List[UtilizationSample]:
        start, end = window
        with self._lock:
            series = list(self._samples.get((signal_kind, fleet_id), ()))
        return [s for s in series if start <= s.timestamp < end]


class PrometheusMetricSource(MetricSource):
    """Collects utilization samples from the Prometheus range query API"""

    def __init__(
        self,
        url: str,
        queries: Dict[SignalKind, str],
        timeout: float = 5.0,
        step: float = 1.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize Prometheus source

        Args:
            url: Prometheus base URL
            queries: PromQL template per signal; "{fleet_id}" is substituted
            timeout: Per-request timeout in seconds
            step: Range query resolution in seconds
            session: Optional requests session
        """
        self.prometheus_url = url.rstrip("/")
        self.queries = queries
        self.timeout = timeout
        self.step = step
        self.session = session or requests.Session()

    def fetch(self, signal_kind: SignalKind, fleet_id: str, window: Window) -> List[UtilizationSample]:
        template = self.queries.get(signal_kind)
        if template is None:
            logger.warning(f"No Prometheus query configured for signal {signal_kind.value}")
            return []

        start, end = window
        result = self._query_range(template.replace("{fleet_id}", fleet_id), start, end)
        if result is None:
            METRIC_FETCH_FAILURES.labels(signal=signal_kind.value).inc()
            return []

        samples = []
        for series in result:
            for timestamp, raw in series.get("values", []):
                try:
                    value = float(raw)
                    timestamp = float(timestamp)
                except (TypeError, ValueError):
                    continue
                if math.isnan(value) or not start <= timestamp < end:
                    continue
                samples.append(UtilizationSample(
                    signal_kind=signal_kind,
                    fleet_id=fleet_id,
                    value=min(100.0, max(0.0, value)),
                    timestamp=timestamp,
                ))

        logger.debug(f"Fetched {len(samples)} {signal_kind.value} samples for {fleet_id}")
        return samples

    def _query_range(self, query: str, start: float, end: float) -> Optional[list]:
        """Query Prometheus range API"""
        try:
            response = self.session.get(
                f"{self.prometheus_url}/api/v1/query_range",
                params={'query': query, 'start': start, 'end': end, 'step': self.step},
                timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()

            if data.get('status') == 'success':
                return data['data']['result']
            else:
                logger.error(f"Prometheus query failed: {data.get('error', 'Unknown error')}")
                return None

        except requests.exceptions.Timeout:
            logger.warning(f"Prometheus query timed out after {self.timeout}s, treating period as missing data")
            return None
        except requests.exceptions.RequestException as e:
            logger.error(f"Error querying Prometheus: {e}")
            return None
        except (KeyError, ValueError) as e:
            logger.error(f"Error processing Prometheus response: {e}")
            return None
