"""In-memory store for metric definitions and results.

One current result per (activity, metric key).  Writes for the same pair
are serialized; the last write wins.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterator

from ridemetrics.models import MetricDefinition, MetricResult

logger = logging.getLogger(__name__)


class InMemoryResultStore:
    """Thread-safe result store used by the metric runner."""

    def __init__(self) -> None:
        self._results: dict[tuple[str, str], MetricResult] = {}
        self._definitions: dict[str, MetricDefinition] = {}
        self._locks: dict[tuple[str, str], threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, pair: tuple[str, str]) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(pair)
            if lock is None:
                lock = self._locks[pair] = threading.Lock()
            return lock

    def upsert_definition(self, definition: MetricDefinition) -> MetricDefinition:
        with self._guard:
            previous = self._definitions.get(definition.key)
            if previous is not None and previous.version != definition.version:
                logger.info(
                    "metric %s version changed %d -> %d",
                    definition.key, previous.version, definition.version,
                )
            self._definitions[definition.key] = definition
        return definition

    def definition(self, key: str) -> MetricDefinition | None:
        with self._guard:
            return self._definitions.get(key)

    def put(self, result: MetricResult) -> None:
        pair = (result.activity_id, result.key)
        with self._lock_for(pair):
            self._results[pair] = result

    def get(self, activity_id: str, key: str) -> MetricResult | None:
        return self._results.get((activity_id, key))

    def results_for(self, activity_id: str) -> dict[str, MetricResult]:
        return {
            key: result
            for (owner, key), result in list(self._results.items())
            if owner == activity_id
        }

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[MetricResult]:
        return iter(list(self._results.values()))
