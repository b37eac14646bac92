"""Run metric modules over one activity and record the results.

A failing module never stops the others: its exception is logged and
reported in that module's outcome, and no result is written for it.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from ridemetrics.metrics.base import MetricContext, MetricModule
from ridemetrics.metrics.registry import METRIC_REGISTRY, get_metric_module
from ridemetrics.models import Activity, MetricComputation, MetricResult
from ridemetrics.store import InMemoryResultStore

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MetricOutcome:
    """Computation or error for one metric key."""

    key: str
    computation: MetricComputation | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        if self.computation is None:
            return {"summary": {"error": self.error}}
        return self.computation.to_dict()


def select_modules(
    metric_keys: Iterable[str] | None,
    registry: Mapping[str, MetricModule],
) -> list[MetricModule]:
    """Resolve keys up front so an unknown key fails before any work runs."""
    keys = list(registry) if metric_keys is None else list(dict.fromkeys(metric_keys))
    return [get_metric_module(key, registry) for key in keys]


def _compute_one(
    module: MetricModule,
    activity: Activity,
    context: MetricContext,
    store: InMemoryResultStore | None,
    clock: Callable[[], datetime],
) -> MetricOutcome:
    key = module.key
    if store is not None:
        store.upsert_definition(module.definition)
    try:
        computation = module.compute(activity.samples, context)
    except Exception as exc:
        logger.exception("metric computation failed: activity=%s metric=%s", activity.id, key)
        return MetricOutcome(key=key, error=str(exc) or type(exc).__name__)

    if store is not None:
        store.put(MetricResult(
            activity_id=activity.id,
            key=key,
            version=module.definition.version,
            summary=computation.summary,
            series=computation.series,
            computed_at=clock(),
        ))
    logger.debug("computed %s for activity %s", key, activity.id)
    return MetricOutcome(key=key, computation=computation)


def run_metrics(
    activity: Activity,
    metric_keys: Iterable[str] | None = None,
    *,
    registry: Mapping[str, MetricModule] = METRIC_REGISTRY,
    store: InMemoryResultStore | None = None,
    max_workers: int = 1,
    clock: Callable[[], datetime] = _utc_now,
) -> dict[str, MetricOutcome]:
    """Compute the requested metrics (all registered ones by default).

    Args:
        activity: Activity with its samples.
        metric_keys: Keys to run; unknown keys raise ``UnknownMetricError``.
        registry: Module table to resolve keys against.
        store: Where successful results are written, if anywhere.
        max_workers: Values above 1 compute modules on a thread pool.
        clock: Source of ``computed_at`` timestamps.

    Returns:
        Outcomes keyed by metric key, in request order.
    """
    modules = select_modules(metric_keys, registry)
    context = MetricContext.from_activity(activity)

    if max_workers > 1 and len(modules) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = [
                pool.submit(_compute_one, module, activity, context, store, clock)
                for module in modules
            ]
            outcomes = [future.result() for future in futures]
    else:
        outcomes = [_compute_one(module, activity, context, store, clock) for module in modules]

    failed = [o.key for o in outcomes if not o.ok]
    if failed:
        logger.warning("activity %s: %d metric(s) failed: %s", activity.id, len(failed), ", ".join(failed))
    return {outcome.key: outcome for outcome in outcomes}
