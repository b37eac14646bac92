"""User segmentation: usage clusters, devices, and geography.

The usage segmenter is a fixed six-round, two-centroid heuristic.  It is
deliberately *not* k-means run to convergence: seeding is the first and
last vector in input order, the loop always runs exactly
:data:`SEGMENT_ROUNDS` rounds and stops there whether or not assignments
have settled.  Callers pass vectors in stable insertion order (each user's
first qualifying event in the batch), which makes the result
deterministic for a given batch.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

import numpy as np

from ridemetrics.analytics.records import ActivityRecord
from ridemetrics.models import camel_asdict

SEGMENT_ROUNDS = 6
SEGMENT_LABELS = ("Power users", "Casual users")
SEGMENT_SAMPLE_SIZE = 5

KNOWN_DEVICES = ("garmin", "wahoo", "coros", "hammerhead")
GEO_LIMIT = 10


@dataclass
class UsageVector:
    user_id: str
    uploads: int = 0
    views: int = 0
    recomputes: int = 0


@dataclass
class UserSegment:
    label: str
    count: int
    centroid: dict[str, float]
    sample: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return camel_asdict(self)

    def __repr__(self) -> str:
        return f"UserSegment({self.label!r}, count={self.count}, uploads≈{self.centroid['uploads']:.1f})"


# ---------------------------------------------------------------------------
# Two-cluster segmenter
# ---------------------------------------------------------------------------


def _assign(points: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    """Cluster index per point by squared distance; ties go to cluster 0."""
    distances = ((points[:, None, :] - centroids[None, :, :]) ** 2).sum(axis=2)
    return np.where(distances[:, 0] <= distances[:, 1], 0, 1)


def _centroid_dict(row: np.ndarray) -> dict[str, float]:
    return {"uploads": float(row[0]), "views": float(row[1]), "recomputes": float(row[2])}


def _sample(members: list[UsageVector], emails: Mapping[str, str]) -> list[dict[str, str]]:
    ranked = sorted(members, key=lambda v: -v.uploads)
    return [
        {"userId": v.user_id, "email": emails.get(v.user_id, "unknown")}
        for v in ranked[:SEGMENT_SAMPLE_SIZE]
    ]


def segment_users(
    vectors: Sequence[UsageVector],
    emails: Mapping[str, str] | None = None,
    rounds: int = SEGMENT_ROUNDS,
) -> list[UserSegment]:
    """Split users into "Power users" and "Casual users".

    Each round assigns every vector to its nearer centroid, then moves each
    centroid to the mean of its members (an empty cluster keeps its
    previous centroid).  A final assignment uses the last centroids.
    Clusters are ordered by descending uploads centroid.

    Every input vector lands in exactly one cluster.  One vector gives a
    single "Power users" segment; no vectors give ``[]``.
    """
    emails = emails or {}
    if not vectors:
        return []
    if len(vectors) == 1:
        only = vectors[0]
        point = np.array([only.uploads, only.views, only.recomputes], dtype=np.float64)
        return [UserSegment(
            label=SEGMENT_LABELS[0],
            count=1,
            centroid=_centroid_dict(point),
            sample=_sample([only], emails),
        )]

    points = np.array([[v.uploads, v.views, v.recomputes] for v in vectors], dtype=np.float64)
    centroids = np.vstack([points[0], points[-1]])

    for _ in range(rounds):
        assignment = _assign(points, centroids)
        for cluster in (0, 1):
            members = points[assignment == cluster]
            if len(members):
                centroids[cluster] = members.mean(axis=0)

    assignment = _assign(points, centroids)
    clusters = [
        (centroids[c], [v for v, a in zip(vectors, assignment) if a == c])
        for c in (0, 1)
    ]
    # stable: equal upload centroids keep the seed order
    clusters.sort(key=lambda item: -item[0][0])

    return [
        UserSegment(
            label=SEGMENT_LABELS[i] if i < len(SEGMENT_LABELS) else f"Segment {i + 1}",
            count=len(members),
            centroid=_centroid_dict(centroid),
            sample=_sample(members, emails),
        )
        for i, (centroid, members) in enumerate(clusters)
    ]


# ---------------------------------------------------------------------------
# Devices
# ---------------------------------------------------------------------------


def normalize_device_name(source: str | None) -> str:
    """Collapse head-unit names onto a vendor ("Garmin Edge 540" -> "garmin")."""
    if not source:
        return "unknown"
    lowered = source.lower()
    for vendor in KNOWN_DEVICES:
        if vendor in lowered:
            return vendor
    return lowered


def device_shares(
    activities: Iterable[ActivityRecord],
    since: datetime,
    window: str,
) -> list[dict[str, Any]]:
    counts: Counter[str] = Counter(
        normalize_device_name(a.source) for a in activities if a.start_time >= since
    )
    total = sum(counts.values()) or 1
    return [
        {"device": device, "count": count, "percentage": count / total, "window": window}
        for device, count in counts.most_common()
    ]


# ---------------------------------------------------------------------------
# Geography
# ---------------------------------------------------------------------------


def parse_country(location: str | None) -> str:
    """Country is the last comma-separated part of a free-text location."""
    if not location:
        return "Unknown"
    return location.split(",")[-1].strip() or "Unknown"


def geo_distribution(locations: Iterable[str | None], limit: int = GEO_LIMIT) -> list[dict[str, Any]]:
    counts: Counter[str] = Counter(parse_country(location) for location in locations)
    total = sum(counts.values()) or 1
    return [
        {"country": country, "count": count, "percentage": count / total}
        for country, count in counts.most_common(limit)
    ]
