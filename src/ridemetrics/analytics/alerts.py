"""Dashboard alert banners.

Banners are derived from the recent-window upload tallies only; nothing
here reads raw records.
"""

from __future__ import annotations

from typing import Any

from ridemetrics.analytics.usage import EventTallies
from ridemetrics.config import AlertConfig
from ridemetrics.stats import percentile


def build_alerts(tallies: EventTallies, config: AlertConfig = AlertConfig()) -> dict[str, Any]:
    """Latency and quality banners for the last ``config.window_minutes``."""
    window = f"{config.window_minutes:g} minutes"
    banners: list[dict[str, str]] = []

    durations = tallies.recent_upload_durations
    if durations and percentile(durations, 0.95) > config.upload_p95_ms:
        banners.append({
            "type": "latency",
            "message": f"Upload latency p95 exceeded {config.upload_p95_ms / 1000:g}s in the last {window}.",
        })

    if tallies.recent_failure_rate > config.failure_rate:
        banners.append({
            "type": "quality",
            "message": f"Parse failure rate exceeded {config.failure_rate:.0%} in the last {window}.",
        })
    return {"banners": banners}
