"""
Temporal view of evaluation activity.

Buckets evaluations by calendar day and fits a linear trend over the daily
mean overall score, so a dashboard can tell whether extraction quality is
improving as evaluations come in.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from pydantic import BaseModel, Field

from ..schemas import EvaluationRecord
from .extraction import ComponentReader
from .statistics import mean

logger = logging.getLogger(__name__)

TREND_SLOPE_THRESHOLD = 0.01


class TimelineTrend(BaseModel):
    """Trend of the daily mean overall score."""

    start_date: str = ""
    end_date: str = ""
    num_days: int = 0

    trend_direction: str = Field(description="improving, declining, stable or insufficient_data")
    trend_slope: float = Field(default=0.0, description="Change of the daily mean per day index")

    mean_score: float = 0.0
    min_score: float = 0.0
    max_score: float = 0.0
    score_volatility: float = Field(default=0.0, description="Standard deviation of the daily means")


def _day_of(timestamp: Optional[str]) -> str:
    """Calendar date of an ISO-8601 timestamp ('' when missing or unparseable)."""
    if not timestamp:
        return ""
    text = str(timestamp).strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).date().isoformat()
    except ValueError:
        logger.debug("Skipping evaluation with unparseable timestamp %r", timestamp)
        return ""


def build_timeline(
    records: Sequence[EvaluationRecord],
    reader: Optional[ComponentReader] = None,
) -> Dict[str, List[Dict[str, Any]]]:
    """
    Bucket evaluations by day.

    Only positive overall scores count towards a day's ``count`` and
    ``avg_score``; a day whose evaluations all scored 0 still appears with
    count 0.

    Args:
        records: Parsed evaluation records
        reader: Component reader to share its extraction cache

    Returns:
        ``{"timeline": [{date, count, avg_score}, ...]}`` sorted by date

    Example:
        ```python
        timeline = build_timeline(records)["timeline"]
        # [{"date": "2025-03-01", "count": 2, "avg_score": 0.71}, ...]
        ```
    """
    reader = reader or ComponentReader()
    by_date: Dict[str, List[float]] = {}

    for record in records:
        date = _day_of(record.timestamp)
        if not date:
            continue
        scores = by_date.setdefault(date, [])
        score = reader.overall_score(record)
        if score > 0:
            scores.append(score)

    timeline = [
        {
            "date": date,
            "count": len(scores),
            "avg_score": mean(scores) if scores else 0.0,
        }
        for date, scores in by_date.items()
    ]
    timeline.sort(key=lambda entry: entry["date"])
    return {"timeline": timeline}


def calculate_timeline_trend(timeline: Sequence[Dict[str, Any]]) -> TimelineTrend:
    """
    Fit a least-squares line through the daily mean scores.

    Days are indexed 0..n-1 in timeline order. A slope above 0.01 per day is
    'improving', below -0.01 'declining', otherwise 'stable'.

    Example:
        ```python
        trend = calculate_timeline_trend(build_timeline(records)["timeline"])
        print(f"Trend: {trend.trend_direction} ({trend.trend_slope:+.3f}/day)")
        ```
    """
    if len(timeline) < 2:
        only = float(timeline[0]["avg_score"]) if timeline else 0.0
        return TimelineTrend(
            start_date=timeline[0]["date"] if timeline else "",
            end_date=timeline[-1]["date"] if timeline else "",
            num_days=len(timeline),
            trend_direction="insufficient_data",
            mean_score=only,
            min_score=only,
            max_score=only,
        )

    scores = np.array([float(entry["avg_score"]) for entry in timeline])
    x = np.arange(len(scores))
    slope, _ = np.polyfit(x, scores, 1)

    if slope > TREND_SLOPE_THRESHOLD:
        trend_direction = "improving"
    elif slope < -TREND_SLOPE_THRESHOLD:
        trend_direction = "declining"
    else:
        trend_direction = "stable"

    return TimelineTrend(
        start_date=timeline[0]["date"],
        end_date=timeline[-1]["date"],
        num_days=len(timeline),
        trend_direction=trend_direction,
        trend_slope=float(slope),
        mean_score=float(np.mean(scores)),
        min_score=float(np.min(scores)),
        max_score=float(np.max(scores)),
        score_volatility=float(np.std(scores)),
    )


__all__ = ["TREND_SLOPE_THRESHOLD", "TimelineTrend", "build_timeline", "calculate_timeline_trend"]
