"""
Key-value store for per-field score-combiner outputs.

Upstream producers persist each combined score under
``(metric_kind, component, field_or_component_id)``. The aggregator only
reads this store as a last resort, and a missing key always means "no data".
"""

import copy
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

METRIC_KINDS = ("accuracy", "quality", "overall")

MetricsTree = Dict[str, Dict[str, Dict[str, Dict[str, Any]]]]


def _empty_tree() -> MetricsTree:
    return {kind: {} for kind in METRIC_KINDS}


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class MetricsSnapshot(BaseModel):
    """On-disk layout of a metrics store."""

    accuracy: Dict[str, Dict[str, Dict[str, Any]]] = Field(default_factory=dict)
    quality: Dict[str, Dict[str, Dict[str, Any]]] = Field(default_factory=dict)
    overall: Dict[str, Dict[str, Dict[str, Any]]] = Field(default_factory=dict)
    saved_at: Optional[str] = Field(None, description="ISO timestamp of the last write")


class MetricsStore:
    """In-memory metrics store with the {accuracy, quality, overall} layout."""

    def __init__(self, initial: Optional[Mapping[str, Any]] = None):
        self._metrics: MetricsTree = _empty_tree()
        if initial:
            for kind in METRIC_KINDS:
                self._metrics[kind] = copy.deepcopy(dict(initial.get(kind) or {}))

    def store_field_metrics(
        self,
        field_name: str,
        metric_kind: str,
        data: Mapping[str, Any],
        component: str = "metadata",
    ) -> None:
        """
        Store metrics for one field.

        Args:
            field_name: Field or component identifier, e.g. "title" or a paper id
            metric_kind: One of "accuracy", "quality", "overall"
            data: Score payload (typically a ComponentScore dict)
            component: Component the field belongs to

        Raises:
            ValueError: If ``metric_kind`` is unknown

        Example:
            ```python
            store = MetricsStore()
            store.store_field_metrics("title", "accuracy", {"finalScore": 0.84}, component="metadata")
            store.get_field_metrics("title", "accuracy", component="metadata")
            # {"finalScore": 0.84, "timestamp": "..."}
            ```
        """
        if metric_kind not in METRIC_KINDS:
            raise ValueError(f"Unknown metric kind '{metric_kind}', expected one of {METRIC_KINDS}")

        entry = dict(data)
        entry.setdefault("timestamp", _utc_timestamp())
        self._metrics[metric_kind].setdefault(component, {})[field_name] = entry
        self._persist()

    def get_field_metrics(
        self,
        field_name: str,
        metric_kind: str,
        component: str = "metadata",
    ) -> Optional[Dict[str, Any]]:
        """Return a copy of the stored entry, or None when nothing is stored."""
        entry = self._metrics.get(metric_kind, {}).get(component, {}).get(field_name)
        return copy.deepcopy(entry) if entry is not None else None

    def get_component_metrics(self, metric_kind: str, component: str) -> Dict[str, Dict[str, Any]]:
        return copy.deepcopy(self._metrics.get(metric_kind, {}).get(component, {}))

    def clear(self) -> None:
        self._metrics = _empty_tree()
        self._persist()

    def snapshot(self) -> MetricsTree:
        return copy.deepcopy(self._metrics)

    def _persist(self) -> None:
        """Hook for durable subclasses."""


class JsonMetricsStore(MetricsStore):
    """Metrics store persisted to a single JSON file."""

    def __init__(self, path: Path):
        """
        Initialize store.

        Args:
            path: JSON file to read from and write to. An unreadable or invalid
                file is treated as an empty store.
        """
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                snapshot = MetricsSnapshot.model_validate(json.load(f))
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Ignoring unreadable metrics store %s: %s", self.path, exc)
            return None

        return snapshot.model_dump(include=set(METRIC_KINDS))

    def _persist(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        snapshot = MetricsSnapshot(**self._metrics, saved_at=_utc_timestamp())

        with open(self.path, "w", encoding="utf-8") as f:
            f.write(snapshot.model_dump_json(indent=2))


__all__ = ["METRIC_KINDS", "MetricsSnapshot", "MetricsStore", "JsonMetricsStore"]
