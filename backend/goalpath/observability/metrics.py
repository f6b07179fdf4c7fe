"""Plan engine metrics recorded as short Opik traces."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from goalpath.core.context import get_goal_id
from goalpath.observability.client import get_opik_client

logger = logging.getLogger(__name__)


def log_metric(name: str, value: float | int, metadata: Optional[Dict[str, Any]] = None) -> None:
    """Record a single metric value; silently skipped when Opik is off."""
    client = get_opik_client()
    if not client:
        return

    payload: Dict[str, Any] = {"value": value}
    goal_id = get_goal_id()
    if goal_id:
        payload["goal_id"] = goal_id
    if metadata:
        payload.update(metadata)

    try:
        metric_trace = client.trace(name=f"metric:{name}", metadata=payload)
        metric_trace.end()
    except Exception as exc:  # pragma: no cover - exporter failures must not break requests
        logger.debug("Unable to record metric %s: %s", name, exc)
