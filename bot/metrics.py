import logging
from typing import Any

import config

logger = logging.getLogger(__name__)

WIZARD_EVENT_PREFIX = "wizard."

_prometheus_counters: dict[str, Any] = {}
_statsd_client: Any = None
_statsd_ready = False


def _sanitize_metric_name(name: str) -> str:
    """Prometheus name for a dotted counter; wizard events get a ``_total`` suffix."""
    flat = name.replace(".", "_").replace("-", "_")
    if name.startswith(WIZARD_EVENT_PREFIX):
        return f"{flat}_total"
    return flat


def _statsd() -> Any:
    global _statsd_client, _statsd_ready
    if not _statsd_ready:
        _statsd_ready = True
        try:
            from statsd import StatsClient

            _statsd_client = StatsClient()
        except Exception as exc:
            logger.warning("[METRICS] statsd init failed: %s", exc)
            _statsd_client = None
    return _statsd_client


def _prometheus_inc(name: str, value: int) -> None:
    metric_name = _sanitize_metric_name(name)
    try:
        from prometheus_client import Counter

        if metric_name not in _prometheus_counters:
            _prometheus_counters[metric_name] = Counter(metric_name, f"Wizard counter {name}")
        _prometheus_counters[metric_name].inc(value)
    except Exception as exc:
        logger.warning("[METRICS] prometheus inc failed for %s: %s", name, exc)


def _statsd_inc(name: str, value: int) -> None:
    client = _statsd()
    if client is None:
        return
    try:
        client.incr(name, value)
    except Exception as exc:
        logger.warning("[METRICS] statsd inc failed for %s: %s", name, exc)


_BACKENDS = {
    "prometheus": _prometheus_inc,
    "statsd": _statsd_inc,
}


def inc(name: str, value: int = 1) -> None:
    if not config.WIZARD_METRICS_ENABLED:
        return
    backend = _BACKENDS.get((config.WIZARD_METRICS_BACKEND or "noop").strip().lower())
    if backend is not None:
        backend(name, value)


def count_event(kind: str) -> None:
    """Count one wizard notification of the given kind (``step-advanced`` etc.)."""
    inc(f"{WIZARD_EVENT_PREFIX}{kind}")
