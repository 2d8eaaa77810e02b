from collections import Counter
from threading import Lock
from typing import Dict, Counter as CounterType

_metrics: CounterType[str] = Counter()
_lock = Lock()


def _inc(key: str, amount: int = 1) -> None:
    with _lock:
        _metrics[key] += amount


def record_probe() -> None:
    _inc("probes_issued")


def record_probe_failure() -> None:
    _inc("probe_failures")


def record_hop_trace(hops: int) -> None:
    _inc("hop_traces")
    _inc("hops_followed", hops)


def record_audit_completed() -> None:
    _inc("audits_completed")


def record_audit_failed() -> None:
    _inc("audits_failed")


def record_issues_reduced(dropped: int) -> None:
    _inc("issues_reduced")
    _inc("issues_dropped", dropped)


def snapshot() -> Dict[str, int]:
    with _lock:
        return dict(_metrics)


def reset() -> None:
    with _lock:
        _metrics.clear()
