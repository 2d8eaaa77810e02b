"""Fit a list of issues under the suggestion storage budget.

Issues are grouped by category and picked round-robin, smallest first, so a
category with thousands of entries cannot crowd out a category with one.
"""

from __future__ import annotations

import json
import logging
from collections import Counter, deque
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from siteaudit.core import metrics
from siteaudit.core.config import settings
from siteaudit.schemas.redirects import IssueCategory, PackedSuggestionSet
from siteaudit.services.url_utils import string_byte_length


logger = logging.getLogger(__name__)

UNKNOWN_CATEGORY = "unknown"
_CATEGORY_ORDER = [category.value for category in IssueCategory]


@dataclass(frozen=True)
class SizeStats:
    count: int
    total_bytes: int
    smallest_non_zero_bytes: int
    average_bytes: float
    largest_bytes: int
    estimated_capacity: int | None


def serialized_size(item: Any) -> int:
    """UTF-8 size of the compact JSON form of ``item``; 0 if it cannot be serialised."""
    try:
        if isinstance(item, BaseModel):
            text = item.model_dump_json(by_alias=True)
        else:
            text = json.dumps(item, separators=(",", ":"), ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return 0
    return string_byte_length(text)


def describe_sizes(sizes: Sequence[int], budget_bytes: int | None = None) -> SizeStats:
    budget = settings.suggestion_budget_bytes if budget_bytes is None else budget_bytes
    if not sizes:
        return SizeStats(0, 0, 0, 0.0, 0, None)
    non_zero = [size for size in sizes if size > 0]
    total = sum(sizes)
    average = total / len(sizes)
    return SizeStats(
        count=len(sizes),
        total_bytes=total,
        smallest_non_zero_bytes=min(non_zero) if non_zero else 0,
        average_bytes=average,
        largest_bytes=max(sizes),
        estimated_capacity=int(budget // average) if average > 0 else None,
    )


def issue_category(issue: Any) -> str:
    category = getattr(issue, "category", None)
    if category is None and isinstance(issue, Mapping):
        category = issue.get("category")
    if isinstance(category, IssueCategory):
        return category.value
    if isinstance(category, str) and category:
        return category
    return UNKNOWN_CATEGORY


def _bucket_order(keys: Iterable[str]) -> list[str]:
    present = list(dict.fromkeys(keys))
    known = [key for key in _CATEGORY_ORDER if key in present]
    others = [key for key in present if key not in _CATEGORY_ORDER and key != UNKNOWN_CATEGORY]
    tail = [UNKNOWN_CATEGORY] if UNKNOWN_CATEGORY in present else []
    return known + others + tail


def _round_robin(
    buckets: dict[str, deque[int]], order: list[str], sizes: list[int], budget: int
) -> tuple[set[int], Counter[str]]:
    selected: set[int] = set()
    picked: Counter[str] = Counter()
    remaining = budget
    active = [key for key in order if buckets[key]]
    while active:
        still_active: list[str] = []
        for key in active:
            queue = buckets[key]
            candidate = queue[0]
            if sizes[candidate] > remaining:
                # Members are sorted by size, so nothing later in this bucket fits either.
                continue
            queue.popleft()
            selected.add(candidate)
            picked[key] += 1
            remaining -= sizes[candidate]
            if queue:
                still_active.append(key)
        active = still_active
    return selected, picked


def filter_issues_to_fit_into_space(
    issues: Sequence[Any] | None,
    log: logging.Logger | None = None,
    *,
    budget_bytes: int | None = None,
) -> PackedSuggestionSet:
    log = log or logger
    if not issues:
        return PackedSuggestionSet(filtered_issues=[], was_reduced=False)

    budget = settings.suggestion_budget_bytes if budget_bytes is None else budget_bytes
    items = list(issues)
    sizes = [serialized_size(item) for item in items]
    total = sum(sizes)

    if total <= budget:
        log.info(
            "suggestion_packing_within_budget",
            extra={"count": len(items), "total_bytes": total, "budget_bytes": budget},
        )
        return PackedSuggestionSet(filtered_issues=items, was_reduced=False)

    log.info(
        "suggestion_packing_over_budget",
        extra={"count": len(items), "total_bytes": total, "budget_bytes": budget},
    )

    categories = [issue_category(item) for item in items]
    order = _bucket_order(categories)
    buckets: dict[str, deque[int]] = {key: deque() for key in order}
    for index in sorted(range(len(items)), key=lambda i: (sizes[i], i)):
        buckets[categories[index]].append(index)
    available = Counter(categories)

    selected, picked = _round_robin(buckets, order, sizes, budget)
    for key in order:
        log.info(
            "suggestion_packing_category",
            extra={"category": key, "selected": picked.get(key, 0), "available": available[key]},
        )

    filtered = [items[index] for index in sorted(selected)]
    kept_bytes = sum(sizes[index] for index in selected)
    dropped = len(items) - len(filtered)
    if dropped:
        metrics.record_issues_reduced(dropped)
    log.info(
        "suggestion_packing_reduced",
        extra={
            "kept": len(filtered),
            "kept_bytes": kept_bytes,
            "original": len(items),
            "original_bytes": total,
        },
    )
    return PackedSuggestionSet(filtered_issues=filtered, was_reduced=dropped > 0)
