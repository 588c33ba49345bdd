"""Small helpers shared by the arrival and forecast pipelines.

Both pipelines reduce a series of values to a short window: arrivals are
filtered, ordered and cut to a fixed length, forecast columns are cut at the
current hour. ``select`` does all of that in one place so the two stay in step.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Iterable, List, Optional, Sequence, TypeVar

T = TypeVar("T")


def round_half_away(value: Optional[float]) -> Optional[int]:
    """Round to the nearest integer, halves away from zero.

    ``None`` passes through so gaps in upstream series stay gaps. NaN and
    infinities have no integer value and come back as ``None`` too.
    """

    if value is None:
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return int(Decimal(str(number)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def minutes_until(target_timestamp: int, now_timestamp: int) -> int:
    return round_half_away((target_timestamp - now_timestamp) / 60)


def find_index(labels: Sequence[Any], target: Any, fallback: int = 0) -> int:
    try:
        return labels.index(target)
    except ValueError:
        return fallback


def select(
    items: Iterable[T],
    *,
    keep: Optional[Callable[[T], bool]] = None,
    start: int = 0,
    key: Optional[Callable[[T], Any]] = None,
    limit: Optional[int] = None,
) -> List[T]:
    """Filter, offset, order and truncate ``items`` in that order.

    Ordering uses ``sorted`` so equal keys keep their encounter order.
    """

    values = [item for item in items if keep is None or keep(item)]
    if start:
        values = values[max(0, start):]
    if key is not None:
        values = sorted(values, key=key)
    if limit is not None:
        values = values[: max(0, limit)]
    return values
