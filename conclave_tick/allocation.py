"""Percentage allocation across debate ideas."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from .models import Option

logger = logging.getLogger(__name__)

TOTAL_PERCENT = 100
MAX_PERCENT = 60
MIN_ENTRIES = 2


def validate_allocation(
    allocation: Dict[str, int] | None, *, max_percent: int = MAX_PERCENT
) -> bool:
    """Check the server-side constraints: >=2 entries, each in (0, cap], sum 100."""

    if not allocation or len(allocation) < MIN_ENTRIES:
        return False
    for value in allocation.values():
        if not isinstance(value, int) or isinstance(value, bool):
            return False
        if value <= 0 or value > max_percent:
            return False
    return sum(allocation.values()) == TOTAL_PERCENT


def _usable(options: Sequence[Option]) -> List[Option]:
    seen = set()
    usable: List[Option] = []
    for option in options:
        if not option.id or option.id in seen:
            continue
        seen.add(option.id)
        usable.append(option)
    return usable


def _rank_by_activity(options: Sequence[Option]) -> List[Option]:
    indexed = list(enumerate(options))
    indexed.sort(key=lambda pair: (-pair[1].activity, pair[0]))
    return [option for _, option in indexed]


def _apply_cap(values: List[int], cap: int) -> Optional[List[int]]:
    """Clip entries to ``cap`` and hand the excess to entries with headroom.

    Headroom is filled from the last entry backwards. Returns ``None`` when
    the excess cannot be placed.
    """

    clipped = list(values)
    excess = 0
    for index, value in enumerate(clipped):
        if value > cap:
            excess += value - cap
            clipped[index] = cap
    for index in range(len(clipped) - 1, -1, -1):
        if excess <= 0:
            break
        room = cap - clipped[index]
        if room <= 0:
            continue
        moved = min(room, excess)
        clipped[index] += moved
        excess -= moved
    if excess > 0:
        return None
    return clipped


def build_allocation(
    options: Sequence[Option],
    self_id: Optional[str] = None,
    self_percent: int = 0,
    *,
    max_percent: int = MAX_PERCENT,
    min_targets: int = 2,
    max_targets: int = 4,
) -> Optional[Dict[str, int]]:
    """Build a valid allocation or return ``None`` when none can be made.

    ``self_percent`` is reserved for the option whose id equals ``self_id``;
    the remainder is split evenly across the most active other options.
    """

    cap = max(1, min(max_percent, MAX_PERCENT))
    usable = _usable(options)
    if len(usable) < MIN_ENTRIES:
        logger.debug("Allocation skipped: only %d usable options", len(usable))
        return None

    self_percent = max(0, min(cap, int(self_percent or 0)))
    self_option = next((option for option in usable if self_id and option.id == self_id), None)
    reserved = self_percent if self_option is not None and self_percent > 0 else 0

    others = [option for option in usable if self_option is None or option.id != self_option.id]
    needed = MIN_ENTRIES - (1 if reserved else 0)
    lower = max(needed, min(min_targets, len(others)))
    upper = max(lower, max_targets)
    targets = _rank_by_activity(others)[: min(upper, len(others))]
    if len(targets) < lower:
        logger.debug("Allocation skipped: %d targets available, need %d", len(targets), lower)
        return None

    remainder = TOTAL_PERCENT - reserved
    share, leftover = divmod(remainder, len(targets))
    values = [share + (1 if index < leftover else 0) for index in range(len(targets))]
    ids = [option.id for option in targets]
    if reserved:
        ids.append(self_option.id)
        values.append(reserved)

    capped = _apply_cap(values, cap)
    if capped is None:
        logger.debug("Allocation skipped: cannot place excess under the %d%% cap", cap)
        return None

    allocation = dict(zip(ids, capped))
    if not validate_allocation(allocation, max_percent=cap):
        logger.debug("Allocation rejected by validation: %s", allocation)
        return None
    return allocation


def find_self_option(
    options: Sequence[Option],
    *,
    idea_id: Optional[str] = None,
    self_ticker: Optional[str] = None,
) -> Optional[Option]:
    """Locate our own idea by confirmed id first, then by exact ticker."""

    if idea_id:
        for option in options:
            if option.id == idea_id:
                return option
    if self_ticker:
        wanted = self_ticker.strip().upper()
        for option in options:
            if option.ticker and option.ticker == wanted:
                return option
    return None


def to_payload(allocation: Dict[str, int]) -> Dict[str, List[Dict[str, object]]]:
    return {
        "allocations": [
            {"ideaId": idea_id, "percentage": percentage}
            for idea_id, percentage in allocation.items()
        ]
    }


def format_plan(allocation: Dict[str, int], options: Sequence[Option]) -> str:
    labels = {option.id: option.label for option in options if option.id}
    return ", ".join(
        f"{labels.get(idea_id, idea_id)} {percentage}%"
        for idea_id, percentage in allocation.items()
    )


__all__ = [
    "MAX_PERCENT",
    "build_allocation",
    "find_self_option",
    "format_plan",
    "to_payload",
    "validate_allocation",
]
