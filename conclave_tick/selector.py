"""Debate eligibility, ranking and the join attempt loop."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import cmp_to_key
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from .models import ApiResponse, Debate, JoinOutcome

logger = logging.getLogger(__name__)

DEFAULT_PHASE_WEIGHTS: Dict[str, int] = {"propose": 30, "debate": 20, "allocation": 10}
DEFAULT_TERMINAL_PHASES: FrozenSet[str] = frozenset(
    {"ended", "results", "closed", "complete", "completed", "finished"}
)
DEFAULT_SOFT_MARKERS: Tuple[str, ...] = ("full", "not accepting", "capacity")
RANKING_KEYS = ("phase", "occupancy_asc", "occupancy_desc")
MAX_ATTEMPTS_CEILING = 10


@dataclass(frozen=True)
class RankingPolicy:
    """Ordered ranking keys plus the phase weight table.

    Candidates sort descending on the composite key; remaining ties keep the
    order the API returned them in.
    """

    phase_weights: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_PHASE_WEIGHTS))
    keys: Tuple[str, ...] = ("phase", "occupancy_asc")
    terminal_phases: FrozenSet[str] = DEFAULT_TERMINAL_PHASES

    def __post_init__(self) -> None:
        unknown = [key for key in self.keys if key not in RANKING_KEYS]
        if unknown:
            raise ValueError(f"Unknown ranking keys: {', '.join(unknown)}")

    @classmethod
    def from_settings(cls, settings) -> "RankingPolicy":
        return cls(
            phase_weights=dict(settings.phase_weights) or dict(DEFAULT_PHASE_WEIGHTS),
            keys=tuple(settings.ranking_keys),
            terminal_phases=frozenset(settings.terminal_phases) or DEFAULT_TERMINAL_PHASES,
        )

    def phase_weight(self, phase: str) -> int:
        return self.phase_weights.get((phase or "").lower(), 0)

    def sort_key(self, debate: Debate) -> Tuple[int, ...]:
        """Composite key where larger sorts first."""

        parts: List[int] = []
        for key in self.keys:
            if key == "phase":
                parts.append(self.phase_weight(debate.phase))
            elif key == "occupancy_asc":
                parts.append(-debate.occupancy)
            elif key == "occupancy_desc":
                parts.append(debate.occupancy)
        return tuple(parts)

    def compare(self, left: Debate, right: Debate) -> int:
        """Comparator form: negative when ``left`` should be tried first."""

        left_key, right_key = self.sort_key(left), self.sort_key(right)
        if left_key == right_key:
            return 0
        return -1 if left_key > right_key else 1


def has_room(debate: Debate) -> bool:
    # Without a capacity we cannot know; let the join call decide.
    if debate.capacity > 0:
        return debate.occupancy < debate.capacity
    return True


def is_eligible(debate: Debate, terminal_phases: Iterable[str] = DEFAULT_TERMINAL_PHASES) -> bool:
    if not debate.id:
        return False
    if debate.phase and debate.phase.lower() in set(terminal_phases):
        return False
    return has_room(debate)


def select_order(
    candidates: Sequence[Debate], policy: Optional[RankingPolicy] = None
) -> List[Debate]:
    """Drop ineligible debates and order the rest by ``policy``."""

    policy = policy or RankingPolicy()
    eligible = [debate for debate in candidates if is_eligible(debate, policy.terminal_phases)]
    dropped = len(candidates) - len(eligible)
    if dropped:
        logger.debug("Dropped %d ineligible debates of %d", dropped, len(candidates))
    return sorted(eligible, key=cmp_to_key(policy.compare))


def is_soft_rejection(response: ApiResponse, markers: Iterable[str] = DEFAULT_SOFT_MARKERS) -> bool:
    message = response.error_message().lower()
    return any(marker in message for marker in markers)


JoinCall = Callable[[Debate, dict], ApiResponse]
PayloadBuilder = Callable[[Debate], Optional[dict]]


def attempt_join(
    ordered: Sequence[Debate],
    join: JoinCall,
    build_payload: PayloadBuilder,
    *,
    max_attempts: int = MAX_ATTEMPTS_CEILING,
    soft_markers: Iterable[str] = DEFAULT_SOFT_MARKERS,
) -> JoinOutcome:
    """Try debates in order until one accepts us.

    At most ``max_attempts`` join calls are made; debates skipped for lack of
    a proposal do not count. Soft rejections move on to the next debate; any
    other failure stops the walk.
    """

    markers = tuple(marker.lower() for marker in soft_markers)
    limit = max(0, min(max_attempts, MAX_ATTEMPTS_CEILING))
    outcome = JoinOutcome(status="exhausted")

    for debate in ordered:
        if outcome.attempts >= limit:
            break
        payload = build_payload(debate)
        if payload is None:
            logger.debug("Skipping debate %s: no proposal for its brief", debate.id)
            outcome.skipped.append(str(debate.id))
            continue

        outcome.attempts += 1
        logger.debug("Join attempt %d/%d id=%s", outcome.attempts, limit, debate.id)
        response = join(debate, payload)
        if response.ok:
            outcome.status = "joined"
            outcome.debate = debate
            outcome.response = response
            return outcome
        if is_soft_rejection(response, markers):
            logger.debug("Debate %s rejected softly: %s", debate.id, response.snippet(120))
            outcome.skipped.append(str(debate.id))
            continue

        outcome.status = "failed"
        outcome.debate = debate
        outcome.response = response
        return outcome

    return outcome


__all__ = [
    "RankingPolicy",
    "attempt_join",
    "has_room",
    "is_eligible",
    "is_soft_rejection",
    "select_order",
]
