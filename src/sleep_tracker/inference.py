"""Sleep episode inference over screen-off periods.

The pipeline runs three passes over a :class:`CandidateSet`:

1. ``classify_candidates`` marks long off-periods that start inside the
   night window.
2. ``prune_false_sleeps`` demotes short fragments that sit next to a longer
   candidate on the same resolved night.
3. ``extend_sleep_clusters`` promotes daytime rest that directly follows a
   confirmed episode.

Every pass is a pure function of its inputs; none of them touch storage.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from datetime import date, datetime
from typing import Iterable, Optional

from .config import InferenceSettings, NightWindow
from .models import CandidateSet, OffPeriod
from .night import resolve_sleep_date

logger = logging.getLogger(__name__)


def gap_minutes(earlier_end: datetime, later_start: datetime) -> int:
    """Whole minutes between two instants, truncated toward zero."""
    return int((later_start - earlier_end).total_seconds() / 60)


def classify_candidates(
    periods: Iterable[OffPeriod],
    window: NightWindow,
    settings: Optional[InferenceSettings] = None,
) -> CandidateSet:
    settings = settings or InferenceSettings()
    threshold = settings.min_sleep_minutes
    candidates = CandidateSet(periods)
    for index, candidate in enumerate(candidates):
        if window.contains(candidate.start.hour) and candidate.duration_minutes >= threshold:
            candidates.promote(index)
            logger.debug("Classified sleep candidate: %s", candidate.period)
    return candidates


def prune_false_sleeps(
    candidates: CandidateSet,
    window: NightWindow,
    settings: Optional[InferenceSettings] = None,
) -> CandidateSet:
    """Demote short fragments that split a single night's sleep.

    Returns a new set; the input is left untouched.
    """
    settings = settings or InferenceSettings()
    result = candidates.copy()

    groups: defaultdict[date, list[int]] = defaultdict(list)
    for index in result.confirmed_indices():
        candidate = result[index]
        groups[resolve_sleep_date(candidate.start, candidate.end, window)].append(index)

    targets: set[int] = set()
    for indices in groups.values():
        if len(indices) < 2:
            continue
        ordered = sorted(indices, key=lambda i: result[i].start)
        for current_index, next_index in zip(ordered, ordered[1:]):
            current, following = result[current_index], result[next_index]
            if gap_minutes(current.end, following.start) <= settings.prune_gap_minutes:
                continue
            if current.duration_minutes < following.duration_minutes:
                shorter = current_index
            elif following.duration_minutes < current.duration_minutes:
                shorter = next_index
            else:
                continue
            if result[shorter].duration_minutes < settings.prune_protect_minutes:
                targets.add(shorter)

    for index in sorted(targets):
        result.demote(index)
        logger.debug("Pruned short sleep fragment: %s", result[index].period)
    return result


def extend_sleep_clusters(
    candidates: CandidateSet,
    window: NightWindow,
    settings: Optional[InferenceSettings] = None,
) -> CandidateSet:
    """Promote rest that directly follows confirmed sleep outside the window.

    Each confirmed candidate is an anchor. Anchors look forward through later
    candidates until the first unconfirmed one that starts too long after
    the anchor ended. Newly promoted candidates become anchors themselves, so
    the worklist reaches the same fixed point as repeating full passes until
    nothing changes.
    """
    settings = settings or InferenceSettings()
    result = candidates.copy()
    order = result.by_start()
    max_gap = settings.extension_gap_minutes
    min_duration = settings.extension_min_minutes

    worklist = deque(position for position, index in enumerate(order) if result[index].is_sleep)
    steps = 0
    while worklist:
        if steps >= settings.max_extension_steps:
            logger.warning(
                "Cluster extension stopped after %d steps with %d anchors pending.",
                steps,
                len(worklist),
            )
            break
        steps += 1

        position = worklist.popleft()
        anchor = result[order[position]]
        for later in range(position + 1, len(order)):
            index = order[later]
            candidate = result[index]
            if candidate.is_sleep:
                continue
            if gap_minutes(anchor.end, candidate.start) > max_gap:
                break
            if candidate.duration_minutes > min_duration and not window.contains(
                candidate.start.hour
            ):
                result.promote(index)
                worklist.append(later)
                logger.debug(
                    "Extended sleep cluster with %s after %s",
                    candidate.period,
                    anchor.period,
                )
    return result


def infer_sleep_periods(
    periods: Iterable[OffPeriod],
    window: NightWindow,
    settings: Optional[InferenceSettings] = None,
) -> list[OffPeriod]:
    """Run every pass and return the confirmed periods in start order."""
    settings = settings or InferenceSettings()
    candidates = classify_candidates(periods, window, settings)
    candidates = prune_false_sleeps(candidates, window, settings)
    candidates = extend_sleep_clusters(candidates, window, settings)
    confirmed = candidates.confirmed()
    confirmed.sort(key=lambda period: period.start)
    return confirmed
