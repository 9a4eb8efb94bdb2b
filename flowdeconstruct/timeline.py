"""
Timeline ordering and placement.

Events are ordered chronologically by timestamp; events without a timestamp
go last and keep their relative on-screen order (position). Normalisation
spreads the ordered events evenly over [0, 1] so that what is drawn left to
right matches the chronology, however the positions were dragged.

All functions here work on plain lists of TimelineEvent and never mutate the
list they receive (normalize_positions does update the events' positions).
"""

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .models import TimelineEvent


SINGLE_EVENT_POSITION = 0.5
ONE_MILLISECOND = 1


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_epoch_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - EPOCH) // timedelta(milliseconds=1)


def from_epoch_millis(millis: int) -> datetime:
    return EPOCH + timedelta(milliseconds=millis)


def timeline_sort_key(event: "TimelineEvent") -> tuple:
    """
    Sort key for timeline events.

    - Timestamped events first, ascending, ties broken by label (case-insensitive)
    - Events without a timestamp last, by position then label
    """
    label = event.label.casefold()
    if event.timestamp is None:
        return (1, 0, event.position, label)
    return (0, to_epoch_millis(event.timestamp), 0.0, label)


def sort_events(events: list["TimelineEvent"]) -> list["TimelineEvent"]:
    return sorted(events, key=timeline_sort_key)


def normalize_positions(events: list["TimelineEvent"]) -> list["TimelineEvent"]:
    """
    Sort events chronologically and assign evenly spaced positions.

    For n events the i-th gets i / (n - 1); a lone event sits at 0.5.
    Returns the sorted list; running it twice gives the same positions.
    """
    ordered = sort_events(events)
    count = len(ordered)
    if count == 1:
        ordered[0].position = SINGLE_EVENT_POSITION
    elif count > 1:
        for index, event in enumerate(ordered):
            event.position = index / (count - 1)
    return ordered


def insertion_timestamp(
    events: list["TimelineEvent"],
    position: float,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Pick a timestamp for an event dropped at `position` with no explicit time.

    The neighbours are the timestamped events whose positions bracket the
    drop point (left: position <= drop, right: position > drop). The result
    is the millisecond midpoint of their timestamps, nudged one millisecond
    right if it lands on the left one. With only one neighbour the result is
    one millisecond beyond it; with none it is `now`.
    """
    position = clamp01(position)
    timed = sorted(
        (e for e in events if e.timestamp is not None),
        key=lambda e: (e.position, to_epoch_millis(e.timestamp)),
    )

    left = None
    right = None
    for event in timed:
        if event.position <= position:
            left = event
        elif right is None:
            right = event

    if left is None and right is None:
        return now if now is not None else datetime.now(timezone.utc)
    if left is None:
        return from_epoch_millis(to_epoch_millis(right.timestamp) - ONE_MILLISECOND)
    if right is None:
        return from_epoch_millis(to_epoch_millis(left.timestamp) + ONE_MILLISECOND)

    low, high = sorted((to_epoch_millis(left.timestamp), to_epoch_millis(right.timestamp)))
    middle = low + (high - low) // 2
    if middle == low:
        middle += ONE_MILLISECOND
    return from_epoch_millis(middle)
