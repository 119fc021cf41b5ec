"""Delivery slot due-ness in subscriber local time."""

from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta

from src.store.models import Subscriber


DEFAULT_SLOT_TOLERANCE = timedelta(minutes=5)


@dataclass(frozen=True)
class DueSlot:
    """A delivery slot that should be evaluated now.

    Attributes:
        subscriber_id: Subscriber owning the slot.
        slot: Slot time as configured (HH:MM).
        local_date: ISO date of the slot in the subscriber's timezone.
        local_now: Current time in the subscriber's timezone.
    """

    subscriber_id: str
    slot: str
    local_date: str
    local_now: datetime


def parse_slot(slot: str) -> time:
    """Parse an ``HH:MM`` slot string."""
    hours, minutes = slot.split(":")
    return time(int(hours), int(minutes))


def is_slot_due(
    local_now: datetime,
    slot_at: datetime,
    tolerance: timedelta = DEFAULT_SLOT_TOLERANCE,
) -> bool:
    """Check whether the local clock reached ``slot_at`` within ``tolerance``.

    ``tolerance`` is elapsed real time, while the slot is compared on the
    wall clock of ``local_now``'s zone. A slot that falls in a daylight
    saving gap (02:30 on a spring-forward night) is therefore due on the
    first tick after the clocks jump.
    """
    zone = local_now.tzinfo
    window_start = (local_now.astimezone(UTC) - tolerance).astimezone(zone)
    slot_wall = slot_at.replace(tzinfo=None)
    now_wall = local_now.replace(tzinfo=None)
    return window_start.replace(tzinfo=None) < slot_wall <= now_wall


def due_slots(
    subscriber: Subscriber,
    now: datetime,
    tolerance: timedelta = DEFAULT_SLOT_TOLERANCE,
) -> list[DueSlot]:
    """List the subscriber's slots that are due at ``now``.

    The slot of the previous local day is checked too, so a 23:58 slot
    is still due at 00:01 and is attributed to the day it belongs to.

    Args:
        subscriber: Subscriber profile.
        now: Current aware time.
        tolerance: Window after the slot time in which it is due.

    Returns:
        Due slots, at most one per configured slot.
    """
    zone = subscriber.zone
    local_now = now.astimezone(zone)
    due: list[DueSlot] = []

    for slot in subscriber.delivery_slots:
        slot_time = parse_slot(slot)
        for day_offset in (0, -1):
            day = local_now.date() + timedelta(days=day_offset)
            slot_at = datetime.combine(day, slot_time, tzinfo=zone)
            if is_slot_due(local_now, slot_at, tolerance):
                due.append(
                    DueSlot(
                        subscriber_id=subscriber.id,
                        slot=slot,
                        local_date=day.isoformat(),
                        local_now=local_now,
                    )
                )
                break

    return due
