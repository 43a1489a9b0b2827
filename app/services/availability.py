"""Availability checks against per-date capacity slots.

Availability is slot based only: an item that defines no slot covering the
requested date has no inventory for it. Party size always counts every
traveler (adults, children and infants).
"""
from datetime import date
from typing import Optional

from app.core.errors import ValidationError
from app.models.catalog_item import CatalogItem
from app.models.availability_slot import AvailabilitySlot


def validate_request(on_date, party_size) -> None:
    # datetime is a date subclass; reject it so callers pass calendar dates
    if not isinstance(on_date, date) or hasattr(on_date, "hour"):
        raise ValidationError("date must be a calendar date")
    if isinstance(party_size, bool) or not isinstance(party_size, int) or party_size < 1:
        raise ValidationError("party size must be an integer >= 1")


def find_slot(item: CatalogItem, on_date: date) -> Optional[AvailabilitySlot]:
    """First slot (by start date) whose inclusive range contains on_date."""
    for slot in sorted(item.slots, key=lambda s: s.start_date):
        if slot.covers(on_date):
            return slot
    return None


def remaining_capacity(item: CatalogItem, slot: AvailabilitySlot) -> int:
    return max(item.capacity_per_slot - slot.booked_count, 0)


def check_availability(item: CatalogItem, on_date: date, party_size: int) -> bool:
    validate_request(on_date, party_size)
    slot = find_slot(item, on_date)
    if slot is None:
        return False
    return slot.booked_count + party_size <= item.capacity_per_slot
