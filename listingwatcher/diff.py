"""Change detection between two snapshots of the same listing."""

from __future__ import annotations

from typing import List, Optional

from .models import (
    ChangeEvent,
    ListingSnapshot,
    OpenHouseAdded,
    PriceChanged,
    StatusChanged,
)


def detect_changes(
    previous: Optional[ListingSnapshot],
    current: ListingSnapshot,
) -> List[ChangeEvent]:
    """Compare two snapshots and return the change events, status first.

    A listing seen for the first time is a baseline and yields nothing.
    """
    if previous is None:
        return []
    if previous.listing_id != current.listing_id:
        raise ValueError(
            f"Cannot compare listings {previous.listing_id} and {current.listing_id}"
        )

    events: List[ChangeEvent] = []
    if previous.status != current.status:
        events.append(
            StatusChanged(
                listing_id=current.listing_id,
                old=previous.status,
                new=current.status,
            )
        )
    if previous.price != current.price:
        events.append(
            PriceChanged(
                listing_id=current.listing_id,
                old=previous.price,
                new=current.price,
            )
        )
    # A cancelled open house is not announced.
    if current.open_house is not None and previous.open_house != current.open_house:
        events.append(
            OpenHouseAdded(
                listing_id=current.listing_id,
                open_house=current.open_house,
            )
        )
    return events
