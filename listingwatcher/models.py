"""Core data models for listingwatcher."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from typing import List, Optional, Union


@dataclass(frozen=True)
class OpenHouse:
    """A scheduled open house for a listing."""

    date: str
    start_time: str
    end_time: str


@dataclass(frozen=True)
class ListingSnapshot:
    """The subset of listing fields tracked for change detection."""

    listing_id: str
    status: str
    price: int
    modified_at: dt.datetime
    open_house: Optional[OpenHouse] = None


@dataclass(frozen=True)
class ListingDetails:
    """Human-facing listing fields used when rendering notifications."""

    listing_id: str
    address: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    price: int = 0
    agent: str = ""
    agent_cell: str = ""
    beds: Optional[int] = None
    baths: Optional[float] = None


@dataclass(frozen=True)
class FetchedListing:
    """A parsed API record: tracked snapshot plus display details."""

    snapshot: ListingSnapshot
    details: ListingDetails


@dataclass(frozen=True)
class StatusChanged:
    listing_id: str
    old: str
    new: str
    event_type: str = field(default="status_changed", init=False)


@dataclass(frozen=True)
class PriceChanged:
    listing_id: str
    old: int
    new: int
    event_type: str = field(default="price_changed", init=False)

    @property
    def delta(self) -> int:
        return self.new - self.old

    @property
    def percent(self) -> float:
        if not self.old:
            return 0.0
        return self.delta / self.old * 100


@dataclass(frozen=True)
class OpenHouseAdded:
    listing_id: str
    open_house: OpenHouse
    event_type: str = field(default="open_house_added", init=False)


ChangeEvent = Union[StatusChanged, PriceChanged, OpenHouseAdded]


@dataclass
class CycleSummary:
    """Aggregated result returned by a poll cycle."""

    executed_at: str
    status: str
    trigger: str = "timer"
    fetched: int = 0
    baselined: int = 0
    stale: int = 0
    events: List[ChangeEvent] = field(default_factory=list)
    notify_errors: int = 0
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "executed_at": self.executed_at,
            "status": self.status,
            "trigger": self.trigger,
            "fetched": self.fetched,
            "baselined": self.baselined,
            "stale": self.stale,
            "events": [describe_event(event) for event in self.events],
            "notify_errors": self.notify_errors,
            "error": self.error,
        }


def describe_event(event: ChangeEvent) -> dict:
    """Flatten a change event into a JSON-friendly mapping."""
    if isinstance(event, StatusChanged):
        details = f"{event.old} -> {event.new}"
    elif isinstance(event, PriceChanged):
        details = f"{event.old} -> {event.new}"
    elif isinstance(event, OpenHouseAdded):
        oh = event.open_house
        details = f"{oh.date} {oh.start_time}-{oh.end_time}"
    else:
        raise TypeError(f"Unknown change event: {event!r}")
    return {
        "listing_id": event.listing_id,
        "event_type": event.event_type,
        "details": details,
    }
