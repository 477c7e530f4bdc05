"""listingwatcher package initialization."""

from .client import SparkApiClient, parse_listing
from .config import Settings
from .db import Database
from .diff import detect_changes
from .errors import ConfigError, FetchError, ListingWatcherError, NotifyError
from .models import (
    ChangeEvent,
    CycleSummary,
    FetchedListing,
    ListingDetails,
    ListingSnapshot,
    OpenHouse,
    OpenHouseAdded,
    PriceChanged,
    StatusChanged,
)
from .notifications import NotifierDispatch, SlackNotifier, TwilioSmsNotifier
from .runner import PollLoop, PollState
from .store import SnapshotStore

__all__ = [
    "ChangeEvent",
    "ConfigError",
    "CycleSummary",
    "Database",
    "FetchError",
    "FetchedListing",
    "ListingDetails",
    "ListingSnapshot",
    "ListingWatcherError",
    "NotifierDispatch",
    "NotifyError",
    "OpenHouse",
    "OpenHouseAdded",
    "PollLoop",
    "PollState",
    "PriceChanged",
    "Settings",
    "SlackNotifier",
    "SnapshotStore",
    "SparkApiClient",
    "StatusChanged",
    "TwilioSmsNotifier",
    "detect_changes",
    "parse_listing",
]
