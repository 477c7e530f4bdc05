"""Error types raised across the monitor."""

from __future__ import annotations


class ListingWatcherError(Exception):
    """Base class for listingwatcher failures."""


class FetchError(ListingWatcherError):
    """The listing API could not be read: network failure, non-2xx or bad body."""


class NotifyError(ListingWatcherError):
    """A single notification channel failed to deliver a message."""

    def __init__(self, channel: str, message: str):
        super().__init__(f"{channel}: {message}")
        self.channel = channel


class ConfigError(ListingWatcherError):
    """Required configuration is missing or invalid."""
