"""Poll loop: fetch, detect, dispatch and update the snapshot store."""

from __future__ import annotations

import datetime as dt
import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Protocol

from .db import Database
from .diff import detect_changes
from .errors import FetchError
from .models import ChangeEvent, CycleSummary, FetchedListing, ListingDetails
from .store import SnapshotStore

logger = logging.getLogger(__name__)


class PollState(enum.Enum):
    IDLE = "idle"
    POLLING = "polling"


class Fetcher(Protocol):
    def fetch_active_listings(self) -> List[FetchedListing]:
        ...


class Dispatcher(Protocol):
    def notify(self, event: ChangeEvent, details: ListingDetails) -> list:
        ...


def _utcnow() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


@dataclass
class PollLoop:
    """Coordinates fetch, change detection, notification and store updates.

    Only one cycle runs at a time. A cycle that overlaps a running one returns
    a ``busy`` summary without touching the store.
    """

    client: Fetcher
    dispatch: Dispatcher
    database: Database
    store: SnapshotStore = field(default_factory=SnapshotStore)
    dry_run: bool = False
    clock: Callable[[], str] = _utcnow
    last_summary: Optional[CycleSummary] = field(default=None, init=False)

    def __post_init__(self) -> None:
        self._cycle_lock = threading.Lock()
        self._stop = threading.Event()

    @property
    def state(self) -> PollState:
        return PollState.POLLING if self._cycle_lock.locked() else PollState.IDLE

    def init(self) -> None:
        """Initialize required persistence structures."""
        logger.info("Initializing database at %s", self.database.path)
        self.database.initialize()

    def request_stop(self) -> None:
        """Ask an in-flight cycle to stop after the current listing."""
        self._stop.set()

    def prime(self) -> bool:
        """Rehydrate the store from a full fetch when a durable cursor exists.

        Returns True when the store was loaded. No events are emitted.
        """
        cursor = self.database.read_cursor()
        if cursor is None:
            logger.info("No cursor recorded; the first cycle will establish the baseline")
            return False

        with self._cycle_lock:
            try:
                fetched = self.client.fetch_active_listings()
            except FetchError as exc:
                logger.error("Rehydration fetch failed, starting with empty store: %s", exc)
                return False

            self.store.load(item.snapshot for item in fetched)
            missed = sum(1 for item in fetched if item.snapshot.modified_at > cursor)
            logger.info(
                "Rehydrated %d listings from cursor %s (%d modified while offline, not notified)",
                len(self.store),
                cursor.isoformat(),
                missed,
            )
        return True

    def run_cycle(self, trigger: str = "timer") -> CycleSummary:
        """Execute a single poll cycle."""
        if self._stop.is_set():
            logger.info("Poll cycle (%s) not started: shutdown requested", trigger)
            return CycleSummary(executed_at=self.clock(), status="stopped", trigger=trigger)
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Poll cycle (%s) skipped: previous cycle still running", trigger)
            return CycleSummary(executed_at=self.clock(), status="busy", trigger=trigger)
        try:
            summary = self._run_locked(trigger)
        finally:
            self._cycle_lock.release()
        self.last_summary = summary
        return summary

    def _run_locked(self, trigger: str) -> CycleSummary:
        executed_at = self.clock()
        logger.info("Starting poll cycle (%s)", trigger)

        try:
            fetched = self.client.fetch_active_listings()
        except FetchError as exc:
            logger.error("Fetch failed, store left unchanged: %s", exc)
            self.database.add_run(
                executed_at=executed_at,
                status="error",
                notes=f"fetch_failed: {exc}",
            )
            return CycleSummary(
                executed_at=executed_at,
                status="error",
                trigger=trigger,
                error=str(exc),
            )

        summary = CycleSummary(
            executed_at=executed_at,
            status="dry_run" if self.dry_run else "success",
            trigger=trigger,
            fetched=len(fetched),
        )
        latest: Optional[dt.datetime] = None

        for item in fetched:
            snapshot = item.snapshot
            previous = self.store.get(snapshot.listing_id)
            if previous is None:
                logger.debug("First sighting of %s; recording baseline", snapshot.listing_id)
                summary.baselined += 1
            elif snapshot.modified_at < previous.modified_at:
                logger.debug(
                    "Ignoring stale record for %s (%s < %s)",
                    snapshot.listing_id,
                    snapshot.modified_at.isoformat(),
                    previous.modified_at.isoformat(),
                )
                summary.stale += 1
                continue

            events = detect_changes(previous, snapshot)
            for event in events:
                logger.info("Detected %s for %s", event.event_type, event.listing_id)
                if not self.dry_run:
                    summary.notify_errors += len(self.dispatch.notify(event, item.details))
            summary.events.extend(events)
            if (
                previous is not None
                and previous.open_house is not None
                and snapshot.open_house is None
            ):
                logger.info(
                    "Open house %s %s-%s for %s was cancelled; not notified",
                    previous.open_house.date,
                    previous.open_house.start_time,
                    previous.open_house.end_time,
                    snapshot.listing_id,
                )

            self.store.put(snapshot)
            if latest is None or snapshot.modified_at > latest:
                latest = snapshot.modified_at

            if self._stop.is_set():
                logger.info("Stop requested; ending cycle after %s", snapshot.listing_id)
                break

        if self.dry_run:
            logger.info(
                "Dry run detected %d event(s) across %d listings",
                len(summary.events),
                summary.fetched,
            )
        else:
            self.database.record_events(executed_at, summary.events)
            if latest is not None:
                self.database.write_cursor(latest)
            logger.info(
                "Cycle complete: %d fetched, %d baselined, %d event(s), %d delivery failure(s)",
                summary.fetched,
                summary.baselined,
                len(summary.events),
                summary.notify_errors,
            )
        self.database.add_run(
            executed_at=executed_at,
            status=summary.status,
            notes=_format_note(summary),
        )
        return summary

    def status(self) -> dict:
        last = self.last_summary
        cursor = self.database.read_cursor()
        return {
            "state": self.state.value,
            "tracked_listings": len(self.store),
            "last_poll_at": last.executed_at if last else None,
            "last_status": last.status if last else None,
            "cursor": cursor.isoformat() if cursor else None,
        }


def _format_note(summary: CycleSummary) -> str:
    """Render a concise run note summarizing the cycle outcome."""
    prefix = "dry-run " if summary.status == "dry_run" else ""
    counts = {"status_changed": 0, "price_changed": 0, "open_house_added": 0}
    for event in summary.events:
        counts[event.event_type] += 1
    return (
        f"{prefix}"
        f"listings(fetched={summary.fetched} / baseline={summary.baselined} / stale={summary.stale}) "
        f"events(status={counts['status_changed']} / price={counts['price_changed']} / "
        f"open_house={counts['open_house_added']}) "
        f"notify_failures={summary.notify_errors}"
    )
