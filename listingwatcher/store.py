"""In-memory snapshot store owned by the poll loop."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .models import ListingSnapshot


class SnapshotStore:
    """Most recently observed snapshot per listing id.

    Entries are added or replaced, never removed. Writes are last-write-wins
    except that a snapshot older than the stored one is ignored.
    """

    def __init__(self) -> None:
        self._snapshots: Dict[str, ListingSnapshot] = {}

    def __len__(self) -> int:
        return len(self._snapshots)

    def __contains__(self, listing_id: object) -> bool:
        return listing_id in self._snapshots

    def get(self, listing_id: str) -> Optional[ListingSnapshot]:
        return self._snapshots.get(listing_id)

    def put(self, snapshot: ListingSnapshot) -> bool:
        """Store ``snapshot``; return False when it is older than what we hold."""
        existing = self._snapshots.get(snapshot.listing_id)
        if existing is not None and snapshot.modified_at < existing.modified_at:
            return False
        self._snapshots[snapshot.listing_id] = snapshot
        return True

    def load(self, snapshots: Iterable[ListingSnapshot]) -> None:
        """Replace the whole content in one step."""
        loaded: Dict[str, ListingSnapshot] = {}
        for snapshot in snapshots:
            existing = loaded.get(snapshot.listing_id)
            if existing is None or snapshot.modified_at >= existing.modified_at:
                loaded[snapshot.listing_id] = snapshot
        self._snapshots = loaded

    def snapshots(self) -> List[ListingSnapshot]:
        return list(self._snapshots.values())
