"""Spark API client that fetches the current set of active listings."""

from __future__ import annotations

import datetime as dt
import logging
import math
from typing import Any, Dict, List, Optional

import requests

from .errors import FetchError
from .models import FetchedListing, ListingDetails, ListingSnapshot, OpenHouse

logger = logging.getLogger(__name__)

SELECT_FIELDS = (
    "ListingId",
    "StandardStatus",
    "ListPrice",
    "ModificationTimestamp",
    "UnparsedFirstLineAddress",
    "City",
    "StateOrProvince",
    "PostalCode",
    "ListAgentName",
    "ListAgentCellPhone",
    "BedsTotal",
    "BathsTotal",
)
MAX_PAGES = 500


class SparkApiClient:
    """Lightweight wrapper around the Spark listings endpoint."""

    def __init__(
        self,
        base_url: str,
        api_token: str,
        listing_filter: str = "",
        page_limit: int = 100,
        timeout: int = 30,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.listing_filter = listing_filter
        self.page_limit = page_limit
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": "listingwatcher/1.0",
            "Authorization": f"Bearer {api_token}",
            "Accept": "application/json",
            "X-SparkApi-User-Agent": "listingwatcher",
        })

    def get(self, path: str, params: Dict[str, str]) -> dict:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise FetchError(f"GET {url} failed: {exc}") from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise FetchError(f"GET {url} returned a non-JSON body") from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("D"), dict):
            raise FetchError(f"Unexpected response payload from {url}: {payload!r}")
        return payload["D"]

    def page_params(self, page: int) -> Dict[str, str]:
        params = {
            "_select": ",".join(SELECT_FIELDS),
            "_expand": "OpenHouses",
            "_orderby": "-ModificationTimestamp",
            "_limit": str(self.page_limit),
            "_pagination": "1",
            "_page": str(page),
        }
        if self.listing_filter:
            params["_filter"] = self.listing_filter
        return params

    def fetch_active_listings(self) -> List[FetchedListing]:
        """Return every listing matching the filter, draining all pages.

        Raises FetchError if any page fails, so callers never see a partial set.
        """
        listings: List[FetchedListing] = []
        page = 1
        while True:
            body = self.get("listings", self.page_params(page))
            if body.get("Success") is False:
                raise FetchError(f"Listing API reported failure: {body.get('Message')!r}")
            results = body.get("Results")
            if not isinstance(results, list):
                raise FetchError("Listing API response is missing D.Results")

            logger.debug("Fetched %d listing rows for page %d", len(results), page)
            for record in results:
                listings.append(parse_listing(record))

            pagination = body.get("Pagination") or {}
            total_pages = _safe_int(pagination.get("TotalPages"), default=page)
            if not results or page >= total_pages:
                break
            page += 1
            if page > MAX_PAGES:
                raise FetchError(f"Pagination exceeded {MAX_PAGES} pages")

        logger.info("Collected %d listings across %d page(s)", len(listings), page)
        return listings


def parse_listing(record: Any) -> FetchedListing:
    """Map a raw API record to its snapshot and display details."""
    if not isinstance(record, dict):
        raise FetchError(f"Malformed listing record: {record!r}")
    fields = record.get("StandardFields")
    if not isinstance(fields, dict):
        raise FetchError(f"Listing record without StandardFields: {record.get('Id')!r}")

    listing_id = record.get("Id") or fields.get("ListingKey")
    status = fields.get("StandardStatus")
    raw_price = fields.get("ListPrice")
    raw_modified = fields.get("ModificationTimestamp")
    if not listing_id or not status or raw_price is None or not raw_modified:
        raise FetchError(f"Listing record is missing required fields: {record!r}")

    try:
        price_value = float(raw_price)
        if not math.isfinite(price_value):
            raise ValueError(f"non-finite ListPrice {raw_price!r}")
        price = int(round(price_value))
        modified_at = parse_timestamp(str(raw_modified))
    except (TypeError, ValueError, OverflowError) as exc:
        raise FetchError(f"Listing {listing_id} has invalid fields: {exc}") from exc

    snapshot = ListingSnapshot(
        listing_id=str(listing_id),
        status=str(status),
        price=price,
        modified_at=modified_at,
        open_house=_parse_open_house(fields.get("OpenHouses")),
    )
    details = ListingDetails(
        listing_id=str(listing_id),
        address=_text(fields.get("UnparsedFirstLineAddress")),
        city=_text(fields.get("City")),
        state=_text(fields.get("StateOrProvince")),
        postal_code=_text(fields.get("PostalCode")),
        price=price,
        agent=_text(fields.get("ListAgentName")),
        agent_cell=_text(fields.get("ListAgentCellPhone")),
        beds=_optional_number(fields.get("BedsTotal"), int),
        baths=_optional_number(fields.get("BathsTotal"), float),
    )
    return FetchedListing(snapshot=snapshot, details=details)


def parse_timestamp(value: str) -> dt.datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = dt.datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


def _parse_open_house(value: Any) -> Optional[OpenHouse]:
    if not isinstance(value, list) or not value:
        return None
    first = value[0]
    if not isinstance(first, dict):
        return None
    return OpenHouse(
        date=_text(first.get("Date")),
        start_time=_text(first.get("StartTime")),
        end_time=_text(first.get("EndTime")),
    )


def _text(value: Any) -> str:
    # Spark masks restricted fields with this literal.
    if value is None or value == "********":
        return ""
    return str(value).strip()


def _optional_number(value: Any, cast):
    if value in (None, "", "********"):
        return None
    try:
        return cast(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _safe_int(value: Any, default: int = 0) -> int:
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default
