import datetime as dt

import pytest
import requests

from listingwatcher.client import SparkApiClient, parse_listing, parse_timestamp
from listingwatcher.errors import FetchError
from listingwatcher.models import OpenHouse


class DummyResponse:
    def __init__(self, payload=None, status_code: int = 200, json_error: bool = False):
        self.payload = payload
        self.status_code = status_code
        self.json_error = json_error

    def raise_for_status(self):
        if self.status_code >= 400:
            response = requests.Response()
            response.status_code = self.status_code
            raise requests.HTTPError(str(self.status_code), response=response)

    def json(self):
        if self.json_error:
            raise ValueError("No JSON object could be decoded")
        return self.payload


class FakeSession:
    def __init__(self, responses):
        self.headers = {}
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": params, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_record(listing_id: str, status: str = "Active", price=500000.0, open_houses=None) -> dict:
    fields = {
        "ListingId": f"MLS-{listing_id}",
        "StandardStatus": status,
        "ListPrice": price,
        "ModificationTimestamp": "2025-01-01T12:00:00Z",
        "UnparsedFirstLineAddress": "12 Elm St",
        "City": "Springfield",
        "StateOrProvince": "IL",
        "PostalCode": "62701",
        "ListAgentName": "Pat Agent",
        "ListAgentCellPhone": "555-0100",
        "BedsTotal": 3,
        "BathsTotal": 2.5,
    }
    if open_houses is not None:
        fields["OpenHouses"] = open_houses
    return {"Id": listing_id, "StandardFields": fields}


def page(records, current: int, total: int) -> DummyResponse:
    return DummyResponse(
        {
            "D": {
                "Success": True,
                "Results": records,
                "Pagination": {"CurrentPage": current, "TotalPages": total},
            }
        }
    )


def build_client(responses) -> tuple[SparkApiClient, FakeSession]:
    session = FakeSession(responses)
    client = SparkApiClient(
        base_url="https://sparkapi.example/v1/",
        api_token="secret-token",
        listing_filter="StandardStatus Ne 'Closed'",
        page_limit=2,
        timeout=7,
        session=session,
    )
    return client, session


def test_client_sets_bearer_authorization():
    _, session = build_client([])
    assert session.headers["Authorization"] == "Bearer secret-token"


def test_fetch_drains_all_pages():
    client, session = build_client(
        [
            page([make_record("1"), make_record("2")], current=1, total=2),
            page([make_record("3")], current=2, total=2),
        ]
    )

    listings = client.fetch_active_listings()

    assert [item.snapshot.listing_id for item in listings] == ["1", "2", "3"]
    assert [call["params"]["_page"] for call in session.calls] == ["1", "2"]
    first = session.calls[0]
    assert first["url"] == "https://sparkapi.example/v1/listings"
    assert first["timeout"] == 7
    assert first["params"]["_limit"] == "2"
    assert first["params"]["_filter"] == "StandardStatus Ne 'Closed'"
    assert first["params"]["_expand"] == "OpenHouses"
    assert "StandardStatus" in first["params"]["_select"]


def test_fetch_stops_on_empty_page():
    client, session = build_client([page([], current=1, total=5)])
    assert client.fetch_active_listings() == []
    assert len(session.calls) == 1


def test_fetch_raises_when_a_later_page_fails():
    client, _ = build_client(
        [
            page([make_record("1")], current=1, total=2),
            DummyResponse(status_code=500),
        ]
    )
    with pytest.raises(FetchError):
        client.fetch_active_listings()


def test_fetch_wraps_network_errors():
    client, _ = build_client([requests.ConnectionError("unreachable")])
    with pytest.raises(FetchError, match="unreachable"):
        client.fetch_active_listings()


def test_fetch_rejects_non_json_body():
    client, _ = build_client([DummyResponse(json_error=True)])
    with pytest.raises(FetchError, match="non-JSON"):
        client.fetch_active_listings()


@pytest.mark.parametrize(
    "payload",
    [
        ["not", "a", "dict"],
        {"D": {"Success": True}},
        {"D": {"Success": False, "Message": "Invalid token"}},
    ],
)
def test_fetch_rejects_malformed_payloads(payload):
    client, _ = build_client([DummyResponse(payload)])
    with pytest.raises(FetchError):
        client.fetch_active_listings()


def test_parse_listing_maps_fields():
    record = make_record(
        "20250101",
        price=499999.6,
        open_houses=[
            {"Date": "01/04/2025", "StartTime": "1:00 PM", "EndTime": "3:00 PM"},
            {"Date": "01/11/2025", "StartTime": "1:00 PM", "EndTime": "3:00 PM"},
        ],
    )

    parsed = parse_listing(record)

    assert parsed.snapshot.listing_id == "20250101"
    assert parsed.snapshot.status == "Active"
    assert parsed.snapshot.price == 500000
    assert parsed.snapshot.modified_at == dt.datetime(2025, 1, 1, 12, 0, tzinfo=dt.timezone.utc)
    assert parsed.snapshot.open_house == OpenHouse("01/04/2025", "1:00 PM", "3:00 PM")
    assert parsed.details.city == "Springfield"
    assert parsed.details.agent_cell == "555-0100"
    assert parsed.details.beds == 3
    assert parsed.details.baths == 2.5


def test_parse_listing_treats_masked_fields_as_blank():
    record = make_record("1")
    record["StandardFields"]["ListAgentCellPhone"] = "********"
    record["StandardFields"]["BedsTotal"] = "********"

    parsed = parse_listing(record)

    assert parsed.details.agent_cell == ""
    assert parsed.details.beds is None
    assert parsed.snapshot.open_house is None


def test_parse_listing_requires_core_fields():
    record = make_record("1")
    del record["StandardFields"]["ListPrice"]
    with pytest.raises(FetchError):
        parse_listing(record)

    with pytest.raises(FetchError):
        parse_listing({"Id": "2"})


def test_parse_listing_rejects_bad_timestamp():
    record = make_record("1")
    record["StandardFields"]["ModificationTimestamp"] = "yesterday"
    with pytest.raises(FetchError):
        parse_listing(record)


def test_parse_timestamp_assumes_utc_for_naive_values():
    assert parse_timestamp("2025-03-01T08:15:00") == dt.datetime(
        2025, 3, 1, 8, 15, tzinfo=dt.timezone.utc
    )


@pytest.mark.parametrize(
    "price",
    [{"amount": 1}, [500000], "1e400", "nan", "Infinity", "cheap"],
)
def test_fetch_rejects_malformed_prices(price):
    client, _ = build_client([page([make_record("1", price=price)], current=1, total=1)])
    with pytest.raises(FetchError, match="invalid fields"):
        client.fetch_active_listings()


def test_parse_listing_ignores_unusable_room_counts():
    record = make_record("1")
    record["StandardFields"]["BedsTotal"] = float("inf")
    record["StandardFields"]["BathsTotal"] = {"full": 2}

    parsed = parse_listing(record)

    assert parsed.details.beds is None
    assert parsed.details.baths is None
