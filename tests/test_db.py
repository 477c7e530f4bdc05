import datetime as dt

from openpyxl import load_workbook

from listingwatcher.db import Database, resolve_sqlite_path
from listingwatcher.models import OpenHouse, OpenHouseAdded, PriceChanged, StatusChanged


def test_resolve_sqlite_path_handles_relative(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    path = resolve_sqlite_path("sqlite:///./relative.db")
    assert path == tmp_path / "relative.db"


def test_database_initializes_schema(tmp_path):
    db_path = tmp_path / "listings.db"
    db = Database(path=db_path)
    db.initialize()

    assert db_path.exists()
    assert db_path.stat().st_size > 0


def test_cursor_is_empty_until_written(tmp_path):
    db = Database(path=tmp_path / "cursor.db")
    db.initialize()
    assert db.read_cursor() is None

    first = dt.datetime(2025, 1, 1, 10, 0, tzinfo=dt.timezone.utc)
    second = dt.datetime(2025, 1, 1, 11, 30, tzinfo=dt.timezone.utc)
    db.write_cursor(first)
    db.write_cursor(second)

    assert db.read_cursor() == second
    with db.connect() as conn:
        assert conn.execute("SELECT COUNT(*) FROM cursor").fetchone()[0] == 1


def test_record_events_stores_details(tmp_path):
    db = Database(path=tmp_path / "events.db")
    db.initialize()

    count = db.record_events(
        "2025-01-02T00:00:00",
        [
            StatusChanged(listing_id="L1", old="Active", new="Pending"),
            PriceChanged(listing_id="L1", old=500000, new=475000),
            OpenHouseAdded(listing_id="L2", open_house=OpenHouse("2025-01-04", "13:00", "15:00")),
        ],
    )

    assert count == 3
    events = db.fetch_events(listing_id="L1")
    assert events == [
        ("2025-01-02T00:00:00", "L1", "status_changed", "Active -> Pending"),
        ("2025-01-02T00:00:00", "L1", "price_changed", "500000 -> 475000"),
    ]
    assert db.fetch_events()[-1][3] == "2025-01-04 13:00-15:00"


def test_record_events_with_nothing_to_write(tmp_path):
    db = Database(path=tmp_path / "empty.db")
    db.initialize()
    assert db.record_events("2025-01-02T00:00:00", []) == 0
    assert db.fetch_events() == []


def test_runs_are_listed_newest_first(tmp_path):
    db = Database(path=tmp_path / "runs.db")
    db.initialize()
    db.add_run("2025-01-01T00:00:00", "success", "first")
    db.add_run("2025-01-01T00:02:00", "error", "fetch_failed: boom")

    runs = list(db.recent_runs())
    assert runs[0] == ("2025-01-01T00:02:00", "error", "fetch_failed: boom")
    assert runs[1][1] == "success"


def test_export_events_to_xlsx(tmp_path):
    db = Database(path=tmp_path / "export.db")
    db.initialize()
    db.record_events(
        "2025-04-01T00:05:00",
        [StatusChanged(listing_id="L9", old="Active", new="Closed")],
    )

    export_path = tmp_path / "out" / "events.xlsx"
    assert db.export_events_to_xlsx(export_path) == 1

    workbook = load_workbook(export_path)
    worksheet = workbook.active
    headers = [cell.value for cell in next(worksheet.iter_rows(min_row=1, max_row=1))]
    assert headers == ["occurred_at", "listing_id", "event_type", "details"]
    data_row = [cell.value for cell in next(worksheet.iter_rows(min_row=2, max_row=2))]
    assert data_row == ["2025-04-01T00:05:00", "L9", "status_changed", "Active -> Closed"]
