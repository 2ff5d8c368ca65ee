from datetime import datetime, timedelta, timezone

import pytest

from database import insert_detection, load_recent_detections
from detection_pipeline import DetectionRecord
from errors import RecordPersistError

BASE_TIME = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def record(n, owner_id="farmer-1"):
    return DetectionRecord(
        id=f"det-{n}",
        owner_id=owner_id,
        image_url=f"https://cdn.example/{n}.jpg",
        disease_name="Healthy Plant",
        confidence=0.6,
        severity="low",
        recommendations="Keep watering.",
        created_at=BASE_TIME + timedelta(minutes=n),
    )


def test_insert_and_load_round_trip(engine):
    assert insert_detection(record(1), engine) == "det-1"

    rows = load_recent_detections("farmer-1", engine=engine)
    assert len(rows) == 1
    row = rows[0]
    assert row["id"] == "det-1"
    assert row["user_id"] == "farmer-1"
    assert row["disease_name"] == "Healthy Plant"
    assert row["confidence"] == pytest.approx(0.6)
    assert row["created_at"] == (BASE_TIME + timedelta(minutes=1)).isoformat()


def test_recent_detections_newest_first_and_limited(engine):
    for n in range(7):
        insert_detection(record(n), engine)
    insert_detection(record(99, owner_id="someone-else"), engine)
    insert_detection(record(100, owner_id=None), engine)

    rows = load_recent_detections("farmer-1", engine=engine)
    assert [r["id"] for r in rows] == ["det-6", "det-5", "det-4", "det-3", "det-2"]

    assert len(load_recent_detections("farmer-1", limit=2, engine=engine)) == 2
    assert load_recent_detections("nobody", engine=engine) == []


def test_duplicate_id_raises_record_persist_error(engine):
    insert_detection(record(1), engine)
    with pytest.raises(RecordPersistError):
        insert_detection(record(1), engine)
