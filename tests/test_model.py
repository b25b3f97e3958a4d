from datetime import datetime, timedelta, timezone

from portfolio.model import (
    SkillLevel,
    create_record,
    sort_by_last_modified,
    strip_persistence_fields,
    to_public,
    update_record,
)


def test_create_record_stamps_id_and_matching_timestamps(clock, make_record):
    record = create_record(make_record(id="stale", createdAt="old"), clock=clock, id_factory=lambda: "abc")
    assert record["id"] == "abc"
    assert record["createdAt"] == record["lastModified"]
    assert record["isPublic"] is False
    assert record["portfolioTitle"] == "Full Stack Developer"


def test_create_record_ids_are_unique(make_record):
    ids = {create_record(make_record())["id"] for _ in range(50)}
    assert len(ids) == 50


def test_update_record_preserves_identity(clock, make_record):
    existing = create_record(make_record(), clock=clock, id_factory=lambda: "abc")
    updated = update_record(existing, {"id": "other", "createdAt": None, "summary": "New"}, clock=clock)
    assert updated["id"] == "abc"
    assert updated["createdAt"] == existing["createdAt"]
    assert updated["summary"] == "New"
    assert updated["lastModified"] > existing["lastModified"]


def test_update_record_never_moves_last_modified_backwards(make_record):
    future = datetime(2030, 1, 1, tzinfo=timezone.utc)
    existing = create_record(make_record(), clock=lambda: future)
    updated = update_record(existing, {"summary": "x"}, clock=lambda: future - timedelta(days=1))
    assert updated["lastModified"] == future


def test_update_record_ignores_is_public_in_payload(make_record):
    existing = create_record(make_record())
    assert update_record(existing, {"isPublic": True})["isPublic"] is False


def test_sort_by_last_modified_newest_first():
    base = datetime(2024, 1, 1, tzinfo=timezone.utc)
    records = [
        {"id": "a", "lastModified": base},
        {"id": "b"},
        {"id": "c", "lastModified": base + timedelta(hours=1)},
    ]
    assert [r["id"] for r in sort_by_last_modified(records)] == ["c", "a", "b"]


def test_strip_persistence_fields(make_record):
    record = create_record(make_record())
    record["ownerId"] = "uid-1"
    stripped = strip_persistence_fields(record)
    for key in ("id", "createdAt", "lastModified", "isPublic", "ownerId"):
        assert key not in stripped


def test_to_public_serializes_datetimes_and_hides_owner(make_record):
    record = create_record(make_record())
    record["ownerId"] = "uid-1"
    doc = to_public(record)
    assert "ownerId" not in doc
    assert isinstance(doc["createdAt"], str)


def test_skill_level_coerce_defaults_to_intermediate():
    assert SkillLevel.coerce("Expert") == "Expert"
    assert SkillLevel.coerce("Wizard") == "Intermediate"
