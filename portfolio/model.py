"""
Portfolio records.

A record is a plain dict using the same camelCase keys as the JSON
import/export format. The helpers here never do I/O; the clock and the id
factory are injectable so stores and tests can control them.
"""
import copy
import uuid
from datetime import datetime, timezone
from enum import Enum


class SkillLevel(str, Enum):
    NOVICE = "Novice"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"
    EXPERT = "Expert"

    @classmethod
    def coerce(cls, value) -> str:
        try:
            return cls(value).value
        except ValueError:
            return cls.INTERMEDIATE.value


SCALAR_FIELDS = (
    "portfolioTitle",
    "firstName",
    "lastName",
    "email",
    "summary",
    "template",
    "theme",
)

# Sub-fields of each repeating collection, in editor order.
COLLECTION_FIELDS = {
    "experience": ("title", "company", "dates", "description"),
    "education": ("degree", "institution", "year"),
    "skills": ("name", "level"),
    "projects": ("title", "description", "technologies", "liveUrl", "repoUrl"),
}

PICTURE_FIELD = "profilePic"

PERSISTENCE_FIELDS = ("id", "createdAt", "lastModified", "isPublic", "ownerId")

RECORD_FIELDS = SCALAR_FIELDS + (PICTURE_FIELD,) + tuple(COLLECTION_FIELDS)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def strip_persistence_fields(record: dict) -> dict:
    return {k: copy.deepcopy(v) for k, v in record.items() if k not in PERSISTENCE_FIELDS}


def create_record(payload: dict, clock=utcnow, id_factory=new_id) -> dict:
    """
    Stamp a freshly collected form payload as a new record.
    Any id or timestamps carried by the payload are discarded.
    """
    now = clock()
    record = strip_persistence_fields(payload)
    record.update({
        "id": id_factory(),
        "isPublic": False,
        "createdAt": now,
        "lastModified": now,
    })
    return record


def update_record(existing: dict, payload: dict, clock=utcnow) -> dict:
    """
    Overlay payload onto an existing record (payload wins).

    id, createdAt and isPublic always come from the existing record; publication
    only changes through publish/unpublish. lastModified never goes backwards.
    """
    now = clock()
    previous = existing.get("lastModified")
    if previous is not None and previous > now:
        now = previous

    record = copy.deepcopy(existing)
    record.update(strip_persistence_fields(payload))
    record["id"] = existing["id"]
    record["createdAt"] = existing["createdAt"]
    record["isPublic"] = bool(existing.get("isPublic", False))
    record["lastModified"] = now
    return record


def sort_by_last_modified(records: list) -> list:
    """Newest first; records without a timestamp sink to the bottom."""
    oldest = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(records, key=lambda r: r.get("lastModified") or oldest, reverse=True)


def to_public(record: dict) -> dict:
    """JSON-safe copy of a record for API responses."""
    if not record:
        return record
    doc = {}
    for key, value in record.items():
        if key == "ownerId":
            continue
        doc[key] = value.isoformat() if isinstance(value, datetime) else copy.deepcopy(value)
    return doc
