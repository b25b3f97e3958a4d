"""
Persistence gateway for portfolio records.

Records are scoped to an owner id. Publishing copies a record into a separate
public collection keyed by the same id; the isPublic flag on the owner's record
and the existence of that copy must always agree.

Ordering inside the two-step operations:
- publish writes the public copy, then sets the flag;
- unpublish clears the flag, then removes the copy;
- delete removes the public copy, then the record.
A failure between steps leaves the owner's record in place so a retry of the
same operation completes it.
"""
import copy
import threading
from datetime import datetime, timezone

from bson.objectid import ObjectId
from loguru import logger
from pymongo import MongoClient, ReturnDocument
from pymongo.errors import PyMongoError

from .errors import PortfolioNotFound, StorageError
from .model import create_record, new_id, strip_persistence_fields, update_record, utcnow


class PortfolioStore:
    """Interface shared by the in-memory and MongoDB stores."""

    def __init__(self, share_base_url: str, clock=utcnow, id_factory=new_id):
        self.share_base_url = share_base_url
        self.clock = clock
        self.id_factory = id_factory

    def share_url(self, portfolio_id: str) -> str:
        return f"{self.share_base_url}?id={portfolio_id}"

    def list(self, owner_id: str) -> list:
        raise NotImplementedError

    def get(self, owner_id: str, portfolio_id: str):
        raise NotImplementedError

    def create(self, owner_id: str, payload: dict) -> str:
        raise NotImplementedError

    def update(self, owner_id: str, portfolio_id: str, payload: dict):
        raise NotImplementedError

    def delete(self, owner_id: str, portfolio_id: str):
        raise NotImplementedError

    def publish(self, owner_id: str, portfolio_id: str) -> str:
        raise NotImplementedError

    def unpublish(self, owner_id: str, portfolio_id: str):
        raise NotImplementedError

    def get_public(self, portfolio_id: str):
        raise NotImplementedError

    def _require(self, owner_id: str, portfolio_id: str) -> dict:
        record = self.get(owner_id, portfolio_id)
        if record is None:
            raise PortfolioNotFound(f"Portfolio {portfolio_id} was not found.")
        return record


def public_copy(record: dict) -> dict:
    doc = strip_persistence_fields(record)
    doc["id"] = record["id"]
    doc["lastModified"] = record.get("lastModified")
    return doc


# ==========================================================
#                     IN-MEMORY STORE
# ==========================================================

class MemoryPortfolioStore(PortfolioStore):
    def __init__(self, share_base_url: str, clock=utcnow, id_factory=new_id):
        super().__init__(share_base_url, clock=clock, id_factory=id_factory)
        self._lock = threading.Lock()
        self._records = {}   # owner_id -> {portfolio_id: record}
        self._public = {}    # portfolio_id -> public copy

    def list(self, owner_id):
        with self._lock:
            return [copy.deepcopy(r) for r in self._records.get(owner_id, {}).values()]

    def get(self, owner_id, portfolio_id):
        with self._lock:
            record = self._records.get(owner_id, {}).get(portfolio_id)
            return copy.deepcopy(record) if record is not None else None

    def create(self, owner_id, payload):
        record = create_record(payload, clock=self.clock, id_factory=self.id_factory)
        with self._lock:
            self._records.setdefault(owner_id, {})[record["id"]] = record
        logger.info("Created portfolio {} for {}", record["id"], owner_id)
        return record["id"]

    def _current(self, owner_id, portfolio_id) -> dict:
        # caller holds self._lock
        record = self._records.get(owner_id, {}).get(portfolio_id)
        if record is None:
            raise PortfolioNotFound(f"Portfolio {portfolio_id} was not found.")
        return record

    def update(self, owner_id, portfolio_id, payload):
        existing = self._require(owner_id, portfolio_id)
        record = update_record(existing, payload, clock=self.clock)
        with self._lock:
            # publication may have changed since the read above
            record["isPublic"] = self._current(owner_id, portfolio_id)["isPublic"]
            self._records[owner_id][portfolio_id] = record
            if record["isPublic"]:
                self._public[portfolio_id] = public_copy(record)
        logger.info("Updated portfolio {} for {}", portfolio_id, owner_id)

    def delete(self, owner_id, portfolio_id):
        with self._lock:
            self._current(owner_id, portfolio_id)
            self._public.pop(portfolio_id, None)
            del self._records[owner_id][portfolio_id]
        logger.info("Deleted portfolio {} for {}", portfolio_id, owner_id)

    def publish(self, owner_id, portfolio_id):
        with self._lock:
            record = self._current(owner_id, portfolio_id)
            record["isPublic"] = True
            self._public[portfolio_id] = public_copy(record)
        logger.info("Published portfolio {}", portfolio_id)
        return self.share_url(portfolio_id)

    def unpublish(self, owner_id, portfolio_id):
        with self._lock:
            self._current(owner_id, portfolio_id)["isPublic"] = False
            self._public.pop(portfolio_id, None)
        logger.info("Unpublished portfolio {}", portfolio_id)

    def get_public(self, portfolio_id):
        with self._lock:
            doc = self._public.get(portfolio_id)
            return copy.deepcopy(doc) if doc is not None else None


# ==========================================================
#                      MONGODB STORE
# ==========================================================

def _as_utc(value):
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _from_doc(doc: dict):
    if not doc:
        return None
    doc = {**doc}
    doc["id"] = str(doc.pop("_id"))
    for key in ("createdAt", "lastModified"):
        if key in doc:
            doc[key] = _as_utc(doc[key])
    return doc


def _to_doc(record: dict, owner_id: str = None) -> dict:
    doc = {k: v for k, v in record.items() if k != "id"}
    doc["_id"] = record["id"]
    if owner_id is not None:
        doc["ownerId"] = owner_id
    return doc


class MongoPortfolioStore(PortfolioStore):
    def __init__(self, db, share_base_url: str, clock=utcnow, id_factory=None):
        super().__init__(share_base_url, clock=clock, id_factory=id_factory or (lambda: str(ObjectId())))
        self.records = db["portfolios"]
        self.public = db["public_portfolios"]

    @classmethod
    def from_url(cls, url: str, db_name: str, share_base_url: str):
        client = MongoClient(url, tz_aware=True)
        return cls(client[db_name], share_base_url)

    def _run(self, what: str, fn):
        try:
            return fn()
        except PyMongoError as exc:
            logger.error("MongoDB {} failed: {}", what, exc)
            raise StorageError(f"Could not {what} portfolio.") from exc

    def list(self, owner_id):
        docs = self._run("list", lambda: list(self.records.find({"ownerId": owner_id})))
        return [_from_doc(d) for d in docs]

    def get(self, owner_id, portfolio_id):
        doc = self._run("load", lambda: self.records.find_one({"_id": portfolio_id, "ownerId": owner_id}))
        return _from_doc(doc)

    def create(self, owner_id, payload):
        record = create_record(payload, clock=self.clock, id_factory=self.id_factory)
        self._run("save", lambda: self.records.insert_one(_to_doc(record, owner_id)))
        logger.info("Created portfolio {} for {}", record["id"], owner_id)
        return record["id"]

    def _sync_public_copy(self, owner_id, portfolio_id):
        """Drop the public copy when the owner's record is gone or no longer public."""
        doc = self._run("update", lambda: self.records.find_one(
            {"_id": portfolio_id, "ownerId": owner_id}, {"isPublic": 1}
        ))
        if not doc or not doc.get("isPublic"):
            self._run("update", lambda: self.public.delete_one({"_id": portfolio_id}))

    def update(self, owner_id, portfolio_id, payload):
        existing = self._require(owner_id, portfolio_id)
        record = update_record(existing, payload, clock=self.clock)
        # publication only changes through publish/unpublish
        changes = {k: v for k, v in record.items() if k not in ("id", "createdAt", "ownerId", "isPublic")}
        doc = self._run("update", lambda: self.records.find_one_and_update(
            {"_id": portfolio_id, "ownerId": owner_id}, {"$set": changes},
            return_document=ReturnDocument.AFTER,
        ))
        if doc is None:
            raise PortfolioNotFound(f"Portfolio {portfolio_id} was not found.")
        record = _from_doc(doc)
        record.pop("ownerId", None)
        if record.get("isPublic"):
            self._run("update", lambda: self.public.replace_one(
                {"_id": portfolio_id}, _to_doc(public_copy(record)), upsert=True
            ))
            self._sync_public_copy(owner_id, portfolio_id)
        logger.info("Updated portfolio {} for {}", portfolio_id, owner_id)

    def delete(self, owner_id, portfolio_id):
        self._require(owner_id, portfolio_id)
        self._run("delete", lambda: self.public.delete_one({"_id": portfolio_id}))
        result = self._run("delete", lambda: self.records.delete_one({"_id": portfolio_id, "ownerId": owner_id}))
        if not result.deleted_count:
            raise PortfolioNotFound(f"Portfolio {portfolio_id} was not found.")
        logger.info("Deleted portfolio {} for {}", portfolio_id, owner_id)

    def publish(self, owner_id, portfolio_id):
        record = self._require(owner_id, portfolio_id)
        self._run("publish", lambda: self.public.replace_one(
            {"_id": portfolio_id}, _to_doc(public_copy(record)), upsert=True
        ))
        result = self._run("publish", lambda: self.records.update_one(
            {"_id": portfolio_id, "ownerId": owner_id}, {"$set": {"isPublic": True}}
        ))
        if not result.matched_count:
            self._run("publish", lambda: self.public.delete_one({"_id": portfolio_id}))
            raise PortfolioNotFound(f"Portfolio {portfolio_id} was not found.")
        logger.info("Published portfolio {}", portfolio_id)
        return self.share_url(portfolio_id)

    def unpublish(self, owner_id, portfolio_id):
        self._require(owner_id, portfolio_id)
        self._run("unpublish", lambda: self.records.update_one(
            {"_id": portfolio_id, "ownerId": owner_id}, {"$set": {"isPublic": False}}
        ))
        self._run("unpublish", lambda: self.public.delete_one({"_id": portfolio_id}))
        logger.info("Unpublished portfolio {}", portfolio_id)

    def get_public(self, portfolio_id):
        doc = self._run("load", lambda: self.public.find_one({"_id": portfolio_id}))
        return _from_doc(doc)
