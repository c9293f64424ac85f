"""
Database helpers

Thin wrappers over a pymongo Database handle. Every helper takes the handle
explicitly so callers (and tests) decide which database they talk to.
Documents get created_at / updated_at stamped here.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.database import Database

logger = logging.getLogger(__name__)


def connect(database_url: str, database_name: str) -> Database:
    client = MongoClient(database_url)
    return client[database_name]


def ensure_indexes(db: Database) -> None:
    db["user"].create_index([("username", ASCENDING)], unique=True)
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["order"].create_index([("user_id", ASCENDING)])


def now() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse an id string; None when it is not a valid ObjectId."""
    if value is None:
        return None
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def to_serializable(doc):
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    for key, value in d.items():
        if isinstance(value, ObjectId):
            d[key] = str(value)
        elif isinstance(value, dict):
            d[key] = to_serializable(value)
    return d


def create_document(db: Database, collection: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    if isinstance(data, BaseModel):
        data = data.model_dump()
    doc = dict(data)
    stamp = now()
    doc.setdefault("created_at", stamp)
    doc["updated_at"] = stamp
    result = db[collection].insert_one(doc)
    return str(result.inserted_id)


def get_documents(db: Database, collection: str,
                  filter_dict: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    return list(db[collection].find(filter_dict or {}))


def _selector(oid: ObjectId, match: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    selector = dict(match or {})
    selector["_id"] = oid
    return selector


def get_document(db: Database, collection: str, doc_id: Any,
                 match: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    oid = to_object_id(doc_id)
    if oid is None:
        return None
    return db[collection].find_one(_selector(oid, match))


def update_document(db: Database, collection: str, doc_id: Any, fields: Dict[str, Any],
                    match: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
    """Set the given fields and return the updated document, or None if nothing matched."""
    oid = to_object_id(doc_id)
    if oid is None:
        return None
    update = dict(fields)
    update["updated_at"] = now()
    return db[collection].find_one_and_update(
        _selector(oid, match), {"$set": update}, return_document=ReturnDocument.AFTER
    )


def delete_document(db: Database, collection: str, doc_id: Any,
                    match: Optional[Dict[str, Any]] = None) -> bool:
    oid = to_object_id(doc_id)
    if oid is None:
        return False
    res = db[collection].delete_one(_selector(oid, match))
    return res.deleted_count > 0
