"""
MongoDB access helpers.

The module-level ``db`` handle is opened by ``connect()`` from DATABASE_URL /
DATABASE_NAME when the app starts. Call sites go through ``collection()`` so a
different database (an in-memory one in tests) can be swapped in with
``use_database()``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from errors import InternalError, ValidationError

logger = logging.getLogger(__name__)

db: Optional[Database] = None


def use_database(database: Optional[Database]) -> None:
    global db
    db = database


def connect(url: str, name: str) -> Database:
    """Open a client for ``url`` and make ``name`` the active database."""
    database = MongoClient(url)[name]
    use_database(database)
    logger.info("Connected to MongoDB database %s", name)
    return database


def collection(name: str):
    if db is None:
        raise InternalError("Database not configured")
    return db[name]


def utcnow() -> datetime:
    # Mongo hands datetimes back naive, in UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
    """Insert ``data`` with created/updated timestamps and return the new id."""
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = collection(collection_name).insert_one(doc)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, newest_first: bool = False) -> List[Dict[str, Any]]:
    cursor = collection(collection_name).find(filter_dict or {})
    if newest_first:
        cursor = cursor.sort([("created_at", -1), ("_id", -1)])
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def to_object_id(id_str: str) -> ObjectId:
    if not ObjectId.is_valid(id_str):
        raise ValidationError(f"Invalid id: {id_str}")
    return ObjectId(id_str)


def find_by_id(collection_name: str, id_str: str) -> Optional[Dict[str, Any]]:
    if not ObjectId.is_valid(id_str):
        return None
    return collection(collection_name).find_one({"_id": ObjectId(id_str)})


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Return a JSON-friendly copy: ``_id`` becomes ``id`` and secrets are dropped."""
    if not doc:
        return None
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    d.pop("password_hash", None)
    return d


def ensure_indexes() -> None:
    collection("user").create_index([("email", ASCENDING)], unique=True)
    collection("cart").create_index([("user_id", ASCENDING)], unique=True)
    collection("order").create_index([("invoice_number", ASCENDING)], unique=True)
    collection("order").create_index([("user_id", ASCENDING), ("created_at", -1)])
    collection("product").create_index([("category", ASCENDING)])
