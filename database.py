"""
MongoDB access for the Volunteer Platform API.

Each collection holds one entity kind: "user", "ngo", "event", "donation".
Route handlers receive the database through the `get_db` dependency so
tests can swap in an in-memory one.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

import config
from errors import NotFoundError

logger = logging.getLogger(__name__)

USERS = "user"
NGOS = "ngo"
EVENTS = "event"
DONATIONS = "donation"

# MongoClient connects lazily, so importing this module never blocks
client = MongoClient(config.DATABASE_URL, serverSelectionTimeoutMS=5000, tz_aware=False)
db = client[config.DATABASE_NAME]


def get_db() -> Database:
    return db


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what pymongo hands back on reads"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(value: Union[str, ObjectId, None], message: str = "Resource not found") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFoundError(message, resource_id=str(value))


def serialize_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Make a stored document JSON friendly: `_id` becomes `id`, ObjectIds become strings"""
    if not doc:
        return doc
    out = {}
    for key, value in doc.items():
        if key == "_id":
            out["id"] = str(value)
        elif key == "password":
            continue
        else:
            out[key] = _serialize_value(value)
    return out


def _serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [_serialize_value(v) for v in value]
    if isinstance(value, dict):
        return serialize_doc(value)
    return value


def create_document(database: Database, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> ObjectId:
    """Insert a document stamped with createdAt/updatedAt and return its id"""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(by_alias=True)
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict.setdefault("createdAt", now)
    data_dict["updatedAt"] = now
    result = database[collection_name].insert_one(data_dict)
    data_dict["_id"] = result.inserted_id
    return result.inserted_id


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    sort: Optional[List] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def ensure_indexes(database: Database) -> None:
    """Create the indexes the services rely on for uniqueness"""
    database[USERS].create_index("email", unique=True)
    database[USERS].create_index("role")

    database[NGOS].create_index("email", unique=True)
    database[NGOS].create_index("status")
    database[NGOS].create_index("ownerUserId")

    database[EVENTS].create_index([("organizationId", ASCENDING), ("date", DESCENDING)])
    database[EVENTS].create_index("date")
    database[EVENTS].create_index("volunteerIds")

    # sparse: entries without payment refs must not collide with each other
    database[DONATIONS].create_index("paymentId", unique=True, sparse=True)
    database[DONATIONS].create_index("orderId", unique=True, sparse=True)
    database[DONATIONS].create_index([("organizationId", ASCENDING), ("paymentStatus", ASCENDING)])
    database[DONATIONS].create_index([("donorId", ASCENDING), ("createdAt", DESCENDING)])
    logger.info("Database indexes ensured")
