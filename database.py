"""
MongoDB access helpers.

`db` is the module-level database handle (None when DATABASE_URL or
DATABASE_NAME is not configured). Every helper reads it at call time so the
handle can be swapped, e.g. for tests.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import MongoClient

import config
from errors import DatabaseUnavailableError, InvalidIdError

_client = None
db = None


def connect(database_url: Optional[str] = None, database_name: Optional[str] = None):
    """Open the Mongo client and bind `db`."""
    global _client, db
    database_url = database_url or config.DATABASE_URL
    database_name = database_name or config.DATABASE_NAME
    if not database_url or not database_name:
        return None
    _client = MongoClient(database_url)
    db = _client[database_name]
    return db


if config.DATABASE_URL and config.DATABASE_NAME:
    connect()


def utcnow() -> datetime:
    # BSON datetimes come back naive (UTC); store them that way too
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_collection(collection_name: str):
    if db is None:
        raise DatabaseUnavailableError()
    return db[collection_name]


def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise InvalidIdError(id_str)


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return doc
    doc["id"] = str(doc.pop("_id"))
    # Convert datetimes to isoformat
    for k, v in list(doc.items()):
        if isinstance(v, datetime):
            doc[k] = v.isoformat()
    return doc


def _to_dict(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump(by_alias=True)
    return dict(data)


def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document, stamping createdAt/updatedAt. Returns the new id."""
    data_dict = _to_dict(data)
    now = utcnow()
    data_dict["createdAt"] = now
    data_dict["updatedAt"] = now
    result = get_collection(collection_name).insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    collection_name: str,
    filter_dict: Optional[dict] = None,
    limit: Optional[int] = None,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
) -> List[Dict[str, Any]]:
    cursor = get_collection(collection_name).find(filter_dict or {})
    if sort:
        cursor = cursor.sort(list(sort))
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def get_document(collection_name: str, id_str: str) -> Optional[Dict[str, Any]]:
    return get_collection(collection_name).find_one({"_id": to_object_id(id_str)})


def update_document(collection_name: str, id_str: str, data: Union[BaseModel, dict]) -> bool:
    """Apply a partial update. Returns False when no document matched."""
    data_dict = _to_dict(data)
    data_dict["updatedAt"] = utcnow()
    res = get_collection(collection_name).update_one(
        {"_id": to_object_id(id_str)}, {"$set": data_dict}
    )
    return res.matched_count > 0


def delete_document(collection_name: str, id_str: str) -> bool:
    res = get_collection(collection_name).delete_one({"_id": to_object_id(id_str)})
    return res.deleted_count > 0


def delete_documents(collection_name: str, filter_dict: dict) -> int:
    res = get_collection(collection_name).delete_many(filter_dict)
    return res.deleted_count


def count_documents(collection_name: str, filter_dict: Optional[dict] = None) -> int:
    return get_collection(collection_name).count_documents(filter_dict or {})
