"""
Database helpers

Thin layer over pymongo. `db` is created at import time when DATABASE_URL and
DATABASE_NAME are set; the app factory can also be handed any pymongo-compatible
database object instead.
"""

import os
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

from errors import AppError

load_dotenv()

_client: Optional[MongoClient] = None
db = None

database_url = os.getenv("DATABASE_URL")
database_name = os.getenv("DATABASE_NAME")

if database_url and database_name:
    _client = MongoClient(database_url)
    db = _client[database_name]


def oid(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise AppError("Invalid ID format", 400)


def to_dict(doc):
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def create_document(database, collection_name: str, data: Union[BaseModel, dict]) -> Dict[str, Any]:
    """Insert a document, stamping created_at/updated_at. Returns the stored doc."""
    if database is None:
        raise AppError("Database not configured", 500)
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = datetime.utcnow()
    doc["created_at"] = now
    doc["updated_at"] = now
    result = database[collection_name].insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


def get_documents(database, collection_name: str, filter_dict: Optional[dict] = None,
                  limit: Optional[int] = None, skip: int = 0, sort=None) -> List[dict]:
    if database is None:
        raise AppError("Database not configured", 500)
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if skip:
        cursor = cursor.skip(skip)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


def paginate(database, collection_name: str, filter_dict: dict, page: int, limit: int,
             sort=None) -> Dict[str, Any]:
    page = max(page, 1)
    limit = max(limit, 1)
    docs = get_documents(database, collection_name, filter_dict, limit=limit,
                         skip=(page - 1) * limit, sort=sort or [("created_at", DESCENDING)])
    total = database[collection_name].count_documents(filter_dict)
    return {
        "items": [to_dict(d) for d in docs],
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": (total + limit - 1) // limit,
    }


def ensure_indexes(database) -> None:
    database["user"].create_index("email", unique=True)
    database["category"].create_index("name", unique=True)
    database["category"].create_index("slug", unique=True)
    database["product"].create_index([("category", ASCENDING), ("is_active", ASCENDING)])
    database["product"].create_index([("featured", ASCENDING), ("is_active", ASCENDING)])
    database["order"].create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
    database["order"].create_index("order_status")
    database["passwordreset"].create_index("token_hash")
    database["passwordreset"].create_index("expires_at")
