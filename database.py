"""
MongoDB access

`db` is a pymongo Database when DATABASE_URL and DATABASE_NAME are set,
otherwise None. Collections are named after the schema classes in
schemas.py, lower-cased (Product -> "product").
"""
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient

import config
from errors import ValidationError

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    client = MongoClient(config.DATABASE_URL)
    db = client[config.DATABASE_NAME]


def now() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Parse an id string; returns None for anything that is not a valid ObjectId."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def create_document(collection_name: str, data: Union[BaseModel, Dict[str, Any]], database=None) -> ObjectId:
    """Insert `data` stamped with created_at/updated_at; returns the new _id."""
    database = db if database is None else database
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    ts = now()
    doc.setdefault("created_at", ts)
    doc.setdefault("updated_at", ts)
    return database[collection_name].insert_one(doc).inserted_id


def ensure_indexes(database) -> None:
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["artisan"].create_index([("user_id", ASCENDING)], unique=True)
    database["artisan"].create_index([("location.city", ASCENDING), ("location.state", ASCENDING)])
    database["artisan"].create_index([("stats.rating", DESCENDING)])
    database["product"].create_index([("slug", ASCENDING)], unique=True)
    database["product"].create_index([("category.primary", ASCENDING), ("status", ASCENDING)])
    database["product"].create_index([("artisan_id", ASCENDING), ("status", ASCENDING)])
    database["product"].create_index([("created_at", DESCENDING)])
    logger.info("MongoDB indexes ensured on %s", getattr(database, "name", "database"))


def serialize(value: Any) -> Any:
    """Make a Mongo document JSON friendly: `_id` becomes `id`, ObjectIds become strings."""
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            if k == "_id":
                out["id"] = serialize(v)
            else:
                out[k] = serialize(v)
        return out
    if isinstance(value, list):
        return [serialize(v) for v in value]
    if isinstance(value, ObjectId):
        return str(value)
    return value


def get_db():
    if db is None:
        raise HTTPException(500, "Database not configured")
    return db


def sort_direction(order: Optional[str]) -> int:
    return ASCENDING if (order or "").lower() == "asc" else DESCENDING


def paginate(collection, query: Dict[str, Any], sort_spec, page: int, limit: int, projection=None) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
    """Run `query` for one page. Returns the documents and the page envelope."""
    if page < 1:
        raise ValidationError("page must be 1 or greater")
    if limit < 1:
        raise ValidationError("limit must be 1 or greater")
    limit = min(limit, config.MAX_PAGE_SIZE)
    total = collection.count_documents(query)
    cursor = collection.find(query, projection).sort(sort_spec).skip((page - 1) * limit).limit(limit)
    total_pages = math.ceil(total / limit)
    return list(cursor), {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
