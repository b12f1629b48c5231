"""
MongoDB access

A single pymongo client is created at import time when DATABASE_URL and
DATABASE_NAME are configured. Route handlers receive the database through the
``get_db`` dependency so tests can swap it out with
``app.dependency_overrides``.
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bson import ObjectId
from pymongo import MongoClient

import config
from errors import ValidationFailed, ReWearError

_client = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]


def get_db():
    if db is None:
        raise ReWearError("Database not available. Check DATABASE_URL and DATABASE_NAME.")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database, collection_name: str, data) -> str:
    """Insert a pydantic model or dict, stamping created_at/updated_at."""
    if hasattr(data, "model_dump"):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)
    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def parse_object_id(value, label: str = "id") -> ObjectId:
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(str(value)):
        raise ValidationFailed(f"Invalid {label}")
    return ObjectId(str(value))


def to_public(doc: Optional[dict]) -> Optional[dict]:
    """Make a stored document JSON-friendly: ``_id`` becomes ``id``, ObjectIds become strings."""
    if doc is None:
        return None
    out: Dict[str, Any] = {}
    for key, value in doc.items():
        if key == "password_hash":
            continue
        if key == "_id":
            out["id"] = str(value)
            continue
        out[key] = _jsonable(value)
    return out


def _jsonable(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


def paginate(page: int, limit: int, total: int) -> dict:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }
