"""
MongoDB access for the finance tracker.

Collections are named after the lowercase schema class (see schemas.py):
"user", "category", "transaction", "budget", "notification".
Every document is owned by one user through its ``user_id`` field.
"""

import logging
import math
from datetime import date, datetime, time, timezone
from typing import Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

import config

logger = logging.getLogger(__name__)

client: Optional[MongoClient] = None
db: Optional[Database] = None

if config.DATABASE_URL and config.DATABASE_NAME:
    client = MongoClient(config.DATABASE_URL)
    db = client[config.DATABASE_NAME]
else:
    logger.warning("DATABASE_URL or DATABASE_NAME not set, database is not available")


def get_db() -> Database:
    """FastAPI dependency returning the configured database handle."""
    if db is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = dict(data)

    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now

    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def to_object_id(value) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def parse_object_id(value: str, entity: str = "Document") -> ObjectId:
    """Parse a path id; malformed ids are indistinguishable from missing ones."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=404, detail=f"{entity} not found")


def find_owned(database: Database, collection_name: str, doc_id: str, user_id: str,
               entity: str = "Document") -> dict:
    """Fetch a document by id scoped to its owner, or answer 404."""
    doc = database[collection_name].find_one({"_id": parse_object_id(doc_id, entity), "user_id": user_id})
    if doc is None:
        raise HTTPException(status_code=404, detail=f"{entity} not found")
    return doc


def day_start(value: date) -> datetime:
    return datetime.combine(value, time.min)


def day_end(value: date) -> datetime:
    return datetime.combine(value, time.max)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def date_range_filter(start: Optional[date], end: Optional[date]) -> dict:
    """Build an inclusive, whole-day ``date`` clause for a query filter."""
    clause: dict = {}
    if start is not None:
        clause["$gte"] = day_start(start)
    if end is not None:
        clause["$lte"] = day_end(end)
    return clause


def pagination(page: int, limit: int, total: int, returned: int) -> dict:
    skip = (page - 1) * limit
    return {
        "current": page,
        "pages": math.ceil(total / limit) if limit else 0,
        "total": total,
        "hasNext": skip + returned < total,
        "hasPrev": page > 1,
    }
