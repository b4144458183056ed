"""
Database helpers

Thin layer over pymongo shared by every router. `db` is None until
DATABASE_URL and DATABASE_NAME are set; routes reach it through the
`get_db` dependency so tests can swap in another database.
"""

import logging
from datetime import datetime, timezone
from math import ceil
from typing import Optional, Union

from bson import ObjectId
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import MongoClient

import config
from errors import ValidationFailed

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
db = None

if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]


def get_db():
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def oid(id_str: str) -> ObjectId:
    if not ObjectId.is_valid(id_str):
        raise HTTPException(status_code=400, detail="Invalid id")
    return ObjectId(id_str)


def create_document(database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()
    data_dict["created_at"] = now_utc()
    data_dict["updated_at"] = now_utc()
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def serialize_doc(doc):
    """Make a Mongo document JSON friendly: `_id` becomes `id`, ObjectIds become strings."""
    if doc is None:
        return None
    if isinstance(doc, list):
        return [serialize_doc(d) for d in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if not isinstance(doc, dict):
        return doc
    out = {}
    for k, v in doc.items():
        if k == "_id":
            out["id"] = str(v) if isinstance(v, ObjectId) else v
        else:
            out[k] = serialize_doc(v)
    return out


def parse_sort(sort: Optional[str], default=("created_at", -1)):
    """`field:desc` -> ("field", -1). Anything but `desc` sorts ascending."""
    if not sort:
        return default
    field, _, direction = sort.partition(":")
    if not field:
        raise ValidationFailed("Invalid sort")
    return field, -1 if direction == "desc" else 1


def pagination(total: int, page: int, limit: int) -> dict:
    return {
        "current": page,
        "pages": ceil(total / limit) if limit else 0,
        "has_next": page * limit < total,
        "has_prev": page > 1,
    }


def ensure_indexes(database) -> None:
    database["user"].create_index("email", unique=True)
    database["cart"].create_index("user_id", unique=True)
    database["order"].create_index("order_number", unique=True)
    database["order"].create_index("user_id")
    database["service_request"].create_index("user_id")
    database["service_type"].create_index("name", unique=True)
    database["equipment_type"].create_index("name", unique=True)
    logger.info("Indexes ensured on %s", getattr(database, "name", "database"))
