"""
MongoDB connection and small document helpers.

The connection is opened at import time when DATABASE_URL and DATABASE_NAME
are set; otherwise ``db`` stays None and the API reports the database as not
configured.
"""
import os
from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException
from pymongo import ASCENDING, MongoClient

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

client = None
db = None

if DATABASE_URL and DATABASE_NAME:
    client = MongoClient(DATABASE_URL)
    db = client[DATABASE_NAME]


def get_db():
    if db is None:
        raise HTTPException(500, "Database not configured")
    return db


def utcnow() -> datetime:
    # naive UTC, which is what pymongo hands back on reads
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(value) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    d = {**doc}
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    for k, v in list(d.items()):
        if isinstance(v, ObjectId):
            d[k] = str(v)
    return d


def create_document(database, collection_name: str, data: dict) -> dict:
    """Insert a document stamped with created_at/updated_at and return it."""
    now = utcnow()
    doc = {**data, "created_at": now, "updated_at": now}
    inserted_id = database[collection_name].insert_one(doc).inserted_id
    doc["_id"] = inserted_id
    return doc


def ensure_indexes(database) -> None:
    database["product"].create_index([("slug", ASCENDING)], unique=True)
    database["product"].create_index([("sku", ASCENDING)], unique=True)
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["admin"].create_index([("email", ASCENDING)], unique=True)
    database["site_setting"].create_index([("key", ASCENDING)], unique=True)
    database["order"].create_index([("user_id", ASCENDING)])
    database["order"].create_index([("gateway_order_id", ASCENDING)])
    database["revoked_token"].create_index([("jti", ASCENDING)], unique=True)
    database["revoked_token"].create_index([("expires_at", ASCENDING)], expireAfterSeconds=0)
