"""
Database access for the BookCourier API.

A single MongoClient is opened at startup and shared by every request. Route
handlers receive the database handle through the ``get_db`` dependency so the
collection helpers below never touch module state directly.
"""
import logging
import os
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from fastapi import HTTPException
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_NAME = os.getenv("DATABASE_NAME", "bookCourier_db")

client: Optional[MongoClient] = None
db: Optional[Database] = None


def build_database_url() -> Optional[str]:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    user, password, host = os.getenv("DB_USER"), os.getenv("DB_PASS"), os.getenv("DB_HOST")
    if user and password and host:
        return f"mongodb+srv://{user}:{password}@{host}/?retryWrites=true&w=majority"
    return None


def connect(url: Optional[str] = None, name: Optional[str] = None) -> Database:
    """Open the shared client and make sure the server answers.

    Raises instead of returning a half-initialised handle, so the app refuses
    to start when MongoDB is unreachable.
    """
    global client, db
    url = url or build_database_url()
    if not url:
        raise RuntimeError("DATABASE_URL (or DB_USER/DB_PASS/DB_HOST) is not set")
    client = MongoClient(url, serverSelectionTimeoutMS=5000)
    client.admin.command("ping")
    db = client[name or DATABASE_NAME]
    logger.info("Connected to MongoDB database %s", db.name)
    return db


def close() -> None:
    global client, db
    if client is not None:
        client.close()
        logger.info("MongoDB connection closed")
    client = None
    db = None


def get_db() -> Database:
    if db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return db


# ----- Helpers -----

def to_object_id(id_str: str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid ID format")


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return doc
    d = dict(doc)
    for k, v in list(d.items()):
        if isinstance(v, ObjectId):
            d[k] = str(v)
    return d


def contains_pattern(text: str) -> Dict[str, str]:
    # case-insensitive substring match, user input taken literally
    return {"$regex": re.escape(text), "$options": "i"}


def create_document(
    database: Database,
    collection_name: str,
    data: Union[BaseModel, Dict[str, Any]],
    timestamp: bool = True,
) -> str:
    if isinstance(data, BaseModel):
        data_dict = data.model_dump(exclude_unset=True)
    else:
        data_dict = dict(data)
    data_dict.pop("_id", None)
    if timestamp:
        data_dict["createdAt"] = datetime.now(timezone.utc)
    result = database[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    database: Database,
    collection_name: str,
    filter_dict: Optional[Dict[str, Any]] = None,
    sort: Optional[List[tuple]] = None,
) -> List[Dict[str, Any]]:
    cursor = database[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    return [serialize(d) for d in cursor]


def get_document(database: Database, collection_name: str, filter_dict: Dict[str, Any]) -> Dict[str, Any]:
    doc = database[collection_name].find_one(filter_dict)
    if not doc:
        raise HTTPException(status_code=404, detail="Not found")
    return serialize(doc)


def update_document(
    database: Database, collection_name: str, id_str: str, fields: Dict[str, Any]
) -> Dict[str, Any]:
    """Merge ``fields`` into the stored document; absent fields stay untouched."""
    _id = to_object_id(id_str)
    update = {k: v for k, v in fields.items() if k != "_id"}
    if update:
        res = database[collection_name].update_one({"_id": _id}, {"$set": update})
        matched, modified = res.matched_count, res.modified_count
    else:
        matched, modified = database[collection_name].count_documents({"_id": _id}), 0
    if matched == 0:
        raise HTTPException(status_code=404, detail="Not found")
    return {"acknowledged": True, "matchedCount": matched, "modifiedCount": modified}


def delete_document(database: Database, collection_name: str, id_str: str) -> Dict[str, Any]:
    res = database[collection_name].delete_one({"_id": to_object_id(id_str)})
    if res.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Not found")
    return {"acknowledged": True, "deletedCount": res.deleted_count}
