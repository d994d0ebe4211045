"""
MongoDB connection and small document helpers.

The client is created lazily by pymongo, so importing this module does not
require a running server.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pymongo import MongoClient
from pymongo.database import Database

from config import DATABASE_NAME, DATABASE_URL

client = MongoClient(DATABASE_URL, serverSelectionTimeoutMS=5000, tz_aware=True)
db: Database = client[DATABASE_NAME]


def create_document(collection_name: str, data: Dict[str, Any], database: Optional[Database] = None) -> str:
    database = db if database is None else database
    doc = dict(data)
    now = datetime.now(timezone.utc)
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def upsert_document(collection_name: str, doc_id: str, data: Dict[str, Any],
                    database: Optional[Database] = None) -> None:
    database = db if database is None else database
    doc = dict(data)
    doc["_id"] = doc_id
    doc["updated_at"] = datetime.now(timezone.utc)
    database[collection_name].replace_one({"_id": doc_id}, doc, upsert=True)


def get_documents(collection_name: str, filter_dict: Optional[Dict[str, Any]] = None,
                  limit: Optional[int] = None, database: Optional[Database] = None) -> List[Dict[str, Any]]:
    database = db if database is None else database
    cursor = database[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
