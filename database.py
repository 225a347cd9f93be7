"""
MongoDB access helpers.

The client is opened and closed by the application lifespan; routes receive
the database handle through the ``get_db`` dependency instead of a global.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import HTTPException, Request
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

from settings import DATABASE_NAME

logger = logging.getLogger(__name__)


def connect(uri: str) -> MongoClient:
    client = MongoClient(uri)
    logger.info("MongoDB client created")
    return client


def resolve_database(client: MongoClient) -> Database:
    return client.get_default_database(default=DATABASE_NAME)


def ensure_indexes(db: Database) -> None:
    db["user"].create_index("phone_number", unique=True)
    db["cart"].create_index([("user_id", ASCENDING), ("product_id", ASCENDING)])
    db["order"].create_index("user_id")


def get_db(request: Request) -> Database:
    return request.app.state.db


def to_obj_id(id_str) -> ObjectId:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise HTTPException(status_code=400, detail="Invalid id")


def serialize_doc(doc):
    """Turn a stored document into plain JSON-friendly values.

    ``_id`` becomes ``id`` and every ObjectId, at any depth, becomes a string.
    """
    if isinstance(doc, list):
        return [serialize_doc(d) for d in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if not isinstance(doc, dict):
        return doc
    out = {}
    for k, v in doc.items():
        if k == "_id":
            k = "id"
        out[k] = serialize_doc(v)
    return out


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    now = datetime.now(timezone.utc)
    data_dict["created_at"] = now
    data_dict["updated_at"] = now

    result = db[collection_name].insert_one(data_dict)
    return str(result.inserted_id)


def get_documents(
    db: Database,
    collection_name: str,
    filter_dict: Optional[dict] = None,
    sort: Optional[list] = None,
    limit: Optional[int] = None,
) -> list:
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)
