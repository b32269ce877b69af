"""
Metadata store access: one RecordStore per Mongo collection.

Kept apart from the FastAPI routes so query building can be unit-tested
without a database, and so tests can hand in an in-memory collection.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

logger = logging.getLogger("records")

# Fields matched as case-insensitive substrings instead of exact values.
SUBSTRING_FIELDS = ("courseName",)


def build_query(filters: Dict[str, Any]) -> Dict[str, Any]:
    """
    Turn request filters into a Mongo query document.

    - None / "" values are skipped (no constraint).
    - SUBSTRING_FIELDS become an unanchored, case-insensitive $regex. The
      user's text is escaped first so "C++" or ".*" match literally.
    - Everything else is an exact match on the given value.
    """
    query: Dict[str, Any] = {}
    for field, value in filters.items():
        if value is None or value == "":
            continue
        if field in SUBSTRING_FIELDS:
            query[field] = {"$regex": re.escape(str(value)), "$options": "i"}
        else:
            query[field] = value
    return query


def _normalise(doc: Dict[str, Any]) -> Dict[str, Any]:
    # ObjectId is not JSON serialisable; expose its hex string instead.
    if "_id" in doc:
        doc["_id"] = str(doc["_id"])
    return doc


class RecordStore:
    def __init__(self, collection):
        # motor AsyncIOMotorCollection (or anything with the same async API)
        self.collection = collection

    async def insert(self, record: BaseModel) -> Dict[str, Any]:
        """
        Persist one record and return it as stored, including its new _id.
        """
        doc = record.model_dump(by_alias=True, exclude={"id"})
        result = await self.collection.insert_one(doc)
        doc["_id"] = result.inserted_id
        logger.info("Inserted %s into %s", doc["_id"], self.collection.name)
        return _normalise(doc)

    async def find(self, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Return every record matching 'filters' (see build_query), in the
        store's natural order.
        """
        query = build_query(filters or {})
        docs = await self.collection.find(query).to_list(length=None)
        return [_normalise(d) for d in docs]
