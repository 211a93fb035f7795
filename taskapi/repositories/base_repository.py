from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId

from taskapi.core import TaskApiBase
from taskapi.db import TaskApiDB


def to_object_id(value: str) -> Optional[ObjectId]:
    """Parse a string id; malformed ids yield None so lookups simply match nothing."""
    # ObjectId(None) would mint a fresh id
    if not isinstance(value, str):
        return None
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


class BaseRepository(TaskApiBase):
    """Repository bound to one collection of a TaskApiDB."""

    collection_name: str = ""

    def __init__(self, db: TaskApiDB, **kwargs):
        super().__init__(**kwargs)
        self._db = db
