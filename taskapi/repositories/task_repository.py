import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING

from taskapi.db import TASKS
from taskapi.repositories.base_repository import BaseRepository, to_object_id
from taskapi.types import Task, TaskCreate, TaskListQuery, TaskPriority, TaskStatus

# Public (camelCase) sort keys to stored field names; enums sort by declaration rank
SORT_FIELD_MAP = {
    "id": "_id",
    "title": "title",
    "description": "description",
    "status": "status_rank",
    "priority": "priority_rank",
    "dueDate": "due_date",
    "userId": "user_id",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


def enum_rank(value: Any) -> int:
    """Position of an enum member in its declaration, e.g. LOW=0 < MEDIUM=1 < HIGH=2."""
    return list(type(value)).index(value)


class TaskRepository(BaseRepository):
    """Task persistence. Every operation is scoped to the owning user's id."""

    collection_name = TASKS

    @staticmethod
    def to_model(doc: dict) -> Task:
        return Task(
            id=str(doc["_id"]),
            title=doc["title"],
            description=doc.get("description"),
            status=TaskStatus(doc["status"]),
            priority=TaskPriority(doc["priority"]),
            due_date=doc.get("due_date"),
            user_id=str(doc["user_id"]),
            created_at=doc["created_at"],
            updated_at=doc["updated_at"],
        )

    @staticmethod
    def build_filter(user_oid: Any, query: TaskListQuery) -> Dict[str, Any]:
        """Mongo filter for a listing; shared by the page query and the count."""
        mongo_filter: Dict[str, Any] = {"user_id": user_oid}
        if query.status is not None:
            mongo_filter["status"] = query.status.value
        if query.priority is not None:
            mongo_filter["priority"] = query.priority.value
        if query.search:
            pattern = re.escape(query.search)
            mongo_filter["$or"] = [
                {"title": {"$regex": pattern}},
                {"description": {"$regex": pattern}},
            ]
        return mongo_filter

    @staticmethod
    def build_sort(query: TaskListQuery) -> List[Tuple[str, int]]:
        direction = ASCENDING if query.order == "asc" else DESCENDING
        field = SORT_FIELD_MAP[query.sort_by]
        sort = [(field, direction)]
        # Tie-break on _id so pages do not overlap when sort keys repeat
        if field != "_id":
            sort.append(("_id", direction))
        return sort

    async def list_page(self, user_id: str, query: TaskListQuery) -> Tuple[List[Task], int]:
        """Return one page of the user's tasks and the total count of matching tasks."""
        user_oid = to_object_id(user_id)
        if user_oid is None:
            return [], 0
        mongo_filter = self.build_filter(user_oid, query)
        docs = await self._db.find_many(
            self.collection_name,
            mongo_filter,
            sort=self.build_sort(query),
            skip=(query.page - 1) * query.limit,
            limit=query.limit,
        )
        total = await self._db.count(self.collection_name, mongo_filter)
        return [self.to_model(d) for d in docs], total

    async def get(self, user_id: str, task_id: str) -> Optional[Task]:
        user_oid, task_oid = to_object_id(user_id), to_object_id(task_id)
        if user_oid is None or task_oid is None:
            return None
        doc = await self._db.find_one(self.collection_name, {"_id": task_oid, "user_id": user_oid})
        if not doc:
            return None
        return self.to_model(doc)

    async def create(self, user_id: str, payload: TaskCreate) -> Task:
        now = datetime.now(timezone.utc)
        data = {
            "title": payload.title,
            "description": payload.description,
            "status": payload.status.value,
            "priority": payload.priority.value,
            "status_rank": enum_rank(payload.status),
            "priority_rank": enum_rank(payload.priority),
            "due_date": payload.due_date,
            "user_id": to_object_id(user_id),
            "created_at": now,
            "updated_at": now,
        }
        data["_id"] = await self._db.insert_one(self.collection_name, data)
        self.logger.debug("Task created", task_id=str(data["_id"]))
        return self.to_model(data)

    async def update(self, user_id: str, task_id: str, changes: Dict[str, Any]) -> Optional[Task]:
        """Apply ``changes`` to the user's task. Returns None if no such task is owned by the user."""
        user_oid, task_oid = to_object_id(user_id), to_object_id(task_id)
        if user_oid is None or task_oid is None:
            return None
        update_fields = {k: (v.value if isinstance(v, (TaskStatus, TaskPriority)) else v) for k, v in changes.items()}
        for key in ("status", "priority"):
            if key in changes:
                update_fields[f"{key}_rank"] = enum_rank(changes[key])
        update_fields["updated_at"] = datetime.now(timezone.utc)
        doc = await self._db.find_one_and_update(
            self.collection_name,
            {"_id": task_oid, "user_id": user_oid},
            {"$set": update_fields},
        )
        if not doc:
            return None
        return self.to_model(doc)

    async def delete(self, user_id: str, task_id: str) -> bool:
        user_oid, task_oid = to_object_id(user_id), to_object_id(task_id)
        if user_oid is None or task_oid is None:
            return False
        return await self._db.delete_one(self.collection_name, {"_id": task_oid, "user_id": user_oid}) > 0
