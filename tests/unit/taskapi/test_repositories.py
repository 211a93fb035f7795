"""Unit tests for the MongoDB-backed repositories, against a mocked TaskApiDB."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from taskapi.db import REFRESH_TOKENS, TASKS, USERS
from taskapi.errors import ConflictError
from taskapi.repositories import RefreshTokenRepository, TaskRepository, UserRepository, to_object_id
from taskapi.repositories.task_repository import enum_rank
from taskapi.types import TaskCreate, TaskListQuery, TaskPriority, TaskStatus

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def mock_db():
    db = MagicMock()
    db.insert_one = AsyncMock()
    db.find_one = AsyncMock(return_value=None)
    db.find_many = AsyncMock(return_value=[])
    db.find_one_and_update = AsyncMock(return_value=None)
    db.delete_one = AsyncMock(return_value=0)
    db.delete_many = AsyncMock(return_value=0)
    db.count = AsyncMock(return_value=0)
    return db


def _user_doc(oid=None, email="ada@example.com"):
    return {
        "_id": oid or ObjectId(),
        "name": "Ada",
        "email": email,
        "password_hash": "hash",
        "created_at": NOW,
    }


def _task_doc(user_oid, **fields):
    doc = {
        "_id": ObjectId(),
        "title": "Write report",
        "description": None,
        "status": "TODO",
        "priority": "MEDIUM",
        "due_date": None,
        "user_id": user_oid,
        "created_at": NOW,
        "updated_at": NOW,
    }
    doc.update(fields)
    return doc


class TestToObjectId:
    def test_valid_id(self):
        oid = ObjectId()
        assert to_object_id(str(oid)) == oid

    @pytest.mark.parametrize("value", ["not-an-id", "123", None])
    def test_malformed_id_is_none(self, value):
        assert to_object_id(value) is None


class TestUserRepository:
    @pytest.mark.asyncio
    async def test_find_by_email(self, mock_db):
        doc = _user_doc()
        mock_db.find_one.return_value = doc
        repo = UserRepository(mock_db)

        user = await repo.find_by_email("ada@example.com")

        mock_db.find_one.assert_awaited_once_with(USERS, {"email": "ada@example.com"})
        assert user.id == str(doc["_id"])
        assert user.password_hash == "hash"

    @pytest.mark.asyncio
    async def test_find_by_email_missing(self, mock_db):
        assert await UserRepository(mock_db).find_by_email("nobody@example.com") is None

    @pytest.mark.asyncio
    async def test_get_by_id_malformed_skips_query(self, mock_db):
        assert await UserRepository(mock_db).get_by_id("bogus") is None
        mock_db.find_one.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_user(self, mock_db):
        oid = ObjectId()
        mock_db.insert_one.return_value = oid
        repo = UserRepository(mock_db)

        user = await repo.create_user("Ada", "ada@example.com", "hash")

        assert user.id == str(oid)
        assert user.email == "ada@example.com"
        collection, data = mock_db.insert_one.await_args.args
        assert collection == USERS
        assert data["password_hash"] == "hash"
        assert data["created_at"].tzinfo is not None

    @pytest.mark.asyncio
    async def test_create_user_duplicate_email_is_conflict(self, mock_db):
        mock_db.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key")
        repo = UserRepository(mock_db)

        with pytest.raises(ConflictError):
            await repo.create_user("Ada", "ada@example.com", "hash")


class TestRefreshTokenRepository:
    @pytest.mark.asyncio
    async def test_create_stores_object_id_owner(self, mock_db):
        user_oid = ObjectId()
        mock_db.insert_one.return_value = ObjectId()
        repo = RefreshTokenRepository(mock_db)

        row = await repo.create("tok", str(user_oid), NOW + timedelta(days=7))

        collection, data = mock_db.insert_one.await_args.args
        assert collection == REFRESH_TOKENS
        assert data["user_id"] == user_oid
        assert data["token"] == "tok"
        assert row.user_id == str(user_oid)
        assert row.expires_at == NOW + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_find_by_value_attaches_user(self, mock_db):
        user_doc = _user_doc()
        token_doc = {
            "_id": ObjectId(),
            "token": "tok",
            "user_id": user_doc["_id"],
            "expires_at": NOW,
            "created_at": NOW,
        }
        mock_db.find_one.side_effect = [token_doc, user_doc]
        repo = RefreshTokenRepository(mock_db)

        row = await repo.find_by_value("tok")

        assert row.token == "tok"
        assert row.user.email == "ada@example.com"
        assert mock_db.find_one.await_args_list[1].args == (USERS, {"_id": user_doc["_id"]})

    @pytest.mark.asyncio
    async def test_find_by_value_missing(self, mock_db):
        assert await RefreshTokenRepository(mock_db).find_by_value("nope") is None

    @pytest.mark.asyncio
    async def test_delete_by_id(self, mock_db):
        oid = ObjectId()
        mock_db.delete_one.return_value = 1

        assert await RefreshTokenRepository(mock_db).delete_by_id(str(oid)) is True
        mock_db.delete_one.assert_awaited_once_with(REFRESH_TOKENS, {"_id": oid})

    @pytest.mark.asyncio
    async def test_delete_by_value_deletes_all_matching(self, mock_db):
        mock_db.delete_many.return_value = 2

        assert await RefreshTokenRepository(mock_db).delete_by_value("tok") == 2
        mock_db.delete_many.assert_awaited_once_with(REFRESH_TOKENS, {"token": "tok"})


class TestTaskRepositoryQueries:
    def test_filter_is_scoped_to_user(self):
        user_oid = ObjectId()

        assert TaskRepository.build_filter(user_oid, TaskListQuery()) == {"user_id": user_oid}

    def test_filter_status_priority_and_search(self):
        user_oid = ObjectId()
        query = TaskListQuery(status="DONE", priority="HIGH", search="a.b")

        mongo_filter = TaskRepository.build_filter(user_oid, query)

        assert mongo_filter["status"] == "DONE"
        assert mongo_filter["priority"] == "HIGH"
        # Search text is matched literally
        assert mongo_filter["$or"] == [
            {"title": {"$regex": r"a\.b"}},
            {"description": {"$regex": r"a\.b"}},
        ]

    def test_default_sort_is_created_at_descending(self):
        assert TaskRepository.build_sort(TaskListQuery()) == [("created_at", DESCENDING), ("_id", DESCENDING)]

    def test_sort_maps_public_field_names(self):
        query = TaskListQuery(sortBy="dueDate", order="asc")

        assert TaskRepository.build_sort(query) == [("due_date", ASCENDING), ("_id", ASCENDING)]

    def test_sort_by_id_has_no_tiebreak(self):
        assert TaskRepository.build_sort(TaskListQuery(sortBy="id")) == [("_id", DESCENDING)]

    def test_enum_fields_sort_by_declaration_rank(self):
        query = TaskListQuery(sortBy="priority", order="asc")

        assert TaskRepository.build_sort(query) == [("priority_rank", ASCENDING), ("_id", ASCENDING)]
        assert [enum_rank(p) for p in (TaskPriority.LOW, TaskPriority.MEDIUM, TaskPriority.HIGH)] == [0, 1, 2]
        assert enum_rank(TaskStatus.TODO) < enum_rank(TaskStatus.IN_PROGRESS) < enum_rank(TaskStatus.DONE)


class TestTaskRepository:
    @pytest.mark.asyncio
    async def test_list_page_uses_same_filter_for_page_and_count(self, mock_db):
        user_oid = ObjectId()
        mock_db.find_many.return_value = [_task_doc(user_oid) for _ in range(5)]
        mock_db.count.return_value = 15
        repo = TaskRepository(mock_db)

        tasks, total = await repo.list_page(str(user_oid), TaskListQuery(page=2, limit=10))

        assert len(tasks) == 5
        assert total == 15
        find_args = mock_db.find_many.await_args
        assert find_args.kwargs["skip"] == 10
        assert find_args.kwargs["limit"] == 10
        assert find_args.args[1] == mock_db.count.await_args.args[1]

    @pytest.mark.asyncio
    async def test_list_page_malformed_user_is_empty(self, mock_db):
        assert await TaskRepository(mock_db).list_page("bogus", TaskListQuery()) == ([], 0)
        mock_db.find_many.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_filters_on_owner(self, mock_db):
        user_oid = ObjectId()
        doc = _task_doc(user_oid, status="IN_PROGRESS", priority="HIGH")
        mock_db.find_one.return_value = doc

        task = await TaskRepository(mock_db).get(str(user_oid), str(doc["_id"]))

        mock_db.find_one.assert_awaited_once_with(TASKS, {"_id": doc["_id"], "user_id": user_oid})
        assert task.status is TaskStatus.IN_PROGRESS
        assert task.priority is TaskPriority.HIGH
        assert task.user_id == str(user_oid)

    @pytest.mark.asyncio
    async def test_get_malformed_task_id(self, mock_db):
        assert await TaskRepository(mock_db).get(str(ObjectId()), "bogus") is None

    @pytest.mark.asyncio
    async def test_create(self, mock_db):
        user_oid = ObjectId()
        mock_db.insert_one.return_value = ObjectId()

        task = await TaskRepository(mock_db).create(str(user_oid), TaskCreate(title="  Ship it  "))

        _, data = mock_db.insert_one.await_args.args
        assert data["title"] == "Ship it"
        assert data["status"] == "TODO"
        assert data["priority"] == "MEDIUM"
        assert (data["status_rank"], data["priority_rank"]) == (0, 1)
        assert data["user_id"] == user_oid
        assert data["created_at"] == data["updated_at"]
        assert task.title == "Ship it"

    @pytest.mark.asyncio
    async def test_update_sets_changes_and_timestamp(self, mock_db):
        user_oid, task_oid = ObjectId(), ObjectId()
        mock_db.find_one_and_update.return_value = _task_doc(user_oid, _id=task_oid, status="DONE")

        task = await TaskRepository(mock_db).update(
            str(user_oid), str(task_oid), {"status": TaskStatus.DONE, "description": None}
        )

        collection, query, update = mock_db.find_one_and_update.await_args.args
        assert collection == TASKS
        assert query == {"_id": task_oid, "user_id": user_oid}
        assert update["$set"]["status"] == "DONE"
        assert update["$set"]["status_rank"] == 2
        assert "priority_rank" not in update["$set"]
        assert update["$set"]["description"] is None
        assert "updated_at" in update["$set"]
        assert task.status is TaskStatus.DONE

    @pytest.mark.asyncio
    async def test_update_not_owned(self, mock_db):
        assert await TaskRepository(mock_db).update(str(ObjectId()), str(ObjectId()), {"title": "x"}) is None

    @pytest.mark.asyncio
    async def test_delete(self, mock_db):
        user_oid, task_oid = ObjectId(), ObjectId()
        mock_db.delete_one.return_value = 1

        assert await TaskRepository(mock_db).delete(str(user_oid), str(task_oid)) is True
        mock_db.delete_one.assert_awaited_once_with(TASKS, {"_id": task_oid, "user_id": user_oid})

    @pytest.mark.asyncio
    async def test_delete_missing(self, mock_db):
        assert await TaskRepository(mock_db).delete(str(ObjectId()), str(ObjectId())) is False
