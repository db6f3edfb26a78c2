"""Contract tests run against both document store adapters."""
from datetime import timedelta

import pytest

from app.config import StoreSettings
from app.errors import PersistenceError
from app.store import ASCENDING, DESCENDING, InMemoryDocumentStore, create_store
from app.store.duckdb_store import DuckDBDocumentStore
from app.store.schemas import (
    GroupRecord,
    MessageRecord,
    NotificationRecord,
    NotificationType,
    UserRecord,
    new_object_id,
    utcnow,
)


@pytest.fixture(params=["memory", "duckdb"])
def store(request, tmp_path):
    if request.param == "duckdb":
        return DuckDBDocumentStore(str(tmp_path / "store.duckdb"))
    return InMemoryDocumentStore()


def private(sender, recipient, content, created_at=None):
    chat_identifier = "_".join(sorted((sender, recipient)))
    return MessageRecord(
        sender=sender,
        recipient=recipient,
        chatIdentifier=chat_identifier,
        content=content,
        createdAt=created_at or utcnow(),
    )


def test_object_ids_are_24_hex():
    object_id = new_object_id()
    assert len(object_id) == 24
    int(object_id, 16)


def test_create_store_selects_backend(tmp_path):
    assert isinstance(create_store(StoreSettings()), InMemoryDocumentStore)
    duck = create_store(StoreSettings(backend="duckdb", duckdb_path=str(tmp_path / "x.duckdb")))
    assert isinstance(duck, DuckDBDocumentStore)


def test_duckdb_open_failure_is_persistence_error(tmp_path):
    with pytest.raises(PersistenceError):
        DuckDBDocumentStore(str(tmp_path / "missing-dir" / "store.duckdb"))


@pytest.mark.asyncio
async def test_duckdb_close_is_idempotent(tmp_path):
    duck = DuckDBDocumentStore(str(tmp_path / "store.duckdb"))
    await duck.save_user(UserRecord(username="alice"))

    await duck.close()
    await duck.close()

    reopened = DuckDBDocumentStore(str(tmp_path / "store.duckdb"))
    assert await reopened.find_user_by_id("f" * 24) is None
    await reopened.close()


def test_message_needs_exactly_one_target():
    with pytest.raises(ValueError):
        MessageRecord(sender="a", content="hi")
    with pytest.raises(ValueError):
        MessageRecord(sender="a", group="g", recipient="b", chatIdentifier="a_b", content="hi")


class TestUsersAndGroups:
    @pytest.mark.asyncio
    async def test_save_and_find(self, store):
        user = await store.save_user(UserRecord(username="alice"))
        group = await store.save_group(GroupRecord(name="G", admin=user.id, members=[user.id]))

        assert (await store.find_user_by_id(user.id)).username == "alice"
        assert (await store.find_group_by_id(group.id)).members == [user.id]
        assert await store.find_user_by_id("f" * 24) is None

    @pytest.mark.asyncio
    async def test_friend_graph(self, store):
        a = await store.save_user(UserRecord(username="a"))
        b = await store.save_user(UserRecord(username="b"))

        await store.add_friend_request(b.id, a.id)
        await store.add_friend_request(b.id, a.id)
        assert (await store.find_user_by_id(b.id)).friendRequests == [a.id]
        assert not await store.are_friends(a.id, b.id)

        await store.remove_friend_request(b.id, a.id)
        await store.add_friendship(a.id, b.id)

        assert (await store.find_user_by_id(b.id)).friendRequests == []
        assert await store.are_friends(a.id, b.id)
        assert await store.are_friends(b.id, a.id)


class TestMessages:
    @pytest.mark.asyncio
    async def test_query_order_and_limit(self, store):
        start = utcnow()
        for i in range(5):
            await store.save_message(MessageRecord(
                sender="a", group="g", content=f"m{i}", createdAt=start + timedelta(seconds=i)
            ))
        await store.save_message(MessageRecord(sender="a", group="other", content="elsewhere"))

        newest = await store.query_messages({"group": "g"}, 3, DESCENDING)
        oldest = await store.query_messages({"group": "g"}, 3, ASCENDING)

        assert [m.content for m in newest] == ["m4", "m3", "m2"]
        assert [m.content for m in oldest] == ["m0", "m1", "m2"]

    @pytest.mark.asyncio
    async def test_add_reader_is_idempotent(self, store):
        message = await store.save_message(private("a", "b", "hi"))

        await store.add_message_reader(message.id, "b")
        updated = await store.add_message_reader(message.id, "b")

        assert updated.readBy == ["b"]
        assert (await store.find_message(message.id)).readBy == ["b"]
        assert await store.add_message_reader("f" * 24, "b") is None

    @pytest.mark.asyncio
    async def test_conversations(self, store):
        await store.save_message(private("a", "b", "one"))
        await store.save_message(private("b", "a", "two"))
        await store.save_message(private("c", "a", "three"))
        await store.save_message(private("b", "c", "not mine"))

        assert sorted(await store.list_chat_identifiers("a")) == ["a_b", "a_c"]
        assert await store.mark_conversation_read("a_b", "a") == 1
        assert await store.mark_conversation_read("a_b", "a") == 0


class TestNotifications:
    @pytest.mark.asyncio
    async def test_lifecycle(self, store):
        first = await store.save_notification(
            NotificationRecord(recipient="r", type=NotificationType.LIKE, message="first")
        )
        second = await store.save_notification(
            NotificationRecord(recipient="r", type=NotificationType.COMMENT, message="second")
        )
        await store.save_notification(NotificationRecord(recipient="x", type=NotificationType.LIKE))

        assert [n.id for n in await store.query_notifications("r")] == [second.id, first.id]
        assert await store.count_unread_notifications("r") == 2

        marked = await store.mark_notification_read(first.id)
        assert marked.read is True
        assert (await store.find_notification(first.id)).read is True
        assert await store.count_unread_notifications("r") == 1

        assert await store.mark_all_notifications_read("r") == 1
        assert await store.count_unread_notifications("r") == 0
        assert await store.count_unread_notifications("x") == 1

        assert await store.delete_notification(first.id) is True
        assert await store.delete_notification(first.id) is False
        assert await store.mark_notification_read("f" * 24) is None
