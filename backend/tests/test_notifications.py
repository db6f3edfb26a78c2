"""Tests for the notification fan-out service and default messages."""
from unittest.mock import AsyncMock

import pytest

from app.errors import ForbiddenError, InvalidInputError, NotFoundError, PersistenceError
from app.notifications.service import NEW_NOTIFICATION_EVENT, NotificationService
from app.notifications.templates import DEFAULT_MESSAGES, render_default_message
from app.notifications.transport import NullTransport
from app.store import InMemoryDocumentStore
from app.store.schemas import EntityType, NotificationType, UserRecord


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def transport():
    mock = AsyncMock()
    mock.emit = AsyncMock(return_value=1)
    return mock


@pytest.fixture
def service(store, transport):
    return NotificationService(store, transport=transport)


class TestDefaultMessages:
    def test_every_type_has_a_default(self):
        assert set(DEFAULT_MESSAGES) == set(NotificationType)

    def test_sender_is_substituted(self):
        assert render_default_message(NotificationType.LIKE, "alice") == "alice liked your post."
        assert (
            render_default_message(NotificationType.GROUP_INVITE, "bob")
            == "bob invited you to join a group."
        )

    def test_system_messages(self):
        assert render_default_message(NotificationType.GROUP_REMOVED) == "You were removed from the group."
        assert render_default_message(NotificationType.ADMIN_MESSAGE) == "Admin: You have a new message."

    def test_missing_sender(self):
        assert render_default_message(NotificationType.COMMENT) == "Someone commented on your post."


class TestCreateNotification:
    @pytest.mark.asyncio
    async def test_persists_and_pushes_to_personal_channel(self, store, service, transport):
        sender = await store.save_user(UserRecord(username="alice", profilePicture="a.png"))
        recipient = await store.save_user(UserRecord(username="bob"))

        view = await service.create_notification(
            recipient.id,
            NotificationType.LIKE,
            sender_id=sender.id,
            entity_id="a" * 24,
            entity_type=EntityType.POST,
        )

        assert view.message == "alice liked your post."
        assert view.read is False
        assert view.sender.username == "alice"
        assert view.sender.profilePicture == "a.png"
        assert (await store.find_notification(view.id)).recipient == recipient.id

        transport.emit.assert_awaited_once()
        room_id, event, payload = transport.emit.await_args.args
        assert room_id == recipient.id
        assert event == NEW_NOTIFICATION_EVENT
        assert payload["id"] == view.id
        assert payload["type"] == "like"

    @pytest.mark.asyncio
    async def test_explicit_message_wins(self, service):
        view = await service.create_notification(
            "b" * 24, "admin_message", message="Maintenance tonight."
        )
        assert view.message == "Maintenance tonight."
        assert view.sender is None

    @pytest.mark.asyncio
    async def test_persists_without_live_transport(self, store):
        service = NotificationService(store)
        assert isinstance(service.transport, NullTransport)

        await service.create_notification("b" * 24, NotificationType.GROUP_REMOVED)

        assert await service.unread_count("b" * 24) == 1

    @pytest.mark.asyncio
    async def test_live_push_failure_does_not_fail(self, store, service, transport):
        transport.emit.side_effect = RuntimeError("socket exploded")

        view = await service.create_notification("b" * 24, NotificationType.GROUP_REMOVED)

        assert await store.find_notification(view.id) is not None

    @pytest.mark.asyncio
    async def test_persistence_failure_raises(self, store, service, transport):
        store.save_notification = AsyncMock(side_effect=PersistenceError())

        with pytest.raises(PersistenceError):
            await service.create_notification("b" * 24, NotificationType.LIKE)
        transport.emit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_notify_swallows_persistence_failure(self, store, service):
        store.save_notification = AsyncMock(side_effect=PersistenceError())

        assert await service.notify("b" * 24, NotificationType.LIKE) is None

    @pytest.mark.asyncio
    async def test_invalid_inputs(self, service):
        with pytest.raises(InvalidInputError):
            await service.create_notification("b" * 24, "poke")
        with pytest.raises(InvalidInputError):
            await service.create_notification("b" * 24, "like", entity_id="a" * 24)
        with pytest.raises(InvalidInputError):
            await service.create_notification("b" * 24, "like", entity_type="Movie", entity_id="a" * 24)
        with pytest.raises(InvalidInputError):
            await service.create_notification("b" * 24, "admin_message", message="x" * 251)


class TestRecipientQueries:
    @pytest.mark.asyncio
    async def test_unread_count_tracks_read_flags(self, service):
        recipient = "b" * 24
        first = await service.create_notification(recipient, NotificationType.LIKE)
        await service.create_notification(recipient, NotificationType.COMMENT)
        await service.create_notification("c" * 24, NotificationType.LIKE)
        assert await service.unread_count(recipient) == 2

        await service.mark_read(first.id, recipient)
        assert await service.unread_count(recipient) == 1

        assert await service.mark_all_read(recipient) == 1
        assert await service.unread_count(recipient) == 0

    @pytest.mark.asyncio
    async def test_list_is_newest_first(self, service):
        recipient = "b" * 24
        first = await service.create_notification(recipient, NotificationType.LIKE)
        second = await service.create_notification(recipient, NotificationType.COMMENT)

        listed = await service.list_for_recipient(recipient)

        assert [n.id for n in listed] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_only_recipient_may_touch(self, service):
        notification = await service.create_notification("b" * 24, NotificationType.LIKE)

        with pytest.raises(ForbiddenError):
            await service.mark_read(notification.id, "c" * 24)
        with pytest.raises(ForbiddenError):
            await service.delete(notification.id, "c" * 24)
        with pytest.raises(NotFoundError):
            await service.delete("f" * 24, "b" * 24)

        await service.delete(notification.id, "b" * 24)
        assert await service.list_for_recipient("b" * 24) == []
