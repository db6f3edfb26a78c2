"""Tests for ConnectionManager room membership/fan-out and ConnectionSession state."""
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.chat.manager import ConnectionManager
from app.chat.session import ConnectionSession, SessionState
from app.errors import ForbiddenError
from app.store.schemas import UserRecord


def make_session(user=None, fail_send=False):
    websocket = MagicMock()
    websocket.send_json = AsyncMock(side_effect=RuntimeError("socket gone") if fail_send else None)
    session = ConnectionSession(websocket)
    if user is not None:
        session.authenticate(user)
    return session


def active_session(mgr, user, fail_send=False):
    session = make_session(user, fail_send=fail_send)
    mgr.register(session)
    session.activate()
    return session


@pytest.fixture
def alice():
    return UserRecord(username="alice")


@pytest.fixture
def bob():
    return UserRecord(username="bob")


class TestConnectionSession:
    def test_starts_connecting(self):
        session = make_session()
        assert session.state == SessionState.CONNECTING
        assert session.user_id is None

    def test_lifecycle(self, alice):
        session = make_session()
        session.authenticate(alice)
        assert session.state == SessionState.AUTHENTICATED
        assert session.personal_channel == alice.id
        session.activate()
        assert session.is_active
        assert session.require_active() == alice
        session.close()
        assert session.state == SessionState.CLOSED

    def test_cannot_activate_without_authentication(self):
        with pytest.raises(RuntimeError):
            make_session().activate()

    def test_cannot_authenticate_twice(self, alice, bob):
        session = make_session(alice)
        with pytest.raises(RuntimeError):
            session.authenticate(bob)

    def test_room_operations_require_active(self, alice):
        session = make_session(alice)
        with pytest.raises(ForbiddenError):
            session.require_active()

    def test_personal_channel_requires_user(self):
        with pytest.raises(ForbiddenError):
            make_session().personal_channel

    @pytest.mark.asyncio
    async def test_send_wraps_frame(self, alice):
        session = make_session(alice)
        await session.send("connected", {"userId": alice.id})
        session.websocket.send_json.assert_awaited_once_with(
            {"type": "connected", "data": {"userId": alice.id}}
        )


class TestMembership:
    def test_register_subscribes_personal_channel(self, alice):
        mgr = ConnectionManager()
        session = active_session(mgr, alice)
        assert mgr.is_subscribed(session, alice.id)
        assert session.rooms == {alice.id}

    def test_subscribe_twice_is_noop(self, alice):
        mgr = ConnectionManager()
        session = active_session(mgr, alice)
        mgr.subscribe(session, "group-1")
        mgr.subscribe(session, "group-1")
        assert mgr.get_room_size("group-1") == 1

    def test_multiple_devices_share_personal_channel(self, alice):
        mgr = ConnectionManager()
        phone = active_session(mgr, alice)
        laptop = active_session(mgr, alice)
        assert mgr.get_room_size(alice.id) == 2
        assert set(mgr.get_user_sessions(alice.id)) == {phone, laptop}

    def test_disconnect_drops_every_room(self, alice):
        mgr = ConnectionManager()
        session = active_session(mgr, alice)
        mgr.subscribe(session, "group-1")
        mgr.subscribe(session, "a_b")

        left = mgr.disconnect(session)

        assert set(left) == {alice.id, "group-1", "a_b"}
        assert mgr.rooms == {}
        assert session.state == SessionState.CLOSED
        assert mgr.disconnect(session) == []

    def test_is_user_in_room(self, alice, bob):
        mgr = ConnectionManager()
        session = active_session(mgr, alice)
        active_session(mgr, bob)
        mgr.subscribe(session, "a_b")
        assert mgr.is_user_in_room(alice.id, "a_b")
        assert not mgr.is_user_in_room(bob.id, "a_b")


class TestDelivery:
    @pytest.mark.asyncio
    async def test_broadcast_reaches_room_only(self, alice, bob):
        mgr = ConnectionManager()
        in_room = active_session(mgr, alice)
        outside = active_session(mgr, bob)
        mgr.subscribe(in_room, "group-1")

        reached = await mgr.broadcast("group-1", "groupMessage", {"content": "hello"})

        assert reached == 1
        in_room.websocket.send_json.assert_awaited_once_with(
            {"type": "groupMessage", "data": {"content": "hello"}}
        )
        outside.websocket.send_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_broadcast_except_skips_sender(self, alice, bob):
        mgr = ConnectionManager()
        sender = active_session(mgr, alice)
        other = active_session(mgr, bob)
        mgr.subscribe(sender, "group-1")
        mgr.subscribe(other, "group-1")

        reached = await mgr.broadcast_except("group-1", "userTyping", {}, exclude=sender)

        assert reached == 1
        sender.websocket.send_json.assert_not_awaited()
        other.websocket.send_json.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_dead_connection_is_dropped(self, alice, bob):
        mgr = ConnectionManager()
        healthy = active_session(mgr, alice)
        dead = active_session(mgr, bob, fail_send=True)
        mgr.subscribe(healthy, "group-1")
        mgr.subscribe(dead, "group-1")

        reached = await mgr.broadcast("group-1", "groupMessage", {})

        assert reached == 1
        assert not mgr.is_subscribed(dead, "group-1")
        assert mgr.get_room_size(bob.id) == 0
        assert dead.state == SessionState.CLOSED

    @pytest.mark.asyncio
    async def test_emit_to_empty_room(self):
        assert await ConnectionManager().emit("nobody", "newNotification", {}) == 0
