"""DuckDB-backed document store.

Documents are stored as JSON text next to the handful of columns the
realtime core filters and sorts on. DuckDB calls are blocking, so every
operation is off-loaded to a worker thread with ``asyncio.to_thread`` and
serialized by a lock around the single connection.

Database Schema:
    users / user_groups:  id, doc
    messages:        id, seq, group_id, chat_identifier, sender, recipient, created_at, doc
    notifications:   id, seq, recipient, is_read, created_at, doc

Usage:
    store = DuckDBDocumentStore("moviesquad.duckdb")
    await store.save_message(message)
"""
import asyncio
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, TypeVar

import duckdb

from app.errors import PersistenceError

from .base import ASCENDING, DESCENDING, DocumentStore
from .schemas import GroupRecord, MessageRecord, NotificationRecord, UserRecord, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

# query_messages filter key -> column
_MESSAGE_COLUMNS = {
    "id": "id",
    "group": "group_id",
    "chatIdentifier": "chat_identifier",
    "sender": "sender",
    "recipient": "recipient",
}


class DuckDBDocumentStore(DocumentStore):
    """Persistent :class:`DocumentStore` on a single DuckDB file."""

    def __init__(self, db_path: str = "moviesquad.duckdb") -> None:
        self._db_path = db_path
        self._lock = threading.Lock()
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        try:
            self._initialize_db()
        except duckdb.Error as e:
            logger.error("DuckDB initialization failed for %s: %s", db_path, e)
            raise PersistenceError(f"Document store unavailable: {e}") from e

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        """Create sequences and tables if they don't exist (idempotent)."""
        conn = self._get_connection()
        conn.execute("CREATE SEQUENCE IF NOT EXISTS documents_seq START 1")
        conn.execute("CREATE TABLE IF NOT EXISTS users (id VARCHAR PRIMARY KEY, doc VARCHAR NOT NULL)")
        conn.execute("CREATE TABLE IF NOT EXISTS user_groups (id VARCHAR PRIMARY KEY, doc VARCHAR NOT NULL)")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id VARCHAR PRIMARY KEY,
                seq BIGINT DEFAULT nextval('documents_seq'),
                group_id VARCHAR,
                chat_identifier VARCHAR,
                sender VARCHAR NOT NULL,
                recipient VARCHAR,
                created_at DOUBLE NOT NULL,
                doc VARCHAR NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS notifications (
                id VARCHAR PRIMARY KEY,
                seq BIGINT DEFAULT nextval('documents_seq'),
                recipient VARCHAR NOT NULL,
                is_read BOOLEAN NOT NULL,
                created_at DOUBLE NOT NULL,
                doc VARCHAR NOT NULL
            )
        """)

    async def _run(self, fn: Callable[[duckdb.DuckDBPyConnection], T]) -> T:
        def call() -> T:
            with self._lock:
                return fn(self._get_connection())

        try:
            return await asyncio.to_thread(call)
        except duckdb.Error as e:
            logger.error("DuckDB operation failed: %s", e)
            raise PersistenceError(f"Document store error: {e}") from e

    async def close(self) -> None:
        def call() -> None:
            with self._lock:
                if self._connection is not None:
                    self._connection.close()
                    self._connection = None

        await asyncio.to_thread(call)

    # ------------------------------------------------------------------
    # Users and groups
    # ------------------------------------------------------------------

    async def find_user_by_id(self, user_id: str) -> Optional[UserRecord]:
        row = await self._run(
            lambda c: c.execute("SELECT doc FROM users WHERE id = ?", [user_id]).fetchone()
        )
        return UserRecord.model_validate_json(row[0]) if row else None

    async def save_user(self, user: UserRecord) -> UserRecord:
        doc = user.model_dump_json()
        await self._run(lambda c: c.execute(
            "INSERT OR REPLACE INTO users (id, doc) VALUES (?, ?)", [user.id, doc]
        ))
        return user

    async def find_group_by_id(self, group_id: str) -> Optional[GroupRecord]:
        row = await self._run(
            lambda c: c.execute("SELECT doc FROM user_groups WHERE id = ?", [group_id]).fetchone()
        )
        return GroupRecord.model_validate_json(row[0]) if row else None

    async def save_group(self, group: GroupRecord) -> GroupRecord:
        doc = group.model_dump_json()
        await self._run(lambda c: c.execute(
            "INSERT OR REPLACE INTO user_groups (id, doc) VALUES (?, ?)", [group.id, doc]
        ))
        return group

    def _update_user(self, conn, user_id: str, mutate: Callable[[UserRecord], None]) -> None:
        row = conn.execute("SELECT doc FROM users WHERE id = ?", [user_id]).fetchone()
        if row is None:
            return
        user = UserRecord.model_validate_json(row[0])
        mutate(user)
        conn.execute("UPDATE users SET doc = ? WHERE id = ?", [user.model_dump_json(), user_id])

    async def add_friend_request(self, recipient_id: str, sender_id: str) -> None:
        def mutate(user: UserRecord) -> None:
            if sender_id not in user.friendRequests:
                user.friendRequests.append(sender_id)

        await self._run(lambda c: self._update_user(c, recipient_id, mutate))

    async def remove_friend_request(self, recipient_id: str, sender_id: str) -> None:
        def mutate(user: UserRecord) -> None:
            if sender_id in user.friendRequests:
                user.friendRequests.remove(sender_id)

        await self._run(lambda c: self._update_user(c, recipient_id, mutate))

    async def add_friendship(self, user_a: str, user_b: str) -> None:
        def befriend(friend_id: str) -> Callable[[UserRecord], None]:
            def mutate(user: UserRecord) -> None:
                if friend_id not in user.friends:
                    user.friends.append(friend_id)
            return mutate

        def both(conn) -> None:
            conn.execute("BEGIN TRANSACTION")
            try:
                self._update_user(conn, user_a, befriend(user_b))
                self._update_user(conn, user_b, befriend(user_a))
                conn.execute("COMMIT")
            except duckdb.Error:
                conn.execute("ROLLBACK")
                raise

        await self._run(both)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def save_message(self, message: MessageRecord) -> MessageRecord:
        params = [
            message.id,
            message.group,
            message.chatIdentifier,
            message.sender,
            message.recipient,
            message.createdAt.timestamp(),
            message.model_dump_json(),
        ]
        await self._run(lambda c: c.execute(
            """
            INSERT INTO messages (id, group_id, chat_identifier, sender, recipient, created_at, doc)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            params,
        ))
        return message

    async def find_message(self, message_id: str) -> Optional[MessageRecord]:
        row = await self._run(
            lambda c: c.execute("SELECT doc FROM messages WHERE id = ?", [message_id]).fetchone()
        )
        return MessageRecord.model_validate_json(row[0]) if row else None

    async def add_message_reader(self, message_id: str, user_id: str) -> Optional[MessageRecord]:
        def add(conn) -> Optional[MessageRecord]:
            row = conn.execute("SELECT doc FROM messages WHERE id = ?", [message_id]).fetchone()
            if row is None:
                return None
            message = MessageRecord.model_validate_json(row[0])
            if user_id not in message.readBy:
                message.readBy.append(user_id)
                message.updatedAt = utcnow()
                conn.execute(
                    "UPDATE messages SET doc = ? WHERE id = ?",
                    [message.model_dump_json(), message_id],
                )
            return message

        return await self._run(add)

    async def query_messages(
        self,
        filter: Dict[str, Any],
        limit: int,
        order: int = DESCENDING,
    ) -> List[MessageRecord]:
        clauses, params = [], []
        for key, value in filter.items():
            column = _MESSAGE_COLUMNS.get(key)
            if column is None:
                raise ValueError(f"Unsupported message filter: {key}")
            clauses.append(f"{column} = ?")
            params.append(value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        direction = "ASC" if order == ASCENDING else "DESC"
        sql = (
            f"SELECT doc FROM messages {where} "
            f"ORDER BY created_at {direction}, seq {direction} LIMIT ?"
        )
        rows = await self._run(lambda c: c.execute(sql, params + [limit]).fetchall())
        return [MessageRecord.model_validate_json(row[0]) for row in rows]

    async def list_chat_identifiers(self, user_id: str) -> List[str]:
        rows = await self._run(lambda c: c.execute(
            """
            SELECT DISTINCT chat_identifier FROM messages
            WHERE chat_identifier IS NOT NULL AND (sender = ? OR recipient = ?)
            """,
            [user_id, user_id],
        ).fetchall())
        return [row[0] for row in rows]

    async def mark_conversation_read(self, chat_identifier: str, reader_id: str) -> int:
        def mark(conn) -> int:
            rows = conn.execute(
                "SELECT doc FROM messages WHERE chat_identifier = ? AND recipient = ?",
                [chat_identifier, reader_id],
            ).fetchall()
            changed = 0
            for (doc,) in rows:
                message = MessageRecord.model_validate_json(doc)
                if reader_id in message.readBy:
                    continue
                message.readBy.append(reader_id)
                message.updatedAt = utcnow()
                conn.execute(
                    "UPDATE messages SET doc = ? WHERE id = ?",
                    [message.model_dump_json(), message.id],
                )
                changed += 1
            return changed

        return await self._run(mark)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def save_notification(self, notification: NotificationRecord) -> NotificationRecord:
        params = [
            notification.id,
            notification.recipient,
            notification.read,
            notification.createdAt.timestamp(),
            notification.model_dump_json(),
        ]
        await self._run(lambda c: c.execute(
            """
            INSERT INTO notifications (id, recipient, is_read, created_at, doc)
            VALUES (?, ?, ?, ?, ?)
            """,
            params,
        ))
        return notification

    async def find_notification(self, notification_id: str) -> Optional[NotificationRecord]:
        row = await self._run(lambda c: c.execute(
            "SELECT doc FROM notifications WHERE id = ?", [notification_id]
        ).fetchone())
        return NotificationRecord.model_validate_json(row[0]) if row else None

    async def query_notifications(self, recipient_id: str) -> List[NotificationRecord]:
        rows = await self._run(lambda c: c.execute(
            """
            SELECT doc FROM notifications WHERE recipient = ?
            ORDER BY created_at DESC, seq DESC
            """,
            [recipient_id],
        ).fetchall())
        return [NotificationRecord.model_validate_json(row[0]) for row in rows]

    async def count_unread_notifications(self, recipient_id: str) -> int:
        row = await self._run(lambda c: c.execute(
            "SELECT COUNT(*) FROM notifications WHERE recipient = ? AND NOT is_read",
            [recipient_id],
        ).fetchone())
        return int(row[0])

    def _set_read(self, conn, notification: NotificationRecord) -> NotificationRecord:
        notification.read = True
        notification.updatedAt = utcnow()
        conn.execute(
            "UPDATE notifications SET is_read = TRUE, doc = ? WHERE id = ?",
            [notification.model_dump_json(), notification.id],
        )
        return notification

    async def mark_notification_read(self, notification_id: str) -> Optional[NotificationRecord]:
        def mark(conn) -> Optional[NotificationRecord]:
            row = conn.execute(
                "SELECT doc FROM notifications WHERE id = ?", [notification_id]
            ).fetchone()
            if row is None:
                return None
            return self._set_read(conn, NotificationRecord.model_validate_json(row[0]))

        return await self._run(mark)

    async def mark_all_notifications_read(self, recipient_id: str) -> int:
        def mark(conn) -> int:
            rows = conn.execute(
                "SELECT doc FROM notifications WHERE recipient = ? AND NOT is_read",
                [recipient_id],
            ).fetchall()
            for (doc,) in rows:
                self._set_read(conn, NotificationRecord.model_validate_json(doc))
            return len(rows)

        return await self._run(mark)

    async def delete_notification(self, notification_id: str) -> bool:
        def delete(conn) -> bool:
            row = conn.execute(
                "SELECT 1 FROM notifications WHERE id = ?", [notification_id]
            ).fetchone()
            if row is None:
                return False
            conn.execute("DELETE FROM notifications WHERE id = ?", [notification_id])
            return True

        return await self._run(delete)
