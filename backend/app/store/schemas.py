"""Document models read and written through the document store.

Users and groups are owned by the profile/group subsystems; the realtime
core only reads the fields declared here. Messages and notifications are
created by this service and persisted through the store.

Field names are camelCase because the documents are sent to clients as-is.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def new_object_id() -> str:
    """Generate a 24-char lowercase hex identifier (ObjectId sized)."""
    return uuid.uuid4().hex[:24]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Enums
# =============================================================================


class UserRole(str, Enum):
    """Global role of a user account.

    Attributes:
        USER: Regular member.
        GROUP_ADMIN: May create and administer groups.
        ADMIN: Global administrator; bypasses group and friendship checks.
    """
    USER = "user"
    GROUP_ADMIN = "groupAdmin"
    ADMIN = "admin"


class NotificationType(str, Enum):
    LIKE = "like"
    COMMENT = "comment"
    FRIEND_REQUEST = "friend_request"
    FRIEND_ACCEPTED = "friend_accepted"
    GROUP_INVITE = "group_invite"
    GROUP_JOINED = "group_joined"
    GROUP_WATCHLIST_ADD = "group_watchlist_add"
    GROUP_JOIN_REQUEST = "group_join_request"
    GROUP_REQUEST_ACCEPTED = "group_request_accepted"
    GROUP_REQUEST_REJECTED = "group_request_rejected"
    GROUP_REMOVED = "group_removed"
    NEW_PRIVATE_MESSAGE = "new_private_message"
    ADMIN_MESSAGE = "admin_message"
    POST_MENTIONED = "post_mentioned"
    SHARED_MOVIE_RECOMMENDATION = "shared_movie_recommendation"


class EntityType(str, Enum):
    POST = "Post"
    COMMENT = "Comment"
    GROUP = "Group"
    MESSAGE = "Message"
    USER = "User"


# =============================================================================
# External entities (read-only for the realtime core)
# =============================================================================


class UserRecord(BaseModel):
    id: str = Field(default_factory=new_object_id)
    username: str
    email: Optional[str] = None
    role: UserRole = UserRole.USER
    profilePicture: Optional[str] = None
    friends: List[str] = Field(default_factory=list)
    friendRequests: List[str] = Field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class GroupRecord(BaseModel):
    id: str = Field(default_factory=new_object_id)
    name: str
    admin: str
    members: List[str] = Field(default_factory=list)
    isPrivate: bool = False


class SenderInfo(BaseModel):
    """Display fields attached to messages and notifications on delivery."""
    id: str
    username: str = ""
    profilePicture: Optional[str] = None

    @classmethod
    def from_user(cls, user: UserRecord) -> "SenderInfo":
        return cls(id=user.id, username=user.username, profilePicture=user.profilePicture)


# =============================================================================
# Messages
# =============================================================================


class MessageRecord(BaseModel):
    """One chat utterance, either a group message or a private message.

    Exactly one of ``group`` / ``recipient`` is set. ``chatIdentifier`` is
    present only for private messages.
    """
    id: str = Field(default_factory=new_object_id)
    sender: str
    group: Optional[str] = None
    recipient: Optional[str] = None
    chatIdentifier: Optional[str] = None
    content: str
    readBy: List[str] = Field(default_factory=list)
    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: datetime = Field(default_factory=utcnow)

    @field_validator("content")
    @classmethod
    def _strip_content(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message content cannot be empty")
        return value

    @model_validator(mode="after")
    def _group_xor_recipient(self) -> "MessageRecord":
        if (self.group is None) == (self.recipient is None):
            raise ValueError("A message needs exactly one of group or recipient")
        if self.recipient is not None and not self.chatIdentifier:
            raise ValueError("Private messages need a chatIdentifier")
        if self.group is not None and self.chatIdentifier is not None:
            raise ValueError("Group messages cannot carry a chatIdentifier")
        return self

    @property
    def room_id(self) -> str:
        """Room the message was broadcast to."""
        return self.chatIdentifier or self.group


class MessageView(MessageRecord):
    """A persisted message with the sender's display fields attached."""
    sender: SenderInfo  # type: ignore[assignment]


# =============================================================================
# Notifications
# =============================================================================


class NotificationRecord(BaseModel):
    id: str = Field(default_factory=new_object_id)
    recipient: str
    sender: Optional[str] = None
    type: NotificationType
    entityId: Optional[str] = None
    entityType: Optional[EntityType] = None
    message: str = ""
    read: bool = False
    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _entity_type_with_entity_id(self) -> "NotificationRecord":
        if self.entityId is not None and self.entityType is None:
            raise ValueError("entityType is required when entityId is set")
        return self


class NotificationView(NotificationRecord):
    """A persisted notification with the sender's display fields attached."""
    sender: Optional[SenderInfo] = None  # type: ignore[assignment]
