"""Default human-readable notification messages, keyed by notification type."""
from typing import Dict, Optional

from app.store.schemas import NotificationType

FALLBACK_MESSAGE = "You have a new notification."

# {sender} is replaced with the sender's username (empty for system notifications)
DEFAULT_MESSAGES: Dict[NotificationType, str] = {
    NotificationType.LIKE: "{sender} liked your post.",
    NotificationType.COMMENT: "{sender} commented on your post.",
    NotificationType.FRIEND_REQUEST: "{sender} sent you a friend request.",
    NotificationType.FRIEND_ACCEPTED: "{sender} accepted your friend request.",
    NotificationType.GROUP_INVITE: "{sender} invited you to join a group.",
    NotificationType.GROUP_JOINED: "{sender} joined your group.",
    NotificationType.GROUP_WATCHLIST_ADD: "{sender} added an item to your group's watchlist.",
    NotificationType.GROUP_JOIN_REQUEST: "{sender} requested to join your group.",
    NotificationType.GROUP_REQUEST_ACCEPTED: "Your request to join the group was accepted.",
    NotificationType.GROUP_REQUEST_REJECTED: "Your request to join the group was rejected.",
    NotificationType.GROUP_REMOVED: "You were removed from the group.",
    NotificationType.NEW_PRIVATE_MESSAGE: "{sender} sent you a private message.",
    NotificationType.ADMIN_MESSAGE: "Admin: You have a new message.",
    NotificationType.POST_MENTIONED: "{sender} mentioned you in a post.",
    NotificationType.SHARED_MOVIE_RECOMMENDATION: "{sender} recommended a movie to you.",
}


def render_default_message(type: NotificationType, sender_username: Optional[str] = None) -> str:
    """Render the default message for a notification type."""
    template = DEFAULT_MESSAGES.get(type, FALLBACK_MESSAGE)
    return template.format(sender=sender_username or "Someone")
