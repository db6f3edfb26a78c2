"""Request bodies for the friendship endpoints."""
from pydantic import BaseModel, Field


class FriendRequestCreate(BaseModel):
    recipientId: str = Field(..., min_length=1)


class FriendRequestAccept(BaseModel):
    senderId: str = Field(..., min_length=1)
