"""Response schemas for like and subscription endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from vidtube.auth.schemas import PublicUserResponse


class ToggleResponse(BaseModel):
    """State of a relation after a toggle."""

    target_id: str
    kind: str
    active: bool


class LikedVideo(BaseModel):
    """A video the caller liked."""

    video_id: str
    liked_at: datetime


class LikedVideosResponse(BaseModel):
    """Videos the caller liked, most recent first."""

    videos: list[LikedVideo]


class SubscriberEntry(BaseModel):
    """A subscriber of a channel."""

    subscriber: PublicUserResponse
    subscribed_at: datetime


class ChannelSubscribersResponse(BaseModel):
    """Subscribers of a channel, most recent first."""

    channel_id: str
    subscriber_count: int
    is_subscribed: bool
    subscribers: list[SubscriberEntry]


class SubscribedChannel(BaseModel):
    """A channel a user subscribes to."""

    channel: PublicUserResponse | None
    channel_id: str
    subscribed_at: datetime


class SubscribedChannelsResponse(BaseModel):
    """Channels a user subscribes to, most recent first."""

    subscriber_id: str
    channels: list[SubscribedChannel]
