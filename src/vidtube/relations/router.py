"""Like and subscription router: /api/v1/likes/* and /api/v1/subscriptions/*."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vidtube.auth.dependencies import get_current_user
from vidtube.auth.schemas import PublicUserResponse
from vidtube.database import get_session
from vidtube.db.models import RelationKind, User
from vidtube.ids import parse_id
from vidtube.relations.schemas import (
    ChannelSubscribersResponse,
    LikedVideo,
    LikedVideosResponse,
    SubscribedChannel,
    SubscribedChannelsResponse,
    SubscriberEntry,
    ToggleResponse,
)
from vidtube.relations.service import (
    count_active_for_target,
    is_active,
    list_active,
    list_active_for_target,
    toggle,
)

likes_router = APIRouter(prefix="/api/v1/likes", tags=["Likes"])
subscriptions_router = APIRouter(prefix="/api/v1/subscriptions", tags=["Subscriptions"])

MAX_LIMIT = 100


async def _toggle_response(
    db: AsyncSession,
    response: Response,
    actor: User,
    target_id: str,
    kind: RelationKind,
) -> ToggleResponse:
    """Run a toggle; 201 when the relation was created, 200 when removed."""
    result = await toggle(db, actor.id, target_id, kind)
    response.status_code = status.HTTP_201_CREATED if result.active else status.HTTP_200_OK
    return ToggleResponse(target_id=parse_id(target_id), kind=kind.value, active=result.active)


async def _users_by_id(db: AsyncSession, ids: list[str]) -> dict[str, User]:
    if not ids:
        return {}
    result = await db.execute(select(User).where(User.id.in_(ids)))
    return {u.id: u for u in result.scalars().all()}


# ---------------------------------------------------------------------------
# Likes
# ---------------------------------------------------------------------------


@likes_router.post("/toggle/v/{video_id}", response_model=ToggleResponse)
async def toggle_video_like_endpoint(
    video_id: str,
    response: Response,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ToggleResponse:
    """Like or unlike a video."""
    return await _toggle_response(db, response, user, video_id, RelationKind.VIDEO_LIKE)


@likes_router.post("/toggle/c/{comment_id}", response_model=ToggleResponse)
async def toggle_comment_like_endpoint(
    comment_id: str,
    response: Response,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ToggleResponse:
    """Like or unlike a comment."""
    return await _toggle_response(db, response, user, comment_id, RelationKind.COMMENT_LIKE)


@likes_router.post("/toggle/t/{tweet_id}", response_model=ToggleResponse)
async def toggle_tweet_like_endpoint(
    tweet_id: str,
    response: Response,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ToggleResponse:
    """Like or unlike a tweet."""
    return await _toggle_response(db, response, user, tweet_id, RelationKind.TWEET_LIKE)


@likes_router.get("/videos", response_model=LikedVideosResponse)
async def liked_videos_endpoint(
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=MAX_LIMIT),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> LikedVideosResponse:
    """Videos the caller liked."""
    likes = await list_active(db, user.id, RelationKind.VIDEO_LIKE, offset=offset, limit=limit)
    return LikedVideosResponse(
        videos=[LikedVideo(video_id=like.target_id, liked_at=like.created_at) for like in likes]
    )


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------


@subscriptions_router.post("/c/{channel_id}", response_model=ToggleResponse)
async def toggle_subscription_endpoint(
    channel_id: str,
    response: Response,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ToggleResponse:
    """Subscribe to or unsubscribe from a channel."""
    return await _toggle_response(db, response, user, channel_id, RelationKind.SUBSCRIPTION)


@subscriptions_router.get("/c/{channel_id}", response_model=ChannelSubscribersResponse)
async def channel_subscribers_endpoint(
    channel_id: str,
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=MAX_LIMIT),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ChannelSubscribersResponse:
    """Subscribers of a channel."""
    channel_id = parse_id(channel_id, "channel ID")
    subs = await list_active_for_target(db, channel_id, RelationKind.SUBSCRIPTION, offset=offset, limit=limit)
    users = await _users_by_id(db, [s.actor_id for s in subs])
    return ChannelSubscribersResponse(
        channel_id=channel_id,
        subscriber_count=await count_active_for_target(db, channel_id, RelationKind.SUBSCRIPTION),
        is_subscribed=await is_active(db, user.id, channel_id, RelationKind.SUBSCRIPTION),
        subscribers=[
            SubscriberEntry(
                subscriber=PublicUserResponse.model_validate(users[s.actor_id]),
                subscribed_at=s.created_at,
            )
            for s in subs
            if s.actor_id in users
        ],
    )


@subscriptions_router.get("/u/{subscriber_id}", response_model=SubscribedChannelsResponse)
async def subscribed_channels_endpoint(
    subscriber_id: str,
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=MAX_LIMIT),
    _user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> SubscribedChannelsResponse:
    """Channels a user subscribes to."""
    subscriber_id = parse_id(subscriber_id, "subscriber ID")
    subs = await list_active(db, subscriber_id, RelationKind.SUBSCRIPTION, offset=offset, limit=limit)
    channels = await _users_by_id(db, [s.target_id for s in subs])
    return SubscribedChannelsResponse(
        subscriber_id=subscriber_id,
        channels=[
            SubscribedChannel(
                channel=(
                    PublicUserResponse.model_validate(channels[s.target_id]) if s.target_id in channels else None
                ),
                channel_id=s.target_id,
                subscribed_at=s.created_at,
            )
            for s in subs
        ],
    )
