"""JSON shapes for users, topics, posts and reports as sent to clients."""

from datetime import datetime
from typing import Optional

from forum.models import Post, PostReport, Role, Topic, User


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def user_ref(user: Optional[User]) -> Optional[dict]:
    if user is None:
        return None
    return {"id": user.id, "username": user.username, "role": Role(user.role).value}


def serialize_user(user) -> dict:
    """Public profile of a User row or Principal; never includes the password hash."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "role": Role(user.role).value,
        "postCount": user.post_count,
        "reputation": user.reputation,
        "bio": user.bio,
        "createdAt": _iso(user.created_at),
    }


def serialize_topic(topic: Topic) -> dict:
    return {
        "id": topic.id,
        "title": topic.title,
        "description": topic.description,
        "author": user_ref(topic.author),
        "category": topic.category,
        "tags": list(topic.tags or []),
        "viewCount": topic.view_count,
        "postCount": topic.post_count,
        "isPinned": topic.is_pinned,
        "isLocked": topic.is_locked,
        "isModerated": topic.is_moderated,
        "moderationReason": topic.moderation_reason,
        "lastActivity": _iso(topic.last_activity),
        "lastPostBy": user_ref(topic.last_post_by),
        "createdAt": _iso(topic.created_at),
    }


def serialize_report(report: PostReport) -> dict:
    return {
        "reportedBy": user_ref(report.reported_by),
        "reason": report.reason,
        "reportedAt": _iso(report.reported_at),
    }


def serialize_post(post: Post, viewer_id: Optional[int] = None, include_reports: bool = False) -> dict:
    """
    Flat JSON shape of a post; thread building adds the ``replies`` key.

    Args:
        post: Post row
        viewer_id: Principal id used to fill ``likedByMe`` (omitted when None)
        include_reports: Include the report entries (moderator views only)
    """
    likes = [like.user_id for like in post.likes]
    data = {
        "id": post.id,
        "content": post.content,
        "author": user_ref(post.author),
        "topic": post.topic_id,
        "parentPost": post.parent_post_id,
        "level": post.level,
        "likes": likes,
        "likeCount": post.like_count,
        "isReported": post.is_reported,
        "isDeleted": post.is_deleted,
        "isModerated": post.is_moderated,
        "moderationReason": post.moderation_reason,
        "createdAt": _iso(post.created_at),
        "updatedAt": _iso(post.updated_at),
    }
    if viewer_id is not None:
        data["likedByMe"] = viewer_id in likes
    if include_reports:
        data["reports"] = [serialize_report(r) for r in post.reports]
        data["reportedAt"] = _iso(post.reported_at)
    return data
