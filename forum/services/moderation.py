"""Moderation queue over reported and auto-flagged posts."""

import logging
from typing import Dict

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, selectinload
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from forum.config import DB_RETRY_ATTEMPTS, DB_RETRY_MAX_WAIT, DB_RETRY_MIN_WAIT, DEFAULT_POST_PAGE_SIZE
from forum.errors import ValidationError
from forum.models import Post, PostReport
from forum.services.access import Principal, require_role
from forum.services.pagination import Page, paginate
from forum.services.posts import get_visible_post, soft_delete_post
from forum.services.serializers import serialize_post

logger = logging.getLogger(__name__)

MODERATION_ACTIONS = ("approve", "delete")


def _reported_posts(db: Session):
    return db.query(Post).filter(Post.is_reported.is_(True), Post.is_deleted.is_not(True))


@retry(
    retry=retry_if_exception_type(OperationalError),
    stop=stop_after_attempt(DB_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=DB_RETRY_MIN_WAIT, max=DB_RETRY_MAX_WAIT),
    reraise=True,
)
def list_reported(db: Session, page: int = 1, page_size: int = DEFAULT_POST_PAGE_SIZE) -> Page:
    """
    Page through reported, non-deleted posts, most recently reported first.

    Items are post dicts including the report entries and the topic title.
    """
    query = (
        _reported_posts(db)
        .options(
            selectinload(Post.author),
            selectinload(Post.likes),
            selectinload(Post.topic),
            selectinload(Post.reports).selectinload(PostReport.reported_by),
        )
        .order_by(Post.reported_at.desc(), Post.id.desc())
    )
    result = paginate(query, page, page_size)
    items = []
    for post in result.items:
        data = serialize_post(post, include_reports=True)
        data["topicTitle"] = post.topic.title if post.topic else None
        items.append(data)
    result.items = items
    return result


def queue_summary(db: Session) -> Dict[str, int]:
    """Counts of posts waiting for a moderator."""
    live = db.query(Post).filter(Post.is_deleted.is_not(True))
    return {
        "reported": _reported_posts(db).count(),
        "flagged": live.filter(Post.is_moderated.is_(True)).count(),
    }


def moderate(db: Session, principal: Principal, post_id: int, action: str) -> str:
    """
    Resolve a post: ``approve`` clears reports and flags, ``delete`` soft-deletes it.

    Raises:
        Forbidden: principal is not a moderator or admin
        ValidationError: unknown action
        NotFound: post missing or already deleted
    """
    require_role(principal)
    if action not in MODERATION_ACTIONS:
        raise ValidationError("Invalid action")

    post = get_visible_post(db, post_id)

    if action == "approve":
        db.query(PostReport).filter(PostReport.post_id == post.id).delete(synchronize_session=False)
        post.is_reported = False
        post.reported_at = None
        post.is_moderated = False
        post.moderation_reason = ""
        db.flush()
        db.expire(post, ["reports"])
    else:
        soft_delete_post(db, post, principal)

    logger.info("Post %s moderated by user %s: %s", post_id, principal.id, action)
    return action
