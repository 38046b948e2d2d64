"""Post & thread engine: threaded listing, create/edit/delete, likes and reports."""

import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, aliased, selectinload
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from forum.config import (
    DB_RETRY_ATTEMPTS,
    DB_RETRY_MAX_WAIT,
    DB_RETRY_MIN_WAIT,
    DEFAULT_POST_PAGE_SIZE,
    MAX_REPLY_DEPTH,
)
from forum.db import best_effort
from forum.errors import DuplicateReport, Forbidden, NotFound, ValidationError
from forum.models import Post, PostLike, PostReport, Topic
from forum.services.access import Principal, can_mutate
from forum.services.content_filter import FilterResult, classify
from forum.services.pagination import Page, paginate
from forum.services.serializers import serialize_post
from forum.services.threads import build_thread
from forum.services.topics import adjust_topic_post_count, record_post_activity
from forum.services.users import adjust_post_count

logger = logging.getLogger(__name__)


def get_visible_post(db: Session, post_id: int) -> Post:
    post = db.query(Post).filter(Post.id == post_id).first()
    if post is None or post.is_deleted:
        raise NotFound("Post not found")
    return post


def _get_mutable_post(db: Session, principal: Principal, post_id: int, verb: str) -> Post:
    post = get_visible_post(db, post_id)
    if not can_mutate(post, principal):
        raise Forbidden(f"No permission to {verb} this post")
    return post


def _live_posts(db: Session):
    return (
        db.query(Post)
        .options(selectinload(Post.author), selectinload(Post.likes))
        .filter(Post.is_deleted.is_not(True))
    )


def _descendant_ids(db: Session, root_ids):
    """Recursive CTE over non-deleted replies below the given posts."""
    descendants = (
        db.query(Post.id)
        .filter(Post.parent_post_id.in_(root_ids), Post.is_deleted.is_not(True))
        .cte(name="descendants", recursive=True)
    )
    parent = aliased(descendants, name="parent")
    child = aliased(Post, name="child")
    descendants = descendants.union(
        db.query(child.id).filter(child.parent_post_id == parent.c.id, child.is_deleted.is_not(True))
    )
    return select(descendants.c.id)


@retry(
    retry=retry_if_exception_type(OperationalError),
    stop=stop_after_attempt(DB_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=DB_RETRY_MIN_WAIT, max=DB_RETRY_MAX_WAIT),
    reraise=True,
)
def list_by_topic(
    db: Session,
    topic_id: int,
    page: int = 1,
    page_size: int = DEFAULT_POST_PAGE_SIZE,
    viewer: Optional[Principal] = None,
) -> Page:
    """
    Page through a topic's top-level posts with their reply trees attached.

    Top-level posts are ordered oldest first and paginated; all non-deleted
    descendants of the page's posts are then fetched in one query and nested
    under their direct parents. Totals count top-level posts only.

    Args:
        db: Database session
        topic_id: Topic whose posts are listed
        page: 1-based page number
        page_size: Top-level posts per page
        viewer: Optional principal used to fill ``likedByMe``

    Returns:
        Page whose items are nested post dicts
    """
    roots = (
        _live_posts(db)
        .filter(Post.topic_id == topic_id, Post.parent_post_id.is_(None))
        .order_by(Post.created_at.asc(), Post.id.asc())
    )
    result = paginate(roots, page, page_size)

    replies = []
    if result.items:
        root_ids = [post.id for post in result.items]
        replies = (
            _live_posts(db)
            .filter(Post.id.in_(_descendant_ids(db, root_ids)))
            .order_by(Post.created_at.asc(), Post.id.asc())
            .all()
        )

    viewer_id = viewer.id if viewer else None
    result.items = build_thread(
        result.items,
        replies,
        lambda post: serialize_post(post, viewer_id=viewer_id),
        max_depth=MAX_REPLY_DEPTH,
    )
    return result


def create_post(
    db: Session,
    principal: Principal,
    content: Optional[str],
    topic_id: Optional[int],
    parent_post_id: Optional[int] = None,
) -> Tuple[Post, FilterResult]:
    """
    Create a top-level post or a reply.

    Raises:
        ValidationError: content or topic id missing, or reply nested too deep
        NotFound: topic, or the parent post within it, missing or deleted
        Forbidden: topic locked and the principal is not a moderator
    """
    content = (content or "").strip()
    if not content or not topic_id:
        raise ValidationError("Content and topic ID are required")

    topic = db.query(Topic).filter(Topic.id == topic_id).first()
    if topic is None or topic.is_deleted:
        raise NotFound("Topic not found")
    if topic.is_locked and not principal.is_moderator:
        raise Forbidden("This topic is locked and cannot be replied to")

    level = 0
    if parent_post_id:
        parent = (
            db.query(Post)
            .filter(Post.id == parent_post_id, Post.topic_id == topic_id)
            .first()
        )
        if parent is None or parent.is_deleted:
            raise NotFound("Parent post not found")
        level = parent.level + 1
        if level > MAX_REPLY_DEPTH:
            raise ValidationError(f"Replies cannot be nested more than {MAX_REPLY_DEPTH} levels deep")

    verdict = classify(content)
    now = datetime.utcnow()
    post = Post(
        content=content,
        author_id=principal.id,
        topic_id=topic_id,
        parent_post_id=parent_post_id or None,
        level=level,
        is_moderated=verdict.flagged,
        moderation_reason=verdict.reason,
        created_at=now,
        updated_at=now,
    )
    db.add(post)
    db.flush()

    if verdict.flagged:
        logger.info("Post %s by user %s flagged: %s", post.id, principal.id, verdict.reason)

    with best_effort(db, f"activity of topic {topic_id}"):
        record_post_activity(db, topic_id, principal.id)
    with best_effort(db, f"post count of user {principal.id}"):
        adjust_post_count(db, principal.id, 1)

    return post, verdict


def update_post(
    db: Session, principal: Principal, post_id: int, content: Optional[str]
) -> Tuple[Post, FilterResult]:
    """Replace a post's content, re-running the content filter."""
    content = (content or "").strip()
    if not content:
        raise ValidationError("Content is required")

    post = _get_mutable_post(db, principal, post_id, "edit")
    post.content = content
    verdict = classify(content)
    if verdict.flagged:
        post.is_moderated = True
        post.moderation_reason = verdict.reason
        logger.info("Edit of post %s flagged: %s", post.id, verdict.reason)
    post.updated_at = datetime.utcnow()
    db.flush()
    return post, verdict


def soft_delete_post(db: Session, post: Post, principal: Principal) -> None:
    """Mark a post deleted and take it off its topic's post count."""
    topic_id = post.topic_id
    post.is_deleted = True
    post.deleted_at = datetime.utcnow()
    post.deleted_by_id = principal.id
    db.flush()

    with best_effort(db, f"post count of topic {topic_id}"):
        adjust_topic_post_count(db, topic_id, -1)


def delete_post(db: Session, principal: Principal, post_id: int) -> None:
    post = _get_mutable_post(db, principal, post_id, "delete")
    soft_delete_post(db, post, principal)


def toggle_like(db: Session, principal: Principal, post_id: int) -> Tuple[bool, int]:
    """
    Like the post, or unlike it if the principal already does.

    The like set lives in ``post_likes`` keyed by (post, user), so two racing
    likes by the same user cannot both be stored. ``like_count`` is recomputed
    from that set in the same UPDATE.

    Returns:
        (liked, like_count) after the toggle
    """
    post = get_visible_post(db, post_id)

    removed = (
        db.query(PostLike)
        .filter(PostLike.post_id == post_id, PostLike.user_id == principal.id)
        .delete(synchronize_session=False)
    )
    liked = not removed
    if liked:
        db.add(PostLike(post_id=post_id, user_id=principal.id))
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            logger.info("Concurrent like of post %s by user %s already stored", post_id, principal.id)

    like_total = (
        select(func.count())
        .select_from(PostLike)
        .where(PostLike.post_id == post_id)
        .scalar_subquery()
    )
    db.query(Post).filter(Post.id == post_id).update(
        {Post.like_count: like_total}, synchronize_session=False
    )
    db.expire(post)
    return liked, post.like_count


def report_post(db: Session, principal: Principal, post_id: int, reason: Optional[str]) -> Post:
    """
    File a report against a post; one report per user per post.

    Raises:
        ValidationError: empty reason
        NotFound: post missing or deleted
        DuplicateReport: the principal already reported this post
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("Report reason is required")

    post = get_visible_post(db, post_id)
    already = (
        db.query(PostReport.id)
        .filter(PostReport.post_id == post_id, PostReport.reported_by_id == principal.id)
        .first()
    )
    if already:
        raise DuplicateReport()

    now = datetime.utcnow()
    db.add(PostReport(post_id=post_id, reported_by_id=principal.id, reason=reason, reported_at=now))
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise DuplicateReport()

    post.is_reported = True
    if post.reported_at is None:
        post.reported_at = now
    db.flush()
    db.expire(post, ["reports"])
    logger.info("Post %s reported by user %s", post_id, principal.id)
    return post
