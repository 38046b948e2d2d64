"""Topic store: listing, lookup, creation, editing, soft delete and moderator toggles."""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, not_, or_
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, selectinload
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from forum.config import DB_RETRY_ATTEMPTS, DB_RETRY_MAX_WAIT, DB_RETRY_MIN_WAIT, DEFAULT_TOPIC_PAGE_SIZE
from forum.db import best_effort
from forum.errors import Forbidden, NotFound, ValidationError
from forum.models import Post, Topic
from forum.services.access import Principal, can_mutate, require_role
from forum.services.content_filter import CLEAN, FilterResult, classify, select_text
from forum.services.pagination import Page, paginate
from forum.services.users import adjust_post_count

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "General"
ALL_CATEGORIES = "All"


def _normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    cleaned = (str(tag).strip() for tag in (tags or []))
    return list(dict.fromkeys(tag for tag in cleaned if tag))


def _visible_topics(db: Session):
    return (
        db.query(Topic)
        .options(selectinload(Topic.author), selectinload(Topic.last_post_by))
        .filter(Topic.is_deleted.is_not(True))
    )


def _get_visible_topic(db: Session, topic_id: int) -> Topic:
    topic = db.query(Topic).filter(Topic.id == topic_id).first()
    if topic is None:
        raise NotFound("Topic not found")
    if topic.is_deleted:
        raise NotFound("Topic has been deleted")
    return topic


def _get_mutable_topic(db: Session, principal: Principal, topic_id: int, verb: str) -> Topic:
    topic = _get_visible_topic(db, topic_id)
    if not can_mutate(topic, principal):
        raise Forbidden(f"No permission to {verb}")
    return topic


@retry(
    retry=retry_if_exception_type(OperationalError),
    stop=stop_after_attempt(DB_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=DB_RETRY_MIN_WAIT, max=DB_RETRY_MAX_WAIT),
    reraise=True,
)
def list_topics(
    db: Session,
    page: int = 1,
    page_size: int = DEFAULT_TOPIC_PAGE_SIZE,
    category: Optional[str] = None,
    search: Optional[str] = None,
    exact_category: bool = False,
) -> Page:
    """
    List non-deleted topics, pinned first, then most recent activity first.

    Args:
        db: Database session
        page: 1-based page number
        page_size: Topics per page
        category: Exact category to match; None, "" and "All" disable the filter
        search: Case-insensitive substring matched against title or description
        exact_category: Match ``category`` literally, "All" included

    Returns:
        Page of Topic rows
    """
    query = _visible_topics(db)

    if exact_category:
        query = query.filter(Topic.category == category)
    elif category and category != ALL_CATEGORIES:
        query = query.filter(Topic.category == category)

    if search:
        query = query.filter(
            or_(
                Topic.title.icontains(search, autoescape=True),
                Topic.description.icontains(search, autoescape=True),
            )
        )

    query = query.order_by(Topic.is_pinned.desc(), Topic.last_activity.desc(), Topic.id.desc())
    return paginate(query, page, page_size)


@retry(
    retry=retry_if_exception_type(OperationalError),
    stop=stop_after_attempt(DB_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=DB_RETRY_MIN_WAIT, max=DB_RETRY_MAX_WAIT),
    reraise=True,
)
def list_categories(db: Session) -> List[Dict[str, object]]:
    """Categories in use by non-deleted topics, with topic counts."""
    rows = (
        db.query(Topic.category, func.count(Topic.id).label("topic_count"))
        .filter(Topic.is_deleted.is_not(True))
        .group_by(Topic.category)
        .order_by(Topic.category)
        .all()
    )
    return [{"category": row.category, "topicCount": row.topic_count} for row in rows]


def get_topic(db: Session, topic_id: int) -> Topic:
    """
    Fetch a visible topic and count the view.

    The view counter is bumped with a single UPDATE so concurrent reads
    never lose an increment.
    """
    topic = _get_visible_topic(db, topic_id)
    db.query(Topic).filter(Topic.id == topic_id).update(
        {Topic.view_count: Topic.view_count + 1}, synchronize_session=False
    )
    db.refresh(topic)
    return topic


def create_topic(
    db: Session,
    principal: Principal,
    title: Optional[str],
    description: Optional[str],
    category: Optional[str] = None,
    tags: Optional[Iterable[str]] = None,
) -> Tuple[Topic, FilterResult]:
    """
    Create a topic authored by the principal.

    Returns:
        The new topic and the content filter verdict

    Raises:
        ValidationError: title or description empty
    """
    title = (title or "").strip()
    description = (description or "").strip()
    if not title or not description:
        raise ValidationError("Title and description are required")

    verdict = classify(select_text(title=title, description=description))
    now = datetime.utcnow()
    topic = Topic(
        title=title,
        description=description,
        category=(category or "").strip() or DEFAULT_CATEGORY,
        tags=_normalize_tags(tags),
        author_id=principal.id,
        is_moderated=verdict.flagged,
        moderation_reason=verdict.reason,
        last_activity=now,
        created_at=now,
    )
    db.add(topic)
    db.flush()

    if verdict.flagged:
        logger.info("Topic %s by user %s flagged: %s", topic.id, principal.id, verdict.reason)

    with best_effort(db, f"post count of user {principal.id}"):
        adjust_post_count(db, principal.id, 1)

    return topic, verdict


def update_topic(
    db: Session,
    principal: Principal,
    topic_id: int,
    title: Optional[str] = None,
    description: Optional[str] = None,
    category: Optional[str] = None,
    tags: Optional[Iterable[str]] = None,
) -> Tuple[Topic, FilterResult]:
    """
    Apply the supplied fields to a topic the principal may edit.

    Flagged edits set ``is_moderated``; clean edits leave it as it was.
    """
    topic = _get_mutable_topic(db, principal, topic_id, "edit")

    if title and title.strip():
        topic.title = title.strip()
    if description and description.strip():
        topic.description = description.strip()
    if category and category.strip():
        topic.category = category.strip()
    if tags is not None:
        topic.tags = _normalize_tags(tags)

    verdict = CLEAN
    if title or description:
        verdict = classify(select_text(title=title, description=description))
        if verdict.flagged:
            topic.is_moderated = True
            topic.moderation_reason = verdict.reason
            logger.info("Edit of topic %s flagged: %s", topic.id, verdict.reason)

    db.flush()
    return topic, verdict


def delete_topic(db: Session, principal: Principal, topic_id: int) -> int:
    """
    Soft-delete a topic, then mark every remaining post under it deleted.

    The topic flag is committed before the bulk post update; the two are
    not atomic together.

    Returns:
        Number of posts marked deleted by the cascade
    """
    topic = _get_mutable_topic(db, principal, topic_id, "delete")
    topic.is_deleted = True
    db.commit()

    cascaded = (
        db.query(Post)
        .filter(Post.topic_id == topic_id, Post.is_deleted.is_not(True))
        .update(
            {
                Post.is_deleted: True,
                Post.deleted_at: datetime.utcnow(),
                Post.deleted_by_id: principal.id,
            },
            synchronize_session=False,
        )
    )
    logger.info("Topic %s deleted by user %s; %s posts cascaded", topic_id, principal.id, cascaded)
    return cascaded


def _toggle(db: Session, principal: Principal, topic_id: int, column) -> Topic:
    require_role(principal)
    topic = _get_visible_topic(db, topic_id)
    db.query(Topic).filter(Topic.id == topic_id).update(
        {column: not_(column), Topic.moderated_by_id: principal.id},
        synchronize_session=False,
    )
    db.refresh(topic)
    return topic


def toggle_lock(db: Session, principal: Principal, topic_id: int) -> bool:
    """Flip ``is_locked`` (moderators only) and return the new state."""
    return _toggle(db, principal, topic_id, Topic.is_locked).is_locked


def toggle_pin(db: Session, principal: Principal, topic_id: int) -> bool:
    """Flip ``is_pinned`` (moderators only) and return the new state."""
    return _toggle(db, principal, topic_id, Topic.is_pinned).is_pinned


def record_post_activity(db: Session, topic_id: int, author_id: int) -> None:
    """Count a new post against the topic and stamp the last activity."""
    db.query(Topic).filter(Topic.id == topic_id).update(
        {
            Topic.post_count: Topic.post_count + 1,
            Topic.last_activity: datetime.utcnow(),
            Topic.last_post_by_id: author_id,
        },
        synchronize_session=False,
    )


def adjust_topic_post_count(db: Session, topic_id: int, delta: int) -> None:
    """Atomically add ``delta`` to the topic's post count (no floor at zero)."""
    db.query(Topic).filter(Topic.id == topic_id).update(
        {Topic.post_count: Topic.post_count + delta}, synchronize_session=False
    )
