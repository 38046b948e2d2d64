"""
FastAPI routes for forum topics.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from forum.config import DEFAULT_TOPIC_PAGE_SIZE, MAX_PAGE_NUMBER, MAX_PAGE_SIZE
from forum.db import get_db
from forum.deps import current_principal, moderator_principal, optional_principal
from forum.services import topics as topic_store
from forum.services.access import Principal, can_mutate
from forum.services.pagination import Page
from forum.services.serializers import serialize_topic


# Request models
class TopicCreate(BaseModel):
    """Request body for creating a topic."""
    title: Optional[str] = Field(None, description="Topic title")
    description: Optional[str] = Field(None, description="Opening text of the topic")
    category: Optional[str] = Field(None, description="Category, defaults to General")
    tags: Optional[List[str]] = Field(None, description="Free-form tags")


class TopicUpdate(BaseModel):
    """Request body for editing a topic; omitted fields are left unchanged."""
    title: Optional[str] = Field(None, description="New title")
    description: Optional[str] = Field(None, description="New description")
    category: Optional[str] = Field(None, description="New category")
    tags: Optional[List[str]] = Field(None, description="Replacement tag set")


# Router
router = APIRouter(prefix="/topics", tags=["topics"])


def _topic_page(result: Page) -> dict:
    return {
        "success": True,
        "topics": [serialize_topic(topic) for topic in result.items],
        "currentPage": result.page,
        "totalPages": result.total_pages,
        "totalTopics": result.total,
        "hasMore": result.has_more,
    }


@router.get("")
def list_topics(
    page: int = Query(1, ge=1, le=MAX_PAGE_NUMBER, description="Page number"),
    limit: int = Query(DEFAULT_TOPIC_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Topics per page"),
    category: Optional[str] = Query(None, description="Exact category, 'All' for every category"),
    search: Optional[str] = Query(None, description="Text searched in title and description"),
    db: Session = Depends(get_db),
) -> dict:
    """List topics, pinned first, then by most recent activity."""
    result = topic_store.list_topics(db, page=page, page_size=limit, category=category, search=search)
    return _topic_page(result)


@router.get("/categories")
def list_categories(db: Session = Depends(get_db)) -> dict:
    """Categories currently in use, with topic counts."""
    return {"success": True, "categories": topic_store.list_categories(db)}


@router.get("/category/{category}")
def list_topics_in_category(
    category: str,
    page: int = Query(1, ge=1, le=MAX_PAGE_NUMBER, description="Page number"),
    limit: int = Query(DEFAULT_TOPIC_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Topics per page"),
    db: Session = Depends(get_db),
) -> dict:
    """List topics of one category, matched exactly ("All" is a literal name here)."""
    result = topic_store.list_topics(db, page=page, page_size=limit, category=category, exact_category=True)
    return _topic_page(result)


@router.get("/{topic_id}")
def get_topic(
    topic_id: int = Path(..., ge=1, description="Topic ID"),
    principal: Optional[Principal] = Depends(optional_principal),
    db: Session = Depends(get_db),
) -> dict:
    """Fetch one topic and count the view."""
    topic = topic_store.get_topic(db, topic_id)
    data = serialize_topic(topic)
    if principal is not None:
        data["canEdit"] = can_mutate(topic, principal)
    return {"success": True, "topic": data}


@router.post("", status_code=201)
def create_topic(
    body: TopicCreate,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
) -> dict:
    topic, verdict = topic_store.create_topic(
        db,
        principal,
        title=body.title,
        description=body.description,
        category=body.category,
        tags=body.tags,
    )
    return {
        "success": True,
        "message": "Topic created but flagged for moderation" if verdict.flagged else "Topic created successfully",
        "topic": serialize_topic(topic),
        "flagged": verdict.flagged,
    }


@router.put("/{topic_id}")
def update_topic(
    body: TopicUpdate,
    topic_id: int = Path(..., ge=1, description="Topic ID"),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
) -> dict:
    topic, verdict = topic_store.update_topic(
        db,
        principal,
        topic_id,
        title=body.title,
        description=body.description,
        category=body.category,
        tags=body.tags,
    )
    return {
        "success": True,
        "message": "Topic updated",
        "topic": serialize_topic(topic),
        "flagged": verdict.flagged,
    }


@router.delete("/{topic_id}")
def delete_topic(
    topic_id: int = Path(..., ge=1, description="Topic ID"),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
) -> dict:
    """Soft-delete a topic and every post in it."""
    topic_store.delete_topic(db, principal, topic_id)
    return {"success": True, "message": "Topic deleted"}


@router.patch("/{topic_id}/lock")
def toggle_lock(
    topic_id: int = Path(..., ge=1, description="Topic ID"),
    principal: Principal = Depends(moderator_principal),
    db: Session = Depends(get_db),
) -> dict:
    is_locked = topic_store.toggle_lock(db, principal, topic_id)
    return {
        "success": True,
        "message": f"Topic {'locked' if is_locked else 'unlocked'}",
        "topic": {"isLocked": is_locked},
    }


@router.patch("/{topic_id}/pin")
def toggle_pin(
    topic_id: int = Path(..., ge=1, description="Topic ID"),
    principal: Principal = Depends(moderator_principal),
    db: Session = Depends(get_db),
) -> dict:
    is_pinned = topic_store.toggle_pin(db, principal, topic_id)
    return {
        "success": True,
        "message": f"Topic {'pinned' if is_pinned else 'unpinned'}",
        "topic": {"isPinned": is_pinned},
    }
