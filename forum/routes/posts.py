"""
FastAPI routes for posts, threaded replies and the moderation queue.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from forum.config import DEFAULT_POST_PAGE_SIZE, MAX_PAGE_NUMBER, MAX_PAGE_SIZE
from forum.db import get_db
from forum.deps import current_principal, moderator_principal, optional_principal
from forum.services import moderation
from forum.services import posts as post_engine
from forum.services.access import Principal
from forum.services.serializers import serialize_post


# Request models
class PostCreate(BaseModel):
    """Request body for a new post or reply."""
    model_config = ConfigDict(populate_by_name=True)

    content: Optional[str] = Field(None, description="Post text")
    topic_id: Optional[int] = Field(None, alias="topicId", description="Topic to post in")
    parent_post_id: Optional[int] = Field(None, alias="parentPostId", description="Post being replied to")


class PostUpdate(BaseModel):
    """Request body for editing a post."""
    content: Optional[str] = Field(None, description="Replacement text")


class ReportRequest(BaseModel):
    """Request body for reporting a post."""
    reason: Optional[str] = Field(None, description="Why the post should be reviewed")


class ModerateRequest(BaseModel):
    """Request body for resolving a reported post."""
    action: Optional[str] = Field(None, description="'approve' or 'delete'")


# Router
router = APIRouter(prefix="/posts", tags=["posts"])


@router.get("/topic/{topic_id}")
def list_topic_posts(
    topic_id: int = Path(..., ge=1, description="Topic ID"),
    page: int = Query(1, ge=1, le=MAX_PAGE_NUMBER, description="Page number"),
    limit: int = Query(DEFAULT_POST_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Top-level posts per page"),
    principal: Optional[Principal] = Depends(optional_principal),
    db: Session = Depends(get_db),
) -> dict:
    """
    List a topic's top-level posts with nested replies.

    Pagination and totals apply to top-level posts only.
    """
    result = post_engine.list_by_topic(db, topic_id, page=page, page_size=limit, viewer=principal)
    return {
        "success": True,
        "posts": result.items,
        "currentPage": result.page,
        "totalPages": result.total_pages,
        "totalPosts": result.total,
    }


@router.get("/reported")
def list_reported_posts(
    page: int = Query(1, ge=1, le=MAX_PAGE_NUMBER, description="Page number"),
    limit: int = Query(DEFAULT_POST_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, description="Posts per page"),
    principal: Principal = Depends(moderator_principal),
    db: Session = Depends(get_db),
) -> dict:
    """Moderation queue: reported posts, most recently reported first."""
    result = moderation.list_reported(db, page=page, page_size=limit)
    return {
        "success": True,
        "posts": result.items,
        "currentPage": result.page,
        "totalPages": result.total_pages,
        "totalReports": result.total,
    }


@router.get("/moderation/summary")
def moderation_summary(
    principal: Principal = Depends(moderator_principal),
    db: Session = Depends(get_db),
) -> dict:
    return {"success": True, **moderation.queue_summary(db)}


@router.post("", status_code=201)
def create_post(
    body: PostCreate,
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
) -> dict:
    post, verdict = post_engine.create_post(
        db,
        principal,
        content=body.content,
        topic_id=body.topic_id,
        parent_post_id=body.parent_post_id,
    )
    return {
        "success": True,
        "message": "Post created but flagged for moderation" if verdict.flagged else "Post created successfully",
        "post": serialize_post(post),
        "flagged": verdict.flagged,
    }


@router.put("/{post_id}")
def update_post(
    body: PostUpdate,
    post_id: int = Path(..., ge=1, description="Post ID"),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
) -> dict:
    post, verdict = post_engine.update_post(db, principal, post_id, body.content)
    return {
        "success": True,
        "message": "Post updated successfully",
        "post": serialize_post(post),
        "flagged": verdict.flagged,
    }


@router.delete("/{post_id}")
def delete_post(
    post_id: int = Path(..., ge=1, description="Post ID"),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
) -> dict:
    post_engine.delete_post(db, principal, post_id)
    return {"success": True, "message": "Post deleted successfully"}


@router.post("/{post_id}/like")
def toggle_like(
    post_id: int = Path(..., ge=1, description="Post ID"),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
) -> dict:
    liked, like_count = post_engine.toggle_like(db, principal, post_id)
    return {
        "success": True,
        "message": "Post liked" if liked else "Post unliked",
        "liked": liked,
        "likeCount": like_count,
    }


@router.post("/{post_id}/report")
def report_post(
    body: ReportRequest,
    post_id: int = Path(..., ge=1, description="Post ID"),
    principal: Principal = Depends(current_principal),
    db: Session = Depends(get_db),
) -> dict:
    post_engine.report_post(db, principal, post_id, body.reason)
    return {"success": True, "message": "Post reported successfully. Moderators will review it."}


@router.patch("/{post_id}/moderate")
def moderate_post(
    body: ModerateRequest,
    post_id: int = Path(..., ge=1, description="Post ID"),
    principal: Principal = Depends(moderator_principal),
    db: Session = Depends(get_db),
) -> dict:
    action = moderation.moderate(db, principal, post_id, body.action)
    message = "Post approved successfully" if action == "approve" else "Post deleted successfully"
    return {"success": True, "message": message}
