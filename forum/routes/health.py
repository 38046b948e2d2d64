"""
Liveness and readiness checks for the forum API.
"""

import time
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError

from forum.db import get_session
from forum.models import Post, Topic, User

router = APIRouter(prefix="/health", tags=["health"])

API_VERSION = "1.0.0"

COUNTED_MODELS = {"users": User, "topics": Topic, "posts": Post}


def check_database_health() -> Dict[str, Any]:
    """
    Round-trip a trivial query and time it.

    Returns:
        ``{"status": "ok", "latencyMs": ...}`` or ``{"status": "down", "error": ...}``
    """
    started = time.perf_counter()
    try:
        with get_session() as db:
            if db.execute(text("SELECT 1")).scalar() != 1:
                return {"status": "down", "error": "Unexpected query result"}
    except SQLAlchemyError as e:
        return {"status": "down", "error": f"Database error: {e.__class__.__name__}"}
    return {"status": "ok", "latencyMs": round((time.perf_counter() - started) * 1000, 2)}


@router.get("/")
def health_check() -> Dict[str, Any]:
    """Liveness: "ok" while the database answers, "down" otherwise."""
    db_health = check_database_health()
    return {
        "status": db_health["status"],
        "db": db_health,
        "version": API_VERSION,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/db")
def database_health() -> Dict[str, Any]:
    """
    Readiness: connectivity plus row counts and the open report backlog.
    """
    health_status = check_database_health()
    if health_status["status"] != "ok":
        return health_status

    try:
        with get_session() as db:
            counts = {
                name: db.query(func.count(model.id)).scalar()
                for name, model in COUNTED_MODELS.items()
            }
            open_reports = (
                db.query(func.count(Post.id))
                .filter(Post.is_reported.is_(True), Post.is_deleted.is_not(True))
                .scalar()
            )
    except SQLAlchemyError as e:
        health_status["error"] = f"Extended check failed: {e.__class__.__name__}"
        return health_status

    health_status.update({
        "tables": counts,
        "openReports": open_reports,
        "timestamp": datetime.utcnow().isoformat(),
    })
    return health_status
