"""Offset pagination shared by the topic, post and moderation listings."""

import math
from dataclasses import dataclass, field
from typing import Any, List

from sqlalchemy.orm import Query

from forum.config import MAX_PAGE_NUMBER
from forum.errors import ValidationError


@dataclass
class Page:
    """One page of a listing plus the totals needed by clients."""
    items: List[Any] = field(default_factory=list)
    page: int = 1
    page_size: int = 10
    total: int = 0

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.page_size else 0

    @property
    def has_more(self) -> bool:
        return self.page < self.total_pages


def paginate(query: Query, page: int, page_size: int) -> Page:
    """
    Apply skip = (page - 1) * page_size to an ordered query.

    Args:
        query: Filtered and ordered ORM query
        page: 1-based page number
        page_size: Items per page

    Returns:
        Page with the fetched rows and the unpaginated total
    """
    if page < 1 or page_size < 1:
        raise ValidationError("Page and limit must be positive integers")
    if page > MAX_PAGE_NUMBER:
        raise ValidationError(f"Page must not exceed {MAX_PAGE_NUMBER}")
    total = query.order_by(None).count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return Page(items=items, page=page, page_size=page_size, total=total)
