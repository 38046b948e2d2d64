from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Enum, ForeignKey, Index, Integer, String, Text, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class Role(str, PyEnum):
    user = "user"
    moderator = "moderator"
    admin = "admin"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    username = Column(String(64), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(Role, name="user_role"), nullable=False, default=Role.user)
    post_count = Column(Integer, nullable=False, default=0)
    reputation = Column(Integer, nullable=False, default=0)
    bio = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Topic(Base):
    __tablename__ = "topics"
    id = Column(Integer, primary_key=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    category = Column(String(64), nullable=False, default="General", index=True)
    tags = Column(JSON, nullable=False, default=list)
    view_count = Column(Integer, nullable=False, default=0)
    post_count = Column(Integer, nullable=False, default=0)
    is_pinned = Column(Boolean, nullable=False, default=False)
    is_locked = Column(Boolean, nullable=False, default=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    is_moderated = Column(Boolean, nullable=False, default=False)
    moderation_reason = Column(String(255), nullable=False, default="")
    moderated_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    last_activity = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_post_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    author = relationship("User", foreign_keys=[author_id])
    last_post_by = relationship("User", foreign_keys=[last_post_by_id])
    posts = relationship("Post", back_populates="topic")

Index("idx_topics_listing", Topic.is_deleted, Topic.is_pinned.desc(), Topic.last_activity.desc())


class Post(Base):
    __tablename__ = "posts"
    id = Column(Integer, primary_key=True)
    content = Column(Text, nullable=False)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    topic_id = Column(Integer, ForeignKey("topics.id"), nullable=False, index=True)
    parent_post_id = Column(Integer, ForeignKey("posts.id"), nullable=True, index=True)
    level = Column(Integer, nullable=False, default=0)
    like_count = Column(Integer, nullable=False, default=0)
    is_reported = Column(Boolean, nullable=False, default=False)
    reported_at = Column(DateTime, nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    deleted_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    is_moderated = Column(Boolean, nullable=False, default=False)
    moderation_reason = Column(String(255), nullable=False, default="")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    author = relationship("User", foreign_keys=[author_id])
    topic = relationship("Topic", back_populates="posts")
    parent = relationship("Post", remote_side=[id])
    likes = relationship("PostLike", cascade="all, delete-orphan")
    reports = relationship(
        "PostReport",
        order_by="PostReport.id",
        cascade="all, delete-orphan",
    )

Index("idx_posts_topic_parent_created", Post.topic_id, Post.parent_post_id, Post.created_at)
Index("idx_posts_reported", Post.is_reported, Post.is_deleted, Post.reported_at)


class PostLike(Base):
    __tablename__ = "post_likes"
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class PostReport(Base):
    __tablename__ = "post_reports"
    id = Column(Integer, primary_key=True)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False, index=True)
    reported_by_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    reason = Column(Text, nullable=False)
    reported_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    reported_by = relationship("User")

    __table_args__ = (
        UniqueConstraint("post_id", "reported_by_id", name="uq_post_reports_post_reporter"),
    )
