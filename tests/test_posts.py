"""Tests for the post & thread engine against an in-memory database."""

import logging
from contextlib import contextmanager
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from forum.config import MAX_REPLY_DEPTH
from forum.errors import DuplicateReport, Forbidden, NotFound, ValidationError
from forum.models import Post, PostLike, PostReport, Topic, User
from forum.services import posts as post_engine
from forum.services import topics as topic_store


@pytest.fixture
def topic(db, alice):
    topic, _ = topic_store.create_topic(db, alice, "Thread test", "Let us talk")
    db.commit()
    return topic


def _post(db, principal, topic, content="hello", parent=None):
    post, _ = post_engine.create_post(
        db, principal, content, topic.id, parent_post_id=parent.id if parent else None
    )
    db.commit()
    return post


def _reply_chain(db, principal, topic, length):
    """Insert one unbroken reply chain directly, without the depth check."""
    parent_id = None
    for level in range(length):
        post = Post(
            content=f"level {level}",
            author_id=principal.id,
            topic_id=topic.id,
            parent_post_id=parent_id,
            level=level,
        )
        db.add(post)
        db.flush()
        parent_id = post.id
    db.commit()


def _nesting_depths(nodes):
    stack = [(node, 0) for node in nodes]
    while stack:
        node, depth = stack.pop()
        yield depth
        stack.extend((reply, depth + 1) for reply in node["replies"])


@contextmanager
def _committed_by_other_session(db, session_factory, row):
    """Commit ``row`` from a second session right before ``db`` flushes."""
    real_flush = db.flush

    def flush_after_other_writer(*args, **kwargs):
        other = session_factory()
        try:
            other.add(row)
            other.commit()
        finally:
            other.close()
        return real_flush(*args, **kwargs)

    with patch.object(db, "flush", side_effect=flush_after_other_writer):
        yield


class TestCreatePost:

    def test_top_level_post(self, db, bob, topic):
        post, verdict = post_engine.create_post(db, bob, "  first!  ", topic.id)
        db.commit()

        assert verdict.flagged is False
        assert post.content == "first!"
        assert post.level == 0
        assert post.parent_post_id is None
        assert post.like_count == 0

    def test_reply_levels(self, db, alice, bob, topic):
        root = _post(db, alice, topic)
        reply = _post(db, bob, topic, parent=root)
        nested = _post(db, alice, topic, parent=reply)

        assert reply.level == 1
        assert nested.level == 2
        assert nested.parent_post_id == reply.id

    def test_updates_topic_and_author_counters(self, db, bob, topic):
        _post(db, bob, topic)
        _post(db, bob, topic)

        fresh = db.query(Topic).filter(Topic.id == topic.id).one()
        db.refresh(fresh)
        assert fresh.post_count == 2
        assert fresh.last_post_by_id == bob.id
        assert db.query(User).filter(User.id == bob.id).one().post_count == 2

    @pytest.mark.parametrize("content, topic_id", [("", 1), ("   ", 1), ("text", None), (None, None)])
    def test_requires_content_and_topic(self, db, bob, content, topic_id):
        with pytest.raises(ValidationError, match="Content and topic ID are required"):
            post_engine.create_post(db, bob, content, topic_id)

    def test_missing_topic(self, db, bob):
        with pytest.raises(NotFound, match="Topic not found"):
            post_engine.create_post(db, bob, "hi", 999)

    def test_deleted_topic(self, db, alice, bob, topic):
        topic_store.delete_topic(db, alice, topic.id)
        db.commit()
        with pytest.raises(NotFound):
            post_engine.create_post(db, bob, "hi", topic.id)

    def test_locked_topic_rejects_users(self, db, bob, mod, topic):
        topic_store.toggle_lock(db, mod, topic.id)
        db.commit()

        with pytest.raises(Forbidden, match="locked"):
            post_engine.create_post(db, bob, "let me in", topic.id)
        post, _ = post_engine.create_post(db, mod, "moderator note", topic.id)
        assert post.id is not None

    def test_parent_must_exist_in_same_topic(self, db, alice, bob, topic):
        other, _ = topic_store.create_topic(db, alice, "Other topic", "elsewhere")
        db.commit()
        foreign = _post(db, alice, other)

        with pytest.raises(NotFound, match="Parent post not found"):
            post_engine.create_post(db, bob, "reply", topic.id, parent_post_id=foreign.id)
        with pytest.raises(NotFound, match="Parent post not found"):
            post_engine.create_post(db, bob, "reply", topic.id, parent_post_id=12345)

    def test_deleted_parent(self, db, alice, bob, topic):
        root = _post(db, alice, topic)
        post_engine.delete_post(db, alice, root.id)
        db.commit()
        with pytest.raises(NotFound):
            post_engine.create_post(db, bob, "reply", topic.id, parent_post_id=root.id)

    def test_reply_depth_limit(self, db, alice, bob, topic):
        with patch("forum.services.posts.MAX_REPLY_DEPTH", 2):
            root = _post(db, alice, topic)
            reply = _post(db, bob, topic, parent=root)
            deepest = _post(db, alice, topic, parent=reply)

            with pytest.raises(ValidationError, match="more than 2 levels"):
                post_engine.create_post(db, bob, "too deep", topic.id, parent_post_id=deepest.id)

        assert deepest.level == 2
        assert db.query(Post).count() == 3

    def test_flagged_post_is_stored(self, db, bob, topic):
        post, verdict = post_engine.create_post(db, bob, "this is spam", topic.id)
        db.commit()
        assert verdict.flagged is True
        assert post.is_moderated is True
        assert db.query(Post).count() == 1

    def test_failed_side_effect_keeps_post(self, db, bob, topic, caplog):
        boom = OperationalError("UPDATE users", {}, Exception("database is locked"))
        with patch("forum.services.posts.adjust_post_count", side_effect=boom), \
             caplog.at_level(logging.ERROR, logger="forum.db"):
            post, _ = post_engine.create_post(db, bob, "still here", topic.id)
        db.commit()

        assert db.query(Post).filter(Post.id == post.id).count() == 1
        assert db.query(User).filter(User.id == bob.id).one().post_count == 0
        assert db.query(Topic).filter(Topic.id == topic.id).one().post_count == 1
        assert "Secondary update failed" in caplog.text


class TestUpdateAndDelete:

    def test_author_edits(self, db, bob, topic):
        post = _post(db, bob, topic)
        updated, verdict = post_engine.update_post(db, bob, post.id, "edited")
        assert updated.content == "edited"
        assert verdict.flagged is False

    def test_edit_requires_content(self, db, bob, topic):
        post = _post(db, bob, topic)
        with pytest.raises(ValidationError, match="Content is required"):
            post_engine.update_post(db, bob, post.id, "  ")

    def test_flagged_edit(self, db, bob, topic):
        post = _post(db, bob, topic)
        updated, verdict = post_engine.update_post(db, bob, post.id, "badword1")
        assert verdict.flagged is True
        assert updated.is_moderated is True

    def test_other_user_cannot_edit_or_delete(self, db, alice, bob, topic):
        post = _post(db, bob, topic)
        with pytest.raises(Forbidden):
            post_engine.update_post(db, alice, post.id, "hijack")
        with pytest.raises(Forbidden):
            post_engine.delete_post(db, alice, post.id)

    def test_delete_decrements_topic_count(self, db, bob, mod, topic):
        first = _post(db, bob, topic)
        _post(db, bob, topic)

        post_engine.delete_post(db, mod, first.id)
        db.commit()

        deleted = db.query(Post).filter(Post.id == first.id).one()
        assert deleted.is_deleted is True
        assert deleted.deleted_by_id == mod.id
        assert deleted.deleted_at is not None
        assert db.query(Topic).filter(Topic.id == topic.id).one().post_count == 1

    def test_deleted_post_is_not_found(self, db, bob, topic):
        post = _post(db, bob, topic)
        post_engine.delete_post(db, bob, post.id)
        db.commit()
        with pytest.raises(NotFound):
            post_engine.update_post(db, bob, post.id, "resurrect")
        with pytest.raises(NotFound):
            post_engine.delete_post(db, bob, post.id)


class TestLikes:

    def test_like_then_unlike(self, db, alice, bob, topic):
        post = _post(db, bob, topic)

        assert post_engine.toggle_like(db, alice, post.id) == (True, 1)
        db.commit()
        assert post_engine.toggle_like(db, bob, post.id) == (True, 2)
        db.commit()
        assert post_engine.toggle_like(db, alice, post.id) == (False, 1)
        db.commit()

        likes = db.query(PostLike).filter(PostLike.post_id == post.id).all()
        assert [like.user_id for like in likes] == [bob.id]

    def test_like_count_matches_like_rows(self, db, alice, bob, mod, topic):
        post = _post(db, bob, topic)
        for principal in (alice, bob, mod, alice):
            post_engine.toggle_like(db, principal, post.id)
            db.commit()

        stored = db.query(Post).filter(Post.id == post.id).one()
        db.refresh(stored)
        assert stored.like_count == db.query(PostLike).filter(PostLike.post_id == post.id).count() == 2

    def test_even_number_of_toggles_restores_state(self, db, alice, bob, topic):
        post = _post(db, bob, topic)
        results = []
        for _ in range(4):
            results.append(post_engine.toggle_like(db, alice, post.id))
            db.commit()

        assert results == [(True, 1), (False, 0), (True, 1), (False, 0)]
        assert db.query(PostLike).count() == 0

    def test_concurrent_like_by_same_user(self, db, session_factory, alice, bob, topic):
        post = _post(db, bob, topic)
        post_id = post.id

        with _committed_by_other_session(db, session_factory, PostLike(post_id=post_id, user_id=alice.id)):
            assert post_engine.toggle_like(db, alice, post_id) == (True, 1)
        db.commit()

        stored = db.query(Post).filter(Post.id == post_id).one()
        assert db.query(PostLike).filter(PostLike.post_id == post_id).count() == 1
        assert stored.like_count == 1

    def test_like_deleted_post(self, db, bob, topic):
        post = _post(db, bob, topic)
        post_engine.delete_post(db, bob, post.id)
        db.commit()
        with pytest.raises(NotFound):
            post_engine.toggle_like(db, bob, post.id)


class TestReports:

    def test_report_marks_post(self, db, alice, bob, topic):
        post = _post(db, bob, topic)

        reported = post_engine.report_post(db, alice, post.id, "rude")
        db.commit()

        assert reported.is_reported is True
        assert reported.reported_at is not None
        assert [(r.reported_by_id, r.reason) for r in reported.reports] == [(alice.id, "rude")]

    def test_second_report_by_same_user(self, db, alice, bob, topic):
        post = _post(db, bob, topic)
        post_engine.report_post(db, alice, post.id, "rude")
        db.commit()

        with pytest.raises(DuplicateReport):
            post_engine.report_post(db, alice, post.id, "still rude")
        assert db.query(PostReport).count() == 1

    def test_concurrent_report_by_same_user(self, db, session_factory, alice, bob, topic):
        post = _post(db, bob, topic)
        racing = PostReport(post_id=post.id, reported_by_id=alice.id, reason="first", reported_at=post.created_at)

        with _committed_by_other_session(db, session_factory, racing), pytest.raises(DuplicateReport):
            post_engine.report_post(db, alice, post.id, "second")

        reports = db.query(PostReport).all()
        assert [(r.reported_by_id, r.reason) for r in reports] == [(alice.id, "first")]

    def test_reports_from_different_users(self, db, alice, mod, bob, topic):
        post = _post(db, bob, topic)
        first = post_engine.report_post(db, alice, post.id, "rude")
        db.commit()
        first_reported_at = first.reported_at

        again = post_engine.report_post(db, mod, post.id, "agreed")
        db.commit()

        assert len(again.reports) == 2
        assert again.reported_at == first_reported_at

    def test_reason_required(self, db, alice, bob, topic):
        post = _post(db, bob, topic)
        with pytest.raises(ValidationError, match="Report reason is required"):
            post_engine.report_post(db, alice, post.id, "")

    def test_report_missing_post(self, db, alice):
        with pytest.raises(NotFound):
            post_engine.report_post(db, alice, 404, "spam")


class TestListByTopic:

    def test_nested_threads_exclude_deleted(self, db, alice, bob, topic):
        root_a = _post(db, alice, topic, "A")
        root_b = _post(db, bob, topic, "B")
        a1 = _post(db, bob, topic, "A1", parent=root_a)
        a1x = _post(db, alice, topic, "A1x", parent=a1)
        a2 = _post(db, alice, topic, "A2", parent=root_a)
        _post(db, alice, topic, "A2x", parent=a2)
        post_engine.delete_post(db, alice, a2.id)
        db.commit()

        result = post_engine.list_by_topic(db, topic.id)

        assert result.total == 2
        assert [node["content"] for node in result.items] == ["A", "B"]
        first = result.items[0]
        assert [reply["content"] for reply in first["replies"]] == ["A1"]
        assert first["replies"][0]["replies"][0]["id"] == a1x.id
        assert first["replies"][0]["replies"][0]["level"] == 2
        assert result.items[1]["id"] == root_b.id
        assert result.items[1]["replies"] == []

    def test_pagination_counts_top_level_only(self, db, alice, topic):
        roots = [_post(db, alice, topic, f"root {i}") for i in range(3)]
        _post(db, alice, topic, "reply", parent=roots[0])

        first = post_engine.list_by_topic(db, topic.id, page=1, page_size=2)
        second = post_engine.list_by_topic(db, topic.id, page=2, page_size=2)

        assert first.total == 3
        assert first.total_pages == 2
        assert [n["content"] for n in first.items] == ["root 0", "root 1"]
        assert [n["content"] for n in second.items] == ["root 2"]
        assert first.items[0]["replies"][0]["content"] == "reply"

    def test_liked_by_viewer(self, db, alice, bob, topic):
        post = _post(db, bob, topic)
        post_engine.toggle_like(db, alice, post.id)
        db.commit()

        seen_by_alice = post_engine.list_by_topic(db, topic.id, viewer=alice).items[0]
        seen_by_bob = post_engine.list_by_topic(db, topic.id, viewer=bob).items[0]
        anonymous = post_engine.list_by_topic(db, topic.id).items[0]

        assert seen_by_alice["likedByMe"] is True
        assert seen_by_alice["likeCount"] == 1
        assert seen_by_bob["likedByMe"] is False
        assert "likedByMe" not in anonymous

    def test_very_deep_chain_is_listed(self, db, alice, topic):
        _reply_chain(db, alice, topic, 1200)

        result = post_engine.list_by_topic(db, topic.id)

        depths = list(_nesting_depths(result.items))
        assert len(depths) == 1200
        assert max(depths) == MAX_REPLY_DEPTH

        node = result.items[0]
        for _ in range(MAX_REPLY_DEPTH - 1):
            node = node["replies"][0]
        # rows below the depth limit follow their ancestor in chain order
        assert [reply["level"] for reply in node["replies"]] == list(range(MAX_REPLY_DEPTH, 1200))

    def test_empty_topic(self, db, topic):
        result = post_engine.list_by_topic(db, topic.id)
        assert result.items == []
        assert result.total == 0
        assert result.total_pages == 0
