from __future__ import annotations
import random
from datetime import timedelta
from typing import Sequence
from faker import Faker
from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from forum.models import Post, PostLike, Role, Topic, User

SEED = 1337
SEED_PASSWORD = "password"
CATEGORIES = ["General", "Announcements", "Help", "Off-topic", "Feedback"]

fake = Faker()


def seed_random_generators(seed: int = SEED) -> None:
    """Make seeding reproducible across runs."""
    random.seed(seed)
    Faker.seed(seed)
    fake.seed_instance(seed)


def make_users(db: Session, n_users: int, n_moderators: int = 2) -> list[User]:
    # one hash for every seeded account, hashing is deliberately slow
    password_hash = generate_password_hash(SEED_PASSWORD)
    users = []
    for i in range(n_users):
        role = Role.moderator if i < n_moderators else Role.user
        users.append(User(
            username=fake.unique.user_name(), email=fake.unique.email(),
            password_hash=password_hash, role=role, bio=fake.sentence(),
        ))
    db.add_all(users); db.flush()
    return users


def make_topics(db: Session, users: Sequence[User], n_topics: int) -> list[Topic]:
    topics = []
    for _ in range(n_topics):
        author = random.choice(users)
        created = fake.date_time_between(start_date="-60d", end_date="now")
        t = Topic(
            title=fake.sentence(nb_words=random.randint(4, 9)).rstrip("."),
            description=fake.paragraph(nb_sentences=3),
            category=random.choice(CATEGORIES),
            tags=list(dict.fromkeys(fake.words(nb=random.randint(0, 3)))),
            author_id=author.id, created_at=created, last_activity=created,
            is_pinned=random.random() < 0.05,
        )
        author.post_count += 1
        db.add(t); topics.append(t)
    db.flush()
    return topics


def make_thread(db: Session, topic: Topic, users: Sequence[User],
                max_roots=6, max_depth=3, max_children=3):
    """
    Generate a small random tree of posts for one topic.
    """
    last = topic.created_at

    def make_node(parent: Post, depth: int):
        if depth > max_depth: return
        n_children = random.randint(0, max(0, max_children - depth))
        for _ in range(n_children):
            u = random.choice(users)
            when = parent.created_at + timedelta(minutes=random.randint(1, 10 * depth + 5))
            p = Post(
                content=fake.paragraph(nb_sentences=2), author_id=u.id, topic_id=topic.id,
                parent_post_id=parent.id, level=parent.level + 1,
                created_at=when, updated_at=when,
            )
            db.add(p); db.flush()
            _account(u, p)
            make_node(p, depth + 1)

    def _account(u: User, p: Post):
        nonlocal last
        u.post_count += 1
        topic.post_count += 1
        if p.created_at > last:
            last = p.created_at
            topic.last_post_by_id = u.id

    for _ in range(random.randint(0, max_roots)):
        u = random.choice(users)
        when = topic.created_at + timedelta(minutes=random.randint(1, 600))
        root = Post(
            content=fake.paragraph(nb_sentences=3), author_id=u.id, topic_id=topic.id,
            level=0, created_at=when, updated_at=when,
        )
        db.add(root); db.flush()
        _account(u, root)
        make_node(root, 1)

    topic.last_activity = last


def make_posts(db: Session, topics: Sequence[Topic], users: Sequence[User]):
    for t in topics:
        make_thread(db, t, users)
    db.flush()


def make_likes(db: Session, users: Sequence[User], max_likes: int = 5):
    """Scatter likes over the seeded posts, keeping like_count in step."""
    for p in db.query(Post).all():
        likers = random.sample(list(users), k=min(len(users), random.randint(0, max_likes)))
        for u in likers:
            db.add(PostLike(post_id=p.id, user_id=u.id))
        p.like_count = len(likers)
    db.flush()
