# forum/cli.py
import typer

from forum.db import engine, get_session
from forum.errors import NotFound
from forum.models import Base, Role, Topic
from forum.services import seeder
from forum.services.users import set_role

app = typer.Typer(help="Forum maintenance CLI with subcommands")


@app.command("init-db")
def init_db_cmd():
    """Create any missing tables (use alembic for production upgrades)."""
    Base.metadata.create_all(engine)
    typer.echo("Tables created")


@app.command("seed")
def seed_cmd(
    users: int = typer.Option(50, help="Number of users"),
    moderators: int = typer.Option(2, help="How many of the users are moderators"),
    topics: int = typer.Option(100, help="Number of topics"),
):
    """Populate the database with mock data."""
    # Set deterministic seeds for reproducible data
    seeder.seed_random_generators()

    with get_session() as db:
        us = seeder.make_users(db, users, n_moderators=moderators)
        ts = seeder.make_topics(db, us, topics)
        seeder.make_posts(db, ts, us)
        seeder.make_likes(db, us)
    typer.echo(f"Seed complete: users={users}, topics={topics}")
    typer.echo(f"All seeded accounts use the password '{seeder.SEED_PASSWORD}'")


@app.command("list-topics")
def list_topics_cmd(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of topics to show", min=1, max=500),
):
    """Print the most recently created topics, deleted ones included."""
    with get_session() as db:
        rows = db.query(Topic).order_by(Topic.created_at.desc()).limit(limit).all()

        typer.echo(f"Topics count: {len(rows)}")
        typer.echo("─" * 70)
        for t in rows:
            flags = []
            if t.is_deleted: flags.append("deleted")
            if t.is_locked: flags.append("locked")
            if t.is_pinned: flags.append("pinned")
            if t.is_moderated: flags.append("flagged")
            suffix = f" [{', '.join(flags)}]" if flags else ""
            typer.echo(f"#{t.id:<6} {t.category:<14} {t.title[:40]:<40}{suffix}")


@app.command("fix-topics")
def fix_topics_cmd():
    """Backfill topics whose is_deleted flag is NULL to false."""
    with get_session() as db:
        updated = (
            db.query(Topic)
            .filter(Topic.is_deleted.is_(None))
            .update({Topic.is_deleted: False}, synchronize_session=False)
        )
    typer.echo(f"Updated {updated} topics")


@app.command("set-role")
def set_role_cmd(
    username: str = typer.Argument(..., help="User to change"),
    role: Role = typer.Argument(..., help="New role"),
):
    """Promote or demote a user."""
    try:
        with get_session() as db:
            set_role(db, username, role)
    except NotFound as e:
        typer.echo(f"❌ {e.message}", err=True)
        raise typer.Exit(1)
    typer.echo(f"✓ {username} is now {role.value}")


if __name__ == "__main__":
    app()
