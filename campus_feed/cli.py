"""Command-line tool for inspecting feed snapshots."""

import asyncio
import logging
import logging.config
from typing import Optional

import typer
from typing_extensions import Annotated

from campus_feed.config import Config
from campus_feed.engine.ranking import RankStrategy
from campus_feed.engine.tally import tally
from campus_feed.engine.thread import walk_thread
from campus_feed.errors import TransientNetworkFailure
from campus_feed.models.feed import FetchScope, VotableKind
from campus_feed.monitoring.metrics import PrometheusExporter
from campus_feed.session import FeedSession
from campus_feed.storage.memory_store import InMemoryFeedStore
from campus_feed.storage.rest_store import SupabaseRestStore

app = typer.Typer(help="Campus feed tools - export, rank and thread feed snapshots")

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 60


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """
    Set up logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of a rotating log file
    """
    handlers = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": "standard",
            "stream": "ext://sys.stderr",
        },
    }
    if log_file:
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level,
            "formatter": "standard",
            "filename": log_file,
            "maxBytes": 10485760,  # 10 MB
            "backupCount": 5,
            "encoding": "utf8",
        }

    log_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
            },
        },
        "handlers": handlers,
        "loggers": {
            "": {
                "handlers": list(handlers),
                "level": log_level,
                "propagate": True,
            },
            "asyncio": {
                "level": "WARNING",
            },
            "aiohttp": {
                "level": "WARNING",
            },
        },
    }

    logging.config.dictConfig(log_config)


def _preview(text: str) -> str:
    text = " ".join(text.split())
    if len(text) > PREVIEW_CHARS:
        return text[: PREVIEW_CHARS - 3] + "..."
    return text


def _validate_or_exit(app_config: Config, require_backend: bool = False) -> None:
    """Log every configuration error and exit with status 1 if there are any."""
    validation_errors = app_config.validate(require_backend=require_backend)
    if validation_errors:
        for error in validation_errors:
            logger.error(f"Configuration error: {error}")
        logger.critical("Invalid configuration, aborting")
        raise typer.Exit(code=1)


async def export_snapshot(config: Config, out: str, author_id: Optional[str] = None) -> int:
    """
    Copy posts and their comments from the backend into a snapshot file.

    Returns:
        Number of posts exported
    """
    prometheus_exporter = None
    if config.monitoring.enable_prometheus:
        prometheus_exporter = PrometheusExporter(port=config.monitoring.prometheus_port)
        prometheus_exporter.start_server()

    snapshot = InMemoryFeedStore()
    async with SupabaseRestStore(config, prometheus_exporter=prometheus_exporter) as backend:
        posts = await backend.fetch_votables(VotableKind.POST, FetchScope(author_id=author_id))
        for post in posts:
            snapshot.add_post(post)
            for comment in await backend.fetch_comments(post.id):
                snapshot.add_comment(comment)

    snapshot.save_snapshot(out)
    return len(posts)


@app.command()
def export(
    out: Annotated[str, typer.Option("--out", "-o", help="Snapshot file to write")] = "snapshot.json",
    config: Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")] = "config.yaml",
    author: Annotated[Optional[str], typer.Option("--author", "-a", help="Only export posts by this author")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose output")] = False,
) -> None:
    """Export posts and comments from the backend into a JSON snapshot."""
    app_config = Config.from_files(config)
    setup_logging("DEBUG" if verbose else app_config.log_level)

    _validate_or_exit(app_config, require_backend=True)

    try:
        count = asyncio.run(export_snapshot(app_config, out, author))
    except TransientNetworkFailure as e:
        logger.error(f"Export failed: {e}")
        raise typer.Exit(code=1)
    typer.echo(f"Exported {count} posts to {out}")


@app.command("rank")
def rank_posts(
    snapshot: Annotated[str, typer.Argument(help="Snapshot file written by 'export'")],
    strategy: Annotated[Optional[RankStrategy], typer.Option("--strategy", "-s", help="Sort order")] = None,
    author: Annotated[Optional[str], typer.Option("--author", "-a", help="Only rank posts by this author")] = None,
    config: Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")] = "config.yaml",
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose output")] = False,
) -> None:
    """Print the posts of a snapshot in feed order."""
    app_config = Config.from_files(config)
    setup_logging("DEBUG" if verbose else "WARNING")
    _validate_or_exit(app_config)
    session = FeedSession(InMemoryFeedStore.from_snapshot(snapshot), user_id=app_config.user_id)
    posts = asyncio.run(
        session.refresh_posts(FetchScope(author_id=author), strategy or app_config.default_strategy)
    )
    for post in posts:
        typer.echo(f"{tally(post.votes):>5}  {post.created_at:%Y-%m-%d %H:%M}  {post.id}  {_preview(post.content)}")


@app.command()
def thread(
    snapshot: Annotated[str, typer.Argument(help="Snapshot file written by 'export'")],
    post_id: Annotated[str, typer.Argument(help="Post whose comments to show")],
    strategy: Annotated[Optional[RankStrategy], typer.Option("--strategy", "-s", help="Order of top-level comments")] = None,
    max_depth: Annotated[Optional[int], typer.Option("--max-depth", "-d", help="Depth at which replying stops")] = None,
    config: Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")] = "config.yaml",
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose output")] = False,
) -> None:
    """Print the comment tree of one post."""
    app_config = Config.from_files(config)
    setup_logging("DEBUG" if verbose else "WARNING")
    _validate_or_exit(app_config)
    session = FeedSession(
        InMemoryFeedStore.from_snapshot(snapshot),
        user_id=app_config.user_id,
        max_reply_depth=max_depth if max_depth is not None else app_config.max_reply_depth,
    )
    roots = asyncio.run(session.load_thread(post_id, strategy))
    if not roots:
        typer.echo("No comments yet")
        return
    for node, depth in walk_thread(roots):
        marker = " [reply]" if session.can_reply(depth) else ""
        typer.echo(f"{'  ' * depth}{tally(node.votes):>4}  {_preview(node.comment.content)}{marker}")


@app.command()
def karma(
    snapshot: Annotated[str, typer.Argument(help="Snapshot file written by 'export'")],
    user_id: Annotated[Optional[str], typer.Argument(help="Author to total (defaults to FEED_USER_ID)")] = None,
    config: Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")] = "config.yaml",
) -> None:
    """Print a user's karma: the net score of all their posts and comments."""
    app_config = Config.from_files(config)
    setup_logging("WARNING")
    _validate_or_exit(app_config)
    user_id = user_id or app_config.user_id
    if not user_id:
        logger.error("No user given and FEED_USER_ID is not set")
        raise typer.Exit(code=1)
    session = FeedSession(InMemoryFeedStore.from_snapshot(snapshot), user_id=user_id)
    typer.echo(str(asyncio.run(session.user_karma())))


if __name__ == "__main__":
    app()
