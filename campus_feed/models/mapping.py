"""Mapping functions to convert backend rows to our data models."""

import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from campus_feed.models.feed import Comment, Post, VotableKind, Vote, VoteDirection

logger = logging.getLogger(__name__)

# Vote table and subject column for each votable kind
VOTE_TABLES = {
    VotableKind.POST: ("votes", "post_id"),
    VotableKind.COMMENT: ("comment_votes", "comment_id"),
}


def vote_row_to_vote(
    row: Dict[str, Any],
    subject_key: str,
    fallback_subject_id: Optional[str] = None,
) -> Vote:
    """
    Convert a ``votes`` or ``comment_votes`` row to a Vote.

    Args:
        row: Vote row as returned by the backend
        subject_key: Column holding the voted subject ("post_id" or "comment_id")
        fallback_subject_id: Subject id to use when the row was embedded
            without its subject column

    Returns:
        A Vote model
    """
    return Vote(
        subject_id=row.get(subject_key) or fallback_subject_id,
        user_id=row["user_id"],
        direction=row["vote_type"],
        created_at=row.get("created_at"),
    )


def _embedded_votes(row: Dict[str, Any], kind: VotableKind) -> List[Vote]:
    table, subject_key = VOTE_TABLES[kind]
    vote_rows = row.get(table) or []
    return [vote_row_to_vote(vote_row, subject_key, row["id"]) for vote_row in vote_rows]


def post_row_to_post(row: Dict[str, Any]) -> Post:
    """
    Convert a ``posts`` row with embedded ``votes`` to a Post.

    Args:
        row: Post row as returned by the backend

    Returns:
        A Post model
    """
    return Post(
        id=row["id"],
        content=row.get("content") or "",
        author_id=row.get("author_id"),
        created_at=row["created_at"],
        votes=_embedded_votes(row, VotableKind.POST),
    )


def comment_row_to_comment(row: Dict[str, Any]) -> Comment:
    """
    Convert a ``comments`` row with embedded ``comment_votes`` to a Comment.

    Args:
        row: Comment row as returned by the backend

    Returns:
        A Comment model
    """
    return Comment(
        id=row["id"],
        post_id=row["post_id"],
        parent_comment_id=row.get("parent_comment_id"),
        content=row.get("content") or "",
        author_id=row.get("author_id"),
        created_at=row["created_at"],
        votes=_embedded_votes(row, VotableKind.COMMENT),
    )


def rows_to_posts(rows: Iterable[Dict[str, Any]]) -> List[Post]:
    """Convert post rows, skipping rows that do not validate."""
    posts = []
    for row in rows:
        try:
            posts.append(post_row_to_post(row))
        except (KeyError, ValidationError) as e:
            logger.warning(f"Failed to convert post row {row.get('id')}: {e}")
    return posts


def rows_to_comments(rows: Iterable[Dict[str, Any]]) -> List[Comment]:
    """Convert comment rows, skipping rows that do not validate."""
    comments = []
    for row in rows:
        try:
            comments.append(comment_row_to_comment(row))
        except (KeyError, ValidationError) as e:
            logger.warning(f"Failed to convert comment row {row.get('id')}: {e}")
    return comments


def vote_to_row(
    kind: VotableKind,
    subject_id: str,
    user_id: str,
    direction: VoteDirection,
) -> Dict[str, str]:
    """Build the row upserted into the vote table for ``kind``."""
    _, subject_key = VOTE_TABLES[kind]
    return {
        subject_key: subject_id,
        "user_id": user_id,
        "vote_type": VoteDirection(direction).value,
    }
