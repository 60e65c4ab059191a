"""In-memory FeedDataStore backed by plain dicts, with JSON snapshot support."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from campus_feed.models.feed import Comment, FetchScope, Post, VotableKind, Vote, VoteDirection
from campus_feed.storage.data_store import Votable

logger = logging.getLogger(__name__)


class InMemoryFeedStore:
    """
    A FeedDataStore that keeps posts, comments and votes in memory.

    Votes are stored per (kind, subject, user), so writing a second vote for
    the same user replaces the first, like the backend's upsert.
    """

    def __init__(self, posts: Iterable[Post] = (), comments: Iterable[Comment] = ()):
        self._posts: Dict[str, Post] = {}
        self._comments: Dict[str, Comment] = {}
        self._votes: Dict[Tuple[VotableKind, str], Dict[str, Vote]] = {}
        for post in posts:
            self.add_post(post)
        for comment in comments:
            self.add_comment(comment)

    def _register_votes(self, kind: VotableKind, subject_id: str, votes: Iterable[Vote]) -> None:
        by_user = self._votes.setdefault((kind, subject_id), {})
        for vote in votes:
            by_user[vote.user_id] = vote

    def add_post(self, post: Post) -> None:
        self._posts[post.id] = post.model_copy(update={"votes": ()})
        self._register_votes(VotableKind.POST, post.id, post.votes)

    def add_comment(self, comment: Comment) -> None:
        self._comments[comment.id] = comment.model_copy(update={"votes": ()})
        self._register_votes(VotableKind.COMMENT, comment.id, comment.votes)

    def _with_votes(self, kind: VotableKind, item: Votable) -> Votable:
        votes = tuple(self._votes.get((kind, item.id), {}).values())
        return item.model_copy(update={"votes": votes})

    async def fetch_votables(
        self, kind: VotableKind, scope: Optional[FetchScope] = None
    ) -> List[Votable]:
        scope = scope or FetchScope()
        items: List[Votable]
        if kind == VotableKind.POST:
            items = sorted(self._posts.values(), key=lambda post: post.created_at, reverse=True)
        else:
            items = list(self._comments.values())
            if scope.post_id is not None:
                items = [comment for comment in items if comment.post_id == scope.post_id]

        if scope.author_id is not None:
            items = [item for item in items if item.author_id == scope.author_id]
        if scope.limit is not None:
            items = items[: scope.limit]
        return [self._with_votes(kind, item) for item in items]

    async def fetch_comments(self, post_id: str) -> List[Comment]:
        return await self.fetch_votables(VotableKind.COMMENT, FetchScope(post_id=post_id))

    async def upsert_vote(
        self,
        kind: VotableKind,
        subject_id: str,
        user_id: str,
        direction: Optional[VoteDirection],
    ) -> bool:
        known = self._posts if kind == VotableKind.POST else self._comments
        if subject_id not in known:
            logger.warning(f"Vote for unknown {kind.value} {subject_id} rejected")
            return False

        by_user = self._votes.setdefault((kind, subject_id), {})
        if direction is None:
            by_user.pop(user_id, None)
        else:
            by_user[user_id] = Vote(
                subject_id=subject_id,
                user_id=user_id,
                direction=direction,
                created_at=datetime.now(timezone.utc),
            )
        return True

    def to_snapshot(self) -> Dict[str, List[Dict[str, Any]]]:
        """Dump every post and comment, votes embedded, as JSON-ready dicts."""
        return {
            "posts": [
                self._with_votes(VotableKind.POST, post).model_dump(mode="json")
                for post in self._posts.values()
            ],
            "comments": [
                self._with_votes(VotableKind.COMMENT, comment).model_dump(mode="json")
                for comment in self._comments.values()
            ],
        }

    def save_snapshot(self, path: Union[str, Path]) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_snapshot(), f, indent=2)
        logger.info(f"Wrote {len(self._posts)} posts and {len(self._comments)} comments to {path}")

    @classmethod
    def from_snapshot(cls, path: Union[str, Path]) -> "InMemoryFeedStore":
        """
        Load a store from a snapshot written by save_snapshot().

        Args:
            path: Path to the JSON snapshot

        Returns:
            A populated InMemoryFeedStore
        """
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        posts = [Post.model_validate(row) for row in data.get("posts", [])]
        comments = [Comment.model_validate(row) for row in data.get("comments", [])]
        logger.debug(f"Loaded {len(posts)} posts and {len(comments)} comments from {path}")
        return cls(posts, comments)
