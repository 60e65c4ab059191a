"""Defines the FeedDataStore protocol for backend access."""

from typing import List, Optional, Protocol, Union

from campus_feed.models.feed import Comment, FetchScope, Post, VotableKind, VoteDirection

Votable = Union[Post, Comment]


class FeedDataStore(Protocol):
    """
    A protocol that defines the interface to the backend holding posts,
    comments and votes.

    This lets the hosted REST backend, the in-memory store used by tests and
    the CLI, or any other implementation be used interchangeably.
    """

    async def fetch_votables(
        self, kind: VotableKind, scope: Optional[FetchScope] = None
    ) -> List[Votable]:
        """
        Fetch posts or comments with their votes embedded.

        Args:
            kind: Whether to fetch posts or comments.
            scope: Optional filters (author, post, limit).

        Returns:
            Posts or comments, each carrying at most one vote per user.
        """
        ...

    async def upsert_vote(
        self,
        kind: VotableKind,
        subject_id: str,
        user_id: str,
        direction: Optional[VoteDirection],
    ) -> bool:
        """
        Record a user's vote, replacing any earlier vote on the same subject.

        A ``direction`` of None removes the user's vote.

        Returns:
            True if the backend accepted the write.
        """
        ...

    async def fetch_comments(self, post_id: str) -> List[Comment]:
        """Fetch every comment of a post as a flat, unordered list."""
        ...
