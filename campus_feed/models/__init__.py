from campus_feed.models.feed import (
    Comment,
    CommentNode,
    FetchScope,
    Post,
    VotableKind,
    Vote,
    VoteDirection,
)

__all__ = [
    "Comment",
    "CommentNode",
    "FetchScope",
    "Post",
    "VotableKind",
    "Vote",
    "VoteDirection",
]
