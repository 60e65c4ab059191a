"""Data models for posts, comments and their votes."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class VoteDirection(str, Enum):
    """Direction of a single vote. A missing vote is ``None``."""

    UP = "up"
    DOWN = "down"


class VotableKind(str, Enum):
    """Kinds of entities that accumulate votes."""

    POST = "post"
    COMMENT = "comment"


class Vote(BaseModel):
    """
    One user's vote on a post or comment.

    The backend keeps at most one vote per (subject_id, user_id); later votes
    overwrite earlier ones.
    """

    model_config = ConfigDict(frozen=True)

    subject_id: str
    user_id: str
    direction: VoteDirection
    created_at: Optional[datetime] = None


class Post(BaseModel):
    """A feed post with its embedded votes."""

    model_config = ConfigDict(frozen=True)

    id: str
    content: str = ""
    author_id: Optional[str] = None
    created_at: datetime
    votes: Tuple[Vote, ...] = ()


class Comment(BaseModel):
    """
    A comment on a post. ``parent_comment_id`` is ``None`` for top-level
    comments and otherwise names the comment being replied to.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    post_id: str
    parent_comment_id: Optional[str] = None
    content: str = ""
    author_id: Optional[str] = None
    created_at: datetime
    votes: Tuple[Vote, ...] = ()


@dataclass
class CommentNode:
    """A comment together with its replies. Rebuilt on every tree build."""

    comment: Comment
    replies: List["CommentNode"] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.comment.id

    @property
    def created_at(self) -> datetime:
        return self.comment.created_at

    @property
    def votes(self) -> Tuple[Vote, ...]:
        return self.comment.votes


@dataclass
class FetchScope:
    """Optional filters narrowing a fetch of posts or comments."""

    author_id: Optional[str] = None
    post_id: Optional[str] = None
    limit: Optional[int] = None
