"""Net score computation for posts and comments."""

from typing import Iterable, NamedTuple, Optional, Protocol, Sequence

from campus_feed.models.feed import Vote, VoteDirection


class Votable(Protocol):
    """Anything carrying a collection of votes."""

    votes: Sequence[Vote]


class VoteCounts(NamedTuple):
    """Upvote and downvote counts for one subject."""

    up: int
    down: int

    @property
    def score(self) -> int:
        return self.up - self.down


def count_votes(votes: Iterable[Vote]) -> VoteCounts:
    """
    Count upvotes and downvotes.

    Args:
        votes: Votes on a single subject, in any order

    Returns:
        VoteCounts with the per-direction totals
    """
    up = down = 0
    for vote in votes:
        if vote.direction == VoteDirection.UP:
            up += 1
        elif vote.direction == VoteDirection.DOWN:
            down += 1
    return VoteCounts(up, down)


def tally(votes: Iterable[Vote]) -> int:
    """Return upvotes minus downvotes. Empty input gives 0."""
    return count_votes(votes).score


def direction_value(direction: Optional[VoteDirection]) -> int:
    """Contribution of a single vote direction to a tally."""
    if direction == VoteDirection.UP:
        return 1
    if direction == VoteDirection.DOWN:
        return -1
    return 0


def karma(items: Iterable[Votable]) -> int:
    """Sum of the tallies of every item, e.g. all posts and comments by one user."""
    return sum(tally(item.votes) for item in items)
