"""Ordering of posts and top-level comments by a selectable strategy."""

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Protocol, Sequence, Tuple, TypeVar, Union

from campus_feed.engine.tally import count_votes
from campus_feed.models.feed import Vote


class Rankable(Protocol):
    """A post or top-level comment."""

    created_at: datetime
    votes: Sequence[Vote]


T = TypeVar("T", bound=Rankable)


class RankStrategy(str, Enum):
    """Sort options offered in the feed."""

    RECENT = "recent"
    POPULAR = "popular"
    CONTROVERSIAL = "controversial"


def _recent_key(item: Rankable) -> Tuple[Any, ...]:
    return (item.created_at,)


def _popular_key(item: Rankable) -> Tuple[Any, ...]:
    return (count_votes(item.votes).score, item.created_at)


def _controversial_key(item: Rankable) -> Tuple[Any, ...]:
    # Downvote count, not net score
    return (count_votes(item.votes).down, item.created_at)


SORT_KEYS: Dict[RankStrategy, Callable[[Rankable], Tuple[Any, ...]]] = {
    RankStrategy.RECENT: _recent_key,
    RankStrategy.POPULAR: _popular_key,
    RankStrategy.CONTROVERSIAL: _controversial_key,
}


def rank(items: Iterable[T], strategy: Union[RankStrategy, str] = RankStrategy.RECENT) -> List[T]:
    """
    Order items for display.

    - recent: newest first
    - popular: highest net score first, newer first among equal scores
    - controversial: most downvotes first, newer first among equal counts

    The input is not modified. Sorting is stable, so items whose keys tie
    keep their input order and repeated calls give the same order.

    Args:
        items: Posts or top-level comment nodes
        strategy: A RankStrategy or its string value

    Returns:
        A new, ordered list

    Raises:
        ValueError: If ``strategy`` is not a known strategy name
    """
    key = SORT_KEYS[RankStrategy(strategy)]
    return sorted(items, key=key, reverse=True)
