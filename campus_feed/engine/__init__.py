"""Pure vote, thread and ranking logic plus the optimistic vote state machine."""

from campus_feed.engine.optimistic import OptimisticVoteController, VoteOutcome, VoteState
from campus_feed.engine.ranking import RankStrategy, rank
from campus_feed.engine.tally import VoteCounts, count_votes, karma, tally
from campus_feed.engine.thread import build_comment_tree, can_reply, walk_thread

__all__ = [
    "OptimisticVoteController",
    "RankStrategy",
    "VoteCounts",
    "VoteOutcome",
    "VoteState",
    "build_comment_tree",
    "can_reply",
    "count_votes",
    "karma",
    "rank",
    "tally",
    "walk_thread",
]
