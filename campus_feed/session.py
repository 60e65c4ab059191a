"""Per-user feed session: fetch, rebuild and vote with optimistic updates."""

import logging
from typing import Dict, Hashable, Iterable, List, Optional, Set, Tuple, Union

from campus_feed.engine.optimistic import ErrorNotifier, OptimisticVoteController, VoteOutcome, VoteState
from campus_feed.engine.ranking import RankStrategy, rank
from campus_feed.engine.tally import karma
from campus_feed.engine.thread import DEFAULT_MAX_REPLY_DEPTH, build_comment_tree, can_reply
from campus_feed.models.feed import CommentNode, FetchScope, Post, VotableKind, VoteDirection
from campus_feed.storage.data_store import FeedDataStore, Votable

logger = logging.getLogger(__name__)

SubjectKey = Tuple[VotableKind, str]


def _scope_key(kind: VotableKind, scope: FetchScope) -> Tuple[Hashable, ...]:
    return (kind, scope.author_id, scope.post_id, scope.limit)


class FeedSession:
    """
    Owns one OptimisticVoteController per post and comment the user has seen.

    Refreshing never drops a vote that is still in flight: controllers are
    rebased on the fresh votes and keep their pending tap. A fetch that was
    started before a vote was confirmed does not overwrite that confirmation.
    Controllers of subjects that a refresh no longer returns are dropped
    unless they still have a vote in flight.
    """

    def __init__(
        self,
        store: FeedDataStore,
        user_id: str,
        notify: Optional[ErrorNotifier] = None,
        prometheus_exporter=None,
        max_reply_depth: int = DEFAULT_MAX_REPLY_DEPTH,
    ):
        """
        Initialize the session.

        Args:
            store: Backend access
            user_id: Id of the signed-in user
            notify: Called with the error whenever a vote is reverted
            prometheus_exporter: Optional Prometheus exporter for metrics
            max_reply_depth: Depth at which replying is no longer offered
        """
        self.store = store
        self.user_id = user_id
        self.notify = notify
        self.prometheus_exporter = prometheus_exporter
        self.max_reply_depth = max_reply_depth
        self._controllers: Dict[SubjectKey, OptimisticVoteController] = {}
        # Subjects returned by the last fetch of each scope
        self._scope_members: Dict[Tuple[Hashable, ...], Set[SubjectKey]] = {}

    def controller(self, kind: VotableKind, subject_id: str) -> OptimisticVoteController:
        """
        Return the vote controller of a subject loaded in this session.

        Raises:
            KeyError: If the subject has not been fetched yet
        """
        return self._controllers[(kind, subject_id)]

    @property
    def tracked_subjects(self) -> int:
        return len(self._controllers)

    def _generations(self) -> Dict[SubjectKey, int]:
        return {key: controller.generation for key, controller in self._controllers.items()}

    def _sync_controllers(
        self,
        kind: VotableKind,
        scope: FetchScope,
        items: Iterable[Votable],
        generations: Dict[SubjectKey, int],
    ) -> None:
        """
        Rebase or create controllers for fetched items, then prune the scope.

        Args:
            kind: Kind of the fetched items
            scope: The scope that was fetched
            items: Fetched posts or comments
            generations: Controller generations captured before the fetch
        """
        returned: Set[SubjectKey] = set()
        for item in items:
            key = (kind, item.id)
            returned.add(key)
            existing = self._controllers.get(key)
            if existing is not None:
                # Controllers created while the fetch was in flight start at 0
                existing.rebase(item.votes, since=generations.get(key, 0))
                continue
            self._controllers[key] = OptimisticVoteController(
                item.id,
                self.user_id,
                self.store,
                server_votes=item.votes,
                kind=kind,
                notify=self.notify,
                prometheus_exporter=self.prometheus_exporter,
            )

        self._prune(_scope_key(kind, scope), returned)
        if self.prometheus_exporter:
            self.prometheus_exporter.set_tracked_subjects(len(self._controllers))

    def _prune(self, scope_key: Tuple[Hashable, ...], returned: Set[SubjectKey]) -> None:
        dropped = self._scope_members.get(scope_key, set()) - returned
        members = set(returned)
        other_scopes = [keys for other, keys in self._scope_members.items() if other != scope_key]
        for key in dropped:
            controller = self._controllers.get(key)
            if controller is None:
                continue
            if controller.state == VoteState.PENDING:
                members.add(key)
                continue
            if any(key in keys for keys in other_scopes):
                continue
            logger.debug(f"Dropping controller of {key[0].value} {key[1]}; no longer in the feed")
            del self._controllers[key]
        self._scope_members[scope_key] = members

    async def refresh_posts(
        self,
        scope: Optional[FetchScope] = None,
        strategy: Union[RankStrategy, str] = RankStrategy.RECENT,
    ) -> List[Post]:
        """
        Re-fetch posts, reconcile vote state and return them ranked.

        Raises:
            TransientNetworkFailure: If the fetch failed; vote state is untouched
        """
        scope = scope or FetchScope()
        generations = self._generations()
        posts = await self.store.fetch_votables(VotableKind.POST, scope)
        self._sync_controllers(VotableKind.POST, scope, posts, generations)
        logger.debug(f"Refreshed {len(posts)} posts")
        return rank(posts, strategy)

    async def load_thread(
        self,
        post_id: str,
        strategy: Optional[Union[RankStrategy, str]] = None,
    ) -> List[CommentNode]:
        """
        Fetch a post's comments and nest them into reply trees.

        Args:
            post_id: Post whose comments to load
            strategy: Optional ranking for the top-level comments; replies and
                unranked roots stay newest first

        Returns:
            Root comment nodes
        """
        generations = self._generations()
        comments = await self.store.fetch_comments(post_id)
        self._sync_controllers(VotableKind.COMMENT, FetchScope(post_id=post_id), comments, generations)
        roots = build_comment_tree(comments)
        if strategy is not None:
            roots = rank(roots, strategy)
        return roots

    def displayed_tally(self, kind: VotableKind, subject_id: str) -> int:
        return self.controller(kind, subject_id).displayed_tally

    async def vote(
        self, kind: VotableKind, subject_id: str, direction: VoteDirection
    ) -> VoteOutcome:
        """Tap a vote control on a loaded post or comment."""
        return await self.controller(kind, subject_id).vote(direction)

    async def user_karma(self, user_id: Optional[str] = None) -> int:
        """Net score across every post and comment written by ``user_id``."""
        scope = FetchScope(author_id=user_id or self.user_id)
        posts = await self.store.fetch_votables(VotableKind.POST, scope)
        comments = await self.store.fetch_votables(VotableKind.COMMENT, scope)
        return karma(posts) + karma(comments)

    def can_reply(self, depth: int) -> bool:
        return can_reply(depth, self.max_reply_depth)
