"""Optimistic vote state for a single post or comment."""

import logging
from enum import Enum
from typing import Callable, Iterable, Optional, Tuple

from campus_feed.engine.tally import direction_value, tally
from campus_feed.errors import TransientNetworkFailure
from campus_feed.models.feed import VotableKind, Vote, VoteDirection
from campus_feed.storage.data_store import FeedDataStore

logger = logging.getLogger(__name__)

ErrorNotifier = Callable[[TransientNetworkFailure], None]


class VoteState(str, Enum):
    """Lifecycle of the user's vote on one subject."""

    CONFIRMED = "confirmed"
    PENDING = "pending"
    REVERTING = "reverting"


class VoteOutcome(str, Enum):
    """How a vote attempt ended."""

    CONFIRMED = "confirmed"
    REVERTED = "reverted"
    SUPERSEDED = "superseded"


def _user_direction(votes: Iterable[Vote], user_id: str) -> Optional[VoteDirection]:
    for vote in votes:
        if vote.user_id == user_id:
            return vote.direction
    return None


class OptimisticVoteController:
    """
    Reconciles a user's unconfirmed vote taps with the server-confirmed votes.

    The displayed tally is always the server tally plus the delta of at most
    one pending tap. A new tap while a request is in flight replaces the
    pending delta; responses to superseded attempts are ignored, which is
    tracked with a per-subject attempt counter.
    """

    def __init__(
        self,
        subject_id: str,
        user_id: str,
        store: FeedDataStore,
        server_votes: Iterable[Vote] = (),
        kind: VotableKind = VotableKind.POST,
        notify: Optional[ErrorNotifier] = None,
        prometheus_exporter=None,
    ):
        """
        Initialize the controller in the confirmed state.

        Args:
            subject_id: Post or comment id
            user_id: Id of the user casting votes in this session
            store: Backend used to upsert votes
            server_votes: Last fetched votes on the subject
            kind: Whether the subject is a post or a comment
            notify: Called with the error when a vote is reverted
            prometheus_exporter: Optional Prometheus exporter for metrics
        """
        self.subject_id = subject_id
        self.user_id = user_id
        self.store = store
        self.kind = kind
        self.notify = notify
        self.prometheus_exporter = prometheus_exporter

        self._server_votes: Tuple[Vote, ...] = tuple(server_votes)
        self._server_direction = _user_direction(self._server_votes, user_id)
        self._local_direction: Optional[VoteDirection] = None
        self._state = VoteState.CONFIRMED
        self._attempt = 0
        self._pending_attempt: Optional[int] = None
        self._generation = 0

    @property
    def state(self) -> VoteState:
        return self._state

    @property
    def attempt(self) -> int:
        """Number of the latest attempt."""
        return self._attempt

    @property
    def generation(self) -> int:
        """Number of confirmations folded into the server baseline so far."""
        return self._generation

    @property
    def server_votes(self) -> Tuple[Vote, ...]:
        return self._server_votes

    @property
    def server_direction(self) -> Optional[VoteDirection]:
        """The user's vote as last confirmed by the server."""
        return self._server_direction

    @property
    def current_direction(self) -> Optional[VoteDirection]:
        """The user's vote as currently displayed."""
        if self._state == VoteState.PENDING:
            return self._local_direction
        return self._server_direction

    @property
    def displayed_tally(self) -> int:
        confirmed = tally(self._server_votes)
        if self._state != VoteState.PENDING:
            return confirmed
        return confirmed - direction_value(self._server_direction) + direction_value(self._local_direction)

    def tap(self, direction: VoteDirection) -> int:
        """
        Apply a vote tap locally and open a new attempt.

        Tapping the direction already shown removes the vote; tapping the
        other direction switches it.

        Args:
            direction: The tapped vote control

        Returns:
            The attempt number to pass to acknowledge() or fail()
        """
        direction = VoteDirection(direction)
        target = None if direction == self.current_direction else direction

        if self._state == VoteState.PENDING:
            logger.debug(f"Attempt {self._pending_attempt} on {self.subject_id} superseded")

        self._attempt += 1
        self._pending_attempt = self._attempt
        self._local_direction = target
        self._state = VoteState.PENDING
        return self._attempt

    def _is_current(self, attempt: int) -> bool:
        return self._state == VoteState.PENDING and attempt == self._pending_attempt

    def _settle(self) -> None:
        self._local_direction = None
        self._pending_attempt = None
        self._state = VoteState.CONFIRMED

    def acknowledge(self, attempt: int) -> bool:
        """
        Record server confirmation of an attempt.

        Returns:
            False if the attempt was stale and ignored
        """
        if not self._is_current(attempt):
            logger.debug(f"Ignoring stale confirmation of attempt {attempt} on {self.subject_id}")
            return False

        confirmed = self._local_direction
        votes = [vote for vote in self._server_votes if vote.user_id != self.user_id]
        if confirmed is not None:
            votes.append(Vote(subject_id=self.subject_id, user_id=self.user_id, direction=confirmed))
        self._server_votes = tuple(votes)
        self._server_direction = confirmed
        self._generation += 1
        self._settle()
        return True

    def fail(self, attempt: int, error: TransientNetworkFailure) -> bool:
        """
        Revert an attempt the server did not accept and surface the error.

        Returns:
            False if the attempt was stale and ignored
        """
        if not self._is_current(attempt):
            logger.debug(f"Ignoring stale failure of attempt {attempt} on {self.subject_id}: {error}")
            return False

        logger.warning(f"Vote on {self.kind.value} {self.subject_id} reverted: {error}")
        self._state = VoteState.REVERTING
        self._local_direction = None
        try:
            if self.notify:
                self.notify(error)
        finally:
            self._settle()
        return True

    def rebase(self, server_votes: Iterable[Vote], since: Optional[int] = None) -> bool:
        """
        Replace the server baseline after a refresh.

        A pending tap stays pending and is displayed on top of the new baseline.

        Args:
            server_votes: Votes on the subject as returned by the fetch
            since: The controller's generation when the fetch was started; if a
                confirmation has landed since, the fetched votes are older than
                the baseline and are ignored

        Returns:
            False if the votes were stale and ignored
        """
        if since is not None and since != self._generation:
            logger.debug(
                f"Ignoring refresh of {self.subject_id} started at generation {since}, "
                f"now at {self._generation}"
            )
            return False
        self._server_votes = tuple(server_votes)
        self._server_direction = _user_direction(self._server_votes, self.user_id)
        return True

    async def vote(self, direction: VoteDirection) -> VoteOutcome:
        """
        Tap a vote control and send the resulting vote to the backend.

        Args:
            direction: The tapped vote control

        Returns:
            CONFIRMED, REVERTED, or SUPERSEDED when a later tap replaced this one
        """
        attempt = self.tap(direction)
        target = self._local_direction
        if self.prometheus_exporter:
            self.prometheus_exporter.record_vote_cast(self.kind.value)

        error: Optional[TransientNetworkFailure] = None
        try:
            accepted = await self.store.upsert_vote(self.kind, self.subject_id, self.user_id, target)
            if not accepted:
                error = TransientNetworkFailure("upsert_vote", f"backend rejected vote on {self.subject_id}")
        except TransientNetworkFailure as e:
            error = e

        if error is None:
            outcome = VoteOutcome.CONFIRMED if self.acknowledge(attempt) else VoteOutcome.SUPERSEDED
        else:
            outcome = VoteOutcome.REVERTED if self.fail(attempt, error) else VoteOutcome.SUPERSEDED

        if self.prometheus_exporter:
            self.prometheus_exporter.record_vote_outcome(outcome.value)
        return outcome
