"""Tests for the optimistic vote controller."""

import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock

from campus_feed.engine.optimistic import OptimisticVoteController, VoteOutcome, VoteState
from campus_feed.errors import TransientNetworkFailure
from campus_feed.models.feed import VotableKind, Vote, VoteDirection
from tests.stubs.feed_stubs import make_votes

UP = VoteDirection.UP
DOWN = VoteDirection.DOWN


def _my_vote(direction, subject_id="p1"):
    return Vote(subject_id=subject_id, user_id="me", direction=direction)


class TestControllerStateMachine(unittest.TestCase):
    """Test cases for tap, acknowledge, fail and rebase."""

    def setUp(self):
        """Set up a controller on a post with two other upvotes."""
        self.store = MagicMock()
        self.notify = MagicMock()
        self.controller = OptimisticVoteController(
            "p1", "me", self.store, server_votes=make_votes("p1", up=2), notify=self.notify
        )

    def test_initial_state(self):
        """Test a new controller shows the server tally."""
        self.assertEqual(self.controller.state, VoteState.CONFIRMED)
        self.assertIsNone(self.controller.server_direction)
        self.assertEqual(self.controller.displayed_tally, 2)

    def test_server_direction_from_votes(self):
        """Test the user's existing vote is picked up from the server votes."""
        controller = OptimisticVoteController(
            "p1", "me", self.store, server_votes=[*make_votes("p1", up=1), _my_vote(DOWN)]
        )
        self.assertEqual(controller.server_direction, DOWN)
        self.assertEqual(controller.displayed_tally, 0)

    def test_tap_up_from_none(self):
        """Test voting up from no vote adds one."""
        self.controller.tap(UP)
        self.assertEqual(self.controller.state, VoteState.PENDING)
        self.assertEqual(self.controller.current_direction, UP)
        self.assertEqual(self.controller.displayed_tally, 3)

    def test_tap_same_direction_unvotes(self):
        """Test tapping the confirmed direction removes the vote."""
        controller = OptimisticVoteController(
            "p1", "me", self.store, server_votes=[*make_votes("p1", up=2), _my_vote(UP)]
        )
        self.assertEqual(controller.displayed_tally, 3)
        controller.tap(UP)
        self.assertIsNone(controller.current_direction)
        self.assertEqual(controller.displayed_tally, 2)

    def test_switch_direction_moves_by_two(self):
        """Test switching from up to down moves the tally by two."""
        controller = OptimisticVoteController("p1", "me", self.store, server_votes=[_my_vote(UP)])
        controller.tap(DOWN)
        self.assertEqual(controller.displayed_tally, -1)

    def test_toggle_sequence(self):
        """Test up, up again and then down from no vote: 1, 0, -1."""
        controller = OptimisticVoteController("p1", "me", self.store)

        attempt = controller.tap(UP)
        self.assertEqual(controller.displayed_tally, 1)
        controller.acknowledge(attempt)

        attempt = controller.tap(UP)
        self.assertEqual(controller.displayed_tally, 0)
        controller.acknowledge(attempt)

        controller.tap(DOWN)
        self.assertEqual(controller.displayed_tally, -1)

    def test_toggle_sequence_without_confirmation(self):
        """Test the same taps give the same tallies while still in flight."""
        controller = OptimisticVoteController("p1", "me", self.store)
        controller.tap(UP)
        self.assertEqual(controller.displayed_tally, 1)
        controller.tap(UP)
        self.assertEqual(controller.displayed_tally, 0)
        controller.tap(DOWN)
        self.assertEqual(controller.displayed_tally, -1)

    def test_acknowledge_confirms(self):
        """Test a confirmation folds the vote into the server baseline."""
        attempt = self.controller.tap(UP)
        self.assertTrue(self.controller.acknowledge(attempt))
        self.assertEqual(self.controller.state, VoteState.CONFIRMED)
        self.assertEqual(self.controller.server_direction, UP)
        self.assertEqual(self.controller.displayed_tally, 3)
        self.assertEqual(len(self.controller.server_votes), 3)

    def test_acknowledge_unvote_removes_vote(self):
        """Test confirming an un-vote drops the user's vote from the baseline."""
        controller = OptimisticVoteController("p1", "me", self.store, server_votes=[_my_vote(UP)])
        attempt = controller.tap(UP)
        controller.acknowledge(attempt)
        self.assertEqual(controller.server_votes, ())
        self.assertIsNone(controller.server_direction)

    def test_attempts_are_monotonic(self):
        """Test each tap opens a new, higher attempt."""
        first = self.controller.tap(UP)
        second = self.controller.tap(DOWN)
        self.assertGreater(second, first)
        self.assertEqual(self.controller.attempt, second)

    def test_stale_acknowledge_ignored(self):
        """Test confirming a superseded attempt changes nothing."""
        first = self.controller.tap(UP)
        self.controller.tap(DOWN)
        self.assertFalse(self.controller.acknowledge(first))
        self.assertEqual(self.controller.state, VoteState.PENDING)
        self.assertEqual(self.controller.displayed_tally, 1)

    def test_fail_reverts_and_notifies(self):
        """Test a failure restores the confirmed tally and surfaces the error."""
        seen = []
        self.notify.side_effect = lambda error: seen.append(
            (self.controller.state, self.controller.displayed_tally, error)
        )
        error = TransientNetworkFailure("upsert_vote", "offline")

        attempt = self.controller.tap(UP)
        with self.assertLogs("campus_feed.engine.optimistic", level="WARNING"):
            self.assertTrue(self.controller.fail(attempt, error))

        self.assertEqual(seen, [(VoteState.REVERTING, 2, error)])
        self.assertEqual(self.controller.state, VoteState.CONFIRMED)
        self.assertIsNone(self.controller.server_direction)
        self.assertEqual(self.controller.displayed_tally, 2)

    def test_fail_settles_even_if_notify_raises(self):
        """Test a broken notifier still leaves the controller confirmed."""
        self.notify.side_effect = RuntimeError("toast failed")
        attempt = self.controller.tap(UP)
        with self.assertRaises(RuntimeError):
            self.controller.fail(attempt, TransientNetworkFailure("upsert_vote"))
        self.assertEqual(self.controller.state, VoteState.CONFIRMED)

    def test_stale_fail_ignored(self):
        """Test a failure of a superseded attempt does not revert the newer tap."""
        first = self.controller.tap(UP)
        self.controller.tap(DOWN)
        self.assertFalse(self.controller.fail(first, TransientNetworkFailure("upsert_vote")))
        self.notify.assert_not_called()
        self.assertEqual(self.controller.displayed_tally, 1)

    def test_rebase_keeps_pending_delta(self):
        """Test a refresh during a pending vote reapplies the delta on the new baseline."""
        self.controller.tap(UP)
        self.controller.rebase(make_votes("p1", up=5, down=1))
        self.assertEqual(self.controller.state, VoteState.PENDING)
        self.assertEqual(self.controller.displayed_tally, 5)

    def test_rebase_already_containing_pending_vote(self):
        """Test a baseline that already holds the pending vote is not double counted."""
        self.controller.tap(UP)
        self.controller.rebase([*make_votes("p1", up=2), _my_vote(UP)])
        self.assertEqual(self.controller.displayed_tally, 3)

    def test_acknowledge_bumps_generation(self):
        """Test each confirmation advances the generation; stale ones do not."""
        self.assertEqual(self.controller.generation, 0)
        first = self.controller.tap(UP)
        second = self.controller.tap(DOWN)
        self.controller.acknowledge(first)
        self.assertEqual(self.controller.generation, 0)
        self.controller.acknowledge(second)
        self.assertEqual(self.controller.generation, 1)

    def test_rebase_older_than_confirmation_ignored(self):
        """Test votes fetched before a confirmation do not replace the baseline."""
        since = self.controller.generation
        self.controller.acknowledge(self.controller.tap(UP))

        self.assertFalse(self.controller.rebase(make_votes("p1", up=2), since=since))
        self.assertEqual(self.controller.server_direction, UP)
        self.assertEqual(self.controller.displayed_tally, 3)

        self.assertTrue(self.controller.rebase(make_votes("p1", up=4), since=self.controller.generation))
        self.assertEqual(self.controller.displayed_tally, 4)

    def test_rebase_when_confirmed(self):
        """Test a refresh without pending taps just replaces the baseline."""
        self.controller.rebase([_my_vote(DOWN)])
        self.assertEqual(self.controller.server_direction, DOWN)
        self.assertEqual(self.controller.displayed_tally, -1)


class TestControllerVote(unittest.TestCase):
    """Test cases for the async vote() round trip."""

    def setUp(self):
        self.store = MagicMock()
        self.store.upsert_vote = AsyncMock(return_value=True)
        self.notify = MagicMock()
        self.exporter = MagicMock()
        self.controller = OptimisticVoteController(
            "c1",
            "me",
            self.store,
            kind=VotableKind.COMMENT,
            notify=self.notify,
            prometheus_exporter=self.exporter,
        )

    def test_vote_confirmed(self):
        """Test a successful upsert confirms the vote."""
        outcome = asyncio.run(self.controller.vote(UP))

        self.assertEqual(outcome, VoteOutcome.CONFIRMED)
        self.store.upsert_vote.assert_awaited_once_with(VotableKind.COMMENT, "c1", "me", UP)
        self.assertEqual(self.controller.displayed_tally, 1)
        self.exporter.record_vote_cast.assert_called_once_with("comment")
        self.exporter.record_vote_outcome.assert_called_once_with("confirmed")

    def test_unvote_sends_none(self):
        """Test tapping the confirmed direction sends a vote removal."""
        asyncio.run(self.controller.vote(UP))
        asyncio.run(self.controller.vote(UP))
        self.store.upsert_vote.assert_awaited_with(VotableKind.COMMENT, "c1", "me", None)
        self.assertEqual(self.controller.displayed_tally, 0)

    def test_vote_network_failure_reverts(self):
        """Test a network failure reverts the tally and notifies the caller."""
        error = TransientNetworkFailure("upsert_vote", "offline")
        self.store.upsert_vote.side_effect = error

        with self.assertLogs("campus_feed.engine.optimistic", level="WARNING"):
            outcome = asyncio.run(self.controller.vote(DOWN))

        self.assertEqual(outcome, VoteOutcome.REVERTED)
        self.notify.assert_called_once_with(error)
        self.assertEqual(self.controller.displayed_tally, 0)
        self.exporter.record_vote_outcome.assert_called_once_with("reverted")

    def test_vote_rejected_reverts(self):
        """Test a refused write is treated as a failure."""
        self.store.upsert_vote.return_value = False
        with self.assertLogs("campus_feed.engine.optimistic", level="WARNING"):
            outcome = asyncio.run(self.controller.vote(UP))
        self.assertEqual(outcome, VoteOutcome.REVERTED)
        self.assertIsInstance(self.notify.call_args[0][0], TransientNetworkFailure)

    def test_other_errors_propagate(self):
        """Test unexpected errors are not swallowed."""
        self.store.upsert_vote.side_effect = ValueError("bug")
        with self.assertRaises(ValueError):
            asyncio.run(self.controller.vote(UP))

    def _gated_store(self, gates):
        calls = []

        async def upsert_vote(kind, subject_id, user_id, direction):
            gate = gates[len(calls)]
            calls.append(direction)
            await gate.wait()
            return True

        store = MagicMock()
        store.upsert_vote = upsert_vote
        return store, calls

    def test_stale_response_after_newer_confirmation(self):
        """Test a superseded response arriving last does not change the tally."""

        async def scenario():
            gates = [asyncio.Event(), asyncio.Event()]
            store, calls = self._gated_store(gates)
            controller = OptimisticVoteController("p1", "me", store)

            first = asyncio.create_task(controller.vote(UP))
            await asyncio.sleep(0)
            self.assertEqual(controller.displayed_tally, 1)

            second = asyncio.create_task(controller.vote(DOWN))
            await asyncio.sleep(0)
            self.assertEqual(controller.displayed_tally, -1)

            gates[1].set()
            self.assertEqual(await second, VoteOutcome.CONFIRMED)
            gates[0].set()
            self.assertEqual(await first, VoteOutcome.SUPERSEDED)

            self.assertEqual(calls, [UP, DOWN])
            self.assertEqual(controller.server_direction, DOWN)
            self.assertEqual(controller.displayed_tally, -1)

        asyncio.run(scenario())

    def test_stale_response_before_newer_confirmation(self):
        """Test a superseded response arriving first is ignored while the newer tap is pending."""

        async def scenario():
            gates = [asyncio.Event(), asyncio.Event()]
            store, _ = self._gated_store(gates)
            controller = OptimisticVoteController("p1", "me", store)

            first = asyncio.create_task(controller.vote(UP))
            await asyncio.sleep(0)
            second = asyncio.create_task(controller.vote(UP))
            await asyncio.sleep(0)
            self.assertEqual(controller.displayed_tally, 0)

            gates[0].set()
            self.assertEqual(await first, VoteOutcome.SUPERSEDED)
            self.assertEqual(controller.state, VoteState.PENDING)
            self.assertEqual(controller.displayed_tally, 0)

            gates[1].set()
            self.assertEqual(await second, VoteOutcome.CONFIRMED)
            self.assertIsNone(controller.server_direction)
            self.assertEqual(controller.displayed_tally, 0)

        asyncio.run(scenario())


if __name__ == "__main__":
    unittest.main()
