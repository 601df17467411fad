from datetime import timedelta

import pytest

from registry.conf import ConsensusConf
from registry.deadlines import AUTO_ABSTAIN_NOTE, DeadlineScheduler
from registry.errors import InvalidState, NoDeadline, NotFound

from .conftest import START

pytestmark = pytest.mark.asyncio


@pytest.fixture
async def in_review(assignment, committee):
    return await assignment.submit("proj-1", "dev-1")


@pytest.fixture
def keep_pending(verification_store, consensus, audit, clock):
    return DeadlineScheduler(
        verification_store, consensus, audit, ConsensusConf(expiry_policy="keep_pending"), clock=clock
    )


# =============================================================================
# Expiry sweep
# =============================================================================


class TestProcessExpiredDeadlines:
    async def test_nothing_expired_yet(self, deadlines, verification_store, clock, in_review):
        clock.advance(days=3)
        result = await deadlines.process_expired_deadlines()
        assert result.verifications_processed == 0
        assert verification_store.votes == {}

    async def test_scenario_single_approval_then_expiry_rejects(
        self, deadlines, consensus, verification_store, events, clock, in_review
    ):
        await consensus.cast_vote(in_review.id, "val-1", "approve")
        clock.advance(days=4, minutes=1)

        result = await deadlines.process_expired_deadlines()

        assert result.verifications_processed == 1
        assert result.validators_auto_abstained == 4
        assert result.failures == 0
        votes = await verification_store.votes_for(in_review.id)
        abstains = [v for v in votes if v.data.auto_abstained]
        assert len(abstains) == 4
        assert all(v.data.vote == "abstain" and v.data.notes == AUTO_ABSTAIN_NOTE for v in abstains)

        request = await verification_store.request_get(in_review.id)
        assert request.data.approval_count == 1
        assert request.data.status == "rejected"
        assert request.data.resolution == "deadline_policy"
        assert request.data.progress == 100

        status = await consensus.get_consensus_status(in_review.id)
        assert status.consensus_reached is False
        assert status.final_decision == "rejected"
        assert status.abstain_count == 4
        assert len(events.of_type("validators_auto_abstained")) == 1
        assert len(events.of_type("deadline_expired_rejected")) == 1

    async def test_scenario_keep_pending_policy(self, keep_pending, consensus, verification_store, clock, in_review):
        await consensus.cast_vote(in_review.id, "val-1", "approve")
        clock.advance(days=4, minutes=1)

        await keep_pending.process_expired_deadlines()

        request = await verification_store.request_get(in_review.id)
        assert request.data.status == "in_review"
        assert request.data.resolution is None
        status = await consensus.get_consensus_status(in_review.id)
        assert status.final_decision == "pending"
        assert status.progress == 100

    async def test_sweep_is_idempotent(self, keep_pending, verification_store, events, clock, in_review):
        clock.advance(days=5)

        first = await keep_pending.process_expired_deadlines()
        votes_after_first = dict(verification_store.votes)
        second = await keep_pending.process_expired_deadlines()

        assert first.validators_auto_abstained == 5
        assert second.verifications_processed == 1
        assert second.validators_auto_abstained == 0
        assert verification_store.votes == votes_after_first
        assert len(events.of_type("validators_auto_abstained")) == 1

    async def test_requests_decided_by_votes_are_not_swept(self, deadlines, consensus, verification_store, clock, in_review):
        for validator in ("val-1", "val-2"):
            await consensus.cast_vote(in_review.id, validator, "approve")
        await consensus.cast_vote(in_review.id, "val-3", "reject")
        await consensus.cast_vote(in_review.id, "val-4", "reject")
        await consensus.cast_vote(in_review.id, "val-5", "reject")

        request = await verification_store.request_get(in_review.id)
        assert request.data.status == "rejected"
        assert request.data.resolution == "votes"

        clock.advance(days=5)
        result = await deadlines.process_expired_deadlines()
        assert result.verifications_processed == 0

    async def test_one_failing_request_does_not_stop_the_sweep(
        self, deadlines, assignment, verification_store, clock, in_review
    ):
        other = await assignment.submit("proj-2", "dev-1")
        verification_store.fail_mutate_for.add(in_review.id)
        clock.advance(days=5)

        result = await deadlines.process_expired_deadlines()

        assert result.failures == 1
        assert result.verifications_processed == 1
        assert (await verification_store.request_get(other.id)).data.status == "rejected"


# =============================================================================
# Extensions and status
# =============================================================================


class TestExtendDeadline:
    async def test_first_extension_snapshots_original(self, deadlines, events, in_review):
        original = in_review.data.voting_deadline

        request = await deadlines.extend_deadline(in_review.id, 2, "admin-1")
        assert request.data.voting_deadline == original + timedelta(days=2)
        assert request.data.original_deadline == original
        assert request.data.deadline_extended is True

        request = await deadlines.extend_deadline(in_review.id, 3, "admin-1")
        assert request.data.voting_deadline == original + timedelta(days=5)
        assert request.data.original_deadline == original

        extended = events.of_type("deadline_extended")
        assert len(extended) == 2
        assert extended[1].user_id == "admin-1"
        assert extended[1].metadata["previous_deadline"] == (original + timedelta(days=2)).isoformat()
        assert extended[1].metadata["new_deadline"] == (original + timedelta(days=5)).isoformat()

    async def test_voting_reopens_after_extension(self, deadlines, consensus, clock, in_review):
        clock.advance(days=4, hours=1)
        await deadlines.extend_deadline(in_review.id, 1, "admin-1")
        request = await consensus.cast_vote(in_review.id, "val-1", "approve")
        assert request.data.approval_count == 1

    async def test_preconditions(self, deadlines, verification_store, in_review):
        with pytest.raises(NotFound):
            await deadlines.extend_deadline("missing", 1, "admin-1")
        with pytest.raises(InvalidState):
            await deadlines.extend_deadline(in_review.id, 0, "admin-1")

        no_deadline = verification_store.put(
            in_review.with_data(in_review.data.model_copy(update={"voting_deadline": None}))
        )
        with pytest.raises(NoDeadline):
            await deadlines.extend_deadline(no_deadline.id, 1, "admin-1")

        verification_store.put(in_review.with_data(in_review.data.model_copy(update={"status": "approved"})))
        with pytest.raises(InvalidState):
            await deadlines.extend_deadline(in_review.id, 1, "admin-1")


class TestDeadlineStatus:
    async def test_status_before_and_after_expiry(self, deadlines, clock, in_review):
        status = await deadlines.deadline_status(in_review.id)
        assert status.voting_deadline == START + timedelta(days=4)
        assert status.seconds_remaining == 4 * 24 * 3600
        assert status.expired is False
        assert await deadlines.is_deadline_expired(in_review.id) is False

        clock.advance(days=4, seconds=1)
        status = await deadlines.deadline_status(in_review.id)
        assert status.seconds_remaining == 0
        assert status.expired is True
        assert await deadlines.is_deadline_expired(in_review.id) is True

    async def test_unknown_request(self, deadlines):
        with pytest.raises(NotFound):
            await deadlines.deadline_status("missing")
