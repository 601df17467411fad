"""
Quorum voting over a verification request's validator committee.

Quorum rule for ``total`` assigned validators and ``required`` approvals:
- approved as soon as approvals >= required
- rejected as soon as rejections > total - required (approval is out of reach)
- pending otherwise

Abstentions never approve or reject; they only count toward progress.
"""

from datetime import datetime
from typing import Callable, List, Literal, Optional, Sequence

from pydantic import BaseModel

from models.entities.couchbase.validator_votes import ValidatorVote, ValidatorVoteData, VoteDecision
from models.entities.couchbase.verification_requests import VerificationRequest, VerificationRequestData
from registry.utils import log
from registry.utils.clock import utc_now

from .assignment import ASSIGNED_PROGRESS
from .audit import AuditTrail
from .errors import DeadlineExpired, InvalidState, NotFound, Unauthorized
from .store import VerificationStore

logger = log.get_logger(__name__)

FinalDecision = Literal["approved", "rejected", "pending"]


class Tally(BaseModel):
    approvals: int = 0
    rejections: int = 0
    abstentions: int = 0
    decision: FinalDecision = "pending"
    progress: int = 0

    @property
    def vote_count(self) -> int:
        return self.approvals + self.rejections


def tally_votes(votes: Sequence[ValidatorVote], total: int, required: int) -> Tally:
    approvals = sum(1 for v in votes if v.data.vote == "approve")
    rejections = sum(1 for v in votes if v.data.vote == "reject")
    abstentions = sum(1 for v in votes if v.data.vote == "abstain")

    decision: FinalDecision = "pending"
    if approvals >= required:
        decision = "approved"
    elif rejections > total - required:
        decision = "rejected"

    if decision != "pending":
        progress = 100
    elif total > 0:
        resolved = min(approvals + rejections + abstentions, total)
        progress = ASSIGNED_PROGRESS + round((100 - ASSIGNED_PROGRESS) * resolved / total)
    else:
        progress = ASSIGNED_PROGRESS

    return Tally(
        approvals=approvals,
        rejections=rejections,
        abstentions=abstentions,
        decision=decision,
        progress=progress,
    )


class ConsensusStatus(BaseModel):
    verification_id: str
    total_validators: int
    required_approvals: int
    approval_count: int
    rejection_count: int
    abstain_count: int
    vote_count: int
    consensus_reached: bool
    final_decision: FinalDecision
    progress: int
    votes: List[ValidatorVote] = []


class ConsensusEngine:
    def __init__(
        self,
        store: VerificationStore,
        audit: AuditTrail,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.audit = audit
        self.clock = clock

    async def cast_vote(
        self,
        verification_id: str,
        validator_id: str,
        decision: VoteDecision,
        notes: Optional[str] = None,
        proof: Optional[str] = None,
        wallet_address: Optional[str] = None,
    ) -> VerificationRequest:
        """Record (or replace) a validator's vote and re-evaluate the quorum."""
        logger.info(f"Validator {validator_id} voting '{decision}' on verification {verification_id}")
        request = await self.store.request_get(verification_id)
        if not request:
            raise NotFound("Verification request not found")
        if not await self.store.assignment_get(verification_id, validator_id):
            raise Unauthorized("You are not assigned to this verification request")
        if request.data.status != "in_review":
            raise InvalidState(f"Verification request is not in review (status: {request.data.status})")
        now = self.clock()
        if request.data.voting_deadline and now > request.data.voting_deadline:
            raise DeadlineExpired("Voting deadline has passed")

        vote = await self.store.vote_cast(ValidatorVoteData(
            verification_id=verification_id,
            validator_id=validator_id,
            vote=decision,
            notes=notes,
            proof=proof,
            wallet_address=wallet_address,
            voted_at=now,
        ))
        if not vote:
            raise DeadlineExpired("Voting deadline has passed; this vote was recorded as an abstention")
        await self.audit.record(
            verification_id, "vote_cast", f"Validator voted: {decision}", validator_id,
            {"vote": decision, "proof": proof},
        )
        return await self.recompute(verification_id)

    async def recompute(self, verification_id: str) -> VerificationRequest:
        """Re-derive the request's counts from its full vote set.

        Runs under optimistic concurrency so concurrent votes never lose an
        update. A request that has already been decided is left untouched.
        """
        decided: List[FinalDecision] = []

        async def mutate(current: VerificationRequest) -> Optional[VerificationRequestData]:
            decided.clear()
            if current.data.status != "in_review":
                return None
            total = len(await self.store.assignments_for(verification_id))
            votes = await self.store.votes_for(verification_id)
            tally = tally_votes(votes, total, current.data.required_approvals)
            update = {
                "approval_count": tally.approvals,
                "rejection_count": tally.rejections,
                "vote_count": tally.vote_count,
                "progress": tally.progress,
            }
            if tally.decision != "pending":
                now = self.clock()
                update.update({
                    "status": tally.decision,
                    "consensus_reached_at": now,
                    "completed_at": now,
                    "resolution": "votes",
                })
                decided.append(tally.decision)
            return current.data.model_copy(update=update)

        request = await self.store.request_mutate(verification_id, mutate)
        if not request:
            raise NotFound("Verification request not found")
        if decided:
            logger.info(f"Consensus reached on verification {verification_id}: {decided[0]}")
            await self.audit.record(
                verification_id, "consensus_reached", f"Consensus reached: {decided[0]}", "system",
                {
                    "decision": decided[0],
                    "approval_count": request.data.approval_count,
                    "rejection_count": request.data.rejection_count,
                },
            )
        return request

    async def get_consensus_status(self, verification_id: str) -> ConsensusStatus:
        request = await self.store.request_get(verification_id)
        if not request:
            raise NotFound("Verification request not found")
        total = len(await self.store.assignments_for(verification_id))
        votes = await self.votes(verification_id)
        tally = tally_votes(votes, total, request.data.required_approvals)

        consensus_reached = tally.decision != "pending"
        final_decision = tally.decision
        progress = tally.progress
        if request.data.resolution == "deadline_policy":
            consensus_reached = False
            final_decision = request.data.status if request.data.status != "in_review" else "pending"
            progress = request.data.progress

        return ConsensusStatus(
            verification_id=verification_id,
            total_validators=total,
            required_approvals=request.data.required_approvals,
            approval_count=tally.approvals,
            rejection_count=tally.rejections,
            abstain_count=tally.abstentions,
            vote_count=tally.vote_count,
            consensus_reached=consensus_reached,
            final_decision=final_decision,
            progress=progress,
            votes=votes,
        )

    async def votes(self, verification_id: str) -> List[ValidatorVote]:
        votes = await self.store.votes_for(verification_id)
        return sorted(votes, key=lambda v: v.data.voted_at)
