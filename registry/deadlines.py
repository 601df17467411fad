"""
Voting deadlines: the expiry sweep and manual extensions.

The sweep is idempotent. Abstain votes are inserted only where no vote
exists, so running it twice over the same state changes nothing.
"""

from datetime import datetime, timedelta
from typing import Callable, List, Optional

from pydantic import BaseModel

from models.entities.couchbase.validator_assignments import SYSTEM_ACTOR
from models.entities.couchbase.validator_votes import ValidatorVoteData
from models.entities.couchbase.verification_requests import VerificationRequest, VerificationRequestData
from registry.utils import log
from registry.utils.clock import utc_now

from .audit import AuditTrail
from .conf import ConsensusConf
from .consensus import ConsensusEngine
from .errors import InvalidState, NoDeadline, NotFound
from .store import VerificationStore

logger = log.get_logger(__name__)

AUTO_ABSTAIN_NOTE = "Automatically abstained: voting deadline expired"


class DeadlineSweepResult(BaseModel):
    verifications_processed: int = 0
    validators_auto_abstained: int = 0
    failures: int = 0


class DeadlineStatus(BaseModel):
    verification_id: str
    voting_deadline: Optional[datetime] = None
    seconds_remaining: Optional[int] = None
    expired: bool = False
    deadline_extended: bool = False
    original_deadline: Optional[datetime] = None


class DeadlineScheduler:
    def __init__(
        self,
        store: VerificationStore,
        consensus: ConsensusEngine,
        audit: AuditTrail,
        conf: ConsensusConf,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.consensus = consensus
        self.audit = audit
        self.conf = conf
        self.clock = clock

    async def process_expired_deadlines(self) -> DeadlineSweepResult:
        """Auto-abstain missing votes on every in-review request past its deadline."""
        now = self.clock()
        expired = await self.store.requests_expired(now)
        logger.info(f"Deadline sweep: {len(expired)} expired verification(s)")

        result = DeadlineSweepResult()
        for request in expired:
            try:
                abstained = await self._expire(request, now)
            except Exception as e:
                logger.error(f"Deadline sweep: failed to process verification {request.id}: {e}", exc_info=True)
                result.failures += 1
                continue
            result.verifications_processed += 1
            result.validators_auto_abstained += abstained

        logger.info(
            f"Deadline sweep finished: {result.verifications_processed} processed, "
            f"{result.validators_auto_abstained} auto-abstained, {result.failures} failed"
        )
        return result

    async def _expire(self, request: VerificationRequest, now: datetime) -> int:
        assignments = await self.store.assignments_for(request.id)
        voted = {v.data.validator_id for v in await self.store.votes_for(request.id)}

        abstained: List[str] = []
        for assignment in assignments:
            validator_id = assignment.data.validator_id
            if validator_id in voted:
                continue
            vote = await self.store.vote_insert_if_absent(ValidatorVoteData(
                verification_id=request.id,
                validator_id=validator_id,
                vote="abstain",
                notes=AUTO_ABSTAIN_NOTE,
                auto_abstained=True,
                voted_at=now,
            ))
            if vote:
                abstained.append(validator_id)

        updated = await self.consensus.recompute(request.id)
        if updated.data.status == "in_review" and self.conf.expiry_policy == "reject":
            updated = await self._close_by_policy(request.id, now)

        if abstained:
            await self.audit.record(
                request.id,
                "validators_auto_abstained",
                f"{len(abstained)} validator(s) automatically abstained after the voting deadline",
                SYSTEM_ACTOR,
                {"validator_ids": abstained, "final_status": updated.data.status},
            )
            logger.info(f"Verification {request.id}: auto-abstained {len(abstained)} validator(s)")
        return len(abstained)

    async def _close_by_policy(self, verification_id: str, now: datetime) -> VerificationRequest:
        async def mutate(current: VerificationRequest) -> Optional[VerificationRequestData]:
            if current.data.status != "in_review":
                return None
            return current.data.model_copy(update={
                "status": "rejected",
                "progress": 100,
                "completed_at": now,
                "resolution": "deadline_policy",
            })

        request = await self.store.request_mutate(verification_id, mutate)
        if not request:
            raise NotFound("Verification request not found")
        if request.data.resolution == "deadline_policy":
            logger.info(f"Verification {verification_id} rejected: deadline expired without quorum")
            await self.audit.record(
                verification_id, "deadline_expired_rejected",
                "Voting deadline expired without reaching the approval quorum", SYSTEM_ACTOR,
                {"approval_count": request.data.approval_count, "required_approvals": request.data.required_approvals},
            )
        return request

    async def extend_deadline(self, verification_id: str, extension_days: int, extended_by: str) -> VerificationRequest:
        if extension_days <= 0:
            raise InvalidState("Extension must be at least one day")
        previous: List[datetime] = []

        async def mutate(current: VerificationRequest) -> Optional[VerificationRequestData]:
            previous.clear()
            if current.data.status != "in_review":
                raise InvalidState(f"Can only extend deadlines of requests in review (status: {current.data.status})")
            if not current.data.voting_deadline:
                raise NoDeadline("Verification request has no voting deadline")
            previous.append(current.data.voting_deadline)
            return current.data.model_copy(update={
                "voting_deadline": current.data.voting_deadline + timedelta(days=extension_days),
                "deadline_extended": True,
                "original_deadline": current.data.original_deadline or current.data.voting_deadline,
            })

        request = await self.store.request_mutate(verification_id, mutate)
        if not request:
            raise NotFound("Verification request not found")

        logger.info(
            f"Verification {verification_id}: deadline extended by {extension_days} day(s) "
            f"to {request.data.voting_deadline.isoformat()} by {extended_by}"
        )
        await self.audit.record(
            verification_id, "deadline_extended",
            f"Voting deadline extended by {extension_days} day(s)", extended_by,
            {
                "previous_deadline": previous[0].isoformat(),
                "new_deadline": request.data.voting_deadline.isoformat(),
                "extension_days": extension_days,
            },
        )
        return request

    async def deadline_status(self, verification_id: str) -> DeadlineStatus:
        request = await self.store.request_get(verification_id)
        if not request:
            raise NotFound("Verification request not found")
        status = DeadlineStatus(
            verification_id=verification_id,
            voting_deadline=request.data.voting_deadline,
            deadline_extended=request.data.deadline_extended,
            original_deadline=request.data.original_deadline,
        )
        if request.data.voting_deadline:
            remaining = int((request.data.voting_deadline - self.clock()).total_seconds())
            status.seconds_remaining = max(remaining, 0)
            status.expired = remaining < 0
        return status

    async def is_deadline_expired(self, verification_id: str) -> bool:
        return (await self.deadline_status(verification_id)).expired
