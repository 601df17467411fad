"""
Validator committee selection and assignment.

Assignment is all-or-nothing: every assignment document and the request's
move to ``in_review`` are persisted together, or none of them are.
"""

import random
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from models.entities.couchbase.users import User
from models.entities.couchbase.validator_assignments import SYSTEM_ACTOR, ValidatorAssignmentData
from models.entities.couchbase.verification_requests import VerificationRequest, VerificationRequestData
from registry.utils import log
from registry.utils.clock import utc_now

from .audit import AuditTrail
from .conf import ConsensusConf
from .errors import InsufficientValidators, InvalidState, NotFound
from .store import UserLookup, VerificationStore

logger = log.get_logger(__name__)

VALIDATOR_ROLES = ("verifier", "administrator")

ASSIGNED_PROGRESS = 30


def is_eligible(user: User, exclude_ids: Sequence[str] = ()) -> bool:
    return (
        user.data.role in VALIDATOR_ROLES
        and user.data.email_verified
        and user.id not in exclude_ids
    )


def select_committee(
    pool: Sequence[User],
    count: int,
    exclude_ids: Sequence[str] = (),
    rng: Optional[random.Random] = None,
) -> List[User]:
    """Uniformly random committee of up to *count* eligible users.

    A pool smaller than *count* is returned whole; the caller decides
    whether that is enough.
    """
    eligible = [u for u in pool if is_eligible(u, exclude_ids)]
    if len(eligible) <= count:
        return eligible
    rng = rng or random.SystemRandom()
    rng.shuffle(eligible)
    return eligible[:count]


def calculate_voting_deadline(start: datetime, days: int) -> datetime:
    return start + timedelta(days=days)


class ValidatorAssignmentEngine:
    def __init__(
        self,
        store: VerificationStore,
        users: UserLookup,
        audit: AuditTrail,
        conf: ConsensusConf,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.users = users
        self.audit = audit
        self.conf = conf
        self.rng = rng or random.SystemRandom()
        self.clock = clock

    async def submit(self, project_id: str, developer_id: str) -> VerificationRequest:
        """Open a verification request and assign its committee straight away."""
        now = self.clock()
        request = await self.store.request_create(VerificationRequestData(
            project_id=project_id,
            developer_id=developer_id,
            required_approvals=self.conf.required_approvals,
            submitted_at=now,
        ))
        logger.info(f"Verification {request.id} submitted for project {project_id}")
        await self.audit.record(request.id, "submitted", "Verification request submitted", developer_id)
        return await self.auto_assign_validators(request.id, developer_id)

    async def auto_assign_validators(
        self,
        verification_id: str,
        developer_id: str,
        required_approvals: Optional[int] = None,
        validator_count: Optional[int] = None,
    ) -> VerificationRequest:
        required = required_approvals or self.conf.required_approvals
        count = validator_count or self.conf.validator_count
        logger.info(f"Auto-assigning {count} validators to verification {verification_id}")

        pool = await self.users.users_by_roles(VALIDATOR_ROLES)
        committee = select_committee(pool, count, exclude_ids=[developer_id], rng=self.rng)
        needed = max(required, self.conf.minimum_validators)
        if len(committee) < needed:
            raise InsufficientValidators(
                f"Insufficient validators available. Need at least {needed}, found {len(committee)}"
            )

        request = await self._assign(verification_id, [u.id for u in committee], SYSTEM_ACTOR, required)
        await self.audit.record(
            verification_id,
            "validators_auto_assigned",
            f"{len(committee)} validators automatically assigned",
            SYSTEM_ACTOR,
            {
                "validator_ids": [u.id for u in committee],
                "required_approvals": required,
                "voting_deadline": request.data.voting_deadline.isoformat(),
            },
        )
        logger.info(
            f"Assigned {len(committee)} validators to verification {verification_id}, "
            f"deadline {request.data.voting_deadline.isoformat()}"
        )
        return request

    async def assign_validators(
        self,
        verification_id: str,
        validator_ids: Sequence[str],
        assigned_by: str,
        required_approvals: Optional[int] = None,
    ) -> VerificationRequest:
        """Administrator-chosen committee. Every id must be an eligible validator."""
        required = required_approvals or self.conf.required_approvals
        validator_ids = list(dict.fromkeys(validator_ids))

        request = await self.store.request_get(verification_id)
        if not request:
            raise NotFound("Verification request not found")
        for validator_id in validator_ids:
            user = await self.users.user_get(validator_id)
            if not user or not is_eligible(user, exclude_ids=[request.data.developer_id]):
                raise InvalidState(f"User {validator_id} cannot validate this request")
        if len(validator_ids) < required:
            raise InsufficientValidators(
                f"Insufficient validators assigned. Need at least {required}, got {len(validator_ids)}"
            )

        request = await self._assign(verification_id, validator_ids, assigned_by, required)
        await self.audit.record(
            verification_id,
            "validators_assigned",
            f"{len(validator_ids)} validators assigned",
            assigned_by,
            {"validator_ids": validator_ids, "required_approvals": required},
        )
        return request

    async def _assign(
        self,
        verification_id: str,
        validator_ids: Sequence[str],
        assigned_by: str,
        required: int,
    ) -> VerificationRequest:
        request = await self.store.request_get(verification_id)
        if not request:
            raise NotFound("Verification request not found")
        if request.data.status != "pending":
            raise InvalidState(f"Verification request is not pending (status: {request.data.status})")
        if await self.store.assignments_for(verification_id):
            raise InvalidState("Validators have already been assigned to this request")

        now = self.clock()
        deadline = calculate_voting_deadline(now, self.conf.voting_deadline_days)
        assignments = [
            ValidatorAssignmentData(
                verification_id=verification_id,
                validator_id=validator_id,
                assigned_by=assigned_by,
                assigned_at=now,
            )
            for validator_id in validator_ids
        ]

        def update(current: VerificationRequest) -> VerificationRequestData:
            if current.data.status != "pending":
                raise InvalidState(f"Verification request is not pending (status: {current.data.status})")
            return current.data.model_copy(update={
                "status": "in_review",
                "required_approvals": required,
                "assigned_at": now,
                "progress": ASSIGNED_PROGRESS,
                "voting_deadline": deadline,
            })

        return await self.store.assign_validators(verification_id, assignments, update)
