"""Boundaries the core consumes but does not implement.

``registry.stores`` provides the Couchbase implementations; tests provide
in-memory ones.
"""

from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, TypeVar

from models.entities.couchbase.credit_transactions import CreditTransaction
from models.entities.couchbase.credits import CreditEntry
from models.entities.couchbase.projects import Project
from models.entities.couchbase.users import User
from models.entities.couchbase.validator_assignments import ValidatorAssignment, ValidatorAssignmentData
from models.entities.couchbase.validator_votes import ValidatorVote, ValidatorVoteData
from models.entities.couchbase.verification_events import VerificationEventData
from models.entities.couchbase.verification_requests import VerificationRequest, VerificationRequestData

from .filters import CreditQuery

R = TypeVar("R")

RequestMutator = Callable[[VerificationRequest], Awaitable[Optional[VerificationRequestData]]]


class ProjectLookup(Protocol):
    async def project_get(self, project_id: str) -> Optional[Project]: ...

    async def project_sequence(self, project_id: str) -> int:
        """1-based position of the project in creation order."""
        ...


class UserLookup(Protocol):
    async def user_get(self, user_id: str) -> Optional[User]: ...

    async def users_by_roles(self, roles: Sequence[str]) -> List[User]: ...


class LedgerSession(Protocol):
    """One serializable unit of work. Writes become visible only on commit."""

    async def lock_credit(self, credit_id: str) -> Optional[CreditEntry]:
        """Take exclusive access to the entry and return its committed state."""
        ...

    async def claim_issuance(self, project_id: str, credit_id: str, verification_id: Optional[str]) -> bool:
        """False when the project already has an issuance."""
        ...

    async def next_credit_sequence(self, project_id: str, vintage: int) -> int: ...

    async def insert_credit(self, entry: CreditEntry) -> CreditEntry: ...

    async def replace_credit(self, entry: CreditEntry) -> CreditEntry: ...

    async def append_transaction(self, txn: CreditTransaction) -> CreditTransaction: ...


class LedgerStore(Protocol):
    async def run_in_transaction(self, work: Callable[[LedgerSession], Awaitable[R]]) -> R:
        """Run *work* in one transaction: commit on return, roll back on raise.

        *work* may be re-run after a write-write conflict.
        """
        ...

    async def credit_get(self, credit_id: str) -> Optional[CreditEntry]: ...

    async def credit_get_by_serial(self, serial_number: str) -> Optional[CreditEntry]: ...

    async def credits_find(
        self,
        query: CreditQuery,
        owner_id: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> List[CreditEntry]: ...

    async def credits_count(
        self,
        owner_id: Optional[str] = None,
        project_id: Optional[str] = None,
        status: Optional[str] = None,
        vintage: Optional[int] = None,
    ) -> int: ...

    async def transaction_append(self, txn: CreditTransaction) -> CreditTransaction:
        """Append outside any unit of work (used for failed attempts)."""
        ...

    async def transactions_for_credit(self, credit_id: str) -> List[CreditTransaction]: ...


class VerificationStore(Protocol):
    async def request_create(self, data: VerificationRequestData) -> VerificationRequest: ...

    async def request_get(self, verification_id: str) -> Optional[VerificationRequest]: ...

    async def request_mutate(self, verification_id: str, mutator: RequestMutator) -> Optional[VerificationRequest]:
        """Optimistic read-modify-write.

        *mutator* returns the new data, or None to leave the request as is.
        It is re-run against fresh state when another writer got there first.
        Returns None when the request does not exist.
        """
        ...

    async def requests_expired(self, now: datetime) -> List[VerificationRequest]:
        """In-review requests whose voting deadline is before *now*."""
        ...

    async def assign_validators(
        self,
        verification_id: str,
        assignments: List[ValidatorAssignmentData],
        update: Callable[[VerificationRequest], VerificationRequestData],
    ) -> VerificationRequest:
        """Persist all assignments and the request update, or none of them."""
        ...

    async def assignments_for(self, verification_id: str) -> List[ValidatorAssignment]: ...

    async def assignment_get(self, verification_id: str, validator_id: str) -> Optional[ValidatorAssignment]: ...

    async def vote_cast(self, data: ValidatorVoteData) -> Optional[ValidatorVote]:
        """Record a human vote unless the slot already holds an auto-abstention."""
        ...

    async def vote_insert_if_absent(self, data: ValidatorVoteData) -> Optional[ValidatorVote]: ...

    async def votes_for(self, verification_id: str) -> List[ValidatorVote]: ...


class EventSink(Protocol):
    async def record(self, event: VerificationEventData) -> None: ...


class SettlementService(Protocol):
    """External settlement mirror, called after a ledger commit."""

    async def settle(self, txn: CreditTransaction) -> None: ...
