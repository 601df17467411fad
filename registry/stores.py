"""Couchbase-backed implementations of the ``registry.store`` protocols."""

from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, List, Optional, Sequence

from clients.couchbase import Database
from models.entities.couchbase.credit_transactions import CreditTransaction
from models.entities.couchbase.credits import CreditEntry
from models.entities.couchbase.projects import Project
from models.entities.couchbase.users import User
from models.entities.couchbase.validator_assignments import ValidatorAssignment, ValidatorAssignmentData
from models.entities.couchbase.validator_votes import ValidatorVote, ValidatorVoteData
from models.entities.couchbase.verification_events import VerificationEventData
from models.entities.couchbase.verification_requests import VerificationRequest, VerificationRequestData
from models.operations import credit_transactions as txn_ops
from models.operations import credits as credit_ops
from models.operations import projects as project_ops
from models.operations import users as user_ops
from models.operations import validator_assignments as assignment_ops
from models.operations import validator_votes as vote_ops
from models.operations import verification_events as event_ops
from models.operations import verification_requests as request_ops

from .filters import CreditQuery
from .store import R, RequestMutator


class CouchbaseProjectLookup:
    def __init__(self, db: Database):
        self.db = db

    async def project_get(self, project_id: str) -> Optional[Project]:
        return await project_ops.project_get(self.db, project_id)

    async def project_sequence(self, project_id: str) -> int:
        return await project_ops.project_sequence(self.db, project_id)


class CouchbaseUserLookup:
    def __init__(self, db: Database):
        self.db = db

    async def user_get(self, user_id: str) -> Optional[User]:
        return await user_ops.user_get(self.db, user_id)

    async def users_by_roles(self, roles: Sequence[str]) -> List[User]:
        return await user_ops.user_get_by_roles(self.db, roles)


class CouchbaseLedgerSession:
    """Wraps one transaction attempt. Locked documents keep their SDK result for the replace."""

    def __init__(self, ctx: Any, db: Database):
        self.ctx = ctx
        self.db = db
        self._locked = {}

    async def lock_credit(self, credit_id: str) -> Optional[CreditEntry]:
        found = await credit_ops.credit_txn_get(self.ctx, self.db, credit_id)
        if not found:
            return None
        entry, got = found
        self._locked[credit_id] = got
        return entry

    async def claim_issuance(self, project_id: str, credit_id: str, verification_id: Optional[str]) -> bool:
        return await credit_ops.credit_issuance_txn_claim(self.ctx, self.db, project_id, credit_id, verification_id)

    async def next_credit_sequence(self, project_id: str, vintage: int) -> int:
        return await credit_ops.credit_sequence_txn_next(self.ctx, self.db, project_id, vintage)

    async def insert_credit(self, entry: CreditEntry) -> CreditEntry:
        return await credit_ops.credit_txn_insert(self.ctx, self.db, entry)

    async def replace_credit(self, entry: CreditEntry) -> CreditEntry:
        got = self._locked.get(entry.id)
        if got is None:
            raise RuntimeError(f"Credit {entry.id} must be locked before it is replaced")
        return await credit_ops.credit_txn_replace(self.ctx, got, entry)

    async def append_transaction(self, txn: CreditTransaction) -> CreditTransaction:
        return await txn_ops.credit_transaction_txn_append(self.ctx, self.db, txn)


class CouchbaseLedgerStore:
    def __init__(self, db: Database, transaction_timeout: Optional[timedelta] = None):
        self.db = db
        self.transaction_timeout = transaction_timeout

    async def run_in_transaction(self, work: Callable[[CouchbaseLedgerSession], Awaitable[R]]) -> R:
        result: List[R] = []

        async def logic(ctx: Any) -> None:
            result.clear()
            result.append(await work(CouchbaseLedgerSession(ctx, self.db)))

        await self.db.run_transaction(logic, timeout=self.transaction_timeout)
        return result[0]

    async def credit_get(self, credit_id: str) -> Optional[CreditEntry]:
        return await credit_ops.credit_get(self.db, credit_id)

    async def credit_get_by_serial(self, serial_number: str) -> Optional[CreditEntry]:
        return await credit_ops.credit_get_by_serial(self.db, serial_number)

    async def credits_find(
        self,
        query: CreditQuery,
        owner_id: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> List[CreditEntry]:
        return await credit_ops.credit_search(
            self.db,
            owner_id=owner_id,
            project_id=project_id,
            status=query.status,
            vintage=query.vintage,
            order_by=query.order_by,
            limit=query.limit,
            offset=query.offset,
        )

    async def credits_count(
        self,
        owner_id: Optional[str] = None,
        project_id: Optional[str] = None,
        status: Optional[str] = None,
        vintage: Optional[int] = None,
    ) -> int:
        return await credit_ops.credit_count(
            self.db, owner_id=owner_id, project_id=project_id, status=status, vintage=vintage
        )

    async def transaction_append(self, txn: CreditTransaction) -> CreditTransaction:
        return await txn_ops.credit_transaction_append(self.db, txn)

    async def transactions_for_credit(self, credit_id: str) -> List[CreditTransaction]:
        return await txn_ops.credit_transaction_list_for_credit(self.db, credit_id)


class CouchbaseVerificationStore:
    def __init__(self, db: Database, transaction_timeout: Optional[timedelta] = None):
        self.db = db
        self.transaction_timeout = transaction_timeout

    async def request_create(self, data: VerificationRequestData) -> VerificationRequest:
        return await request_ops.verification_create(self.db, data)

    async def request_get(self, verification_id: str) -> Optional[VerificationRequest]:
        return await request_ops.verification_get(self.db, verification_id)

    async def request_mutate(self, verification_id: str, mutator: RequestMutator) -> Optional[VerificationRequest]:
        return await request_ops.verification_cas_retry(self.db, verification_id, mutator)

    async def requests_expired(self, now: datetime) -> List[VerificationRequest]:
        return await request_ops.verification_list_expired(self.db, now)

    async def assign_validators(
        self,
        verification_id: str,
        assignments: List[ValidatorAssignmentData],
        update: Callable[[VerificationRequest], VerificationRequestData],
    ) -> VerificationRequest:
        return await request_ops.verification_assign_validators(
            self.db, verification_id, assignments, update, timeout=self.transaction_timeout
        )

    async def assignments_for(self, verification_id: str) -> List[ValidatorAssignment]:
        return await assignment_ops.assignment_list_for_verification(self.db, verification_id)

    async def assignment_get(self, verification_id: str, validator_id: str) -> Optional[ValidatorAssignment]:
        return await assignment_ops.assignment_get(self.db, verification_id, validator_id)

    async def vote_cast(self, data: ValidatorVoteData) -> Optional[ValidatorVote]:
        return await vote_ops.vote_cast(self.db, data)

    async def vote_insert_if_absent(self, data: ValidatorVoteData) -> Optional[ValidatorVote]:
        return await vote_ops.vote_insert_if_absent(self.db, data)

    async def votes_for(self, verification_id: str) -> List[ValidatorVote]:
        return await vote_ops.vote_list_for_verification(self.db, verification_id)


class CouchbaseEventSink:
    def __init__(self, db: Database):
        self.db = db

    async def record(self, event: VerificationEventData) -> None:
        await event_ops.verification_event_create(self.db, event)
