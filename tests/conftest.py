"""In-memory stand-ins for the Couchbase stores.

The ledger fake serializes units of work per document with ``asyncio.Lock``s
and applies buffered writes only on commit. The verification fake versions
each request so ``request_mutate`` retries exactly like a CAS mismatch.
"""

import asyncio
import random
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from models.entities.couchbase.credit_transactions import CreditTransaction
from models.entities.couchbase.credits import CreditEntry
from models.entities.couchbase.projects import Project, ProjectData
from models.entities.couchbase.users import User, UserData
from models.entities.couchbase.validator_assignments import ValidatorAssignment, assignment_key
from models.entities.couchbase.validator_votes import ValidatorVote, vote_key
from models.entities.couchbase.verification_requests import VerificationRequest
from registry.assignment import ValidatorAssignmentEngine
from registry.audit import AuditTrail
from registry.conf import ConsensusConf
from registry.consensus import ConsensusEngine
from registry.deadlines import DeadlineScheduler
from registry.journal import TransactionJournal
from registry.ledger import CreditLedger

START = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ----------------------------------------------------------------------
# Lookups
# ----------------------------------------------------------------------

class FakeUsers:
    def __init__(self):
        self.users: Dict[str, User] = {}

    def add(self, user_id: str, role: str = "verifier", email_verified: bool = True, wallet_address: Optional[str] = None) -> User:
        user = User(id=user_id, data=UserData(
            email=f"{user_id}@example.org",
            name=user_id,
            role=role,
            email_verified=email_verified,
            wallet_address=wallet_address,
        ))
        self.users[user_id] = user
        return user

    async def user_get(self, user_id: str) -> Optional[User]:
        return self.users.get(user_id)

    async def users_by_roles(self, roles) -> List[User]:
        return [u for u in self.users.values() if u.data.role in roles]


class FakeProjects:
    def __init__(self):
        self.projects: Dict[str, Project] = {}

    def add(self, project_id: str, developer_id: str, status: str = "verified", emissions_target: Optional[float] = 1000.0) -> Project:
        project = Project(id=project_id, data=ProjectData(
            developer_id=developer_id,
            name=f"Project {project_id}",
            status=status,
            emissions_target=emissions_target,
        ))
        self.projects[project_id] = project
        return project

    async def project_get(self, project_id: str) -> Optional[Project]:
        return self.projects.get(project_id)

    async def project_sequence(self, project_id: str) -> int:
        return list(self.projects).index(project_id) + 1


# ----------------------------------------------------------------------
# Ledger
# ----------------------------------------------------------------------

class FakeLedgerSession:
    def __init__(self, store: "FakeLedgerStore"):
        self.store = store
        self.held: List[asyncio.Lock] = []
        self.held_keys = set()
        self.credits: Dict[str, CreditEntry] = {}
        self.issuances: Dict[str, str] = {}
        self.sequences: Dict[str, int] = {}
        self.transactions: List[CreditTransaction] = []

    async def _lock(self, key: str) -> None:
        if key in self.held_keys:
            return
        lock = self.store.locks[key]
        await lock.acquire()
        self.held.append(lock)
        self.held_keys.add(key)
        await asyncio.sleep(0)

    def release(self) -> None:
        for lock in reversed(self.held):
            lock.release()
        self.held.clear()
        self.held_keys.clear()

    async def lock_credit(self, credit_id: str) -> Optional[CreditEntry]:
        await self._lock(f"credit::{credit_id}")
        return self.credits.get(credit_id) or self.store.credits.get(credit_id)

    async def claim_issuance(self, project_id: str, credit_id: str, verification_id: Optional[str]) -> bool:
        await self._lock(f"issuance::{project_id}")
        if project_id in self.store.issuances or project_id in self.issuances:
            return False
        self.issuances[project_id] = credit_id
        return True

    async def next_credit_sequence(self, project_id: str, vintage: int) -> int:
        key = f"{project_id}::{vintage}"
        await self._lock(f"sequence::{key}")
        current = self.sequences.get(key, self.store.sequences.get(key, 0))
        self.sequences[key] = current + 1
        return current + 1

    async def insert_credit(self, entry: CreditEntry) -> CreditEntry:
        if entry.id in self.store.credits or entry.id in self.credits:
            raise ValueError(f"duplicate credit {entry.id}")
        self.credits[entry.id] = entry
        return entry

    async def replace_credit(self, entry: CreditEntry) -> CreditEntry:
        if f"credit::{entry.id}" not in self.held_keys:
            raise RuntimeError("replace without lock")
        self.credits[entry.id] = entry
        return entry

    async def append_transaction(self, txn: CreditTransaction) -> CreditTransaction:
        self.transactions.append(txn)
        return txn


class FakeLedgerStore:
    def __init__(self):
        self.locks = defaultdict(asyncio.Lock)
        self.credits: Dict[str, CreditEntry] = {}
        self.issuances: Dict[str, str] = {}
        self.sequences: Dict[str, int] = {}
        self.transactions: List[CreditTransaction] = []
        self.commits = 0
        self.rollbacks = 0

    async def run_in_transaction(self, work):
        session = FakeLedgerSession(self)
        try:
            result = await work(session)
        except Exception:
            self.rollbacks += 1
            raise
        else:
            self.credits.update(session.credits)
            self.issuances.update(session.issuances)
            self.sequences.update(session.sequences)
            self.transactions.extend(session.transactions)
            self.commits += 1
            return result
        finally:
            session.release()

    async def credit_get(self, credit_id: str) -> Optional[CreditEntry]:
        return self.credits.get(credit_id)

    async def credit_get_by_serial(self, serial_number: str) -> Optional[CreditEntry]:
        for entry in self.credits.values():
            if entry.data.serial_number == serial_number:
                return entry
        return None

    def _matching(self, owner_id=None, project_id=None, status=None, vintage=None) -> List[CreditEntry]:
        return [
            c for c in self.credits.values()
            if (owner_id is None or c.data.owner_id == owner_id)
            and (project_id is None or c.data.project_id == project_id)
            and (status is None or c.data.status == status)
            and (vintage is None or c.data.vintage == vintage)
        ]

    async def credits_find(self, query, owner_id=None, project_id=None) -> List[CreditEntry]:
        items = self._matching(owner_id, project_id, query.status, query.vintage)
        items.sort(
            key=lambda c: (getattr(c.data, query.sort_by) is not None, getattr(c.data, query.sort_by) or 0, c.id),
            reverse=query.sort_order == "desc",
        )
        return items[query.offset:query.offset + query.limit]

    async def credits_count(self, owner_id=None, project_id=None, status=None, vintage=None) -> int:
        return len(self._matching(owner_id, project_id, status, vintage))

    async def transaction_append(self, txn: CreditTransaction) -> CreditTransaction:
        self.transactions.append(txn)
        return txn

    async def transactions_for_credit(self, credit_id: str) -> List[CreditTransaction]:
        return [t for t in self.transactions if t.data.credit_id == credit_id]

    def failed(self) -> List[CreditTransaction]:
        return [t for t in self.transactions if t.data.status == "failed"]

    def completed(self) -> List[CreditTransaction]:
        return [t for t in self.transactions if t.data.status == "completed"]


# ----------------------------------------------------------------------
# Verification
# ----------------------------------------------------------------------

class FakeVerificationStore:
    def __init__(self):
        self.requests: Dict[str, VerificationRequest] = {}
        self.assignments: Dict[str, ValidatorAssignment] = {}
        self.votes: Dict[str, ValidatorVote] = {}
        self.mutate_conflicts = 0
        self.fail_mutate_for = set()

    async def request_create(self, data) -> VerificationRequest:
        request = VerificationRequest(id=str(uuid.uuid4()), data=data, cas=1)
        self.requests[request.id] = request
        return request

    def put(self, request: VerificationRequest) -> VerificationRequest:
        self.requests[request.id] = request.model_copy(update={"cas": (request.cas or 0) + 1})
        return self.requests[request.id]

    async def request_get(self, verification_id: str) -> Optional[VerificationRequest]:
        return self.requests.get(verification_id)

    async def request_mutate(self, verification_id: str, mutator) -> Optional[VerificationRequest]:
        if verification_id in self.fail_mutate_for:
            raise RuntimeError("store unavailable")
        while True:
            current = self.requests.get(verification_id)
            if not current:
                return None
            data = await mutator(current)
            if data is None:
                return current
            await asyncio.sleep(0)
            if self.requests[verification_id].cas != current.cas:
                self.mutate_conflicts += 1
                continue
            return self.put(current.with_data(data))

    async def requests_expired(self, now: datetime) -> List[VerificationRequest]:
        return [
            r for r in self.requests.values()
            if r.data.status == "in_review" and r.data.voting_deadline and r.data.voting_deadline < now
        ]

    async def assign_validators(self, verification_id, assignments, update) -> VerificationRequest:
        current = self.requests[verification_id]
        data = update(current)
        keys = [assignment_key(verification_id, a.validator_id) for a in assignments]
        if any(k in self.assignments for k in keys):
            raise ValueError("assignment already exists")
        for key, a in zip(keys, assignments):
            self.assignments[key] = ValidatorAssignment(id=key, data=a)
        return self.put(current.with_data(data))

    async def assignments_for(self, verification_id: str) -> List[ValidatorAssignment]:
        return [a for a in self.assignments.values() if a.data.verification_id == verification_id]

    async def assignment_get(self, verification_id: str, validator_id: str) -> Optional[ValidatorAssignment]:
        return self.assignments.get(assignment_key(verification_id, validator_id))

    async def vote_cast(self, data) -> Optional[ValidatorVote]:
        key = vote_key(data.verification_id, data.validator_id)
        if key in self.votes and self.votes[key].data.auto_abstained:
            return None
        self.votes[key] = ValidatorVote(id=key, data=data)
        return self.votes[key]

    async def vote_insert_if_absent(self, data) -> Optional[ValidatorVote]:
        key = vote_key(data.verification_id, data.validator_id)
        if key in self.votes:
            return None
        self.votes[key] = ValidatorVote(id=key, data=data)
        return self.votes[key]

    async def votes_for(self, verification_id: str) -> List[ValidatorVote]:
        return [v for v in self.votes.values() if v.data.verification_id == verification_id]


class FakeEventSink:
    def __init__(self):
        self.events = []

    async def record(self, event) -> None:
        self.events.append(event)

    def of_type(self, event_type: str):
        return [e for e in self.events if e.event_type == event_type]


# ----------------------------------------------------------------------
# Fixtures
# ----------------------------------------------------------------------

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def users():
    return FakeUsers()


@pytest.fixture
def projects():
    return FakeProjects()


@pytest.fixture
def ledger_store():
    return FakeLedgerStore()


@pytest.fixture
def ledger(ledger_store, projects, users, clock):
    return CreditLedger(ledger_store, projects, users, TransactionJournal(ledger_store), clock=clock)


@pytest.fixture
def verification_store():
    return FakeVerificationStore()


@pytest.fixture
def events():
    return FakeEventSink()


@pytest.fixture
def audit(events):
    return AuditTrail(events)


@pytest.fixture
def consensus_conf():
    return ConsensusConf()


@pytest.fixture
def assignment(verification_store, users, audit, consensus_conf, clock):
    return ValidatorAssignmentEngine(
        verification_store, users, audit, consensus_conf, rng=random.Random(7), clock=clock
    )


@pytest.fixture
def consensus(verification_store, audit, clock):
    return ConsensusEngine(verification_store, audit, clock=clock)


@pytest.fixture
def deadlines(verification_store, consensus, audit, consensus_conf, clock):
    return DeadlineScheduler(verification_store, consensus, audit, consensus_conf, clock=clock)


@pytest.fixture
def committee(users):
    """A developer plus five verified validators."""
    users.add("dev-1", role="developer")
    return [users.add(f"val-{i}", role="verifier" if i < 4 else "administrator") for i in range(1, 6)]
