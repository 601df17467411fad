import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, List, Optional

from couchbase.exceptions import CASMismatchException

from clients.couchbase import Database
from models.entities.couchbase.validator_assignments import (
    ValidatorAssignment,
    ValidatorAssignmentData,
    assignment_key,
)
from models.entities.couchbase.verification_requests import VerificationRequest, VerificationRequestData


async def verification_create(db: Database, data: VerificationRequestData) -> VerificationRequest:
    return await VerificationRequest.create(db, data, user_id=data.developer_id)


async def verification_get(db: Database, verification_id: str) -> Optional[VerificationRequest]:
    return await VerificationRequest.get(db, verification_id)


async def verification_list_expired(db: Database, now: datetime) -> List[VerificationRequest]:
    return await VerificationRequest.find(
        db,
        where="status = 'in_review' AND voting_deadline IS VALUED AND STR_TO_MILLIS(voting_deadline) < $now",
        order_by="voting_deadline ASC",
        now=int(now.timestamp() * 1000),
    )


async def verification_cas_retry(
    db: Database,
    verification_id: str,
    mutator: Callable[[VerificationRequest], Awaitable[Optional[VerificationRequestData]]],
    max_retries: int = 5,
) -> Optional[VerificationRequest]:
    """Read-modify-write a verification request with CAS-guarded retry.

    *mutator* receives the current request and returns its new data, or
    ``None`` to leave it unchanged. On ``CASMismatchException`` the helper
    re-reads and retries with exponential backoff (10 ms, 20 ms, 40 ms, ...).
    Returns ``None`` when the request does not exist.
    """
    backoff_ms = 10
    for attempt in range(max_retries + 1):
        request = await VerificationRequest.get(db, verification_id)
        if not request:
            return None

        data = await mutator(request)
        if data is None:
            return request

        try:
            return await VerificationRequest.update(db, request.with_data(data))
        except CASMismatchException:
            if attempt == max_retries:
                raise
            await asyncio.sleep(backoff_ms / 1000)
            backoff_ms *= 2


async def verification_assign_validators(
    db: Database,
    verification_id: str,
    assignments: List[ValidatorAssignmentData],
    update: Callable[[VerificationRequest], VerificationRequestData],
    timeout: Optional[timedelta] = None,
) -> VerificationRequest:
    """Insert every assignment and update the request in one transaction."""
    result: List[VerificationRequest] = []

    async def logic(ctx: Any) -> None:
        result.clear()
        found = await VerificationRequest.txn_get(ctx, db, verification_id)
        if not found:
            raise ValueError(f"Verification request {verification_id} not found")
        request, got = found
        for data in assignments:
            item = ValidatorAssignment(id=assignment_key(verification_id, data.validator_id), data=data)
            await ValidatorAssignment.txn_insert(ctx, db, item)
        result.append(await VerificationRequest.txn_replace(ctx, got, request.with_data(update(request))))

    await db.run_transaction(logic, timeout=timeout)
    return result[0]
