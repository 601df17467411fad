from typing import Any, Dict, List, Optional

from clients.couchbase import Database
from models.entities.couchbase.credits import (
    CreditEntry,
    CreditIssuance,
    CreditIssuanceData,
    CreditSequence,
    CreditSequenceData,
)


async def credit_get(db: Database, credit_id: str) -> Optional[CreditEntry]:
    return await CreditEntry.get(db, credit_id)


async def credit_get_by_serial(db: Database, serial_number: str) -> Optional[CreditEntry]:
    items = await CreditEntry.find(db, where="serial_number = $serial_number", limit=1, serial_number=serial_number)
    return items[0] if items else None


def _credit_conditions(
    owner_id: Optional[str] = None,
    project_id: Optional[str] = None,
    status: Optional[str] = None,
    vintage: Optional[int] = None,
) -> tuple[str, Dict[str, Any]]:
    conditions = []
    params: Dict[str, Any] = {}
    if owner_id:
        conditions.append("owner_id = $owner_id")
        params["owner_id"] = owner_id
    if project_id:
        conditions.append("project_id = $project_id")
        params["project_id"] = project_id
    if status:
        conditions.append("status = $status")
        params["status"] = status
    if vintage is not None:
        conditions.append("vintage = $vintage")
        params["vintage"] = vintage
    return " AND ".join(conditions) or "1=1", params


async def credit_search(
    db: Database,
    owner_id: Optional[str] = None,
    project_id: Optional[str] = None,
    status: Optional[str] = None,
    vintage: Optional[int] = None,
    order_by: str = "created_at DESC",
    limit: int = 20,
    offset: int = 0,
) -> List[CreditEntry]:
    where, params = _credit_conditions(owner_id, project_id, status, vintage)
    # order_by comes from a validated CreditQuery, never from raw input
    return await CreditEntry.find(db, where=where, order_by=order_by, limit=limit, offset=offset, **params)


async def credit_count(
    db: Database,
    owner_id: Optional[str] = None,
    project_id: Optional[str] = None,
    status: Optional[str] = None,
    vintage: Optional[int] = None,
) -> int:
    where, params = _credit_conditions(owner_id, project_id, status, vintage)
    return await CreditEntry.count(db, where=where, **params)


#### Inside a transaction ####

async def credit_txn_get(ctx: Any, db: Database, credit_id: str) -> Optional[tuple[CreditEntry, Any]]:
    return await CreditEntry.txn_get(ctx, db, credit_id)


async def credit_txn_insert(ctx: Any, db: Database, entry: CreditEntry) -> CreditEntry:
    return await CreditEntry.txn_insert(ctx, db, entry)


async def credit_txn_replace(ctx: Any, got: Any, entry: CreditEntry) -> CreditEntry:
    return await CreditEntry.txn_replace(ctx, got, entry)


async def credit_issuance_txn_claim(
    ctx: Any, db: Database, project_id: str, credit_id: str, verification_id: Optional[str]
) -> bool:
    """Write the project's issuance marker. False when it already exists."""
    if await CreditIssuance.txn_get(ctx, db, project_id):
        return False
    marker = CreditIssuance(
        id=project_id,
        data=CreditIssuanceData(project_id=project_id, credit_id=credit_id, verification_id=verification_id),
    )
    await CreditIssuance.txn_insert(ctx, db, marker)
    return True


def credit_sequence_key(project_id: str, vintage: int) -> str:
    return f"{project_id}::{vintage}"


async def credit_sequence_txn_next(ctx: Any, db: Database, project_id: str, vintage: int) -> int:
    key = credit_sequence_key(project_id, vintage)
    found = await CreditSequence.txn_get(ctx, db, key)
    if not found:
        counter = CreditSequence(id=key, data=CreditSequenceData(project_id=project_id, vintage=vintage, last_sequence=1))
        await CreditSequence.txn_insert(ctx, db, counter)
        return 1
    counter, got = found
    next_sequence = counter.data.last_sequence + 1
    await CreditSequence.txn_replace(
        ctx, got, counter.with_data(counter.data.model_copy(update={"last_sequence": next_sequence}))
    )
    return next_sequence
