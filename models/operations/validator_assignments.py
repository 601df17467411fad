from typing import List, Optional

from clients.couchbase import Database
from models.entities.couchbase.validator_assignments import ValidatorAssignment, assignment_key


async def assignment_get(db: Database, verification_id: str, validator_id: str) -> Optional[ValidatorAssignment]:
    return await ValidatorAssignment.get(db, assignment_key(verification_id, validator_id))


async def assignment_list_for_verification(db: Database, verification_id: str) -> List[ValidatorAssignment]:
    return await ValidatorAssignment.find(
        db, where="verification_id = $verification_id", order_by="assigned_at ASC", verification_id=verification_id
    )
