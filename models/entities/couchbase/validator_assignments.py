from datetime import datetime
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


SYSTEM_ACTOR = "system"


def assignment_key(verification_id: str, validator_id: str) -> str:
    return f"{verification_id}::{validator_id}"


class ValidatorAssignmentData(BaseCouchbaseEntityData):
    verification_id: str
    validator_id: str
    assigned_by: str = SYSTEM_ACTOR
    assigned_at: datetime


class ValidatorAssignment(BaseModelCouchbase[ValidatorAssignmentData]):
    _collection_name = "validator_assignments"
