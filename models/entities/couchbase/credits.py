from typing import Literal, Optional
from datetime import datetime
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


CreditStatus = Literal["active", "transferred", "retired"]


class CreditEntryData(BaseCouchbaseEntityData):
    serial_number: str  # KRB-YYYY-PPP-NNNNNN, immutable once assigned
    project_id: str
    owner_id: str
    quantity: float  # tonnes CO2e
    vintage: int
    status: CreditStatus = "active"
    issued_at: datetime
    last_action_at: datetime
    metadata: dict = {}


class CreditEntry(BaseModelCouchbase[CreditEntryData]):
    _collection_name = "credits"


class CreditIssuanceData(BaseCouchbaseEntityData):
    """Marker keyed by project id; its existence means credits were issued."""
    project_id: str
    credit_id: str
    verification_id: Optional[str] = None


class CreditIssuance(BaseModelCouchbase[CreditIssuanceData]):
    _collection_name = "credit_issuances"


class CreditSequenceData(BaseCouchbaseEntityData):
    """Per-project-per-vintage counter keyed ``{project_id}::{vintage}``."""
    project_id: str
    vintage: int
    last_sequence: int = 0


class CreditSequence(BaseModelCouchbase[CreditSequenceData]):
    _collection_name = "credit_sequences"
