from typing import Literal, Optional
from datetime import datetime
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


TransactionType = Literal["issuance", "transfer", "retirement"]
TransactionStatus = Literal["completed", "failed"]


class CreditTransactionData(BaseCouchbaseEntityData):
    credit_id: Optional[str] = None  # only absent for issuance attempts that never produced an entry
    transaction_type: TransactionType
    sender_id: Optional[str] = None
    recipient_id: Optional[str] = None
    quantity: float
    status: TransactionStatus = "completed"
    metadata: dict = {}
    completed_at: Optional[datetime] = None


class CreditTransaction(BaseModelCouchbase[CreditTransactionData]):
    _collection_name = "credit_transactions"
