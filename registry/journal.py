import math
import uuid
from datetime import datetime
from typing import List, Optional

from models.entities.couchbase.credit_transactions import (
    CreditTransaction,
    CreditTransactionData,
    TransactionType,
)
from registry.utils import log

from .errors import RegistryError
from .store import LedgerSession, LedgerStore

logger = log.get_logger(__name__)


class TransactionJournal:
    """Append-only record of every ledger-affecting event.

    Completed records are appended through the open ledger session so they
    commit or roll back with the mutation they describe. Failed attempts are
    appended on their own after the rollback.
    """

    def __init__(self, store: LedgerStore):
        self.store = store

    @staticmethod
    def _build(
        transaction_type: TransactionType,
        credit_id: Optional[str],
        quantity: float,
        now: datetime,
        sender_id: Optional[str] = None,
        recipient_id: Optional[str] = None,
        status: str = "completed",
        metadata: Optional[dict] = None,
    ) -> CreditTransaction:
        return CreditTransaction(
            id=str(uuid.uuid4()),
            data=CreditTransactionData(
                credit_id=credit_id,
                transaction_type=transaction_type,
                sender_id=sender_id,
                recipient_id=recipient_id,
                quantity=quantity,
                status=status,
                metadata=metadata or {},
                created_at=now,
                completed_at=now if status == "completed" else None,
            ),
        )

    async def record_issuance(
        self,
        session: LedgerSession,
        credit_id: str,
        recipient_id: str,
        quantity: float,
        now: datetime,
        metadata: dict,
    ) -> CreditTransaction:
        txn = self._build("issuance", credit_id, quantity, now, recipient_id=recipient_id, metadata=metadata)
        return await session.append_transaction(txn)

    async def record_transfer(
        self,
        session: LedgerSession,
        credit_id: str,
        sender_id: str,
        recipient_id: str,
        quantity: float,
        now: datetime,
        metadata: dict,
    ) -> CreditTransaction:
        txn = self._build(
            "transfer", credit_id, quantity, now,
            sender_id=sender_id, recipient_id=recipient_id, metadata=metadata,
        )
        return await session.append_transaction(txn)

    async def record_retirement(
        self,
        session: LedgerSession,
        credit_id: str,
        owner_id: str,
        quantity: float,
        now: datetime,
        metadata: dict,
    ) -> CreditTransaction:
        txn = self._build("retirement", credit_id, quantity, now, sender_id=owner_id, metadata=metadata)
        return await session.append_transaction(txn)

    async def record_failure(
        self,
        transaction_type: TransactionType,
        credit_id: Optional[str],
        quantity: float,
        now: datetime,
        error: Exception,
        sender_id: Optional[str] = None,
        recipient_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Optional[CreditTransaction]:
        """Audit a failed attempt. Never raises, so the original error wins."""
        details = dict(metadata or {})
        if isinstance(error, RegistryError):
            details["error_kind"] = error.kind.value
            details["error"] = error.message
        else:
            details["error_kind"] = "internal"
            details["error"] = type(error).__name__
        if not math.isfinite(quantity):
            details["requested_quantity"] = repr(quantity)
            quantity = 0.0
        txn = self._build(
            transaction_type, credit_id, quantity, now,
            sender_id=sender_id, recipient_id=recipient_id,
            status="failed", metadata=details,
        )
        try:
            return await self.store.transaction_append(txn)
        except Exception as e:
            logger.error(f"Journal: could not record failed {transaction_type} for credit {credit_id}: {e}", exc_info=True)
            return None

    async def history(self, credit_id: str) -> List[CreditTransaction]:
        txns = await self.store.transactions_for_credit(credit_id)
        return sorted(txns, key=lambda t: t.data.created_at)
