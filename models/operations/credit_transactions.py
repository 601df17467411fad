from typing import Any, List

from clients.couchbase import Database
from models.entities.couchbase.credit_transactions import CreditTransaction


async def credit_transaction_append(db: Database, txn: CreditTransaction) -> CreditTransaction:
    return await CreditTransaction.create(db, txn.data, key=txn.id)


async def credit_transaction_txn_append(ctx: Any, db: Database, txn: CreditTransaction) -> CreditTransaction:
    return await CreditTransaction.txn_insert(ctx, db, txn)


async def credit_transaction_list_for_credit(db: Database, credit_id: str) -> List[CreditTransaction]:
    return await CreditTransaction.find(
        db, where="credit_id = $credit_id", order_by="created_at ASC", credit_id=credit_id
    )
