"""Mirrors completed journal records into TigerBeetle as double-entry transfers."""

import asyncio
from functools import partial

from clients import tigerbeetle as tb
from models.entities.couchbase.credit_transactions import CreditTransaction
from registry.utils import log

logger = log.get_logger(__name__)


class TigerBeetleSettlement:
    def __init__(self, client):
        self.client = client

    async def settle(self, txn: CreditTransaction) -> None:
        if txn.data.status != "completed":
            return
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, partial(self._post, txn))
        logger.info(f"Settlement: mirrored {txn.data.transaction_type} {txn.id} ({txn.data.quantity}t)")

    def _post(self, txn: CreditTransaction) -> int:
        data = txn.data
        amount = tb.tonnes_to_amount(data.quantity)
        if data.transaction_type == "issuance":
            debit_id, credit_id, code = tb.ISSUANCE_ACCOUNT_ID, tb.holder_account_id(data.recipient_id), tb.TRANSFER_CODE_ISSUANCE
        elif data.transaction_type == "transfer":
            debit_id, credit_id, code = tb.holder_account_id(data.sender_id), tb.holder_account_id(data.recipient_id), tb.TRANSFER_CODE_TRANSFER
        else:
            debit_id, credit_id, code = tb.holder_account_id(data.sender_id), tb.RETIREMENT_ACCOUNT_ID, tb.TRANSFER_CODE_RETIREMENT

        holders = {a for a in (debit_id, credit_id) if a not in (tb.ISSUANCE_ACCOUNT_ID, tb.RETIREMENT_ACCOUNT_ID)}
        tb.ensure_accounts(self.client, sorted(holders))
        return tb.create_transfer(self.client, tb.transfer_id(txn.id), debit_id, credit_id, amount, code)
