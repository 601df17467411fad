import uuid
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from clients import tigerbeetle as tb
from models.entities.couchbase.credit_transactions import CreditTransaction, CreditTransactionData
from registry.settlement import TigerBeetleSettlement

NOW = datetime(2025, 3, 1, tzinfo=timezone.utc)


def _txn(transaction_type, quantity=12.5, sender_id=None, recipient_id=None, status="completed"):
    return CreditTransaction(id=str(uuid.uuid4()), data=CreditTransactionData(
        credit_id="credit-1",
        transaction_type=transaction_type,
        sender_id=sender_id,
        recipient_id=recipient_id,
        quantity=quantity,
        status=status,
        created_at=NOW,
    ))


def _make_client(transfer_results=None):
    client = MagicMock()
    client.create_accounts.return_value = []
    client.create_transfers.return_value = transfer_results or []
    return client


def _posted(client):
    (transfers,), _ = client.create_transfers.call_args
    assert len(transfers) == 1
    return transfers[0]


@pytest.mark.asyncio
class TestTigerBeetleSettlement:
    async def test_issuance_credits_the_recipient(self):
        client = _make_client()
        txn = _txn("issuance", recipient_id="dev-1")

        await TigerBeetleSettlement(client).settle(txn)

        transfer = _posted(client)
        assert transfer.id == uuid.UUID(txn.id).int
        assert transfer.debit_account_id == tb.ISSUANCE_ACCOUNT_ID
        assert transfer.credit_account_id == tb.holder_account_id("dev-1")
        assert transfer.amount == 12500
        assert transfer.ledger == tb.CREDIT_LEDGER
        assert transfer.code == tb.TRANSFER_CODE_ISSUANCE

    async def test_transfer_moves_between_holders(self):
        client = _make_client()

        await TigerBeetleSettlement(client).settle(_txn("transfer", 3, sender_id="dev-1", recipient_id="buyer-1"))

        transfer = _posted(client)
        assert transfer.debit_account_id == tb.holder_account_id("dev-1")
        assert transfer.credit_account_id == tb.holder_account_id("buyer-1")
        (accounts,), _ = client.create_accounts.call_args
        assert {a.id for a in accounts} == {
            tb.ISSUANCE_ACCOUNT_ID,
            tb.RETIREMENT_ACCOUNT_ID,
            tb.holder_account_id("dev-1"),
            tb.holder_account_id("buyer-1"),
        }

    async def test_retirement_debits_the_owner(self):
        client = _make_client()

        await TigerBeetleSettlement(client).settle(_txn("retirement", 1, sender_id="buyer-1"))

        transfer = _posted(client)
        assert transfer.debit_account_id == tb.holder_account_id("buyer-1")
        assert transfer.credit_account_id == tb.RETIREMENT_ACCOUNT_ID
        assert transfer.code == tb.TRANSFER_CODE_RETIREMENT

    async def test_failed_records_are_not_mirrored(self):
        client = _make_client()

        await TigerBeetleSettlement(client).settle(_txn("transfer", status="failed", sender_id="a", recipient_id="b"))

        client.create_transfers.assert_not_called()

    async def test_rejected_transfer_raises(self):
        client = _make_client(transfer_results=[MagicMock(result="exceeds_credits")])

        with pytest.raises(RuntimeError):
            await TigerBeetleSettlement(client).settle(_txn("issuance", recipient_id="dev-1"))


class TestAccountIds:
    def test_account_ids_are_stable(self):
        assert tb.holder_account_id("dev-1") == tb.holder_account_id("dev-1")
        assert tb.holder_account_id("dev-1") != tb.holder_account_id("dev-2")
        assert tb.tonnes_to_amount(2.25) == 2250

    def test_installed_client_exposes_the_result_codes_we_check(self):
        from tigerbeetle import CreateAccountResult, CreateTransferResult

        assert {"OK", "EXISTS"} <= set(CreateTransferResult.__members__)
        assert {"OK", "EXISTS"} <= set(CreateAccountResult.__members__)
