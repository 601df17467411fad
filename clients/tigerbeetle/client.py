import uuid
from typing import Iterable, List

from tigerbeetle import (
    ClientSync,
    Account,
    Transfer,
    AccountFlags,
    CreateAccountResult,
    CreateTransferResult,
)

# Ledger constants
CREDIT_LEDGER = 2  # carbon credits, amounts in kg CO2e
ACCOUNT_CODE_HOLDER = 10
ACCOUNT_CODE_ISSUANCE = 11
ACCOUNT_CODE_RETIREMENT = 12
TRANSFER_CODE_ISSUANCE = 10     # issuance -> holder
TRANSFER_CODE_TRANSFER = 11     # holder -> holder
TRANSFER_CODE_RETIREMENT = 12   # holder -> retirement
ISSUANCE_ACCOUNT_ID = 10
RETIREMENT_ACCOUNT_ID = 11

_ACCOUNT_NAMESPACE = uuid.UUID("6f1c2a8e-3b7d-4c55-9a0e-5d2f7b1e9c43")


def connect(cluster_id: int, address: str) -> ClientSync:
    return ClientSync(cluster_id=cluster_id, replica_addresses=address)


def holder_account_id(user_id: str) -> int:
    """Deterministic 128-bit account id for a registry user."""
    return uuid.uuid5(_ACCOUNT_NAMESPACE, user_id).int


def transfer_id(journal_id: str) -> int:
    """Deterministic 128-bit transfer id, so re-posting a record is a no-op."""
    return uuid.UUID(journal_id).int


def tonnes_to_amount(quantity: float) -> int:
    return int(round(quantity * 1000))


def ensure_accounts(client: ClientSync, holder_ids: Iterable[int]) -> None:
    """Create the system accounts and the given holder accounts (idempotent)."""
    accounts: List[Account] = [
        Account(id=ISSUANCE_ACCOUNT_ID, ledger=CREDIT_LEDGER, code=ACCOUNT_CODE_ISSUANCE, flags=AccountFlags.NONE),
        Account(id=RETIREMENT_ACCOUNT_ID, ledger=CREDIT_LEDGER, code=ACCOUNT_CODE_RETIREMENT, flags=AccountFlags.NONE),
    ]
    for account_id in holder_ids:
        accounts.append(
            Account(id=account_id, ledger=CREDIT_LEDGER, code=ACCOUNT_CODE_HOLDER, flags=AccountFlags.NONE)
        )
    results = client.create_accounts(accounts)
    for r in results:
        if r.result not in (CreateAccountResult.OK, CreateAccountResult.EXISTS):
            raise RuntimeError(f"Failed to create account: {r.result}")


def create_transfer(client: ClientSync, id: int, debit_id: int, credit_id: int, amount: int, code: int) -> int:
    """Post a single transfer. Returns the transfer ID."""
    results = client.create_transfers([
        Transfer(
            id=id,
            debit_account_id=debit_id,
            credit_account_id=credit_id,
            amount=amount,
            ledger=CREDIT_LEDGER,
            code=code,
        ),
    ])
    for r in results:
        if r.result not in (CreateTransferResult.OK, CreateTransferResult.EXISTS):
            raise RuntimeError(f"Failed to create transfer: {r.result}")
    return id

