from .client import (
    connect,
    CREDIT_LEDGER,
    ACCOUNT_CODE_HOLDER,
    ACCOUNT_CODE_ISSUANCE,
    ACCOUNT_CODE_RETIREMENT,
    TRANSFER_CODE_ISSUANCE,
    TRANSFER_CODE_TRANSFER,
    TRANSFER_CODE_RETIREMENT,
    ISSUANCE_ACCOUNT_ID,
    RETIREMENT_ACCOUNT_ID,
    holder_account_id,
    transfer_id,
    tonnes_to_amount,
    ensure_accounts,
    create_transfer,
)

__all__ = [
    "connect",
    "CREDIT_LEDGER",
    "ACCOUNT_CODE_HOLDER",
    "ACCOUNT_CODE_ISSUANCE",
    "ACCOUNT_CODE_RETIREMENT",
    "TRANSFER_CODE_ISSUANCE",
    "TRANSFER_CODE_TRANSFER",
    "TRANSFER_CODE_RETIREMENT",
    "ISSUANCE_ACCOUNT_ID",
    "RETIREMENT_ACCOUNT_ID",
    "holder_account_id",
    "transfer_id",
    "tonnes_to_amount",
    "ensure_accounts",
    "create_transfer",
]
