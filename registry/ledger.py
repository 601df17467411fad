"""
Credit ledger: issuance, transfer and retirement of credit entries.

Transfer and retirement run as one serializable unit of work per call:
1. Lock the credit entry (exclusive, committed state)
2. Validate owner, status and quantity
3. Build the new entry values through ``registry.transitions``
4. Write the entries and the journal record in the same unit of work
5. Commit; on any failure roll back and journal the attempt as failed

Concurrent calls against one entry therefore apply in commit order and
always see each other's committed quantity.
"""

import math
from datetime import datetime
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict

from models.entities.couchbase.credit_transactions import CreditTransaction, TransactionType
from models.entities.couchbase.credits import CreditEntry
from registry.utils import log
from registry.utils.clock import new_id, utc_now

from . import transitions
from .errors import AlreadyIssued, InvalidState, MissingReason, NotFound, RegistryError, Unauthorized
from .filters import CreditQuery
from .journal import TransactionJournal
from .serials import credit_serial_number, parse_serial_number
from .store import LedgerSession, LedgerStore, ProjectLookup, SettlementService, UserLookup

logger = log.get_logger(__name__)


class LedgerReceipt(BaseModel):
    model_config = ConfigDict(frozen=True)

    credit: CreditEntry
    transaction: CreditTransaction
    minted: Optional[CreditEntry] = None  # recipient entry of a transfer


class CreditPage(BaseModel):
    items: List[CreditEntry]
    next_cursor: Optional[str] = None


class CreditLedger:
    def __init__(
        self,
        store: LedgerStore,
        projects: ProjectLookup,
        users: UserLookup,
        journal: TransactionJournal,
        settlement: Optional[SettlementService] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.projects = projects
        self.users = users
        self.journal = journal
        self.settlement = settlement
        self.clock = clock

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def issue(self, project_id: str, verification_id: str) -> LedgerReceipt:
        """Issue the project's credits to its developer. One issuance per project."""
        logger.info(f"Issuing credits for project {project_id} (verification {verification_id})")
        now = self.clock()
        quantity = 0.0
        developer_id = None
        try:
            project = await self.projects.project_get(project_id)
            if not project:
                raise NotFound("Project not found")
            if project.data.status != "verified":
                raise InvalidState(
                    f"Project must be verified before credits can be issued. Current status: {project.data.status}"
                )
            quantity = project.data.emissions_target or 0.0
            if not math.isfinite(quantity) or quantity <= 0:
                raise InvalidState(
                    f"Project has invalid emissions target: {project.data.emissions_target}. Must be greater than 0."
                )
            developer_id = project.data.developer_id
            if not await self.users.user_get(developer_id):
                raise NotFound("Project developer not found")

            vintage = now.year
            project_sequence = await self.projects.project_sequence(project_id)
            entry_id = new_id()

            async def work(session: LedgerSession) -> LedgerReceipt:
                if not await session.claim_issuance(project_id, entry_id, verification_id):
                    raise AlreadyIssued("Credits have already been issued for this project")
                credit_sequence = await session.next_credit_sequence(project_id, vintage)
                entry = transitions.issued(
                    entry_id=entry_id,
                    serial_number=credit_serial_number(vintage, project_sequence, credit_sequence),
                    project_id=project_id,
                    owner_id=developer_id,
                    quantity=quantity,
                    vintage=vintage,
                    now=now,
                    metadata={"verification_id": verification_id},
                )
                entry = await session.insert_credit(entry)
                txn = await self.journal.record_issuance(
                    session, entry.id, developer_id, entry.data.quantity, now,
                    metadata={
                        "project_id": project_id,
                        "verification_id": verification_id,
                        "serial_number": entry.data.serial_number,
                        "vintage": vintage,
                    },
                )
                return LedgerReceipt(credit=entry, transaction=txn)

            receipt = await self.store.run_in_transaction(work)
        except Exception as e:
            await self._fail(
                "issuance", None, quantity, now, e,
                recipient_id=developer_id,
                metadata={"project_id": project_id, "verification_id": verification_id},
            )
            raise

        logger.info(
            f"Issued {receipt.credit.data.quantity}t as {receipt.credit.data.serial_number} "
            f"to {receipt.credit.data.owner_id} (credit {receipt.credit.id}, transaction {receipt.transaction.id})"
        )
        await self._settle(receipt.transaction)
        return receipt

    async def transfer(self, credit_id: str, sender_id: str, recipient_id: str, quantity: float) -> LedgerReceipt:
        """Move *quantity* from the sender's entry into a new entry owned by the recipient."""
        logger.info(f"Transferring {quantity}t of credit {credit_id} from {sender_id} to {recipient_id}")
        now = self.clock()
        try:
            quantity = transitions.normalized(quantity, "transfer")
            recipient = await self.users.user_get(recipient_id)
            if not recipient:
                raise NotFound("Recipient user not found")
            if recipient_id == sender_id:
                raise InvalidState("Cannot transfer credits to their current owner")
            minted_id = new_id()

            async def work(session: LedgerSession) -> LedgerReceipt:
                credit = await self._lock_owned(session, credit_id, sender_id)
                sender_entry = transitions.debited(credit, quantity, now)
                minted = transitions.split_off(
                    credit, minted_id,
                    await self._next_serial(session, credit),
                    recipient_id, quantity, now, reason="transfer",
                )
                sender_entry = await session.replace_credit(sender_entry)
                minted = await session.insert_credit(minted)
                txn = await self.journal.record_transfer(
                    session, credit.id, sender_id, recipient_id, quantity, now,
                    metadata={
                        "source_serial_number": credit.data.serial_number,
                        "recipient_credit_id": minted.id,
                        "recipient_serial_number": minted.data.serial_number,
                        "recipient_wallet_address": recipient.data.wallet_address,
                    },
                )
                return LedgerReceipt(credit=sender_entry, transaction=txn, minted=minted)

            receipt = await self.store.run_in_transaction(work)
        except Exception as e:
            await self._fail("transfer", credit_id, quantity, now, e, sender_id=sender_id, recipient_id=recipient_id)
            raise

        logger.info(
            f"Transferred {quantity}t of {receipt.credit.data.serial_number} to {recipient_id} "
            f"as {receipt.minted.data.serial_number} (transaction {receipt.transaction.id})"
        )
        await self._settle(receipt.transaction)
        return receipt

    async def retire(self, credit_id: str, owner_id: str, quantity: float, reason: str) -> LedgerReceipt:
        """Retire *quantity* permanently.

        The locked entry flips to ``retired`` in place and keeps its quantity;
        the retired amount is recorded on the journal entry.
        """
        logger.info(f"Retiring {quantity}t of credit {credit_id} for {owner_id}")
        now = self.clock()
        try:
            if not reason or not reason.strip():
                raise MissingReason("Retirement reason is required")
            quantity = transitions.normalized(quantity, "retirement")

            async def work(session: LedgerSession) -> LedgerReceipt:
                credit = await self._lock_owned(session, credit_id, owner_id)
                retired_entry = await session.replace_credit(transitions.retired(credit, quantity, now))
                metadata = {
                    "retirement_reason": reason.strip(),
                    "retired_at": now.isoformat(),
                    "serial_number": credit.data.serial_number,
                }
                txn = await self.journal.record_retirement(session, credit.id, owner_id, quantity, now, metadata)
                return LedgerReceipt(credit=retired_entry, transaction=txn)

            receipt = await self.store.run_in_transaction(work)
        except Exception as e:
            await self._fail(
                "retirement", credit_id, quantity, now, e,
                sender_id=owner_id, metadata={"retirement_reason": reason},
            )
            raise

        logger.info(
            f"Retired {quantity}t of {receipt.credit.data.serial_number} for {owner_id} "
            f"(transaction {receipt.transaction.id}, reason: {reason})"
        )
        await self._settle(receipt.transaction)
        return receipt

    async def _lock_owned(self, session: LedgerSession, credit_id: str, owner_id: str) -> CreditEntry:
        credit = await session.lock_credit(credit_id)
        if not credit:
            raise NotFound("Credit not found")
        if credit.data.owner_id != owner_id:
            raise Unauthorized("You do not own this credit")
        return credit

    async def _next_serial(self, session: LedgerSession, source: CreditEntry) -> str:
        vintage, project_sequence, _ = parse_serial_number(source.data.serial_number)
        sequence = await session.next_credit_sequence(source.data.project_id, vintage)
        return credit_serial_number(vintage, project_sequence, sequence)

    async def _fail(
        self,
        transaction_type: TransactionType,
        credit_id: Optional[str],
        quantity: float,
        now: datetime,
        error: Exception,
        **kwargs,
    ) -> None:
        if isinstance(error, RegistryError):
            logger.warning(f"Ledger {transaction_type} rejected for credit {credit_id}: [{error.kind.value}] {error}")
        else:
            logger.error(f"Ledger {transaction_type} failed for credit {credit_id}: {error}", exc_info=True)
        await self.journal.record_failure(transaction_type, credit_id, quantity, now, error, **kwargs)

    async def _settle(self, txn: CreditTransaction) -> None:
        """Mirror a committed transaction to the settlement service (best-effort)."""
        if not self.settlement:
            return
        try:
            await self.settlement.settle(txn)
        except Exception as e:
            logger.error(f"Settlement: failed to mirror transaction {txn.id}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_credit(self, credit_id: str) -> Optional[CreditEntry]:
        return await self.store.credit_get(credit_id)

    async def get_credit_by_serial(self, serial_number: str) -> Optional[CreditEntry]:
        return await self.store.credit_get_by_serial(serial_number)

    async def credits_by_owner(self, owner_id: str, query: Optional[CreditQuery] = None) -> CreditPage:
        query = query or CreditQuery()
        items = await self.store.credits_find(query, owner_id=owner_id)
        return CreditPage(items=items, next_cursor=query.next_cursor(len(items)))

    async def credits_by_project(self, project_id: str, query: Optional[CreditQuery] = None) -> CreditPage:
        query = query or CreditQuery()
        items = await self.store.credits_find(query, project_id=project_id)
        return CreditPage(items=items, next_cursor=query.next_cursor(len(items)))

    async def count_credits(
        self,
        owner_id: Optional[str] = None,
        project_id: Optional[str] = None,
        status: Optional[str] = None,
        vintage: Optional[int] = None,
    ) -> int:
        return await self.store.credits_count(owner_id=owner_id, project_id=project_id, status=status, vintage=vintage)

    async def transaction_history(self, credit_id: str) -> List[CreditTransaction]:
        return await self.journal.history(credit_id)
