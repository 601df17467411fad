"""Named state transitions for credit entries.

Entries are immutable; each ledger operation builds its new values here so
every change to quantity, owner or status goes through one of these functions.

Quantities are stored as tonnes but compared and subtracted as whole
kilograms, so a chain of fractional transfers can empty an entry exactly.
"""

import math
from datetime import datetime
from typing import Optional

from models.entities.couchbase.credits import CreditEntry, CreditEntryData

from .errors import InvalidQuantity, InvalidState

KG_PER_TONNE = 1000


def to_kg(quantity: float, action: str) -> int:
    """Positive whole kilograms for a requested tonne quantity."""
    if not isinstance(quantity, (int, float)) or not math.isfinite(quantity) or quantity <= 0:
        raise InvalidQuantity(f"{action.capitalize()} quantity must be a positive number")
    amount = int(round(quantity * KG_PER_TONNE))
    if amount <= 0:
        raise InvalidQuantity(f"{action.capitalize()} quantity {quantity} is below the 0.001t resolution")
    return amount


def from_kg(amount: int) -> float:
    return amount / KG_PER_TONNE


def held_kg(entry: CreditEntry) -> int:
    return int(round(entry.data.quantity * KG_PER_TONNE))


def normalized(quantity: float, action: str) -> float:
    """*quantity* rounded to the ledger resolution, or InvalidQuantity."""
    return from_kg(to_kg(quantity, action))


def _require_active(entry: CreditEntry, action: str) -> None:
    if entry.data.status != "active":
        raise InvalidState(f"Credit must be active to {action} (status: {entry.data.status})")


def _require_quantity(entry: CreditEntry, quantity: float, action: str) -> int:
    amount = to_kg(quantity, action)
    if amount > held_kg(entry):
        raise InvalidQuantity(
            f"{action.capitalize()} quantity {quantity} exceeds the {entry.data.quantity} held"
        )
    return amount


def issued(
    entry_id: str,
    serial_number: str,
    project_id: str,
    owner_id: str,
    quantity: float,
    vintage: int,
    now: datetime,
    metadata: Optional[dict] = None,
) -> CreditEntry:
    amount = to_kg(quantity, "issued")
    return CreditEntry(
        id=entry_id,
        data=CreditEntryData(
            serial_number=serial_number,
            project_id=project_id,
            owner_id=owner_id,
            quantity=from_kg(amount),
            vintage=vintage,
            status="active",
            issued_at=now,
            last_action_at=now,
            metadata=metadata or {},
        ),
    )


def debited(entry: CreditEntry, quantity: float, now: datetime) -> CreditEntry:
    """Sender side of a transfer; the entry becomes ``transferred`` at zero."""
    _require_active(entry, "transfer")
    remaining = held_kg(entry) - _require_quantity(entry, quantity, "transfer")
    return entry.with_data(entry.data.model_copy(update={
        "quantity": from_kg(remaining),
        "status": "transferred" if remaining == 0 else "active",
        "last_action_at": now,
    }))


def split_off(
    source: CreditEntry,
    entry_id: str,
    serial_number: str,
    owner_id: str,
    quantity: float,
    now: datetime,
    reason: str,
) -> CreditEntry:
    """A new active entry carved out of *source* (same project and vintage)."""
    return issued(
        entry_id=entry_id,
        serial_number=serial_number,
        project_id=source.data.project_id,
        owner_id=owner_id,
        quantity=quantity,
        vintage=source.data.vintage,
        now=now,
        metadata={
            "source_credit_id": source.id,
            "source_serial_number": source.data.serial_number,
            "reason": reason,
        },
    )


def retired(entry: CreditEntry, quantity: float, now: datetime) -> CreditEntry:
    """Terminal. The entry keeps its quantity; the retired amount is journaled."""
    _require_active(entry, "retire")
    _require_quantity(entry, quantity, "retirement")
    return entry.with_data(entry.data.model_copy(update={
        "status": "retired",
        "last_action_at": now,
    }))
