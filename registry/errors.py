"""Closed set of business-rule failures raised by the registry core.

Every error carries an ``ErrorKind`` so transports can map failures without
matching on message text. Messages are safe to show to the caller.
"""

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    UNAUTHORIZED = "unauthorized"
    INVALID_QUANTITY = "invalid_quantity"
    INSUFFICIENT_VALIDATORS = "insufficient_validators"
    ALREADY_ISSUED = "already_issued"
    DEADLINE_EXPIRED = "deadline_expired"
    MISSING_REASON = "missing_reason"
    NO_DEADLINE = "no_deadline"


class RegistryError(Exception):
    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class NotFound(RegistryError):
    kind = ErrorKind.NOT_FOUND


class InvalidState(RegistryError):
    kind = ErrorKind.INVALID_STATE


class AlreadyIssued(InvalidState):
    kind = ErrorKind.ALREADY_ISSUED


class NoDeadline(InvalidState):
    kind = ErrorKind.NO_DEADLINE


class Unauthorized(RegistryError):
    kind = ErrorKind.UNAUTHORIZED


class InvalidQuantity(RegistryError):
    kind = ErrorKind.INVALID_QUANTITY


class InsufficientValidators(RegistryError):
    kind = ErrorKind.INSUFFICIENT_VALIDATORS


class DeadlineExpired(RegistryError):
    kind = ErrorKind.DEADLINE_EXPIRED


class MissingReason(RegistryError):
    kind = ErrorKind.MISSING_REASON
