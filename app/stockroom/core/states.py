"""Closed status vocabularies and the stock transfer transition table."""

from __future__ import annotations

from enum import Enum

from app.stockroom.core.error_catalog import AppError, ErrorCatalog


class LocationKind(str, Enum):
    WAREHOUSE = "WAREHOUSE"
    OUTLET = "OUTLET"


class ProductStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class TransferStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    CONFIRMED = "CONFIRMED"
    IN_TRANSIT = "IN_TRANSIT"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class TransferPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TransferAction(str, Enum):
    APPROVE = "approve"
    CONFIRM = "confirm"
    SHIP = "ship"
    COMPLETE = "complete"
    REJECT = "reject"
    CANCEL = "cancel"


class HoldStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RELEASED = "RELEASED"
    COMMITTED = "COMMITTED"


class MovementAction(str, Enum):
    RESERVE = "RESERVE"
    RELEASE = "RELEASE"
    DEBIT = "DEBIT"
    CREDIT = "CREDIT"


class IdempotencyState(str, Enum):
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_TRANSFER_STATUSES = frozenset({TransferStatus.COMPLETED, TransferStatus.REJECTED})

# Statuses whose holds are still soft reservations and may be cancelled or reaped.
CANCELLABLE_TRANSFER_STATUSES = frozenset({TransferStatus.PENDING, TransferStatus.APPROVED})

TRANSFER_TRANSITIONS: dict[tuple[TransferStatus, TransferAction], TransferStatus] = {
    (TransferStatus.PENDING, TransferAction.APPROVE): TransferStatus.APPROVED,
    (TransferStatus.APPROVED, TransferAction.CONFIRM): TransferStatus.CONFIRMED,
    (TransferStatus.CONFIRMED, TransferAction.SHIP): TransferStatus.IN_TRANSIT,
    (TransferStatus.IN_TRANSIT, TransferAction.COMPLETE): TransferStatus.COMPLETED,
    (TransferStatus.PENDING, TransferAction.REJECT): TransferStatus.REJECTED,
    (TransferStatus.PENDING, TransferAction.CANCEL): TransferStatus.REJECTED,
    (TransferStatus.APPROVED, TransferAction.CANCEL): TransferStatus.REJECTED,
}

PRODUCT_TRANSITIONS: dict[tuple[ProductStatus, str], ProductStatus] = {
    (ProductStatus.PENDING, "approve"): ProductStatus.APPROVED,
    (ProductStatus.PENDING, "reject"): ProductStatus.REJECTED,
}


def next_transfer_status(current: str, action: TransferAction) -> TransferStatus:
    try:
        return TRANSFER_TRANSITIONS[(TransferStatus(current), action)]
    except KeyError:
        raise AppError(
            ErrorCatalog.INVALID_STATE_TRANSITION,
            details={
                "message": f"cannot {action.value} a transfer in status {current}",
                "status": current,
                "action": action.value,
            },
        ) from None


def next_product_status(current: str, action: str) -> ProductStatus:
    try:
        return PRODUCT_TRANSITIONS[(ProductStatus(current), action)]
    except KeyError:
        raise AppError(
            ErrorCatalog.INVALID_STATE_TRANSITION,
            details={
                "message": f"cannot {action} a product in status {current}",
                "status": current,
                "action": action,
            },
        ) from None
