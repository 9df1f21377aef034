"""
Purchase Order State Machine (``fbms_modules.procurement.state_machine``).

Responsibility
--------------
Pure functions over ``PURCHASE_ORDER_WORKFLOW``: which statuses a purchase
order may move to, whether a requested transition is valid, and what a
receiving batch would do to the order.  Nothing here performs I/O; the
TransactionCoordinator applies the returned plans.

Invariants enforced
-------------------
* Status moves only along the declared graph; ``received`` and
  ``cancelled`` are terminal.
* ``received_date`` is set iff the status is ``received``.
* Cumulative received quantity never exceeds the ordered quantity.  An
  over-receipt rejects the WHOLE batch; nothing is clamped.
* Receiving statuses are reachable only through ``plan_receipt``.

Failure modes
-------------
Validation problems are returned, never raised:

* ``InvalidTransition(attempted, current, errors)``
* ``OverReceipt`` / ``InvalidQuantity`` / ``ProductNotInOrder``
* ``NoOp`` -- empty receiving batch; not an error.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID

from fbms_kernel.logging_config import get_logger
from fbms_modules.procurement.models import (
    POStatus,
    PurchaseOrder,
    PurchaseOrderItem,
    ReceivedItem,
)
from fbms_modules.procurement.workflows import PURCHASE_ORDER_WORKFLOW, RECEIVING_STATES

logger = get_logger("modules.procurement.state_machine")


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class InvalidTransition:
    """A status change outside the graph or failing a business rule."""
    attempted: POStatus
    current: POStatus
    errors: tuple[str, ...] = ("invalid-transition",)

    code = "invalid-transition"

    @property
    def message(self) -> str:
        return (
            f"Invalid transition from {self.current.value} to "
            f"{self.attempted.value}: {', '.join(self.errors)}"
        )


@dataclass(frozen=True)
class OverReceipt:
    """Receiving would take an item past its ordered quantity."""
    product_id: UUID
    quantity_ordered: int
    quantity_received: int
    attempted: int

    code = "over-receipt"

    @property
    def message(self) -> str:
        return (
            f"Over-receipt for product {self.product_id}: ordered "
            f"{self.quantity_ordered}, already received {self.quantity_received}, "
            f"attempted {self.attempted}"
        )


@dataclass(frozen=True)
class InvalidQuantity:
    """A receiving line with a negative quantity."""
    product_id: UUID
    quantity: int

    code = "invalid-quantity"

    @property
    def message(self) -> str:
        return f"Invalid quantity {self.quantity} for product {self.product_id}"


@dataclass(frozen=True)
class ProductNotInOrder:
    """A receiving line for a product the order does not contain."""
    product_id: UUID

    code = "product-not-in-order"

    @property
    def message(self) -> str:
        return f"Product {self.product_id} is not on this purchase order"


@dataclass(frozen=True)
class NoOp:
    """Nothing to do; not an error."""
    reason: str = "empty-batch"


@dataclass(frozen=True)
class ReceiptPlan:
    """What applying a receiving batch does to a purchase order."""
    purchase_order: PurchaseOrder
    received_items: tuple[ReceivedItem, ...]
    from_status: POStatus
    to_status: POStatus

    @property
    def completes_order(self) -> bool:
        return self.to_status is POStatus.RECEIVED


@dataclass(frozen=True)
class TransitionPlan:
    """A validated, non-receiving status change."""
    purchase_order: PurchaseOrder
    from_status: POStatus
    to_status: POStatus


ReceiptRejection = InvalidTransition | OverReceipt | InvalidQuantity | ProductNotInOrder


# -----------------------------------------------------------------------------
# Transition lookup
# -----------------------------------------------------------------------------


def allowed_transitions(status: POStatus) -> frozenset[POStatus]:
    """Statuses reachable in one step from ``status``."""
    return frozenset(
        POStatus(target)
        for target in PURCHASE_ORDER_WORKFLOW.targets_from(POStatus(status).value)
    )


def is_terminal(status: POStatus) -> bool:
    return POStatus(status).value in PURCHASE_ORDER_WORKFLOW.terminal_states


def validate_transition(
    po: PurchaseOrder,
    target: POStatus,
    actor_id: UUID | None = None,
) -> InvalidTransition | None:
    """
    Check a requested status change.  Returns None when it is valid.

    Business rules: submitting for approval needs a supplier, at least one
    item and a positive total; approving needs an actor.
    """
    target = POStatus(target)
    errors: list[str] = []

    if target not in allowed_transitions(po.status):
        errors.append("invalid-transition")

    if target is POStatus.PENDING_APPROVAL:
        if not po.items:
            errors.append("no-items")
        if po.total <= 0:
            errors.append("invalid-total")
        if po.supplier_id is None:
            errors.append("no-supplier")

    if target is POStatus.APPROVED and actor_id is None:
        errors.append("no-approver")

    if errors:
        logger.info(
            "po_transition_rejected",
            extra={
                "po_id": str(po.id),
                "current": po.status.value,
                "attempted": target.value,
                "errors": errors,
            },
        )
        return InvalidTransition(attempted=target, current=po.status, errors=tuple(errors))
    return None


def plan_transition(
    po: PurchaseOrder,
    target: POStatus,
    actor_id: UUID | None = None,
) -> TransitionPlan | InvalidTransition:
    """Plan a submit / approve / send / cancel transition.

    Receiving statuses are refused here; they come from ``plan_receipt``.
    """
    target = POStatus(target)
    if target.value in RECEIVING_STATES:
        return InvalidTransition(
            attempted=target,
            current=po.status,
            errors=("receiving-requires-receipt",),
        )
    rejection = validate_transition(po, target, actor_id)
    if rejection is not None:
        return rejection
    return TransitionPlan(
        purchase_order=replace(po, status=target, received_date=None),
        from_status=po.status,
        to_status=target,
    )


# -----------------------------------------------------------------------------
# Receiving
# -----------------------------------------------------------------------------


def _aggregate(received_items: Iterable[ReceivedItem]) -> dict[UUID, int]:
    totals: dict[UUID, int] = {}
    for item in received_items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


def plan_receipt(
    po: PurchaseOrder,
    received_items: Iterable[ReceivedItem],
    now: datetime,
) -> ReceiptPlan | NoOp | ReceiptRejection:
    """
    Work out what a receiving batch does to ``po``.

    Lines for the same product are summed.  Zero-quantity lines are
    ignored; a batch with no positive quantity is a ``NoOp``.
    """
    received_items = tuple(received_items)

    for line in received_items:
        if line.quantity < 0:
            return InvalidQuantity(product_id=line.product_id, quantity=line.quantity)

    batch = _aggregate(received_items)
    for product_id, quantity in batch.items():
        item = po.item_for(product_id)
        if item is None:
            if quantity > 0:
                return ProductNotInOrder(product_id=product_id)
            continue
        if item.quantity_received + quantity > item.quantity_ordered:
            logger.info(
                "po_over_receipt_rejected",
                extra={
                    "po_id": str(po.id),
                    "product_id": str(product_id),
                    "quantity_ordered": item.quantity_ordered,
                    "quantity_received": item.quantity_received,
                    "attempted": quantity,
                },
            )
            return OverReceipt(
                product_id=product_id,
                quantity_ordered=item.quantity_ordered,
                quantity_received=item.quantity_received,
                attempted=quantity,
            )

    positive = {pid: qty for pid, qty in batch.items() if qty > 0}
    if not positive:
        return NoOp()

    new_items: list[PurchaseOrderItem] = [
        replace(item, quantity_received=item.quantity_received + positive.get(item.product_id, 0))
        for item in po.items
    ]
    fully_received = all(item.is_fully_received for item in new_items)
    target = POStatus.RECEIVED if fully_received else POStatus.PARTIALLY_RECEIVED

    if target not in allowed_transitions(po.status):
        return InvalidTransition(
            attempted=target,
            current=po.status,
            errors=("not-ready-for-receiving",),
        )

    updated = replace(
        po,
        items=tuple(new_items),
        status=target,
        received_date=now if fully_received else None,
    )
    return ReceiptPlan(
        purchase_order=updated,
        received_items=tuple(
            ReceivedItem(product_id=item.product_id, quantity=positive[item.product_id])
            for item in po.items
            if item.product_id in positive
        ),
        from_status=po.status,
        to_status=target,
    )
