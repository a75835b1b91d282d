"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Stock counts and order records must only change through the service that
owns the rule.  The inventory ledger owns quantity; the order state machine
owns status; nothing owns "edit the total of a placed order".

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError
         |                               --> InvalidTransitionError
         v
    [before_delete event] --> _check_*_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

If a check fails, the exception propagates out of flush() and the unit of
work is rolled back.  The database is never modified.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | Rule
------------------|-----------------------------------------------------------
InventoryRecord   | quantity never assigned through the ORM (ledger UPDATEs
                  | only); rows never deleted
Order             | only status, payment_status, notes and tracking metadata
                  | change; status follows the order workflow, payment_status
                  | the payment table; rows never deleted
OrderItem         | ALWAYS immutable (from creation)
AuditRecord       | ALWAYS immutable (from creation)

===============================================================================
DESIGN DECISIONS
===============================================================================

1. updated_at/updated_by_id may always change.  They are tracking metadata,
   not order or stock data.

2. Inline imports.  Models import from db, db imports from models; inline
   imports defer resolution until the function runs.

3. The ledger's Core UPDATE statements bypass these listeners by design of
   SQLAlchemy (no ORM flush).  That is the one sanctioned quantity path.

===============================================================================
USAGE
===============================================================================

    from pharmacy_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent; build_kernel() calls it

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect

from pharmacy_kernel.exceptions import ImmutabilityViolationError
from pharmacy_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_TRACKING_FIELDS = frozenset({"updated_at", "updated_by_id"})
_ORDER_MUTABLE_FIELDS = frozenset({"status", "payment_status", "notes"}) | _TRACKING_FIELDS


def _changed_columns(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.mapper.column_attrs
        if insp.attrs[attr.key].history.has_changes()
    ]


def _block(entity_type: str, target, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# InventoryRecord


def _check_inventory_record_update(mapper, connection, target):
    """Reject quantity writes that did not come from the ledger."""
    if "quantity" in _changed_columns(target):
        _block(
            "InventoryRecord",
            target,
            "UPDATE",
            "Stock quantity changes only through the inventory ledger",
            field="quantity",
        )


def _check_inventory_record_delete(mapper, connection, target):
    _block(
        "InventoryRecord",
        target,
        "DELETE",
        "Inventory records cannot be deleted",
    )


# Order


def _check_order_update(mapper, connection, target):
    """
    Allow only status, payment status and notes to change, and only along
    legal transitions.
    """
    from pharmacy_kernel.domain.order_workflow import (
        require_payment_transition,
        require_transition,
    )

    for key in _changed_columns(target):
        if key not in _ORDER_MUTABLE_FIELDS:
            _block(
                "Order",
                target,
                "UPDATE",
                f"Cannot modify field '{key}' on a placed order",
                field=key,
            )

    insp = inspect(target)

    status_hist = insp.attrs.status.history
    if status_hist.deleted and status_hist.added:
        require_transition(
            status_hist.deleted[0],
            status_hist.added[0],
            order_id=str(target.id),
        )

    payment_hist = insp.attrs.payment_status.history
    if payment_hist.deleted and payment_hist.added:
        require_payment_transition(
            payment_hist.deleted[0],
            payment_hist.added[0],
            order_id=str(target.id),
        )


def _check_order_delete(mapper, connection, target):
    _block("Order", target, "DELETE", "Orders cannot be deleted; cancel them")


# OrderItem


def _check_order_item_update(mapper, connection, target):
    changed = [k for k in _changed_columns(target) if k not in _TRACKING_FIELDS]
    if changed:
        _block(
            "OrderItem",
            target,
            "UPDATE",
            "Order items are immutable after creation",
            field=changed[0],
        )


def _check_order_item_delete(mapper, connection, target):
    _block("OrderItem", target, "DELETE", "Order items cannot be deleted")


# AuditRecord


def _check_audit_record_update(mapper, connection, target):
    _block(
        "AuditRecord",
        target,
        "UPDATE",
        "Audit records are immutable and cannot be modified",
    )


def _check_audit_record_delete(mapper, connection, target):
    _block("AuditRecord", target, "DELETE", "Audit records cannot be deleted")


def _listeners():
    from pharmacy_kernel.models.audit_record import AuditRecord
    from pharmacy_kernel.models.inventory import InventoryRecord
    from pharmacy_kernel.models.order import Order, OrderItem

    return (
        (InventoryRecord, "before_update", _check_inventory_record_update),
        (InventoryRecord, "before_delete", _check_inventory_record_delete),
        (Order, "before_update", _check_order_update),
        (Order, "before_delete", _check_order_delete),
        (OrderItem, "before_update", _check_order_item_update),
        (OrderItem, "before_delete", _check_order_item_delete),
        (AuditRecord, "before_update", _check_audit_record_update),
        (AuditRecord, "before_delete", _check_audit_record_delete),
    )


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
