"""
ORM-level protection of placed orders and their items.

These go around the services on purpose: they load rows in a plain session
and try the writes the services never make.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from pharmacy_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from pharmacy_kernel.domain.statuses import OrderStatus, PaymentStatus
from pharmacy_kernel.exceptions import (
    ImmutabilityViolationError,
    InvalidPaymentTransitionError,
    InvalidTransitionError,
)
from pharmacy_kernel.models import InventoryRecord, Order, OrderItem


@pytest.fixture
def placed(create_medicine, place_order):
    mid = create_medicine(stock=10)
    return place_order((mid, 2))


@pytest.fixture
def flush_change(session_factory):
    """Load ``model`` row ``row_id``, apply ``change`` and flush."""

    def _flush(model, row_id, change):
        with session_factory() as s:
            row = s.execute(select(model).where(model.id == row_id)).scalar_one()
            try:
                change(s, row)
                s.flush()
            finally:
                s.rollback()

    return _flush


class TestOrderProtection:

    def test_total_cannot_change(self, placed, flush_change):
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            flush_change(Order, placed.id, lambda s, o: setattr(o, "total_amount", Decimal("0")))
        assert "total_amount" in str(exc_info.value)

    def test_customer_cannot_change(self, placed, flush_change):
        from uuid import uuid4

        with pytest.raises(ImmutabilityViolationError):
            flush_change(Order, placed.id, lambda s, o: setattr(o, "customer_id", uuid4()))

    def test_illegal_status_write_blocked(self, placed, flush_change):
        with pytest.raises(InvalidTransitionError):
            flush_change(
                Order, placed.id, lambda s, o: setattr(o, "status", OrderStatus.DELIVERED)
            )

    def test_illegal_payment_status_write_blocked(self, placed, flush_change):
        with pytest.raises(InvalidPaymentTransitionError):
            flush_change(
                Order, placed.id, lambda s, o: setattr(o, "payment_status", PaymentStatus.REFUNDED)
            )

    def test_legal_status_write_allowed(self, placed, flush_change):
        flush_change(Order, placed.id, lambda s, o: setattr(o, "status", OrderStatus.CONFIRMED))

    def test_order_delete_blocked(self, placed, flush_change):
        with pytest.raises(ImmutabilityViolationError):
            flush_change(Order, placed.id, lambda s, o: s.delete(o))


class TestOrderItemProtection:

    def test_quantity_cannot_change(self, placed, flush_change):
        with pytest.raises(ImmutabilityViolationError):
            flush_change(OrderItem, placed.items[0].id, lambda s, i: setattr(i, "quantity", 1))

    def test_item_delete_blocked(self, placed, flush_change):
        with pytest.raises(ImmutabilityViolationError):
            flush_change(OrderItem, placed.items[0].id, lambda s, i: s.delete(i))


class TestInventoryRecordProtection:

    def test_reorder_point_may_change(self, create_medicine, flush_change, session_factory):
        mid = create_medicine(stock=10)
        with session_factory() as s:
            record_id = s.execute(
                select(InventoryRecord.id).where(InventoryRecord.medicine_id == mid)
            ).scalar_one()
            s.rollback()
        flush_change(InventoryRecord, record_id, lambda s, r: setattr(r, "reorder_point", 3))

    def test_record_delete_blocked(self, create_medicine, flush_change, session_factory):
        mid = create_medicine(stock=10)
        with session_factory() as s:
            record_id = s.execute(
                select(InventoryRecord.id).where(InventoryRecord.medicine_id == mid)
            ).scalar_one()
            s.rollback()
        with pytest.raises(ImmutabilityViolationError):
            flush_change(InventoryRecord, record_id, lambda s, r: s.delete(r))


class TestListenerRegistration:

    def test_register_is_idempotent(self, placed, flush_change):
        register_immutability_listeners()
        register_immutability_listeners()
        with pytest.raises(ImmutabilityViolationError):
            flush_change(Order, placed.id, lambda s, o: setattr(o, "subtotal", Decimal("1")))

    def test_unregister_disables_checks(self, placed, flush_change):
        unregister_immutability_listeners()
        try:
            flush_change(Order, placed.id, lambda s, o: setattr(o, "subtotal", Decimal("1")))
        finally:
            register_immutability_listeners()
