"""
OrderService -- order lifecycle: creation, cancellation, payment, refund.

Responsibility:
    The public entry point for order mutations.  Validates requests, then
    runs each operation as one unit of work through the
    TransactionCoordinator: stock reservation or release on the inventory
    ledger, order persistence, status changes through the order state
    machine, and audit records.

Architecture position:
    Kernel > Services -- imperative shell.  Depends on the coordinator (for
    transactions), the order workflow (for legality), pricing (for totals),
    the catalog/customer lookups, the clock and the reference generator.

Invariants enforced:
    - Creation is all-or-nothing: every line is reserved or none is.
    - Cancellation releases exactly the quantities that were reserved, once.
      The order row is locked, so two concurrent cancellations cannot both
      release; the second sees CANCELLED and fails the transition check.
    - Order status changes only through ``require_transition``; the ORM
      listener on Order checks the same table at flush.
    - Payment is recorded at most once and must equal the order total.
    - Refund needs DELIVERED + COMPLETED, at most the order total, at most
      once, and never restocks.

Failure modes:
    - ValidationError before any transaction opens (bad input).
    - NotFound / BusinessRule errors from inside the unit of work; the unit
      of work is rolled back and nothing persists.
    - ConcurrencyConflictError / SystemFailureError from the coordinator.

Audit relevance:
    Every ledger movement and every order/payment status change writes one
    AuditRecord with the acting user.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Sequence
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from pharmacy_kernel.db.types import to_money
from pharmacy_kernel.domain.clock import Clock
from pharmacy_kernel.domain.dtos import (
    ActorContext,
    LedgerStatus,
    MedicineInfo,
    OrderInfo,
    OrderItemInfo,
    OrderLineRequest,
    PaymentReceipt,
    RefundReceipt,
    ShippingInfo,
)
from pharmacy_kernel.domain.identifiers import ReferenceGenerator
from pharmacy_kernel.domain.order_workflow import (
    can_refund,
    require_payment_transition,
    require_transition,
)
from pharmacy_kernel.domain.pricing import price_line, total_order
from pharmacy_kernel.domain.statuses import (
    AuditAction,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from pharmacy_kernel.exceptions import (
    AlreadyPaidError,
    AlreadyRefundedError,
    AmountMismatchError,
    CustomerInactiveError,
    CustomerNotFoundError,
    MedicineInactiveError,
    MedicineNotFoundError,
    OrderNotFoundError,
    PaymentNotAllowedError,
    RefundExceedsTotalError,
    RefundNotAllowedError,
    ValidationError,
)
from pharmacy_kernel.logging_config import LogContext, get_logger
from pharmacy_kernel.models.order import Order, OrderItem
from pharmacy_kernel.services.catalog import (
    CatalogLookup,
    CustomerLookup,
    SqlCatalogLookup,
    SqlCustomerLookup,
)
from pharmacy_kernel.services.audit_recorder import AuditTrace
from pharmacy_kernel.services.transaction_coordinator import (
    TransactionCoordinator,
    UnitOfWork,
)

logger = get_logger("services.order")

ENTITY_TYPE = "Order"

RESERVE_REASON = "order creation"
RELEASE_REASON = "order cancellation"

# Targets with side effects have their own operations.
_DEDICATED_TARGETS = {
    OrderStatus.CANCELLED: "cancel_order",
    OrderStatus.REFUNDED: "refund_order",
}


def _append_note(notes: str | None, note: str) -> str:
    return f"{notes}\n{note}" if notes else note


def _require_text(field: str, value: str | None) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(field, "must not be blank")
    return str(value).strip()


def _require_uuid(field: str, value: UUID) -> UUID:
    if not isinstance(value, UUID):
        raise ValidationError(field, f"must be a UUID, got {type(value).__name__}")
    return value


def _coerce_amount(field: str, value: Decimal | int | str) -> Decimal:
    try:
        amount = to_money(value)
    except (TypeError, ArithmeticError) as exc:
        raise ValidationError(field, str(exc)) from exc
    if not amount.is_finite():
        raise ValidationError(field, "must be a finite number")
    return amount


def _coerce_method(value: PaymentMethod | str) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError as exc:
        raise ValidationError("payment_method", f"unknown method {value!r}") from exc


class OrderService:
    """
    Order lifecycle operations.

    Contract:
        Every public method returns a DTO (OrderInfo, PaymentReceipt,
        RefundReceipt, LedgerStatus, AuditTrace), never an ORM entity.
        Every mutation takes an explicit ActorContext.

    Non-goals:
        - Does NOT talk to a payment gateway; payment outcomes arrive as
          record_payment / record_payment_failure calls.
        - Does NOT manage the catalog or customers.
    """

    def __init__(
        self,
        coordinator: TransactionCoordinator,
        clock: Clock,
        references: ReferenceGenerator,
        catalog_factory: Callable[[Session], CatalogLookup] = SqlCatalogLookup,
        customer_factory: Callable[[Session], CustomerLookup] = SqlCustomerLookup,
    ):
        self._coordinator = coordinator
        self._clock = clock
        self._references = references
        self._catalog_factory = catalog_factory
        self._customer_factory = customer_factory

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    def _validate_items(self, items: Sequence[OrderLineRequest]) -> list[OrderLineRequest]:
        if not items:
            raise ValidationError("items", "an order needs at least one item")
        validated = []
        for idx, line in enumerate(items, start=1):
            if not isinstance(line, OrderLineRequest):
                raise ValidationError(f"items[{idx}]", "must be an OrderLineRequest")
            _require_uuid(f"items[{idx}].medicine_id", line.medicine_id)
            q = line.quantity
            if isinstance(q, bool) or not isinstance(q, int) or q <= 0:
                raise ValidationError(
                    f"items[{idx}].quantity", f"must be a positive integer, got {q!r}"
                )
            price = _coerce_amount(f"items[{idx}].unit_price", line.unit_price)
            if price < 0:
                raise ValidationError(f"items[{idx}].unit_price", "must not be negative")
            validated.append(
                OrderLineRequest(medicine_id=line.medicine_id, quantity=q, unit_price=price)
            )
        return validated

    @staticmethod
    def _validate_shipping(shipping: ShippingInfo) -> ShippingInfo:
        if not isinstance(shipping, ShippingInfo):
            raise ValidationError("shipping", "must be a ShippingInfo")
        return ShippingInfo(
            address=_require_text("shipping.address", shipping.address),
            city=_require_text("shipping.city", shipping.city),
            state=_require_text("shipping.state", shipping.state),
            zip_code=_require_text("shipping.zip_code", shipping.zip_code),
            country=_require_text("shipping.country", shipping.country),
        )

    def create_order(
        self,
        customer_id: UUID,
        items: Sequence[OrderLineRequest],
        payment_method: PaymentMethod | str,
        shipping: ShippingInfo,
        actor: ActorContext,
        notes: str | None = None,
    ) -> OrderInfo:
        """
        Place an order, reserving stock for every line.

        Preconditions:
            - items is non-empty; quantities are positive integers; unit
              prices are Decimal (or int/str), never float.

        Postconditions:
            - Order and items persisted with status PENDING and payment
              status PENDING; each medicine's stock decreased by its
              quantity.  On any failure nothing persists.

        Raises:
            ValidationError, CustomerNotFoundError, CustomerInactiveError,
            MedicineNotFoundError, MedicineInactiveError,
            InsufficientStockError.
        """
        _require_uuid("customer_id", customer_id)
        lines = self._validate_items(items)
        method = _coerce_method(payment_method)
        ship = self._validate_shipping(shipping)

        def work(uow: UnitOfWork) -> OrderInfo:
            customer = self._customer_factory(uow.session).get_customer(customer_id)
            if customer is None:
                raise CustomerNotFoundError(str(customer_id))
            if not customer.is_active:
                raise CustomerInactiveError(str(customer_id))

            catalog = self._catalog_factory(uow.session)
            medicines: dict[UUID, MedicineInfo] = {}
            for line in lines:
                if line.medicine_id in medicines:
                    continue
                medicine = catalog.get_medicine(line.medicine_id)
                if medicine is None:
                    raise MedicineNotFoundError(str(line.medicine_id))
                if not medicine.is_active:
                    raise MedicineInactiveError(str(line.medicine_id))
                medicines[line.medicine_id] = medicine

            order_id = uuid4()
            with LogContext.bind(order_id=str(order_id)):
                uow.ledger.reserve_many(
                    [(line.medicine_id, line.quantity) for line in lines],
                    reason=RESERVE_REASON,
                    reference=str(order_id),
                )

                priced = [
                    price_line(
                        line.unit_price,
                        line.quantity,
                        medicines[line.medicine_id].tax_rate,
                        medicines[line.medicine_id].discount_percentage,
                    )
                    for line in lines
                ]
                totals = total_order(priced)
                now = self._clock.now()

                order = Order(
                    id=order_id,
                    order_number=self._references.order_number(),
                    customer_id=customer_id,
                    status=OrderStatus.PENDING,
                    payment_status=PaymentStatus.PENDING,
                    payment_method=method,
                    subtotal=totals.subtotal,
                    tax_amount=totals.tax_amount,
                    discount_amount=totals.discount_amount,
                    total_amount=totals.total_amount,
                    shipping_address=ship.address,
                    shipping_city=ship.city,
                    shipping_state=ship.state,
                    shipping_zip_code=ship.zip_code,
                    shipping_country=ship.country,
                    notes=notes,
                    created_at=now,
                    updated_at=now,
                    created_by_id=actor.actor_id,
                    items=[
                        OrderItem(
                            line_no=line_no,
                            medicine_id=line.medicine_id,
                            quantity=p.quantity,
                            unit_price=p.unit_price,
                            tax_amount=p.unit_tax,
                            discount_amount=p.unit_discount,
                            subtotal_amount=p.subtotal,
                            total_amount=p.line_total,
                            created_at=now,
                            updated_at=now,
                            created_by_id=actor.actor_id,
                        )
                        for line_no, (line, p) in enumerate(zip(lines, priced), start=1)
                    ],
                )
                uow.session.add(order)
                uow.session.flush()

                uow.audit.append(
                    entity_type=ENTITY_TYPE,
                    entity_id=order.id,
                    action=AuditAction.ORDER_CREATED,
                    actor=actor,
                    old_value=None,
                    new_value=OrderStatus.PENDING,
                    details={
                        "order_number": order.order_number,
                        "customer_id": customer_id,
                        "total_amount": totals.total_amount,
                        "item_count": len(lines),
                    },
                )
                logger.info(
                    "order_created",
                    extra={
                        "order_number": order.order_number,
                        "customer_id": str(customer_id),
                        "item_count": len(lines),
                        "total_amount": str(totals.total_amount),
                    },
                )
                return self._to_info(order)

        return self._coordinator.run(work, actor=actor, operation="create_order")

    # -------------------------------------------------------------------------
    # Cancellation and status progression
    # -------------------------------------------------------------------------

    def cancel_order(self, order_id: UUID, reason: str, actor: ActorContext) -> OrderInfo:
        """
        Cancel an order and return every reserved unit to stock.

        Postconditions:
            - status CANCELLED, notes end with "Cancelled: <reason>", each
              item's quantity released exactly once.  Payment status is
              left as it was.

        Raises:
            ValidationError: blank reason.
            OrderNotFoundError: unknown order.
            InvalidTransitionError: the order's status cannot move to
                CANCELLED (already cancelled, shipped, delivered, refunded).
        """
        _require_uuid("order_id", order_id)
        reason = _require_text("reason", reason)

        def work(uow: UnitOfWork) -> OrderInfo:
            with LogContext.bind(order_id=str(order_id)):
                order = self._lock_order(uow.session, order_id)
                old_status = OrderStatus(order.status)
                transition = require_transition(
                    old_status, OrderStatus.CANCELLED, order_id=str(order_id)
                )
                if transition.restocks:
                    uow.ledger.release_many(
                        [(item.medicine_id, item.quantity) for item in order.items],
                        reason=RELEASE_REASON,
                        reference=str(order.id),
                    )

                order.status = OrderStatus.CANCELLED
                order.notes = _append_note(order.notes, f"Cancelled: {reason}")
                order.updated_by_id = actor.actor_id
                uow.session.flush()

                uow.audit.append(
                    entity_type=ENTITY_TYPE,
                    entity_id=order.id,
                    action=AuditAction.ORDER_CANCELLED,
                    actor=actor,
                    old_value=old_status,
                    new_value=OrderStatus.CANCELLED,
                    details={"reason": reason, "restocked": transition.restocks},
                )
                logger.info(
                    "order_cancelled",
                    extra={
                        "order_number": order.order_number,
                        "previous_status": old_status.value,
                        "item_count": len(order.items),
                    },
                )
                return self._to_info(order)

        return self._coordinator.run(work, actor=actor, operation="cancel_order")

    def transition_status(
        self,
        order_id: UUID,
        target: OrderStatus | str,
        actor: ActorContext,
        note: str | None = None,
    ) -> OrderInfo:
        """
        Move an order along a side-effect-free edge (confirm, process, ship,
        deliver, hold, release hold).

        Raises:
            ValidationError: unknown target, or CANCELLED / REFUNDED (use
                cancel_order / refund_order).
            OrderNotFoundError, InvalidTransitionError.
        """
        _require_uuid("order_id", order_id)
        try:
            target_status = OrderStatus(target)
        except ValueError as exc:
            raise ValidationError("target", f"unknown order status {target!r}") from exc
        if target_status in _DEDICATED_TARGETS:
            raise ValidationError(
                "target",
                f"use {_DEDICATED_TARGETS[target_status]} to move an order to "
                f"{target_status.value}",
            )

        def work(uow: UnitOfWork) -> OrderInfo:
            with LogContext.bind(order_id=str(order_id)):
                order = self._lock_order(uow.session, order_id)
                old_status = OrderStatus(order.status)
                transition = require_transition(
                    old_status, target_status, order_id=str(order_id)
                )

                order.status = target_status
                if note and note.strip():
                    order.notes = _append_note(order.notes, note.strip())
                order.updated_by_id = actor.actor_id
                uow.session.flush()

                uow.audit.append(
                    entity_type=ENTITY_TYPE,
                    entity_id=order.id,
                    action=AuditAction.ORDER_STATUS_CHANGED,
                    actor=actor,
                    old_value=old_status,
                    new_value=target_status,
                    details={"action": transition.action, "note": note},
                )
                logger.info(
                    "order_status_changed",
                    extra={
                        "order_number": order.order_number,
                        "from_status": old_status.value,
                        "to_status": target_status.value,
                    },
                )
                return self._to_info(order)

        return self._coordinator.run(work, actor=actor, operation="transition_status")

    # -------------------------------------------------------------------------
    # Payment and refund
    # -------------------------------------------------------------------------

    def record_payment(
        self,
        order_id: UUID,
        amount: Decimal | int | str,
        method: PaymentMethod | str,
        actor: ActorContext,
    ) -> PaymentReceipt:
        """
        Record a successful payment for the full order total.

        Raises:
            ValidationError: bad amount or method.
            OrderNotFoundError.
            AlreadyPaidError: payment already COMPLETED (or REFUNDED).
            PaymentNotAllowedError: order is CANCELLED.
            AmountMismatchError: amount differs from total_amount.
        """
        _require_uuid("order_id", order_id)
        paid = _coerce_amount("amount", amount)
        if paid < 0:
            raise ValidationError("amount", "must not be negative")
        payment_method = _coerce_method(method)

        def work(uow: UnitOfWork) -> PaymentReceipt:
            with LogContext.bind(order_id=str(order_id)):
                order = self._lock_order(uow.session, order_id)
                old_payment = PaymentStatus(order.payment_status)
                if old_payment in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
                    raise AlreadyPaidError(str(order_id), old_payment.value)
                if OrderStatus(order.status) == OrderStatus.CANCELLED:
                    raise PaymentNotAllowedError(str(order_id), OrderStatus.CANCELLED.value)
                if paid != order.total_amount:
                    raise AmountMismatchError(
                        str(order_id), expected=order.total_amount, received=paid
                    )
                require_payment_transition(
                    old_payment, PaymentStatus.COMPLETED, order_id=str(order_id)
                )

                reference = self._references.payment_reference()
                processed_at = self._clock.now()
                order.payment_status = PaymentStatus.COMPLETED
                order.updated_by_id = actor.actor_id
                uow.session.flush()

                uow.audit.append(
                    entity_type=ENTITY_TYPE,
                    entity_id=order.id,
                    action=AuditAction.PAYMENT_RECORDED,
                    actor=actor,
                    old_value=old_payment,
                    new_value=PaymentStatus.COMPLETED,
                    details={
                        "amount": paid,
                        "method": payment_method,
                        "transaction_reference": reference,
                    },
                )
                logger.info(
                    "payment_recorded",
                    extra={
                        "order_number": order.order_number,
                        "amount": str(paid),
                        "method": payment_method.value,
                        "transaction_reference": reference,
                    },
                )
                return PaymentReceipt(
                    order_id=order.id,
                    order_number=order.order_number,
                    amount=paid,
                    method=payment_method,
                    transaction_reference=reference,
                    payment_status=PaymentStatus.COMPLETED,
                    processed_at=processed_at,
                )

        return self._coordinator.run(work, actor=actor, operation="record_payment")

    def record_payment_failure(
        self,
        order_id: UUID,
        reason: str,
        actor: ActorContext,
    ) -> OrderInfo:
        """
        Record that the payment attempt failed.  A later record_payment may
        still complete the order.

        Raises:
            ValidationError, OrderNotFoundError,
            PaymentNotAllowedError: order is CANCELLED.
            InvalidPaymentTransitionError: payment already FAILED, COMPLETED
                or REFUNDED.
        """
        _require_uuid("order_id", order_id)
        reason = _require_text("reason", reason)

        def work(uow: UnitOfWork) -> OrderInfo:
            with LogContext.bind(order_id=str(order_id)):
                order = self._lock_order(uow.session, order_id)
                if OrderStatus(order.status) == OrderStatus.CANCELLED:
                    raise PaymentNotAllowedError(str(order_id), OrderStatus.CANCELLED.value)
                old_payment = PaymentStatus(order.payment_status)
                require_payment_transition(
                    old_payment, PaymentStatus.FAILED, order_id=str(order_id)
                )

                order.payment_status = PaymentStatus.FAILED
                order.updated_by_id = actor.actor_id
                uow.session.flush()

                uow.audit.append(
                    entity_type=ENTITY_TYPE,
                    entity_id=order.id,
                    action=AuditAction.PAYMENT_FAILED,
                    actor=actor,
                    old_value=old_payment,
                    new_value=PaymentStatus.FAILED,
                    details={"reason": reason},
                )
                logger.warning(
                    "payment_failed",
                    extra={"order_number": order.order_number, "reason": reason},
                )
                return self._to_info(order)

        return self._coordinator.run(work, actor=actor, operation="record_payment_failure")

    def refund_order(
        self,
        order_id: UUID,
        amount: Decimal | int | str,
        reason: str,
        actor: ActorContext,
    ) -> RefundReceipt:
        """
        Refund a delivered, paid order.  Stock is NOT returned.

        Raises:
            ValidationError: amount <= 0 or blank reason.
            OrderNotFoundError.
            AlreadyRefundedError: order already refunded.
            RefundNotAllowedError: order is not DELIVERED with payment
                COMPLETED.
            RefundExceedsTotalError: amount > total_amount.
        """
        _require_uuid("order_id", order_id)
        refund = _coerce_amount("amount", amount)
        if refund <= 0:
            raise ValidationError("amount", "refund amount must be positive")
        reason = _require_text("reason", reason)

        def work(uow: UnitOfWork) -> RefundReceipt:
            with LogContext.bind(order_id=str(order_id)):
                order = self._lock_order(uow.session, order_id)
                status = OrderStatus(order.status)
                payment = PaymentStatus(order.payment_status)
                if status == OrderStatus.REFUNDED or payment == PaymentStatus.REFUNDED:
                    raise AlreadyRefundedError(str(order_id))
                if not can_refund(status, payment):
                    raise RefundNotAllowedError(str(order_id), status.value, payment.value)
                if refund > order.total_amount:
                    raise RefundExceedsTotalError(
                        str(order_id), amount=refund, total=order.total_amount
                    )
                require_transition(status, OrderStatus.REFUNDED, order_id=str(order_id))

                reference = self._references.refund_reference()
                refunded_at = self._clock.now()
                order.status = OrderStatus.REFUNDED
                order.payment_status = PaymentStatus.REFUNDED
                order.notes = _append_note(order.notes, f"Refunded: {reason}")
                order.updated_by_id = actor.actor_id
                uow.session.flush()

                uow.audit.append(
                    entity_type=ENTITY_TYPE,
                    entity_id=order.id,
                    action=AuditAction.ORDER_REFUNDED,
                    actor=actor,
                    old_value=status,
                    new_value=OrderStatus.REFUNDED,
                    details={
                        "amount": refund,
                        "reason": reason,
                        "refund_reference": reference,
                        "previous_payment_status": payment,
                    },
                )
                logger.info(
                    "order_refunded",
                    extra={
                        "order_number": order.order_number,
                        "amount": str(refund),
                        "refund_reference": reference,
                    },
                )
                return RefundReceipt(
                    order_id=order.id,
                    order_number=order.order_number,
                    amount=refund,
                    refund_reference=reference,
                    reason=reason,
                    status=OrderStatus.REFUNDED,
                    payment_status=PaymentStatus.REFUNDED,
                    refunded_at=refunded_at,
                )

        return self._coordinator.run(work, actor=actor, operation="refund_order")

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_order(self, order_id: UUID) -> OrderInfo:
        """
        Raises:
            OrderNotFoundError.
        """
        _require_uuid("order_id", order_id)

        def work(uow: UnitOfWork) -> OrderInfo:
            order = uow.session.execute(
                select(Order).where(Order.id == order_id)
            ).scalar_one_or_none()
            if order is None:
                raise OrderNotFoundError(str(order_id))
            return self._to_info(order)

        return self._coordinator.read(work, operation="get_order")

    def get_ledger_status(self, medicine_id: UUID) -> LedgerStatus:
        """
        Raises:
            InventoryRecordNotFoundError.
        """
        _require_uuid("medicine_id", medicine_id)
        return self._coordinator.read(
            lambda uow: uow.ledger.get_status(medicine_id),
            operation="get_ledger_status",
        )

    def get_order_history(self, order_id: UUID) -> AuditTrace:
        """Audit trail of an order, oldest first."""
        _require_uuid("order_id", order_id)
        return self._coordinator.read(
            lambda uow: uow.audit.history(ENTITY_TYPE, order_id),
            operation="get_order_history",
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _lock_order(session: Session, order_id: UUID) -> Order:
        order = session.execute(
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    @staticmethod
    def _to_info(order: Order) -> OrderInfo:
        """Convert ORM Order to OrderInfo DTO."""
        return OrderInfo(
            id=order.id,
            order_number=order.order_number,
            customer_id=order.customer_id,
            status=OrderStatus(order.status),
            payment_status=PaymentStatus(order.payment_status),
            payment_method=PaymentMethod(order.payment_method),
            subtotal=order.subtotal,
            tax_amount=order.tax_amount,
            discount_amount=order.discount_amount,
            total_amount=order.total_amount,
            shipping=ShippingInfo(
                address=order.shipping_address,
                city=order.shipping_city,
                state=order.shipping_state,
                zip_code=order.shipping_zip_code,
                country=order.shipping_country,
            ),
            notes=order.notes,
            items=tuple(
                OrderItemInfo(
                    id=item.id,
                    line_no=item.line_no,
                    medicine_id=item.medicine_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    tax_amount=item.tax_amount,
                    discount_amount=item.discount_amount,
                    subtotal_amount=item.subtotal_amount,
                    total_amount=item.total_amount,
                )
                for item in order.items
            ),
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
