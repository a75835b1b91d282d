"""
Order lifecycle state machine.

Responsibility:
    Declares the legal order status transitions and the payment status
    transitions, and answers "may this order move from A to B?".  This module
    is the single home of those rules; services, and the ORM listener that
    guards Order rows, both ask it.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Invariants enforced:
    - Order status moves only along ORDER_WORKFLOW edges.
    - CANCELLED and REFUNDED are terminal.
    - A refund is possible only for a DELIVERED order whose payment COMPLETED.
    - The only restocking edge is "cancel"; refund never restocks.

Failure modes:
    - InvalidTransitionError from require_transition().
    - InvalidPaymentTransitionError from require_payment_transition().
"""

from pharmacy_kernel.domain.statuses import OrderStatus, PaymentStatus
from pharmacy_kernel.domain.workflow import Guard, Transition, Workflow
from pharmacy_kernel.exceptions import (
    InvalidPaymentTransitionError,
    InvalidTransitionError,
)

# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

PAYMENT_COMPLETED = Guard(
    name="payment_completed",
    description="Payment for the order has been recorded as completed",
)

# -----------------------------------------------------------------------------
# Order workflow
# -----------------------------------------------------------------------------

_S = OrderStatus

ORDER_WORKFLOW = Workflow(
    name="order",
    description="Pharmacy order lifecycle",
    initial_state=_S.PENDING.value,
    states=tuple(s.value for s in OrderStatus),
    transitions=(
        Transition(_S.PENDING.value, _S.CONFIRMED.value, action="confirm"),
        Transition(_S.PENDING.value, _S.CANCELLED.value, action="cancel", restocks=True),
        Transition(_S.PENDING.value, _S.ON_HOLD.value, action="hold"),
        Transition(_S.CONFIRMED.value, _S.PROCESSING.value, action="process"),
        Transition(_S.CONFIRMED.value, _S.CANCELLED.value, action="cancel", restocks=True),
        Transition(_S.CONFIRMED.value, _S.ON_HOLD.value, action="hold"),
        Transition(_S.PROCESSING.value, _S.SHIPPED.value, action="ship"),
        Transition(_S.PROCESSING.value, _S.CANCELLED.value, action="cancel", restocks=True),
        Transition(_S.SHIPPED.value, _S.DELIVERED.value, action="deliver"),
        Transition(
            _S.DELIVERED.value,
            _S.REFUNDED.value,
            action="refund",
            guard=PAYMENT_COMPLETED,
        ),
        Transition(_S.ON_HOLD.value, _S.PENDING.value, action="release_hold"),
        Transition(_S.ON_HOLD.value, _S.CANCELLED.value, action="cancel", restocks=True),
    ),
    terminal_states=(_S.CANCELLED.value, _S.REFUNDED.value),
)

# Allowed state transitions (from -> set of valid targets)
VALID_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    status: frozenset(OrderStatus(t) for t in ORDER_WORKFLOW.targets(status.value))
    for status in OrderStatus
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.COMPLETED, PaymentStatus.FAILED,
    }),
    PaymentStatus.FAILED: frozenset({PaymentStatus.COMPLETED}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}


def can_transition(current: OrderStatus | str, requested: OrderStatus | str) -> bool:
    """True iff ``current -> requested`` is an edge of the order workflow."""
    return OrderStatus(requested) in VALID_TRANSITIONS[OrderStatus(current)]


def require_transition(
    current: OrderStatus | str,
    requested: OrderStatus | str,
    order_id: str | None = None,
) -> Transition:
    """
    Return the declared transition or raise.

    Raises:
        InvalidTransitionError: If the edge is not in the workflow.
    """
    current_s = OrderStatus(current)
    requested_s = OrderStatus(requested)
    transition = ORDER_WORKFLOW.find(current_s.value, requested_s.value)
    if transition is None:
        raise InvalidTransitionError(
            current_status=current_s.value,
            requested_status=requested_s.value,
            order_id=order_id,
        )
    return transition


def allowed_targets(current: OrderStatus | str) -> frozenset[OrderStatus]:
    return VALID_TRANSITIONS[OrderStatus(current)]


def is_terminal(status: OrderStatus | str) -> bool:
    return OrderStatus(status).value in ORDER_WORKFLOW.terminal_states


def can_refund(status: OrderStatus | str, payment_status: PaymentStatus | str) -> bool:
    """A refund needs a delivered order and a completed payment."""
    return (
        OrderStatus(status) == OrderStatus.DELIVERED
        and PaymentStatus(payment_status) == PaymentStatus.COMPLETED
    )


def can_transition_payment(
    current: PaymentStatus | str,
    requested: PaymentStatus | str,
) -> bool:
    return PaymentStatus(requested) in PAYMENT_TRANSITIONS[PaymentStatus(current)]


def require_payment_transition(
    current: PaymentStatus | str,
    requested: PaymentStatus | str,
    order_id: str | None = None,
) -> None:
    """
    Raises:
        InvalidPaymentTransitionError: If the payment edge is not allowed.
    """
    if not can_transition_payment(current, requested):
        raise InvalidPaymentTransitionError(
            current_status=PaymentStatus(current).value,
            requested_status=PaymentStatus(requested).value,
            order_id=order_id,
        )
