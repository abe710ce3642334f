"""Order decider: the order lifecycle from creation to delivery or refund.

Status transitions::

    Pending -> PaymentProcessing -> Confirmed -> Shipped -> Delivered
    PaymentProcessing -> PaymentFailed
    Pending | PaymentFailed -> Cancelled
    Confirmed | Shipped | Delivered -> Refunded
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Literal, Optional

from pydantic import Field

from eventfold.core.clock import IClock, WallClock
from eventfold.core.messages import Command, Event
from eventfold.runtime.decider import DeciderConfig
from eventfold.validation.commands import PydanticCommandValidator

EntityId = Annotated[str, Field(min_length=1)]

OrderStatus = Literal[
    "Pending", "PaymentProcessing", "PaymentFailed", "Confirmed",
    "Shipped", "Delivered", "Cancelled", "Refunded",
]

TAX_RATE = Decimal("0.08")
FREE_SHIPPING_OVER = Decimal("50")
SHIPPING_FEE = Decimal("9.99")
_CENTS = Decimal("0.01")

# (order_id, payment_id) -> approved?
PaymentGateway = Callable[[str, str], bool]


# --- Value types ------------------------------------------------------------

@dataclass(frozen=True)
class OrderLine:
    product_id: EntityId
    product_name: str
    quantity: Annotated[int, Field(ge=1)]
    unit_price: Annotated[Decimal, Field(ge=0)]

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal


def calculate_totals(lines: tuple[OrderLine, ...]) -> OrderTotals:
    """8% tax; shipping is free above 50."""
    subtotal = sum((line.subtotal for line in lines), Decimal("0"))
    tax = subtotal * TAX_RATE
    shipping = Decimal("0") if subtotal > FREE_SHIPPING_OVER else SHIPPING_FEE
    return OrderTotals(
        subtotal=subtotal.quantize(_CENTS, ROUND_HALF_UP),
        tax=tax.quantize(_CENTS, ROUND_HALF_UP),
        shipping=shipping,
        total=(subtotal + tax + shipping).quantize(_CENTS, ROUND_HALF_UP),
    )


# --- Commands ---------------------------------------------------------------

@dataclass(frozen=True)
class CreateOrder(Command):
    order_id: EntityId
    items: Annotated[tuple[OrderLine, ...], Field(min_length=1)]
    customer_id: Optional[str] = None


@dataclass(frozen=True)
class ProcessPayment(Command):
    order_id: EntityId
    payment_id: EntityId


@dataclass(frozen=True)
class ConfirmPayment(Command):
    order_id: EntityId
    payment_id: EntityId


@dataclass(frozen=True)
class FailPayment(Command):
    order_id: EntityId
    reason: str


@dataclass(frozen=True)
class ShipOrder(Command):
    order_id: EntityId
    tracking_number: EntityId


@dataclass(frozen=True)
class DeliverOrder(Command):
    order_id: EntityId


@dataclass(frozen=True)
class CancelOrder(Command):
    order_id: EntityId
    reason: str = ""


@dataclass(frozen=True)
class RefundOrder(Command):
    order_id: EntityId
    amount: Annotated[Decimal, Field(gt=0)]


ORDER_COMMANDS = (
    CreateOrder, ProcessPayment, ConfirmPayment, FailPayment,
    ShipOrder, DeliverOrder, CancelOrder, RefundOrder,
)


# --- Events -----------------------------------------------------------------

@dataclass(frozen=True)
class OrderCreated(Event):
    order_id: str
    customer_id: Optional[str]
    items: tuple[OrderLine, ...]
    totals: OrderTotals
    created_at: datetime


@dataclass(frozen=True)
class PaymentProcessingStarted(Event):
    order_id: str
    payment_id: str
    started_at: datetime


@dataclass(frozen=True)
class PaymentConfirmed(Event):
    order_id: str
    payment_id: str
    amount: Decimal
    confirmed_at: datetime


@dataclass(frozen=True)
class PaymentFailed(Event):
    order_id: str
    reason: str
    failed_at: datetime


@dataclass(frozen=True)
class OrderShipped(Event):
    order_id: str
    tracking_number: str
    shipped_at: datetime


@dataclass(frozen=True)
class OrderDelivered(Event):
    order_id: str
    delivered_at: datetime


@dataclass(frozen=True)
class OrderCancelled(Event):
    order_id: str
    reason: str
    cancelled_at: datetime


@dataclass(frozen=True)
class OrderRefunded(Event):
    order_id: str
    amount: Decimal
    refunded_at: datetime


@dataclass(frozen=True)
class OrderCommandFailed(Event):
    command: str
    reason: str


# --- State ------------------------------------------------------------------

@dataclass(frozen=True)
class Order:
    id: str
    customer_id: Optional[str]
    items: tuple[OrderLine, ...]
    totals: OrderTotals
    status: OrderStatus
    created_at: datetime
    updated_at: datetime
    tracking_number: Optional[str] = None
    failure_reason: Optional[str] = None


@dataclass(frozen=True)
class OrderState:
    orders: dict[str, Order]


@dataclass(frozen=True)
class OrderContext:
    timestamp: datetime
    payment_approved: bool = True


_REFUNDABLE = ("Confirmed", "Shipped", "Delivered")
_CANCELLABLE = ("Pending", "PaymentFailed")


def decide(cmd: Command, state: OrderState, ctx: OrderContext) -> list[Event]:
    def failed(reason: str) -> list[Event]:
        return [OrderCommandFailed(command=cmd.type, reason=reason)]

    if isinstance(cmd, CreateOrder):
        if cmd.order_id in state.orders:
            return failed("order-already-exists")
        return [OrderCreated(
            order_id=cmd.order_id,
            customer_id=cmd.customer_id,
            items=cmd.items,
            totals=calculate_totals(cmd.items),
            created_at=ctx.timestamp,
        )]

    order = state.orders.get(getattr(cmd, "order_id", ""))
    if order is None:
        return failed("order-not-found")
    now = ctx.timestamp

    if isinstance(cmd, ProcessPayment):
        if order.status != "Pending":
            return failed("invalid-order-status")
        return [PaymentProcessingStarted(
            order_id=order.id, payment_id=cmd.payment_id, started_at=now,
        )]

    if isinstance(cmd, ConfirmPayment):
        if order.status != "PaymentProcessing":
            return failed("not-processing-payment")
        if not ctx.payment_approved:
            return [PaymentFailed(order_id=order.id, reason="Payment declined", failed_at=now)]
        return [PaymentConfirmed(
            order_id=order.id, payment_id=cmd.payment_id,
            amount=order.totals.total, confirmed_at=now,
        )]

    if isinstance(cmd, FailPayment):
        if order.status != "PaymentProcessing":
            return failed("not-processing-payment")
        return [PaymentFailed(order_id=order.id, reason=cmd.reason, failed_at=now)]

    if isinstance(cmd, ShipOrder):
        if order.status != "Confirmed":
            return failed("order-not-confirmed")
        return [OrderShipped(
            order_id=order.id, tracking_number=cmd.tracking_number, shipped_at=now,
        )]

    if isinstance(cmd, DeliverOrder):
        if order.status != "Shipped":
            return failed("order-not-shipped")
        return [OrderDelivered(order_id=order.id, delivered_at=now)]

    if isinstance(cmd, CancelOrder):
        if order.status not in _CANCELLABLE:
            return failed("cannot-cancel-order")
        return [OrderCancelled(order_id=order.id, reason=cmd.reason, cancelled_at=now)]

    if isinstance(cmd, RefundOrder):
        if order.status not in _REFUNDABLE:
            return failed("cannot-refund-order")
        if cmd.amount > order.totals.total:
            return failed("refund-exceeds-total")
        return [OrderRefunded(order_id=order.id, amount=cmd.amount, refunded_at=now)]

    return []


def _update(state: OrderState, order_id: str, **changes) -> OrderState:
    order = replace(state.orders[order_id], **changes)
    return OrderState(orders={**state.orders, order_id: order})


def evolve(state: OrderState, event: Event) -> OrderState:
    if isinstance(event, OrderCreated):
        order = Order(
            id=event.order_id,
            customer_id=event.customer_id,
            items=event.items,
            totals=event.totals,
            status="Pending",
            created_at=event.created_at,
            updated_at=event.created_at,
        )
        return OrderState(orders={**state.orders, order.id: order})
    if isinstance(event, PaymentProcessingStarted):
        return _update(state, event.order_id, status="PaymentProcessing",
                       updated_at=event.started_at)
    if isinstance(event, PaymentConfirmed):
        return _update(state, event.order_id, status="Confirmed",
                       updated_at=event.confirmed_at)
    if isinstance(event, PaymentFailed):
        return _update(state, event.order_id, status="PaymentFailed",
                       failure_reason=event.reason, updated_at=event.failed_at)
    if isinstance(event, OrderShipped):
        return _update(state, event.order_id, status="Shipped",
                       tracking_number=event.tracking_number, updated_at=event.shipped_at)
    if isinstance(event, OrderDelivered):
        return _update(state, event.order_id, status="Delivered",
                       updated_at=event.delivered_at)
    if isinstance(event, OrderCancelled):
        return _update(state, event.order_id, status="Cancelled",
                       updated_at=event.cancelled_at)
    if isinstance(event, OrderRefunded):
        return _update(state, event.order_id, status="Refunded",
                       updated_at=event.refunded_at)
    return state


def order_config(
    name: str = "Order",
    clock: IClock | None = None,
    payments: PaymentGateway | None = None,
) -> DeciderConfig:
    """Order decider.  *payments* decides ``ConfirmPayment``; approves all by default."""
    clock = clock or WallClock()
    approve: PaymentGateway = payments or (lambda order_id, payment_id: True)

    async def resolve_context(cmd: Command) -> OrderContext:
        if isinstance(cmd, ConfirmPayment):
            return OrderContext(
                timestamp=clock.now(),
                payment_approved=approve(cmd.order_id, cmd.payment_id),
            )
        return OrderContext(timestamp=clock.now())

    return DeciderConfig(
        name=name,
        initial_state=OrderState(orders={}),
        decide=decide,
        evolve=evolve,
        resolve_context=resolve_context,
        validator=PydanticCommandValidator(ORDER_COMMANDS),
    )


def orders_with_status(state: OrderState, status: OrderStatus) -> list[Order]:
    return [o for o in state.orders.values() if o.status == status]


def recent_orders(state: OrderState, limit: int = 10) -> list[Order]:
    return sorted(state.orders.values(), key=lambda o: o.created_at, reverse=True)[:limit]
