"""Dashboard: a global projector over every shop decider's events."""

from __future__ import annotations

from collections import Counter as _Tally
from dataclasses import dataclass, field, replace
from decimal import Decimal

from eventfold.core.messages import CommandValidationFailed, Envelope, Event
from eventfold.examples.shop.cart import CartCheckedOut, CartCommandFailed, ItemAddedToCart
from eventfold.examples.shop.catalog import (
    CatalogCommandFailed,
    ProductAdded,
    ProductDiscontinued,
    ProductReactivated,
    ProductStockUpdated,
)
from eventfold.examples.shop.order import (
    OrderCancelled,
    OrderCommandFailed,
    OrderCreated,
    OrderDelivered,
    OrderRefunded,
    OrderShipped,
    PaymentConfirmed,
    PaymentFailed,
    PaymentProcessingStarted,
)
from eventfold.runtime.projector import ProjectorConfig

ACTIVITY_LIMIT = 20

_ORDER_STATUS = {
    PaymentProcessingStarted: "PaymentProcessing",
    PaymentConfirmed: "Confirmed",
    PaymentFailed: "PaymentFailed",
    OrderShipped: "Shipped",
    OrderDelivered: "Delivered",
    OrderCancelled: "Cancelled",
    OrderRefunded: "Refunded",
}

_REJECTIONS = (
    CatalogCommandFailed, CartCommandFailed, OrderCommandFailed, CommandValidationFailed,
)


@dataclass(frozen=True)
class Activity:
    seq: int
    source: str
    type: str
    description: str


@dataclass(frozen=True)
class ProductSummary:
    stock: int
    discontinued: bool = False

    @property
    def active(self) -> bool:
        return self.stock > 0 and not self.discontinued


@dataclass(frozen=True)
class DashboardState:
    products: dict[str, ProductSummary] = field(default_factory=dict)
    order_status: dict[str, str] = field(default_factory=dict)
    revenue: Decimal = Decimal("0")
    rejections: int = 0
    events_seen: int = 0
    recent_activity: tuple[Activity, ...] = ()

    @property
    def total_products(self) -> int:
        return len(self.products)

    @property
    def active_products(self) -> int:
        return sum(1 for p in self.products.values() if p.active)

    @property
    def total_orders(self) -> int:
        return len(self.order_status)

    @property
    def orders_by_status(self) -> dict[str, int]:
        return dict(_Tally(self.order_status.values()))


def describe(source: str, event: Event) -> str:
    if isinstance(event, ProductAdded):
        return f"New product added: {event.name}"
    if isinstance(event, OrderCreated):
        return f"Order #{event.order_id[-8:]} created"
    if isinstance(event, PaymentConfirmed):
        return f"Payment confirmed for order #{event.order_id[-8:]}"
    if isinstance(event, ItemAddedToCart):
        return "Item added to cart"
    if isinstance(event, CartCheckedOut):
        return f"Cart checked out with {len(event.items)} items"
    return f"{source}: {event.type}"


def _fold(state: DashboardState, event: Event) -> DashboardState:
    if isinstance(event, ProductAdded):
        return replace(state, products={
            **state.products, event.id: ProductSummary(stock=event.stock),
        })
    if isinstance(event, ProductStockUpdated) and event.id in state.products:
        summary = replace(state.products[event.id], stock=event.new_stock)
        return replace(state, products={**state.products, event.id: summary})
    if isinstance(event, (ProductDiscontinued, ProductReactivated)) and event.id in state.products:
        summary = replace(
            state.products[event.id], discontinued=isinstance(event, ProductDiscontinued),
        )
        return replace(state, products={**state.products, event.id: summary})

    if isinstance(event, OrderCreated):
        return replace(state, order_status={**state.order_status, event.order_id: "Pending"})
    status = _ORDER_STATUS.get(type(event))
    if status is not None:
        revenue = state.revenue
        if isinstance(event, PaymentConfirmed):
            revenue += event.amount
        elif isinstance(event, OrderRefunded):
            revenue -= event.amount
        return replace(
            state,
            order_status={**state.order_status, event.order_id: status},
            revenue=revenue,
        )

    if isinstance(event, _REJECTIONS):
        return replace(state, rejections=state.rejections + 1)
    return state


def project_dashboard(state: DashboardState, envelope: Envelope) -> DashboardState:
    event = envelope.event
    seq = state.events_seen + 1
    activity = Activity(
        seq=seq,
        source=envelope.source_unit,
        type=event.type,
        description=describe(envelope.source_unit, event),
    )
    state = _fold(state, event)
    return replace(
        state,
        events_seen=seq,
        recent_activity=((activity,) + state.recent_activity)[:ACTIVITY_LIMIT],
    )


dashboard_projector = ProjectorConfig(
    name="Dashboard",
    initial_state=DashboardState(),
    project=project_dashboard,
)
