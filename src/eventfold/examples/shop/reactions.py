"""Process managers linking the shop deciders.

* checkout:  Cart ``CartCheckedOut`` -> Order ``CreateOrder``
* inventory: Order ``OrderCreated`` -> Catalog ``AdjustStock`` per line

Both are pure.  Order ids derive from the cart id so replaying the same
checkout yields the same command.
"""

from __future__ import annotations

from eventfold.core.messages import Command, Event
from eventfold.examples.shop.cart import CartCheckedOut
from eventfold.examples.shop.catalog import AdjustStock
from eventfold.examples.shop.order import CreateOrder, OrderCreated, OrderLine
from eventfold.runtime.reaction import ReactionConfig


def order_id_for_cart(cart_id: str) -> str:
    return f"order-{cart_id}"


def _checkout(event: Event) -> list[Command]:
    if not isinstance(event, CartCheckedOut):
        return []
    lines = tuple(
        OrderLine(
            product_id=item.product_id,
            product_name=item.product_name,
            quantity=item.quantity,
            unit_price=item.price_at_add,
        )
        for item in event.items
    )
    return [CreateOrder(
        order_id=order_id_for_cart(event.cart_id),
        items=lines,
        customer_id=event.customer_id,
    )]


def _reserve_stock(event: Event) -> list[Command]:
    if not isinstance(event, OrderCreated):
        return []
    return [
        AdjustStock(id=line.product_id, adjustment=-line.quantity, reason=f"Order {event.order_id}")
        for line in event.items
    ]


checkout_reaction = ReactionConfig(
    name="CheckoutProcessManager",
    filter=lambda event: isinstance(event, CartCheckedOut),
    react=_checkout,
)

# Cancellations and refunds do not restock: the order keeps no record of
# which reservations were actually applied.
inventory_reaction = ReactionConfig(
    name="InventoryProcessManager",
    filter=lambda event: isinstance(event, OrderCreated),
    react=_reserve_stock,
)
