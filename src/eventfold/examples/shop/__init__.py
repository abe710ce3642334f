"""Shop example: catalog, cart and order deciders wired by process managers.

Checking out a cart cascades into order creation and stock reservation::

    app = build_shop()
    await app.cart.dispatch(CheckoutCart(cart_id="c1"))
    # app.order.state now holds "order-c1"; app.catalog stock is reduced.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from eventfold.core.clock import IClock
from eventfold.examples.shop.cart import Cart, cart_config
from eventfold.examples.shop.catalog import available_products, catalog_config, products_by_category
from eventfold.examples.shop.dashboard import DashboardState, dashboard_projector
from eventfold.examples.shop.order import PaymentGateway, order_config, orders_with_status, recent_orders
from eventfold.examples.shop.reactions import checkout_reaction, inventory_reaction
from eventfold.runtime.decider import DecisionUnit
from eventfold.runtime.projector import Projector
from eventfold.runtime.system import System
from eventfold.runtime.views import DerivedView, select


@dataclass
class ShopApp:
    system: System
    catalog: DecisionUnit
    cart: DecisionUnit
    order: DecisionUnit
    dashboard: Projector
    available_products: DerivedView
    products_by_category: DerivedView
    cart_count: DerivedView
    pending_orders: DerivedView
    recent_orders: DerivedView

    @property
    def dashboard_state(self) -> DashboardState:
        return self.dashboard.state

    def get_cart(self, cart_id: str) -> Cart | None:
        return self.cart.state.carts.get(cart_id)

    def cart_total(self, cart_id: str) -> Decimal:
        cart = self.get_cart(cart_id)
        return cart.total if cart is not None else Decimal("0")


def build_shop(
    system: System | None = None,
    clock: IClock | None = None,
    payments: PaymentGateway | None = None,
) -> ShopApp:
    system = system or System(clock=clock)
    catalog = system.add_decider(catalog_config(clock=clock))
    cart = system.add_decider(cart_config(
        clock=clock,
        products=lambda product_id: catalog.state.products.get(product_id),
    ))
    order = system.add_decider(order_config(clock=clock, payments=payments))

    system.add_process_manager(checkout_reaction, cart, order)
    system.add_process_manager(inventory_reaction, order, catalog)
    dashboard = system.add_global_projector(dashboard_projector)

    return ShopApp(
        system=system,
        catalog=catalog,
        cart=cart,
        order=order,
        dashboard=dashboard,
        available_products=select(catalog, available_products),
        products_by_category=select(catalog, products_by_category),
        cart_count=select(cart, lambda s: len(s.carts)),
        pending_orders=select(order, lambda s: orders_with_status(s, "Pending")),
        recent_orders=select(order, recent_orders),
    )


__all__ = ["ShopApp", "build_shop"]
