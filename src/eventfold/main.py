"""Scripted demo scenarios behind ``eventfold demo``.

Each scenario builds one example system, drives it with a fixed command
script and returns a summary of the resulting state.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path
from typing import Any

from eventfold.core.config import Settings, load_settings
from eventfold.examples.counter import Counter, Decrement, Increment, build_counter
from eventfold.examples.shop import build_shop
from eventfold.examples.shop.cart import AddToCart, CartState, CheckoutCart, CreateCart
from eventfold.examples.shop.catalog import AddProduct, CatalogState
from eventfold.examples.shop.order import ConfirmPayment, OrderState, ProcessPayment, ShipOrder
from eventfold.examples.shop.reactions import order_id_for_cart
from eventfold.examples.todo import (
    AddTodo,
    CompleteTodo,
    TodoState,
    UpdateTodoText,
    completion_stats,
    todo_config,
)
from eventfold.infrastructure.persistence import PersistenceManager, PersistenceOptions
from eventfold.infrastructure.state_store import JsonFileStateStore
from eventfold.observability.logger import setup_logging
from eventfold.observability.trace import describe
from eventfold.runtime.system import System

logger = logging.getLogger(__name__)

DEMOS = ("counter", "todo", "shop")

STATE_TYPES: dict[str, Any] = {
    "Counter": Counter,
    "Todo": TodoState,
    "Catalog": CatalogState,
    "Cart": CartState,
    "Order": OrderState,
}


def _setup_logging(settings: Settings) -> None:
    setup_logging(
        level=settings.observability.log_level,
        format=settings.observability.log_format,
    )


# ---------------------------------------------------------------------------
# Scenarios: build wiring, drive it, summarise the result
# ---------------------------------------------------------------------------

class _CounterDemo:
    def build(self, system: System) -> Any:
        return build_counter(system)

    async def script(self, app: Any) -> None:
        await app.counter.dispatch(Increment(amount=3))
        await app.counter.dispatch(Increment(amount=4))
        await app.counter.dispatch(Decrement(amount=50))  # rejected: below zero

    def summary(self, app: Any) -> dict[str, Any]:
        return {
            "value": app.counter.state.value,
            "clicks": app.counter.state.clicks,
            "mode": app.current_mode.value,
        }


class _TodoDemo:
    def build(self, system: System) -> Any:
        return system.add_decider(todo_config())

    async def script(self, todos: Any) -> None:
        await todos.dispatch(AddTodo(id="t1", text="Write the report"))
        await todos.dispatch(AddTodo(id="t2", text="Review the report"))
        await todos.dispatch(UpdateTodoText(id="t1", text="Write the quarterly report"))
        await todos.dispatch(CompleteTodo(id="t1"))

    def summary(self, todos: Any) -> dict[str, Any]:
        return completion_stats(todos.state)


class _ShopDemo:
    def build(self, system: System) -> Any:
        return build_shop(system)

    async def script(self, app: Any) -> None:
        await app.catalog.dispatch(AddProduct(
            id="p1", name="Keyboard", price=Decimal("49.90"), stock=5, category="hardware",
        ))
        await app.catalog.dispatch(AddProduct(
            id="p2", name="Cable", price=Decimal("4.50"), stock=20, category="hardware",
        ))
        await app.cart.dispatch(CreateCart(id="c1", customer_id="alice"))
        await app.cart.dispatch(AddToCart(cart_id="c1", product_id="p1", quantity=1))
        await app.cart.dispatch(AddToCart(cart_id="c1", product_id="p2", quantity=2))
        await app.cart.dispatch(CheckoutCart(cart_id="c1"))

        order_id = order_id_for_cart("c1")
        await app.order.dispatch(ProcessPayment(order_id=order_id, payment_id="pay-1"))
        await app.order.dispatch(ConfirmPayment(order_id=order_id, payment_id="pay-1"))
        await app.order.dispatch(ShipOrder(order_id=order_id, tracking_number="TRK-1"))

    def summary(self, app: Any) -> dict[str, Any]:
        dashboard = app.dashboard_state
        return {
            "orders": dashboard.orders_by_status,
            "revenue": str(dashboard.revenue),
            "stock": {pid: p.stock for pid, p in app.catalog.state.products.items()},
            "carts": app.cart_count.value,
        }


_SCENARIOS = {"counter": _CounterDemo(), "todo": _TodoDemo(), "shop": _ShopDemo()}


async def run_demo(
    name: str,
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
    persist: bool = False,
    trace: int = 0,
) -> dict[str, Any]:
    """Run one demo scenario and return its summary.

    With *persist*, decider state is restored from and saved to the
    configured persistence directory, so repeated runs build on each other.
    A positive *trace* adds the newest trace entries, one line each.
    """
    scenario = _SCENARIOS.get(name)
    if scenario is None:
        raise ValueError(f"Unknown demo {name!r}; choose one of {', '.join(DEMOS)}")

    settings = load_settings(config_path=config_path, overrides=overrides)
    _setup_logging(settings)
    logger.info("Starting demo %s", name)

    system = System(settings)
    manager: PersistenceManager | None = None
    stop_saving = None
    try:
        app = scenario.build(system)
        if persist:
            cfg = settings.persistence
            manager = PersistenceManager(
                JsonFileStateStore(Path(cfg.directory), prefix=cfg.prefix),
                PersistenceOptions.from_config(cfg),
            )
            stop_saving = await manager.enable_for_system(system, STATE_TYPES)

        await scenario.script(app)

        if manager is not None:
            await manager.flush()
        summary = scenario.summary(app)
        summary["errors"] = len(system.errors())
        if trace > 0:
            summary["trace"] = [describe(e) for e in system.trace_log[:trace]]
        return summary
    finally:
        if stop_saving is not None:
            stop_saving()
        system.destroy()
