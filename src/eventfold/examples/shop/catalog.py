"""Catalog decider: products, prices and stock levels."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import Field

from eventfold.core.clock import IClock, WallClock
from eventfold.core.messages import Command, Event
from eventfold.runtime.decider import DeciderConfig
from eventfold.validation.commands import PydanticCommandValidator

ProductId = Annotated[str, Field(min_length=1)]
Price = Annotated[Decimal, Field(gt=0, max_digits=10, decimal_places=2)]
Stock = Annotated[int, Field(ge=0)]

ProductStatus = Literal["Active", "OutOfStock", "Discontinued"]


# --- Commands ---------------------------------------------------------------

@dataclass(frozen=True)
class AddProduct(Command):
    id: ProductId
    name: Annotated[str, Field(min_length=1, max_length=200)]
    price: Price
    stock: Stock
    category: str = "general"
    description: str = ""


@dataclass(frozen=True)
class UpdateProductPrice(Command):
    id: ProductId
    price: Price


@dataclass(frozen=True)
class UpdateProductStock(Command):
    id: ProductId
    stock: Stock


@dataclass(frozen=True)
class AdjustStock(Command):
    id: ProductId
    adjustment: int
    reason: str = ""


@dataclass(frozen=True)
class DiscontinueProduct(Command):
    id: ProductId


@dataclass(frozen=True)
class ReactivateProduct(Command):
    id: ProductId


CATALOG_COMMANDS = (
    AddProduct, UpdateProductPrice, UpdateProductStock, AdjustStock,
    DiscontinueProduct, ReactivateProduct,
)


# --- Events -----------------------------------------------------------------

@dataclass(frozen=True)
class ProductAdded(Event):
    id: str
    name: str
    price: Decimal
    stock: int
    category: str
    description: str


@dataclass(frozen=True)
class ProductPriceUpdated(Event):
    id: str
    old_price: Decimal
    new_price: Decimal


@dataclass(frozen=True)
class ProductStockUpdated(Event):
    id: str
    old_stock: int
    new_stock: int
    reason: str = ""


@dataclass(frozen=True)
class ProductOutOfStock(Event):
    id: str


@dataclass(frozen=True)
class ProductBackInStock(Event):
    id: str
    stock: int


@dataclass(frozen=True)
class ProductDiscontinued(Event):
    id: str


@dataclass(frozen=True)
class ProductReactivated(Event):
    id: str


@dataclass(frozen=True)
class CatalogCommandFailed(Event):
    command: str
    reason: str


# --- State ------------------------------------------------------------------

@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: Decimal
    stock: int
    category: str
    description: str
    status: ProductStatus

    @property
    def available(self) -> bool:
        return self.status == "Active" and self.stock > 0


@dataclass(frozen=True)
class CatalogState:
    products: dict[str, Product]


@dataclass(frozen=True)
class CatalogContext:
    timestamp: datetime


def _stock_events(product: Product, new_stock: int, reason: str = "") -> list[Event]:
    events: list[Event] = [ProductStockUpdated(
        id=product.id, old_stock=product.stock, new_stock=new_stock, reason=reason,
    )]
    if product.stock == 0 and new_stock > 0:
        events.append(ProductBackInStock(id=product.id, stock=new_stock))
    elif product.stock > 0 and new_stock == 0:
        events.append(ProductOutOfStock(id=product.id))
    return events


def decide(cmd: Command, state: CatalogState, ctx: CatalogContext) -> list[Event]:
    def failed(reason: str) -> list[Event]:
        return [CatalogCommandFailed(command=cmd.type, reason=reason)]

    if isinstance(cmd, AddProduct):
        if cmd.id in state.products:
            return failed("product-already-exists")
        return [ProductAdded(
            id=cmd.id, name=cmd.name, price=cmd.price, stock=cmd.stock,
            category=cmd.category, description=cmd.description,
        )]

    product = state.products.get(getattr(cmd, "id", ""))
    if product is None:
        return failed("product-not-found")

    if isinstance(cmd, UpdateProductPrice):
        if product.status == "Discontinued":
            return failed("product-discontinued")
        return [ProductPriceUpdated(id=cmd.id, old_price=product.price, new_price=cmd.price)]

    if isinstance(cmd, UpdateProductStock):
        return _stock_events(product, cmd.stock)

    if isinstance(cmd, AdjustStock):
        # Stock never goes negative; oversold quantities clamp at zero.
        return _stock_events(product, max(0, product.stock + cmd.adjustment), cmd.reason)

    if isinstance(cmd, DiscontinueProduct):
        if product.status == "Discontinued":
            return failed("already-discontinued")
        return [ProductDiscontinued(id=cmd.id)]

    if isinstance(cmd, ReactivateProduct):
        if product.status != "Discontinued":
            return failed("not-discontinued")
        return [ProductReactivated(id=cmd.id)]

    return []


def _put(state: CatalogState, product: Product) -> CatalogState:
    return CatalogState(products={**state.products, product.id: product})


def evolve(state: CatalogState, event: Event) -> CatalogState:
    if isinstance(event, ProductAdded):
        return _put(state, Product(
            id=event.id, name=event.name, price=event.price, stock=event.stock,
            category=event.category, description=event.description,
            status="Active" if event.stock > 0 else "OutOfStock",
        ))

    if isinstance(event, ProductPriceUpdated):
        return _put(state, replace(state.products[event.id], price=event.new_price))

    if isinstance(event, ProductStockUpdated):
        product = state.products[event.id]
        status = product.status
        if status != "Discontinued":
            status = "OutOfStock" if event.new_stock == 0 else "Active"
        return _put(state, replace(product, stock=event.new_stock, status=status))

    if isinstance(event, ProductDiscontinued):
        return _put(state, replace(state.products[event.id], status="Discontinued"))

    if isinstance(event, ProductReactivated):
        product = state.products[event.id]
        return _put(state, replace(
            product, status="Active" if product.stock > 0 else "OutOfStock",
        ))

    # ProductOutOfStock / ProductBackInStock are notifications; the stock
    # update that accompanies them already moved the status.
    return state


def catalog_config(name: str = "Catalog", clock: IClock | None = None) -> DeciderConfig:
    clock = clock or WallClock()

    def resolve_context(cmd: Command) -> CatalogContext:
        return CatalogContext(timestamp=clock.now())

    return DeciderConfig(
        name=name,
        initial_state=CatalogState(products={}),
        decide=decide,
        evolve=evolve,
        resolve_context=resolve_context,
        validator=PydanticCommandValidator(CATALOG_COMMANDS),
    )


def available_products(state: CatalogState) -> list[Product]:
    return [p for p in state.products.values() if p.available]


def products_by_category(state: CatalogState) -> dict[str, list[Product]]:
    grouped: dict[str, list[Product]] = {}
    for product in state.products.values():
        grouped.setdefault(product.category, []).append(product)
    return grouped
