"""Cart decider.

``AddToCart`` needs the product's price and stock, so the context resolver
looks the product up through an injected callable (normally a read of the
catalog decider's state).  ``decide`` itself never reaches outside its
arguments.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Optional

from pydantic import Field

from eventfold.core.clock import IClock, WallClock
from eventfold.core.messages import Command, Event
from eventfold.examples.shop.catalog import Product
from eventfold.runtime.decider import DeciderConfig
from eventfold.validation.commands import PydanticCommandValidator

EntityId = Annotated[str, Field(min_length=1)]
Quantity = Annotated[int, Field(ge=1, le=99)]

ProductLookup = Callable[[str], Optional[Product]]


# --- Commands ---------------------------------------------------------------

@dataclass(frozen=True)
class CreateCart(Command):
    id: EntityId
    customer_id: Optional[str] = None


@dataclass(frozen=True)
class AddToCart(Command):
    cart_id: EntityId
    product_id: EntityId
    quantity: Quantity


@dataclass(frozen=True)
class UpdateCartItemQuantity(Command):
    """Quantity 0 removes the item."""

    cart_id: EntityId
    product_id: EntityId
    quantity: Annotated[int, Field(ge=0, le=99)]


@dataclass(frozen=True)
class RemoveFromCart(Command):
    cart_id: EntityId
    product_id: EntityId


@dataclass(frozen=True)
class ClearCart(Command):
    cart_id: EntityId


@dataclass(frozen=True)
class CheckoutCart(Command):
    cart_id: EntityId


CART_COMMANDS = (
    CreateCart, AddToCart, UpdateCartItemQuantity, RemoveFromCart, ClearCart, CheckoutCart,
)


# --- State ------------------------------------------------------------------

@dataclass(frozen=True)
class CartItem:
    product_id: str
    product_name: str
    quantity: int
    price_at_add: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.price_at_add * self.quantity


@dataclass(frozen=True)
class Cart:
    id: str
    customer_id: Optional[str]
    items: tuple[CartItem, ...]
    created_at: datetime

    def item(self, product_id: str) -> CartItem | None:
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    @property
    def total(self) -> Decimal:
        return sum((item.subtotal for item in self.items), Decimal("0"))


@dataclass(frozen=True)
class CartState:
    carts: dict[str, Cart]


@dataclass(frozen=True)
class CartContext:
    timestamp: datetime
    product: Optional[Product] = None


# --- Events -----------------------------------------------------------------

@dataclass(frozen=True)
class CartCreated(Event):
    id: str
    customer_id: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class ItemAddedToCart(Event):
    cart_id: str
    product_id: str
    product_name: str
    quantity: int
    price_at_add: Decimal


@dataclass(frozen=True)
class CartItemQuantityUpdated(Event):
    cart_id: str
    product_id: str
    old_quantity: int
    new_quantity: int


@dataclass(frozen=True)
class ItemRemovedFromCart(Event):
    cart_id: str
    product_id: str


@dataclass(frozen=True)
class CartCleared(Event):
    cart_id: str


@dataclass(frozen=True)
class CartCheckedOut(Event):
    cart_id: str
    customer_id: Optional[str]
    items: tuple[CartItem, ...]


@dataclass(frozen=True)
class CartCommandFailed(Event):
    command: str
    reason: str


def decide(cmd: Command, state: CartState, ctx: CartContext) -> list[Event]:
    def failed(reason: str) -> list[Event]:
        return [CartCommandFailed(command=cmd.type, reason=reason)]

    if isinstance(cmd, CreateCart):
        if cmd.id in state.carts:
            return failed("cart-already-exists")
        return [CartCreated(id=cmd.id, customer_id=cmd.customer_id, created_at=ctx.timestamp)]

    cart = state.carts.get(getattr(cmd, "cart_id", ""))
    if cart is None:
        return failed("cart-not-found")

    if isinstance(cmd, AddToCart):
        product = ctx.product
        if product is None or not product.available:
            return failed("product-not-available")
        existing = cart.item(cmd.product_id)
        wanted = cmd.quantity + (existing.quantity if existing else 0)
        if wanted > product.stock:
            return failed("insufficient-stock")
        if existing is not None:
            return [CartItemQuantityUpdated(
                cart_id=cart.id, product_id=cmd.product_id,
                old_quantity=existing.quantity, new_quantity=wanted,
            )]
        return [ItemAddedToCart(
            cart_id=cart.id, product_id=cmd.product_id, product_name=product.name,
            quantity=cmd.quantity, price_at_add=product.price,
        )]

    if isinstance(cmd, (UpdateCartItemQuantity, RemoveFromCart)):
        item = cart.item(cmd.product_id)
        if item is None:
            return failed("item-not-in-cart")
        if isinstance(cmd, RemoveFromCart) or cmd.quantity == 0:
            return [ItemRemovedFromCart(cart_id=cart.id, product_id=cmd.product_id)]
        return [CartItemQuantityUpdated(
            cart_id=cart.id, product_id=cmd.product_id,
            old_quantity=item.quantity, new_quantity=cmd.quantity,
        )]

    if isinstance(cmd, ClearCart):
        if not cart.items:
            return failed("cart-already-empty")
        return [CartCleared(cart_id=cart.id)]

    if isinstance(cmd, CheckoutCart):
        if not cart.items:
            return failed("cart-empty")
        return [CartCheckedOut(
            cart_id=cart.id, customer_id=cart.customer_id, items=cart.items,
        )]

    return []


def _put(state: CartState, cart: Cart) -> CartState:
    return CartState(carts={**state.carts, cart.id: cart})


def evolve(state: CartState, event: Event) -> CartState:
    if isinstance(event, CartCreated):
        return _put(state, Cart(
            id=event.id, customer_id=event.customer_id, items=(), created_at=event.created_at,
        ))

    if isinstance(event, ItemAddedToCart):
        cart = state.carts[event.cart_id]
        item = CartItem(
            product_id=event.product_id, product_name=event.product_name,
            quantity=event.quantity, price_at_add=event.price_at_add,
        )
        return _put(state, replace(cart, items=cart.items + (item,)))

    if isinstance(event, CartItemQuantityUpdated):
        cart = state.carts[event.cart_id]
        items = tuple(
            replace(i, quantity=event.new_quantity) if i.product_id == event.product_id else i
            for i in cart.items
        )
        return _put(state, replace(cart, items=items))

    if isinstance(event, ItemRemovedFromCart):
        cart = state.carts[event.cart_id]
        items = tuple(i for i in cart.items if i.product_id != event.product_id)
        return _put(state, replace(cart, items=items))

    if isinstance(event, CartCleared):
        return _put(state, replace(state.carts[event.cart_id], items=()))

    if isinstance(event, CartCheckedOut):
        carts = dict(state.carts)
        carts.pop(event.cart_id, None)
        return CartState(carts=carts)

    return state


def cart_config(
    name: str = "Cart",
    clock: IClock | None = None,
    products: ProductLookup | None = None,
) -> DeciderConfig:
    """Cart decider.  *products* resolves product ids for ``AddToCart``."""
    clock = clock or WallClock()
    lookup: ProductLookup = products or (lambda product_id: None)

    async def resolve_context(cmd: Command) -> CartContext:
        if isinstance(cmd, AddToCart):
            return CartContext(timestamp=clock.now(), product=lookup(cmd.product_id))
        return CartContext(timestamp=clock.now())

    return DeciderConfig(
        name=name,
        initial_state=CartState(carts={}),
        decide=decide,
        evolve=evolve,
        resolve_context=resolve_context,
        validator=PydanticCommandValidator(CART_COMMANDS),
    )
