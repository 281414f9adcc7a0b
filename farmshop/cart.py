"""Shopping cart kept on the client until checkout.

The server never stores a cart. A :class:`Cart` collects products and turns
into an :class:`~farmshop.schemas.OrderCreate` payload for ``POST /api/orders``.
Totals here use the live product price; the server freezes its own price
per line when the order is created.
"""
from dataclasses import dataclass
from typing import List, Optional

from .schemas import OrderCreate, OrderItemIn, ProductOut


@dataclass
class CartItem:
    product: ProductOut
    quantity: int = 1

    @property
    def subtotal(self) -> float:
        return self.product.price * self.quantity


class Cart:
    def __init__(self):
        self.items: List[CartItem] = []

    def __len__(self):
        return len(self.items)

    def _find(self, product_id: int) -> Optional[CartItem]:
        return next((item for item in self.items if item.product.id == product_id), None)

    def add(self, product: ProductOut) -> CartItem:
        item = self._find(product.id)
        if item:
            item.quantity += 1
        else:
            item = CartItem(product=product)
            self.items.append(item)
        return item

    def update_quantity(self, product_id: int, quantity: int):
        # below one is ignored, removal goes through remove()
        if quantity < 1:
            return
        item = self._find(product_id)
        if item:
            item.quantity = quantity

    def remove(self, product_id: int):
        self.items = [item for item in self.items if item.product.id != product_id]

    def calculate_total(self) -> float:
        return round(sum(item.subtotal for item in self.items), 2)

    def clear(self):
        self.items = []

    def to_order(self, delivery_address: str, contact_phone: str, notes: Optional[str] = None) -> OrderCreate:
        return OrderCreate(
            total_amount=self.calculate_total(),
            delivery_address=delivery_address,
            contact_phone=contact_phone,
            notes=notes,
            items=[
                OrderItemIn(product_id=item.product.id, quantity=item.quantity, unit_price=item.product.price)
                for item in self.items
            ],
        )
