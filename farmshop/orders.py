"""Checkout and order lifecycle.

Checkout turns a cart payload into one ``orders`` row plus one ``order_items``
row per line. Prices are taken from the product table at that moment and
frozen on the line item, stock is reserved with an optimistic version check,
and the whole thing commits or rolls back as one unit.
"""
import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from . import models, schemas
from .auth import Identity
from .catalog import to_money
from .errors import (
    AppError,
    Conflict,
    Forbidden,
    InsufficientStock,
    InvalidStatus,
    InvalidTransition,
    NotFound,
    OrderCreationFailed,
    TotalMismatch,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

OrderStatus = models.OrderStatus

TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

TOTAL_TOLERANCE = Decimal("0.01")
LOW_STOCK_LEVEL = 5


def parse_status(value: str) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise InvalidStatus(
            f"Invalid status '{value}'",
            errors=[{"field": "status", "message": f"Must be one of: {allowed}"}],
        )


async def create_order(db: AsyncSession, user_id: int, payload: schemas.OrderCreate) -> models.Order:
    total_amount = to_money(payload.total_amount)
    computed = Decimal("0.00")

    try:
        new_order = models.Order(
            user_id=user_id,
            status=OrderStatus.PENDING.value,
            total_amount=total_amount,
            delivery_address=payload.delivery_address,
            contact_phone=payload.contact_phone,
            notes=payload.notes,
        )
        db.add(new_order)
        await db.flush()

        for index, line in enumerate(payload.items):
            res = await db.execute(select(models.Product).where(models.Product.id == line.product_id))
            product = res.scalar_one_or_none()

            if not product:
                raise ValidationFailed.for_field(f"items.{index}.productId", f"Product {line.product_id} not found")

            if product.stock < line.quantity:
                raise InsufficientStock(
                    f"Out of stock: {product.name}",
                    errors=[{"field": f"items.{index}.quantity", "message": f"Only {product.stock} available"}],
                )

            unit_price = to_money(product.price)

            # Optimistic Locking
            stmt = (
                update(models.Product)
                .where(models.Product.id == product.id)
                .where(models.Product.version == product.version)
                .values(stock=models.Product.stock - line.quantity, version=models.Product.version + 1)
                .execution_options(synchronize_session=False)
            )
            update_result = await db.execute(stmt)

            if update_result.rowcount == 0:
                raise Conflict(f"Stock changed for {product.name}. Please retry.")

            db.add(models.OrderItem(
                order_id=new_order.id,
                product_id=product.id,
                quantity=line.quantity,
                unit_price=unit_price,
            ))
            computed += unit_price * line.quantity

        if abs(computed - total_amount) > TOTAL_TOLERANCE:
            raise TotalMismatch(
                f"Order total {total_amount} does not match item subtotals {computed}",
                errors=[{"field": "totalAmount", "message": f"Expected {computed}"}],
            )

        await db.commit()
    except AppError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Checkout failed for user %s", user_id)
        raise OrderCreationFailed("Order could not be created") from exc

    await db.refresh(new_order)
    logger.info("Order %s created for user %s, total %s", new_order.id, user_id, total_amount)
    return new_order


async def get_order(db: AsyncSession, order_id: int) -> models.Order:
    order = await db.get(models.Order, order_id)
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    return order


async def get_order_items(db: AsyncSession, order_id: int) -> List[models.OrderItem]:
    result = await db.execute(
        select(models.OrderItem).where(models.OrderItem.order_id == order_id).order_by(models.OrderItem.id)
    )
    return result.scalars().all()


async def get_order_for(db: AsyncSession, order_id: int, identity: Identity) -> models.Order:
    """Fetch an order the caller may see: their own, or any order for an admin."""
    order = await get_order(db, order_id)
    if order.user_id != identity.user_id:
        user = await db.get(models.User, identity.user_id)
        if user is None or not user.is_admin:
            raise Forbidden("You do not have access to this order")
    return order


def _newest_first(query):
    return query.order_by(models.Order.created_at.desc(), models.Order.id.desc())


async def list_orders(db: AsyncSession, status: Optional[str] = None) -> List[models.Order]:
    query = select(models.Order)
    if status:
        query = query.where(models.Order.status == parse_status(status).value)
    result = await db.execute(_newest_first(query))
    return result.scalars().all()


async def list_orders_for_user(db: AsyncSession, user_id: int) -> List[models.Order]:
    result = await db.execute(_newest_first(select(models.Order).where(models.Order.user_id == user_id)))
    return result.scalars().all()


async def update_status(db: AsyncSession, order_id: int, new_status: str) -> models.Order:
    target = parse_status(new_status)
    order = await get_order(db, order_id)
    current = OrderStatus(order.status)

    if target not in TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot move order {order_id} from {current.value} to {target.value}")

    # only moves the row if nobody changed its status since we read it
    moved = await db.execute(
        update(models.Order)
        .where(models.Order.id == order_id, models.Order.status == current.value)
        .values(status=target.value, updated_at=models.utcnow())
        .execution_options(synchronize_session=False)
    )
    if moved.rowcount == 0:
        await db.rollback()
        raise Conflict(f"Order {order_id} was updated by someone else. Please retry.")

    if target is OrderStatus.CANCELLED:
        # release the stock reserved at checkout
        for item in await get_order_items(db, order_id):
            await db.execute(
                update(models.Product)
                .where(models.Product.id == item.product_id)
                .values(stock=models.Product.stock + item.quantity, version=models.Product.version + 1)
                .execution_options(synchronize_session=False)
            )

    await db.commit()
    await db.refresh(order)
    logger.info("Order %s moved %s -> %s", order_id, current.value, target.value)
    return order


async def dashboard_summary(db: AsyncSession) -> dict:
    products = (await db.execute(select(func.count(models.Product.id)))).scalar_one()
    categories = (await db.execute(select(func.count(models.ProductCategory.id)))).scalar_one()
    low_stock = (await db.execute(
        select(func.count(models.Product.id)).where(models.Product.stock <= LOW_STOCK_LEVEL)
    )).scalar_one()

    rows = await db.execute(select(models.Order.status, func.count(models.Order.id)).group_by(models.Order.status))
    by_status = {s.value: 0 for s in OrderStatus}
    by_status.update({status: count for status, count in rows.all()})

    revenue = (await db.execute(
        select(func.coalesce(func.sum(models.Order.total_amount), 0))
        .where(models.Order.status != OrderStatus.CANCELLED.value)
    )).scalar_one()

    return {
        "products": products,
        "categories": categories,
        "low_stock": low_stock,
        "orders_by_status": by_status,
        "revenue": float(revenue or 0),
    }
