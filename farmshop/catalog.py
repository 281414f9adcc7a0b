import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import delete, func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from . import models, schemas
from .errors import Conflict, NotFound, ValidationFailed

logger = logging.getLogger(__name__)


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))


# --- CATEGORIES ---
async def list_categories(db: AsyncSession) -> List[models.ProductCategory]:
    result = await db.execute(select(models.ProductCategory).order_by(models.ProductCategory.name))
    return result.scalars().all()


async def get_category(db: AsyncSession, category_id: int) -> models.ProductCategory:
    category = await db.get(models.ProductCategory, category_id)
    if category is None:
        raise NotFound(f"Category {category_id} not found")
    return category


async def create_category(db: AsyncSession, payload: schemas.CategoryCreate) -> models.ProductCategory:
    category = models.ProductCategory(**payload.model_dump())
    db.add(category)
    await db.commit()
    await db.refresh(category)
    return category


async def update_category(db: AsyncSession, category_id: int, payload: schemas.CategoryUpdate) -> models.ProductCategory:
    category = await get_category(db, category_id)
    data = payload.model_dump(exclude_unset=True)
    if "name" in data and data["name"] is None:
        raise ValidationFailed.for_field("name", "name may not be null")
    for field, value in data.items():
        setattr(category, field, value)
    await db.commit()
    await db.refresh(category)
    return category


async def delete_category(db: AsyncSession, category_id: int):
    """Delete a category. Its products stay in the catalog, uncategorised."""
    await get_category(db, category_id)
    await db.execute(
        update(models.Product)
        .where(models.Product.category_id == category_id)
        .values(category_id=None, updated_at=models.utcnow())
    )
    await db.execute(delete(models.ProductCategory).where(models.ProductCategory.id == category_id))
    await db.commit()
    logger.info("Deleted category %s", category_id)


# --- PRODUCTS ---
async def list_products(
    db: AsyncSession,
    q: Optional[str] = None,
    category_id: Optional[int] = None,
    sort_by_price: Optional[str] = None,
) -> List[models.Product]:
    query = select(models.Product)

    if q:
        query = query.where(
            or_(
                models.Product.name.icontains(q, autoescape=True),
                models.Product.description.icontains(q, autoescape=True),
            )
        )
    if category_id is not None:
        query = query.where(models.Product.category_id == category_id)

    if sort_by_price == "asc":
        query = query.order_by(models.Product.price.asc(), models.Product.id)
    elif sort_by_price == "desc":
        query = query.order_by(models.Product.price.desc(), models.Product.id)
    else:
        query = query.order_by(models.Product.id)

    result = await db.execute(query)
    return result.scalars().all()


async def search_products(db: AsyncSession, q: str) -> List[models.Product]:
    """Case-insensitive substring match over name and description."""
    return await list_products(db, q=q)


async def get_product(db: AsyncSession, product_id: int) -> models.Product:
    product = await db.get(models.Product, product_id)
    if product is None:
        raise NotFound(f"Product {product_id} not found")
    return product


async def _check_category(db: AsyncSession, category_id: Optional[int]):
    if category_id is not None and await db.get(models.ProductCategory, category_id) is None:
        raise ValidationFailed.for_field("categoryId", f"Category {category_id} does not exist")


async def create_product(db: AsyncSession, payload: schemas.ProductCreate) -> models.Product:
    await _check_category(db, payload.category_id)
    data = payload.model_dump()
    data["price"] = to_money(data["price"])
    product = models.Product(**data)
    db.add(product)
    await db.commit()
    await db.refresh(product)
    logger.info("Created product %s (%s)", product.id, product.name)
    return product


async def update_product(db: AsyncSession, product_id: int, payload: schemas.ProductUpdate) -> models.Product:
    product = await get_product(db, product_id)
    data = payload.model_dump(exclude_unset=True)
    if "category_id" in data:
        await _check_category(db, data["category_id"])
    for field in ("name", "price", "stock"):
        # nullable in the patch model only so they can be omitted
        if field in data and data[field] is None:
            raise ValidationFailed.for_field(field, f"{field} may not be null")
    if "price" in data:
        data["price"] = to_money(data["price"])

    for field, value in data.items():
        setattr(product, field, value)
    product.version = product.version + 1
    product.updated_at = models.utcnow()
    await db.commit()
    await db.refresh(product)
    return product


async def delete_product(db: AsyncSession, product_id: int):
    await get_product(db, product_id)
    ordered = await db.execute(
        select(func.count(models.OrderItem.id)).where(models.OrderItem.product_id == product_id)
    )
    if ordered.scalar_one():
        raise Conflict(f"Product {product_id} is referenced by existing orders")
    await db.execute(delete(models.Product).where(models.Product.id == product_id))
    await db.commit()
    logger.info("Deleted product %s", product_id)
