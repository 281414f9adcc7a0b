import logging
from datetime import datetime
from typing import List, Optional
from fastapi import FastAPI, Depends, Query, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession

# Local imports
from .config import (
    ADMIN_EMAIL,
    ADMIN_PASSWORD,
    ADMIN_USERNAME,
    CORS_ORIGINS,
    LOG_LEVEL,
    SESSION_COOKIE_NAME,
    SESSION_COOKIE_SECURE,
    SESSION_TTL_HOURS,
)
from .database import engine, Base, SessionLocal, get_db
from . import auth, cache, catalog, events, orders, schemas, subscriptions, users
from .auth import Identity, get_identity, require_admin, require_authenticated
from .errors import Unauthorized, install_error_handlers
from .worker import dispatch, send_order_email, send_status_email

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Farm Shop API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
install_error_handlers(app)


@app.on_event("startup")
async def startup():
    async with engine.begin() as conn:
        # Caution: In real prod, use Alembic migrations.
        await conn.run_sync(Base.metadata.create_all)
    if ADMIN_USERNAME and ADMIN_PASSWORD:
        async with SessionLocal() as db:
            await users.ensure_admin(db, ADMIN_USERNAME, ADMIN_EMAIL, ADMIN_PASSWORD)


@app.get("/health")
async def health():
    return {"status": "ok"}


# --- AUTH ---
@app.post("/api/auth/register", response_model=schemas.UserEnvelope, status_code=status.HTTP_201_CREATED)
async def register(payload: schemas.RegisterRequest, db: AsyncSession = Depends(get_db)):
    user = await users.create_user(db, payload)
    return {"user": user}


@app.post("/api/auth/login", response_model=schemas.UserEnvelope)
async def login(payload: schemas.LoginRequest, response: Response, db: AsyncSession = Depends(get_db)):
    user = await users.authenticate(db, payload.username, payload.password)
    if not user:
        logger.info("Failed login for %s", payload.username)
        raise Unauthorized("Invalid username or password")
    session = await auth.create_session(db, user)
    response.set_cookie(
        SESSION_COOKIE_NAME,
        session.token,
        max_age=SESSION_TTL_HOURS * 3600,
        httponly=True,
        samesite="lax",
        secure=SESSION_COOKIE_SECURE,
    )
    logger.info("User %s logged in", user.id)
    return {"user": user}


@app.post("/api/auth/logout", response_model=schemas.Message)
async def logout(response: Response, identity: Identity = Depends(require_authenticated), db: AsyncSession = Depends(get_db)):
    await auth.destroy_session(db, identity.token)
    response.delete_cookie(SESSION_COOKIE_NAME)
    return {"message": "Logged out"}


@app.get("/api/auth/check", response_model=schemas.AuthCheck)
async def check(identity: Optional[Identity] = Depends(get_identity)):
    if identity is None:
        return {"authenticated": False}
    return {"authenticated": True, "user_id": identity.user_id}


# --- CATEGORIES ---
@app.get("/api/categories", response_model=List[schemas.CategoryOut])
async def get_categories(db: AsyncSession = Depends(get_db)):
    return await catalog.list_categories(db)


@app.get("/api/categories/{category_id}", response_model=schemas.CategoryOut)
async def get_category(category_id: int, db: AsyncSession = Depends(get_db)):
    return await catalog.get_category(db, category_id)


@app.get("/api/categories/{category_id}/products", response_model=List[schemas.ProductOut])
async def get_category_products(category_id: int, db: AsyncSession = Depends(get_db)):
    await catalog.get_category(db, category_id)
    return await catalog.list_products(db, category_id=category_id)


@app.post("/api/categories", response_model=schemas.CategoryOut, status_code=status.HTTP_201_CREATED)
async def create_category(payload: schemas.CategoryCreate, db: AsyncSession = Depends(get_db), admin: Identity = Depends(require_admin)):
    return await catalog.create_category(db, payload)


@app.put("/api/categories/{category_id}", response_model=schemas.CategoryOut)
async def update_category(category_id: int, payload: schemas.CategoryUpdate, db: AsyncSession = Depends(get_db), admin: Identity = Depends(require_admin)):
    return await catalog.update_category(db, category_id, payload)


@app.delete("/api/categories/{category_id}", response_model=schemas.Message)
async def delete_category(category_id: int, db: AsyncSession = Depends(get_db), admin: Identity = Depends(require_admin)):
    await catalog.delete_category(db, category_id)
    cache.invalidate_products()
    return {"message": "Category deleted"}


# --- PRODUCTS ---
@app.get("/api/products", response_model=List[schemas.ProductOut])
async def get_products(
    q: Optional[str] = None,
    category_id: Optional[int] = Query(None, alias="categoryId"),
    sort_by_price: Optional[str] = Query(None, alias="sortByPrice", pattern="^(asc|desc)$"),
    db: AsyncSession = Depends(get_db),
):
    unfiltered = not q and category_id is None and not sort_by_price
    if unfiltered:
        cached = cache.get_products()
        if cached is not None:
            return cached

    products = await catalog.list_products(db, q=q, category_id=category_id, sort_by_price=sort_by_price)

    # Only cache if no filters applied
    if unfiltered:
        cache.set_products([
            schemas.ProductOut.model_validate(p).model_dump(mode="json", by_alias=True) for p in products
        ])
    return products


@app.get("/api/products/{product_id}", response_model=schemas.ProductOut)
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    return await catalog.get_product(db, product_id)


@app.post("/api/products", response_model=schemas.ProductOut, status_code=status.HTTP_201_CREATED)
async def create_product(payload: schemas.ProductCreate, db: AsyncSession = Depends(get_db), admin: Identity = Depends(require_admin)):
    product = await catalog.create_product(db, payload)
    cache.invalidate_products()
    return product


@app.put("/api/products/{product_id}", response_model=schemas.ProductOut)
async def update_product(product_id: int, payload: schemas.ProductUpdate, db: AsyncSession = Depends(get_db), admin: Identity = Depends(require_admin)):
    product = await catalog.update_product(db, product_id, payload)
    cache.invalidate_products()
    return product


@app.delete("/api/products/{product_id}", response_model=schemas.Message)
async def delete_product(product_id: int, db: AsyncSession = Depends(get_db), admin: Identity = Depends(require_admin)):
    await catalog.delete_product(db, product_id)
    cache.invalidate_products()
    return {"message": "Product deleted"}


# --- ORDERS ---
@app.post("/api/orders", response_model=schemas.OrderEnvelope, status_code=status.HTTP_201_CREATED)
async def create_order(payload: schemas.OrderCreate, db: AsyncSession = Depends(get_db), identity: Identity = Depends(require_authenticated)):
    order = await orders.create_order(db, identity.user_id, payload)

    # stock moved, and the customer gets a confirmation
    cache.invalidate_products()
    user = await users.get_user(db, identity.user_id)
    if user:
        dispatch(send_order_email, user.email, order.id, float(order.total_amount))
    return {"order": order}


@app.get("/api/orders", response_model=List[schemas.OrderOut])
async def get_my_orders(db: AsyncSession = Depends(get_db), identity: Identity = Depends(require_authenticated)):
    return await orders.list_orders_for_user(db, identity.user_id)


@app.get("/api/orders/{order_id}", response_model=schemas.OrderDetail)
async def get_order(order_id: int, db: AsyncSession = Depends(get_db), identity: Identity = Depends(require_authenticated)):
    order = await orders.get_order_for(db, order_id, identity)
    items = await orders.get_order_items(db, order_id)
    return {"order": order, "items": items}


# --- ADMIN ---
@app.get("/api/admin/orders", response_model=List[schemas.OrderOut])
async def admin_list_orders(status: Optional[str] = None, db: AsyncSession = Depends(get_db), admin: Identity = Depends(require_admin)):
    return await orders.list_orders(db, status=status)


@app.put("/api/admin/orders/{order_id}", response_model=schemas.OrderEnvelope)
async def admin_update_order(order_id: int, payload: schemas.StatusChange, db: AsyncSession = Depends(get_db), admin: Identity = Depends(require_admin)):
    order = await orders.update_status(db, order_id, payload.status)
    if order.status == orders.OrderStatus.CANCELLED.value:
        cache.invalidate_products()
    owner = await users.get_user(db, order.user_id) if order.user_id else None
    if owner:
        dispatch(send_status_email, owner.email, order.id, order.status)
    return {"order": order}


@app.get("/api/admin/summary", response_model=schemas.AdminSummary)
async def admin_summary(db: AsyncSession = Depends(get_db), admin: Identity = Depends(require_admin)):
    return await orders.dashboard_summary(db)


@app.get("/api/admin/subscriptions", response_model=List[schemas.SubscriptionOut])
async def admin_subscriptions(db: AsyncSession = Depends(get_db), admin: Identity = Depends(require_admin)):
    return await subscriptions.list_subscriptions(db)


# --- EVENTS ---
@app.get("/api/events", response_model=List[schemas.EventOut])
async def get_events(start: Optional[datetime] = None, end: Optional[datetime] = None, db: AsyncSession = Depends(get_db)):
    return await events.list_events(db, start=start, end=end)


@app.get("/api/events/{event_id}", response_model=schemas.EventOut)
async def get_event(event_id: int, db: AsyncSession = Depends(get_db)):
    return await events.get_event(db, event_id)


@app.post("/api/events", response_model=schemas.EventOut, status_code=status.HTTP_201_CREATED)
async def create_event(payload: schemas.EventCreate, db: AsyncSession = Depends(get_db), admin: Identity = Depends(require_admin)):
    return await events.create_event(db, payload)


@app.put("/api/events/{event_id}", response_model=schemas.EventOut)
async def update_event(event_id: int, payload: schemas.EventUpdate, db: AsyncSession = Depends(get_db), admin: Identity = Depends(require_admin)):
    return await events.update_event(db, event_id, payload)


@app.delete("/api/events/{event_id}", response_model=schemas.Message)
async def delete_event(event_id: int, db: AsyncSession = Depends(get_db), admin: Identity = Depends(require_admin)):
    await events.delete_event(db, event_id)
    return {"message": "Event deleted"}


# --- SUBSCRIPTIONS ---
@app.post("/api/subscribe")
async def subscribe(payload: schemas.SubscribeRequest, db: AsyncSession = Depends(get_db)):
    subscription = await subscriptions.subscribe(db, payload)
    return {"message": "Subscription successful", "email": subscription.email}


@app.post("/api/unsubscribe", response_model=schemas.Message)
async def unsubscribe(payload: schemas.UnsubscribeRequest, db: AsyncSession = Depends(get_db)):
    await subscriptions.unsubscribe(db, payload.email)
    return {"message": "Unsubscribed"}
