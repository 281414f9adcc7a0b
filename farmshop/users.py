import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from . import auth, models, schemas
from .errors import Conflict

logger = logging.getLogger(__name__)


async def get_user(db: AsyncSession, user_id: int) -> Optional[models.User]:
    return await db.get(models.User, user_id)


async def get_user_by_username(db: AsyncSession, username: str) -> Optional[models.User]:
    result = await db.execute(select(models.User).where(models.User.username == username))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[models.User]:
    result = await db.execute(select(models.User).where(models.User.email == email))
    return result.scalar_one_or_none()


async def create_user(db: AsyncSession, payload: schemas.RegisterRequest) -> models.User:
    """Register a customer. The role is never taken from the request."""
    if await get_user_by_username(db, payload.username):
        raise Conflict("Username already taken", errors=[{"field": "username", "message": "Username already taken"}])
    if await get_user_by_email(db, payload.email):
        raise Conflict("Email already registered", errors=[{"field": "email", "message": "Email already registered"}])

    user = models.User(
        username=payload.username,
        email=payload.email,
        phone=payload.phone,
        hashed_password=auth.get_password_hash(payload.password),
        role=models.Role.CUSTOMER.value,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # lost a race against a concurrent registration
        await db.rollback()
        raise Conflict("Username or email already registered")
    await db.refresh(user)
    logger.info("Registered user %s (id=%s)", user.username, user.id)
    return user


async def authenticate(db: AsyncSession, username: str, password: str) -> Optional[models.User]:
    user = await get_user_by_username(db, username)
    if not user or not auth.verify_password(password, user.hashed_password):
        return None
    return user


async def ensure_admin(db: AsyncSession, username: str, email: str, password: str) -> models.User:
    """Create the configured admin account, or force an existing one back to admin."""
    user = await get_user_by_username(db, username)
    if user is None:
        user = models.User(
            username=username,
            email=email or f"{username}@localhost",
            hashed_password=auth.get_password_hash(password),
            role=models.Role.ADMIN.value,
        )
        db.add(user)
        logger.info("Seeding admin user %s", username)
    else:
        user.role = models.Role.ADMIN.value
        user.hashed_password = auth.get_password_hash(password)
    await db.commit()
    await db.refresh(user)
    return user
