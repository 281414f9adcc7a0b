import logging
import secrets
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Request
from passlib.context import CryptContext
from pydantic import BaseModel
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from . import models
from .config import SESSION_COOKIE_NAME, SESSION_TTL_HOURS
from .database import get_db
from .errors import Forbidden, Unauthorized

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


class Identity(BaseModel):
    """Who is calling, resolved from the session cookie for a single request."""
    user_id: int
    is_admin: bool = False
    token: str


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


async def create_session(db: AsyncSession, user: models.User) -> models.Session:
    session = models.Session(
        token=secrets.token_urlsafe(32),
        user_id=user.id,
        is_admin=user.is_admin,
        expires_at=models.utcnow() + timedelta(hours=SESSION_TTL_HOURS),
    )
    db.add(session)
    await db.commit()
    return session


async def destroy_session(db: AsyncSession, token: str):
    await db.execute(delete(models.Session).where(models.Session.token == token))
    await db.commit()


async def get_identity(request: Request, db: AsyncSession = Depends(get_db)) -> Optional[Identity]:
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        return None
    session = await db.get(models.Session, token)
    if session is None:
        return None
    if models.as_utc(session.expires_at) <= models.utcnow():
        logger.info("Session for user %s expired", session.user_id)
        await destroy_session(db, token)
        return None
    return Identity(user_id=session.user_id, is_admin=session.is_admin, token=token)


async def require_authenticated(identity: Optional[Identity] = Depends(get_identity)) -> Identity:
    if identity is None:
        raise Unauthorized("Authentication required")
    return identity


async def require_admin(
    identity: Optional[Identity] = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    if identity is None:
        raise Unauthorized("Authentication required")
    # The session flag may be stale, the stored role decides
    user = await db.get(models.User, identity.user_id)
    if user is None or not user.is_admin:
        logger.warning("Non-admin user %s denied admin access", identity.user_id)
        raise Forbidden("Admin access required")
    return identity
