import logging
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from . import models, schemas
from .errors import NotFound

logger = logging.getLogger(__name__)


async def _by_email(db: AsyncSession, email: str):
    result = await db.execute(select(models.Subscription).where(models.Subscription.email == email))
    return result.scalar_one_or_none()


async def list_subscriptions(db: AsyncSession) -> List[models.Subscription]:
    result = await db.execute(select(models.Subscription).order_by(models.Subscription.created_at.desc()))
    return result.scalars().all()


def _reactivate(subscription: models.Subscription, phone):
    subscription.active = True
    if phone:
        subscription.phone = phone


async def subscribe(db: AsyncSession, payload: schemas.SubscribeRequest) -> models.Subscription:
    """Subscribe an email. Re-subscribing reactivates it instead of failing."""
    subscription = await _by_email(db, payload.email)
    if subscription is None:
        db.add(models.Subscription(email=payload.email, phone=payload.phone, active=True))
        try:
            await db.commit()
        except IntegrityError:
            # a concurrent subscribe for the same email committed first
            await db.rollback()
        subscription = await _by_email(db, payload.email)
    _reactivate(subscription, payload.phone)
    await db.commit()
    await db.refresh(subscription)
    logger.info("Subscribed %s", payload.email)
    return subscription


async def unsubscribe(db: AsyncSession, email: str) -> models.Subscription:
    subscription = await _by_email(db, email)
    if subscription is None:
        raise NotFound(f"No subscription for {email}")
    subscription.active = False
    await db.commit()
    await db.refresh(subscription)
    logger.info("Unsubscribed %s", email)
    return subscription
