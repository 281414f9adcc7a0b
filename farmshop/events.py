from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from . import models, schemas
from .errors import NotFound, ValidationFailed


async def list_events(
    db: AsyncSession, start: Optional[datetime] = None, end: Optional[datetime] = None
) -> List[models.FarmEvent]:
    start, end = models.as_utc(start), models.as_utc(end)
    if start and end and start > end:
        raise ValidationFailed.for_field("start", "start must not be after end")
    query = select(models.FarmEvent)
    if start:
        query = query.where(models.FarmEvent.event_date >= start)
    if end:
        query = query.where(models.FarmEvent.event_date <= end)
    result = await db.execute(query.order_by(models.FarmEvent.event_date, models.FarmEvent.id))
    return result.scalars().all()


async def get_event(db: AsyncSession, event_id: int) -> models.FarmEvent:
    event = await db.get(models.FarmEvent, event_id)
    if event is None:
        raise NotFound(f"Event {event_id} not found")
    return event


async def create_event(db: AsyncSession, payload: schemas.EventCreate) -> models.FarmEvent:
    data = payload.model_dump()
    data["event_date"] = models.as_utc(data["event_date"])
    event = models.FarmEvent(**data)
    db.add(event)
    await db.commit()
    await db.refresh(event)
    return event


async def update_event(db: AsyncSession, event_id: int, payload: schemas.EventUpdate) -> models.FarmEvent:
    event = await get_event(db, event_id)
    data = payload.model_dump(exclude_unset=True)
    for field in ("title", "event_date", "start_time", "end_time", "location", "category"):
        if field in data and data[field] is None:
            raise ValidationFailed.for_field(field, f"{field} may not be null")
    if "event_date" in data:
        data["event_date"] = models.as_utc(data["event_date"])
    for field, value in data.items():
        setattr(event, field, value)
    event.updated_at = models.utcnow()
    await db.commit()
    await db.refresh(event)
    return event


async def delete_event(db: AsyncSession, event_id: int):
    await get_event(db, event_id)
    await db.execute(delete(models.FarmEvent).where(models.FarmEvent.id == event_id))
    await db.commit()
