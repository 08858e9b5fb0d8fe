"""
Subscribers API.

Public: POST /api/subscribers (email capture, hard-unique on email).
Admin:  everything else. Every write leaves an activity log entry; updates
record only the fields that actually changed.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from pydantic import EmailStr, Field
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from modloot.api.deps import Caller, get_caller
from modloot.core.audit import diff_changes, record_activity, snapshot
from modloot.core.errors import Conflict, NotFound, ValidationFailed
from modloot.core.pagination import catalog_pagination, order_by, page_request
from modloot.middleware.auth import AuthContext, require_admin
from modloot.models.database import get_db
from modloot.models.enums import ActivityType
from modloot.models.schemas import CamelModel
from modloot.models.tables import Subscriber

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/api/subscribers", tags=["subscribers"])

SUBSCRIBER_FIELDS = (
    "email", "name", "ip_address", "phone_number", "isp_provider", "country", "city",
    "region", "lat_long", "postal", "timezone", "source", "is_active",
)
SORTABLE = {"created_at", "updated_at", "email", "name", "country", "source", "is_active"}


class CreateSubscriberRequest(CamelModel):
    email: EmailStr
    name: Optional[str] = Field(None, max_length=255)
    phone_number: Optional[str] = Field(None, max_length=50)
    isp_provider: Optional[str] = Field(None, max_length=255)
    country: Optional[str] = Field(None, max_length=100)
    city: Optional[str] = Field(None, max_length=100)
    region: Optional[str] = Field(None, max_length=100)
    lat_long: Optional[str] = Field(None, max_length=64)
    postal: Optional[str] = Field(None, max_length=32)
    timezone: Optional[str] = Field(None, max_length=64)
    source: str = Field("website", max_length=50)


class UpdateSubscriberRequest(CamelModel):
    email: Optional[EmailStr] = None
    name: Optional[str] = Field(None, max_length=255)
    phone_number: Optional[str] = Field(None, max_length=50)
    isp_provider: Optional[str] = Field(None, max_length=255)
    country: Optional[str] = Field(None, max_length=100)
    city: Optional[str] = Field(None, max_length=100)
    region: Optional[str] = Field(None, max_length=100)
    lat_long: Optional[str] = Field(None, max_length=64)
    postal: Optional[str] = Field(None, max_length=32)
    timezone: Optional[str] = Field(None, max_length=64)
    source: Optional[str] = Field(None, max_length=50)
    is_active: Optional[bool] = None


class BulkStatusRequest(CamelModel):
    subscriber_ids: list[UUID] = Field(min_length=1)
    is_active: bool


def _subscriber_out(s: Subscriber) -> dict:
    return {
        "id": s.id,
        "email": s.email,
        "name": s.name,
        "ipAddress": s.ip_address,
        "phoneNumber": s.phone_number,
        "ispProvider": s.isp_provider,
        "country": s.country,
        "city": s.city,
        "region": s.region,
        "latLong": s.lat_long,
        "postal": s.postal,
        "timezone": s.timezone,
        "source": s.source,
        "isActive": s.is_active,
        "createdAt": s.created_at,
        "updatedAt": s.updated_at,
    }


def _parse_subscriber_id(raw: str) -> UUID:
    try:
        return UUID(raw)
    except ValueError:
        raise ValidationFailed("Invalid subscriber ID") from None


async def _get_subscriber(db: AsyncSession, subscriber_id: UUID) -> Subscriber:
    subscriber = await db.get(Subscriber, subscriber_id)
    if subscriber is None:
        raise NotFound("Subscriber not found")
    return subscriber


async def _email_taken(db: AsyncSession, email: str, exclude_id: Optional[UUID] = None) -> bool:
    stmt = select(Subscriber.id).where(func.lower(Subscriber.email) == email)
    if exclude_id is not None:
        stmt = stmt.where(Subscriber.id != exclude_id)
    return (await db.execute(stmt.limit(1))).first() is not None


@router.post("", status_code=201)
async def create_subscriber(
    body: CreateSubscriberRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    email = str(body.email).strip().lower()
    if await _email_taken(db, email):
        raise Conflict("Email is already subscribed")

    geo = caller.geo
    subscriber = Subscriber(
        email=email,
        name=body.name,
        ip_address=caller.ip,
        phone_number=body.phone_number,
        isp_provider=body.isp_provider,
        country=body.country or (geo.country if geo.found else None),
        city=body.city or (geo.city if geo.found else None),
        region=body.region or (geo.region if geo.found else None),
        lat_long=body.lat_long,
        postal=body.postal,
        timezone=body.timezone or (geo.timezone if geo.found else None),
        source=body.source,
    )
    db.add(subscriber)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Email is already subscribed") from None
    await db.refresh(subscriber)

    await record_activity(
        ActivityType.SUBSCRIBER_CREATE, f"New subscriber: {email}",
        subscriber_id=subscriber.id, email=email, source=subscriber.source, ip=caller.ip,
    )
    logger.info("subscriber_created", subscriber_id=str(subscriber.id), source=subscriber.source)
    return {"success": True, "message": "Successfully subscribed", "data": _subscriber_out(subscriber)}


@router.get("")
async def list_subscribers(
    status: Optional[str] = Query(None, pattern="^(active|inactive)$"),
    source: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    req = page_request(page, limit)
    conditions = []
    if status:
        conditions.append(Subscriber.is_active.is_(status == "active"))
    if source:
        conditions.append(Subscriber.source == source)
    if search:
        conditions.append(or_(
            Subscriber.email.icontains(search, autoescape=True),
            Subscriber.name.icontains(search, autoescape=True),
            Subscriber.country.icontains(search, autoescape=True),
            Subscriber.city.icontains(search, autoescape=True),
        ))

    total = (await db.execute(select(func.count(Subscriber.id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(Subscriber)
        .where(*conditions)
        .order_by(order_by(Subscriber, sort_by, sort_order, SORTABLE), Subscriber.id)
        .offset(req.offset)
        .limit(req.limit)
    )
    counts = (await db.execute(
        select(
            func.count(Subscriber.id).label("total"),
            func.count(Subscriber.id).filter(Subscriber.is_active.is_(True)).label("active"),
        )
    )).one()

    return {
        "success": True,
        "subscribers": [_subscriber_out(s) for s in result.scalars().all()],
        "pagination": catalog_pagination(total, req),
        "stats": {
            "total": counts.total,
            "active": counts.active,
            "inactive": counts.total - counts.active,
        },
    }


@router.get("/stats")
async def subscriber_stats(
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    counts = (await db.execute(
        select(
            func.count(Subscriber.id).label("total"),
            func.count(Subscriber.id).filter(Subscriber.is_active.is_(True)).label("active"),
        )
    )).one()
    sources = await db.execute(
        select(Subscriber.source, func.count(Subscriber.id).label("count"))
        .group_by(Subscriber.source)
        .order_by(func.count(Subscriber.id).desc())
    )
    recent = await db.execute(select(Subscriber).order_by(Subscriber.created_at.desc()).limit(10))

    return {
        "success": True,
        "data": {
            "total": counts.total,
            "active": counts.active,
            "inactive": counts.total - counts.active,
            "sourceBreakdown": [{"source": row.source, "count": row.count} for row in sources.all()],
            "recent": [_subscriber_out(s) for s in recent.scalars().all()],
        },
    }


@router.patch("/bulk-status")
async def bulk_update_status(
    body: BulkStatusRequest,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        update(Subscriber)
        .where(Subscriber.id.in_(body.subscriber_ids))
        .values(is_active=body.is_active)
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    state = "activated" if body.is_active else "deactivated"
    await record_activity(
        ActivityType.SUBSCRIBER_BULK_UPDATE, f"{result.rowcount} subscribers {state}",
        subscriber_ids=body.subscriber_ids, is_active=body.is_active,
        modified=result.rowcount, by=auth.email,
    )
    return {
        "success": True,
        "message": f"{result.rowcount} subscribers {state}",
        "modifiedCount": result.rowcount,
    }


@router.delete("")
async def delete_all_subscribers(
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(delete(Subscriber))
    await db.commit()

    await record_activity(
        ActivityType.SUBSCRIBER_BULK_DELETE, f"All subscribers deleted ({result.rowcount})",
        deleted=result.rowcount, by=auth.email,
    )
    return {
        "success": True,
        "message": f"Deleted {result.rowcount} subscribers",
        "deletedCount": result.rowcount,
    }


@router.get("/{subscriber_id}")
async def get_subscriber(
    subscriber_id: str,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    subscriber = await _get_subscriber(db, _parse_subscriber_id(subscriber_id))
    return {"success": True, "data": _subscriber_out(subscriber)}


@router.put("/{subscriber_id}")
async def update_subscriber(
    subscriber_id: str,
    body: UpdateSubscriberRequest,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    subscriber = await _get_subscriber(db, _parse_subscriber_id(subscriber_id))
    before = snapshot(subscriber, SUBSCRIBER_FIELDS)

    values = body.model_dump(exclude_unset=True)
    if values.get("email"):
        values["email"] = str(values["email"]).strip().lower()
        if values["email"] != subscriber.email and await _email_taken(db, values["email"], subscriber.id):
            raise Conflict("Email is already subscribed")
    for name in ("email", "source", "is_active"):
        if name in values and values[name] is None:
            raise ValidationFailed(f"{name} cannot be null")
    for name, value in values.items():
        setattr(subscriber, name, value)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("Email is already subscribed") from None
    await db.refresh(subscriber)

    changes = diff_changes(before, snapshot(subscriber, SUBSCRIBER_FIELDS))
    await record_activity(
        ActivityType.SUBSCRIBER_UPDATE, f"Subscriber {subscriber.email} updated",
        subscriber_id=subscriber.id, changes=changes, by=auth.email,
    )
    return {"success": True, "message": "Subscriber updated", "data": _subscriber_out(subscriber), "changes": changes}


@router.delete("/{subscriber_id}")
async def delete_subscriber(
    subscriber_id: str,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    subscriber = await _get_subscriber(db, _parse_subscriber_id(subscriber_id))
    deleted = jsonable_encoder(snapshot(subscriber, SUBSCRIBER_FIELDS))
    await db.delete(subscriber)
    await db.commit()

    await record_activity(
        ActivityType.SUBSCRIBER_DELETE, f"Subscriber {deleted['email']} deleted",
        subscriber_id=subscriber.id, subscriber=deleted, by=auth.email,
    )
    return {"success": True, "message": "Subscriber deleted"}
