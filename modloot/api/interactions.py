"""
Interactions API — append-only user activity events (downloads, redeems, page views).

Records are enriched server-side with geo and device data from the request.
Only the status field can change after creation.
"""

import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import EmailStr, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from modloot.api.deps import Caller, get_caller
from modloot.core.device import parse_device
from modloot.core.errors import NotFound, ValidationFailed
from modloot.core.pagination import catalog_pagination, order_by, page_request
from modloot.middleware.auth import AuthContext, require_admin
from modloot.models.database import get_db
from modloot.models.enums import InteractionStatus, InteractionType
from modloot.models.schemas import CamelModel
from modloot.models.tables import Interaction, utcnow

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/api/interactions", tags=["interactions"])

SORTABLE = {"created_at", "type", "status", "country", "device_type", "offer_title"}


class RecordInteractionRequest(CamelModel):
    type: InteractionType = InteractionType.OTHER
    offer_title: str = Field(min_length=1, max_length=255)
    action_link: Optional[str] = None
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = Field(None, max_length=50)
    status: InteractionStatus = InteractionStatus.INITIATED
    error_message: Optional[str] = None


class StatusUpdateRequest(CamelModel):
    status: InteractionStatus
    error_message: Optional[str] = None


def _interaction_out(i: Interaction) -> dict:
    return {
        "id": i.id,
        "type": i.type,
        "userAgent": i.user_agent,
        "email": i.email,
        "phoneNumber": i.phone_number,
        "ipAddress": i.ip_address,
        "country": i.country,
        "city": i.city,
        "region": i.region,
        "timezone": i.timezone,
        "deviceType": i.device_type,
        "browser": i.browser,
        "operatingSystem": i.operating_system,
        "platform": i.platform,
        "offerTitle": i.offer_title,
        "actionLink": i.action_link,
        "status": i.status,
        "errorMessage": i.error_message,
        "createdAt": i.created_at,
        "updatedAt": i.updated_at,
    }


def _parse_interaction_id(raw: str) -> UUID:
    try:
        return UUID(raw)
    except ValueError:
        raise ValidationFailed("Invalid interaction ID") from None


async def _get_interaction(db: AsyncSession, interaction_id: UUID) -> Interaction:
    interaction = await db.get(Interaction, interaction_id)
    if interaction is None:
        raise NotFound("Interaction not found")
    return interaction


async def _grouped(db: AsyncSession, column, *where, limit: Optional[int] = None) -> list[dict]:
    stmt = (
        select(column.label("key"), func.count(Interaction.id).label("count"))
        .where(*where)
        .group_by(column)
        .order_by(func.count(Interaction.id).desc())
    )
    if limit:
        stmt = stmt.limit(limit)
    result = await db.execute(stmt)
    return [{"_id": row.key, "count": row.count} for row in result.all()]


@router.post("", status_code=201)
async def record_interaction(
    body: RecordInteractionRequest,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    device = parse_device(caller.user_agent)
    interaction = Interaction(
        type=body.type.value,
        user_agent=caller.user_agent,
        email=str(body.email).lower() if body.email else None,
        phone_number=body.phone_number,
        ip_address=caller.ip,
        country=caller.geo.country,
        city=caller.geo.city,
        region=caller.geo.region,
        timezone=caller.geo.timezone,
        device_type=device.device_type,
        browser=device.browser,
        operating_system=device.os,
        platform=device.platform,
        offer_title=body.offer_title,
        action_link=body.action_link,
        status=body.status.value,
        error_message=body.error_message,
    )
    db.add(interaction)
    await db.commit()
    await db.refresh(interaction)

    logger.info("interaction_recorded", interaction_id=str(interaction.id), type=interaction.type,
                country=interaction.country, device=interaction.device_type)
    return {"success": True, "message": "Interaction recorded", "data": _interaction_out(interaction)}


@router.get("")
async def list_interactions(
    type: Optional[InteractionType] = None,
    status: Optional[InteractionStatus] = None,
    country: Optional[str] = None,
    device_type: Optional[str] = Query(None, alias="deviceType"),
    email: Optional[str] = None,
    start_date: Optional[datetime.datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime.datetime] = Query(None, alias="endDate"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    req = page_request(page, limit)
    conditions = []
    if type:
        conditions.append(Interaction.type == type.value)
    if status:
        conditions.append(Interaction.status == status.value)
    if country:
        conditions.append(Interaction.country == country)
    if device_type:
        conditions.append(Interaction.device_type == device_type)
    if email:
        conditions.append(Interaction.email == email.strip().lower())
    if start_date:
        conditions.append(Interaction.created_at >= start_date)
    if end_date:
        conditions.append(Interaction.created_at <= end_date)

    total = (await db.execute(select(func.count(Interaction.id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(Interaction)
        .where(*conditions)
        .order_by(order_by(Interaction, sort_by, sort_order, SORTABLE), Interaction.id)
        .offset(req.offset)
        .limit(req.limit)
    )
    return {
        "success": True,
        "interactions": [_interaction_out(i) for i in result.scalars().all()],
        "pagination": catalog_pagination(total, req),
    }


@router.get("/analytics")
async def interaction_analytics(
    days: int = Query(30, ge=1, le=365),
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    since = Interaction.created_at >= utcnow() - datetime.timedelta(days=days)
    completed = (await db.execute(
        select(
            func.count(Interaction.id).label("total"),
            func.count(Interaction.id).filter(Interaction.status == InteractionStatus.COMPLETED.value).label("completed"),
        ).where(since)
    )).one()

    return {
        "success": True,
        "data": {
            "periodDays": days,
            "total": completed.total,
            "completionRate": round(completed.completed / completed.total * 100, 2) if completed.total else 0.0,
            "byType": await _grouped(db, Interaction.type, since),
            "byStatus": await _grouped(db, Interaction.status, since),
            "byCountry": await _grouped(db, Interaction.country, since, limit=10),
            "byDevice": await _grouped(db, Interaction.device_type, since),
            "topOffers": await _grouped(db, Interaction.offer_title, since, limit=10),
        },
    }


@router.get("/stats/overview")
async def interaction_stats(
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    now = utcnow()
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    counts = (await db.execute(
        select(
            func.count(Interaction.id).label("total"),
            func.count(Interaction.id).filter(Interaction.created_at >= start_of_day).label("today"),
            func.count(Interaction.id).filter(
                Interaction.created_at >= now - datetime.timedelta(days=7)
            ).label("this_week"),
            func.count(func.distinct(Interaction.email)).label("unique_emails"),
        )
    )).one()

    return {
        "success": True,
        "data": {
            "total": counts.total,
            "today": counts.today,
            "thisWeek": counts.this_week,
            "uniqueEmails": counts.unique_emails,
            "byType": await _grouped(db, Interaction.type),
            "byStatus": await _grouped(db, Interaction.status),
        },
    }


@router.get("/email/{email}")
async def interactions_by_email(
    email: str,
    limit: int = Query(50, ge=1, le=500),
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Interaction)
        .where(Interaction.email == email.strip().lower())
        .order_by(Interaction.created_at.desc())
        .limit(limit)
    )
    interactions = [_interaction_out(i) for i in result.scalars().all()]
    return {"success": True, "count": len(interactions), "interactions": interactions}


@router.get("/{interaction_id}")
async def get_interaction(
    interaction_id: str,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    interaction = await _get_interaction(db, _parse_interaction_id(interaction_id))
    return {"success": True, "data": _interaction_out(interaction)}


@router.patch("/{interaction_id}/status")
async def update_interaction_status(
    interaction_id: str,
    body: StatusUpdateRequest,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    interaction = await _get_interaction(db, _parse_interaction_id(interaction_id))
    interaction.status = body.status.value
    if body.error_message is not None:
        interaction.error_message = body.error_message
    await db.commit()
    await db.refresh(interaction)

    logger.info("interaction_status_updated", interaction_id=str(interaction.id), status=interaction.status)
    return {"success": True, "message": "Interaction status updated", "data": _interaction_out(interaction)}


@router.delete("/{interaction_id}")
async def delete_interaction(
    interaction_id: str,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    interaction = await _get_interaction(db, _parse_interaction_id(interaction_id))
    await db.delete(interaction)
    await db.commit()
    return {"success": True, "message": "Interaction deleted"}
