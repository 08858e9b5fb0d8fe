"""
Offers API — country-gated redirect links.

Public GET /api/offers/{offer_id} resolves the caller's country from their IP
and returns the matching per-country link. An id that is not a valid UUID is
not an error: it falls back to the most recently created offer.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import Field
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from modloot.api.deps import Caller, get_caller
from modloot.core.audit import diff_changes, record_activity, snapshot
from modloot.core.errors import NotFound, ValidationFailed
from modloot.core.offers import resolve_offer_link
from modloot.core.pagination import order_by, page_request
from modloot.middleware.auth import AuthContext, require_admin
from modloot.models.database import get_db
from modloot.models.enums import ActivityType
from modloot.models.schemas import CamelModel
from modloot.models.tables import Offer

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/api/offers", tags=["offers"])

OFFER_FIELDS = ("title", "active", "link_ghana", "link_kenya", "link_nigeria")
SORTABLE = {"created_at", "updated_at", "title", "active"}


class OfferLinks(CamelModel):
    ghana: Optional[str] = None
    kenya: Optional[str] = None
    nigeria: Optional[str] = None


class CreateOfferRequest(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    active: bool = True
    links: OfferLinks = OfferLinks()


class UpdateOfferRequest(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    active: Optional[bool] = None
    links: Optional[OfferLinks] = None


def _offer_out(offer: Offer) -> dict:
    return {
        "id": offer.id,
        "title": offer.title,
        "active": offer.active,
        "links": {
            "ghana": offer.link_ghana,
            "kenya": offer.link_kenya,
            "nigeria": offer.link_nigeria,
        },
        "createdAt": offer.created_at,
        "updatedAt": offer.updated_at,
    }


def _parse_offer_id(raw: str) -> UUID:
    try:
        return UUID(raw)
    except ValueError:
        raise ValidationFailed("Invalid offer ID") from None


async def _get_offer(db: AsyncSession, offer_id: UUID) -> Offer:
    offer = await db.get(Offer, offer_id)
    if offer is None:
        raise NotFound("Offer not found")
    return offer


async def _find_offer(db: AsyncSession, raw_id: Optional[str]) -> Optional[Offer]:
    """Offer by id when the id is a valid UUID, else the most recently created one."""
    offer_id = None
    if raw_id:
        try:
            offer_id = UUID(raw_id)
        except ValueError:
            offer_id = None
    if offer_id is not None:
        return await db.get(Offer, offer_id)
    result = await db.execute(select(Offer).order_by(Offer.created_at.desc(), Offer.id.desc()).limit(1))
    return result.scalar_one_or_none()


@router.get("")
async def list_offers(
    status: Optional[str] = Query(None, pattern="^(active|inactive)$"),
    search: Optional[str] = None,
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
):
    req = page_request(page, limit)
    conditions = []
    if status:
        conditions.append(Offer.active.is_(status == "active"))
    if search:
        conditions.append(or_(
            Offer.title.icontains(search, autoescape=True),
            Offer.link_ghana.icontains(search, autoescape=True),
            Offer.link_kenya.icontains(search, autoescape=True),
            Offer.link_nigeria.icontains(search, autoescape=True),
        ))

    total = (await db.execute(select(func.count(Offer.id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(Offer)
        .where(*conditions)
        .order_by(order_by(Offer, sort_by, sort_order, SORTABLE), Offer.id)
        .offset(req.offset)
        .limit(req.limit)
    )
    return {
        "success": True,
        "offers": [_offer_out(o) for o in result.scalars().all()],
        "pagination": {
            "page": req.page,
            "limit": req.limit,
            "total": total,
            "pages": -(-total // req.limit),
        },
    }


@router.get("/{offer_id}")
async def get_offer_link(
    offer_id: str,
    background: BackgroundTasks,
    caller: Caller = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
):
    offer = await _find_offer(db, offer_id)
    if offer is None:
        raise NotFound("Offer not found")

    country_code = caller.geo.country_code
    link = resolve_offer_link(offer, country_code)
    if link is None:
        logger.info("offer_no_link", offer_id=str(offer.id), country=country_code, ip=caller.ip)
        raise NotFound("No link available for your country")

    background.add_task(
        record_activity,
        ActivityType.OFFER_ACCESS,
        f"Offer '{offer.title}' accessed from {caller.geo.country}",
        offer_id=offer.id,
        country=caller.geo.country,
        city=caller.geo.city,
        ip=caller.ip,
        user_agent=caller.user_agent,
    )
    logger.info("offer_accessed", offer_id=str(offer.id), country=country_code)
    return {
        "success": True,
        "message": f"Offer link for {country_code.upper()}",
        "link": link,
    }


@router.post("", status_code=201)
async def create_offer(
    body: CreateOfferRequest,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    offer = Offer(
        title=body.title.strip(),
        active=body.active,
        link_ghana=body.links.ghana or "",
        link_kenya=body.links.kenya or "",
        link_nigeria=body.links.nigeria or "",
    )
    db.add(offer)
    await db.commit()
    await db.refresh(offer)

    await record_activity(
        ActivityType.OFFER_CREATE, f"Offer '{offer.title}' created",
        offer_id=offer.id, by=auth.email,
    )
    return {"success": True, "message": "Offer created successfully", "data": _offer_out(offer)}


@router.put("/{offer_id}")
async def update_offer(
    offer_id: str,
    body: UpdateOfferRequest,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    offer = await _get_offer(db, _parse_offer_id(offer_id))
    before = snapshot(offer, OFFER_FIELDS)

    if body.title is not None:
        offer.title = body.title.strip()
    if body.active is not None:
        offer.active = body.active
    if body.links is not None:
        links = body.links.model_dump(exclude_unset=True)
        for country, value in links.items():
            setattr(offer, f"link_{country}", value or "")
    await db.commit()
    await db.refresh(offer)

    changes = diff_changes(before, snapshot(offer, OFFER_FIELDS))
    await record_activity(
        ActivityType.OFFER_UPDATE, f"Offer '{offer.title}' updated",
        offer_id=offer.id, changes=changes, by=auth.email,
    )
    return {"success": True, "message": "Offer updated successfully", "data": _offer_out(offer)}


@router.patch("/{offer_id}/toggle-status")
async def toggle_offer_status(
    offer_id: str,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    offer = await _get_offer(db, _parse_offer_id(offer_id))
    offer.active = not offer.active
    await db.commit()
    await db.refresh(offer)

    state = "activated" if offer.active else "deactivated"
    await record_activity(
        ActivityType.OFFER_STATUS_TOGGLE, f"Offer '{offer.title}' {state}",
        offer_id=offer.id, active=offer.active, by=auth.email,
    )
    return {"success": True, "message": f"Offer {state} successfully", "data": _offer_out(offer)}


@router.delete("/{offer_id}")
async def delete_offer(
    offer_id: str,
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    offer = await _get_offer(db, _parse_offer_id(offer_id))
    deleted = snapshot(offer, OFFER_FIELDS)
    await db.delete(offer)
    await db.commit()

    await record_activity(
        ActivityType.OFFER_DELETE, f"Offer '{deleted['title']}' deleted",
        offer_id=offer.id, offer=deleted, by=auth.email,
    )
    return {"success": True, "message": "Offer deleted successfully"}
