"""
Catalog API — apps, games, gift cards and coupons.

All four kinds share one column set, so one router factory serves them:
build_router(kind) mounts the same endpoints under /api/<kind>. Static paths
are registered before /{item_id} so they are never captured as ids.

Public: list, get, convenience filters, use, rate, track-click, coupon lookup.
Admin:  create, update, delete, batch create, stats, click analytics.
"""

import datetime
from collections import Counter
from typing import Any, Optional
from uuid import uuid4

from fastapi import APIRouter, Body, Depends, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import Field
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from modloot.api.deps import Caller, get_caller
from modloot.config import get_settings
from modloot.core import catalog
from modloot.core.catalog import CatalogKind, ClickData
from modloot.core.device import parse_device
from modloot.core.errors import NotFound, ValidationFailed
from modloot.core.pagination import catalog_pagination, order_by, page_request
from modloot.middleware.auth import AuthContext, require_admin
from modloot.models.database import get_db
from modloot.models.schemas import CamelModel, CatalogItemCreate, CatalogItemOut, CatalogItemUpdate
from modloot.models.tables import Click, utcnow

import structlog

logger = structlog.get_logger()

SORTABLE = {
    "created_at", "updated_at", "title", "merchant", "rating", "total_ratings",
    "items_left", "used_today", "total_clicks", "unique_clicks",
}


class RateRequest(CamelModel):
    rating: float = Field(ge=0, le=5)


class TrackClickRequest(CamelModel):
    session_id: Optional[str] = Field(None, max_length=128)


def _out(items) -> list[CatalogItemOut]:
    return [CatalogItemOut.from_item(item) for item in items]


def _list_filters(
    kind: CatalogKind,
    search: Optional[str],
    merchant: Optional[str],
    min_rating: Optional[float],
    max_rating: Optional[float],
    min_items_left: Optional[int],
    max_items_left: Optional[int],
    verified: Optional[bool],
    badge: Optional[str],
) -> list:
    model = kind.model
    conditions = []
    if search:
        conditions.append(or_(*[
            getattr(model, name).icontains(search, autoescape=True) for name in kind.search_fields
        ]))
    if merchant:
        conditions.append(model.merchant.icontains(merchant, autoescape=True))
    if min_rating is not None:
        conditions.append(model.rating >= min_rating)
    if max_rating is not None:
        conditions.append(model.rating <= max_rating)
    if min_items_left is not None:
        conditions.append(model.items_left >= min_items_left)
    if max_items_left is not None:
        conditions.append(model.items_left <= max_items_left)
    if verified is not None:
        conditions.append(model.verified == verified)
    if badge:
        conditions.append(model.badge == badge)
    return conditions


async def _page(db: AsyncSession, kind: CatalogKind, conditions: list, order, page: int, limit: Optional[int]) -> dict:
    req = page_request(page, limit)
    model = kind.model
    total = (await db.execute(select(func.count(model.id)).where(*conditions))).scalar_one()
    result = await db.execute(
        select(model).where(*conditions).order_by(*order).offset(req.offset).limit(req.limit)
    )
    return {
        "success": True,
        kind.name: _out(result.scalars().all()),
        "pagination": catalog_pagination(total, req),
    }


def build_router(kind: CatalogKind) -> APIRouter:
    router = APIRouter(prefix=f"/api/{kind.name}", tags=[kind.name])
    model = kind.model
    settings = get_settings()

    # --- Collection ---

    @router.get("")
    async def list_items(
        search: Optional[str] = None,
        merchant: Optional[str] = None,
        min_rating: Optional[float] = Query(None, alias="minRating", ge=0, le=5),
        max_rating: Optional[float] = Query(None, alias="maxRating", ge=0, le=5),
        min_items_left: Optional[int] = Query(None, alias="minItemsLeft", ge=0),
        max_items_left: Optional[int] = Query(None, alias="maxItemsLeft", ge=0),
        verified: Optional[bool] = None,
        badge: Optional[str] = None,
        sort_by: Optional[str] = Query(None, alias="sortBy"),
        sort_order: Optional[str] = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
        page: int = Query(1, ge=1),
        limit: Optional[int] = Query(None, ge=1),
        db: AsyncSession = Depends(get_db),
    ):
        conditions = _list_filters(
            kind, search, merchant, min_rating, max_rating,
            min_items_left, max_items_left, verified, badge,
        )
        order = [order_by(model, sort_by, sort_order, SORTABLE), model.id]
        return await _page(db, kind, conditions, order, page, limit)

    @router.post("", status_code=201)
    async def create_item(
        body: CatalogItemCreate,
        auth: AuthContext = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ):
        item = catalog.build_item(kind, body)
        await catalog.ensure_unique_key(db, kind, getattr(item, kind.key_field))
        db.add(item)
        await catalog.commit_unique(db, kind)
        await db.refresh(item)

        logger.info("catalog_item_created", kind=kind.name, item_id=str(item.id), by=str(auth.user_id))
        return {
            "success": True,
            "message": f"{kind.label} created successfully",
            "data": CatalogItemOut.from_item(item),
        }

    if kind.supports_batch:
        @router.post("/batch")
        async def batch_create(
            payload: dict[str, Any] = Body(...),
            auth: AuthContext = Depends(require_admin),
            db: AsyncSession = Depends(get_db),
        ):
            raw_items = payload.get("items", payload.get(kind.name))
            if not isinstance(raw_items, list) or not raw_items:
                raise ValidationFailed(f"Please provide a non-empty array of {kind.name}")

            outcome = await catalog.batch_create(db, kind, raw_items)
            summary = {
                "total": len(raw_items),
                "successful": len(outcome.created),
                "failed": len(outcome.errors),
            }
            if not outcome.created:
                message = f"No valid {kind.name} to create"
            elif outcome.errors:
                message = f"Created {len(outcome.created)} of {len(raw_items)} {kind.name}"
            else:
                message = f"All {len(outcome.created)} {kind.name} created successfully"

            return JSONResponse(
                status_code=outcome.status_code,
                content=jsonable_encoder({
                    "success": bool(outcome.created),
                    "message": message,
                    "data": _out(outcome.created),
                    "errors": outcome.errors,
                    "summary": summary,
                }),
            )

    # --- Admin aggregates ---

    @router.get("/stats/overview")
    async def stats_overview(
        auth: AuthContext = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ):
        overview = (await db.execute(
            select(
                func.count(model.id).label("total"),
                func.count(model.id).filter(model.verified.is_(True)).label("verified"),
                func.avg(model.rating).label("avg_rating"),
                func.coalesce(func.sum(model.items_left), 0).label("items_left"),
                func.coalesce(func.sum(model.used_today), 0).label("used_today"),
                func.coalesce(func.sum(model.total_clicks), 0).label("total_clicks"),
            )
        )).one()

        badges = await db.execute(
            select(model.badge, func.count(model.id).label("count"), func.avg(model.rating).label("avg_rating"))
            .group_by(model.badge)
            .order_by(func.count(model.id).desc())
        )
        merchants = await db.execute(
            select(model.merchant, func.count(model.id).label("count"))
            .group_by(model.merchant)
            .order_by(func.count(model.id).desc())
            .limit(10)
        )

        return {
            "success": True,
            "data": {
                "overview": {
                    "total": overview.total,
                    "verified": overview.verified,
                    "avgRating": round(overview.avg_rating or 0, 2),
                    "totalItemsLeft": overview.items_left,
                    "totalUsedToday": overview.used_today,
                    "totalClicks": overview.total_clicks,
                },
                "badges": [
                    {"badge": row.badge, "count": row.count, "avgRating": round(row.avg_rating or 0, 2)}
                    for row in badges.all()
                ],
                "merchants": [{"merchant": row.merchant, "count": row.count} for row in merchants.all()],
            },
        }

    @router.get("/analytics/clicks")
    async def clicks_summary(
        limit: int = Query(20, ge=1, le=100),
        auth: AuthContext = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ):
        totals = (await db.execute(
            select(
                func.coalesce(func.sum(model.total_clicks), 0).label("total"),
                func.coalesce(func.sum(model.unique_clicks), 0).label("unique"),
            )
        )).one()
        result = await db.execute(
            select(model).order_by(model.total_clicks.desc(), model.id).limit(limit)
        )
        return {
            "success": True,
            "data": {
                "totalClicks": totals.total,
                "uniqueClicks": totals.unique,
                "items": [
                    {
                        "id": item.id,
                        "title": item.title,
                        "totalClicks": item.total_clicks,
                        "uniqueClicks": item.unique_clicks,
                        "lastClickedAt": item.last_clicked_at,
                    }
                    for item in result.scalars().all()
                ],
            },
        }

    # --- Convenience filters ---

    @router.get("/verified")
    async def verified_items(
        min_rating: float = Query(settings.verified_min_rating, alias="minRating", ge=0, le=5),
        page: int = Query(1, ge=1),
        limit: Optional[int] = Query(None, ge=1),
        db: AsyncSession = Depends(get_db),
    ):
        conditions = [model.verified.is_(True), model.rating >= min_rating]
        return await _page(db, kind, conditions, [model.rating.desc(), model.id], page, limit)

    @router.get(f"/{kind.popular_path}")
    async def popular_items(
        min_rating: float = Query(settings.trending_min_rating, alias="minRating", ge=0, le=5),
        min_usage: int = Query(getattr(settings, kind.popular_usage_setting), alias="minUsage", ge=0),
        limit: int = Query(10, ge=1, le=100),
        db: AsyncSession = Depends(get_db),
    ):
        result = await db.execute(
            select(model)
            .where(model.verified.is_(True), model.rating >= min_rating, model.used_today >= min_usage)
            .order_by(model.rating.desc(), model.used_today.desc(), model.id)
            .limit(limit)
        )
        items = _out(result.scalars().all())
        return {"success": True, "count": len(items), kind.name: items}

    @router.get("/limited")
    async def limited_stock(
        max_items_left: int = Query(settings.limited_stock_threshold, alias="maxItemsLeft", ge=1),
        limit: int = Query(10, ge=1, le=100),
        db: AsyncSession = Depends(get_db),
    ):
        # Both bounds apply: sold-out items are not "limited"
        result = await db.execute(
            select(model)
            .where(model.items_left > 0, model.items_left <= max_items_left)
            .order_by(model.items_left.asc(), model.id)
            .limit(limit)
        )
        items = _out(result.scalars().all())
        return {"success": True, "count": len(items), kind.name: items}

    @router.get("/merchant/{merchant}")
    async def by_merchant(
        merchant: str,
        verified_only: bool = Query(True, alias="verifiedOnly"),
        page: int = Query(1, ge=1),
        limit: Optional[int] = Query(None, ge=1),
        db: AsyncSession = Depends(get_db),
    ):
        conditions = [func.lower(model.merchant) == merchant.strip().lower()]
        if verified_only:
            conditions.append(model.verified.is_(True))
        return await _page(db, kind, conditions, [model.rating.desc(), model.id], page, limit)

    @router.get("/category/{badge}")
    async def by_badge(
        badge: str,
        page: int = Query(1, ge=1),
        limit: Optional[int] = Query(None, ge=1),
        db: AsyncSession = Depends(get_db),
    ):
        kind.check_badge(badge)
        conditions = [model.badge == badge]
        return await _page(db, kind, conditions, [model.rating.desc(), model.id], page, limit)

    if kind.key_field == "code":
        @router.get("/code/{code}")
        async def by_code(code: str, db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(model).where(model.code == code.strip().upper()))
            item = result.scalar_one_or_none()
            if item is None:
                raise NotFound(f"{kind.label} not found")
            return {"success": True, "data": CatalogItemOut.from_item(item)}

        @router.get("/validate/{code}")
        async def validate_code(code: str, db: AsyncSession = Depends(get_db)):
            result = await db.execute(
                select(model).where(model.code == code.strip().upper(), model.verified.is_(True))
            )
            item = result.scalar_one_or_none()
            if item is None:
                raise NotFound("Invalid or expired coupon code")
            if item.items_left <= 0:
                raise ValidationFailed("This coupon has been fully redeemed")
            if catalog.is_expired(item.expiry):
                raise ValidationFailed("This coupon has expired")
            return {"success": True, "message": "Coupon is valid", "data": CatalogItemOut.from_item(item)}

    # --- Single item ---

    @router.get("/{item_id}")
    async def get_item(item_id: str, db: AsyncSession = Depends(get_db)):
        item = await catalog.get_item(db, kind, catalog.parse_item_id(kind, item_id))
        return {"success": True, "data": CatalogItemOut.from_item(item)}

    @router.put("/{item_id}")
    async def update_item(
        item_id: str,
        body: CatalogItemUpdate,
        auth: AuthContext = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ):
        item = await catalog.get_item(db, kind, catalog.parse_item_id(kind, item_id))
        # Check the new key before mutating the row; the lookup would otherwise autoflush it
        new_key = catalog.normalize_key(kind, getattr(body, kind.key_field))
        if new_key and new_key != getattr(item, kind.key_field):
            await catalog.ensure_unique_key(db, kind, new_key, exclude_id=item.id)
        changes = catalog.apply_update(kind, item, body)
        await catalog.commit_unique(db, kind)
        await db.refresh(item)

        logger.info("catalog_item_updated", kind=kind.name, item_id=str(item.id),
                    fields=sorted(changes), by=str(auth.user_id))
        return {
            "success": True,
            "message": f"{kind.label} updated successfully",
            "data": CatalogItemOut.from_item(item),
        }

    @router.delete("/{item_id}")
    async def delete_item(
        item_id: str,
        auth: AuthContext = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ):
        item = await catalog.get_item(db, kind, catalog.parse_item_id(kind, item_id))
        await db.delete(item)
        await db.execute(
            delete(Click).where(Click.item_type == kind.name, Click.item_id == item.id)
        )
        await db.commit()

        logger.info("catalog_item_deleted", kind=kind.name, item_id=str(item.id), by=str(auth.user_id))
        return {"success": True, "message": f"{kind.label} deleted successfully"}

    @router.patch("/{item_id}/use")
    async def use_item(item_id: str, db: AsyncSession = Depends(get_db)):
        item = await catalog.record_usage(db, kind, catalog.parse_item_id(kind, item_id))
        return {
            "success": True,
            "message": f"{kind.label} usage recorded",
            "data": {"itemsLeft": item.items_left, "usedToday": item.used_today},
        }

    @router.patch("/{item_id}/rate")
    async def rate_item(item_id: str, body: RateRequest, db: AsyncSession = Depends(get_db)):
        item = await catalog.apply_rating(db, kind, catalog.parse_item_id(kind, item_id), body.rating)
        return {
            "success": True,
            "message": "Rating updated successfully",
            "data": {"rating": item.rating, "totalRatings": item.total_ratings},
        }

    @router.post("/{item_id}/track-click")
    async def track_click(
        item_id: str,
        request: Request,
        response: Response,
        body: Optional[TrackClickRequest] = Body(None),
        caller: Caller = Depends(get_caller),
        db: AsyncSession = Depends(get_db),
    ):
        parsed_id = catalog.parse_item_id(kind, item_id)
        session_id = (body.session_id if body else None) or request.cookies.get(settings.session_cookie_name)
        if not session_id:
            session_id = uuid4().hex
            response.set_cookie(
                key=settings.session_cookie_name,
                value=session_id,
                max_age=settings.click_unique_window_hours * 3600,
                httponly=True,
                samesite="lax",
            )

        device = parse_device(caller.user_agent)
        click = await catalog.track_click(
            db, kind, parsed_id,
            ClickData(
                ip=caller.ip,
                session_id=session_id,
                country=caller.geo.country,
                city=caller.geo.city,
                region=caller.geo.region,
                user_agent=caller.user_agent,
                referrer=caller.referrer,
                device_type=device.device_type,
                browser=device.browser,
                os=device.os,
            ),
            window_hours=settings.click_unique_window_hours,
        )
        return {
            "success": True,
            "message": "Click tracked",
            "data": {"isUnique": click.is_unique, "sessionId": session_id},
        }

    @router.get("/{item_id}/analytics/clicks")
    async def item_click_analytics(
        item_id: str,
        days: int = Query(30, ge=1, le=365),
        auth: AuthContext = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ):
        item = await catalog.get_item(db, kind, catalog.parse_item_id(kind, item_id))
        cutoff = utcnow() - datetime.timedelta(days=days)
        result = await db.execute(
            select(Click.created_at, Click.country, Click.device_type, Click.referrer, Click.is_unique)
            .where(Click.item_type == kind.name, Click.item_id == item.id, Click.created_at >= cutoff)
            .order_by(Click.created_at)
        )
        rows = result.all()

        daily: dict[str, dict[str, int]] = {}
        for row in rows:
            day = daily.setdefault(row.created_at.date().isoformat(), {"total": 0, "unique": 0})
            day["total"] += 1
            day["unique"] += int(row.is_unique)

        unique_in_period = sum(1 for row in rows if row.is_unique)
        return {
            "success": True,
            "data": {
                "itemId": item.id,
                "title": item.title,
                "periodDays": days,
                "totalClicks": item.total_clicks,
                "uniqueClicks": item.unique_clicks,
                "uniqueRate": round(item.unique_clicks / item.total_clicks * 100, 2) if item.total_clicks else 0.0,
                "periodClicks": len(rows),
                "periodUniqueClicks": unique_in_period,
                "daily": [{"date": d, **counts} for d, counts in daily.items()],
                "geo": [{"country": c, "clicks": n} for c, n in Counter(r.country for r in rows).most_common()],
                "devices": [{"device": d, "clicks": n} for d, n in Counter(r.device_type for r in rows).most_common()],
                "referrers": [{"referrer": r, "clicks": n} for r, n in Counter(r.referrer for r in rows).most_common(10)],
            },
        }

    return router


apps_router = build_router(catalog.APPS)
games_router = build_router(catalog.GAMES)
giftcards_router = build_router(catalog.GIFTCARDS)
coupons_router = build_router(catalog.COUPONS)
