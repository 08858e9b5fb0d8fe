"""
Admin dashboard API — cross-entity counts for the back office.

The dashboard totals come from one SELECT of scalar subqueries, so the
database evaluates every count in a single round trip.

Growth figures are NOT computed: no historical snapshots exist yet, so
GROWTH_PLACEHOLDERS stand in and the payload says so (growthIsPlaceholder).
"""

import datetime
from collections import Counter
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from modloot.core.catalog import KINDS
from modloot.core.errors import ValidationFailed
from modloot.middleware.auth import AuthContext, require_admin
from modloot.models.database import get_db
from modloot.models.tables import Offer, Subscriber, User, utcnow

router = APIRouter(prefix="/api/admin", tags=["admin"])

GROWTH_PLACEHOLDERS = {
    "apps": 8.2,
    "coupons": 15.7,
    "games": 3.4,
    "giftcards": 12.1,
    "users": 5.2,
    "revenue": 8.3,
}

PERIODS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}

RECENT_LABELS = {
    "apps": ("New App Added", "was added to the platform", "app"),
    "coupons": ("New Coupon Added", "is now available", "coupon"),
    "games": ("New Game Added", "was added to the platform", "game"),
    "giftcards": ("New Gift Card Added", "is now available", "giftcard"),
}


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


def time_ago(value: datetime.datetime, now: Optional[datetime.datetime] = None) -> str:
    seconds = int(((now or utcnow()) - _as_utc(value)).total_seconds())
    if seconds < 60:
        return "Just now"
    if seconds < 3600:
        return f"{seconds // 60} min ago"
    if seconds < 86400:
        return f"{seconds // 3600} hours ago"
    if seconds < 2592000:
        return f"{seconds // 86400} days ago"
    return f"{seconds // 2592000} months ago"


def _count(model, *where):
    return select(func.count(model.id)).where(*where).scalar_subquery()


@router.get("/dashboard/stats")
async def dashboard_stats(
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    columns = []
    for name, kind in KINDS.items():
        columns.append(_count(kind.model).label(f"{name}_total"))
        # "active" means still in stock
        columns.append(_count(kind.model, kind.model.items_left > 0).label(f"{name}_active"))
    columns += [
        _count(User).label("users_total"),
        _count(Offer).label("offers_total"),
        _count(Offer, Offer.active.is_(True)).label("offers_active"),
        _count(Subscriber).label("subscribers_total"),
        _count(Subscriber, Subscriber.is_active.is_(True)).label("subscribers_active"),
    ]
    totals = (await db.execute(select(*columns))).one()._mapping

    now = utcnow()
    activities = []
    for name, kind in KINDS.items():
        title, verb, activity_type = RECENT_LABELS[name]
        result = await db.execute(
            select(kind.model.title, kind.model.created_at)
            .order_by(kind.model.created_at.desc())
            .limit(2)
        )
        for row in result.all():
            activities.append({
                "title": title,
                "description": f"{row.title} {verb}",
                "time": time_ago(row.created_at, now),
                "timestamp": _as_utc(row.created_at),
                "type": activity_type,
            })
    activities.sort(key=lambda a: a["timestamp"], reverse=True)

    catalog_stats = {
        name: {
            "total": totals[f"{name}_total"],
            "active": totals[f"{name}_active"],
            "growth": GROWTH_PLACEHOLDERS[name],
        }
        for name in KINDS
    }
    return {
        "success": True,
        "data": {
            **catalog_stats,
            "offers": {"total": totals["offers_total"], "active": totals["offers_active"]},
            "subscribers": {"total": totals["subscribers_total"], "active": totals["subscribers_active"]},
            "platform": {
                "totalUsers": totals["users_total"],
                "userGrowth": GROWTH_PLACEHOLDERS["users"],
                "revenueGrowth": GROWTH_PLACEHOLDERS["revenue"],
            },
            "growthIsPlaceholder": True,
            "recentActivities": activities[:6],
        },
    }


@router.get("/stats/{entity}")
async def detailed_stats(
    entity: str,
    period: str = Query("30d"),
    auth: AuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    kind = KINDS.get(entity.lower())
    if kind is None:
        raise ValidationFailed(f"Invalid entity type. Use one of: {', '.join(KINDS)}")
    days = PERIODS.get(period)
    if days is None:
        raise ValidationFailed(f"Invalid period. Use one of: {', '.join(PERIODS)}")

    model = kind.model
    cutoff = utcnow() - datetime.timedelta(days=days)

    summary = (await db.execute(
        select(
            func.count(model.id).label("total"),
            func.count(model.id).filter(model.created_at >= cutoff).label("in_period"),
            func.avg(model.rating).label("avg_rating"),
            func.coalesce(func.sum(model.total_clicks), 0).label("total_clicks"),
            func.coalesce(func.sum(model.used_today), 0).label("used_today"),
        )
    )).one()

    created = await db.execute(select(model.created_at).where(model.created_at >= cutoff))
    timeline = Counter(_as_utc(row.created_at).date().isoformat() for row in created.all())

    badges = await db.execute(
        select(model.badge, func.count(model.id).label("count")).group_by(model.badge)
    )
    verified = await db.execute(
        select(model.verified, func.count(model.id).label("count")).group_by(model.verified)
    )

    return {
        "success": True,
        "data": {
            "entity": kind.name,
            "period": period,
            "total": summary.total,
            "createdInPeriod": summary.in_period,
            "avgRating": round(summary.avg_rating or 0, 2),
            "totalClicks": summary.total_clicks,
            "usedToday": summary.used_today,
            "timeline": [{"date": day, "count": timeline[day]} for day in sorted(timeline)],
            "badges": [{"badge": row.badge, "count": row.count} for row in badges.all()],
            "verified": [{"verified": bool(row.verified), "count": row.count} for row in verified.all()],
        },
    }
