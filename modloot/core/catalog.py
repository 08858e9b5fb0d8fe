"""
Catalog engine — shared behavior for apps, games, gift cards and coupons.

Design:
  - CatalogKind describes one catalog table (badges, natural key, thresholds).
  - Counter changes (usage, clicks) are single conditional UPDATEs, never
    read-modify-write, so concurrent callers cannot lose updates or drive
    items_left below zero.
  - Rating keeps an exact integer sum of tenths under a row lock; the stored rating is
    the mean of every submitted rating rounded half up to one decimal.
  - A click is unique when no click from the same (ip, session) landed on the
    same item inside the trailing window (sliding, not calendar-day).
"""

import datetime
from dataclasses import asdict, dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from modloot.core.errors import Conflict, NotFound, ValidationFailed
from modloot.models.enums import AppBadge, CouponBadge, GameBadge, GiftCardBadge
from modloot.models.schemas import CatalogItemCreate, CatalogItemUpdate
from modloot.models.tables import NO_EXPIRATION, App, Click, Coupon, Game, GiftCard, utcnow

logger = structlog.get_logger()


@dataclass(frozen=True)
class CatalogKind:
    name: str                       # url segment and list response key
    label: str                      # human label used in messages
    model: type
    badges: type[Enum]
    default_badge: Optional[str]
    key_field: str                  # natural unique key: title, or code for coupons
    popular_path: str               # "trending" or "popular"
    popular_usage_setting: str      # Settings field holding the popularity usage floor
    supports_batch: bool = False
    search_fields: tuple[str, ...] = ("title", "description", "details")

    def check_badge(self, badge: Optional[str]) -> Optional[str]:
        if badge is None:
            return self.default_badge
        allowed = [b.value for b in self.badges]
        if badge not in allowed:
            raise ValidationFailed(f"Invalid badge '{badge}'. Allowed: {', '.join(allowed)}")
        return badge


APPS = CatalogKind(
    name="apps", label="App", model=App, badges=AppBadge, default_badge=AppBadge.GENERAL.value,
    key_field="title", popular_path="trending", popular_usage_setting="trending_min_usage",
)
GAMES = CatalogKind(
    name="games", label="Game", model=Game, badges=GameBadge, default_badge=None,
    key_field="title", popular_path="trending", popular_usage_setting="trending_min_usage", supports_batch=True,
)
GIFTCARDS = CatalogKind(
    name="giftcards", label="Gift card", model=GiftCard, badges=GiftCardBadge, default_badge=None,
    key_field="title", popular_path="popular", popular_usage_setting="popular_min_usage",
)
COUPONS = CatalogKind(
    name="coupons", label="Coupon", model=Coupon, badges=CouponBadge, default_badge=None,
    key_field="code", popular_path="trending", popular_usage_setting="trending_min_usage", supports_batch=True,
    search_fields=("title", "description", "details", "code"),
)

KINDS = {kind.name: kind for kind in (APPS, GAMES, GIFTCARDS, COUPONS)}


# ---------------------------------------------------------------------------
# Field rules
# ---------------------------------------------------------------------------

RATING_STEP = Decimal("0.1")


def round_rating(value: float) -> float:
    """Round half up to one decimal."""
    return float(Decimal(str(value)).quantize(RATING_STEP, rounding=ROUND_HALF_UP))


def rating_tenths(value: float) -> int:
    """A rating as whole tenths. Ratings carry at most one decimal place."""
    tenths = Decimal(str(value)) * 10
    if tenths != tenths.to_integral_value():
        raise ValidationFailed("Rating must have at most one decimal place")
    return int(tenths)


def mean_rating(total_tenths: int, count: int) -> float:
    if count <= 0:
        return 0.0
    mean = Decimal(total_tenths) / Decimal(count * 10)
    return float(mean.quantize(RATING_STEP, rounding=ROUND_HALF_UP))


def parse_expiry(expiry: str) -> Optional[datetime.datetime]:
    """None for the no-expiration sentinel; raises ValueError for anything not ISO-8601."""
    if expiry == NO_EXPIRATION:
        return None
    parsed = datetime.datetime.fromisoformat(expiry.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def is_expired(expiry: str, now: Optional[datetime.datetime] = None) -> bool:
    try:
        expires_at = parse_expiry(expiry)
    except ValueError:
        return False
    if expires_at is None:
        return False
    return expires_at < (now or utcnow())


def _check_expiry(expiry: str):
    try:
        parse_expiry(expiry)
    except ValueError:
        raise ValidationFailed("Invalid expiry date format") from None


def normalize_key(kind: CatalogKind, value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value.upper() if kind.key_field == "code" else value


def build_item(kind: CatalogKind, data: CatalogItemCreate):
    """Model instance from a validated create payload, with defaults applied."""
    code = data.code.strip().upper() if data.code else None
    if kind.key_field == "code" and not code:
        raise ValidationFailed("Coupon code is required")
    _check_expiry(data.expiry)
    rating = round_rating(data.rating)
    action = data.action
    return kind.model(
        title=data.title.strip(),
        merchant=data.merchant.strip(),
        image=data.image,
        logo=data.logo,
        offer=data.offer,
        description=data.description,
        details=data.details if data.details is not None else data.description,
        rating=rating,
        rating_tenths=rating_tenths(rating) * data.total_ratings,
        total_ratings=data.total_ratings,
        items_left=data.items_left,
        expiry=data.expiry,
        uses_today=data.uses_today,
        used_today=data.used_today,
        verified=data.verified,
        code=code,
        badge=kind.check_badge(data.badge),
        action_link=action.action_link if action else "",
        action_provider=action.action_provider.value if action else "og_ads",
    )


def apply_update(kind: CatalogKind, item, data: CatalogItemUpdate) -> dict[str, Any]:
    """Apply a partial update in place. Returns the changed column values."""
    values = data.model_dump(exclude_unset=True, exclude={"action"})
    if data.action is not None:
        values["action_link"] = data.action.action_link
        values["action_provider"] = data.action.action_provider.value
    if "code" in values and values["code"] is not None:
        values["code"] = values["code"].strip().upper()
    if kind.key_field == "code" and "code" in values and not values["code"]:
        raise ValidationFailed("Coupon code is required")
    if "badge" in values:
        values["badge"] = kind.check_badge(values["badge"])
    if "expiry" in values and values["expiry"] is not None:
        _check_expiry(values["expiry"])
    for required in ("title", "merchant", "description", "expiry", "uses_today", "rating", "total_ratings",
                     "items_left", "used_today", "verified"):
        if required in values and values[required] is None:
            raise ValidationFailed(f"{required} cannot be null")

    if "rating" in values or "total_ratings" in values:
        rating = round_rating(values.get("rating", item.rating))
        count = values.get("total_ratings", item.total_ratings)
        values["rating"] = rating
        values["rating_tenths"] = rating_tenths(rating) * count

    for name, value in values.items():
        setattr(item, name, value)
    return values


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def parse_item_id(kind: CatalogKind, raw: str) -> UUID:
    try:
        return UUID(raw)
    except ValueError:
        raise ValidationFailed(f"Invalid {kind.label.lower()} ID") from None


async def get_item(db: AsyncSession, kind: CatalogKind, item_id: UUID):
    item = await db.get(kind.model, item_id)
    if item is None:
        raise NotFound(f"{kind.label} not found")
    return item


async def ensure_unique_key(db: AsyncSession, kind: CatalogKind, value: str, exclude_id: Optional[UUID] = None):
    column = getattr(kind.model, kind.key_field)
    stmt = select(kind.model.id).where(column == value)
    if exclude_id is not None:
        stmt = stmt.where(kind.model.id != exclude_id)
    if (await db.execute(stmt.limit(1))).first() is not None:
        raise Conflict(f"{kind.label} with this {kind.key_field} already exists")


async def commit_unique(db: AsyncSession, kind: CatalogKind):
    """Commit, mapping a unique-key race into a 409."""
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict(f"{kind.label} with this {kind.key_field} already exists") from None


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------

async def record_usage(db: AsyncSession, kind: CatalogKind, item_id: UUID):
    """Take one unit of stock. Fails without touching state when nothing is left."""
    model = kind.model
    stmt = (
        update(model)
        .where(model.id == item_id, model.items_left > 0)
        .values(
            items_left=model.items_left - 1,
            used_today=model.used_today + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        await db.rollback()
        await get_item(db, kind, item_id)
        raise ValidationFailed(f"No items left for this {kind.label.lower()}")
    await db.commit()
    return await db.get(model, item_id, populate_existing=True)


async def apply_rating(db: AsyncSession, kind: CatalogKind, item_id: UUID, rating: float):
    tenths = rating_tenths(rating)
    model = kind.model
    result = await db.execute(select(model).where(model.id == item_id).with_for_update())
    item = result.scalar_one_or_none()
    if item is None:
        raise NotFound(f"{kind.label} not found")

    item.rating_tenths = (item.rating_tenths or 0) + tenths
    item.total_ratings = (item.total_ratings or 0) + 1
    item.rating = mean_rating(item.rating_tenths, item.total_ratings)
    await db.commit()
    return item


@dataclass
class ClickData:
    ip: str
    session_id: str
    country: str = "Unknown"
    city: str = "Unknown"
    region: str = "Unknown"
    user_agent: str = "Unknown"
    referrer: str = "Direct"
    device_type: str = "desktop"
    browser: Optional[str] = None
    os: Optional[str] = None


async def track_click(
    db: AsyncSession,
    kind: CatalogKind,
    item_id: UUID,
    data: ClickData,
    window_hours: int = 24,
) -> Click:
    model = kind.model
    await get_item(db, kind, item_id)

    now = utcnow()
    cutoff = now - datetime.timedelta(hours=window_hours)
    prior = await db.execute(
        select(Click.id)
        .where(
            Click.item_type == kind.name,
            Click.item_id == item_id,
            Click.ip == data.ip,
            Click.session_id == data.session_id,
            Click.created_at >= cutoff,
        )
        .limit(1)
    )
    is_unique = prior.first() is None

    click = Click(
        item_type=kind.name,
        item_id=item_id,
        is_unique=is_unique,
        created_at=now,
        **asdict(data),
    )
    db.add(click)
    await db.execute(
        update(model)
        .where(model.id == item_id)
        .values(
            total_clicks=model.total_clicks + 1,
            unique_clicks=model.unique_clicks + (1 if is_unique else 0),
            last_clicked_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    await db.commit()

    logger.info("click_tracked", kind=kind.name, item_id=str(item_id), unique=is_unique)
    return click


# ---------------------------------------------------------------------------
# Batch create
# ---------------------------------------------------------------------------

@dataclass
class BatchOutcome:
    created: list = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    @property
    def status_code(self) -> int:
        if not self.created:
            return 400
        return 207 if self.errors else 201


def _validation_message(err: ValidationError) -> str:
    missing = [".".join(str(p) for p in e["loc"]) for e in err.errors() if e["type"] == "missing"]
    if missing:
        return f"Missing required fields: {', '.join(missing)}"
    first = err.errors()[0]
    return f"{'.'.join(str(p) for p in first['loc'])}: {first['msg']}"


async def batch_create(db: AsyncSession, kind: CatalogKind, raw_items: list[Any]) -> BatchOutcome:
    """Validate every element on its own; insert the valid ones. No all-or-nothing guarantee."""
    outcome = BatchOutcome()

    candidate_keys = [
        normalize_key(kind, raw[kind.key_field])
        for raw in raw_items
        if isinstance(raw, dict) and isinstance(raw.get(kind.key_field), str)
    ]
    column = getattr(kind.model, kind.key_field)
    existing = set()
    if candidate_keys:
        rows = await db.execute(select(column).where(column.in_(candidate_keys)))
        existing = {row[0] for row in rows.all()}

    seen: set[str] = set()
    for index, raw in enumerate(raw_items, start=1):
        key = raw.get(kind.key_field) if isinstance(raw, dict) else None
        try:
            if not isinstance(raw, dict):
                raise ValidationFailed("Item must be an object")
            data = CatalogItemCreate.model_validate(raw)
            item = build_item(kind, data)
            key = getattr(item, kind.key_field)
            if key in existing:
                raise ValidationFailed(f"{kind.key_field.capitalize()} already exists in database")
            if key in seen:
                raise ValidationFailed(f"Duplicate {kind.key_field} within batch")
        except ValidationError as e:
            outcome.errors.append({"index": index, "key": key, "error": _validation_message(e)})
            continue
        except ValidationFailed as e:
            outcome.errors.append({"index": index, "key": key, "error": e.message})
            continue

        seen.add(key)
        db.add(item)
        outcome.created.append(item)

    if outcome.created:
        await commit_unique(db, kind)

    logger.info("catalog_batch_created", kind=kind.name, created=len(outcome.created),
                failed=len(outcome.errors))
    return outcome


async def count_items(db: AsyncSession, kind: CatalogKind, *where) -> int:
    result = await db.execute(select(func.count(kind.model.id)).where(*where))
    return result.scalar_one()
