"""
Database models.

Design principles:
  - Catalog kinds (apps, games, gift cards, coupons) share one column set
  - Clicks are append-only; per-item counters are denormalized onto the item
  - activity_logs is an append-only audit trail, pruned by retention window
  - Offer completions move pending -> completed exactly once (postback claim)
"""

import datetime
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

from modloot.models.enums import (
    ActionProvider,
    CompletionStatus,
    InteractionStatus,
    LogLevel,
)

JSONType = JSON().with_variant(JSONB(), "postgresql")

NO_EXPIRATION = "No expiration"


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True)
    updated_at = Column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now(),
    )


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class CatalogItemMixin(TimestampMixin):
    """Column set shared by every catalog kind."""

    id = Column(Uuid, primary_key=True, default=uuid4)
    merchant = Column(String(255), nullable=False, index=True)
    image = Column(Text, nullable=False, default="")
    logo = Column(Text, nullable=False, default="")
    offer = Column(String(255), nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    details = Column(Text, nullable=False, default="")

    # Online mean: rating == round_half_up(rating_tenths / 10 / total_ratings, 1)
    rating = Column(Float, nullable=False, default=0.0)
    rating_tenths = Column(Integer, nullable=False, default=0)  # exact sum of ratings, in tenths
    total_ratings = Column(Integer, nullable=False, default=0)

    items_left = Column(Integer, nullable=False, default=0)
    expiry = Column(String(64), nullable=False, default=NO_EXPIRATION)
    uses_today = Column(String(64), nullable=False, default="0")  # display string
    used_today = Column(Integer, nullable=False, default=0)
    verified = Column(Boolean, nullable=False, default=False, index=True)
    badge = Column(String(50), nullable=True, index=True)

    action_link = Column(Text, nullable=False, default="")
    action_provider = Column(String(20), nullable=False, default=ActionProvider.OG_ADS.value)

    total_clicks = Column(Integer, nullable=False, default=0)
    unique_clicks = Column(Integer, nullable=False, default=0)
    last_clicked_at = Column(DateTime(timezone=True), nullable=True)


class App(CatalogItemMixin, Base):
    __tablename__ = "apps"

    title = Column(String(255), nullable=False, unique=True)
    code = Column(String(64), nullable=True)


class Game(CatalogItemMixin, Base):
    __tablename__ = "games"

    title = Column(String(255), nullable=False, unique=True)
    code = Column(String(64), nullable=True)


class GiftCard(CatalogItemMixin, Base):
    __tablename__ = "giftcards"

    title = Column(String(255), nullable=False, unique=True)
    code = Column(String(64), nullable=True)


class Coupon(CatalogItemMixin, Base):
    __tablename__ = "coupons"

    title = Column(String(255), nullable=False)
    code = Column(String(64), nullable=False, unique=True)  # stored uppercased


class Click(Base):
    """One tracked click on a catalog item. Append-only."""
    __tablename__ = "clicks"

    id = Column(Uuid, primary_key=True, default=uuid4)
    item_type = Column(String(20), nullable=False)
    item_id = Column(Uuid, nullable=False)
    ip = Column(String(64), nullable=False)
    session_id = Column(String(128), nullable=False)
    country = Column(String(100), default="Unknown")
    city = Column(String(100), default="Unknown")
    region = Column(String(100), default="Unknown")
    user_agent = Column(Text, default="Unknown")
    referrer = Column(Text, default="Direct")
    device_type = Column(String(20), default="desktop")
    browser = Column(String(100), nullable=True)
    os = Column(String(100), nullable=True)
    is_unique = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_clicks_item_window", "item_type", "item_id", "ip", "session_id", "created_at"),
        Index("ix_clicks_item_created", "item_type", "item_id", "created_at"),
    )


# ---------------------------------------------------------------------------
# Offers + completions
# ---------------------------------------------------------------------------

class Offer(TimestampMixin, Base):
    """Country-gated link record."""
    __tablename__ = "offers"

    id = Column(Uuid, primary_key=True, default=uuid4)
    title = Column(String(255), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    link_ghana = Column(Text, nullable=False, default="")
    link_kenya = Column(Text, nullable=False, default="")
    link_nigeria = Column(Text, nullable=False, default="")


class OfferCompletion(TimestampMixin, Base):
    """A user's claimed reward, waiting on CPA network confirmation."""
    __tablename__ = "offer_completions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    offer = Column(String(255), nullable=False)
    title = Column(String(255), nullable=True)
    code = Column(String(100), nullable=True, index=True)
    email = Column(String(255), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=CompletionStatus.PENDING.value)
    is_email_sent = Column(Boolean, nullable=False, default=False)


# ---------------------------------------------------------------------------
# People
# ---------------------------------------------------------------------------

class Subscriber(TimestampMixin, Base):
    __tablename__ = "subscribers"

    id = Column(Uuid, primary_key=True, default=uuid4)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=True)
    ip_address = Column(String(64), nullable=True, index=True)
    phone_number = Column(String(50), nullable=True)
    isp_provider = Column(String(255), nullable=True)
    country = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    region = Column(String(100), nullable=True)
    lat_long = Column(String(64), nullable=True)
    postal = Column(String(32), nullable=True)
    timezone = Column(String(64), nullable=True)
    source = Column(String(50), nullable=False, default="website")
    is_active = Column(Boolean, nullable=False, default=True)


class Interaction(TimestampMixin, Base):
    """Append-only user interaction event. Only status may change."""
    __tablename__ = "interactions"

    id = Column(Uuid, primary_key=True, default=uuid4)
    type = Column(String(30), nullable=False, index=True)
    user_agent = Column(Text, nullable=False, default="Unknown")
    email = Column(String(255), nullable=True, index=True)
    phone_number = Column(String(50), nullable=True)
    ip_address = Column(String(64), nullable=False)
    country = Column(String(100), nullable=True)
    city = Column(String(100), nullable=True)
    region = Column(String(100), nullable=True)
    timezone = Column(String(64), nullable=True)
    device_type = Column(String(20), nullable=False, default="unknown")
    browser = Column(String(100), nullable=True)
    operating_system = Column(String(100), nullable=True)
    platform = Column(String(100), nullable=True)
    offer_title = Column(String(255), nullable=False)
    action_link = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=InteractionStatus.INITIATED.value)
    error_message = Column(Text, nullable=True)


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    refresh_token = Column(Text, nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

class ActivityLog(Base):
    """Append-only audit trail, retained for settings.log_retention_days."""
    __tablename__ = "activity_logs"

    id = Column(Uuid, primary_key=True, default=uuid4)
    log_id = Column(String(64), nullable=False, unique=True)
    level = Column(String(10), nullable=False, default=LogLevel.INFO.value)
    type = Column(String(40), nullable=False, index=True)
    message = Column(Text, nullable=False)
    details = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)
