"""Closed value sets stored as strings in the database."""

from enum import Enum


class ActionProvider(str, Enum):
    OG_ADS = "og_ads"
    CPA_GRIP = "cpa_grip"
    CPA_LEAD = "cpa_lead"
    OTHER = "Other"


class AppBadge(str, Enum):
    MUSIC = "Music"
    DESIGN = "Design"
    STREAMING = "Streaming"
    PHOTO = "Photo"
    VIDEO = "Video"
    AI = "AI"
    HEALTH = "Health"
    GENERAL = "General"
    PRODUCTIVITY = "Productivity"
    ENTERTAINMENT = "Entertainment"
    SOCIAL = "Social"


class GameBadge(str, Enum):
    POPULAR = "Popular"
    TRENDING = "Trending"
    HOT = "Hot"
    ACTION = "Action"
    BEST_VALUE = "Best Value"
    MOBA = "MOBA"
    SALE = "Sale"
    STRATEGY = "Strategy"


class GiftCardBadge(str, Enum):
    POPULAR = "Popular"
    BEST_SELLER = "Best Seller"
    GAMING = "Gaming"
    TOP_RATED = "Top Rated"


class CouponBadge(str, Enum):
    POPULAR = "Popular"
    HOT_DEAL = "Hot Deal"
    EXCLUSIVE = "Exclusive"
    LIMITED = "Limited"
    TOP_RATED = "Top Rated"


class CompletionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    EXPIRED = "expired"
    USED = "used"


class InteractionType(str, Enum):
    APP_DOWNLOAD = "app_download"
    GIFT_CARD = "gift_card"
    COUPON = "coupon"
    GAME_REDEEM = "game_redeem"
    PAGE_VIEW = "page_view"
    OTHER = "other"


class InteractionStatus(str, Enum):
    INITIATED = "initiated"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class LogLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    CRITICAL = "critical"


class ActivityType(str, Enum):
    SYSTEM = "system"
    SUBSCRIBER_CREATE = "subscriber_create"
    SUBSCRIBER_UPDATE = "subscriber_update"
    SUBSCRIBER_DELETE = "subscriber_delete"
    SUBSCRIBER_BULK_DELETE = "subscriber_bulk_delete"
    SUBSCRIBER_BULK_UPDATE = "subscriber_bulk_update"
    OFFER_CREATE = "offer_create"
    OFFER_UPDATE = "offer_update"
    OFFER_DELETE = "offer_delete"
    OFFER_STATUS_TOGGLE = "offer_status_toggle"
    OFFER_ACCESS = "offer_access"
