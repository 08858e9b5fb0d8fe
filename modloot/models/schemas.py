"""Request/response schemas shared across routers. Wire format is camelCase."""

import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from modloot.models.enums import ActionProvider
from modloot.models.tables import NO_EXPIRATION


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# --- Catalog ---

class ActionIn(CamelModel):
    action_link: str = ""
    action_provider: ActionProvider = ActionProvider.OG_ADS


class CatalogItemCreate(CamelModel):
    title: str = Field(min_length=1, max_length=255)
    merchant: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    image: str = ""
    logo: str = ""
    offer: str = ""
    details: Optional[str] = None
    rating: float = Field(0.0, ge=0, le=5)
    total_ratings: int = Field(0, ge=0)
    items_left: int = Field(0, ge=0)
    expiry: str = NO_EXPIRATION
    uses_today: str = "0"
    used_today: int = Field(0, ge=0)
    verified: bool = False
    code: Optional[str] = Field(None, max_length=64)
    badge: Optional[str] = None
    action: Optional[ActionIn] = None


class CatalogItemUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    merchant: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    image: Optional[str] = None
    logo: Optional[str] = None
    offer: Optional[str] = None
    details: Optional[str] = None
    rating: Optional[float] = Field(None, ge=0, le=5)
    total_ratings: Optional[int] = Field(None, ge=0)
    items_left: Optional[int] = Field(None, ge=0)
    expiry: Optional[str] = None
    uses_today: Optional[str] = None
    used_today: Optional[int] = Field(None, ge=0)
    verified: Optional[bool] = None
    code: Optional[str] = Field(None, max_length=64)
    badge: Optional[str] = None
    action: Optional[ActionIn] = None


class ActionOut(CamelModel):
    action_link: str
    action_provider: str


class CatalogItemOut(CamelModel):
    id: UUID
    title: str
    merchant: str
    image: str
    logo: str
    offer: str
    description: str
    details: str
    rating: float
    total_ratings: int
    items_left: int
    expiry: str
    uses_today: str
    used_today: int
    verified: bool
    code: Optional[str]
    badge: Optional[str]
    action: ActionOut
    total_clicks: int
    unique_clicks: int
    last_clicked_at: Optional[datetime.datetime]
    created_at: Optional[datetime.datetime]
    updated_at: Optional[datetime.datetime]

    @classmethod
    def from_item(cls, item) -> "CatalogItemOut":
        return cls(
            id=item.id, title=item.title, merchant=item.merchant, image=item.image,
            logo=item.logo, offer=item.offer, description=item.description,
            details=item.details, rating=item.rating, total_ratings=item.total_ratings,
            items_left=item.items_left, expiry=item.expiry, uses_today=item.uses_today,
            used_today=item.used_today, verified=item.verified, code=item.code,
            badge=item.badge,
            action=ActionOut(action_link=item.action_link, action_provider=item.action_provider),
            total_clicks=item.total_clicks, unique_clicks=item.unique_clicks,
            last_clicked_at=item.last_clicked_at, created_at=item.created_at,
            updated_at=item.updated_at,
        )
