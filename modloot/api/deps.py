"""Shared request dependencies: the process-wide geo resolver and email client."""

from dataclasses import dataclass

from fastapi import Depends, Request

from modloot.config import get_settings
from modloot.core.email import EmailClient
from modloot.core.geo import GeoInfo, GeoResolver, client_ip


def get_geo_resolver(request: Request) -> GeoResolver:
    return request.app.state.geo


def get_email_client(request: Request) -> EmailClient:
    return request.app.state.email


@dataclass(frozen=True)
class Caller:
    ip: str
    geo: GeoInfo
    user_agent: str
    referrer: str


def get_caller(request: Request, geo: GeoResolver = Depends(get_geo_resolver)) -> Caller:
    ip = client_ip(request, get_settings().geo_override_ip)
    return Caller(
        ip=ip,
        geo=geo.lookup(ip),
        user_agent=request.headers.get("user-agent") or "Unknown",
        referrer=request.headers.get("referer") or "Direct",
    )
