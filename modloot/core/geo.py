"""
IP geolocation.

Lookups go through a MaxMind GeoLite2 City database via geoip2. The resolver
never raises: a missing database, a malformed address or an address that is
not in the database all resolve to GeoInfo.unknown(), which downstream code
treats as "no country match".
"""

from dataclasses import asdict, dataclass
from typing import Optional

import geoip2.database
import geoip2.errors
import maxminddb
import structlog
from fastapi import Request

logger = structlog.get_logger()

UNKNOWN = "Unknown"


@dataclass(frozen=True)
class GeoInfo:
    country: str = UNKNOWN  # ISO 3166 alpha-2, uppercase
    city: str = UNKNOWN
    region: str = UNKNOWN
    timezone: str = UNKNOWN
    found: bool = False

    @classmethod
    def unknown(cls) -> "GeoInfo":
        return cls()

    @property
    def country_code(self) -> Optional[str]:
        if not self.found or self.country == UNKNOWN:
            return None
        return self.country.lower()

    def as_dict(self) -> dict:
        data = asdict(self)
        data.pop("found")
        return data


def client_ip(request: Request, override: str = "") -> str:
    """Caller IP: dev override, else first X-Forwarded-For entry, else socket peer."""
    if override:
        return override
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


class GeoResolver:
    """Thin wrapper around a geoip2 City reader."""

    def __init__(self, db_path: str = ""):
        self._reader = None
        if db_path:
            try:
                self._reader = geoip2.database.Reader(db_path)
            except (OSError, ValueError, RuntimeError) as e:
                logger.warning("geoip_db_unavailable", path=db_path, error=str(e))

    def lookup(self, ip: str) -> GeoInfo:
        if self._reader is None or not ip or ip == "unknown":
            return GeoInfo.unknown()
        try:
            response = self._reader.city(ip)
        except geoip2.errors.AddressNotFoundError:
            return GeoInfo.unknown()
        except (ValueError, geoip2.errors.GeoIP2Error, maxminddb.InvalidDatabaseError) as e:
            logger.warning("geo_lookup_failed", ip=ip, error=str(e))
            return GeoInfo.unknown()

        country = response.country.iso_code
        return GeoInfo(
            country=country or UNKNOWN,
            city=response.city.name or UNKNOWN,
            region=response.subdivisions.most_specific.iso_code or UNKNOWN,
            timezone=response.location.time_zone or UNKNOWN,
            found=country is not None,
        )

    def close(self):
        if self._reader is not None:
            self._reader.close()
            self._reader = None
