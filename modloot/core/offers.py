"""Country-gated offer link resolution."""

from typing import Optional

# Supported country code -> Offer column holding that country's link
COUNTRY_LINK_FIELDS = {
    "gh": "link_ghana",
    "ke": "link_kenya",
    "ng": "link_nigeria",
}


def resolve_offer_link(offer, country_code: Optional[str]) -> Optional[str]:
    """Link for the caller's country, or None if the country is unsupported or the link is empty."""
    if not country_code:
        return None
    field = COUNTRY_LINK_FIELDS.get(country_code.lower())
    if field is None:
        return None
    return getattr(offer, field) or None
