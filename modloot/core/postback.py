"""
CPA network postback adapters.

Each supported network names its postback query parameters differently.
CPANetwork is the closed set of networks we accept; every member knows how to
pull the common fields out of its own query string. Anything outside the set
is rejected with UnsupportedNetwork before any lookup happens.

  network   email                      completion id
  -------   -----                      -------------
  ogads     userid                     aff_sub
  cpagrip   userid                     tracking_id
  cpalead   subid2 | userid | user_id  subid
  goose     email                      id

Every network also honours an explicit ``completion_id`` parameter.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Mapping, Optional
from uuid import UUID

from modloot.core.errors import UnsupportedNetwork


@dataclass(frozen=True)
class PostbackFields:
    email: Optional[str]
    payout: Optional[str]
    offer_id: Optional[str]
    offer_name: Optional[str]
    ip: Optional[str]
    completion_id: Optional[str]

    @property
    def completion_uuid(self) -> Optional[UUID]:
        """The completion id if it is a syntactically valid identifier."""
        if not self.completion_id:
            return None
        try:
            return UUID(self.completion_id)
        except ValueError:
            return None


def _first(q: Mapping[str, str], *names: str) -> Optional[str]:
    for name in names:
        value = q.get(name)
        if value:
            return value
    return None


def _ogads(q: Mapping[str, str]) -> PostbackFields:
    return PostbackFields(
        email=_first(q, "userid"),
        payout=_first(q, "payout"),
        offer_id=_first(q, "id"),
        offer_name=_first(q, "offername"),
        ip=_first(q, "ip"),
        completion_id=_first(q, "completion_id", "aff_sub"),
    )


def _cpagrip(q: Mapping[str, str]) -> PostbackFields:
    return PostbackFields(
        email=_first(q, "userid"),
        payout=_first(q, "payout"),
        offer_id=_first(q, "id"),
        offer_name=_first(q, "offername"),
        ip=_first(q, "ip"),
        completion_id=_first(q, "completion_id", "tracking_id"),
    )


def _cpalead(q: Mapping[str, str]) -> PostbackFields:
    return PostbackFields(
        email=_first(q, "subid2", "userid", "user_id"),
        payout=_first(q, "payout", "amount"),
        offer_id=_first(q, "offerid", "offer_id"),
        offer_name=_first(q, "offername", "offer_name"),
        ip=_first(q, "ip"),
        completion_id=_first(q, "completion_id", "subid"),
    )


def _goose(q: Mapping[str, str]) -> PostbackFields:
    return PostbackFields(
        email=_first(q, "email"),
        payout=_first(q, "payout", "amount"),
        offer_id=_first(q, "offerid", "offer_id"),
        offer_name=_first(q, "offername", "offer_name"),
        ip=_first(q, "ip"),
        completion_id=_first(q, "completion_id", "id"),
    )


_EXTRACTORS: dict[str, Callable[[Mapping[str, str]], PostbackFields]] = {
    "ogads": _ogads,
    "cpagrip": _cpagrip,
    "cpalead": _cpalead,
    "goose": _goose,
}


class CPANetwork(str, Enum):
    OGADS = "ogads"
    CPAGRIP = "cpagrip"
    CPALEAD = "cpalead"
    GOOSE = "goose"

    @classmethod
    def parse(cls, name: str) -> "CPANetwork":
        try:
            return cls(name.strip().lower())
        except ValueError:
            raise UnsupportedNetwork(name) from None

    def extract(self, query: Mapping[str, str]) -> PostbackFields:
        return _EXTRACTORS[self.value](query)
