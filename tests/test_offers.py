"""Tests for country-gated offer link resolution."""

import asyncio
from types import SimpleNamespace

from sqlalchemy import select

from conftest import GHANA_IP, KENYA_IP, US_IP
from modloot.core.offers import resolve_offer_link
from modloot.models.database import session_scope
from modloot.models.tables import ActivityLog


def _offer(**links):
    return SimpleNamespace(
        link_ghana=links.get("ghana", ""),
        link_kenya=links.get("kenya", ""),
        link_nigeria=links.get("nigeria", ""),
    )


class TestResolveOfferLink:
    def test_supported_countries(self):
        offer = _offer(ghana="https://gh", kenya="https://ke", nigeria="https://ng")
        assert resolve_offer_link(offer, "gh") == "https://gh"
        assert resolve_offer_link(offer, "KE") == "https://ke"
        assert resolve_offer_link(offer, "ng") == "https://ng"

    def test_unsupported_or_unknown_country(self):
        offer = _offer(ghana="https://gh")
        assert resolve_offer_link(offer, "us") is None
        assert resolve_offer_link(offer, None) is None

    def test_empty_link_is_none(self):
        assert resolve_offer_link(_offer(ghana="https://gh"), "ke") is None


async def _create_offer(client, headers, title="Survey", **links):
    links = links or {"ghana": "https://offers.test/gh", "kenya": "https://offers.test/ke"}
    resp = await client.post("/api/offers", json={"title": title, "links": links}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


class TestOfferLinkEndpoint:
    async def test_ghana_caller_gets_ghana_link(self, client, admin_headers):
        offer = await _create_offer(client, admin_headers)
        resp = await client.get(f"/api/offers/{offer['id']}", headers={"x-forwarded-for": GHANA_IP})
        assert resp.status_code == 200
        assert resp.json() == {
            "success": True,
            "message": "Offer link for GH",
            "link": "https://offers.test/gh",
        }

    async def test_kenya_caller_gets_kenya_link(self, client, admin_headers):
        offer = await _create_offer(client, admin_headers)
        resp = await client.get(f"/api/offers/{offer['id']}", headers={"x-forwarded-for": KENYA_IP})
        assert resp.json()["link"] == "https://offers.test/ke"

    async def test_unsupported_country_404(self, client, admin_headers):
        offer = await _create_offer(client, admin_headers)
        resp = await client.get(f"/api/offers/{offer['id']}", headers={"x-forwarded-for": US_IP})
        assert resp.status_code == 404
        assert resp.json()["message"] == "No link available for your country"

    async def test_empty_link_for_supported_country_404(self, client, admin_headers):
        offer = await _create_offer(client, admin_headers, ghana="https://offers.test/gh")
        resp = await client.get(f"/api/offers/{offer['id']}", headers={"x-forwarded-for": KENYA_IP})
        assert resp.status_code == 404

    async def test_unresolvable_ip_404(self, client, admin_headers):
        offer = await _create_offer(client, admin_headers)
        resp = await client.get(f"/api/offers/{offer['id']}", headers={"x-forwarded-for": "10.0.0.1"})
        assert resp.status_code == 404

    async def test_invalid_id_falls_back_to_latest(self, client, admin_headers):
        await _create_offer(client, admin_headers, title="Old", ghana="https://offers.test/old")
        await asyncio.sleep(0.01)
        await _create_offer(client, admin_headers, title="New", ghana="https://offers.test/new")
        resp = await client.get("/api/offers/not-a-uuid", headers={"x-forwarded-for": GHANA_IP})
        assert resp.status_code == 200
        assert resp.json()["link"] == "https://offers.test/new"

    async def test_unknown_id_404(self, client, admin_headers):
        await _create_offer(client, admin_headers)
        resp = await client.get(
            "/api/offers/00000000-0000-0000-0000-000000000000", headers={"x-forwarded-for": GHANA_IP},
        )
        assert resp.status_code == 404
        assert resp.json()["message"] == "Offer not found"

    async def test_no_offers_at_all_404(self, client, db):
        resp = await client.get("/api/offers/anything", headers={"x-forwarded-for": GHANA_IP})
        assert resp.status_code == 404

    async def test_access_is_audited(self, client, admin_headers):
        offer = await _create_offer(client, admin_headers)
        await client.get(f"/api/offers/{offer['id']}", headers={"x-forwarded-for": GHANA_IP})

        async with session_scope() as session:
            result = await session.execute(select(ActivityLog).where(ActivityLog.type == "offer_access"))
            logs = result.scalars().all()
        assert len(logs) == 1
        assert logs[0].details["country"] == "GH"
        assert logs[0].log_id.startswith("LOG_")


class TestOfferAdmin:
    async def test_create_requires_admin(self, client, user_headers):
        resp = await client.post("/api/offers", json={"title": "X"}, headers=user_headers)
        assert resp.status_code == 403

    async def test_update_records_changes(self, client, admin_headers):
        offer = await _create_offer(client, admin_headers)
        resp = await client.put(
            f"/api/offers/{offer['id']}",
            json={"links": {"nigeria": "https://offers.test/ng"}},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        links = resp.json()["data"]["links"]
        assert links["nigeria"] == "https://offers.test/ng"
        assert links["ghana"] == "https://offers.test/gh"

        async with session_scope() as session:
            result = await session.execute(select(ActivityLog).where(ActivityLog.type == "offer_update"))
            log = result.scalar_one()
        assert log.details["changes"] == {"link_nigeria": {"from": "", "to": "https://offers.test/ng"}}

    async def test_toggle_and_list_filter(self, client, admin_headers):
        offer = await _create_offer(client, admin_headers)
        resp = await client.patch(f"/api/offers/{offer['id']}/toggle-status", headers=admin_headers)
        assert resp.json()["data"]["active"] is False

        listing = await client.get("/api/offers", params={"status": "inactive"})
        body = listing.json()
        assert [o["id"] for o in body["offers"]] == [offer["id"]]
        assert body["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1}

    async def test_delete(self, client, admin_headers):
        offer = await _create_offer(client, admin_headers)
        resp = await client.delete(f"/api/offers/{offer['id']}", headers=admin_headers)
        assert resp.status_code == 200
        again = await client.delete(f"/api/offers/{offer['id']}", headers=admin_headers)
        assert again.status_code == 404
