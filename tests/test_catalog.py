"""Tests for catalog endpoints — usage stock, ratings, click attribution, uniqueness, batch."""

import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select

from conftest import catalog_payload
from modloot.core.catalog import mean_rating, rating_tenths, round_rating
from modloot.models.database import session_scope
from modloot.models.tables import App, Click, utcnow


async def _create(client, headers, kind="apps", **overrides):
    resp = await client.post(f"/api/{kind}", json=catalog_payload(**overrides), headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


class TestCreate:
    async def test_create_applies_defaults(self, client, admin_headers):
        item = await _create(client, admin_headers, title="Canva Pro", badge=None)
        assert item["details"] == "Three months free"
        assert item["badge"] == "General"
        assert item["rating"] == 0
        assert item["totalRatings"] == 0
        assert item["expiry"] == "No expiration"
        assert item["usesToday"] == "0"
        assert item["action"]["actionProvider"] == "og_ads"

    async def test_create_requires_admin(self, client, user_headers):
        resp = await client.post("/api/apps", json=catalog_payload(), headers=user_headers)
        assert resp.status_code == 403
        assert resp.json()["success"] is False

    async def test_create_requires_token(self, client, db):
        resp = await client.post("/api/apps", json=catalog_payload())
        assert resp.status_code == 401

    async def test_duplicate_title_rejected(self, client, admin_headers):
        await _create(client, admin_headers)
        resp = await client.post("/api/apps", json=catalog_payload(), headers=admin_headers)
        assert resp.status_code == 409

    async def test_invalid_badge_rejected(self, client, admin_headers):
        resp = await client.post("/api/games", json=catalog_payload(badge="Music"), headers=admin_headers)
        assert resp.status_code == 400

    async def test_missing_required_field_is_400(self, client, admin_headers):
        payload = catalog_payload()
        del payload["merchant"]
        resp = await client.post("/api/apps", json=payload, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    async def test_coupon_duplicate_code_conflict(self, client, admin_headers):
        first = await client.post(
            "/api/coupons", json=catalog_payload(title="10OFF", code="save10"), headers=admin_headers,
        )
        assert first.status_code == 201
        assert first.json()["data"]["code"] == "SAVE10"

        second = await client.post(
            "/api/coupons", json=catalog_payload(title="10OFF", code="SAVE10"), headers=admin_headers,
        )
        assert second.status_code == 409

        listing = await client.get("/api/coupons")
        assert listing.json()["pagination"]["totalItems"] == 1

    async def test_coupon_requires_code(self, client, admin_headers):
        resp = await client.post("/api/coupons", json=catalog_payload(title="No code"), headers=admin_headers)
        assert resp.status_code == 400


class TestUpdateDelete:
    async def test_update_to_existing_title_conflicts(self, client, admin_headers):
        await _create(client, admin_headers, title="First")
        second = await _create(client, admin_headers, title="Second")
        resp = await client.put(f"/api/apps/{second['id']}", json={"title": "First"}, headers=admin_headers)
        assert resp.status_code == 409

    async def test_update_same_title_allowed(self, client, admin_headers):
        item = await _create(client, admin_headers, title="Keep")
        resp = await client.put(
            f"/api/apps/{item['id']}", json={"title": "Keep", "itemsLeft": 3}, headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["data"]["itemsLeft"] == 3

    async def test_delete(self, client, admin_headers):
        item = await _create(client, admin_headers)
        resp = await client.delete(f"/api/apps/{item['id']}", headers=admin_headers)
        assert resp.status_code == 200
        assert (await client.get(f"/api/apps/{item['id']}")).status_code == 404

    async def test_invalid_id_is_400(self, client, db):
        resp = await client.get("/api/apps/not-an-id")
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid app ID"


class TestUsage:
    async def test_last_item_then_rejected(self, client, admin_headers):
        item = await _create(client, admin_headers, itemsLeft=1)

        first = await client.patch(f"/api/apps/{item['id']}/use")
        assert first.status_code == 200
        assert first.json()["success"] is True
        assert first.json()["data"] == {"itemsLeft": 0, "usedToday": 1}

        second = await client.patch(f"/api/apps/{item['id']}/use")
        assert second.status_code == 400
        assert second.json()["success"] is False

        current = (await client.get(f"/api/apps/{item['id']}")).json()["data"]
        assert current["itemsLeft"] == 0
        assert current["usedToday"] == 1

    async def test_never_negative(self, client, admin_headers):
        item = await _create(client, admin_headers, itemsLeft=3)
        results = [(await client.patch(f"/api/apps/{item['id']}/use")).status_code for _ in range(6)]
        assert results.count(200) == 3
        assert results.count(400) == 3
        current = (await client.get(f"/api/apps/{item['id']}")).json()["data"]
        assert current["itemsLeft"] == 0
        assert current["usedToday"] == 3

    async def test_unknown_item_404(self, client, db):
        resp = await client.patch("/api/apps/00000000-0000-0000-0000-000000000000/use")
        assert resp.status_code == 404


def _exact_mean(ratings) -> float:
    total = sum(Decimal(str(r)) for r in ratings)
    return float((total / len(ratings)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


class TestRating:
    async def _rate_all(self, client, item_id, ratings):
        for r in ratings:
            resp = await client.patch(f"/api/apps/{item_id}/rate", json={"rating": r})
            assert resp.status_code == 200, resp.text
        return resp.json()["data"]

    async def test_mean_of_submitted_ratings(self, client, admin_headers):
        item = await _create(client, admin_headers)
        ratings = [5, 4, 3, 4, 2]
        data = await self._rate_all(client, item["id"], ratings)
        assert data["totalRatings"] == 5
        assert data["rating"] == _exact_mean(ratings) == 3.6

    async def test_order_independent(self, client, admin_headers):
        ratings = [1, 5, 2.5, 4, 3, 5, 0.5]
        a = await _create(client, admin_headers, title="A")
        b = await _create(client, admin_headers, title="B")
        await self._rate_all(client, a["id"], ratings)
        await self._rate_all(client, b["id"], list(reversed(ratings)))
        rating_a = (await client.get(f"/api/apps/{a['id']}")).json()["data"]["rating"]
        rating_b = (await client.get(f"/api/apps/{b['id']}")).json()["data"]["rating"]
        assert rating_a == rating_b == _exact_mean(ratings)

    async def test_half_tenth_mean_rounds_up_in_any_order(self, client, admin_headers):
        # Exact mean is 2.45; float summation lands either side of it depending on order
        a = await _create(client, admin_headers, title="A")
        b = await _create(client, admin_headers, title="B")
        data_a = await self._rate_all(client, a["id"], [4.1, 0.6, 1.1, 4.0])
        data_b = await self._rate_all(client, b["id"], [0.6, 1.1, 4.0, 4.1])
        assert data_a["rating"] == data_b["rating"] == 2.5

    async def test_out_of_range_rejected(self, client, admin_headers):
        item = await _create(client, admin_headers)
        resp = await client.patch(f"/api/apps/{item['id']}/rate", json={"rating": 6})
        assert resp.status_code == 400

    async def test_more_than_one_decimal_rejected(self, client, admin_headers):
        item = await _create(client, admin_headers)
        resp = await client.patch(f"/api/apps/{item['id']}/rate", json={"rating": 4.25})
        assert resp.status_code == 400

    async def test_seeded_rating_keeps_its_weight(self, client, admin_headers):
        item = await _create(client, admin_headers, rating=4.5, totalRatings=3)
        data = await self._rate_all(client, item["id"], [2.5])
        assert data["totalRatings"] == 4
        assert data["rating"] == _exact_mean([4.5, 4.5, 4.5, 2.5]) == 4.0


class TestRatingMath:
    def test_round_half_up(self):
        assert round_rating(2.45) == 2.5
        assert round_rating(2.449) == 2.4

    def test_mean_rating(self):
        assert mean_rating(98, 4) == 2.5
        assert mean_rating(0, 0) == 0.0

    def test_tenths(self):
        assert rating_tenths(4.1) == 41
        assert rating_tenths(5) == 50


class TestClickTracking:
    async def _click(self, client, item_id, session="sess-1", ip="10.1.1.1"):
        resp = await client.post(
            f"/api/apps/{item_id}/track-click",
            json={"sessionId": session},
            headers={"x-forwarded-for": ip, "user-agent": "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)"},
        )
        assert resp.status_code == 200, resp.text
        return resp.json()["data"]

    async def test_repeat_click_within_window_not_unique(self, client, admin_headers):
        item = await _create(client, admin_headers)
        assert (await self._click(client, item["id"]))["isUnique"] is True
        assert (await self._click(client, item["id"]))["isUnique"] is False

        current = (await client.get(f"/api/apps/{item['id']}")).json()["data"]
        assert current["totalClicks"] == 2
        assert current["uniqueClicks"] == 1

    async def test_different_session_or_ip_is_unique(self, client, admin_headers):
        item = await _create(client, admin_headers)
        await self._click(client, item["id"])
        assert (await self._click(client, item["id"], session="sess-2"))["isUnique"] is True
        assert (await self._click(client, item["id"], ip="10.9.9.9"))["isUnique"] is True

    async def test_click_older_than_window_counts_again(self, client, admin_headers):
        item = await _create(client, admin_headers)
        async with session_scope() as session:
            app_row = (await session.execute(select(App).where(App.title == item["title"]))).scalar_one()
            session.add(Click(
                item_type="apps", item_id=app_row.id, ip="10.1.1.1", session_id="sess-1",
                is_unique=True, created_at=utcnow() - datetime.timedelta(hours=25),
            ))
            await session.commit()

        assert (await self._click(client, item["id"]))["isUnique"] is True

    async def test_click_on_missing_item_404(self, client, db):
        resp = await client.post(
            "/api/apps/00000000-0000-0000-0000-000000000000/track-click", json={"sessionId": "s"},
        )
        assert resp.status_code == 404

    async def test_click_analytics(self, client, admin_headers):
        item = await _create(client, admin_headers)
        await self._click(client, item["id"])
        await self._click(client, item["id"])
        resp = await client.get(f"/api/apps/{item['id']}/analytics/clicks", headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["periodClicks"] == 2
        assert data["uniqueRate"] == 50.0
        assert data["devices"][0] == {"device": "mobile", "clicks": 2}


class TestFilters:
    async def test_trending_requires_all_thresholds(self, client, admin_headers):
        await _create(client, admin_headers, title="Hot", rating=4.8, totalRatings=10, usedToday=80)
        await _create(client, admin_headers, title="Hotter", rating=4.9, totalRatings=10, usedToday=60)
        await _create(client, admin_headers, title="Low use", rating=4.9, totalRatings=10, usedToday=10)
        await _create(client, admin_headers, title="Unverified", rating=5, totalRatings=1,
                      usedToday=90, verified=False)

        resp = await client.get("/api/apps/trending")
        titles = [a["title"] for a in resp.json()["apps"]]
        assert titles == ["Hotter", "Hot"]

    async def test_giftcards_use_popular_path(self, client, admin_headers):
        await _create(client, admin_headers, kind="giftcards", title="Steam", rating=4.7,
                      totalRatings=3, usedToday=35, badge="Gaming")
        resp = await client.get("/api/giftcards/popular")
        assert [g["title"] for g in resp.json()["giftcards"]] == ["Steam"]

    async def test_usage_floor_comes_from_settings(self, client, admin_headers):
        # 40 uses clears popular_min_usage (30) but not trending_min_usage (50)
        await _create(client, admin_headers, kind="giftcards", title="Xbox", rating=4.7,
                      totalRatings=3, usedToday=40, badge="Gaming")
        await _create(client, admin_headers, title="Notion", rating=4.7, totalRatings=3, usedToday=40)

        giftcards = (await client.get("/api/giftcards/popular")).json()["giftcards"]
        apps = (await client.get("/api/apps/trending")).json()["apps"]
        assert [g["title"] for g in giftcards] == ["Xbox"]
        assert apps == []

    async def test_limited_stock_ands_both_bounds(self, client, admin_headers):
        await _create(client, admin_headers, title="Sold out", itemsLeft=0)
        await _create(client, admin_headers, title="Few left", itemsLeft=3)
        await _create(client, admin_headers, title="Plenty", itemsLeft=50)

        resp = await client.get("/api/apps/limited", params={"maxItemsLeft": 10})
        assert [a["title"] for a in resp.json()["apps"]] == ["Few left"]

    async def test_list_search_and_pagination(self, client, admin_headers):
        for i in range(3):
            await _create(client, admin_headers, title=f"Music {i}", badge="Music")
        await _create(client, admin_headers, title="Photo editor", badge="Photo")

        resp = await client.get("/api/apps", params={"search": "music", "limit": 2, "page": 2})
        body = resp.json()
        assert body["pagination"] == {"currentPage": 2, "totalPages": 2, "totalItems": 3, "itemsPerPage": 2}
        assert len(body["apps"]) == 1

        by_badge = await client.get("/api/apps/category/Photo")
        assert [a["title"] for a in by_badge.json()["apps"]] == ["Photo editor"]

    async def test_coupon_validate(self, client, admin_headers):
        await _create(client, admin_headers, kind="coupons", title="Fresh", code="FRESH")
        await _create(client, admin_headers, kind="coupons", title="Old", code="OLD",
                      expiry="2020-01-01T00:00:00Z")
        await _create(client, admin_headers, kind="coupons", title="Empty", code="EMPTY", itemsLeft=0)

        assert (await client.get("/api/coupons/validate/fresh")).status_code == 200
        expired = await client.get("/api/coupons/validate/OLD")
        assert expired.status_code == 400
        assert expired.json()["message"] == "This coupon has expired"
        assert (await client.get("/api/coupons/validate/EMPTY")).status_code == 400
        assert (await client.get("/api/coupons/validate/NOPE")).status_code == 404


class TestBatch:
    async def test_partial_success_is_207(self, client, admin_headers):
        await _create(client, admin_headers, kind="games", title="Existing", badge="Action")

        missing_merchant = catalog_payload(title="No merchant")
        del missing_merchant["merchant"]
        resp = await client.post(
            "/api/games/batch",
            json={"games": [
                catalog_payload(title="Alpha", badge="MOBA"),
                catalog_payload(title="Beta"),
                catalog_payload(title="Alpha"),
                catalog_payload(title="Existing"),
                missing_merchant,
            ]},
            headers=admin_headers,
        )
        assert resp.status_code == 207
        body = resp.json()
        assert body["summary"] == {"total": 5, "successful": 2, "failed": 3}
        errors = {e["index"]: e["error"] for e in body["errors"]}
        assert errors[3] == "Duplicate title within batch"
        assert errors[4] == "Title already exists in database"
        assert errors[5].startswith("Missing required fields")

    async def test_all_valid_is_201(self, client, admin_headers):
        resp = await client.post(
            "/api/coupons/batch",
            json={"items": [
                catalog_payload(title="A", code="AAA"),
                catalog_payload(title="B", code="BBB"),
            ]},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.json()["summary"]["successful"] == 2

    async def test_duplicates_and_bad_expiry_reported(self, client, admin_headers):
        resp = await client.post(
            "/api/coupons/batch",
            json={"items": [
                catalog_payload(title="A", code="DUP"),
                catalog_payload(title="B", code="dup"),
                catalog_payload(title="C", code="BAD", expiry="next tuesday"),
            ]},
            headers=admin_headers,
        )
        # first is valid, so this is a partial success
        assert resp.status_code == 207
        errors = {e["index"]: e["error"] for e in resp.json()["errors"]}
        assert errors[2] == "Duplicate code within batch"
        assert errors[3] == "Invalid expiry date format"

        again = await client.post(
            "/api/coupons/batch",
            json={"items": [catalog_payload(title="A", code="DUP")]},
            headers=admin_headers,
        )
        assert again.status_code == 400
        assert again.json()["summary"]["failed"] == 1

    async def test_apps_have_no_batch(self, client, admin_headers):
        resp = await client.post("/api/apps/batch", json={"items": []}, headers=admin_headers)
        # falls through to /{item_id}; POST is not routed there
        assert resp.status_code == 405
