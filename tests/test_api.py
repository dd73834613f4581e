"""
Tests for the HTTP surface.

Verifies that:
- Requests need a valid bearer token; admin routes need the admin role
- Bodies go in and come out in camelCase
- Domain errors map to status codes with the error class in details.code
- A full negotiate -> accept -> validate -> redeem flow works end to end
"""

from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

from nego_engine.api.dependencies import get_clock, get_policy, get_project_lookup
from nego_engine.core.security import create_access_token
from nego_engine.db.session import get_db
from nego_engine.main import app

from tests.conftest import BUYER, PROJECT, SELLER, STRANGER

BASE = "/api/negotiations"


def auth(user_id: str, **claims) -> dict[str, str]:
    token = create_access_token({"sub": user_id, **claims})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(session_factory, projects, policy, clock):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_project_lookup] = lambda: projects
    app.dependency_overrides[get_policy] = lambda: policy
    app.dependency_overrides[get_clock] = lambda: clock

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _open(client, amount=750, project_id=PROJECT, user=BUYER) -> dict:
    resp = await client.post(
        BASE,
        json={"projectId": project_id, "offerAmount": amount, "message": "Hi"},
        headers=auth(user),
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


async def _accepted_code(client) -> str:
    negotiation = await _open(client, 800)
    resp = await client.post(f"{BASE}/{negotiation['id']}/accept", headers=auth(SELLER))
    assert resp.status_code == 200, resp.text
    return resp.json()["discountCode"]["code"]


class TestAuth:
    """Tests for token handling."""

    async def test_missing_token(self, client):
        resp = await client.get(f"{BASE}/my")
        assert resp.status_code == 401

    async def test_malformed_header(self, client):
        resp = await client.get(f"{BASE}/my", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401

    async def test_bad_token(self, client):
        resp = await client.get(f"{BASE}/my", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    async def test_admin_routes_need_admin_role(self, client):
        resp = await client.post("/api/admin/negotiations/sweep", headers=auth(BUYER))
        assert resp.status_code == 403

    async def test_health_is_public(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"


class TestNegotiationRoutes:
    """Tests for /api/negotiations."""

    async def test_open_returns_camel_case(self, client):
        body = await _open(client)

        assert body["projectId"] == PROJECT
        assert body["buyerId"] == BUYER
        assert body["sellerId"] == SELLER
        assert body["status"] == "active"
        assert body["listPrice"] == 1000.0
        assert body["floorPrice"] == 700.0
        assert body["currentOffer"] == 750.0
        assert body["currentProposer"] == "buyer"
        assert body["lastSequence"] == 1
        assert body["offers"][0]["kind"] == "initial"
        assert body["offers"][0]["note"] == "Hi"

    async def test_open_below_floor(self, client):
        resp = await client.post(
            BASE,
            json={"projectId": PROJECT, "offerAmount": 100},
            headers=auth(BUYER),
        )

        assert resp.status_code == 422
        assert resp.json()["details"]["code"] == "PriceOutOfBounds"

    @pytest.mark.parametrize("amount", ["1e30", "750.456", "699.996"])
    async def test_open_rejects_malformed_amounts(self, client, amount):
        resp = await client.post(
            BASE,
            json={"projectId": PROJECT, "offerAmount": amount},
            headers=auth(BUYER),
        )

        assert resp.status_code == 422
        resp = await client.get(f"{BASE}/my", headers=auth(BUYER))
        assert resp.json() == []

    async def test_counter_rejects_sub_cent_amount(self, client):
        negotiation = await _open(client)
        resp = await client.post(
            f"{BASE}/{negotiation['id']}/counter",
            json={"amount": "900.005"},
            headers=auth(SELLER),
        )

        assert resp.status_code == 422

    async def test_concurrent_write_conflicts(self, client, second_worker_bumps_version):
        negotiation = await _open(client, 800)
        resp = await client.post(f"{BASE}/{negotiation['id']}/accept", headers=auth(SELLER))

        assert resp.status_code == 409
        assert resp.json()["details"]["code"] == "ConcurrentModification"

        resp = await client.get(f"{BASE}/{negotiation['id']}", headers=auth(BUYER))
        assert resp.json()["status"] == "active"
        assert resp.json()["lastSequence"] == 1

    async def test_second_open_conflicts(self, client):
        await _open(client)
        resp = await client.post(
            BASE,
            json={"projectId": PROJECT, "offerAmount": 760},
            headers=auth(BUYER),
        )

        assert resp.status_code == 409
        assert resp.json()["details"]["code"] == "DuplicateActiveNegotiation"

    async def test_unknown_project(self, client):
        resp = await client.post(
            BASE,
            json={"projectId": "nope", "offerAmount": 10},
            headers=auth(BUYER),
        )
        assert resp.status_code == 404

    async def test_counter_and_offers(self, client):
        negotiation = await _open(client)
        url = f"{BASE}/{negotiation['id']}"

        resp = await client.post(
            f"{url}/counter",
            json={"amount": 900, "expectedSequence": 1},
            headers=auth(SELLER),
        )
        assert resp.status_code == 200
        assert resp.json()["currentOffer"] == 900.0
        assert resp.json()["currentProposer"] == "seller"

        resp = await client.get(f"{url}/offers", headers=auth(BUYER))
        assert [o["sequence"] for o in resp.json()] == [1, 2]

    async def test_stale_expected_sequence(self, client):
        negotiation = await _open(client)
        url = f"{BASE}/{negotiation['id']}/counter"
        await client.post(url, json={"amount": 900}, headers=auth(SELLER))

        resp = await client.post(
            url, json={"amount": 800, "expectedSequence": 1}, headers=auth(BUYER)
        )
        assert resp.status_code == 409
        assert resp.json()["details"]["code"] == "InvalidSequence"

    async def test_wrong_proposer_forbidden(self, client):
        negotiation = await _open(client)
        resp = await client.post(
            f"{BASE}/{negotiation['id']}/counter", json={"amount": 760}, headers=auth(BUYER)
        )
        assert resp.status_code == 403

    async def test_stranger_cannot_read(self, client):
        negotiation = await _open(client)
        resp = await client.get(f"{BASE}/{negotiation['id']}", headers=auth(STRANGER))
        assert resp.status_code == 403

    async def test_unknown_negotiation(self, client):
        resp = await client.get(f"{BASE}/not-a-uuid", headers=auth(BUYER))
        assert resp.status_code == 404

    async def test_expired_negotiation_is_gone(self, client, clock):
        negotiation = await _open(client)
        clock.advance(hours=169)

        resp = await client.post(
            f"{BASE}/{negotiation['id']}/counter", json={"amount": 900}, headers=auth(SELLER)
        )
        assert resp.status_code == 410
        assert resp.json()["details"]["code"] == "NegotiationExpired"

        resp = await client.get(f"{BASE}/{negotiation['id']}", headers=auth(BUYER))
        assert resp.json()["status"] == "expired"

    async def test_accept_returns_discount_code(self, client):
        negotiation = await _open(client, 800)

        resp = await client.post(f"{BASE}/{negotiation['id']}/accept", headers=auth(SELLER))

        assert resp.status_code == 200
        body = resp.json()
        assert body["negotiation"]["status"] == "accepted"
        assert body["negotiation"]["finalPrice"] == 800.0
        assert body["discountCode"]["code"].startswith("NEGO-")
        assert body["discountCode"]["discountAmount"] == 200.0
        assert body["discountCode"]["discountPercentage"] == 20

    async def test_only_buyer_sees_code(self, client):
        negotiation = await _open(client, 800)
        await client.post(f"{BASE}/{negotiation['id']}/accept", headers=auth(SELLER))

        as_buyer = await client.get(f"{BASE}/{negotiation['id']}", headers=auth(BUYER))
        as_seller = await client.get(f"{BASE}/{negotiation['id']}", headers=auth(SELLER))

        assert as_buyer.json()["discountCode"]["finalPrice"] == 800.0
        assert as_seller.json()["discountCode"] is None

    async def test_reject_with_reason(self, client):
        negotiation = await _open(client)

        resp = await client.post(
            f"{BASE}/{negotiation['id']}/reject",
            json={"reason": "Too low"},
            headers=auth(SELLER),
        )

        assert resp.status_code == 200
        assert resp.json()["status"] == "rejected"
        assert resp.json()["offers"][-1]["note"] == "Too low"

    async def test_cancel_without_body(self, client):
        negotiation = await _open(client)

        resp = await client.post(f"{BASE}/{negotiation['id']}/cancel", headers=auth(BUYER))
        assert resp.json()["status"] == "cancelled"

        resp = await client.post(f"{BASE}/{negotiation['id']}/cancel", headers=auth(BUYER))
        assert resp.status_code == 409
        assert resp.json()["details"]["code"] == "NegotiationNotActive"

    async def test_report_once(self, client):
        negotiation = await _open(client)
        url = f"{BASE}/{negotiation['id']}/report"

        resp = await client.post(url, json={"reason": "Spam"}, headers=auth(SELLER))
        assert resp.json() == {"success": True, "message": "Negotiation reported"}

        resp = await client.post(url, json={"reason": "Spam"}, headers=auth(SELLER))
        assert resp.status_code == 409

    async def test_my_negotiations_and_stats(self, client):
        await _open(client)
        await _open(client, 2000, project_id="proj-2")

        resp = await client.get(f"{BASE}/my", params={"role": "buyer"}, headers=auth(BUYER))
        assert len(resp.json()) == 2

        resp = await client.get(f"{BASE}/my", headers=auth(SELLER))
        assert [n["projectId"] for n in resp.json()] == [PROJECT]

        resp = await client.get(f"{BASE}/stats", headers=auth(BUYER))
        stats = resp.json()
        assert stats["asBuyer"]["active"] == 2
        assert stats["asSeller"]["total"] == 0
        assert stats["totalSaved"] == 0

    async def test_my_negotiations_rejects_bad_status(self, client):
        resp = await client.get(f"{BASE}/my", params={"status": "pending"}, headers=auth(BUYER))
        assert resp.status_code == 422


class TestDiscountCodeRoutes:
    """Tests for code validation and redemption."""

    async def test_validate_then_redeem_once(self, client):
        code = await _accepted_code(client)

        resp = await client.post(
            f"{BASE}/validate-code",
            json={"code": code.lower(), "projectId": PROJECT},
            headers=auth(BUYER),
        )
        assert resp.status_code == 200
        assert resp.json()["valid"] is True
        assert resp.json()["finalPrice"] == 800.0

        redeem = {"code": code, "projectId": PROJECT, "orderId": "order-1"}
        resp = await client.post("/api/discount-codes/redeem", json=redeem, headers=auth(BUYER))
        assert resp.status_code == 200
        assert resp.json()["orderId"] == "order-1"

        resp = await client.post("/api/discount-codes/redeem", json=redeem, headers=auth(BUYER))
        assert resp.status_code == 409
        assert resp.json()["details"]["code"] == "CodeAlreadyRedeemed"

        resp = await client.get("/api/discount-codes/my", headers=auth(BUYER))
        assert resp.json()["used"] == 1
        assert resp.json()["codes"][0]["orderId"] == "order-1"

    async def test_code_is_bound_to_project(self, client):
        code = await _accepted_code(client)

        resp = await client.post(
            f"{BASE}/validate-code",
            json={"code": code, "projectId": "proj-2"},
            headers=auth(BUYER),
        )
        assert resp.status_code == 422
        assert resp.json()["details"]["code"] == "ProjectMismatch"

    async def test_other_buyer_cannot_use_code(self, client):
        code = await _accepted_code(client)

        resp = await client.post(
            "/api/discount-codes/redeem",
            json={"code": code, "projectId": PROJECT, "orderId": "order-1"},
            headers=auth(STRANGER),
        )
        assert resp.status_code == 404

    async def test_expired_code_is_gone(self, client, clock):
        code = await _accepted_code(client)
        clock.advance(hours=169)

        resp = await client.post(
            f"{BASE}/validate-code",
            json={"code": code, "projectId": PROJECT},
            headers=auth(BUYER),
        )
        assert resp.status_code == 410
        assert resp.json()["details"]["code"] == "CodeExpired"


class TestAdminRoutes:
    """Tests for /api/admin."""

    async def test_sweep(self, client, clock):
        await _open(client)
        clock.advance(hours=169)

        resp = await client.post("/api/admin/negotiations/sweep", headers=auth("admin-1", role="admin"))

        assert resp.status_code == 200
        assert resp.json() == {"negotiationsExpired": 1, "codesExpired": 0}

    async def test_reconcile_clean(self, client):
        await _open(client)

        resp = await client.post(
            "/api/admin/negotiations/reconcile", headers=auth("admin-1", role="admin")
        )

        assert resp.status_code == 200
        assert resp.json() == {
            "orphansRemoved": 0,
            "indexRestored": 0,
            "codesIssued": 0,
            "conflicts": [],
        }

    async def test_void_code(self, client):
        code = await _accepted_code(client)

        resp = await client.post(
            f"/api/admin/discount-codes/{code}/void",
            json={"reason": "Refunded"},
            headers=auth("admin-1", role="admin"),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "voided"

        resp = await client.post(
            "/api/discount-codes/redeem",
            json={"code": code, "projectId": PROJECT, "orderId": "order-1"},
            headers=auth(BUYER),
        )
        assert resp.status_code == 410
        assert resp.json()["details"]["code"] == "CodeVoided"


class TestPolicyDefaults:
    """The policy dependency reads the configured tunables."""

    def test_policy_from_settings(self):
        policy = get_policy()
        assert policy.counter_rule == "narrow"
        assert policy.floor_for(Decimal("1000")) == Decimal("700.00")
