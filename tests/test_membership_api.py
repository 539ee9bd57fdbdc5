"""
Gym Membership Service - API Tests

End-to-end flows through the HTTP API: signup, plan change, pause/resume,
cancel/reactivate, plus the paid-feature guard as other routes mount it.
"""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from app.database import get_async_session
from app.dependencies import get_clock, require_active_membership
from app.models.membership import MembershipRecord
from app.utils.error_handling import setup_exception_handlers

from conftest import START, TEST_PASSWORD, TestSessionLocal


def parse(value: str) -> datetime:
    return datetime.fromisoformat(value)


async def signup(client, headers, plan_id):
    response = await client.post("/api/v1/membership/signup", headers=headers, json={"plan_id": plan_id})
    assert response.status_code == 201, response.text
    return response.json()


class TestAuthentication:
    """Token handling."""

    @pytest.mark.asyncio
    async def test_requires_token(self, client):
        response = await client.get("/api/v1/membership")

        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_rejects_bad_token(self, client):
        response = await client.get("/api/v1/membership", headers={"Authorization": "Bearer not-a-token"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert "status" in response.json()


class TestMembershipEndpoints:
    """Signup and reads."""

    @pytest.mark.asyncio
    async def test_signup(self, client, auth_headers, member_id, plans):
        data = await signup(client, auth_headers, plans["quarterly"])

        assert data["member_id"] == str(member_id)
        assert data["version"] == 1
        assert data["status"] == "active"
        assert data["plan"]["id"] == plans["quarterly"]
        assert data["days_remaining"] == 90
        assert parse(data["start_date"]) == START
        assert parse(data["end_date"]) == START + timedelta(days=90)

    @pytest.mark.asyncio
    async def test_second_signup_conflicts(self, client, auth_headers, plans):
        await signup(client, auth_headers, plans["monthly"])

        response = await client.post(
            "/api/v1/membership/signup", headers=auth_headers, json={"plan_id": plans["elite"]}
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_front_desk_signs_up_member(self, client, staff_headers, member_id, plans):
        response = await client.post(
            "/api/v1/membership/signup",
            headers=staff_headers,
            json={"plan_id": plans["monthly"], "member_id": str(member_id)},
        )

        assert response.status_code == 201
        assert response.json()["member_id"] == str(member_id)

    @pytest.mark.asyncio
    async def test_member_cannot_sign_up_someone_else(self, client, auth_headers, staff_id, plans):
        response = await client.post(
            "/api/v1/membership/signup",
            headers=auth_headers,
            json={"plan_id": plans["monthly"], "member_id": str(staff_id)},
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_get_membership(self, client, clock, auth_headers, plans):
        await signup(client, auth_headers, plans["quarterly"])
        clock.advance(days=60)

        response = await client.get("/api/v1/membership", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["days_remaining"] == 30
        assert data["is_expired"] is False
        assert data["pause_window"] is None

    @pytest.mark.asyncio
    async def test_no_membership(self, client, auth_headers):
        response = await client.get("/api/v1/membership", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "MEMBERSHIP_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_auto_renew_and_history(self, client, auth_headers, plans):
        await signup(client, auth_headers, plans["monthly"])

        response = await client.patch(
            "/api/v1/membership/auto-renew", headers=auth_headers, json={"enabled": False}
        )
        assert response.status_code == 200
        assert response.json()["auto_renew"] is False

        response = await client.get("/api/v1/membership/history", headers=auth_headers)
        data = response.json()
        assert data["total"] == 2
        assert [v["version"] for v in data["versions"]] == [2, 1]
        assert [v["change_reason"] for v in data["versions"]] == ["auto_renew_changed", "signup"]
        assert data["versions"][1]["superseded_at"] is not None

    @pytest.mark.asyncio
    async def test_balance(self, client, auth_headers, plans):
        await signup(client, auth_headers, plans["quarterly"])

        response = await client.get("/api/v1/membership/balance", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["balance"] == -9000
        assert data["transactions"][0]["transaction_type"] == "plan_purchase"
        assert data["transactions"][0]["sequence"] == 1

    @pytest.mark.asyncio
    async def test_access(self, client, auth_headers, plans):
        response = await client.get("/api/v1/membership/access", headers=auth_headers)
        assert response.json()["allowed"] is False
        assert response.json()["status"] == "none"

        await signup(client, auth_headers, plans["monthly"])

        response = await client.get("/api/v1/membership/access", headers=auth_headers)
        assert response.json()["allowed"] is True


class TestPlanChangeFlow:
    """calculate -> initiate -> confirm over HTTP."""

    @pytest.mark.asyncio
    async def test_paid_upgrade(self, client, clock, auth_headers, payment_verifier, plans):
        await signup(client, auth_headers, plans["quarterly"])
        clock.advance(days=60)

        response = await client.post(
            "/api/v1/plan-change/calculate", headers=auth_headers, json={"new_plan_id": plans["monthly"]}
        )
        assert response.status_code == 200
        quote = response.json()
        assert quote["days_remaining"] == 30
        assert quote["days_total"] == 90
        assert quote["current_plan_balance"] == 3000
        assert quote["new_plan_price"] == 5000
        assert quote["balance_difference"] == 2000
        assert quote["payment_required"] is True
        assert quote["credit_forfeited"] == 0
        assert quote["status"] == "calculated"

        response = await client.post(
            "/api/v1/plan-change/initiate", headers=auth_headers, json={"request_id": quote["request_id"]}
        )
        assert response.status_code == 200
        initiated = response.json()
        assert initiated["payment_required"] is True
        assert initiated["amount_due"] == 2000
        assert initiated["confirm_method"] == "payment"
        assert initiated["checkout_url"] == f"https://pay.test/checkout?reference={quote['request_id']}"
        assert initiated["confirm_endpoint"] == "/api/v1/plan-change/confirm"

        payment_verifier.add_receipt("PAY-API-1", 2000, request_reference=quote["request_id"])
        response = await client.post(
            "/api/v1/plan-change/confirm",
            headers=auth_headers,
            json={"request_id": quote["request_id"], "payment_reference": "PAY-API-1"},
        )
        assert response.status_code == 200, response.text
        membership = response.json()
        assert membership["plan"]["id"] == plans["monthly"]
        assert membership["version"] == 2
        assert membership["change_reason"] == "plan_change"
        assert parse(membership["start_date"]) == clock.now
        assert parse(membership["end_date"]) == clock.now + timedelta(days=30)

    @pytest.mark.asyncio
    async def test_free_downgrade_with_password(self, client, auth_headers, plans):
        await signup(client, auth_headers, plans["elite"])
        quote = (await client.post(
            "/api/v1/plan-change/calculate", headers=auth_headers, json={"new_plan_id": plans["monthly"]}
        )).json()
        assert quote["payment_required"] is False
        assert quote["credit_forfeited"] == 7000

        initiated = (await client.post(
            "/api/v1/plan-change/initiate", headers=auth_headers, json={"request_id": quote["request_id"]}
        )).json()
        assert initiated["confirm_method"] == "password"
        assert initiated["checkout_url"] is None
        assert initiated["amount_due"] == 0

        response = await client.post(
            "/api/v1/plan-change/confirm",
            headers=auth_headers,
            json={"request_id": quote["request_id"], "password": "WrongPassword1!"},
        )
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "REAUTHENTICATION_FAILED"

        response = await client.post(
            "/api/v1/plan-change/confirm",
            headers=auth_headers,
            json={"request_id": quote["request_id"], "password": TEST_PASSWORD},
        )
        assert response.status_code == 200
        assert response.json()["plan"]["id"] == plans["monthly"]

    @pytest.mark.asyncio
    async def test_expired_request(self, client, clock, auth_headers, plans):
        await signup(client, auth_headers, plans["elite"])
        quote = (await client.post(
            "/api/v1/plan-change/calculate", headers=auth_headers, json={"new_plan_id": plans["monthly"]}
        )).json()
        await client.post("/api/v1/plan-change/initiate", headers=auth_headers, json={"request_id": quote["request_id"]})
        clock.advance(minutes=16)

        response = await client.post(
            "/api/v1/plan-change/confirm",
            headers=auth_headers,
            json={"request_id": quote["request_id"], "password": TEST_PASSWORD},
        )

        assert response.status_code == 410
        assert response.json()["detail"]["code"] == "REQUEST_EXPIRED"
        membership = (await client.get("/api/v1/membership", headers=auth_headers)).json()
        assert membership["plan"]["id"] == plans["elite"]
        assert membership["version"] == 1

    @pytest.mark.asyncio
    async def test_same_plan_rejected(self, client, auth_headers, plans):
        await signup(client, auth_headers, plans["monthly"])

        response = await client.post(
            "/api/v1/plan-change/calculate", headers=auth_headers, json={"new_plan_id": plans["monthly"]}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_confirm_needs_proof(self, client, auth_headers, plans):
        await signup(client, auth_headers, plans["monthly"])
        quote = (await client.post(
            "/api/v1/plan-change/calculate", headers=auth_headers, json={"new_plan_id": plans["elite"]}
        )).json()

        response = await client.post(
            "/api/v1/plan-change/confirm", headers=auth_headers, json={"request_id": quote["request_id"]}
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_confirm_before_initiate(self, client, auth_headers, plans):
        await signup(client, auth_headers, plans["elite"])
        quote = (await client.post(
            "/api/v1/plan-change/calculate", headers=auth_headers, json={"new_plan_id": plans["monthly"]}
        )).json()

        response = await client.post(
            "/api/v1/plan-change/confirm",
            headers=auth_headers,
            json={"request_id": quote["request_id"], "password": TEST_PASSWORD},
        )

        assert response.status_code == 409


class TestSubscriptionFlow:
    """Pause, resume, cancel and reactivate over HTTP."""

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, client, clock, auth_headers, plans):
        await signup(client, auth_headers, plans["monthly"])

        response = await client.post(
            "/api/v1/subscription/pause", headers=auth_headers, json={"duration_days": 30, "reason": "Travel"}
        )
        assert response.status_code == 200
        paused = response.json()
        assert paused["status"] == "paused"
        assert paused["pause_window"]["duration_days"] == 30
        assert parse(paused["end_date"]) == START + timedelta(days=60)

        response = await client.get("/api/v1/subscription/pause-status", headers=auth_headers)
        status_data = response.json()
        assert status_data["is_paused"] is True
        assert status_data["remaining_pause_days"] == 30
        assert status_data["allowed_durations"] == [15, 30, 90]

        access = (await client.get("/api/v1/membership/access", headers=auth_headers)).json()
        assert access["allowed"] is False
        assert access["status"] == "paused"

        clock.advance(days=5)
        response = await client.post("/api/v1/subscription/resume", headers=auth_headers)
        assert response.status_code == 200
        resumed = response.json()
        assert resumed["status"] == "active"
        assert parse(resumed["end_date"]) == START + timedelta(days=60)

    @pytest.mark.asyncio
    async def test_pause_rejects_unlisted_duration(self, client, auth_headers, plans):
        await signup(client, auth_headers, plans["monthly"])

        response = await client.post("/api/v1/subscription/pause", headers=auth_headers, json={"duration_days": 7})

        assert response.status_code == 422
        assert response.json()["detail"]["details"]["allowed"] == [15, 30, 90]

    @pytest.mark.asyncio
    async def test_resume_when_not_paused(self, client, auth_headers, plans):
        await signup(client, auth_headers, plans["monthly"])

        response = await client.post("/api/v1/subscription/resume", headers=auth_headers)

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_cancel_and_reactivate(self, client, clock, auth_headers, plans):
        await signup(client, auth_headers, plans["quarterly"])
        clock.advance(days=10)

        response = await client.post("/api/v1/subscription/cancel", headers=auth_headers, json={"reason": "Moving"})
        assert response.status_code == 200
        cancelled = response.json()
        assert cancelled["cancellation"]["days_left_at_cancellation"] == 80
        assert cancelled["cancellation"]["value_lost_minor_units"] == 8000
        assert cancelled["membership"]["status"] == "cancelled"
        assert cancelled["membership"]["auto_renew"] is False

        response = await client.post("/api/v1/subscription/cancel", headers=auth_headers, json={})
        assert response.status_code == 409

        response = await client.post(
            "/api/v1/subscription/reactivate",
            headers=auth_headers,
            json={"new_plan_id": plans["monthly"], "personal_data": {"phone_number": "+15550100"}},
        )
        assert response.status_code == 200
        reactivated = response.json()
        assert reactivated["status"] == "active"
        assert reactivated["plan"]["id"] == plans["monthly"]
        assert reactivated["change_reason"] == "reactivate"
        assert parse(reactivated["start_date"]) == clock.now

        response = await client.get("/api/v1/subscription/cancellations", headers=auth_headers)
        assert response.json()["total"] == 1

        balance = (await client.get("/api/v1/membership/balance", headers=auth_headers)).json()
        assert balance["balance"] == -14000

    @pytest.mark.asyncio
    async def test_reactivate_active_membership(self, client, auth_headers, plans):
        await signup(client, auth_headers, plans["monthly"])

        response = await client.post(
            "/api/v1/subscription/reactivate", headers=auth_headers, json={"new_plan_id": plans["elite"]}
        )

        assert response.status_code == 409


# ===========================================
# PAID FEATURE GUARD
# ===========================================

guarded_app = FastAPI()
setup_exception_handlers(guarded_app)


@guarded_app.post("/bookings")
async def book_class(membership: MembershipRecord = Depends(require_active_membership)):
    return {"membership_version": membership.version}


@pytest_asyncio.fixture
async def guarded_client(db_session, clock):
    """A stand-in booking service that mounts the access guard."""

    async def override_get_session():
        async with TestSessionLocal() as session:
            yield session

    guarded_app.dependency_overrides[get_async_session] = override_get_session
    guarded_app.dependency_overrides[get_clock] = lambda: clock

    transport = ASGITransport(app=guarded_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    guarded_app.dependency_overrides.clear()


class TestPaidFeatureGuard:
    """require_active_membership on another subsystem's route."""

    @pytest.mark.asyncio
    async def test_active_member_allowed(self, client, guarded_client, auth_headers, plans):
        await signup(client, auth_headers, plans["monthly"])

        response = await guarded_client.post("/bookings", headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"membership_version": 1}

    @pytest.mark.asyncio
    async def test_without_membership_denied(self, guarded_client, auth_headers):
        response = await guarded_client.post("/bookings", headers=auth_headers)

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "MEMBERSHIP_INACTIVE"

    @pytest.mark.asyncio
    async def test_cancelled_member_denied(self, client, guarded_client, auth_headers, plans):
        await signup(client, auth_headers, plans["monthly"])
        await client.post("/api/v1/subscription/cancel", headers=auth_headers, json={})

        response = await guarded_client.post("/bookings", headers=auth_headers)

        assert response.status_code == 403
        assert response.json()["detail"]["details"]["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_paused_member_denied_until_pause_ends(self, client, clock, guarded_client, auth_headers, plans):
        await signup(client, auth_headers, plans["monthly"])
        await client.post("/api/v1/subscription/pause", headers=auth_headers, json={"duration_days": 15})

        response = await guarded_client.post("/bookings", headers=auth_headers)
        assert response.status_code == 403
        assert response.json()["detail"]["details"]["status"] == "paused"

        clock.advance(days=15)
        response = await guarded_client.post("/bookings", headers=auth_headers)
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_expired_member_denied(self, client, clock, guarded_client, auth_headers, plans):
        await signup(client, auth_headers, plans["day_pass"])
        clock.advance(days=1)

        response = await guarded_client.post("/bookings", headers=auth_headers)

        assert response.status_code == 403
        assert response.json()["detail"]["details"]["status"] == "expired"
