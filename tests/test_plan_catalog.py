"""
Gym Membership Service - Plan Catalog Tests
"""

import pytest

from app.services.membership_service import MembershipService
from app.services.plan_catalog_service import DEFAULT_PLANS, PlanCatalogService
from app.services.plan_change_service import PlanChangeService
from app.utils.error_handling import PlanInUseException, PlanNotFoundException


class TestCatalogService:
    """Catalog reads and staff administration."""

    @pytest.mark.asyncio
    async def test_list_is_cheapest_first(self, db_session, plans):
        catalog = PlanCatalogService(db_session)

        listed = await catalog.list_plans()

        assert [p.price_minor_units for p in listed] == [1500, 5000, 9000, 12000]

    @pytest.mark.asyncio
    async def test_duration_days(self, db_session, plans):
        catalog = PlanCatalogService(db_session)

        assert (await catalog.get_plan(plans["quarterly"])).duration_days == 90
        assert (await catalog.get_plan(plans["monthly"])).duration_days == 30
        assert (await catalog.get_plan(plans["day_pass"])).duration_days == 1

    @pytest.mark.asyncio
    async def test_retired_plan_is_hidden(self, db_session, clock, plans):
        catalog = PlanCatalogService(db_session, clock)

        retired = await catalog.retire_plan(plans["elite"])

        assert retired.is_retired is True
        assert retired.retired_at == clock.now
        assert plans["elite"] not in [p.id for p in await catalog.list_plans()]
        assert plans["elite"] in [p.id for p in await catalog.list_plans(include_retired=True)]

    @pytest.mark.asyncio
    async def test_retire_twice_keeps_first_date(self, db_session, clock, plans):
        catalog = PlanCatalogService(db_session, clock)
        await catalog.retire_plan(plans["elite"])
        first_retired_at = clock.now
        clock.advance(days=3)

        again = await catalog.retire_plan(plans["elite"])

        assert again.retired_at == first_retired_at

    @pytest.mark.asyncio
    async def test_retired_plan_is_not_offered(self, db_session, plans):
        catalog = PlanCatalogService(db_session)
        await catalog.retire_plan(plans["monthly"])

        assert (await catalog.get_plan(plans["monthly"])).is_retired is True
        with pytest.raises(PlanNotFoundException):
            await catalog.get_offered_plan(plans["monthly"])

    @pytest.mark.asyncio
    async def test_member_keeps_retired_plan(self, db_session, clock, member_id, plans):
        memberships = MembershipService(db_session, clock)
        await memberships.signup(member_id, plans["monthly"])

        await memberships.catalog.retire_plan(plans["monthly"])

        view = await memberships.get_membership(member_id)
        assert view["plan"].id == plans["monthly"]
        decision = await memberships.check_access(member_id)
        assert decision["allowed"] is True

    @pytest.mark.asyncio
    async def test_cannot_switch_to_retired_plan(self, db_session, clock, member_id, plans):
        await MembershipService(db_session, clock).signup(member_id, plans["monthly"])
        await PlanCatalogService(db_session).retire_plan(plans["elite"])

        with pytest.raises(PlanNotFoundException):
            await PlanChangeService(db_session, clock=clock).calculate(member_id, plans["elite"])

    @pytest.mark.asyncio
    async def test_unknown_plan(self, db_session):
        with pytest.raises(PlanNotFoundException) as exc_info:
            await PlanCatalogService(db_session).get_plan(999)

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_delete_unused_plan(self, db_session, plans):
        catalog = PlanCatalogService(db_session)

        await catalog.delete_plan(plans["day_pass"])

        with pytest.raises(PlanNotFoundException):
            await catalog.get_plan(plans["day_pass"])

    @pytest.mark.asyncio
    async def test_delete_referenced_plan_is_rejected(self, db_session, clock, member_id, plans):
        await MembershipService(db_session, clock).signup(member_id, plans["monthly"])
        catalog = PlanCatalogService(db_session)

        with pytest.raises(PlanInUseException) as exc_info:
            await catalog.delete_plan(plans["monthly"])

        assert exc_info.value.status_code == 409
        assert await catalog.is_referenced(plans["monthly"]) is True

    @pytest.mark.asyncio
    async def test_quoted_plan_counts_as_referenced(self, db_session, clock, member_id, plans):
        await MembershipService(db_session, clock).signup(member_id, plans["monthly"])
        await PlanChangeService(db_session, clock=clock).calculate(member_id, plans["elite"])

        assert await PlanCatalogService(db_session).is_referenced(plans["elite"]) is True

    @pytest.mark.asyncio
    async def test_seed_only_once(self, db_session):
        catalog = PlanCatalogService(db_session)

        assert await catalog.seed_default_plans() == len(DEFAULT_PLANS)
        assert await catalog.seed_default_plans() == 0
        assert len(await catalog.list_plans()) == len(DEFAULT_PLANS)


class TestCatalogAPI:
    """Catalog endpoints."""

    @pytest.mark.asyncio
    async def test_list_plans(self, client, auth_headers, plans):
        response = await client.get("/api/v1/plans", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 4
        assert data["plans"][0]["name"] == "Day Pass"
        assert data["plans"][0]["duration_days"] == 1

    @pytest.mark.asyncio
    async def test_get_plan(self, client, auth_headers, plans):
        response = await client.get(f"/api/v1/plans/{plans['elite']}", headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["includes_personal_training"] is True

    @pytest.mark.asyncio
    async def test_get_unknown_plan(self, client, auth_headers, plans):
        response = await client.get("/api/v1/plans/999", headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "PLAN_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_staff_create_retire_delete(self, client, staff_headers):
        response = await client.post(
            "/api/v1/plans",
            headers=staff_headers,
            json={"name": "Annual", "price_minor_units": 48000, "duration_months": 12},
        )
        assert response.status_code == 201
        created = response.json()
        assert created["duration_days"] == 360
        assert created["is_retired"] is False

        response = await client.post(f"/api/v1/plans/{created['id']}/retire", headers=staff_headers)
        assert response.status_code == 200
        assert response.json()["is_retired"] is True

        response = await client.get("/api/v1/plans", headers=staff_headers)
        assert created["id"] not in [p["id"] for p in response.json()["plans"]]

        response = await client.delete(f"/api/v1/plans/{created['id']}", headers=staff_headers)
        assert response.status_code == 204

    @pytest.mark.asyncio
    async def test_member_cannot_administer(self, client, auth_headers, plans):
        response = await client.post(
            "/api/v1/plans",
            headers=auth_headers,
            json={"name": "Cheap", "price_minor_units": 1, "duration_months": 1},
        )
        assert response.status_code == 403

        response = await client.post(f"/api/v1/plans/{plans['monthly']}/retire", headers=auth_headers)
        assert response.status_code == 403

        response = await client.delete(f"/api/v1/plans/{plans['monthly']}", headers=auth_headers)
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_invalid_plan_rejected(self, client, staff_headers):
        response = await client.post(
            "/api/v1/plans",
            headers=staff_headers,
            json={"name": "Broken", "price_minor_units": -100, "duration_months": 1},
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"
