from uuid import uuid4

import pytest

from smart_rewards_api.api.v1.endpoints.mukando import get_sweep_session_factory
from smart_rewards_api.core.settings import settings
from smart_rewards_api.observability.mukando import get_mukando_store


def _as(user_id) -> dict[str, str]:
    return {"X-Session-User": str(user_id)}


async def _request_group(api_client, creator_id, business_id, **overrides):
    payload = {
        "businessId": str(business_id),
        "goalName": "Deep freezer",
        "goalPoints": 600,
        "contributionInterval": "weekly",
        "termMonths": 3,
    }
    payload.update(overrides)
    return await api_client.post("/api/v1/mukando/groups", json=payload, headers=_as(creator_id))


@pytest.mark.asyncio
async def test_group_lifecycle_over_http(api_client, seeder) -> None:
    creator_id = await seeder.customer(balance=500)
    member_id = await seeder.customer(balance=300)
    business_id = await seeder.business()

    created = await _request_group(api_client, creator_id, business_id)
    assert created.status_code == 201
    group = created.json()
    assert group["status"] == "pending_approval"
    group_id = group["id"]

    approved = await api_client.post(
        f"/api/v1/mukando/groups/{group_id}/approve",
        json={"maxMembers": 2, "discountRate": 7.5},
        headers=_as(business_id),
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert approved.json()["maxMembers"] == 2
    assert approved.json()["discountRate"] == 7.5

    available = await api_client.get("/api/v1/mukando/groups/available", headers=_as(member_id))
    assert [item["id"] for item in available.json()] == [group_id]
    assert available.json()[0]["spotsRemaining"] == 2

    for customer_id, expected_order in ((creator_id, 0), (member_id, 1)):
        joined = await api_client.post(f"/api/v1/mukando/groups/{group_id}/join", headers=_as(customer_id))
        assert joined.status_code == 201
        assert joined.json()["payoutOrder"] == expected_order

    contribution = await api_client.post(
        f"/api/v1/mukando/groups/{group_id}/contributions",
        json={"pointsAmount": 150},
        headers=_as(member_id),
    )
    assert contribution.status_code == 201
    body = contribution.json()
    assert body["poolPoints"] == 150
    assert body["bonusPoints"] == 15
    assert body["remainingBalance"] == 150
    assert body["progressPercentage"] == 25.0
    assert body["cycleNumber"] == 1

    mine = await api_client.get("/api/v1/mukando/groups/mine", headers=_as(member_id))
    assert mine.status_code == 200
    [summary] = mine.json()
    assert summary["isMember"] is True
    assert summary["isCreator"] is False
    assert summary["customerContribution"] == 150
    assert summary["payoutOrder"] == 1

    hosted = await api_client.get(
        "/api/v1/mukando/groups/business", params={"status": "approved"}, headers=_as(business_id)
    )
    assert [item["memberCount"] for item in hosted.json()] == [2]

    detail = await api_client.get(f"/api/v1/mukando/groups/{group_id}", headers=_as(member_id))
    assert detail.status_code == 200
    assert [member["customerId"] for member in detail.json()["members"]] == [str(creator_id), str(member_id)]
    assert detail.json()["unpaidBonusPoints"] == 15


@pytest.mark.asyncio
async def test_domain_errors_map_to_http_status(api_client, seeder) -> None:
    creator_id = await seeder.customer(balance=20)
    business_id = await seeder.business()
    other_business_id = await seeder.business(name="Rival")
    group_id = (await _request_group(api_client, creator_id, business_id)).json()["id"]

    forbidden = await api_client.post(
        f"/api/v1/mukando/groups/{group_id}/approve",
        json={"maxMembers": 3},
        headers=_as(other_business_id),
    )
    assert forbidden.status_code == 403

    not_open = await api_client.post(f"/api/v1/mukando/groups/{group_id}/join", headers=_as(creator_id))
    assert not_open.status_code == 409

    await api_client.post(
        f"/api/v1/mukando/groups/{group_id}/approve", json={"maxMembers": 3}, headers=_as(business_id)
    )
    already_approved = await api_client.post(
        f"/api/v1/mukando/groups/{group_id}/approve", json={"maxMembers": 3}, headers=_as(business_id)
    )
    assert already_approved.status_code == 409

    not_member = await api_client.post(
        f"/api/v1/mukando/groups/{group_id}/contributions", json={"pointsAmount": 5}, headers=_as(creator_id)
    )
    assert not_member.status_code == 403

    await api_client.post(f"/api/v1/mukando/groups/{group_id}/join", headers=_as(creator_id))
    duplicate = await api_client.post(f"/api/v1/mukando/groups/{group_id}/join", headers=_as(creator_id))
    assert duplicate.status_code == 409

    overdraft = await api_client.post(
        f"/api/v1/mukando/groups/{group_id}/contributions", json={"pointsAmount": 21}, headers=_as(creator_id)
    )
    assert overdraft.status_code == 422

    invalid = await api_client.post(
        f"/api/v1/mukando/groups/{group_id}/contributions", json={"pointsAmount": 0}, headers=_as(creator_id)
    )
    assert invalid.status_code == 422

    missing = await api_client.get(f"/api/v1/mukando/groups/{uuid4()}", headers=_as(creator_id))
    assert missing.status_code == 404

    bad_goal = await _request_group(api_client, creator_id, business_id, goalPoints=0)
    assert bad_goal.status_code == 422


@pytest.mark.asyncio
async def test_session_header_is_required(api_client, seeder) -> None:
    business_id = await seeder.business()

    missing = await api_client.get("/api/v1/mukando/groups/mine")
    assert missing.status_code == 401

    malformed = await api_client.get("/api/v1/mukando/groups/mine", headers={"X-Session-User": "nope"})
    assert malformed.status_code == 400

    wrong_role = await api_client.get("/api/v1/mukando/groups/mine", headers=_as(business_id))
    assert wrong_role.status_code == 403


@pytest.mark.asyncio
async def test_payout_endpoints(app_with_db, api_client, seeder, monkeypatch) -> None:
    app, session_factory = app_with_db
    app.dependency_overrides[get_sweep_session_factory] = lambda: session_factory
    monkeypatch.setattr(settings, "operator_api_key", "operator-secret")
    monkeypatch.setattr(settings, "mukando_payout_min_interval_days", 0)

    creator_id = await seeder.customer(balance=100)
    business_id = await seeder.business()
    group_id = await seeder.group(creator_id=creator_id, business_id=business_id)
    operator = {"X-API-Key": "operator-secret"}

    await api_client.post(f"/api/v1/mukando/groups/{group_id}/join", headers=_as(creator_id))
    await api_client.post(
        f"/api/v1/mukando/groups/{group_id}/contributions", json={"pointsAmount": 100}, headers=_as(creator_id)
    )

    unauthorised = await api_client.get("/api/v1/mukando/payouts/ready")
    assert unauthorised.status_code == 401

    ready = await api_client.get("/api/v1/mukando/payouts/ready", headers=operator)
    assert ready.status_code == 200
    [row] = ready.json()
    assert row["groupId"] == str(group_id)
    assert row["nextRecipientCustomerId"] == str(creator_id)
    assert row["isDue"] is True

    swept = await api_client.post("/api/v1/mukando/payouts/sweep", json={"limit": 10}, headers=operator)
    assert swept.status_code == 200
    body = swept.json()
    assert body["distributed"] == 1
    assert body["results"][0]["pointsDistributed"] == 10
    assert body["results"][0]["isCompleted"] is True

    detail = await api_client.get(f"/api/v1/mukando/groups/{group_id}", headers=_as(creator_id))
    assert detail.json()["status"] == "completed"
    assert detail.json()["members"][0]["rewardsReceived"] == 10

    metrics = await api_client.get("/api/v1/observability/mukando", headers=operator)
    assert metrics.status_code == 200
    assert metrics.json()["payouts"]["points_distributed"] == 10
    assert get_mukando_store().snapshot().contributions["count"] == 1

    prometheus = await api_client.get("/api/v1/observability/prometheus", headers=operator)
    assert "smart_rewards_mukando_payouts_total 1" in prometheus.text


@pytest.mark.asyncio
async def test_health_endpoints(api_client) -> None:
    health = await api_client.get("/healthz")
    assert health.status_code == 200
    assert health.json()["status"] == "ok"

    ready = await api_client.get("/api/v1/readyz")
    assert ready.status_code == 200
    payload = ready.json()
    assert payload["components"]["database"]["status"] == "ready"
    assert payload["components"]["mukando_payout_worker"]["status"] == "disabled"


@pytest.mark.asyncio
async def test_group_detail_is_limited_to_participants(api_client, seeder) -> None:
    creator_id = await seeder.customer()
    member_id = await seeder.customer()
    outsider_id = await seeder.customer()
    business_id = await seeder.business()
    rival_business_id = await seeder.business(name="Rival")
    group_id = await seeder.group(creator_id=creator_id, business_id=business_id)
    await api_client.post(f"/api/v1/mukando/groups/{group_id}/join", headers=_as(member_id))
    path = f"/api/v1/mukando/groups/{group_id}"

    anonymous = await api_client.get(path)
    assert anonymous.status_code == 401

    for viewer in (creator_id, member_id, business_id):
        allowed = await api_client.get(path, headers=_as(viewer))
        assert allowed.status_code == 200
        assert [member["customerId"] for member in allowed.json()["members"]] == [str(member_id)]

    for stranger in (outsider_id, rival_business_id):
        denied = await api_client.get(path, headers=_as(stranger))
        assert denied.status_code == 403

    unknown_user = await api_client.get(path, headers=_as(uuid4()))
    assert unknown_user.status_code == 403
