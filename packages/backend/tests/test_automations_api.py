"""Automation rule API tests."""

import pytest
import pytest_asyncio

SMS = {"type": "send_sms", "params": {"to": "{{contact.phone}}", "message": "Thanks!"}}


@pytest_asyncio.fixture()
async def business_id(client):
    r = await client.post("/api/v1/businesses", json={"name": "Acme", "slug": "acme"})
    return r.json()["id"]


@pytest.mark.asyncio
async def test_create_and_list_automations(client, business_id):
    r = await client.post(f"/api/v1/businesses/{business_id}/automations", json={
        "name": "Thank-you SMS",
        "trigger": "job_completed",
        "conditions": {"status": "completed"},
        "actions": [SMS],
    })
    assert r.status_code == 201
    rule = r.json()
    assert rule["is_active"] is True
    assert rule["actions"] == [SMS]
    assert rule["conditions"] == {"status": "completed"}

    r = await client.get(f"/api/v1/businesses/{business_id}/automations")
    assert [a["id"] for a in r.json()] == [rule["id"]]


@pytest.mark.asyncio
async def test_rule_requires_an_action_and_a_known_trigger(client, business_id):
    url = f"/api/v1/businesses/{business_id}/automations"
    r = await client.post(url, json={"name": "Empty", "trigger": "job_completed", "actions": []})
    assert r.status_code == 422
    r = await client.post(url, json={"name": "Odd", "trigger": "full_moon", "actions": [SMS]})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_partial_update_toggles_rule(client, business_id):
    r = await client.post(f"/api/v1/businesses/{business_id}/automations", json={
        "name": "Thank-you SMS", "trigger": "job_completed", "actions": [SMS],
    })
    rule_id = r.json()["id"]

    r = await client.put(f"/api/v1/automations/{rule_id}", json={"is_active": False})
    assert r.status_code == 200
    updated = r.json()
    assert updated["is_active"] is False
    assert updated["name"] == "Thank-you SMS"
    assert updated["actions"] == [SMS]

    r = await client.get(f"/api/v1/automations/{rule_id}")
    assert r.json()["is_active"] is False


@pytest.mark.asyncio
async def test_update_cannot_empty_actions(client, business_id):
    r = await client.post(f"/api/v1/businesses/{business_id}/automations", json={
        "name": "Thank-you SMS", "trigger": "job_completed", "actions": [SMS],
    })
    r = await client.put(f"/api/v1/automations/{r.json()['id']}", json={"actions": []})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_null_clears_description_but_not_required_fields(client, business_id):
    r = await client.post(f"/api/v1/businesses/{business_id}/automations", json={
        "name": "Thank-you SMS",
        "description": "Sent after every completed job",
        "trigger": "job_completed",
        "actions": [SMS],
    })
    rule_id = r.json()["id"]

    r = await client.put(f"/api/v1/automations/{rule_id}", json={"description": None, "name": None})
    assert r.status_code == 200
    updated = r.json()
    assert updated["description"] is None
    assert updated["name"] == "Thank-you SMS"
    assert updated["trigger"] == "job_completed"
    assert updated["actions"] == [SMS]
    assert updated["is_active"] is True

    r = await client.get(f"/api/v1/automations/{rule_id}")
    assert r.json()["description"] is None

@pytest.mark.asyncio
async def test_unknown_rule_and_business(client):
    assert (await client.put("/api/v1/automations/999", json={"is_active": True})).status_code == 404
    assert (await client.get("/api/v1/automations/999")).status_code == 404
    r = await client.post("/api/v1/businesses/999/automations", json={
        "name": "x", "trigger": "custom", "actions": [SMS],
    })
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_custom_trigger_via_engine(app, client, business_id, make_connection):
    """Rules created over REST are visible to the engine on the next evaluation."""
    await client.post(f"/api/v1/businesses/{business_id}/automations", json={
        "name": "Manual", "trigger": "custom", "actions": [{"type": "notify_staff", "params": {}}],
    })
    dashboard = make_connection()
    app.state.bus.register_tenant(business_id, dashboard)

    fired = await app.state.engine.evaluate_and_fire(business_id, "custom", {})

    assert [f.result for f in fired] == [{"channel": "dashboard", "message": "Manual"}]
    assert len(dashboard.frames_of("AUTOMATION_TRIGGERED")) == 1
