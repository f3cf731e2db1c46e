"""Business, contact, review, and stats API tests."""

import pytest


@pytest.mark.asyncio
async def test_create_get_and_list_businesses(client):
    r = await client.post("/api/v1/businesses", json={"name": "Bright Electric", "slug": "bright"})
    assert r.status_code == 201
    business = r.json()
    assert business["vertical"] == "general"

    r = await client.get(f"/api/v1/businesses/{business['id']}")
    assert r.json()["name"] == "Bright Electric"

    r = await client.get("/api/v1/businesses")
    assert [b["slug"] for b in r.json()] == ["bright"]


@pytest.mark.asyncio
async def test_duplicate_slug_conflicts(client):
    body = {"name": "Bright Electric", "slug": "bright"}
    assert (await client.post("/api/v1/businesses", json=body)).status_code == 201
    assert (await client.post("/api/v1/businesses", json=body)).status_code == 409


@pytest.mark.asyncio
async def test_invalid_business_rejected(client):
    r = await client.post("/api/v1/businesses", json={"name": "X", "slug": "Not A Slug"})
    assert r.status_code == 422
    r = await client.post("/api/v1/businesses", json={"name": "X", "slug": "x", "vertical": "pets"})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_unknown_business_returns_404(client):
    assert (await client.get("/api/v1/businesses/999")).status_code == 404
    assert (await client.get("/api/v1/businesses/999/stats")).status_code == 404
    r = await client.post("/api/v1/businesses/999/contacts", json={"first_name": "A", "last_name": "B"})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_new_contact_fires_new_customer_rule(app, client, make_connection):
    r = await client.post("/api/v1/businesses", json={"name": "Acme", "slug": "acme"})
    bid = r.json()["id"]
    dashboard = make_connection()
    app.state.bus.register_tenant(bid, dashboard)

    await client.post(f"/api/v1/businesses/{bid}/automations", json={
        "name": "Welcome email",
        "trigger": "new_customer",
        "actions": [{
            "type": "send_email",
            "params": {"to": "{{contact.email}}", "subject": "Welcome to {{business.name}}"},
        }],
    })

    r = await client.post(f"/api/v1/businesses/{bid}/contacts", json={
        "first_name": "Sam",
        "last_name": "Lee",
        "email": "sam@example.com",
    })
    assert r.status_code == 201

    [frame] = dashboard.frames_of("AUTOMATION_TRIGGERED")
    assert frame["payload"]["result"]["to"] == "sam@example.com"
    assert frame["payload"]["result"]["subject"] == "Welcome to Acme"

    r = await client.get(f"/api/v1/businesses/{bid}/contacts")
    assert [c["first_name"] for c in r.json()] == ["Sam"]


@pytest.mark.asyncio
async def test_review_broadcasts_new_review(client, dashboard):
    bid = dashboard["business"]["id"]
    r = await client.post(f"/api/v1/businesses/{bid}/reviews", json={
        "platform": "google",
        "rating": 5,
        "content": "Fast and friendly",
        "reviewer_name": "Jane D.",
        "review_date": "2026-03-01T12:00:00Z",
    })
    assert r.status_code == 201

    [frame] = dashboard["connection"].frames_of("NEW_REVIEW")
    assert frame["payload"]["businessId"] == bid
    assert frame["payload"]["review"]["rating"] == 5

    r = await client.post(f"/api/v1/businesses/{bid}/reviews", json={
        "platform": "yelp", "rating": 6, "review_date": "2026-03-01T12:00:00Z",
    })
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_stats(client, dashboard):
    bid = dashboard["business"]["id"]
    cid = dashboard["contact"]["id"]

    r = await client.get(f"/api/v1/businesses/{bid}/stats")
    assert r.json() == {"activeCustomers": 0, "scheduledJobs": 0, "newMessages": 0, "avgReview": 0.0}

    for title in ("Inspect", "Repair"):
        await client.post(f"/api/v1/businesses/{bid}/jobs", json={
            "contact_id": cid,
            "title": title,
            "start_time": "2026-03-02T09:00:00Z",
            "end_time": "2026-03-02T10:00:00Z",
        })
    for rating in (4, 5, 5):
        await client.post(f"/api/v1/businesses/{bid}/reviews", json={
            "platform": "google", "rating": rating, "review_date": "2026-03-01T12:00:00Z",
        })
    r = await client.post(f"/api/v1/businesses/{bid}/conversations", json={"contact_id": cid})
    await client.post(f"/api/v1/conversations/{r.json()['id']}/messages", json={"content": "hi"})

    r = await client.get(f"/api/v1/businesses/{bid}/stats")
    assert r.json() == {"activeCustomers": 1, "scheduledJobs": 2, "newMessages": 1, "avgReview": 4.7}
