"""Tests for the HTTP API."""

import time

import pytest


@pytest.fixture
def conversation_id(client):
    resp = client.post("/api/v1/conversations", json={"customer_name": "Dana Reyes", "customer_email": "dana@example.com"})
    assert resp.status_code == 201
    return resp.json()["conversation_id"]


def test_root_endpoint(client):
    resp = client.get("/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["service"] == "Lead Qualification Engine API"
    assert "version" in data


def test_health_endpoint(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["services"]["orchestrator"] is True
    assert data["services"]["calendar"] is True


def test_metrics_endpoint(client):
    client.get("/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "leadqual_http_requests_total" in resp.text


def test_create_conversation(client):
    resp = client.post("/api/v1/conversations", json={"channel": "email"})
    assert resp.status_code == 201
    data = resp.json()
    assert data["channel"] == "email"
    assert data["conversation_id"]
    assert data["customer_id"]


def test_turn_returns_result(client, conversation_id, fake_completion):
    fake_completion.extractions.append({"painPoints": ["manual reporting"]})
    fake_completion.replies.append("How much time does reporting take each week?")

    resp = client.post(f"/api/v1/conversations/{conversation_id}/turns", json={"text": "Reporting is all manual"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["reply"] == "How much time does reporting take each week?"
    assert data["lead_score"] == 10
    assert data["status"] == "prospect"
    assert data["phase"] == "qualification"
    assert data["profile"]["pain_points"] == ["manual reporting"]

    messages = client.get(f"/api/v1/conversations/{conversation_id}/messages").json()
    assert [m["role"] for m in messages] == ["customer", "ai"]
    assert messages[0]["content"] == "Reporting is all manual"


def test_turn_unknown_conversation(client):
    resp = client.post("/api/v1/conversations/nope/turns", json={"text": "hello"})
    assert resp.status_code == 404


def test_empty_message_rejected(client, conversation_id):
    resp = client.post(f"/api/v1/conversations/{conversation_id}/turns", json={"text": ""})
    assert resp.status_code == 422


def test_read_models(client, conversation_id, fake_completion):
    fake_completion.extractions.append({"budgetMentioned": True, "budget": "$5k/month"})
    client.post(f"/api/v1/conversations/{conversation_id}/turns", json={"text": "We can spend $5k a month"})

    lead = client.get(f"/api/v1/conversations/{conversation_id}/lead").json()
    assert lead["lead_score"] == 20
    assert lead["qualification_profile"]["budget"] == "$5k/month"
    assert lead["assigned_agent"] == "system"

    state = client.get(f"/api/v1/conversations/{conversation_id}/agent-state").json()
    assert state["phase"] == "greeting"
    assert state["progress_context"]["budget_mentioned"] is True
    assert state["agent_personality"] == "consultative"

    detail = client.get(f"/api/v1/leads/{lead['id']}").json()
    assert [e["event_type"] for e in detail["events"]] == ["created", "score_updated"]


def test_lead_missing_before_first_turn(client, conversation_id):
    assert client.get(f"/api/v1/conversations/{conversation_id}/lead").status_code == 404
    assert client.get(f"/api/v1/conversations/{conversation_id}/agent-state").status_code == 404


def test_booking_through_api(client, conversation_id, fake_completion, fake_calendar):
    fake_completion.extractions.extend([
        {"painPoints": ["churn"], "interests": ["analytics"], "budgetMentioned": True},
    ])

    resp = client.post(f"/api/v1/conversations/{conversation_id}/turns", json={"text": "Can we book a demo?"})

    data = resp.json()
    assert data["lead_score"] == 55
    assert data["action"] == "schedule_meeting"
    assert data["booking"]["status"] == "booked"
    assert len(fake_calendar.created) == 1

    meetings = client.get(f"/api/v1/conversations/{conversation_id}/meetings").json()
    assert meetings[0]["status"] == "booked"
    assert meetings[0]["subject"] == "Sales Consultation - Dana Reyes"


def test_list_leads(client, fake_completion):
    ids = []
    for payload in ({}, {"budgetMentioned": True}):
        cid = client.post("/api/v1/conversations", json={}).json()["conversation_id"]
        fake_completion.extractions.append(payload)
        client.post(f"/api/v1/conversations/{cid}/turns", json={"text": "hi"})
        ids.append(cid)

    leads = client.get("/api/v1/leads").json()
    assert [lead["conversation_id"] for lead in leads] == [ids[1], ids[0]]

    assert client.get("/api/v1/leads?status=qualified").json() == []
    assert client.get("/api/v1/leads?status=bogus").status_code == 422


def test_lead_not_found(client):
    assert client.get("/api/v1/leads/missing").status_code == 404


def test_phase_override(client, conversation_id):
    client.post(f"/api/v1/conversations/{conversation_id}/turns", json={"text": "hello"})

    resp = client.post(f"/api/v1/conversations/{conversation_id}/phase", json={"phase": "closing"})
    assert resp.status_code == 200
    assert resp.json() == {"conversation_id": conversation_id, "previous_phase": "greeting", "phase": "closing"}

    resp = client.post(f"/api/v1/conversations/{conversation_id}/phase", json={"phase": "qualification"})
    assert resp.status_code == 409


def test_phase_override_unknown_conversation(client):
    resp = client.post("/api/v1/conversations/nope/phase", json={"phase": "closing"})
    assert resp.status_code == 404


def test_posted_message_is_dispatched(client, conversation_id, fake_completion):
    fake_completion.replies.append("Welcome! What are you looking for?")

    resp = client.post(f"/api/v1/conversations/{conversation_id}/messages", json={"text": "hello"})
    assert resp.status_code == 202
    assert resp.json()["dispatched"] is True

    messages = []
    for _ in range(50):
        messages = client.get(f"/api/v1/conversations/{conversation_id}/messages").json()
        if len(messages) == 2:
            break
        time.sleep(0.05)

    assert [m["content"] for m in messages] == ["hello", "Welcome! What are you looking for?"]
