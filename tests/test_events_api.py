def test_events_are_always_accepted(client):
    accepted = client.post(
        "/api/events",
        json={"type": "widget_opened", "projectId": "tower-a", "microsite": "tower.in", "payload": {"auto": True}},
    )
    assert accepted.status_code == 202
    assert accepted.json() == {"accepted": True}

    rejected = client.post("/api/events", json={"payload": "not-an-object"})
    assert rejected.status_code == 202
    assert rejected.json() == {"accepted": False}


def test_event_listing_and_summary(client):
    for event_type in ("widget_opened", "widget_opened", "cta_selected"):
        client.post("/api/events", json={"type": event_type, "projectId": "tower-a", "microsite": "tower.in"})

    items = client.get("/api/events", params={"type": "widget_opened"}).json()["items"]
    assert len(items) == 2
    assert items[0]["project_id"] == "tower-a"

    summary = client.get("/api/events/summary").json()
    assert summary["total"] == 3
    assert summary["recent24h"] == 3
    assert summary["byType"][0] == {"type": "widget_opened", "count": 2}
    assert summary["byProject"] == [{"projectId": "tower-a", "count": 3}]
