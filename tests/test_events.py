from datetime import datetime, timedelta, timezone

import pytest

import event_repository
from database import to_iso


def in_days(days, hours=0):
    return datetime.now(timezone.utc) + timedelta(days=days, hours=hours)


def event_body(location_id, **overrides):
    start = in_days(3)
    body = {
        "title": "Robotics Workshop",
        "description": "Build a line follower",
        "category": "Workshop",
        "locationId": location_id,
        "dateTime": to_iso(start),
        "endDateTime": to_iso(start + timedelta(hours=3)),
        "capacity": 30,
        "tags": ["Robotics", "Coding"],
    }
    body.update(overrides)
    return body


def test_organizer_creates_event(client, organizer, add_location, fake_db):
    uid, headers = organizer
    res = client.post("/api/events", headers=headers, json=event_body(add_location()))
    assert res.status_code == 201
    event = res.json()["data"]["event"]
    assert event["category"] == "workshop"
    assert event["tags"] == ["robotics", "coding"]
    assert event["createdBy"] == uid
    assert event["organizer"] == "Org Anizer"
    assert event["attendees"] == []
    assert event["status"] == "published"
    assert event["availableSpots"] == 30
    assert event["isFull"] is False
    assert fake_db.collection("events").document(event["id"]).get().exists


def test_create_event_with_unknown_location(client, organizer):
    _, headers = organizer
    res = client.post("/api/events", headers=headers, json=event_body("missing"))
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid location ID"


@pytest.mark.parametrize("overrides, message", [
    ({"dateTime": "2001-01-01T10:00:00Z", "endDateTime": "2001-01-01T12:00:00Z"}, "Event date must be in the future"),
    ({"endDateTime": "2000-01-01T00:00:00Z"}, "Event end time must be after start time"),
])
def test_create_event_date_rules(client, organizer, add_location, overrides, message):
    _, headers = organizer
    res = client.post("/api/events", headers=headers, json=event_body(add_location(), **overrides))
    assert res.status_code == 400
    assert message in [err["message"] for err in res.json()["errors"]]


def test_get_event_requires_auth_and_populates_location(client, student, organizer, add_location, add_event):
    org_uid, _ = organizer
    _, headers = student
    event_id = add_event(add_location(name="Auditorium"), org_uid)

    assert client.get(f"/api/events/{event_id}").status_code == 401
    res = client.get(f"/api/events/{event_id}", headers=headers)
    event = res.json()["data"]["event"]
    assert event["location"]["name"] == "Auditorium"
    assert event["availableSpots"] == 50


def test_get_missing_event(client, student):
    _, headers = student
    res = client.get("/api/events/nope", headers=headers)
    assert res.status_code == 404
    assert res.json()["message"] == "Event not found"


def test_list_events_filters_and_hides_drafts(client, organizer, student, add_location, add_event):
    org_uid, org_headers = organizer
    _, student_headers = student
    location_id = add_location()
    add_event(location_id, org_uid, title="Cultural Night", category="cultural", start=in_days(1))
    add_event(location_id, org_uid, title="Seminar", category="seminar", start=in_days(2))
    add_event(location_id, org_uid, title="Secret Draft", status="draft", start=in_days(3))

    titles = lambda res: [e["title"] for e in res.json()["data"]["events"]]

    public = client.get("/api/events")
    assert titles(public) == ["Seminar", "Cultural Night"]
    assert public.json()["data"]["pagination"]["total"] == 2

    assert titles(client.get("/api/events", headers=student_headers)) == ["Seminar", "Cultural Night"]
    assert "Secret Draft" in titles(client.get("/api/events", headers=org_headers))

    assert titles(client.get("/api/events", params={"category": "CULTURAL"})) == ["Cultural Night"]
    assert titles(client.get("/api/events", params={"q": "semi"})) == ["Seminar"]
    assert titles(client.get("/api/events", params={"upcoming": "true"})) == ["Cultural Night", "Seminar"]


def test_list_events_date_range(client, organizer, add_location, add_event):
    org_uid, _ = organizer
    location_id = add_location()
    add_event(location_id, org_uid, title="Soon", start=in_days(1))
    add_event(location_id, org_uid, title="Later", start=in_days(10))

    res = client.get("/api/events", params={"startDate": to_iso(in_days(5)), "endDate": to_iso(in_days(20))})
    assert [e["title"] for e in res.json()["data"]["events"]] == ["Later"]


def test_upcoming_events_only_published_future(client, organizer, add_location, add_event):
    org_uid, _ = organizer
    location_id = add_location()
    add_event(location_id, org_uid, title="Past", start=in_days(-2))
    add_event(location_id, org_uid, title="Cancelled", status="cancelled")
    add_event(location_id, org_uid, title="Next", start=in_days(1))

    res = client.get("/api/events/upcoming")
    assert [e["title"] for e in res.json()["data"]["events"]] == ["Next"]


def test_register_and_unregister(client, student, organizer, add_location, add_event, fake_db):
    uid, headers = student
    org_uid, _ = organizer
    event_id = add_event(add_location(), org_uid, capacity=2)

    res = client.post(f"/api/events/{event_id}/register", headers=headers)
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["availableSpots"] == 1
    assert data["event"]["attendees"][0]["userId"] == uid

    res = client.post(f"/api/events/{event_id}/register", headers=headers)
    assert res.status_code == 400
    assert res.json()["message"] == "User is already registered for this event"

    res = client.delete(f"/api/events/{event_id}/register", headers=headers)
    assert res.status_code == 200
    assert res.json()["data"]["availableSpots"] == 2

    res = client.delete(f"/api/events/{event_id}/register", headers=headers)
    assert res.status_code == 400
    assert res.json()["message"] == "User is not registered for this event"


def test_register_full_event(client, student, organizer, add_location, add_event):
    _, headers = student
    org_uid, _ = organizer
    event_id = add_event(add_location(), org_uid, capacity=1,
                         attendees=[{"userId": "someone", "registeredAt": to_iso(in_days(-1))}])
    res = client.post(f"/api/events/{event_id}/register", headers=headers)
    assert res.status_code == 400
    assert res.json()["message"] == "Event is full"


def test_register_refused_for_cancelled_or_started(client, student, organizer, add_location, add_event):
    _, headers = student
    org_uid, _ = organizer
    location_id = add_location()

    cancelled = add_event(location_id, org_uid, status="cancelled")
    res = client.post(f"/api/events/{cancelled}/register", headers=headers)
    assert res.json()["message"] == "Event is not open for registration"

    started = add_event(location_id, org_uid, start=in_days(0, hours=-1))
    res = client.post(f"/api/events/{started}/register", headers=headers)
    assert res.json()["message"] == "Registration closed. Event has already started."


def test_register_missing_event(client, student):
    _, headers = student
    res = client.post("/api/events/ghost/register", headers=headers)
    assert res.status_code == 404


def test_registrations_visible_to_owner(client, student, organizer, make_user, add_location, add_event):
    student_uid, student_headers = student
    org_uid, org_headers = organizer
    _, other_org_headers = make_user("organizer")
    event_id = add_event(add_location(), org_uid,
                         attendees=[{"userId": student_uid, "registeredAt": to_iso(in_days(-1))}])

    res = client.get(f"/api/events/{event_id}/registrations", headers=org_headers)
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["total"] == 1
    assert data["registrations"][0]["name"] == "Stu Dent"
    assert data["registrations"][0]["email"] == f"{student_uid}@thapar.edu"

    res = client.get(f"/api/events/{event_id}/registrations", headers=other_org_headers)
    assert res.status_code == 403
    assert res.json()["message"] == "Access denied. You can only view registrations for events you created."

    res = client.get(f"/api/events/{event_id}/registrations", headers=student_headers)
    assert res.status_code == 403


def test_update_event_keeps_protected_fields(client, organizer, add_location, add_event, fake_db):
    org_uid, headers = organizer
    event_id = add_event(add_location(), org_uid,
                         attendees=[{"userId": "x", "registeredAt": to_iso(in_days(-1))}])

    res = client.put(f"/api/events/{event_id}", headers=headers,
                     json={"title": "Renamed", "tags": ["NEW"], "capacity": 5})
    assert res.status_code == 200
    event = res.json()["data"]["event"]
    assert event["title"] == "Renamed"
    assert event["tags"] == ["new"]
    assert event["createdBy"] == org_uid
    assert len(event["attendees"]) == 1
    assert event["availableSpots"] == 4


def test_update_event_checks_merged_dates(client, organizer, add_location, add_event):
    org_uid, headers = organizer
    event_id = add_event(add_location(), org_uid, start=in_days(5))
    res = client.put(f"/api/events/{event_id}", headers=headers, json={"endDateTime": to_iso(in_days(4))})
    assert res.status_code == 400
    assert res.json()["message"] == "Event end time must be after start time"

    res = client.put(f"/api/events/{event_id}", headers=headers, json={"locationId": "nowhere"})
    assert res.status_code == 400
    assert res.json()["message"] == "Invalid location ID"


def test_admin_cancels_and_deletes_any_event(client, admin, organizer, add_location, add_event, fake_db):
    org_uid, _ = organizer
    _, headers = admin
    event_id = add_event(add_location(), org_uid)

    res = client.patch(f"/api/events/{event_id}/cancel", headers=headers)
    assert res.json()["data"]["event"]["status"] == "cancelled"

    res = client.delete(f"/api/events/{event_id}", headers=headers)
    assert res.status_code == 200
    assert not fake_db.collection("events").document(event_id).get().exists


def test_my_events(client, organizer, make_user, add_location, add_event):
    org_uid, headers = organizer
    other_uid, _ = make_user("organizer")
    location_id = add_location()
    add_event(location_id, org_uid, title="Mine")
    add_event(location_id, other_uid, title="Theirs")

    res = client.get("/api/events/my-events", headers=headers)
    assert [e["title"] for e in res.json()["data"]["events"]] == ["Mine"]


def test_recommended_events_rank_by_interest(client, student, organizer, add_location, add_event):
    _, headers = student  # interests: music, coding
    org_uid, _ = organizer
    location_id = add_location()
    add_event(location_id, org_uid, title="Hackathon", tags=["coding"], start=in_days(3))
    add_event(location_id, org_uid, title="Jam", tags=["music", "coding"], start=in_days(4))
    add_event(location_id, org_uid, title="Football", tags=["sports"], start=in_days(1))

    res = client.get("/api/events/recommended", headers=headers)
    data = res.json()["data"]
    assert data["basedOn"] == "your interests"
    assert [e["title"] for e in data["events"]] == ["Jam", "Hackathon"]
    assert data["events"][0]["matchScore"] > data["events"][1]["matchScore"]


def test_recommended_without_interests(client, make_user, organizer, add_location, add_event):
    _, headers = make_user("student", interests=[])
    org_uid, _ = organizer
    location_id = add_location()
    add_event(location_id, org_uid, title="First", start=in_days(1))
    add_event(location_id, org_uid, title="Second", start=in_days(2))

    res = client.get("/api/events/recommended", headers=headers)
    data = res.json()["data"]
    assert data["basedOn"] == "general recommendations"
    assert [e["title"] for e in data["events"]] == ["First", "Second"]


def test_present_event_derived_fields():
    event = event_repository.present_event({"capacity": 2, "attendees": [{"userId": "a"}, {"userId": "b"}]})
    assert event["availableSpots"] == 0
    assert event["isFull"] is True


def test_update_event_rejects_null_fields(client, organizer, add_location, add_event, fake_db):
    org_uid, headers = organizer
    event_id = add_event(add_location(), org_uid, title="Keep me")

    res = client.put(f"/api/events/{event_id}", headers=headers, json={"dateTime": None, "title": None})
    assert res.status_code == 400
    assert {err["field"] for err in res.json()["errors"]} == {"dateTime", "title"}
    assert res.json()["errors"][0]["message"] == "Field cannot be null"

    stored = fake_db.collection("events").document(event_id).get().to_dict()
    assert stored["title"] == "Keep me"
    assert stored["dateTime"] is not None


def test_draft_event_hidden_from_non_owner(client, organizer, student, add_location, add_event):
    org_uid, org_headers = organizer
    _, student_headers = student
    event_id = add_event(add_location(), org_uid, title="Secret Draft", status="draft")

    res = client.get(f"/api/events/{event_id}", headers=student_headers)
    assert res.status_code == 404
    assert res.json()["message"] == "Event not found"

    res = client.get(f"/api/events/{event_id}", headers=org_headers)
    assert res.json()["data"]["event"]["title"] == "Secret Draft"
