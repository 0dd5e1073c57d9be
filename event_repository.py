import logging
from datetime import datetime
from typing import Iterable, List, Optional

from google.cloud.firestore_v1.base_query import FieldFilter
from google.cloud.firestore_v1.query import Query

from database import (
    EVENTS_COLLECTION,
    LOCATIONS_COLLECTION,
    NotFoundError,
    doc_to_dict,
    parse_iso,
    to_iso,
    utcnow_iso,
)
from matching import rank_events_by_interests
from schemas import EventStatus

logger = logging.getLogger(__name__)

# Firestore caps array-contains-any at 10 values
MAX_INTEREST_FILTERS = 10
RECOMMENDATION_POOL = 50

# Fields owned by the registration flow or fixed at creation
PROTECTED_FIELDS = ("id", "createdAt", "createdBy", "attendees")


class RegistrationError(Exception):
    """Registration or unregistration refused for a business reason."""


def _iso(value) -> str:
    return to_iso(value) if isinstance(value, datetime) else value


def present_event(event: Optional[dict]) -> Optional[dict]:
    """Add the derived capacity fields clients display."""
    if event is None:
        return None
    taken = len(event.get("attendees") or [])
    capacity = event.get("capacity") or 0
    return {**event, "availableSpots": capacity - taken, "isFull": taken >= capacity}


def _populate_locations(db, events: List[dict]) -> List[dict]:
    cache = {}
    for event in events:
        location_id = event.get("locationId")
        if not location_id:
            continue
        if location_id not in cache:
            cache[location_id] = doc_to_dict(db.collection(LOCATIONS_COLLECTION).document(location_id).get())
        if cache[location_id] is not None:
            event["location"] = cache[location_id]
    return events


def create_event(db, data: dict, created_by: str) -> dict:
    start = _iso(data["dateTime"])
    end = _iso(data["endDateTime"])
    if parse_iso(start) <= parse_iso(utcnow_iso()):
        raise ValueError("Event date must be in the future")
    if parse_iso(end) <= parse_iso(start):
        raise ValueError("Event end time must be after start time")

    now = utcnow_iso()
    doc = {
        "title": data["title"],
        "description": data["description"],
        "category": data["category"].lower(),
        "locationId": data["locationId"],
        "dateTime": start,
        "endDateTime": end,
        "capacity": data.get("capacity") or 50,
        "organizer": data.get("organizer"),
        "createdBy": created_by,
        "attendees": [],
        "tags": [tag.lower() for tag in data.get("tags") or []],
        "status": data.get("status") or EventStatus.PUBLISHED.value,
        "createdAt": now,
        "updatedAt": now,
    }

    try:
        _, ref = db.collection(EVENTS_COLLECTION).add(doc)
    except Exception:
        logger.error("Failed to create event %s", data.get("title"))
        raise

    logger.info("Event created id=%s title=%s", ref.id, doc["title"])
    return {"id": ref.id, **doc}


def find_event_by_id(db, event_id: str, populate_location: bool = False) -> Optional[dict]:
    event = doc_to_dict(db.collection(EVENTS_COLLECTION).document(event_id).get())
    if event is not None and populate_location:
        _populate_locations(db, [event])
    return event


def update_event(db, event_id: str, updates: dict) -> dict:
    ref = db.collection(EVENTS_COLLECTION).document(event_id)
    if not ref.get().exists:
        raise NotFoundError("Event not found")

    updates = {k: v for k, v in updates.items() if k not in PROTECTED_FIELDS}
    if updates.get("tags") is not None:
        updates["tags"] = [tag.lower() for tag in updates["tags"]]
    if updates.get("category"):
        updates["category"] = updates["category"].lower()
    for field in ("dateTime", "endDateTime"):
        if field in updates:
            updates[field] = _iso(updates[field])
    updates["updatedAt"] = utcnow_iso()

    ref.update(updates)
    logger.info("Event updated id=%s", event_id)
    return find_event_by_id(db, event_id)


def delete_event(db, event_id: str) -> None:
    ref = db.collection(EVENTS_COLLECTION).document(event_id)
    if not ref.get().exists:
        raise NotFoundError("Event not found")
    ref.delete()
    logger.info("Event deleted id=%s", event_id)


def register_user_for_event(db, event_id: str, user_id: str) -> dict:
    ref = db.collection(EVENTS_COLLECTION).document(event_id)
    event = doc_to_dict(ref.get())
    if event is None:
        raise NotFoundError("Event not found")

    attendees = list(event.get("attendees") or [])
    if any(a.get("userId") == user_id for a in attendees):
        raise RegistrationError("User is already registered for this event")
    if event.get("status", EventStatus.PUBLISHED.value) != EventStatus.PUBLISHED.value:
        raise RegistrationError("Event is not open for registration")
    if parse_iso(event["dateTime"]) <= parse_iso(utcnow_iso()):
        raise RegistrationError("Registration closed. Event has already started.")
    if len(attendees) >= (event.get("capacity") or 0):
        raise RegistrationError("Event is full")

    now = utcnow_iso()
    attendees.append({"userId": user_id, "registeredAt": now})
    ref.update({"attendees": attendees, "updatedAt": now})
    logger.info("User %s registered for event %s", user_id, event_id)
    return find_event_by_id(db, event_id)


def unregister_user_from_event(db, event_id: str, user_id: str) -> dict:
    ref = db.collection(EVENTS_COLLECTION).document(event_id)
    event = doc_to_dict(ref.get())
    if event is None:
        raise NotFoundError("Event not found")

    attendees = event.get("attendees") or []
    remaining = [a for a in attendees if a.get("userId") != user_id]
    if len(remaining) == len(attendees):
        raise RegistrationError("User is not registered for this event")

    ref.update({"attendees": remaining, "updatedAt": utcnow_iso()})
    logger.info("User %s unregistered from event %s", user_id, event_id)
    return find_event_by_id(db, event_id)


def list_events(db, category: Optional[str] = None, location_id: Optional[str] = None,
                created_by: Optional[str] = None, upcoming_only: bool = False,
                limit: Optional[int] = None, populate_location: bool = False) -> List[dict]:
    query = db.collection(EVENTS_COLLECTION)
    if category:
        query = query.where(filter=FieldFilter("category", "==", category.lower()))
    if location_id:
        query = query.where(filter=FieldFilter("locationId", "==", location_id))
    if created_by:
        query = query.where(filter=FieldFilter("createdBy", "==", created_by))
    if upcoming_only:
        query = query.where(filter=FieldFilter("dateTime", ">=", utcnow_iso()))

    query = query.order_by("dateTime", direction=Query.ASCENDING if upcoming_only else Query.DESCENDING)
    if limit:
        query = query.limit(limit)

    events = [doc_to_dict(snapshot) for snapshot in query.stream()]
    return _populate_locations(db, events) if populate_location else events


def find_events_by_date_range(db, start, end, populate_location: bool = False) -> List[dict]:
    query = (
        db.collection(EVENTS_COLLECTION)
        .where(filter=FieldFilter("dateTime", ">=", _iso(start)))
        .where(filter=FieldFilter("dateTime", "<=", _iso(end)))
        .order_by("dateTime", direction=Query.ASCENDING)
    )
    events = [doc_to_dict(snapshot) for snapshot in query.stream()]
    return _populate_locations(db, events) if populate_location else events


def get_recommended_events(db, interests: Iterable[str], limit: int = 5) -> List[dict]:
    """Upcoming published events, best interest match first.

    Without interests this is simply the next ``limit`` published events.
    """
    interests = [i.lower() for i in interests or []]
    query = (
        db.collection(EVENTS_COLLECTION)
        .where(filter=FieldFilter("dateTime", ">=", utcnow_iso()))
        .order_by("dateTime", direction=Query.ASCENDING)
    )
    if interests:
        query = query.where(filter=FieldFilter("tags", "array_contains_any", interests[:MAX_INTEREST_FILTERS]))
    query = query.limit(RECOMMENDATION_POOL)

    events = [
        doc_to_dict(snapshot) for snapshot in query.stream()
        if (snapshot.to_dict() or {}).get("status", EventStatus.PUBLISHED.value) == EventStatus.PUBLISHED.value
    ]
    if interests:
        events = rank_events_by_interests(events, interests)
    return events[:limit]


def _is_attendee(event: dict, user_id: str) -> bool:
    return any(a.get("userId") == user_id for a in event.get("attendees") or [])


def find_events_for_attendee(db, user_id: str, upcoming_only: bool = True, populate_location: bool = True) -> List[dict]:
    # Attendee entries are maps, so Firestore cannot filter on the user id alone
    events = list_events(db, upcoming_only=upcoming_only)
    mine = [event for event in events if _is_attendee(event, user_id)]
    return _populate_locations(db, mine) if populate_location else mine


def remove_attendee_from_events(db, user_id: str) -> int:
    """Drop ``user_id`` from every attendee list. Returns how many events changed."""
    changed = 0
    now = utcnow_iso()
    for snapshot in db.collection(EVENTS_COLLECTION).stream():
        event = snapshot.to_dict() or {}
        attendees = event.get("attendees") or []
        remaining = [a for a in attendees if a.get("userId") != user_id]
        if len(remaining) != len(attendees):
            snapshot.reference.update({"attendees": remaining, "updatedAt": now})
            changed += 1
    if changed:
        logger.info("Removed user %s from %d event(s)", user_id, changed)
    return changed
