import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

import event_repository
import location_repository
import user_repository
from database import get_db, parse_iso
from event_repository import present_event
from permissions import get_event_for_registrations, get_owned_event, is_event_owner, require_organizer_or_admin
from schemas import Event, EventStatus, EventUpdate
from security import get_current_user, get_optional_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/events", tags=["events"])

FAR_FUTURE = datetime(2099, 12, 31, tzinfo=timezone.utc)
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _visible(event: dict, user: Optional[dict]) -> bool:
    # Drafts stay private to their creator and admins
    if event.get("status") != EventStatus.DRAFT.value:
        return True
    return user is not None and is_event_owner(user, event)


def _matches_text(event: dict, term: str) -> bool:
    haystacks = [event.get("title") or "", event.get("description") or "", *(event.get("tags") or [])]
    return any(term in h.lower() for h in haystacks)


def _as_datetime(value) -> datetime:
    return value if isinstance(value, datetime) else parse_iso(value)


def _ensure_location(db, location_id: str):
    if location_repository.find_location_by_id(db, location_id) is None:
        raise HTTPException(status_code=400, detail="Invalid location ID")


@router.get("")
def get_events(
    category: Optional[str] = None,
    locationId: Optional[str] = None,
    startDate: Optional[datetime] = None,
    endDate: Optional[datetime] = None,
    upcoming: bool = False,
    q: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    current=Depends(get_optional_user),
    db=Depends(get_db),
):
    category_value = category.lower() if category else None

    if startDate or endDate or upcoming:
        start = datetime.now(timezone.utc) if upcoming else (startDate or EPOCH)
        events = event_repository.find_events_by_date_range(db, start, endDate or FAR_FUTURE, populate_location=True)
        if category_value:
            events = [e for e in events if e.get("category") == category_value]
        if locationId:
            events = [e for e in events if e.get("locationId") == locationId]
    else:
        events = event_repository.list_events(
            db,
            category=category_value,
            location_id=locationId,
            limit=limit,
            populate_location=True,
        )

    if q and q.strip():
        term = q.strip().lower()
        events = [e for e in events if _matches_text(e, term)]

    events = [present_event(e) for e in events if _visible(e, current)][:limit]
    return {"success": True, "data": {"events": events, "pagination": {"total": len(events)}}}


@router.get("/upcoming")
def get_upcoming_events(limit: int = Query(10, ge=1, le=100), db=Depends(get_db)):
    events = event_repository.list_events(db, upcoming_only=True, limit=limit, populate_location=True)
    events = [present_event(e) for e in events if e.get("status") == EventStatus.PUBLISHED.value]
    return {"success": True, "data": {"events": events}}


@router.get("/recommended")
def get_recommended_events(limit: int = Query(5, ge=1, le=50), current=Depends(get_current_user), db=Depends(get_db)):
    interests = current.get("interests") or []
    events = event_repository.get_recommended_events(db, interests, limit)
    return {
        "success": True,
        "data": {
            "events": [present_event(e) for e in events],
            "basedOn": "your interests" if interests else "general recommendations",
        },
    }


@router.get("/my-events")
def get_my_events(current=Depends(get_current_user), db=Depends(get_db)):
    events = event_repository.list_events(db, created_by=current["uid"], populate_location=True)
    return {"success": True, "data": {"events": [present_event(e) for e in events]}}


@router.get("/{id}")
def get_event(id: str, current=Depends(get_current_user), db=Depends(get_db)):
    event = event_repository.find_event_by_id(db, id, populate_location=True)
    if event is None or not _visible(event, current):
        raise HTTPException(status_code=404, detail="Event not found")
    return {"success": True, "data": {"event": present_event(event)}}


@router.post("/{id}/register")
def register_for_event(id: str, current=Depends(get_current_user), db=Depends(get_db)):
    event = present_event(event_repository.register_user_for_event(db, id, current["uid"]))
    return {
        "success": True,
        "message": "Successfully registered for event",
        "data": {"event": event, "availableSpots": event["availableSpots"]},
    }


@router.delete("/{id}/register")
def unregister_from_event(id: str, current=Depends(get_current_user), db=Depends(get_db)):
    event = present_event(event_repository.unregister_user_from_event(db, id, current["uid"]))
    return {
        "success": True,
        "message": "Successfully unregistered from event",
        "data": {"event": event, "availableSpots": event["availableSpots"]},
    }


@router.get("/{id}/registrations")
def get_event_registrations(event=Depends(get_event_for_registrations), db=Depends(get_db)):
    registrations: List[dict] = []
    for attendee in event.get("attendees") or []:
        user = user_repository.find_user_by_id(db, attendee["userId"]) or {}
        registrations.append({
            "userId": attendee["userId"],
            "registeredAt": attendee.get("registeredAt"),
            "name": user.get("name"),
            "email": user.get("email"),
        })
    presented = present_event(event)
    return {
        "success": True,
        "data": {
            "event": {
                "id": event["id"],
                "title": event.get("title"),
                "capacity": event.get("capacity"),
                "availableSpots": presented["availableSpots"],
            },
            "registrations": registrations,
            "total": len(registrations),
        },
    }


@router.post("", status_code=201)
def create_event(body: Event, current=Depends(require_organizer_or_admin), db=Depends(get_db)):
    _ensure_location(db, body.locationId)

    data = body.model_dump()
    data["organizer"] = data.get("organizer") or current.get("name")
    try:
        event = event_repository.create_event(db, data, created_by=current["uid"])
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return {"success": True, "message": "Event created successfully", "data": {"event": present_event(event)}}


@router.put("/{id}")
def update_event(body: EventUpdate, event=Depends(get_owned_event), db=Depends(get_db)):
    updates = body.model_dump(exclude_unset=True)
    if updates.get("locationId"):
        _ensure_location(db, updates["locationId"])

    start = _as_datetime(updates.get("dateTime") or event["dateTime"])
    end = _as_datetime(updates.get("endDateTime") or event["endDateTime"])
    if end <= start:
        raise HTTPException(status_code=400, detail="Event end time must be after start time")

    updated = event_repository.update_event(db, event["id"], updates)
    return {"success": True, "message": "Event updated successfully", "data": {"event": present_event(updated)}}


@router.patch("/{id}/cancel")
def cancel_event(event=Depends(get_owned_event), db=Depends(get_db)):
    updated = event_repository.update_event(db, event["id"], {"status": EventStatus.CANCELLED.value})
    return {"success": True, "message": "Event cancelled successfully", "data": {"event": present_event(updated)}}


@router.delete("/{id}")
def delete_event(event=Depends(get_owned_event), db=Depends(get_db)):
    event_repository.delete_event(db, event["id"])
    logger.info("Event %s deleted", event["id"])
    return {"success": True, "message": "Event deleted successfully"}
