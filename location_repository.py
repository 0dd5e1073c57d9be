import csv
import io
import logging
from typing import Dict, List, Optional, Tuple

from google.cloud.firestore_v1.base_query import FieldFilter
from pydantic import ValidationError

from database import LOCATIONS_COLLECTION, NotFoundError, doc_to_dict, utcnow_iso
from geo import bounding_box, haversine_distance, within_bounds
from schemas import Location as LocationSchema, LocationType

logger = logging.getLogger(__name__)

# Firestore caps array-contains-any at 10 values
MAX_TAG_FILTERS = 10
SEARCH_SCAN_LIMIT = 100
BOUNDS_SCAN_LIMIT = 1000


def _normalize(data: dict) -> dict:
    if data.get("type"):
        data["type"] = data["type"].lower()
    if data.get("tags") is not None:
        data["tags"] = [tag.lower() for tag in data["tags"]]
    return data


def create_location(db, data: dict) -> dict:
    doc = _normalize({
        "name": data["name"],
        "description": data.get("description") or "",
        "type": data["type"],
        "coordinates": {"lat": data["coordinates"]["lat"], "lng": data["coordinates"]["lng"]},
        "buildingId": data.get("buildingId"),
        "floor": data.get("floor"),
        "tags": list(data.get("tags") or []),
        "meta": data.get("meta") or {},
    })
    if data.get("accessibility") is not None:
        doc["accessibility"] = data["accessibility"]
    now = utcnow_iso()
    doc["createdAt"] = now
    doc["updatedAt"] = now

    try:
        _, ref = db.collection(LOCATIONS_COLLECTION).add(doc)
    except Exception:
        logger.error("Failed to create location %s", data.get("name"))
        raise

    logger.info("Location created id=%s name=%s", ref.id, doc["name"])
    return {"id": ref.id, **doc}


def find_location_by_id(db, location_id: str) -> Optional[dict]:
    return doc_to_dict(db.collection(LOCATIONS_COLLECTION).document(location_id).get())


def update_location(db, location_id: str, updates: dict) -> dict:
    ref = db.collection(LOCATIONS_COLLECTION).document(location_id)
    if not ref.get().exists:
        raise NotFoundError("Location not found")

    updates = _normalize({k: v for k, v in updates.items() if k not in ("id", "createdAt")})
    updates["updatedAt"] = utcnow_iso()
    ref.update(updates)
    logger.info("Location updated id=%s", location_id)
    return find_location_by_id(db, location_id)


def delete_location(db, location_id: str) -> None:
    ref = db.collection(LOCATIONS_COLLECTION).document(location_id)
    if not ref.get().exists:
        raise NotFoundError("Location not found")
    ref.delete()
    logger.info("Location deleted id=%s", location_id)


def _floor_values(floor) -> list:
    # JSON bodies may store floors as numbers, CSV imports always as text
    values = [floor]
    text = str(floor)
    if text.lstrip("-").isdigit():
        values = [text, int(text)]
    return values


def list_locations(db, type: Optional[str] = None, building_id: Optional[str] = None, floor=None,
                   tags: Optional[List[str]] = None, start_after: Optional[str] = None,
                   limit: Optional[int] = None) -> List[dict]:
    query = db.collection(LOCATIONS_COLLECTION)
    if type:
        query = query.where(filter=FieldFilter("type", "==", type.lower()))
    if building_id:
        query = query.where(filter=FieldFilter("buildingId", "==", building_id))
    if floor is not None:
        query = query.where(filter=FieldFilter("floor", "in", _floor_values(floor)))

    wanted_tags = [t.lower() for t in tags[:MAX_TAG_FILTERS]] if tags else []
    # Only one disjunctive filter per query, so tags are matched here when floor already uses "in"
    tags_in_memory = bool(wanted_tags) and floor is not None
    if wanted_tags and not tags_in_memory:
        query = query.where(filter=FieldFilter("tags", "array_contains_any", wanted_tags))

    query = query.order_by("name")

    if start_after:
        start_doc = db.collection(LOCATIONS_COLLECTION).document(start_after).get()
        if start_doc.exists:
            query = query.start_after(start_doc)
    if limit and not tags_in_memory:
        query = query.limit(limit)

    locations = [doc_to_dict(snapshot) for snapshot in query.stream()]
    if tags_in_memory:
        locations = [loc for loc in locations if set(wanted_tags) & set(loc.get("tags") or [])][:limit]
    return locations


def _matches(location: dict, term: str) -> bool:
    if term in (location.get("name") or "").lower():
        return True
    if term in (location.get("description") or "").lower():
        return True
    return any(term in tag.lower() for tag in location.get("tags") or [])


def search_locations(db, text: Optional[str], type: Optional[str] = None, limit: Optional[int] = None) -> List[dict]:
    """Case-insensitive substring match on name, description and tags.

    Firestore has no full-text search, so a page of locations is fetched and
    filtered here.
    """
    if not text or not text.strip():
        return list_locations(db, type=type, limit=limit)

    term = text.strip().lower()
    candidates = list_locations(db, type=type, limit=limit or SEARCH_SCAN_LIMIT)
    return [loc for loc in candidates if _matches(loc, term)][: limit or 50]


def find_within_bounds(db, bounds: Dict[str, float], type: Optional[str] = None) -> List[dict]:
    locations = list_locations(db, type=type, limit=BOUNDS_SCAN_LIMIT)
    return [loc for loc in locations if within_bounds(loc.get("coordinates") or {}, bounds)]


def find_nearby(db, lat: float, lng: float, max_distance: float = 1000) -> List[dict]:
    """Locations within ``max_distance`` meters, nearest first, each with ``distance``."""
    nearby = []
    for loc in find_within_bounds(db, bounding_box(lat, lng, max_distance)):
        coords = loc["coordinates"]
        distance = haversine_distance(lat, lng, coords["lat"], coords["lng"])
        if distance <= max_distance:
            nearby.append({**loc, "distance": distance})
    nearby.sort(key=lambda loc: loc["distance"])
    return nearby


# CSV import

REQUIRED_COLUMNS = ("name", "type", "lat", "lng")
ACCESSIBILITY_COLUMNS = ("wheelchairAccessible", "elevatorAccess", "brailleSignage", "audioAssistance")
TRUE_VALUES = {"true", "yes", "1", "y"}


def _row_to_location(row: dict) -> dict:
    missing = [col for col in REQUIRED_COLUMNS if not (row.get(col) or "").strip()]
    if missing:
        raise ValueError("Missing required fields (name, type, lat, lng)")

    try:
        lat = float(row["lat"])
        lng = float(row["lng"])
    except ValueError:
        raise ValueError("Invalid coordinates")

    location_type = row["type"].strip().lower()
    valid_types = [t.value for t in LocationType]
    if location_type not in valid_types:
        raise ValueError(f"Invalid type (must be one of {', '.join(valid_types)})")

    data = {
        "name": row["name"].strip(),
        "description": (row.get("description") or "").strip(),
        "type": location_type,
        "coordinates": {"lat": lat, "lng": lng},
        "tags": [t.strip().lower() for t in (row.get("tags") or "").split(",") if t.strip()],
        "floor": (row.get("floor") or "").strip() or None,
        "buildingId": (row.get("buildingId") or "").strip() or None,
    }
    flags = {col: (row.get(col) or "").strip().lower() in TRUE_VALUES
             for col in ACCESSIBILITY_COLUMNS if (row.get(col) or "").strip()}
    if flags:
        data["accessibility"] = flags

    try:
        return LocationSchema(**data).model_dump(exclude_none=True)
    except ValidationError as exc:
        raise ValueError("; ".join(err["msg"] for err in exc.errors()))


def parse_location_rows(csv_text: str) -> Tuple[List[dict], List[str]]:
    """Validate CSV rows. Returns ``(locations, errors)``; errors are per row, 1-based."""
    locations, errors = [], []
    reader = csv.DictReader(io.StringIO(csv_text))
    for index, row in enumerate(reader, start=1):
        try:
            locations.append(_row_to_location(row))
        except ValueError as exc:
            errors.append(f"Row {index}: {exc}")
    return locations, errors
