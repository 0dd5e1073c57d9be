import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse

import location_repository
from database import NotFoundError, get_db
from permissions import require_admin
from schemas import Location, LocationType, LocationUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/locations", tags=["locations"])

MAX_CSV_BYTES = 5 * 1024 * 1024


@router.get("")
def get_locations(
    q: Optional[str] = None,
    type: Optional[LocationType] = None,
    buildingId: Optional[str] = None,
    floor: Optional[str] = None,
    tags: Optional[List[str]] = Query(None),
    startAfter: Optional[str] = None,
    north: Optional[float] = None,
    south: Optional[float] = None,
    east: Optional[float] = None,
    west: Optional[float] = None,
    limit: int = Query(100, ge=1, le=1000),
    db=Depends(get_db),
):
    location_type = type.value if type else None
    bounds = {"north": north, "south": south, "east": east, "west": west}

    if all(v is not None for v in bounds.values()):
        locations = location_repository.find_within_bounds(db, bounds, type=location_type)[:limit]
    elif q:
        locations = location_repository.search_locations(db, q, type=location_type, limit=limit)
    else:
        locations = location_repository.list_locations(
            db,
            type=location_type,
            building_id=buildingId,
            floor=floor,
            tags=tags,
            start_after=startAfter,
            limit=limit,
        )

    return {"success": True, "data": {"locations": locations, "pagination": {"total": len(locations)}}}


@router.get("/nearby")
def get_nearby_locations(
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    maxDistance: float = Query(1000, gt=0),
    db=Depends(get_db),
):
    if lat is None or lng is None:
        raise HTTPException(status_code=400, detail="Latitude and longitude are required")
    locations = location_repository.find_nearby(db, lat, lng, maxDistance)
    return {"success": True, "data": {"locations": locations}}


@router.get("/{id}")
def get_location(id: str, db=Depends(get_db)):
    location = location_repository.find_location_by_id(db, id)
    if location is None:
        raise HTTPException(status_code=404, detail="Location not found")
    return {"success": True, "data": {"location": location}}


@router.post("", status_code=201)
def create_location(body: Location, current=Depends(require_admin), db=Depends(get_db)):
    location = location_repository.create_location(db, body.model_dump(exclude_none=True))
    logger.info("Location %s created by %s", location["id"], current["uid"])
    return {"success": True, "message": "Location created successfully", "data": {"location": location}}


@router.put("/{id}")
def update_location(id: str, body: LocationUpdate, current=Depends(require_admin), db=Depends(get_db)):
    updates = body.model_dump(exclude_unset=True)
    if not updates:
        location = location_repository.find_location_by_id(db, id)
        if location is None:
            raise NotFoundError("Location not found")
    else:
        location = location_repository.update_location(db, id, updates)
    return {"success": True, "message": "Location updated successfully", "data": {"location": location}}


@router.delete("/{id}")
def delete_location(id: str, current=Depends(require_admin), db=Depends(get_db)):
    location_repository.delete_location(db, id)
    logger.info("Location %s deleted by %s", id, current["uid"])
    return {"success": True, "message": "Location deleted successfully"}


@router.post("/import", status_code=201)
def import_locations(csv: UploadFile = File(...), current=Depends(require_admin), db=Depends(get_db)):
    if not (csv.filename or "").lower().endswith(".csv"):
        raise HTTPException(status_code=400, detail="Only CSV files are allowed")

    raw = csv.file.read(MAX_CSV_BYTES + 1)
    if len(raw) > MAX_CSV_BYTES:
        raise HTTPException(status_code=400, detail="CSV file must be 5MB or smaller")

    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="Error reading CSV file")

    rows, errors = location_repository.parse_location_rows(text)
    if errors:
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "CSV validation failed", "errors": errors},
        )
    if not rows:
        raise HTTPException(status_code=400, detail="No valid locations found in CSV")

    created = [location_repository.create_location(db, row) for row in rows]
    logger.info("Imported %d location(s) by %s", len(created), current["uid"])
    return {
        "success": True,
        "message": f"Successfully imported {len(created)} locations",
        "data": {"imported": len(created), "locations": created},
    }
