import logging

from fastapi import APIRouter, Depends

import location_repository
import settings
from database import NotFoundError, get_db
from geo import haversine_distance
from osrm_client import OSRMClient, get_osrm_client
from schemas import LocationType, MatrixRequest, RouteRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/navigation", tags=["navigation"])

CAMPUS_CENTER = {"lat": 30.3548, "lng": 76.3635}
CAMPUS_BOUNDS = {"north": 30.3600, "south": 30.3500, "east": 76.3700, "west": 76.3570}

OSM_ATTRIBUTION = '&copy; <a href="https://www.openstreetmap.org/copyright">OpenStreetMap</a> contributors'

TILE_LAYERS = {
    "default": {
        "url": "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png",
        "attribution": OSM_ATTRIBUTION,
    },
    "satellite": {
        "url": "https://server.arcgisonline.com/ArcGIS/rest/services/World_Imagery/MapServer/tile/{z}/{y}/{x}",
        "attribution": "&copy; Esri, Maxar, Earthstar Geographics",
    },
    "dark": {
        "url": "https://{s}.basemaps.cartocdn.com/dark_all/{z}/{x}/{y}{r}.png",
        "attribution": "&copy; OpenStreetMap, &copy; CARTO",
    },
}

MARKER_COLORS = {
    "hostel": "#10b981",
    "class": "#3b82f6",
    "faculty": "#8b5cf6",
    "entertainment": "#ec4899",
    "shop": "#f97316",
}


def resolve_waypoints(db, waypoints) -> list:
    """Turn each waypoint into ``{lat, lng}``, looking up stored locations by id."""
    resolved = []
    for waypoint in waypoints:
        if waypoint.locationId:
            location = location_repository.find_location_by_id(db, waypoint.locationId)
            if location is None:
                raise NotFoundError("Location not found")
            coords = location["coordinates"]
            resolved.append({
                "locationId": location["id"],
                "name": location.get("name"),
                "lat": coords["lat"],
                "lng": coords["lng"],
            })
        else:
            resolved.append({"lat": waypoint.lat, "lng": waypoint.lng})
    return resolved


def straight_line_distance(points: list) -> float:
    return sum(
        haversine_distance(a["lat"], a["lng"], b["lat"], b["lng"])
        for a, b in zip(points, points[1:])
    )


@router.post("/route")
def get_route(body: RouteRequest, db=Depends(get_db), osrm: OSRMClient = Depends(get_osrm_client)):
    points = resolve_waypoints(db, body.waypoints)
    profile = body.profile or settings.OSRM_PROFILE

    route = osrm.route([(p["lat"], p["lng"]) for p in points], profile=profile, steps=body.steps)
    logger.info("Route over %d waypoints: %.0f m, %.0f s", len(points), route["distance"], route["duration"])

    return {
        "success": True,
        "data": {
            "route": route,
            "waypoints": points,
            "profile": profile,
            "straightLineDistance": straight_line_distance(points),
        },
    }


@router.post("/matrix")
def get_travel_matrix(body: MatrixRequest, db=Depends(get_db), osrm: OSRMClient = Depends(get_osrm_client)):
    """Travel times and distances from every source to every destination."""
    sources = resolve_waypoints(db, body.sources)
    destinations = resolve_waypoints(db, body.destinations)
    profile = body.profile or settings.OSRM_PROFILE

    matrix = osrm.table(
        [(p["lat"], p["lng"]) for p in sources],
        [(p["lat"], p["lng"]) for p in destinations],
        profile=profile,
    )
    return {
        "success": True,
        "data": {
            "durations": matrix["durations"],
            "distances": matrix["distances"],
            "sources": sources,
            "destinations": destinations,
            "profile": profile,
        },
    }


@router.get("/map-config")
def get_map_config():
    return {
        "success": True,
        "data": {
            "center": CAMPUS_CENTER,
            "zoom": 16,
            "minZoom": 15,
            "maxZoom": 19,
            "bounds": CAMPUS_BOUNDS,
            "tileLayers": TILE_LAYERS,
            "locationTypes": [t.value for t in LocationType],
            "markerColors": MARKER_COLORS,
        },
    }
