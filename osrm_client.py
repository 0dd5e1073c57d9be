"""
OSRM routing client.

Talks to an OSRM server over HTTP. Coordinates go out as ``lng,lat`` pairs
and responses are reshaped into what the navigation API returns.
Failed requests and non-"Ok" answers surface as ``OSRMError``.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

import settings

logger = logging.getLogger(__name__)

# Internal coordinate type: (lat, lng)
LatLng = Tuple[float, float]


class OSRMError(Exception):
    """Raised when the routing service cannot produce a route."""
    pass


def describe_step(step: Dict[str, Any]) -> str:
    """Human readable instruction for one OSRM route step."""
    maneuver = step.get("maneuver", {})
    kind = maneuver.get("type", "")
    modifier = maneuver.get("modifier")
    name = step.get("name") or ""
    onto = f" onto {name}" if name else ""

    if kind == "depart":
        return f"Start{onto}"
    if kind == "arrive":
        return "Arrive at destination"
    if kind in ("turn", "end of road", "fork", "on ramp", "off ramp") and modifier:
        return f"Turn {modifier}{onto}"
    if kind == "roundabout" or kind == "rotary":
        exit_number = maneuver.get("exit")
        return f"Take exit {exit_number} at the roundabout{onto}" if exit_number else f"Enter the roundabout{onto}"
    if modifier:
        return f"Continue {modifier}{onto}"
    return f"Continue{onto}"


class OSRMClient:
    """
    OSRM Adapter / Client

    Sole responsibility:
    - Talk to OSRM via HTTP
    - Convert internal (lat, lng) -> OSRM (lng,lat)
    - Return normalized outputs
    """

    def __init__(self, base_url: Optional[str] = None, profile: Optional[str] = None, timeout: Optional[int] = None):
        self.base_url = (base_url or settings.OSRM_BASE_URL).rstrip("/")
        self.profile = profile or settings.OSRM_PROFILE  # foot, bike or car
        self.timeout = timeout or settings.OSRM_TIMEOUT  # seconds to wait before giving up

        if not self.base_url:
            raise ValueError("OSRM base URL not set. Please set OSRM_BASE_URL.")

    def format_coordinates(self, coords: List[LatLng]) -> str:
        """Convert list of (lat, lng) to OSRM format 'lng,lat;lng,lat;...'"""
        return ";".join(f"{lng},{lat}" for lat, lng in coords)

    def _get(self, url: str, params: Dict[str, str]) -> Dict[str, Any]:
        try:
            response = requests.get(url, params=params, timeout=self.timeout)
            data = response.json()
        except requests.RequestException as exc:
            logger.error(f"OSRM request failed: {exc}")
            raise OSRMError(f"OSRM request failed: {exc}") from exc
        except ValueError as exc:
            raise OSRMError("OSRM returned a non-JSON response") from exc

        # validating OSRM response
        if data.get("code") != "Ok":
            raise OSRMError(f"OSRM error: {data.get('message', data.get('code', 'Unknown error'))}")
        return data

    def route(self, coordinates: List[LatLng], profile: Optional[str] = None, steps: bool = True) -> Dict[str, Any]:
        """
        Calls the OSRM /route endpoint through all coordinates in order.

        Returns:
            {
                "distance": float,   # meters
                "duration": float,   # seconds
                "geometry": dict,    # GeoJSON LineString
                "legs": [{"distance", "duration", "summary", "steps": [...]}],
            }
        """
        if len(coordinates) < 2:
            raise ValueError("At least two coordinates are required to compute a route.")

        url = f"{self.base_url}/route/v1/{profile or self.profile}/{self.format_coordinates(coordinates)}"
        data = self._get(url, {
            "overview": "full",
            "geometries": "geojson",
            "steps": "true" if steps else "false",
        })

        route = data["routes"][0]  # first route is the recommended one

        legs = []
        for leg in route.get("legs", []):
            legs.append({
                "distance": leg.get("distance", 0.0),
                "duration": leg.get("duration", 0.0),
                "summary": leg.get("summary", ""),
                "steps": [
                    {
                        "instruction": describe_step(step),
                        "name": step.get("name", ""),
                        "distance": step.get("distance", 0.0),
                        "duration": step.get("duration", 0.0),
                        # OSRM reports [lng, lat]
                        "location": {
                            "lat": step.get("maneuver", {}).get("location", [None, None])[1],
                            "lng": step.get("maneuver", {}).get("location", [None, None])[0],
                        },
                    }
                    for step in leg.get("steps", [])
                ],
            })

        return {
            "distance": route["distance"],
            "duration": route["duration"],
            "geometry": route.get("geometry"),
            "legs": legs,
        }

    def table(self, sources: List[LatLng], destinations: List[LatLng], profile: Optional[str] = None) -> Dict[str, List[List[Optional[float]]]]:
        """
        Calls the OSRM /table endpoint.

        Returns the full matrices, rows follow ``sources`` and columns follow
        ``destinations``:
            {"durations": [[...]], "distances": [[...]]}
        """
        if not sources or not destinations:
            return {"durations": [], "distances": []}

        coordinates = self.format_coordinates(sources + destinations)
        params = {
            "sources": ";".join(str(i) for i in range(len(sources))),
            "destinations": ";".join(str(i) for i in range(len(sources), len(sources) + len(destinations))),
            "annotations": "duration,distance",
        }
        url = f"{self.base_url}/table/v1/{profile or self.profile}/{coordinates}"
        data = self._get(url, params)

        return {
            "durations": data.get("durations", []),
            "distances": data.get("distances", []),
        }


def get_osrm_client() -> OSRMClient:
    return OSRMClient()
