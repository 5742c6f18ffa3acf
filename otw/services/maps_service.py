"""Maps service: geocoding and driving routes via Google Maps web services.

Thin client over the Geocoding and Directions JSON APIs. Every request is
bounded by MAPS_TIMEOUT_SECONDS; on timeout we fail fast rather than hold
the caller's request open.
"""

import logging

import requests
from flask import current_app

from otw.errors import GeocodeError, RouteError, UpstreamError

logger = logging.getLogger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
DIRECTIONS_URL = "https://maps.googleapis.com/maps/api/directions/json"


class MapsClient:
    """Geocode addresses and compute driving routes.

    Safe to share across threads for the lifetime of one request.
    """

    def __init__(self, api_key, timeout=5.0, session=None):
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, url, params):
        params = dict(params, key=self.api_key or "")
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.Timeout as e:
            logger.warning(f"Maps request timed out after {self.timeout}s: {url}")
            raise UpstreamError(
                "Maps provider timed out", status_code=503
            ) from e
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Maps request failed: {e}")
            raise UpstreamError("Maps provider request failed") from e

    def geocode(self, address):
        """Resolve a free-form address.

        Returns {"lat", "lng", "address", "place_id"}.
        Raises GeocodeError if the provider has no match.
        """
        data = self._get(GEOCODE_URL, {"address": address})
        status = data.get("status")

        if status == "ZERO_RESULTS" or (status == "OK" and not data.get("results")):
            raise GeocodeError(f"Address not found: {address}")
        if status != "OK":
            logger.error(f"Geocode failed for '{address}': {status} {data.get('error_message', '')}")
            raise UpstreamError(f"Geocoding provider returned {status}")

        result = data["results"][0]
        location = result["geometry"]["location"]
        return {
            "lat": location["lat"],
            "lng": location["lng"],
            "address": result.get("formatted_address", address),
            "place_id": result.get("place_id"),
        }

    def route(self, origin, destination):
        """Driving route between two {"lat", "lng"} points.

        Returns {"distance_meters", "duration_seconds", "polyline"}.
        Raises RouteError if no route exists.
        """
        data = self._get(DIRECTIONS_URL, {
            "origin": f"{origin['lat']},{origin['lng']}",
            "destination": f"{destination['lat']},{destination['lng']}",
            "mode": "driving",
        })
        status = data.get("status")

        if status in ("ZERO_RESULTS", "NOT_FOUND") or (status == "OK" and not data.get("routes")):
            raise RouteError("No route found between pickup and dropoff")
        if status != "OK":
            logger.error(f"Directions failed: {status} {data.get('error_message', '')}")
            raise UpstreamError(f"Routing provider returned {status}")

        route = data["routes"][0]
        leg = route["legs"][0]
        return {
            "distance_meters": leg["distance"]["value"],
            "duration_seconds": leg["duration"]["value"],
            "polyline": route.get("overview_polyline", {}).get("points", ""),
        }


def get_maps_client():
    """Build a MapsClient from the current app config."""
    return MapsClient(
        api_key=current_app.config.get("GOOGLE_MAPS_API_KEY"),
        timeout=current_app.config.get("MAPS_TIMEOUT_SECONDS", 5.0),
    )
