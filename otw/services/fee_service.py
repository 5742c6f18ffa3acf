"""Fee service: delivery pricing from distance and priority.

    fee = (BASE_FEE + miles * PER_MILE_RATE) * PRIORITY_MULTIPLIERS[priority]

rounded half-up to cents. Nothing is cached: a caller that needs a frozen
price must store the returned estimate with its record before payment.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from decimal import ROUND_HALF_UP, Decimal

from otw.errors import ValidationError
from otw.services.maps_service import get_maps_client

logger = logging.getLogger(__name__)

BASE_FEE = Decimal("5.99")
PER_MILE_RATE = Decimal("1.50")
METERS_PER_MILE = Decimal("1609.34")

PRIORITY_MULTIPLIERS = {
    "standard": Decimal("1.0"),
    "express": Decimal("1.5"),
    "rush": Decimal("2.0"),
}

CENT = Decimal("0.01")


def calculate_fee(distance_meters, priority):
    """Price a trip of `distance_meters` at `priority`. Returns a Decimal."""
    multiplier = PRIORITY_MULTIPLIERS.get(priority)
    if multiplier is None:
        raise ValidationError(
            f"Invalid priority '{priority}'. Must be one of: {', '.join(PRIORITY_MULTIPLIERS)}"
        )
    miles = Decimal(str(distance_meters)) / METERS_PER_MILE
    fee = (BASE_FEE + miles * PER_MILE_RATE) * multiplier
    return fee.quantize(CENT, rounding=ROUND_HALF_UP)


def format_address(address):
    """Flatten a structured address to "<street>, <city>, <state> <zip>".

    Strings pass through unchanged.
    """
    if isinstance(address, str):
        return address
    return (
        f"{address['street']}, {address['city']}, "
        f"{address['state']} {address['zip_code']}"
    )


def estimate_delivery(pickup_address, dropoff_address, priority, maps_client=None):
    """Estimate distance, duration, fee and route for a delivery.

    Both addresses are geocoded concurrently, then one route is requested
    between the resolved points.

    Returns {"distance_meters", "duration_seconds", "fee", "route_polyline",
    "pickup", "dropoff"} where pickup/dropoff are the geocoded locations.

    Raises:
        ValidationError: unknown priority or empty address.
        GeocodeError: either address cannot be resolved.
        RouteError: no route between the resolved points.
        UpstreamError: provider failure or timeout.
    """
    if priority not in PRIORITY_MULTIPLIERS:
        raise ValidationError(
            f"Invalid priority '{priority}'. Must be one of: {', '.join(PRIORITY_MULTIPLIERS)}"
        )

    pickup_text = format_address(pickup_address).strip()
    dropoff_text = format_address(dropoff_address).strip()
    if not pickup_text or not dropoff_text:
        raise ValidationError("Pickup and dropoff addresses are required.")

    maps = maps_client or get_maps_client()

    with ThreadPoolExecutor(max_workers=2) as pool:
        pickup_future = pool.submit(maps.geocode, pickup_text)
        dropoff_future = pool.submit(maps.geocode, dropoff_text)
        pickup = pickup_future.result()
        dropoff = dropoff_future.result()

    route = maps.route(pickup, dropoff)
    fee = calculate_fee(route["distance_meters"], priority)

    logger.info(
        f"Estimated {priority} delivery: {route['distance_meters']}m, "
        f"{route['duration_seconds']}s, ${fee}"
    )

    return {
        "distance_meters": route["distance_meters"],
        "duration_seconds": route["duration_seconds"],
        "fee": fee,
        "route_polyline": route["polyline"],
        "pickup": pickup,
        "dropoff": dropoff,
    }


def estimate_to_dict(estimate):
    """JSON view of an estimate."""
    return {
        "distanceMeters": estimate["distance_meters"],
        "durationSeconds": estimate["duration_seconds"],
        "fee": float(estimate["fee"]),
        "routePolyline": estimate["route_polyline"],
    }
