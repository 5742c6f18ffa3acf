"""Tests for delivery pricing and the maps client.

Covers:
- Fee formula and half-up rounding per priority
- Unknown priority rejected
- estimate_delivery geocodes both ends then routes once
- Geocode / route / timeout errors from MapsClient
- POST /deliveries/estimate
"""

from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests

from otw.errors import GeocodeError, RouteError, UpstreamError, ValidationError
from otw.services.fee_service import (
    calculate_fee,
    estimate_delivery,
    format_address,
)
from otw.services.maps_service import MapsClient


class TestCalculateFee:

    def test_ten_miles_standard(self):
        assert calculate_fee(16093, "standard") == Decimal("20.99")

    def test_ten_miles_express(self):
        assert calculate_fee(16093, "express") == Decimal("31.48")

    def test_ten_miles_rush(self):
        assert calculate_fee(16093, "rush") == Decimal("41.98")

    def test_one_mile_standard(self):
        assert calculate_fee(1609.34, "standard") == Decimal("7.49")

    def test_zero_distance_rounds_half_up(self):
        """5.99 * 1.5 = 8.985 exactly, which rounds up to 8.99."""
        assert calculate_fee(0, "express") == Decimal("8.99")
        assert calculate_fee(0, "standard") == Decimal("5.99")
        assert calculate_fee(0, "rush") == Decimal("11.98")

    def test_unknown_priority_raises(self):
        with pytest.raises(ValidationError):
            calculate_fee(1000, "overnight")


class TestFormatAddress:

    def test_structured_address(self):
        address = {"street": "1 Main St", "city": "Austin", "state": "TX", "zip_code": "78701"}
        assert format_address(address) == "1 Main St, Austin, TX 78701"

    def test_string_passes_through(self):
        assert format_address("1 Main St, Austin") == "1 Main St, Austin"


class TestEstimateDelivery:

    def test_returns_distance_duration_fee_and_route(self, maps_factory):
        maps = maps_factory(distance_meters=16093, duration_seconds=1200)
        estimate = estimate_delivery("1 Main St", "2 Oak Ave", "standard", maps_client=maps)

        assert estimate["distance_meters"] == 16093
        assert estimate["duration_seconds"] == 1200
        assert estimate["fee"] == Decimal("20.99")
        assert estimate["route_polyline"] == "encoded_polyline"
        assert sorted(maps.geocoded) == ["1 Main St", "2 Oak Ave"]

    def test_unknown_priority_rejected_before_geocoding(self, maps_factory):
        maps = maps_factory()
        with pytest.raises(ValidationError):
            estimate_delivery("1 Main St", "2 Oak Ave", "whenever", maps_client=maps)
        assert maps.geocoded == []

    def test_unresolvable_address_raises_geocode_error(self, maps_factory):
        maps = maps_factory(fail_geocode="Nowhere")
        with pytest.raises(GeocodeError):
            estimate_delivery("1 Main St", "Nowhere Lane", "rush", maps_client=maps)


class TestMapsClient:

    def _client(self, *payloads):
        session = MagicMock()
        responses = []
        for payload in payloads:
            resp = MagicMock()
            resp.json.return_value = payload
            responses.append(resp)
        session.get.side_effect = responses
        return MapsClient("key", timeout=2, session=session), session

    def test_geocode_ok(self):
        client, session = self._client({
            "status": "OK",
            "results": [{
                "geometry": {"location": {"lat": 1.5, "lng": 2.5}},
                "formatted_address": "1 Main St, Austin, TX",
                "place_id": "abc",
            }],
        })
        result = client.geocode("1 Main St")
        assert result == {"lat": 1.5, "lng": 2.5, "address": "1 Main St, Austin, TX", "place_id": "abc"}
        assert session.get.call_args.kwargs["timeout"] == 2

    def test_geocode_zero_results(self):
        client, _ = self._client({"status": "ZERO_RESULTS", "results": []})
        with pytest.raises(GeocodeError):
            client.geocode("???")

    def test_geocode_provider_error(self):
        client, _ = self._client({"status": "REQUEST_DENIED", "error_message": "bad key"})
        with pytest.raises(UpstreamError):
            client.geocode("1 Main St")

    def test_route_ok(self):
        client, _ = self._client({
            "status": "OK",
            "routes": [{
                "legs": [{"distance": {"value": 5000}, "duration": {"value": 420}}],
                "overview_polyline": {"points": "xyz"},
            }],
        })
        result = client.route({"lat": 1, "lng": 2}, {"lat": 3, "lng": 4})
        assert result == {"distance_meters": 5000, "duration_seconds": 420, "polyline": "xyz"}

    def test_route_not_found(self):
        client, _ = self._client({"status": "ZERO_RESULTS", "routes": []})
        with pytest.raises(RouteError):
            client.route({"lat": 1, "lng": 2}, {"lat": 3, "lng": 4})

    def test_timeout_is_upstream_error(self):
        session = MagicMock()
        session.get.side_effect = requests.Timeout("slow")
        client = MapsClient("key", timeout=0.1, session=session)
        with pytest.raises(UpstreamError) as exc:
            client.geocode("1 Main St")
        assert exc.value.status_code == 503


class TestEstimateEndpoint:

    @patch("otw.services.fee_service.get_maps_client")
    def test_estimate_with_structured_addresses(self, mock_get_client, client, maps_factory):
        mock_get_client.return_value = maps_factory(distance_meters=16093)
        resp = client.post("/deliveries/estimate", json={
            "pickupAddress": {"street": "123 Main Street", "city": "Austin",
                              "state": "TX", "zipCode": "78701"},
            "dropoffAddress": "900 Congress Ave, Austin, TX 78701",
            "priority": "express",
        })
        assert resp.status_code == 200
        data = resp.get_json()
        assert data["fee"] == 31.48
        assert data["distanceMeters"] == 16093

    def test_estimate_invalid_priority_is_400(self, client):
        resp = client.post("/deliveries/estimate", json={
            "pickupAddress": "1 Main St",
            "dropoffAddress": "2 Oak Ave",
            "priority": "overnight",
        })
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

    @patch("otw.services.fee_service.get_maps_client")
    def test_estimate_geocode_failure_is_502(self, mock_get_client, client, maps_factory):
        mock_get_client.return_value = maps_factory(fail_geocode="Atlantis")
        resp = client.post("/deliveries/estimate", json={
            "pickupAddress": "1 Main St",
            "dropoffAddress": "Atlantis",
            "priority": "standard",
        })
        assert resp.status_code == 502
        assert resp.get_json()["code"] == "GEOCODE_ERROR"
