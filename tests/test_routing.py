import math
import threading
import unittest
from unittest import mock

import requests

from routewise.models import Coordinates, EstimateSource, OptimizationOptions, TransportMode
from routewise.routing import (
    MapboxDirectionsClient,
    ProviderUnavailable,
    RouteEstimator,
    SPEED_KMH,
    compute_haversine_matrix,
    haversine_distance,
)


def reference_km(a, b):
    # independent spherical law of cosines, R = 6371 km
    lat1, lon1, lat2, lon2 = map(math.radians, (a.lat, a.lng, b.lat, b.lng))
    cos_c = math.sin(lat1) * math.sin(lat2) + math.cos(lat1) * math.cos(lat2) * math.cos(lon2 - lon1)
    return 6371.0 * math.acos(max(-1.0, min(1.0, cos_c)))


class AlwaysFailingProvider:
    def __init__(self):
        self.calls = 0

    def route(self, origin, destination, mode, options=None):
        self.calls += 1
        raise ProviderUnavailable("down")


def mapbox_payload(distance_m=12345.0, duration_s=900.0):
    return {
        "code": "Ok",
        "routes": [{"distance": distance_m, "duration": duration_s, "geometry": "_p~iF~ps|U_ulLnnqC", "legs": []}],
        "waypoints": [{"name": "A", "location": [139.7454, 35.6586]}, {"name": "B", "location": [139.7671, 35.6812]}],
    }


def fake_session(status=200, payload=None, exc=None):
    session = mock.Mock()
    if exc is not None:
        session.get.side_effect = exc
    else:
        resp = mock.Mock(status_code=status)
        resp.json.return_value = payload if payload is not None else mapbox_payload()
        session.get.return_value = resp
    return session


TOKYO_TOWER = Coordinates(35.6586, 139.7454)
TOKYO_STATION = Coordinates(35.6812, 139.7671)


class TestRouting(unittest.TestCase):
    def test_haversine_distance(self):
        # distance between Tokyo Tower and Tokyo Station (~3.2 km)
        dist = haversine_distance(TOKYO_TOWER.as_tuple(), TOKYO_STATION.as_tuple())
        self.assertAlmostEqual(dist, 3.2, delta=0.5)

    def test_haversine_matrix(self):
        coords = [
            (0, 0),
            (0, 1),
            (1, 0),
        ]
        dist_matrix = compute_haversine_matrix(coords)
        # Distance from (0,0) to (0,1) ~111 km
        self.assertAlmostEqual(dist_matrix[0][1], 111, delta=2)
        self.assertEqual(dist_matrix[2][2], 0.0)
        self.assertAlmostEqual(dist_matrix[1][2], dist_matrix[2][1])


class TestFallbackEstimator(unittest.TestCase):
    def test_failing_provider_matches_reference(self):
        provider = AlwaysFailingProvider()
        estimator = RouteEstimator(provider)
        origin = Coordinates(48.8566, 2.3522)
        destination = Coordinates(52.52, 13.405)
        for mode in TransportMode:
            est = estimator.estimate(origin, destination, mode)
            expected_km = reference_km(origin, destination)
            expected_min = expected_km / SPEED_KMH[mode] * 60.0
            self.assertIs(est.source, EstimateSource.FALLBACK)
            self.assertAlmostEqual(est.distance_km, expected_km, delta=expected_km * 0.001)
            self.assertAlmostEqual(est.duration_min, expected_min, delta=expected_min * 0.001)
            self.assertIsNone(est.geometry)
        self.assertEqual(provider.calls, len(TransportMode))

    def test_speed_table(self):
        est = RouteEstimator().estimate(Coordinates(0, 0), Coordinates(0, 1), TransportMode.WALK)
        # ~111.2 km at 5 km/h
        self.assertAlmostEqual(est.duration_min, est.distance_km / 5.0 * 60.0)
        self.assertTrue(est.is_fallback)

    def test_identical_points(self):
        est = RouteEstimator().estimate(Coordinates(10, 10), Coordinates(10, 10), TransportMode.CAR)
        self.assertEqual(est.distance_km, 0.0)
        self.assertEqual(est.duration_min, 0.0)

    def test_unexpected_provider_error_is_absorbed(self):
        provider = mock.Mock()
        provider.route.side_effect = KeyError("boom")
        est = RouteEstimator(provider).estimate(TOKYO_TOWER, TOKYO_STATION, TransportMode.CAR)
        self.assertIs(est.source, EstimateSource.FALLBACK)

    def test_cancelled_skips_provider(self):
        provider = mock.Mock()
        cancel = threading.Event()
        cancel.set()
        est = RouteEstimator(provider).estimate(TOKYO_TOWER, TOKYO_STATION, TransportMode.CAR, cancel_event=cancel)
        provider.route.assert_not_called()
        self.assertTrue(est.is_fallback)


class TestMapboxClient(unittest.TestCase):
    def client(self, session):
        return MapboxDirectionsClient("tok", base_url="https://mapbox.test/", timeout=3, session=session)

    def test_success(self):
        session = fake_session()
        est = self.client(session).route(TOKYO_TOWER, TOKYO_STATION, TransportMode.BIKE)
        self.assertIs(est.source, EstimateSource.PROVIDER)
        self.assertAlmostEqual(est.distance_km, 12.345)
        self.assertAlmostEqual(est.duration_min, 15.0)
        self.assertEqual(est.geometry, "_p~iF~ps|U_ulLnnqC")
        self.assertEqual(len(est.waypoints), 2)
        url = session.get.call_args[0][0]
        # Mapbox wants lng,lat and the cycling profile for bikes
        self.assertEqual(url, "https://mapbox.test/directions/v5/mapbox/cycling/139.7454,35.6586;139.7671,35.6812")
        self.assertEqual(session.get.call_args[1]["timeout"], 3)
        self.assertEqual(session.get.call_args[1]["params"]["access_token"], "tok")

    def test_profiles_for_unroutable_modes(self):
        session = fake_session()
        self.client(session).route(TOKYO_TOWER, TOKYO_STATION, TransportMode.FLIGHT)
        self.assertIn("/mapbox/driving/", session.get.call_args[0][0])

    def test_exclusions_for_driving(self):
        session = fake_session()
        options = OptimizationOptions(avoid_highways=True, avoid_tolls=True)
        self.client(session).route(TOKYO_TOWER, TOKYO_STATION, TransportMode.CAR, options)
        self.assertEqual(session.get.call_args[1]["params"]["exclude"], "motorway,toll")

    def test_no_exclusions_for_walking(self):
        session = fake_session()
        options = OptimizationOptions(avoid_tolls=True)
        self.client(session).route(TOKYO_TOWER, TOKYO_STATION, TransportMode.WALK, options)
        self.assertNotIn("exclude", session.get.call_args[1]["params"])

    def test_failures_raise_provider_unavailable(self):
        cases = [
            fake_session(exc=requests.Timeout("slow")),
            fake_session(exc=requests.ConnectionError("refused")),
            fake_session(status=401, payload={"message": "Not Authorized"}),
            fake_session(payload={"code": "NoRoute", "message": "No route found", "routes": []}),
            fake_session(payload={"code": "Ok", "routes": []}),
            fake_session(payload={"code": "Ok", "routes": [{"geometry": "x"}]}),
        ]
        for session in cases:
            with self.assertRaises(ProviderUnavailable):
                self.client(session).route(TOKYO_TOWER, TOKYO_STATION, TransportMode.CAR)

    def test_non_json_body(self):
        session = fake_session()
        session.get.return_value.json.side_effect = ValueError("not json")
        with self.assertRaises(ProviderUnavailable):
            self.client(session).route(TOKYO_TOWER, TOKYO_STATION, TransportMode.CAR)

    def test_estimator_uses_provider_result(self):
        estimator = RouteEstimator(self.client(fake_session()))
        est = estimator.estimate(TOKYO_TOWER, TOKYO_STATION, TransportMode.CAR)
        self.assertFalse(est.is_fallback)
        self.assertAlmostEqual(est.distance_km, 12.345)

    def test_estimator_degrades_on_timeout(self):
        estimator = RouteEstimator(self.client(fake_session(exc=requests.Timeout("slow"))))
        est = estimator.estimate(TOKYO_TOWER, TOKYO_STATION, TransportMode.CAR)
        self.assertTrue(est.is_fallback)
        self.assertAlmostEqual(est.distance_km, haversine_distance(TOKYO_TOWER.as_tuple(), TOKYO_STATION.as_tuple()))

    def test_close_releases_own_session_only(self):
        borrowed = fake_session()
        self.client(borrowed).close()
        borrowed.close.assert_not_called()
        with mock.patch("routewise.routing.requests.Session") as session_cls:
            client = MapboxDirectionsClient("tok")
            client.close()
        session_cls.return_value.close.assert_called_once_with()

    def test_token_required(self):
        with self.assertRaises(ValueError):
            MapboxDirectionsClient("")


if __name__ == "__main__":
    unittest.main()
