"""Tests for LiveArrivalClient and the HTTP transport."""

import threading
import unittest
from unittest.mock import MagicMock, patch
from datetime import datetime, timezone
import sys
from pathlib import Path

import requests

# Add src to path so we can import livejourney
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from livejourney.arrival_client import LiveArrivalClient, minutes_until, parse_departure_time
from livejourney.cancellation import CancellationToken
from livejourney.config import FALLBACK_STOP_FIELD, ServiceConfig
from livejourney.errors import (
    DecodingError,
    InvalidDateFormatError,
    InvalidURLError,
    NetworkError,
    NoStationIdFoundError,
    OperationCancelledError,
)
from livejourney.models import SegmentKind
from livejourney.transport import JsonTransport

NOW = datetime(2025, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


def _response(payload=None, status=200):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    response.text = str(payload)
    return response


class FakeSession:
    """Routes requests by the last path segment of the URL."""

    def __init__(self, routes):
        self.routes = routes
        self.calls = []
        self._lock = threading.Lock()

    def request(self, method, url, timeout=None, **kwargs):
        with self._lock:
            self.calls.append((method, url, timeout, kwargs))
        handler = self.routes.get(url.rstrip("/").rsplit("/", 1)[-1])
        if handler is None:
            raise AssertionError(f"Unexpected request to {url}")
        if isinstance(handler, Exception):
            raise handler
        if callable(handler) and not isinstance(handler, MagicMock):
            return handler(kwargs)
        return handler

    def urls(self):
        return [url for _, url, _, _ in self.calls]

    def close(self):
        pass


def _client(routes):
    session = FakeSession(routes)
    client = LiveArrivalClient(
        config=ServiceConfig(base_url="https://api.example.com/"),
        transport=JsonTransport(session=session, timeout=15),
        clock=lambda: NOW,
    )
    return client, session


class TestDepartureTimes(unittest.TestCase):
    """Test fallback timestamp parsing."""

    def test_fractional_seconds(self):
        """Test the extended ISO-8601 format."""
        parsed = parse_departure_time("2025-01-01T10:12:30.123Z")
        self.assertEqual(parsed, datetime(2025, 1, 1, 10, 12, 30, 123000, tzinfo=timezone.utc))

    def test_plain_format(self):
        """Test the simple ISO-8601 format fallback."""
        parsed = parse_departure_time("2025-01-01T13:05:00+03:00")
        self.assertEqual(parsed, datetime(2025, 1, 1, 10, 5, tzinfo=timezone.utc))

    def test_invalid_format(self):
        """Test unparseable timestamps raise InvalidDateFormatError."""
        with self.assertRaises(InvalidDateFormatError):
            parse_departure_time("tomorrow at ten")
        with self.assertRaises(InvalidDateFormatError):
            parse_departure_time("")

    def test_minutes_are_floored_and_never_negative(self):
        """Test minute offsets from a fixed clock."""
        self.assertEqual(minutes_until("2025-01-01T10:12:59.900Z", NOW), 12)
        self.assertEqual(minutes_until("2025-01-01T10:05:00Z", NOW), 5)
        self.assertEqual(minutes_until("2025-01-01T09:58:00+00:00", NOW), 0)


class TestPrimaryFeed(unittest.TestCase):
    """Test the primary arrivals endpoint."""

    def test_metro_arrivals_skip_refinement(self):
        """Test metro arrivals are returned with their raw destination."""
        client, session = _client({
            "metro_arrivals": _response({
                "station_name": "KAFD",
                "arrivals": [
                    {"line": "1", "destination": "Batha", "minutes_until": 4},
                    {"line": "1", "destination": "SABB", "minutes_until": 9},
                ],
            }),
        })

        response = client.fetch_arrivals("KAFD (Metro)", SegmentKind.METRO)

        self.assertEqual(response.station_name, "KAFD")
        self.assertEqual([a.destination for a in response.arrivals], ["Batha", "SABB"])
        self.assertEqual([a.minutes_until for a in response.arrivals], [4, 9])
        self.assertEqual(session.urls(), ["https://api.example.com/metro_arrivals"])
        self.assertEqual(session.calls[0][3]["json"], {"station_name": "KAFD"})

    def test_every_call_uses_the_timeout(self):
        """Test requests are bounded by the configured timeout."""
        client, session = _client({
            "metro_arrivals": _response({"station_name": "KAFD", "arrivals": [
                {"line": "1", "destination": "Batha", "minutes_until": 4},
            ]}),
        })
        client.fetch_arrivals("KAFD", SegmentKind.METRO)
        self.assertEqual(session.calls[0][2], 15)

    def test_bus_arrivals_are_refined(self):
        """Test refinement results replace destinations and failures keep the raw label."""
        def refine(kwargs):
            if kwargs["json"]["line_number"] == "150":
                return _response({"refined_terminus": "King Saud University", "line_number": "150"})
            return _response(None, status=500)

        client, session = _client({
            "bus_arrivals": _response({
                "station_name": "Olaya",
                "arrivals": [
                    {"line": "150", "destination": "KSU", "minutes_until": 3},
                    {"line": "7", "destination": "Batha", "minutes_until": 8},
                ],
            }),
            "refineTerminus": refine,
        })

        response = client.fetch_arrivals("Olaya (Bus)", SegmentKind.BUS)

        self.assertEqual(
            [(a.line, a.destination, a.minutes_until) for a in response.arrivals],
            [("150", "King Saud University", 3), ("7", "Batha", 8)],
        )
        self.assertEqual(session.urls().count("https://api.example.com/refineTerminus"), 2)

    def test_refinement_network_failure_is_absorbed(self):
        """Test a refinement timeout keeps the raw destination."""
        client, _ = _client({
            "bus_arrivals": _response({"station_name": "Olaya", "arrivals": [
                {"line": "150", "destination": "KSU", "minutes_until": 3},
            ]}),
            "refineTerminus": requests.exceptions.Timeout("slow"),
        })

        response = client.fetch_arrivals("Olaya", SegmentKind.BUS)
        self.assertEqual(response.arrivals[0].destination, "KSU")

    def test_arabic_uses_prefixed_endpoints(self):
        """Test the language is passed into the endpoint path."""
        client, session = _client({
            "bus_arrivals": _response({"station_name": "العليا", "arrivals": [
                {"line": "150", "destination": "جامعة الملك سعود", "minutes_until": 3},
            ]}),
            "refineTerminus": _response({"refined_terminus": "جامعة الملك سعود"}),
        })

        client.fetch_arrivals("العليا", SegmentKind.BUS, language="ar")

        self.assertEqual(session.urls()[0], "https://api.example.com/ar/bus_arrivals")
        self.assertEqual(session.urls()[1], "https://api.example.com/ar/refineTerminus")

    def test_walk_mode_rejected(self):
        """Test walking segments have no live arrivals."""
        client, _ = _client({})
        with self.assertRaises(ValueError):
            client.fetch_arrivals("Olaya", SegmentKind.WALK)


class TestFallbackChain(unittest.TestCase):
    """Test the station id lookup and provider portal fallback."""

    def _fallback_routes(self, primary):
        return {
            "metro_arrivals": primary,
            "giveMeId": _response({
                "station_name": "KAFD",
                "matches": [
                    {"full_station_name": "KAFD Metro Station", "station_id": "123", "type": "metro"},
                    {"full_station_name": "KAFD Bus Stop", "station_id": "456", "type": "bus"},
                ],
            }),
            "stationdetails": _response([
                {
                    "number": "1",
                    "name": "Line 1",
                    "destination": "Batha",
                    "actualDepartureTimePlanned": "2025-01-01T10:12:30.000Z",
                    "departureTimePlanned": "2025-01-01T10:12:00.000Z",
                },
                {
                    "number": "1",
                    "name": "Line 1",
                    "destination": "SABB",
                    "actualDepartureTimePlanned": "2025-01-01T10:20:00Z",
                    "departureTimePlanned": "2025-01-01T10:20:00Z",
                },
            ]),
        }

    def test_empty_primary_uses_fallback(self):
        """Test an empty primary response triggers the fallback."""
        client, session = _client(self._fallback_routes(
            _response({"station_name": "KAFD", "arrivals": []})
        ))

        response = client.fetch_arrivals("KAFD (Metro)", SegmentKind.METRO)

        self.assertEqual([a.minutes_until for a in response.arrivals], [12, 20])
        self.assertEqual([a.destination for a in response.arrivals], ["Batha", "SABB"])
        self.assertEqual(response.station_name, "KAFD")

        portal_call = session.calls[2]
        self.assertEqual(portal_call[0], "POST")
        self.assertEqual(portal_call[1], "https://www.rpt.sa/en/web/guest/stationdetails")
        self.assertEqual(portal_call[3]["data"], {FALLBACK_STOP_FIELD: "123"})
        self.assertEqual(portal_call[3]["headers"]["X-Requested-With"], "XMLHttpRequest")

    def test_failing_primary_uses_fallback(self):
        """Test a network error on the primary feed triggers the fallback."""
        client, _ = _client(self._fallback_routes(requests.exceptions.ConnectionError("down")))
        response = client.fetch_arrivals("KAFD", SegmentKind.METRO)
        self.assertEqual(len(response.arrivals), 2)

    def test_undecodable_primary_uses_fallback(self):
        """Test a malformed primary body triggers the fallback."""
        client, _ = _client(self._fallback_routes(_response({"unexpected": True})))
        response = client.fetch_arrivals("KAFD", SegmentKind.METRO)
        self.assertEqual(len(response.arrivals), 2)

    def test_no_station_id(self):
        """Test NoStationIdFoundError when the lookup has no match."""
        routes = self._fallback_routes(_response({"station_name": "KAFD", "arrivals": []}))
        routes["giveMeId"] = _response({"station_name": "KAFD", "matches": []})
        client, _ = _client(routes)

        with self.assertRaises(NoStationIdFoundError):
            client.fetch_arrivals("KAFD", SegmentKind.METRO)

    def test_fallback_http_error(self):
        """Test the portal status code is kept on the error."""
        routes = self._fallback_routes(_response(None, status=502))
        routes["stationdetails"] = _response(None, status=503)
        client, _ = _client(routes)

        with self.assertRaises(NetworkError) as ctx:
            client.fetch_arrivals("KAFD", SegmentKind.METRO)
        self.assertEqual(ctx.exception.status_code, 503)

    def test_invalid_departure_time(self):
        """Test an unparseable departure fails the acquisition."""
        routes = self._fallback_routes(_response({"station_name": "KAFD", "arrivals": []}))
        routes["stationdetails"] = _response([{
            "number": "1",
            "name": "Line 1",
            "destination": "Batha",
            "actualDepartureTimePlanned": "soon",
            "departureTimePlanned": "soon",
        }])
        client, _ = _client(routes)

        with self.assertRaises(InvalidDateFormatError):
            client.fetch_arrivals("KAFD", SegmentKind.METRO)

    def test_fallback_bus_arrivals_are_refined(self):
        """Test fallback arrivals go through refinement too."""
        client, _ = _client({
            "bus_arrivals": _response({"station_name": "Olaya", "arrivals": []}),
            "giveMeId": _response({"station_name": "Olaya", "matches": [
                {"full_station_name": "Olaya", "station_id": "77", "type": "bus"},
            ]}),
            "stationdetails": _response([{
                "number": "150",
                "name": "150",
                "destination": "KSU",
                "actualDepartureTimePlanned": "",
                "departureTimePlanned": "2025-01-01T10:07:00Z",
            }]),
            "refineTerminus": _response({"refined_terminus": "King Saud University"}),
        })

        response = client.fetch_arrivals("Olaya", SegmentKind.BUS)

        self.assertEqual(response.arrivals[0].destination, "King Saud University")
        self.assertEqual(response.arrivals[0].minutes_until, 7)


class TestCancellation(unittest.TestCase):
    """Test cooperative cancellation."""

    def test_cancelled_token_stops_before_any_request(self):
        """Test no request is sent once the token is cancelled."""
        client, session = _client({})
        token = CancellationToken()
        token.cancel()

        with self.assertRaises(OperationCancelledError):
            client.fetch_arrivals("KAFD", SegmentKind.METRO, cancel_token=token)
        self.assertEqual(session.calls, [])

    def test_cancellation_does_not_trigger_fallback(self):
        """Test a cancelled primary call is not retried on the fallback."""
        token = CancellationToken()

        def primary(kwargs):
            token.cancel()
            return _response({"station_name": "KAFD", "arrivals": []})

        client, session = _client({"metro_arrivals": primary})

        with self.assertRaises(OperationCancelledError):
            client.fetch_arrivals("KAFD", SegmentKind.METRO, cancel_token=token)
        self.assertEqual(len(session.calls), 1)


class TestJsonTransport(unittest.TestCase):
    """Test error mapping in the transport."""

    def test_invalid_url(self):
        """Test malformed URLs raise InvalidURLError."""
        session = MagicMock()
        session.request.side_effect = requests.exceptions.MissingSchema("no scheme")
        transport = JsonTransport(session=session)

        with self.assertRaises(InvalidURLError):
            transport.get_json("not-a-url")

    def test_decoding_error(self):
        """Test non-JSON bodies raise DecodingError."""
        response = _response()
        response.json.side_effect = ValueError("no json")
        session = MagicMock()
        session.request.return_value = response
        transport = JsonTransport(session=session)

        with self.assertRaises(DecodingError):
            transport.post_json("https://api.example.com/x", {})

    def test_each_thread_gets_its_own_session(self):
        """Test worker threads never share a default session."""
        with patch("livejourney.transport.requests.Session", side_effect=lambda: MagicMock()):
            transport = JsonTransport()
            main_session = transport.session
            self.assertIs(transport.session, main_session)

            seen = []

            def use_session():
                seen.append(transport.session)

            first = threading.Thread(target=use_session)
            first.start()
            first.join()
            second = threading.Thread(target=use_session)
            second.start()
            second.join()

        self.assertIsNot(seen[0], main_session)
        self.assertIsNot(seen[0], seen[1])
        # The exited worker's session is closed when the next one is created
        seen[0].close.assert_called_once()

        transport.close()
        main_session.close.assert_called_once()
        seen[1].close.assert_called_once()

    def test_injected_session_is_shared(self):
        """Test an explicit session is used from every thread."""
        session = MagicMock()
        transport = JsonTransport(session=session)
        seen = []
        worker = threading.Thread(target=lambda: seen.append(transport.session))
        worker.start()
        worker.join()

        self.assertIs(seen[0], session)
        transport.close()
        session.close.assert_called_once()

    def test_timeout_is_network_error(self):
        """Test timeouts become NetworkError without a status code."""
        session = MagicMock()
        session.request.side_effect = requests.exceptions.ReadTimeout("timed out")
        transport = JsonTransport(session=session, timeout=15)

        with self.assertRaises(NetworkError) as ctx:
            transport.get_json("https://api.example.com/x")
        self.assertIsNone(ctx.exception.status_code)
        session.request.assert_called_once_with("GET", "https://api.example.com/x", timeout=15, headers=None)


if __name__ == "__main__":
    unittest.main()
