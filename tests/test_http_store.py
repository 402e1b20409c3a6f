from __future__ import annotations

import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from roundtrip.contracts import HarnessSettings, TestCase
from roundtrip.harness import RoundTripHarness
from roundtrip.http_store import HttpTextStore, records_from, transport_config_from_preset
from roundtrip.store import TransportError
from roundtrip.strategies import get_strategy
from roundtrip.transcoder import latin1_codepoints_as_utf8_bytes


def _response(status_code: int = 200, payload: object = None, text: str = "") -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload if payload is not None else {"status": "success"}
    return response


class HttpTextStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = HttpTextStore(transport_config_from_preset("utf8_form", base_url="https://notes.example/api/"))

    @patch("roundtrip.http_store.requests.request")
    def test_submit_posts_utf8_form_body(self, mock_request) -> None:
        mock_request.return_value = _response()
        handle = self.store.submit("[rt:run:c1:identity] café")

        self.assertEqual(handle, "rt:run:c1:identity")
        kwargs = mock_request.call_args.kwargs
        self.assertEqual(kwargs["method"], "POST")
        self.assertEqual(kwargs["url"], "https://notes.example/api/notes")
        self.assertIn(b"caf%C3%A9", kwargs["data"])
        self.assertIn("charset=UTF-8", kwargs["headers"]["Content-Type"])

    @patch("roundtrip.http_store.requests.request")
    def test_pre_encoded_payload_travels_as_raw_bytes(self, mock_request) -> None:
        mock_request.return_value = _response()
        self.store.submit("[rt:run:c1:preLatin1] " + latin1_codepoints_as_utf8_bytes("café"))
        self.assertTrue(mock_request.call_args.kwargs["data"].endswith(b"caf%E9"))

    @patch("roundtrip.http_store.requests.request")
    def test_latin1_preset_rejects_unrepresentable_text(self, mock_request) -> None:
        store = HttpTextStore(transport_config_from_preset("latin1_form", base_url="https://notes.example"))
        with self.assertRaises(TransportError):
            store.submit("[rt:run:c1:identity] “quoted”")
        mock_request.assert_not_called()

    def test_submit_requires_a_marker(self) -> None:
        with self.assertRaises(TransportError):
            self.store.submit("no marker here")

    @patch("roundtrip.http_store.requests.request")
    def test_rejected_submission_raises(self, mock_request) -> None:
        mock_request.return_value = _response(payload={"status": "error", "error": "forbidden"})
        with self.assertRaises(TransportError):
            self.store.submit("[rt:run:c1:identity] x")

    @patch("roundtrip.http_store.requests.request")
    def test_http_error_status_raises(self, mock_request) -> None:
        mock_request.return_value = _response(status_code=500, text="boom")
        with self.assertRaises(TransportError):
            self.store.fetch("rt:run:c1:identity")

    @patch("roundtrip.http_store.requests.request")
    def test_invalid_json_raises(self, mock_request) -> None:
        mock_request.return_value = _response(payload=ValueError("no json"), text="<html>")
        with self.assertRaises(TransportError):
            self.store.fetch("rt:run:c1:identity")

    @patch("roundtrip.http_store.requests.request")
    def test_fetch_matches_by_marker(self, mock_request) -> None:
        mock_request.return_value = _response(
            payload={
                "data": {
                    "results": [
                        {"notes": "[rt:run:c2:identity] cafÃ©"},
                        {"notes": "[rt:run:c1:identity] cafÃ©"},
                    ]
                }
            }
        )
        text = self.store.fetch("rt:run:c1:identity")

        self.assertEqual(text, "[rt:run:c1:identity] cafÃ©")
        kwargs = mock_request.call_args.kwargs
        self.assertEqual(kwargs["method"], "GET")
        self.assertEqual(kwargs["params"], {"search": "rt:run:c1:identity"})

    @patch("roundtrip.http_store.requests.request")
    def test_fetch_ignores_sibling_marker_that_extends_the_handle(self, mock_request) -> None:
        mock_request.return_value = _response(
            payload={"data": {"results": [{"notes": "[rt:r:a:identity2] other cell"}]}}
        )
        self.assertIsNone(self.store.fetch("rt:r:a:identity"))

    @patch("roundtrip.http_store.requests.request")
    def test_fetch_returns_none_when_not_visible(self, mock_request) -> None:
        mock_request.return_value = _response(payload={"data": {"results": []}})
        self.assertIsNone(self.store.fetch("rt:run:c1:identity"))

    @patch("tenacity.nap.time.sleep")
    @patch("roundtrip.http_store.requests.request")
    def test_connection_errors_are_retried(self, mock_request, _mock_sleep) -> None:
        mock_request.side_effect = [requests.exceptions.ConnectionError("reset"), _response(payload={"data": {"results": []}})]
        self.assertIsNone(self.store.fetch("rt:run:c1:identity"))
        self.assertEqual(mock_request.call_count, 2)

    @patch("tenacity.nap.time.sleep")
    @patch("roundtrip.http_store.requests.request")
    def test_persistent_connection_errors_become_transport_errors(self, mock_request, _mock_sleep) -> None:
        mock_request.side_effect = requests.exceptions.ConnectionError("down")
        with self.assertRaises(TransportError):
            self.store.fetch("rt:run:c1:identity")
        self.assertEqual(mock_request.call_count, 3)

    @patch("roundtrip.http_store.requests.request")
    def test_harness_over_http_store(self, mock_request) -> None:
        stored: dict[str, str] = {}

        def fake_request(method, url, params=None, data=None, headers=None, timeout=None):
            if method == "POST":
                stored["text"] = "[rt:run7:cafe:identity] cafÃ©"
                return _response()
            return _response(payload={"data": {"results": [{"notes": stored["text"]}]}})

        mock_request.side_effect = fake_request
        settings = HarnessSettings(max_poll_attempts=1, poll_backoff_ms=0, transport_timeout_ms=None)
        harness = RoundTripHarness(self.store, settings, run_id="run7")
        verdict = harness.run_cell(TestCase(id="cafe", original_text="café"), get_strategy("identity"))

        self.assertEqual(verdict.outcome, "CORRUPTED")
        self.assertEqual(verdict.corruption_kind, "UTF8_AS_LATIN1")


class TransportConfigTests(unittest.TestCase):
    def test_unknown_preset(self) -> None:
        with self.assertRaises(ValueError):
            transport_config_from_preset("carrier-pigeon", base_url="https://x")

    def test_override_headers_are_merged(self) -> None:
        config = transport_config_from_preset(
            "utf8_json",
            base_url="https://x",
            headers={"Authorization": "Bearer t"},
            text_field="body",
        )
        self.assertEqual(config.body_format, "json")
        self.assertEqual(config.text_field, "body")
        self.assertEqual(config.headers["Authorization"], "Bearer t")
        self.assertIn("Accept", config.headers)

    def test_records_from_nested_path(self) -> None:
        self.assertEqual(records_from({"data": {"results": [1]}}, "data.results"), [1])
        self.assertEqual(records_from({"data": None}, "data.results"), [])
        self.assertEqual(records_from([1, 2], ""), [1, 2])


if __name__ == "__main__":
    unittest.main()
