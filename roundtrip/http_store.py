from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Literal
from urllib.parse import urlencode

import requests
from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .store import TransportError, extract_marker, tag_payload

logger = logging.getLogger(__name__)

BodyFormat = Literal["form", "json"]


class TransportConfig(BaseModel):
    """How to reach a remote text store over HTTP. Built once and never mutated."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    base_url: str = Field(min_length=1)
    submit_path: str = "/notes"
    search_path: str = "/notes"
    text_field: str = "notes"
    search_param: str = "search"
    results_path: str = "data.results"
    body_format: BodyFormat = "form"
    charset: str = "utf-8"
    headers: Dict[str, str] = Field(default_factory=dict)
    extra_fields: Dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=20.0, gt=0)


TRANSPORT_PRESETS: Dict[str, Dict[str, Any]] = {
    "utf8_form": {
        "body_format": "form",
        "charset": "utf-8",
        "headers": {
            "Content-Type": "application/x-www-form-urlencoded; charset=UTF-8",
            "Accept": "application/json; charset=utf-8",
            "User-Agent": "roundtrip/0.1",
        },
    },
    "latin1_form": {
        "body_format": "form",
        "charset": "iso-8859-1",
        "headers": {
            "Content-Type": "application/x-www-form-urlencoded; charset=iso-8859-1",
            "Accept": "application/json; charset=iso-8859-1",
            "User-Agent": "roundtrip/0.1",
        },
    },
    "utf8_json": {
        "body_format": "json",
        "charset": "utf-8",
        "headers": {
            "Content-Type": "application/json; charset=utf-8",
            "Accept": "application/json; charset=utf-8",
            "User-Agent": "roundtrip/0.1",
        },
    },
    "php_sdk": {
        "body_format": "form",
        "charset": "utf-8",
        "headers": {"Content-Type": "application/x-www-form-urlencoded; charset=UTF-8"},
    },
}


def transport_config_from_preset(preset: str, *, base_url: str, **overrides: Any) -> TransportConfig:
    try:
        values = dict(TRANSPORT_PRESETS[preset])
    except KeyError:
        raise ValueError(f"Unknown transport preset: {preset}") from None
    headers = dict(values.pop("headers", {}))
    headers.update(overrides.pop("headers", {}) or {})
    values.update(overrides)
    return TransportConfig(base_url=base_url, headers=headers, **values)


def _dig(data: Any, dotted_path: str) -> Any:
    current = data
    for key in dotted_path.split("."):
        if not key:
            continue
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def records_from(data: Any, results_path: str) -> List[Any]:
    records = _dig(data, results_path) if results_path else data
    return records if isinstance(records, list) else []


class HttpTextStore:
    def __init__(self, config: TransportConfig) -> None:
        self.config = config
        self.base_url = config.base_url.strip().rstrip("/")

    def _encode_body(self, fields: Dict[str, str]) -> bytes:
        # surrogateescape lets pre-encoded payloads reach the wire as raw bytes.
        if self.config.body_format == "json":
            return json.dumps(fields).encode("ascii")
        try:
            return urlencode(fields, encoding=self.config.charset, errors="surrogateescape").encode("ascii")
        except UnicodeEncodeError as exc:
            raise TransportError(f"Payload is not representable in {self.config.charset}: {exc.reason}") from exc

    @retry(
        retry=retry_if_exception_type((requests.exceptions.ConnectionError, requests.exceptions.Timeout)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=4),
        reraise=True,
    )
    def _send(self, method: str, path: str, *, params: Dict[str, Any] | None = None, body: bytes | None = None) -> requests.Response:
        return requests.request(
            method=method,
            url=f"{self.base_url}{path}",
            params=params,
            data=body,
            headers=dict(self.config.headers),
            timeout=self.config.timeout_seconds,
        )

    def _request(self, method: str, path: str, *, params: Dict[str, Any] | None = None, body: bytes | None = None) -> Any:
        try:
            response = self._send(method, path, params=params, body=body)
        except requests.exceptions.RequestException as exc:
            raise TransportError(f"{method} {path} failed: {exc}") from exc
        if response.status_code >= 400:
            snippet = response.text[:400]
            raise TransportError(f"{method} {path} failed ({response.status_code}): {snippet}")
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"{method} {path} returned invalid JSON: {response.text[:200]}") from exc

    def submit(self, payload: str) -> str:
        marker = extract_marker(payload)
        if marker is None:
            raise TransportError("Payload carries no marker; the record could not be located again")
        fields = dict(self.config.extra_fields)
        fields[self.config.text_field] = payload
        data = self._request("POST", self.config.submit_path, body=self._encode_body(fields))
        if isinstance(data, dict) and str(data.get("status", "success")).lower() not in {"success", "ok"}:
            raise TransportError(f"Store rejected submission: {data.get('error') or data.get('message') or data}")
        logger.debug("Submitted record marker=%s", marker)
        return marker

    def fetch(self, handle: Any) -> str | None:
        marker = str(handle)
        # Whole tag only: "[rt:r:a:identity] " must not match "[rt:r:a:identity2] ".
        tag = tag_payload(marker, "")
        data = self._request("GET", self.config.search_path, params={self.config.search_param: marker})
        for record in records_from(data, self.config.results_path):
            text = _dig(record, self.config.text_field) if isinstance(record, dict) else None
            if isinstance(text, str) and tag in text:
                return text
        return None
