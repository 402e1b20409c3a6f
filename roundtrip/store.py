from __future__ import annotations

import re
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Protocol

from .classifier import fold_typography
from .transcoder import to_html_entities, utf8_bytes_as_latin1

_MARKER_PREFIX = re.compile(r"^\[(rt:[A-Za-z0-9_.:-]+)\] ")
_NON_ASCII_RUN = re.compile(r"[^\x00-\x7f]+")


class TransportError(RuntimeError):
    pass


class RemoteTextStore(Protocol):
    """What the harness needs from a remote store.

    ``fetch`` returns ``None`` while the record is not visible (yet) and raises
    ``TransportError`` when the request itself fails.
    """

    def submit(self, payload: str) -> Any: ...

    def fetch(self, handle: Any) -> str | None: ...


def make_marker(run_id: str, test_case_id: str, strategy_name: str) -> str:
    return f"rt:{run_id}:{test_case_id}:{strategy_name}"


def tag_payload(marker: str, payload: str) -> str:
    return f"[{marker}] {payload}"


def untag_payload(marker: str, text: str) -> str:
    prefix = tag_payload(marker, "")
    if text.startswith(prefix):
        return text[len(prefix) :]
    return text


def extract_marker(text: str) -> str | None:
    match = _MARKER_PREFIX.match(text)
    return match.group(1) if match else None


def mangle_non_ascii_runs(text: str) -> str:
    """ASCII passes through; every non-ASCII run is shown as its UTF-8 bytes read as Latin-1."""
    return _NON_ASCII_RUN.sub(lambda match: utf8_bytes_as_latin1(match.group(0)), text)


def mangle_whole_string(text: str) -> str:
    return utf8_bytes_as_latin1(text)


def mangle_to_entities(text: str) -> str:
    """Store the entity text for non-ASCII characters instead of the characters."""
    return _NON_ASCII_RUN.sub(lambda match: to_html_entities(match.group(0)), text)


MANGLERS: Dict[str, Callable[[str], str] | None] = {
    "none": None,
    "non-ascii-runs": mangle_non_ascii_runs,
    "whole-string": mangle_whole_string,
    "entities": mangle_to_entities,
    "fold-typography": fold_typography,
}


@dataclass
class _Record:
    text: str
    polls: int = 0


class MemoryTextStore:
    """In-process store that simulates a remote which rewrites text on write.

    Records are indexed by the marker at the start of the payload, falling back
    to a random id for untagged payloads. ``visible_after_polls`` delays
    visibility; ``never_visible`` models a store that silently drops writes.
    """

    def __init__(
        self,
        *,
        mangle: Callable[[str], str] | None = None,
        visible_after_polls: int = 0,
        never_visible: bool = False,
    ) -> None:
        self._mangle = mangle
        self._visible_after_polls = max(0, int(visible_after_polls))
        self._never_visible = never_visible
        self._records: Dict[str, _Record] = {}
        self._lock = threading.Lock()

    def submit(self, payload: str) -> str:
        handle = extract_marker(payload) or uuid.uuid4().hex
        stored = self._mangle(payload) if self._mangle else payload
        with self._lock:
            self._records[handle] = _Record(text=stored)
        return handle

    def fetch(self, handle: Any) -> str | None:
        with self._lock:
            record = self._records.get(str(handle))
            if record is None or self._never_visible:
                return None
            record.polls += 1
            if record.polls <= self._visible_after_polls:
                return None
            return record.text

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
