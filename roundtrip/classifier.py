from __future__ import annotations

import re
import unicodedata

from .contracts import Classification, CorruptionKindName, DiffPosition
from .transcoder import ENTITY_PATTERN, decode_entity, latin1_byte, utf8_bytes_as_latin1

# UTF-8 byte ranges as they surface once the store reads them through windows-1252.
_LEAD_BYTES = (0xC2, 0xF4)
_CONTINUATION_BYTES = (0x80, 0xBF)
_SIGNAL_WEIGHTS = {"replacement": 0.65, "mojibake": 3.0, "control": 1.8}
_REASON_CODES = {
    "replacement": "replacement_char_detected",
    "mojibake": "mojibake_pattern_detected",
    "control": "control_char_detected",
}
_CONTROL_ALLOWLIST = {"\n", "\r", "\t"}
_CHAR_RUNS = re.compile(r"[\x00-\x7f]+|[^\x00-\x7f]+")

# Typographic variants a store may normalise without it counting as corruption.
_TYPOGRAPHIC_FOLDS = {
    "‘": "'",
    "’": "'",
    "‚": "'",
    "‛": "'",
    "′": "'",
    "“": '"',
    "”": '"',
    "„": '"',
    "‟": '"',
    "″": '"',
    "–": "-",
    "—": "-",
    "−": "-",
    "…": "...",
    "\u00a0": " ",
}
_FOLD_TABLE = str.maketrans(_TYPOGRAPHIC_FOLDS)


def _mojibake_pairs(text: str) -> int:
    """Count UTF-8 lead bytes followed by a continuation byte, both read as Latin-1."""
    pairs = 0
    previous: int | None = None
    for char in text:
        value = latin1_byte(char)
        if previous is not None and value is not None and _LEAD_BYTES[0] <= previous <= _LEAD_BYTES[1]:
            if _CONTINUATION_BYTES[0] <= value <= _CONTINUATION_BYTES[1]:
                pairs += 1
        previous = value
    return pairs


def _signal_counts(text: str) -> dict[str, int]:
    control = sum(
        1 for char in text if char not in _CONTROL_ALLOWLIST and unicodedata.category(char).startswith("C")
    )
    return {
        "replacement": text.count("\ufffd"),
        "mojibake": _mojibake_pairs(text),
        "control": control,
    }


def score_mojibake(text: str) -> tuple[float, list[str]]:
    """Weighted density of corruption signals in ``text``, with the signals that fired."""
    if not text:
        return 0.0, ["clean_utf8"]
    counts = _signal_counts(text)
    reasons = [_REASON_CODES[signal] for signal, count in counts.items() if count]
    if not reasons:
        return 0.0, ["clean_utf8"]
    weighted = sum(_SIGNAL_WEIGHTS[signal] * count for signal, count in counts.items())
    return min(1.0, weighted / len(text)), reasons


def has_mojibake_signature(text: str) -> bool:
    return _mojibake_pairs(text) > 0


def fold_typography(text: str) -> str:
    return text.translate(_FOLD_TABLE)


def is_tolerated_difference(expected: str, observed: str) -> bool:
    """True when the texts differ only in typography a store may normalise."""
    if expected == observed or has_mojibake_signature(observed):
        return False
    return fold_typography(expected) == fold_typography(observed)


def diff_positions(original: str, observed: str) -> tuple[DiffPosition, ...]:
    """Code-point aligned differences, plus one trailing ``extra`` entry on length mismatch."""
    bound = min(len(original), len(observed))
    positions = [
        DiffPosition(index=index, expected=original[index], actual=observed[index])
        for index in range(bound)
        if original[index] != observed[index]
    ]
    if len(original) != len(observed):
        positions.append(
            DiffPosition(
                index=bound,
                expected=original[bound:] or None,
                actual=observed[bound:] or None,
                extra=True,
            )
        )
    return tuple(positions)


def _is_letter_text(text: str) -> bool:
    return all(unicodedata.category(char)[0] in {"L", "M"} for char in text if ord(char) >= 0x80)


def _matches_run_signature(original: str, observed: str) -> bool:
    # Each state is (offset into observed, whether any run was mangled so far).
    states = {(0, False)}
    for run in _CHAR_RUNS.findall(original):
        if ord(run[0]) < 0x80:
            candidates = [(run, False)]
        else:
            candidates = [
                (utf8_bytes_as_latin1(run), True),
                (utf8_bytes_as_latin1(run, strict=True), True),
                (run, False),
            ]
        states = {
            (offset + len(candidate), mangled or candidate_mangled)
            for offset, mangled in states
            for candidate, candidate_mangled in candidates
            if observed.startswith(candidate, offset)
        }
        if not states:
            return False
    return (len(observed), True) in states


def _matches_entity_passthrough(original: str, observed: str) -> bool:
    states = {(0, False)}
    for char in original:
        next_states: set[tuple[int, bool]] = set()
        for offset, used_entity in states:
            if observed.startswith(char, offset):
                next_states.add((offset + 1, used_entity))
            match = ENTITY_PATTERN.match(observed, offset)
            if match is not None and decode_entity(match.group(1)) == char:
                next_states.add((match.end(), True))
        states = next_states
        if not states:
            return False
    return (len(observed), True) in states


def _corrupted(original: str, observed: str, kind: CorruptionKindName) -> Classification:
    score, reasons = score_mojibake(observed)
    return Classification(
        outcome="CORRUPTED",
        corruption_kind=kind,
        diff_positions=diff_positions(original, observed),
        mojibake_score=score,
        reason_codes=tuple(reasons),
    )


def classify(original: str, observed: str) -> Classification:
    """Name the transformation that turns ``original`` into ``observed``.

    Rules are checked in order and the first match wins: exact match, whole
    string UTF-8-as-Latin-1 on accented letters, per-run double encoding of
    symbols, literal HTML entities, and finally unknown mangling.
    """
    if observed == original:
        score, reasons = score_mojibake(observed)
        return Classification(
            outcome="EXACT_MATCH",
            corruption_kind="NONE",
            mojibake_score=score,
            reason_codes=tuple(reasons),
        )

    whole_string = observed in {utf8_bytes_as_latin1(original), utf8_bytes_as_latin1(original, strict=True)}
    if whole_string and _is_letter_text(original):
        return _corrupted(original, observed, "UTF8_AS_LATIN1")
    if _matches_run_signature(original, observed):
        return _corrupted(original, observed, "SYMBOL_DOUBLE_ENCODING")
    if _matches_entity_passthrough(original, observed):
        return _corrupted(original, observed, "HTML_ENTITY_PASSTHROUGH")
    return _corrupted(original, observed, "UNKNOWN_MANGLING")
