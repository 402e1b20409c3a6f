from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from .contracts import IDENTIFIER_PATTERN, SuccessCriterion
from .transcoder import (
    from_html_entities,
    from_utf16le_escapes,
    latin1_codepoints_as_utf8_bytes,
    to_html_entities,
    to_utf16le_escapes,
    utf8_bytes_as_latin1,
)

_NAME_RE = re.compile(IDENTIFIER_PATTERN)


class CatalogueError(ValueError):
    pass


@dataclass(frozen=True)
class EncodingStrategy:
    """A named pre-submission transform and the rule used to judge it.

    ``decode`` is the strategy's own recovery of the original text from a
    retrieved payload; ``None`` means the identity. ``expectation`` maps the
    original text to what a successful round-trip must return and defaults to
    the original itself. Structural strategies are judged by
    ``predicate(submitted_payload, retrieved_payload)`` instead of equality.
    """

    name: str
    encode: Callable[[str], str]
    decode: Callable[[str], str | None] | None = None
    criterion: SuccessCriterion = "equality"
    predicate: Callable[[str, str], bool] | None = None
    expectation: Callable[[str], str] | None = None
    description: str = ""

    @property
    def structural(self) -> bool:
        return self.criterion == "structural"

    def expected_text(self, original: str) -> str:
        if self.expectation is None:
            return original
        return self.expectation(original)

    def recover(self, retrieved: str) -> str | None:
        if self.decode is None:
            return retrieved
        return self.decode(retrieved)


def _identity(text: str) -> str:
    return text


# Lossy ASCII stand-ins for characters the remote is known to mangle.
SAFE_SUBSTITUTIONS: dict[str, str] = {
    "“": '"',
    "”": '"',
    "‘": "'",
    "’": "'",
    "—": " - ",
    "–": "-",
    "°": " degrees",
    "±": "+/-",
    "≤": "<=",
    "≥": ">=",
    "≠": "!=",
    "∞": "infinity",
    "π": "pi",
    "√": "sqrt",
    "½": "1/2",
    "¼": "1/4",
    "¾": "3/4",
    "€": "EUR",
    "£": "GBP",
    "¢": "cents",
    "¥": "JPY",
    "•": "* ",
    "◦": "- ",
    "▪": "- ",
    "▫": "- ",
    "‣": "> ",
    "℃": "C",
    "℉": "F",
    "μ": "micro",
    "\u00b5": "micro",
    "α": "alpha",
    "β": "beta",
    "γ": "gamma",
    "δ": "delta",
    "Ω": "ohm",
    "₀": "0",
    "₁": "1",
    "₂": "2",
    "₃": "3",
    "₄": "4",
    "₅": "5",
    "₆": "6",
    "₇": "7",
    "₈": "8",
    "₉": "9",
    "⁰": "^0",
    "¹": "^1",
    "²": "^2",
    "³": "^3",
    "⁴": "^4",
    "⁵": "^5",
    "⁶": "^6",
    "⁷": "^7",
    "⁸": "^8",
    "⁹": "^9",
    "ø": "o",
    "Ø": "O",
}
_SUBSTITUTION_TABLE = str.maketrans(SAFE_SUBSTITUTIONS)
_COMBINING_MARKS = re.compile(r"[\u0300-\u036f]")
_NON_ASCII = re.compile(r"[^\x00-\x7f]")


def ascii_substitute(text: str) -> str:
    """Replace known symbols, strip accents, and turn anything else outside ASCII into ``?``."""
    result = text.translate(_SUBSTITUTION_TABLE)
    result = _COMBINING_MARKS.sub("", unicodedata.normalize("NFKD", result))
    return _NON_ASCII.sub("?", result)


# Small GIF glyphs in the format the remote renderer accepts inline.
SYMBOL_ASSETS: dict[str, str] = {
    "°": "R0lGODdhDwAPAPEAAKKoqu7v8FpkaP///ywAAAAADwAPAAACK5yPqcsp7aCYUz1zVQAChPEEHQJ4Jcidh/CJk4cCRrnJJGts3Qf1/g9kFAAAOw==",
    "±": "R0lGODdhDwAPAPEAAKCmqO7v8FpkaP///ywAAAAADwAPAAACI5yPqcvtGoAAwQF6nahBeK9ckWQIkESZg6qo7uN+7EPXNlMAADs=",
    "•": "R0lGODdhDwAPAPIHAJCWmc7R0rq/wP///3B5fP7+/lpkaObo6CwAAAAADwAPAAADRDi63F1BiONWIAQATBkkQaEUAtENB2EIjgBYxuoU5qidDBBUjs57tUFBs9ktXAxBjCASlnA0A0aTwSlchYPEusj+vo4EADs=",
    "∞": "R0lGODdhDwAPAPIHAOrs7LzAwenq6////+jq6m12em53erq+wCwAAAAADwAPAAADODi63A4GuAZNnAqece4zm9IJFNgcBZmZTpAqFjbEgza5xGIzeCMUgUXP8QsOJz9DIScbEAzMpiwBADs=",
    "♀": "R0lGODlhEAAQAPIBAP///wAAAMLCwkJCQgAAAGJiYoKCgpKSkiH5BAkKAAQALAAAAAAQABAAAAM2SLrc/jDKSVe4OOvNu/9gqARDSYpkaZ5oqq5s275wLM90bd94Lu987//AoHBILBqPyKRyyWw6CwA7",
    "♂": "R0lGODlhEAAQAPIBAP///wAAAMLCwkJCQgAAAGJiYoKCgpKSkiH5BAkKAAQALAAAAAAQABAAAAM4SLrc/jDKSVe4OOvNu/9gqARDSYpkaZ5oqq5s275wLM90bd94Lu987//AoHBILFqPSJRyyWw6nwwAOw==",
    "†": "R0lGODlhEAAQAPIBAP///wAAAMLCwkJCQgAAAGJiYoKCgpKSkiH5BAkKAAQALAAAAAAQABAAAAM1SLrc/jDKSVe4OOvNu/9gqARDSYpkaZ5oqq5s275wLM90bd94ru987//AoHBILBqPyKRyyWwCADs=",
}
ASSET_TAG_PATTERN = re.compile(r'<img src="data:image/gif;base64,([A-Za-z0-9+/=]+)" alt="([^"]*)" />')


def asset_alt_text(data: str) -> str:
    # The renderer only keeps an image whose alt text occurs inside its own base64 data.
    middle = len(data) // 2
    return data[middle : middle + 12]


def asset_tag(data: str) -> str:
    return f'<img src="data:image/gif;base64,{data}" alt="{asset_alt_text(data)}" />'


_ASSET_TAGS = {symbol: asset_tag(data) for symbol, data in SYMBOL_ASSETS.items()}


def embed_symbol_assets(text: str) -> str:
    return "".join(_ASSET_TAGS.get(char, char) for char in text)


def assets_intact(submitted: str, retrieved: str) -> bool:
    expected_tags = ASSET_TAG_PATTERN.findall(submitted)
    if not expected_tags:
        return retrieved == submitted
    retrieved_tags = ASSET_TAG_PATTERN.findall(retrieved)
    if retrieved_tags != expected_tags:
        return False
    return all(alt in data for data, alt in retrieved_tags)


BUILTIN_STRATEGIES: tuple[EncodingStrategy, ...] = (
    EncodingStrategy(
        name="identity",
        encode=_identity,
        description="Submit the text unchanged.",
    ),
    EncodingStrategy(
        name="preLatin1",
        encode=latin1_codepoints_as_utf8_bytes,
        decode=utf8_bytes_as_latin1,
        description="Pre-corrupt so a remote UTF-8-as-Latin-1 step restores the text.",
    ),
    EncodingStrategy(
        name="htmlEntity",
        encode=to_html_entities,
        decode=from_html_entities,
        description="Numeric HTML entities for markup and non-ASCII characters.",
    ),
    EncodingStrategy(
        name="utf16Escape",
        encode=to_utf16le_escapes,
        decode=from_utf16le_escapes,
        description="\\uXXXX escape per UTF-16LE code unit.",
    ),
    EncodingStrategy(
        name="asciiSubstitute",
        encode=ascii_substitute,
        expectation=ascii_substitute,
        description="Lossy ASCII substitution; judged against the substituted text.",
    ),
    EncodingStrategy(
        name="embeddedAsset",
        encode=embed_symbol_assets,
        criterion="structural",
        predicate=assets_intact,
        description="Inline GIF assets for symbols; judged by asset tags surviving.",
    ),
)
_BUILTIN_BY_NAME = {strategy.name: strategy for strategy in BUILTIN_STRATEGIES}


def get_strategy(name: str) -> EncodingStrategy:
    try:
        return _BUILTIN_BY_NAME[name]
    except KeyError:
        raise CatalogueError(f"Unknown strategy: {name}") from None


def build_catalogue(names: Iterable[str] | None = None) -> tuple[EncodingStrategy, ...]:
    """Built-in strategies in the order given, or all of them in declaration order."""
    if names is None:
        return BUILTIN_STRATEGIES
    return tuple(get_strategy(name.strip()) for name in names if name.strip())


def validate_catalogue(strategies: Sequence[EncodingStrategy]) -> None:
    if not strategies:
        raise CatalogueError("Strategy catalogue is empty")
    seen: set[str] = set()
    for strategy in strategies:
        if not _NAME_RE.match(strategy.name):
            raise CatalogueError(f"Invalid strategy name: {strategy.name!r}")
        if strategy.name in seen:
            raise CatalogueError(f"Duplicate strategy name: {strategy.name}")
        seen.add(strategy.name)
        if strategy.criterion not in {"equality", "structural"}:
            raise CatalogueError(f"Strategy {strategy.name} has unknown criterion {strategy.criterion!r}")
        if strategy.structural and strategy.predicate is None:
            raise CatalogueError(f"Structural strategy {strategy.name} has no predicate")
