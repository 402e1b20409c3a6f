"""Byte-level reinterpretation of text.

"Latin-1" here is the WHATWG reading of the label: windows-1252, with the five
bytes it leaves undefined (0x81, 0x8D, 0x8F, 0x90, 0x9D) mapped to the code
point of identical value. Pass ``strict=True`` for plain ISO-8859-1.

Bytes that do not form valid UTF-8 travel inside ``str`` values as
``surrogateescape`` code points (U+DC80..U+DCFF), which keeps every function in
this module total.
"""

from __future__ import annotations

import html.entities
import re
from typing import Literal

EntityMode = Literal["numeric", "named"]


def _windows_1252_table() -> tuple[str, ...]:
    table: list[str] = []
    for value in range(256):
        try:
            table.append(bytes([value]).decode("cp1252"))
        except UnicodeDecodeError:
            table.append(chr(value))
    return tuple(table)


_BYTE_TO_CHAR = _windows_1252_table()
_CHAR_TO_BYTE: dict[str, int] = {char: value for value, char in enumerate(_BYTE_TO_CHAR)}
# C1 controls come back from strict ISO-8859-1 readings; map them to their own byte.
for _value in range(0x80, 0xA0):
    _CHAR_TO_BYTE.setdefault(chr(_value), _value)


def latin1_byte(char: str) -> int | None:
    """Byte that reads as ``char`` under windows-1252 or ISO-8859-1, if any."""
    return _CHAR_TO_BYTE.get(char)


def _char_utf8(char: str) -> bytes:
    try:
        return char.encode("utf-8", "surrogateescape")
    except UnicodeEncodeError:
        return char.encode("utf-8", "surrogatepass")


def utf8_bytes(text: str) -> bytes:
    """UTF-8 bytes of ``text``; escaped raw bytes are written back as themselves."""
    try:
        return text.encode("utf-8", "surrogateescape")
    except UnicodeEncodeError:
        return b"".join(_char_utf8(char) for char in text)


def utf8_bytes_as_latin1(text: str, *, strict: bool = False) -> str:
    """Show each UTF-8 byte of ``text`` as one Latin-1 code point (``café`` -> ``cafÃ©``)."""
    raw = utf8_bytes(text)
    if strict:
        return raw.decode("latin-1")
    return "".join(_BYTE_TO_CHAR[value] for value in raw)


def latin1_codepoints_as_utf8_bytes(text: str) -> str:
    """Inverse of :func:`utf8_bytes_as_latin1`.

    Every character with a Latin-1 byte is written as that byte; the byte
    stream is then read as UTF-8. Characters outside the table keep their own
    UTF-8 bytes, and bytes that do not decode survive as surrogate escapes.
    Applied to mojibake this is the repair direction (``cafÃ©`` -> ``café``).
    """
    buffer = bytearray()
    for char in text:
        value = _CHAR_TO_BYTE.get(char)
        if value is None:
            buffer.extend(_char_utf8(char))
        else:
            buffer.append(value)
    return buffer.decode("utf-8", "surrogateescape")


_UTF16_ESCAPE_RUN = re.compile(r"(?:\\u[0-9a-fA-F]{4})+")
_UTF16_ESCAPE = re.compile(r"\\u([0-9a-fA-F]{4})")


def to_utf16le_escapes(text: str) -> str:
    raw = text.encode("utf-16-le", "surrogatepass")
    units = (int.from_bytes(raw[index : index + 2], "little") for index in range(0, len(raw), 2))
    return "".join(f"\\u{unit:04x}" for unit in units)


def _decode_utf16_run(match: re.Match[str]) -> str:
    raw = b"".join(int(unit, 16).to_bytes(2, "little") for unit in _UTF16_ESCAPE.findall(match.group(0)))
    return raw.decode("utf-16-le", "surrogatepass")


def from_utf16le_escapes(text: str) -> str:
    """Decode every ``\\uXXXX`` run; anything else is left as it is."""
    return _UTF16_ESCAPE_RUN.sub(_decode_utf16_run, text)


# Named entities written by ``to_html_entities(..., mode="named")``.
NAMED_ENTITIES: dict[str, str] = {
    "&": "amp",
    "<": "lt",
    ">": "gt",
    '"': "quot",
    "\u00a0": "nbsp",
    "¢": "cent",
    "£": "pound",
    "¥": "yen",
    "§": "sect",
    "©": "copy",
    "®": "reg",
    "°": "deg",
    "±": "plusmn",
    "²": "sup2",
    "³": "sup3",
    "µ": "micro",
    "¶": "para",
    "·": "middot",
    "¼": "frac14",
    "½": "frac12",
    "¾": "frac34",
    "À": "Agrave",
    "Á": "Aacute",
    "Ç": "Ccedil",
    "É": "Eacute",
    "Ö": "Ouml",
    "×": "times",
    "Ü": "Uuml",
    "à": "agrave",
    "á": "aacute",
    "â": "acirc",
    "ã": "atilde",
    "ä": "auml",
    "å": "aring",
    "ç": "ccedil",
    "è": "egrave",
    "é": "eacute",
    "ê": "ecirc",
    "ë": "euml",
    "í": "iacute",
    "ï": "iuml",
    "ñ": "ntilde",
    "ó": "oacute",
    "ö": "ouml",
    "÷": "divide",
    "ø": "oslash",
    "ú": "uacute",
    "ü": "uuml",
    "π": "pi",
    "–": "ndash",
    "—": "mdash",
    "‘": "lsquo",
    "’": "rsquo",
    "“": "ldquo",
    "”": "rdquo",
    "†": "dagger",
    "•": "bull",
    "…": "hellip",
    "€": "euro",
    "™": "trade",
    "∞": "infin",
    "≠": "ne",
    "≤": "le",
    "≥": "ge",
}
_MARKUP_CHARS = frozenset('&<>"')
_NAME_TO_CHAR: dict[str, str] = {name: chr(code) for name, code in html.entities.name2codepoint.items()}
_NAME_TO_CHAR.update({name: char for char, name in NAMED_ENTITIES.items()})
_NAME_TO_CHAR["apos"] = "'"

ENTITY_PATTERN = re.compile(r"&(#[0-9]{1,7}|#[xX][0-9a-fA-F]{1,6}|[A-Za-z][A-Za-z0-9]{1,31});")


def to_html_entities(text: str, mode: EntityMode = "numeric") -> str:
    """Escape markup characters and everything outside ASCII."""
    parts: list[str] = []
    for char in text:
        if char not in _MARKUP_CHARS and ord(char) < 0x80:
            parts.append(char)
        elif mode == "named" and char in NAMED_ENTITIES:
            parts.append(f"&{NAMED_ENTITIES[char]};")
        else:
            parts.append(f"&#{ord(char)};")
    return "".join(parts)


def decode_entity(body: str) -> str | None:
    """Character for an entity body (the text between ``&`` and ``;``), if valid."""
    if body.startswith("#"):
        digits = body[1:]
        try:
            value = int(digits[1:], 16) if digits[:1] in {"x", "X"} else int(digits)
        except ValueError:
            return None
        if value <= 0 or value > 0x10FFFF or 0xD800 <= value <= 0xDFFF:
            return None
        return chr(value)
    return _NAME_TO_CHAR.get(body)


def _replace_entity(match: re.Match[str]) -> str:
    decoded = decode_entity(match.group(1))
    return match.group(0) if decoded is None else decoded


def from_html_entities(text: str) -> str:
    """Unescape known entities; unrecognized ones such as ``&unknown;`` stay as written."""
    return ENTITY_PATTERN.sub(_replace_entity, text)
