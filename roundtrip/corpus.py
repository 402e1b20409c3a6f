from __future__ import annotations

from .contracts import TestCase

# Clinical-note fragments that went through the remote store during the investigation.
DEFAULT_CORPUS: tuple[TestCase, ...] = (
    TestCase(id="C01_ACCENTED_NAMES", original_text="Café visit with Dr. José", label="accented names", tags=("latin1",)),
    TestCase(id="C02_DEGREE", original_text="Temperature: 98.6°F", label="degree sign", tags=("symbol",)),
    TestCase(id="C03_PLUS_MINUS", original_text="BP: 120/80 ± 5 mmHg", label="plus-minus", tags=("symbol",)),
    TestCase(
        id="C04_SMART_QUOTES",
        original_text="Patient said “I feel better”",
        label="smart quotes",
        tags=("typography",),
    ),
    TestCase(id="C05_EM_DASH", original_text="Pain level: 8/10 — reduced", label="em dash", tags=("typography",)),
    TestCase(
        id="C06_BULLETS",
        original_text="Treatment:\n• Pain relief\n• Exercise",
        label="bullet list",
        tags=("symbol", "multiline"),
    ),
    TestCase(
        id="C07_MIXED",
        original_text="François: 45° ± 2, O₂ 98%",
        label="mixed symbols",
        tags=("latin1", "symbol"),
    ),
    TestCase(
        id="C08_EMOJI",
        original_text="Patient mood: \U0001F60A Pain level: ⭐⭐⭐",
        label="emoji",
        tags=("astral",),
    ),
)

SMOKE_CORPUS: tuple[TestCase, ...] = (
    TestCase(id="cafe", original_text="café", label="accented letter"),
    TestCase(id="degree", original_text="45°F", label="degree sign"),
    TestCase(id="plusminus", original_text="±5 mmHg", label="plus-minus"),
    TestCase(id="bullet", original_text="• bullet", label="bullet"),
    TestCase(id="quotes", original_text="“smart quotes”", label="smart quotes"),
)

CORPORA: dict[str, tuple[TestCase, ...]] = {
    "default": DEFAULT_CORPUS,
    "smoke": SMOKE_CORPUS,
}
