from __future__ import annotations

import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from roundtrip.classifier import (
    classify,
    diff_positions,
    has_mojibake_signature,
    is_tolerated_difference,
    score_mojibake,
)
from roundtrip.corpus import DEFAULT_CORPUS, SMOKE_CORPUS
from roundtrip.store import mangle_non_ascii_runs
from roundtrip.transcoder import to_html_entities, utf8_bytes_as_latin1

CORPUS_TEXTS = [case.original_text for case in DEFAULT_CORPUS + SMOKE_CORPUS]


class ClassifyTests(unittest.TestCase):
    def test_exact_match_has_no_false_positives(self) -> None:
        for text in CORPUS_TEXTS:
            with self.subTest(text=text):
                result = classify(text, text)
                self.assertEqual(result.outcome, "EXACT_MATCH")
                self.assertEqual(result.corruption_kind, "NONE")
                self.assertEqual(result.diff_positions, ())

    def test_classification_is_deterministic(self) -> None:
        for original in CORPUS_TEXTS:
            for observed in CORPUS_TEXTS:
                self.assertEqual(classify(original, observed), classify(original, observed))

    def test_accented_letters_read_as_latin1(self) -> None:
        self.assertEqual(utf8_bytes_as_latin1("café"), "cafÃ©")
        result = classify("café", utf8_bytes_as_latin1("café"))
        self.assertEqual(result.outcome, "CORRUPTED")
        self.assertEqual(result.corruption_kind, "UTF8_AS_LATIN1")

    def test_symbol_double_encoding(self) -> None:
        result = classify("45°F", "45Â°F")
        self.assertEqual(result.outcome, "CORRUPTED")
        self.assertEqual(result.corruption_kind, "SYMBOL_DOUBLE_ENCODING")

    def test_partially_mangled_runs_are_symbol_double_encoding(self) -> None:
        result = classify("José 45°", "José 45Â°")
        self.assertEqual(result.corruption_kind, "SYMBOL_DOUBLE_ENCODING")

    def test_run_wise_mangling_of_every_symbol_case(self) -> None:
        for text in ("45°F", "±5 mmHg", "• bullet", "“smart quotes”", "Temperature: 98.6°F"):
            with self.subTest(text=text):
                result = classify(text, mangle_non_ascii_runs(text))
                self.assertEqual(result.corruption_kind, "SYMBOL_DOUBLE_ENCODING")

    def test_strict_latin1_reading_is_recognised(self) -> None:
        result = classify("• bullet", utf8_bytes_as_latin1("• bullet", strict=True))
        self.assertEqual(result.corruption_kind, "SYMBOL_DOUBLE_ENCODING")

    def test_entity_passthrough(self) -> None:
        result = classify("café", "caf&eacute;")
        self.assertEqual(result.outcome, "CORRUPTED")
        self.assertEqual(result.corruption_kind, "HTML_ENTITY_PASSTHROUGH")
        numeric = classify("45°F", to_html_entities("45°F"))
        self.assertEqual(numeric.corruption_kind, "HTML_ENTITY_PASSTHROUGH")

    def test_unknown_mangling(self) -> None:
        result = classify("café", "cafe")
        self.assertEqual(result.outcome, "CORRUPTED")
        self.assertEqual(result.corruption_kind, "UNKNOWN_MANGLING")
        replaced = classify("45°F", "45\ufffdF")
        self.assertEqual(replaced.corruption_kind, "UNKNOWN_MANGLING")
        self.assertIn("replacement_char_detected", replaced.reason_codes)

    def test_corrupted_result_carries_mojibake_evidence(self) -> None:
        result = classify("café", "cafÃ©")
        self.assertGreater(result.mojibake_score, 0.0)
        self.assertIn("mojibake_pattern_detected", result.reason_codes)


class DiffPositionTests(unittest.TestCase):
    def test_same_length(self) -> None:
        positions = diff_positions("abc", "abd")
        self.assertEqual(len(positions), 1)
        self.assertEqual((positions[0].index, positions[0].expected, positions[0].actual), (2, "c", "d"))
        self.assertFalse(positions[0].extra)

    def test_length_mismatch_adds_trailing_entry(self) -> None:
        positions = diff_positions("café", "cafÃ©")
        self.assertEqual([p.index for p in positions], [3, 4])
        self.assertEqual((positions[0].expected, positions[0].actual), ("é", "Ã"))
        tail = positions[1]
        self.assertTrue(tail.extra)
        self.assertIsNone(tail.expected)
        self.assertEqual(tail.actual, "©")

    def test_identical_text_has_no_positions(self) -> None:
        self.assertEqual(diff_positions("same", "same"), ())


class MojibakeScoreTests(unittest.TestCase):
    def test_clean_text(self) -> None:
        self.assertEqual(score_mojibake("Temperature: 98.6°F"), (0.0, ["clean_utf8"]))

    def test_signature_detection(self) -> None:
        self.assertTrue(has_mojibake_signature("Patient said â€œI feel betterâ€"))
        self.assertFalse(has_mojibake_signature("Patient said “I feel better”"))

    def test_signature_follows_utf8_byte_shape_under_either_latin1_reading(self) -> None:
        self.assertTrue(has_mojibake_signature(utf8_bytes_as_latin1("It’s")))
        self.assertTrue(has_mojibake_signature(utf8_bytes_as_latin1("It’s", strict=True)))
        self.assertFalse(has_mojibake_signature("Ça va, Ærøskøbing"))

    def test_score_is_a_density(self) -> None:
        short_score, reasons = score_mojibake("cafÃ©")
        long_score, _ = score_mojibake("cafÃ© au lait with a long tail of clean ascii")
        self.assertEqual(reasons, ["mojibake_pattern_detected"])
        self.assertGreater(short_score, long_score)
        self.assertGreater(long_score, 0.0)
        self.assertEqual(score_mojibake(""), (0.0, ["clean_utf8"]))

    def test_control_characters_count_but_newlines_do_not(self) -> None:
        score, reasons = score_mojibake("a\x00b")
        self.assertGreater(score, 0.0)
        self.assertIn("control_char_detected", reasons)
        self.assertEqual(score_mojibake("a\nb")[1], ["clean_utf8"])


class ToleratedDifferenceTests(unittest.TestCase):
    def test_typographic_folding_is_tolerated(self) -> None:
        self.assertTrue(is_tolerated_difference("“smart quotes”", '"smart quotes"'))
        self.assertTrue(is_tolerated_difference("8/10 — reduced", "8/10 - reduced"))

    def test_real_corruption_is_not_tolerated(self) -> None:
        self.assertFalse(is_tolerated_difference("café", "cafe"))
        self.assertFalse(is_tolerated_difference("“x”", "â€œxâ€\x9d"))
        self.assertFalse(is_tolerated_difference("same", "same"))


if __name__ == "__main__":
    unittest.main()
