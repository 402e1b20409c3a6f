from __future__ import annotations

import io
import json
import os
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest.mock import patch

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from roundtrip.cli import main


def _run(argv: list[str]) -> tuple[int, str]:
    buffer = io.StringIO()
    with redirect_stdout(buffer), redirect_stderr(io.StringIO()):
        code = main(argv)
    return code, buffer.getvalue()


class CliTests(unittest.TestCase):
    def test_classify_prints_json(self) -> None:
        code, output = _run(["classify", "café", "cafÃ©"])
        self.assertEqual(code, 0)
        result = json.loads(output)
        self.assertEqual(result["outcome"], "CORRUPTED")
        self.assertEqual(result["corruption_kind"], "UTF8_AS_LATIN1")

    def test_encode_shows_raw_bytes_escaped(self) -> None:
        code, output = _run(["encode", "--strategy", "preLatin1", "café"])
        self.assertEqual(code, 0)
        self.assertEqual(output.strip(), "caf\\xe9")
        _, entities = _run(["encode", "--strategy", "htmlEntity", "45°F"])
        self.assertEqual(entities.strip(), "45&#176;F")

    def test_strategies_lists_catalogue(self) -> None:
        code, output = _run(["strategies"])
        self.assertEqual(code, 0)
        self.assertIn("preLatin1", output)
        self.assertIn("structural", output)

    def test_run_smoke_corpus_recommends_pre_latin1(self) -> None:
        code, output = _run(["run", "--corpus", "smoke", "--json"])
        self.assertEqual(code, 0)
        payload = json.loads(output)
        self.assertEqual(payload["recommendation"], "preLatin1")
        self.assertEqual(len(payload["verdicts"]), 30)

    def test_run_exits_one_when_nothing_works(self) -> None:
        code, output = _run(["run", "--corpus", "smoke", "--strategies", "identity"])
        self.assertEqual(code, 1)
        self.assertIn("Recommendation: none", output)

    def test_run_writes_report_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / "report.txt"
            code, output = _run(["run", "--corpus", "smoke", "--mangle", "none", "--output", str(target)])
            self.assertEqual(code, 0)
            self.assertIn("Wrote:", output)
            self.assertTrue(target.read_text(encoding="utf-8").endswith("Recommendation: identity"))

    def test_configuration_errors_exit_two(self) -> None:
        code, _ = _run(["run", "--strategies", "rot13"])
        self.assertEqual(code, 2)
        with patch.dict(os.environ, {"ROUNDTRIP_STORE_URL": ""}):
            code, _ = _run(["run", "--store", "http"])
        self.assertEqual(code, 2)


if __name__ == "__main__":
    unittest.main()
