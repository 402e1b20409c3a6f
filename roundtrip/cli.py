from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

from .classifier import classify
from .config import LOG_LEVEL, load_harness_settings, load_transport_config
from .corpus import CORPORA
from .harness import HarnessConfigError, RoundTripHarness
from .http_store import HttpTextStore
from .report import Report, render_report_lines
from .store import MANGLERS, MemoryTextStore, RemoteTextStore
from .strategies import BUILTIN_STRATEGIES, CatalogueError, build_catalogue, get_strategy

logger = logging.getLogger(__name__)


def _printable(text: str) -> str:
    # Raw bytes carried as surrogate escapes cannot be written to a text stream.
    try:
        text.encode("utf-8")
        return text
    except UnicodeEncodeError:
        return text.encode("utf-8", "surrogateescape").decode("utf-8", "backslashreplace")


def _report_payload(report: Report) -> dict[str, Any]:
    return {
        "run_id": report.run_id,
        "cancelled": report.cancelled,
        "recommendation": report.recommend(),
        "strategies": [summary.model_dump(mode="json") for summary in report.summaries()],
        "verdicts": [
            {
                "test_case_id": verdict.test_case_id,
                "strategy_name": verdict.strategy_name,
                "outcome": verdict.outcome,
                "corruption_kind": verdict.corruption_kind,
                "poll_attempts": verdict.poll_attempts,
                "mojibake_score": round(verdict.mojibake_score, 4),
                "error": verdict.error,
            }
            for verdict in report.verdicts
        ],
    }


def _build_store(args: argparse.Namespace) -> RemoteTextStore:
    if args.store == "http":
        config = load_transport_config()
        if config is None:
            raise HarnessConfigError("ROUNDTRIP_STORE_URL is not set")
        return HttpTextStore(config)
    return MemoryTextStore(mangle=MANGLERS[args.mangle])


def _cmd_run(args: argparse.Namespace) -> int:
    strategy_names = args.strategies.split(",") if args.strategies else None
    strategies = build_catalogue(strategy_names)
    store = _build_store(args)
    settings = load_harness_settings()
    if args.store == "memory":
        # Records in the simulated store are visible on the first poll.
        settings = settings.model_copy(update={"poll_backoff_ms": 0})

    report = RoundTripHarness(store, settings).run(CORPORA[args.corpus], strategies)

    lines = render_report_lines(report)
    if args.output:
        output_file = Path(args.output)
        output_file.write_text("\n".join(lines), encoding="utf-8")
        print(f"Wrote: {output_file}")
    if args.json:
        print(json.dumps(_report_payload(report), indent=2))
    elif not args.output:
        print("\n".join(lines))
    return 0 if report.recommend() is not None else 1


def _cmd_classify(args: argparse.Namespace) -> int:
    result = classify(args.original, args.observed)
    print(json.dumps(result.model_dump(mode="json"), ensure_ascii=False, indent=2))
    return 0


def _cmd_encode(args: argparse.Namespace) -> int:
    strategy = get_strategy(args.strategy)
    print(_printable(strategy.encode(args.text)))
    return 0


def _cmd_strategies(args: argparse.Namespace) -> int:
    for strategy in BUILTIN_STRATEGIES:
        print(f"{strategy.name:<16} {strategy.criterion:<10} {strategy.description}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="roundtrip",
        description="Probe a remote text store for encoding corruption and rank pre-submission strategies.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run every strategy against a corpus.")
    run_parser.add_argument("--store", choices=["memory", "http"], default="memory", help="Store backend (default: %(default)s)")
    run_parser.add_argument(
        "--mangle",
        choices=sorted(MANGLERS),
        default="non-ascii-runs",
        help="Rewrite applied by the simulated store (default: %(default)s)",
    )
    run_parser.add_argument("--corpus", choices=sorted(CORPORA), default="default", help="Test corpus (default: %(default)s)")
    run_parser.add_argument("--strategies", default="", help="Comma-separated strategy names (default: all)")
    run_parser.add_argument("--output", default="", help="Write the text report to this file")
    run_parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    run_parser.set_defaults(handler=_cmd_run)

    classify_parser = subparsers.add_parser("classify", help="Classify an observed text against its original.")
    classify_parser.add_argument("original")
    classify_parser.add_argument("observed")
    classify_parser.set_defaults(handler=_cmd_classify)

    encode_parser = subparsers.add_parser("encode", help="Show the payload a strategy would submit.")
    encode_parser.add_argument("--strategy", required=True)
    encode_parser.add_argument("text")
    encode_parser.set_defaults(handler=_cmd_encode)

    strategies_parser = subparsers.add_parser("strategies", help="List the built-in strategies.")
    strategies_parser.set_defaults(handler=_cmd_strategies)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, LOG_LEVEL, logging.INFO), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        return args.handler(args)
    except (HarnessConfigError, CatalogueError) as exc:
        logger.error("Configuration error: %s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
