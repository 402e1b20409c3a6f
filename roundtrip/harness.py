from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Any, Callable, Dict, Iterator, Sequence

from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_exponential

from .classifier import classify, is_tolerated_difference, score_mojibake
from .contracts import (
    Classification,
    HarnessSettings,
    Observation,
    Submission,
    TestCase,
    Verdict,
)
from .report import Report, aggregate_verdicts
from .store import RemoteTextStore, TransportError, make_marker, tag_payload, untag_payload
from .strategies import CatalogueError, EncodingStrategy, validate_catalogue

logger = logging.getLogger(__name__)

Cell = tuple[TestCase, EncodingStrategy]


class HarnessConfigError(ValueError):
    pass


def _is_not_found(value: str | None) -> bool:
    return value is None


def _less_corrupted(direct: Classification, raw: Classification) -> Classification:
    if direct.corruption_kind == "UNKNOWN_MANGLING" and raw.corruption_kind != "UNKNOWN_MANGLING":
        return raw
    return direct


class RoundTripHarness:
    """Runs every (test case, strategy) cell against a remote text store.

    Cell lifecycle: PENDING -> SUBMITTED -> POLLING* -> OBSERVED -> CLASSIFIED,
    or PENDING -> SUBMIT_FAILED, or SUBMITTED -> POLL_EXHAUSTED -> NOT_FOUND.
    Every path ends in exactly one Verdict; store failures never escape ``run``.
    """

    def __init__(
        self,
        store: RemoteTextStore,
        settings: HarnessSettings | None = None,
        *,
        run_id: str | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or HarnessSettings()
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self._sleep = sleep

    def _call(self, fn: Callable[..., Any], *args: Any, transport: ThreadPoolExecutor | None = None) -> Any:
        timeout_ms = self.settings.transport_timeout_ms
        if not timeout_ms:
            return fn(*args)
        # A hung call keeps its worker thread; the cell moves on without it.
        executor = transport or ThreadPoolExecutor(max_workers=1, thread_name_prefix="roundtrip-transport")
        try:
            future = executor.submit(fn, *args)
            return future.result(timeout=timeout_ms / 1000.0)
        except FuturesTimeoutError as exc:
            name = getattr(fn, "__name__", "call")
            raise TransportError(f"{name} timed out after {timeout_ms}ms") from exc
        finally:
            if transport is None:
                executor.shutdown(wait=False)

    def _poller(self) -> Retrying:
        backoff = self.settings.poll_backoff_ms / 1000.0
        options: Dict[str, Any] = {
            "retry": retry_if_result(_is_not_found),
            "stop": stop_after_attempt(self.settings.max_poll_attempts),
            "wait": wait_exponential(multiplier=backoff, min=backoff, max=backoff * 8),
            "retry_error_callback": lambda retry_state: None,
        }
        if self._sleep is not None:
            options["sleep"] = self._sleep
        return Retrying(**options)

    def _poll(self, handle: Any, transport: ThreadPoolExecutor | None = None) -> tuple[str | None, int]:
        attempts = 0

        def attempt() -> str | None:
            nonlocal attempts
            attempts += 1
            return self._call(self.store.fetch, handle, transport=transport)

        return self._poller()(attempt), attempts

    def _evaluate(
        self,
        test_case: TestCase,
        strategy: EncodingStrategy,
        payload: str,
        retrieved: str,
    ) -> tuple[Classification, str]:
        if strategy.structural:
            mangled = classify(payload, retrieved).model_copy(
                update={"outcome": "CORRUPTED", "corruption_kind": "UNKNOWN_MANGLING"}
            )
            try:
                intact = strategy.predicate is not None and strategy.predicate(payload, retrieved)
            except Exception as exc:
                logger.warning(
                    "Cell predicate failed case=%s strategy=%s error=%s",
                    test_case.id,
                    strategy.name,
                    exc,
                )
                return mangled, f"predicate failed: {exc}"
            if intact:
                return Classification(outcome="EXACT_MATCH", corruption_kind="NONE"), ""
            return mangled, ""

        expected = strategy.expected_text(test_case.original_text)
        raw = classify(payload, retrieved)
        if raw.outcome == "EXACT_MATCH":
            if payload == expected:
                return raw, ""
            recovered = strategy.recover(retrieved)
            if recovered == expected:
                return raw.model_copy(update={"outcome": "RECOVERED_MATCH"}), ""
            return classify(expected, retrieved if recovered is None else recovered), ""

        direct = classify(expected, retrieved)
        if direct.outcome == "EXACT_MATCH":
            return direct, ""
        if is_tolerated_difference(expected, retrieved):
            return direct.model_copy(update={"outcome": "IMPROVED", "corruption_kind": "NONE"}), ""
        return _less_corrupted(direct, raw), ""

    def run_cell(self, test_case: TestCase, strategy: EncodingStrategy) -> Verdict:
        return self._run_cell(test_case, strategy, None)

    def _run_cell(
        self,
        test_case: TestCase,
        strategy: EncodingStrategy,
        transport: ThreadPoolExecutor | None,
    ) -> Verdict:
        payload = strategy.encode(test_case.original_text)
        marker = make_marker(self.run_id, test_case.id, strategy.name)
        logger.debug("Cell PENDING case=%s strategy=%s", test_case.id, strategy.name)

        try:
            handle = self._call(self.store.submit, tag_payload(marker, payload), transport=transport)
        except Exception as exc:
            logger.warning("Cell SUBMIT_FAILED case=%s strategy=%s error=%s", test_case.id, strategy.name, exc)
            submission = Submission(
                test_case_id=test_case.id,
                strategy_name=strategy.name,
                marker=marker,
                submitted_payload=payload,
                error=str(exc),
            )
            return Verdict(
                test_case_id=test_case.id,
                strategy_name=strategy.name,
                outcome="TRANSPORT_ERROR",
                submission=submission,
                error=str(exc),
            )

        submission = Submission(
            test_case_id=test_case.id,
            strategy_name=strategy.name,
            marker=marker,
            submitted_payload=payload,
            handle=handle,
        )
        logger.debug("Cell SUBMITTED case=%s strategy=%s handle=%s", test_case.id, strategy.name, handle)

        attempts = 0
        try:
            raw_text, attempts = self._poll(handle, transport)
        except Exception as exc:
            logger.warning("Cell fetch failed case=%s strategy=%s error=%s", test_case.id, strategy.name, exc)
            return Verdict(
                test_case_id=test_case.id,
                strategy_name=strategy.name,
                outcome="TRANSPORT_ERROR",
                submission=submission,
                error=str(exc),
            )

        if raw_text is None:
            logger.warning(
                "Cell POLL_EXHAUSTED case=%s strategy=%s attempts=%d",
                test_case.id,
                strategy.name,
                attempts,
            )
            observation = Observation(submission=submission, retrieved_payload=None, attempts=attempts)
            return Verdict(
                test_case_id=test_case.id,
                strategy_name=strategy.name,
                outcome="NOT_FOUND",
                submission=submission,
                observation=observation,
                poll_attempts=attempts,
            )

        retrieved = untag_payload(marker, raw_text)
        observation = Observation(submission=submission, retrieved_payload=retrieved, attempts=attempts)
        logger.debug("Cell OBSERVED case=%s strategy=%s attempts=%d", test_case.id, strategy.name, attempts)

        classification, error = self._evaluate(test_case, strategy, payload, retrieved)
        score, _ = score_mojibake(retrieved)
        logger.debug(
            "Cell CLASSIFIED case=%s strategy=%s outcome=%s kind=%s",
            test_case.id,
            strategy.name,
            classification.outcome,
            classification.corruption_kind,
        )
        return Verdict(
            test_case_id=test_case.id,
            strategy_name=strategy.name,
            outcome=classification.outcome,
            corruption_kind=classification.corruption_kind,
            diff_positions=classification.diff_positions,
            submission=submission,
            observation=observation,
            poll_attempts=attempts,
            mojibake_score=score,
            error=error,
        )

    def _validate(self, test_cases: Sequence[TestCase], strategies: Sequence[EncodingStrategy]) -> None:
        try:
            validate_catalogue(strategies)
        except CatalogueError as exc:
            raise HarnessConfigError(str(exc)) from exc
        seen: set[str] = set()
        for test_case in test_cases:
            if test_case.id in seen:
                raise HarnessConfigError(f"Duplicate test case id: {test_case.id}")
            seen.add(test_case.id)

    def run(
        self,
        test_cases: Sequence[TestCase],
        strategies: Sequence[EncodingStrategy],
        *,
        cancel_event: threading.Event | None = None,
    ) -> Report:
        """Execute the full cross product and fold the verdicts into a Report.

        Misconfiguration raises ``HarnessConfigError`` before any cell runs.
        Setting ``cancel_event`` stops scheduling; cells already in flight
        still finish, and the Report is marked ``cancelled``.
        """
        test_cases = tuple(test_cases)
        strategies = tuple(strategies)
        self._validate(test_cases, strategies)

        cells: list[Cell] = [(test_case, strategy) for test_case in test_cases for strategy in strategies]
        order = {(test_case.id, strategy.name): index for index, (test_case, strategy) in enumerate(cells)}
        pending_cells: Iterator[Cell] = iter(cells)
        verdicts: list[Verdict] = []
        scheduled = 0
        cancelled = False
        limit = self.settings.max_concurrent_cells

        logger.info(
            "Round-trip run %s: %d cases x %d strategies, max_concurrent_cells=%d",
            self.run_id,
            len(test_cases),
            len(strategies),
            limit,
        )
        # Shared by every cell of this run; timed-out calls are abandoned, never joined.
        transport = (
            ThreadPoolExecutor(max_workers=limit * 2, thread_name_prefix="roundtrip-transport")
            if self.settings.transport_timeout_ms
            else None
        )
        try:
            with ThreadPoolExecutor(max_workers=limit, thread_name_prefix="roundtrip-cell") as executor:
                in_flight: set[Future[Verdict]] = set()
                while True:
                    while len(in_flight) < limit and scheduled < len(cells):
                        if cancel_event is not None and cancel_event.is_set():
                            cancelled = True
                            break
                        test_case, strategy = next(pending_cells)
                        in_flight.add(executor.submit(self._run_cell, test_case, strategy, transport))
                        scheduled += 1
                    if not in_flight:
                        break
                    done, in_flight = wait(in_flight, return_when=FIRST_COMPLETED)
                    for future in done:
                        verdicts.append(future.result())
        finally:
            if transport is not None:
                transport.shutdown(wait=False, cancel_futures=True)

        if cancelled:
            logger.info("Round-trip run %s cancelled after %d of %d cells", self.run_id, scheduled, len(cells))
        verdicts.sort(key=lambda verdict: order[(verdict.test_case_id, verdict.strategy_name)])
        return aggregate_verdicts(
            verdicts,
            strategies,
            [test_case.id for test_case in test_cases],
            run_id=self.run_id,
            cancelled=cancelled,
        )
