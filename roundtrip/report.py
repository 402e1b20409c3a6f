from __future__ import annotations

from collections import Counter
from fractions import Fraction
from typing import Dict, Iterable, List, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .contracts import (
    CORRUPTION_KINDS,
    OUTCOMES,
    SUCCESS_OUTCOMES,
    SuccessCriterion,
    Verdict,
)
from .strategies import EncodingStrategy


class StrategySummary(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    criterion: SuccessCriterion
    cells: int = Field(ge=0)
    successes: int = Field(ge=0)
    success_rate: float = Field(ge=0.0, le=1.0)
    outcome_histogram: Dict[str, int]
    corruption_histogram: Dict[str, int]


class Report(BaseModel):
    """All verdicts of one harness run. Read-only once built."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    run_id: str
    strategy_names: tuple[str, ...]
    criteria: Dict[str, SuccessCriterion]
    test_case_ids: tuple[str, ...]
    verdicts: tuple[Verdict, ...] = ()
    cancelled: bool = False

    def verdicts_for(self, strategy_name: str) -> List[Verdict]:
        return [verdict for verdict in self.verdicts if verdict.strategy_name == strategy_name]

    def verdict(self, test_case_id: str, strategy_name: str) -> Verdict | None:
        for verdict in self.verdicts:
            if verdict.test_case_id == test_case_id and verdict.strategy_name == strategy_name:
                return verdict
        return None

    def _success_fraction(self, strategy_name: str) -> Fraction:
        verdicts = self.verdicts_for(strategy_name)
        if not verdicts:
            return Fraction(0)
        successes = sum(1 for verdict in verdicts if verdict.outcome in SUCCESS_OUTCOMES)
        return Fraction(successes, len(verdicts))

    def success_rate(self, strategy_name: str) -> float:
        return float(self._success_fraction(strategy_name))

    def corruption_histogram(self, strategy_name: str) -> Dict[str, int]:
        counts = Counter(
            verdict.corruption_kind
            for verdict in self.verdicts_for(strategy_name)
            if verdict.corruption_kind is not None
        )
        return {kind: counts.get(kind, 0) for kind in CORRUPTION_KINDS}

    def outcome_histogram(self, strategy_name: str) -> Dict[str, int]:
        counts = Counter(verdict.outcome for verdict in self.verdicts_for(strategy_name))
        return {outcome: counts.get(outcome, 0) for outcome in OUTCOMES}

    def recommend(self) -> str | None:
        """Best strategy by success rate, or None when no client-side strategy works.

        Ties prefer equality-based strategies over structural ones, then
        declaration order.
        """
        ranked = sorted(
            enumerate(self.strategy_names),
            key=lambda item: (
                -self._success_fraction(item[1]),
                self.criteria.get(item[1]) != "equality",
                item[0],
            ),
        )
        if not ranked:
            return None
        _, best = ranked[0]
        if self._success_fraction(best) == 0:
            return None
        return best

    def summaries(self) -> List[StrategySummary]:
        rows: List[StrategySummary] = []
        for name in self.strategy_names:
            verdicts = self.verdicts_for(name)
            rows.append(
                StrategySummary(
                    name=name,
                    criterion=self.criteria.get(name, "equality"),
                    cells=len(verdicts),
                    successes=sum(1 for verdict in verdicts if verdict.outcome in SUCCESS_OUTCOMES),
                    success_rate=self.success_rate(name),
                    outcome_histogram=self.outcome_histogram(name),
                    corruption_histogram=self.corruption_histogram(name),
                )
            )
        return rows


def aggregate_verdicts(
    verdicts: Iterable[Verdict],
    strategies: Sequence[EncodingStrategy],
    test_case_ids: Sequence[str],
    *,
    run_id: str,
    cancelled: bool = False,
) -> Report:
    strategy_names = tuple(strategy.name for strategy in strategies)
    known_strategies = set(strategy_names)
    known_cases = set(test_case_ids)
    seen: set[tuple[str, str]] = set()
    collected: List[Verdict] = []
    for verdict in verdicts:
        key = (verdict.test_case_id, verdict.strategy_name)
        if verdict.strategy_name not in known_strategies:
            raise ValueError(f"Verdict references unknown strategy: {verdict.strategy_name}")
        if verdict.test_case_id not in known_cases:
            raise ValueError(f"Verdict references unknown test case: {verdict.test_case_id}")
        if key in seen:
            raise ValueError(f"Duplicate verdict for case={key[0]} strategy={key[1]}")
        seen.add(key)
        collected.append(verdict)
    return Report(
        run_id=run_id,
        strategy_names=strategy_names,
        criteria={strategy.name: strategy.criterion for strategy in strategies},
        test_case_ids=tuple(test_case_ids),
        verdicts=tuple(collected),
        cancelled=cancelled,
    )


def render_report_lines(report: Report) -> List[str]:
    lines: List[str] = []
    lines.append("ROUND-TRIP ENCODING REPORT")
    lines.append(f"Run: {report.run_id}")
    lines.append(f"Cells: {len(report.verdicts)}" + (" (cancelled)" if report.cancelled else ""))
    lines.append("")
    for summary in report.summaries():
        lines.append(
            f"[{summary.name}] {summary.successes}/{summary.cells} "
            f"success_rate={summary.success_rate:.2f} criterion={summary.criterion}"
        )
        outcomes = ", ".join(f"{name}={count}" for name, count in summary.outcome_histogram.items() if count)
        kinds = ", ".join(f"{name}={count}" for name, count in summary.corruption_histogram.items() if count)
        lines.append(f"  outcomes: {outcomes or '-'}")
        lines.append(f"  corruption: {kinds or '-'}")
    lines.append("")
    for verdict in report.verdicts:
        line = f"{verdict.test_case_id} x {verdict.strategy_name}: {verdict.outcome}"
        if verdict.corruption_kind and verdict.corruption_kind != "NONE":
            line += f" ({verdict.corruption_kind})"
        if verdict.error:
            line += f" error={verdict.error}"
        lines.append(line)
    lines.append("")
    recommended = report.recommend()
    if recommended is None:
        lines.append("Recommendation: none. No client-side strategy closes the gap; the defect is upstream.")
    else:
        lines.append(f"Recommendation: {recommended}")
    return lines
