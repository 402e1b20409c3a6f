from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

OutcomeName = Literal[
    "EXACT_MATCH",
    "RECOVERED_MATCH",
    "IMPROVED",
    "CORRUPTED",
    "NOT_FOUND",
    "TRANSPORT_ERROR",
]
CorruptionKindName = Literal[
    "NONE",
    "UTF8_AS_LATIN1",
    "SYMBOL_DOUBLE_ENCODING",
    "HTML_ENTITY_PASSTHROUGH",
    "UNKNOWN_MANGLING",
]
SuccessCriterion = Literal["equality", "structural"]

OUTCOMES: tuple[OutcomeName, ...] = (
    "EXACT_MATCH",
    "RECOVERED_MATCH",
    "IMPROVED",
    "CORRUPTED",
    "NOT_FOUND",
    "TRANSPORT_ERROR",
)
CORRUPTION_KINDS: tuple[CorruptionKindName, ...] = (
    "NONE",
    "UTF8_AS_LATIN1",
    "SYMBOL_DOUBLE_ENCODING",
    "HTML_ENTITY_PASSTHROUGH",
    "UNKNOWN_MANGLING",
)
SUCCESS_OUTCOMES = frozenset({"EXACT_MATCH", "RECOVERED_MATCH"})

IDENTIFIER_PATTERN = r"^[A-Za-z0-9_.-]+$"


class TestCase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)
    __test__ = False

    id: str = Field(min_length=1, pattern=IDENTIFIER_PATTERN)
    original_text: str
    label: str = ""
    tags: tuple[str, ...] = ()


class DiffPosition(BaseModel):
    """One code-point disagreement between expected and actual text.

    ``extra`` marks the trailing entry emitted when the lengths differ; its
    ``expected``/``actual`` hold the unmatched tails (``None`` when empty).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    index: int = Field(ge=0)
    expected: str | None
    actual: str | None
    extra: bool = False


class Classification(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    outcome: OutcomeName
    corruption_kind: CorruptionKindName
    diff_positions: tuple[DiffPosition, ...] = ()
    mojibake_score: float = Field(default=0.0, ge=0.0, le=1.0)
    reason_codes: tuple[str, ...] = ()


class Submission(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    test_case_id: str
    strategy_name: str
    marker: str
    submitted_payload: str
    handle: Any = None
    error: str = ""


class Observation(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    submission: Submission
    # None means the store never surfaced the record.
    retrieved_payload: str | None
    attempts: int = Field(ge=0)


class Verdict(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    test_case_id: str
    strategy_name: str
    outcome: OutcomeName
    corruption_kind: CorruptionKindName | None = None
    diff_positions: tuple[DiffPosition, ...] = ()
    submission: Submission
    observation: Observation | None = None
    poll_attempts: int = Field(default=0, ge=0)
    mojibake_score: float = Field(default=0.0, ge=0.0, le=1.0)
    error: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome in SUCCESS_OUTCOMES


class HarnessSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_poll_attempts: int = Field(default=5, ge=1)
    poll_backoff_ms: int = Field(default=1500, ge=0)
    max_concurrent_cells: int = Field(default=4, ge=1)
    # None disables the per-attempt timeout and calls the store inline.
    transport_timeout_ms: int | None = Field(default=20000, ge=1)
