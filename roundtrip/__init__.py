from .classifier import classify, score_mojibake
from .contracts import (
    Classification,
    CorruptionKindName,
    DiffPosition,
    HarnessSettings,
    Observation,
    OutcomeName,
    Submission,
    TestCase,
    Verdict,
)
from .harness import HarnessConfigError, RoundTripHarness
from .report import Report, aggregate_verdicts
from .store import MemoryTextStore, RemoteTextStore, TransportError
from .strategies import BUILTIN_STRATEGIES, CatalogueError, EncodingStrategy, build_catalogue

__all__ = [
    "BUILTIN_STRATEGIES",
    "CatalogueError",
    "Classification",
    "CorruptionKindName",
    "DiffPosition",
    "EncodingStrategy",
    "HarnessConfigError",
    "HarnessSettings",
    "MemoryTextStore",
    "Observation",
    "OutcomeName",
    "RemoteTextStore",
    "Report",
    "RoundTripHarness",
    "Submission",
    "TestCase",
    "TransportError",
    "Verdict",
    "aggregate_verdicts",
    "build_catalogue",
    "classify",
    "score_mojibake",
]
