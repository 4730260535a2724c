"""
Value types passed between the generation components.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional


@dataclass(frozen=True)
class GenerationResult:
    """Raw provider output plus provenance. Never altered after creation."""
    text: str
    provider_used: str
    fallback_used: bool = False
    provider_error: Optional[str] = None
    latency_ms: int = 0


class QualityDecision(str, Enum):
    ACCEPT = "ACCEPT"
    REFINE = "REFINE"
    PIVOT = "PIVOT"
    REGENERATE = "REGENERATE"


@dataclass(frozen=True)
class QualityVerdict:
    decision: QualityDecision
    hard_fail: bool = False
    reasons: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.hard_fail and self.decision == QualityDecision.ACCEPT

    def summary(self) -> str:
        if not self.reasons:
            return "ok" if self.ok else f"decision={self.decision.value}"
        return f"decision={self.decision.value}; " + "; ".join(self.reasons)


class SimilarityDecision(str, Enum):
    OK = "OK"
    REGENERATE = "REGENERATE"
    BLOCK = "BLOCK"


class RetryReason(str, Enum):
    SIMILARITY_TOO_HIGH = "SIMILARITY_TOO_HIGH"
    DUPLICATE_DNA = "DUPLICATE_DNA"
    USER_REJECTED = "USER_REJECTED"
    QUALITY_TOO_GENERIC = "QUALITY_TOO_GENERIC"


class PivotStrategy(str, Enum):
    CHANGE_TARGET_USER = "CHANGE_TARGET_USER"
    FEATURE_REPLACEMENT = "FEATURE_REPLACEMENT"
    CONTEXT_SHIFT = "CONTEXT_SHIFT"
    REFINE_DEPTH = "REFINE_DEPTH"


_DEFAULT_STRATEGY = {
    RetryReason.SIMILARITY_TOO_HIGH: PivotStrategy.CHANGE_TARGET_USER,
    RetryReason.DUPLICATE_DNA: PivotStrategy.CONTEXT_SHIFT,
    RetryReason.USER_REJECTED: PivotStrategy.FEATURE_REPLACEMENT,
    RetryReason.QUALITY_TOO_GENERIC: PivotStrategy.REFINE_DEPTH,
}

_ROTATION = [
    PivotStrategy.FEATURE_REPLACEMENT,
    PivotStrategy.CHANGE_TARGET_USER,
    PivotStrategy.CONTEXT_SHIFT,
]


def default_strategy_for(reason: RetryReason) -> PivotStrategy:
    return _DEFAULT_STRATEGY.get(reason, PivotStrategy.FEATURE_REPLACEMENT)


def rotate_strategy(attempt: int) -> PivotStrategy:
    """Deterministic rotation used when a candidate must be regenerated outright."""
    return _ROTATION[attempt % len(_ROTATION)]


def strategy_for_verdict(verdict: QualityVerdict, attempt: int) -> PivotStrategy:
    if verdict.decision == QualityDecision.REFINE:
        return PivotStrategy.REFINE_DEPTH
    if verdict.decision == QualityDecision.PIVOT:
        return PivotStrategy.CONTEXT_SHIFT
    return rotate_strategy(attempt)


@dataclass(frozen=True)
class RetryContext:
    """Why the next prompt is a pivot prompt, and which pivot to apply."""
    reason: Optional[RetryReason] = None
    strategy: Optional[PivotStrategy] = None
    attempt: int = 0

    @property
    def is_pivot(self) -> bool:
        return self.reason is not None

    @classmethod
    def for_reason(cls, reason: RetryReason, attempt: int = 0) -> "RetryContext":
        return cls(reason=reason, strategy=default_strategy_for(reason), attempt=attempt)

    def advance(self, reason: RetryReason, strategy: PivotStrategy) -> "RetryContext":
        return replace(self, reason=reason, strategy=strategy, attempt=self.attempt + 1)
