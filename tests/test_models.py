"""
Tests for constraint and retry models.
"""

import pytest
from pydantic import ValidationError

from quibit.models.constraints import ProjectConstraints
from quibit.models.generation import (
    PivotStrategy,
    QualityDecision,
    QualityVerdict,
    RetryContext,
    RetryReason,
    default_strategy_for,
    rotate_strategy,
    strategy_for_verdict,
)


class TestProjectConstraints:
    def test_complexity_is_normalized(self):
        constraints = ProjectConstraints(app_type="cli", complexity=" Beginner ", goal="learn", timeframe="1 week")

        assert constraints.complexity == "beginner"
        assert constraints.tech_stack == []

    def test_invalid_complexity(self):
        with pytest.raises(ValidationError):
            ProjectConstraints(app_type="cli", complexity="expert", goal="learn", timeframe="1 week")

    def test_blank_goal(self):
        with pytest.raises(ValidationError):
            ProjectConstraints(app_type="cli", complexity="beginner", goal="  ", timeframe="1 week")

    def test_complexity_helpers_saturate(self, constraints):
        assert constraints.with_higher_complexity().complexity == "advanced"
        assert constraints.with_higher_complexity().with_higher_complexity().complexity == "advanced"
        assert constraints.with_lower_complexity().complexity == "beginner"
        assert constraints.with_lower_complexity().with_lower_complexity().complexity == "beginner"
        assert constraints.complexity == "intermediate"


class TestRetryStrategies:
    @pytest.mark.parametrize("reason, strategy", [
        (RetryReason.SIMILARITY_TOO_HIGH, PivotStrategy.CHANGE_TARGET_USER),
        (RetryReason.DUPLICATE_DNA, PivotStrategy.CONTEXT_SHIFT),
        (RetryReason.USER_REJECTED, PivotStrategy.FEATURE_REPLACEMENT),
        (RetryReason.QUALITY_TOO_GENERIC, PivotStrategy.REFINE_DEPTH),
    ])
    def test_default_strategy(self, reason, strategy):
        assert default_strategy_for(reason) == strategy

    def test_rotation(self):
        assert [rotate_strategy(i) for i in range(4)] == [
            PivotStrategy.FEATURE_REPLACEMENT,
            PivotStrategy.CHANGE_TARGET_USER,
            PivotStrategy.CONTEXT_SHIFT,
            PivotStrategy.FEATURE_REPLACEMENT,
        ]

    def test_strategy_for_verdict(self):
        assert strategy_for_verdict(QualityVerdict(QualityDecision.REFINE), 5) == PivotStrategy.REFINE_DEPTH
        assert strategy_for_verdict(QualityVerdict(QualityDecision.PIVOT), 5) == PivotStrategy.CONTEXT_SHIFT
        assert strategy_for_verdict(QualityVerdict(QualityDecision.REGENERATE, True), 1) == \
            PivotStrategy.CHANGE_TARGET_USER

    def test_retry_context(self):
        context = RetryContext()
        assert not context.is_pivot

        advanced = context.advance(RetryReason.DUPLICATE_DNA, PivotStrategy.CONTEXT_SHIFT)

        assert advanced.is_pivot
        assert advanced.attempt == 1
        assert RetryContext.for_reason(RetryReason.USER_REJECTED).strategy == PivotStrategy.FEATURE_REPLACEMENT
