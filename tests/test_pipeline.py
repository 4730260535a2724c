"""
Tests for the RegenerationOrchestrator.
"""

import json
import pytest
from unittest.mock import MagicMock

from quibit.models.generation import (
    QualityDecision,
    QualityVerdict,
    RetryContext,
    RetryReason,
)
from quibit.models.snapshot import Snapshot
from quibit.pipeline import GenerationOutcome, GenerationState, RegenerationOrchestrator
from quibit.services.ai_service import AIService, ProviderError
from quibit.services.prompt_contract import EvolutionInput, build_project_idea_prompt
from quibit.services.provider_manager import AllProvidersFailedError, ProviderManager
from quibit.services.quality_gate import QualityGate
from quibit.services.similarity_service import SimilarityEngine
from quibit.utils.cancellation import CancellationToken, GenerationCancelledError
from quibit.utils.repository import DuplicateFingerprintError
from quibit.utils.sqlite3_client import SQLiteClient


class ScriptedProvider(AIService):
    """Returns or raises the scripted items in order, repeating the last one."""

    def __init__(self, name, script):
        self._name = name
        self.script = list(script)
        self.prompts = []

    @property
    def name(self):
        return self._name

    def generate(self, prompt):
        self.prompts.append(prompt)
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture(autouse=True)
def default_similarity_settings(monkeypatch):
    for name in ("SIMILARITY_ACCEPTABLE_MAX", "SIMILARITY_TOO_SIMILAR_MAX", "SIMILARITY_LOOKBACK_N"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def repository():
    client = SQLiteClient(":memory:")
    yield client
    client.close()


@pytest.fixture
def fallback():
    return ScriptedProvider("huggingface", [ProviderError("huggingface: HF_TOKEN is required", 401)])


def make_orchestrator(primary, fallback, repository, quality_gate=None):
    return RegenerationOrchestrator(
        provider_manager=ProviderManager(primary, fallback),
        repository=repository,
        quality_gate=quality_gate or QualityGate(),
    )


class TestRegenerationOrchestrator:
    def test_contract_retry_then_accept(self, idea_dict, idea_json, constraints, fallback, repository):
        idea_dict["project"]["complexity"] = "advanced"
        primary = ScriptedProvider("gemini", [json.dumps(idea_dict), idea_json])

        outcome = make_orchestrator(primary, fallback, repository).run(constraints)

        assert outcome.state == GenerationState.ACCEPTED
        assert outcome.accepted
        assert outcome.idea.project.complexity == "intermediate"
        assert outcome.attempts == 1
        assert outcome.result.provider_used == "gemini"
        assert len(primary.prompts) == 2
        assert primary.prompts[0] == primary.prompts[1] == build_project_idea_prompt(constraints)
        assert repository.get(outcome.project_id)["title"] == "Ledgerline Relay"

    def test_fallback_provenance_is_stored(self, idea_json, constraints, repository):
        primary = ScriptedProvider("gemini", [ProviderError("gemini: http 429 RESOURCE_EXHAUSTED", 429)])
        fallback = ScriptedProvider("huggingface", [idea_json])

        outcome = make_orchestrator(primary, fallback, repository).run(constraints)

        record = repository.get(outcome.project_id)
        assert record["provider_used"] == "huggingface"
        assert record["fallback_used"] is True
        assert "RESOURCE_EXHAUSTED" in record["provider_error"]

    def test_quality_failures_are_bounded(self, idea_json, constraints, fallback, repository):
        primary = ScriptedProvider("gemini", [idea_json])
        gate = MagicMock()
        gate.evaluate.return_value = QualityVerdict(
            decision=QualityDecision.REGENERATE, hard_fail=True, reasons=["too generic"]
        )

        outcome = make_orchestrator(primary, fallback, repository, gate).run(constraints)

        assert outcome.state == GenerationState.FAILED
        assert outcome.reasons == ["too generic"]
        assert outcome.attempts == 4
        assert len(primary.prompts) == 4
        assert repository.list_recent() == []

    def test_regenerate_verdicts_rotate_strategies(self, idea_json, constraints, fallback, repository):
        primary = ScriptedProvider("gemini", [idea_json])
        gate = MagicMock()
        gate.evaluate.return_value = QualityVerdict(decision=QualityDecision.REGENERATE, hard_fail=True)

        make_orchestrator(primary, fallback, repository, gate).run(constraints)

        assert "Regeneration:" not in primary.prompts[0]
        assert "- retry_reason: QUALITY_TOO_GENERIC\n" in primary.prompts[1]
        assert "- pivot_strategy: FEATURE_REPLACEMENT\n" in primary.prompts[1]
        assert "- pivot_strategy: CHANGE_TARGET_USER\n" in primary.prompts[2]
        assert "- pivot_strategy: CONTEXT_SHIFT\n" in primary.prompts[3]

    def test_refine_and_pivot_verdicts(self, idea_json, constraints, fallback, repository):
        primary = ScriptedProvider("gemini", [idea_json])
        gate = MagicMock()
        gate.evaluate.side_effect = [
            QualityVerdict(decision=QualityDecision.REFINE, reasons=["scope"]),
            QualityVerdict(decision=QualityDecision.PIVOT, reasons=["differentiation"]),
            QualityVerdict(decision=QualityDecision.ACCEPT),
        ]

        outcome = make_orchestrator(primary, fallback, repository, gate).run(constraints)

        assert outcome.accepted
        assert outcome.attempts == 3
        assert "- pivot_strategy: REFINE_DEPTH\n" in primary.prompts[1]
        assert "- pivot_strategy: CONTEXT_SHIFT\n" in primary.prompts[2]
        assert repository.get(outcome.project_id)["retry_reason"] == "QUALITY_TOO_GENERIC"

    def test_contract_failures_exhaust_budget(self, constraints, fallback, repository):
        primary = ScriptedProvider("gemini", ["Sure! Here is your idea."])

        outcome = make_orchestrator(primary, fallback, repository).run(constraints)

        assert outcome.state == GenerationState.FAILED
        assert len(primary.prompts) == 12
        assert "invalid JSON" in outcome.reasons[0]

    def test_duplicate_fingerprint_pivots(self, idea_json, constraints, fallback):
        primary = ScriptedProvider("gemini", [idea_json])
        repository = MagicMock()
        repository.list_recent_for_similarity.return_value = []
        repository.save.side_effect = [DuplicateFingerprintError("abc"), "7"]

        outcome = make_orchestrator(primary, fallback, repository).run(constraints)

        assert outcome.accepted
        assert outcome.project_id == "7"
        assert outcome.attempts == 2
        assert "- retry_reason: DUPLICATE_DNA\n" in primary.prompts[1]
        assert "- pivot_strategy: CONTEXT_SHIFT\n" in primary.prompts[1]
        candidate = repository.save.call_args[0][0]
        assert candidate.retry_reason == RetryReason.DUPLICATE_DNA

    def test_near_copy_is_blocked(self, idea_json, constraints, fallback, repository):
        primary = ScriptedProvider("gemini", [idea_json])
        orchestrator = make_orchestrator(primary, fallback, repository)
        first = orchestrator.run(constraints)

        outcome = orchestrator.run(constraints)

        assert outcome.state == GenerationState.BLOCKED
        assert outcome.matched_id == first.project_id
        assert outcome.score == 1.0
        assert outcome.attempts == 1
        assert len(primary.prompts) == 2
        assert len(repository.list_recent()) == 1

    def test_similarity_regenerate(self, idea_json, constraints, fallback, repository, monkeypatch):
        primary = ScriptedProvider("gemini", [idea_json])
        orchestrator = make_orchestrator(primary, fallback, repository)
        orchestrator.run(constraints)
        monkeypatch.setenv("SIMILARITY_TOO_SIMILAR_MAX", "1.5")

        outcome = orchestrator.run(constraints)

        assert outcome.state == GenerationState.FAILED
        assert len(primary.prompts) == 5
        assert "- retry_reason: SIMILARITY_TOO_HIGH\n" in primary.prompts[2]
        assert "- pivot_strategy: CHANGE_TARGET_USER\n" in primary.prompts[2]

    def test_reference_near_copy_pivots_instead_of_blocking(
        self, idea_json, valid_idea, constraints, fallback, repository
    ):
        primary = ScriptedProvider("gemini", [idea_json])
        reference = Snapshot.from_idea(valid_idea, constraints)

        outcome = make_orchestrator(primary, fallback, repository).run(
            constraints,
            retry=RetryContext.for_reason(RetryReason.USER_REJECTED),
            reference=reference,
        )

        assert outcome.state == GenerationState.FAILED
        assert outcome.reasons == ["similarity 1.00 to the previous idea"]
        assert len(primary.prompts) == 4
        assert "- retry_reason: USER_REJECTED\n" in primary.prompts[0]
        assert "- pivot_strategy: FEATURE_REPLACEMENT\n" in primary.prompts[0]
        assert "- retry_reason: SIMILARITY_TOO_HIGH\n" in primary.prompts[1]
        assert "- pivot_strategy: CHANGE_TARGET_USER\n" in primary.prompts[1]
        assert "- pivot_strategy: CONTEXT_SHIFT\n" in primary.prompts[2]
        assert "- pivot_strategy: FEATURE_REPLACEMENT\n" in primary.prompts[3]
        assert repository.list_recent() == []

    def test_distinct_idea_after_reference_near_copy_is_accepted(
        self, idea_json, valid_idea, constraints, fallback, repository
    ):
        primary = ScriptedProvider("gemini", [idea_json])
        scorer = MagicMock()
        # Near-copy of the reference first, then a distinct idea
        scorer.score.side_effect = [1.0, 0.1]
        orchestrator = RegenerationOrchestrator(
            provider_manager=ProviderManager(primary, fallback),
            repository=repository,
            similarity_engine=SimilarityEngine(scorer),
        )

        outcome = orchestrator.run(
            constraints,
            retry=RetryContext.for_reason(RetryReason.USER_REJECTED),
            reference=Snapshot.from_idea(valid_idea, constraints),
        )

        assert outcome.state == GenerationState.ACCEPTED
        assert outcome.attempts == 2
        assert "- retry_reason: SIMILARITY_TOO_HIGH\n" in primary.prompts[1]
        assert repository.get(outcome.project_id)["retry_reason"] == "SIMILARITY_TOO_HIGH"

    def test_unpersisted_outcome_is_saved_on_request(self, idea_json, constraints, fallback, repository):
        primary = ScriptedProvider("gemini", [idea_json])
        orchestrator = make_orchestrator(primary, fallback, repository)

        outcome = orchestrator.run(constraints, persist=False)

        assert outcome.accepted
        assert outcome.project_id is None
        assert repository.list_recent() == []

        project_id = orchestrator.persist(outcome)

        assert outcome.project_id == project_id
        assert repository.get(project_id)["title"] == "Ledgerline Relay"
        with pytest.raises(DuplicateFingerprintError):
            orchestrator.persist(outcome)

    def test_failed_outcome_cannot_be_persisted(self, repository, fallback):
        orchestrator = make_orchestrator(ScriptedProvider("gemini", ["{}"]), fallback, repository)

        with pytest.raises(ValueError):
            orchestrator.persist(GenerationOutcome(state=GenerationState.FAILED))

    def test_cancelled_before_start(self, idea_json, constraints, fallback, repository):
        primary = ScriptedProvider("gemini", [idea_json])
        token = CancellationToken()
        token.cancel()

        with pytest.raises(GenerationCancelledError):
            make_orchestrator(primary, fallback, repository).run(constraints, token)
        assert primary.prompts == []

    def test_all_providers_failing_raises(self, constraints, fallback, repository):
        primary = ScriptedProvider("gemini", [ProviderError("gemini: http 500", 500)])

        with pytest.raises(AllProvidersFailedError):
            make_orchestrator(primary, fallback, repository).run(constraints)
        assert len(primary.prompts) == 3

    def test_transport_failure_after_contract_failures_spends_one_attempt(
        self, idea_json, constraints, fallback, repository
    ):
        primary = ScriptedProvider("gemini", [
            "not json",
            "not json",
            ProviderError("gemini: http 500", 500),
            idea_json,
        ])

        outcome = make_orchestrator(primary, fallback, repository).run(constraints)

        assert outcome.accepted
        assert outcome.attempts == 2
        assert len(primary.prompts) == 4
        assert "- retry_reason: QUALITY_TOO_GENERIC\n" in primary.prompts[3]


class TestEvolve:
    def test_evolve(self, fallback, repository):
        payload = {
            "evolution_overview": "Add multi-region replay.",
            "product_rationale": "Customers in two regions.",
            "technical_rationale": "Logical replication keeps the log ordered.",
            "proposed_enhancements": ["Region-aware replay"],
            "risk_considerations": [],
        }
        primary = ScriptedProvider("gemini", ["not json", json.dumps(payload)])

        evolution, raw, result = make_orchestrator(primary, fallback, repository).evolve(
            EvolutionInput(project_overview="Ledgerline Relay", tech_stack=["Go"])
        )

        assert evolution.evolution_overview == "Add multi-region replay."
        assert json.loads(raw) == payload
        assert result.provider_used == "gemini"
        assert len(primary.prompts) == 2
