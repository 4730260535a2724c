"""
Tests for the SQLite repository.
"""

import pytest

from quibit.models.generation import RetryReason
from quibit.models.snapshot import IdeaCandidate, Snapshot
from quibit.services.prompt_contract import idea_to_json
from quibit.utils.fingerprint import hash_snapshot
from quibit.utils.repository import DuplicateFingerprintError, Provenance
from quibit.utils.sqlite3_client import SQLiteClient


@pytest.fixture
def repository():
    client = SQLiteClient(":memory:")
    yield client
    client.close()


@pytest.fixture
def candidate(valid_idea, constraints):
    return IdeaCandidate(
        idea=valid_idea,
        raw_json=idea_to_json(valid_idea),
        snapshot=Snapshot.from_idea(valid_idea, constraints),
        similarity_score=0.12,
        retry_reason=RetryReason.USER_REJECTED,
    )


@pytest.fixture
def provenance():
    return Provenance(provider_used="huggingface", fallback_used=True, provider_error="http 429", latency_ms=812)


class TestSQLiteClient:
    def test_save_and_get(self, repository, candidate, provenance):
        project_id = repository.save(candidate, hash_snapshot(candidate.snapshot), provenance)

        record = repository.get(project_id)

        assert record["title"] == "Ledgerline Relay"
        assert record["tech_stack"] == candidate.snapshot.tech_stack
        assert record["mvp_scope"] == candidate.snapshot.mvp_scope
        assert record["provider_used"] == "huggingface"
        assert record["fallback_used"] is True
        assert record["provider_error"] == "http 429"
        assert record["latency_ms"] == 812
        assert record["retry_reason"] == "USER_REJECTED"
        assert record["similarity_score"] == 0.12
        assert record["raw_json"] == candidate.raw_json

    def test_get_missing(self, repository):
        assert repository.get("42") is None

    def test_duplicate_fingerprint(self, repository, candidate, provenance):
        fingerprint = hash_snapshot(candidate.snapshot)
        repository.save(candidate, fingerprint, provenance)

        with pytest.raises(DuplicateFingerprintError) as exc_info:
            repository.save(candidate, fingerprint, provenance)

        assert exc_info.value.fingerprint == fingerprint
        assert len(repository.list_recent()) == 1

    def test_list_recent_for_similarity_newest_first(self, repository, candidate, provenance):
        first = repository.save(candidate, "hash-1", provenance)
        second = repository.save(candidate, "hash-2", provenance)
        third = repository.save(candidate, "hash-3", provenance)

        priors = repository.list_recent_for_similarity(2)

        assert [p.id for p in priors] == [third, second]
        assert first not in [p.id for p in priors]
        assert priors[0].overview == candidate.snapshot.overview
        assert priors[0].primary_domain == candidate.snapshot.primary_domain

    def test_context_manager_closes(self, candidate, provenance):
        with SQLiteClient(":memory:") as repository:
            repository.save(candidate, "hash-1", provenance)
            assert len(repository.list_recent(5)) == 1

    def test_evolutions_are_listed_oldest_first(self, repository, candidate, provenance):
        project_id = repository.save(candidate, "hash-1", provenance)
        other_id = repository.save(candidate, "hash-2", provenance)

        first = repository.save_evolution(project_id, '{"evolution_overview": "one"}', provenance)
        repository.save_evolution(other_id, '{"evolution_overview": "other"}', Provenance(provider_used="gemini"))
        second = repository.save_evolution(project_id, '{"evolution_overview": "two"}', Provenance(provider_used="gemini"))

        evolutions = repository.list_evolutions(project_id)

        assert [e["id"] for e in evolutions] == [int(first), int(second)]
        assert evolutions[0]["raw_json"] == '{"evolution_overview": "one"}'
        assert evolutions[0]["provider_used"] == "huggingface"
        assert evolutions[0]["fallback_used"] is True
        assert evolutions[0]["provider_error"] == "http 429"
        assert evolutions[0]["latency_ms"] == 812
        assert evolutions[1]["fallback_used"] is False

    def test_no_evolutions(self, repository, candidate, provenance):
        project_id = repository.save(candidate, "hash-1", provenance)

        assert repository.list_evolutions(project_id) == []
