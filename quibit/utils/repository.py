"""
Persistence capability shared by the SQLite and MongoDB backends.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from quibit.models.generation import GenerationResult
from quibit.models.snapshot import IdeaCandidate, PriorSnapshot


class DuplicateFingerprintError(Exception):
    """Raised when a save hits the unique constraint on the DNA hash."""

    def __init__(self, fingerprint: str):
        self.fingerprint = fingerprint
        super().__init__(f"duplicate project DNA: {fingerprint}")


@dataclass(frozen=True)
class Provenance:
    """Where an accepted idea came from."""
    provider_used: str
    fallback_used: bool = False
    provider_error: Optional[str] = None
    latency_ms: int = 0

    @classmethod
    def from_result(cls, result: GenerationResult) -> "Provenance":
        return cls(
            provider_used=result.provider_used,
            fallback_used=result.fallback_used,
            provider_error=result.provider_error,
            latency_ms=result.latency_ms,
        )


def build_record(candidate: IdeaCandidate, fingerprint: str, provenance: Provenance) -> Dict[str, Any]:
    """Flatten a candidate into the fields every backend stores."""
    project = candidate.idea.project
    snapshot = candidate.snapshot
    return {
        "dna_hash": fingerprint,
        "title": project.name,
        "summary": project.description.summary,
        "overview": snapshot.overview,
        "mvp_scope": list(snapshot.mvp_scope),
        "tech_stack": list(snapshot.tech_stack),
        "complexity": snapshot.complexity,
        "estimated_duration": snapshot.estimated_duration,
        "app_type": snapshot.app_type,
        "goal": snapshot.goal,
        "primary_domain": snapshot.primary_domain,
        "architectural_style": snapshot.architectural_style,
        "raw_json": candidate.raw_json,
        "provider_used": provenance.provider_used,
        "fallback_used": provenance.fallback_used,
        "provider_error": provenance.provider_error,
        "latency_ms": provenance.latency_ms,
        "retry_reason": candidate.retry_reason.value if candidate.retry_reason else None,
        "similarity_score": candidate.similarity_score,
        "created_at": datetime.now(timezone.utc),
    }


def build_evolution_record(project_id: str, raw_json: str, provenance: Provenance) -> Dict[str, Any]:
    return {
        "project_id": project_id,
        "raw_json": raw_json,
        "provider_used": provenance.provider_used,
        "fallback_used": provenance.fallback_used,
        "provider_error": provenance.provider_error,
        "latency_ms": provenance.latency_ms,
        "created_at": datetime.now(timezone.utc),
    }


def record_to_prior(record: Dict[str, Any]) -> PriorSnapshot:
    return PriorSnapshot(
        id=str(record["id"]),
        overview=record.get("overview") or "",
        mvp_scope=record.get("mvp_scope") or [],
        tech_stack=record.get("tech_stack") or [],
        complexity=record.get("complexity") or "",
        estimated_duration=record.get("estimated_duration") or "",
        app_type=record.get("app_type") or "",
        goal=record.get("goal") or "",
        primary_domain=record.get("primary_domain") or "",
        architectural_style=record.get("architectural_style") or "",
    )


class IdeaRepository(ABC):
    """Store of accepted ideas and their evolutions."""

    @abstractmethod
    def list_recent_for_similarity(self, limit: int) -> List[PriorSnapshot]:
        """Most recent ideas first, at most `limit` of them."""
        pass

    @abstractmethod
    def save(self, candidate: IdeaCandidate, fingerprint: str, provenance: Provenance) -> str:
        """
        Persist an accepted idea and return its id.

        Raises:
            DuplicateFingerprintError: If an idea with the same fingerprint is already stored
        """
        pass

    @abstractmethod
    def get(self, idea_id: str) -> Optional[Dict[str, Any]]:
        pass

    @abstractmethod
    def list_recent(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Stored records, newest first, for display."""
        pass

    @abstractmethod
    def save_evolution(self, project_id: str, raw_json: str, provenance: Provenance) -> str:
        """Persist an accepted evolution of a stored project and return its id."""
        pass

    @abstractmethod
    def list_evolutions(self, project_id: str) -> List[Dict[str, Any]]:
        """Evolutions saved for a project, oldest first."""
        pass

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
