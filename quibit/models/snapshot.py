"""
Flattened views of an idea used for similarity scoring and duplicate detection.
"""

from dataclasses import dataclass
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

from quibit.models.constraints import ProjectConstraints
from quibit.models.generation import RetryReason
from quibit.models.idea import ProjectIdea
from quibit.utils.text import normalize_list, normalize_scalar


class ProjectDNA(BaseModel):
    """The five dimensions compared by the weighted DNA scorer."""

    model_config = ConfigDict(frozen=True)

    app_type: str = ""
    primary_domain: str = ""
    core_tech_stack: List[str] = Field(default_factory=list)
    architectural_style: str = ""
    complexity_level: str = ""

    def canonical(self) -> "ProjectDNA":
        return ProjectDNA(
            app_type=normalize_scalar(self.app_type),
            primary_domain=normalize_scalar(self.primary_domain),
            core_tech_stack=normalize_list(self.core_tech_stack),
            architectural_style=normalize_scalar(self.architectural_style),
            complexity_level=normalize_scalar(self.complexity_level),
        )

    def fingerprint_string(self) -> str:
        c = self.canonical()
        return "|".join([
            "app_type=" + c.app_type,
            "primary_domain=" + c.primary_domain,
            "core_tech_stack=" + ",".join(c.core_tech_stack),
            "architectural_style=" + c.architectural_style,
            "complexity_level=" + c.complexity_level,
        ])


class Snapshot(BaseModel):
    """Model representing an idea flattened for comparison against prior ideas."""

    model_config = ConfigDict(frozen=True)

    overview: str = ""
    mvp_scope: List[str] = Field(default_factory=list)
    tech_stack: List[str] = Field(default_factory=list)
    complexity: str = ""
    estimated_duration: str = ""
    app_type: str = ""
    goal: str = ""
    primary_domain: str = ""
    architectural_style: str = ""

    @classmethod
    def from_idea(cls, idea: ProjectIdea, constraints: ProjectConstraints) -> "Snapshot":
        p = idea.project
        return cls(
            overview=p.overview(),
            mvp_scope=list(p.mvp.must_have_features),
            tech_stack=p.recommended_tech_stack.components(),
            complexity=p.complexity,
            estimated_duration=p.estimated_duration.range,
            app_type=constraints.app_type,
            goal=constraints.goal,
            primary_domain=constraints.project_category or p.tagline,
            architectural_style=p.recommended_tech_stack.infra,
        )

    def canonical(self) -> "Snapshot":
        """Lower-cased, whitespace-collapsed, list items de-duplicated and sorted."""
        return self.model_copy(update={
            "overview": normalize_scalar(self.overview),
            "mvp_scope": normalize_list(self.mvp_scope),
            "tech_stack": normalize_list(self.tech_stack),
            "complexity": normalize_scalar(self.complexity),
            "estimated_duration": normalize_scalar(self.estimated_duration),
            "app_type": normalize_scalar(self.app_type),
            "goal": normalize_scalar(self.goal),
            "primary_domain": normalize_scalar(self.primary_domain),
            "architectural_style": normalize_scalar(self.architectural_style),
        })

    def fingerprint_string(self) -> str:
        """Canonical content the DNA hash is computed over."""
        c = self.canonical()
        return "|".join([
            c.overview,
            ",".join(c.mvp_scope),
            ",".join(c.tech_stack),
            c.complexity,
            c.estimated_duration,
        ])

    def to_dna(self) -> ProjectDNA:
        return ProjectDNA(
            app_type=self.app_type,
            primary_domain=self.primary_domain,
            core_tech_stack=self.tech_stack,
            architectural_style=self.architectural_style,
            complexity_level=self.complexity,
        )


class PriorSnapshot(Snapshot):
    """A snapshot loaded from the repository, with the stored idea's id."""

    id: str


@dataclass(frozen=True)
class IdeaCandidate:
    """An idea that passed every gate and is ready to be persisted."""
    idea: ProjectIdea
    raw_json: str
    snapshot: Snapshot
    similarity_score: float = 0.0
    retry_reason: Optional[RetryReason] = None
