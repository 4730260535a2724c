"""
Data models for generated project ideas and evolutions.

All models forbid unknown fields and use strict typing, so a provider
response that adds, drops or retypes a field fails to decode as a whole.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import List


class ContractModel(BaseModel):
    """Base model for everything decoded from provider output."""

    model_config = ConfigDict(extra="forbid", strict=True, frozen=True)


class ProjectDescription(ContractModel):
    summary: str
    detailed_explanation: str


class ProblemStatement(ContractModel):
    problem: str
    why_it_matters: str
    current_solutions_and_gaps: str


class TargetUsers(ContractModel):
    primary: List[str]
    secondary: List[str]
    use_cases: List[str]


class ValueProposition(ContractModel):
    key_benefits: List[str]
    why_this_project_is_interesting: str
    portfolio_value: str


class MVP(ContractModel):
    goal: str
    must_have_features: List[str]
    nice_to_have_features: List[str]
    out_of_scope: List[str]


class TechStack(ContractModel):
    backend: str
    frontend: str
    database: str
    infra: str
    justification: str

    def components(self) -> List[str]:
        """Non-empty stack fields, without the justification."""
        return [v.strip() for v in (self.backend, self.frontend, self.database, self.infra) if v.strip()]


class Duration(ContractModel):
    range: str
    assumptions: str


class Project(ContractModel):
    name: str
    tagline: str
    description: ProjectDescription
    problem_statement: ProblemStatement
    target_users: TargetUsers
    value_proposition: ValueProposition
    mvp: MVP
    recommended_tech_stack: TechStack
    complexity: str
    estimated_duration: Duration
    future_extensions: List[str]
    learning_outcomes: List[str]

    def overview(self) -> str:
        """Name, tagline and summary joined into one line."""
        parts = [p.strip() for p in (self.name, self.tagline, self.description.summary) if p.strip()]
        return " — ".join(parts)


class ProjectIdea(ContractModel):
    """Model representing a decoded generation: a single top-level "project" object."""

    project: Project


class ProjectEvolution(ContractModel):
    """Model representing the next development phase proposed for an existing project."""

    evolution_overview: str
    product_rationale: str
    technical_rationale: str
    proposed_enhancements: List[str]
    risk_considerations: List[str] = Field(default_factory=list)
