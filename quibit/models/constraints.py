"""
User-supplied constraints for a generation session.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional

from quibit.utils.constants import COMPLEXITY_LEVELS


class ProjectConstraints(BaseModel):
    """Constraints embedded in every prompt. Immutable for the life of an attempt."""

    model_config = ConfigDict(frozen=True)

    app_type: str = Field(..., description="Kind of application, e.g. backend-api or cli-tool")
    project_category: Optional[str] = Field(None, description="Optional software category; inferred when missing")
    complexity: str = Field(..., description="beginner, intermediate or advanced")
    tech_stack: List[str] = Field(default_factory=list, description="Technologies the idea must use")
    database_preferences: List[str] = Field(default_factory=list, description="Preferred databases, or none")
    goal: str = Field(..., description="Why the user wants to build the project")
    timeframe: str = Field(..., description="Expected duration, echoed verbatim by the generated idea")
    idea_description: Optional[str] = Field(None, description="Free-text hint for the idea")

    @field_validator("complexity")
    @classmethod
    def _check_complexity(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in COMPLEXITY_LEVELS:
            raise ValueError(f"complexity must be one of {', '.join(COMPLEXITY_LEVELS)}")
        return value

    @field_validator("app_type", "goal", "timeframe")
    @classmethod
    def _check_required_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    def with_higher_complexity(self) -> "ProjectConstraints":
        idx = COMPLEXITY_LEVELS.index(self.complexity)
        return self.model_copy(update={"complexity": COMPLEXITY_LEVELS[min(idx + 1, len(COMPLEXITY_LEVELS) - 1)]})

    def with_lower_complexity(self) -> "ProjectConstraints":
        idx = COMPLEXITY_LEVELS.index(self.complexity)
        return self.model_copy(update={"complexity": COMPLEXITY_LEVELS[max(idx - 1, 0)]})
