"""
Prompt construction and strict response decoding for project ideas.

The prompt embeds the user's constraints and the exact JSON schema. The
decoder accepts exactly one JSON object matching that schema, then enforces
field minimums and echo invariants (complexity, duration and tech stack must
reflect the input). Nothing is repaired except key spelling.
"""

import json
from dataclasses import dataclass, field
from typing import Any, List, Optional

from pydantic import ValidationError

from quibit.models.constraints import ProjectConstraints
from quibit.models.generation import PivotStrategy, RetryReason
from quibit.models.idea import ProjectEvolution, ProjectIdea
from quibit.utils.constants import TECH_DESCRIPTORS
from quibit.utils.text import normalize_token, tokenize


class ContractError(ValueError):
    """Base class for provider output that violates the prompt contract."""
    pass


class EmptyResponseError(ContractError):
    pass


class MalformedJSONError(ContractError):
    """Output is not a single JSON value (parse error or trailing content)."""
    pass


class SchemaViolationError(ContractError):
    """Missing, unknown or mistyped fields."""
    pass


class FieldConstraintError(ContractError):
    """A field is present but too short, or a list has too few items."""
    pass


class EchoInvariantError(FieldConstraintError):
    """Output does not reflect the input constraints."""
    pass


KNOWN_CONTRACT_KEYS = frozenset({
    # project idea
    "project", "name", "tagline", "description", "summary", "detailed_explanation",
    "problem_statement", "problem", "why_it_matters", "current_solutions_and_gaps",
    "target_users", "primary", "secondary", "use_cases",
    "value_proposition", "key_benefits", "why_this_project_is_interesting", "portfolio_value",
    "mvp", "goal", "must_have_features", "nice_to_have_features", "out_of_scope",
    "recommended_tech_stack", "backend", "frontend", "database", "infra", "justification",
    "complexity", "estimated_duration", "range", "assumptions",
    "future_extensions", "learning_outcomes",
    # project evolution
    "evolution_overview", "product_rationale", "technical_rationale",
    "proposed_enhancements", "risk_considerations",
})

PROJECT_IDEA_SCHEMA = """{
  "project": {
    "name": string,
    "tagline": string,
    "description": {
      "summary": string,
      "detailed_explanation": string
    },
    "problem_statement": {
      "problem": string,
      "why_it_matters": string,
      "current_solutions_and_gaps": string
    },
    "target_users": {
      "primary": string[],
      "secondary": string[],
      "use_cases": string[]
    },
    "value_proposition": {
      "key_benefits": string[],
      "why_this_project_is_interesting": string,
      "portfolio_value": string
    },
    "mvp": {
      "goal": string,
      "must_have_features": string[],
      "nice_to_have_features": string[],
      "out_of_scope": string[]
    },
    "recommended_tech_stack": {
      "backend": string,
      "frontend": string,
      "database": string,
      "infra": string,
      "justification": string
    },
    "complexity": "beginner" | "intermediate" | "advanced",
    "estimated_duration": {
      "range": string,
      "assumptions": string
    },
    "future_extensions": string[],
    "learning_outcomes": string[]
  }
}
"""

PROJECT_EVOLUTION_SCHEMA = """{
  "evolution_overview": string,
  "product_rationale": string,
  "technical_rationale": string,
  "proposed_enhancements": string[],
  "risk_considerations": string[]
}
"""

_JSON_ONLY_PREAMBLE = (
    "Return ONLY valid JSON. Do not include explanation, formatting, markdown, or extra text.\n"
    "You MUST return exactly one JSON object and nothing else.\n\n"
)

PIVOT_INSTRUCTIONS = {
    PivotStrategy.CHANGE_TARGET_USER:
        "- Change the target user segment and adjust the value proposition to fit the new audience.",
    PivotStrategy.FEATURE_REPLACEMENT:
        "- Replace 2-3 key MVP items with different capabilities and adjust the main workflow.",
    PivotStrategy.CONTEXT_SHIFT:
        "- Shift the domain context or problem framing while keeping the input constraints.",
    PivotStrategy.REFINE_DEPTH:
        "- Keep the core idea but deepen it: name an explicit non-trivial constraint (performance, privacy, "
        "reliability), state a concrete trade-off, describe the architecture, and trim the MVP to a realistic "
        "solo scope with specific nice-to-have and out-of-scope items.",
}

# Minimum stripped length per text field
TEXT_MINIMUMS = [
    ("name", lambda p: p.name, 5),
    ("tagline", lambda p: p.tagline, 8),
    ("description.summary", lambda p: p.description.summary, 40),
    ("description.detailed_explanation", lambda p: p.description.detailed_explanation, 120),
    ("problem_statement.problem", lambda p: p.problem_statement.problem, 40),
    ("problem_statement.why_it_matters", lambda p: p.problem_statement.why_it_matters, 40),
    ("problem_statement.current_solutions_and_gaps", lambda p: p.problem_statement.current_solutions_and_gaps, 40),
    ("value_proposition.why_this_project_is_interesting",
     lambda p: p.value_proposition.why_this_project_is_interesting, 40),
    ("value_proposition.portfolio_value", lambda p: p.value_proposition.portfolio_value, 40),
    ("mvp.goal", lambda p: p.mvp.goal, 30),
    ("recommended_tech_stack.backend", lambda p: p.recommended_tech_stack.backend, 2),
    ("recommended_tech_stack.frontend", lambda p: p.recommended_tech_stack.frontend, 2),
    ("recommended_tech_stack.database", lambda p: p.recommended_tech_stack.database, 2),
    ("recommended_tech_stack.infra", lambda p: p.recommended_tech_stack.infra, 2),
    ("recommended_tech_stack.justification", lambda p: p.recommended_tech_stack.justification, 60),
]

# Minimum count of non-blank items per list field
LIST_MINIMUMS = [
    ("target_users.primary", lambda p: p.target_users.primary, 1),
    ("target_users.use_cases", lambda p: p.target_users.use_cases, 1),
    ("value_proposition.key_benefits", lambda p: p.value_proposition.key_benefits, 2),
    ("mvp.must_have_features", lambda p: p.mvp.must_have_features, 3),
    ("mvp.nice_to_have_features", lambda p: p.mvp.nice_to_have_features, 1),
    ("mvp.out_of_scope", lambda p: p.mvp.out_of_scope, 1),
    ("future_extensions", lambda p: p.future_extensions, 2),
    ("learning_outcomes", lambda p: p.learning_outcomes, 3),
]


@dataclass(frozen=True)
class EvolutionInput:
    """Context of an existing project handed to the evolution prompt."""
    project_overview: str
    mvp_scope: List[str] = field(default_factory=list)
    tech_stack: List[str] = field(default_factory=list)
    complexity: str = ""
    estimated_duration: str = ""
    app_type: str = ""
    goal: str = ""


# ---------------------------------------------------------------------------
# Prompt building
# ---------------------------------------------------------------------------

def normalize_database_preferences(databases: List[str]) -> List[str]:
    """Lower-case and de-duplicate in order; "none" only survives on its own."""
    out = [d.strip().lower() for d in databases or [] if d and d.strip()]
    out = list(dict.fromkeys(out))
    if not out:
        return ["none"]
    if "none" in out and len(out) > 1:
        out = [d for d in out if d != "none"]
    return out


def database_preference_line(databases: List[str]) -> str:
    dbs = normalize_database_preferences(databases)
    if len(dbs) == 1:
        return f"- database_preference: {dbs[0]}\n"
    return f"- database_preference: {json.dumps(dbs)}\n"


def build_project_idea_prompt(constraints: ProjectConstraints) -> str:
    category = (constraints.project_category or "").strip()
    hint = (constraints.idea_description or "").strip()

    lines = [
        _JSON_ONLY_PREAMBLE,
        "User Input (use these as constraints):\n",
        f"- app_type: {constraints.app_type}\n",
    ]
    if category:
        lines.append(f"- project_kind: {category}\n")
    lines.append(database_preference_line(constraints.database_preferences))
    lines.append(f"- complexity: {constraints.complexity}\n")
    lines.append(f"- tech_stack: {json.dumps(list(constraints.tech_stack))}\n")
    lines.append(f"- goal: {constraints.goal}\n")
    lines.append(f"- estimated_duration: {constraints.timeframe}\n")
    if hint:
        lines.append(f"- idea_hint: {' '.join(hint.split())}\n")
    lines.append("\nRules:\n")
    if not category:
        lines.append("- If project_kind is not provided, you MUST infer a suitable software category "
                     "based on tech_stack and typical real-world use.\n")
    lines.extend([
        "- complexity must match input exactly (beginner|intermediate|advanced).\n",
        "- estimated_duration.range must match input exactly.\n",
        "- recommended_tech_stack must respect tech_stack constraints (no unrelated additions).\n",
        "- Provide concrete, professional, portfolio-ready content (no marketing fluff).\n",
        "- MVP must be truly minimal and focused.\n",
        "- Provide explicit product and technical reasoning.\n",
        "- Fill EVERY field in the schema.\n",
        "- Do NOT add, remove, or rename any fields.\n\n",
        "Schema (must include ALL fields):\n",
        PROJECT_IDEA_SCHEMA,
    ])
    return "".join(lines)


def pivot_instruction(strategy: Optional[PivotStrategy]) -> str:
    return PIVOT_INSTRUCTIONS.get(strategy, PIVOT_INSTRUCTIONS[PivotStrategy.FEATURE_REPLACEMENT])


def build_pivot_prompt(constraints: ProjectConstraints, reason: RetryReason, strategy: PivotStrategy) -> str:
    """The base prompt plus a regeneration block steering away from the rejected candidate."""
    return (
        build_project_idea_prompt(constraints)
        + "\nRegeneration:\n"
        + f"- retry_reason: {reason.value}\n"
        + f"- pivot_strategy: {strategy.value}\n\n"
        + "Pivot Strategy Instructions:\n"
        + pivot_instruction(strategy)
        + "\n\nRules:\n"
        + "- You MUST follow the pivot strategy.\n"
        + "- The new idea must be meaningfully different from the previous attempt.\n"
    )


def build_project_evolution_prompt(evolution: EvolutionInput) -> str:
    return (
        _JSON_ONLY_PREAMBLE
        + "Project Context (do not change core idea):\n"
        + f"- project_overview: {evolution.project_overview}\n"
        + f"- mvp_scope: {json.dumps(list(evolution.mvp_scope))}\n"
        + f"- tech_stack: {json.dumps(list(evolution.tech_stack))}\n"
        + f"- complexity: {evolution.complexity}\n"
        + f"- estimated_duration: {evolution.estimated_duration}\n"
        + f"- app_type: {evolution.app_type}\n"
        + f"- goal: {evolution.goal}\n\n"
        + "Rules:\n"
        + "- Do NOT change the core idea or reframe the product.\n"
        + "- Focus on next-step evolution and advanced development.\n"
        + "- Provide clear product rationale and technical rationale.\n"
        + "- Fill EVERY field in the schema.\n"
        + "- Do NOT add, remove, or rename any fields.\n\n"
        + "Schema (must include ALL fields):\n"
        + PROJECT_EVOLUTION_SCHEMA
    )


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def canonicalize_key(key: str) -> str:
    """
    Map a key spelling onto the known contract key it denotes.

    "Must-Have Features" -> "must_have_features". Returns "" when the
    canonical form is not a known key.
    """
    k = key.strip().lower()
    for ch in ("-", " ", "."):
        k = k.replace(ch, "_")
    while "__" in k:
        k = k.replace("__", "_")
    k = k.strip("_")
    return k if k in KNOWN_CONTRACT_KEYS else ""


def _canonicalize_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {(canonicalize_key(k) or k): _canonicalize_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_canonicalize_keys(v) for v in value]
    return value


def normalize_contract_json(raw: str) -> str:
    """
    Rewrite known-key spelling variants to their canonical names.

    Output that does not parse as a single JSON document is returned
    unchanged so the strict decoder reports the real problem. Unknown keys
    are kept, and rejected later by the schema.
    """
    raw = raw.strip()
    if not raw:
        return raw
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    return json.dumps(_canonicalize_keys(value), ensure_ascii=False)


def _decode_single_object(raw: str) -> str:
    raw = raw.strip()
    if not raw:
        raise EmptyResponseError("empty output")
    decoder = json.JSONDecoder()
    try:
        value, end = decoder.raw_decode(raw)
    except json.JSONDecodeError as e:
        raise MalformedJSONError(f"invalid JSON: {e}") from e
    if raw[end:].strip():
        raise MalformedJSONError("invalid JSON: trailing content")
    if not isinstance(value, dict):
        raise SchemaViolationError("invalid JSON: expected a single object")
    return raw[:end]


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(p) for p in first.get("loc", ()))
    return f"{location or 'root'}: {first.get('msg', 'invalid')}"


def _too_short(value: str, minimum: int) -> bool:
    return len(value.strip()) < minimum


def _count_non_empty(items: List[str]) -> int:
    return sum(1 for item in items if item.strip())


def required_tech_tokens(technology: str) -> List[str]:
    """Tokens of a requested technology that must appear in the recommended stack."""
    tokens = [t for t in tokenize(technology) if t not in TECH_DESCRIPTORS]
    if not tokens:
        fallback = normalize_token(technology)
        if fallback and fallback not in TECH_DESCRIPTORS:
            tokens = [fallback]
    return tokens


def matches_input_tech_stack(idea: ProjectIdea, technologies: List[str]) -> bool:
    # TODO: product review; plain substring test lets "go" match "mongodb" and "java" match "javascript"
    stack = idea.project.recommended_tech_stack
    haystack = normalize_token(" ".join([
        stack.backend, stack.frontend, stack.database, stack.infra, stack.justification,
    ]))
    for technology in technologies:
        if not technology.strip():
            continue
        required = required_tech_tokens(technology)
        if not required:
            return False
        if any(token not in haystack for token in required):
            return False
    return True


def validate_project_idea(idea: ProjectIdea, constraints: ProjectConstraints):
    """
    Enforce field minimums and echo invariants.

    Raises:
        FieldConstraintError: A field is too short or a list too small
        EchoInvariantError: Complexity, duration or tech stack do not echo the input
    """
    p = idea.project
    for name, getter, minimum in TEXT_MINIMUMS:
        if _too_short(getter(p), minimum):
            raise FieldConstraintError(f"{name} is too short (min {minimum} chars)")
    for name, getter, minimum in LIST_MINIMUMS:
        if _count_non_empty(getter(p)) < minimum:
            raise FieldConstraintError(f"{name} needs at least {minimum} item(s)")

    if p.complexity.strip() != constraints.complexity:
        raise EchoInvariantError(
            f"complexity must match input: expected {constraints.complexity!r}, got {p.complexity.strip()!r}"
        )
    if p.estimated_duration.range.strip() != constraints.timeframe.strip():
        raise EchoInvariantError(
            f"estimated_duration.range must match input: expected {constraints.timeframe.strip()!r}, "
            f"got {p.estimated_duration.range.strip()!r}"
        )
    if not matches_input_tech_stack(idea, constraints.tech_stack):
        raise EchoInvariantError("recommended_tech_stack must respect input tech_stack")


def decode_project_idea(raw: str, constraints: ProjectConstraints) -> ProjectIdea:
    """
    Strictly decode and validate a project idea.

    Args:
        raw: Provider output, already passed through normalize_contract_json
        constraints: The constraints the idea must echo

    Returns:
        The validated ProjectIdea

    Raises:
        ContractError: On any violation; there is no partial result
    """
    payload = _decode_single_object(raw)
    try:
        idea = ProjectIdea.model_validate_json(payload)
    except ValidationError as e:
        raise SchemaViolationError(f"invalid JSON: {_validation_message(e)}") from e
    validate_project_idea(idea, constraints)
    return idea


def decode_project_evolution(raw: str) -> ProjectEvolution:
    payload = _decode_single_object(raw)
    try:
        evolution = ProjectEvolution.model_validate_json(payload)
    except ValidationError as e:
        raise SchemaViolationError(f"invalid JSON: {_validation_message(e)}") from e

    for name in ("evolution_overview", "product_rationale", "technical_rationale"):
        if not getattr(evolution, name).strip():
            raise FieldConstraintError(f"{name} is required")
    if _count_non_empty(evolution.proposed_enhancements) == 0:
        raise FieldConstraintError("proposed_enhancements is required")
    return evolution


def decode_stored_idea(raw: str) -> ProjectIdea:
    """Decode an idea read back from storage; only the schema is checked."""
    try:
        return ProjectIdea.model_validate_json(_decode_single_object(raw))
    except ValidationError as e:
        raise SchemaViolationError(f"invalid JSON: {_validation_message(e)}") from e


def idea_to_json(idea: ProjectIdea) -> str:
    """Serialize a decoded idea back into contract JSON for storage."""
    return idea.model_dump_json()
