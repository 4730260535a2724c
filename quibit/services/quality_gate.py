"""
Heuristic quality gate for decoded project ideas.

Checks run in a fixed order and the first failure decides the verdict, so
structural problems (cliché, clone, CRUD shape, no depth) surface before
softer refinement issues.
"""

import re
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional

from quibit.models.generation import QualityDecision, QualityVerdict
from quibit.models.idea import ProjectIdea
from quibit.utils.config import config
from quibit.utils.logger import logger

DEFAULT_KEYWORDS: Dict[str, List[str]] = {
    "cliche": [
        "todo", "to-do", "habit tracker", "weather app", "url shortener", "shorten url",
        "blog platform", "e-commerce", "ecommerce", "shopping cart", "chat app",
        "expense tracker", "personal finance", "pomodoro", "notes app", "note-taking",
        "recipe app", "movie tracker",
    ],
    "extreme_twist": [
        "end-to-end encryption", "e2ee", "zero-knowledge",
        "differential privacy", "privacy budget",
        "crdt", "offline-first", "local-first", "conflict-free",
        "federated", "matrix protocol", "activitypub",
        "formal verification", "model checking",
        "deterministic replay", "tamper-evident", "append-only log",
        "real-time", "backpressure", "streaming",
    ],
    "clone": [
        " clone", "like trello", "like notion", "like spotify", "like netflix", "like uber",
    ],
    "crud_explicit": [
        "crud", "create read update delete", "create, read, update, delete",
    ],
    "crud_shape": [
        "add/edit/delete", "add, edit, delete",
        "manage users", "manage items", "admin panel", "admin dashboard",
        "login", "sign in", "sign-up", "register", "authentication",
        "dashboard", "profile page", "settings page",
    ],
    "technical_depth": [
        "event-driven", "queue", "job queue", "streaming", "pub/sub",
        "idempotency", "dedup", "outbox", "saga",
        "rate limit", "backpressure",
        "observability", "tracing", "opentelemetry", "slo",
        "multi-tenant", "rbac", "abac", "audit log",
        "encryption", "key management", "kms",
        "indexing", "inverted index", "search ranking",
        "caching", "cache invalidation",
        "consistency", "distributed", "replication",
        "crdt", "offline-first", "local-first",
        "vector", "embedding", "retrieval", "rag",
    ],
    "tradeoff": [
        "trade-off", "tradeoff", "vs.", " vs ",
        "latency vs", "cost vs", "consistency vs", "availability vs",
        "privacy vs", "accuracy vs", "throughput vs",
        "choose", "we choose", "we decided",
    ],
    "constraint": [
        "performance", "latency", "throughput", "p99",
        "privacy", "pii", "gdpr", "hipaa",
        "reliability", "resilience", "fault", "retry", "circuit breaker",
        "offline", "low bandwidth",
        "security", "threat model", "abuse", "rate limiting",
        "dx", "developer experience", "schema enforcement",
    ],
    "interview": [
        "architecture", "system design", "data model",
        "consistency", "availability", "idempotency",
        "queue", "caching", "observability", "slo",
    ],
    "differentiation": [
        "tamper-evident", "append-only log", "merkle",
        "deterministic replay",
        "threat model",
        "policy engine", "rego", "opa",
        "crdt", "local-first", "offline-first",
        "zero-knowledge", "zk", "end-to-end encryption", "e2ee",
        "differential privacy", "privacy budget",
        "backpressure", "outbox", "saga", "idempotency",
        "vector index", "inverted index",
    ],
    "big_rock": [
        "payments", "subscription", "billing",
        "marketplace",
        "recommendation", "ranking",
        "real-time chat", "messaging",
        "social feed",
        "multi-tenant",
        "admin dashboard", "admin panel",
        "ml training", "train model",
    ],
    "placeholder": [
        "etc", "more features", "improvements", "enhancements", "tbd",
    ],
}

_CLONE_RE = re.compile(
    r"\b(clone of|a clone of|like\s+(notion|trello|spotify|netflix|uber|airbnb|twitter|instagram))\b"
)

MAX_MUST_HAVE_FEATURES = 7
MAX_BIG_ROCKS = 2


def contains_any(text: str, needles: Iterable[str]) -> bool:
    return any(n and n.lower() in text for n in needles)


class Classifier(ABC):
    """Text classification capability used by the quality gate."""

    @abstractmethod
    def looks_cliche(self, text: str) -> bool:
        pass

    @abstractmethod
    def has_extreme_twist(self, text: str) -> bool:
        pass

    @abstractmethod
    def looks_like_clone(self, text: str) -> bool:
        pass

    @abstractmethod
    def looks_like_crud(self, text: str) -> bool:
        pass

    @abstractmethod
    def has_technical_depth(self, text: str) -> bool:
        pass

    @abstractmethod
    def has_constraint(self, text: str) -> bool:
        pass

    @abstractmethod
    def has_tradeoff(self, text: str) -> bool:
        pass

    @abstractmethod
    def has_interview_signals(self, text: str) -> bool:
        pass

    @abstractmethod
    def has_differentiation(self, text: str) -> bool:
        pass

    @abstractmethod
    def count_big_rocks(self, text: str) -> int:
        pass

    @abstractmethod
    def is_placeholder_scope(self, items: List[str]) -> bool:
        pass


class KeywordClassifier(Classifier):
    """Substring membership tests over lower-cased text."""

    def __init__(self, extra_keywords: Optional[Dict[str, List[str]]] = None):
        """
        Args:
            extra_keywords: Additional phrases per list name, appended to the defaults
        """
        self.keywords = {name: list(words) for name, words in DEFAULT_KEYWORDS.items()}
        for name, words in (extra_keywords or {}).items():
            if name not in self.keywords:
                logger.warning(f"Ignoring unknown quality keyword list: {name}")
                continue
            self.keywords[name].extend(w.lower() for w in words)

    def _has(self, name: str, text: str) -> bool:
        return contains_any(text, self.keywords[name])

    def looks_cliche(self, text):
        return self._has("cliche", text)

    def has_extreme_twist(self, text):
        return self._has("extreme_twist", text)

    def looks_like_clone(self, text):
        return self._has("clone", text) or bool(_CLONE_RE.search(text))

    def looks_like_crud(self, text):
        if self._has("crud_explicit", text):
            return True
        return self._has("crud_shape", text) and not self.has_technical_depth(text) and not self.has_constraint(text)

    def has_technical_depth(self, text):
        return self._has("technical_depth", text)

    def has_constraint(self, text):
        return self._has("constraint", text)

    def has_tradeoff(self, text):
        return self._has("tradeoff", text)

    def has_interview_signals(self, text):
        return self._has("interview", text)

    def has_differentiation(self, text):
        return self.has_extreme_twist(text) or self._has("differentiation", text)

    def count_big_rocks(self, text):
        return sum(1 for k in self.keywords["big_rock"] if k in text)

    def is_placeholder_scope(self, items):
        if not items:
            return True
        joined = " | ".join(items).lower()
        return len(items) <= 2 and self._has("placeholder", joined)


def _join_lower(parts: List[str]) -> str:
    return " | ".join(parts).strip().lower()


def idea_corpus(idea: ProjectIdea) -> str:
    """Every free-text and list field of the idea as one lower-cased string."""
    p = idea.project
    return _join_lower([
        p.name,
        p.tagline,
        p.description.summary,
        p.description.detailed_explanation,
        p.problem_statement.problem,
        p.problem_statement.why_it_matters,
        p.problem_statement.current_solutions_and_gaps,
        " ".join(p.value_proposition.key_benefits),
        p.value_proposition.why_this_project_is_interesting,
        p.value_proposition.portfolio_value,
        p.mvp.goal,
        " ".join(p.mvp.must_have_features),
        " ".join(p.mvp.nice_to_have_features),
        " ".join(p.mvp.out_of_scope),
        p.recommended_tech_stack.justification,
        " ".join(p.future_extensions),
        " ".join(p.learning_outcomes),
    ])


def pitch_corpus(idea: ProjectIdea) -> str:
    """The fields that sell the idea, where a differentiator must show up."""
    p = idea.project
    return _join_lower([
        p.value_proposition.why_this_project_is_interesting,
        p.value_proposition.portfolio_value,
        p.tagline,
        p.description.summary,
        p.recommended_tech_stack.justification,
    ])


class QualityGate:
    """Scores a decoded idea and returns the first failing check's verdict."""

    def __init__(self, classifier: Optional[Classifier] = None):
        self.classifier = classifier or KeywordClassifier(config.quality_keywords)

    def evaluate(self, idea: ProjectIdea) -> QualityVerdict:
        c = self.classifier
        text = idea_corpus(idea)
        twist = c.has_extreme_twist(text)
        depth_signals = c.has_technical_depth(text)

        if c.looks_cliche(text) and not twist:
            return _hard_fail("anti-generic FAIL: cliché category without an extreme technical twist")
        if c.looks_like_clone(text):
            return _hard_fail("anti-generic FAIL: clone framing (\"X clone\" / \"like X\")")
        if c.looks_like_crud(text) and not depth_signals and not c.has_constraint(text) and not twist:
            return _hard_fail("anti-generic FAIL: CRUD-y scope with no depth/constraints/twist")
        if not (depth_signals or twist):
            return _hard_fail("technical depth FAIL: no concrete engineering depth signals (reads like a thin app idea)")

        if not (c.has_differentiation(pitch_corpus(idea)) or (twist and depth_signals)):
            return QualityVerdict(
                decision=QualityDecision.PIVOT,
                reasons=["differentiation FAIL: no clear unique core differentiator"],
            )

        scope_reason = self._scope_problem(idea)
        if scope_reason:
            return QualityVerdict(decision=QualityDecision.REFINE, reasons=["scope/realism FAIL: " + scope_reason])

        if not c.has_interview_signals(text):
            return QualityVerdict(
                decision=QualityDecision.REFINE,
                reasons=["portfolio worthiness FAIL: not clearly interviewable (missing architecture/system-design cues)"],
            )

        missing = []
        if not (c.has_constraint(text) or twist):
            missing.append("non-trivial constraint")
        if not c.has_tradeoff(text):
            missing.append("explicit trade-off")
        if missing:
            return QualityVerdict(
                decision=QualityDecision.REFINE,
                reasons=["technical depth incomplete: missing " + " + ".join(missing)],
            )

        return QualityVerdict(decision=QualityDecision.ACCEPT)

    def _scope_problem(self, idea: ProjectIdea) -> str:
        mvp = idea.project.mvp
        if len(mvp.must_have_features) > MAX_MUST_HAVE_FEATURES:
            return f"MVP must-have list is too large (>{MAX_MUST_HAVE_FEATURES}) for a solo MVP"
        if self.classifier.count_big_rocks(_join_lower(mvp.must_have_features)) > MAX_BIG_ROCKS:
            return "too many big-scope features packed into MVP (payments/chat/recommendations/multi-tenant/etc.)"
        if self.classifier.is_placeholder_scope(mvp.nice_to_have_features) or \
                self.classifier.is_placeholder_scope(mvp.out_of_scope):
            return "scope lists are too vague (nice-to-have/out-of-scope read like placeholders)"
        return ""


def _hard_fail(reason: str) -> QualityVerdict:
    return QualityVerdict(decision=QualityDecision.REGENERATE, hard_fail=True, reasons=[reason])


def evaluate_idea_quality(idea: ProjectIdea, classifier: Optional[Classifier] = None) -> QualityVerdict:
    return QualityGate(classifier).evaluate(idea)
