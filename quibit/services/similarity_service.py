"""
Similarity scoring of a candidate snapshot against previously accepted ideas.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from quibit.models.generation import SimilarityDecision
from quibit.models.snapshot import ProjectDNA, Snapshot
from quibit.utils.constants import (
    DNA_WEIGHT_APP_TYPE,
    DNA_WEIGHT_ARCHITECTURAL_STYLE,
    DNA_WEIGHT_COMPLEXITY,
    DNA_WEIGHT_CORE_TECH_STACK,
    DNA_WEIGHT_PRIMARY_DOMAIN,
    SIMILARITY_ACCEPTABLE_MAX,
    SIMILARITY_LOOKBACK_N,
    SIMILARITY_TOO_SIMILAR_MAX,
)
from quibit.utils.logger import logger
from quibit.utils.text import clamp01, jaccard, normalize_scalar, token_set


@dataclass(frozen=True)
class SimilaritySettings:
    acceptable_max: float = SIMILARITY_ACCEPTABLE_MAX
    too_similar_max: float = SIMILARITY_TOO_SIMILAR_MAX
    lookback_n: int = SIMILARITY_LOOKBACK_N

    @classmethod
    def from_env(cls) -> "SimilaritySettings":
        """
        Read the SIMILARITY_* overrides once per session.

        Unparseable values keep their default, as does a lookback that is not
        positive. An inverted threshold pair keeps both default thresholds.
        """
        acceptable_max = _env_number("SIMILARITY_ACCEPTABLE_MAX", SIMILARITY_ACCEPTABLE_MAX, float)
        too_similar_max = _env_number("SIMILARITY_TOO_SIMILAR_MAX", SIMILARITY_TOO_SIMILAR_MAX, float)
        if acceptable_max > too_similar_max:
            logger.warning(
                f"Ignoring similarity thresholds: acceptable max {acceptable_max} is above "
                f"too-similar max {too_similar_max}"
            )
            acceptable_max, too_similar_max = SIMILARITY_ACCEPTABLE_MAX, SIMILARITY_TOO_SIMILAR_MAX

        lookback_n = _env_number("SIMILARITY_LOOKBACK_N", SIMILARITY_LOOKBACK_N, int)
        if lookback_n <= 0:
            logger.warning(f"Ignoring non-positive SIMILARITY_LOOKBACK_N={lookback_n}")
            lookback_n = SIMILARITY_LOOKBACK_N
        return cls(acceptable_max=acceptable_max, too_similar_max=too_similar_max, lookback_n=lookback_n)


def _env_number(name, default, cast):
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}")
        return default


def decide_similarity(score: float, settings: Optional[SimilaritySettings] = None) -> SimilarityDecision:
    settings = settings or SimilaritySettings()
    if score >= settings.too_similar_max:
        return SimilarityDecision.BLOCK
    if score >= settings.acceptable_max:
        return SimilarityDecision.REGENERATE
    return SimilarityDecision.OK


def snapshot_tokens(snapshot: Snapshot) -> set:
    return token_set(
        snapshot.overview,
        *snapshot.mvp_scope,
        *snapshot.tech_stack,
        snapshot.complexity,
        snapshot.estimated_duration,
        snapshot.app_type,
        snapshot.goal,
    )


def snapshot_jaccard(a: Snapshot, b: Snapshot) -> float:
    return jaccard(snapshot_tokens(a), snapshot_tokens(b))


def scalar_similarity(a: str, b: str) -> float:
    """1 for an exact normalized match, token Jaccard otherwise, 0 if either side is blank."""
    a = normalize_scalar(a)
    b = normalize_scalar(b)
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    return jaccard(token_set(a), token_set(b))


@dataclass(frozen=True)
class DNABreakdown:
    app_type: float
    primary_domain: float
    core_tech_stack: float
    architectural_style: float
    complexity_level: float
    total: float


def score_dna(a: ProjectDNA, b: ProjectDNA) -> DNABreakdown:
    ca = a.canonical()
    cb = b.canonical()

    app_type = scalar_similarity(ca.app_type, cb.app_type)
    domain = scalar_similarity(ca.primary_domain, cb.primary_domain)
    tech = jaccard(ca.core_tech_stack, cb.core_tech_stack)
    arch = scalar_similarity(ca.architectural_style, cb.architectural_style)
    complexity = 1.0 if ca.complexity_level and ca.complexity_level == cb.complexity_level else 0.0

    total = (
        app_type * DNA_WEIGHT_APP_TYPE
        + domain * DNA_WEIGHT_PRIMARY_DOMAIN
        + tech * DNA_WEIGHT_CORE_TECH_STACK
        + arch * DNA_WEIGHT_ARCHITECTURAL_STYLE
        + complexity * DNA_WEIGHT_COMPLEXITY
    )
    return DNABreakdown(
        app_type=clamp01(app_type),
        primary_domain=clamp01(domain),
        core_tech_stack=clamp01(tech),
        architectural_style=clamp01(arch),
        complexity_level=complexity,
        total=clamp01(total),
    )


class SimilarityScorer(ABC):
    @abstractmethod
    def score(self, candidate: Snapshot, prior: Snapshot) -> float:
        pass


class TokenJaccardScorer(SimilarityScorer):
    """Bag-of-tokens Jaccard over the flattened snapshot."""

    def score(self, candidate, prior):
        return snapshot_jaccard(candidate, prior)


class WeightedDNAScorer(SimilarityScorer):
    """Weighted comparison of the five DNA dimensions."""

    def score(self, candidate, prior):
        return score_dna(candidate.to_dna(), prior.to_dna()).total

    def breakdown(self, candidate: Snapshot, prior: Snapshot) -> DNABreakdown:
        return score_dna(candidate.to_dna(), prior.to_dna())


def create_scorer(strategy: str) -> SimilarityScorer:
    if strategy == "jaccard":
        return TokenJaccardScorer()
    if strategy == "dna":
        return WeightedDNAScorer()
    raise ValueError(f"Unsupported similarity strategy: {strategy}")


class SimilarityEngine:
    """Finds the closest prior idea and turns its score into a decision."""

    def __init__(self, scorer: Optional[SimilarityScorer] = None):
        self.scorer = scorer or TokenJaccardScorer()

    def best_match(self, candidate: Snapshot, corpus: Iterable[Snapshot]) -> Tuple[float, Optional[Snapshot]]:
        best_score = 0.0
        best = None
        for prior in corpus:
            score = self.scorer.score(candidate, prior)
            logger.debug(f"Similarity against {getattr(prior, 'id', 'reference')}: {score:.3f}")
            if best is None or score > best_score:
                best_score = score
                best = prior
        return best_score, best

    def check(
        self,
        candidate: Snapshot,
        corpus: Iterable[Snapshot],
        settings: SimilaritySettings,
    ) -> Tuple[SimilarityDecision, float, Optional[Snapshot]]:
        score, match = self.best_match(candidate, corpus)
        return decide_similarity(score, settings), score, match
