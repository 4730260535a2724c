"""
Regeneration pipeline: generate, validate, gate, compare and persist one idea.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple, TypeVar

from quibit.models.constraints import ProjectConstraints
from quibit.models.generation import (
    GenerationResult,
    PivotStrategy,
    RetryContext,
    RetryReason,
    SimilarityDecision,
    rotate_strategy,
    strategy_for_verdict,
)
from quibit.models.idea import ProjectEvolution, ProjectIdea
from quibit.models.snapshot import IdeaCandidate, Snapshot
from quibit.services.prompt_contract import (
    ContractError,
    EvolutionInput,
    build_pivot_prompt,
    build_project_evolution_prompt,
    build_project_idea_prompt,
    decode_project_evolution,
    decode_project_idea,
    normalize_contract_json,
)
from quibit.services.provider_manager import AllProvidersFailedError, ProviderManager
from quibit.services.quality_gate import QualityGate
from quibit.services.similarity_service import SimilarityEngine, SimilaritySettings
from quibit.utils.cancellation import CancellationToken
from quibit.utils.constants import MAX_CONTRACT_ATTEMPTS, MAX_QUALITY_ATTEMPTS
from quibit.utils.fingerprint import hash_snapshot
from quibit.utils.logger import logger
from quibit.utils.repository import DuplicateFingerprintError, IdeaRepository, Provenance

T = TypeVar("T")


class GenerationState(str, Enum):
    GENERATING = "GENERATING"
    VALIDATING = "VALIDATING"
    QUALITY_CHECKING = "QUALITY_CHECKING"
    SIMILARITY_CHECKING = "SIMILARITY_CHECKING"
    ACCEPTED = "ACCEPTED"
    PIVOTING = "PIVOTING"
    BLOCKED = "BLOCKED"
    FAILED = "FAILED"


@dataclass
class GenerationOutcome:
    """Terminal result of a generation session."""
    state: GenerationState
    idea: Optional[ProjectIdea] = None
    project_id: Optional[str] = None
    result: Optional[GenerationResult] = None
    score: float = 0.0
    matched_id: Optional[str] = None
    reasons: List[str] = field(default_factory=list)
    attempts: int = 0
    candidate: Optional[IdeaCandidate] = None
    fingerprint: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.state == GenerationState.ACCEPTED


class RegenerationOrchestrator:
    """Bounded generate/validate/gate/compare loop with pivoting retries."""

    def __init__(
        self,
        provider_manager: ProviderManager,
        repository: IdeaRepository,
        quality_gate: Optional[QualityGate] = None,
        similarity_engine: Optional[SimilarityEngine] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            provider_manager: Primary/fallback text generation
            repository: Source of the similarity corpus and sink for accepted ideas
            quality_gate: Heuristic quality checks
            similarity_engine: Scoring against prior ideas
        """
        self.provider_manager = provider_manager
        self.repository = repository
        self.quality_gate = quality_gate or QualityGate()
        self.similarity_engine = similarity_engine or SimilarityEngine()
        self.state = GenerationState.GENERATING

    def _transition(self, state: GenerationState):
        logger.debug(f"State {self.state.value} -> {state.value}")
        self.state = state

    def run(
        self,
        constraints: ProjectConstraints,
        cancel_token: Optional[CancellationToken] = None,
        retry: Optional[RetryContext] = None,
        reference: Optional[Snapshot] = None,
        persist: bool = True,
    ) -> GenerationOutcome:
        """
        Run one generation session.

        Args:
            constraints: User constraints echoed by every prompt
            cancel_token: Checked before every provider call
            retry: Initial retry context, e.g. after the user rejected an idea
            reference: The idea the user just saw; a near-copy of it is regenerated, never blocked
            persist: Save the accepted idea before returning. When False the caller
                confirms first and calls persist() itself

        Returns:
            GenerationOutcome in state ACCEPTED, BLOCKED or FAILED

        Raises:
            AllProvidersFailedError: If both providers fail on every try of the same prompt
            GenerationCancelledError: If the token fires
        """
        settings = SimilaritySettings.from_env()
        retry = retry or RetryContext()
        corpus = list(self.repository.list_recent_for_similarity(settings.lookback_n))

        logger.info(
            f"Starting generation: app_type={constraints.app_type} complexity={constraints.complexity} "
            f"corpus={len(corpus)}" + (f" retry={retry.reason.value}" if retry.is_pivot else "")
        )

        last_reasons: List[str] = []
        last_result: Optional[GenerationResult] = None
        reference_pivots = 0

        for attempt in range(1, MAX_QUALITY_ATTEMPTS + 1):
            if cancel_token:
                cancel_token.raise_if_cancelled(f"before attempt {attempt}")
            self._transition(GenerationState.GENERATING)

            if retry.is_pivot:
                prompt = build_pivot_prompt(constraints, retry.reason, retry.strategy)
            else:
                prompt = build_project_idea_prompt(constraints)
            logger.info(
                f"Attempt {attempt}/{MAX_QUALITY_ATTEMPTS}"
                + (f" (pivot {retry.strategy.value})" if retry.is_pivot else "")
            )
            logger.debug(f"Prompt size: {len(prompt)} chars")

            try:
                idea, raw, result = self._generate_idea(prompt, constraints, cancel_token)
            except ContractError as e:
                last_reasons = [str(e)]
                logger.info(f"Attempt {attempt} produced no valid idea: {e}")
                retry = self._pivot(retry, RetryReason.QUALITY_TOO_GENERIC, rotate_strategy(attempt - 1))
                continue
            last_result = result

            self._transition(GenerationState.QUALITY_CHECKING)
            verdict = self.quality_gate.evaluate(idea)
            if not verdict.ok:
                last_reasons = list(verdict.reasons)
                logger.info(f"Quality gate rejected attempt {attempt}: {verdict.summary()}")
                retry = self._pivot(
                    retry, RetryReason.QUALITY_TOO_GENERIC, strategy_for_verdict(verdict, attempt - 1)
                )
                continue

            self._transition(GenerationState.SIMILARITY_CHECKING)
            snapshot = Snapshot.from_idea(idea, constraints)
            if reference is not None:
                ref_decision, ref_score, _ = self.similarity_engine.check(snapshot, [reference], settings)
                if ref_decision != SimilarityDecision.OK:
                    reference_pivots += 1
                    last_reasons = [f"similarity {ref_score:.2f} to the previous idea"]
                    logger.info(f"Attempt {attempt} repeats the previous idea ({ref_score:.2f}), regenerating")
                    retry = self._pivot(retry, RetryReason.SIMILARITY_TOO_HIGH, rotate_strategy(reference_pivots))
                    continue

            decision, score, match = self.similarity_engine.check(snapshot, corpus, settings)
            matched_id = getattr(match, "id", None)

            # Only stored ideas can block; the reference is handled above
            if decision == SimilarityDecision.BLOCK:
                self._transition(GenerationState.BLOCKED)
                logger.info(f"Blocked: similarity {score:.2f} to project {matched_id}")
                return GenerationOutcome(
                    state=GenerationState.BLOCKED,
                    idea=idea,
                    result=result,
                    score=score,
                    matched_id=matched_id,
                    reasons=[f"too similar to an existing idea (score {score:.2f})"],
                    attempts=attempt,
                )
            if decision == SimilarityDecision.REGENERATE:
                last_reasons = [f"similarity {score:.2f} above {settings.acceptable_max:.2f}"]
                logger.info(f"Attempt {attempt} too similar ({score:.2f}), regenerating")
                retry = self._pivot(retry, RetryReason.SIMILARITY_TOO_HIGH, PivotStrategy.CHANGE_TARGET_USER)
                continue

            candidate = IdeaCandidate(
                idea=idea,
                raw_json=raw,
                snapshot=snapshot,
                similarity_score=score,
                retry_reason=retry.reason,
            )
            outcome = GenerationOutcome(
                state=GenerationState.ACCEPTED,
                idea=idea,
                result=result,
                score=score,
                matched_id=matched_id,
                attempts=attempt,
                candidate=candidate,
                fingerprint=hash_snapshot(snapshot),
            )
            if persist:
                try:
                    self.persist(outcome)
                except DuplicateFingerprintError:
                    last_reasons = ["duplicate project DNA"]
                    logger.info(
                        f"Attempt {attempt} duplicates a stored idea ({outcome.fingerprint[:12]}), regenerating"
                    )
                    retry = self._pivot(retry, RetryReason.DUPLICATE_DNA, PivotStrategy.CONTEXT_SHIFT)
                    continue

            self._transition(GenerationState.ACCEPTED)
            logger.info(
                f"Accepted {idea.project.name!r} via {result.provider_used} after {attempt} attempt(s)"
                + (f", stored as project {outcome.project_id}" if outcome.project_id else "")
            )
            return outcome

        self._transition(GenerationState.FAILED)
        logger.info(f"Giving up after {MAX_QUALITY_ATTEMPTS} attempts: {'; '.join(last_reasons)}")
        return GenerationOutcome(
            state=GenerationState.FAILED,
            result=last_result,
            reasons=last_reasons,
            attempts=MAX_QUALITY_ATTEMPTS,
        )

    def persist(self, outcome: GenerationOutcome) -> str:
        """
        Store an accepted outcome and record the new project id on it.

        Raises:
            DuplicateFingerprintError: If an idea with the same DNA is already stored
        """
        if not outcome.accepted or outcome.candidate is None:
            raise ValueError(f"cannot persist a {outcome.state.value} outcome")
        outcome.project_id = self.repository.save(
            outcome.candidate, outcome.fingerprint, Provenance.from_result(outcome.result)
        )
        return outcome.project_id

    def evolve(
        self,
        evolution: EvolutionInput,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Tuple[ProjectEvolution, str, GenerationResult]:
        """
        Propose the next development phase of an existing project.

        Returns:
            The decoded evolution, its contract JSON for storage, and provenance

        Raises:
            ContractError: If no valid evolution is produced within the same-prompt bound
        """
        prompt = build_project_evolution_prompt(evolution)
        return self._generate_with_contract(prompt, decode_project_evolution, cancel_token)

    def _pivot(self, retry: RetryContext, reason: RetryReason, strategy: PivotStrategy) -> RetryContext:
        self._transition(GenerationState.PIVOTING)
        logger.debug(f"Pivoting: reason={reason.value} strategy={strategy.value}")
        return retry.advance(reason, strategy)

    def _generate_idea(
        self,
        prompt: str,
        constraints: ProjectConstraints,
        cancel_token: Optional[CancellationToken],
    ) -> Tuple[ProjectIdea, str, GenerationResult]:
        return self._generate_with_contract(
            prompt, lambda raw: decode_project_idea(raw, constraints), cancel_token
        )

    def _generate_with_contract(
        self,
        prompt: str,
        decode: Callable[[str], T],
        cancel_token: Optional[CancellationToken],
    ) -> Tuple[T, str, GenerationResult]:
        """
        Send the same prompt until the output decodes, at most MAX_CONTRACT_ATTEMPTS times.

        AllProvidersFailedError is raised only when every try failed at the
        transport level; if any try got a response, the last ContractError is.
        """
        provider_error: Optional[AllProvidersFailedError] = None
        contract_error: Optional[ContractError] = None
        for attempt in range(1, MAX_CONTRACT_ATTEMPTS + 1):
            try:
                result = self.provider_manager.generate(prompt, cancel_token)
            except AllProvidersFailedError as e:
                logger.warning(f"All providers failed (try {attempt}/{MAX_CONTRACT_ATTEMPTS})")
                provider_error = e
                continue

            self._transition(GenerationState.VALIDATING)
            raw = normalize_contract_json(result.text)
            try:
                return decode(raw), raw, result
            except ContractError as e:
                logger.warning(f"Contract violation (try {attempt}/{MAX_CONTRACT_ATTEMPTS}): {e}")
                contract_error = e

        if contract_error is not None:
            raise contract_error
        raise provider_error
