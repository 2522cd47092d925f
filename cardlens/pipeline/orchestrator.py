"""
Card analysis orchestration.

Drives one run through extract, reason, the pricing and authenticity fan-out
and aggregation. Every run ends in a terminal state and is reported as a
``RunOutcome``; stage errors never propagate to the caller.
"""

import asyncio
import uuid
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from ..authenticity.scorer import AuthenticityScorer
from ..core.constants import PRICING_WINDOW_DAYS, UNKNOWN_CARD_NAME
from ..core.types import (
    AuthenticityResult,
    Card,
    CardHints,
    CardMetadata,
    FeatureEnvelope,
    OcrContext,
    PipelineState,
    PriceQuery,
    PricingResult,
    RunOutcome,
    RunRequest,
)
from ..extract.features import FeatureExtractor
from ..pricing.aggregator import PriceAggregator
from ..reasoning.reasoner import MetadataReasoner
from ..store.cards import CardStore
from ..store.images import ImageStore
from ..utils.error_handler import ContentRejected, RunAlreadyActive, StageFailed
from ..utils.log import LoggerMixin
from ..utils.retry import RetryPolicy, classify_exception, run_with_retry
from ..utils.validation import validate_identifier, validate_image_ref
from .aggregator import CardAggregator, PersistMode, build_update
from .runs import ConflictPolicy, RunRegistry
from .state import PipelineEvent, transition


def build_price_query(
    metadata: CardMetadata,
    hints: Optional[CardHints] = None,
    window_days: int = PRICING_WINDOW_DAYS,
) -> PriceQuery:
    """Pricing identity from reasoned metadata, falling back to owner hints."""
    set_name = metadata.card_set.top_value() or (hints.expected_set if hints else None)
    rarity = metadata.rarity.value or (hints.expected_rarity if hints else None)
    return PriceQuery(
        card_name=metadata.name.value or UNKNOWN_CARD_NAME,
        set_name=set_name,
        number=metadata.collector_number.value,
        rarity=rarity,
        window_days=window_days,
    )


class RunTracker:
    """Current state of one run plus the states it has passed through."""

    def __init__(self, run_id: str, card_id: str):
        self.run_id = run_id
        self.card_id = card_id
        self.state = PipelineState.INIT
        self.history: List[PipelineState] = [PipelineState.INIT]

    def advance(self, event: PipelineEvent) -> PipelineState:
        self.state = transition(self.state, event)
        self.history.append(self.state)
        return self.state

    def outcome(self, card: Optional[Card] = None, error: Optional[Exception] = None) -> RunOutcome:
        return RunOutcome(
            run_id=self.run_id,
            card_id=self.card_id,
            state=self.state,
            card=card,
            error=str(error) if error is not None else None,
            error_type=type(error).__name__ if error is not None else None,
            transitions=list(self.history),
        )


class Orchestrator(LoggerMixin):
    """Coordinates the stages of a card analysis run."""

    def __init__(
        self,
        extractor: FeatureExtractor,
        reasoner: MetadataReasoner,
        pricing: PriceAggregator,
        scorer: AuthenticityScorer,
        aggregator: CardAggregator,
        store: CardStore,
        images: ImageStore,
        registry: Optional[RunRegistry] = None,
        stage_policy: Optional[RetryPolicy] = None,
        branch_timeout_s: float = 60.0,
        window_days: int = PRICING_WINDOW_DAYS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.extractor = extractor
        self.reasoner = reasoner
        self.pricing = pricing
        self.scorer = scorer
        self.aggregator = aggregator
        self.store = store
        self.images = images
        self.registry = registry or RunRegistry()
        self.stage_policy = stage_policy or RetryPolicy()
        self.branch_timeout_s = branch_timeout_s
        self.window_days = window_days
        self.sleep = sleep

    async def start(self, request: RunRequest, on_conflict: ConflictPolicy = "reject") -> RunOutcome:
        """
        Run the pipeline for one card.

        Raises:
            InvalidInputError: If ids or image refs are malformed
            RunAlreadyActive: If the card already has a run in flight and
                ``on_conflict`` is "reject", or another process holds its claim
        """
        validate_identifier(request.owner_id, "owner_id")
        validate_identifier(request.card_id, "card_id")
        validate_image_ref(request.image_refs.front)
        if request.image_refs.back:
            validate_image_ref(request.image_refs.back)

        return await self.registry.run_once(
            request.card_id, lambda: self._execute(request), on_conflict
        )

    async def _execute(self, request: RunRequest) -> RunOutcome:
        run_id = uuid.uuid4().hex
        if not await asyncio.to_thread(self.store.claim_run, request.card_id, run_id, request.owner_id):
            raise RunAlreadyActive(
                f"Another process holds the run claim for card {request.card_id}",
                details={"card_id": request.card_id},
            )
        try:
            return await self._run_stages(request, RunTracker(run_id, request.card_id))
        finally:
            await asyncio.to_thread(self.store.release_run, request.card_id, run_id)

    async def _run_stages(self, request: RunRequest, tracker: RunTracker) -> RunOutcome:
        ctx = self.log_start(
            "analysis_run", run_id=tracker.run_id, card_id=request.card_id, reanalysis=request.reanalysis
        )
        refs = request.image_refs
        try:
            tracker.advance(PipelineEvent.START)
            front = await self._run_stage("extract", lambda: self.extractor.extract_features(refs.front))
            back = await self._extract_back(refs.back)
            tracker.advance(PipelineEvent.EXTRACTED)

            context = OcrContext.from_features(front, request.known_hints)
            metadata = await self._run_stage("reason", lambda: self.reasoner.reason(context))
            tracker.advance(PipelineEvent.REASONED)

            query = build_price_query(metadata, request.known_hints, self.window_days)
            pricing, authenticity = await self._fan_out(
                query, front, metadata, back, force_refresh=request.reanalysis
            )
            tracker.advance(PipelineEvent.BRANCHES_JOINED)

            update = build_update(metadata, pricing, authenticity, refs)
            mode = PersistMode.UPDATE if request.reanalysis else PersistMode.UPSERT
            card = await self._run_stage(
                "aggregate",
                lambda: self.aggregator.persist(
                    request.owner_id, request.card_id, update, mode, run_id=tracker.run_id
                ),
            )
            tracker.advance(PipelineEvent.AGGREGATED)

        except ContentRejected as e:
            if tracker.state is not PipelineState.EXTRACTING:
                return self._fail(tracker, ctx, e)
            await self._cleanup(request)
            tracker.advance(PipelineEvent.CONTENT_REJECTED)
            self.logger.warning(
                "Image rejected, card removed", run_id=tracker.run_id, card_id=request.card_id, reason=e.reason
            )
            return tracker.outcome(error=e)

        except Exception as e:
            return self._fail(tracker, ctx, e)

        self.log_success(ctx, state=tracker.state.value, value_median=card.value_median)
        return tracker.outcome(card=card)

    def _fail(self, tracker: RunTracker, ctx, error: Exception) -> RunOutcome:
        failed_in = tracker.state
        tracker.advance(PipelineEvent.STAGE_FAILED)
        self.log_error(ctx, error, failed_in=failed_in.value)
        return tracker.outcome(error=error)

    async def _run_stage(self, name: str, func: Callable[[], Awaitable[Any]]) -> Any:
        """Run one stage under the stage retry policy with errors classified."""

        async def attempt():
            try:
                return await func()
            except Exception as e:
                classified = classify_exception(e)
                if classified is e:
                    raise
                raise classified from e

        return await run_with_retry(
            attempt, self.stage_policy, logger=self.logger, operation=name, sleep=self.sleep
        )

    async def _extract_back(self, back_ref: Optional[str]) -> Optional[FeatureEnvelope]:
        if not back_ref:
            return None
        try:
            return await self._run_stage("extract_back", lambda: self.extractor.extract_features(back_ref))
        except ContentRejected:
            raise
        except Exception as e:
            self.logger.warning("Back image extraction failed, continuing without it", error=str(e))
            return None

    async def _fan_out(
        self,
        query: PriceQuery,
        front: FeatureEnvelope,
        metadata: CardMetadata,
        back: Optional[FeatureEnvelope],
        force_refresh: bool = False,
    ) -> Tuple[PricingResult, AuthenticityResult]:
        """Run pricing and authenticity concurrently; both must succeed."""
        pricing_branch = asyncio.wait_for(
            self._run_stage("pricing", lambda: self.pricing.aggregate(query, force_refresh=force_refresh)),
            timeout=self.branch_timeout_s,
        )
        authenticity_branch = asyncio.wait_for(
            self._run_stage("authenticity", lambda: self.scorer.assess(front, metadata, back)),
            timeout=self.branch_timeout_s,
        )
        pricing, authenticity = await asyncio.gather(
            pricing_branch, authenticity_branch, return_exceptions=True
        )

        failures = {}
        for branch, result in (("pricing", pricing), ("authenticity", authenticity)):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                failures[branch] = f"{type(result).__name__}: {result}"
                self.logger.error(
                    "Branch failed", branch=branch, error=str(result), error_type=type(result).__name__
                )

        if failures:
            first = pricing if "pricing" in failures else authenticity
            raise StageFailed(
                "fan_out", 1, message=f"Branches failed: {', '.join(failures)}", details=failures
            ) from first
        return pricing, authenticity

    async def _cleanup(self, request: RunRequest) -> None:
        """Remove the card record and its stored images after a rejection."""
        try:
            await asyncio.to_thread(self.store.hard_delete, request.owner_id, request.card_id)
        except Exception as e:
            self.logger.error("Failed to delete rejected card", card_id=request.card_id, error=str(e))

        for ref in (request.image_refs.front, request.image_refs.back):
            if not ref:
                continue
            try:
                await asyncio.to_thread(self.images.delete, ref)
            except Exception as e:
                self.logger.error("Failed to delete rejected image", ref=ref, error=str(e))
