"""
Batch processor - one step of a chained matching run.

Each invocation handles a single slice of the candidate pool and then
schedules its own continuation:

    fetch slice -> call oracle -> classify outcome -> persist / backoff / skip
                -> schedule next batch (or stop on the last one)

All state needed to continue travels in the RunState handed to the next
scheduled task.
"""

from enum import Enum
from typing import Optional

from loguru import logger

from shared.config import Settings, get_settings
from shared.models import GrowthArea, Opportunity, Profile, RunState, ScoredMatch

from .contracts import MatchingStore, Oracle, Scheduler
from .prompts import build_opportunities_context, build_profile_context
from .rate_limit import is_rate_limited
from .validation import RawFallback, validate_matching_result

PROCESS_BATCH_TASK = "process_batch"


class BatchOutcome(str, Enum):
    """How a single batch invocation ended."""

    TERMINATED = "terminated"  # Dead end, nothing scheduled
    RESCHEDULED = "rescheduled"  # Same batch scheduled again
    ADVANCED = "advanced"  # Next batch scheduled
    COMPLETED = "completed"  # Last batch processed, run finished


def backoff_delay_ms(retry_count: int, base_ms: int = 1000, max_ms: int = 60000) -> int:
    """Exponential backoff for rate-limited attempts, capped."""
    return min(base_ms * (2 ** retry_count), max_ms)


class BatchProcessor:
    """Processes one batch of a matching run and schedules the next."""

    def __init__(
        self,
        store: MatchingStore,
        oracle: Oracle,
        scheduler: Scheduler,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.oracle = oracle
        self.scheduler = scheduler

    @property
    def batch_size(self) -> int:
        return self.settings.matching_batch_size

    async def _load_batch(
        self, profile: Profile, state: RunState
    ) -> Optional[list[Opportunity]]:
        """
        Load the opportunities for this batch.

        Returns None when the slice itself is empty. Opportunities that were
        archived, expired or hidden since the run started are filtered out,
        so the list may be shorter than the slice (or empty).
        """
        start = state.batch_index * self.batch_size
        end = start + self.batch_size

        if state.candidate_ids is None:
            # No snapshot: re-derive the pool from scratch
            pool = await self.store.get_candidate_opportunities(
                profile.hidden_orgs, limit=self.settings.matching_pool_limit
            )
            batch = pool[start:end]
            return batch or None

        batch_ids = state.candidate_ids[start:end]
        if not batch_ids:
            return None

        opportunities = await self.store.get_opportunities_by_ids(batch_ids)
        return [opp for opp in opportunities if opp.is_candidate(profile.hidden_orgs)]

    async def _schedule(self, delay_ms: int, state: RunState) -> None:
        await self.scheduler.schedule_after(delay_ms, PROCESS_BATCH_TASK, state.to_payload())

    async def _handle_failure(self, state: RunState, error: Exception) -> bool:
        """
        Apply the retry policy for a failed oracle call.

        Returns True when the same batch was rescheduled, False when the batch
        is skipped and the run should carry on without its matches.
        """
        label = f"profile {state.profile_id} batch {state.batch_index}"

        if is_rate_limited(error):
            if state.retry_count < self.settings.matching_max_retries:
                delay = backoff_delay_ms(
                    state.retry_count,
                    self.settings.matching_base_delay_ms,
                    self.settings.matching_max_delay_ms,
                )
                logger.warning(
                    f"Rate limited on {label} (attempt {state.retry_count + 1}), "
                    f"retrying in {delay}ms"
                )
                await self._schedule(delay, state.retried())
                return True

            logger.error(
                f"Rate limit retries exhausted on {label} "
                f"after {state.retry_count + 1} attempts, skipping batch"
            )
            return False

        if state.retry_count == 0:
            logger.warning(f"Oracle call failed on {label}: {error}. Retrying once")
            await self._schedule(self.settings.matching_base_delay_ms, state.retried())
            return True

        logger.error(f"Oracle call failed again on {label}: {error}. Skipping batch")
        return False

    def _collect_matches(
        self, raw: dict, batch: list[Opportunity], state: RunState
    ) -> tuple[list[ScoredMatch], list[GrowthArea]]:
        """Validate the oracle payload and keep matches for opportunities in the batch."""
        outcome = validate_matching_result(raw)
        trusted = not isinstance(outcome, RawFallback)

        batch_ids = {opp.id for opp in batch}
        previous = set(state.previous_opp_ids)
        matches: list[ScoredMatch] = []
        seen: set[str] = set()

        for item in outcome.result.matches:
            if item.opportunity_id not in batch_ids or item.opportunity_id in seen:
                logger.debug(f"Dropping match for unknown opportunity {item.opportunity_id}")
                continue
            seen.add(item.opportunity_id)
            match = item.to_scored_match(validated=trusted)
            match.is_new = match.opportunity_id not in previous
            matches.append(match)

        growth_areas = [area for area in outcome.result.growth_areas if area.theme]
        return matches, growth_areas

    async def process_batch(self, state: RunState) -> BatchOutcome:
        """Run one step of the matching state machine."""
        label = f"profile {state.profile_id} batch {state.batch_index + 1}/{state.total_batches}"

        profile = await self.store.get_profile(state.profile_id)
        if profile is None:
            logger.error(f"Profile {state.profile_id} disappeared mid-run, stopping at batch {state.batch_index}")
            return BatchOutcome.TERMINATED

        batch = await self._load_batch(profile, state)
        if batch is None:
            logger.warning(f"Empty slice for {label}, candidate pool shrank. Stopping run")
            return BatchOutcome.TERMINATED

        is_last_batch = state.is_last_batch
        growth_areas = list(state.accumulated_growth_areas)
        matches: list[ScoredMatch] = []

        if not batch:
            logger.info(f"All opportunities in {label} are no longer eligible")
        else:
            logger.info(f"Scoring {len(batch)} opportunities for {label} (retry {state.retry_count})")
            try:
                raw = await self.oracle.score_batch(
                    build_profile_context(profile), build_opportunities_context(batch)
                )
            except Exception as e:
                if await self._handle_failure(state, e):
                    return BatchOutcome.RESCHEDULED
            else:
                matches, new_areas = self._collect_matches(raw, batch, state)
                growth_areas.extend(new_areas)
                logger.info(f"Got {len(matches)} valid matches for {label}")

        if matches or is_last_batch:
            result = await self.store.save_batch_results(
                profile_id=state.profile_id,
                batch_index=state.batch_index,
                matches=matches,
                model_version=self.oracle.model_version,
                is_last_batch=is_last_batch,
                previous_opp_ids=state.previous_opp_ids,
                accumulated_growth_areas=growth_areas,
                run_timestamp=state.run_timestamp,
                run_id=state.run_id,
            )
            if result.rejected:
                logger.warning(f"Run {state.run_id} was superseded, stopping at {label}")
                return BatchOutcome.TERMINATED

        if is_last_batch:
            logger.info(f"Matching run {state.run_id} complete for profile {state.profile_id}")
            return BatchOutcome.COMPLETED

        await self._schedule(
            self.settings.matching_inter_batch_delay_ms, state.advanced(growth_areas)
        )
        return BatchOutcome.ADVANCED
