"""
Run initiator - entry point of a chained matching run.
"""

import math
from datetime import datetime, timezone
from typing import Optional

from loguru import logger

from shared.config import Settings, get_settings
from shared.models import RunState, RunSummary

from .batch import PROCESS_BATCH_TASK
from .contracts import MatchingStore, Scheduler


class ProfileNotFoundError(Exception):
    """No profile for the given id (or user)."""


class RunInitiator:
    """Plans a matching run and schedules its first batch."""

    def __init__(
        self,
        store: MatchingStore,
        scheduler: Scheduler,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.scheduler = scheduler

    async def start_run(self, profile_id: str) -> RunSummary:
        """
        Start matching for a profile.

        Fire-and-forget: returns once batch 0 is scheduled. Results only
        become visible through the persisted matches.

        Raises:
            ProfileNotFoundError: profile does not exist, nothing is scheduled
        """
        profile = await self.store.get_profile(profile_id)
        if profile is None:
            raise ProfileNotFoundError(f"Profile not found: {profile_id}")

        pool = await self.store.get_candidate_opportunities(
            profile.hidden_orgs, limit=self.settings.matching_pool_limit
        )
        run_id = await self.store.begin_run(profile_id)

        if not pool:
            await self.store.clear_all_for_profile(profile_id)
            logger.info(f"No active opportunities for profile {profile_id}, matches cleared")
            return RunSummary(
                profile_id=profile_id,
                run_id=run_id,
                message="No active opportunities to match",
            )

        existing = await self.store.get_matches_for_profile(profile_id)
        total_batches = math.ceil(len(pool) / self.settings.matching_batch_size)

        state = RunState(
            profile_id=profile_id,
            batch_index=0,
            total_batches=total_batches,
            retry_count=0,
            previous_opp_ids=[match.opportunity_id for match in existing],
            accumulated_growth_areas=[],
            run_timestamp=datetime.now(timezone.utc),
            run_id=run_id,
            candidate_ids=[opp.id for opp in pool],
        )
        await self.scheduler.schedule_after(0, PROCESS_BATCH_TASK, state.to_payload())

        logger.info(
            f"Started matching run {run_id} for profile {profile_id}: "
            f"{len(pool)} opportunities in {total_batches} batches"
        )
        return RunSummary(
            profile_id=profile_id,
            run_id=run_id,
            pool_size=len(pool),
            total_batches=total_batches,
            message=f"Matching started in {total_batches} batches",
        )

    async def start_run_for_user(self, user_id: str) -> RunSummary:
        """Start matching for the profile owned by a user."""
        profile = await self.store.get_profile_by_user_id(user_id)
        if profile is None:
            raise ProfileNotFoundError("Profile not found - please create a profile first")
        return await self.start_run(profile.id)
