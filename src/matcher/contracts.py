"""
Interfaces the matching pipeline depends on.

`shared.database.Database` implements the readers and the match writer,
`matcher.scheduler.TaskQueue` the scheduler and `matcher.oracle.ScoringOracle`
the oracle.
"""

from datetime import datetime
from typing import Any, Optional, Protocol

from shared.database import SaveResult
from shared.models import GrowthArea, MatchRecord, Opportunity, Profile, ScoredMatch


class ProfileReader(Protocol):
    async def get_profile(self, profile_id: str) -> Optional[Profile]: ...

    async def get_profile_by_user_id(self, user_id: str) -> Optional[Profile]: ...


class OpportunityReader(Protocol):
    async def get_candidate_opportunities(
        self, hidden_orgs: list[str], limit: int = 50
    ) -> list[Opportunity]: ...

    async def get_opportunities_by_ids(
        self, opportunity_ids: list[str]
    ) -> list[Opportunity]: ...


class MatchWriter(Protocol):
    async def begin_run(self, profile_id: str) -> int: ...

    async def get_matches_for_profile(self, profile_id: str) -> list[MatchRecord]: ...

    async def clear_all_for_profile(self, profile_id: str) -> int: ...

    async def save_batch_results(
        self,
        profile_id: str,
        batch_index: int,
        matches: list[ScoredMatch],
        model_version: str,
        is_last_batch: bool,
        previous_opp_ids: list[str],
        accumulated_growth_areas: list[GrowthArea],
        run_timestamp: datetime,
        run_id: int = 0,
    ) -> SaveResult: ...


class MatchingStore(ProfileReader, OpportunityReader, MatchWriter, Protocol):
    """Everything the initiator and batch processor read and write."""


class Scheduler(Protocol):
    async def schedule_after(self, delay_ms: int, task: str, args: dict[str, Any]) -> str: ...


class Oracle(Protocol):
    @property
    def model_version(self) -> str: ...

    async def score_batch(
        self, profile_context: str, opportunities_context: str
    ) -> dict[str, Any]: ...
