"""
Shared fixtures: in-memory store, recording scheduler and a scripted oracle.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.config import Settings
from shared.database import SaveResult
from shared.models import (
    GrowthArea,
    MatchRecord,
    MatchStatus,
    Opportunity,
    Profile,
    PrivacySettings,
    RunState,
    ScoredMatch,
)
from matcher.batch import PROCESS_BATCH_TASK, BatchProcessor


class InMemoryStore:
    """Dict-backed stand-in for shared.database.Database."""

    def __init__(self):
        self.profiles: dict[str, Profile] = {}
        self.opportunities: list[Opportunity] = []
        self.matches: dict[tuple[str, str], MatchRecord] = {}
        self.growth_areas: dict[str, list[GrowthArea]] = {}
        self.run_ids: dict[str, int] = {}
        self.save_calls: list[dict[str, Any]] = []
        self.cleared: list[str] = []

    async def get_profile(self, profile_id: str) -> Optional[Profile]:
        return self.profiles.get(profile_id)

    async def get_profile_by_user_id(self, user_id: str) -> Optional[Profile]:
        return next((p for p in self.profiles.values() if p.user_id == user_id), None)

    async def get_candidate_opportunities(self, hidden_orgs, limit=50):
        pool = [opp for opp in self.opportunities if opp.is_candidate(hidden_orgs)]
        return pool[:limit]

    async def get_opportunities_by_ids(self, opportunity_ids):
        by_id = {opp.id: opp for opp in self.opportunities}
        return [by_id[i] for i in opportunity_ids if i in by_id]

    async def begin_run(self, profile_id: str) -> int:
        self.run_ids[profile_id] = self.run_ids.get(profile_id, 0) + 1
        return self.run_ids[profile_id]

    async def get_matches_for_profile(self, profile_id: str) -> list[MatchRecord]:
        return [m for (pid, _), m in self.matches.items() if pid == profile_id]

    async def clear_all_for_profile(self, profile_id: str) -> int:
        self.cleared.append(profile_id)
        keys = [key for key in self.matches if key[0] == profile_id]
        for key in keys:
            del self.matches[key]
        self.growth_areas.pop(profile_id, None)
        return len(keys)

    async def save_batch_results(
        self,
        profile_id,
        batch_index,
        matches: list[ScoredMatch],
        model_version,
        is_last_batch,
        previous_opp_ids,
        accumulated_growth_areas,
        run_timestamp,
        run_id=0,
    ) -> SaveResult:
        self.save_calls.append(
            {
                "profile_id": profile_id,
                "batch_index": batch_index,
                "matches": list(matches),
                "model_version": model_version,
                "is_last_batch": is_last_batch,
                "previous_opp_ids": list(previous_opp_ids),
                "accumulated_growth_areas": list(accumulated_growth_areas),
                "run_timestamp": run_timestamp,
                "run_id": run_id,
            }
        )
        if run_id < self.run_ids.get(profile_id, 0):
            return SaveResult(rejected=True)

        result = SaveResult()
        for match in matches:
            key = (profile_id, match.opportunity_id)
            existing = self.matches.get(key)
            self.matches[key] = MatchRecord(
                profile_id=profile_id,
                opportunity_id=match.opportunity_id,
                tier=match.tier,
                score=match.score,
                explanation=match.explanation,
                probability=match.probability,
                recommendations=match.recommendations,
                is_new=match.opportunity_id not in set(previous_opp_ids),
                model_version=model_version,
                status=existing.status if existing else MatchStatus.ACTIVE,
                run_id=run_id,
                validated=match.validated,
            )
            result.saved += 1

        if is_last_batch:
            self.growth_areas[profile_id] = list(accumulated_growth_areas)
            stale = [
                key for key, m in self.matches.items()
                if key[0] == profile_id and m.run_id != run_id
            ]
            for key in stale:
                del self.matches[key]
            result.deleted = len(stale)
        return result


class RecordingScheduler:
    """Collects scheduled tasks instead of running them."""

    def __init__(self):
        self.calls: list[tuple[int, str, dict[str, Any]]] = []

    async def schedule_after(self, delay_ms: int, task: str, args: dict[str, Any]) -> str:
        self.calls.append((delay_ms, task, args))
        return f"task-{len(self.calls)}"

    def pop(self) -> tuple[int, RunState]:
        delay_ms, task, args = self.calls.pop(0)
        assert task == PROCESS_BATCH_TASK
        return delay_ms, RunState.model_validate(args)


def make_profile(profile_id: str = "profile-1", hidden_orgs=None, **kwargs) -> Profile:
    return Profile(
        id=profile_id,
        user_id=kwargs.pop("user_id", "user-1"),
        name=kwargs.pop("name", "Ada Lovelace"),
        skills=kwargs.pop("skills", ["Python", "ML evaluation"]),
        privacy_settings=PrivacySettings(hidden_from_orgs=hidden_orgs or []),
        **kwargs,
    )


def make_opportunity(index: int, organization: str = "Redwood Research", **kwargs) -> Opportunity:
    base = datetime(2025, 1, 1, tzinfo=timezone.utc)
    return Opportunity(
        id=kwargs.pop("id", f"opp-{index}"),
        title=kwargs.pop("title", f"Research Engineer {index}"),
        organization=organization,
        description=kwargs.pop("description", "Work on evaluations."),
        created_at=base + timedelta(minutes=index),
        **kwargs,
    )


def make_match(opportunity_id: str, tier: str = "good", score: float = 70) -> dict[str, Any]:
    return {
        "opportunityId": opportunity_id,
        "tier": tier,
        "score": score,
        "strengths": ["Strong Python background", "Relevant research interests"],
        "gap": "Publish an evaluation write-up",
        "interviewChance": "Good chance",
        "ranking": "Likely top 20%",
        "confidence": "MEDIUM",
        "recommendations": [
            {"type": "specific", "action": "Highlight eval work", "priority": "high"}
        ],
    }


def oracle_response(opportunity_ids, growth_areas=None) -> dict[str, Any]:
    return {
        "matches": [make_match(opp_id) for opp_id in opportunity_ids],
        "growthAreas": growth_areas or [],
    }


class RateLimitError(Exception):
    def __init__(self, message: str = "Error code: 429 - too many requests"):
        super().__init__(message)
        self.status_code = 429


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def scheduler():
    return RecordingScheduler()


@pytest.fixture
def oracle():
    mock = MagicMock()
    mock.model_version = "gpt-4o-test"
    mock.score_batch = AsyncMock()
    return mock


@pytest.fixture
def processor(store, oracle, scheduler, settings):
    return BatchProcessor(store=store, oracle=oracle, scheduler=scheduler, settings=settings)
