"""
MongoDB database connection and operations using Motor (async driver).
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from bson import ObjectId
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, IndexModel, ReturnDocument

from .config import Settings, get_settings
from .models import (
    GrowthArea,
    MatchRecord,
    MatchStatus,
    MatchTier,
    Opportunity,
    OpportunityStatus,
    Profile,
    ScoredMatch,
)


def _doc_id(value: str) -> Any:
    """Documents seeded by tooling use string ids, others use ObjectIds."""
    return ObjectId(value) if ObjectId.is_valid(value) else value


@dataclass
class SaveResult:
    """Outcome of a batch save."""

    saved: int = 0
    deleted: int = 0
    rejected: bool = False


class Database:
    """Async MongoDB database wrapper."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self._client: Optional[AsyncIOMotorClient] = None
        self._db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self) -> None:
        """Establish database connection."""
        if self._client is not None:
            return

        logger.info(f"Connecting to MongoDB: {self.settings.mongodb_database}")
        self._client = AsyncIOMotorClient(self.settings.mongodb_uri, tz_aware=True)
        self._db = self._client[self.settings.mongodb_database]

        # Verify connection
        await self._client.admin.command("ping")
        logger.info("MongoDB connection established")

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._db = None
            logger.info("MongoDB connection closed")

    @property
    def db(self) -> AsyncIOMotorDatabase:
        """Get database instance."""
        if self._db is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._db

    # -------------------------------------------------------------------------
    # Profiles Collection
    # -------------------------------------------------------------------------

    async def get_profile(self, profile_id: str) -> Optional[Profile]:
        """Get profile by ID, None if not found."""
        doc = await self.db.profiles.find_one({"_id": _doc_id(profile_id)})
        return Profile.from_document(doc) if doc else None

    async def get_profile_by_user_id(self, user_id: str) -> Optional[Profile]:
        """Get the profile owned by a user."""
        doc = await self.db.profiles.find_one({"user_id": user_id})
        return Profile.from_document(doc) if doc else None

    async def upsert_profile(self, profile: Profile) -> str:
        """Insert or replace a profile, returns profile_id."""
        doc = profile.model_dump(mode="python", exclude={"id"})
        doc["updated_at"] = datetime.now(timezone.utc)
        await self.db.profiles.update_one(
            {"_id": _doc_id(profile.id)}, {"$set": doc}, upsert=True
        )
        return profile.id

    # -------------------------------------------------------------------------
    # Opportunities Collection
    # -------------------------------------------------------------------------

    async def get_candidate_opportunities(
        self, hidden_orgs: list[str], limit: int = 50
    ) -> list[Opportunity]:
        """
        Get the candidate pool for a profile.

        Active opportunities whose deadline is absent or in the future and
        whose organization is not hidden, oldest first, capped at `limit`.
        """
        now = datetime.now(timezone.utc)
        query = {
            "status": OpportunityStatus.ACTIVE.value,
            "organization": {"$nin": hidden_orgs},
            "$or": [{"deadline": None}, {"deadline": {"$gte": now}}],
        }
        cursor = (
            self.db.opportunities.find(query)
            .sort([("created_at", ASCENDING), ("_id", ASCENDING)])
            .limit(limit)
        )
        docs = await cursor.to_list(length=limit)
        return [Opportunity.from_document(doc) for doc in docs]

    async def get_opportunities_by_ids(self, opportunity_ids: list[str]) -> list[Opportunity]:
        """Get opportunities by ID, in the order given. Missing ids are skipped."""
        if not opportunity_ids:
            return []
        cursor = self.db.opportunities.find(
            {"_id": {"$in": [_doc_id(opp_id) for opp_id in opportunity_ids]}}
        )
        docs = await cursor.to_list(length=len(opportunity_ids))
        by_id = {str(doc["_id"]): Opportunity.from_document(doc) for doc in docs}
        return [by_id[opp_id] for opp_id in opportunity_ids if opp_id in by_id]

    async def upsert_opportunity(self, opportunity: Opportunity) -> str:
        """Insert or replace an opportunity, returns opportunity_id."""
        doc = opportunity.model_dump(mode="python", exclude={"id"})
        await self.db.opportunities.update_one(
            {"_id": _doc_id(opportunity.id)}, {"$set": doc}, upsert=True
        )
        return opportunity.id

    # -------------------------------------------------------------------------
    # Matching Runs Collection (fencing tokens)
    # -------------------------------------------------------------------------

    async def begin_run(self, profile_id: str) -> int:
        """Allocate the next run id for a profile, superseding older runs."""
        doc = await self.db.match_runs.find_one_and_update(
            {"_id": profile_id},
            {
                "$inc": {"run_id": 1},
                "$set": {"started_at": datetime.now(timezone.utc)},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(doc["run_id"])

    async def get_current_run_id(self, profile_id: str) -> int:
        """Latest run id allocated for a profile, 0 if none."""
        doc = await self.db.match_runs.find_one({"_id": profile_id})
        return int(doc["run_id"]) if doc else 0

    # -------------------------------------------------------------------------
    # Matches Collection
    # -------------------------------------------------------------------------

    async def get_matches_for_profile(self, profile_id: str) -> list[MatchRecord]:
        """Get all matches for a profile."""
        cursor = self.db.matches.find({"profile_id": profile_id})
        docs = await cursor.to_list(length=None)
        return [MatchRecord.from_document(doc) for doc in docs]

    async def clear_all_for_profile(self, profile_id: str) -> int:
        """Delete every match and the growth areas for a profile, returns deleted match count."""
        result = await self.db.matches.delete_many({"profile_id": profile_id})
        await self.db.growth_areas.delete_one({"_id": profile_id})
        logger.info(f"Cleared {result.deleted_count} matches for profile {profile_id}")
        return result.deleted_count

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
    ) -> SaveResult:
        """
        Persist one batch of matches.

        Writes from a run superseded by a newer one are ignored. Matches are
        upserted by (profile_id, opportunity_id), keeping any user-set status.
        The last batch also stores the run's growth areas and removes every
        match for the profile that this run did not write.
        """
        current_run_id = await self.get_current_run_id(profile_id)
        if run_id < current_run_id:
            logger.warning(
                f"Ignoring batch {batch_index} for profile {profile_id}: "
                f"run {run_id} superseded by run {current_run_id}"
            )
            return SaveResult(rejected=True)

        previous = set(previous_opp_ids)
        now = datetime.now(timezone.utc)
        result = SaveResult()

        for match in matches:
            await self.db.matches.update_one(
                {"profile_id": profile_id, "opportunity_id": match.opportunity_id},
                {
                    "$set": {
                        "tier": match.tier,
                        "score": match.score,
                        "explanation": match.explanation.model_dump(),
                        "probability": match.probability.model_dump(),
                        "recommendations": [r.model_dump() for r in match.recommendations],
                        "is_new": match.opportunity_id not in previous,
                        "computed_at": now,
                        "model_version": model_version,
                        "run_id": run_id,
                        "run_timestamp": run_timestamp,
                        "validated": match.validated,
                    },
                    "$setOnInsert": {"status": MatchStatus.ACTIVE.value},
                },
                upsert=True,
            )
            result.saved += 1

        if is_last_batch:
            await self.db.growth_areas.update_one(
                {"_id": profile_id},
                {
                    "$set": {
                        "growth_areas": [area.model_dump() for area in accumulated_growth_areas],
                        "run_id": run_id,
                        "computed_at": now,
                    }
                },
                upsert=True,
            )
            stale = await self.db.matches.delete_many(
                {"profile_id": profile_id, "run_id": {"$ne": run_id}}
            )
            result.deleted = stale.deleted_count

        logger.info(
            f"Saved batch {batch_index} for profile {profile_id}: "
            f"{result.saved} matches, {result.deleted} stale removed"
        )
        return result

    async def get_grouped_matches(self, profile_id: str) -> dict[str, Any]:
        """
        Get matches grouped by tier, best score first.

        Matches whose opportunity no longer exists are left out.
        """
        matches = await self.get_matches_for_profile(profile_id)
        opportunities = await self.get_opportunities_by_ids(
            [m.opportunity_id for m in matches]
        )
        by_id = {opp.id: opp for opp in opportunities}
        valid = [m for m in matches if m.opportunity_id in by_id]

        grouped: dict[str, Any] = {}
        for tier in MatchTier:
            grouped[tier.value] = [
                {"match": m, "opportunity": by_id[m.opportunity_id]}
                for m in sorted(
                    (m for m in valid if m.tier == tier.value),
                    key=lambda m: m.score,
                    reverse=True,
                )
            ]

        return {
            "matches": grouped,
            "new_match_count": sum(1 for m in valid if m.is_new),
            "computed_at": min((m.computed_at for m in matches), default=None),
            "needs_computation": not matches,
        }

    async def get_new_match_count(self, profile_id: str) -> int:
        """Count matches not yet viewed."""
        return await self.db.matches.count_documents(
            {"profile_id": profile_id, "is_new": True}
        )

    async def mark_matches_viewed(self, profile_id: str) -> int:
        """Clear the new flag on every match for a profile."""
        result = await self.db.matches.update_many(
            {"profile_id": profile_id, "is_new": True}, {"$set": {"is_new": False}}
        )
        return result.modified_count

    async def update_match_status(
        self, profile_id: str, opportunity_id: str, status: MatchStatus
    ) -> bool:
        """Set the user-facing status of one match."""
        result = await self.db.matches.update_one(
            {"profile_id": profile_id, "opportunity_id": opportunity_id},
            {"$set": {"status": MatchStatus(status).value}},
        )
        return result.matched_count > 0

    async def get_growth_areas(self, profile_id: str) -> list[GrowthArea]:
        """Get the growth areas stored by the profile's last completed run."""
        doc = await self.db.growth_areas.find_one({"_id": profile_id})
        if not doc:
            return []
        return [GrowthArea.model_validate(area) for area in doc.get("growth_areas", [])]

    # -------------------------------------------------------------------------
    # Scheduled Tasks Collection
    # -------------------------------------------------------------------------

    async def insert_task(
        self, task: str, args: dict[str, Any], run_at: datetime
    ) -> str:
        """Queue a task for execution at `run_at`."""
        now = datetime.now(timezone.utc)
        result = await self.db.scheduled_tasks.insert_one(
            {
                "task": task,
                "args": args,
                "run_at": run_at,
                "status": "pending",
                "attempts": 0,
                "created_at": now,
                "updated_at": now,
            }
        )
        return str(result.inserted_id)

    async def claim_due_task(self) -> Optional[dict[str, Any]]:
        """Atomically claim the oldest due task, None when nothing is due."""
        now = datetime.now(timezone.utc)
        return await self.db.scheduled_tasks.find_one_and_update(
            {"status": "pending", "run_at": {"$lte": now}},
            {
                "$set": {"status": "running", "claimed_at": now, "updated_at": now},
                "$inc": {"attempts": 1},
            },
            sort=[("run_at", ASCENDING)],
            return_document=ReturnDocument.AFTER,
        )

    async def complete_task(self, task_id: Any) -> None:
        """Mark a task as done."""
        await self.db.scheduled_tasks.update_one(
            {"_id": task_id},
            {"$set": {"status": "done", "updated_at": datetime.now(timezone.utc)}},
        )

    async def fail_task(self, task_id: Any, error: str) -> None:
        """Mark a task as failed."""
        await self.db.scheduled_tasks.update_one(
            {"_id": task_id},
            {
                "$set": {
                    "status": "failed",
                    "error": error,
                    "updated_at": datetime.now(timezone.utc),
                }
            },
        )

    async def requeue_stale_tasks(self, older_than_seconds: int) -> int:
        """Return tasks stuck in running (crashed worker) to pending."""
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=older_than_seconds)
        result = await self.db.scheduled_tasks.update_many(
            {"status": "running", "claimed_at": {"$lt": cutoff}},
            {"$set": {"status": "pending", "updated_at": datetime.now(timezone.utc)}},
        )
        if result.modified_count:
            logger.warning(f"Requeued {result.modified_count} stale tasks")
        return result.modified_count

    # -------------------------------------------------------------------------
    # Index Setup
    # -------------------------------------------------------------------------

    async def ensure_indexes(self) -> None:
        """Create database indexes."""
        await self.db.profiles.create_indexes(
            [IndexModel([("user_id", ASCENDING)])]
        )

        opportunity_indexes = [
            IndexModel([("status", ASCENDING), ("created_at", ASCENDING)]),
            IndexModel([("organization", ASCENDING)]),
            IndexModel([("deadline", ASCENDING)]),
        ]
        await self.db.opportunities.create_indexes(opportunity_indexes)

        match_indexes = [
            IndexModel([("profile_id", ASCENDING), ("opportunity_id", ASCENDING)], unique=True),
            IndexModel([("profile_id", ASCENDING), ("is_new", ASCENDING)]),
            IndexModel([("profile_id", ASCENDING), ("run_id", ASCENDING)]),
            IndexModel([("score", DESCENDING)]),
        ]
        await self.db.matches.create_indexes(match_indexes)

        task_indexes = [
            IndexModel([("status", ASCENDING), ("run_at", ASCENDING)]),
            IndexModel([("created_at", DESCENDING)]),
        ]
        await self.db.scheduled_tasks.create_indexes(task_indexes)

        logger.info("Database indexes created")
