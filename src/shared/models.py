"""
Pydantic models for profiles, opportunities, matches and matching runs.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OpportunityStatus(str, Enum):
    """Opportunity lifecycle status."""

    ACTIVE = "active"  # Open, eligible for matching
    ARCHIVED = "archived"  # Closed or removed from the board


class MatchTier(str, Enum):
    """Match quality tier assigned by the scoring oracle."""

    GREAT = "great"
    GOOD = "good"
    EXPLORING = "exploring"


class MatchStatus(str, Enum):
    """User-settable match status."""

    ACTIVE = "active"
    SAVED = "saved"
    DISMISSED = "dismissed"


class _Document(BaseModel):
    """Base for models loaded from MongoDB documents."""

    model_config = ConfigDict(extra="ignore", use_enum_values=True)

    @classmethod
    def from_document(cls, doc: dict[str, Any]):
        """Build the model from a raw document, mapping `_id` to `id`."""
        data = dict(doc)
        if "_id" in data:
            data["id"] = str(data.pop("_id"))
        return cls.model_validate(data)


# -------------------------------------------------------------------------
# Profiles
# -------------------------------------------------------------------------


class EducationEntry(BaseModel):
    """Education entry."""

    institution: str = ""
    degree: Optional[str] = None
    field: Optional[str] = None
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    current: bool = False


class WorkEntry(BaseModel):
    """Work history entry."""

    organization: str = ""
    title: str = ""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    current: bool = False
    description: Optional[str] = None


class PrivacySettings(BaseModel):
    """Profile privacy settings."""

    hidden_from_orgs: list[str] = Field(
        default_factory=list,
        description="Organizations whose opportunities must never be matched",
    )


class Profile(_Document):
    """Candidate profile (read-only to the matching pipeline)."""

    id: str = Field(..., description="Profile ID")
    user_id: Optional[str] = Field(default=None, description="Owning user")
    name: Optional[str] = None
    pronouns: Optional[str] = None
    location: Optional[str] = None
    headline: Optional[str] = None
    education: list[EducationEntry] = Field(default_factory=list)
    work_history: list[WorkEntry] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    career_goals: Optional[str] = None
    ai_safety_interests: list[str] = Field(default_factory=list)
    seeking: Optional[str] = None
    enrichment_summary: Optional[str] = None
    privacy_settings: PrivacySettings = Field(default_factory=PrivacySettings)

    @property
    def hidden_orgs(self) -> list[str]:
        return self.privacy_settings.hidden_from_orgs


# -------------------------------------------------------------------------
# Opportunities
# -------------------------------------------------------------------------


class Opportunity(_Document):
    """Open opportunity (read-only to the matching pipeline)."""

    id: str = Field(..., description="Opportunity ID")
    title: str = Field(..., description="Role title")
    organization: str = Field(..., description="Organization name")
    location: str = Field(default="")
    is_remote: bool = Field(default=False)
    role_type: str = Field(default="")
    experience_level: Optional[str] = None
    description: str = Field(default="")
    requirements: list[str] = Field(default_factory=list)
    source_url: Optional[str] = None
    status: OpportunityStatus = Field(default=OpportunityStatus.ACTIVE, validate_default=True)
    deadline: Optional[datetime] = Field(default=None, description="Application deadline")
    created_at: datetime = Field(default_factory=utcnow)

    def is_candidate(self, hidden_orgs: list[str], now: Optional[datetime] = None) -> bool:
        """Whether this opportunity belongs in a profile's candidate pool."""
        if self.status != OpportunityStatus.ACTIVE.value:
            return False
        if self.organization in hidden_orgs:
            return False
        if self.deadline is not None:
            now = now or utcnow()
            deadline = self.deadline
            if deadline.tzinfo is None:
                deadline = deadline.replace(tzinfo=timezone.utc)
            if deadline < now:
                return False
        return True


# -------------------------------------------------------------------------
# Matches
# -------------------------------------------------------------------------


class Recommendation(BaseModel):
    """Actionable recommendation attached to a match."""

    type: str = Field(..., description="specific, skill or experience")
    action: str
    priority: str = Field(..., description="high, medium or low")


class MatchExplanation(BaseModel):
    """Why the opportunity fits, plus one optional gap."""

    strengths: list[str] = Field(default_factory=list)
    gap: Optional[str] = None


class MatchProbability(BaseModel):
    """Interview probability assessment."""

    interview_chance: str = ""
    ranking: str = ""
    confidence: str = ""


class ScoredMatch(BaseModel):
    """A match produced by one batch, ready to be persisted."""

    model_config = ConfigDict(use_enum_values=True)

    opportunity_id: str
    tier: MatchTier
    score: float = Field(..., ge=0, le=100)
    explanation: MatchExplanation = Field(default_factory=MatchExplanation)
    probability: MatchProbability = Field(default_factory=MatchProbability)
    recommendations: list[Recommendation] = Field(default_factory=list)
    is_new: bool = False
    validated: bool = Field(
        default=True, description="False when built from unvalidated oracle output"
    )


class MatchRecord(_Document):
    """Persisted match, keyed by (profile_id, opportunity_id)."""

    id: Optional[str] = None
    profile_id: str
    opportunity_id: str
    tier: MatchTier
    score: float
    explanation: MatchExplanation = Field(default_factory=MatchExplanation)
    probability: MatchProbability = Field(default_factory=MatchProbability)
    recommendations: list[Recommendation] = Field(default_factory=list)
    is_new: bool = False
    computed_at: datetime = Field(default_factory=utcnow)
    model_version: str = ""
    status: MatchStatus = Field(default=MatchStatus.ACTIVE, validate_default=True)
    run_id: int = 0
    validated: bool = True


class GrowthArea(BaseModel):
    """Opportunity-independent improvement advice."""

    theme: str
    items: list[str] = Field(default_factory=list)


# -------------------------------------------------------------------------
# Matching runs
# -------------------------------------------------------------------------


class RunState(BaseModel):
    """
    Resume token for one step of a matching run.

    Carried as the payload of the next scheduled task; nothing else survives
    between two batches of the same run.
    """

    profile_id: str
    batch_index: int = Field(default=0, ge=0)
    total_batches: int = Field(..., ge=1)
    retry_count: int = Field(default=0, ge=0)
    previous_opp_ids: list[str] = Field(default_factory=list)
    accumulated_growth_areas: list[GrowthArea] = Field(default_factory=list)
    run_timestamp: datetime = Field(default_factory=utcnow)
    run_id: int = Field(default=0, description="Fencing token for this run")
    candidate_ids: Optional[list[str]] = Field(
        default=None, description="Ordered candidate pool snapshot taken at run start"
    )

    @property
    def is_last_batch(self) -> bool:
        return self.batch_index + 1 >= self.total_batches

    def retried(self) -> "RunState":
        """Same batch, one more attempt."""
        return self.model_copy(update={"retry_count": self.retry_count + 1})

    def advanced(self, growth_areas: list[GrowthArea]) -> "RunState":
        """Next batch, retry counter reset."""
        return self.model_copy(
            update={
                "batch_index": self.batch_index + 1,
                "retry_count": 0,
                "accumulated_growth_areas": list(growth_areas),
            }
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize for the task queue."""
        return self.model_dump(mode="json")


class RunSummary(BaseModel):
    """Acknowledgment returned by the run initiator."""

    profile_id: str
    run_id: int = 0
    pool_size: int = 0
    total_batches: int = 0
    match_count: int = 0
    message: str = ""
