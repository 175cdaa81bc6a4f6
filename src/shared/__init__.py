# Shared module for common utilities, models, and configuration
from .config import Settings, get_settings
from .database import Database, SaveResult
from .models import (
    GrowthArea,
    MatchRecord,
    MatchStatus,
    MatchTier,
    Opportunity,
    OpportunityStatus,
    Profile,
    RunState,
    RunSummary,
    ScoredMatch,
)

__all__ = [
    "Settings",
    "get_settings",
    "Database",
    "SaveResult",
    "GrowthArea",
    "MatchRecord",
    "MatchStatus",
    "MatchTier",
    "Opportunity",
    "OpportunityStatus",
    "Profile",
    "RunState",
    "RunSummary",
    "ScoredMatch",
]
