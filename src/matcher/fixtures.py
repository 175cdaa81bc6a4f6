"""
Fixture loader for local development.
Loads profiles and opportunities from YAML and seeds them into MongoDB.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml
from dateutil import parser
from loguru import logger

from shared.database import Database
from shared.models import Opportunity, Profile


def _parse_date(value: Any) -> Optional[datetime]:
    """Accept YAML dates, datetimes or free-form date strings."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        parsed = parser.parse(str(value))

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class FixtureSet:
    """Profiles and opportunities loaded from one file."""

    profiles: list[Profile] = field(default_factory=list)
    opportunities: list[Opportunity] = field(default_factory=list)


class FixtureLoader:
    """Loads matching fixtures from YAML."""

    def __init__(self, path: Optional[Path] = None):
        self.path = path

    def load(self, path: Optional[Path] = None) -> FixtureSet:
        """Load fixtures from a YAML file with `profiles` and `opportunities` lists."""
        path = path or self.path
        if not path:
            raise ValueError("No fixture path specified")

        if not path.exists():
            raise FileNotFoundError(f"Fixture file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        profiles = []
        for raw in data.get("profiles", []):
            raw = dict(raw)
            raw["work_history"] = [
                {
                    **work,
                    "start_date": _parse_date(work.get("start_date")),
                    "end_date": _parse_date(work.get("end_date")),
                }
                for work in raw.get("work_history", [])
            ]
            hidden = raw.pop("hidden_from_orgs", None)
            if hidden is not None:
                raw["privacy_settings"] = {"hidden_from_orgs": hidden}
            profiles.append(Profile.model_validate(raw))

        opportunities = []
        for raw in data.get("opportunities", []):
            raw = dict(raw)
            raw["deadline"] = _parse_date(raw.get("deadline"))
            if raw.get("created_at") is not None:
                raw["created_at"] = _parse_date(raw["created_at"])
            else:
                raw.pop("created_at", None)
            opportunities.append(Opportunity.model_validate(raw))

        logger.info(
            f"Loaded {len(profiles)} profiles and {len(opportunities)} opportunities from {path}"
        )
        return FixtureSet(profiles=profiles, opportunities=opportunities)

    async def seed(self, db: Database, path: Optional[Path] = None) -> FixtureSet:
        """Load fixtures and upsert them into the database."""
        fixtures = self.load(path)
        for profile in fixtures.profiles:
            await db.upsert_profile(profile)
        for opportunity in fixtures.opportunities:
            await db.upsert_opportunity(opportunity)
        return fixtures
