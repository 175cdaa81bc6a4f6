"""
Shadow validation of oracle output.

Oracle responses are validated for observability but never rejected: when
validation fails the result is rebuilt best-effort from the raw payload and
tagged as a fallback so callers can tell trusted data from salvaged data.
"""

from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.models import (
    GrowthArea,
    MatchExplanation,
    MatchProbability,
    Recommendation,
    ScoredMatch,
)

VALID_TIERS = ("great", "good", "exploring")


class OracleRecommendation(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str
    action: str
    priority: str


class OracleMatch(BaseModel):
    """One scored opportunity as returned by the oracle."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    opportunity_id: str = Field(alias="opportunityId")
    tier: Literal["great", "good", "exploring"]
    score: float = Field(ge=0, le=100)
    strengths: list[str]
    gap: Optional[str] = None
    interview_chance: str = Field(alias="interviewChance")
    ranking: str
    confidence: str
    recommendations: list[OracleRecommendation] = Field(default_factory=list)

    def to_scored_match(self, validated: bool = True) -> ScoredMatch:
        return ScoredMatch(
            opportunity_id=self.opportunity_id,
            tier=self.tier,
            score=self.score,
            explanation=MatchExplanation(strengths=self.strengths, gap=self.gap),
            probability=MatchProbability(
                interview_chance=self.interview_chance,
                ranking=self.ranking,
                confidence=self.confidence,
            ),
            recommendations=[
                Recommendation(type=r.type, action=r.action, priority=r.priority)
                for r in self.recommendations
            ],
            validated=validated,
        )


class MatchingResult(BaseModel):
    """Full tool payload: scored matches plus optional growth themes."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    matches: list[OracleMatch]
    growth_areas: list[GrowthArea] = Field(default_factory=list, alias="growthAreas")


@dataclass
class Validated:
    """Oracle output that passed validation."""

    result: MatchingResult
    trusted: bool = field(default=True, init=False)


@dataclass
class RawFallback:
    """Oracle output that failed validation, salvaged best-effort."""

    result: MatchingResult
    errors: list[str] = field(default_factory=list)
    trusted: bool = field(default=False, init=False)


ValidationOutcome = Union[Validated, RawFallback]


def _as_list(value: Any) -> list[Any]:
    """Non-list values (numbers, strings, objects) count as empty."""
    return value if isinstance(value, list) else []


def _as_str_list(value: Any) -> list[str]:
    return [str(item) for item in _as_list(value) if item is not None]


def _salvage_match(item: Any) -> Optional[OracleMatch]:
    """Rebuild a match from a malformed item, None when it cannot be persisted."""
    if not isinstance(item, dict):
        return None
    opportunity_id = item.get("opportunityId")
    tier = item.get("tier")
    if not opportunity_id or tier not in VALID_TIERS:
        return None

    try:
        score = float(item.get("score", 0))
    except (TypeError, ValueError):
        score = 0.0

    recommendations = []
    for rec in _as_list(item.get("recommendations")):
        if isinstance(rec, dict) and rec.get("action"):
            recommendations.append(
                OracleRecommendation(
                    type=str(rec.get("type", "")),
                    action=str(rec["action"]),
                    priority=str(rec.get("priority", "")),
                )
            )

    gap = item.get("gap")
    return OracleMatch(
        opportunity_id=str(opportunity_id),
        tier=tier,
        score=max(0.0, min(100.0, score)),
        strengths=_as_str_list(item.get("strengths")),
        gap=str(gap) if gap else None,
        interview_chance=str(item.get("interviewChance") or ""),
        ranking=str(item.get("ranking") or ""),
        confidence=str(item.get("confidence") or ""),
        recommendations=recommendations,
    )


def _salvage(raw: Any) -> MatchingResult:
    if not isinstance(raw, dict):
        return MatchingResult(matches=[])

    matches = []
    for item in _as_list(raw.get("matches")):
        try:
            matches.append(OracleMatch.model_validate(item))
        except ValidationError:
            salvaged = _salvage_match(item)
            if salvaged is not None:
                matches.append(salvaged)

    growth_areas = []
    for area in _as_list(raw.get("growthAreas")):
        try:
            growth_areas.append(GrowthArea.model_validate(area))
        except ValidationError:
            continue

    return MatchingResult(matches=matches, growth_areas=growth_areas)


def validate_matching_result(raw: Any) -> ValidationOutcome:
    """Validate a raw tool payload, falling back to a salvaged shape on failure."""
    try:
        return Validated(result=MatchingResult.model_validate(raw))
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        logger.warning(
            f"Oracle output failed validation ({len(errors)} issues), "
            f"using best-effort data: {errors[:5]}"
        )
        return RawFallback(result=_salvage(raw), errors=errors)
