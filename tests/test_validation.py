"""
Unit tests for shadow validation of oracle output (matcher/validation.py).
"""

import pytest

from matcher.validation import RawFallback, Validated, validate_matching_result

from conftest import make_match


class TestValidateMatchingResult:
    """Tests for validate_matching_result."""

    def test_well_formed_output_is_validated(self):
        raw = {
            "matches": [make_match("opp-1", tier="great", score=91)],
            "growthAreas": [{"theme": "Skills to build", "items": ["Rust"]}],
        }

        outcome = validate_matching_result(raw)

        assert isinstance(outcome, Validated)
        assert outcome.trusted is True
        match = outcome.result.matches[0]
        assert match.opportunity_id == "opp-1"
        assert match.interview_chance == "Good chance"
        assert outcome.result.growth_areas[0].items == ["Rust"]

    def test_numeric_strings_are_coerced(self):
        outcome = validate_matching_result({"matches": [make_match("opp-1", score="72")]})

        assert isinstance(outcome, Validated)
        assert outcome.result.matches[0].score == 72

    def test_missing_growth_areas_and_recommendations_default(self):
        item = make_match("opp-1")
        del item["recommendations"]

        outcome = validate_matching_result({"matches": [item]})

        assert isinstance(outcome, Validated)
        assert outcome.result.matches[0].recommendations == []
        assert outcome.result.growth_areas == []

    def test_extra_keys_are_allowed(self):
        item = make_match("opp-1")
        item["notes"] = "extra"

        outcome = validate_matching_result({"matches": [item], "summary": "ok"})

        assert isinstance(outcome, Validated)

    def test_schema_drift_falls_back_to_salvaged_data(self):
        good = make_match("opp-1")
        drifted = make_match("opp-2", score=250)
        del drifted["confidence"]
        unusable = make_match("opp-3", tier="perfect")

        outcome = validate_matching_result(
            {
                "matches": [good, drifted, unusable, "not a match"],
                "growthAreas": [{"theme": "Skills"}, {"items": ["no theme"]}],
            }
        )

        assert isinstance(outcome, RawFallback)
        assert outcome.trusted is False
        assert outcome.errors
        ids = [m.opportunity_id for m in outcome.result.matches]
        assert ids == ["opp-1", "opp-2"]
        assert outcome.result.matches[1].score == 100
        assert outcome.result.matches[1].confidence == ""
        assert [a.theme for a in outcome.result.growth_areas] == ["Skills"]

    def test_non_dict_payload_yields_empty_fallback(self):
        outcome = validate_matching_result(["unexpected"])

        assert isinstance(outcome, RawFallback)
        assert outcome.result.matches == []

    def test_to_scored_match_carries_trust_flag(self):
        outcome = validate_matching_result({"matches": [make_match("opp-1")]})

        scored = outcome.result.matches[0].to_scored_match(validated=False)

        assert scored.validated is False
        assert scored.explanation.gap == "Publish an evaluation write-up"
        assert scored.probability.ranking == "Likely top 20%"
        assert scored.recommendations[0].priority == "high"


def _with_scalar_recommendations():
    item = make_match("opp-1")
    item["recommendations"] = 7
    return {"matches": [item]}


class TestNonListFields:
    """Scalar values where lists are expected fall back instead of raising."""

    @pytest.mark.parametrize(
        "raw,expected_ids",
        [
            ({"matches": 5}, []),
            ({"matches": True, "growthAreas": []}, []),
            ({"matches": [], "growthAreas": 3}, []),
            (_with_scalar_recommendations(), ["opp-1"]),
        ],
    )
    def test_scalar_list_fields(self, raw, expected_ids):
        outcome = validate_matching_result(raw)

        assert isinstance(outcome, RawFallback)
        assert [m.opportunity_id for m in outcome.result.matches] == expected_ids
        assert outcome.result.growth_areas == []

    def test_scalar_recommendations_keep_the_match(self):
        outcome = validate_matching_result(_with_scalar_recommendations())

        match = outcome.result.matches[0]
        assert match.recommendations == []
        assert match.strengths == ["Strong Python background", "Relevant research interests"]
