"""Tests for raw score validation and normalization."""
import math
from types import SimpleNamespace

import pytest
from hypothesis import assume, given, strategies as st

from reviewhub.errors import InvalidRubricLevelError, OutOfRangeError, ValidationError
from reviewhub.scoring.normalizer import normalize_score, score_for_level


def make_criterion(**overrides):
    values = dict(
        id=1,
        name="Technical Merit",
        scoring_type="numerical",
        weight=0.5,
        min_score=0.0,
        max_score=10.0,
        rubric_definition={},
    )
    values.update(overrides)
    return SimpleNamespace(**values)


RUBRIC = {"poor": 1, "fair": 2, "good": 3, "excellent": 4}

finite = st.floats(min_value=-1e6, max_value=1e6, allow_nan=False, allow_infinity=False)


@st.composite
def criteria_and_score(draw):
    low = draw(finite)
    span = draw(st.floats(min_value=1e-3, max_value=1e6))
    high = low + span
    assume(high > low)
    weight = draw(st.floats(min_value=0.01, max_value=100))
    raw = draw(st.floats(min_value=low, max_value=high))
    return make_criterion(min_score=low, max_score=high, weight=weight), raw


class TestNormalizeScore:
    def test_example_scores(self):
        first = normalize_score(8, make_criterion(weight=0.5, max_score=10))
        second = normalize_score(4, make_criterion(weight=0.3, max_score=5))

        assert first.normalized_score == pytest.approx(0.8)
        assert first.weighted_score == pytest.approx(0.4)
        assert second.normalized_score == pytest.approx(0.8)
        assert second.weighted_score == pytest.approx(0.24)

    def test_bounds_are_inclusive(self):
        criterion = make_criterion(min_score=2, max_score=7)
        assert normalize_score(2, criterion).normalized_score == 0.0
        assert normalize_score(7, criterion).normalized_score == 1.0

    @pytest.mark.parametrize("raw", [-0.01, 10.01, 100])
    def test_out_of_range_rejected(self, raw):
        with pytest.raises(OutOfRangeError) as exc:
            normalize_score(raw, make_criterion())
        assert exc.value.kind == "validation"
        assert exc.value.details["raw_score"] == raw

    @pytest.mark.parametrize("raw", [math.nan, math.inf, -math.inf])
    def test_non_finite_rejected(self, raw):
        with pytest.raises(OutOfRangeError):
            normalize_score(raw, make_criterion())

    def test_degenerate_range_normalizes_to_one(self):
        criterion = make_criterion(min_score=5, max_score=5)
        assert normalize_score(5, criterion).normalized_score == 1.0

    def test_binary_accepts_only_endpoints(self):
        criterion = make_criterion(scoring_type="binary", max_score=1)
        assert normalize_score(0, criterion).normalized_score == 0.0
        assert normalize_score(1, criterion).normalized_score == 1.0
        with pytest.raises(OutOfRangeError):
            normalize_score(0.5, criterion)

    def test_rubric_score_maps_to_level(self):
        criterion = make_criterion(scoring_type="rubric", min_score=1, max_score=4, rubric_definition=RUBRIC)
        result = normalize_score(3, criterion)
        assert result.rubric_level == "good"
        assert result.normalized_score == pytest.approx(2 / 3)

    def test_rubric_score_between_levels_rejected(self):
        criterion = make_criterion(scoring_type="rubric", min_score=1, max_score=4, rubric_definition=RUBRIC)
        with pytest.raises(InvalidRubricLevelError):
            normalize_score(2.5, criterion)

    def test_rubric_level_must_agree_with_score(self):
        criterion = make_criterion(scoring_type="rubric", min_score=1, max_score=4, rubric_definition=RUBRIC)
        with pytest.raises(InvalidRubricLevelError):
            normalize_score(3, criterion, rubric_level="poor")

    def test_categorical_behaves_like_rubric(self):
        criterion = make_criterion(
            scoring_type="categorical", min_score=0, max_score=3,
            rubric_definition={"solo": 1, "partial_team": 2, "full_team": 3},
        )
        assert normalize_score(2, criterion).rubric_level == "partial_team"
        with pytest.raises(InvalidRubricLevelError):
            normalize_score(0, criterion)

    def test_rubric_errors_are_validation_errors(self):
        assert issubclass(InvalidRubricLevelError, ValidationError)
        assert issubclass(OutOfRangeError, ValidationError)


class TestScoreForLevel:
    def test_known_level(self):
        criterion = make_criterion(scoring_type="rubric", rubric_definition=RUBRIC)
        assert score_for_level(criterion, "excellent") == 4.0

    def test_unknown_level(self):
        criterion = make_criterion(scoring_type="rubric", rubric_definition=RUBRIC)
        with pytest.raises(InvalidRubricLevelError) as exc:
            score_for_level(criterion, "stellar")
        assert exc.value.details["levels"] == list(RUBRIC)


class TestNormalizationProperties:
    @given(criteria_and_score())
    def test_in_range_scores_land_in_unit_interval(self, case):
        criterion, raw = case
        result = normalize_score(raw, criterion)
        assert 0.0 <= result.normalized_score <= 1.0
        assert result.weighted_score == pytest.approx(result.normalized_score * criterion.weight)

    @given(criteria_and_score())
    def test_endpoints_map_to_zero_and_one(self, case):
        criterion, _ = case
        assert normalize_score(criterion.min_score, criterion).normalized_score == 0.0
        assert normalize_score(criterion.max_score, criterion).normalized_score == 1.0

    @given(criteria_and_score(), st.floats(min_value=1e-3, max_value=1e3))
    def test_scores_outside_bounds_fail(self, case, offset):
        criterion, _ = case
        below = criterion.min_score - offset
        above = criterion.max_score + offset
        assume(below < criterion.min_score and above > criterion.max_score)
        with pytest.raises(OutOfRangeError):
            normalize_score(below, criterion)
        with pytest.raises(OutOfRangeError):
            normalize_score(above, criterion)

    @given(criteria_and_score(), criteria_and_score())
    def test_normalization_is_monotonic(self, first, second):
        criterion, a = first
        _, b = second
        assume(criterion.min_score <= b <= criterion.max_score)
        low, high = sorted((a, b))
        assert normalize_score(low, criterion).normalized_score <= normalize_score(high, criterion).normalized_score
