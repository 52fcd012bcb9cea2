"""Tests for saving scores, submission and the assignment state machine."""
from datetime import datetime, timedelta

import pytest

from reviewhub.errors import (
    ConflictError,
    ForbiddenError,
    InvalidRubricLevelError,
    OutOfRangeError,
    ValidationError,
)
from reviewhub.models import Review, ReviewAssignment, ReviewScore, ReviewSettings
from reviewhub.services import catalog, reviews

MERIT, IMPACT, PRESENTATION = 100, 101, 102


@pytest.fixture
def assignment(seeded):
    row = ReviewAssignment(application_id=10, reviewer_id=2, assigned_by=1)
    seeded.add(row)
    seeded.commit()
    return row


def score(criteria_id, raw=None, **extra):
    return {"criteria_id": criteria_id, "raw_score": raw, **extra}


def stored_scores(db, assignment):
    db.expire_all()
    review = db.query(Review).filter(Review.assignment_id == assignment.id).first()
    if review is None:
        return {}
    return {s.criteria_id: s for s in db.query(ReviewScore).filter(ReviewScore.review_id == review.id)}


class TestSaveScores:
    def test_first_save_moves_to_in_progress(self, seeded, reviewer, assignment):
        outcome = reviews.save_scores(seeded, reviewer, assignment.id, [score(MERIT, 8)])

        assert outcome.status == "in_progress"
        assert outcome.batch.all_ok
        saved = stored_scores(seeded, assignment)[MERIT]
        assert (saved.normalized_score, saved.weighted_score) == (pytest.approx(0.8), pytest.approx(0.4))

    def test_full_save_does_not_complete(self, seeded, reviewer, assignment):
        outcome = reviews.save_scores(seeded, reviewer, assignment.id, [score(MERIT, 8), score(IMPACT, 4)])
        assert outcome.status == "in_progress"
        assert outcome.assignment.completed_at is None
        assert outcome.review_score == pytest.approx(0.8)

    def test_last_write_wins(self, seeded, reviewer, assignment):
        reviews.save_scores(seeded, reviewer, assignment.id, [score(MERIT, 8, score_rationale="solid")])
        reviews.save_scores(seeded, reviewer, assignment.id, [score(MERIT, 3, score_rationale="rethought")])

        saved = stored_scores(seeded, assignment)
        assert len(saved) == 1
        assert saved[MERIT].raw_score == 3
        assert saved[MERIT].score_rationale == "rethought"

    def test_review_score_independent_of_save_order(self, seeded, reviewer, other_reviewer, owner):
        seeded.add(ReviewAssignment(application_id=11, reviewer_id=2, assigned_by=1))
        seeded.add(ReviewAssignment(application_id=11, reviewer_id=3, assigned_by=1))
        seeded.commit()
        first, second = seeded.query(ReviewAssignment).order_by(ReviewAssignment.reviewer_id).all()
        entries = [score(MERIT, 6), score(IMPACT, 2), score(PRESENTATION, rubric_level="good")]

        for entry in entries:
            a = reviews.save_scores(seeded, reviewer, first.id, [entry])
        for entry in reversed(entries):
            b = reviews.save_scores(seeded, other_reviewer, second.id, [entry])

        assert a.review_score == pytest.approx(b.review_score)

    def test_rubric_level_supplies_raw_score(self, seeded, reviewer, assignment):
        reviews.save_scores(seeded, reviewer, assignment.id, [score(PRESENTATION, rubric_level="excellent")])
        saved = stored_scores(seeded, assignment)[PRESENTATION]
        assert (saved.raw_score, saved.rubric_level, saved.normalized_score) == (4, "excellent", 1.0)

    def test_validation_happens_before_any_write(self, seeded, reviewer, assignment):
        with pytest.raises(OutOfRangeError) as exc:
            reviews.save_scores(seeded, reviewer, assignment.id, [score(MERIT, 8), score(IMPACT, 6)])

        assert [e["criteria_id"] for e in exc.value.details["errors"]] == [IMPACT]
        assert stored_scores(seeded, assignment) == {}
        assert seeded.get(ReviewAssignment, assignment.id).status == "not_started"

    def test_every_invalid_entry_is_reported(self, seeded, reviewer, assignment):
        with pytest.raises(ValidationError) as exc:
            reviews.save_scores(seeded, reviewer, assignment.id, [
                score(MERIT, 11),
                score(PRESENTATION, 2.5),
                score(999, 1),
            ])
        assert [e["criteria_id"] for e in exc.value.details["errors"]] == [MERIT, PRESENTATION, 999]

    def test_unknown_rubric_level(self, seeded, reviewer, assignment):
        with pytest.raises(InvalidRubricLevelError):
            reviews.save_scores(seeded, reviewer, assignment.id, [score(PRESENTATION, rubric_level="stellar")])

    def test_criterion_of_another_program(self, seeded, owner, reviewer, assignment):
        foreign = catalog.create_criterion(seeded, owner, 2, {"name": "Fit", "max_score": 5})
        with pytest.raises(ValidationError):
            reviews.save_scores(seeded, reviewer, assignment.id, [score(foreign.id, 3)])

    def test_duplicate_criterion_in_one_request(self, seeded, reviewer, assignment):
        with pytest.raises(ValidationError):
            reviews.save_scores(seeded, reviewer, assignment.id, [score(MERIT, 1), score(MERIT, 2)])

    def test_missing_raw_score(self, seeded, reviewer, assignment):
        with pytest.raises(ValidationError):
            reviews.save_scores(seeded, reviewer, assignment.id, [score(MERIT)])

    def test_confidence_must_be_a_fraction(self, seeded, reviewer, assignment):
        with pytest.raises(ValidationError):
            reviews.save_scores(seeded, reviewer, assignment.id, [score(MERIT, 5, reviewer_confidence=1.5)])

    def test_only_assigned_reviewer(self, seeded, other_reviewer, owner, assignment):
        with pytest.raises(ForbiddenError):
            reviews.save_scores(seeded, other_reviewer, assignment.id, [score(MERIT, 5)])
        with pytest.raises(ForbiddenError):
            reviews.save_scores(seeded, owner, assignment.id, [score(MERIT, 5)])

    def test_empty_payload(self, seeded, reviewer, assignment):
        with pytest.raises(ValidationError):
            reviews.save_scores(seeded, reviewer, assignment.id, [])


class TestSubmitReview:
    def test_complete_submission(self, seeded, reviewer, assignment):
        outcome = reviews.submit_review(
            seeded, reviewer, assignment.id,
            [score(MERIT, 8), score(IMPACT, 4)],
            comments="Strong proposal",
        )

        assert outcome.status == "completed"
        assert outcome.assignment.completed_at is not None
        assert outcome.review.submitted_at is not None
        assert outcome.review.comments == "Strong proposal"
        assert outcome.review_score == pytest.approx(0.8)

    def test_earlier_drafts_count_toward_coverage(self, seeded, reviewer, assignment):
        reviews.save_scores(seeded, reviewer, assignment.id, [score(MERIT, 8)])
        outcome = reviews.submit_review(seeded, reviewer, assignment.id, [score(IMPACT, 4)])
        assert outcome.status == "completed"

    def test_missing_required_criterion_leaves_status(self, seeded, reviewer, assignment):
        reviews.save_scores(seeded, reviewer, assignment.id, [score(PRESENTATION, 3)])

        with pytest.raises(ConflictError) as exc:
            reviews.submit_review(seeded, reviewer, assignment.id, [score(MERIT, 8)], comments="Not yet")

        assert [m["criteria_id"] for m in exc.value.details["missing"]] == [IMPACT]
        assert seeded.get(ReviewAssignment, assignment.id).status == "in_progress"
        assert MERIT not in stored_scores(seeded, assignment)

    def test_optional_criteria_not_required(self, seeded, reviewer, assignment):
        outcome = reviews.submit_review(seeded, reviewer, assignment.id, [score(MERIT, 8), score(IMPACT, 4)])
        assert PRESENTATION not in stored_scores(seeded, assignment)
        assert outcome.status == "completed"

    def test_completed_review_is_locked(self, seeded, reviewer, assignment):
        reviews.submit_review(seeded, reviewer, assignment.id, [score(MERIT, 8), score(IMPACT, 4)])

        with pytest.raises(ConflictError):
            reviews.save_scores(seeded, reviewer, assignment.id, [score(MERIT, 1)])
        with pytest.raises(ConflictError):
            reviews.submit_review(seeded, reviewer, assignment.id, [score(MERIT, 1)])
        assert stored_scores(seeded, assignment)[MERIT].raw_score == 8

    def test_comments_disabled_by_settings(self, seeded, reviewer, assignment):
        seeded.add(ReviewSettings(program_id=1, allow_reviewer_comments=False))
        seeded.commit()
        with pytest.raises(ValidationError):
            reviews.submit_review(seeded, reviewer, assignment.id, [score(MERIT, 8), score(IMPACT, 4)], comments="hi")
        assert seeded.get(ReviewAssignment, assignment.id).status == "not_started"


class TestClearScores:
    def test_reviewer_clears_draft(self, seeded, reviewer, assignment):
        reviews.save_scores(seeded, reviewer, assignment.id, [score(MERIT, 8)])
        cleared = reviews.clear_scores(seeded, reviewer, assignment.id)

        assert cleared.status == "not_started"
        assert stored_scores(seeded, assignment) == {}

    def test_reviewer_cannot_reset_completed(self, seeded, reviewer, assignment):
        reviews.submit_review(seeded, reviewer, assignment.id, [score(MERIT, 8), score(IMPACT, 4)])
        with pytest.raises(ForbiddenError):
            reviews.clear_scores(seeded, reviewer, assignment.id)

    def test_owner_resets_completed(self, seeded, owner, reviewer, assignment):
        reviews.submit_review(seeded, reviewer, assignment.id, [score(MERIT, 8), score(IMPACT, 4)])
        cleared = reviews.clear_scores(seeded, owner, assignment.id)

        assert cleared.status == "not_started"
        assert cleared.completed_at is None
        assert stored_scores(seeded, assignment) == {}
        assert reviews.save_scores(seeded, reviewer, assignment.id, [score(MERIT, 2)]).status == "in_progress"

    def test_stranger_cannot_clear(self, seeded, other_reviewer, assignment):
        with pytest.raises(ForbiddenError):
            reviews.clear_scores(seeded, other_reviewer, assignment.id)


class TestReadingReviews:
    def test_get_review(self, seeded, reviewer, assignment):
        reviews.save_scores(seeded, reviewer, assignment.id, [score(MERIT, 8), score(IMPACT, 4)])
        detail = reviews.get_review(seeded, reviewer, assignment.id)

        assert [c.id for c in detail["criteria"]] == [MERIT, IMPACT, PRESENTATION]
        assert {s.criteria_id for s in detail["scores"]} == {MERIT, IMPACT}
        assert detail["review_score"] == pytest.approx(0.8)
        assert detail["application"]["applicant_name"] == "Alex Applicant"
        assert detail["is_legacy"] is False

    def test_blind_review_hides_applicant(self, seeded, reviewer, owner, assignment):
        seeded.add(ReviewSettings(program_id=1, blind_review=True))
        seeded.commit()
        assert reviews.get_review(seeded, reviewer, assignment.id)["application"]["applicant_name"] is None
        assert reviews.get_review(seeded, owner, assignment.id)["application"]["applicant_name"] == "Alex Applicant"

    def test_legacy_review(self, seeded, reviewer, assignment):
        seeded.add(Review(assignment_id=assignment.id, application_id=10, reviewer_id=2,
                          overall_score=7, comments="Legacy"))
        seeded.commit()
        detail = reviews.get_review(seeded, reviewer, assignment.id)
        assert detail["is_legacy"] is True
        assert detail["review_score"] == pytest.approx(0.7)

    def test_stranger_cannot_read(self, seeded, other_reviewer, assignment):
        with pytest.raises(ForbiddenError):
            reviews.get_review(seeded, other_reviewer, assignment.id)

    def test_update_comments(self, seeded, reviewer, assignment):
        review = reviews.update_comments(seeded, reviewer, assignment.id, strengths="Clear aims")
        assert review.strengths == "Clear aims"
        assert seeded.get(ReviewAssignment, assignment.id).status == "not_started"

    def test_list_my_reviews(self, seeded, owner, reviewer, assignment):
        seeded.add_all([
            ReviewAssignment(application_id=11, reviewer_id=2, assigned_by=1,
                             deadline=datetime.utcnow() - timedelta(days=1)),
            ReviewAssignment(application_id=20, reviewer_id=2, assigned_by=1),
            ReviewAssignment(application_id=12, reviewer_id=3, assigned_by=1),
        ])
        seeded.commit()

        assert len(reviews.list_my_reviews(seeded, reviewer)) == 3
        assert [a.application_id for a in reviews.list_my_reviews(seeded, reviewer, status="overdue")] == [11]
        assert {a.application_id for a in reviews.list_my_reviews(seeded, reviewer, program_id=1)} == {10, 11}
        with pytest.raises(ValidationError):
            reviews.list_my_reviews(seeded, reviewer, status="lost")
