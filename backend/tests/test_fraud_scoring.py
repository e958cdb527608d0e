import random
from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import InvalidSubmission
from app.services.fraud_scoring import (
    DEFAULT_POLICY,
    FraudDetection,
    FraudFlags,
    FraudPolicy,
    SubmissionRecord,
    decide,
    risk_profile,
    score_submission,
    timing_stddev,
    unscored_decision,
    warning_level,
)


_T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _sub(
    *,
    answers=(0, 1, 2),
    time_spent=60.0,
    quiz_id="quiz-1",
    user_id="user-1",
    session_id="s-1",
    minutes_ago: int | None = None,
) -> SubmissionRecord:
    return SubmissionRecord(
        user_id=user_id,
        quiz_id=quiz_id,
        answers=tuple(answers),
        time_spent=float(time_spent),
        session_id=session_id,
        submitted_at=(_T0 - timedelta(minutes=minutes_ago)) if minutes_ago is not None else None,
    )


def test_clean_submission_scores_zero():
    d = score_submission(_sub(answers=(0, 1), time_spent=40), [])
    assert d.risk_score == 0
    assert d.flags == FraudFlags()
    assert d.average_time_per_question == 20.0
    assert d.retry_count == 1

    decision = decide(d)
    assert decision.blocked is False
    assert decision.warning_level == "none"
    assert decision.allow_certification is True
    assert decision.message == "Submission looks good! Keep up the great work."


def test_very_fast_completion_blocks():
    d = score_submission(_sub(answers=(0, 1, 2), time_spent=3), [])
    assert d.flags.fast_completion is True
    assert d.risk_score == 70

    decision = decide(d)
    assert decision.blocked is True
    assert decision.warning_level == "high"
    assert decision.allow_certification is False
    assert "unusually fast completion" in decision.message


@pytest.mark.parametrize("seconds_per_q", [15, 15.5, 20, 60, 300])
def test_no_fast_completion_at_or_above_threshold(seconds_per_q):
    d = score_submission(_sub(answers=(0, 1, 2, 3), time_spent=seconds_per_q * 4), [])
    assert d.flags.fast_completion is False
    assert d.risk_score == 0


@pytest.mark.parametrize("seconds_per_q,expected", [(14.9, 30), (5, 30), (4.99, 70), (0.1, 70)])
def test_fast_completion_contribution(seconds_per_q, expected):
    d = score_submission(_sub(answers=(1, 1), time_spent=seconds_per_q * 2), [])
    assert d.flags.fast_completion is True
    assert d.risk_score == expected


def test_identical_retry_on_same_quiz():
    prior = _sub(answers=(0, 1, 2), time_spent=90, minutes_ago=10)
    d = score_submission(_sub(answers=(0, 1, 2), time_spent=60), [prior])
    assert d.flags.identical_retries is True
    assert d.flags.fast_completion is False
    assert d.risk_score == 25
    assert d.retry_count == 2
    assert decide(d).blocked is False


def test_identical_answers_on_other_quiz_are_ignored():
    prior = _sub(answers=(0, 1, 2), quiz_id="quiz-2", minutes_ago=10)
    d = score_submission(_sub(answers=(0, 1, 2), time_spent=60), [prior])
    assert d.flags.identical_retries is False
    assert d.risk_score == 0


def test_first_attempt_never_counts_as_identical_retry():
    d = score_submission(_sub(answers=(3, 3, 3), time_spent=60), [])
    assert d.flags.identical_retries is False


def test_retry_volume_sets_suspicious_pattern():
    prior = [
        _sub(answers=(i % 4, 1, 2), time_spent=60 + i * 20, minutes_ago=i + 1, session_id=f"s-{i}")
        for i in range(6)
    ]
    d = score_submission(_sub(answers=(3, 2, 1), time_spent=60), prior)
    assert d.retry_count == 7
    assert d.flags.suspicious_pattern is True
    assert d.risk_score >= 20


def test_timing_regularity_uses_five_most_recent():
    # Four recent attempts at ~20s/question on different quizzes.
    prior = [_sub(quiz_id=f"q{i}", answers=(0, 1, 2), time_spent=60 + i, minutes_ago=i + 1) for i in range(4)]
    # Older, very different timing falls outside the window.
    prior.append(_sub(quiz_id="old", answers=(0, 1, 2), time_spent=900, minutes_ago=500))
    d = score_submission(_sub(quiz_id="new", time_spent=60), list(reversed(prior)))
    assert d.flags.suspicious_pattern is True
    assert d.risk_score == 15


def test_timing_regularity_needs_three_submissions():
    prior = [_sub(quiz_id="other", time_spent=60, minutes_ago=1)]
    d = score_submission(_sub(quiz_id="new", time_spent=60), prior)
    assert d.flags.suspicious_pattern is False
    assert d.risk_score == 0


def test_irregular_timing_is_not_flagged():
    prior = [
        _sub(quiz_id="a", time_spent=45, minutes_ago=1),
        _sub(quiz_id="b", time_spent=120, minutes_ago=2),
        _sub(quiz_id="c", time_spent=300, minutes_ago=3),
    ]
    d = score_submission(_sub(quiz_id="new", time_spent=60), prior)
    assert d.flags.suspicious_pattern is False


def test_session_volume():
    prior = [
        _sub(quiz_id=f"q{i}", time_spent=60 + 37 * i, minutes_ago=i + 1, session_id="busy")
        for i in range(10)
    ]
    d = score_submission(_sub(quiz_id="new", time_spent=60, session_id="busy"), prior)
    assert d.flags.suspicious_pattern is True
    assert d.risk_score == 10


def test_accuracy_rule_skipped_without_answer_key():
    d = score_submission(_sub(answers=(0, 1, 2), time_spent=45), [])
    assert d.flags.impossible_accuracy is False
    assert d.risk_score == 0


def test_perfect_accuracy_with_quick_answers():
    d = score_submission(_sub(answers=(0, 1, 2), time_spent=54), [], answer_key=(0, 1, 2))
    assert d.flags.impossible_accuracy is True
    assert d.risk_score == 35


def test_high_accuracy_with_very_quick_answers_stacks_with_fast_completion():
    answers = tuple(range(10))
    key = answers[:9] + (0,)
    d = score_submission(_sub(answers=answers, time_spent=90), [], answer_key=key)
    # 90% correct at 9s/question: fast completion (+30) and high accuracy (+25).
    assert d.flags.fast_completion is True
    assert d.flags.impossible_accuracy is True
    assert d.risk_score == 55


def test_perfect_accuracy_does_not_also_add_high_accuracy_penalty():
    d = score_submission(_sub(answers=(0, 1), time_spent=16), [], answer_key=(0, 1))
    # 8s/question: fast (+30) + perfect accuracy (+35), high-accuracy rule not added on top.
    assert d.risk_score == 65


def test_low_accuracy_is_not_flagged():
    d = score_submission(_sub(answers=(0, 1, 2), time_spent=30), [], answer_key=(3, 3, 3))
    assert d.flags.impossible_accuracy is False


def test_score_is_clamped_to_100():
    prior = [
        _sub(answers=(0, 0), time_spent=2, minutes_ago=i + 1, session_id="s-1")
        for i in range(12)
    ]
    d = score_submission(_sub(answers=(0, 0), time_spent=2, session_id="s-1"), prior, answer_key=(0, 0))
    assert d.risk_score == 100
    assert all(
        [d.flags.fast_completion, d.flags.identical_retries, d.flags.impossible_accuracy, d.flags.suspicious_pattern]
    )


def test_score_always_in_range_under_random_input():
    rng = random.Random(1234)
    for _ in range(300):
        n = rng.randint(1, 12)
        history = [
            _sub(
                answers=[rng.randint(0, 3) for _ in range(rng.randint(1, 12))],
                time_spent=rng.uniform(0.5, 600),
                quiz_id=rng.choice(["a", "b"]),
                session_id=rng.choice(["s1", "s2"]),
                minutes_ago=rng.randint(0, 1000) if rng.random() > 0.2 else None,
            )
            for _ in range(rng.randint(0, 20))
        ]
        sub = _sub(
            answers=[rng.randint(0, 3) for _ in range(n)],
            time_spent=rng.uniform(0.5, 600),
            quiz_id=rng.choice(["a", "b"]),
            session_id=rng.choice(["s1", "s2"]),
        )
        key = [rng.randint(0, 3) for _ in range(n)] if rng.random() > 0.5 else None
        d = score_submission(sub, history, answer_key=key)
        assert 0 <= d.risk_score <= 100
        assert isinstance(d.risk_score, int)


def test_scoring_is_idempotent():
    history = [_sub(answers=(0, 1, 2), minutes_ago=i + 1) for i in range(4)]
    sub = _sub(answers=(0, 1, 2), time_spent=30)
    a = score_submission(sub, history)
    b = score_submission(sub, history)
    assert a.risk_score == b.risk_score
    assert a.flags == b.flags
    assert len(history) == 4


def test_history_order_does_not_matter():
    history = [
        _sub(quiz_id="x", time_spent=60, minutes_ago=1),
        _sub(quiz_id="y", time_spent=61, minutes_ago=2),
        _sub(quiz_id="z", time_spent=900, minutes_ago=3),
        _sub(quiz_id="w", time_spent=1500, minutes_ago=4),
    ]
    sub = _sub(quiz_id="new", time_spent=60)
    a = score_submission(sub, history)
    b = score_submission(sub, list(reversed(history)))
    assert a.risk_score == b.risk_score
    assert a.flags == b.flags


def test_untimestamped_history_is_taken_as_most_recent_first():
    # No timestamps: the first four given entries form the timing window with the current one.
    history = [_sub(quiz_id=f"q{i}", time_spent=60 + i) for i in range(4)]
    history.append(_sub(quiz_id="late", time_spent=900))
    sub = _sub(quiz_id="new", time_spent=60)

    assert score_submission(sub, history).flags.suspicious_pattern is True
    assert score_submission(sub, list(reversed(history))).flags.suspicious_pattern is False


@pytest.mark.parametrize("answers,time_spent", [((), 30), ((0, 1), 0), ((0, 1), -5), ((0, 1), float("inf")), ((0, 1), float("nan"))])
def test_invalid_submission_is_rejected(answers, time_spent):
    with pytest.raises(InvalidSubmission):
        score_submission(_sub(answers=answers, time_spent=time_spent), [])


def test_timing_stddev_requires_two_samples():
    assert timing_stddev([]) is None
    assert timing_stddev([_sub(time_spent=30)]) is None
    assert timing_stddev([_sub(time_spent=30), _sub(time_spent=30)]) == 0.0


@pytest.mark.parametrize(
    "score,level",
    [(0, "none"), (29, "none"), (30, "low"), (49, "low"), (50, "medium"), (69, "medium"), (70, "high"), (79, "high"), (80, "critical"), (100, "critical")],
)
def test_warning_levels(score, level):
    assert warning_level(score) == level


def _detection(score: int, **flags) -> FraudDetection:
    return FraudDetection(
        user_id="u",
        session_id="s",
        quiz_id="q",
        risk_score=score,
        flags=FraudFlags(**flags),
        time_spent=60.0,
        average_time_per_question=20.0,
        retry_count=1,
    )


def test_decision_messages():
    assert decide(_detection(55)).message.startswith("Your submission has been flagged for review")
    assert decide(_detection(55)).allow_certification is False
    assert decide(_detection(35)).message.startswith("Please ensure you're taking adequate time")
    assert decide(_detection(35)).allow_certification is True


def test_custom_policy_thresholds():
    policy = FraudPolicy(block_threshold=25, fast_seconds_per_question=30.0)
    d = score_submission(_sub(answers=(0, 1), time_spent=50), [], policy=policy)
    assert d.flags.fast_completion is True
    assert decide(d, policy).blocked is True
    assert decide(d, DEFAULT_POLICY).blocked is False


def test_unscored_decision_allows():
    decision = unscored_decision(_sub(answers=(0, 1), time_spent=2))
    assert decision.blocked is False
    assert decision.allow_certification is True
    assert decision.detection.risk_score == 0
    assert decision.message == "Fraud detection unavailable"


def test_risk_profile():
    assert risk_profile([]).level == "new"

    low = risk_profile([_detection(10), _detection(20)])
    assert low.level == "low"
    assert low.average_risk == 15.0
    assert low.flag_count == 0

    medium = risk_profile([_detection(0, fast_completion=True, identical_retries=True, suspicious_pattern=True)])
    assert medium.level == "medium"
    assert medium.flag_count == 3

    assert risk_profile([_detection(60)]).level == "high"
    assert risk_profile([_detection(90), _detection(60)]).level == "critical"
