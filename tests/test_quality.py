import pytest

from webp_recompress.quality import (
    MAX_INTERVAL,
    TrialTable,
    clamp_quality,
    get_final_quality,
    get_quality_interval,
    round_to,
)


@pytest.mark.parametrize("raw", [-1000, -2, -0.4, 0, 0.6, 37.2, 99.5, 100, 100.01, 1e6])
def test_clamp_quality_in_range_and_idempotent(raw):
    once = clamp_quality(raw)
    assert 0 <= once <= 100
    assert clamp_quality(once) == once


def test_clamp_quality_bounds():
    assert clamp_quality(-5) == 0
    assert clamp_quality(102) == 100
    assert clamp_quality(64) == 64


def test_quality_interval_is_always_positive():
    for score in [0.0, 0.001, 0.0199, 0.02, 0.0201, 0.1, 0.5, 1.0, 2.0]:
        for threshold in [0.0, 0.02, 0.3, 1.0]:
            for quality in [0, 50, 100]:
                assert get_quality_interval(score, threshold, quality) >= 1


def test_quality_interval_grows_with_gap():
    threshold = 0.02
    steps = [get_quality_interval(threshold + gap, threshold, 75) for gap in [0.0, 0.004, 0.02, 0.05, 0.5]]
    assert steps == sorted(steps)
    assert steps[0] == 1
    assert steps[-1] == MAX_INTERVAL


def test_quality_interval_is_symmetric_around_threshold():
    assert get_quality_interval(0.01, 0.03, 50) == get_quality_interval(0.05, 0.03, 50)


def test_trial_table_counts_attempts_and_keeps_last_measurement():
    trials = TrialTable()
    first = trials.record(80, 0.03, 5000)
    assert first.attempts == 1

    again = trials.record(80, 0.025, 4900)
    assert again is first
    assert again.attempts == 2
    assert (again.score, again.size) == (0.025, 4900)

    trials.record(70, 0.05, 4000)
    assert len(trials) == 2
    assert 70 in trials
    assert trials.get(60) is None


def test_final_quality_prefers_smallest_passing_size():
    trials = TrialTable()
    trials.record(80, 0.01, 500)
    trials.record(70, 0.02, 300)

    assert get_final_quality(0.01, trials, threshold=0.05) == (70, 300)


def test_final_quality_ignores_failing_and_oversized_entries():
    trials = TrialTable()
    trials.record(90, 0.005, 1200)
    trials.record(60, 0.08, 100)
    trials.record(75, 0.015, 700)

    assert get_final_quality(0.015, trials, threshold=0.02, input_size=1000) == (75, 700)


def test_final_quality_defaults_threshold_to_score():
    trials = TrialTable()
    trials.record(85, 0.01, 900)
    trials.record(65, 0.03, 400)

    assert get_final_quality(0.01, trials) == (85, 900)


def test_final_quality_without_candidates():
    trials = TrialTable()
    trials.record(50, 0.5, 100)
    with pytest.raises(ValueError):
        get_final_quality(0.5, trials, threshold=0.02)


def test_round_to():
    assert round_to(97.65625) == 97.66
    assert round_to(0.030000000000000002, 4) == 0.03
