"""
Tests for per-frame form issues and per-rep form scores.
"""

import pytest

from liftcore.cv.exercise_profiles import IssueSeverity
from liftcore.cv.form_analyzer import (
    FormAnalyzer, angle_penalty, deviation_penalty, tempo_adherence,
)
from liftcore.cv.pose import Joint, Present
from liftcore.cv.rep_phase import PhaseUpdate, RepCycle, RepPhase

from conftest import squat_frame


def knee_cave_frame(t):
    """Knees 0.04 apart under hips 0.2 apart."""
    return squat_frame(t, 120.0, extra={
        Joint.LEFT_HIP: Present((0.4, 0.6), 0.9),
        Joint.RIGHT_HIP: Present((0.6, 0.6), 0.9),
        Joint.RIGHT_KNEE: Present((0.52, 0.4), 0.9),
        Joint.LEFT_KNEE: Present((0.48, 0.4), 0.9),
    })


def update(t, previous, phase, completed=None):
    return PhaseUpdate(t, previous, phase, angle=120.0, completed=completed)


def cycle(rep_number=1, ecc=3.5, con=1.5, lo=70.0, hi=170.0):
    return RepCycle(rep_number, 0.0, ecc, ecc + con, lo, hi)


# ============================================================================
# Scoring helpers
# ============================================================================

class TestHelpers:

    def test_angle_penalty(self):
        assert angle_penalty(100, 60, 175, 0.3) == 0.0
        assert angle_penalty(50, 60, 175, 0.3) == pytest.approx(6.0)
        # Capped at weight x 30
        assert angle_penalty(0, 60, 175, 0.3) == pytest.approx(9.0)

    def test_tempo_adherence(self):
        assert tempo_adherence(3.5, 3.5, 0.5) == 1.0
        assert tempo_adherence(5.0, 3.5, 0.5) == 1.0
        assert tempo_adherence(7.0, 3.5, 0.5) == pytest.approx(0.5)
        assert tempo_adherence(20.0, 3.5, 0.5) == 0.0

    def test_deviation_penalty(self):
        assert deviation_penalty(0.02, 0.03) == 0.0
        assert deviation_penalty(0.045, 0.03) == pytest.approx(12.5)
        assert deviation_penalty(0.5, 0.03) == 25.0


# ============================================================================
# Per-frame issues
# ============================================================================

class TestFrameIssues:

    def test_major_issue_reported_same_tick(self, squat_profile):
        analyzer = FormAnalyzer(squat_profile)
        assessment = analyzer.process_frame(
            knee_cave_frame(1.0), update(1.0, RepPhase.TOP_HOLD, RepPhase.DESCENDING))

        assert [i.name for i in assessment.major_issues] == ["Knee Cave"]
        issue = assessment.issues[0]
        assert issue.severity is IssueSeverity.MAJOR
        assert issue.timestamp == 1.0
        assert issue.rep_number == 1
        assert assessment.score == pytest.approx(100.0 - IssueSeverity.MAJOR.penalty)

    def test_issue_reported_once_per_rep(self, squat_profile):
        analyzer = FormAnalyzer(squat_profile)
        analyzer.process_frame(knee_cave_frame(1.0), update(1.0, RepPhase.TOP_HOLD, RepPhase.DESCENDING))
        again = analyzer.process_frame(knee_cave_frame(1.1), update(1.1, RepPhase.DESCENDING, RepPhase.DESCENDING))

        assert again.issues == ()
        # Still penalized
        assert again.score == pytest.approx(75.0)

    def test_no_issues_while_idle(self, squat_profile):
        analyzer = FormAnalyzer(squat_profile)
        assessment = analyzer.process_frame(knee_cave_frame(0.5), update(0.5, RepPhase.IDLE, RepPhase.IDLE))
        assert assessment.issues == ()

    def test_clean_frame(self, squat_profile):
        analyzer = FormAnalyzer(squat_profile)
        assessment = analyzer.process_frame(
            squat_frame(1.0, 120.0), update(1.0, RepPhase.DESCENDING, RepPhase.DESCENDING))
        assert assessment.score == 100.0
        assert assessment.issues == ()


# ============================================================================
# Per-rep form score
# ============================================================================

class TestRepForm:

    def _track(self, analyzer, frames):
        analyzer.process_frame(frames[0], update(frames[0].timestamp, RepPhase.TOP_HOLD, RepPhase.DESCENDING))
        for f in frames[1:]:
            analyzer.process_frame(f, update(f.timestamp, RepPhase.DESCENDING, RepPhase.DESCENDING))

    def test_perfect_rep(self, squat_profile):
        analyzer = FormAnalyzer(squat_profile)
        self._track(analyzer, [squat_frame(t / 10.0, 120.0) for t in range(10)])
        form = analyzer.complete_rep(cycle())

        assert form.rom_attainment == 1.0
        assert form.tempo_adherence == 1.0
        assert form.frame_quality == 1.0
        assert form.bar_path_deviation == pytest.approx(0.0)
        assert form.form_score == 100.0

    def test_shallow_slow_rep(self, squat_profile):
        analyzer = FormAnalyzer(squat_profile)
        self._track(analyzer, [squat_frame(t / 10.0, 120.0) for t in range(10)])
        # Half range, eccentric at twice the target
        form = analyzer.complete_rep(cycle(ecc=7.0, lo=120.0, hi=170.0))

        assert form.rom_attainment == pytest.approx(0.5)
        assert form.tempo_adherence == pytest.approx(0.75)
        assert form.form_score == pytest.approx(60 * 0.5 + 25 * 0.75 + 15, abs=0.1)

    def test_bar_path_drift_penalty(self, squat_profile):
        analyzer = FormAnalyzer(squat_profile)
        frames = [squat_frame(t / 10.0, 120.0, root_x=0.5 + 0.0045 * t) for t in range(11)]
        self._track(analyzer, frames)
        form = analyzer.complete_rep(cycle())

        assert form.bar_path_deviation == pytest.approx(0.045)
        assert form.deviation_penalty == pytest.approx(12.5)
        assert form.form_score == pytest.approx(87.5, abs=0.1)

    def test_rep_carries_its_issues_and_numbering_advances(self, squat_profile):
        analyzer = FormAnalyzer(squat_profile)
        self._track(analyzer, [knee_cave_frame(1.0), squat_frame(1.1, 120.0)])
        form = analyzer.complete_rep(cycle(rep_number=1))

        assert [i.name for i in form.issues] == ["Knee Cave"]

        assessment = analyzer.process_frame(
            knee_cave_frame(5.0), update(5.0, RepPhase.TOP_HOLD, RepPhase.DESCENDING))
        assert assessment.issues[0].rep_number == 2

    def test_discarded_rep_forgets_issues(self, squat_profile):
        analyzer = FormAnalyzer(squat_profile)
        self._track(analyzer, [knee_cave_frame(1.0)])
        analyzer.discard_rep()
        form = analyzer.complete_rep(cycle())
        assert form.issues == ()
