"""
Per-frame workout analysis.

PIPELINE COMPONENTS:
1. PoseFrame: joint readings as Present | Absent
2. geometry: joint angles, segment lengths, displacement
3. SignalSmoother: Savitzky-Golay + EMA temporal smoothing
4. RepPhaseMachine: hysteresis phase state machine, one RepCycle per rep
5. VelocityEngine: calibrated joint velocity and set fatigue / auto-stop
6. FormAnalyzer: per-frame issues and per-rep form score
7. SessionPipeline: per-session orchestration with explicit output channels

Usage:
    from liftcore.cv import IterableFrameSource, SessionPipeline, default_profile_store

    pipeline = SessionPipeline(default_profile_store())
    pipeline.select_exercise("Barbell Back Squat")
    pipeline.rep_events.subscribe(print)
    pipeline.run(IterableFrameSource(frames))
    summary = pipeline.end_set(load_kg=100.0)
"""

from liftcore.cv.pose import (
    Joint, Present, Absent, ABSENT, Reading, PoseFrame, CompactFrame
)
from liftcore.cv.signal_smoother import SignalSmoother
from liftcore.cv.exercise_profiles import (
    ExerciseProfile, ExerciseProfileStore, IssueSeverity, ResistanceProfile,
    default_profile_store,
)
from liftcore.cv.rep_phase import (
    RepPhase, PhaseThresholds, RepPhaseMachine, RepCycle, PhaseUpdate,
    TrackingLost, RepAbandoned, advance,
)
from liftcore.cv.velocity_engine import VelocityEngine, FatigueStatus, RepVelocity, Calibration
from liftcore.cv.form_analyzer import FormAnalyzer, FormIssue, FrameAssessment, RepForm
from liftcore.cv.session_pipeline import (
    SessionPipeline, Channel, FrameSource, IterableFrameSource, RepEvent, SetSummary,
)

__all__ = [
    # Pose data
    "Joint",
    "Present",
    "Absent",
    "ABSENT",
    "Reading",
    "PoseFrame",
    "CompactFrame",

    # Smoothing (Savitzky-Golay + EMA)
    "SignalSmoother",

    # Exercise profiles
    "ExerciseProfile",
    "ExerciseProfileStore",
    "IssueSeverity",
    "ResistanceProfile",
    "default_profile_store",

    # Rep phase detection
    "RepPhase",
    "PhaseThresholds",
    "RepPhaseMachine",
    "RepCycle",
    "PhaseUpdate",
    "TrackingLost",
    "RepAbandoned",
    "advance",

    # Velocity / fatigue
    "VelocityEngine",
    "FatigueStatus",
    "RepVelocity",
    "Calibration",

    # Form
    "FormAnalyzer",
    "FormIssue",
    "FrameAssessment",
    "RepForm",

    # Main pipeline
    "SessionPipeline",
    "Channel",
    "FrameSource",
    "IterableFrameSource",
    "RepEvent",
    "SetSummary",
]
