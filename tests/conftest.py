"""Shared fixtures and synthetic pose builders."""

import math

import numpy as np
import pytest

from liftcore.config import Settings
from liftcore.cv.exercise_profiles import default_profile_store
from liftcore.cv.pose import Joint, PoseFrame, Present

FPS = 30.0
SQUAT = "Barbell Back Squat"


def squat_frame(t, knee_angle, root_y=0.6, root_x=0.5, conf=0.9, extra=None):
    """
    Side-on squat frame whose left knee angle is exactly `knee_angle`.

    Knee fixed at (0.5, 0.4), hip straight above it, ankle rotated by
    the knee angle. Only the joints the squat profile needs are present.
    """
    theta = math.radians(knee_angle)
    joints = {
        Joint.LEFT_KNEE: Present((0.5, 0.4), conf),
        Joint.LEFT_HIP: Present((0.5, 0.6), conf),
        Joint.LEFT_ANKLE: Present((0.5 + 0.2 * math.sin(theta), 0.4 + 0.2 * math.cos(theta)), conf),
        Joint.ROOT: Present((root_x, root_y), conf),
    }
    if extra:
        joints.update(extra)
    return PoseFrame(timestamp=float(t), joints=joints)


def squat_angles(cycles, period=2.0, fps=FPS, noise_deg=0.0, seed=0):
    """Timestamps and knee angles for `cycles` full reps starting and ending at the top."""
    t = np.arange(0, int(round(cycles * period * fps)) + 1) / fps
    angles = 120.0 + 50.0 * np.cos(2 * np.pi * t / period)
    if noise_deg:
        rng = np.random.default_rng(seed)
        angles = angles + rng.normal(0.0, noise_deg, size=angles.shape)
    return t, angles


def squat_frames(cycles, period=2.0, fps=FPS, noise_deg=0.0, seed=0, start=0.0):
    """Squat frames with the root dropping 0.2 units per unit of depth."""
    t, angles = squat_angles(cycles, period, fps, noise_deg, seed)
    frames = []
    for ts, angle in zip(t, angles):
        depth = (170.0 - angle) / 100.0
        frames.append(squat_frame(start + ts, angle, root_y=0.6 - 0.2 * depth))
    return frames


def empty_frame(t):
    return PoseFrame(timestamp=float(t))


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def profile_store():
    return default_profile_store()


@pytest.fixture
def squat_profile(profile_store):
    return profile_store.get(SQUAT)
