"""
Joint geometry utilities.

Pure functions over PoseFrame readings. Every frame-level helper returns
Present or Absent; a missing input joint propagates as Absent instead of
raising.
"""

from typing import Optional

import numpy as np

from liftcore.cv.pose import ABSENT, Absent, Joint, Point, PoseFrame, Present, Reading


def angle_between(vertex: Point, a: Point, b: Point) -> Optional[float]:
    """Angle at `vertex` between rays to `a` and `b`, in degrees [0, 180]."""
    v1 = np.array([a[0] - vertex[0], a[1] - vertex[1]], dtype=float)
    v2 = np.array([b[0] - vertex[0], b[1] - vertex[1]], dtype=float)

    norm = np.linalg.norm(v1) * np.linalg.norm(v2)
    if norm < 1e-9:
        return None

    cos_angle = np.dot(v1, v2) / norm
    return float(np.degrees(np.arccos(np.clip(cos_angle, -1.0, 1.0))))


def distance(a: Point, b: Point) -> float:
    return float(np.hypot(b[0] - a[0], b[1] - a[1]))


def joint_angle(frame: PoseFrame, vertex: Joint, start: Joint, end: Joint) -> Reading:
    """Angle at `vertex` formed by `start` and `end` joints."""
    v, s, e = frame.get(vertex), frame.get(start), frame.get(end)
    if not (isinstance(v, Present) and isinstance(s, Present) and isinstance(e, Present)):
        return ABSENT

    angle = angle_between(v.value, s.value, e.value)
    if angle is None:
        return Absent("degenerate")
    return Present(angle, min(v.confidence, s.confidence, e.confidence))


def segment_length(frame: PoseFrame, a: Joint, b: Joint) -> Reading:
    """Euclidean length between two joints in pose units."""
    pa, pb = frame.get(a), frame.get(b)
    if not (isinstance(pa, Present) and isinstance(pb, Present)):
        return ABSENT
    return Present(distance(pa.value, pb.value), min(pa.confidence, pb.confidence))


def midpoint(frame: PoseFrame, a: Joint, b: Joint) -> Reading:
    pa, pb = frame.get(a), frame.get(b)
    if not (isinstance(pa, Present) and isinstance(pb, Present)):
        return ABSENT
    return Present(
        ((pa.x + pb.x) / 2.0, (pa.y + pb.y) / 2.0),
        min(pa.confidence, pb.confidence),
    )


def either_side(frame: PoseFrame, left: Joint, right: Joint) -> Reading:
    """Midpoint of a bilateral pair, falling back to whichever side is visible."""
    mid = midpoint(frame, left, right)
    if isinstance(mid, Present):
        return mid
    pl = frame.get(left)
    return pl if isinstance(pl, Present) else frame.get(right)


def displacement(previous: Reading, current: Reading) -> Reading:
    """Inter-frame displacement vector (dx, dy) between two point readings."""
    if not (isinstance(previous, Present) and isinstance(current, Present)):
        return ABSENT
    return Present(
        (current.x - previous.x, current.y - previous.y),
        min(previous.confidence, current.confidence),
    )
