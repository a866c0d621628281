"""
Pose frame data model.

A PoseFrame maps each tracked joint to either Present(value, confidence)
or Absent. Absence is a first-class value: low-confidence detections are
converted to Absent at construction so downstream geometry never has to
guess whether a coordinate is trustworthy.

Coordinates are in normalized pose space (0-1 on both axes, y pointing up).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

Point = Tuple[float, float]


class Joint(str, Enum):
    """Body joints supplied by the pose source."""
    NOSE = "nose"
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    LEFT_EAR = "left_ear"
    RIGHT_EAR = "right_ear"
    LEFT_SHOULDER = "left_shoulder"
    RIGHT_SHOULDER = "right_shoulder"
    LEFT_ELBOW = "left_elbow"
    RIGHT_ELBOW = "right_elbow"
    LEFT_WRIST = "left_wrist"
    RIGHT_WRIST = "right_wrist"
    LEFT_HIP = "left_hip"
    RIGHT_HIP = "right_hip"
    LEFT_KNEE = "left_knee"
    RIGHT_KNEE = "right_knee"
    LEFT_ANKLE = "left_ankle"
    RIGHT_ANKLE = "right_ankle"
    NECK = "neck"
    ROOT = "root"


@dataclass(frozen=True)
class Present:
    """A reading that was observed with sufficient confidence."""
    value: Any  # Point for joints, float for derived measurements
    confidence: float

    @property
    def x(self) -> float:
        return self.value[0]

    @property
    def y(self) -> float:
        return self.value[1]


@dataclass(frozen=True)
class Absent:
    """A reading that is missing or below the confidence threshold."""
    reason: str = "missing"


ABSENT = Absent()
LOW_CONFIDENCE = Absent("low_confidence")

Reading = Union[Present, Absent]


def is_present(reading: Reading) -> bool:
    return isinstance(reading, Present)


@dataclass(frozen=True)
class PoseFrame:
    """One sampled snapshot of joint readings at a point in time."""
    timestamp: float
    joints: Mapping[Joint, Reading] = field(default_factory=dict)

    def get(self, joint: Joint) -> Reading:
        return self.joints.get(joint, ABSENT)

    def __getitem__(self, joint: Joint) -> Reading:
        return self.get(joint)

    @classmethod
    def from_raw(
        cls,
        timestamp: float,
        raw: Mapping[Union[Joint, str], Tuple[float, float, float]],
        confidence_threshold: float = 0.3
    ) -> "PoseFrame":
        """
        Build a frame from raw (x, y, confidence) triples.

        Unknown joint names are ignored; readings below the confidence
        threshold become Absent.
        """
        joints: Dict[Joint, Reading] = {}
        for name, (x, y, conf) in raw.items():
            try:
                joint = Joint(name)
            except ValueError:
                continue
            if conf < confidence_threshold:
                joints[joint] = LOW_CONFIDENCE
            else:
                joints[joint] = Present((float(x), float(y)), float(conf))
        return cls(timestamp=float(timestamp), joints=joints)


@dataclass(frozen=True)
class CompactFrame:
    """
    Reduced frame kept for later re-analysis.

    Only present joints from a fixed subset are stored, rounded to
    4 decimals. Serializes to a plain dict for JSON-lines logs.
    """
    timestamp: float
    points: Dict[str, Tuple[float, float, float]]

    @classmethod
    def from_frame(
        cls,
        frame: PoseFrame,
        keep: Optional[Iterable[Joint]] = None
    ) -> "CompactFrame":
        wanted = set(keep) if keep is not None else set(frame.joints)
        points = {}
        for joint in wanted:
            reading = frame.get(joint)
            if isinstance(reading, Present):
                points[joint.value] = (
                    round(reading.x, 4),
                    round(reading.y, 4),
                    round(reading.confidence, 3),
                )
        return cls(timestamp=frame.timestamp, points=points)

    def to_frame(self) -> PoseFrame:
        # Compacted points already passed the threshold when recorded
        return PoseFrame.from_raw(self.timestamp, self.points, confidence_threshold=0.0)

    def to_dict(self) -> dict:
        return {
            "t": self.timestamp,
            "joints": {k: list(v) for k, v in self.points.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CompactFrame":
        return cls(
            timestamp=float(data["t"]),
            points={k: tuple(v) for k, v in data.get("joints", {}).items()},
        )
