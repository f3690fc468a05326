"""Landmark frames and the geometry used to reason about them.

A frame holds named body points (MediaPipe Pose topology) and, optionally,
face mesh points keyed by FaceMesh index. Coordinates are normalized to the
image: x grows to the right, y grows downward.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Mapping, Optional, Sequence

import numpy as np


class PoseLandmark(IntEnum):
    """MediaPipe Pose landmark indices used by the classifiers."""
    NOSE = 0
    LEFT_EYE = 2
    RIGHT_EYE = 5
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_HIP = 23
    RIGHT_HIP = 24

    @property
    def key(self) -> str:
        return self.name.lower()


class FaceLandmark(IntEnum):
    """MediaPipe FaceMesh indices used by the classifiers."""
    NOSE_TIP = 1
    UPPER_LIP = 13
    LOWER_LIP = 14
    MOUTH_LEFT = 78
    MOUTH_RIGHT = 308
    LIP_CORNER_LEFT = 61
    LIP_CORNER_RIGHT = 291
    CHIN = 152
    JAW_LEFT = 172
    JAW_RIGHT = 397
    CHEEK_LEFT = 234
    CHEEK_RIGHT = 454


@dataclass(frozen=True)
class Landmark:
    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0

    @classmethod
    def from_values(cls, values: Sequence[float]) -> Landmark:
        """Build from ``[x, y]``, ``[x, y, z]`` or ``[x, y, z, visibility]``."""
        if len(values) < 2:
            raise ValueError(f"Landmark needs at least x and y, got {list(values)}")
        return cls(*(float(v) for v in values[:4]))

    def to_list(self) -> list[float]:
        return [self.x, self.y, self.z, self.visibility]


@dataclass(frozen=True)
class LandmarkFrame:
    """One estimation cycle's worth of landmarks.

    ``pose`` maps lower-case pose names (``"left_wrist"``) to landmarks.
    ``face`` maps FaceMesh indices to landmarks, or is None when no face
    was found this frame.
    """

    timestamp: float
    pose: Mapping[str, Landmark] = field(default_factory=dict)
    face: Optional[Mapping[int, Landmark]] = None

    def point(self, name: str | PoseLandmark, min_visibility: float = 0.0) -> Optional[Landmark]:
        """Return a pose point if present and visible above ``min_visibility``."""
        key = name.key if isinstance(name, PoseLandmark) else name
        lm = self.pose.get(key)
        if lm is None or lm.visibility <= min_visibility:
            return None
        return lm

    def face_point(self, index: int) -> Optional[Landmark]:
        if not self.face:
            return None
        return self.face.get(int(index))

    @property
    def has_pose(self) -> bool:
        return bool(self.pose)

    @classmethod
    def from_sequences(
        cls,
        timestamp: float,
        pose: Optional[Sequence] = None,
        face: Optional[Sequence] = None,
    ) -> LandmarkFrame:
        """Build a frame from index-ordered landmark lists.

        Elements may be objects with ``x``/``y``/``z``/``visibility``
        attributes (as the estimator returns them) or plain sequences.
        Pose indices the classifiers do not use are dropped.
        """
        pose_points: dict[str, Landmark] = {}
        if pose:
            for idx in PoseLandmark:
                if idx < len(pose):
                    pose_points[idx.key] = _coerce(pose[idx])

        face_points: Optional[dict[int, Landmark]] = None
        if face:
            face_points = {i: _coerce(lm) for i, lm in enumerate(face)}

        return cls(timestamp=timestamp, pose=pose_points, face=face_points)

    @classmethod
    def from_dict(cls, data: dict) -> LandmarkFrame:
        pose = {
            name: Landmark.from_values(values)
            for name, values in (data.get("pose") or {}).items()
        }
        face = None
        if data.get("face"):
            face = {int(i): Landmark.from_values(v) for i, v in data["face"].items()}
        return cls(timestamp=float(data.get("timestamp", 0.0)), pose=pose, face=face)

    def to_dict(self) -> dict:
        data: dict = {
            "timestamp": self.timestamp,
            "pose": {name: lm.to_list() for name, lm in self.pose.items()},
        }
        if self.face is not None:
            data["face"] = {str(i): lm.to_list() for i, lm in self.face.items()}
        return data


def _coerce(lm) -> Landmark:
    if isinstance(lm, Landmark):
        return lm
    if hasattr(lm, "x"):
        # FaceMesh points carry no visibility
        visibility = getattr(lm, "visibility", 1.0)
        return Landmark(float(lm.x), float(lm.y), float(getattr(lm, "z", 0.0)), float(visibility))
    return Landmark.from_values(lm)


def distance(a: Landmark, b: Landmark) -> float:
    """2-D Euclidean distance in normalized image coordinates."""
    return float(np.hypot(a.x - b.x, a.y - b.y))


def joint_angle(a: Landmark, b: Landmark, c: Landmark) -> float:
    """Angle at ``b`` (degrees) in triangle a-b-c, via the law of cosines.

    Returns NaN for a zero-length limb so any threshold comparison fails.
    """
    ab = distance(a, b)
    bc = distance(b, c)
    ac = distance(a, c)
    if ab < 1e-9 or bc < 1e-9:
        return math.nan
    cos_b = (ab ** 2 + bc ** 2 - ac ** 2) / (2 * ab * bc)
    return math.degrees(math.acos(float(np.clip(cos_b, -1.0, 1.0))))
