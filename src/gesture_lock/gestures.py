"""Gesture kinds and their definitions.

Each GestureKind maps to exactly one classifier, one instruction string
shown to the user and one reference image served from ``/assets``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, Optional

from gesture_lock import classifier
from gesture_lock.config import GestureThresholds
from gesture_lock.landmarks import LandmarkFrame


class GestureKind(str, Enum):
    OSCILLATING_HANDS = "oscillating_hands"
    TONGUE_AND_HEADSHAKE = "tongue_and_headshake"
    FINGER_TO_LIP = "finger_to_lip"
    PALMS_UP_SHRUG = "palms_up_shrug"
    FINGER_TO_JAW = "finger_to_jaw"
    SMILE_AND_POINT_UP = "smile_and_point_up"
    ELBOW_TUCK_ARM_EXTEND = "elbow_tuck_arm_extend"

    def __str__(self) -> str:
        return self.value


Classify = Callable[[LandmarkFrame, Any, Any], bool]


@dataclass
class GestureDefinition:
    """A gesture kind bound to its classifier and thresholds."""

    kind: GestureKind
    instruction: str
    image: str
    classify: Classify
    thresholds: Any

    @property
    def dynamic(self) -> bool:
        """Motion gestures need a window of frames before they can match."""
        return self.kind in _DYNAMIC

    def matches(self, frame: LandmarkFrame, history) -> bool:
        return self.classify(frame, history, self.thresholds)

    @property
    def image_url(self) -> str:
        return f"/assets/{self.image}"

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "instruction": self.instruction,
            "image": self.image_url,
        }


_DYNAMIC = {GestureKind.OSCILLATING_HANDS, GestureKind.TONGUE_AND_HEADSHAKE}

_DEFAULTS: dict[GestureKind, tuple[str, str, Classify]] = {
    GestureKind.OSCILLATING_HANDS: (
        "WAVE BOTH HANDS - Move both hands up and down rapidly",
        "oscillating_hands.jpg",
        classifier.oscillating_hands,
    ),
    GestureKind.TONGUE_AND_HEADSHAKE: (
        "TONGUE OUT - Stick out your tongue and shake your head",
        "tongue_and_headshake.jpg",
        classifier.tongue_and_headshake,
    ),
    GestureKind.FINGER_TO_LIP: (
        "THINK - Put a finger on your lip",
        "finger_to_lip.jpg",
        classifier.finger_to_lip,
    ),
    GestureKind.PALMS_UP_SHRUG: (
        "SHRUG - Raise both palms up and shrug",
        "palms_up_shrug.jpg",
        classifier.palms_up_shrug,
    ),
    GestureKind.FINGER_TO_JAW: (
        "PONDER - Rest a finger on your jaw",
        "finger_to_jaw.jpg",
        classifier.finger_to_jaw,
    ),
    GestureKind.SMILE_AND_POINT_UP: (
        "EUREKA - Smile and point straight up",
        "smile_and_point_up.jpg",
        classifier.smile_and_point_up,
    ),
    GestureKind.ELBOW_TUCK_ARM_EXTEND: (
        "POSE - Tuck one elbow in and stretch the other arm out",
        "elbow_tuck_arm_extend.jpg",
        classifier.elbow_tuck_arm_extend,
    ),
}


class GestureRegistry:
    """Lookup of gesture definitions by kind."""

    def __init__(self):
        self._gestures: dict[GestureKind, GestureDefinition] = {}

    def register(self, gesture: GestureDefinition):
        self._gestures[gesture.kind] = gesture

    def get(self, kind: GestureKind | str) -> GestureDefinition:
        """Raises KeyError for a kind that was never registered."""
        return self._gestures[GestureKind(kind)]

    def kinds(self) -> list[GestureKind]:
        return list(self._gestures)

    @classmethod
    def with_defaults(cls, thresholds: Optional[GestureThresholds] = None) -> GestureRegistry:
        """Create a registry holding every built-in gesture."""
        thresholds = thresholds or GestureThresholds()
        registry = cls()
        for kind, (instruction, image, fn) in _DEFAULTS.items():
            registry.register(GestureDefinition(
                kind=kind,
                instruction=instruction,
                image=image,
                classify=fn,
                thresholds=thresholds.for_kind(kind.value),
            ))
        return registry

    def __len__(self) -> int:
        return len(self._gestures)

    def __iter__(self) -> Iterator[GestureDefinition]:
        return iter(self._gestures.values())

    def __contains__(self, kind) -> bool:
        try:
            return GestureKind(kind) in self._gestures
        except ValueError:
            return False
