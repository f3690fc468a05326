"""Per-frame gesture classifiers.

Every classifier has the signature ``fn(frame, history, thresholds) -> bool``.
Static-pose classifiers look only at the current frame's geometry; motion
classifiers push a feature sample into ``history`` each frame and then
inspect the sliding window for oscillation.

Missing or low-visibility landmarks always mean "gesture not shown"; a
classifier never raises because of absent input.
"""

from __future__ import annotations

from typing import Optional, Protocol

from gesture_lock.config import (
    ElbowTuckExtendThresholds,
    FingerToJawThresholds,
    FingerToLipThresholds,
    OscillationThresholds,
    PalmsUpShrugThresholds,
    SmilePointUpThresholds,
    TongueHeadshakeThresholds,
)
from gesture_lock.history import is_oscillating
from gesture_lock.landmarks import FaceLandmark, Landmark, LandmarkFrame, distance, joint_angle

SIDES = ("left", "right")


class History(Protocol):
    def push(self, feature: str, value: float): ...

    def window(self, feature: str) -> list[float]: ...


def _arm(frame: LandmarkFrame, side: str, min_visibility: float):
    """(shoulder, elbow, wrist) for one side, or None if any is missing."""
    shoulder = frame.point(f"{side}_shoulder", min_visibility)
    elbow = frame.point(f"{side}_elbow", min_visibility)
    wrist = frame.point(f"{side}_wrist", min_visibility)
    if shoulder is None or elbow is None or wrist is None:
        return None
    return shoulder, elbow, wrist


def _face_points(frame: LandmarkFrame, *indices: int) -> Optional[list[Landmark]]:
    points = [frame.face_point(i) for i in indices]
    if any(p is None for p in points):
        return None
    return points


# --- Motion classifiers ---

def oscillating_hands(
    frame: LandmarkFrame, history: History, t: OscillationThresholds
) -> bool:
    """Both hands waving up and down."""
    left = frame.point("left_wrist", t.min_visibility)
    right = frame.point("right_wrist", t.min_visibility)
    if left is None or right is None:
        return False

    history.push("left_wrist_y", left.y)
    history.push("right_wrist_y", right.y)

    return all(
        is_oscillating(
            history.window(feature),
            min_samples=t.min_samples,
            min_amplitude=t.min_amplitude,
            noise_floor=t.noise_floor,
            min_reversals=t.min_reversals,
        )
        for feature in ("left_wrist_y", "right_wrist_y")
    )


def mouth_open_ratio(frame: LandmarkFrame) -> Optional[float]:
    """Vertical lip gap divided by mouth width, or None without a face."""
    points = _face_points(
        frame,
        FaceLandmark.UPPER_LIP, FaceLandmark.LOWER_LIP,
        FaceLandmark.MOUTH_LEFT, FaceLandmark.MOUTH_RIGHT,
    )
    if points is None:
        return None
    upper, lower, left, right = points
    width = abs(right.x - left.x) + 0.001
    return abs(lower.y - upper.y) / width


def tongue_and_headshake(
    frame: LandmarkFrame, history: History, t: TongueHeadshakeThresholds
) -> bool:
    """Mouth open (tongue out) while shaking the head side to side."""
    ratio = mouth_open_ratio(frame)
    nose = frame.face_point(FaceLandmark.NOSE_TIP)
    if ratio is None or nose is None:
        return False

    history.push("head_x", nose.x)
    shaking = is_oscillating(
        history.window("head_x"),
        min_samples=t.min_samples,
        min_amplitude=t.min_amplitude,
        noise_floor=t.noise_floor,
        min_reversals=t.min_reversals,
    )
    return ratio > t.mouth_open_ratio and shaking


# --- Static-pose classifiers ---

def finger_to_lip(
    frame: LandmarkFrame, history: History, t: FingerToLipThresholds
) -> bool:
    """An index fingertip resting on the lips (thinking pose)."""
    nose = frame.point("nose")
    if nose is None:
        return False
    corners = [
        c for c in (frame.point("mouth_left"), frame.point("mouth_right")) if c is not None
    ]

    for side in SIDES:
        tip = frame.point(f"{side}_index", t.min_visibility)
        if tip is None:
            continue
        if any(distance(tip, c) < t.mouth_proximity for c in corners):
            return True
        if distance(tip, nose) < t.nose_proximity and tip.y > nose.y:
            return True
    return False


def palms_up_shrug(
    frame: LandmarkFrame, history: History, t: PalmsUpShrugThresholds
) -> bool:
    """Both forearms raised and opened outward with bent elbows."""
    arms = [_arm(frame, side, t.min_visibility) for side in SIDES]
    if any(arm is None for arm in arms):
        return False

    midline = (arms[0][0].x + arms[1][0].x) / 2
    for shoulder, elbow, wrist in arms:
        if not joint_angle(shoulder, elbow, wrist) < t.bent_max_angle:
            return False
        if not (wrist.y > shoulder.y and wrist.y < elbow.y):
            return False
        if not abs(wrist.x - midline) > abs(elbow.x - midline):
            return False
    return True


def finger_to_jaw(
    frame: LandmarkFrame, history: History, t: FingerToJawThresholds
) -> bool:
    """An index fingertip touching the jaw line below the mouth."""
    points = _face_points(
        frame,
        FaceLandmark.CHIN, FaceLandmark.JAW_LEFT, FaceLandmark.JAW_RIGHT,
        FaceLandmark.MOUTH_LEFT, FaceLandmark.MOUTH_RIGHT,
    )
    if points is None:
        return False
    jaw = points[:3]
    mouth_y = (points[3].y + points[4].y) / 2

    for side in SIDES:
        tip = frame.point(f"{side}_index", t.min_visibility)
        if tip is None:
            continue
        if tip.y > mouth_y and min(distance(tip, p) for p in jaw) < t.jaw_proximity:
            return True
    return False


def smile_ratio(frame: LandmarkFrame) -> Optional[float]:
    """Lip-corner width relative to face width, or None without a face."""
    points = _face_points(
        frame,
        FaceLandmark.LIP_CORNER_LEFT, FaceLandmark.LIP_CORNER_RIGHT,
        FaceLandmark.CHEEK_LEFT, FaceLandmark.CHEEK_RIGHT,
    )
    if points is None:
        return None
    lip_l, lip_r, cheek_l, cheek_r = points
    face_width = abs(cheek_r.x - cheek_l.x)
    if face_width < 1e-6:
        return None
    return abs(lip_r.x - lip_l.x) / face_width


def smile_and_point_up(
    frame: LandmarkFrame, history: History, t: SmilePointUpThresholds
) -> bool:
    """Smiling while pointing straight up with either arm."""
    ratio = smile_ratio(frame)
    if ratio is None or not ratio > t.smile_ratio:
        return False

    for side in SIDES:
        arm = _arm(frame, side, t.min_visibility)
        tip = frame.point(f"{side}_index", t.min_visibility)
        if arm is None or tip is None:
            continue
        shoulder, elbow, wrist = arm
        if (
            wrist.y < shoulder.y
            and tip.y < wrist.y
            and joint_angle(shoulder, elbow, wrist) > t.extended_min_angle
        ):
            return True
    return False


def elbow_tuck_arm_extend(
    frame: LandmarkFrame, history: History, t: ElbowTuckExtendThresholds
) -> bool:
    """One elbow tucked against the body while the other arm reaches out."""
    arms = {side: _arm(frame, side, t.min_visibility) for side in SIDES}

    def tucked(arm) -> bool:
        shoulder, elbow, wrist = arm
        return (
            joint_angle(shoulder, elbow, wrist) < t.bent_max_angle
            and elbow.y > shoulder.y
            and abs(elbow.x - shoulder.x) < t.tuck_distance
        )

    def extended(arm) -> bool:
        shoulder, elbow, wrist = arm
        return (
            joint_angle(shoulder, elbow, wrist) > t.extended_min_angle
            and abs(wrist.x - shoulder.x) > abs(elbow.x - shoulder.x)
        )

    for tuck_side, reach_side in (("left", "right"), ("right", "left")):
        tuck_arm, reach_arm = arms[tuck_side], arms[reach_side]
        if tuck_arm is None or reach_arm is None:
            continue
        if tucked(tuck_arm) and extended(reach_arm):
            return True
    return False
