"""Body and face landmark extraction using MediaPipe."""

from __future__ import annotations

import time
from typing import Iterator, Optional

import numpy as np

try:
    import mediapipe as mp
except ImportError:
    mp = None

try:
    import cv2
except ImportError:
    cv2 = None

from gesture_lock.landmarks import LandmarkFrame


def to_frame(timestamp: float, pose_results, face_results=None) -> Optional[LandmarkFrame]:
    """Convert MediaPipe Pose/FaceMesh results into a LandmarkFrame.

    Returns None when no body was found; a face on its own is not enough
    to classify any gesture.
    """
    pose_landmarks = getattr(pose_results, "pose_landmarks", None)
    if not pose_landmarks:
        return None

    face = None
    faces = getattr(face_results, "multi_face_landmarks", None) if face_results else None
    if faces:
        face = faces[0].landmark

    return LandmarkFrame.from_sequences(timestamp, pose_landmarks.landmark, face)


class PoseDetector:
    """Extracts pose landmarks (33 points) and, optionally, a face mesh.

    Each landmark is normalized to [0, 1] relative to image dimensions.
    """

    def __init__(
        self,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        model_complexity: int = 1,
        track_face: bool = True,
    ):
        if mp is None:
            raise ImportError(
                "mediapipe is required. Install with: pip install gesture-lock[vision]"
            )

        self._pose = mp.solutions.pose.Pose(
            model_complexity=model_complexity,
            smooth_landmarks=True,
            enable_segmentation=False,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
        )
        self._face = None
        if track_face:
            self._face = mp.solutions.face_mesh.FaceMesh(
                max_num_faces=1,
                refine_landmarks=True,
                min_detection_confidence=min_detection_confidence,
                min_tracking_confidence=min_tracking_confidence,
            )

    def detect(self, frame_rgb: np.ndarray, timestamp: Optional[float] = None) -> Optional[LandmarkFrame]:
        """Run both models on one RGB frame (H, W, 3), uint8."""
        ts = timestamp if timestamp is not None else time.monotonic()
        pose_results = self._pose.process(frame_rgb)
        face_results = self._face.process(frame_rgb) if self._face else None
        return to_frame(ts, pose_results, face_results)

    def close(self):
        """Release MediaPipe resources."""
        self._pose.close()
        if self._face:
            self._face.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


def camera_frames(
    detector: PoseDetector,
    camera: int = 0,
    width: int = 1280,
    height: int = 720,
) -> Iterator[Optional[LandmarkFrame]]:
    """Yield one LandmarkFrame (or None) per captured webcam frame."""
    if cv2 is None:
        raise ImportError("opencv-python is required. Install with: pip install gesture-lock[vision]")

    capture = cv2.VideoCapture(camera)
    if not capture.isOpened():
        raise RuntimeError(f"Could not open camera {camera}")
    capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
    capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)

    try:
        while True:
            ret, frame = capture.read()
            if not ret:
                time.sleep(0.01)
                continue
            frame_rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            yield detector.detect(frame_rgb, time.monotonic())
    finally:
        capture.release()
