"""Tests for landmark frames and geometry helpers."""

import math
from types import SimpleNamespace

import pytest

from gesture_lock.landmarks import (
    FaceLandmark, Landmark, LandmarkFrame, PoseLandmark, distance, joint_angle,
)


def _point(x, y, z=0.0, visibility=1.0):
    return SimpleNamespace(x=x, y=y, z=z, visibility=visibility)


class TestLandmarkFrame:
    def test_point_lookup(self):
        frame = LandmarkFrame(0.0, pose={"nose": Landmark(0.5, 0.2)})
        assert frame.point("nose") == Landmark(0.5, 0.2)
        assert frame.point(PoseLandmark.NOSE) == Landmark(0.5, 0.2)
        assert frame.point("left_wrist") is None

    def test_visibility_must_exceed_minimum(self):
        frame = LandmarkFrame(0.0, pose={"nose": Landmark(0.5, 0.2, visibility=0.5)})
        assert frame.point("nose", min_visibility=0.5) is None
        assert frame.point("nose", min_visibility=0.49) is not None

    def test_face_point_without_face(self):
        frame = LandmarkFrame(0.0)
        assert frame.face_point(FaceLandmark.CHIN) is None
        assert not frame.has_pose

    def test_from_sequences_keeps_known_indices(self):
        pose = [_point(i / 100, i / 100) for i in range(33)]
        frame = LandmarkFrame.from_sequences(1.5, pose)
        assert frame.timestamp == 1.5
        assert set(frame.pose) == {p.key for p in PoseLandmark}
        assert frame.point("left_wrist") == Landmark(0.15, 0.15)
        assert frame.face is None

    def test_from_sequences_face_has_no_visibility(self):
        face = [SimpleNamespace(x=0.1, y=0.2, z=0.0) for _ in range(468)]
        frame = LandmarkFrame.from_sequences(0.0, [_point(0.5, 0.5)] * 33, face)
        assert frame.face_point(FaceLandmark.MOUTH_RIGHT) == Landmark(0.1, 0.2, 0.0, 1.0)

    def test_from_sequences_accepts_plain_lists(self):
        frame = LandmarkFrame.from_sequences(0.0, [[0.5, 0.5, 0.0, 0.9]] * 33)
        assert frame.point("nose").visibility == 0.9

    def test_dict_round_trip(self):
        frame = LandmarkFrame(
            2.0,
            pose={"nose": Landmark(0.5, 0.2, 0.1, 0.9)},
            face={1: Landmark(0.5, 0.25)},
        )
        data = frame.to_dict()
        assert data["face"] == {"1": [0.5, 0.25, 0.0, 1.0]}
        assert LandmarkFrame.from_dict(data) == frame

    def test_landmark_needs_x_and_y(self):
        with pytest.raises(ValueError):
            Landmark.from_values([0.5])


class TestGeometry:
    def test_distance(self):
        assert distance(Landmark(0.0, 0.0), Landmark(0.3, 0.4)) == pytest.approx(0.5)

    def test_right_angle(self):
        angle = joint_angle(Landmark(0.0, 1.0), Landmark(0.0, 0.0), Landmark(1.0, 0.0))
        assert angle == pytest.approx(90.0)

    def test_straight_limb(self):
        angle = joint_angle(Landmark(0.0, 0.0), Landmark(0.0, 0.5), Landmark(0.0, 1.0))
        assert angle == pytest.approx(180.0)

    def test_zero_length_limb(self):
        assert math.isnan(joint_angle(Landmark(0.1, 0.1), Landmark(0.1, 0.1), Landmark(0.5, 0.5)))
