"""Tests for gesture kinds and the gesture registry."""

import pytest

from frames import finger_on_lip, standing
from gesture_lock.config import FingerToLipThresholds, GestureThresholds
from gesture_lock.gestures import GestureDefinition, GestureKind, GestureRegistry
from gesture_lock.history import MotionHistory


class TestGestureRegistry:
    def test_defaults_cover_every_kind(self):
        registry = GestureRegistry.with_defaults()
        assert len(registry) == 7
        assert set(registry.kinds()) == set(GestureKind)

    def test_lookup_by_string(self):
        registry = GestureRegistry.with_defaults()
        assert registry.get("finger_to_lip").kind == GestureKind.FINGER_TO_LIP

    def test_unknown_kind(self):
        registry = GestureRegistry.with_defaults()
        assert "moonwalk" not in registry
        with pytest.raises(ValueError):
            registry.get("moonwalk")

    def test_unregistered_kind(self):
        registry = GestureRegistry()
        assert GestureKind.FINGER_TO_LIP not in registry
        with pytest.raises(KeyError):
            registry.get(GestureKind.FINGER_TO_LIP)

    def test_thresholds_are_bound(self):
        thresholds = GestureThresholds(finger_to_lip=FingerToLipThresholds(mouth_proximity=0.001))
        registry = GestureRegistry.with_defaults(thresholds)
        gesture = registry.get(GestureKind.FINGER_TO_LIP)
        assert gesture.thresholds.mouth_proximity == 0.001
        assert not gesture.matches(finger_on_lip(), MotionHistory().scope("x"))

    def test_custom_gesture(self):
        registry = GestureRegistry()
        registry.register(GestureDefinition(
            kind=GestureKind.FINGER_TO_LIP,
            instruction="Anything goes",
            image="any.png",
            classify=lambda frame, history, t: True,
            thresholds=None,
        ))
        assert registry.get("finger_to_lip").matches(standing(), None)


class TestGestureDefinition:
    def test_to_dict(self):
        gesture = GestureRegistry.with_defaults().get(GestureKind.PALMS_UP_SHRUG)
        data = gesture.to_dict()
        assert data["kind"] == "palms_up_shrug"
        assert data["image"] == "/assets/palms_up_shrug.jpg"
        assert data["instruction"]

    def test_dynamic_kinds(self):
        registry = GestureRegistry.with_defaults()
        dynamic = {g.kind for g in registry if g.dynamic}
        assert dynamic == {GestureKind.OSCILLATING_HANDS, GestureKind.TONGUE_AND_HEADSHAKE}

    def test_kind_str(self):
        assert str(GestureKind.FINGER_TO_JAW) == "finger_to_jaw"
