"""GestureLock - unlock a resource by performing a sequence of body gestures."""

__version__ = "0.1.0"

from gesture_lock.landmarks import Landmark, LandmarkFrame, PoseLandmark, FaceLandmark
from gesture_lock.history import MotionHistory, ScopedHistory
from gesture_lock.config import LockConfig, GestureThresholds, load_config, get_config
from gesture_lock.gestures import GestureKind, GestureDefinition, GestureRegistry
from gesture_lock.sequences import Challenge, ChallengeEvent, GestureStage, StageStatus
from gesture_lock.session import Session, SessionRegistry, SessionStatus
