"""Multi-stage gesture challenges.

A Challenge holds an ordered list of gesture stages. Every frame is
classified against the current stage only; a stage matches after
``threshold`` consecutive matching frames, and a single miss resets the
count to zero. After every matched stage, the last one included, the
challenge waits out a cooldown before moving on or completing.

Stage lifecycle:
    pending -> matching -> matched -> transitioning -> (next stage | complete)
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from gesture_lock.config import ChallengeConfig
from gesture_lock.gestures import GestureKind, GestureRegistry
from gesture_lock.history import MotionHistory
from gesture_lock.landmarks import LandmarkFrame

logger = logging.getLogger("gesture_lock.sequences")


class StageStatus(str, Enum):
    PENDING = "pending"
    MATCHING = "matching"
    MATCHED = "matched"
    TRANSITIONING = "transitioning"


@dataclass
class GestureStage:
    """One required gesture within a challenge."""
    kind: GestureKind
    threshold: int = 5
    confidence_count: int = 0
    status: StageStatus = StageStatus.PENDING
    matched_at: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "threshold": self.threshold,
            "confidence": self.confidence_count,
            "status": self.status.value,
        }


@dataclass
class ChallengeEvent:
    """Emitted by Challenge.feed when something changes."""
    type: str  # progress | reset | stage_matched | stage_advanced | challenge_complete
    stage_index: int
    kind: GestureKind
    confidence: int
    timestamp: float


class Challenge:
    """State machine sequencing gesture stages for one challenge attempt.

    Owns the motion history used by its dynamic gestures; the history is
    scoped per gesture kind and dies with the challenge.
    """

    def __init__(
        self,
        kinds: Sequence[GestureKind | str],
        registry: Optional[GestureRegistry] = None,
        config: Optional[ChallengeConfig] = None,
        on_complete: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        config = config or ChallengeConfig()
        self._registry = registry if registry is not None else GestureRegistry.with_defaults()

        kinds = [GestureKind(k) for k in kinds]
        if not kinds:
            raise ValueError("A challenge needs at least one stage")
        if len(set(kinds)) != len(kinds):
            raise ValueError(f"Duplicate gesture kinds in challenge: {[k.value for k in kinds]}")
        for kind in kinds:
            if kind not in self._registry:
                raise ValueError(f"No classifier registered for {kind.value}")

        self._stages = [GestureStage(kind=k, threshold=config.confidence_threshold) for k in kinds]
        self._cursor = 0
        self._complete = False
        self._cooldown = config.transition_cooldown
        self._on_complete = on_complete
        self._clock = clock
        self.history = MotionHistory(capacity=config.history_capacity)

    @classmethod
    def random(
        cls,
        count: Optional[int] = None,
        registry: Optional[GestureRegistry] = None,
        config: Optional[ChallengeConfig] = None,
        rng: Optional[random.Random] = None,
        **kwargs,
    ) -> Challenge:
        """Create a challenge from ``count`` distinct kinds in random order."""
        config = config or ChallengeConfig()
        if registry is None:
            registry = GestureRegistry.with_defaults()
        count = config.stage_count if count is None else count
        kinds = draw_kinds(registry, count, rng)
        return cls(kinds, registry=registry, config=config, **kwargs)

    # --- State ---

    @property
    def stages(self) -> list[GestureStage]:
        return list(self._stages)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def current_stage(self) -> GestureStage:
        return self._stages[self._cursor]

    @property
    def is_complete(self) -> bool:
        return self._complete

    @property
    def progress(self) -> tuple[int, int]:
        """(stages matched, total stages)."""
        done = sum(
            1 for s in self._stages
            if s.status in (StageStatus.MATCHED, StageStatus.TRANSITIONING)
        )
        return done, len(self._stages)

    def to_dict(self) -> dict:
        return {
            "cursor": self._cursor,
            "complete": self._complete,
            "stages": [s.to_dict() for s in self._stages],
        }

    # --- Frame loop ---

    def feed(self, frame: Optional[LandmarkFrame], now: Optional[float] = None) -> list[ChallengeEvent]:
        """Classify one frame against the current stage.

        ``frame`` is None when the estimator found no landmarks; that counts
        as a miss. Frames arriving during a stage's cooldown are ignored.
        """
        now = now if now is not None else self._clock()
        if self._complete:
            return []

        events: list[ChallengeEvent] = []
        if self._settle(now, events) or self._complete:
            return events

        stage = self.current_stage
        if stage.status == StageStatus.PENDING:
            stage.status = StageStatus.MATCHING

        definition = self._registry.get(stage.kind)
        matched = frame is not None and definition.matches(frame, self.history.scope(stage.kind))

        if not matched:
            if stage.confidence_count:
                stage.confidence_count = 0
                events.append(self._event("reset", now))
            return events

        stage.confidence_count += 1
        events.append(self._event("progress", now))
        logger.debug(f"{stage.kind.value}: {stage.confidence_count}/{stage.threshold}")

        if stage.confidence_count >= stage.threshold:
            stage.status = StageStatus.TRANSITIONING
            stage.matched_at = now
            events.append(self._event("stage_matched", now))
            logger.info(f"Stage {self._cursor + 1}/{len(self._stages)} matched: {stage.kind.value}")

        return events

    def poll(self, now: Optional[float] = None) -> list[ChallengeEvent]:
        """Finish a stage transition whose cooldown has elapsed, without a frame."""
        now = now if now is not None else self._clock()
        events: list[ChallengeEvent] = []
        if not self._complete:
            self._settle(now, events)
        return events

    def _settle(self, now: float, events: list[ChallengeEvent]) -> bool:
        """Returns True while the current stage is still cooling down."""
        stage = self.current_stage
        if stage.status != StageStatus.TRANSITIONING:
            return False
        if now - stage.matched_at < self._cooldown:
            return True
        if self._cursor == len(self._stages) - 1:
            self._finish(now, events)
        else:
            self._advance(now, events)
        return False

    def _advance(self, now: float, events: list[ChallengeEvent]):
        stage = self.current_stage
        stage.status = StageStatus.MATCHED
        stage.confidence_count = 0
        self.history.scope(stage.kind).clear()
        self._cursor += 1
        events.append(self._event("stage_advanced", now))
        logger.info(f"Advanced to stage {self._cursor + 1}/{len(self._stages)}: {self.current_stage.kind.value}")

    def _finish(self, now: float, events: list[ChallengeEvent]):
        stage = self.current_stage
        stage.status = StageStatus.MATCHED
        self.history.scope(stage.kind).clear()
        self._complete = True
        events.append(self._event("challenge_complete", now))
        logger.info("Challenge complete")
        if self._on_complete:
            self._on_complete()

    def abandon(self):
        """Drop all motion history and restart the current stage.

        A stage that already matched and is cooling down stays matched.
        """
        self.history.clear()
        if self._complete:
            return
        stage = self.current_stage
        if stage.status == StageStatus.TRANSITIONING:
            return
        stage.confidence_count = 0
        stage.status = StageStatus.PENDING
        stage.matched_at = None

    def _event(self, kind: str, now: float) -> ChallengeEvent:
        stage = self.current_stage
        return ChallengeEvent(
            type=kind,
            stage_index=self._cursor,
            kind=stage.kind,
            confidence=stage.confidence_count,
            timestamp=now,
        )


def draw_kinds(
    registry: GestureRegistry, count: int, rng: Optional[random.Random] = None
) -> list[GestureKind]:
    """Pick ``count`` distinct gesture kinds in random order."""
    kinds = registry.kinds()
    if count < 1 or count > len(kinds):
        raise ValueError(f"Cannot draw {count} stages from {len(kinds)} gesture kinds")
    return (rng or random).sample(kinds, count)
