"""Frame-driven challenge runner.

Feeds landmark frames into a Challenge, forwards its events to listeners
and reports completion to the control server exactly once.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from typing import Callable, Iterable, Optional

from gesture_lock.client import CompletionClient
from gesture_lock.config import ChallengeConfig
from gesture_lock.gestures import GestureRegistry
from gesture_lock.landmarks import LandmarkFrame
from gesture_lock.sequences import Challenge, ChallengeEvent

logger = logging.getLogger("gesture_lock.runner")


class ChallengeRunner:
    def __init__(
        self,
        challenge: Challenge,
        client: Optional[CompletionClient] = None,
        resource: Optional[str] = None,
    ):
        self.challenge = challenge
        self.client = client
        self.resource = resource
        self.frames_processed = 0
        self.completion_sent = False
        self._callbacks: list[Callable[[ChallengeEvent], None]] = []

    @classmethod
    def from_plan(
        cls,
        plan: dict,
        client: Optional[CompletionClient] = None,
        registry: Optional[GestureRegistry] = None,
        config: Optional[ChallengeConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> ChallengeRunner:
        """Build a runner from a plan served by ``GET /challenge``."""
        config = config or ChallengeConfig()
        config = dataclasses.replace(
            config,
            confidence_threshold=int(plan.get("threshold", config.confidence_threshold)),
            transition_cooldown=plan.get(
                "cooldown_ms", config.transition_cooldown * 1000
            ) / 1000,
        )
        kinds = [stage["kind"] for stage in plan["stages"]]
        challenge = Challenge(kinds, registry=registry, config=config, clock=clock)
        return cls(challenge, client=client, resource=plan.get("resource"))

    def on_event(self, callback: Callable[[ChallengeEvent], None]):
        """Register a callback for every challenge event."""
        self._callbacks.append(callback)

    def process(self, frame: Optional[LandmarkFrame], now: Optional[float] = None) -> list[ChallengeEvent]:
        """Feed one frame. Sends the completion once the challenge completes."""
        if now is None and frame is not None:
            now = frame.timestamp
        events = self.challenge.feed(frame, now)
        self.frames_processed += 1

        for event in events:
            for cb in self._callbacks:
                cb(event)

        if self.challenge.is_complete and not self.completion_sent:
            self.send_completion()
        return events

    def run(self, frames: Iterable[Optional[LandmarkFrame]]) -> bool:
        """Process frames until the challenge completes or frames run out."""
        for frame in frames:
            self.process(frame)
            if self.challenge.is_complete:
                break
        return self.challenge.is_complete

    def send_completion(self):
        if self.completion_sent:
            return
        if self.client is None:
            logger.info("Challenge complete (no control server configured)")
            self.completion_sent = True
            return
        self.client.complete(resource=self.resource)
        self.completion_sent = True
