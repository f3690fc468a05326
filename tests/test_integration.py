"""End-to-end flows: lock a resource, solve the challenge, unlock."""

from fastapi.testclient import TestClient

from frames import finger_on_lip, standing, waving
from gesture_lock.client import CompletionClient
from gesture_lock.config import ChallengeConfig, LockConfig
from gesture_lock.runner import ChallengeRunner
from gesture_lock.sequences import Challenge, StageStatus
from gesture_lock.server import create_app
from gesture_lock.session import SessionRegistry


def _client_for(app):
    return CompletionClient("http://testserver", http=TestClient(app))


class TestUnlockFlow:
    def test_static_then_motion_challenge(self):
        sessions = SessionRegistry()
        results = []
        session = sessions.open("notes.txt", on_complete=results.append)
        app = create_app(sessions, LockConfig())
        client = _client_for(app)

        challenge = Challenge(
            ["finger_to_lip", "oscillating_hands"],
            config=ChallengeConfig(confidence_threshold=5, transition_cooldown=2.0),
        )
        runner = ChallengeRunner(challenge, client=client, resource="notes.txt")

        for i in range(5):
            runner.process(finger_on_lip(i * 0.1))
        assert challenge.current_stage.status == StageStatus.TRANSITIONING

        # inside the cooldown nothing moves
        runner.process(waving(1.0))
        assert challenge.cursor == 0

        t = 2.5
        for i in range(20):
            runner.process(waving(t + i * 0.03, up=i % 2 == 0))
        assert challenge.current_stage.status == StageStatus.TRANSITIONING
        assert results == []

        runner.process(standing(6.0))
        assert challenge.is_complete
        assert results == [True]
        assert not session.active
        assert len(sessions) == 0

    def test_plan_round_trip(self):
        sessions = SessionRegistry()
        results = []
        sessions.open("notes.txt", on_complete=results.append)
        config = LockConfig(challenge=ChallengeConfig(stage_count=1, confidence_threshold=1))
        app = create_app(sessions, config)
        client = _client_for(app)

        plan = client.fetch_plan()
        assert plan["resource"] == "notes.txt"
        runner = ChallengeRunner.from_plan(plan, client=client)
        assert runner.challenge.current_stage.threshold == 1
        assert results == []

        runner.send_completion()
        runner.send_completion()
        assert results == [True]

    def test_stray_frames_do_not_unlock(self):
        sessions = SessionRegistry()
        results = []
        sessions.open("notes.txt", on_complete=results.append)
        client = _client_for(create_app(sessions, LockConfig()))

        runner = ChallengeRunner(Challenge(["finger_to_lip"]), client=client)
        runner.run([standing(i * 0.1) for i in range(30)])
        assert results == []
        assert len(sessions) == 1
