"""GestureLock CLI.

Usage:
    gesture-lock serve      Lock a resource and serve its challenge page
    gesture-lock run        Solve the served challenge with a local webcam
    gesture-lock gestures   List the available gestures
"""

from __future__ import annotations

import logging
import time
import webbrowser
from typing import Optional

import typer

app = typer.Typer(
    name="gesture-lock",
    help="🔒 Unlock resources by performing a sequence of body gestures.",
    add_completion=False,
)


def _load(config_path: Optional[str]):
    from gesture_lock.config import ConfigError, load_config, set_config

    try:
        config = load_config(config_path)
    except (ConfigError, OSError) as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)
    set_config(config)
    return config


@app.command()
def serve(
    resource: str = typer.Option("default", help="Id of the resource being locked"),
    host: Optional[str] = typer.Option(None, help="Bind address"),
    port: Optional[int] = typer.Option(None, help="Port"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to YAML config"),
    open_browser: bool = typer.Option(False, "--open", help="Open the challenge page in a browser"),
    log_level: str = typer.Option("info", help="Log level"),
):
    """Lock a resource and wait for its gesture challenge to be completed."""
    from gesture_lock.server import ChallengeServer, ServerBindError, create_app
    from gesture_lock.session import SessionRegistry

    logging.basicConfig(level=log_level.upper(), format="%(asctime)s %(name)s %(levelname)s %(message)s")
    config = _load(config_path)
    if host:
        config.server.host = host
    if port is not None:
        config.server.port = port
    config.server.log_level = log_level

    def unlocked(success: bool):
        if success:
            typer.echo(f"🔓 {resource} unlocked")
        else:
            typer.echo(f"🔒 {resource} stays locked")

    def errored(message: str):
        typer.echo(f"⚠️  {resource}: {message}", err=True)

    sessions = SessionRegistry(config.session)
    session = sessions.open(resource, on_complete=unlocked, on_error=errored)
    server = ChallengeServer(create_app(sessions, config), config.server)

    try:
        server.start()
    except ServerBindError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"🚀 Challenge for {resource} at {server.url}")
    if open_browser:
        webbrowser.open(server.url)

    try:
        while session.active:
            sessions.expire()
            time.sleep(0.2)
    except KeyboardInterrupt:
        session.cancel()
        typer.echo("\n👋 Cancelled")
    finally:
        server.stop()

    if session.result is not True:
        raise typer.Exit(1)


@app.command()
def run(
    url: str = typer.Option("http://localhost:3742", help="Challenge server URL"),
    camera: int = typer.Option(0, help="Camera index"),
    resource: Optional[str] = typer.Option(None, help="Resource to solve (default: latest)"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to YAML config"),
):
    """Solve the served challenge with a local webcam."""
    from gesture_lock.client import CompletionClient, CompletionError
    from gesture_lock.detector import PoseDetector, camera_frames
    from gesture_lock.gestures import GestureRegistry
    from gesture_lock.runner import ChallengeRunner

    config = _load(config_path)
    registry = GestureRegistry.with_defaults(config.thresholds)

    with CompletionClient(url) as client:
        try:
            plan = client.fetch_plan(resource)
        except CompletionError as e:
            typer.echo(f"❌ {e}", err=True)
            raise typer.Exit(1)

        runner = ChallengeRunner.from_plan(plan, client=client, registry=registry, config=config.challenge)
        stages = {s["kind"]: s["instruction"] for s in plan["stages"]}

        def show(event):
            if event.type == "stage_advanced":
                typer.echo(f"👉 {stages[event.kind.value]}")
            elif event.type == "stage_matched":
                done, total = runner.challenge.progress
                typer.echo(f"✅ {event.kind.value} ({done}/{total})")

        runner.on_event(show)
        typer.echo(f"🎯 {len(stages)} gestures: {', '.join(stages)}")
        typer.echo(f"👉 {plan['stages'][0]['instruction']}")

        try:
            with PoseDetector() as detector:
                solved = runner.run(camera_frames(detector, camera))
        except CompletionError as e:
            typer.echo(f"❌ Could not report completion: {e}", err=True)
            raise typer.Exit(1)
        except (ImportError, RuntimeError) as e:
            typer.echo(f"❌ {e}", err=True)
            raise typer.Exit(1)
        except KeyboardInterrupt:
            typer.echo("\n👋 Stopped")
            raise typer.Exit(1)

    if solved:
        typer.echo("🎉 Challenge completed!")


@app.command()
def gestures(
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to YAML config"),
):
    """List the available gestures."""
    from gesture_lock.gestures import GestureRegistry

    config = _load(config_path)
    for gesture in GestureRegistry.with_defaults(config.thresholds):
        tag = "motion" if gesture.dynamic else "pose"
        typer.echo(f"  {gesture.kind.value:<24} [{tag}] {gesture.instruction}")


def main():
    app()


if __name__ == "__main__":
    main()
