"""Local HTTP control plane for gesture challenges.

Serves the challenge page, reference images and a completion endpoint
that resolves the waiting Session.

Endpoints:
- GET  /           challenge page with a freshly shuffled stage plan
- GET  /challenge  the same plan as JSON
- GET  /assets/*   reference images
- POST /complete   completion signal (any JSON body)
- GET  /health     liveness check

Usage:
    sessions = SessionRegistry()
    sessions.open("notes.txt", on_complete=unlock)
    with ChallengeServer(create_app(sessions)) as server:
        webbrowser.open(server.url)
        ...
"""

from __future__ import annotations

import html
import json
import logging
import socket
import threading
import time
from pathlib import Path
from string import Template
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, Response
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from gesture_lock import __version__
from gesture_lock.config import LockConfig, ServerConfig, get_config
from gesture_lock.gestures import GestureRegistry
from gesture_lock.sequences import draw_kinds
from gesture_lock.session import SessionRegistry

logger = logging.getLogger("gesture_lock.server")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


class ServerBindError(OSError):
    """The control server could not bind its port."""


# --- Plan models ---

class StagePlan(BaseModel):
    kind: str
    instruction: str
    image: str


class ChallengePlan(BaseModel):
    resource: Optional[str] = None
    threshold: int
    cooldown_ms: int
    stages: list[StagePlan]


class ServerState:
    def __init__(self, sessions: SessionRegistry, config: LockConfig, gestures: GestureRegistry):
        self.sessions = sessions
        self.config = config
        self.gestures = gestures
        self.started_at = time.time()
        self.completions = 0


def build_plan(state: ServerState, resource: Optional[str] = None, rng=None) -> ChallengePlan:
    """Shuffle a new stage order and attach it to the target session."""
    challenge = state.config.challenge
    kinds = draw_kinds(state.gestures, challenge.stage_count, rng)

    session = state.sessions.get(resource) if resource else state.sessions.latest()
    if session is not None:
        session.plan = [k.value for k in kinds]
        resource = session.resource_id

    return ChallengePlan(
        resource=resource,
        threshold=challenge.confidence_threshold,
        cooldown_ms=int(challenge.transition_cooldown * 1000),
        stages=[StagePlan(**state.gestures.get(k).to_dict()) for k in kinds],
    )


def find_asset(name: str, search_paths: list[Path]) -> Optional[Path]:
    """Locate ``name`` in the first search path that has it.

    Never returns a file outside the search path it was found in.
    """
    for base in search_paths:
        try:
            root = base.resolve()
            candidate = (root / name).resolve()
            candidate.relative_to(root)
        except (OSError, ValueError):
            continue
        if candidate.is_file():
            return candidate
    return None


_PAGE = Template("""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<title>Resource locked</title>
</head>
<body>
<h1>Resource locked</h1>
<img id="challenge-image" src="$image" alt="Challenge">
<p id="challenge-instruction">$instruction</p>
<p id="challenge-progress">0/$total</p>
<script id="challenge-plan" type="application/json">$plan</script>
<script>
window.challengePlan = JSON.parse(document.getElementById("challenge-plan").textContent);
</script>
</body>
</html>
""")


def render_page(plan: ChallengePlan) -> str:
    first = plan.stages[0]
    # keep "</script>" inside the JSON from closing the tag
    payload = json.dumps(plan.model_dump()).replace("</", "<\\/")
    return _PAGE.substitute(
        image=html.escape(first.image),
        instruction=html.escape(first.instruction),
        total=len(plan.stages),
        plan=payload,
    )


def create_app(
    sessions: Optional[SessionRegistry] = None,
    config: Optional[LockConfig] = None,
    gestures: Optional[GestureRegistry] = None,
) -> FastAPI:
    """Build the control-plane app around a session registry."""
    config = config if config is not None else get_config()
    if sessions is None:
        sessions = SessionRegistry(config.session)
    if gestures is None:
        gestures = GestureRegistry.with_defaults(config.thresholds)

    app = FastAPI(title="GestureLock", version=__version__)
    state = ServerState(sessions, config, gestures)
    app.state.lock = state

    @app.middleware("http")
    async def control_plane_headers(request: Request, call_next):
        if request.method == "OPTIONS":
            response = Response(status_code=200)
        else:
            state.sessions.expire()
            response = await call_next(request)
        for key, value in CORS_HEADERS.items():
            response.headers[key] = value
        return response

    @app.exception_handler(StarletteHTTPException)
    async def not_found(request: Request, exc: StarletteHTTPException):
        if exc.status_code in (404, 405):
            return JSONResponse({"error": "Not found"}, status_code=404)
        return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)

    @app.get("/")
    async def index(resource: Optional[str] = None):
        plan = build_plan(state, resource)
        logger.info(f"Serving challenge: {[s.kind for s in plan.stages]}")
        return HTMLResponse(render_page(plan))

    @app.get("/challenge", response_model=ChallengePlan)
    async def challenge_plan(resource: Optional[str] = None):
        return build_plan(state, resource)

    @app.get("/assets/{name:path}")
    async def assets(name: str):
        path = find_asset(name, state.config.server.asset_search_paths())
        if path is None:
            logger.debug(f"Asset not found: {name}")
            return JSONResponse({"error": "Not found"}, status_code=404)
        media_type = MIME_TYPES.get(path.suffix.lower(), "application/octet-stream")
        return FileResponse(path, media_type=media_type)

    @app.post("/complete")
    async def complete(request: Request):
        body = await request.body()
        try:
            data = json.loads(body)
        except (ValueError, UnicodeDecodeError):
            logger.warning("Rejected malformed completion request")
            return JSONResponse({"success": False, "error": "Invalid request"}, status_code=400)

        resource = data.get("resource") if isinstance(data, dict) else None
        if not isinstance(resource, str):
            resource = None
        session = state.sessions.resolve(resource, success=True)
        if session is not None:
            state.completions += 1
        return {"success": True, "message": "Challenge completed!"}

    @app.get("/health")
    async def health():
        return {"status": "ok", "sessions": len(state.sessions)}

    return app


class ChallengeServer:
    """Runs the control-plane app with uvicorn on a background thread.

    The socket is bound before the thread starts, so a port conflict is
    raised from ``start()`` as ServerBindError.
    """

    def __init__(self, app: Optional[FastAPI] = None, config: Optional[ServerConfig] = None):
        self.config = config if config is not None else get_config().server
        self.app = app if app is not None else create_app()
        self.port: Optional[int] = None
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None
        self._socket: Optional[socket.socket] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def url(self) -> str:
        host = self.config.host
        if host in ("0.0.0.0", "127.0.0.1", ""):
            host = "localhost"
        return f"http://{host}:{self.port or self.config.port}"

    def start(self, timeout: float = 5.0) -> int:
        """Start serving; returns the bound port. A running server is left as is."""
        if self.running:
            return self.port

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.config.host, self.config.port))
        except OSError as e:
            sock.close()
            raise ServerBindError(
                f"Could not bind challenge server to {self.config.host}:{self.config.port}: {e}"
            ) from e

        self._socket = sock
        self.port = sock.getsockname()[1]
        self._server = uvicorn.Server(
            uvicorn.Config(self.app, log_level=self.config.log_level)
        )
        self._thread = threading.Thread(
            target=self._server.run,
            kwargs={"sockets": [sock]},
            name="gesture-lock-server",
            daemon=True,
        )
        self._thread.start()

        deadline = time.monotonic() + timeout
        while not self._server.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                self.stop()
                raise ServerBindError(f"Challenge server failed to start on port {self.port}")
            time.sleep(0.01)

        logger.info(f"Challenge server started on {self.url}")
        return self.port

    def stop(self, timeout: float = 5.0):
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout)
        if self._socket is not None:
            self._socket.close()
        if self._server is not None:
            logger.info("Challenge server stopped")
        self._server = None
        self._thread = None
        self._socket = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *args):
        self.stop()


sessions = SessionRegistry(get_config().session)
app = create_app(sessions=sessions)
