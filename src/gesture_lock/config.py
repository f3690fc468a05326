"""GestureLock configuration.

All classifier thresholds live here, one dataclass per gesture kind, so
they can be tuned (or overridden from YAML) without touching classifier
logic. A YAML file may contain any of these sections:

    challenge:
      stage_count: 3
      confidence_threshold: 5
    session:
      ttl: 300
    server:
      port: 3742
      asset_dirs: [./assets]
    thresholds:
      oscillating_hands:
        min_amplitude: 0.1
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, is_dataclass, replace
from pathlib import Path
from typing import Any, Optional, Union, get_args, get_origin, get_type_hints

import yaml

logger = logging.getLogger("gesture_lock.config")

PACKAGE_DIR = Path(__file__).parent
DEFAULT_PORT = 3742


class ConfigError(ValueError):
    """Raised when a config file cannot be parsed."""


# --- Per-gesture thresholds ---

@dataclass
class OscillationThresholds:
    min_samples: int = 15
    min_amplitude: float = 0.08
    noise_floor: float = 0.015
    min_reversals: int = 3
    min_visibility: float = 0.2


@dataclass
class TongueHeadshakeThresholds:
    mouth_open_ratio: float = 0.35
    min_samples: int = 15
    min_amplitude: float = 0.04
    noise_floor: float = 0.008
    min_reversals: int = 3


@dataclass
class FingerToLipThresholds:
    mouth_proximity: float = 0.08
    nose_proximity: float = 0.12
    min_visibility: float = 0.3


@dataclass
class PalmsUpShrugThresholds:
    bent_max_angle: float = 130.0
    min_visibility: float = 0.5


@dataclass
class FingerToJawThresholds:
    jaw_proximity: float = 0.09
    min_visibility: float = 0.3


@dataclass
class SmilePointUpThresholds:
    smile_ratio: float = 0.45
    extended_min_angle: float = 110.0
    min_visibility: float = 0.5


@dataclass
class ElbowTuckExtendThresholds:
    bent_max_angle: float = 120.0
    extended_min_angle: float = 110.0
    tuck_distance: float = 0.1
    min_visibility: float = 0.5


@dataclass
class GestureThresholds:
    """Thresholds for every gesture kind, keyed by the kind's value."""
    oscillating_hands: OscillationThresholds = field(default_factory=OscillationThresholds)
    tongue_and_headshake: TongueHeadshakeThresholds = field(default_factory=TongueHeadshakeThresholds)
    finger_to_lip: FingerToLipThresholds = field(default_factory=FingerToLipThresholds)
    palms_up_shrug: PalmsUpShrugThresholds = field(default_factory=PalmsUpShrugThresholds)
    finger_to_jaw: FingerToJawThresholds = field(default_factory=FingerToJawThresholds)
    smile_and_point_up: SmilePointUpThresholds = field(default_factory=SmilePointUpThresholds)
    elbow_tuck_arm_extend: ElbowTuckExtendThresholds = field(default_factory=ElbowTuckExtendThresholds)

    def for_kind(self, kind: str) -> Any:
        return getattr(self, str(kind))


# --- Runtime sections ---

@dataclass
class ChallengeConfig:
    stage_count: int = 3
    confidence_threshold: int = 5
    transition_cooldown: float = 2.0  # seconds
    history_capacity: int = 30


@dataclass
class SessionConfig:
    ttl: Optional[float] = None  # seconds; None = sessions never expire


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    asset_dirs: list[str] = field(default_factory=list)
    log_level: str = "info"

    def asset_search_paths(self) -> list[Path]:
        """Candidate directories for /assets, in lookup order."""
        paths = [Path(p) for p in self.asset_dirs]
        paths.append(PACKAGE_DIR / "assets")
        paths.append(Path.cwd() / "assets")
        return paths


@dataclass
class LockConfig:
    challenge: ChallengeConfig = field(default_factory=ChallengeConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    thresholds: GestureThresholds = field(default_factory=GestureThresholds)


_config: Optional[LockConfig] = None


def get_config() -> LockConfig:
    global _config
    if _config is None:
        _config = load_config(os.environ.get("GESTURE_LOCK_CONFIG"))
    return _config


def set_config(config: Optional[LockConfig]):
    global _config
    _config = config


def load_config(path: Optional[str | Path] = None) -> LockConfig:
    """Load config from a YAML file (if given) plus environment overrides."""
    config = LockConfig()

    if path:
        try:
            data = yaml.safe_load(Path(path).read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        config = _merge(config, data, "")

    host = os.environ.get("GESTURE_LOCK_HOST")
    if host:
        config.server.host = host
    port = os.environ.get("GESTURE_LOCK_PORT")
    if port:
        try:
            config.server.port = int(port)
        except ValueError as e:
            raise ConfigError(f"GESTURE_LOCK_PORT must be an integer, got {port!r}") from e

    return config


def _merge(obj: Any, data: dict, path: str) -> Any:
    """Return a copy of dataclass ``obj`` with values from ``data`` applied."""
    known = {f.name for f in fields(obj)}
    hints = get_type_hints(type(obj))
    updates = {}
    for key, value in data.items():
        if key not in known:
            logger.warning(f"Ignoring unknown config key: {path}{key}")
            continue
        current = getattr(obj, key)
        if is_dataclass(current):
            if not isinstance(value, dict):
                raise ConfigError(f"Config section {path}{key} must be a mapping")
            updates[key] = _merge(current, value, f"{path}{key}.")
        else:
            updates[key] = _coerce(value, hints[key], f"{path}{key}")
    return replace(obj, **updates)


def _coerce(value: Any, hint: Any, name: str) -> Any:
    """Check a YAML scalar or list against a field annotation."""
    if get_origin(hint) is Union:
        if value is None and type(None) in get_args(hint):
            return None
        hint = next(a for a in get_args(hint) if a is not type(None))

    if hint is float and isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if get_origin(hint) is list:
        (item,) = get_args(hint)
        if isinstance(value, list) and all(isinstance(v, item) for v in value):
            return list(value)
        raise ConfigError(f"Config value {name} must be a list of {item.__name__}, got {value!r}")
    if isinstance(value, hint) and not (hint is int and isinstance(value, bool)):
        return value
    raise ConfigError(f"Config value {name} must be {hint.__name__}, got {value!r}")
