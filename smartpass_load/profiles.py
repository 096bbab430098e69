"""
Load profiles: who runs, how many, how fast, and what must hold.

Profiles are declared in ``tests/performance/profiles.yml``.  Each one
names the user class to spawn (by tag), an executor describing how load
evolves over time, and the thresholds the run must satisfy::

    payment-spike:
      user: payments
      executor: ramping-arrival-rate
      start_rate: 5
      time_unit: 1s
      pre_allocated_vus: 50
      max_vus: 200
      stages:
        - {duration: 10s, target: 5}
        - {duration: 10s, target: 50}
      thresholds:
        http_req_duration: ["p(95)<3000"]

Executors:

- ``ramping-vus``: user count follows ``stages`` (linear ramps).
- ``constant-arrival-rate``: fixed iteration rate for ``duration``.
- ``ramping-arrival-rate``: iteration rate follows ``stages``.
- ``shared-iterations``: ``vus`` users share ``iterations`` in total,
  bounded by ``max_duration``.

The timeline helpers (:meth:`LoadProfile.users_at`,
:meth:`LoadProfile.rate_at`) are pure functions of elapsed seconds so
the shape class stays a thin adapter.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from smartpass_load.thresholds import Threshold, parse_thresholds

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


class Executor(str, Enum):
    """How a profile schedules iterations."""

    RAMPING_VUS = "ramping-vus"
    CONSTANT_ARRIVAL_RATE = "constant-arrival-rate"
    RAMPING_ARRIVAL_RATE = "ramping-arrival-rate"
    SHARED_ITERATIONS = "shared-iterations"


@dataclass(frozen=True)
class Stage:
    """Ramp to ``target`` users (or iterations/s) over ``duration`` seconds."""

    duration: float
    target: float


@dataclass(frozen=True)
class LoadProfile:
    """One named load scenario."""

    name: str
    user: str
    executor: Executor
    stages: tuple[Stage, ...] = ()
    thresholds: tuple[Threshold, ...] = ()
    start_rate: float = 0.0
    rate: float = 0.0
    time_unit: float = 1.0
    duration: float = 0.0
    pre_allocated_vus: int = 1
    max_vus: int = 0
    vus: int = 1
    iterations: int = 0
    max_duration: float = 600.0
    description: str = field(default="", compare=False)

    @property
    def uses_arrival_rate(self) -> bool:
        return self.executor in (Executor.CONSTANT_ARRIVAL_RATE, Executor.RAMPING_ARRIVAL_RATE)

    @property
    def total_duration(self) -> float:
        if self.executor is Executor.CONSTANT_ARRIVAL_RATE:
            return self.duration
        if self.executor is Executor.SHARED_ITERATIONS:
            return self.max_duration
        return sum(stage.duration for stage in self.stages)

    def users_at(self, elapsed: float) -> int | None:
        """
        Number of users that should be running after *elapsed* seconds.

        Returns:
            The user count, or ``None`` once the profile has finished.
        """
        if elapsed >= self.total_duration:
            return None
        if self.executor is Executor.RAMPING_VUS:
            return round(_interpolate(self.stages, 0.0, elapsed))
        if self.executor is Executor.SHARED_ITERATIONS:
            return self.vus
        return self.pre_allocated_vus

    def rate_at(self, elapsed: float) -> float | None:
        """
        Target iteration starts per second after *elapsed* seconds.

        Returns:
            The rate for arrival-rate executors while the profile runs,
            ``None`` otherwise.
        """
        if not self.uses_arrival_rate or elapsed >= self.total_duration:
            return None
        if self.executor is Executor.CONSTANT_ARRIVAL_RATE:
            return self.rate / self.time_unit
        return _interpolate(self.stages, self.start_rate, elapsed) / self.time_unit


def parse_duration(value: Any) -> float:
    """
    Convert ``"30s"``, ``"4m"``, ``"1m30s"``, ``"500ms"`` or a number to seconds.

    Raises:
        ValueError: If the value is not a recognised duration.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)

    text = str(value).strip()
    parts = _DURATION_PART.findall(text)
    if not parts or "".join(number + unit for number, unit in parts) != text:
        raise ValueError(f"Invalid duration: {value!r}")
    return sum(float(number) * _DURATION_UNITS[unit] for number, unit in parts)


def parse_profile(name: str, data: dict[str, Any]) -> LoadProfile:
    """
    Build a :class:`LoadProfile` from its YAML mapping.

    Raises:
        ValueError: If required keys are missing or values are invalid.
    """
    if not isinstance(data, dict):
        raise ValueError(f"Profile {name!r} must be a mapping")

    try:
        executor = Executor(data.get("executor", Executor.RAMPING_VUS.value))
    except ValueError as exc:
        raise ValueError(f"Profile {name!r} has unknown executor {data.get('executor')!r}") from exc

    user = data.get("user")
    if not isinstance(user, str) or not user:
        raise ValueError(f"Profile {name!r} must name a user tag")

    try:
        stages = tuple(
            Stage(duration=parse_duration(stage["duration"]), target=float(stage["target"]))
            for stage in data.get("stages") or []
        )
        profile = LoadProfile(
            name=name,
            user=user,
            executor=executor,
            stages=stages,
            thresholds=tuple(parse_thresholds(data.get("thresholds"))),
            start_rate=float(data.get("start_rate", 0)),
            rate=float(data.get("rate", 0)),
            time_unit=parse_duration(data.get("time_unit", "1s")),
            duration=parse_duration(data.get("duration", 0)),
            pre_allocated_vus=int(data.get("pre_allocated_vus", 1)),
            max_vus=int(data.get("max_vus", 0)),
            vus=int(data.get("vus", 1)),
            iterations=int(data.get("iterations", 0)),
            max_duration=parse_duration(data.get("max_duration", "10m")),
            description=str(data.get("description", "")),
        )
    except (KeyError, TypeError) as exc:
        raise ValueError(f"Profile {name!r} is malformed: {exc}") from exc

    _validate(profile)
    return profile


def load_profiles(path: Path) -> dict[str, LoadProfile]:
    """
    Read every profile from a YAML file.

    Args:
        path: Path to a YAML file whose top-level ``profiles`` mapping
            holds one entry per profile.

    Returns:
        Profiles keyed by name.

    Raises:
        ValueError: If the file has no ``profiles`` mapping or any
            profile is invalid.
    """
    with Path(path).open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    profiles = data.get("profiles") if isinstance(data, dict) else None
    if not isinstance(profiles, dict) or not profiles:
        raise ValueError(f"{path} must define a non-empty 'profiles' mapping")

    return {name: parse_profile(name, body) for name, body in profiles.items()}


def load_profile(path: Path, name: str) -> LoadProfile:
    """Load one profile by name, raising ``ValueError`` if it is not defined."""
    profiles = load_profiles(path)
    try:
        return profiles[name]
    except KeyError:
        known = ", ".join(sorted(profiles))
        raise ValueError(f"Unknown load profile {name!r}; known profiles: {known}") from None


def _validate(profile: LoadProfile) -> None:
    if profile.executor in (Executor.RAMPING_VUS, Executor.RAMPING_ARRIVAL_RATE) and not profile.stages:
        raise ValueError(f"Profile {profile.name!r} needs at least one stage")
    if profile.executor is Executor.CONSTANT_ARRIVAL_RATE and (profile.rate <= 0 or profile.duration <= 0):
        raise ValueError(f"Profile {profile.name!r} needs a positive rate and duration")
    if profile.executor is Executor.SHARED_ITERATIONS and (profile.iterations <= 0 or profile.vus <= 0):
        raise ValueError(f"Profile {profile.name!r} needs positive vus and iterations")
    if profile.uses_arrival_rate and profile.pre_allocated_vus <= 0:
        raise ValueError(f"Profile {profile.name!r} needs pre-allocated users")
    if profile.max_vus and profile.max_vus < profile.pre_allocated_vus:
        raise ValueError(f"Profile {profile.name!r} has max_vus below pre_allocated_vus")


def _interpolate(stages: tuple[Stage, ...], start: float, elapsed: float) -> float:
    """Value of a piecewise-linear ramp through *stages* starting at *start*."""
    previous = start
    stage_start = 0.0
    for stage in stages:
        stage_end = stage_start + stage.duration
        if elapsed < stage_end:
            if stage.duration <= 0:
                return stage.target
            progress = (elapsed - stage_start) / stage.duration
            return previous + (stage.target - previous) * progress
        previous = stage.target
        stage_start = stage_end
    return previous
