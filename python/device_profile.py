#!/usr/bin/env python3
"""Device profiles: sphere size, pool size and spin cadence."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any


@dataclass(frozen=True)
class DeviceProfile:
    """Everything the pool, the layout and the spin read from the device."""

    name: str
    radius: float
    pool_length: int
    cadence_hz: int
    initial_speed_ms: int
    speed_increment_ms: int
    rotation_step: float
    rotation_decay: float
    rounds_before_slowdown: int
    min_rounds_before_stop: int
    stop_speed_threshold_ms: int
    settle_delay_ms: int
    ambient_step: tuple[float, float]
    card_size: int
    container_size: int

    @property
    def compact(self) -> bool:
        return self.name == "compact"

    @property
    def frame_interval_ms(self) -> int:
        return max(1, round(1000 / self.cadence_hz))

    def validate(self) -> "DeviceProfile":
        if self.pool_length < 1:
            raise ValueError(f"{self.name}: pool_length must be at least 1")
        if self.radius <= 0:
            raise ValueError(f"{self.name}: radius must be positive")
        if self.cadence_hz <= 0:
            raise ValueError(f"{self.name}: cadence_hz must be positive")
        if self.initial_speed_ms <= 0:
            raise ValueError(f"{self.name}: initial_speed_ms must be positive")
        if not 0 < self.rotation_decay <= 1:
            raise ValueError(f"{self.name}: rotation_decay must be in (0, 1]")
        if self.rounds_before_slowdown < 0 or self.min_rounds_before_stop < 0:
            raise ValueError(f"{self.name}: round counts cannot be negative")
        if self.settle_delay_ms < 0:
            raise ValueError(f"{self.name}: settle_delay_ms cannot be negative")
        if self.speed_increment_ms < 0:
            raise ValueError(f"{self.name}: speed_increment_ms cannot be negative")
        # The stop gate needs the spin to get slower than the threshold at some point.
        if self.speed_increment_ms == 0 and self.initial_speed_ms <= self.stop_speed_threshold_ms:
            raise ValueError(f"{self.name}: spin never slows past stop_speed_threshold_ms")
        return self


FULL_PROFILE = DeviceProfile(
    name="full",
    radius=280.0,
    pool_length=60,
    cadence_hz=60,
    initial_speed_ms=40,
    speed_increment_ms=15,
    rotation_step=8.0,
    rotation_decay=0.95,
    rounds_before_slowdown=2,
    min_rounds_before_stop=4,
    stop_speed_threshold_ms=300,
    settle_delay_ms=1000,
    ambient_step=(0.2, 0.3),
    card_size=64,
    container_size=500,
)

COMPACT_PROFILE = DeviceProfile(
    name="compact",
    radius=120.0,
    pool_length=30,
    cadence_hz=30,
    initial_speed_ms=60,
    speed_increment_ms=20,
    rotation_step=4.0,
    rotation_decay=0.95,
    rounds_before_slowdown=2,
    min_rounds_before_stop=3,
    stop_speed_threshold_ms=250,
    settle_delay_ms=1000,
    ambient_step=(0.5, 0.8),
    card_size=40,
    container_size=280,
)

PROFILES = {FULL_PROFILE.name: FULL_PROFILE, COMPACT_PROFILE.name: COMPACT_PROFILE}

_FIELD_TYPES = {field.name: field.type for field in fields(DeviceProfile)}


def _coerce(key: str, value: Any) -> Any:
    kind = _FIELD_TYPES[key]
    if kind == "int":
        if isinstance(value, float) and not value.is_integer():
            raise ValueError(f"{key} must be a whole number, got {value}")
        return int(value)
    if kind == "float":
        return float(value)
    if key == "ambient_step":
        step_x, step_y = value
        return (float(step_x), float(step_y))
    return value


def select_profile(compact: bool, overrides: dict[str, Any] | None = None) -> DeviceProfile:
    """Pick the compact or full profile and apply per-profile overrides."""
    profile = COMPACT_PROFILE if compact else FULL_PROFILE
    if not overrides:
        return profile
    changes = {}
    for key, value in overrides.items():
        if key == "name" or key not in _FIELD_TYPES:
            raise ValueError(f"Unknown {profile.name} profile option: {key}")
        try:
            changes[key] = _coerce(key, value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid {profile.name} profile option {key}={value!r}") from exc
    return replace(profile, **changes).validate()


def profile_from_config(config: dict[str, Any], compact: bool) -> DeviceProfile:
    profiles = config.get("profiles") or {}
    if not isinstance(profiles, dict):
        raise ValueError("profiles must be an object keyed by profile name")
    for name in profiles:
        if name not in PROFILES:
            raise ValueError(f"Unknown profile: {name}")
    name = COMPACT_PROFILE.name if compact else FULL_PROFILE.name
    return select_profile(compact, profiles.get(name))
